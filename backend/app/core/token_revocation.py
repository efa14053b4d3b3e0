"""
Token Revocation System using Redis.

Implements token blacklisting to immediately invalidate JWT tokens
when users log out or are blocked by an admin.
"""

import logging

import backend.app.core.redis_client as redis_client_module
from backend.app.core.config import settings

logger = logging.getLogger("gym.auth")

# Redis key prefix for blacklisted tokens
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"
USER_TOKENS_PREFIX = "user:tokens:"


def _client():
    # Resolved per call so tests can swap the module-level client
    return redis_client_module.redis_client


def _ttl_seconds() -> int:
    # Tokens expire on their own after this long anyway
    return settings.access_token_expire_minutes * 60


async def revoke_token(token: str, user_id: int) -> bool:
    """
    Revoke a specific JWT token by adding it to the blacklist.

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        # Store user_id for audit purposes
        await _client().setex(key, _ttl_seconds(), str(user_id))
        return True
    except Exception:
        logger.exception("Error revoking token for user %s", user_id)
        return False


async def is_token_revoked(token: str) -> bool:
    """
    Check if a token has been revoked.

    Fails open: if Redis is unreachable the token is treated as valid.
    """
    try:
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        exists = await _client().exists(key)
        return exists > 0
    except Exception:
        logger.exception("Error checking token revocation")
        return False


async def revoke_all_user_tokens(user_id: int) -> bool:
    """
    Revoke all active tokens for a specific user.

    Called when a user is blocked. Sets a per-user flag that every token
    validation checks, instead of tracking each issued token.
    """
    try:
        key = f"{USER_TOKENS_PREFIX}{user_id}:revoked"
        await _client().setex(key, _ttl_seconds(), "1")
        return True
    except Exception:
        logger.exception("Error revoking all tokens for user %s", user_id)
        return False


async def are_user_tokens_revoked(user_id: int) -> bool:
    """Check if all tokens for a user have been revoked."""
    try:
        key = f"{USER_TOKENS_PREFIX}{user_id}:revoked"
        exists = await _client().exists(key)
        return exists > 0
    except Exception:
        logger.exception("Error checking user token revocation for user %s", user_id)
        return False


async def clear_user_token_revocation(user_id: int) -> bool:
    """
    Clear the global token revocation flag for a user.

    Called when a blocked user is unblocked.
    """
    try:
        key = f"{USER_TOKENS_PREFIX}{user_id}:revoked"
        await _client().delete(key)
        return True
    except Exception:
        logger.exception("Error clearing token revocation for user %s", user_id)
        return False
