"""
JWT access tokens.

Every token carries the same three claims: sub (the user's email), user_id
and role. Tokens missing any of them are treated as invalid.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from backend.app.core.config import settings

REQUIRED_CLAIMS = ("sub", "user_id", "role")


def create_access_token(
    email: str,
    user_id: int,
    role: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Issue a signed access token for a user.

    Example payload:
        {
            "sub": "jane@example.com",
            "user_id": 12,
            "role": "member",
            "iat": 1700000000,
            "exp": 1700001800
        }
    """
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)

    claims = {
        "sub": email,
        "user_id": user_id,
        "role": role,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Payload if the signature, expiry and claim set are valid, None otherwise."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

    if any(not payload.get(claim) for claim in REQUIRED_CLAIMS):
        return None
    return payload
