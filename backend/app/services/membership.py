"""
Member profile creation.

Shared by self-registration, admin user creation and the seeding script.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.datetime_utils import utcnow
from backend.app.core.exceptions import ConflictError
from backend.app.core.security import get_password_hash
from backend.app.db.unit_of_work import atomic
from backend.app.domain.tokens.ledger_service import TokenLedgerService
from backend.app.domain.tokens.related import RelatedDocument
from backend.app.models.enums import UserRole
from backend.app.models.member import Member
from backend.app.models.token_enums import TransactionType
from backend.app.models.user import User
from backend.app.services.member_locks import registration_key

logger = logging.getLogger("gym.members")

REGISTRATION_ATTEMPTS = 3


async def next_membership_number(db: AsyncSession) -> str:
    """MEM-YYYYMM-NNNN, numbered per month."""
    prefix = f"MEM-{utcnow():%Y%m}-"
    result = await db.execute(
        select(func.max(Member.membership_number)).where(Member.membership_number.like(f"{prefix}%"))
    )
    last = result.scalar()
    sequence = int(last.rsplit("-", 1)[1]) + 1 if last else 1
    return f"{prefix}{sequence:04d}"


async def email_taken(db: AsyncSession, email: str) -> bool:
    result = await db.execute(select(User.id).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none() is not None


async def create_user(
    db: AsyncSession,
    name: str,
    email: str,
    password: str,
    role: UserRole,
    phone: Optional[str] = None,
) -> User:
    """Add a user row (flush only). Raises ConflictError on a duplicate email."""
    if await email_taken(db, email):
        raise ConflictError("Email already registered", error_code="ERR_CONFLICT_EMAIL", details={"email": email})

    user = User(
        name=name,
        email=email.lower(),
        hashed_password=get_password_hash(password),
        phone=phone,
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    return user


async def create_member_profile(db: AsyncSession, user: User, gym_id: Optional[int] = None) -> Member:
    """
    Create the member profile for `user` and post the starting token grant.

    Flush only; the caller commits. The grant is a system ledger credit with
    no actor, so the balance starts out equal to the ledger sum.
    """
    member = Member(
        user_id=user.id,
        membership_number=await next_membership_number(db),
        token_balance=0,
        gym_id=gym_id,
        is_active=True,
    )
    db.add(member)
    await db.flush()

    if settings.starting_token_grant > 0:
        await TokenLedgerService.post_entry(
            db,
            member_id=member.id,
            type_=TransactionType.CREDIT,
            amount=settings.starting_token_grant,
            description="Welcome bonus tokens",
            related=RelatedDocument.system(),
        )

    logger.info("Member profile %s created for user %d", member.membership_number, user.id)
    return member


def _membership_number_clash(exc: ConflictError) -> bool:
    cause = exc.__cause__
    return isinstance(cause, IntegrityError) and "membership_number" in str(cause.orig)


async def register_member(
    db: AsyncSession,
    name: str,
    email: str,
    password: str,
    phone: Optional[str] = None,
    gym_id: Optional[int] = None,
) -> Tuple[User, Member]:
    """
    Create a MEMBER user with its profile and starting grant in one commit.

    Allocation is serialized in-process; a number taken by another process
    in the meantime is retried with the next one.

    Raises:
        ConflictError 409 on a duplicate email
    """
    for attempt in range(1, REGISTRATION_ATTEMPTS + 1):
        try:
            async with atomic(db, registration_key(), operation="register_member"):
                user = await create_user(db, name, email, password, UserRole.MEMBER, phone)
                member = await create_member_profile(db, user, gym_id)
            return user, member
        except ConflictError as exc:
            if not _membership_number_clash(exc) or attempt == REGISTRATION_ATTEMPTS:
                raise
            logger.warning("Membership number clash registering %s (attempt %d), retrying", email, attempt)
