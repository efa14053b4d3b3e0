"""
Token Ledger Service (Domain Logic).

Records every balance-affecting event exactly once and keeps the cached
Member.token_balance equal to the signed sum of the member's ledger entries.
Must be transactional and idempotent.
"""

import logging
import uuid
from dataclasses import dataclass, asdict
from datetime import date
from typing import Optional, List

from sqlalchemy import select, update, func, case, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.datetime_utils import utcnow, start_of_day, end_of_day
from backend.app.core.exceptions import (
    ValidationError, ResourceNotFoundError, ConflictError, InsufficientBalanceError
)
from backend.app.db.unit_of_work import atomic
from backend.app.domain.tokens.related import RelatedDocument
from backend.app.models.member import Member
from backend.app.models.token_enums import TransactionType
from backend.app.models.token_transaction import TokenTransaction
from backend.app.services.member_locks import member_key
from backend.app.services.pagination import Page, paginate

logger = logging.getLogger("gym.ledger")


@dataclass
class LedgerBalance:
    member_id: int
    balance: int
    total_credits: int
    total_debits: int
    cached_balance: int

    @property
    def in_sync(self) -> bool:
        return self.balance == self.cached_balance

    def as_dict(self) -> dict:
        data = asdict(self)
        data["in_sync"] = self.in_sync
        return data


@dataclass
class BalanceDrift:
    member_id: int
    cached: int
    ledger: int


def _signed_amount():
    return case(
        (TokenTransaction.type == TransactionType.CREDIT, TokenTransaction.amount),
        else_=-TokenTransaction.amount,
    )


def _credit_amount():
    return case((TokenTransaction.type == TransactionType.CREDIT, TokenTransaction.amount), else_=0)


def _debit_amount():
    return case((TokenTransaction.type == TransactionType.DEBIT, TokenTransaction.amount), else_=0)


class TokenLedgerService:

    @staticmethod
    def generate_reference(prefix: str = "TXN") -> str:
        """Fresh unique reference, e.g. TXN-20240131-9F2C4A7B1D03."""
        return f"{prefix}-{utcnow():%Y%m%d}-{uuid.uuid4().hex[:12].upper()}"

    @staticmethod
    async def lock_member(db: AsyncSession, member_id: int) -> Member:
        """
        Load a member row for update.

        On PostgreSQL this takes a row lock for the rest of the transaction;
        SQLite ignores FOR UPDATE.
        """
        result = await db.execute(
            select(Member)
            .where(Member.id == member_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        member = result.scalar_one_or_none()
        if not member:
            raise ResourceNotFoundError("Member", member_id)
        return member

    @staticmethod
    def _validate(type_: TransactionType, amount: int, description: str) -> TransactionType:
        try:
            type_ = TransactionType(type_)
        except ValueError:
            raise ValidationError(
                "Invalid transaction type. Must be one of: credit, debit",
                details={"type": type_}
            )
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("Token amount must be a positive integer", details={"amount": amount})
        if not description or not description.strip():
            raise ValidationError("Transaction description is required")
        return type_

    @staticmethod
    async def _apply_balance_change(
        db: AsyncSession,
        member: Member,
        type_: TransactionType,
        amount: int,
        insufficient_error=InsufficientBalanceError,
    ) -> int:
        """
        Move the cached balance by +amount / -amount with one conditional UPDATE.

        A debit only matches while token_balance >= amount, so the balance can
        never go negative even if the pre-check raced.
        """
        stmt = update(Member).where(Member.id == member.id)
        if type_ == TransactionType.CREDIT:
            stmt = stmt.values(token_balance=Member.token_balance + amount)
        else:
            stmt = stmt.where(Member.token_balance >= amount).values(
                token_balance=Member.token_balance - amount
            )

        result = await db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount != 1:
            await db.refresh(member, attribute_names=["token_balance"])
            raise insufficient_error(balance=member.token_balance, requested=amount)

        await db.refresh(member, attribute_names=["token_balance"])
        return member.token_balance

    @staticmethod
    async def post_entry(
        db: AsyncSession,
        member_id: int,
        type_: TransactionType,
        amount: int,
        description: str,
        actor_id: Optional[int] = None,
        related: Optional[RelatedDocument] = None,
        reference: Optional[str] = None,
        insufficient_error=InsufficientBalanceError,
    ) -> TokenTransaction:
        """
        Append one ledger row and move the cached balance.

        Flush-only: the caller owns the transaction (see db.unit_of_work.atomic),
        so the entry commits together with any co-located domain writes.
        """
        type_ = TokenLedgerService._validate(type_, amount, description)
        related = related or RelatedDocument.system()

        member = await TokenLedgerService.lock_member(db, member_id)

        if reference:
            existing = await db.execute(
                select(TokenTransaction.id).where(TokenTransaction.reference == reference)
            )
            existing_id = existing.scalar_one_or_none()
            if existing_id is not None:
                raise ConflictError(
                    "A transaction with this reference already exists",
                    error_code="ERR_CONFLICT_REFERENCE",
                    details={"reference": reference, "transaction_id": existing_id}
                )
        else:
            reference = TokenLedgerService.generate_reference()

        if type_ == TransactionType.DEBIT and member.token_balance < amount:
            raise insufficient_error(balance=member.token_balance, requested=amount)

        entry = TokenTransaction(
            member_id=member.id,
            type=type_,
            amount=amount,
            description=description.strip(),
            reference=reference,
            related_kind=related.kind,
            related_id=related.id,
            created_by_id=actor_id,
            created_at=utcnow(),
        )
        db.add(entry)
        await db.flush()

        await TokenLedgerService._apply_balance_change(db, member, type_, amount, insufficient_error)

        return entry

    @staticmethod
    async def record_transaction(
        db: AsyncSession,
        member_id: int,
        type_: TransactionType,
        amount: int,
        description: str,
        actor_id: Optional[int] = None,
        related: Optional[RelatedDocument] = None,
        reference: Optional[str] = None,
    ) -> TokenTransaction:
        """
        Record a standalone credit/debit as its own atomic unit of work.

        Raises:
            ValidationError: bad type/amount/description
            ResourceNotFoundError: member does not exist
            ConflictError: reference already used (retry protection)
            InsufficientBalanceError: debit larger than the balance
        """
        async with atomic(db, member_key(member_id), operation="record_transaction"):
            entry = await TokenLedgerService.post_entry(
                db,
                member_id=member_id,
                type_=type_,
                amount=amount,
                description=description,
                actor_id=actor_id,
                related=related,
                reference=reference,
            )

        logger.info(
            "Ledger %s %s of %d for member %d (ref=%s)",
            entry.id, entry.type.value, entry.amount, member_id, entry.reference
        )
        return entry

    @staticmethod
    async def get_balance(db: AsyncSession, member_id: int) -> LedgerBalance:
        """Balance recomputed from the ledger, alongside the cached value."""
        member = await db.get(Member, member_id, populate_existing=True)
        if not member:
            raise ResourceNotFoundError("Member", member_id)

        result = await db.execute(
            select(
                func.coalesce(func.sum(_credit_amount()), 0),
                func.coalesce(func.sum(_debit_amount()), 0),
            ).where(TokenTransaction.member_id == member_id)
        )
        total_credits, total_debits = result.one()

        return LedgerBalance(
            member_id=member_id,
            balance=int(total_credits) - int(total_debits),
            total_credits=int(total_credits),
            total_debits=int(total_debits),
            cached_balance=member.token_balance,
        )

    @staticmethod
    async def list_transactions(
        db: AsyncSession,
        member_id: Optional[int] = None,
        type_: Optional[TransactionType] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page:
        """Read-only ledger view, newest first. end_date includes the whole day."""
        query = select(TokenTransaction)
        if member_id is not None:
            query = query.where(TokenTransaction.member_id == member_id)
        if type_ is not None:
            query = query.where(TokenTransaction.type == TransactionType(type_))
        if start_date:
            query = query.where(TokenTransaction.created_at >= start_of_day(start_date))
        if end_date:
            query = query.where(TokenTransaction.created_at <= end_of_day(end_date))

        query = query.order_by(desc(TokenTransaction.created_at), desc(TokenTransaction.id))
        return await paginate(db, query, page, limit)

    @staticmethod
    async def token_stats(
        db: AsyncSession,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        """Ledger-wide credit/debit totals for a period."""
        query = select(
            func.coalesce(func.sum(_credit_amount()), 0),
            func.coalesce(func.sum(_debit_amount()), 0),
            func.coalesce(func.sum(case((TokenTransaction.type == TransactionType.CREDIT, 1), else_=0)), 0),
            func.coalesce(func.sum(case((TokenTransaction.type == TransactionType.DEBIT, 1), else_=0)), 0),
        )
        if start_date:
            query = query.where(TokenTransaction.created_at >= start_of_day(start_date))
        if end_date:
            query = query.where(TokenTransaction.created_at <= end_of_day(end_date))

        credits, debits, credit_count, debit_count = (await db.execute(query)).one()
        return {
            "total_credits": int(credits),
            "total_debits": int(debits),
            "net_tokens": int(credits) - int(debits),
            "credit_count": int(credit_count),
            "debit_count": int(debit_count),
        }

    @staticmethod
    async def reconcile(db: AsyncSession) -> List[BalanceDrift]:
        """
        Recompute every member's balance from the ledger and report drift.

        Read-only. Drifted members are logged at WARNING level.
        """
        ledger_sums = (
            select(
                TokenTransaction.member_id.label("member_id"),
                func.sum(_signed_amount()).label("ledger_balance"),
            )
            .group_by(TokenTransaction.member_id)
            .subquery()
        )
        result = await db.execute(
            select(Member.id, Member.token_balance, func.coalesce(ledger_sums.c.ledger_balance, 0))
            .outerjoin(ledger_sums, ledger_sums.c.member_id == Member.id)
            .order_by(Member.id)
        )

        drifts = []
        for member_id, cached, ledger in result.all():
            if int(cached) != int(ledger):
                logger.warning(
                    "Token balance drift for member %d: cached=%d ledger=%d", member_id, cached, ledger
                )
                drifts.append(BalanceDrift(member_id=member_id, cached=int(cached), ledger=int(ledger)))
        return drifts
