"""
Payment Service (Domain Logic).

Turns external payments into token credits and refunds into token debits.
Each payment write and its ledger entry commit together.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.datetime_utils import utcnow
from backend.app.core.exceptions import ValidationError, ResourceNotFoundError, ConflictError
from backend.app.db.unit_of_work import atomic
from backend.app.domain.tokens.ledger_service import TokenLedgerService
from backend.app.domain.tokens.related import RelatedDocument
from backend.app.models.member import Member
from backend.app.models.payment import Payment
from backend.app.models.payment_enums import PaymentStatus, PaymentMethod
from backend.app.models.token_enums import TransactionType
from backend.app.services.member_locks import member_key
from backend.app.services.pagination import Page, paginate
from backend.app.services.payment_gateway import get_package, charge_package

logger = logging.getLogger("gym.payments")


def generate_payment_id() -> str:
    """PAY-YYYYMMDD-XXXXXXXX"""
    return f"PAY-{utcnow():%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


class PaymentService:

    @staticmethod
    async def record_payment(
        db: AsyncSession,
        member_id: int,
        tokens: int,
        amount: float = 0.0,
        method: PaymentMethod = PaymentMethod.CASH,
        details: Optional[str] = None,
        actor_id: Optional[int] = None,
        meta_data: Optional[dict] = None,
    ) -> Payment:
        """
        Record a completed payment and credit its tokens.

        Raises:
            ValidationError: tokens not a positive integer, negative amount
            ResourceNotFoundError: member does not exist
        """
        if isinstance(tokens, bool) or not isinstance(tokens, int) or tokens <= 0:
            raise ValidationError("Tokens must be a positive integer", details={"tokens": tokens})
        if amount is not None and amount < 0:
            raise ValidationError("Payment amount cannot be negative", details={"amount": amount})

        description = (details or "").strip() or "Token purchase"

        async with atomic(db, member_key(member_id), operation="record_payment"):
            member = await db.get(Member, member_id)
            if not member:
                raise ResourceNotFoundError("Member", member_id)

            now = utcnow()
            payment = Payment(
                member_id=member_id,
                amount=amount or 0.0,
                tokens=tokens,
                status=PaymentStatus.COMPLETED,
                method=PaymentMethod(method),
                transaction_id=generate_payment_id(),
                details=description,
                meta_data=meta_data,
                paid_at=now,
                created_by_id=actor_id,
            )
            db.add(payment)
            await db.flush()

            await TokenLedgerService.post_entry(
                db,
                member_id=member_id,
                type_=TransactionType.CREDIT,
                amount=tokens,
                description=description,
                actor_id=actor_id,
                related=RelatedDocument.payment(payment.id),
                reference=f"PAYMENT-{payment.id}",
            )
            new_balance = member.token_balance

        logger.info(
            "Payment %s recorded for member %d: %d tokens (balance=%d)",
            payment.transaction_id, member_id, tokens, new_balance
        )
        return payment

    @staticmethod
    async def refund_payment(
        db: AsyncSession,
        payment_id: int,
        reason: str,
        refund_amount: Optional[int] = None,
        actor_id: Optional[int] = None,
    ) -> Payment:
        """
        Refund a completed payment by debiting its tokens.

        refund_amount defaults to the payment's tokens and cannot exceed them.
        If the member no longer holds enough tokens nothing changes.

        Raises:
            ResourceNotFoundError: unknown payment
            ConflictError: payment already refunded
            ValidationError: payment not completed, bad refund amount
            InsufficientBalanceError: member balance below the refund
        """
        payment = await db.get(Payment, payment_id)
        if not payment:
            raise ResourceNotFoundError("Payment", payment_id)

        async with atomic(db, member_key(payment.member_id), operation="refund_payment"):
            await db.refresh(payment)
            if payment.status == PaymentStatus.REFUNDED:
                raise ConflictError(
                    "Payment has already been refunded",
                    error_code="ERR_CONFLICT_REFUNDED",
                    details={"payment_id": payment_id}
                )
            if payment.status != PaymentStatus.COMPLETED:
                raise ValidationError(
                    "Only completed payments can be refunded",
                    details={"payment_id": payment_id, "status": payment.status.value}
                )

            tokens = payment.tokens if refund_amount is None else refund_amount
            if isinstance(tokens, bool) or not isinstance(tokens, int) or tokens <= 0:
                raise ValidationError("Refund amount must be a positive integer", details={"refund_amount": tokens})
            if tokens > payment.tokens:
                raise ValidationError(
                    "Refund amount exceeds the tokens bought with this payment",
                    details={"refund_amount": tokens, "payment_tokens": payment.tokens}
                )

            description = (reason or "").strip() or "Payment refund"
            await TokenLedgerService.post_entry(
                db,
                member_id=payment.member_id,
                type_=TransactionType.DEBIT,
                amount=tokens,
                description=description,
                actor_id=actor_id,
                related=RelatedDocument.payment(payment.id),
                reference=f"REFUND-{payment.id}",
            )

            payment.status = PaymentStatus.REFUNDED
            payment.refunded_tokens = tokens
            payment.refund_reason = description
            payment.refunded_at = utcnow()
            await db.flush()

        logger.info("Payment %s refunded: %d tokens", payment.transaction_id, tokens)
        return payment

    @staticmethod
    async def purchase_package(
        db: AsyncSession,
        member_id: int,
        package_id: str,
        actor_id: Optional[int] = None,
    ) -> Payment:
        """Charge a token package through the gateway, then record it as an online payment."""
        package = get_package(package_id)

        member = await db.get(Member, member_id)
        if not member:
            raise ResourceNotFoundError("Member", member_id)

        charge = await charge_package(member_id, package)

        return await PaymentService.record_payment(
            db,
            member_id=member_id,
            tokens=package.tokens,
            amount=package.price,
            method=PaymentMethod.ONLINE,
            details=f"Purchase of {package.name}",
            actor_id=actor_id,
            meta_data={
                "package_id": package.id,
                "gateway_reference": charge.gateway_reference,
                "charged_at": charge.charged_at,
            },
        )

    @staticmethod
    async def get_payment(db: AsyncSession, payment_id: int) -> Payment:
        payment = await db.get(Payment, payment_id)
        if not payment:
            raise ResourceNotFoundError("Payment", payment_id)
        return payment

    @staticmethod
    async def list_payments(
        db: AsyncSession,
        member_id: Optional[int] = None,
        status: Optional[PaymentStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page:
        query = select(Payment)
        if member_id is not None:
            query = query.where(Payment.member_id == member_id)
        if status is not None:
            query = query.where(Payment.status == PaymentStatus(status))
        query = query.order_by(desc(Payment.created_at), desc(Payment.id))
        return await paginate(db, query, page, limit)
