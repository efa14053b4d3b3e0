"""
Payment endpoints.

Recording a payment credits its tokens; refunding debits them back. Members
can buy token packages through the payment gateway.
"""

from typing import Optional, List
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.db.session import get_db
from backend.app.models.member import Member
from backend.app.models.payment_enums import PaymentStatus
from backend.app.schemas.common import DataResponse, ListResponse
from backend.app.schemas.payment import (
    PaymentCreate, RefundRequest, PurchaseRequest,
    PaymentResponse, PaymentResult, TokenPackageResponse
)
from backend.app.core.guards import authorize, ownership_guard, Resource, Action
from backend.app.domain.payments.payment_service import PaymentService
from backend.app.services.audit import log_event, AuditAction
from backend.app.services.payment_gateway import list_packages

router = APIRouter(prefix="/payments", tags=["Payments"])


async def _result(db: AsyncSession, payment) -> PaymentResult:
    member = await db.get(Member, payment.member_id, populate_existing=True)
    return PaymentResult(payment=PaymentResponse.model_validate(payment), new_balance=member.token_balance)


@router.post("", response_model=DataResponse[PaymentResult], status_code=status.HTTP_201_CREATED)
async def record_payment(
    payload: PaymentCreate,
    current_user: dict = Depends(authorize(Resource.PAYMENTS, Action.CREATE)),
    db: AsyncSession = Depends(get_db)
):
    """Record a payment received at the desk and credit its tokens (admin only)."""
    payment = await PaymentService.record_payment(
        db,
        member_id=payload.member_id,
        tokens=payload.tokens,
        amount=payload.amount,
        method=payload.method,
        details=payload.payment_details,
        actor_id=current_user["user_id"],
    )

    await log_event(
        db=db,
        action=AuditAction.PAYMENT_RECORDED,
        actor_id=current_user["user_id"],
        actor_email=current_user["sub"],
        metadata={"payment_id": payment.id, "member_id": payment.member_id, "tokens": payment.tokens}
    )
    return DataResponse(data=await _result(db, payment))


@router.get("/packages", response_model=DataResponse[List[TokenPackageResponse]])
async def get_token_packages(
    current_user: dict = Depends(authorize(Resource.PAYMENTS, Action.PURCHASE)),
):
    return DataResponse(data=[TokenPackageResponse(**package.as_dict()) for package in list_packages()])


@router.post("/purchase", response_model=DataResponse[PaymentResult], status_code=status.HTTP_201_CREATED)
async def purchase_package(
    payload: PurchaseRequest,
    current_user: dict = Depends(authorize(Resource.PAYMENTS, Action.PURCHASE)),
    db: AsyncSession = Depends(get_db)
):
    """
    Buy a token package for the calling member.

    Returns 503 while the payment gateway circuit is open.
    """
    member = await ownership_guard.own_member(db, current_user)
    payment = await PaymentService.purchase_package(
        db, member_id=member.id, package_id=payload.package_id, actor_id=current_user["user_id"]
    )

    await log_event(
        db=db,
        action=AuditAction.PACKAGE_PURCHASED,
        actor_id=current_user["user_id"],
        actor_email=current_user["sub"],
        metadata={"payment_id": payment.id, "package_id": payload.package_id}
    )
    return DataResponse(data=await _result(db, payment))


@router.get("", response_model=ListResponse[PaymentResponse])
async def list_payments(
    member_id: Optional[int] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(authorize(Resource.PAYMENTS, Action.LIST)),
    db: AsyncSession = Depends(get_db)
):
    """All payments for admins; members only ever see their own."""
    own_member_id = await ownership_guard.member_filter(db, current_user)
    if own_member_id is not None:
        member_id = own_member_id

    result = await PaymentService.list_payments(db, member_id, payment_status, page, limit)
    return result.envelope([PaymentResponse.model_validate(p) for p in result.items])


@router.get("/{payment_id}", response_model=DataResponse[PaymentResponse])
async def get_payment(
    payment_id: int,
    current_user: dict = Depends(authorize(Resource.PAYMENTS, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    payment = await PaymentService.get_payment(db, payment_id)
    await ownership_guard.enforce_member(db, current_user, payment.member_id)
    return DataResponse(data=PaymentResponse.model_validate(payment))


@router.post("/{payment_id}/refund", response_model=DataResponse[PaymentResult])
async def refund_payment(
    payment_id: int,
    payload: RefundRequest,
    current_user: dict = Depends(authorize(Resource.PAYMENTS, Action.REFUND)),
    db: AsyncSession = Depends(get_db)
):
    """
    Refund a payment by debiting its tokens (admin only).

    Fails with 400 ERR_TOKENS_001, leaving everything unchanged,
    when the member has already spent the tokens.
    """
    payment = await PaymentService.refund_payment(
        db,
        payment_id=payment_id,
        reason=payload.reason,
        refund_amount=payload.refund_amount,
        actor_id=current_user["user_id"],
    )

    await log_event(
        db=db,
        action=AuditAction.PAYMENT_REFUNDED,
        actor_id=current_user["user_id"],
        actor_email=current_user["sub"],
        metadata={"payment_id": payment.id, "tokens": payment.refunded_tokens, "reason": payment.refund_reason}
    )
    return DataResponse(data=await _result(db, payment))
