"""
Token ledger endpoints.

Balances are always recomputed from the ledger; the only direct write here is
the admin adjustment credit.
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.db.session import get_db
from backend.app.models.member import Member
from backend.app.models.token_enums import TransactionType
from backend.app.schemas.common import DataResponse, ListResponse
from backend.app.schemas.token import (
    TokenTransactionResponse, BalanceResponse, AddTokensRequest, AddTokensResponse, TokenStats
)
from backend.app.core.guards import authorize, ownership_guard, Resource, Action
from backend.app.domain.tokens.ledger_service import TokenLedgerService
from backend.app.domain.tokens.related import RelatedDocument
from backend.app.services.audit import log_admin_action, AuditAction
from backend.app.models.user import User

router = APIRouter(prefix="/tokens", tags=["Tokens"])


@router.get("/balance/{member_id}", response_model=DataResponse[BalanceResponse])
async def get_balance(
    member_id: int,
    current_user: dict = Depends(authorize(Resource.TOKENS, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    await ownership_guard.enforce_member(db, current_user, member_id)
    balance = await TokenLedgerService.get_balance(db, member_id)
    return DataResponse(data=BalanceResponse(**balance.as_dict()))


@router.get("/transactions", response_model=ListResponse[TokenTransactionResponse])
async def list_transactions(
    member_id: Optional[int] = Query(None),
    type: Optional[TransactionType] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None, description="Inclusive"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(authorize(Resource.TOKENS, Action.LIST)),
    db: AsyncSession = Depends(get_db)
):
    """Ledger entries, newest first. Members only see their own."""
    own_member_id = await ownership_guard.member_filter(db, current_user)
    if own_member_id is not None:
        member_id = own_member_id

    result = await TokenLedgerService.list_transactions(
        db, member_id=member_id, type_=type, start_date=start_date, end_date=end_date, page=page, limit=limit
    )
    return result.envelope([TokenTransactionResponse.model_validate(t) for t in result.items])


@router.post("/add", response_model=DataResponse[AddTokensResponse], status_code=status.HTTP_201_CREATED)
async def add_tokens(
    payload: AddTokensRequest,
    current_user: dict = Depends(authorize(Resource.TOKENS, Action.CREDIT)),
    db: AsyncSession = Depends(get_db)
):
    """
    Credit tokens to a member (admin only).

    A repeated `reference` is rejected with 409, so clients may retry safely.
    """
    entry = await TokenLedgerService.record_transaction(
        db,
        member_id=payload.member_id,
        type_=TransactionType.CREDIT,
        amount=payload.amount,
        description=payload.description,
        actor_id=current_user["user_id"],
        related=RelatedDocument.adjustment(),
        reference=payload.reference,
    )

    member = await db.get(Member, payload.member_id, populate_existing=True)
    user = await db.get(User, member.user_id)
    await log_admin_action(
        db=db,
        admin_id=current_user["user_id"],
        admin_email=current_user["sub"],
        action=AuditAction.TOKENS_ADDED,
        target_user_id=user.id,
        target_email=user.email,
        metadata={"member_id": member.id, "amount": entry.amount, "reference": entry.reference}
    )

    return DataResponse(data=AddTokensResponse(
        member_id=member.id,
        new_balance=member.token_balance,
        transaction=TokenTransactionResponse.model_validate(entry),
    ))


@router.get("/stats", response_model=DataResponse[TokenStats])
async def get_token_stats(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_user: dict = Depends(authorize(Resource.STATS, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    """Ledger-wide credit/debit totals (admin only)."""
    return DataResponse(data=TokenStats(**await TokenLedgerService.token_stats(db, start_date, end_date)))
