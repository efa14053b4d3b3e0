"""
Token ledger schemas.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional
from backend.app.models.token_enums import TransactionType, RelatedKind


class TokenTransactionResponse(BaseModel):
    id: int
    member_id: int
    type: TransactionType
    amount: int
    description: str
    reference: str
    related_kind: RelatedKind
    related_id: Optional[int] = None
    created_by_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class BalanceResponse(BaseModel):
    member_id: int
    balance: int
    total_credits: int
    total_debits: int
    cached_balance: int
    in_sync: bool


class AddTokensRequest(BaseModel):
    """Admin credit (POST /tokens/add)."""
    member_id: int = Field(..., gt=0)
    amount: int = Field(..., gt=0)
    description: str = Field("Admin adjustment", min_length=1, max_length=255)
    reference: Optional[str] = Field(None, min_length=1, max_length=64, description="Idempotency key")

    @field_validator("amount", mode="before")
    @classmethod
    def reject_non_integers(cls, value):
        # Pydantic would coerce 2.0 to 2; tokens are whole units only
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("amount must be a positive integer")
        return value


class AddTokensResponse(BaseModel):
    member_id: int
    new_balance: int
    transaction: TokenTransactionResponse


class TokenStats(BaseModel):
    total_credits: int
    total_debits: int
    net_tokens: int
    credit_count: int
    debit_count: int


class BalanceDriftResponse(BaseModel):
    member_id: int
    cached: int
    ledger: int
