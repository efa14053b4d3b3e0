"""
Payment schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from backend.app.models.payment_enums import PaymentStatus, PaymentMethod


class PaymentCreate(BaseModel):
    member_id: int = Field(..., gt=0)
    tokens: int = Field(..., gt=0, description="Tokens to credit")
    amount: Optional[float] = Field(0.0, ge=0, description="Money received")
    method: Optional[PaymentMethod] = PaymentMethod.CASH
    payment_details: Optional[str] = Field(None, max_length=255)


class RefundRequest(BaseModel):
    refund_amount: Optional[int] = Field(None, gt=0, description="Tokens to refund (defaults to all)")
    reason: str = Field(..., min_length=1, max_length=255)


class PurchaseRequest(BaseModel):
    package_id: str = Field(..., description="basic, standard or premium")


class PaymentResponse(BaseModel):
    id: int
    member_id: int
    amount: float
    tokens: int
    status: PaymentStatus
    method: PaymentMethod
    transaction_id: str
    details: Optional[str] = None
    meta_data: Optional[dict] = None
    paid_at: Optional[datetime] = None
    refunded_tokens: Optional[int] = None
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    created_by_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentResult(BaseModel):
    payment: PaymentResponse
    new_balance: int


class TokenPackageResponse(BaseModel):
    id: str
    name: str
    tokens: int
    price: float
