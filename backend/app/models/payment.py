"""
Payment database model.

Records an external token purchase. A completed payment always has exactly one
matching ledger credit; a refund adds exactly one ledger debit.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum, JSON
from backend.app.core.datetime_utils import utcnow
from backend.app.db.session import Base
from backend.app.models.payment_enums import PaymentStatus, PaymentMethod


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)

    # Money paid and tokens bought
    amount = Column(Float, nullable=False, default=0.0)
    tokens = Column(Integer, nullable=False)

    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)
    method = Column(Enum(PaymentMethod), default=PaymentMethod.CASH, nullable=False)
    transaction_id = Column(String(40), unique=True, nullable=False, index=True)
    details = Column(String(255), nullable=True)
    meta_data = Column(JSON, nullable=True)

    paid_at = Column(DateTime, nullable=True)

    # Refund
    refunded_tokens = Column(Integer, nullable=True)
    refund_reason = Column(String(255), nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def is_refunded(self) -> bool:
        return self.status == PaymentStatus.REFUNDED

    def __repr__(self):
        return f"<Payment(id={self.id}, tokens={self.tokens}, status='{self.status.value}')>"
