"""
Token ledger entry model.

Immutable credit/debit records. The signed sum of a member's entries always
equals Member.token_balance.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, CheckConstraint, Index
from backend.app.db.session import Base
from backend.app.models.token_enums import TransactionType, RelatedKind
from backend.app.core.datetime_utils import utcnow


class TokenTransaction(Base):
    """
    Token Transaction model.

    NO updates or deletions allowed. Corrections are new offsetting entries.
    related_kind/related_id together form a tagged reference to the record
    that caused the entry (see domain.tokens.related.RelatedDocument).
    """
    __tablename__ = "token_transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_token_transactions_amount_positive"),
        Index("ix_token_transactions_member_created", "member_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)

    type = Column(Enum(TransactionType), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    description = Column(String(255), nullable=False)

    # Idempotency / audit key
    reference = Column(String(64), unique=True, nullable=False, index=True)

    related_kind = Column(Enum(RelatedKind), nullable=False, default=RelatedKind.SYSTEM)
    related_id = Column(Integer, nullable=True)

    # NULL for system-generated entries
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<TokenTransaction(id={self.id}, type='{self.type.value}', amount={self.amount})>"
