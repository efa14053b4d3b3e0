"""
Member profile model.

Wraps a MEMBER user with a token balance and membership metadata.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, CheckConstraint
from backend.app.core.datetime_utils import utcnow
from backend.app.db.session import Base


class Member(Base):
    """
    Member model.

    token_balance is a cached projection of the token ledger. It is only ever
    changed by the ledger service, inside the same transaction that appends the
    matching TokenTransaction row.
    """
    __tablename__ = "members"
    __table_args__ = (
        CheckConstraint("token_balance >= 0", name="ck_members_token_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False, index=True)
    membership_number = Column(String(20), unique=True, nullable=False, index=True)

    token_balance = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Home gym (optional)
    gym_id = Column(Integer, ForeignKey("gyms.id"), nullable=True, index=True)

    last_check_in = Column(DateTime, nullable=True)
    check_in_count = Column(Integer, default=0, nullable=False)

    emergency_contact_name = Column(String(100), nullable=True)
    emergency_contact_relationship = Column(String(50), nullable=True)
    emergency_contact_phone = Column(String(20), nullable=True)
    notes = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Member(id={self.id}, number='{self.membership_number}', balance={self.token_balance})>"
