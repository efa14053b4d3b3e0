"""
Gym database model.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from backend.app.core.datetime_utils import utcnow
from backend.app.db.session import Base


class Gym(Base):
    """
    Gym model.

    Each gym is operated by exactly one GYM-role user (owner_id).
    Soft-deleted through is_active.
    """
    __tablename__ = "gyms"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)

    name = Column(String(100), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False)

    # Address
    street = Column(String(200), nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=True)
    country = Column(String(100), nullable=False, default="Sri Lanka")
    pincode = Column(String(20), nullable=True)

    # Operating hours (HH:MM)
    weekday_open = Column(String(5), nullable=False, default="06:00")
    weekday_close = Column(String(5), nullable=False, default="22:00")
    weekend_open = Column(String(5), nullable=False, default="08:00")
    weekend_close = Column(String(5), nullable=False, default="20:00")

    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def full_address(self) -> str:
        parts = [self.street, self.city, self.state, self.pincode, self.country]
        return ", ".join(p for p in parts if p)

    def __repr__(self):
        return f"<Gym(id={self.id}, name='{self.name}', city='{self.city}')>"
