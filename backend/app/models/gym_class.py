"""
Class and class participant models.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Enum, CheckConstraint, UniqueConstraint
)
from backend.app.core.datetime_utils import utcnow
from backend.app.db.session import Base
from backend.app.models.class_enums import WeekDay


class GymClass(Base):
    """
    Scheduled class run at a gym.

    Invariant: 0 <= current_enrollment <= max_capacity. Enrollment is only
    changed through conditional UPDATE statements in the attendance service.
    """
    __tablename__ = "classes"
    __table_args__ = (
        CheckConstraint("max_capacity >= 1", name="ck_classes_capacity_positive"),
        CheckConstraint(
            "current_enrollment >= 0 AND current_enrollment <= max_capacity",
            name="ck_classes_enrollment_within_capacity"
        ),
        CheckConstraint("token_cost >= 0", name="ck_classes_token_cost_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    gym_id = Column(Integer, ForeignKey("gyms.id"), nullable=False, index=True)
    trainer_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    name = Column(String(100), nullable=False)
    description = Column(String(1000), nullable=True)

    # Schedule
    day = Column(Enum(WeekDay), nullable=False, index=True)
    start_time = Column(String(5), nullable=False)  # HH:MM
    duration_minutes = Column(Integer, nullable=False)

    max_capacity = Column(Integer, nullable=False)
    current_enrollment = Column(Integer, default=0, nullable=False)
    token_cost = Column(Integer, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def end_time(self) -> str:
        hours, minutes = (int(part) for part in self.start_time.split(":"))
        total = (hours * 60 + minutes + self.duration_minutes) % (24 * 60)
        return f"{total // 60:02d}:{total % 60:02d}"

    def has_available_spots(self) -> bool:
        return self.current_enrollment < self.max_capacity

    def __repr__(self):
        return f"<GymClass(id={self.id}, name='{self.name}', {self.current_enrollment}/{self.max_capacity})>"


class ClassParticipant(Base):
    """A member's seat in a class. One row per (class, member)."""
    __tablename__ = "class_participants"
    __table_args__ = (
        UniqueConstraint("class_id", "member_id", name="uq_class_participants_class_member"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False, index=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    joined_at = Column(DateTime, default=utcnow, nullable=False)
