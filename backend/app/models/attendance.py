"""
Attendance database model.

One row per visit. Opened on check-in (paired with a ledger debit), closed on
check-out with no further token effect.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Index, text
from backend.app.db.session import Base
from backend.app.models.class_enums import AttendanceStatus
from backend.app.core.datetime_utils import utcnow, minutes_between


class Attendance(Base):
    """
    Attendance model.

    At most one open record (check_out IS NULL) per member, enforced by a
    partial unique index.
    """
    __tablename__ = "attendance"
    __table_args__ = (
        Index(
            "uq_attendance_open_per_member",
            "member_id",
            unique=True,
            postgresql_where=text("check_out IS NULL"),
            sqlite_where=text("check_out IS NULL"),
        ),
        Index("ix_attendance_member_check_in", "member_id", "check_in"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False, index=True)
    # NULL for a plain gym check-in
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=True, index=True)

    check_in = Column(DateTime, nullable=False)
    check_out = Column(DateTime, nullable=True)
    duration_minutes = Column(Integer, nullable=True)

    status = Column(Enum(AttendanceStatus), default=AttendanceStatus.PRESENT, nullable=False, index=True)
    token_used = Column(Integer, default=0, nullable=False)
    notes = Column(String(500), nullable=True)
    recorded_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def is_open(self) -> bool:
        return self.check_out is None

    @property
    def duration(self):
        if self.duration_minutes is not None:
            return self.duration_minutes
        return minutes_between(self.check_in, self.check_out)

    def __repr__(self):
        return f"<Attendance(id={self.id}, member={self.member_id}, open={self.is_open})>"
