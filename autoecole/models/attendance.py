# autoecole/models/attendance.py
"""
Attendance records for group sessions.

AttendanceSheet is written once per session; its unique session_id is the
duplicate-marking guard. One AttendanceRecord per active member is written
alongside it.
"""

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import ulid

from ..database import Base


class AttendanceSheet(Base):
    """Marker that a session's attendance has been taken."""

    __tablename__ = "attendance_sheets"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    session_id = Column(String(26), ForeignKey("group_sessions.id"), nullable=False)
    group_id = Column(String(26), ForeignKey("groups.id"), nullable=False, index=True)
    session_date = Column(Date, nullable=False)
    marked_by = Column(String(64), nullable=False)
    marked_at = Column(DateTime(timezone=True), nullable=False)
    present_count = Column(Integer, nullable=False, default=0)
    absent_count = Column(Integer, nullable=False, default=0)

    records = relationship("AttendanceRecord", back_populates="sheet")

    __table_args__ = (UniqueConstraint("session_id", name="uq_attendance_sheets_session"),)


class AttendanceRecord(Base):
    """Presence of one learner at one session."""

    __tablename__ = "attendance_records"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    sheet_id = Column(String(26), ForeignKey("attendance_sheets.id"), nullable=False)
    session_id = Column(String(26), ForeignKey("group_sessions.id"), nullable=False)
    group_id = Column(String(26), ForeignKey("groups.id"), nullable=False)
    student_id = Column(String(64), nullable=False, index=True)
    student_name = Column(String(255), nullable=True)
    date = Column(Date, nullable=False)
    status = Column(String(10), nullable=False)
    marked_by = Column(String(64), nullable=False)
    marked_at = Column(DateTime(timezone=True), nullable=False)

    sheet = relationship("AttendanceSheet", back_populates="records")

    __table_args__ = (
        UniqueConstraint("session_id", "student_id", name="uq_attendance_records_session_student"),
        Index("ix_attendance_records_group_date", "group_id", "date"),
    )
