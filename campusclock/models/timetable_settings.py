"""
Timetable settings model: singleton table for admin-configurable rules.

Only one row should ever exist. Request handlers never read it directly; they
go through ``services.rules.load_rules`` which turns it into an immutable
``AttendanceRules`` value.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer

from campusclock.db.base import Base


class TimetableSettings(Base):
    __tablename__ = "timetable_settings"

    id: int = Column(Integer, primary_key=True, default=1)  # type: ignore[assignment]
    attendance_check_in_window: int = Column(Integer, nullable=False, default=15)  # type: ignore[assignment]
    attendance_late_threshold: int = Column(Integer, nullable=False, default=10)  # type: ignore[assignment]
    attendance_location_required: bool = Column(  # type: ignore[assignment]
        Boolean, nullable=False, default=False
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
