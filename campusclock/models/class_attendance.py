"""
Class attendance model: one row per trainer, class, date and timetable slot.

Rows are created by a trainer's check-in or by the absence reconciler and are
only ever updated afterwards to record the check-out.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (Boolean, Column, Date, DateTime, Float, ForeignKey,
                        Index, Integer, String, UniqueConstraint)
from sqlalchemy.orm import relationship

from campusclock.db.base import Base

CLASS_ATTENDANCE_STATUSES = ("Present", "Late", "Absent")


class ClassAttendanceRecord(Base):
    __tablename__ = "class_attendance"
    __table_args__ = (
        UniqueConstraint(
            "trainer_id", "class_id", "date", "timetable_slot_id",
            name="uq_class_attendance_slot_date",
        ),
        Index("ix_class_attendance_trainer_date", "trainer_id", "date"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    trainer_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    class_id: int = Column(Integer, ForeignKey("classes.id"), nullable=False)  # type: ignore[assignment]
    timetable_slot_id: str | None = Column(  # type: ignore[assignment]
        String(36), ForeignKey("timetable_slots.id"), nullable=True
    )
    date: date = Column(Date, nullable=False, index=True)  # type: ignore[assignment]
    status: str = Column(String(20), nullable=False)  # type: ignore[assignment]  # Present | Late | Absent
    check_in_time: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    check_out_time: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    location_verified: bool = Column(Boolean, default=False, nullable=False)  # type: ignore[assignment]
    is_online_attendance: bool = Column(Boolean, default=False, nullable=False)  # type: ignore[assignment]
    check_in_latitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    check_in_longitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    check_out_latitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    check_out_longitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    auto_checkout: bool = Column(Boolean, default=False, nullable=False)  # type: ignore[assignment]
    work_attendance_id: int | None = Column(  # type: ignore[assignment]
        Integer, ForeignKey("attendance.id"), nullable=True
    )
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    school_class = relationship("SchoolClass")
    timetable_slot = relationship("TimetableSlot")
