"""
Timetable models: terms, lesson periods, classes, subjects, rooms and the
scheduled slots that tie them to a trainer.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone

from sqlalchemy import (JSON, Boolean, Column, Date, DateTime, ForeignKey,
                        Index, Integer, String, Time)
from sqlalchemy.orm import relationship

from campusclock.db.base import Base

SLOT_STATUSES = ("scheduled", "cancelled", "completed")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Term(Base):
    __tablename__ = "terms"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    start_date: date = Column(Date, nullable=False)  # type: ignore[assignment]
    end_date: date = Column(Date, nullable=False)  # type: ignore[assignment]
    # Day numbers, 0 = Sunday ... 6 = Saturday
    working_days: list = Column(JSON, nullable=False, default=lambda: [1, 2, 3, 4, 5])  # type: ignore[assignment]
    holidays: list = Column(JSON, nullable=False, default=list)  # type: ignore[assignment]  # ISO dates
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]
    updated_at: datetime = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)  # type: ignore[assignment]


class LessonPeriod(Base):
    __tablename__ = "lesson_periods"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    start_time: time = Column(Time, nullable=False)  # type: ignore[assignment]
    end_time: time = Column(Time, nullable=False)  # type: ignore[assignment]
    duration: int = Column(Integer, nullable=False)  # type: ignore[assignment]  # minutes
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]


class SchoolClass(Base):
    __tablename__ = "classes"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    code: str = Column(String(50), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    description: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    department: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    duration_hours: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]


class Subject(Base):
    __tablename__ = "subjects"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    code: str = Column(String(50), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    department: str | None = Column(String(100), nullable=True)  # type: ignore[assignment]
    can_be_online: bool = Column(Boolean, default=False, server_default="false")  # type: ignore[assignment]
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]


class Room(Base):
    __tablename__ = "rooms"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(100), unique=True, nullable=False)  # type: ignore[assignment]
    capacity: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]


class TimetableSlot(Base):
    __tablename__ = "timetable_slots"
    __table_args__ = (
        Index("ix_slot_term_day", "term_id", "day_of_week"),
        Index("ix_slot_trainer_day", "trainer_id", "day_of_week"),
    )

    id: str = Column(  # type: ignore[assignment]
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    term_id: int = Column(Integer, ForeignKey("terms.id"), nullable=False)  # type: ignore[assignment]
    class_id: int = Column(Integer, ForeignKey("classes.id"), nullable=False)  # type: ignore[assignment]
    subject_id: int = Column(Integer, ForeignKey("subjects.id"), nullable=False)  # type: ignore[assignment]
    trainer_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    room_id: int = Column(Integer, ForeignKey("rooms.id"), nullable=False)  # type: ignore[assignment]
    lesson_period_id: int = Column(Integer, ForeignKey("lesson_periods.id"), nullable=False)  # type: ignore[assignment]
    day_of_week: int = Column(Integer, nullable=False)  # type: ignore[assignment]  # 0 = Sunday
    status: str = Column(String(20), nullable=False, default="scheduled")  # type: ignore[assignment]
    is_online_session: bool = Column(Boolean, default=False, server_default="false")  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]
    updated_at: datetime = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)  # type: ignore[assignment]

    term = relationship("Term")
    school_class = relationship("SchoolClass")
    subject = relationship("Subject")
    trainer = relationship("User")
    room = relationship("Room")
    lesson_period = relationship("LessonPeriod")
