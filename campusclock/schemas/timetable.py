"""Pydantic schemas for terms, lesson periods, catalog entities and timetable slots."""

from __future__ import annotations

from datetime import date, datetime, time

from pydantic import BaseModel, Field, field_validator, model_validator

from campusclock.models.timetable import SLOT_STATUSES

_VALID_SLOT_STATUSES = set(SLOT_STATUSES)


def _strip_required(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("must not be empty")
    return v


def _check_working_days(v: list[int] | None) -> list[int] | None:
    if v is None:
        return v
    if not v or any(d < 0 or d > 6 for d in v):
        raise ValueError("working_days must be day numbers 0 (Sunday) to 6 (Saturday)")
    return sorted(set(v))


# ── Terms ───────────────────────────────────────────────────────────
class TermCreate(BaseModel):
    name: str
    start_date: date
    end_date: date
    working_days: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])
    holidays: list[date] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _strip_required(v)

    @field_validator("working_days")
    @classmethod
    def _working_days(cls, v: list[int]) -> list[int]:
        return _check_working_days(v)

    @model_validator(mode="after")
    def _dates(self) -> TermCreate:
        if self.start_date >= self.end_date:
            raise ValueError("Start date must be before end date")
        for holiday in self.holidays:
            if holiday < self.start_date or holiday > self.end_date:
                raise ValueError(f"Holiday {holiday.isoformat()} is outside the term date range")
        return self


class TermUpdate(BaseModel):
    name: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    working_days: list[int] | None = None
    holidays: list[date] | None = None
    is_active: bool | None = None

    @field_validator("working_days")
    @classmethod
    def _working_days(cls, v: list[int] | None) -> list[int] | None:
        return _check_working_days(v)


class TermRead(BaseModel):
    id: int
    name: str
    start_date: date
    end_date: date
    working_days: list[int]
    holidays: list[date]
    is_active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


# ── Lesson periods ──────────────────────────────────────────────────
class LessonPeriodCreate(BaseModel):
    name: str
    start_time: time
    end_time: time

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _strip_required(v)

    @model_validator(mode="after")
    def _times(self) -> LessonPeriodCreate:
        if self.start_time >= self.end_time:
            raise ValueError("Start time must be before end time")
        return self


class LessonPeriodUpdate(BaseModel):
    name: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    is_active: bool | None = None


class LessonPeriodRead(BaseModel):
    id: int
    name: str
    start_time: time
    end_time: time
    duration: int
    is_active: bool

    model_config = {"from_attributes": True}


# ── Classes / Subjects / Rooms ──────────────────────────────────────
class ClassCreate(BaseModel):
    name: str
    code: str
    description: str | None = None
    department: str | None = None
    duration_hours: int | None = Field(default=None, ge=0)

    @field_validator("name", "code")
    @classmethod
    def _required(cls, v: str) -> str:
        return _strip_required(v)


class ClassUpdate(BaseModel):
    name: str | None = None
    code: str | None = None
    description: str | None = None
    department: str | None = None
    duration_hours: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class ClassRead(BaseModel):
    id: int
    name: str
    code: str
    description: str | None
    department: str | None
    duration_hours: int | None
    is_active: bool

    model_config = {"from_attributes": True}


class SubjectCreate(BaseModel):
    name: str
    code: str
    department: str | None = None
    can_be_online: bool = False

    @field_validator("name", "code")
    @classmethod
    def _required(cls, v: str) -> str:
        return _strip_required(v)


class SubjectUpdate(BaseModel):
    name: str | None = None
    code: str | None = None
    department: str | None = None
    can_be_online: bool | None = None
    is_active: bool | None = None


class SubjectRead(BaseModel):
    id: int
    name: str
    code: str
    department: str | None
    can_be_online: bool
    is_active: bool

    model_config = {"from_attributes": True}


class RoomCreate(BaseModel):
    name: str
    capacity: int | None = Field(default=None, ge=0)

    @field_validator("name")
    @classmethod
    def _required(cls, v: str) -> str:
        return _strip_required(v)


class RoomUpdate(BaseModel):
    name: str | None = None
    capacity: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class RoomRead(BaseModel):
    id: int
    name: str
    capacity: int | None
    is_active: bool

    model_config = {"from_attributes": True}


# ── Timetable slots ─────────────────────────────────────────────────
class SlotCreate(BaseModel):
    term_id: int
    class_id: int
    subject_id: int
    trainer_id: int
    room_id: int
    lesson_period_id: int
    day_of_week: int = Field(ge=0, le=6)
    is_online_session: bool = False


class SlotUpdate(BaseModel):
    status: str | None = None
    is_online_session: bool | None = None
    room_id: int | None = None

    @field_validator("status")
    @classmethod
    def _status(cls, v: str | None) -> str | None:
        if v is not None and v not in _VALID_SLOT_STATUSES:
            raise ValueError(f"Status must be one of: {sorted(_VALID_SLOT_STATUSES)}")
        return v


class SlotRead(BaseModel):
    id: str
    term_id: int
    class_id: int
    subject_id: int
    trainer_id: int
    room_id: int
    lesson_period_id: int
    day_of_week: int
    status: str
    is_online_session: bool

    model_config = {"from_attributes": True}


class WeekSlotAttendance(BaseModel):
    status: str = "pending"
    checked_in: bool = False
    checked_out: bool = False
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None
    auto_checkout: bool = False


class WeekSlotRead(BaseModel):
    timetable_slot_id: str
    subject_name: str | None = None
    class_name: str | None = None
    room_name: str | None = None
    lesson_period_name: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    is_online_session: bool
    attendance: WeekSlotAttendance


class WeekDayRead(BaseModel):
    date: date
    day_of_week: int
    day_name: str
    is_teaching_day: bool
    slots: list[WeekSlotRead] = []


class WeekStats(BaseModel):
    total_slots: int = 0
    attended: int = 0
    absent: int = 0
    pending: int = 0
    attendance_rate: float = 0.0


class TrainerWeekResponse(BaseModel):
    trainer_id: int
    term_id: int | None = None
    term_name: str | None = None
    week_start: date
    week_end: date
    days: list[WeekDayRead]
    statistics: WeekStats


class AvailabilityConflict(BaseModel):
    timetable_slot_id: str
    subject_name: str | None = None
    class_name: str | None = None
    room_name: str | None = None
    message: str


class AvailabilityResponse(BaseModel):
    trainer_id: int
    trainer_name: str
    term_id: int
    day_of_week: int
    day_name: str
    lesson_period_id: int
    is_available: bool
    conflict: AvailabilityConflict | None = None


# ── Settings ────────────────────────────────────────────────────────
class TimetableSettingsRead(BaseModel):
    attendance_check_in_window: int
    attendance_late_threshold: int
    attendance_location_required: bool
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class TimetableSettingsUpdate(BaseModel):
    attendance_check_in_window: int | None = Field(default=None, ge=0, le=240)
    attendance_late_threshold: int | None = Field(default=None, ge=0, le=240)
    attendance_location_required: bool | None = None
