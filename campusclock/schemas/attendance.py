"""Pydantic schemas for work attendance, class check-in and reports."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Literal

from pydantic import BaseModel, Field, field_validator

Action = Literal["check-in", "check-out"]


# ── Location ────────────────────────────────────────────────────────
class LocationReport(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    # Reported by the device, not used for the decision
    accuracy: float | None = None
    timestamp: datetime | None = None


# ── Work attendance ─────────────────────────────────────────────────
class WorkAttendanceRequest(BaseModel):
    action: Action
    location: LocationReport | None = None
    is_online: bool = False


class WorkSessionRead(BaseModel):
    check_in: datetime
    check_out: datetime | None = None
    auto_checkout: bool = False


class AttendanceRecordRead(BaseModel):
    id: int
    employee_id: int
    employee_name: str | None = None
    date: date
    status: str
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None
    sessions: list[WorkSessionRead] = []
    worked: str
    worked_minutes: int
    ongoing: bool


class AttendanceListResponse(BaseModel):
    records: list[AttendanceRecordRead]
    is_checked_in: bool | None = None


# ── Class attendance ────────────────────────────────────────────────
class ClassCheckInRequest(BaseModel):
    timetable_slot_id: str
    action: Action
    location: LocationReport | None = None

    @field_validator("timetable_slot_id")
    @classmethod
    def _slot_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("timetable_slot_id must not be empty")
        return v


class ClassCheckOutRequest(BaseModel):
    attendance_id: int
    action: Literal["check-out"] = "check-out"
    location: LocationReport | None = None


class RulesRead(BaseModel):
    check_in_window: int
    late_threshold: int
    location_required: bool

    model_config = {"from_attributes": True}


class ScheduleSlotRead(BaseModel):
    id: str
    class_id: int
    class_name: str | None = None
    subject_id: int
    subject_name: str | None = None
    room_name: str | None = None
    lesson_period_name: str | None = None
    start_time: time | None = None
    end_time: time | None = None
    status: str
    is_online_session: bool
    can_check_in: bool
    check_in_reason: str | None = None
    minutes_until_open: int | None = None
    is_late: bool
    has_checked_in: bool
    has_checked_out: bool
    is_absent: bool
    attendance_id: int | None = None


class ScheduleResponse(BaseModel):
    date: date
    day_of_week: int
    term_id: int | None = None
    rules: RulesRead
    slots: list[ScheduleSlotRead]


class ClassAttendanceRead(BaseModel):
    id: int
    trainer_id: int
    class_id: int
    timetable_slot_id: str | None = None
    date: date
    status: str
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None
    location_verified: bool
    is_online_attendance: bool
    auto_checkout: bool
    duration: str | None = None

    model_config = {"from_attributes": True}


class TrainerDaySchedule(BaseModel):
    trainer_id: int
    trainer_name: str | None = None
    slots: list[ScheduleSlotRead] = []


class AdminClassStatusResponse(BaseModel):
    date: date
    term_id: int | None = None
    term_name: str | None = None
    scheduled: int
    checked_in: int
    absent: int
    pending: int
    trainers: list[TrainerDaySchedule]
    active_sessions: list[ClassAttendanceRead]


class ReconcileResult(BaseModel):
    class_absences: int
    class_checkouts: int
    work_checkouts: int
    work_absences: int


# ── Reports ─────────────────────────────────────────────────────────
class EmployeeStatsRead(BaseModel):
    total_days: int
    present: int
    late: int
    absent: int
    total_minutes: int
    total_hours: float

    model_config = {"from_attributes": True}


class AnalyticsRead(BaseModel):
    total_records: int
    status_counts: dict[str, int]
    status_percentages: dict[str, float]
    check_in_hours: dict[str, int]
    peak_check_in_hour: str | None
    late_count: int
    late_percentage: float
    avg_work_hours: float
    employee_stats: dict[str, EmployeeStatsRead]

    model_config = {"from_attributes": True}


class AttendanceReport(BaseModel):
    start: date
    end: date
    analytics: AnalyticsRead


class TrainerClassStats(BaseModel):
    trainer_id: int
    trainer_name: str | None
    present: int = 0
    late: int = 0
    absent: int = 0
    total: int = 0
    attendance_rate: float = 0.0


class ClassAttendanceReport(BaseModel):
    start: date
    end: date
    trainers: list[TrainerClassStats]


# ── Health / Status ─────────────────────────────────────────────────
class HealthResponse(BaseModel):
    db: bool
    redis: bool


class StatusResponse(BaseModel):
    total_employees: int
    today_records: int
    checked_in_now: int
    reconciler_running: bool
    status: str
    server_time: datetime
