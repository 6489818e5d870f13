"""
Class attendance: today's teaching schedule, per-slot check-in / check-out,
the admin overview of every trainer's day and the caller's class history.

Eligibility is decided by ``services.windows.evaluate_slot`` for both the
schedule listing and the check-in itself.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from campusclock.api.v1.deps import (get_current_active_user, get_db, get_now,
                                     get_rules, require_admin)
from campusclock.api.v1.endpoints.attendance import (employee_for_user,
                                                     open_work_record,
                                                     verify_location)
from campusclock.core.exceptions import (Conflict, DomainRuleViolation,
                                         Forbidden, NotFound)
from campusclock.models.class_attendance import ClassAttendanceRecord
from campusclock.models.timetable import Term, TimetableSlot
from campusclock.models.user import User
from campusclock.schemas.attendance import (AdminClassStatusResponse,
                                            ClassAttendanceRead,
                                            ClassCheckInRequest,
                                            ClassCheckOutRequest,
                                            LocationReport, RulesRead,
                                            ScheduleResponse,
                                            ScheduleSlotRead,
                                            TrainerDaySchedule)
from campusclock.schemas.common import Envelope
from campusclock.services.clock import day_of_week, ensure_utc
from campusclock.services.rules import get_term_for_day, is_teaching_day
from campusclock.services.sessions import format_hours
from campusclock.services.windows import AttendanceRules, evaluate_slot

router = APIRouter(prefix="/attendance", tags=["class-attendance"])
logger = logging.getLogger(__name__)

HISTORY_DEFAULT_DAYS = 30

_SLOT_RELATIONS = (
    selectinload(TimetableSlot.term),
    selectinload(TimetableSlot.trainer),
    selectinload(TimetableSlot.school_class),
    selectinload(TimetableSlot.subject),
    selectinload(TimetableSlot.room),
    selectinload(TimetableSlot.lesson_period),
)


# ── Helpers ─────────────────────────────────────────────────────────
def _slot_label(slot: TimetableSlot | None, record: ClassAttendanceRecord | None = None) -> str:
    if slot is not None and slot.subject is not None:
        return slot.subject.name
    if slot is not None and slot.school_class is not None:
        return slot.school_class.name
    if record is not None and record.school_class is not None:
        return record.school_class.name
    return "another class"


def class_duration(record: ClassAttendanceRecord) -> str | None:
    if record.check_in_time is None or record.check_out_time is None:
        return None
    seconds = (ensure_utc(record.check_out_time) - ensure_utc(record.check_in_time)).total_seconds()
    return format_hours(max(0, math.floor(seconds / 60)))


def to_class_read(record: ClassAttendanceRecord) -> ClassAttendanceRead:
    read = ClassAttendanceRead.model_validate(record)
    return read.model_copy(
        update={
            "check_in_time": ensure_utc(record.check_in_time) if record.check_in_time else None,
            "check_out_time": ensure_utc(record.check_out_time) if record.check_out_time else None,
            "duration": class_duration(record),
        }
    )


async def _slot_record(
    db: AsyncSession, trainer_id: int, slot: TimetableSlot, day: date
) -> ClassAttendanceRecord | None:
    result = await db.execute(
        select(ClassAttendanceRecord).where(
            ClassAttendanceRecord.trainer_id == trainer_id,
            ClassAttendanceRecord.class_id == slot.class_id,
            ClassAttendanceRecord.date == day,
            ClassAttendanceRecord.timetable_slot_id == slot.id,
        )
    )
    return result.scalar_one_or_none()


def _close(
    record: ClassAttendanceRecord, now: datetime, location: LocationReport | None
) -> None:
    if record.check_in_time is None:
        raise DomainRuleViolation("You must check in before checking out")
    if record.check_out_time is not None:
        raise DomainRuleViolation("You have already checked out of this class")
    record.check_out_time = ensure_utc(now)
    record.auto_checkout = False
    if location is not None and not record.is_online_attendance:
        record.check_out_latitude = location.latitude
        record.check_out_longitude = location.longitude


async def _todays_slots(
    db: AsyncSession, term: Term | None, today: date, trainer_id: int | None = None
) -> list[TimetableSlot]:
    """Scheduled slots for ``today`` ordered by start time. Empty outside teaching days."""
    if term is None or not is_teaching_day(term, today):
        return []
    stmt = (
        select(TimetableSlot)
        .options(*_SLOT_RELATIONS)
        .where(
            TimetableSlot.term_id == term.id,
            TimetableSlot.day_of_week == day_of_week(today),
            TimetableSlot.status == "scheduled",
        )
    )
    if trainer_id is not None:
        stmt = stmt.where(TimetableSlot.trainer_id == trainer_id)
    result = await db.execute(stmt)
    return sorted(
        result.scalars().all(),
        key=lambda s: s.lesson_period.start_time if s.lesson_period else datetime.max.time(),
    )


def _schedule_item(
    slot: TimetableSlot,
    record: ClassAttendanceRecord | None,
    now: datetime,
    rules: AttendanceRules,
) -> ScheduleSlotRead:
    period = slot.lesson_period
    decision = evaluate_slot(period.start_time if period else None, now, rules)
    is_absent = record is not None and record.status == "Absent"
    reason = decision.reason
    if is_absent:
        reason = "Marked absent"
    elif record is not None:
        reason = "Already checked in"
    return ScheduleSlotRead(
        id=slot.id,
        class_id=slot.class_id,
        class_name=slot.school_class.name if slot.school_class else None,
        subject_id=slot.subject_id,
        subject_name=slot.subject.name if slot.subject else None,
        room_name=slot.room.name if slot.room else None,
        lesson_period_name=period.name if period else None,
        start_time=period.start_time if period else None,
        end_time=period.end_time if period else None,
        status=slot.status,
        is_online_session=bool(slot.is_online_session),
        can_check_in=decision.can_check_in and record is None,
        check_in_reason=reason,
        minutes_until_open=decision.minutes_until_open,
        is_late=decision.is_late,
        has_checked_in=record is not None and record.check_in_time is not None,
        has_checked_out=record is not None and record.check_out_time is not None,
        is_absent=is_absent,
        attendance_id=record.id if record else None,
    )


# ── Schedule ────────────────────────────────────────────────────────
@router.get("/class-checkin", response_model=Envelope[ScheduleResponse])
async def todays_schedule(
    employee_id: int | None = Query(None, description="Trainer user id (admin only)"),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    rules: AttendanceRules = Depends(get_rules),
    current_user: User = Depends(get_current_active_user),
) -> Envelope[ScheduleResponse]:
    """Today's scheduled slots for the caller, each annotated with check-in eligibility."""
    trainer_id = current_user.id
    if employee_id is not None and employee_id != current_user.id:
        if current_user.role != "admin":
            raise Forbidden("Only admins can view another trainer's schedule")
        trainer_id = employee_id

    today = now.date()
    term = await get_term_for_day(db, today)
    slots = await _todays_slots(db, term, today, trainer_id)

    att_result = await db.execute(
        select(ClassAttendanceRecord).where(
            ClassAttendanceRecord.trainer_id == trainer_id,
            ClassAttendanceRecord.date == today,
        )
    )
    by_slot = {a.timetable_slot_id: a for a in att_result.scalars().all()}

    message = None
    if term is None:
        message = "No active term today"
    elif not is_teaching_day(term, today):
        message = "No classes are held today"

    return Envelope(
        data=ScheduleResponse(
            date=today,
            day_of_week=day_of_week(today),
            term_id=term.id if term else None,
            rules=RulesRead.model_validate(rules),
            slots=[_schedule_item(slot, by_slot.get(slot.id), now, rules) for slot in slots],
        ),
        message=message,
    )


@router.get("/admin-class-status", response_model=Envelope[AdminClassStatusResponse])
async def admin_class_status(
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    rules: AttendanceRules = Depends(get_rules),
    _admin: User = Depends(require_admin),
) -> Envelope[AdminClassStatusResponse]:
    """Every trainer's slots today with their attendance state, plus open class sessions."""
    today = now.date()
    term = await get_term_for_day(db, today)
    slots = await _todays_slots(db, term, today)

    att_result = await db.execute(
        select(ClassAttendanceRecord).where(ClassAttendanceRecord.date == today)
    )
    records = list(att_result.scalars().all())
    by_slot = {a.timetable_slot_id: a for a in records}

    trainers: dict[int, TrainerDaySchedule] = {}
    for slot in slots:
        entry = trainers.get(slot.trainer_id)
        if entry is None:
            entry = TrainerDaySchedule(
                trainer_id=slot.trainer_id,
                trainer_name=slot.trainer.name if slot.trainer else None,
            )
            trainers[slot.trainer_id] = entry
        entry.slots.append(_schedule_item(slot, by_slot.get(slot.id), now, rules))

    items = [item for entry in trainers.values() for item in entry.slots]
    active = [r for r in records if r.check_in_time is not None and r.check_out_time is None]
    return Envelope(
        data=AdminClassStatusResponse(
            date=today,
            term_id=term.id if term else None,
            term_name=term.name if term else None,
            scheduled=len(items),
            checked_in=sum(1 for i in items if i.has_checked_in),
            absent=sum(1 for i in items if i.is_absent),
            pending=sum(1 for i in items if not i.has_checked_in and not i.is_absent),
            trainers=sorted(trainers.values(), key=lambda t: (t.trainer_name or "", t.trainer_id)),
            active_sessions=[to_class_read(r) for r in active],
        )
    )


# ── Check-in / Check-out ────────────────────────────────────────────
@router.post("/class-checkin", response_model=Envelope[ClassAttendanceRead])
async def class_check_in_out(
    body: ClassCheckInRequest,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    rules: AttendanceRules = Depends(get_rules),
    current_user: User = Depends(get_current_active_user),
) -> Envelope[ClassAttendanceRead]:
    result = await db.execute(
        select(TimetableSlot).options(*_SLOT_RELATIONS).where(TimetableSlot.id == body.timetable_slot_id)
    )
    slot = result.scalar_one_or_none()
    if slot is None:
        raise NotFound("Timetable slot not found")
    if slot.trainer_id != current_user.id:
        raise Forbidden("This class is not assigned to you")

    today = now.date()
    if slot.day_of_week != day_of_week(today):
        raise DomainRuleViolation("This class is not scheduled for today")

    label = _slot_label(slot)

    if body.action == "check-out":
        record = await _slot_record(db, current_user.id, slot, today)
        if record is None:
            raise DomainRuleViolation("You must check in before checking out")
        _close(record, now, body.location)
        await db.commit()
        await db.refresh(record)
        read = to_class_read(record)
        logger.info("Trainer %s checked out of slot %s", current_user.id, slot.id)
        return Envelope(data=read, message=f"Checked out of {label}. Duration: {read.duration}")

    record = await _check_in(db, current_user, slot, now, rules, body.location, label)
    read = to_class_read(record)
    suffix = " (Online)" if record.is_online_attendance else ""
    message = (
        f"Checked in late to {label}{suffix}" if record.status == "Late"
        else f"Checked in to {label}{suffix}"
    )
    return Envelope(data=read, message=message)


async def _check_in(
    db: AsyncSession,
    user: User,
    slot: TimetableSlot,
    now: datetime,
    rules: AttendanceRules,
    location: LocationReport | None,
    label: str,
) -> ClassAttendanceRecord:
    today = now.date()
    if slot.status != "scheduled":
        raise DomainRuleViolation(f"This class is {slot.status}")
    if not is_teaching_day(slot.term, today):
        raise DomainRuleViolation("No classes are held today")
    is_online = bool(slot.is_online_session)

    geofence = None
    work_record = None
    if not is_online:
        geofence = verify_location(location, required=rules.location_required)
        employee = await employee_for_user(db, user)
        work_record = await open_work_record(db, employee.id, now)
        if work_record is None:
            raise DomainRuleViolation("You must be checked into work to mark class attendance")

    period = slot.lesson_period
    decision = evaluate_slot(period.start_time if period else None, now, rules)
    if not decision.can_check_in:
        raise DomainRuleViolation(
            decision.reason or "Check-in not allowed",
            minutes_until_open=decision.minutes_until_open,
        )

    existing = await _slot_record(db, user.id, slot, today)
    if existing is not None and existing.status == "Absent":
        raise Conflict("You have been marked absent for this class")
    if existing is not None:
        raise Conflict("You have already checked in to this class")

    active_result = await db.execute(
        select(ClassAttendanceRecord)
        .options(
            selectinload(ClassAttendanceRecord.timetable_slot).selectinload(TimetableSlot.subject),
            selectinload(ClassAttendanceRecord.school_class),
        )
        .where(
            ClassAttendanceRecord.trainer_id == user.id,
            ClassAttendanceRecord.date == today,
            ClassAttendanceRecord.check_in_time.is_not(None),
            ClassAttendanceRecord.check_out_time.is_(None),
            or_(
                ClassAttendanceRecord.timetable_slot_id != slot.id,
                ClassAttendanceRecord.timetable_slot_id.is_(None),
            ),
        )
        .limit(1)
    )
    active = active_result.scalar_one_or_none()
    if active is not None:
        other = _slot_label(active.timetable_slot, active)
        raise Conflict(f"You are already checked into {other}. Please check out first.")

    physical = location is not None and not is_online
    record = ClassAttendanceRecord(
        trainer_id=user.id,
        class_id=slot.class_id,
        timetable_slot_id=slot.id,
        date=today,
        status="Late" if decision.is_late else "Present",
        check_in_time=ensure_utc(now),
        location_verified=geofence is not None,
        is_online_attendance=is_online,
        check_in_latitude=location.latitude if physical else None,
        check_in_longitude=location.longitude if physical else None,
        work_attendance_id=work_record.id if work_record else None,
    )
    db.add(record)
    try:
        await db.commit()
    except IntegrityError as exc:
        # Lost a race with a concurrent check-in or the absence reconciler
        await db.rollback()
        raise Conflict("You have already checked in to this class") from exc
    await db.refresh(record)
    logger.info(
        "Trainer %s checked in to slot %s (%s)%s",
        user.id, slot.id, record.status, " online" if is_online else "",
    )
    return record


@router.patch("/class-checkin", response_model=Envelope[ClassAttendanceRead])
async def class_check_out(
    body: ClassCheckOutRequest,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    current_user: User = Depends(get_current_active_user),
) -> Envelope[ClassAttendanceRead]:
    """Check out of a class attendance record by id."""
    result = await db.execute(
        select(ClassAttendanceRecord)
        .options(
            selectinload(ClassAttendanceRecord.timetable_slot).selectinload(TimetableSlot.subject),
            selectinload(ClassAttendanceRecord.school_class),
        )
        .where(
            ClassAttendanceRecord.id == body.attendance_id,
            ClassAttendanceRecord.trainer_id == current_user.id,
        )
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise NotFound("Attendance record not found")

    label = _slot_label(record.timetable_slot, record)
    _close(record, now, body.location)
    await db.commit()
    await db.refresh(record)
    read = to_class_read(record)
    logger.info("Trainer %s checked out of class record %s", current_user.id, record.id)
    return Envelope(data=read, message=f"Checked out of {label}. Duration: {read.duration}")


# ── History ─────────────────────────────────────────────────────────
@router.get("/class-history", response_model=Envelope[list[ClassAttendanceRead]])
async def class_history(
    start: date | None = None,
    end: date | None = None,
    trainer_id: int | None = Query(None, description="Trainer user id (admin only)"),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    current_user: User = Depends(get_current_active_user),
) -> Envelope[list[ClassAttendanceRead]]:
    """The caller's class attendance between ``start`` and ``end`` (default: last 30 days)."""
    end = end or now.date()
    start = start or end - timedelta(days=HISTORY_DEFAULT_DAYS - 1)
    if start > end:
        raise DomainRuleViolation("start must not be after end")

    target = current_user.id
    if trainer_id is not None and trainer_id != current_user.id:
        if current_user.role != "admin":
            raise Forbidden("Only admins can view another trainer's history")
        target = trainer_id

    result = await db.execute(
        select(ClassAttendanceRecord)
        .where(
            ClassAttendanceRecord.trainer_id == target,
            ClassAttendanceRecord.date >= start,
            ClassAttendanceRecord.date <= end,
        )
        .order_by(ClassAttendanceRecord.date.desc(), ClassAttendanceRecord.id.desc())
    )
    return Envelope(data=[to_class_read(r) for r in result.scalars().all()])
