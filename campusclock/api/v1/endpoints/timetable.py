"""
Timetable slots: a class, subject, trainer and room booked into a lesson
period on a given weekday of a term.

A room or a trainer can hold at most one live slot per term, day and period.
Trainers also get a week view of their lessons and an availability check.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from campusclock.api.v1.deps import (get_current_active_user, get_db,
                                     get_now, require_timetable_admin)
from campusclock.core.exceptions import (Conflict, DomainRuleViolation,
                                         Forbidden, NotFound)
from campusclock.models.class_attendance import ClassAttendanceRecord
from campusclock.models.timetable import (LessonPeriod, Room, SchoolClass,
                                          Subject, Term, TimetableSlot)
from campusclock.models.user import User
from campusclock.schemas.common import DeleteResult, Envelope
from campusclock.schemas.timetable import (AvailabilityConflict,
                                           AvailabilityResponse, SlotCreate,
                                           SlotRead, SlotUpdate,
                                           TrainerWeekResponse, WeekDayRead,
                                           WeekSlotAttendance, WeekSlotRead,
                                           WeekStats)
from campusclock.services import clock
from campusclock.services.clock import ensure_utc
from campusclock.services.rules import get_active_term, is_teaching_day

router = APIRouter(prefix="/timetable", tags=["timetable"])
logger = logging.getLogger(__name__)

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


async def _require(db: AsyncSession, model, obj_id: int, label: str):
    obj = await db.get(model, obj_id)
    if obj is None or getattr(obj, "is_active", True) is False:
        raise NotFound(f"{label} not found")
    return obj


async def _get_slot(db: AsyncSession, slot_id: str) -> TimetableSlot:
    result = await db.execute(
        select(TimetableSlot)
        .options(
            selectinload(TimetableSlot.subject),
            selectinload(TimetableSlot.room),
        )
        .where(TimetableSlot.id == slot_id)
    )
    slot = result.scalar_one_or_none()
    if slot is None:
        raise NotFound("Timetable slot not found")
    return slot


async def _find_clash(
    db: AsyncSession,
    *,
    term_id: int,
    day_of_week: int,
    lesson_period_id: int,
    trainer_id: int,
    room_id: int | None = None,
    exclude_id: str | None = None,
) -> TimetableSlot | None:
    """A live slot in the same term, day and period that uses the trainer (or the room)."""
    stmt = (
        select(TimetableSlot)
        .options(
            selectinload(TimetableSlot.school_class),
            selectinload(TimetableSlot.subject),
            selectinload(TimetableSlot.room),
            selectinload(TimetableSlot.trainer),
        )
        .where(
            TimetableSlot.term_id == term_id,
            TimetableSlot.day_of_week == day_of_week,
            TimetableSlot.lesson_period_id == lesson_period_id,
            TimetableSlot.status != "cancelled",
        )
    )
    if room_id is not None:
        stmt = stmt.where(or_(TimetableSlot.room_id == room_id, TimetableSlot.trainer_id == trainer_id))
    else:
        stmt = stmt.where(TimetableSlot.trainer_id == trainer_id)
    if exclude_id is not None:
        stmt = stmt.where(TimetableSlot.id != exclude_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none()


async def _ensure_no_clash(
    db: AsyncSession,
    *,
    term_id: int,
    day_of_week: int,
    lesson_period_id: int,
    room_id: int,
    trainer_id: int,
    exclude_id: str | None = None,
) -> None:
    clash = await _find_clash(
        db,
        term_id=term_id,
        day_of_week=day_of_week,
        lesson_period_id=lesson_period_id,
        trainer_id=trainer_id,
        room_id=room_id,
        exclude_id=exclude_id,
    )
    if clash is None:
        return

    booked = f"{clash.subject.name} ({clash.school_class.name})"
    if clash.room_id == room_id:
        details = f"Room {clash.room.name} is already booked for {booked} at this time"
    else:
        details = f"Trainer {clash.trainer.name} is already scheduled for {booked} at this time"
    raise Conflict("Scheduling conflict", details=details, conflicting_slot_id=clash.id)


def _check_online(subject: Subject, is_online: bool) -> None:
    if is_online and not subject.can_be_online:
        raise DomainRuleViolation(
            "Subject cannot be online",
            details=f"{subject.name} ({subject.code}) is not enabled for online sessions",
        )


@router.post("", response_model=Envelope[SlotRead], status_code=201)
async def create_slot(
    body: SlotCreate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[SlotRead]:
    await _require(db, Term, body.term_id, "Term")
    await _require(db, SchoolClass, body.class_id, "Class")
    subject = await _require(db, Subject, body.subject_id, "Subject")
    await _require(db, User, body.trainer_id, "Trainer")
    await _require(db, Room, body.room_id, "Room")
    await _require(db, LessonPeriod, body.lesson_period_id, "Lesson period")

    _check_online(subject, body.is_online_session)
    await _ensure_no_clash(
        db,
        term_id=body.term_id,
        day_of_week=body.day_of_week,
        lesson_period_id=body.lesson_period_id,
        room_id=body.room_id,
        trainer_id=body.trainer_id,
    )

    slot = TimetableSlot(**body.model_dump(), status="scheduled")
    db.add(slot)
    await db.commit()
    await db.refresh(slot)
    logger.info(
        "Scheduled slot %s: class %s, subject %s, trainer %s, day %s",
        slot.id, slot.class_id, slot.subject_id, slot.trainer_id, slot.day_of_week,
    )
    return Envelope(data=SlotRead.model_validate(slot), message="Timetable slot created")


@router.get("", response_model=Envelope[list[SlotRead]])
async def list_slots(
    term_id: int | None = Query(None, description="Defaults to the active term"),
    day_of_week: int | None = Query(None, ge=0, le=6),
    trainer_id: int | None = None,
    class_id: int | None = None,
    status: str | None = None,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[list[SlotRead]]:
    if term_id is None:
        term = await get_active_term(db)
        if term is None:
            return Envelope(data=[], message="No active term")
        term_id = term.id

    stmt = (
        select(TimetableSlot)
        .join(LessonPeriod, TimetableSlot.lesson_period_id == LessonPeriod.id)
        .where(TimetableSlot.term_id == term_id)
    )
    if day_of_week is not None:
        stmt = stmt.where(TimetableSlot.day_of_week == day_of_week)
    if trainer_id is not None:
        stmt = stmt.where(TimetableSlot.trainer_id == trainer_id)
    if class_id is not None:
        stmt = stmt.where(TimetableSlot.class_id == class_id)
    if status is not None:
        stmt = stmt.where(TimetableSlot.status == status)

    result = await db.execute(stmt.order_by(TimetableSlot.day_of_week, LessonPeriod.start_time))
    return Envelope(data=[SlotRead.model_validate(s) for s in result.scalars().all()])


# ── Trainer views ───────────────────────────────────────────────────
@router.get("/trainer/{trainer_id}/week", response_model=Envelope[TrainerWeekResponse])
async def trainer_week(
    trainer_id: int,
    week_of: date | None = Query(None, description="Any date in the week; defaults to today"),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    current_user: User = Depends(get_current_active_user),
) -> Envelope[TrainerWeekResponse]:
    """A trainer's Sunday-to-Saturday timetable with the attendance state of each lesson."""
    if current_user.role != "admin" and current_user.id != trainer_id:
        raise Forbidden("You can only view your own schedule")
    if await db.get(User, trainer_id) is None:
        raise NotFound("Trainer not found")

    anchor = week_of or now.date()
    week_start = anchor - timedelta(days=clock.day_of_week(anchor))
    week_end = week_start + timedelta(days=6)

    term_result = await db.execute(
        select(Term)
        .where(
            Term.is_active.is_(True),
            Term.start_date <= week_end,
            Term.end_date >= week_start,
        )
        .order_by(Term.start_date.desc())
        .limit(1)
    )
    term = term_result.scalar_one_or_none()

    slots: list[TimetableSlot] = []
    if term is not None:
        result = await db.execute(
            select(TimetableSlot)
            .options(
                selectinload(TimetableSlot.school_class),
                selectinload(TimetableSlot.subject),
                selectinload(TimetableSlot.room),
                selectinload(TimetableSlot.lesson_period),
            )
            .join(LessonPeriod, TimetableSlot.lesson_period_id == LessonPeriod.id)
            .where(
                TimetableSlot.trainer_id == trainer_id,
                TimetableSlot.term_id == term.id,
                TimetableSlot.status != "cancelled",
            )
            .order_by(TimetableSlot.day_of_week, LessonPeriod.start_time)
        )
        slots = list(result.scalars().all())

    att_result = await db.execute(
        select(ClassAttendanceRecord).where(
            ClassAttendanceRecord.trainer_id == trainer_id,
            ClassAttendanceRecord.date >= week_start,
            ClassAttendanceRecord.date <= week_end,
        )
    )
    attendance = {(a.timetable_slot_id, a.date): a for a in att_result.scalars().all()}

    days = []
    for offset, name in enumerate(DAY_NAMES):
        current = week_start + timedelta(days=offset)
        days.append(
            WeekDayRead(
                date=current,
                day_of_week=offset,
                day_name=name,
                is_teaching_day=is_teaching_day(term, current),
            )
        )

    stats = WeekStats()
    for slot in slots:
        day = days[slot.day_of_week]
        # No lesson is held on holidays or outside the term
        if not day.is_teaching_day:
            continue
        record = attendance.get((slot.id, day.date))
        state = WeekSlotAttendance()
        if record is not None:
            state = WeekSlotAttendance(
                status=record.status,
                checked_in=record.check_in_time is not None,
                checked_out=record.check_out_time is not None,
                check_in_time=ensure_utc(record.check_in_time) if record.check_in_time else None,
                check_out_time=ensure_utc(record.check_out_time) if record.check_out_time else None,
                auto_checkout=bool(record.auto_checkout),
            )
        period = slot.lesson_period
        day.slots.append(
            WeekSlotRead(
                timetable_slot_id=slot.id,
                subject_name=slot.subject.name if slot.subject else None,
                class_name=slot.school_class.name if slot.school_class else None,
                room_name=slot.room.name if slot.room else None,
                lesson_period_name=period.name if period else None,
                start_time=period.start_time if period else None,
                end_time=period.end_time if period else None,
                is_online_session=bool(slot.is_online_session),
                attendance=state,
            )
        )
        stats.total_slots += 1
        if record is None:
            stats.pending += 1
        elif record.status == "Absent":
            stats.absent += 1
        else:
            stats.attended += 1
    if stats.total_slots:
        stats.attendance_rate = round(stats.attended / stats.total_slots * 100, 1)

    return Envelope(
        data=TrainerWeekResponse(
            trainer_id=trainer_id,
            term_id=term.id if term else None,
            term_name=term.name if term else None,
            week_start=week_start,
            week_end=week_end,
            days=days,
            statistics=stats,
        ),
        message=None if term else "No active term found for this week",
    )


@router.get("/trainer/{trainer_id}/availability", response_model=Envelope[AvailabilityResponse])
async def trainer_availability(
    trainer_id: int,
    term_id: int,
    lesson_period_id: int,
    day_of_week: int = Query(..., ge=0, le=6),
    exclude_slot_id: str | None = Query(None, description="Ignore this slot, when editing it"),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[AvailabilityResponse]:
    """Whether a trainer is free in a given term, weekday and lesson period."""
    trainer = await _require(db, User, trainer_id, "Trainer")
    await _require(db, Term, term_id, "Term")
    await _require(db, LessonPeriod, lesson_period_id, "Lesson period")

    clash = await _find_clash(
        db,
        term_id=term_id,
        day_of_week=day_of_week,
        lesson_period_id=lesson_period_id,
        trainer_id=trainer.id,
        exclude_id=exclude_slot_id,
    )
    conflict = None
    if clash is not None:
        subject = clash.subject.name if clash.subject else None
        class_name = clash.school_class.name if clash.school_class else None
        room = clash.room.name if clash.room else None
        conflict = AvailabilityConflict(
            timetable_slot_id=clash.id,
            subject_name=subject,
            class_name=class_name,
            room_name=room,
            message=f"Trainer is already scheduled for {subject} ({class_name}) in {room} at this time",
        )

    return Envelope(
        data=AvailabilityResponse(
            trainer_id=trainer.id,
            trainer_name=trainer.name,
            term_id=term_id,
            day_of_week=day_of_week,
            day_name=DAY_NAMES[day_of_week],
            lesson_period_id=lesson_period_id,
            is_available=clash is None,
            conflict=conflict,
        )
    )


@router.get("/{slot_id}", response_model=Envelope[SlotRead])
async def read_slot(
    slot_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[SlotRead]:
    return Envelope(data=SlotRead.model_validate(await _get_slot(db, slot_id)))


@router.put("/{slot_id}", response_model=Envelope[SlotRead])
async def update_slot(
    slot_id: str,
    body: SlotUpdate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[SlotRead]:
    slot = await _get_slot(db, slot_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)

    if "is_online_session" in changes:
        _check_online(slot.subject, changes["is_online_session"])
    if "room_id" in changes:
        await _require(db, Room, changes["room_id"], "Room")

    if changes.get("status", slot.status) != "cancelled" and (
        "room_id" in changes or changes.get("status") == "scheduled"
    ):
        await _ensure_no_clash(
            db,
            term_id=slot.term_id,
            day_of_week=slot.day_of_week,
            lesson_period_id=slot.lesson_period_id,
            room_id=changes.get("room_id", slot.room_id),
            trainer_id=slot.trainer_id,
            exclude_id=slot.id,
        )

    for field, value in changes.items():
        setattr(slot, field, value)
    await db.commit()
    await db.refresh(slot)
    logger.info("Updated slot %s: %s", slot.id, changes)
    return Envelope(data=SlotRead.model_validate(slot), message="Timetable slot updated")


@router.delete("/{slot_id}", response_model=Envelope[DeleteResult])
async def delete_slot(
    slot_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[DeleteResult]:
    """Delete a slot. One that already has attendance is cancelled instead."""
    slot = await _get_slot(db, slot_id)
    referenced = await db.execute(
        select(ClassAttendanceRecord.id)
        .where(ClassAttendanceRecord.timetable_slot_id == slot.id)
        .limit(1)
    )
    if referenced.scalar_one_or_none() is not None:
        slot.status = "cancelled"
        await db.commit()
        logger.info("Cancelled slot %s (has attendance history)", slot.id)
        return Envelope(data=DeleteResult(id=slot.id), message="Timetable slot cancelled")

    await db.delete(slot)
    await db.commit()
    logger.info("Deleted slot %s", slot_id)
    return Envelope(data=DeleteResult(id=slot_id), message="Timetable slot deleted")
