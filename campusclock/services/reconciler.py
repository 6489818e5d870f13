"""
Attendance reconciliation: absence marking and automatic checkouts.

Every step here is idempotent and safe to run as often as the scheduler likes.
Absence steps only ever insert rows that do not exist yet. They never touch a
record a user created, so they commute with check-ins that race them.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.core.config import settings
from campusclock.models.class_attendance import ClassAttendanceRecord
from campusclock.models.employee import AttendanceRecord, Employee
from campusclock.models.timetable import LessonPeriod, TimetableSlot
from campusclock.models.user import User
from campusclock.services.clock import day_of_week, ensure_utc, to_local
from campusclock.services.rules import get_term_for_day, is_teaching_day
from campusclock.services.sessions import (close_session, cutoff_for,
                                           dump_sessions, open_session,
                                           parse_sessions)
from campusclock.services.windows import (AttendanceRules, check_in_closes,
                                          lesson_start_for)

logger = logging.getLogger(__name__)


@dataclass
class ReconcileSummary:
    class_absences: int = 0
    class_checkouts: int = 0
    work_checkouts: int = 0
    work_absences: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


# ── Class attendance ────────────────────────────────────────────────
async def reconcile_class_absences(
    db: AsyncSession, now: datetime, rules: AttendanceRules
) -> int:
    """Insert an ``Absent`` row for every slot today whose check-in window has closed."""
    today = now.date()
    term = await get_term_for_day(db, today)
    if not is_teaching_day(term, today):
        return 0

    result = await db.execute(
        select(
            TimetableSlot.id,
            TimetableSlot.trainer_id,
            TimetableSlot.class_id,
            TimetableSlot.is_online_session,
            LessonPeriod.start_time,
        )
        .join(LessonPeriod, TimetableSlot.lesson_period_id == LessonPeriod.id, isouter=True)
        .where(
            TimetableSlot.term_id == term.id,
            TimetableSlot.day_of_week == day_of_week(today),
            TimetableSlot.status == "scheduled",
        )
    )
    slots = result.all()

    created = 0
    for slot in slots:
        if slot.start_time is None:
            continue
        lesson_start = lesson_start_for(today, slot.start_time, now.tzinfo)
        if now < check_in_closes(lesson_start, rules):
            continue
        try:
            existing = await db.execute(
                select(ClassAttendanceRecord.id)
                .where(
                    ClassAttendanceRecord.trainer_id == slot.trainer_id,
                    ClassAttendanceRecord.class_id == slot.class_id,
                    ClassAttendanceRecord.date == today,
                    ClassAttendanceRecord.timetable_slot_id == slot.id,
                )
                .limit(1)
            )
            if existing.scalar_one_or_none() is not None:
                continue
            db.add(
                ClassAttendanceRecord(
                    trainer_id=slot.trainer_id,
                    class_id=slot.class_id,
                    timetable_slot_id=slot.id,
                    date=today,
                    status="Absent",
                    check_in_time=None,
                    check_out_time=None,
                    location_verified=False,
                    is_online_attendance=bool(slot.is_online_session),
                )
            )
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Could not reconcile slot %s for %s", slot.id, today)
            continue
        created += 1
        logger.info("Marked trainer %s absent for slot %s on %s", slot.trainer_id, slot.id, today)
    return created


async def auto_checkout_classes(db: AsyncSession, now: datetime, max_hours: float) -> int:
    """Close class sessions left open longer than ``max_hours``."""
    limit = timedelta(hours=max_hours)
    result = await db.execute(
        select(ClassAttendanceRecord).where(
            ClassAttendanceRecord.check_out_time.is_(None),
            ClassAttendanceRecord.check_in_time.is_not(None),
            ClassAttendanceRecord.date <= now.date(),
        )
    )
    closed = 0
    for record in result.scalars().all():
        due = ensure_utc(record.check_in_time) + limit
        if now < due:
            continue
        record.check_out_time = due
        record.auto_checkout = True
        closed += 1
    if closed:
        await db.commit()
        logger.info("Auto-checked out %d class session(s)", closed)
    return closed


# ── Work attendance ─────────────────────────────────────────────────
async def auto_checkout_work(db: AsyncSession, now: datetime, cutoff: time) -> int:
    """Close open work sessions at the cutoff of their own date once it has passed."""
    result = await db.execute(
        select(AttendanceRecord).where(
            AttendanceRecord.check_out_time.is_(None),
            AttendanceRecord.check_in_time.is_not(None),
            AttendanceRecord.date <= now.date(),
        )
    )
    closed = 0
    for record in result.scalars().all():
        sessions = parse_sessions(record.sessions)
        current = open_session(sessions)
        check_in = current.check_in if current else record.check_in_time
        cap = cutoff_for(check_in, now.tzinfo, cutoff)
        if now < cap:
            continue
        if current is not None:
            close_session(sessions, cap, auto=True)
            record.sessions = dump_sessions(sessions)
        elif sessions:
            # Ledger already closed, only the mirror column is stale
            cap = max(s.check_out for s in sessions if s.check_out is not None)
        record.check_out_time = ensure_utc(cap)
        closed += 1
    if closed:
        await db.commit()
        logger.info("Auto-checked out %d work record(s)", closed)
    return closed


async def mark_work_absences(db: AsyncSession, day: date, now: datetime, cutoff: time) -> int:
    """After the cutoff of a teaching day, give every active employee without a record an ``Absent`` row."""
    day_end = datetime(day.year, day.month, day.day, cutoff.hour, cutoff.minute, tzinfo=now.tzinfo)
    if now < day_end:
        return 0

    term = await get_term_for_day(db, day)
    if not is_teaching_day(term, day):
        return 0

    emp_result = await db.execute(
        select(Employee.id, Employee.created_at)
        .join(User, Employee.user_id == User.id)
        .where(User.is_active.is_(True))
    )
    existing_result = await db.execute(
        select(AttendanceRecord.employee_id).where(AttendanceRecord.date == day)
    )
    existing = set(existing_result.scalars().all())

    absentees = [
        row.id
        for row in emp_result.all()
        if row.id not in existing
        and (row.created_at is None or to_local(row.created_at, now.tzinfo).date() <= day)
    ]
    for employee_id in absentees:
        db.add(AttendanceRecord(employee_id=employee_id, date=day, status="Absent", sessions=[]))
    if absentees:
        await db.commit()
        logger.info("Marked %d employee(s) absent for %s", len(absentees), day)
    return len(absentees)


async def mark_recent_work_absences(
    db: AsyncSession, now: datetime, cutoff: time, lookback_days: int
) -> int:
    total = 0
    for offset in range(lookback_days, -1, -1):
        total += await mark_work_absences(db, now.date() - timedelta(days=offset), now, cutoff)
    return total


# ── Orchestration ───────────────────────────────────────────────────
async def reconcile_all(
    db: AsyncSession,
    now: datetime,
    rules: AttendanceRules,
) -> ReconcileSummary:
    """Run every reconciliation step. A failing step is logged and skipped."""
    summary = ReconcileSummary()
    steps = (
        ("class_absences", lambda: reconcile_class_absences(db, now, rules)),
        ("class_checkouts", lambda: auto_checkout_classes(db, now, settings.CLASS_AUTO_CHECKOUT_HOURS)),
        ("work_checkouts", lambda: auto_checkout_work(db, now, settings.WORK_DAY_CUTOFF)),
        (
            "work_absences",
            lambda: mark_recent_work_absences(
                db, now, settings.WORK_DAY_CUTOFF, settings.WORK_ABSENCE_LOOKBACK_DAYS
            ),
        ),
    )
    for name, step in steps:
        try:
            setattr(summary, name, await step())
        except Exception:
            await db.rollback()
            logger.exception("Reconciliation step %s failed", name)
    return summary
