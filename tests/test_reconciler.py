"""Tests for absence marking, automatic checkouts and the periodic job."""

from datetime import date, time, timedelta

import pytest
from sqlalchemy import select

from campusclock.models.class_attendance import ClassAttendanceRecord
from campusclock.models.employee import AttendanceRecord
from campusclock.models.timetable import Term, TimetableSlot
from campusclock.services.clock import ensure_utc
from campusclock.services.reconciler import (auto_checkout_classes,
                                             auto_checkout_work,
                                             mark_work_absences,
                                             reconcile_all,
                                             reconcile_class_absences)
from campusclock.services.rules import is_teaching_day
from campusclock.services.scheduler import ReconciliationJob
from campusclock.services.sessions import parse_sessions
from campusclock.services.windows import AttendanceRules
from helpers import MONDAY, add_work_record, at, create_user

RULES = AttendanceRules(check_in_window=15, late_threshold=10)
CUTOFF = time(18, 0)


async def _class_rows(db):
    result = await db.execute(select(ClassAttendanceRecord).order_by(ClassAttendanceRecord.id))
    return list(result.scalars().all())


# ── Class absences ──────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_nothing_marked_while_window_open(db_session, campus):
    assert await reconcile_class_absences(db_session, at(9, 9), RULES) == 0
    assert await _class_rows(db_session) == []


@pytest.mark.asyncio
async def test_marks_absent_once_window_closes(db_session, campus):
    assert await reconcile_class_absences(db_session, at(9, 12), RULES) == 1

    rows = await _class_rows(db_session)
    assert len(rows) == 1
    row = rows[0]
    assert row.timetable_slot_id == campus.first_slot.id
    assert row.trainer_id == campus.trainer.id
    assert row.status == "Absent"
    assert row.check_in_time is None
    assert row.location_verified is False


@pytest.mark.asyncio
async def test_repeated_runs_are_idempotent(db_session, campus):
    first = await reconcile_class_absences(db_session, at(11, 30), RULES)
    second = await reconcile_class_absences(db_session, at(11, 31), RULES)
    third = await reconcile_class_absences(db_session, at(15, 0), RULES)
    assert (first, second, third) == (2, 0, 0)
    rows = await _class_rows(db_session)
    assert len(rows) == 2
    online = next(r for r in rows if r.timetable_slot_id == campus.second_slot.id)
    assert online.is_online_attendance is True


@pytest.mark.asyncio
async def test_existing_check_in_is_never_overwritten(db_session, campus):
    db_session.add(
        ClassAttendanceRecord(
            trainer_id=campus.trainer.id,
            class_id=campus.school_class.id,
            timetable_slot_id=campus.first_slot.id,
            date=MONDAY,
            status="Late",
            check_in_time=ensure_utc(at(9, 5)),
            location_verified=True,
        )
    )
    await db_session.commit()

    assert await reconcile_class_absences(db_session, at(9, 15), RULES) == 0
    rows = await _class_rows(db_session)
    assert [r.status for r in rows] == ["Late"]


@pytest.mark.asyncio
async def test_cancelled_slots_are_skipped(db_session, campus):
    slot = await db_session.get(TimetableSlot, campus.first_slot.id)
    slot.status = "cancelled"
    await db_session.commit()
    assert await reconcile_class_absences(db_session, at(9, 30), RULES) == 0


@pytest.mark.asyncio
async def test_no_active_term_is_a_no_op(db_session, campus):
    term = await db_session.get(Term, campus.term.id)
    term.is_active = False
    await db_session.commit()
    assert await reconcile_class_absences(db_session, at(12, 0), RULES) == 0


@pytest.mark.asyncio
async def test_other_weekdays_are_not_reconciled(db_session, campus):
    tuesday = MONDAY + timedelta(days=1)
    assert await reconcile_class_absences(db_session, at(12, 0, tuesday), RULES) == 0


@pytest.mark.asyncio
async def test_holidays_are_not_reconciled(db_session, campus):
    term = await db_session.get(Term, campus.term.id)
    term.holidays = [MONDAY.isoformat()]
    await db_session.commit()

    assert await reconcile_class_absences(db_session, at(11, 30), RULES) == 0
    assert await _class_rows(db_session) == []


@pytest.mark.asyncio
async def test_days_after_term_end_are_not_reconciled(db_session, campus):
    term = await db_session.get(Term, campus.term.id)
    term.end_date = MONDAY - timedelta(days=10)
    await db_session.commit()

    # still flagged active, but the term no longer covers today
    assert await reconcile_class_absences(db_session, at(11, 30), RULES) == 0


def test_teaching_day_rules():
    term = Term(
        name="T",
        start_date=date(2026, 1, 5),
        end_date=date(2026, 4, 3),
        working_days=[1, 2, 3, 4, 5],
        holidays=["2026-03-03"],
        is_active=True,
    )
    assert is_teaching_day(term, MONDAY) is True
    assert is_teaching_day(term, MONDAY + timedelta(days=1)) is False  # holiday
    assert is_teaching_day(term, MONDAY - timedelta(days=1)) is False  # Sunday
    assert is_teaching_day(term, date(2026, 4, 6)) is False  # after the term
    assert is_teaching_day(term, date(2026, 1, 2)) is False  # before the term
    assert is_teaching_day(None, MONDAY) is False

    term.is_active = False
    assert is_teaching_day(term, MONDAY) is False


# ── Automatic checkouts ─────────────────────────────────────────────
@pytest.mark.asyncio
async def test_class_auto_checkout_after_max_duration(db_session, campus):
    db_session.add(
        ClassAttendanceRecord(
            trainer_id=campus.trainer.id,
            class_id=campus.school_class.id,
            timetable_slot_id=campus.first_slot.id,
            date=MONDAY,
            status="Present",
            check_in_time=ensure_utc(at(9, 0)),
        )
    )
    await db_session.commit()

    assert await auto_checkout_classes(db_session, at(10, 30), 2.0) == 0
    assert await auto_checkout_classes(db_session, at(11, 30), 2.0) == 1

    row = (await _class_rows(db_session))[0]
    assert ensure_utc(row.check_out_time) == ensure_utc(at(11, 0))
    assert row.auto_checkout is True
    assert await auto_checkout_classes(db_session, at(12, 0), 2.0) == 0


@pytest.mark.asyncio
async def test_work_auto_checkout_at_cutoff(db_session, campus):
    await add_work_record(db_session, campus.trainer_employee, at(8, 0))

    assert await auto_checkout_work(db_session, at(17, 0), CUTOFF) == 0
    assert await auto_checkout_work(db_session, at(18, 5), CUTOFF) == 1

    record = (await db_session.execute(select(AttendanceRecord))).scalar_one()
    assert ensure_utc(record.check_out_time) == ensure_utc(at(18, 0))
    sessions = parse_sessions(record.sessions)
    assert sessions[0].check_out == ensure_utc(at(18, 0))
    assert sessions[0].auto_checkout is True
    assert await auto_checkout_work(db_session, at(18, 10), CUTOFF) == 0


@pytest.mark.asyncio
async def test_work_auto_checkout_closes_previous_day(db_session, campus):
    sunday = MONDAY - timedelta(days=1)
    await add_work_record(db_session, campus.trainer_employee, at(10, 0, sunday))

    assert await auto_checkout_work(db_session, at(7, 0), CUTOFF) == 1
    record = (await db_session.execute(select(AttendanceRecord))).scalar_one()
    assert ensure_utc(record.check_out_time) == ensure_utc(at(18, 0, sunday))


# ── Work absences ───────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_work_absences_only_after_cutoff(db_session, campus):
    await add_work_record(db_session, campus.trainer_employee, at(8, 0), at(17, 0))

    assert await mark_work_absences(db_session, MONDAY, at(17, 0), CUTOFF) == 0
    assert await mark_work_absences(db_session, MONDAY, at(18, 30), CUTOFF) == 1
    assert await mark_work_absences(db_session, MONDAY, at(19, 0), CUTOFF) == 0

    result = await db_session.execute(
        select(AttendanceRecord).where(AttendanceRecord.status == "Absent")
    )
    absent = result.scalars().all()
    assert len(absent) == 1
    assert absent[0].check_in_time is None


@pytest.mark.asyncio
async def test_work_absences_skip_holidays_and_weekends(db_session, campus):
    term = await db_session.get(Term, campus.term.id)
    term.holidays = [MONDAY.isoformat()]
    await db_session.commit()

    assert await mark_work_absences(db_session, MONDAY, at(19, 0), CUTOFF) == 0
    sunday = MONDAY - timedelta(days=1)
    assert await mark_work_absences(db_session, sunday, at(19, 0), CUTOFF) == 0


@pytest.mark.asyncio
async def test_work_absences_skip_employees_created_later(db_session, campus):
    _, newcomer = await create_user(db_session, "new@campus.test")
    newcomer.created_at = ensure_utc(at(12, 0, MONDAY + timedelta(days=1)))
    await db_session.commit()

    # admin and trainer only
    assert await mark_work_absences(db_session, MONDAY, at(19, 0), CUTOFF) == 2


@pytest.mark.asyncio
async def test_work_absences_need_a_term(db_session, campus):
    term = await db_session.get(Term, campus.term.id)
    term.is_active = False
    await db_session.commit()

    assert await mark_work_absences(db_session, MONDAY, at(19, 0), CUTOFF) == 0


@pytest.mark.asyncio
async def test_work_absences_stop_between_terms(db_session, campus):
    after_term = date(2026, 4, 6)  # Monday after the term ends
    assert await mark_work_absences(db_session, after_term, at(19, 0, after_term), CUTOFF) == 0


# ── Orchestration ───────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_reconcile_all_runs_every_step(db_session, campus):
    await add_work_record(db_session, campus.trainer_employee, at(8, 0))

    summary = await reconcile_all(db_session, at(18, 30), RULES)
    # Feb 23-27 and Mar 2 are working days; the trainer was present today
    assert summary.as_dict() == {
        "class_absences": 2,
        "class_checkouts": 0,
        "work_checkouts": 1,
        "work_absences": 11,
    }

    again = await reconcile_all(db_session, at(18, 40), RULES)
    assert again.as_dict() == {
        "class_absences": 0,
        "class_checkouts": 0,
        "work_checkouts": 0,
        "work_absences": 0,
    }


@pytest.mark.asyncio
async def test_job_run_once_uses_its_clock(session_factory, campus):
    job = ReconciliationJob(session_factory, interval=3600, now_fn=lambda: at(9, 12))
    summary = await job.run_once()
    assert summary.class_absences == 1


@pytest.mark.asyncio
async def test_job_start_and_stop(session_factory):
    job = ReconciliationJob(session_factory, interval=3600, now_fn=lambda: at(8, 0))
    assert job.running is False
    job.start()
    assert job.running is True
    await job.stop()
    assert job.running is False
