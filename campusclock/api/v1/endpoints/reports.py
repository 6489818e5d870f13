"""
Reporting & analytics endpoints.

Each report fetches its rows in **one** SQL query and aggregates in Python.
Worked hours always go through ``services.sessions`` so every report applies
the same daily cutoff.
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterator
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.api.v1.deps import get_current_active_user, get_db, get_now
from campusclock.core.config import settings
from campusclock.core.exceptions import ValidationFailed
from campusclock.models.class_attendance import ClassAttendanceRecord
from campusclock.models.employee import AttendanceRecord, Employee
from campusclock.models.user import User
from campusclock.schemas.attendance import (AnalyticsRead, AttendanceReport,
                                            ClassAttendanceReport,
                                            EmployeeStatsRead, HealthResponse,
                                            StatusResponse, TrainerClassStats)
from campusclock.schemas.common import Envelope
from campusclock.services.analytics import (AttendanceAnalytics, AttendanceRow,
                                            summarise_attendance)
from campusclock.services.clock import to_local
from campusclock.services.sessions import (format_hours, open_session,
                                           record_ledger, worked_minutes)

router = APIRouter(tags=["reports"])
logger = logging.getLogger(__name__)

DEFAULT_REPORT_DAYS = 30


# ── Helpers ─────────────────────────────────────────────────────────
def _date_range(start: date | None, end: date | None, now: datetime) -> tuple[date, date]:
    end = end or now.date()
    start = start or end - timedelta(days=DEFAULT_REPORT_DAYS - 1)
    if start > end:
        raise ValidationFailed("start must not be after end")
    return start, end


async def _work_rows(
    db: AsyncSession, user: User, start: date, end: date
) -> list[tuple[AttendanceRecord, Employee]]:
    stmt = (
        select(AttendanceRecord, Employee)
        .join(Employee, AttendanceRecord.employee_id == Employee.id)
        .where(AttendanceRecord.date >= start, AttendanceRecord.date <= end)
        .order_by(AttendanceRecord.date, Employee.name)
    )
    if user.role != "admin":
        stmt = stmt.where(Employee.user_id == user.id)
    result = await db.execute(stmt)
    return [(rec, emp) for rec, emp in result.all()]


def _record_summary(record: AttendanceRecord, now: datetime) -> tuple[datetime | None, datetime | None, int]:
    """First check-in and last check-out (local time) and capped worked minutes."""
    sessions = record_ledger(
        record.sessions, record.check_in_time, record.check_out_time, record.date, now.date()
    )
    worked = worked_minutes(sessions, now, settings.WORK_DAY_CUTOFF)
    first_in = to_local(sessions[0].check_in, now.tzinfo) if sessions else None
    outs = [s.check_out for s in sessions if s.check_out is not None]
    last_out = to_local(max(outs), now.tzinfo) if outs else None
    return first_in, last_out, worked.minutes


def _analytics_read(analytics: AttendanceAnalytics) -> AnalyticsRead:
    return AnalyticsRead(
        total_records=analytics.total_records,
        status_counts=analytics.status_counts,
        status_percentages=analytics.status_percentages,
        check_in_hours=analytics.check_in_hours,
        peak_check_in_hour=analytics.peak_check_in_hour,
        late_count=analytics.late_count,
        late_percentage=analytics.late_percentage,
        avg_work_hours=analytics.avg_work_hours,
        employee_stats={
            name: EmployeeStatsRead(
                total_days=s.total_days,
                present=s.present,
                late=s.late,
                absent=s.absent,
                total_minutes=s.total_minutes,
                total_hours=s.total_hours,
            )
            for name, s in analytics.employee_stats.items()
        },
    )


# ── Work attendance analytics ───────────────────────────────────────
@router.get("/reports/attendance", response_model=Envelope[AttendanceReport])
async def attendance_report(
    start: date | None = None,
    end: date | None = None,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    current_user: User = Depends(get_current_active_user),
) -> Envelope[AttendanceReport]:
    """Status mix, check-in histogram, lateness and hours for a date range."""
    start, end = _date_range(start, end, now)
    rows = []
    for record, employee in await _work_rows(db, current_user, start, end):
        first_in, _, minutes = _record_summary(record, now)
        rows.append(
            AttendanceRow(
                employee_name=employee.name,
                status=record.status,
                first_check_in=first_in,
                minutes=minutes,
            )
        )
    analytics = summarise_attendance(rows)
    return Envelope(data=AttendanceReport(start=start, end=end, analytics=_analytics_read(analytics)))


@router.get("/reports/attendance/csv")
async def attendance_csv(
    start: date | None = None,
    end: date | None = None,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    current_user: User = Depends(get_current_active_user),
) -> StreamingResponse:
    """Export work attendance as a CSV file download."""
    start, end = _date_range(start, end, now)
    rows = await _work_rows(db, current_user, start, end)

    def _fmt_time(ts: datetime | None) -> str:
        return ts.strftime("%I:%M %p") if ts else ""

    def iter_csv() -> Iterator[str]:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(
            ["employee_id", "name", "date", "status", "first_in", "last_out", "worked", "worked_minutes"]
        )
        for record, employee in rows:
            first_in, last_out, minutes = _record_summary(record, now)
            writer.writerow(
                [
                    employee.id,
                    employee.name,
                    record.date.isoformat(),
                    record.status,
                    _fmt_time(first_in),
                    _fmt_time(last_out),
                    format_hours(minutes),
                    minutes,
                ]
            )
            yield buffer.getvalue()
            buffer.seek(0)
            buffer.truncate(0)
        yield buffer.getvalue()

    return StreamingResponse(
        iter_csv(),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=attendance_{start}_{end}.csv"
        },
    )


# ── Class attendance ────────────────────────────────────────────────
@router.get("/reports/class-attendance", response_model=Envelope[ClassAttendanceReport])
async def class_attendance_report(
    start: date | None = None,
    end: date | None = None,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    current_user: User = Depends(get_current_active_user),
) -> Envelope[ClassAttendanceReport]:
    """Per-trainer Present / Late / Absent counts and attendance rate."""
    start, end = _date_range(start, end, now)
    stmt = (
        select(
            ClassAttendanceRecord.trainer_id,
            User.name,
            ClassAttendanceRecord.status,
            func.count(ClassAttendanceRecord.id),
        )
        .join(User, ClassAttendanceRecord.trainer_id == User.id)
        .where(ClassAttendanceRecord.date >= start, ClassAttendanceRecord.date <= end)
        .group_by(ClassAttendanceRecord.trainer_id, User.name, ClassAttendanceRecord.status)
    )
    if current_user.role != "admin":
        stmt = stmt.where(ClassAttendanceRecord.trainer_id == current_user.id)
    result = await db.execute(stmt)

    trainers: dict[int, TrainerClassStats] = {}
    for trainer_id, name, status, count in result.all():
        stats = trainers.setdefault(
            trainer_id, TrainerClassStats(trainer_id=trainer_id, trainer_name=name)
        )
        key = (status or "").lower()
        if key in ("present", "late", "absent"):
            setattr(stats, key, getattr(stats, key) + count)
        stats.total += count

    for stats in trainers.values():
        attended = stats.present + stats.late
        stats.attendance_rate = round(attended / stats.total * 100, 1) if stats.total else 0.0

    ordered = sorted(trainers.values(), key=lambda s: (s.trainer_name or "", s.trainer_id))
    return Envelope(data=ClassAttendanceReport(start=start, end=end, trainers=ordered))


# ── Health / Status ─────────────────────────────────────────────────
@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Public health check: DB and Redis connectivity."""
    result = HealthResponse(db=False, redis=False)

    try:
        await db.execute(select(1))
        result.db = True
    except Exception as e:
        logger.error("Health check DB failure: %s", e)

    try:
        import redis.asyncio as aioredis

        r = aioredis.from_url(settings.REDIS_URL)
        await r.ping()
        await r.aclose()
        result.redis = True
    except Exception as e:
        logger.error("Health check Redis failure: %s", e)

    return result


@router.get("/status", response_model=Envelope[StatusResponse])
async def system_status(
    request: Request,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    _user: User = Depends(get_current_active_user),
) -> Envelope[StatusResponse]:
    """Employee count, today's records and how many people are checked in right now."""
    emp_count = await db.execute(
        select(func.count(Employee.id))
        .join(User, Employee.user_id == User.id)
        .where(User.is_active.is_(True))
    )
    today_result = await db.execute(
        select(AttendanceRecord).where(AttendanceRecord.date == now.date())
    )
    today_records = list(today_result.scalars().all())
    checked_in = sum(
        1
        for rec in today_records
        if open_session(
            record_ledger(rec.sessions, rec.check_in_time, rec.check_out_time, rec.date, now.date())
        )
        is not None
    )

    job = getattr(request.app.state, "reconciler", None)
    return Envelope(
        data=StatusResponse(
            total_employees=emp_count.scalar() or 0,
            today_records=len(today_records),
            checked_in_now=checked_in,
            reconciler_running=bool(job and job.running),
            status="operational",
            server_time=now,
        )
    )
