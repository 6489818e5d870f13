"""
Work attendance: daily check-in / check-out with a multi-session ledger.

One record per employee per day. Each check-in appends a session, each
check-out closes the open one. Worked time is always computed through
``services.sessions`` so this listing, the CSV export and the analytics agree.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.api.v1.deps import (get_current_active_user, get_db, get_now,
                                     get_rules, require_admin)
from campusclock.core.config import settings
from campusclock.core.exceptions import (Conflict, DomainRuleViolation,
                                         NotFound)
from campusclock.models.employee import AttendanceRecord, Employee
from campusclock.models.user import User
from campusclock.schemas.attendance import (AttendanceListResponse,
                                            AttendanceRecordRead,
                                            LocationReport, ReconcileResult,
                                            WorkAttendanceRequest,
                                            WorkSessionRead)
from campusclock.schemas.common import Envelope
from campusclock.services.clock import ensure_utc
from campusclock.services.geofence import (GeofenceResult, GeoPoint,
                                           require_within)
from campusclock.services.reconciler import reconcile_all
from campusclock.services.sessions import (close_session, dump_sessions,
                                           open_session, record_ledger,
                                           start_session, worked_minutes)
from campusclock.services.windows import AttendanceRules

router = APIRouter(prefix="/attendance", tags=["attendance"])
logger = logging.getLogger(__name__)

ADMIN_WINDOW_DAYS = 7
EMPLOYEE_WINDOW_DAYS = 30


# ── Helpers ─────────────────────────────────────────────────────────
def campus_centre() -> GeoPoint:
    return GeoPoint(settings.GEOFENCE_LATITUDE, settings.GEOFENCE_LONGITUDE)


def verify_location(location: LocationReport | None, *, required: bool) -> GeofenceResult | None:
    """Geofence a reported position. Raises when missing-but-required or outside."""
    if location is None:
        if required:
            raise DomainRuleViolation("Location is required to record attendance")
        return None
    return require_within(
        location.latitude,
        location.longitude,
        campus_centre(),
        settings.GEOFENCE_RADIUS_METERS,
    )


def _location_metadata(location: LocationReport | None, is_online: bool) -> dict:
    metadata: dict = {"online": True} if is_online else {}
    if location is not None:
        metadata["location"] = {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "accuracy": location.accuracy,
        }
    return metadata


async def employee_for_user(db: AsyncSession, user: User) -> Employee:
    result = await db.execute(select(Employee).where(Employee.user_id == user.id))
    employee = result.scalar_one_or_none()
    if employee is None:
        raise NotFound("Employee profile not found")
    return employee


def to_record_read(
    record: AttendanceRecord, now: datetime, employee_name: str | None = None
) -> AttendanceRecordRead:
    sessions = record_ledger(
        record.sessions, record.check_in_time, record.check_out_time, record.date, now.date()
    )
    worked = worked_minutes(sessions, now, settings.WORK_DAY_CUTOFF)
    return AttendanceRecordRead(
        id=record.id,
        employee_id=record.employee_id,
        employee_name=employee_name,
        date=record.date,
        status=record.status,
        check_in_time=ensure_utc(record.check_in_time) if record.check_in_time else None,
        check_out_time=ensure_utc(record.check_out_time) if record.check_out_time else None,
        sessions=[
            WorkSessionRead(check_in=s.check_in, check_out=s.check_out, auto_checkout=s.auto_checkout)
            for s in sessions
        ],
        worked=worked.formatted,
        worked_minutes=worked.minutes,
        ongoing=worked.ongoing,
    )


async def _todays_record(db: AsyncSession, employee_id: int, now: datetime) -> AttendanceRecord | None:
    result = await db.execute(
        select(AttendanceRecord).where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.date == now.date(),
        )
    )
    return result.scalar_one_or_none()


# ── Listing ─────────────────────────────────────────────────────────
@router.get("", response_model=Envelope[AttendanceListResponse])
async def list_attendance(
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    current_user: User = Depends(get_current_active_user),
) -> Envelope[AttendanceListResponse]:
    """Admins see everyone's last week; everyone else sees their own last month."""
    today = now.date()

    if current_user.role == "admin":
        result = await db.execute(
            select(AttendanceRecord, Employee.name)
            .join(Employee, AttendanceRecord.employee_id == Employee.id)
            .where(AttendanceRecord.date >= today - timedelta(days=ADMIN_WINDOW_DAYS - 1))
            .order_by(AttendanceRecord.date.desc(), Employee.name.asc())
        )
        records = [to_record_read(rec, now, name) for rec, name in result.all()]
        return Envelope(data=AttendanceListResponse(records=records))

    employee = await employee_for_user(db, current_user)
    result = await db.execute(
        select(AttendanceRecord)
        .where(
            AttendanceRecord.employee_id == employee.id,
            AttendanceRecord.date >= today - timedelta(days=EMPLOYEE_WINDOW_DAYS - 1),
        )
        .order_by(AttendanceRecord.date.desc())
    )
    records = [to_record_read(rec, now, employee.name) for rec in result.scalars().all()]
    todays = next((r for r in records if r.date == today), None)
    is_checked_in = bool(
        todays is not None
        and any(s.check_out is None for s in todays.sessions)
        and now.time() < settings.WORK_DAY_CUTOFF
    )
    return Envelope(data=AttendanceListResponse(records=records, is_checked_in=is_checked_in))


# ── Check-in / Check-out ────────────────────────────────────────────
@router.post("", response_model=Envelope[AttendanceRecordRead])
async def record_attendance(
    body: WorkAttendanceRequest,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    rules: AttendanceRules = Depends(get_rules),
    current_user: User = Depends(get_current_active_user),
) -> Envelope[AttendanceRecordRead]:
    employee = await employee_for_user(db, current_user)
    verify_location(body.location, required=rules.location_required and not body.is_online)
    metadata = _location_metadata(body.location, body.is_online)

    if body.action == "check-in":
        record = await _check_in(db, employee, now, metadata)
        message = f"Checked in at {now:%H:%M}"
    else:
        record = await _check_out(db, employee, now, metadata)
        message = f"Checked out at {now:%H:%M}"

    logger.info("Employee %s %s at %s", employee.id, body.action, now.isoformat())
    return Envelope(data=to_record_read(record, now, employee.name), message=message)


async def _check_in(
    db: AsyncSession, employee: Employee, now: datetime, metadata: dict
) -> AttendanceRecord:
    if now.time() < settings.WORK_CHECK_IN_OPENS:
        raise DomainRuleViolation(
            f"Check-in not allowed before {settings.WORK_CHECK_IN_OPENS:%H:%M}"
        )
    if now.time() >= settings.WORK_DAY_CUTOFF:
        raise DomainRuleViolation(
            f"Check-in not allowed after {settings.WORK_DAY_CUTOFF:%H:%M}"
        )

    status = "Late" if now.time() > settings.WORK_START else "Present"
    record = await _todays_record(db, employee.id, now)

    if record is None:
        sessions: list = []
        start_session(sessions, now, metadata)
        record = AttendanceRecord(
            employee_id=employee.id,
            date=now.date(),
            status=status,
            check_in_time=ensure_utc(now),
            check_out_time=None,
            sessions=dump_sessions(sessions),
        )
        db.add(record)
    else:
        sessions = record_ledger(
            record.sessions, record.check_in_time, record.check_out_time, record.date, now.date()
        )
        start_session(sessions, now, metadata)
        record.sessions = dump_sessions(sessions)
        record.check_out_time = None
        if record.check_in_time is None or record.status == "Absent":
            record.check_in_time = ensure_utc(now)
            record.status = status

    try:
        await db.commit()
    except IntegrityError as exc:
        # Concurrent first check-in for the same day
        await db.rollback()
        raise Conflict("You are already checked in. Please check out first.") from exc
    await db.refresh(record)
    return record


async def _check_out(
    db: AsyncSession, employee: Employee, now: datetime, metadata: dict
) -> AttendanceRecord:
    if now.time() >= settings.WORK_DAY_CUTOFF:
        raise DomainRuleViolation(
            f"Manual check-out not allowed after {settings.WORK_DAY_CUTOFF:%H:%M}. "
            "The system will check you out automatically."
        )

    record = await _todays_record(db, employee.id, now)
    if record is None or record.check_in_time is None:
        raise DomainRuleViolation("No check-in record found for today")

    sessions = record_ledger(
        record.sessions, record.check_in_time, record.check_out_time, record.date, now.date()
    )
    close_session(sessions, now, metadata=metadata)
    record.sessions = dump_sessions(sessions)
    record.check_out_time = ensure_utc(now)
    await db.commit()
    await db.refresh(record)
    return record


async def open_work_record(
    db: AsyncSession, employee_id: int, now: datetime
) -> AttendanceRecord | None:
    """Today's work record if it has an open session, else ``None``."""
    record = await _todays_record(db, employee_id, now)
    if record is None:
        return None
    sessions = record_ledger(
        record.sessions, record.check_in_time, record.check_out_time, record.date, now.date()
    )
    return record if open_session(sessions) is not None else None


# ── Reconciliation ──────────────────────────────────────────────────
@router.post("/reconcile", response_model=Envelope[ReconcileResult])
async def run_reconciliation(
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    rules: AttendanceRules = Depends(get_rules),
    _admin: User = Depends(require_admin),
) -> Envelope[ReconcileResult]:
    """Run one reconciliation pass now instead of waiting for the scheduler."""
    summary = await reconcile_all(db, now, rules)
    logger.info("Manual reconciliation by admin: %s", summary.as_dict())
    return Envelope(data=ReconcileResult(**summary.as_dict()), message="Reconciliation complete")
