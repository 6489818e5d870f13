"""Seed helpers and clock utilities shared by the test modules."""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.core.config import settings
from campusclock.core.security import create_access_token
from campusclock.models.employee import AttendanceRecord, Employee
from campusclock.models.timetable import (LessonPeriod, Room, SchoolClass,
                                          Subject, Term, TimetableSlot)
from campusclock.models.user import User
from campusclock.services.clock import ensure_utc
from campusclock.services.sessions import WorkSession, dump_sessions

TZ = ZoneInfo(settings.TIMEZONE)
# Monday; timetable day number 1
MONDAY = date(2026, 3, 2)
CAMPUS = {"latitude": settings.GEOFENCE_LATITUDE, "longitude": settings.GEOFENCE_LONGITUDE}
# Roughly 1 km north of the campus centre
FAR_AWAY = {"latitude": settings.GEOFENCE_LATITUDE + 0.009, "longitude": settings.GEOFENCE_LONGITUDE}
SEED_CREATED_AT = datetime(2026, 1, 1, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    """A local wall-clock instant on ``day``."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=TZ)


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def set(self, hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
        self.now = at(hour, minute, day)
        return self.now


@dataclass
class Campus:
    """A small timetable: one active term, periods at 09:00 and 11:00, one trainer."""

    admin: User
    trainer: User
    trainer_employee: Employee
    term: Term
    first_period: LessonPeriod
    second_period: LessonPeriod
    school_class: SchoolClass
    subject: Subject
    online_subject: Subject
    room: Room
    first_slot: TimetableSlot
    second_slot: TimetableSlot


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role)}"}


async def create_user(
    session: AsyncSession,
    email: str,
    role: str = "employee",
    name: str | None = None,
    hashed_password: str = "not-a-real-hash",
) -> tuple[User, Employee]:
    user = User(
        email=email,
        hashed_password=hashed_password,
        name=name or email.split("@")[0].title(),
        role=role,
        has_timetable_admin=False,
        is_active=True,
        created_at=SEED_CREATED_AT,
    )
    session.add(user)
    await session.flush()
    employee = Employee(user_id=user.id, name=user.name, email=email, created_at=SEED_CREATED_AT)
    session.add(employee)
    await session.flush()
    return user, employee


async def seed_campus(session: AsyncSession) -> Campus:
    admin, _ = await create_user(session, "admin@campus.test", role="admin", name="Ada Admin")
    trainer, trainer_employee = await create_user(
        session, "trainer@campus.test", role="trainer", name="Tom Trainer"
    )
    term = Term(
        name="Term 1 2026",
        start_date=date(2026, 1, 5),
        end_date=date(2026, 4, 3),
        working_days=[1, 2, 3, 4, 5],
        holidays=[],
        is_active=True,
    )
    first_period = LessonPeriod(
        name="Period 1", start_time=time(9, 0), end_time=time(10, 0), duration=60, is_active=True
    )
    second_period = LessonPeriod(
        name="Period 2", start_time=time(11, 0), end_time=time(12, 0), duration=60, is_active=True
    )
    school_class = SchoolClass(name="ICT Level 5", code="ICT5", is_active=True)
    subject = Subject(name="Networking", code="NET101", can_be_online=False, is_active=True)
    online_subject = Subject(name="Databases", code="DB201", can_be_online=True, is_active=True)
    room = Room(name="Lab 1", capacity=30, is_active=True)
    session.add_all([term, first_period, second_period, school_class, subject, online_subject, room])
    await session.flush()

    first_slot = TimetableSlot(
        term_id=term.id,
        class_id=school_class.id,
        subject_id=subject.id,
        trainer_id=trainer.id,
        room_id=room.id,
        lesson_period_id=first_period.id,
        day_of_week=1,
        status="scheduled",
        is_online_session=False,
    )
    second_slot = TimetableSlot(
        term_id=term.id,
        class_id=school_class.id,
        subject_id=online_subject.id,
        trainer_id=trainer.id,
        room_id=room.id,
        lesson_period_id=second_period.id,
        day_of_week=1,
        status="scheduled",
        is_online_session=True,
    )
    session.add_all([first_slot, second_slot])
    await session.commit()

    return Campus(
        admin=admin,
        trainer=trainer,
        trainer_employee=trainer_employee,
        term=term,
        first_period=first_period,
        second_period=second_period,
        school_class=school_class,
        subject=subject,
        online_subject=online_subject,
        room=room,
        first_slot=first_slot,
        second_slot=second_slot,
    )


async def add_work_record(
    session: AsyncSession,
    employee: Employee,
    check_in: datetime,
    check_out: datetime | None = None,
    status: str = "Present",
) -> AttendanceRecord:
    """Insert a work record whose ledger holds a single session."""
    ledger = [WorkSession(check_in=ensure_utc(check_in), check_out=ensure_utc(check_out) if check_out else None)]
    record = AttendanceRecord(
        employee_id=employee.id,
        date=check_in.date(),
        status=status,
        check_in_time=ensure_utc(check_in),
        check_out_time=ensure_utc(check_out) if check_out else None,
        sessions=dump_sessions(ledger),
    )
    session.add(record)
    await session.commit()
    return record
