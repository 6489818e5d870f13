"""
Loading the rules in force: the timetable settings singleton and the active term.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.models.timetable import Term
from campusclock.models.timetable_settings import TimetableSettings
from campusclock.services.clock import day_of_week
from campusclock.services.windows import (DEFAULT_CHECK_IN_WINDOW,
                                          DEFAULT_LATE_THRESHOLD,
                                          AttendanceRules)

logger = logging.getLogger(__name__)

DEFAULT_WORKING_DAYS = (1, 2, 3, 4, 5)


async def get_or_create_settings(db: AsyncSession) -> TimetableSettings:
    """Fetch the singleton settings row, creating it with defaults if absent."""
    result = await db.execute(select(TimetableSettings).limit(1))
    row = result.scalar_one_or_none()
    if row is None:
        row = TimetableSettings(
            id=1,
            attendance_check_in_window=DEFAULT_CHECK_IN_WINDOW,
            attendance_late_threshold=DEFAULT_LATE_THRESHOLD,
            attendance_location_required=False,
        )
        db.add(row)
        await db.commit()
        await db.refresh(row)
        logger.info("Created default timetable settings")
    return row


async def load_rules(db: AsyncSession) -> AttendanceRules:
    result = await db.execute(select(TimetableSettings).limit(1))
    return AttendanceRules.from_row(result.scalar_one_or_none())


async def get_active_term(db: AsyncSession) -> Term | None:
    result = await db.execute(
        select(Term)
        .where(Term.is_active.is_(True))
        .order_by(Term.start_date.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_term_for_day(db: AsyncSession, day: date) -> Term | None:
    """The active term whose date range contains ``day``."""
    result = await db.execute(
        select(Term)
        .where(
            Term.is_active.is_(True),
            Term.start_date <= day,
            Term.end_date >= day,
        )
        .order_by(Term.start_date.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def is_teaching_day(term: Term | None, day: date) -> bool:
    """An active term covers ``day``, it is one of its working days and not a declared holiday."""
    if term is None or not term.is_active or not term.start_date <= day <= term.end_date:
        return False
    if day_of_week(day) not in (term.working_days or DEFAULT_WORKING_DAYS):
        return False
    return day.isoformat() not in {str(h) for h in term.holidays or []}
