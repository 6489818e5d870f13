"""
Lesson periods: the fixed daily time slots lessons are scheduled into.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.api.v1.deps import (get_current_active_user, get_db,
                                     require_timetable_admin)
from campusclock.core.exceptions import Conflict, NotFound, ValidationFailed
from campusclock.models.timetable import LessonPeriod
from campusclock.models.user import User
from campusclock.schemas.common import DeleteResult, Envelope
from campusclock.schemas.timetable import (LessonPeriodCreate,
                                           LessonPeriodRead,
                                           LessonPeriodUpdate)

router = APIRouter(prefix="/lesson-periods", tags=["lesson-periods"])
logger = logging.getLogger(__name__)


def _duration_minutes(start: time, end: time) -> int:
    delta = datetime.combine(date.min, end) - datetime.combine(date.min, start)
    return int(delta.total_seconds() // 60)


async def _get_period(db: AsyncSession, period_id: int) -> LessonPeriod:
    period = await db.get(LessonPeriod, period_id)
    if period is None:
        raise NotFound("Lesson period not found")
    return period


async def _ensure_no_overlap(
    db: AsyncSession, start: time, end: time, exclude_id: int | None = None
) -> None:
    stmt = select(LessonPeriod).where(
        LessonPeriod.is_active.is_(True),
        LessonPeriod.start_time < end,
        LessonPeriod.end_time > start,
    )
    if exclude_id is not None:
        stmt = stmt.where(LessonPeriod.id != exclude_id)
    overlapping = (await db.execute(stmt.limit(1))).scalar_one_or_none()
    if overlapping is not None:
        raise Conflict(
            "This time slot overlaps with an existing lesson period",
            overlapping_period={"id": overlapping.id, "name": overlapping.name},
        )


@router.post("", response_model=Envelope[LessonPeriodRead], status_code=201)
async def create_lesson_period(
    body: LessonPeriodCreate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[LessonPeriodRead]:
    await _ensure_no_overlap(db, body.start_time, body.end_time)
    period = LessonPeriod(
        name=body.name,
        start_time=body.start_time,
        end_time=body.end_time,
        duration=_duration_minutes(body.start_time, body.end_time),
        is_active=True,
    )
    db.add(period)
    await db.commit()
    await db.refresh(period)
    logger.info("Created lesson period %s (%s-%s)", period.name, period.start_time, period.end_time)
    return Envelope(data=LessonPeriodRead.model_validate(period), message="Lesson period created successfully")


@router.get("", response_model=Envelope[list[LessonPeriodRead]])
async def list_lesson_periods(
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[list[LessonPeriodRead]]:
    stmt = select(LessonPeriod)
    if not include_inactive:
        stmt = stmt.where(LessonPeriod.is_active.is_(True))
    result = await db.execute(stmt.order_by(LessonPeriod.start_time))
    return Envelope(data=[LessonPeriodRead.model_validate(p) for p in result.scalars().all()])


@router.get("/{period_id}", response_model=Envelope[LessonPeriodRead])
async def read_lesson_period(
    period_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[LessonPeriodRead]:
    return Envelope(data=LessonPeriodRead.model_validate(await _get_period(db, period_id)))


@router.put("/{period_id}", response_model=Envelope[LessonPeriodRead])
async def update_lesson_period(
    period_id: int,
    body: LessonPeriodUpdate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[LessonPeriodRead]:
    period = await _get_period(db, period_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)

    start = changes.get("start_time", period.start_time)
    end = changes.get("end_time", period.end_time)
    if start >= end:
        raise ValidationFailed("Start time must be before end time")
    if changes.get("is_active", period.is_active):
        await _ensure_no_overlap(db, start, end, exclude_id=period.id)

    if "name" in changes:
        period.name = changes["name"].strip()
    if "is_active" in changes:
        period.is_active = changes["is_active"]
    period.start_time = start
    period.end_time = end
    period.duration = _duration_minutes(start, end)

    await db.commit()
    await db.refresh(period)
    logger.info("Updated lesson period %s: %s", period.id, sorted(changes))
    return Envelope(data=LessonPeriodRead.model_validate(period), message="Lesson period updated")


@router.delete("/{period_id}", response_model=Envelope[DeleteResult])
async def delete_lesson_period(
    period_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[DeleteResult]:
    period = await _get_period(db, period_id)
    period.is_active = False
    await db.commit()
    logger.info("Deactivated lesson period %s", period.id)
    return Envelope(data=DeleteResult(id=period.id), message="Lesson period deactivated")
