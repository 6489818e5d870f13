"""
Academic terms.

Active terms may not overlap. Holidays must fall inside the term's date range.
Deleting a term only deactivates it.
"""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.api.v1.deps import (get_current_active_user, get_db,
                                     require_timetable_admin)
from campusclock.core.exceptions import Conflict, NotFound, ValidationFailed
from campusclock.models.timetable import Term
from campusclock.models.user import User
from campusclock.schemas.common import DeleteResult, Envelope
from campusclock.schemas.timetable import TermCreate, TermRead, TermUpdate
from campusclock.services.rules import get_active_term

router = APIRouter(prefix="/terms", tags=["terms"])
logger = logging.getLogger(__name__)


async def _get_term(db: AsyncSession, term_id: int) -> Term:
    term = await db.get(Term, term_id)
    if term is None:
        raise NotFound("Term not found")
    return term


async def _ensure_no_overlap(
    db: AsyncSession, start: date, end: date, exclude_id: int | None = None
) -> None:
    stmt = select(Term).where(
        Term.is_active.is_(True),
        Term.start_date <= end,
        Term.end_date >= start,
    )
    if exclude_id is not None:
        stmt = stmt.where(Term.id != exclude_id)
    overlapping = (await db.execute(stmt.limit(1))).scalar_one_or_none()
    if overlapping is not None:
        raise Conflict(
            "Term dates overlap with an existing active term",
            overlapping_term={"id": overlapping.id, "name": overlapping.name},
        )


def _validate_range(start: date, end: date, holidays: list[date]) -> None:
    if start >= end:
        raise ValidationFailed("Start date must be before end date")
    for holiday in holidays:
        if holiday < start or holiday > end:
            raise ValidationFailed(f"Holiday {holiday.isoformat()} is outside the term date range")


@router.post("", response_model=Envelope[TermRead], status_code=201)
async def create_term(
    body: TermCreate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[TermRead]:
    await _ensure_no_overlap(db, body.start_date, body.end_date)
    term = Term(
        name=body.name,
        start_date=body.start_date,
        end_date=body.end_date,
        working_days=body.working_days,
        holidays=sorted(h.isoformat() for h in set(body.holidays)),
        is_active=True,
    )
    db.add(term)
    await db.commit()
    await db.refresh(term)

    count = len(term.holidays)
    logger.info("Created term %s (%s) with %d holiday(s)", term.id, term.name, count)
    return Envelope(
        data=TermRead.model_validate(term),
        message=f"Term created successfully with {count} holiday{'' if count == 1 else 's'}",
    )


@router.get("", response_model=Envelope[list[TermRead]])
async def list_terms(
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[list[TermRead]]:
    stmt = select(Term)
    if not include_inactive:
        stmt = stmt.where(Term.is_active.is_(True))
    result = await db.execute(stmt.order_by(Term.start_date.desc()))
    return Envelope(data=[TermRead.model_validate(t) for t in result.scalars().all()])


@router.get("/active", response_model=Envelope[TermRead])
async def read_active_term(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[TermRead]:
    term = await get_active_term(db)
    if term is None:
        raise NotFound("No active term")
    return Envelope(data=TermRead.model_validate(term))


@router.get("/{term_id}", response_model=Envelope[TermRead])
async def read_term(
    term_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[TermRead]:
    return Envelope(data=TermRead.model_validate(await _get_term(db, term_id)))


@router.put("/{term_id}", response_model=Envelope[TermRead])
async def update_term(
    term_id: int,
    body: TermUpdate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[TermRead]:
    term = await _get_term(db, term_id)
    changes = body.model_dump(exclude_unset=True)

    start = changes.get("start_date") or term.start_date
    end = changes.get("end_date") or term.end_date
    holidays = (
        changes["holidays"] if changes.get("holidays") is not None
        else [date.fromisoformat(h) for h in term.holidays or []]
    )
    _validate_range(start, end, holidays)

    is_active = changes.get("is_active", term.is_active)
    if is_active:
        await _ensure_no_overlap(db, start, end, exclude_id=term.id)

    if "name" in changes and changes["name"] is not None:
        term.name = changes["name"].strip()
    if changes.get("working_days") is not None:
        term.working_days = changes["working_days"]
    if "is_active" in changes and changes["is_active"] is not None:
        term.is_active = changes["is_active"]
    term.start_date = start
    term.end_date = end
    term.holidays = sorted(h.isoformat() for h in set(holidays))

    await db.commit()
    await db.refresh(term)
    logger.info("Updated term %s: %s", term.id, sorted(changes))
    return Envelope(data=TermRead.model_validate(term), message="Term updated")


@router.delete("/{term_id}", response_model=Envelope[DeleteResult])
async def delete_term(
    term_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[DeleteResult]:
    term = await _get_term(db, term_id)
    term.is_active = False
    await db.commit()
    logger.info("Deactivated term %s", term.id)
    return Envelope(data=DeleteResult(id=term.id), message="Term deactivated")
