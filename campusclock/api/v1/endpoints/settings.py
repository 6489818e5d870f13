"""
Timetable settings endpoints: the check-in window rules.

Singleton pattern: only one row in timetable_settings. GET retrieves it,
PUT updates it. If no row exists, one is created with defaults on first GET.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.api.v1.deps import get_db, require_timetable_admin
from campusclock.models.user import User
from campusclock.schemas.common import Envelope
from campusclock.schemas.timetable import (TimetableSettingsRead,
                                           TimetableSettingsUpdate)
from campusclock.services.rules import get_or_create_settings

router = APIRouter(prefix="/timetable-settings", tags=["settings"])
logger = logging.getLogger(__name__)


@router.get("", response_model=Envelope[TimetableSettingsRead])
async def get_settings(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[TimetableSettingsRead]:
    """Get the current check-in window rules."""
    row = await get_or_create_settings(db)
    return Envelope(data=TimetableSettingsRead.model_validate(row))


@router.put("", response_model=Envelope[TimetableSettingsRead])
async def update_settings(
    body: TimetableSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[TimetableSettingsRead]:
    """Update the check-in window, late threshold and location requirement."""
    row = await get_or_create_settings(db)

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(row, field, value)
    row.updated_at = datetime.now(timezone.utc)

    await db.commit()
    await db.refresh(row)
    logger.info("Timetable settings updated: %s", changes)
    return Envelope(data=TimetableSettingsRead.model_validate(row), message="Settings updated successfully")
