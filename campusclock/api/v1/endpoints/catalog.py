"""
Classes, subjects and rooms: the reference data timetable slots point at.

Reads are open to any authenticated user; writes need an admin or a
timetable admin. Deletes are soft (``is_active = False``).
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.api.v1.deps import (get_current_active_user, get_db,
                                     require_timetable_admin)
from campusclock.core.exceptions import Conflict, NotFound
from campusclock.db.base import Base
from campusclock.models.timetable import Room, SchoolClass, Subject
from campusclock.models.user import User
from campusclock.schemas.common import DeleteResult, Envelope
from campusclock.schemas.timetable import (ClassCreate, ClassRead,
                                           ClassUpdate, RoomCreate, RoomRead,
                                           RoomUpdate, SubjectCreate,
                                           SubjectRead, SubjectUpdate)

router = APIRouter(tags=["catalog"])
logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


async def _get_or_404(db: AsyncSession, model: type[ModelT], obj_id: int, label: str) -> ModelT:
    obj = await db.get(model, obj_id)
    if obj is None:
        raise NotFound(f"{label} not found")
    return obj


async def _ensure_unique(
    db: AsyncSession, column: Any, value: str, message: str, exclude_id: int | None = None
) -> None:
    model = column.class_
    stmt = select(model.id).where(func.lower(column) == value.lower())
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    if (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None:
        raise Conflict(message)


async def _list(db: AsyncSession, model: Any, include_inactive: bool, search: str | None) -> list:
    stmt = select(model)
    if not include_inactive:
        stmt = stmt.where(model.is_active.is_(True))
    if search:
        stmt = stmt.where(func.lower(model.name).like(f"%{search.lower()}%"))
    result = await db.execute(stmt.order_by(model.name))
    return list(result.scalars().all())


async def _apply(db: AsyncSession, obj: Any, changes: dict[str, Any]) -> None:
    for field, value in changes.items():
        setattr(obj, field, value)
    await db.commit()
    await db.refresh(obj)


# ── Classes ─────────────────────────────────────────────────────────
@router.post("/classes", response_model=Envelope[ClassRead], status_code=201)
async def create_class(
    body: ClassCreate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[ClassRead]:
    await _ensure_unique(db, SchoolClass.code, body.code, f"Class code {body.code} already exists")
    obj = SchoolClass(**body.model_dump(), is_active=True)
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    logger.info("Created class %s (%s)", obj.id, obj.code)
    return Envelope(data=ClassRead.model_validate(obj), message="Class created")


@router.get("/classes", response_model=Envelope[list[ClassRead]])
async def list_classes(
    include_inactive: bool = False,
    search: str | None = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[list[ClassRead]]:
    rows = await _list(db, SchoolClass, include_inactive, search)
    return Envelope(data=[ClassRead.model_validate(r) for r in rows])


@router.get("/classes/{class_id}", response_model=Envelope[ClassRead])
async def read_class(
    class_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[ClassRead]:
    obj = await _get_or_404(db, SchoolClass, class_id, "Class")
    return Envelope(data=ClassRead.model_validate(obj))


@router.put("/classes/{class_id}", response_model=Envelope[ClassRead])
async def update_class(
    class_id: int,
    body: ClassUpdate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[ClassRead]:
    obj = await _get_or_404(db, SchoolClass, class_id, "Class")
    changes = body.model_dump(exclude_unset=True)
    if changes.get("code"):
        await _ensure_unique(
            db, SchoolClass.code, changes["code"], f"Class code {changes['code']} already exists", obj.id
        )
    await _apply(db, obj, changes)
    logger.info("Updated class %s: %s", obj.id, sorted(changes))
    return Envelope(data=ClassRead.model_validate(obj), message="Class updated")


@router.delete("/classes/{class_id}", response_model=Envelope[DeleteResult])
async def delete_class(
    class_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[DeleteResult]:
    obj = await _get_or_404(db, SchoolClass, class_id, "Class")
    await _apply(db, obj, {"is_active": False})
    logger.info("Deactivated class %s", obj.id)
    return Envelope(data=DeleteResult(id=obj.id), message="Class deactivated")


# ── Subjects ────────────────────────────────────────────────────────
@router.post("/subjects", response_model=Envelope[SubjectRead], status_code=201)
async def create_subject(
    body: SubjectCreate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[SubjectRead]:
    await _ensure_unique(db, Subject.code, body.code, f"Subject code {body.code} already exists")
    obj = Subject(**body.model_dump(), is_active=True)
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    logger.info("Created subject %s (%s)", obj.id, obj.code)
    return Envelope(data=SubjectRead.model_validate(obj), message="Subject created")


@router.get("/subjects", response_model=Envelope[list[SubjectRead]])
async def list_subjects(
    include_inactive: bool = False,
    search: str | None = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[list[SubjectRead]]:
    rows = await _list(db, Subject, include_inactive, search)
    return Envelope(data=[SubjectRead.model_validate(r) for r in rows])


@router.get("/subjects/{subject_id}", response_model=Envelope[SubjectRead])
async def read_subject(
    subject_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[SubjectRead]:
    obj = await _get_or_404(db, Subject, subject_id, "Subject")
    return Envelope(data=SubjectRead.model_validate(obj))


@router.put("/subjects/{subject_id}", response_model=Envelope[SubjectRead])
async def update_subject(
    subject_id: int,
    body: SubjectUpdate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[SubjectRead]:
    obj = await _get_or_404(db, Subject, subject_id, "Subject")
    changes = body.model_dump(exclude_unset=True)
    if changes.get("code"):
        await _ensure_unique(
            db, Subject.code, changes["code"], f"Subject code {changes['code']} already exists", obj.id
        )
    await _apply(db, obj, changes)
    logger.info("Updated subject %s: %s", obj.id, sorted(changes))
    return Envelope(data=SubjectRead.model_validate(obj), message="Subject updated")


@router.delete("/subjects/{subject_id}", response_model=Envelope[DeleteResult])
async def delete_subject(
    subject_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[DeleteResult]:
    obj = await _get_or_404(db, Subject, subject_id, "Subject")
    await _apply(db, obj, {"is_active": False})
    logger.info("Deactivated subject %s", obj.id)
    return Envelope(data=DeleteResult(id=obj.id), message="Subject deactivated")


# ── Rooms ───────────────────────────────────────────────────────────
@router.post("/rooms", response_model=Envelope[RoomRead], status_code=201)
async def create_room(
    body: RoomCreate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[RoomRead]:
    await _ensure_unique(db, Room.name, body.name, f"Room {body.name} already exists")
    obj = Room(**body.model_dump(), is_active=True)
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    logger.info("Created room %s (%s)", obj.id, obj.name)
    return Envelope(data=RoomRead.model_validate(obj), message="Room created")


@router.get("/rooms", response_model=Envelope[list[RoomRead]])
async def list_rooms(
    include_inactive: bool = False,
    search: str | None = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[list[RoomRead]]:
    rows = await _list(db, Room, include_inactive, search)
    return Envelope(data=[RoomRead.model_validate(r) for r in rows])


@router.get("/rooms/{room_id}", response_model=Envelope[RoomRead])
async def read_room(
    room_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[RoomRead]:
    obj = await _get_or_404(db, Room, room_id, "Room")
    return Envelope(data=RoomRead.model_validate(obj))


@router.put("/rooms/{room_id}", response_model=Envelope[RoomRead])
async def update_room(
    room_id: int,
    body: RoomUpdate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[RoomRead]:
    obj = await _get_or_404(db, Room, room_id, "Room")
    changes = body.model_dump(exclude_unset=True)
    if changes.get("name"):
        await _ensure_unique(db, Room.name, changes["name"], f"Room {changes['name']} already exists", obj.id)
    await _apply(db, obj, changes)
    logger.info("Updated room %s: %s", obj.id, sorted(changes))
    return Envelope(data=RoomRead.model_validate(obj), message="Room updated")


@router.delete("/rooms/{room_id}", response_model=Envelope[DeleteResult])
async def delete_room(
    room_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_timetable_admin),
) -> Envelope[DeleteResult]:
    obj = await _get_or_404(db, Room, room_id, "Room")
    await _apply(db, obj, {"is_active": False})
    logger.info("Deactivated room %s", obj.id)
    return Envelope(data=DeleteResult(id=obj.id), message="Room deactivated")
