"""
User management (admin only).

Creating a user also creates the linked employee profile in the same
transaction; deleting a user only deactivates it.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.api.v1.deps import get_db, require_admin
from campusclock.core.exceptions import Conflict, DomainRuleViolation, NotFound
from campusclock.core.security import get_password_hash
from campusclock.models.employee import Employee
from campusclock.models.user import User
from campusclock.schemas.common import DeleteResult, Envelope
from campusclock.schemas.user import UserCreate, UserRead, UserUpdate

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


@router.post("", response_model=Envelope[UserRead], status_code=201)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> Envelope[UserRead]:
    """Create a user account together with its employee profile."""
    existing = await db.execute(select(User.id).where(User.email == body.email))
    if existing.scalar_one_or_none() is not None:
        raise Conflict("Email already registered")

    user = User(
        email=body.email,
        hashed_password=get_password_hash(body.password),
        name=body.name,
        role=body.role,
        has_timetable_admin=body.has_timetable_admin,
    )
    db.add(user)
    await db.flush()
    db.add(
        Employee(
            user_id=user.id,
            name=body.name,
            email=body.email,
            id_number=body.id_number,
            phone=body.phone,
            department=body.department,
            position=body.position,
        )
    )
    await db.commit()
    await db.refresh(user)
    logger.info("Created %s user %s (%s)", user.role, user.id, user.email)
    return Envelope(data=UserRead.model_validate(user), message="User created")


@router.get("", response_model=Envelope[list[UserRead]])
async def list_users(
    search: str | None = Query(None, max_length=100),
    role: str | None = None,
    include_inactive: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> Envelope[list[UserRead]]:
    stmt = select(User)
    if not include_inactive:
        stmt = stmt.where(User.is_active.is_(True))
    if role:
        stmt = stmt.where(User.role == role)
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern))
        )
    result = await db.execute(stmt.order_by(User.id).offset(skip).limit(limit))
    return Envelope(data=[UserRead.model_validate(u) for u in result.scalars().all()])


@router.put("/{user_id}", response_model=Envelope[UserRead])
async def update_user(
    user_id: int,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> Envelope[UserRead]:
    user = await _get_user(db, user_id)
    changes = body.model_dump(exclude_unset=True, exclude_none=True)

    if user.id == admin.id and (changes.get("is_active") is False or changes.get("role", "admin") != "admin"):
        raise DomainRuleViolation("You cannot demote or deactivate your own account")

    password = changes.pop("password", None)
    if password is not None:
        if len(password) < 8:
            raise DomainRuleViolation("Password must be at least 8 characters")
        user.hashed_password = get_password_hash(password)
    for field, value in changes.items():
        setattr(user, field, value)

    if "name" in changes:
        result = await db.execute(select(Employee).where(Employee.user_id == user.id))
        employee = result.scalar_one_or_none()
        if employee is not None:
            employee.name = changes["name"]

    await db.commit()
    await db.refresh(user)
    logger.info("Updated user %s: %s", user.id, sorted(changes))
    return Envelope(data=UserRead.model_validate(user), message="User updated")


@router.delete("/{user_id}", response_model=Envelope[DeleteResult])
async def deactivate_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> Envelope[DeleteResult]:
    """Soft delete: the account is deactivated, attendance history is kept."""
    user = await _get_user(db, user_id)
    if user.id == admin.id:
        raise DomainRuleViolation("You cannot deactivate your own account")
    user.is_active = False
    await db.commit()
    logger.info("Deactivated user %s", user.id)
    return Envelope(data=DeleteResult(id=user.id), message="User deactivated")
