"""
Employee directory and the caller's own profile.

- GET operations require any authenticated user.
- PUT /employees/{id} requires admin role.
- /profile reads and updates the caller's user and employee rows together.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.api.v1.deps import (get_current_active_user, get_db,
                                     require_admin)
from campusclock.core.exceptions import Conflict, NotFound
from campusclock.models.employee import Employee
from campusclock.models.user import User
from campusclock.schemas.common import Envelope
from campusclock.schemas.user import (EmployeeRead, EmployeeUpdate,
                                      ProfileRead, ProfileUpdate, UserRead)

router = APIRouter(tags=["employees"])
logger = logging.getLogger(__name__)


async def _employee_for_user(db: AsyncSession, user_id: int) -> Employee | None:
    result = await db.execute(select(Employee).where(Employee.user_id == user_id))
    return result.scalar_one_or_none()


# ── Employees ───────────────────────────────────────────────────────
@router.get("/employees", response_model=Envelope[list[EmployeeRead]])
async def list_employees(
    search: str | None = Query(None, max_length=100),
    department: str | None = None,
    include_inactive: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[list[EmployeeRead]]:
    """List employees, optionally filtered by a name/email/ID-number search."""
    stmt = select(Employee).join(User, Employee.user_id == User.id)
    if not include_inactive:
        stmt = stmt.where(User.is_active.is_(True))
    if department:
        stmt = stmt.where(Employee.department == department)
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Employee.name).like(pattern),
                func.lower(Employee.email).like(pattern),
                func.lower(Employee.id_number).like(pattern),
            )
        )
    result = await db.execute(stmt.order_by(Employee.name).offset(skip).limit(limit))
    return Envelope(data=[EmployeeRead.model_validate(e) for e in result.scalars().all()])


@router.get("/employees/{employee_id}", response_model=Envelope[EmployeeRead])
async def get_employee(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Envelope[EmployeeRead]:
    employee = await db.get(Employee, employee_id)
    if employee is None:
        raise NotFound("Employee not found")
    return Envelope(data=EmployeeRead.model_validate(employee))


@router.put("/employees/{employee_id}", response_model=Envelope[EmployeeRead])
async def update_employee(
    employee_id: int,
    body: EmployeeUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> Envelope[EmployeeRead]:
    employee = await db.get(Employee, employee_id)
    if employee is None:
        raise NotFound("Employee not found")

    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(employee, field, value)
    if "name" in changes:
        user = await db.get(User, employee.user_id)
        if user is not None:
            user.name = changes["name"]

    await db.commit()
    await db.refresh(employee)
    logger.info("Updated employee %s: %s", employee.id, sorted(changes))
    return Envelope(data=EmployeeRead.model_validate(employee), message="Employee updated")


# ── Profile ─────────────────────────────────────────────────────────
@router.get("/profile", response_model=Envelope[ProfileRead])
async def read_profile(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Envelope[ProfileRead]:
    employee = await _employee_for_user(db, current_user.id)
    return Envelope(
        data=ProfileRead(
            user=UserRead.model_validate(current_user),
            employee=EmployeeRead.model_validate(employee) if employee else None,
        )
    )


@router.put("/profile", response_model=Envelope[ProfileRead])
async def update_profile(
    body: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Envelope[ProfileRead]:
    """Update the caller's name, email and phone on both rows in one commit."""
    changes = body.model_dump(exclude_unset=True, exclude_none=True)

    if "email" in changes and changes["email"] != current_user.email:
        taken = await db.execute(
            select(User.id).where(User.email == changes["email"], User.id != current_user.id)
        )
        if taken.scalar_one_or_none() is not None:
            raise Conflict("Email already registered")

    employee = await _employee_for_user(db, current_user.id)
    if "name" in changes:
        current_user.name = changes["name"]
    if "email" in changes:
        current_user.email = changes["email"]
    if employee is not None:
        for field in ("name", "email", "phone"):
            if field in changes:
                setattr(employee, field, changes[field])

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(current_user)
    if employee is not None:
        await db.refresh(employee)
    logger.info("User %s updated their profile: %s", current_user.id, sorted(changes))
    return Envelope(
        data=ProfileRead(
            user=UserRead.model_validate(current_user),
            employee=EmployeeRead.model_validate(employee) if employee else None,
        ),
        message="Profile updated",
    )
