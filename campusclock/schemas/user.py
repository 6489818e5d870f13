"""Pydantic schemas for User / Employee CRUD and the profile."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from campusclock.models.user import ROLES

_VALID_ROLES = set(ROLES)


def _normalise_email(v: str) -> str:
    v = v.strip().lower()
    if "@" not in v:
        raise ValueError("Invalid email address")
    return v


class UserCreate(BaseModel):
    email: str
    password: str
    name: str
    role: str = "employee"
    has_timetable_admin: bool = False
    id_number: str | None = None
    phone: str | None = None
    department: str | None = None
    position: str | None = None

    @field_validator("role")
    @classmethod
    def _validate_role(cls, v: str) -> str:
        if v not in _VALID_ROLES:
            raise ValueError(f"Role must be one of: {sorted(_VALID_ROLES)}")
        return v

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _normalise_email(v)

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters")
        return v

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be empty")
        return v


class UserRead(BaseModel):
    id: int
    email: str
    name: str | None
    role: str
    has_timetable_admin: bool
    is_active: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


class UserUpdate(BaseModel):
    name: str | None = None
    role: str | None = None
    has_timetable_admin: bool | None = None
    is_active: bool | None = None
    password: str | None = None

    @field_validator("role")
    @classmethod
    def _validate_role(cls, v: str | None) -> str | None:
        if v is not None and v not in _VALID_ROLES:
            raise ValueError(f"Role must be one of: {sorted(_VALID_ROLES)}")
        return v


class PasswordChange(BaseModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def _password(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters")
        return v


class EmployeeRead(BaseModel):
    id: int
    user_id: int
    name: str
    email: str | None
    id_number: str | None
    phone: str | None
    department: str | None
    position: str | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class EmployeeUpdate(BaseModel):
    name: str | None = None
    id_number: str | None = None
    phone: str | None = None
    department: str | None = None
    position: str | None = None


class ProfileRead(BaseModel):
    user: UserRead
    employee: EmployeeRead | None


class ProfileUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None

    @field_validator("email")
    @classmethod
    def _email(cls, v: str | None) -> str | None:
        return _normalise_email(v) if v is not None else None
