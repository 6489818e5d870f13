"""
FastAPI dependencies: auth guards, database session, clock and rules.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import Cookie, Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.core.config import settings
from campusclock.core.exceptions import Forbidden, NotAuthenticated
from campusclock.core.security import decode_access_token
from campusclock.db.session import get_db
from campusclock.models.user import User
from campusclock.services.clock import now_local
from campusclock.services.rules import load_rules
from campusclock.services.windows import AttendanceRules

# auto_error=False so the cookie can be tried when the header is missing
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_PREFIX}/auth/login", auto_error=False
)


# ── Clock / rules ───────────────────────────────────────────────────
def get_now() -> datetime:
    """Current instant in the configured timezone. Overridden in tests."""
    return now_local()


async def get_rules(db: AsyncSession = Depends(get_db)) -> AttendanceRules:
    return await load_rules(db)


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode JWT from Header OR Cookie, look up user."""
    # Priority: Header > Cookie
    final_token = token
    if not final_token and access_token:
        # Cookie is written as "Bearer <token>"
        final_token = access_token.removeprefix("Bearer ")

    if not final_token:
        raise NotAuthenticated("Not authenticated")

    payload = decode_access_token(final_token)
    result = await db.execute(select(User).where(User.id == int(payload["sub"])))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotAuthenticated("Could not validate credentials")
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Reject inactive accounts."""
    if not current_user.is_active:
        raise Forbidden("User account is inactive")
    return current_user


async def require_admin(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Only allow admin role to proceed."""
    if current_user.role != "admin":
        raise Forbidden("Admin privileges required")
    return current_user


async def require_timetable_admin(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Admins and users flagged as timetable admins."""
    if not current_user.can_manage_timetable:
        raise Forbidden("Admin or Timetable Admin access required")
    return current_user
