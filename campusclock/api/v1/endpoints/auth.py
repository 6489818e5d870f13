"""
Auth endpoints: login (OAuth2 password flow), token refresh, logout and
password change.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Cookie, Depends, Request, Response
from fastapi.security import OAuth2PasswordRequestForm
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.api.v1.deps import get_current_active_user, get_db
from campusclock.core.config import settings
from campusclock.core.exceptions import (DomainRuleViolation, Forbidden,
                                         NotAuthenticated)
from campusclock.core.security import (create_access_token,
                                       create_refresh_token,
                                       decode_refresh_token,
                                       get_password_hash, verify_password)
from campusclock.models.user import User
from campusclock.schemas.common import Envelope
from campusclock.schemas.token import LogoutResponse, RefreshRequest, Token
from campusclock.schemas.user import PasswordChange, UserRead

# Rate limiter keyed by client IP
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=f"Bearer {access_token}",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    response.set_cookie(
        key="refresh_token",
        value=refresh_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


def _issue_tokens(response: Response, user: User) -> Token:
    access_token = create_access_token(user.id, role=user.role)
    refresh_token = create_refresh_token(user.id)
    _set_auth_cookies(response, access_token, refresh_token)
    return Token(access_token=access_token, refresh_token=refresh_token)


@router.post("/login", response_model=Token)
@limiter.limit("5/minute")
async def login_for_access_token(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
) -> Token:
    """Authenticate with email/password. Returns the tokens and sets HttpOnly cookies."""
    result = await db.execute(
        select(User).where(User.email == form_data.username.lower().strip())
    )
    user = result.scalar_one_or_none()

    if user is None or not verify_password(form_data.password, user.hashed_password):
        logger.info("Failed login for %s", form_data.username)
        raise NotAuthenticated("Incorrect email or password")
    if not user.is_active:
        raise Forbidden("User account is inactive")

    logger.info("User %s logged in", user.id)
    return _issue_tokens(response, user)


@router.post("/refresh", response_model=Token)
@limiter.limit("10/minute")
async def refresh_access_token_endpoint(
    request: Request,
    response: Response,
    body: RefreshRequest | None = None,
    refresh_token_cookie: str | None = Cookie(None, alias="refresh_token"),
    db: AsyncSession = Depends(get_db),
) -> Token:
    # Priority: Body > Cookie
    token_str = body.refresh_token if body and body.refresh_token else refresh_token_cookie
    if not token_str:
        raise NotAuthenticated("Refresh token missing")

    payload = decode_refresh_token(token_str)
    result = await db.execute(select(User).where(User.id == int(payload["sub"])))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise NotAuthenticated("User not found or inactive")

    return _issue_tokens(response, user)


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response) -> LogoutResponse:
    """Clear auth cookies and end the session."""
    response.delete_cookie("access_token")
    response.delete_cookie("refresh_token")
    return LogoutResponse(message="Logged out")


@router.get("/me", response_model=Envelope[UserRead])
async def read_current_user(
    current_user: User = Depends(get_current_active_user),
) -> Envelope[UserRead]:
    """Return the currently authenticated user."""
    return Envelope(data=UserRead.model_validate(current_user))


@router.post("/change-password", response_model=Envelope[UserRead])
async def change_password(
    body: PasswordChange,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Envelope[UserRead]:
    if not verify_password(body.current_password, current_user.hashed_password):
        raise DomainRuleViolation("Current password is incorrect")
    if body.current_password == body.new_password:
        raise DomainRuleViolation("New password must differ from the current password")

    current_user.hashed_password = get_password_hash(body.new_password)
    await db.commit()
    await db.refresh(current_user)
    logger.info("User %s changed their password", current_user.id)
    return Envelope(data=UserRead.model_validate(current_user), message="Password updated")
