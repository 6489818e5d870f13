"""
JWT token creation / verification and password hashing (bcrypt).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from campusclock.core.config import settings
from campusclock.core.exceptions import NotAuthenticated, TokenExpired

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_ALGORITHM = settings.ALGORITHM
_SECRET = settings.SECRET_KEY


# ── Passwords ───────────────────────────────────────────────────────
def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(plain: str) -> str:
    return pwd_context.hash(plain)


# ── JWT tokens ──────────────────────────────────────────────────────
def _encode(subject: str | Any, token_type: str, expires_delta: timedelta, **claims: Any) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    return jwt.encode(
        {"exp": expire, "sub": str(subject), "type": token_type, **claims},
        _SECRET,
        algorithm=_ALGORITHM,
    )


def create_access_token(
    subject: str | Any,
    expires_delta: timedelta | None = None,
    role: str | None = None,
) -> str:
    claims = {"role": role} if role else {}
    return _encode(
        subject,
        "access",
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        **claims,
    )


def create_refresh_token(subject: str | Any) -> str:
    return _encode(subject, "refresh", timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))


def _decode(token: str, expected_type: str) -> dict:
    try:
        payload = jwt.decode(token, _SECRET, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpired("Session expired, please log in again") from exc
    except JWTError as exc:
        raise NotAuthenticated("Could not validate credentials") from exc
    if payload.get("type") != expected_type or payload.get("sub") is None:
        raise NotAuthenticated("Could not validate credentials")
    return payload


def decode_access_token(token: str) -> dict:
    """Return the payload of a valid *access* token.

    Raises ``TokenExpired`` for an expired signature and ``NotAuthenticated``
    for anything else that does not verify.
    """
    return _decode(token, "access")


def decode_refresh_token(token: str) -> dict:
    """Return the payload of a valid *refresh* token (same errors as above)."""
    return _decode(token, "refresh")
