"""
Work-attendance session ledger and the capped hours calculation.

A day's ledger is an ordered list of check-in/check-out pairs. At most one
pair may be open at a time. Worked time is the sum of the session durations,
where each session is cut off at ``WORK_DAY_CUTOFF`` on its own check-in date so
a forgotten checkout never accrues past the end of the working day.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Iterable

from campusclock.core.exceptions import Conflict, DomainRuleViolation
from campusclock.services.clock import ensure_utc

logger = logging.getLogger(__name__)

DEFAULT_CUTOFF = time(18, 0)


@dataclass
class WorkSession:
    check_in: datetime
    check_out: datetime | None = None
    auto_checkout: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.check_out is None

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "check_in": ensure_utc(self.check_in).isoformat(),
            "check_out": ensure_utc(self.check_out).isoformat() if self.check_out else None,
        }
        if self.auto_checkout:
            data["auto_checkout"] = True
        if self.metadata:
            data["metadata"] = self.metadata
        return data

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> WorkSession | None:
        # Older rows used check_in_time / check_out_time keys
        check_in = raw.get("check_in") or raw.get("check_in_time")
        if not check_in:
            return None
        check_out = raw.get("check_out") or raw.get("check_out_time")
        return cls(
            check_in=_parse_ts(check_in),
            check_out=_parse_ts(check_out) if check_out else None,
            auto_checkout=bool(raw.get("auto_checkout", False)),
            metadata=dict(raw.get("metadata") or {}),
        )


@dataclass(frozen=True)
class WorkedTime:
    minutes: int
    ongoing: bool

    @property
    def formatted(self) -> str:
        return format_hours(self.minutes)

    @property
    def hours(self) -> float:
        return round(self.minutes / 60, 2)


def _parse_ts(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


# ── Ledger ──────────────────────────────────────────────────────────
def parse_sessions(raw: Any) -> list[WorkSession]:
    """Read a stored ledger. Accepts a list, a JSON string or ``None``."""
    if not raw:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unparseable sessions payload")
            return []
    if not isinstance(raw, list):
        return []
    sessions = []
    for entry in raw:
        if isinstance(entry, dict):
            session = WorkSession.from_json(entry)
            if session is not None:
                sessions.append(session)
    return sessions


def dump_sessions(sessions: Iterable[WorkSession]) -> list[dict[str, Any]]:
    return [s.to_json() for s in sessions]


def open_session(sessions: list[WorkSession]) -> WorkSession | None:
    return next((s for s in sessions if s.is_open), None)


def start_session(
    sessions: list[WorkSession],
    at: datetime,
    metadata: dict[str, Any] | None = None,
) -> WorkSession:
    if open_session(sessions) is not None:
        raise Conflict("You are already checked in. Please check out first.")
    session = WorkSession(check_in=ensure_utc(at), metadata=metadata or {})
    sessions.append(session)
    return session


def close_session(
    sessions: list[WorkSession],
    at: datetime,
    *,
    auto: bool = False,
    metadata: dict[str, Any] | None = None,
) -> WorkSession:
    session = open_session(sessions)
    if session is None:
        raise DomainRuleViolation("No active work session found")
    session.check_out = ensure_utc(at)
    session.auto_checkout = auto
    if metadata:
        session.metadata = {**session.metadata, "checkout": metadata}
    return session


# ── Hours ───────────────────────────────────────────────────────────
def cutoff_for(check_in: datetime, tz, cutoff: time = DEFAULT_CUTOFF) -> datetime:
    """Cutoff instant on the local calendar date of ``check_in``."""
    local = ensure_utc(check_in).astimezone(tz)
    return local.replace(hour=cutoff.hour, minute=cutoff.minute, second=0, microsecond=0)


def session_minutes(session: WorkSession, now: datetime, cutoff: time = DEFAULT_CUTOFF) -> WorkedTime:
    check_in = ensure_utc(session.check_in).astimezone(now.tzinfo)
    cap = cutoff_for(check_in, now.tzinfo, cutoff)
    if session.check_out is not None:
        end = min(ensure_utc(session.check_out), cap)
        ongoing = False
    else:
        end = min(now, cap)
        ongoing = now < cap
    minutes = max(0, math.floor((end - check_in).total_seconds() / 60))
    return WorkedTime(minutes=minutes, ongoing=ongoing)


def worked_minutes(
    sessions: Iterable[WorkSession],
    now: datetime,
    cutoff: time = DEFAULT_CUTOFF,
) -> WorkedTime:
    total = 0
    ongoing = False
    for session in sessions:
        part = session_minutes(session, now, cutoff)
        total += part.minutes
        ongoing = ongoing or part.ongoing
    return WorkedTime(minutes=total, ongoing=ongoing)


def record_ledger(
    sessions_raw: Any,
    check_in_time: datetime | None,
    check_out_time: datetime | None,
    record_date: date,
    today: date,
) -> list[WorkSession]:
    """Ledger for a stored record, falling back to the single-session columns.

    A legacy record left open on a past date counts for nothing.
    """
    sessions = parse_sessions(sessions_raw)
    if sessions or check_in_time is None:
        return sessions
    if check_out_time is None and record_date != today:
        return []
    check_out = ensure_utc(check_out_time) if check_out_time else None
    return [WorkSession(check_in=ensure_utc(check_in_time), check_out=check_out)]


def format_hours(minutes: int) -> str:
    return f"{minutes // 60}h {minutes % 60}m"
