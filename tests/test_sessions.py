"""Tests for the work-session ledger and the capped hours calculation."""

import json
import random
from datetime import time, timedelta

import pytest

from campusclock.core.exceptions import Conflict, DomainRuleViolation
from campusclock.services.clock import ensure_utc
from campusclock.services.sessions import (WorkSession, close_session,
                                           dump_sessions, format_hours,
                                           open_session, parse_sessions,
                                           record_ledger, session_minutes,
                                           start_session, worked_minutes)
from helpers import MONDAY, at

CUTOFF = time(18, 0)


def test_closed_session_before_cutoff():
    session = WorkSession(check_in=at(8, 0), check_out=at(12, 30))
    worked = session_minutes(session, at(13, 0), CUTOFF)
    assert worked.minutes == 270
    assert worked.ongoing is False


def test_open_session_counts_until_now():
    worked = worked_minutes([WorkSession(check_in=at(8, 0))], at(10, 15), CUTOFF)
    assert worked.minutes == 135
    assert worked.ongoing is True


def test_open_session_is_capped_at_cutoff():
    worked = worked_minutes([WorkSession(check_in=at(8, 0))], at(22, 0), CUTOFF)
    assert worked.minutes == 600
    assert worked.ongoing is False


def test_late_checkout_is_capped_at_cutoff():
    session = WorkSession(check_in=at(16, 0), check_out=at(19, 30))
    assert session_minutes(session, at(20, 0), CUTOFF).minutes == 120


def test_session_started_after_cutoff_is_zero():
    session = WorkSession(check_in=at(18, 30), check_out=at(19, 0))
    assert session_minutes(session, at(20, 0), CUTOFF).minutes == 0


def test_open_session_from_previous_day_caps_at_that_days_cutoff():
    yesterday = MONDAY - timedelta(days=1)
    worked = worked_minutes([WorkSession(check_in=at(9, 0, yesterday))], at(10, 0), CUTOFF)
    assert worked.minutes == 540
    assert worked.ongoing is False


def test_multiple_sessions_are_summed():
    sessions = [
        WorkSession(check_in=at(8, 0), check_out=at(10, 0)),
        WorkSession(check_in=at(11, 0), check_out=at(12, 30)),
        WorkSession(check_in=at(17, 0)),
    ]
    worked = worked_minutes(sessions, at(17, 45), CUTOFF)
    assert worked.minutes == 120 + 90 + 45
    assert worked.ongoing is True
    assert worked.formatted == "4h 15m"


def test_sum_never_exceeds_span_to_cutoff():
    rng = random.Random(3)
    day_start = at(6, 0)
    for _ in range(100):
        offset = 0
        sessions = []
        while offset < 14 * 60:
            start = offset + rng.randint(0, 90)
            end = start + rng.randint(1, 180)
            sessions.append(
                WorkSession(
                    check_in=day_start + timedelta(minutes=start),
                    check_out=day_start + timedelta(minutes=end),
                )
            )
            offset = end + 1
        worked = worked_minutes(sessions, at(23, 30), CUTOFF)
        assert 0 <= worked.minutes <= (18 - 6) * 60


def test_start_session_rejects_second_open_session():
    sessions: list[WorkSession] = []
    start_session(sessions, at(8, 0))
    with pytest.raises(Conflict):
        start_session(sessions, at(9, 0))
    assert len(sessions) == 1


def test_close_session_without_open_session():
    with pytest.raises(DomainRuleViolation):
        close_session([], at(9, 0))


def test_start_close_start_keeps_order():
    sessions: list[WorkSession] = []
    start_session(sessions, at(8, 0))
    close_session(sessions, at(10, 0))
    start_session(sessions, at(11, 0))
    assert open_session(sessions) is sessions[1]
    assert sessions[0].check_out == ensure_utc(at(10, 0))


def test_ledger_survives_json_storage():
    sessions = [WorkSession(check_in=at(8, 0), check_out=at(9, 0), auto_checkout=True)]
    stored = json.dumps(dump_sessions(sessions))
    restored = parse_sessions(stored)
    assert restored[0].check_in == ensure_utc(at(8, 0))
    assert restored[0].check_out == ensure_utc(at(9, 0))
    assert restored[0].auto_checkout is True


def test_parse_sessions_accepts_legacy_keys_and_garbage():
    raw = [
        {"check_in_time": "2026-03-02T05:00:00Z", "check_out_time": None},
        {"unrelated": True},
        "not-a-dict",
    ]
    sessions = parse_sessions(raw)
    assert len(sessions) == 1
    assert sessions[0].check_in == ensure_utc(at(8, 0))
    assert sessions[0].is_open
    assert parse_sessions("{not json") == []
    assert parse_sessions(None) == []


def test_record_ledger_falls_back_to_columns():
    sessions = record_ledger([], at(8, 0), at(12, 0), MONDAY, MONDAY)
    assert len(sessions) == 1
    assert worked_minutes(sessions, at(13, 0), CUTOFF).minutes == 240


def test_record_ledger_ignores_stale_open_legacy_record():
    yesterday = MONDAY - timedelta(days=1)
    assert record_ledger(None, at(8, 0, yesterday), None, yesterday, MONDAY) == []


def test_format_hours():
    assert format_hours(0) == "0h 0m"
    assert format_hours(61) == "1h 1m"
    assert format_hours(600) == "10h 0m"
