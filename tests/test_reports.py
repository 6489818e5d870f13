"""Tests for attendance analytics, CSV export, class reports, health and status."""

import csv
import io

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from campusclock.models.employee import Employee

from helpers import add_work_record, at, auth_headers

API = "/api/v1"


@pytest.fixture
async def worked_day(session_factory, campus):
    """Trainer worked 08:00-12:00; the admin arrived late and never checked out."""
    async with session_factory() as session:
        await add_work_record(session, campus.trainer_employee, at(8, 0), at(12, 0))
        admin_employee = await _employee(session, campus.admin.id)
        await add_work_record(session, admin_employee, at(9, 30), status="Late")
    return campus


async def _employee(session, user_id):
    result = await session.execute(select(Employee).where(Employee.user_id == user_id))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_attendance_analytics_caps_open_sessions(async_client: AsyncClient, worked_day, clock):
    clock.set(20, 0)
    resp = await async_client.get(f"{API}/reports/attendance", headers=auth_headers(worked_day.admin))
    assert resp.status_code == 200
    analytics = resp.json()["data"]["analytics"]
    assert analytics["total_records"] == 2
    assert analytics["status_counts"] == {"present": 1, "late": 1}
    assert analytics["check_in_hours"] == {"08:00": 1, "09:00": 1}
    assert analytics["late_percentage"] == 50.0

    stats = analytics["employee_stats"]
    assert stats["Tom Trainer"]["total_minutes"] == 240
    # 09:30 until the 18:00 cutoff
    assert stats["Ada Admin"]["total_minutes"] == 510
    assert stats["Ada Admin"]["total_hours"] == 8.5


@pytest.mark.asyncio
async def test_non_admin_sees_only_own_rows(async_client: AsyncClient, worked_day, clock):
    clock.set(20, 0)
    resp = await async_client.get(f"{API}/reports/attendance", headers=auth_headers(worked_day.trainer))
    analytics = resp.json()["data"]["analytics"]
    assert analytics["total_records"] == 1
    assert list(analytics["employee_stats"]) == ["Tom Trainer"]


@pytest.mark.asyncio
async def test_report_range_validation(async_client: AsyncClient, campus):
    resp = await async_client.get(
        f"{API}/reports/attendance",
        params={"start": "2026-03-10", "end": "2026-03-01"},
        headers=auth_headers(campus.admin),
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_csv_export(async_client: AsyncClient, worked_day, clock):
    clock.set(20, 0)
    resp = await async_client.get(f"{API}/reports/attendance/csv", headers=auth_headers(worked_day.admin))
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "attachment" in resp.headers["content-disposition"]

    rows = list(csv.DictReader(io.StringIO(resp.text)))
    by_name = {r["name"]: r for r in rows}
    assert by_name["Tom Trainer"]["first_in"] == "08:00 AM"
    assert by_name["Tom Trainer"]["last_out"] == "12:00 PM"
    assert by_name["Tom Trainer"]["worked"] == "4h 0m"
    assert by_name["Ada Admin"]["worked_minutes"] == "510"
    assert by_name["Ada Admin"]["last_out"] == ""


@pytest.mark.asyncio
async def test_class_attendance_report(async_client: AsyncClient, campus, clock):
    admin = auth_headers(campus.admin)
    clock.set(11, 30)
    await async_client.post(f"{API}/attendance/reconcile", headers=admin)

    resp = await async_client.get(f"{API}/reports/class-attendance", headers=admin)
    assert resp.status_code == 200
    trainers = resp.json()["data"]["trainers"]
    assert len(trainers) == 1
    stats = trainers[0]
    assert stats["trainer_name"] == "Tom Trainer"
    assert (stats["present"], stats["late"], stats["absent"], stats["total"]) == (0, 0, 2, 2)
    assert stats["attendance_rate"] == 0.0


@pytest.mark.asyncio
async def test_health_reports_database(async_client: AsyncClient):
    resp = await async_client.get(f"{API}/health")
    assert resp.status_code == 200
    assert resp.json()["db"] is True


@pytest.mark.asyncio
async def test_status_counts_open_sessions(async_client: AsyncClient, worked_day, clock):
    clock.set(14, 0)
    resp = await async_client.get(f"{API}/status", headers=auth_headers(worked_day.trainer))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total_employees"] == 2
    assert data["today_records"] == 2
    assert data["checked_in_now"] == 1
    assert data["reconciler_running"] is False
    assert data["status"] == "operational"
