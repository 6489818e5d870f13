"""Tests for work attendance check-in / check-out."""

import pytest
from httpx import AsyncClient

from helpers import CAMPUS, FAR_AWAY, auth_headers

URL = "/api/v1/attendance"


def _body(action, location=CAMPUS, **extra):
    body = {"action": action, **extra}
    if location is not None:
        body["location"] = location
    return body


@pytest.mark.asyncio
async def test_requires_authentication(async_client: AsyncClient, campus):
    resp = await async_client.post(URL, json=_body("check-in"))
    assert resp.status_code == 401
    assert resp.json()["code"] == "not_authenticated"


@pytest.mark.asyncio
async def test_check_in_on_time(async_client: AsyncClient, campus, clock):
    clock.set(8, 0)
    resp = await async_client.post(URL, json=_body("check-in"), headers=auth_headers(campus.trainer))
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["success"] is True
    assert payload["message"] == "Checked in at 08:00"
    data = payload["data"]
    assert data["status"] == "Present"
    assert data["employee_name"] == "Tom Trainer"
    assert len(data["sessions"]) == 1
    assert data["ongoing"] is True
    assert data["check_out_time"] is None


@pytest.mark.asyncio
async def test_check_in_after_start_is_late(async_client: AsyncClient, campus, clock):
    clock.set(9, 30)
    resp = await async_client.post(URL, json=_body("check-in"), headers=auth_headers(campus.trainer))
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "Late"


@pytest.mark.asyncio
async def test_double_check_in_conflicts(async_client: AsyncClient, campus, clock):
    headers = auth_headers(campus.trainer)
    await async_client.post(URL, json=_body("check-in"), headers=headers)
    clock.set(8, 30)
    resp = await async_client.post(URL, json=_body("check-in"), headers=headers)
    assert resp.status_code == 409
    assert resp.json()["code"] == "conflict"


@pytest.mark.asyncio
async def test_multiple_sessions_accumulate(async_client: AsyncClient, campus, clock):
    headers = auth_headers(campus.trainer)
    clock.set(8, 0)
    await async_client.post(URL, json=_body("check-in"), headers=headers)
    clock.set(12, 0)
    out = await async_client.post(URL, json=_body("check-out"), headers=headers)
    assert out.status_code == 200
    assert out.json()["data"]["worked"] == "4h 0m"
    assert out.json()["data"]["ongoing"] is False

    clock.set(13, 0)
    again = await async_client.post(URL, json=_body("check-in"), headers=headers)
    assert again.status_code == 200
    data = again.json()["data"]
    assert len(data["sessions"]) == 2
    assert data["status"] == "Present"
    assert data["check_out_time"] is None

    clock.set(14, 30)
    listing = await async_client.get(URL, headers=headers)
    body = listing.json()["data"]
    assert body["is_checked_in"] is True
    assert body["records"][0]["worked_minutes"] == 240 + 90


@pytest.mark.asyncio
async def test_check_in_window_bounds(async_client: AsyncClient, campus, clock):
    headers = auth_headers(campus.trainer)
    clock.set(5, 59)
    early = await async_client.post(URL, json=_body("check-in"), headers=headers)
    assert early.status_code == 400
    assert early.json()["code"] == "domain_rule"

    clock.set(18, 0)
    late = await async_client.post(URL, json=_body("check-in"), headers=headers)
    assert late.status_code == 400


@pytest.mark.asyncio
async def test_check_out_without_check_in(async_client: AsyncClient, campus, clock):
    clock.set(10, 0)
    resp = await async_client.post(URL, json=_body("check-out"), headers=auth_headers(campus.trainer))
    assert resp.status_code == 400
    assert resp.json()["error"] == "No check-in record found for today"


@pytest.mark.asyncio
async def test_manual_check_out_after_cutoff_rejected(async_client: AsyncClient, campus, clock):
    headers = auth_headers(campus.trainer)
    await async_client.post(URL, json=_body("check-in"), headers=headers)
    clock.set(18, 15)
    resp = await async_client.post(URL, json=_body("check-out"), headers=headers)
    assert resp.status_code == 400
    assert "automatically" in resp.json()["error"]


@pytest.mark.asyncio
async def test_outside_geofence_rejected(async_client: AsyncClient, campus, clock):
    resp = await async_client.post(
        URL, json=_body("check-in", FAR_AWAY), headers=auth_headers(campus.trainer)
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "You must be within the school premises to record attendance"
    assert 990 <= body["distance"] <= 1010


@pytest.mark.asyncio
async def test_location_required_unless_online(async_client: AsyncClient, campus, clock):
    admin = auth_headers(campus.admin)
    put = await async_client.put(
        "/api/v1/timetable-settings", json={"attendance_location_required": True}, headers=admin
    )
    assert put.status_code == 200

    headers = auth_headers(campus.trainer)
    missing = await async_client.post(URL, json=_body("check-in", None), headers=headers)
    assert missing.status_code == 400
    assert missing.json()["error"] == "Location is required to record attendance"

    online = await async_client.post(URL, json=_body("check-in", None, is_online=True), headers=headers)
    assert online.status_code == 200


@pytest.mark.asyncio
async def test_invalid_latitude_is_validation_error(async_client: AsyncClient, campus):
    resp = await async_client.post(
        URL,
        json=_body("check-in", {"latitude": 123.0, "longitude": 0.0}),
        headers=auth_headers(campus.trainer),
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_admin_sees_everyone(async_client: AsyncClient, campus, clock):
    await async_client.post(URL, json=_body("check-in"), headers=auth_headers(campus.trainer))
    await async_client.post(URL, json=_body("check-in"), headers=auth_headers(campus.admin))

    resp = await async_client.get(URL, headers=auth_headers(campus.admin))
    assert resp.status_code == 200
    names = sorted(r["employee_name"] for r in resp.json()["data"]["records"])
    assert names == ["Ada Admin", "Tom Trainer"]


@pytest.mark.asyncio
async def test_reconcile_is_admin_only(async_client: AsyncClient, campus, clock):
    clock.set(9, 12)
    forbidden = await async_client.post(f"{URL}/reconcile", headers=auth_headers(campus.trainer))
    assert forbidden.status_code == 403

    resp = await async_client.post(f"{URL}/reconcile", headers=auth_headers(campus.admin))
    assert resp.status_code == 200
    assert resp.json()["data"]["class_absences"] == 1
