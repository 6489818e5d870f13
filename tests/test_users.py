"""Tests for user management, the employee directory and the profile."""

import pytest
from httpx import AsyncClient

from helpers import auth_headers

API = "/api/v1"


@pytest.mark.asyncio
async def test_create_user_with_employee_profile(async_client: AsyncClient, campus):
    headers = auth_headers(campus.admin)
    resp = await async_client.post(
        f"{API}/users",
        json={
            "email": " Jane@Campus.test ",
            "password": "long-enough-pw",
            "name": "Jane Doe",
            "role": "trainer",
            "department": "ICT",
        },
        headers=headers,
    )
    assert resp.status_code == 201
    user = resp.json()["data"]
    assert user["email"] == "jane@campus.test"
    assert user["role"] == "trainer"

    employees = await async_client.get(f"{API}/employees", params={"search": "jane"}, headers=headers)
    rows = employees.json()["data"]
    assert len(rows) == 1
    assert rows[0]["user_id"] == user["id"]
    assert rows[0]["department"] == "ICT"


@pytest.mark.asyncio
async def test_duplicate_email_conflicts(async_client: AsyncClient, campus):
    resp = await async_client.post(
        f"{API}/users",
        json={"email": "trainer@campus.test", "password": "long-enough-pw", "name": "Dup"},
        headers=auth_headers(campus.admin),
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_invalid_role_rejected(async_client: AsyncClient, campus):
    resp = await async_client.post(
        f"{API}/users",
        json={"email": "x@campus.test", "password": "long-enough-pw", "name": "X", "role": "wizard"},
        headers=auth_headers(campus.admin),
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_user_management_is_admin_only(async_client: AsyncClient, campus):
    resp = await async_client.get(f"{API}/users", headers=auth_headers(campus.trainer))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_admin_cannot_demote_self(async_client: AsyncClient, campus):
    resp = await async_client.put(
        f"{API}/users/{campus.admin.id}", json={"role": "trainer"}, headers=auth_headers(campus.admin)
    )
    assert resp.status_code == 400

    delete = await async_client.delete(f"{API}/users/{campus.admin.id}", headers=auth_headers(campus.admin))
    assert delete.status_code == 400


@pytest.mark.asyncio
async def test_deactivated_user_leaves_directory(async_client: AsyncClient, campus):
    headers = auth_headers(campus.admin)
    resp = await async_client.delete(f"{API}/users/{campus.trainer.id}", headers=headers)
    assert resp.status_code == 200

    employees = await async_client.get(f"{API}/employees", headers=headers)
    assert [e["name"] for e in employees.json()["data"]] == ["Ada Admin"]
    everyone = await async_client.get(f"{API}/employees", params={"include_inactive": True}, headers=headers)
    assert len(everyone.json()["data"]) == 2


@pytest.mark.asyncio
async def test_rename_syncs_employee(async_client: AsyncClient, campus):
    headers = auth_headers(campus.admin)
    await async_client.put(f"{API}/users/{campus.trainer.id}", json={"name": "Thomas Trainer"}, headers=headers)
    employee = await async_client.get(f"{API}/employees/{campus.trainer_employee.id}", headers=headers)
    assert employee.json()["data"]["name"] == "Thomas Trainer"


@pytest.mark.asyncio
async def test_profile_update(async_client: AsyncClient, campus):
    headers = auth_headers(campus.trainer)
    resp = await async_client.put(
        f"{API}/profile", json={"phone": "+254700000000", "name": "Tom T."}, headers=headers
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user"]["name"] == "Tom T."
    assert data["employee"]["phone"] == "+254700000000"

    taken = await async_client.put(f"{API}/profile", json={"email": "admin@campus.test"}, headers=headers)
    assert taken.status_code == 409
