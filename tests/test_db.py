"""Tests for the request-scoped database session dependency."""

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from campusclock.api.v1 import deps
from campusclock.db import session as db_session_module


def test_deps_exposes_the_session_dependency():
    assert deps.get_db is db_session_module.get_db


@pytest.mark.asyncio
async def test_get_db_yields_a_working_session():
    sessions = db_session_module.get_db()
    session = await sessions.__anext__()
    assert isinstance(session, AsyncSession)
    assert (await session.execute(text("SELECT 1"))).scalar() == 1
    await sessions.aclose()
