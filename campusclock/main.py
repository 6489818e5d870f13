"""
CampusClock application entry point.

This is the **only** file that assembles the app.  All business logic
lives in the `api/`, `services/`, `models/`, and `core/` packages.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

import campusclock.models  # noqa: F401  (registers every table on Base.metadata)
from campusclock.api.v1.api import api_router
from campusclock.api.v1.endpoints.auth import limiter
from campusclock.core.config import settings
from campusclock.core.exceptions import register_exception_handlers
from campusclock.core.security import get_password_hash
from campusclock.db.base import Base
from campusclock.db.session import async_session_factory, engine
from campusclock.models.employee import Employee
from campusclock.models.user import User
from campusclock.services.scheduler import ReconciliationJob

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


async def seed_admin() -> None:
    """Create the first administrator (and its employee profile) if missing."""
    async with async_session_factory() as session:
        result = await session.execute(
            select(User).where(User.email == settings.FIRST_ADMIN_EMAIL)
        )
        if result.scalar_one_or_none() is not None:
            return
        admin = User(
            email=settings.FIRST_ADMIN_EMAIL,
            hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
            name="System Administrator",
            role="admin",
            has_timetable_admin=True,
        )
        session.add(admin)
        await session.flush()
        session.add(Employee(user_id=admin.id, name=admin.name, email=admin.email))
        await session.commit()
        logger.info(
            "Default admin created: %s (password: <redacted>)",
            settings.FIRST_ADMIN_EMAIL,
        )


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    await seed_admin()

    job: ReconciliationJob | None = None
    if settings.RECONCILER_ENABLED:
        job = ReconciliationJob(async_session_factory, settings.RECONCILER_INTERVAL_SECONDS)
        job.start()
    app.state.reconciler = job

    logger.info("CampusClock v%s started", settings.VERSION)
    yield

    if job is not None:
        await job.stop()
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title="CampusClock",
        description="Staff attendance and timetabling",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.state.limiter = limiter
    application.state.reconciler = None

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    application.include_router(api_router, prefix=settings.API_V1_PREFIX)
    return application


app = create_app()
