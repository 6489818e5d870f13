"""
Periodic reconciliation job, started and stopped by the application lifespan.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campusclock.services.clock import now_local
from campusclock.services.reconciler import ReconcileSummary, reconcile_all
from campusclock.services.rules import load_rules

logger = logging.getLogger(__name__)


class ReconciliationJob:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        interval: float = 60,
        now_fn: Callable[[], datetime] = now_local,
    ) -> None:
        self.session_factory = session_factory
        self.interval = interval
        self.now_fn = now_fn
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="attendance-reconciler")
        logger.info("Reconciliation job started (every %ss)", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reconciliation job stopped")

    async def run_once(self) -> ReconcileSummary:
        async with self.session_factory() as db:
            rules = await load_rules(db)
            summary = await reconcile_all(db, self.now_fn(), rules)
        logger.debug("Reconciliation pass: %s", summary.as_dict())
        return summary

    async def _run(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Reconciliation pass failed")
            await asyncio.sleep(self.interval)
