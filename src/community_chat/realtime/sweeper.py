"""Periodic eviction of connections that stopped heartbeating."""
from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from community_chat.realtime.dispatcher import EventDispatcher
from community_chat.realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class InactivitySweeper:
    def __init__(
        self,
        registry: ConnectionRegistry,
        dispatcher: EventDispatcher,
        *,
        interval: float,
        inactivity: float,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._interval = interval
        self._inactivity = timedelta(seconds=inactivity)
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="presence-inactivity-sweeper")
        logger.info(
            "Inactivity sweeper started (interval=%.0fs, threshold=%.0fs)",
            self._interval,
            self._inactivity.total_seconds(),
        )

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Inactivity sweeper stopped")

    async def sweep_once(self) -> int:
        """Evict every stale connection. Returns how many were evicted."""
        stale = self._registry.stale(self._inactivity)
        for conn in stale:
            logger.info(
                "Cleaning up inactive connection: %s (%s)", conn.display_name, conn.connection_id,
            )
            try:
                await self._dispatcher.evict(conn.connection_id)
            except Exception:
                logger.exception("Failed to evict %s", conn.connection_id)
        if stale:
            logger.info("Cleaned up %d inactive connections", len(stale))
        return len(stale)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("Inactivity sweep failed")
