"""Liveness monitor — periodic ping sweep that reaps dead connections.

Every sweep, for each open connection:
  - liveness flag already False (no pong since last sweep) → terminate and
    release it through the relay, freeing its session slot
  - otherwise clear the flag and send a ping; the pong handler sets it back

A connection that never answers is therefore reaped within two periods.
Runs as an APScheduler interval job on the application event loop.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.services.chat.registry import Connection, SessionRegistry

logger = structlog.get_logger(__name__)

JOB_ID = "liveness_sweep"


class LivenessMonitor:
    def __init__(
        self,
        registry: SessionRegistry,
        on_reap: Callable[[Connection], Awaitable[None]],
        interval_seconds: int = 30,
    ) -> None:
        self._registry = registry
        self._on_reap = on_reap
        self._interval_seconds = interval_seconds

    async def sweep(self) -> int:
        """Run one liveness pass. Returns the number of reaped connections."""
        reaped = 0
        for connection in self._registry.connections():
            if not connection.is_alive:
                try:
                    await connection.terminate()
                except Exception as e:
                    # Slot must still be freed below.
                    logger.warning(
                        "liveness_terminate_failed",
                        connection_id=connection.id,
                        error=str(e),
                    )
                try:
                    await self._on_reap(connection)
                except Exception as e:
                    logger.error(
                        "liveness_reap_failed",
                        connection_id=connection.id,
                        error=str(e),
                    )
                else:
                    logger.info(
                        "connection_reaped",
                        connection_id=connection.id,
                        session_id=connection.session_id,
                    )
                reaped += 1
                continue

            connection.is_alive = False
            try:
                await connection.ping()
            except Exception as e:
                # Flag stays False, so the next sweep reaps it.
                logger.warning(
                    "liveness_ping_failed",
                    connection_id=connection.id,
                    error=str(e),
                )
        if reaped:
            logger.info("liveness_sweep_complete", reaped=reaped)
        return reaped

    def start(self, scheduler: AsyncIOScheduler) -> None:
        """Register the sweep as an interval job on *scheduler*."""
        scheduler.add_job(
            self.sweep,
            "interval",
            seconds=self._interval_seconds,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info("liveness_monitor_started", interval_seconds=self._interval_seconds)
