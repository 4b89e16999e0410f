"""Unit tests for LivenessMonitor.

Tests:
  - first sweep clears the flag and pings every connection
  - a pong between sweeps keeps the connection alive
  - an unresponsive connection is terminated and released on the second sweep
  - a failing ping leads to reaping on the next sweep
  - start() registers an interval job on the scheduler
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.services.chat.liveness import JOB_ID, LivenessMonitor
from app.services.chat.registry import SessionRegistry
from tests.conftest import FakeConnection


def _registry_with(*connections: FakeConnection) -> SessionRegistry:
    registry = SessionRegistry()
    for conn in connections:
        registry.add_connection(conn)
    return registry


class TestSweep:
    @pytest.mark.asyncio
    async def test_first_sweep_pings_and_clears_flag(self) -> None:
        conn = FakeConnection()
        on_reap = AsyncMock()
        monitor = LivenessMonitor(_registry_with(conn), on_reap=on_reap)

        reaped = await monitor.sweep()

        assert reaped == 0
        assert conn.pings == 1
        assert conn.is_alive is False
        on_reap.assert_not_called()

    @pytest.mark.asyncio
    async def test_pong_keeps_connection(self) -> None:
        conn = FakeConnection()
        on_reap = AsyncMock()
        monitor = LivenessMonitor(_registry_with(conn), on_reap=on_reap)

        await monitor.sweep()
        conn.is_alive = True  # pong arrived
        await monitor.sweep()

        assert conn.terminated is False
        assert conn.pings == 2
        on_reap.assert_not_called()

    @pytest.mark.asyncio
    async def test_unresponsive_connection_reaped_within_two_sweeps(self) -> None:
        registry = SessionRegistry()
        conn = FakeConnection()
        conn.session_id = 42
        registry.add_connection(conn)
        registry.register(42, conn)

        async def release(c: FakeConnection) -> None:
            registry.remove_connection(c)
            registry.unregister(c.session_id, c)

        monitor = LivenessMonitor(registry, on_reap=release)

        await monitor.sweep()
        reaped = await monitor.sweep()

        assert reaped == 1
        assert conn.terminated is True
        assert registry.resolve(42) is None
        assert registry.connections() == []

    @pytest.mark.asyncio
    async def test_failed_ping_reaped_next_sweep(self) -> None:
        conn = FakeConnection()
        conn.ping = AsyncMock(side_effect=RuntimeError("broken pipe"))  # type: ignore[method-assign]
        on_reap = AsyncMock()
        monitor = LivenessMonitor(_registry_with(conn), on_reap=on_reap)

        await monitor.sweep()
        await monitor.sweep()

        assert conn.terminated is True
        on_reap.assert_awaited_once_with(conn)

    @pytest.mark.asyncio
    async def test_slot_freed_when_close_raises(self) -> None:
        registry = SessionRegistry()
        conn = FakeConnection()
        conn.terminate = AsyncMock(side_effect=OSError("transport gone"))  # type: ignore[method-assign]
        conn.session_id = 7
        registry.add_connection(conn)
        registry.register(7, conn)

        async def release(c: FakeConnection) -> None:
            registry.remove_connection(c)
            registry.unregister(c.session_id, c)

        monitor = LivenessMonitor(registry, on_reap=release)

        await monitor.sweep()
        reaped = await monitor.sweep()

        assert reaped == 1
        assert registry.resolve(7) is None
        assert registry.connections() == []

    @pytest.mark.asyncio
    async def test_reap_failure_does_not_stop_sweep(self) -> None:
        dead, healthy = FakeConnection("dead"), FakeConnection("healthy")
        dead.is_alive = False
        on_reap = AsyncMock(side_effect=RuntimeError("store down"))
        monitor = LivenessMonitor(_registry_with(dead, healthy), on_reap=on_reap)

        reaped = await monitor.sweep()

        assert reaped == 1
        assert healthy.pings == 1


class TestStart:
    def test_registers_interval_job(self) -> None:
        scheduler = MagicMock()
        monitor = LivenessMonitor(SessionRegistry(), on_reap=AsyncMock(), interval_seconds=30)

        monitor.start(scheduler)

        scheduler.add_job.assert_called_once()
        args, kwargs = scheduler.add_job.call_args
        assert args == (monitor.sweep, "interval")
        assert kwargs["seconds"] == 30
        assert kwargs["id"] == JOB_ID
