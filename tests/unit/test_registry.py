"""Unit tests for SessionRegistry.

Tests:
  - register/resolve/unregister round trip
  - last writer wins; the replaced connection is returned, not closed
  - unregister with a stale connection leaves the newer registration alone
  - open-connection tracking used by the liveness monitor
"""

from __future__ import annotations

from app.services.chat.registry import SessionRegistry
from tests.conftest import FakeConnection


class TestSessionSlots:
    def test_resolve_unregistered_returns_none(self) -> None:
        assert SessionRegistry().resolve(7) is None

    def test_register_then_resolve(self) -> None:
        registry = SessionRegistry()
        conn = FakeConnection()
        assert registry.register(7, conn) is None
        assert registry.resolve(7) is conn

    def test_register_is_idempotent(self) -> None:
        registry = SessionRegistry()
        conn = FakeConnection()
        registry.register(7, conn)
        assert registry.register(7, conn) is None
        assert registry.session_count == 1

    def test_later_join_replaces_earlier(self) -> None:
        registry = SessionRegistry()
        a, b = FakeConnection("a"), FakeConnection("b")
        registry.register(7, a)
        replaced = registry.register(7, b)
        assert replaced is a
        assert registry.resolve(7) is b
        assert a.terminated is False

    def test_unregister_removes_mapping(self) -> None:
        registry = SessionRegistry()
        registry.register(7, FakeConnection())
        assert registry.unregister(7) is True
        assert registry.resolve(7) is None

    def test_unregister_missing_is_noop(self) -> None:
        assert SessionRegistry().unregister(7) is False

    def test_stale_connection_cannot_unregister_successor(self) -> None:
        registry = SessionRegistry()
        a, b = FakeConnection("a"), FakeConnection("b")
        registry.register(7, a)
        registry.register(7, b)
        assert registry.unregister(7, a) is False
        assert registry.resolve(7) is b
        assert registry.unregister(7, b) is True


class TestOpenConnections:
    def test_add_and_remove(self) -> None:
        registry = SessionRegistry()
        a, b = FakeConnection("a"), FakeConnection("b")
        registry.add_connection(a)
        registry.add_connection(b)
        assert {c.id for c in registry.connections()} == {"a", "b"}
        registry.remove_connection(a)
        registry.remove_connection(a)
        assert registry.connections() == [b]
        assert registry.connection_count == 1

    def test_connections_returns_snapshot(self) -> None:
        registry = SessionRegistry()
        a = FakeConnection("a")
        registry.add_connection(a)
        snapshot = registry.connections()
        registry.remove_connection(a)
        assert snapshot == [a]
