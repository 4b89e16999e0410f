"""Session registry — which live connection currently views each chat session.

One registry instance is built in the FastAPI lifespan and shared by the
relay, the delivery primitive and the liveness monitor. Everything runs on a
single event loop and none of the methods here await, so registry updates
are atomic with respect to other handlers without any locking.

A session maps to at most one connection. A later join for the same session
replaces the earlier registration (last writer wins); the replaced
connection is not closed here, its own close event or the liveness sweep
takes care of it.
"""

from __future__ import annotations

import uuid
from typing import Any, Protocol

import structlog
from fastapi import WebSocket
from starlette.websockets import WebSocketState

from app.schemas.chat import PingEvent, encode_event

logger = structlog.get_logger(__name__)

# Close code sent when the liveness monitor reaps a connection.
_GOING_AWAY = 1001


class Connection(Protocol):
    """What the registry, relay and liveness monitor need from a transport."""

    id: str
    session_id: int | None
    is_alive: bool

    @property
    def is_open(self) -> bool: ...

    async def send_event(self, event: dict[str, Any]) -> None: ...

    async def ping(self) -> None: ...

    async def terminate(self) -> None: ...


class WebSocketConnection:
    """Connection handle over a Starlette/FastAPI WebSocket.

    Heartbeats are application frames ({"type": "ping"} / {"type": "pong"})
    because the ASGI interface does not surface protocol-level pongs.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.id = uuid.uuid4().hex
        self.session_id: int | None = None
        self.is_alive = True
        self._websocket = websocket
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        self._closed = True

    async def send_event(self, event: dict[str, Any]) -> None:
        await self._websocket.send_json(event)

    async def ping(self) -> None:
        await self.send_event(encode_event(PingEvent()))

    async def terminate(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._websocket.close(code=_GOING_AWAY)
        except RuntimeError as e:
            # Already closed from the other side.
            logger.debug("websocket_close_ignored", connection_id=self.id, error=str(e))


class SessionRegistry:
    """session id → connection, plus the set of all open connections."""

    def __init__(self) -> None:
        self._sessions: dict[int, Connection] = {}
        self._connections: dict[str, Connection] = {}

    # --- open connections (liveness monitor walks these) ---

    def add_connection(self, connection: Connection) -> None:
        self._connections[connection.id] = connection

    def remove_connection(self, connection: Connection) -> None:
        self._connections.pop(connection.id, None)

    def connections(self) -> list[Connection]:
        """Snapshot, safe to iterate while handlers mutate the registry."""
        return list(self._connections.values())

    # --- session slots ---

    def register(self, session_id: int, connection: Connection) -> Connection | None:
        """Bind *session_id* to *connection*. Returns the replaced connection, if any."""
        previous = self._sessions.get(session_id)
        self._sessions[session_id] = connection
        if previous is not None and previous is not connection:
            logger.info(
                "session_registration_replaced",
                session_id=session_id,
                previous_connection_id=previous.id,
                connection_id=connection.id,
            )
            return previous
        return None

    def resolve(self, session_id: int) -> Connection | None:
        return self._sessions.get(session_id)

    def unregister(self, session_id: int, connection: Connection | None = None) -> bool:
        """Free the slot for *session_id*.

        When *connection* is given the slot is only freed if that connection
        still owns it, so a replaced connection closing late never evicts
        its successor. Returns True if a mapping was removed.
        """
        current = self._sessions.get(session_id)
        if current is None:
            return False
        if connection is not None and current is not connection:
            return False
        del self._sessions[session_id]
        return True

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    @property
    def connection_count(self) -> int:
        return len(self._connections)
