"""Connection relay — the per-connection message pump behind /ws.

For each inbound frame: decode, persist, deliver to the session's viewer,
and for customer messages kick off the escalation pipeline as a tracked
background task. Pipeline runs for the same session are serialized by a
per-session lock, so AI replies are persisted in the order the customer
messages arrived. Different sessions never wait on each other.

Error policy:
  - malformed frame     → logged and dropped, connection stays open
  - handler failure     → logged with traceback, only that frame is aborted
  - no registered viewer → not an error, delivery is a no-op
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog
from fastapi import WebSocket

from app.core.exceptions import ChatSessionNotFoundError, InvalidFrameError
from app.schemas.chat import (
    ChatMessageFrame,
    InboundFrame,
    JoinSessionFrame,
    MessageKind,
    PingFrame,
    PongEvent,
    PongFrame,
    SenderRole,
    SessionStatus,
    TypingEvent,
    TypingFrame,
    encode_event,
    parse_frame,
)
from app.services.chat.delivery import SessionDelivery
from app.services.chat.escalation import EscalationService
from app.services.chat.registry import Connection, SessionRegistry, WebSocketConnection
from app.services.chat.store import ChatStore

logger = structlog.get_logger(__name__)


class ChatRelay:
    """Decodes inbound events, persists them and routes outbound events."""

    def __init__(
        self,
        store: ChatStore,
        registry: SessionRegistry,
        delivery: SessionDelivery,
        escalation: EscalationService,
        cancel_greeting_on_session_end: bool = False,
    ) -> None:
        self._store = store
        self._registry = registry
        self._delivery = delivery
        self._escalation = escalation
        self._cancel_greeting_on_session_end = cancel_greeting_on_session_end
        self._tasks: set[asyncio.Task] = set()
        self._session_locks: dict[int, asyncio.Lock] = {}
        self._pipeline_depth: dict[int, int] = {}

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def serve(self, websocket: WebSocket) -> None:
        """Own one WebSocket from accept to close."""
        await websocket.accept()
        connection = WebSocketConnection(websocket)
        self._registry.add_connection(connection)
        logger.info("websocket_connected", connection_id=connection.id)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                if raw is None:
                    continue
                await self.handle_frame(connection, raw)
        except Exception as e:
            # Transport-level failure (or receive after a server-side close).
            logger.warning(
                "websocket_receive_failed",
                connection_id=connection.id,
                error=str(e),
            )
        finally:
            connection.mark_closed()
            await self.release(connection)
            logger.info(
                "websocket_disconnected",
                connection_id=connection.id,
                session_id=connection.session_id,
            )

    async def release(self, connection: Connection) -> None:
        """Forget a closed or reaped connection. Safe to call more than once.

        Ends the chat session only if this connection still owned its slot.
        """
        self._registry.remove_connection(connection)
        session_id = connection.session_id
        if session_id is None:
            return
        if not self._registry.unregister(session_id, connection):
            return
        if self._cancel_greeting_on_session_end:
            self._escalation.cancel_pending_greeting(session_id)
        try:
            await self._store.update_chat_session(
                session_id, status=SessionStatus.ENDED.value
            )
        except Exception as e:
            logger.error(
                "chat_session_end_failed",
                session_id=session_id,
                error=str(e),
                exc_info=True,
            )
        else:
            logger.info("chat_session_ended", session_id=session_id)

    # ------------------------------------------------------------------
    # Frame dispatch
    # ------------------------------------------------------------------

    async def handle_frame(self, connection: Connection, raw: str | bytes) -> None:
        """Decode and handle one inbound frame. Never raises."""
        try:
            frame = parse_frame(raw)
        except InvalidFrameError as e:
            logger.warning(
                "websocket_frame_dropped",
                connection_id=connection.id,
                error=e.message,
            )
            return

        try:
            await self._dispatch(connection, frame)
        except ChatSessionNotFoundError as e:
            logger.warning(
                "websocket_frame_unknown_session",
                connection_id=connection.id,
                session_id=connection.session_id,
                error=e.message,
            )
        except Exception as e:
            logger.error(
                "websocket_frame_handler_failed",
                connection_id=connection.id,
                frame_type=frame.type,
                error=str(e),
                exc_info=True,
            )

    async def _dispatch(self, connection: Connection, frame: InboundFrame) -> None:
        if isinstance(frame, JoinSessionFrame):
            self.join(connection, frame.session_id)
        elif isinstance(frame, ChatMessageFrame):
            await self._handle_chat_message(connection, frame)
        elif isinstance(frame, TypingFrame):
            if connection.session_id is not None:
                await self._delivery.send_to_session(
                    connection.session_id, TypingEvent(sender=frame.sender)
                )
        elif isinstance(frame, PingFrame):
            await connection.send_event(encode_event(PongEvent()))
        elif isinstance(frame, PongFrame):
            connection.is_alive = True

    def join(self, connection: Connection, session_id: int) -> None:
        """Make *connection* the viewer of *session_id*."""
        previous_session = connection.session_id
        if previous_session is not None and previous_session != session_id:
            self._registry.unregister(previous_session, connection)
        self._registry.register(session_id, connection)
        connection.session_id = session_id
        logger.info(
            "session_joined", session_id=session_id, connection_id=connection.id
        )

    async def _handle_chat_message(
        self, connection: Connection, frame: ChatMessageFrame
    ) -> None:
        session_id = connection.session_id
        if session_id is None:
            if frame.session_id is not None:
                session_id = frame.session_id
            elif frame.sender == SenderRole.CUSTOMER:
                chat_session = await self._store.create_chat_session(
                    customer_id=frame.customer_id
                )
                session_id = chat_session.id
                logger.info(
                    "chat_session_started",
                    session_id=session_id,
                    customer_id=frame.customer_id,
                )
            else:
                logger.warning(
                    "chat_message_without_session",
                    connection_id=connection.id,
                    sender=frame.sender.value,
                )
                return

        if await self._store.get_chat_session(session_id) is None:
            raise ChatSessionNotFoundError(f"Chat session {session_id} not found")
        if connection.session_id is None:
            self.join(connection, session_id)

        record = await self._store.create_chat_message(
            session_id=session_id,
            sender=frame.sender.value,
            sender_name=frame.sender_name,
            message=frame.message,
            message_type=MessageKind.TEXT.value,
        )
        await self._delivery.publish_message(session_id, record)

        if frame.sender == SenderRole.CUSTOMER:
            self._spawn(self._run_pipeline(session_id, frame.message))

    # ------------------------------------------------------------------
    # Background pipeline
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_pipeline(self, session_id: int, text: str) -> None:
        """Background task — exceptions are logged, never propagated."""
        lock = self._session_locks.setdefault(session_id, asyncio.Lock())
        self._pipeline_depth[session_id] = self._pipeline_depth.get(session_id, 0) + 1
        try:
            async with lock:
                await self._escalation.handle_customer_message(session_id, text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "ai_pipeline_failed",
                session_id=session_id,
                error=str(e),
                exc_info=True,
            )
        finally:
            self._pipeline_depth[session_id] -= 1
            if self._pipeline_depth[session_id] == 0:
                del self._pipeline_depth[session_id]
                self._session_locks.pop(session_id, None)

    async def wait_for_pending(self) -> None:
        """Wait for every in-flight pipeline run and scheduled greeting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self._escalation.wait_for_greetings()

    async def shutdown(self) -> None:
        """Cancel in-flight pipeline runs and pending greetings."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._escalation.shutdown()
