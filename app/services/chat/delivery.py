"""Addressed delivery of outbound events to a session's viewer.

At-most-once: the event goes to whichever connection is registered for the
session at send time, if its transport is still open. No buffering, no retry.
"""

from __future__ import annotations

import structlog

from app.models import ChatMessage
from app.schemas.chat import (
    ChatMessageOut,
    NewMessageEvent,
    OutboundEvent,
    encode_event,
)
from app.services.chat.registry import SessionRegistry

logger = structlog.get_logger(__name__)


class SessionDelivery:
    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry

    async def send_to_session(self, session_id: int, event: OutboundEvent) -> bool:
        """Send *event* to the session's registered connection.

        Returns False (and does nothing) when no open connection is registered.
        """
        connection = self._registry.resolve(session_id)
        if connection is None or not connection.is_open:
            return False
        try:
            await connection.send_event(encode_event(event))
        except Exception as e:
            logger.warning(
                "session_send_failed",
                session_id=session_id,
                connection_id=connection.id,
                event_type=event.type,
                error=str(e),
            )
            return False
        return True

    async def publish_message(self, session_id: int, record: ChatMessage) -> bool:
        """Deliver a persisted chat message as a ``new_message`` event."""
        return await self.send_to_session(
            session_id,
            NewMessageEvent(message=ChatMessageOut.from_record(record)),
        )
