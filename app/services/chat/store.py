"""Chat message store — sessions and append-only messages.

Two interchangeable backends implement the same contract:
  - DatabaseChatStore: SQLAlchemy async sessions, one short-lived session
    per call (the relay outlives any request scope).
  - InMemoryChatStore: process-local dicts for demos and tests.

Persistence failures are never masked. SQLAlchemy driver errors are caught
and re-raised as StorageError so the relay receives a typed error.
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import StorageError
from app.models import ChatMessage, ChatSession
from app.schemas.chat import MessageKind, SessionStatus

logger = structlog.get_logger(__name__)

_SESSION_FIELDS = frozenset(
    {"customer_id", "ticket_id", "status", "assigned_agent", "is_ai_active", "ended_at"}
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _session_changes(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - _SESSION_FIELDS
    if unknown:
        raise ValueError(f"Unknown chat session fields: {sorted(unknown)}")
    changes = dict(fields)
    status = changes.get("status")
    if isinstance(status, SessionStatus):
        changes["status"] = status.value
    if changes.get("status") == SessionStatus.ENDED.value:
        changes.setdefault("ended_at", _now())
    return changes


class ChatStore(ABC):
    """Contract the relay and the REST layer use to persist chat state."""

    @abstractmethod
    async def create_chat_session(
        self, customer_id: int | None = None, ticket_id: int | None = None
    ) -> ChatSession:
        ...

    @abstractmethod
    async def get_chat_session(self, session_id: int) -> ChatSession | None:
        ...

    @abstractmethod
    async def list_active_chat_sessions(self) -> list[ChatSession]:
        ...

    @abstractmethod
    async def update_chat_session(
        self, session_id: int, **fields: Any
    ) -> ChatSession | None:
        """Apply a partial update. Returns None if the session does not exist.

        Setting ``status='ended'`` also stamps ``ended_at`` unless given.
        """
        ...

    @abstractmethod
    async def create_chat_message(
        self,
        session_id: int,
        sender: str,
        sender_name: str,
        message: str,
        message_type: str = MessageKind.TEXT.value,
        ai_metadata: dict | None = None,
    ) -> ChatMessage:
        ...

    @abstractmethod
    async def list_chat_messages(self, session_id: int) -> list[ChatMessage]:
        """All messages of a session in replay order (timestamp, then id)."""
        ...


class DatabaseChatStore(ChatStore):
    """SQLAlchemy-backed store. Commits on success, rolls back on error."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_chat_session(
        self, customer_id: int | None = None, ticket_id: int | None = None
    ) -> ChatSession:
        try:
            async with self._session_factory() as db:
                chat_session = ChatSession(
                    customer_id=customer_id,
                    ticket_id=ticket_id,
                    status=SessionStatus.ACTIVE.value,
                    assigned_agent=None,
                    is_ai_active=True,
                    created_at=_now(),
                    ended_at=None,
                )
                db.add(chat_session)
                await db.commit()
                return chat_session
        except SQLAlchemyError as e:
            logger.error("chat_session_create_failed", error=str(e))
            raise StorageError(f"Failed to create chat session: {e}") from e

    async def get_chat_session(self, session_id: int) -> ChatSession | None:
        try:
            async with self._session_factory() as db:
                return await db.get(ChatSession, session_id)
        except SQLAlchemyError as e:
            logger.error("chat_session_get_failed", session_id=session_id, error=str(e))
            raise StorageError(f"Failed to load chat session: {e}") from e

    async def list_active_chat_sessions(self) -> list[ChatSession]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(ChatSession)
                    .where(ChatSession.status == SessionStatus.ACTIVE.value)
                    .order_by(ChatSession.created_at.desc())
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("chat_session_list_failed", error=str(e))
            raise StorageError(f"Failed to list chat sessions: {e}") from e

    async def update_chat_session(
        self, session_id: int, **fields: Any
    ) -> ChatSession | None:
        changes = _session_changes(fields)
        try:
            async with self._session_factory() as db:
                chat_session = await db.get(ChatSession, session_id)
                if chat_session is None:
                    return None
                for key, value in changes.items():
                    setattr(chat_session, key, value)
                await db.commit()
                return chat_session
        except SQLAlchemyError as e:
            logger.error(
                "chat_session_update_failed", session_id=session_id, error=str(e)
            )
            raise StorageError(f"Failed to update chat session: {e}") from e

    async def create_chat_message(
        self,
        session_id: int,
        sender: str,
        sender_name: str,
        message: str,
        message_type: str = MessageKind.TEXT.value,
        ai_metadata: dict | None = None,
    ) -> ChatMessage:
        try:
            async with self._session_factory() as db:
                chat_message = ChatMessage(
                    session_id=session_id,
                    sender=sender,
                    sender_name=sender_name,
                    message=message,
                    message_type=message_type,
                    ai_metadata=ai_metadata,
                    timestamp=_now(),
                )
                db.add(chat_message)
                await db.commit()
                return chat_message
        except SQLAlchemyError as e:
            logger.error(
                "chat_message_create_failed", session_id=session_id, error=str(e)
            )
            raise StorageError(f"Failed to persist chat message: {e}") from e

    async def list_chat_messages(self, session_id: int) -> list[ChatMessage]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(ChatMessage)
                    .where(ChatMessage.session_id == session_id)
                    .order_by(ChatMessage.timestamp.asc(), ChatMessage.id.asc())
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(
                "chat_message_list_failed", session_id=session_id, error=str(e)
            )
            raise StorageError(f"Failed to list chat messages: {e}") from e


class InMemoryChatStore(ChatStore):
    """Process-local store. Nothing survives a restart."""

    def __init__(self) -> None:
        self._sessions: dict[int, ChatSession] = {}
        self._messages: dict[int, ChatMessage] = {}
        self._session_ids = itertools.count(1)
        self._message_ids = itertools.count(1)

    async def create_chat_session(
        self, customer_id: int | None = None, ticket_id: int | None = None
    ) -> ChatSession:
        chat_session = ChatSession(
            id=next(self._session_ids),
            customer_id=customer_id,
            ticket_id=ticket_id,
            status=SessionStatus.ACTIVE.value,
            assigned_agent=None,
            is_ai_active=True,
            created_at=_now(),
            ended_at=None,
        )
        self._sessions[chat_session.id] = chat_session
        return chat_session

    async def get_chat_session(self, session_id: int) -> ChatSession | None:
        return self._sessions.get(session_id)

    async def list_active_chat_sessions(self) -> list[ChatSession]:
        return [
            s for s in self._sessions.values()
            if s.status == SessionStatus.ACTIVE.value
        ]

    async def update_chat_session(
        self, session_id: int, **fields: Any
    ) -> ChatSession | None:
        changes = _session_changes(fields)
        chat_session = self._sessions.get(session_id)
        if chat_session is None:
            return None
        for key, value in changes.items():
            setattr(chat_session, key, value)
        return chat_session

    async def create_chat_message(
        self,
        session_id: int,
        sender: str,
        sender_name: str,
        message: str,
        message_type: str = MessageKind.TEXT.value,
        ai_metadata: dict | None = None,
    ) -> ChatMessage:
        chat_message = ChatMessage(
            id=next(self._message_ids),
            session_id=session_id,
            sender=sender,
            sender_name=sender_name,
            message=message,
            message_type=message_type,
            ai_metadata=ai_metadata,
            timestamp=_now(),
        )
        self._messages[chat_message.id] = chat_message
        return chat_message

    async def list_chat_messages(self, session_id: int) -> list[ChatMessage]:
        return sorted(
            (m for m in self._messages.values() if m.session_id == session_id),
            key=lambda m: (m.timestamp, m.id),
        )
