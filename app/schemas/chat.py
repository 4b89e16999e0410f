"""WebSocket frame schemas and chat record serializers.

Inbound frames are validated through a discriminated union on ``type``.
Everything on the wire uses camelCase keys.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from app.core.exceptions import InvalidFrameError


class SenderRole(str, Enum):
    CUSTOMER = "customer"
    AGENT = "agent"
    AI = "ai"
    SYSTEM = "system"


class MessageKind(str, Enum):
    TEXT = "text"
    SYSTEM = "system"
    ESCALATION = "escalation"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"
    TRANSFERRED = "transferred"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# Inbound (client → server)
# ---------------------------------------------------------------------------


class JoinSessionFrame(_WireModel):
    type: Literal["join_session"]
    session_id: int


class ChatMessageFrame(_WireModel):
    type: Literal["chat_message"]
    session_id: int | None = None
    customer_id: int | None = None
    sender: SenderRole
    sender_name: str
    message: str


class TypingFrame(_WireModel):
    type: Literal["typing"]
    sender: str


class PingFrame(_WireModel):
    type: Literal["ping"]


class PongFrame(_WireModel):
    type: Literal["pong"]


InboundFrame = Annotated[
    Union[JoinSessionFrame, ChatMessageFrame, TypingFrame, PingFrame, PongFrame],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrame)


def parse_frame(raw: str | bytes) -> InboundFrame:
    """Decode one JSON frame; raises InvalidFrameError on anything malformed."""
    try:
        return _inbound_adapter.validate_json(raw)
    except ValidationError as e:
        raise InvalidFrameError(
            f"Invalid frame: {e.error_count()} validation error(s)"
        ) from e


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class ChatMessageOut(_WireModel):
    """Persisted ChatMessage as delivered to clients."""

    id: int
    session_id: int
    sender: str
    sender_name: str
    message: str
    message_type: str
    ai_metadata: dict | None = None
    timestamp: datetime

    @classmethod
    def from_record(cls, record: object) -> "ChatMessageOut":
        return cls(
            id=record.id,
            session_id=record.session_id,
            sender=record.sender,
            sender_name=record.sender_name,
            message=record.message,
            message_type=record.message_type,
            ai_metadata=record.ai_metadata,
            timestamp=record.timestamp,
        )


class ChatSessionOut(_WireModel):
    id: int
    customer_id: int | None = None
    ticket_id: int | None = None
    status: str
    assigned_agent: str | None = None
    is_ai_active: bool = Field(alias="isAIActive")
    created_at: datetime
    ended_at: datetime | None = None

    @classmethod
    def from_record(cls, record: object) -> "ChatSessionOut":
        return cls(
            id=record.id,
            customer_id=record.customer_id,
            ticket_id=record.ticket_id,
            status=record.status,
            assigned_agent=record.assigned_agent,
            is_ai_active=record.is_ai_active,
            created_at=record.created_at,
            ended_at=record.ended_at,
        )


class ChatSessionCreate(_WireModel):
    """POST /v1/chat-sessions request body."""

    customer_id: int | None = None
    ticket_id: int | None = None


# ---------------------------------------------------------------------------
# Outbound (server → client)
# ---------------------------------------------------------------------------


class NewMessageEvent(_WireModel):
    type: Literal["new_message"] = "new_message"
    message: ChatMessageOut


class TypingEvent(_WireModel):
    type: Literal["typing"] = "typing"
    sender: str


class PingEvent(_WireModel):
    type: Literal["ping"] = "ping"


class PongEvent(_WireModel):
    type: Literal["pong"] = "pong"


OutboundEvent = Union[NewMessageEvent, TypingEvent, PingEvent, PongEvent]


def encode_event(event: OutboundEvent) -> dict:
    """Tagged ``{type, ...payload}`` envelope, JSON-ready."""
    return event.model_dump(mode="json", by_alias=True)
