"""Unit tests for wire frame decoding and event encoding."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.core.exceptions import InvalidFrameError
from app.schemas.chat import (
    ChatMessageFrame,
    ChatMessageOut,
    JoinSessionFrame,
    NewMessageEvent,
    PongFrame,
    SenderRole,
    TypingEvent,
    TypingFrame,
    encode_event,
    parse_frame,
)


class TestParseFrame:
    def test_join_session(self) -> None:
        frame = parse_frame('{"type": "join_session", "sessionId": 42}')
        assert isinstance(frame, JoinSessionFrame)
        assert frame.session_id == 42

    def test_chat_message(self) -> None:
        frame = parse_frame(
            '{"type": "chat_message", "sessionId": 42, "sender": "customer",'
            ' "senderName": "Dana", "message": "hello"}'
        )
        assert isinstance(frame, ChatMessageFrame)
        assert frame.sender is SenderRole.CUSTOMER
        assert frame.sender_name == "Dana"
        assert frame.session_id == 42

    def test_chat_message_session_id_optional(self) -> None:
        frame = parse_frame(
            '{"type": "chat_message", "sender": "customer",'
            ' "senderName": "Dana", "message": "hello", "customerId": 3}'
        )
        assert frame.session_id is None
        assert frame.customer_id == 3

    def test_chat_message_empty_body_accepted(self) -> None:
        frame = parse_frame(
            '{"type": "chat_message", "sessionId": 42, "sender": "customer",'
            ' "senderName": "Dana", "message": ""}'
        )
        assert isinstance(frame, ChatMessageFrame)
        assert frame.message == ""

    def test_typing(self) -> None:
        frame = parse_frame('{"type": "typing", "sender": "agent"}')
        assert isinstance(frame, TypingFrame)

    def test_pong(self) -> None:
        assert isinstance(parse_frame(b'{"type": "pong"}'), PongFrame)

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "{}",
            '{"type": "subscribe"}',
            '{"type": "join_session"}',
            '{"type": "join_session", "sessionId": "abc"}',
            '{"type": "chat_message", "sender": "robot", "senderName": "x", "message": "m"}',
        ],
    )
    def test_malformed_frames_raise(self, raw: str) -> None:
        with pytest.raises(InvalidFrameError):
            parse_frame(raw)


class TestEncodeEvent:
    def test_new_message_envelope_is_camel_case(self) -> None:
        record = ChatMessageOut(
            id=1,
            session_id=42,
            sender="ai",
            sender_name="AI Assistant",
            message="hi",
            message_type="text",
            ai_metadata={"intent": "general"},
            timestamp=datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
        )
        event = encode_event(NewMessageEvent(message=record))
        assert event["type"] == "new_message"
        assert event["message"]["sessionId"] == 42
        assert event["message"]["senderName"] == "AI Assistant"
        assert event["message"]["messageType"] == "text"
        assert event["message"]["aiMetadata"] == {"intent": "general"}
        assert event["message"]["timestamp"].startswith("2024-01-15T10:30:00")

    def test_typing_envelope(self) -> None:
        assert encode_event(TypingEvent(sender="customer")) == {
            "type": "typing",
            "sender": "customer",
        }
