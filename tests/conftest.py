"""Shared pytest fixtures for the support-ops test suite.

Provides:
  - MockLLMProvider: LLMProvider returning configurable text or raising
  - MockClassifier: scripted stand-in for SupportClassifier with call tracking
  - FakeConnection: in-memory Connection that records every sent event
  - memory_store / registry fixtures
  - make_relay: builds a fully wired ChatRelay around a store + classifier

All external service calls are mocked in every test — no real SDK usage.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from app.core.exceptions import ClassificationError, GenerationError
from app.schemas.classification import Classification
from app.services.chat.delivery import SessionDelivery
from app.services.chat.escalation import AgentAssignment, EscalationService
from app.services.chat.registry import SessionRegistry
from app.services.chat.relay import ChatRelay
from app.services.chat.store import InMemoryChatStore
from app.services.llm.base import LLMProvider, LLMResponse


# ---------------------------------------------------------------------------
# Mock LLM Provider
# ---------------------------------------------------------------------------


class MockLLMProvider(LLMProvider):
    """Mock LLM provider for testing. Returns configurable responses."""

    def __init__(
        self,
        generate_text: str = "Mock response",
        error: Exception | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self._generate_text = generate_text
        self._error = error
        self._delay_seconds = delay_seconds
        self.generate_calls: list[dict[str, Any]] = []

    async def generate(
        self,
        prompt: str,
        system_prompt: str,
        max_tokens: int = 1000,
        temperature: float = 0.3,
        json_mode: bool = False,
    ) -> LLMResponse:
        self.generate_calls.append(
            {
                "prompt": prompt,
                "system_prompt": system_prompt,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "json_mode": json_mode,
            }
        )
        if self._delay_seconds:
            await asyncio.sleep(self._delay_seconds)
        if self._error is not None:
            raise self._error
        return LLMResponse(
            text=self._generate_text,
            input_tokens=50,
            output_tokens=10,
        )


# ---------------------------------------------------------------------------
# Mock Classifier Port
# ---------------------------------------------------------------------------


def make_classification(
    intent: str = "general",
    confidence: float = 0.95,
    priority: str = "low",
    summary: str = "test summary",
) -> Classification:
    return Classification(
        intent=intent, confidence=confidence, priority=priority, summary=summary
    )


class MockClassifier:
    """Scripted SupportClassifier replacement.

    ``classifications`` is consumed in call order; the last entry repeats.
    An entry may be an exception instance, which is raised instead.
    ``gate`` (optional) is awaited before each classification returns, so
    tests can hold the pipeline mid-flight.
    """

    def __init__(
        self,
        classifications: list[Classification | Exception] | None = None,
        reply: str | Exception = "Here is how to fix that.",
        gate: asyncio.Event | None = None,
    ) -> None:
        self._classifications = classifications or [make_classification()]
        self._reply = reply
        self._gate = gate
        self.classify_calls: list[str] = []
        self.reply_calls: list[tuple[str, Classification]] = []

    async def classify_intent(self, text: str) -> Classification:
        index = min(len(self.classify_calls), len(self._classifications) - 1)
        self.classify_calls.append(text)
        if self._gate is not None:
            await self._gate.wait()
        result = self._classifications[index]
        if isinstance(result, Exception):
            raise result
        return result

    async def generate_reply(self, text: str, classification: Classification) -> str:
        self.reply_calls.append((text, classification))
        if isinstance(self._reply, Exception):
            raise self._reply
        return f"{self._reply} ({text})"


def classifier_timeout() -> ClassificationError:
    return ClassificationError("Classification timed out after 10.0s")


def generation_failure() -> GenerationError:
    return GenerationError("Reply generation failed: quota exceeded")


# ---------------------------------------------------------------------------
# Fake connection
# ---------------------------------------------------------------------------


class FakeConnection:
    """Connection double: records events instead of writing to a socket."""

    def __init__(self, connection_id: str = "conn-1") -> None:
        self.id = connection_id
        self.session_id: int | None = None
        self.is_alive = True
        self.open = True
        self.terminated = False
        self.pings = 0
        self.sent: list[dict[str, Any]] = []

    @property
    def is_open(self) -> bool:
        return self.open and not self.terminated

    async def send_event(self, event: dict[str, Any]) -> None:
        if not self.is_open:
            raise RuntimeError("connection closed")
        self.sent.append(event)

    async def ping(self) -> None:
        self.pings += 1

    async def terminate(self) -> None:
        self.terminated = True

    def messages(self) -> list[dict[str, Any]]:
        """Payloads of every ``new_message`` event, in delivery order."""
        return [e["message"] for e in self.sent if e["type"] == "new_message"]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

TEST_AGENT = AgentAssignment(name="Sarah Chen", team="Technical Support")


@pytest.fixture
def memory_store() -> InMemoryChatStore:
    return InMemoryChatStore()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def make_relay(
    memory_store: InMemoryChatStore, registry: SessionRegistry
) -> Callable[..., ChatRelay]:
    """Factory fixture: ``make_relay(classifier, **options)`` → wired ChatRelay."""

    def _make(
        classifier: MockClassifier | None = None,
        store: Any = None,
        greeting_delay_seconds: float = 0.0,
        cancel_greeting_on_session_end: bool = False,
    ) -> ChatRelay:
        chat_store = store if store is not None else memory_store
        delivery = SessionDelivery(registry)
        escalation = EscalationService(
            store=chat_store,
            classifier=classifier or MockClassifier(),  # type: ignore[arg-type]
            delivery=delivery,
            agent=TEST_AGENT,
            greeting_delay_seconds=greeting_delay_seconds,
        )
        return ChatRelay(
            store=chat_store,
            registry=registry,
            delivery=delivery,
            escalation=escalation,
            cancel_greeting_on_session_end=cancel_greeting_on_session_end,
        )

    return _make

