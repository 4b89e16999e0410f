"""Unit tests for the escalation decision.

Tests:
  - confidence=0.69 → escalate regardless of intent/priority
  - confidence=0.95, intent=general, priority=low → no escalation
  - confidence exactly at threshold (0.7) → no escalation
  - sensitive / complex_technical intents → escalate
  - high / critical priority → escalate
  - unrecognized intent with high confidence → no escalation
"""

from __future__ import annotations

import pytest

from app.services.chat.escalation import CONFIDENCE_THRESHOLD, should_escalate
from tests.conftest import make_classification


class TestShouldEscalate:
    """Tests for the should_escalate function."""

    def test_low_confidence_triggers_escalation(self) -> None:
        escalate, reason = should_escalate(
            make_classification(intent="general", confidence=0.69, priority="low")
        )
        assert escalate is True
        assert reason == "low_confidence"

    def test_confident_general_low_priority_no_escalation(self) -> None:
        escalate, reason = should_escalate(
            make_classification(intent="general", confidence=0.95, priority="low")
        )
        assert escalate is False
        assert reason is None

    def test_borderline_confidence_no_escalation(self) -> None:
        """confidence exactly at threshold → no escalate."""
        escalate, _ = should_escalate(
            make_classification(confidence=CONFIDENCE_THRESHOLD, priority="medium")
        )
        assert escalate is False

    @pytest.mark.parametrize("intent", ["sensitive", "complex_technical"])
    def test_escalation_intents(self, intent: str) -> None:
        escalate, reason = should_escalate(
            make_classification(intent=intent, confidence=0.99, priority="low")
        )
        assert escalate is True
        assert reason == f"{intent}_intent"

    @pytest.mark.parametrize("priority", ["high", "critical"])
    def test_escalation_priorities(self, priority: str) -> None:
        escalate, reason = should_escalate(
            make_classification(intent="billing", confidence=0.99, priority=priority)
        )
        assert escalate is True
        assert reason == f"{priority}_priority"

    def test_unknown_intent_alone_does_not_escalate(self) -> None:
        escalate, _ = should_escalate(
            make_classification(intent="shipping", confidence=0.9, priority="medium")
        )
        assert escalate is False

    def test_intent_checked_before_confidence(self) -> None:
        _, reason = should_escalate(
            make_classification(intent="sensitive", confidence=0.1, priority="critical")
        )
        assert reason == "sensitive_intent"
