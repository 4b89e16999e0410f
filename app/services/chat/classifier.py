"""Classifier Port — intent classification and reply drafting.

Both capabilities wrap a single LLMProvider.generate() call bounded by a
hard timeout. Unlike the escalation logic that consumes them, these methods
DO raise: timeouts, provider errors, empty output and malformed JSON all
surface as ClassificationError / GenerationError so the caller can take the
degraded path.
"""

from __future__ import annotations

import asyncio
import json

import structlog
from pydantic import ValidationError

from app.core.exceptions import ClassificationError, GenerationError
from app.schemas.classification import Classification
from app.services.llm.base import LLMProvider

logger = structlog.get_logger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 10.0

CLASSIFICATION_SYSTEM_PROMPT = """You are an intent classifier for customer support in an ERP/CRM integration platform.

Classify the customer message into one of these categories:
- technical: Technical issues with integrations, API errors, sync problems
- billing: Payment issues, subscription questions, pricing inquiries
- general: General questions about features, how-to guides, documentation
- sensitive: Complaints, escalations, data privacy concerns, security issues
- complex_technical: Complex integration issues requiring specialist knowledge

Also determine priority (low, medium, high, critical), a confidence score
between 0 and 1, and a brief summary. For high priority or sensitive issues,
suggest escalation actions.

Respond with JSON only:
{"intent": "category", "confidence": 0.95, "priority": "medium", "summary": "brief summary", "suggestedActions": ["action1", "action2"]}"""

REPLY_SYSTEM_PROMPT = """You are a helpful customer support AI for an ERP/CRM integration platform.
The customer's message has been classified as: {intent} with {priority} priority.
Provide a helpful, professional response. Keep responses concise but informative.
If it's a technical issue, acknowledge the problem and provide initial troubleshooting steps.
For billing questions, provide general information and mention human escalation for specific account details."""


def _strip_code_fence(raw: str) -> str:
    """Models sometimes wrap JSON in ```json fences even in JSON mode."""
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


class SupportClassifier:
    """Labels customer text and drafts automated replies."""

    def __init__(
        self,
        llm: LLMProvider,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._llm = llm
        self._timeout_seconds = timeout_seconds

    async def classify_intent(self, text: str) -> Classification:
        """Classify customer text.

        Raises:
            ClassificationError: on timeout, provider failure, empty output
                or output that is not a valid classification object.
        """
        try:
            result = await asyncio.wait_for(
                self._llm.generate(
                    prompt=text,
                    system_prompt=CLASSIFICATION_SYSTEM_PROMPT,
                    max_tokens=300,
                    temperature=0.0,
                    json_mode=True,
                ),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                "intent_classification_timeout",
                timeout_seconds=self._timeout_seconds,
                message_len=len(text),
            )
            raise ClassificationError(
                f"Classification timed out after {self._timeout_seconds}s"
            ) from e
        except Exception as e:
            logger.warning(
                "intent_classification_failed",
                error=str(e),
                message_len=len(text),
            )
            raise ClassificationError(f"Classification failed: {e}") from e

        raw = _strip_code_fence(result.text)
        if not raw:
            logger.warning("intent_classification_empty", message_len=len(text))
            raise ClassificationError("Empty response from classifier")

        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise ValueError("classification is not a JSON object")
            classification = Classification.model_validate(payload)
        except (ValueError, ValidationError) as e:
            logger.warning(
                "intent_classification_malformed",
                error=str(e),
                raw_len=len(raw),
            )
            raise ClassificationError(f"Malformed classification: {e}") from e

        logger.debug(
            "intent_classified",
            intent=classification.intent.value,
            priority=classification.priority.value,
            confidence=classification.confidence,
        )
        return classification

    async def generate_reply(self, text: str, classification: Classification) -> str:
        """Draft an automated reply for *text* given its classification.

        Raises:
            GenerationError: on timeout, provider failure or empty output.
        """
        system_prompt = REPLY_SYSTEM_PROMPT.format(
            intent=classification.intent.value,
            priority=classification.priority.value,
        )
        try:
            result = await asyncio.wait_for(
                self._llm.generate(
                    prompt=text,
                    system_prompt=system_prompt,
                    max_tokens=500,
                    temperature=0.4,
                ),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                "reply_generation_timeout",
                timeout_seconds=self._timeout_seconds,
            )
            raise GenerationError(
                f"Reply generation timed out after {self._timeout_seconds}s"
            ) from e
        except Exception as e:
            logger.warning("reply_generation_failed", error=str(e))
            raise GenerationError(f"Reply generation failed: {e}") from e

        reply = result.text.strip()
        if not reply:
            raise GenerationError("Empty reply from model")
        return reply
