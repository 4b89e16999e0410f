"""Escalation state machine — automated replies vs. human handoff.

A session starts Automated (is_ai_active=True). Every customer message is
classified; the session either gets an automated reply or is escalated to a
human agent. Escalation is one-directional: once is_ai_active is False, later
customer messages never reach the classifier again.

EscalationService.escalate() does exactly these things in order:
1. Set chat_sessions.is_ai_active = False and assigned_agent
2. Persist + deliver a system message announcing the agent
3. Schedule (not await) the agent greeting after a short delay

Classifier and generation failures never surface to the customer. They
always degrade to a fixed apology followed by escalation.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from app.core.exceptions import ClassificationError, GenerationError
from app.schemas.chat import MessageKind, SenderRole
from app.schemas.classification import Classification, IntentType, Priority
from app.services.chat.classifier import SupportClassifier
from app.services.chat.delivery import SessionDelivery
from app.services.chat.store import ChatStore

logger = structlog.get_logger(__name__)


ESCALATION_INTENTS = frozenset({IntentType.SENSITIVE, IntentType.COMPLEX_TECHNICAL})
ESCALATION_PRIORITIES = frozenset({Priority.HIGH, Priority.CRITICAL})
CONFIDENCE_THRESHOLD = 0.7

AI_SENDER_NAME = "AI Assistant"
SYSTEM_SENDER_NAME = "System"

ESCALATION_ACK_MESSAGE = (
    "I understand this is an important issue. Let me connect you with one of "
    "our technical specialists who can provide detailed assistance."
)
CLASSIFIER_FALLBACK_MESSAGE = (
    "I'm having trouble processing your request right now. Let me connect you "
    "with a human agent who can help you immediately."
)
GENERATION_FALLBACK_MESSAGE = (
    "I understand your concern. Let me connect you with a human agent who can "
    "provide detailed assistance."
)


def should_escalate(classification: Classification) -> tuple[bool, str | None]:
    """Decide from the classification alone whether a human must take over."""
    if classification.intent in ESCALATION_INTENTS:
        return True, f"{classification.intent.value}_intent"
    if classification.priority in ESCALATION_PRIORITIES:
        return True, f"{classification.priority.value}_priority"
    if classification.confidence < CONFIDENCE_THRESHOLD:
        return True, "low_confidence"
    return False, None


@dataclass(frozen=True)
class AgentAssignment:
    """The human agent every escalation is routed to."""

    name: str
    team: str

    @property
    def join_announcement(self) -> str:
        return f"{self.name} ({self.team}) has joined the conversation"

    @property
    def greeting(self) -> str:
        first_name = self.name.split()[0]
        return (
            f"Hi! I'm {first_name} from our technical team. I can see the AI has "
            "identified this as a priority issue. I'm here to help you resolve "
            "this. Let me review the details and get back to you with a solution."
        )


class EscalationService:
    """Runs the per-message AI pipeline and performs the human handoff."""

    def __init__(
        self,
        store: ChatStore,
        classifier: SupportClassifier,
        delivery: SessionDelivery,
        agent: AgentAssignment,
        greeting_delay_seconds: float = 1.0,
    ) -> None:
        self._store = store
        self._classifier = classifier
        self._delivery = delivery
        self._agent = agent
        self._greeting_delay_seconds = greeting_delay_seconds
        self._escalating: set[int] = set()
        self._greetings: dict[int, asyncio.Task] = {}

    async def handle_customer_message(self, session_id: int, text: str) -> bool:
        """Classify one customer message and reply or escalate.

        Returns True if the session was escalated by this message.
        Storage errors propagate; classifier errors never do.
        """
        chat_session = await self._store.get_chat_session(session_id)
        if chat_session is None or not chat_session.is_ai_active:
            logger.debug("ai_pipeline_skipped_human_handled", session_id=session_id)
            return False
        if session_id in self._escalating:
            logger.debug("ai_pipeline_skipped_escalating", session_id=session_id)
            return False

        try:
            classification = await self._classifier.classify_intent(text)
        except ClassificationError as e:
            logger.warning(
                "classification_degraded", session_id=session_id, error=e.message
            )
            await self._post_ai_message(session_id, CLASSIFIER_FALLBACK_MESSAGE)
            await self.escalate(session_id, reason="classifier_unavailable")
            return True

        escalate, reason = should_escalate(classification)
        if escalate:
            await self._post_ai_message(
                session_id, ESCALATION_ACK_MESSAGE, classification
            )
            await self.escalate(session_id, reason=reason)
            return True

        try:
            reply = await self._classifier.generate_reply(text, classification)
        except GenerationError as e:
            logger.warning(
                "generation_degraded", session_id=session_id, error=e.message
            )
            await self._post_ai_message(
                session_id, GENERATION_FALLBACK_MESSAGE, classification
            )
            await self.escalate(session_id, reason="generation_unavailable")
            return True

        await self._post_ai_message(session_id, reply, classification)
        logger.info(
            "ai_reply_sent",
            session_id=session_id,
            intent=classification.intent.value,
            confidence=classification.confidence,
        )
        return False

    async def escalate(self, session_id: int, reason: str | None) -> None:
        """Hand the session to the assigned human agent."""
        if session_id in self._escalating:
            return
        self._escalating.add(session_id)
        try:
            await self._store.update_chat_session(
                session_id,
                is_ai_active=False,
                assigned_agent=self._agent.name,
            )
            announcement = await self._store.create_chat_message(
                session_id=session_id,
                sender=SenderRole.SYSTEM.value,
                sender_name=SYSTEM_SENDER_NAME,
                message=self._agent.join_announcement,
                message_type=MessageKind.SYSTEM.value,
            )
            await self._delivery.publish_message(session_id, announcement)
            self._schedule_greeting(session_id)
            logger.info(
                "escalation_triggered",
                session_id=session_id,
                reason=reason,
                agent=self._agent.name,
            )
        finally:
            self._escalating.discard(session_id)

    async def _post_ai_message(
        self,
        session_id: int,
        text: str,
        classification: Classification | None = None,
    ) -> None:
        record = await self._store.create_chat_message(
            session_id=session_id,
            sender=SenderRole.AI.value,
            sender_name=AI_SENDER_NAME,
            message=text,
            message_type=MessageKind.TEXT.value,
            ai_metadata=classification.to_metadata() if classification else None,
        )
        await self._delivery.publish_message(session_id, record)

    # ------------------------------------------------------------------
    # Delayed agent greeting
    # ------------------------------------------------------------------

    def _schedule_greeting(self, session_id: int) -> None:
        previous = self._greetings.pop(session_id, None)
        if previous is not None:
            previous.cancel()
        task = asyncio.create_task(self._send_greeting_after_delay(session_id))
        self._greetings[session_id] = task
        task.add_done_callback(lambda t: self._forget_greeting(session_id, t))
        logger.debug(
            "agent_greeting_scheduled",
            session_id=session_id,
            delay_seconds=self._greeting_delay_seconds,
        )

    def _forget_greeting(self, session_id: int, task: asyncio.Task) -> None:
        if self._greetings.get(session_id) is task:
            del self._greetings[session_id]

    async def _send_greeting_after_delay(self, session_id: int) -> None:
        """Background task — exceptions are logged, never propagated."""
        try:
            await asyncio.sleep(self._greeting_delay_seconds)
            record = await self._store.create_chat_message(
                session_id=session_id,
                sender=SenderRole.AGENT.value,
                sender_name=self._agent.name,
                message=self._agent.greeting,
                message_type=MessageKind.TEXT.value,
            )
            await self._delivery.publish_message(session_id, record)
        except asyncio.CancelledError:
            logger.info("agent_greeting_cancelled", session_id=session_id)
            raise
        except Exception as e:
            logger.error("agent_greeting_failed", session_id=session_id, error=str(e))

    def has_pending_greeting(self, session_id: int) -> bool:
        return session_id in self._greetings

    def cancel_pending_greeting(self, session_id: int) -> bool:
        """Cancel a not-yet-delivered greeting. Returns True if one was pending."""
        task = self._greetings.pop(session_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def wait_for_greetings(self) -> None:
        """Wait until every scheduled greeting has been delivered or cancelled."""
        while self._greetings:
            await asyncio.gather(*list(self._greetings.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._greetings.values())
        self._greetings.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
