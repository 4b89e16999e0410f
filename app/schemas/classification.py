"""Intent classification record produced by the Classifier Port.

The language model's raw JSON is never trusted as-is: every field is
normalized here so downstream code only ever sees the recognized values.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class IntentType(str, Enum):
    TECHNICAL = "technical"
    BILLING = "billing"
    GENERAL = "general"
    SENSITIVE = "sensitive"
    COMPLEX_TECHNICAL = "complex_technical"
    UNKNOWN = "unknown"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Classification(BaseModel):
    """Intent, priority and confidence for one piece of customer text."""

    model_config = ConfigDict(populate_by_name=True)

    intent: IntentType
    confidence: float
    priority: Priority
    summary: str = ""
    suggested_actions: list[str] = Field(default_factory=list, alias="suggestedActions")

    @field_validator("intent", mode="before")
    @classmethod
    def _normalize_intent(cls, value: object) -> IntentType:
        cleaned = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return IntentType(cleaned)
        except ValueError:
            return IntentType.UNKNOWN

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value: object) -> Priority:
        cleaned = str(value or "").strip().lower()
        try:
            return Priority(cleaned)
        except ValueError:
            return Priority.MEDIUM

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        if value != value:  # NaN
            return 0.0
        return max(0.0, min(1.0, value))

    @field_validator("suggested_actions", mode="before")
    @classmethod
    def _default_actions(cls, value: object) -> object:
        return [] if value is None else value

    def to_metadata(self) -> dict:
        """JSON-ready dict stored as ``ai_metadata`` on chat messages."""
        return self.model_dump(mode="json", by_alias=True)
