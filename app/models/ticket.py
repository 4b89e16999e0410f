"""Support ticket ORM model (reference target for chat sessions)."""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.database import Base


class Ticket(Base):
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    customer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        Text, default="open"
    )  # 'open' | 'in_progress' | 'resolved' | 'closed'
    priority: Mapped[str] = mapped_column(
        Text, default="medium"
    )  # 'low' | 'medium' | 'high' | 'critical'
    category: Mapped[str] = mapped_column(
        Text, nullable=False
    )  # 'technical' | 'billing' | 'general' | 'sensitive'
    assigned_to: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_classification: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
