"""Chat session ORM model."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.database import Base


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("customers.id"), nullable=True
    )
    ticket_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("tickets.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        Text, default="active"
    )  # 'active' | 'ended' | 'transferred'
    assigned_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_ai_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    customer: Mapped["Customer"] = relationship(  # noqa: F821
        back_populates="chat_sessions", lazy="noload"
    )
    messages: Mapped[list["ChatMessage"]] = relationship(  # noqa: F821
        back_populates="session", lazy="noload"
    )
