"""SQLAlchemy ORM models.

Individual models should be imported explicitly:
    from app.models.chat_session import ChatSession

All models are imported here so Alembic can detect them during migration
autogenerate. This module is imported by alembic/env.py.
"""

from app.models.chat_message import ChatMessage
from app.models.chat_session import ChatSession
from app.models.customer import Customer
from app.models.ticket import Ticket

__all__ = [
    "Customer",
    "Ticket",
    "ChatSession",
    "ChatMessage",
]
