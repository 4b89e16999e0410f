"""Database engine and session factory.

Imports are intentionally NOT eagerly loaded here so that importing the
models does not build an engine. Use explicit imports:
``from app.db.database import build_session_factory``.
"""
