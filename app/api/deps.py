"""Shared FastAPI dependencies — process-scoped chat components.

The store, registry and relay are created once during the FastAPI lifespan
and stored on app.state. All downstream code retrieves them via Depends(),
never by direct import.
"""

from fastapi import Request, WebSocket

from app.services.chat.registry import SessionRegistry
from app.services.chat.relay import ChatRelay
from app.services.chat.store import ChatStore


def get_chat_store(request: Request) -> ChatStore:
    """Return the singleton ChatStore from app state."""
    return request.app.state.chat_store


def get_session_registry(request: Request) -> SessionRegistry:
    """Return the singleton SessionRegistry from app state."""
    return request.app.state.session_registry


def get_chat_relay(websocket: WebSocket) -> ChatRelay:
    """Return the singleton ChatRelay from app state (WebSocket scope)."""
    return websocket.app.state.chat_relay
