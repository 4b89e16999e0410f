"""WebSocket endpoint for real-time chat.

Each connection is handed to the process-wide ChatRelay, which owns it
until the socket closes or the liveness monitor reaps it.
"""

from fastapi import APIRouter, Depends, WebSocket

from app.api.deps import get_chat_relay
from app.services.chat.relay import ChatRelay

router = APIRouter()


@router.websocket("/ws")
async def chat_websocket(
    websocket: WebSocket,
    relay: ChatRelay = Depends(get_chat_relay),
) -> None:
    """Relay chat events for one client connection."""
    await relay.serve(websocket)
