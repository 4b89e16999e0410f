"""Health check endpoint."""

from fastapi import APIRouter, Depends

from app.api.deps import get_session_registry
from app.services.chat.registry import SessionRegistry

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(
    registry: SessionRegistry = Depends(get_session_registry),
) -> dict:
    """Liveness plus a snapshot of the relay's connection registry."""
    return {
        "status": "ok",
        "open_connections": registry.connection_count,
        "registered_sessions": registry.session_count,
    }
