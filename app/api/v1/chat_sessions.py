"""Chat session endpoints used by the chat view.

Creating a session, listing active sessions, and replaying a session's
messages in order for a viewer that is about to join over /ws.
"""

from fastapi import APIRouter, Depends, status

from app.api.deps import get_chat_store
from app.core.exceptions import ChatSessionNotFoundError
from app.schemas.chat import ChatMessageOut, ChatSessionCreate, ChatSessionOut
from app.services.chat.store import ChatStore

router = APIRouter(prefix="/chat-sessions", tags=["chat"])


@router.post(
    "",
    response_model=ChatSessionOut,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_chat_session(
    body: ChatSessionCreate,
    store: ChatStore = Depends(get_chat_store),
) -> ChatSessionOut:
    """Start a new chat session."""
    chat_session = await store.create_chat_session(
        customer_id=body.customer_id,
        ticket_id=body.ticket_id,
    )
    return ChatSessionOut.from_record(chat_session)


@router.get("", response_model=list[ChatSessionOut], response_model_by_alias=True)
async def list_active_chat_sessions(
    store: ChatStore = Depends(get_chat_store),
) -> list[ChatSessionOut]:
    """List sessions whose status is still 'active'."""
    sessions = await store.list_active_chat_sessions()
    return [ChatSessionOut.from_record(s) for s in sessions]


@router.get(
    "/{session_id}/messages",
    response_model=list[ChatMessageOut],
    response_model_by_alias=True,
)
async def list_chat_messages(
    session_id: int,
    store: ChatStore = Depends(get_chat_store),
) -> list[ChatMessageOut]:
    """Full message history of a session, oldest first."""
    if await store.get_chat_session(session_id) is None:
        raise ChatSessionNotFoundError()
    messages = await store.list_chat_messages(session_id)
    return [ChatMessageOut.from_record(m) for m in messages]
