"""Direct-message API endpoints.

Endpoints:
    POST /api/conversations: Open (or fetch) a conversation with another user
    GET  /api/conversations: List the caller's conversations
    GET  /api/messages/{conversation_id}: Message history, oldest first
    POST /api/messages/{conversation_id}/read: Mark messages to the caller read

All endpoints require a bearer token and only expose conversations the
caller participates in. New messages are sent over the WebSocket, not here.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from bruinmarket.auth.service import get_current_user_id
from bruinmarket.config import get_config

from .schemas import (
    Conversation,
    ConversationCreate,
    ConversationList,
    MarkReadResponse,
    MessageList,
)
from .service import (
    DEFAULT_MESSAGE_LIMIT,
    MAX_MESSAGE_LIMIT,
    MessageStore,
    MessageStoreError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["messages"])


def get_store() -> MessageStore:
    return MessageStore.get_instance(db_path=get_config().database.path)


def _require_participant(store: MessageStore, conversation_id: str, user_id: str) -> Conversation:
    conversation = store.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    if not conversation.has_participant(user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a participant")
    return conversation


@router.post("/conversations", response_model=Conversation)
async def open_conversation(
    request: ConversationCreate,
    user_id: str = Depends(get_current_user_id),
    store: MessageStore = Depends(get_store),
) -> Conversation:
    """Open a conversation with another user, or return the existing one."""
    try:
        return store.get_or_create_conversation(user_id, request.other_user_id)
    except MessageStoreError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e


@router.get("/conversations", response_model=ConversationList)
async def list_conversations(
    user_id: str = Depends(get_current_user_id),
    store: MessageStore = Depends(get_store),
) -> ConversationList:
    conversations = store.get_conversations(user_id)
    return ConversationList(conversations=conversations, count=len(conversations))


@router.get("/messages/{conversation_id}", response_model=MessageList)
async def get_messages(
    conversation_id: str,
    limit: int = Query(DEFAULT_MESSAGE_LIMIT, ge=1, le=MAX_MESSAGE_LIMIT),
    user_id: str = Depends(get_current_user_id),
    store: MessageStore = Depends(get_store),
) -> MessageList:
    """Get the most recent messages of a conversation, oldest first."""
    _require_participant(store, conversation_id, user_id)
    messages = store.get_messages(conversation_id, limit=limit)
    return MessageList(messages=messages, count=len(messages))


@router.post("/messages/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_read(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    store: MessageStore = Depends(get_store),
) -> MarkReadResponse:
    _require_participant(store, conversation_id, user_id)
    updated = store.mark_read(conversation_id, user_id)
    logger.info(f"Marked {updated} messages read in {conversation_id} for {user_id}")
    return MarkReadResponse(updated=updated)
