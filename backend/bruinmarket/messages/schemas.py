"""Pydantic schemas for direct-message storage.

These schemas are used by:
    - MessageStore: DuckDB storage layer
    - /api/conversations and /api/messages endpoints
    - Session: the confirmed chat envelope is built from a StoredMessage
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class StoredMessage(BaseModel):
    """A persisted direct message.

    Attributes:
        id: Server-assigned message ID (UUID string).
        conversation_id: Conversation the message belongs to.
        sender_id: User who sent the message.
        receiver_id: User the message is addressed to.
        content: Message text.
        created_at: Server timestamp (UTC).
        read: Whether the receiver has marked it read.
    """
    id: str = Field(..., description="Message ID")
    conversation_id: str = Field(..., description="Conversation ID")
    sender_id: str = Field(..., description="Sender user ID")
    receiver_id: str = Field(..., description="Receiver user ID")
    content: str = Field(..., description="Message text")
    created_at: datetime = Field(..., description="When stored (UTC)")
    read: bool = Field(default=False, description="Read by receiver")


class Conversation(BaseModel):
    """A two-party conversation, typically about one listing."""
    id: str = Field(..., description="Conversation ID")
    user1_id: str = Field(..., description="First participant")
    user2_id: str = Field(..., description="Second participant")
    last_message: Optional[str] = Field(None, description="Most recent message text")
    last_message_at: Optional[datetime] = Field(None, description="Most recent message time")
    created_at: datetime = Field(..., description="When created (UTC)")

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.user1_id, self.user2_id)

    def other_participant(self, user_id: str) -> str:
        return self.user2_id if user_id == self.user1_id else self.user1_id


class ConversationCreate(BaseModel):
    """Request body for opening a conversation with another user."""
    other_user_id: str = Field(..., min_length=1, description="The other participant")


class ConversationList(BaseModel):
    conversations: List[Conversation]
    count: int


class MessageList(BaseModel):
    messages: List[StoredMessage]
    count: int


class MarkReadResponse(BaseModel):
    updated: int = Field(..., description="Number of messages marked read")
