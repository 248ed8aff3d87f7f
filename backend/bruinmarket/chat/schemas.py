"""Pydantic schemas for the realtime chat wire format.

Clients send an inbound envelope over the WebSocket:

    {"type": "message", "conversation_id": "...", "sender_id": "...",
     "receiver_id": "...", "content": "..."}

Once the message is stored, the server fans out the confirmed envelope to
both participants. It carries the same fields plus the server-assigned
``message_id`` and ``created_at``.

Only ``type == "message"`` triggers persistence and delivery; frames with any
other ``type`` are ignored by the session.
"""
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class EnvelopeType(str, Enum):
    """Discriminator values used on the wire.

    Attributes:
        MESSAGE: Direct chat message between two users.
        ERROR: Server-to-client error notice.
    """
    MESSAGE = "message"
    ERROR = "error"


class ChatEnvelope(BaseModel):
    """Inbound chat message sent by a client.

    ``sender_id`` is optional on input; the session always stamps the
    authenticated user id of the connection.
    """
    type: EnvelopeType = Field(..., description="Envelope discriminator")
    conversation_id: str = Field(..., min_length=1, description="Conversation ID")
    sender_id: str = Field(default="", description="Claimed sender user ID")
    receiver_id: str = Field(..., min_length=1, description="Receiver user ID")
    content: str = Field(..., description="Message text")

    @field_validator("conversation_id", "sender_id", "receiver_id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        # Browser clients send numeric ids from the SQL layer
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content is required")
        return value


class OutboundEnvelope(BaseModel):
    """Confirmed chat message delivered to sender and receiver."""
    type: EnvelopeType = Field(default=EnvelopeType.MESSAGE)
    message_id: str = Field(..., description="Server-assigned message ID")
    conversation_id: str
    sender_id: str
    receiver_id: str
    content: str
    created_at: datetime = Field(..., description="Server timestamp (UTC)")


class ErrorEnvelope(BaseModel):
    """Error notice sent back to the sender of a frame."""
    type: EnvelopeType = Field(default=EnvelopeType.ERROR)
    error: str
    conversation_id: str = ""
