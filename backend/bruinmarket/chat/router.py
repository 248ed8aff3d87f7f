"""Chat router providing the realtime WebSocket endpoint.

This module provides:
    - WebSocket /api/ws?token=<jwt>: Realtime direct messaging
    - GET /api/users/{user_id}/online: Presence lookup

Protocol:
    1. Client connects with its session token in the ``token`` query
       parameter. A missing or invalid token closes the socket with code
       1008 before it is accepted; no session is created.
    2. Client sends:
       {type: "message", conversation_id, sender_id, receiver_id, content}
    3. Once stored, both participants receive:
       {type: "message", message_id, conversation_id, sender_id,
        receiver_id, content, created_at}

Frames with any other ``type`` are ignored.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from bruinmarket.auth.service import InvalidTokenError, decode_access_token
from bruinmarket.config import get_config
from bruinmarket.messages.service import MessageStore

from .hub import get_hub
from .session import serve_connection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

# 1008 = Policy Violation
WS_POLICY_VIOLATION = 1008


class WebSocketConnection:
    """Adapts a Starlette WebSocket to the session's text connection contract."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def receive_text(self) -> str:
        message = await self.websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000))
        if message.get("text") is not None:
            return message["text"]
        # Binary frames go through the same JSON decoding as text frames
        return (message.get("bytes") or b"").decode("utf-8", errors="replace")

    async def send_text(self, data: str) -> None:
        await self.websocket.send_text(data)

    async def close(self) -> None:
        await self.websocket.close()


@router.websocket("/ws")
async def websocket_chat_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="Session token (JWT)"),
) -> None:
    """WebSocket endpoint for realtime direct messages.

    Args:
        websocket: The WebSocket connection.
        token: Session token identifying the user.
    """
    try:
        user_id = decode_access_token(token)
    except InvalidTokenError as e:
        logger.warning(f"[WS] Rejected connection: {e}")
        await websocket.close(code=WS_POLICY_VIOLATION)
        return

    await websocket.accept()
    logger.info(f"[WS] Connection accepted for user {user_id}")

    config = get_config()
    store = MessageStore.get_instance(db_path=config.database.path)
    await serve_connection(
        get_hub(),
        user_id,
        WebSocketConnection(websocket),
        store,
        settings=config.hub,
    )
    logger.info(f"[WS] Connection finished for user {user_id}")


@router.get("/users/{user_id}/online")
async def user_online(user_id: str) -> dict:
    """Report whether a user currently has a live chat connection."""
    return {"user_id": user_id, "online": get_hub().is_online(user_id)}
