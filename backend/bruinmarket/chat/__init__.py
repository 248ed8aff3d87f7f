"""Realtime direct-message delivery.

The hub routes user ids to live sessions; each session runs a read loop
(decode, store, fan out) and a write loop (drain outbound queue).
"""

from .hub import Hub, get_hub, set_hub
from .outbound import OutboundQueue
from .session import Session, SessionState, serve_connection

__all__ = [
    "Hub",
    "OutboundQueue",
    "Session",
    "SessionState",
    "get_hub",
    "serve_connection",
    "set_hub",
]
