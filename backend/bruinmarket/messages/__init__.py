"""Direct-message storage (DuckDB) and history endpoints."""

from .schemas import Conversation, StoredMessage
from .service import MessageStore, MessageStoreError

__all__ = [
    "Conversation",
    "MessageStore",
    "MessageStoreError",
    "StoredMessage",
]
