"""DuckDB-based direct-message storage service.

This is the persistence collaborator of the realtime chat layer: every
inbound chat frame is stored here exactly once before it is delivered, and
the conversation's last-message preview is refreshed afterwards.

Database Schema:
    conversations table:
        - id: Conversation identifier (UUID string)
        - user1_id / user2_id: Participants (stored in sorted order)
        - last_message / last_message_at: Preview for conversation lists
        - created_at: When the conversation was opened (UTC)

    messages table:
        - id: Message identifier (UUID string, assigned here)
        - conversation_id, sender_id, receiver_id, content
        - created_at: Server timestamp (UTC)
        - is_read: Whether the receiver has read it

Timestamps are stored as naive UTC and returned timezone-aware.

Thread Safety:
    The DuckDB connection is NOT thread-safe. All calls are expected to come
    from the event loop thread that serves the API.

Usage:
    store = MessageStore.get_instance()
    conversation = store.get_or_create_conversation("u1", "u2")
    message = store.save_message(conversation.id, "u1", "u2", "still available?")
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

import duckdb

from .schemas import Conversation, StoredMessage

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_LIMIT = 100
MAX_MESSAGE_LIMIT = 500


class MessageStoreError(Exception):
    """Raised when a message or conversation cannot be stored or found."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(ts: datetime) -> datetime:
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def _from_db(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is None:
        return None
    return ts.replace(tzinfo=timezone.utc)


class MessageStore:
    """Singleton service for conversations and direct messages in DuckDB.

    Attributes:
        _instance: Singleton instance of the service.
        _db_path: Path to the DuckDB database file.
    """

    _instance: Optional["MessageStore"] = None
    _db_path: str = "bruinmarket.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        """Initialize the store, creating the schema if needed.

        Args:
            db_path: Path to DuckDB file, or ":memory:".
        """
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialize_db()

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "MessageStore":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call).
        """
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close the connection and clear the singleton (used by tests and shutdown)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        """Create tables and indexes. Safe to call multiple times."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id VARCHAR PRIMARY KEY,
                user1_id VARCHAR NOT NULL,
                user2_id VARCHAR NOT NULL,
                last_message VARCHAR,
                last_message_at TIMESTAMP,
                created_at TIMESTAMP NOT NULL,
                UNIQUE (user1_id, user2_id)
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id VARCHAR PRIMARY KEY,
                conversation_id VARCHAR NOT NULL,
                sender_id VARCHAR NOT NULL,
                receiver_id VARCHAR NOT NULL,
                content VARCHAR NOT NULL,
                created_at TIMESTAMP NOT NULL,
                is_read BOOLEAN NOT NULL DEFAULT FALSE
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_conversation
            ON messages(conversation_id)
        """)

    # =========================================================================
    # Conversations
    # =========================================================================

    def get_or_create_conversation(self, user_a: str, user_b: str) -> Conversation:
        """Return the conversation between two users, opening it if needed.

        Raises:
            MessageStoreError: If both ids are the same user.
        """
        if user_a == user_b:
            raise MessageStoreError("Cannot open a conversation with yourself")

        user1_id, user2_id = sorted((user_a, user_b))
        conn = self._get_connection()
        row = conn.execute(
            """
            SELECT id, user1_id, user2_id, last_message, last_message_at, created_at
            FROM conversations
            WHERE user1_id = ? AND user2_id = ?
            """,
            [user1_id, user2_id]
        ).fetchone()
        if row:
            return self._row_to_conversation(row)

        conversation = Conversation(
            id=str(uuid.uuid4()),
            user1_id=user1_id,
            user2_id=user2_id,
            created_at=_utcnow(),
        )
        conn.execute(
            """
            INSERT INTO conversations (id, user1_id, user2_id, created_at)
            VALUES (?, ?, ?, ?)
            """,
            [conversation.id, user1_id, user2_id, _to_db(conversation.created_at)]
        )
        logger.info(f"Opened conversation {conversation.id} between {user1_id} and {user2_id}")
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        row = self._get_connection().execute(
            """
            SELECT id, user1_id, user2_id, last_message, last_message_at, created_at
            FROM conversations
            WHERE id = ?
            """,
            [conversation_id]
        ).fetchone()
        return self._row_to_conversation(row) if row else None

    def get_conversations(self, user_id: str) -> List[Conversation]:
        """List a user's conversations, most recently active first."""
        rows = self._get_connection().execute(
            """
            SELECT id, user1_id, user2_id, last_message, last_message_at, created_at
            FROM conversations
            WHERE user1_id = ? OR user2_id = ?
            ORDER BY COALESCE(last_message_at, created_at) DESC
            """,
            [user_id, user_id]
        ).fetchall()
        return [self._row_to_conversation(row) for row in rows]

    def update_last_message(
        self, conversation_id: str, content: str, created_at: datetime
    ) -> None:
        """Refresh the preview shown in conversation lists."""
        self._get_connection().execute(
            """
            UPDATE conversations
            SET last_message = ?, last_message_at = ?
            WHERE id = ?
            """,
            [content, _to_db(created_at), conversation_id]
        )

    # =========================================================================
    # Messages
    # =========================================================================

    def save_message(
        self,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
    ) -> StoredMessage:
        """Store a direct message and assign its id and timestamp.

        Raises:
            MessageStoreError: If the conversation does not exist or the
                sender/receiver pair does not match its participants.
        """
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise MessageStoreError(f"Unknown conversation: {conversation_id}")
        if sender_id == receiver_id or not (
            conversation.has_participant(sender_id)
            and conversation.has_participant(receiver_id)
        ):
            raise MessageStoreError(
                f"Users {sender_id}/{receiver_id} are not the participants of "
                f"conversation {conversation_id}"
            )

        message = StoredMessage(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            created_at=_utcnow(),
        )
        self._get_connection().execute(
            """
            INSERT INTO messages (id, conversation_id, sender_id, receiver_id, content, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                message.id,
                message.conversation_id,
                message.sender_id,
                message.receiver_id,
                message.content,
                _to_db(message.created_at),
            ]
        )
        return message

    def get_messages(
        self, conversation_id: str, limit: int = DEFAULT_MESSAGE_LIMIT
    ) -> List[StoredMessage]:
        """Return the most recent messages of a conversation, oldest first."""
        limit = max(1, min(limit, MAX_MESSAGE_LIMIT))
        rows = self._get_connection().execute(
            """
            SELECT id, conversation_id, sender_id, receiver_id, content, created_at, is_read
            FROM (
                SELECT * FROM messages
                WHERE conversation_id = ?
                ORDER BY created_at DESC
                LIMIT ?
            )
            ORDER BY created_at ASC
            """,
            [conversation_id, limit]
        ).fetchall()
        return [
            StoredMessage(
                id=row[0],
                conversation_id=row[1],
                sender_id=row[2],
                receiver_id=row[3],
                content=row[4],
                created_at=_from_db(row[5]),
                read=row[6],
            )
            for row in rows
        ]

    def mark_read(self, conversation_id: str, reader_id: str) -> int:
        """Mark every unread message addressed to ``reader_id`` as read.

        Returns:
            Number of messages updated.
        """
        conn = self._get_connection()
        count = conn.execute(
            """
            SELECT COUNT(*) FROM messages
            WHERE conversation_id = ? AND receiver_id = ? AND NOT is_read
            """,
            [conversation_id, reader_id]
        ).fetchone()[0]
        if count:
            conn.execute(
                """
                UPDATE messages SET is_read = TRUE
                WHERE conversation_id = ? AND receiver_id = ? AND NOT is_read
                """,
                [conversation_id, reader_id]
            )
        return count

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @staticmethod
    def _row_to_conversation(row) -> Conversation:
        return Conversation(
            id=row[0],
            user1_id=row[1],
            user2_id=row[2],
            last_message=row[3],
            last_message_at=_from_db(row[4]),
            created_at=_from_db(row[5]),
        )
