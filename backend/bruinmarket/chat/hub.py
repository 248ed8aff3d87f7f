"""Process-wide registry of live chat sessions.

The hub routes a user id to the single session currently allowed to receive
that user's realtime events. It is the only shared mutable structure in the
realtime layer; every access goes through the methods below.

Concurrency:
    The table is guarded by one lock that is held only across dict
    operations. Nothing here performs network I/O or awaits, so register,
    unregister and send_to_user are safe to call from any session task and
    never block the caller beyond acquiring the lock.

    Delivery itself is a non-blocking ``offer`` onto the target session's
    outbound queue. A full queue means the consumer is stuck; the hub then
    deregisters that session instead of making the producer wait.

Ownership:
    The hub holds non-owning references. It never touches a session's
    connection; it only closes the session's outbound queue when the session
    is deregistered, which makes the session's write loop exit and tear the
    session down.
"""
import logging
import threading
from typing import TYPE_CHECKING, Dict, List, Optional

if TYPE_CHECKING:
    from .session import Session

logger = logging.getLogger(__name__)


class Hub:
    """Maps user ids to their active :class:`~bruinmarket.chat.session.Session`.

    Invariant: at most one registered session per user id.

    Args:
        evict_superseded: When True, registering a new session for a user
            closes the outbound queue of the session it replaces (immediate
            cutover). When False the old entry is only overwritten and the old
            session is left to fail on its next read or write.
    """

    def __init__(self, evict_superseded: bool = True) -> None:
        self.evict_superseded = evict_superseded
        self._lock = threading.Lock()
        self._sessions: Dict[str, "Session"] = {}

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, user_id: str, session: "Session") -> None:
        """Make ``session`` the delivery target for ``user_id``."""
        with self._lock:
            previous = self._sessions.get(user_id)
            self._sessions[user_id] = session

        if previous is None or previous is session:
            logger.info(f"[Hub] Registered user {user_id} ({len(self)} online)")
            return

        if self.evict_superseded:
            previous.outbound.close()
            logger.info(f"[Hub] User {user_id} reconnected; closed superseded session")
        else:
            logger.info(f"[Hub] User {user_id} reconnected; superseded session left to expire")

    def unregister(self, user_id: str, session: "Session") -> bool:
        """Remove ``user_id`` only if ``session`` is still its registered session.

        A superseded session tearing down late must not remove the newer
        registration, so a mismatch is a no-op.

        Returns:
            True if the entry was removed (and the queue closed), False otherwise.
        """
        with self._lock:
            if self._sessions.get(user_id) is not session:
                return False
            del self._sessions[user_id]

        session.outbound.close()
        logger.info(f"[Hub] Unregistered user {user_id} ({len(self)} online)")
        return True

    # =========================================================================
    # Delivery
    # =========================================================================

    def send_to_user(self, user_id: str, payload: str) -> bool:
        """Queue ``payload`` for delivery to ``user_id`` without blocking.

        Returns:
            True if the frame was queued. False if the user has no session,
            the session is already closing, or its queue was full (in which
            case the session is deregistered).
        """
        with self._lock:
            session = self._sessions.get(user_id)

        if session is None:
            return False

        outbound = session.outbound
        if outbound.offer(payload):
            return True

        if outbound.closed:
            return False

        logger.warning(
            f"[Hub] Outbound queue full for user {user_id} "
            f"({outbound.maxsize} frames); dropping session"
        )
        self.unregister(user_id, session)
        return False

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, user_id: str) -> Optional["Session"]:
        with self._lock:
            return self._sessions.get(user_id)

    def is_online(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._sessions

    def online_users(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # =========================================================================
    # Shutdown
    # =========================================================================

    def shutdown(self) -> List["Session"]:
        """Deregister every session.

        Each outbound queue is closed, which drives the owning session through
        teardown. The caller may await ``wait_closed()`` on the returned
        sessions.
        """
        with self._lock:
            sessions = list(self._sessions.items())

        for user_id, session in sessions:
            self.unregister(user_id, session)

        logger.info(f"[Hub] Shutdown requested for {len(sessions)} sessions")
        return [session for _, session in sessions]


_hub: Optional[Hub] = None


def get_hub() -> Hub:
    """Return the process-wide hub, creating a default one on first use."""
    global _hub
    if _hub is None:
        _hub = Hub()
    return _hub


def set_hub(hub: Optional[Hub]) -> None:
    """Replace (or clear, with None) the process-wide hub."""
    global _hub
    _hub = hub
