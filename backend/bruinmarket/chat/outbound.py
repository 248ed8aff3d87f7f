"""Bounded, closable outbound queue for a single chat session.

Producers (the hub, on behalf of any session's read loop) enqueue serialized
frames with :meth:`OutboundQueue.offer`, which never suspends. The owning
session's write loop is the only consumer and drains the queue with
:meth:`OutboundQueue.get` until it returns ``None``.

The capacity limit is enforced by ``offer`` rather than by the underlying
``asyncio.Queue`` so that ``close`` can always append its end-of-stream
marker, even when the queue is full.
"""
import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# End-of-stream marker placed behind any pending frames on close
_CLOSED = object()


class OutboundQueue:
    """FIFO of outbound frames with a non-blocking offer and a close-once guard.

    Attributes:
        maxsize: Maximum number of frames held before ``offer`` reports full.
    """

    def __init__(self, maxsize: int = 256) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.maxsize = maxsize
        self._items: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        """Number of frames waiting to be written."""
        size = self._items.qsize()
        if self._closed and not self._drained:
            size -= 1  # end-of-stream marker
        return max(size, 0)

    def full(self) -> bool:
        return self.qsize() >= self.maxsize

    def offer(self, payload: str) -> bool:
        """Enqueue a frame without waiting.

        Returns:
            True if the frame was queued, False if the queue is closed or full.
        """
        if self._closed or self.full():
            return False
        self._items.put_nowait(payload)
        return True

    def close(self) -> bool:
        """Close the queue. Frames already queued are still delivered.

        Returns:
            True for the call that actually closed the queue, False afterwards.
        """
        if self._closed:
            return False
        self._closed = True
        self._items.put_nowait(_CLOSED)
        return True

    async def get(self) -> Optional[str]:
        """Wait for the next frame.

        Returns:
            The next frame, or None once the queue is closed and drained.
        """
        if self._drained:
            return None
        item = await self._items.get()
        if item is _CLOSED:
            self._drained = True
            return None
        return item
