"""In-memory stand-ins for the connection and store collaborators of a Session."""
import asyncio
import json
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import List, Optional

from bruinmarket.chat.outbound import OutboundQueue
from bruinmarket.messages.schemas import StoredMessage

_EOF = object()


class ConnectionClosed(Exception):
    """Raised by FakeConnection on reads/writes after the peer went away."""


class FakeConnection:
    """Duplex text connection driven by the test.

    * ``feed()`` / ``feed_json()`` queue inbound frames for the read loop.
    * ``disconnect()`` makes the next read fail like a dropped socket.
    * ``gate`` (an Event) blocks ``send_text`` until set, to simulate a slow peer.
    * ``fail_send`` makes every write raise.
    """

    def __init__(self) -> None:
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.frames: asyncio.Queue = asyncio.Queue()
        self.sent: List[str] = []
        self.closed = False
        self.close_calls = 0
        self.fail_send = False
        self.gate: Optional[asyncio.Event] = None

    def feed(self, raw: str) -> None:
        self.inbound.put_nowait(raw)

    def feed_json(self, obj) -> None:
        self.feed(json.dumps(obj))

    def disconnect(self) -> None:
        self.inbound.put_nowait(_EOF)

    async def receive_text(self) -> str:
        item = await self.inbound.get()
        if item is _EOF or self.closed:
            raise ConnectionClosed("peer disconnected")
        return item

    async def send_text(self, data: str) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.closed or self.fail_send:
            raise ConnectionClosed("write failed")
        self.sent.append(data)
        self.frames.put_nowait(data)

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        self.inbound.put_nowait(_EOF)

    async def next_frame(self, timeout: float = 1.0) -> dict:
        raw = await asyncio.wait_for(self.frames.get(), timeout)
        return json.loads(raw)


class FakeStore:
    """Records saved messages; can be told to fail either operation."""

    def __init__(self) -> None:
        self.saved: List[StoredMessage] = []
        self.last_messages: List[tuple] = []
        self.fail_save = False
        self.fail_last_message = False

    def save_message(self, conversation_id, sender_id, receiver_id, content) -> StoredMessage:
        if self.fail_save:
            raise RuntimeError("database unavailable")
        message = StoredMessage(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            created_at=datetime.now(timezone.utc),
        )
        self.saved.append(message)
        return message

    def update_last_message(self, conversation_id, content, created_at) -> None:
        if self.fail_last_message:
            raise RuntimeError("update failed")
        self.last_messages.append((conversation_id, content, created_at))


class AsyncFakeStore(FakeStore):
    """Same as FakeStore but with coroutine methods."""

    async def save_message(self, *args):
        await asyncio.sleep(0)
        return FakeStore.save_message(self, *args)

    async def update_last_message(self, *args):
        await asyncio.sleep(0)
        return FakeStore.update_last_message(self, *args)


def stub_session(user_id: str = "u1", queue_size: int = 8) -> SimpleNamespace:
    """Minimal object the hub can route to: just a user id and an outbound queue."""
    return SimpleNamespace(user_id=user_id, outbound=OutboundQueue(queue_size))


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll ``predicate`` on the event loop until it is true or time runs out."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def chat_frame(
    conversation_id: str = "c1",
    sender_id: str = "u1",
    receiver_id: str = "u2",
    content: str = "hi",
) -> dict:
    return {
        "type": "message",
        "conversation_id": conversation_id,
        "sender_id": sender_id,
        "receiver_id": receiver_id,
        "content": content,
    }
