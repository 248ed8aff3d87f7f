"""Per-connection chat session: one read loop and one write loop.

A session bridges a single authenticated connection to the :class:`Hub` and
to the message store.

Read loop:
    receive frame -> decode -> store -> fan out (receiver, then sender echo)

    * A transport error (disconnect, protocol error) ends the loop and tears
      the session down. It is not retried.
    * An undecodable or invalid frame is logged and skipped.
    * A frame whose ``type`` is not ``"message"`` is ignored.
    * A store failure drops the frame: nothing is delivered and nothing is
      retried. The sender gets no echo unless
      ``notify_sender_on_persist_failure`` is enabled.

Write loop:
    Drains the outbound queue in FIFO order and writes each frame to the
    connection. It exits cleanly once the queue is closed and drained, or
    closes the connection and exits on a write failure.

Lifecycle:
    CONNECTING -> REGISTERED -> ACTIVE -> CLOSING -> CLOSED

    Whichever loop ends first starts teardown. Teardown deregisters from the
    hub (a no-op if a newer session replaced this one), closes the outbound
    queue, lets the writer drain, closes the connection once and stops the
    reader. Both loops tolerate being followed by the other's exit.

Connection contract (duck-typed):
    async receive_text() -> str
    async send_text(data: str) -> None
    async close() -> None
"""
import asyncio
import inspect
import json
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from pydantic import ValidationError

from bruinmarket.config import HubSettings

from .outbound import OutboundQueue
from .schemas import ChatEnvelope, EnvelopeType, ErrorEnvelope, OutboundEnvelope

if TYPE_CHECKING:
    from .hub import Hub

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Session lifecycle states, in the only order they can be entered."""
    CONNECTING = "connecting"
    REGISTERED = "registered"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


_STATE_ORDER = list(SessionState)


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class Session:
    """One live connection for exactly one authenticated user.

    The session owns its connection and its outbound queue. The hub only
    keeps a routing reference to it.

    Args:
        user_id: Verified user id of the connection.
        connection: Duplex text connection (see module docstring).
        hub: Registry to register with and deliver through.
        store: Persistence collaborator providing ``save_message`` and
            ``update_last_message`` (plain or async methods).
        queue_size: Capacity of the outbound queue.
        drain_timeout: Seconds the writer may spend flushing queued frames
            during teardown.
        notify_sender_on_persist_failure: Send an error frame back to the
            sender when a message cannot be stored.
    """

    def __init__(
        self,
        user_id: str,
        connection: Any,
        hub: "Hub",
        store: Any,
        *,
        queue_size: int = 256,
        drain_timeout: float = 5.0,
        notify_sender_on_persist_failure: bool = False,
    ) -> None:
        self.user_id = user_id
        self.connection = connection
        self.hub = hub
        self.store = store
        self.outbound = OutboundQueue(queue_size)
        self.drain_timeout = drain_timeout
        self.notify_sender_on_persist_failure = notify_sender_on_persist_failure

        self._state = SessionState.CONNECTING
        self._connection_closed = False
        self._closed = asyncio.Event()

    def __repr__(self) -> str:
        return f"<Session user={self.user_id} state={self._state.value}>"

    @property
    def state(self) -> SessionState:
        return self._state

    def _advance(self, state: SessionState) -> None:
        # Transitions only move forward; CLOSED is terminal.
        if _STATE_ORDER.index(state) > _STATE_ORDER.index(self._state):
            logger.debug(f"[Session] {self.user_id}: {self._state.value} -> {state.value}")
            self._state = state

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def run(self) -> None:
        """Register, run both loops, and return once the session is closed."""
        if self._state is not SessionState.CONNECTING:
            raise RuntimeError(f"Session for {self.user_id} was already started")

        self.hub.register(self.user_id, self)
        self._advance(SessionState.REGISTERED)

        reader = asyncio.create_task(self._read_loop(), name=f"chat-read-{self.user_id}")
        writer = asyncio.create_task(self._write_loop(), name=f"chat-write-{self.user_id}")
        self._advance(SessionState.ACTIVE)

        try:
            await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            await self._teardown(reader, writer)

    async def wait_closed(self) -> None:
        """Wait until the session reaches CLOSED."""
        await self._closed.wait()

    async def _teardown(self, reader: asyncio.Task, writer: asyncio.Task) -> None:
        self._advance(SessionState.CLOSING)

        self.hub.unregister(self.user_id, self)
        self.outbound.close()

        if not writer.done():
            try:
                await asyncio.wait_for(writer, timeout=self.drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"[Session] {self.user_id}: outbound drain timed out after "
                    f"{self.drain_timeout}s, {self.outbound.qsize()} frames discarded"
                )

        await self._close_connection()

        if not reader.done():
            reader.cancel()
        results = await asyncio.gather(reader, writer, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"[Session] {self.user_id}: loop crashed: {result!r}")

        self._advance(SessionState.CLOSED)
        self._closed.set()
        logger.info(f"[Session] {self.user_id}: closed")

    async def _close_connection(self) -> None:
        if self._connection_closed:
            return
        self._connection_closed = True
        try:
            await self.connection.close()
        except Exception as e:
            logger.debug(f"[Session] {self.user_id}: close failed: {e}")

    # =========================================================================
    # Read loop
    # =========================================================================

    async def _read_loop(self) -> None:
        while True:
            try:
                raw = await self.connection.receive_text()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.info(f"[Session] {self.user_id}: read ended ({type(e).__name__}: {e})")
                return

            try:
                await self._handle_frame(raw)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"[Session] {self.user_id}: unexpected error handling frame")
                return

    async def _handle_frame(self, raw: Any) -> None:
        envelope = self._decode(raw)
        if envelope is None:
            return

        stored = await self._persist(envelope)
        if stored is None:
            return

        await self._update_last_message(stored)

        payload = OutboundEnvelope(
            message_id=str(stored.id),
            conversation_id=envelope.conversation_id,
            sender_id=envelope.sender_id,
            receiver_id=envelope.receiver_id,
            content=envelope.content,
            created_at=stored.created_at,
        ).model_dump_json()

        # Independent deliveries: one side failing never affects the other.
        to_receiver = self.hub.send_to_user(envelope.receiver_id, payload)
        to_sender = self.hub.send_to_user(self.user_id, payload)
        logger.debug(
            f"[Session] Message {stored.id} in {envelope.conversation_id}: "
            f"receiver={'queued' if to_receiver else 'offline'}, "
            f"echo={'queued' if to_sender else 'dropped'}"
        )

    def _decode(self, raw: Any) -> Optional[ChatEnvelope]:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"[Session] {self.user_id}: malformed frame skipped: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"[Session] {self.user_id}: non-object frame skipped")
            return None

        if data.get("type") != EnvelopeType.MESSAGE.value:
            logger.debug(f"[Session] {self.user_id}: ignoring frame type={data.get('type')!r}")
            return None

        try:
            envelope = ChatEnvelope.model_validate(data)
        except ValidationError as e:
            logger.warning(
                f"[Session] {self.user_id}: invalid message skipped "
                f"({e.error_count()} errors)"
            )
            return None

        if envelope.sender_id and envelope.sender_id != self.user_id:
            logger.warning(
                f"[Session] {self.user_id}: frame claimed sender_id={envelope.sender_id}; "
                "using the authenticated user"
            )
        return envelope.model_copy(update={"sender_id": self.user_id})

    async def _persist(self, envelope: ChatEnvelope) -> Optional[Any]:
        try:
            return await _maybe_await(self.store.save_message(
                envelope.conversation_id,
                envelope.sender_id,
                envelope.receiver_id,
                envelope.content,
            ))
        except Exception as e:
            logger.error(
                f"[Session] {self.user_id}: failed to store message for "
                f"conversation {envelope.conversation_id}, dropped: {e}"
            )
            if self.notify_sender_on_persist_failure:
                self.hub.send_to_user(self.user_id, ErrorEnvelope(
                    error="Message could not be delivered",
                    conversation_id=envelope.conversation_id,
                ).model_dump_json())
            return None

    async def _update_last_message(self, stored: Any) -> None:
        try:
            await _maybe_await(self.store.update_last_message(
                stored.conversation_id, stored.content, stored.created_at
            ))
        except Exception as e:
            logger.warning(
                f"[Session] Could not update last message of conversation "
                f"{stored.conversation_id}: {e}"
            )

    # =========================================================================
    # Write loop
    # =========================================================================

    async def _write_loop(self) -> None:
        while True:
            payload = await self.outbound.get()
            if payload is None:
                logger.debug(f"[Session] {self.user_id}: outbound closed and drained")
                return

            try:
                await self.connection.send_text(payload)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.info(f"[Session] {self.user_id}: write failed ({type(e).__name__}: {e})")
                self.outbound.close()
                await self._close_connection()
                return


async def serve_connection(
    hub: "Hub",
    user_id: str,
    connection: Any,
    store: Any,
    settings: Optional[HubSettings] = None,
) -> Session:
    """Run a chat session for ``connection`` until it is fully torn down.

    This is the lifetime-owning call for one connection: it registers the
    session, runs both loops and returns the closed session.
    """
    settings = settings or HubSettings()
    session = Session(
        user_id,
        connection,
        hub,
        store,
        queue_size=settings.outbound_queue_size,
        drain_timeout=settings.drain_timeout_seconds,
        notify_sender_on_persist_failure=settings.notify_sender_on_persist_failure,
    )
    await session.run()
    return session
