"""Socket Mode Connection Session.

Owns one physical WebSocket connection: the handshake, a reader task that
decodes inbound frames into a buffer, and a lock-guarded write path for
acknowledgments. The session is single-use; once it reaches CLOSED or FAILED
only the supervisor may replace it.
"""

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from ..errors import DecodeError, SendError, SessionConnectError, SessionEnded
from ..observability import metrics
from ..protocol.enums import DISCONNECT_UNKNOWN, DISCONNECT_WARNING, EnvelopeTypes
from ..protocol.envelope import Envelope, decode, encode_ack
from .state import SessionState, SessionStateMachine, StateTransition

log = logging.getLogger(__name__)

# Default timeouts
DEFAULT_HANDSHAKE_TIMEOUT = 10.0  # seconds
DEFAULT_PING_INTERVAL = 20.0  # seconds
DEFAULT_PING_TIMEOUT = 20.0  # seconds
DEFAULT_CLOSE_TIMEOUT = 5.0  # seconds

# Covers the server's ~3s ack window after a refresh disconnect
DEFAULT_DRAIN_TIMEOUT = 3.0  # seconds

# Redelivery only happens within a short window, so only recent ids are kept
DEFAULT_ACK_HISTORY = 1000

WebSocketConnector = Callable[[str], Awaitable[Any]]
DecodeErrorCallback = Callable[[DecodeError], None]

_END = object()


class ConnectionSession:
    """A single Socket Mode WebSocket connection.

    Lifecycle:
        session = ConnectionSession(url)
        await session.open()            # CONNECTING → OPEN
        async for envelope in session:  # ends with SessionEnded
            await session.send_ack(envelope.envelope_id)
        await session.close()           # OPEN → DRAINING → CLOSED

    A ``hello`` envelope marks the session ready (see ``wait_ready``) without
    changing the state. A ``disconnect`` envelope, other than a ``warning``,
    starts draining: no new envelopes are accepted, but acks for envelopes
    already received are still written until close() is called or
    ``drain_timeout`` expires, then the transport is closed.

    Attributes:
        url: The WebSocket URL issued by apps.connections.open
        session_id: Local identifier used in logs
    """

    def __init__(
        self,
        url: str,
        *,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        ping_interval: float | None = DEFAULT_PING_INTERVAL,
        ping_timeout: float | None = DEFAULT_PING_TIMEOUT,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
        idle_timeout: float | None = None,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
        ack_history: int = DEFAULT_ACK_HISTORY,
        connector: WebSocketConnector | None = None,
        on_decode_error: DecodeErrorCallback | None = None,
    ):
        """Initialize the session.

        Args:
            url: WebSocket URL to connect to
            handshake_timeout: Seconds allowed for the WebSocket handshake
            ping_interval: Seconds between keepalive pings (None disables)
            ping_timeout: Seconds to wait for a pong before failing (None disables)
            close_timeout: Seconds to wait for the closing handshake
            idle_timeout: Fail the session when no frame arrives for this long (None disables)
            drain_timeout: Seconds acks may still be sent after a server disconnect
            ack_history: Number of recent acknowledged ids remembered for de-duplication
            connector: Coroutine function returning a connected WebSocket;
                defaults to ``websockets.connect``
            on_decode_error: Called with every DecodeError for frames that are dropped
        """
        self.url = url
        self.session_id = str(uuid4())

        self._handshake_timeout = handshake_timeout
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._close_timeout = close_timeout
        self._idle_timeout = idle_timeout
        self._drain_timeout = drain_timeout
        self._ack_history = ack_history
        self._connector = connector or self._default_connector
        self._on_decode_error = on_decode_error

        self._state_machine = SessionStateMachine()
        self._ws: Any = None
        self._reader_task: asyncio.Task[None] | None = None
        self._cleanup_task: asyncio.Task[None] | None = None

        self._inbox: asyncio.Queue[Any] = asyncio.Queue()
        self._send_lock = asyncio.Lock()
        self._acked: OrderedDict[str, None] = OrderedDict()
        self._ready = asyncio.Event()
        self._closed = asyncio.Event()
        self._close_requested = asyncio.Event()
        self._transport_closed = False
        self._stream_ended = False
        self._end_reason: str | None = None

        self._created_at = datetime.now(UTC)
        self._last_activity = datetime.now(UTC)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> SessionState:
        """Get the current session state."""
        return self._state_machine.state

    @property
    def history(self) -> list[StateTransition]:
        """Get the state transition history."""
        return self._state_machine.history

    @property
    def is_open(self) -> bool:
        """Check if the session accepts application traffic."""
        return self._state_machine.is_open

    @property
    def accepts_acks(self) -> bool:
        """Check if acknowledgments can still be written (OPEN or DRAINING)."""
        return self.state in (SessionState.OPEN, SessionState.DRAINING) and not self._transport_closed

    @property
    def is_ready(self) -> bool:
        """Check if the server's hello has been observed."""
        return self._ready.is_set()

    @property
    def end_reason(self) -> str | None:
        """Why the session stopped delivering envelopes, if it has."""
        return self._end_reason

    @property
    def age_seconds(self) -> float:
        """Get the session age in seconds."""
        return (datetime.now(UTC) - self._created_at).total_seconds()

    @property
    def idle_seconds(self) -> float:
        """Get seconds since the last inbound frame."""
        return (datetime.now(UTC) - self._last_activity).total_seconds()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def _default_connector(self, url: str) -> Any:
        return await websockets.connect(
            url,
            open_timeout=self._handshake_timeout,
            ping_interval=self._ping_interval,
            ping_timeout=self._ping_timeout,
            close_timeout=self._close_timeout,
        )

    async def open(self) -> None:
        """Perform the WebSocket handshake and start the reader task.

        Raises:
            SessionConnectError: If the handshake fails or times out
            SessionEnded: If the session was closed while the handshake was in progress
        """
        if self.state != SessionState.CONNECTING:
            raise SessionConnectError(f"Session {self.session_id[:8]} cannot be opened from state {self.state.value}")

        log.debug(f"Opening session {self.session_id[:8]}...")
        try:
            ws = await asyncio.wait_for(self._connector(self.url), timeout=self._handshake_timeout)
        except TimeoutError as e:
            self._finish(SessionState.FAILED, "handshake_timeout")
            raise SessionConnectError(f"WebSocket handshake did not complete within {self._handshake_timeout}s", e) from e
        except (OSError, WebSocketException) as e:
            self._finish(SessionState.FAILED, "handshake_failed")
            raise SessionConnectError(f"WebSocket handshake failed: {e}", e) from e
        except asyncio.CancelledError:
            self._finish(SessionState.FAILED, "cancelled")
            raise

        self._ws = ws
        if not self._state_machine.transition_to(SessionState.OPEN, "handshake_complete"):
            # Closed while the handshake was in flight
            await self._close_transport()
            raise SessionEnded(self._end_reason or "closed")

        self._last_activity = datetime.now(UTC)
        self._reader_task = asyncio.create_task(self._read_loop(), name=f"socket-mode-reader-{self.session_id[:8]}")
        metrics.sessions_opened.add(1)
        log.info(f"🔌 Session established: {self}")

    async def close(self, reason: str = "client_close") -> None:
        """Gracefully close the session (OPEN → DRAINING → CLOSED).

        Idempotent; a second call waits for the first close to complete.

        Args:
            reason: Reason recorded for the close (surfaced via SessionEnded)
        """
        if self.state == SessionState.CONNECTING:
            self._finish(SessionState.CLOSED, reason)
            return

        if self.state == SessionState.OPEN:
            self._begin_drain(reason)
            await self._teardown()
            self._finish(SessionState.CLOSED, reason)
            return

        # Already draining or terminal: cut any drain grace short and wait for the cleanup
        self._close_requested.set()
        if self._cleanup_task is not None and self._cleanup_task is not asyncio.current_task():
            await asyncio.shield(self._cleanup_task)
        await self._closed.wait()

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait for the server's hello.

        Returns:
            True if hello was observed, False on timeout
        """
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    async def wait_closed(self) -> None:
        """Wait until the session reaches CLOSED or FAILED."""
        await self._closed.wait()

    # =========================================================================
    # Receive
    # =========================================================================

    async def receive(self) -> Envelope:
        """Wait for the next envelope.

        Returns:
            The next decoded envelope, in wire order

        Raises:
            SessionEnded: Once the session has left OPEN and the buffer is empty
        """
        item = await self._inbox.get()
        if item is _END:
            # Leave the marker for any other pending receivers
            self._inbox.put_nowait(_END)
            raise SessionEnded(self._end_reason or "closed")
        return item

    def __aiter__(self) -> "ConnectionSession":
        return self

    async def __anext__(self) -> Envelope:
        try:
            return await self.receive()
        except SessionEnded:
            raise StopAsyncIteration

    async def _read_loop(self) -> None:
        """Reader task: pull frames off the transport until it closes."""
        try:
            while True:
                if self._idle_timeout is not None:
                    raw = await asyncio.wait_for(self._ws.recv(), timeout=self._idle_timeout)
                else:
                    raw = await self._ws.recv()
                self._last_activity = datetime.now(UTC)
                self._handle_frame(raw)
        except ConnectionClosedOK:
            if self.state == SessionState.OPEN:
                log.info(f"Session {self.session_id[:8]} closed by server")
            self._finish(SessionState.CLOSED, self._end_reason or "closed_by_server")
        except ConnectionClosed as e:
            log.warning(f"Session {self.session_id[:8]} lost: {e}")
            self._finish(SessionState.FAILED, "connection_lost")
        except TimeoutError:
            log.warning(f"Session {self.session_id[:8]} idle for {self._idle_timeout}s, treating as dead")
            self._finish(SessionState.FAILED, "idle_timeout")
            self._schedule_cleanup()
        except OSError as e:
            log.warning(f"Session {self.session_id[:8]} transport error: {e}")
            self._finish(SessionState.FAILED, "transport_error")
            self._schedule_cleanup()

    def _handle_frame(self, raw: bytes | str) -> None:
        """Decode one inbound frame and buffer it."""
        try:
            envelope = decode(raw)
        except DecodeError as e:
            metrics.envelopes_decode_failed.add(1)
            log.warning(f"Dropping undecodable frame on session {self.session_id[:8]}: {e}")
            if self._on_decode_error is not None:
                self._on_decode_error(e)
            return

        metrics.envelopes_received.add(1, {"envelope_type": envelope.envelope_type})
        log.debug(f"Received {envelope!r}")

        if not self.is_open:
            log.debug(f"Session {self.session_id[:8]} no longer open, discarding {envelope!r}")
            return

        self._inbox.put_nowait(envelope)

        if envelope.envelope_type == EnvelopeTypes.HELLO:
            self._ready.set()
            log.info(f"Session {self.session_id[:8]} ready (hello received)")
        elif envelope.envelope_type == EnvelopeTypes.DISCONNECT:
            payload = envelope.payload if isinstance(envelope.payload, dict) else {}
            reason = payload.get("reason") or DISCONNECT_UNKNOWN
            if reason == DISCONNECT_WARNING:
                log.info(f"Session {self.session_id[:8]} received disconnect warning")
                return
            log.info(f"Session {self.session_id[:8]} retired by server (reason: {reason})")
            self._begin_drain(str(reason))
            self._schedule_cleanup(final_state=SessionState.CLOSED, reason=str(reason), grace=self._drain_timeout)

    # =========================================================================
    # Send
    # =========================================================================

    async def send_ack(self, envelope_id: str, payload: dict[str, Any] | None = None) -> bool:
        """Acknowledge an envelope.

        At most one acknowledgment per envelope id is attempted; callers must
        not rely on a second call doing anything.

        Args:
            envelope_id: The envelope being acknowledged
            payload: Optional response payload embedded in the ack

        Returns:
            True if the ack was written, False if this id was already acknowledged

        Raises:
            SendError: If the session is neither OPEN nor DRAINING, its transport
                is already closed, or the write fails
        """
        if not self.accepts_acks:
            raise SendError(f"Cannot acknowledge {envelope_id}: session is {self.state.value}")

        if envelope_id in self._acked:
            log.debug(f"Envelope {envelope_id} already acknowledged, ignoring")
            return False
        self._remember_ack(envelope_id)

        frame = encode_ack(envelope_id, payload).decode("utf-8")
        async with self._send_lock:
            if not self.accepts_acks:
                metrics.acks_failed.add(1)
                raise SendError(f"Cannot acknowledge {envelope_id}: session is {self.state.value}")
            try:
                await self._ws.send(frame)
            except (ConnectionClosed, OSError) as e:
                metrics.acks_failed.add(1)
                self._finish(SessionState.FAILED, "send_failed")
                self._schedule_cleanup()
                raise SendError(f"Failed to send ack for {envelope_id}: {e}", e) from e

        metrics.acks_sent.add(1)
        log.debug(f"Acknowledged envelope {envelope_id}" + (" with payload" if payload is not None else ""))
        return True

    # =========================================================================
    # Internal
    # =========================================================================

    def _remember_ack(self, envelope_id: str) -> None:
        self._acked[envelope_id] = None
        while len(self._acked) > self._ack_history:
            self._acked.popitem(last=False)

    def _begin_drain(self, reason: str) -> None:
        """OPEN → DRAINING; stop handing out envelopes."""
        if self._state_machine.transition_to(SessionState.DRAINING, reason):
            self._end_stream(reason)

    def _end_stream(self, reason: str) -> None:
        if self._stream_ended:
            return
        self._stream_ended = True
        self._end_reason = reason
        self._inbox.put_nowait(_END)

    def _finish(self, final_state: SessionState, reason: str) -> None:
        """Enter a terminal state and wake every receiver."""
        if self._state_machine.is_terminal:
            return
        self._state_machine.transition_to(final_state, reason)
        self._end_stream(reason)
        self._closed.set()
        self._close_requested.set()
        if final_state == SessionState.FAILED:
            log.warning(f"Session {self.session_id[:8]} failed (reason: {reason})")
        else:
            log.info(f"🔌 Session {self.session_id[:8]} closed (reason: {reason})")

    def _schedule_cleanup(self, final_state: SessionState | None = None, reason: str | None = None, grace: float | None = None) -> None:
        """Close the transport in the background, optionally finishing into a state.

        With a grace period, the transport stays up until close() is called or
        the grace expires, so acks for already-received envelopes can be sent.
        """
        if self._cleanup_task is not None:
            return

        async def cleanup() -> None:
            if grace:
                try:
                    await asyncio.wait_for(self._close_requested.wait(), timeout=grace)
                except TimeoutError:
                    log.debug(f"Session {self.session_id[:8]} drain grace of {grace}s expired")
            await self._teardown()
            if final_state is not None:
                self._finish(final_state, reason or "closed")

        self._cleanup_task = asyncio.create_task(cleanup(), name=f"socket-mode-cleanup-{self.session_id[:8]}")

    async def _teardown(self) -> None:
        """Let in-flight acks finish, close the transport and stop the reader."""
        async with self._send_lock:
            await self._close_transport()

        reader = self._reader_task
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

    async def _close_transport(self) -> None:
        if self._ws is None:
            return
        self._transport_closed = True
        try:
            await self._ws.close()
        except Exception as e:
            log.debug(f"Error during transport close: {e}")

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"ConnectionSession(id={self.session_id[:8]}..., state={self.state.value}, ready={self.is_ready})"
