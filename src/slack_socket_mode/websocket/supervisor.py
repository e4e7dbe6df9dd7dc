"""Reconnection Supervisor.

Keeps one logical Socket Mode connection alive across many physical sessions:
requests a fresh URL, opens a session, pumps its envelopes to the router and,
when the session ends, starts over under exponential backoff.

States:
    IDLE → CONNECTING → CONNECTED → CONNECTING → ...
    CONNECTING → BACKING_OFF → CONNECTING
    any → STOPPED (stop requested) | FAILED (fatal error)
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Coroutine
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from ..error_channel import ErrorChannel
from ..errors import ReconnectExhausted, SocketModeError
from ..observability import metrics
from ..protocol.envelope import Envelope
from .backoff import BackoffPolicy
from .session import ConnectionSession
from .state import SessionState

if TYPE_CHECKING:
    from ..infrastructure.apps_connections import ConnectionInfo

log = logging.getLogger(__name__)

T = TypeVar("T")

OpenConnection = Callable[[], Awaitable["ConnectionInfo"]]
SessionFactory = Callable[[str], ConnectionSession]
EnvelopeCallback = Callable[[Envelope, ConnectionSession], Awaitable[None]]
ConnectCallback = Callable[[ConnectionSession], Awaitable[None]]
DisconnectCallback = Callable[[ConnectionSession, str | None], Awaitable[None]]
DrainCallback = Callable[[ConnectionSession], Awaitable[Any]]

# Default retry ceiling
DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_MIN_STABLE_SECONDS = 30.0


class SupervisorState(str, Enum):
    """Reconnection supervisor lifecycle states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    BACKING_OFF = "backing_off"

    # Terminal states
    STOPPED = "stopped"
    FAILED = "failed"


class _Stopped(Exception):
    """Raised internally when stop() interrupts a suspension point."""


class ReconnectionSupervisor:
    """Owns the sequence of Connection Sessions for one client.

    Handler registrations live in the router behind ``on_envelope``, so they
    survive every reconnect. Only one session is active at a time.

    Failure accounting:
    - A failed URL request or handshake counts as one failed attempt.
    - A session that ends FAILED, or closes without ever sending hello, also
      counts as one; a server-requested refresh reconnects at once.
    - The count resets once a session stays connected for min_stable_seconds.
    - Reaching max_attempts consecutive failures raises ReconnectExhausted.
    - Non-retryable errors (AuthError) are fatal at once.
    """

    def __init__(
        self,
        open_connection: OpenConnection,
        on_envelope: EnvelopeCallback,
        *,
        session_factory: SessionFactory | None = None,
        backoff: BackoffPolicy | None = None,
        max_attempts: int | None = DEFAULT_MAX_ATTEMPTS,
        min_stable_seconds: float = DEFAULT_MIN_STABLE_SECONDS,
        errors: ErrorChannel | None = None,
        on_drain: DrainCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the supervisor.

        Args:
            open_connection: Coroutine function returning a fresh ConnectionInfo
            on_envelope: Called for every envelope received, in wire order
            session_factory: Builds a ConnectionSession for a URL
            backoff: Delay schedule between failed attempts
            max_attempts: Consecutive failed attempts before giving up (None: never)
            min_stable_seconds: Connected time after which the failure count resets
            errors: Channel receiving fatal errors
            on_drain: Awaited after a session stops delivering and before it is closed,
                so acks still owed for delivered envelopes can be written
            clock: Monotonic clock, injectable for tests
        """
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self._open_connection = open_connection
        self._on_envelope = on_envelope
        self._session_factory = session_factory or ConnectionSession
        self._backoff = backoff or BackoffPolicy()
        self._max_attempts = max_attempts
        self._min_stable_seconds = min_stable_seconds
        self._errors = errors
        self._on_drain = on_drain
        self._clock = clock

        self._state = SupervisorState.IDLE
        self._session: ConnectionSession | None = None
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._failures = 0
        self._delays: list[float] = []
        self._fatal_error: BaseException | None = None

        self._on_connect_callbacks: list[ConnectCallback] = []
        self._on_disconnect_callbacks: list[DisconnectCallback] = []

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> SupervisorState:
        """Get the current supervisor state."""
        return self._state

    @property
    def session(self) -> ConnectionSession | None:
        """Get the active session, if any."""
        return self._session

    @property
    def is_connected(self) -> bool:
        """Check if a session is currently open."""
        return self._state == SupervisorState.CONNECTED and self._session is not None and self._session.is_open

    @property
    def failures(self) -> int:
        """Get the current consecutive failure count."""
        return self._failures

    @property
    def delays(self) -> list[float]:
        """Get every backoff delay applied so far, in order."""
        return self._delays.copy()

    @property
    def fatal_error(self) -> BaseException | None:
        """Get the error that stopped the supervisor, if any."""
        return self._fatal_error

    # =========================================================================
    # Event Callbacks
    # =========================================================================

    def on_connect(self, callback: ConnectCallback) -> None:
        """Register callback invoked after each session opens."""
        self._on_connect_callbacks.append(callback)

    def on_disconnect(self, callback: DisconnectCallback) -> None:
        """Register callback invoked after each session ends, with its end reason."""
        self._on_disconnect_callbacks.append(callback)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> asyncio.Task[None]:
        """Run the supervisor in a background task.

        Returns:
            The supervisor task; ``wait()`` re-raises its fatal error
        """
        if self._task is not None:
            return self._task
        self._task = asyncio.create_task(self.run(), name="socket-mode-supervisor")
        self._task.add_done_callback(self._task_done)
        return self._task

    async def wait(self) -> None:
        """Wait for the supervisor to stop.

        Raises:
            AuthError: If the credentials were rejected
            ReconnectExhausted: If the retry ceiling was reached
        """
        if self._task is None:
            raise RuntimeError("Supervisor was not started")
        await asyncio.shield(self._task)

    async def stop(self) -> None:
        """Stop reconnecting and close the active session.

        Wakes the backoff sleep, a pending open_connection() and a pending
        handshake. Pending receive() calls raise SessionEnded("stopped").
        """
        if self._stop_event.is_set() and (self._task is None or self._task.done()):
            return

        log.info("🛑 Stopping reconnection supervisor")
        self._stop_event.set()

        if self._session is not None:
            await self._session.close("stopped")

        if self._task is not None and self._task is not asyncio.current_task():
            try:
                await self._task
            except SocketModeError as e:
                # Fatal errors surface through wait()
                log.debug(f"Supervisor ended with {e!r} during stop")

        if self._state != SupervisorState.FAILED:
            self._set_state(SupervisorState.STOPPED)

    async def run(self) -> None:
        """Keep a session alive until stopped or a fatal error occurs.

        Raises:
            AuthError: If the credentials were rejected
            ReconnectExhausted: If the retry ceiling was reached
        """
        if self._state != SupervisorState.IDLE:
            raise RuntimeError(f"Supervisor cannot run from state {self._state.value}")

        log.info(f"🚀 Reconnection supervisor started (max_attempts={self._max_attempts}, backoff={self._backoff.to_dict()})")
        try:
            await self._run_loop()
        except _Stopped:
            pass
        except Exception as e:
            self._fail(e)
            raise
        finally:
            self._session = None

        self._set_state(SupervisorState.STOPPED)
        log.info("Reconnection supervisor stopped")

    # =========================================================================
    # Internal
    # =========================================================================

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self._set_state(SupervisorState.CONNECTING)
            try:
                info = await self._until_stopped(self._open_connection())
                session = self._session_factory(info.url)
                self._session = session
                await self._until_stopped(session.open())
            except SocketModeError as e:
                if self._stop_event.is_set():
                    return
                if not e.is_retryable:
                    raise
                await self._back_off(e)
                continue

            await self._serve(session)

    async def _serve(self, session: ConnectionSession) -> None:
        """Deliver one session's envelopes until it ends, then account for it."""
        self._set_state(SupervisorState.CONNECTED)
        connected_at = self._clock()
        await self._notify_connect(session)

        await self._pump(session)
        await self._drain(session)
        await session.close()

        lived = self._clock() - connected_at
        reason = session.end_reason
        self._session = None
        log.info(f"Session {session.session_id[:8]} ended after {lived:.1f}s (state: {session.state.value}, reason: {reason})")
        await self._notify_disconnect(session, reason)

        if self._stop_event.is_set():
            return

        if lived >= self._min_stable_seconds:
            self._failures = 0

        if session.state == SessionState.FAILED or not session.is_ready:
            await self._back_off(SocketModeError(f"Session {session.session_id[:8]} ended abnormally: {reason}"))

    async def _pump(self, session: ConnectionSession) -> None:
        """Hand each envelope to the router; handler failures never end the loop."""
        async for envelope in session:
            try:
                await self._on_envelope(envelope, session)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.exception(f"Error delivering {envelope!r}: {e}")

    async def _drain(self, session: ConnectionSession) -> None:
        """Give pending acks a chance while a server-retired session is draining."""
        if self._on_drain is None or not session.accepts_acks:
            return
        try:
            await self._on_drain(session)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error(f"Error draining session {session.session_id[:8]}: {e}")

    async def _back_off(self, error: BaseException) -> None:
        """Count a failed attempt and sleep before the next one.

        Raises:
            ReconnectExhausted: If this failure reaches the retry ceiling
            _Stopped: If stop() is called during the sleep
        """
        self._failures += 1
        metrics.reconnect_attempts.add(1)

        if self._max_attempts is not None and self._failures >= self._max_attempts:
            raise ReconnectExhausted(self._failures, error if isinstance(error, Exception) else None)

        retry_after = getattr(error, "retry_after", None)
        delay = self._backoff.compute(self._failures, minimum=retry_after)
        self._delays.append(delay)
        self._set_state(SupervisorState.BACKING_OFF)
        log.warning(f"Connection attempt failed ({self._failures}/{self._max_attempts or '∞'}): {error}. Retrying in {delay:.2f}s")

        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except TimeoutError:
            return
        raise _Stopped()

    async def _until_stopped(self, coro: Coroutine[Any, Any, T]) -> T:
        """Await a coroutine unless stop() is called first.

        Raises:
            _Stopped: If stop() won the race; the coroutine is cancelled
        """
        if self._stop_event.is_set():
            coro.close()
            raise _Stopped()

        task = asyncio.ensure_future(coro)
        stopper = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({task, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        if task.cancelled():
            raise _Stopped()
        return task.result()

    async def _notify_connect(self, session: ConnectionSession) -> None:
        for callback in self._on_connect_callbacks:
            try:
                await callback(session)
            except Exception as e:
                log.error(f"Error in on_connect callback: {e}")

    async def _notify_disconnect(self, session: ConnectionSession, reason: str | None) -> None:
        for callback in self._on_disconnect_callbacks:
            try:
                await callback(session, reason)
            except Exception as e:
                log.error(f"Error in on_disconnect callback: {e}")

    def _fail(self, error: BaseException) -> None:
        self._fatal_error = error
        self._set_state(SupervisorState.FAILED)
        log.error(f"❌ Reconnection supervisor failed: {error!r}")
        if self._errors is not None and isinstance(error, Exception):
            self._errors.publish(error)

    def _set_state(self, state: SupervisorState) -> None:
        if state == self._state:
            return
        log.debug(f"Supervisor state: {self._state.value} → {state.value}")
        self._state = state

    def _task_done(self, task: asyncio.Task[None]) -> None:
        # Mark the exception as retrieved; wait() re-raises it
        if not task.cancelled():
            task.exception()

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"ReconnectionSupervisor(state={self._state.value}, failures={self._failures}, session={self._session!r})"
