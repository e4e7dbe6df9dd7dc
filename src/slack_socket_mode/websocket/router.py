"""Socket Mode Dispatch Router.

Routes classified payloads to the handler registered for their kind and owns
the acknowledgment policy: every envelope that accepts a response payload is
acknowledged exactly once, whatever the handler does.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Coroutine
from typing import TYPE_CHECKING, Any

from ..error_channel import ErrorChannel
from ..errors import HandlerError, MalformedPayload, SendError
from ..observability import metrics
from ..protocol.classifier import ClassifiedPayload, Unknown, classify
from ..protocol.enums import PayloadKind
from ..protocol.envelope import Envelope
from .handlers import AckMode, BaseHandler, HandlerRegistration, SocketModeRequest, as_handler

if TYPE_CHECKING:
    from .session import ConnectionSession

log = logging.getLogger(__name__)

# Stays inside the server's ~3s acknowledgment window
DEFAULT_ACK_TIMEOUT = 2.5  # seconds

Acknowledger = Callable[[str, dict[str, Any] | None], Awaitable[bool]]
HandlerLike = BaseHandler | Callable[[SocketModeRequest], Any]


class DispatchRouter:
    """Routes Socket Mode payloads to handlers.

    Features:
    - One handler per payload kind, plus a catch-all
    - Per-registration ack policy (IMMEDIATE or WITH_RESULT)
    - Handlers run as independent tasks; failures go to the error channel
    - Copy-on-write registry, safe to mutate while dispatching
    """

    def __init__(self, ack_timeout: float = DEFAULT_ACK_TIMEOUT, errors: ErrorChannel | None = None):
        """Initialize the router.

        Args:
            ack_timeout: Seconds a WITH_RESULT handler may run before a bare ack is sent
            errors: Channel receiving handler and payload errors
        """
        self._ack_timeout = ack_timeout
        self._errors = errors
        self._handlers: dict[PayloadKind, HandlerRegistration] = {}
        self._default: HandlerRegistration | None = None
        self._tasks: set[asyncio.Task] = set()
        self._ack_tasks: set[asyncio.Task] = set()

    # =========================================================================
    # Registry
    # =========================================================================

    def register(self, kind: PayloadKind | str, handler: HandlerLike, ack_mode: AckMode = AckMode.IMMEDIATE) -> BaseHandler:
        """Register a handler for a payload kind.

        Args:
            kind: The payload kind to handle (e.g. PayloadKind.EVENTS_API)
            handler: A BaseHandler, or a sync/async function taking a SocketModeRequest
            ack_mode: When to acknowledge relative to the handler

        Returns:
            The registered handler (callables are wrapped in a FunctionHandler)
        """
        kind = PayloadKind(kind)
        registration = HandlerRegistration(handler=as_handler(handler), ack_mode=AckMode(ack_mode))
        if kind in self._handlers:
            log.warning(f"Overwriting handler for payload kind: {kind.value}")
        self._handlers = {**self._handlers, kind: registration}
        log.debug(f"Registered handler for {kind.value}: {registration.handler!r} ({registration.ack_mode.value})")
        return registration.handler

    def unregister(self, kind: PayloadKind | str) -> bool:
        """Remove the handler for a payload kind.

        Returns:
            True if a handler was removed
        """
        kind = PayloadKind(kind)
        if kind not in self._handlers:
            return False
        self._handlers = {k: v for k, v in self._handlers.items() if k != kind}
        log.debug(f"Unregistered handler for {kind.value}")
        return True

    def set_default_handler(self, handler: HandlerLike | None, ack_mode: AckMode = AckMode.IMMEDIATE) -> None:
        """Set the catch-all handler for kinds without a registration (None clears it).

        Args:
            handler: The fallback handler
            ack_mode: When to acknowledge relative to the handler
        """
        if handler is None:
            self._default = None
            log.debug("Cleared default handler")
            return
        self._default = HandlerRegistration(handler=as_handler(handler), ack_mode=AckMode(ack_mode))
        log.debug(f"Set default handler: {self._default.handler!r}")

    def handler_for(self, kind: PayloadKind | str) -> HandlerRegistration | None:
        """Get the registration that would receive a payload kind."""
        return self._handlers.get(PayloadKind(kind), self._default)

    @property
    def registered_kinds(self) -> list[PayloadKind]:
        """Get the payload kinds with an explicit handler."""
        return list(self._handlers)

    @property
    def in_flight(self) -> int:
        """Get the number of handler tasks still running."""
        return len(self._tasks)

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def route(self, envelope: Envelope, session: "ConnectionSession") -> None:
        """Classify an envelope from a session and dispatch it.

        A payload that does not fit its type is reported to the error channel
        and still acknowledged when the server expects it.

        Args:
            envelope: The decoded envelope
            session: The session it arrived on; acks are sent through it
        """
        try:
            payload = classify(envelope)
        except MalformedPayload as e:
            metrics.envelopes_malformed.add(1, {"envelope_type": envelope.envelope_type})
            log.warning(f"Malformed payload: {e}")
            self._publish(e)
            if envelope.accepts_response_payload:
                await self._try_ack(session.send_ack, envelope.envelope_id, None)
            return

        await self.dispatch(
            payload,
            envelope.envelope_id,
            envelope.accepts_response_payload,
            acknowledger=session.send_ack,
            retry_attempt=envelope.retry_attempt,
            retry_reason=envelope.retry_reason,
        )

    async def dispatch(
        self,
        payload: ClassifiedPayload,
        envelope_id: str,
        accepts_response_payload: bool,
        *,
        acknowledger: Acknowledger,
        retry_attempt: int | None = None,
        retry_reason: str | None = None,
    ) -> None:
        """Deliver a classified payload to its handler.

        Returns once the ack (IMMEDIATE) has been sent and the handler task has
        been scheduled; it never waits for the handler itself.

        Args:
            payload: The classified payload
            envelope_id: Id used to correlate the acknowledgment
            accepts_response_payload: Whether the server expects an ack
            acknowledger: Coroutine function ``(envelope_id, payload) -> bool`` sending the ack
            retry_attempt: Server redelivery counter, if present
            retry_reason: Server redelivery reason, if present
        """
        # Snapshot; register() replaces the mapping rather than mutating it
        handlers = self._handlers
        registration = handlers.get(payload.kind, self._default)

        request = SocketModeRequest(
            envelope_id=envelope_id,
            payload=payload,
            accepts_response_payload=accepts_response_payload,
            retry_attempt=retry_attempt,
            retry_reason=retry_reason,
        )

        if registration is None:
            if isinstance(payload, Unknown):
                log.info(f"No catch-all handler, dropping unknown envelope type {payload.envelope_type!r} ({envelope_id})")
            else:
                log.debug(f"No handler registered for {payload.kind.value}, dropping {envelope_id}")
            if accepts_response_payload:
                await self._try_ack(acknowledger, envelope_id, None)
            return

        if registration.ack_mode == AckMode.WITH_RESULT and accepts_response_payload:
            task = self._spawn(self._run_with_result(registration, request, acknowledger), envelope_id)
            self._ack_tasks.add(task)
            task.add_done_callback(self._ack_tasks.discard)
            return

        if accepts_response_payload and not await self._try_ack(acknowledger, envelope_id, None):
            log.warning(f"Skipping handler for {envelope_id}: acknowledgment could not be sent")
            return

        self._spawn(self._invoke(registration, request), envelope_id)

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight handler tasks, including ones they schedule.

        Args:
            timeout: Maximum seconds to wait (None waits forever)

        Returns:
            True if every handler finished, False on timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._tasks:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                log.warning(f"Drain timed out with {len(self._tasks)} handler(s) still running")
                return False
            await asyncio.wait(set(self._tasks), timeout=remaining)
        return True

    async def drain_acks(self, timeout: float | None = None) -> bool:
        """Wait only for WITH_RESULT handlers whose acknowledgment is still owed.

        IMMEDIATE acks are sent before dispatch() returns, so they never wait here.

        Returns:
            True if every owed ack was sent, False on timeout
        """
        if not self._ack_tasks:
            return True
        _, pending = await asyncio.wait(set(self._ack_tasks), timeout=timeout)
        if pending:
            log.warning(f"{len(pending)} acknowledgment(s) still pending after {timeout}s")
        return not pending

    @property
    def pending_acks(self) -> int:
        """Get the number of WITH_RESULT handlers that have not acknowledged yet."""
        return len(self._ack_tasks)

    # =========================================================================
    # Internal
    # =========================================================================

    async def _invoke(self, registration: HandlerRegistration, request: SocketModeRequest) -> Any:
        """Run a handler, reporting its failure instead of raising."""
        started = time.perf_counter()
        try:
            return await registration.handler.handle(request)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.exception(f"Error handling {request.kind.value} envelope {request.envelope_id}: {e}")
            self._report(request, e)
            return None
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            metrics.handler_duration.record(elapsed_ms, {"kind": request.kind.value})

    async def _run_with_result(self, registration: HandlerRegistration, request: SocketModeRequest, acknowledger: Acknowledger) -> None:
        """Run a handler under the ack timeout, then ack with its result."""
        result: Any = None
        try:
            result = await asyncio.wait_for(self._invoke(registration, request), timeout=self._ack_timeout)
        except TimeoutError:
            log.warning(f"Handler for {request.envelope_id} exceeded the {self._ack_timeout}s ack timeout, sending bare ack")
            self._report(request, TimeoutError(f"Handler did not finish within {self._ack_timeout}s"))

        if result is not None and not isinstance(result, dict):
            log.debug(f"Ignoring non-dict handler result for {request.envelope_id}: {type(result).__name__}")
            result = None

        await self._try_ack(acknowledger, request.envelope_id, result)

    async def _try_ack(self, acknowledger: Acknowledger, envelope_id: str, payload: dict[str, Any] | None) -> bool:
        """Send one acknowledgment.

        Returns:
            False if the transport refused it, True otherwise (a repeat is a no-op)
        """
        try:
            await acknowledger(envelope_id, payload)
            return True
        except SendError as e:
            log.warning(f"Failed to acknowledge {envelope_id}: {e}")
            self._publish(e)
            return False

    def _spawn(self, coro: Coroutine[Any, Any, Any], envelope_id: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"socket-mode-handler-{envelope_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _report(self, request: SocketModeRequest, error: Exception) -> None:
        metrics.handler_errors.add(1, {"kind": request.kind.value})
        self._publish(HandlerError(request.envelope_id, request.kind.value, error))

    def _publish(self, error: Exception) -> None:
        if self._errors is not None:
            self._errors.publish(error)

    def __repr__(self) -> str:
        """String representation for debugging."""
        kinds = ", ".join(k.value for k in self._handlers)
        return f"DispatchRouter(handlers=[{kinds}], default={self._default is not None}, in_flight={len(self._tasks)})"
