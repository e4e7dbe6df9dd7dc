"""Socket Mode client.

Wires the HTTP collaborator, the reconnection supervisor, the dispatch router
and the error channel into one object applications hold on to.

Usage:
    client = SocketModeClient(app_token="xapp-...")

    @client.events_api()
    async def on_event(request: SocketModeRequest) -> None:
        print(request.body.event_type)

    @client.slash_command(ack_mode=AckMode.WITH_RESULT)
    async def on_command(request: SocketModeRequest) -> dict:
        return {"text": f"You said {request.body.text}"}

    async with client:
        await client.wait()
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from .error_channel import ErrorChannel
from .infrastructure.apps_connections import AppsConnectionsClient
from .infrastructure.response_url import ResponseUrlClient
from .protocol.enums import PayloadKind
from .settings import Settings
from .websocket.handlers import AckMode
from .websocket.router import DispatchRouter
from .websocket.session import ConnectionSession
from .websocket.supervisor import ConnectCallback, DisconnectCallback, OpenConnection, ReconnectionSupervisor, SessionFactory

log = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class SocketModeClient:
    """A Socket Mode connection with handler registration.

    Handlers registered through the decorators stay registered across every
    reconnect. Errors that do not end the connection (undecodable frames,
    malformed payloads, handler failures) and fatal errors are published to
    ``client.errors``.
    """

    def __init__(
        self,
        app_token: str | None = None,
        *,
        settings: Settings | None = None,
        open_connection: OpenConnection | None = None,
        session_factory: SessionFactory | None = None,
    ):
        """Initialize the client.

        Args:
            app_token: App-level token (xapp-...); overrides settings.app_token
            settings: Client settings (default: read from SLACK_* environment variables)
            open_connection: Replaces apps.connections.open (e.g. a fake in tests)
            session_factory: Replaces the ConnectionSession constructor
        """
        if settings is None:
            settings = Settings(app_token=app_token) if app_token else Settings()
        elif app_token:
            settings = settings.model_copy(update={"app_token": app_token})
        self.settings = settings

        self.errors = ErrorChannel()
        self.router = DispatchRouter(ack_timeout=settings.ack_timeout, errors=self.errors)
        self._apps_connections = AppsConnectionsClient(
            app_token=settings.app_token,
            api_base_url=settings.api_base_url,
            http_timeout=settings.http_timeout,
        )
        self._response_url = ResponseUrlClient(http_timeout=settings.http_timeout)

        self.supervisor = ReconnectionSupervisor(
            open_connection or self._apps_connections.open_connection,
            self.router.route,
            session_factory=session_factory or self._create_session,
            backoff=settings.backoff_policy(),
            max_attempts=settings.reconnect_max_attempts,
            min_stable_seconds=settings.reconnect_min_stable_seconds,
            errors=self.errors,
            on_drain=self._drain_acks,
        )
        self._connected = asyncio.Event()
        self.supervisor.on_connect(self._handle_connect)

    def _create_session(self, url: str) -> ConnectionSession:
        return ConnectionSession(
            url,
            handshake_timeout=self.settings.handshake_timeout,
            ping_interval=self.settings.ping_interval,
            ping_timeout=self.settings.ping_timeout,
            close_timeout=self.settings.close_timeout,
            idle_timeout=self.settings.idle_timeout,
            drain_timeout=self.settings.drain_timeout,
            on_decode_error=self.errors.publish,
        )

    async def _handle_connect(self, session: ConnectionSession) -> None:
        self._connected.set()

    async def _drain_acks(self, session: ConnectionSession) -> None:
        await self.router.drain_acks(self.settings.drain_timeout)

    # =========================================================================
    # Handler Registration
    # =========================================================================

    def on(self, kind: PayloadKind | str, ack_mode: AckMode = AckMode.IMMEDIATE) -> Callable[[F], F]:
        """Register the decorated function for a payload kind."""

        def decorator(func: F) -> F:
            self.router.register(kind, func, ack_mode)
            return func

        return decorator

    def events_api(self, ack_mode: AckMode = AckMode.IMMEDIATE) -> Callable[[F], F]:
        """Register the decorated function for Events API callbacks."""
        return self.on(PayloadKind.EVENTS_API, ack_mode)

    def interactive(self, ack_mode: AckMode = AckMode.IMMEDIATE) -> Callable[[F], F]:
        """Register the decorated function for interactive payloads."""
        return self.on(PayloadKind.INTERACTIVE, ack_mode)

    def slash_command(self, ack_mode: AckMode = AckMode.IMMEDIATE) -> Callable[[F], F]:
        """Register the decorated function for slash commands."""
        return self.on(PayloadKind.SLASH_COMMAND, ack_mode)

    def hello(self) -> Callable[[F], F]:
        """Register the decorated function for the server's hello."""
        return self.on(PayloadKind.HELLO)

    def disconnect(self) -> Callable[[F], F]:
        """Register the decorated function for server disconnect notices."""
        return self.on(PayloadKind.DISCONNECT)

    def catch_all(self, ack_mode: AckMode = AckMode.IMMEDIATE) -> Callable[[F], F]:
        """Register the decorated function for every kind without its own handler."""

        def decorator(func: F) -> F:
            self.router.set_default_handler(func, ack_mode)
            return func

        return decorator

    def unregister(self, kind: PayloadKind | str) -> bool:
        """Remove the handler for a payload kind."""
        return self.router.unregister(kind)

    def on_connect(self, callback: ConnectCallback) -> ConnectCallback:
        """Register callback invoked after each session opens (usable as a decorator)."""
        self.supervisor.on_connect(callback)
        return callback

    def on_disconnect(self, callback: DisconnectCallback) -> DisconnectCallback:
        """Register callback invoked after each session ends (usable as a decorator)."""
        self.supervisor.on_disconnect(callback)
        return callback

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_connected(self) -> bool:
        """Check if a session is currently open."""
        return self.supervisor.is_connected

    def start(self) -> asyncio.Task[None]:
        """Start the supervisor in the background without waiting for a session."""
        return self.supervisor.start()

    async def connect(self, timeout: float | None = None) -> None:
        """Start the supervisor and wait for the first session to open.

        Args:
            timeout: Maximum seconds to wait (None waits until connected or failed)

        Raises:
            TimeoutError: If no session opened within the timeout
            AuthError: If the credentials were rejected
            ReconnectExhausted: If the retry ceiling was reached first
        """
        task = self.start()
        connected = asyncio.ensure_future(self._connected.wait())
        try:
            done, _ = await asyncio.wait({task, connected}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            connected.cancel()

        if connected in done:
            log.info("🚀 Socket Mode client connected")
            return
        if task in done:
            # Stopped or failed before the first session
            task.result()
            return
        raise TimeoutError(f"No Socket Mode session opened within {timeout}s")

    async def wait(self) -> None:
        """Wait until the client stops; re-raises a fatal error."""
        await self.supervisor.wait()

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight handlers to finish.

        Returns:
            True if every handler finished, False on timeout
        """
        return await self.router.drain(timeout)

    async def stop(self, drain_timeout: float | None = 0) -> None:
        """Stop reconnecting, close the session and end iteration over ``errors``.

        Args:
            drain_timeout: Seconds to wait for in-flight handlers (0 skips, None waits forever)
        """
        await self.supervisor.stop()
        if drain_timeout != 0:
            await self.drain(drain_timeout)
        self.errors.close()
        log.info("🛑 Socket Mode client stopped")

    async def __aenter__(self) -> "SocketModeClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # =========================================================================
    # Responses
    # =========================================================================

    async def respond(self, response_url: str, body: dict[str, Any]) -> None:
        """Post a message body to an interaction's response_url.

        Raises:
            ApiError: If Slack rejected the body
            NetworkError: If Slack could not be reached
        """
        await self._response_url.post(response_url, body)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"SocketModeClient(supervisor={self.supervisor!r}, router={self.router!r})"
