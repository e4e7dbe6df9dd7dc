"""Pytest configuration and shared fixtures for all tests.

This module provides:
- Test configuration and markers
- A scriptable in-memory WebSocket (FakeWebSocket) and server (FakeSocketServer)
- A fake apps.connections.open collaborator
- Sample Socket Mode frames
"""

import asyncio
import json
from collections.abc import Callable
from typing import Any

import pytest
from _pytest.config import Config
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from slack_socket_mode.infrastructure.apps_connections import ConnectionInfo
from slack_socket_mode.websocket.session import ConnectionSession

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config: Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (may use external services)")
    config.addinivalue_line("markers", "slow: Slow tests (may take several seconds)")
    config.addinivalue_line("markers", "asyncio: Async tests")


# ============================================================================
# SAMPLE FRAMES
# ============================================================================


def hello_frame(envelope_id: str = "hello-1") -> dict[str, Any]:
    """A hello envelope."""
    return {"type": "hello", "envelope_id": envelope_id, "accepts_response_payload": False}


def disconnect_frame(reason: str = "refresh_requested", envelope_id: str = "disc-1") -> dict[str, Any]:
    """A disconnect envelope."""
    return {"type": "disconnect", "envelope_id": envelope_id, "accepts_response_payload": False, "payload": {"reason": reason}}


def events_frame(envelope_id: str = "evt-1", accepts_response_payload: bool = True, **payload: Any) -> dict[str, Any]:
    """An events_api envelope."""
    body = {
        "type": "event_callback",
        "team_id": "T12345",
        "api_app_id": "A12345",
        "event": {"type": "app_mention", "ts": "1234567890.123456", "channel": "C12345"},
    }
    body.update(payload)
    return {"type": "events_api", "envelope_id": envelope_id, "accepts_response_payload": accepts_response_payload, "payload": body}


def slash_frame(envelope_id: str = "cmd-1", **payload: Any) -> dict[str, Any]:
    """A slash_commands envelope."""
    body = {
        "command": "/weather",
        "text": "London",
        "trigger_id": "123.456.def",
        "user_id": "U12345",
        "channel_id": "C12345",
    }
    body.update(payload)
    return {"type": "slash_commands", "envelope_id": envelope_id, "accepts_response_payload": True, "payload": body}


# ============================================================================
# FAKE WEBSOCKET
# ============================================================================


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection.

    Frames fed with feed() are returned by recv() in order. close() makes the
    pending recv() raise ConnectionClosedOK, like a real closing handshake.
    """

    def __init__(self) -> None:
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()
        self.sent: list[str] = []
        self.closed = False
        self.send_error: Exception | None = None
        self.send_delay: float = 0.0

    def feed(self, frame: dict[str, Any] | str | bytes) -> None:
        """Queue an inbound frame (dicts are JSON-encoded)."""
        self._incoming.put_nowait(json.dumps(frame) if isinstance(frame, dict) else frame)

    def drop(self) -> None:
        """Simulate an abnormal close (no closing handshake)."""
        self._incoming.put_nowait(ConnectionClosedError(None, None))

    def server_close(self) -> None:
        """Simulate a normal close initiated by the server."""
        self._incoming.put_nowait(ConnectionClosedOK(None, None))

    async def recv(self) -> str | bytes:
        item = await self._incoming.get()
        if isinstance(item, BaseException):
            # Closed connections keep raising
            self._incoming.put_nowait(item)
            raise item
        return item

    async def send(self, data: str) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.send_error is not None:
            raise self.send_error
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(data)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(ConnectionClosedOK(None, None))

    @property
    def acks(self) -> list[dict[str, Any]]:
        """Sent frames, JSON-decoded."""
        return [json.loads(frame) for frame in self.sent]


class FakeSocketServer:
    """Hands out a fresh FakeWebSocket per connection.

    ``script`` is called with each new socket (and its index) to pre-feed frames.
    """

    def __init__(self, script: Callable[[FakeWebSocket, int], None] | None = None) -> None:
        self.sockets: list[FakeWebSocket] = []
        self.urls: list[str] = []
        self._script = script

    async def connect(self, url: str) -> FakeWebSocket:
        ws = FakeWebSocket()
        if self._script is not None:
            self._script(ws, len(self.sockets))
        self.sockets.append(ws)
        self.urls.append(url)
        return ws

    def session_factory(self, url: str) -> ConnectionSession:
        """Build sessions that connect to this server."""
        return ConnectionSession(url, handshake_timeout=1.0, ping_interval=None, ping_timeout=None, connector=self.connect)


# ============================================================================
# FAKE OPEN CONNECTION
# ============================================================================


class FakeOpenConnection:
    """Scripted apps.connections.open collaborator.

    Each call pops the next outcome: an exception is raised, anything else is
    ignored and a fresh URL returned. Once the script is exhausted, ``default``
    (an exception or None) applies to every further call.
    """

    def __init__(self, outcomes: list[Exception | None] | None = None, default: Exception | None = None) -> None:
        self._outcomes = list(outcomes or [])
        self._default = default
        self.calls = 0

    async def __call__(self) -> ConnectionInfo:
        self.calls += 1
        outcome = self._outcomes.pop(0) if self._outcomes else self._default
        if isinstance(outcome, Exception):
            raise outcome
        return ConnectionInfo(url=f"wss://wss-primary.slack.com/link/?ticket={self.calls}")


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def fake_ws() -> FakeWebSocket:
    """A single fake WebSocket."""
    return FakeWebSocket()


@pytest.fixture
def fake_server() -> FakeSocketServer:
    """A fake server that sends hello on every connection."""
    return FakeSocketServer(script=lambda ws, index: ws.feed(hello_frame(f"hello-{index}")))


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true or fail the test."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.005)
