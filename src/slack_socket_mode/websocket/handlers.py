"""Base Handler for Socket Mode payloads.

Handlers receive a SocketModeRequest carrying the classified payload and the
envelope metadata. Plain functions (sync or async) are wrapped in a
FunctionHandler when registered.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..protocol.classifier import ClassifiedPayload, Disconnect, EventsApi, Interactive, SlashCommand, Unknown
from ..protocol.enums import PayloadKind

log = logging.getLogger(__name__)


class AckMode(str, Enum):
    """When the router acknowledges an envelope relative to its handler."""

    # Ack on receipt, then run the handler; the ack never carries a result
    IMMEDIATE = "immediate"

    # Run the handler under the ack timeout and embed its result in the ack
    WITH_RESULT = "with_result"


@dataclass(frozen=True)
class SocketModeRequest:
    """A classified payload together with its envelope metadata."""

    envelope_id: str
    payload: ClassifiedPayload
    accepts_response_payload: bool = False
    retry_attempt: int | None = None
    retry_reason: str | None = None

    @property
    def kind(self) -> PayloadKind:
        """Get the payload kind."""
        return self.payload.kind

    @property
    def body(self) -> Any:
        """Get the typed payload model, the raw document for Unknown, or the reason for Disconnect."""
        if isinstance(self.payload, EventsApi | Interactive | SlashCommand):
            return self.payload.payload
        if isinstance(self.payload, Unknown):
            return self.payload.raw
        if isinstance(self.payload, Disconnect):
            return self.payload.reason
        return None

    @property
    def is_retry(self) -> bool:
        """Check if the server is redelivering this envelope."""
        return self.retry_attempt is not None and self.retry_attempt > 0


class BaseHandler(ABC):
    """Abstract base class for Socket Mode payload handlers.

    Subclasses implement process(). In WITH_RESULT mode a dict returned from
    process() becomes the acknowledgment payload; any other value is ignored.
    """

    def __init__(self):
        """Initialize the handler."""
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def handle(self, request: SocketModeRequest) -> Any:
        """Handle a classified payload.

        Args:
            request: The payload and its envelope metadata

        Returns:
            Whatever process() returns
        """
        self._logger.debug(f"Handling {request.kind.value} envelope {request.envelope_id}")
        return await self.process(request)

    @abstractmethod
    async def process(self, request: SocketModeRequest) -> Any:
        """Process the payload.

        Args:
            request: The payload and its envelope metadata

        Returns:
            Optional ack payload (dict) for WITH_RESULT registrations
        """
        ...

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"{self.__class__.__name__}()"


class FunctionHandler(BaseHandler):
    """Adapts a plain function ``func(request)`` into a handler.

    Coroutine functions are awaited; regular functions run in a worker thread
    so they cannot block the event loop.
    """

    def __init__(self, func: Callable[[SocketModeRequest], Any]):
        super().__init__()
        self.func = func

    async def process(self, request: SocketModeRequest) -> Any:
        result = self.func(request)
        if inspect.isawaitable(result):
            return await result
        return result

    async def handle(self, request: SocketModeRequest) -> Any:
        if inspect.iscoroutinefunction(self.func):
            return await super().handle(request)
        self._logger.debug(f"Handling {request.kind.value} envelope {request.envelope_id} in worker thread")
        result = await asyncio.to_thread(self.func, request)
        if inspect.isawaitable(result):
            return await result
        return result

    def __repr__(self) -> str:
        return f"FunctionHandler({getattr(self.func, '__qualname__', self.func)!r})"


@dataclass(frozen=True)
class HandlerRegistration:
    """A handler bound to its acknowledgment policy."""

    handler: BaseHandler
    ack_mode: AckMode = AckMode.IMMEDIATE


def as_handler(handler: BaseHandler | Callable[[SocketModeRequest], Any]) -> BaseHandler:
    """Wrap a plain callable in a FunctionHandler; pass handlers through."""
    if isinstance(handler, BaseHandler):
        return handler
    if not callable(handler):
        raise TypeError(f"Handler must be a BaseHandler or a callable, got {type(handler).__name__}")
    return FunctionHandler(handler)
