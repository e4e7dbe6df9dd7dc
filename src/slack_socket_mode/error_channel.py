"""Application-visible error stream.

Errors that must not tear down the connection (undecodable frames, malformed
payloads, handler failures) and fatal supervisor errors are published here.
Applications either subscribe a callback or iterate the channel:

    async for error in client.errors:
        ...
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

log = logging.getLogger(__name__)

ErrorListener = Callable[[Exception], Awaitable[None] | None]

_CLOSED = object()


class ErrorChannel:
    """Fan-out of errors to listeners plus a bounded buffer for iteration.

    When the buffer is full the oldest error is dropped.
    """

    def __init__(self, maxsize: int = 100):
        """Initialize the channel.

        Args:
            maxsize: Maximum number of buffered errors awaiting iteration
        """
        self._listeners: list[ErrorListener] = []
        self._buffer: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self._listener_tasks: set[asyncio.Task] = set()
        self._closed = False

    def subscribe(self, listener: ErrorListener) -> None:
        """Register a callback (sync or async) invoked for every published error."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: ErrorListener) -> None:
        """Remove a previously registered callback."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, error: Exception) -> None:
        """Publish an error to listeners and to the buffer.

        Never raises; listener failures are logged.
        """
        if self._closed:
            log.debug(f"Error channel closed, dropping {error!r}")
            return

        if self._buffer.full():
            dropped = self._buffer.get_nowait()
            log.debug(f"Error buffer full, dropped oldest: {dropped!r}")
        self._buffer.put_nowait(error)

        for listener in list(self._listeners):
            try:
                result = listener(error)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._listener_tasks.add(task)
                    task.add_done_callback(self._listener_done)
            except Exception as e:
                log.exception(f"Error listener {listener!r} failed: {e}")

    def _listener_done(self, task: asyncio.Task) -> None:
        self._listener_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error(f"Async error listener failed: {task.exception()!r}")

    async def get(self) -> Exception:
        """Wait for the next buffered error.

        Raises:
            StopAsyncIteration: If the channel was closed and drained
        """
        item = await self._buffer.get()
        if item is _CLOSED:
            self._buffer.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def pending(self) -> list[Exception]:
        """Remove and return every buffered error without waiting."""
        items = []
        while not self._buffer.empty():
            item = self._buffer.get_nowait()
            if item is _CLOSED:
                self._buffer.put_nowait(_CLOSED)
                break
            items.append(item)
        return items

    def close(self) -> None:
        """Stop accepting errors and end any iteration once the buffer is drained."""
        if self._closed:
            return
        self._closed = True
        if self._buffer.full():
            self._buffer.get_nowait()
        self._buffer.put_nowait(_CLOSED)

    def __aiter__(self) -> "ErrorChannel":
        return self

    async def __anext__(self) -> Exception:
        return await self.get()

    def __len__(self) -> int:
        return self._buffer.qsize()
