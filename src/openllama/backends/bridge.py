"""Expose a callback-driven producer as an awaitable sequence.

The producer side calls ``push`` for every piece of text and ``finish``
once it is done (optionally with the error that stopped it). The consumer
side awaits ``next``; it only parks when the buffer is empty and the
producer has not finished, and each push wakes the single parked waiter.

Both sides must run on the event loop thread. Producers living on another
thread hand their calls over with ``loop.call_soon_threadsafe``.
"""

import asyncio
from collections import deque


class FragmentBridge:
    """FIFO buffer between a push producer and a pull consumer."""

    def __init__(self) -> None:
        self._buffer: deque[str] = deque()
        self._waiter: asyncio.Future[None] | None = None
        self._done = False
        self._error: BaseException | None = None

    @property
    def done(self) -> bool:
        """True once the producer has finished (the buffer may still hold text)."""
        return self._done

    @property
    def error(self) -> BaseException | None:
        return self._error

    def push(self, fragment: str) -> None:
        """Buffer a fragment and wake the waiting consumer."""
        if self._done or not fragment:
            return
        self._buffer.append(fragment)
        self._wake()

    def finish(self, error: BaseException | None = None) -> None:
        """Mark the producer as done and wake the waiting consumer."""
        if self._done:
            return
        self._done = True
        self._error = error
        self._wake()

    async def next(self) -> str | None:
        """Return the next fragment, or None once finished and drained."""
        while not self._buffer:
            if self._done:
                return None
            self._waiter = asyncio.get_running_loop().create_future()
            try:
                await self._waiter
            finally:
                self._waiter = None
        return self._buffer.popleft()

    def _wake(self) -> None:
        waiter = self._waiter
        if waiter is not None and not waiter.done():
            waiter.set_result(None)
