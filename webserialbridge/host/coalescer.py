"""Debounced read buffering for open ports."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger("webserialbridge.coalescer")

FlushCallback = Callable[[bytes], bool]


class ReadCoalescer:
    """Accumulate inbound bytes and flush them as one chunk per quiet window.

    Every ``feed`` appends to the buffer and restarts the timer. When the timer
    expires the whole buffer is handed to the flush callback once and cleared.
    If the callback reports that nobody can take the data yet (returns False),
    the bytes stay buffered until ``flush_now`` is called.

    There is no size limit and no backpressure towards the device.
    """

    def __init__(
        self,
        window: float,
        on_flush: FlushCallback,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._window = window
        self._on_flush = on_flush
        self._loop = loop or asyncio.get_running_loop()
        self._buffer = bytearray()
        self._timer: asyncio.TimerHandle | None = None
        self._closed = False

    @property
    def window(self) -> float:
        return self._window

    @property
    def pending(self) -> int:
        return len(self._buffer)

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, data: bytes) -> None:
        if self._closed or not data:
            return
        self._buffer.extend(data)
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(self._window, self._expire)

    def _expire(self) -> None:
        self._timer = None
        self.flush_now()

    def flush_now(self) -> None:
        """Deliver whatever is buffered immediately."""
        if self._closed or not self._buffer or self._timer is not None:
            return
        chunk = bytes(self._buffer)
        if self._on_flush(chunk):
            del self._buffer[: len(chunk)]

    def close(self) -> None:
        """Stop the timer and discard buffered bytes."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._buffer:
            logger.debug("Discarding %d buffered bytes on close", len(self._buffer))
        self._buffer.clear()
        self._closed = True


__all__ = ["FlushCallback", "ReadCoalescer"]
