"""Reader and writer objects handed out by ``SerialPort``."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable

ReleaseCallback = Callable[[object], None]


class SerialPortReader:
    """Receives the coalesced chunks delivered for one open port.

    ``read()`` returns the next chunk, or ``b""`` once the reader was
    cancelled or the port closed and everything queued has been consumed.
    """

    def __init__(self, on_release: ReleaseCallback) -> None:
        self._chunks: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._on_release = on_release
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def push(self, data: bytes) -> None:
        if not self._done:
            self._chunks.put_nowait(data)

    def finish(self) -> None:
        if self._done:
            return
        self._done = True
        self._chunks.put_nowait(None)

    async def read(self) -> bytes:
        if self._done and self._chunks.empty():
            return b""
        chunk = await self._chunks.get()
        return b"" if chunk is None else chunk

    async def cancel(self) -> None:
        """Stop reading; buffering on the host keeps running until the port closes."""
        self.finish()
        self._on_release(self)

    def __aiter__(self) -> SerialPortReader:
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read()
        if not chunk:
            raise StopAsyncIteration
        return chunk


class SerialPortWriter:
    """Each ``write()`` is sent to the device as exactly one write request."""

    def __init__(self, send: Callable[[bytes], Awaitable[None]], on_release: ReleaseCallback) -> None:
        self._send = send
        self._on_release = on_release
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, chunk: bytes | bytearray | memoryview | Iterable[int]) -> None:
        if self._closed:
            raise RuntimeError("Cannot write to a closed writer")
        await self._send(bytes(chunk))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._on_release(self)

    def release(self) -> None:
        self._closed = True


__all__ = ["SerialPortReader", "SerialPortWriter"]
