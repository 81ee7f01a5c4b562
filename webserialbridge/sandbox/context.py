"""Per-sandbox call queue and pending-result table."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from typing import Any

import msgspec

from ..errors import SandboxClosed
from ..protocol.messages import (
    Call,
    Delivery,
    Outcome,
    Response,
    decode_host_message,
    encode_call,
)

logger = logging.getLogger("webserialbridge.sandbox")

DeliveryHandler = Callable[[bytes], None]


class SandboxContext:
    """State owned by one sandboxed page or worker.

    Client code calls ``call()``; the host consumes the queue through
    ``pull_call()`` and answers through ``post()``. Only encoded bytes cross
    between the two sides.
    """

    def __init__(self, name: str = "sandbox") -> None:
        self.name = name
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._pending: dict[str, asyncio.Future[Outcome]] = {}
        self._deliveries: dict[str, DeliveryHandler] = {}
        self._closed = False

    def __repr__(self) -> str:
        return f"SandboxContext({self.name!r}, pending={len(self._pending)})"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def call(self, method: str, *args: Any) -> Outcome:
        """Queue one call and wait for its outcome."""
        if self._closed:
            raise SandboxClosed(f"Sandbox {self.name} is closed")

        call_id = uuid.uuid4().hex
        future: asyncio.Future[Outcome] = asyncio.get_running_loop().create_future()
        self._pending[call_id] = future
        self._queue.put_nowait(encode_call(Call(call_id=call_id, method=method, args=list(args))))
        try:
            return await future
        finally:
            self._pending.pop(call_id, None)

    def register_delivery(self, port_id: str, handler: DeliveryHandler) -> None:
        self._deliveries[port_id] = handler

    def unregister_delivery(self, port_id: str, handler: DeliveryHandler | None = None) -> None:
        current = self._deliveries.get(port_id)
        if current is None:
            return
        if handler is None or current == handler:
            del self._deliveries[port_id]

    # -- host-facing --------------------------------------------------------

    async def pull_call(self) -> bytes:
        """Return the next queued call, suspending while the queue is empty."""
        if self._closed:
            raise SandboxClosed(f"Sandbox {self.name} is closed")
        payload = await self._queue.get()
        if payload is None:
            raise SandboxClosed(f"Sandbox {self.name} is closed")
        return payload

    def post(self, payload: bytes) -> None:
        """Accept one encoded response or delivery from the host."""
        try:
            message = decode_host_message(payload)
        except msgspec.DecodeError as exc:
            logger.warning("Sandbox %s dropped undecodable host message: %s", self.name, exc)
            return

        if isinstance(message, Response):
            self._resolve(message)
        elif isinstance(message, Delivery):
            self._deliver(message)

    def _resolve(self, response: Response) -> None:
        future = self._pending.get(response.call_id)
        if future is None or future.done():
            logger.warning("Sandbox %s ignoring orphaned response %s", self.name, response.call_id)
            return
        future.set_result(response.outcome)

    def _deliver(self, delivery: Delivery) -> None:
        handler = self._deliveries.get(delivery.port_id)
        if handler is None:
            logger.debug(
                "Sandbox %s dropped %d bytes for port %s that is not open here",
                self.name,
                len(delivery.data),
                delivery.port_id,
            )
            return
        handler(delivery.data)

    def close(self) -> None:
        """Tear down the context: wake the puller and fail pending calls with ``SandboxClosed``."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)
        for future in self._pending.values():
            if not future.done():
                future.set_exception(SandboxClosed(f"Sandbox {self.name} closed before the call completed"))
        self._deliveries.clear()
        logger.info("Sandbox %s closed", self.name)


__all__ = ["DeliveryHandler", "SandboxContext"]
