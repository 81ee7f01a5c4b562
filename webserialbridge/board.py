"""Launcher for the simulated board that provides the serial device."""

from __future__ import annotations

import asyncio
import logging
import os
from types import TracebackType

import tenacity

from .config.settings import RuntimeConfig
from .const import BOARD_READY_POLL_INTERVAL, BOARD_STOP_TIMEOUT
from .errors import BoardStartupError

logger = logging.getLogger("webserialbridge.board")


class _DeviceMissing(Exception):
    pass


class Board:
    """Runs ``config.board_command`` and waits for its serial device to appear.

    Without a command the board is assumed to be started elsewhere; ``start()``
    does nothing and ``wait_ready()`` only watches the device path.
    """

    def __init__(self, config: RuntimeConfig) -> None:
        self.config = config
        self.port = config.serial_port
        self._process: asyncio.subprocess.Process | None = None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        if not self.config.board_enabled or self.running:
            return
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.config.board_command,
                cwd=self.config.board_cwd,
            )
        except OSError as exc:
            raise BoardStartupError(f"Failed to launch {self.config.board_command[0]}: {exc}") from exc
        logger.info("Board started (pid %d): %s", self._process.pid, " ".join(self.config.board_command))

    def _poll(self) -> None:
        if self._process is not None and self._process.returncode is not None:
            raise BoardStartupError(f"Board exited with status {self._process.returncode} before {self.port} appeared")
        if not os.path.exists(self.port):
            raise _DeviceMissing(self.port)

    async def wait_ready(self) -> None:
        """Block until the device path exists or ``board_ready_timeout`` elapses."""
        retryer = tenacity.AsyncRetrying(
            stop=tenacity.stop_after_delay(self.config.board_ready_timeout),
            wait=tenacity.wait_fixed(BOARD_READY_POLL_INTERVAL),
            retry=tenacity.retry_if_exception_type(_DeviceMissing),
            reraise=False,
        )
        try:
            async for attempt in retryer:
                with attempt:
                    self._poll()
        except tenacity.RetryError as exc:
            raise BoardStartupError(
                f"{self.port} did not appear within {self.config.board_ready_timeout:.1f}s"
            ) from exc
        logger.info("Board serial device ready at %s", self.port)

    async def stop(self) -> None:
        process = self._process
        self._process = None
        if process is None or process.returncode is not None:
            return
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=BOARD_STOP_TIMEOUT)
        except TimeoutError:
            logger.warning("Board did not exit after terminate; killing pid %d", process.pid)
            process.kill()
            await process.wait()
        logger.info("Board stopped")

    async def __aenter__(self) -> Board:
        await self.start()
        try:
            await self.wait_ready()
        except BaseException:
            await self.stop()
            raise
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()


__all__ = ["Board"]
