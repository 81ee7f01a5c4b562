"""Settings loader for the Web Serial bridge.

Configuration is read from the ``[webserialbridge]`` table of a TOML file.
The file is located through the explicit ``path`` argument, then the
``WEBSERIALBRIDGE_CONFIG`` environment variable; without either, the
defaults declared on ``RuntimeConfig`` are used unchanged.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import msgspec

from ..const import (
    CONFIG_ENV_VAR,
    CONFIG_TABLE,
    DEFAULT_BOARD_READY_TIMEOUT,
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_DISPATCH_MODE,
    DEFAULT_READ_COALESCE_WINDOW,
    DEFAULT_SERIAL_PORT,
    DEFAULT_TRANSPORT,
    DISPATCH_MODES,
    TRANSPORTS,
)
from ..util import parse_bool

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RuntimeConfig:
    """Strongly typed configuration for the bridge host."""

    serial_port: str = DEFAULT_SERIAL_PORT
    read_coalesce_window: float = DEFAULT_READ_COALESCE_WINDOW
    dispatch_mode: str = DEFAULT_DISPATCH_MODE
    debug_logging: bool = DEFAULT_DEBUG_LOGGING
    transport: str = DEFAULT_TRANSPORT
    board_command: tuple[str, ...] = ()
    board_cwd: str | None = None
    board_ready_timeout: float = DEFAULT_BOARD_READY_TIMEOUT

    @property
    def board_enabled(self) -> bool:
        return bool(self.board_command)

    def __post_init__(self) -> None:
        self.serial_port = (self.serial_port or "").strip()
        if not self.serial_port:
            raise ValueError("serial_port must be a non-empty path")

        self.read_coalesce_window = self._require_positive_float(
            "read_coalesce_window",
            float(self.read_coalesce_window),
        )
        self.board_ready_timeout = self._require_positive_float(
            "board_ready_timeout",
            float(self.board_ready_timeout),
        )

        mode = self.dispatch_mode.strip().lower()
        if mode not in DISPATCH_MODES:
            raise ValueError(
                f"dispatch_mode must be one of {sorted(DISPATCH_MODES)}, got {self.dispatch_mode!r}"
            )
        self.dispatch_mode = mode

        transport = self.transport.strip().lower()
        if transport not in TRANSPORTS:
            raise ValueError(
                f"transport must be one of {sorted(TRANSPORTS)}, got {self.transport!r}"
            )
        self.transport = transport

        self.board_command = tuple(str(arg) for arg in self.board_command)
        if self.board_cwd is not None:
            self.board_cwd = os.path.abspath(os.path.expanduser(self.board_cwd))

    @staticmethod
    def _require_positive_float(name: str, value: float) -> float:
        if value <= 0.0:
            raise ValueError(f"{name} must be a positive number")
        return value


def get_default_config() -> dict[str, Any]:
    """Provide default configuration values derived from ``RuntimeConfig``."""
    defaults: dict[str, Any] = {}
    for fi in dataclasses.fields(RuntimeConfig):
        defaults[fi.name] = fi.default
    return defaults


def get_config_source(path: str | os.PathLike[str] | None = None) -> Path | None:
    """Return the configuration file that ``load_runtime_config`` would read."""
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return None


def _load_raw_config(path: str | os.PathLike[str] | None = None) -> dict[str, Any]:
    raw = get_default_config()
    source = get_config_source(path)
    if source is None:
        return raw

    try:
        with source.open("rb") as handle:
            document = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ValueError(f"Configuration file not found: {source}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid configuration file {source}: {exc}") from exc

    section = document.get(CONFIG_TABLE, {})
    if not isinstance(section, dict):
        raise ValueError(f"[{CONFIG_TABLE}] in {source} must be a table")

    for key, value in section.items():
        if key not in raw:
            logger.warning("Ignoring unknown configuration key '%s' in %s", key, source)
            continue
        raw[key] = value
    return raw


def load_runtime_config(path: str | os.PathLike[str] | None = None) -> RuntimeConfig:
    """Load configuration from the TOML file or defaults."""

    raw = _load_raw_config(path)
    raw["debug_logging"] = parse_bool(raw.get("debug_logging"))

    command = raw.get("board_command") or ()
    if isinstance(command, str):
        command = tuple(command.split())
    raw["board_command"] = tuple(command)

    try:
        return msgspec.convert(raw, RuntimeConfig, strict=False)
    except msgspec.ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


__all__ = [
    "RuntimeConfig",
    "get_config_source",
    "get_default_config",
    "load_runtime_config",
]
