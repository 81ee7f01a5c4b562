"""Tests for runtime configuration loading and validation."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from webserialbridge.config import settings
from webserialbridge.config.settings import RuntimeConfig, load_runtime_config
from webserialbridge.const import (
    CONFIG_ENV_VAR,
    DEFAULT_DISPATCH_MODE,
    DEFAULT_READ_COALESCE_WINDOW,
    DEFAULT_SERIAL_PORT,
    DISPATCH_MODE_UNORDERED,
    TRANSPORT_LOOPBACK,
)


def _write_config(path: Path, body: str) -> Path:
    path.write_text("[webserialbridge]\n" + body, encoding="utf-8")
    return path


def test_defaults_without_config_file() -> None:
    config = load_runtime_config()
    assert config.serial_port == DEFAULT_SERIAL_PORT
    assert config.read_coalesce_window == DEFAULT_READ_COALESCE_WINDOW
    assert config.dispatch_mode == DEFAULT_DISPATCH_MODE
    assert config.board_command == ()
    assert config.board_enabled is False


def test_get_default_config_matches_dataclass() -> None:
    defaults = settings.get_default_config()
    assert defaults["serial_port"] == DEFAULT_SERIAL_PORT
    assert set(defaults) == {
        "serial_port",
        "read_coalesce_window",
        "dispatch_mode",
        "debug_logging",
        "transport",
        "board_command",
        "board_cwd",
        "board_ready_timeout",
    }


def test_load_from_toml_file(tmp_path: Path) -> None:
    path = _write_config(
        tmp_path / "bridge.toml",
        'serial_port = "/dev/ttyUSB3"\n'
        "read_coalesce_window = 0.1\n"
        'dispatch_mode = "Unordered"\n'
        'debug_logging = "yes"\n'
        'transport = "loopback"\n'
        'board_command = "./simduino --uart 0"\n'
        'board_cwd = "build"\n',
    )
    config = load_runtime_config(path)

    assert config.serial_port == "/dev/ttyUSB3"
    assert config.read_coalesce_window == pytest.approx(0.1)
    assert config.dispatch_mode == DISPATCH_MODE_UNORDERED
    assert config.debug_logging is True
    assert config.transport == TRANSPORT_LOOPBACK
    assert config.board_command == ("./simduino", "--uart", "0")
    assert config.board_enabled is True
    assert config.board_cwd is not None and Path(config.board_cwd).is_absolute()


def test_environment_variable_locates_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write_config(tmp_path / "env.toml", 'board_command = ["simavr", "-m", "atmega328p"]\n')
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

    assert settings.get_config_source() == path
    assert load_runtime_config().board_command == ("simavr", "-m", "atmega328p")


def test_unknown_keys_are_ignored_with_warning(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = _write_config(tmp_path / "extra.toml", 'mqtt_host = "localhost"\n')
    with caplog.at_level(logging.WARNING):
        config = load_runtime_config(path)
    assert config.serial_port == DEFAULT_SERIAL_PORT
    assert "mqtt_host" in caplog.text


def test_missing_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="not found"):
        load_runtime_config(tmp_path / "absent.toml")


def test_malformed_toml_is_an_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.toml"
    path.write_text("[webserialbridge\nserial_port = ", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid configuration file"):
        load_runtime_config(path)


def test_wrong_value_type_is_an_error(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "typed.toml", 'read_coalesce_window = "soon"\n')
    with pytest.raises(ValueError):
        load_runtime_config(path)


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("serial_port", "   "),
        ("read_coalesce_window", 0.0),
        ("read_coalesce_window", -1.0),
        ("board_ready_timeout", 0.0),
        ("dispatch_mode", "fifo"),
        ("transport", "usb"),
    ],
)
def test_runtime_config_rejects_invalid_values(field: str, value: object) -> None:
    with pytest.raises(ValueError):
        RuntimeConfig(**{field: value})  # type: ignore[arg-type]


def test_runtime_config_normalises_values() -> None:
    config = RuntimeConfig(
        serial_port="  /dev/ttyS0 ",
        dispatch_mode=" PER-PORT ",
        transport="Serial",
        board_command=["simduino"],  # type: ignore[arg-type]
    )
    assert config.serial_port == "/dev/ttyS0"
    assert config.dispatch_mode == "per-port"
    assert config.transport == "serial"
    assert config.board_command == ("simduino",)
