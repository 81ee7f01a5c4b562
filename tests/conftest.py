"""Pytest configuration for Web Serial bridge tests."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

from webserialbridge.config.settings import RuntimeConfig  # noqa: E402
from webserialbridge.const import CONFIG_ENV_VAR, DISPATCH_MODE_PER_PORT, TRANSPORT_LOOPBACK  # noqa: E402
from webserialbridge.transport.loopback import LoopbackFactory  # noqa: E402

# Short enough to keep the suite fast, long enough that back-to-back
# deliveries from the loop are grouped into one window.
TEST_COALESCE_WINDOW = 0.01


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test to run on asyncio loop")


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Close and remove all logging handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)


@pytest.fixture(autouse=True)
def _no_config_file_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's WEBSERIALBRIDGE_CONFIG out of the tests."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


@pytest.fixture()
def runtime_config() -> RuntimeConfig:
    return RuntimeConfig(
        serial_port="/tmp/webserialbridge-test-uart",
        read_coalesce_window=TEST_COALESCE_WINDOW,
        dispatch_mode=DISPATCH_MODE_PER_PORT,
        debug_logging=False,
        transport=TRANSPORT_LOOPBACK,
    )


@pytest.fixture()
def loopback_factory() -> LoopbackFactory:
    return LoopbackFactory()
