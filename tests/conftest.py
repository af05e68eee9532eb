"""Shared fixtures for btc-import tests."""

from __future__ import annotations

import logging
from collections.abc import Generator

import pytest

_ALL_ENV_VARS = (
    "AUTH_TOKEN",
    "BTC_API_BASE",
    "TT_API_BASE",
    "TT_SECONDARY_API_BASE",
    "APP_ID",
    "STORE_URL",
    "STORE_TABLES",
    "LOG_LEVEL",
    "OUTPUT_DIR",
    "DRY_RUN",
    "WIDEN_TENANT_FILTER",
    "TARGET_DATE",
    "START_DATE",
    "END_DATE",
    "MUTATION_DELAY",
    "FUZZY_THRESHOLD",
    "FUZZY_MARGIN",
    "MIN_RESOLUTION_RATE",
    "MIN_VALIDATION_RATE",
    "MIN_OVERALL_RATE",
)


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove all btc-import environment variables.

    Patches ``load_dotenv`` so a real ``.env`` file cannot re-inject values
    that the test explicitly removed.
    """
    monkeypatch.setattr("btc_import.config.load_dotenv", lambda *_a, **_kw: None)
    for key in _ALL_ENV_VARS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def monkeypatch_env(clean_env: None, monkeypatch: pytest.MonkeyPatch, tmp_path) -> dict[str, str]:
    """Set the common environment variables to valid test values.

    Returns the dict of variables so tests can inspect or override values.
    """
    env_vars = {
        "AUTH_TOKEN": "test-token-12345",
        "TT_API_BASE": "http://tt.test/api",
        "BTC_API_BASE": "http://btc.test/wp-json/tribe/events/v1",
        "APP_ID": "1",
        "OUTPUT_DIR": str(tmp_path / "import-results"),
        "MUTATION_DELAY": "0",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture(autouse=True)
def _reset_root_logger() -> Generator[None, None, None]:
    """Reset the root logger after each test to prevent handler leaks."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    for handler in root.handlers:
        if handler not in original_handlers:
            handler.close()
    root.handlers = original_handlers
    root.setLevel(original_level)
