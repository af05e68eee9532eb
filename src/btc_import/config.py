"""Configuration loading for btc-import.

Reads settings from environment variables (with .env support via
python-dotenv).  Every problem found is collected and reported together
in a single :class:`ConfigError`, so an operator fixes the environment in
one pass rather than one variable at a time.

Configuration errors are always raised before any network activity.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from dotenv import load_dotenv

DEFAULT_BTC_API_BASE = "https://bostontangocalendar.com/wp-json/tribe/events/v1"
DEFAULT_TT_API_BASE = "http://localhost:3010/api"
DEFAULT_OUTPUT_DIR = "import-results"

# Logical entity name -> physical table name in the direct store.  Bump the
# version whenever a mapping changes so reports record which one was used.
STORE_TABLES_VERSION = 1
DEFAULT_STORE_TABLES: Mapping[str, str] = MappingProxyType(
    {
        "events": "events",
        "organizers": "organizers",
        "venues": "venues",
        "users": "userlogins",
    }
)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


@dataclass(frozen=True)
class Thresholds:
    """Go/no-go release gate thresholds, each in ``[0, 1]``."""

    minimum_resolution_rate: float = 0.90
    minimum_validation_rate: float = 0.95
    minimum_overall_rate: float = 0.85

    def to_dict(self) -> dict[str, float]:
        return {
            "minimumResolutionRate": self.minimum_resolution_rate,
            "minimumValidationRate": self.minimum_validation_rate,
            "minimumOverallRate": self.minimum_overall_rate,
        }


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables.

    Attributes:
        auth_token: Bearer token for the TT API.  Empty when unset; live
            and destructive commands call :func:`require_auth_token`.
        btc_api_base: Base URL of the BTC events feed.
        tt_api_base: Base URL of the primary TT API.
        tt_secondary_api_base: Optional base URL of the secondary (admin)
            TT API used as the second access strategy.
        app_id: Tenant identifier sent with every TT request.
        output_dir: Directory for reports and backups.
        dry_run: ``True`` unless ``DRY_RUN`` is literally ``"false"``.
        start_date: First date of the import range, if configured.
        end_date: Last date of the import range, if configured.
        store_url: SQLAlchemy URL of the direct store, or ``None`` to
            disable the direct-store fallback.
        store_tables: Logical-to-physical table name mapping.
        widen_tenant_filter: Retry direct-store queries without the
            tenant filter when the tenant-scoped query finds nothing.
        mutation_delay: Seconds to pause between destination writes.
        fuzzy_threshold: Minimum rapidfuzz score (0-100) for a fuzzy match.
        fuzzy_margin: Points the best fuzzy score must lead the runner-up by.
        thresholds: Go/no-go thresholds.
        log_level: Logging level (default ``"INFO"``).
    """

    auth_token: str = ""
    btc_api_base: str = DEFAULT_BTC_API_BASE
    tt_api_base: str = DEFAULT_TT_API_BASE
    tt_secondary_api_base: str | None = None
    app_id: str = "1"
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    dry_run: bool = True
    start_date: date | None = None
    end_date: date | None = None
    store_url: str | None = None
    store_tables: Mapping[str, str] = field(default_factory=lambda: DEFAULT_STORE_TABLES)
    widen_tenant_filter: bool = True
    mutation_delay: float = 0.5
    fuzzy_threshold: float = 90.0
    fuzzy_margin: float = 5.0
    thresholds: Thresholds = field(default_factory=Thresholds)
    log_level: str = "INFO"

    def __repr__(self) -> str:
        return (
            f"Settings(auth_token={'***' if self.auth_token else ''!r}, "
            f"tt_api_base={self.tt_api_base!r}, "
            f"app_id={self.app_id!r}, "
            f"dry_run={self.dry_run!r}, "
            f"start_date={self.start_date!r}, "
            f"end_date={self.end_date!r}, "
            f"store_url={'***' if self.store_url else None!r})"
        )


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------


def parse_date(value: str, name: str = "date") -> date:
    """Parse a strict ``YYYY-MM-DD`` string.

    Args:
        value: The raw string.
        name: Variable or flag name used in the error message.

    Returns:
        The parsed :class:`datetime.date`.

    Raises:
        ConfigError: If *value* is not a real calendar date in
            ``YYYY-MM-DD`` form.
    """
    raw = value.strip()
    if not _DATE_RE.match(raw):
        raise ConfigError(f"{name} must use YYYY-MM-DD format, got {value!r}")
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} is not a valid date: {value!r}") from exc


def parse_dry_run(value: str | None) -> bool:
    """Interpret ``DRY_RUN``: only the literal ``"false"`` disables it."""
    if value is None:
        return True
    return value.strip().lower() != "false"


def parse_store_tables(value: str) -> dict[str, str]:
    """Parse ``logical=physical`` pairs separated by commas.

    Unlisted logical names keep their defaults.

    Raises:
        ConfigError: If a pair is malformed or names an unknown entity.
    """
    tables = dict(DEFAULT_STORE_TABLES)
    for pair in filter(None, (p.strip() for p in value.split(","))):
        logical, sep, physical = pair.partition("=")
        logical, physical = logical.strip(), physical.strip()
        if not sep or not logical or not physical:
            raise ConfigError(f"STORE_TABLES entry must be logical=physical, got {pair!r}")
        if logical not in DEFAULT_STORE_TABLES:
            raise ConfigError(f"STORE_TABLES names unknown entity {logical!r}")
        tables[logical] = physical
    return tables


def _parse_rate(env_var: str, raw: str, errors: list[str]) -> float | None:
    try:
        rate = float(raw)
    except ValueError:
        errors.append(f"{env_var} must be a number, got {raw!r}")
        return None
    if not 0.0 <= rate <= 1.0:
        errors.append(f"{env_var} must be between 0 and 1, got {raw!r}")
        return None
    return rate


def _parse_non_negative(env_var: str, raw: str, errors: list[str]) -> float | None:
    try:
        number = float(raw)
    except ValueError:
        errors.append(f"{env_var} must be a number, got {raw!r}")
        return None
    if number < 0:
        errors.append(f"{env_var} must not be negative, got {raw!r}")
        return None
    return number


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_settings() -> Settings:
    """Load and validate settings from environment variables.

    Calls :func:`dotenv.load_dotenv` so a ``.env`` file in the working
    directory is picked up automatically.  ``TARGET_DATE`` is shorthand
    for a single-day range and is overridden by ``START_DATE`` /
    ``END_DATE`` when those are set.

    Returns:
        A validated :class:`Settings` instance.

    Raises:
        ConfigError: If any variable is malformed.  The message names
            **all** offending variables.
    """
    load_dotenv()

    def env(name: str) -> str:
        return os.environ.get(name, "").strip()

    values: dict = {}
    errors: list[str] = []

    for env_var, field_name in (
        ("AUTH_TOKEN", "auth_token"),
        ("BTC_API_BASE", "btc_api_base"),
        ("TT_API_BASE", "tt_api_base"),
        ("TT_SECONDARY_API_BASE", "tt_secondary_api_base"),
        ("APP_ID", "app_id"),
        ("STORE_URL", "store_url"),
        ("LOG_LEVEL", "log_level"),
    ):
        if env(env_var):
            values[field_name] = env(env_var)

    if env("OUTPUT_DIR"):
        values["output_dir"] = Path(env("OUTPUT_DIR"))

    values["dry_run"] = parse_dry_run(os.environ.get("DRY_RUN"))

    if env("WIDEN_TENANT_FILTER"):
        values["widen_tenant_filter"] = env("WIDEN_TENANT_FILTER").lower() != "false"

    dates: dict[str, date] = {}
    for env_var in ("TARGET_DATE", "START_DATE", "END_DATE"):
        if not env(env_var):
            continue
        try:
            dates[env_var] = parse_date(env(env_var), env_var)
        except ConfigError as exc:
            errors.append(str(exc))
    start = dates.get("START_DATE") or dates.get("TARGET_DATE")
    end = dates.get("END_DATE") or dates.get("TARGET_DATE") or start
    if start is not None:
        values["start_date"] = start
    if end is not None:
        values["end_date"] = end

    if env("STORE_TABLES"):
        try:
            values["store_tables"] = MappingProxyType(parse_store_tables(env("STORE_TABLES")))
        except ConfigError as exc:
            errors.append(str(exc))

    for env_var, field_name in (
        ("MUTATION_DELAY", "mutation_delay"),
        ("FUZZY_THRESHOLD", "fuzzy_threshold"),
        ("FUZZY_MARGIN", "fuzzy_margin"),
    ):
        if env(env_var):
            number = _parse_non_negative(env_var, env(env_var), errors)
            if number is not None:
                values[field_name] = number

    rates: dict[str, float] = {}
    for env_var, field_name in (
        ("MIN_RESOLUTION_RATE", "minimum_resolution_rate"),
        ("MIN_VALIDATION_RATE", "minimum_validation_rate"),
        ("MIN_OVERALL_RATE", "minimum_overall_rate"),
    ):
        if env(env_var):
            rate = _parse_rate(env_var, env(env_var), errors)
            if rate is not None:
                rates[field_name] = rate
    if rates:
        values["thresholds"] = Thresholds(**rates)

    if errors:
        raise ConfigError("Invalid configuration: " + "; ".join(errors))

    return Settings(**values)


def require_auth_token(settings: Settings) -> str:
    """Return the TT auth token or fail if it is not configured.

    Raises:
        ConfigError: If ``AUTH_TOKEN`` is missing or blank.
    """
    if not settings.auth_token.strip():
        raise ConfigError("Missing required environment variables: AUTH_TOKEN")
    return settings.auth_token


def default_target_date(today: date | None = None) -> date:
    """Date imported when nothing is configured: 90 days from today."""
    return (today or date.today()) + timedelta(days=90)
