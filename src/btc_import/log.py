"""Logging setup for btc-import.

Every run logs to *stderr* in a pipe-separated format.  Batch imports and
cleanups can also mirror the same records into a run log file that sits
next to the JSON reports, so an operator reviewing ``import-results/``
has the narrative and the numbers side by side.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Marks handlers owned by setup_logging; external handlers are left alone.
_HANDLER_ATTR = "_btc_import_log_handler"


def _resolve_level(level: str) -> int:
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level!r}")
    return numeric_level


def _owned_handlers(root: logging.Logger) -> list[logging.Handler]:
    return [h for h in root.handlers if getattr(h, _HANDLER_ATTR, None)]


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure the root logger for btc-import.

    Attaches a stderr handler on first use and, when *log_file* is given,
    a file handler writing the same format.  Repeated calls only adjust
    levels and never stack duplicate handlers.

    Args:
        level: A standard logging level name (``"DEBUG"``, ``"INFO"``...).
        log_file: Optional path of a run log file.  Parent directories are
            created as needed.

    Raises:
        ValueError: If *level* is not a recognised logging level string.
    """
    numeric_level = _resolve_level(level)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)

    owned = {getattr(h, _HANDLER_ATTR): h for h in _owned_handlers(root)}
    for handler in owned.values():
        handler.setLevel(numeric_level)

    if "stream" not in owned:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setLevel(numeric_level)
        stream_handler.setFormatter(formatter)
        setattr(stream_handler, _HANDLER_ATTR, "stream")
        root.addHandler(stream_handler)

    if log_file is None:
        return

    file_key = f"file:{Path(log_file).resolve()}"
    if file_key in owned:
        return

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(numeric_level)
    file_handler.setFormatter(formatter)
    setattr(file_handler, _HANDLER_ATTR, file_key)
    root.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Return a named logger (thin wrapper over :func:`logging.getLogger`)."""
    return logging.getLogger(name)
