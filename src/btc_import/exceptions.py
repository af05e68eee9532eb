"""Custom exceptions for the btc-import reconciliation engine.

Transport-level failures live in :mod:`btc_import.clients.exceptions`;
the classes here describe what those failures *mean* to an import or a
cleanup run.
"""

from __future__ import annotations


class ReconciliationError(Exception):
    """Base class for engine-level failures."""


class SourceUnavailableError(ReconciliationError):
    """Raised when the BTC feed cannot be read for a date.

    Fatal for that date only; the orchestrator records the date as failed
    and moves on.

    Attributes:
        date: The ``YYYY-MM-DD`` date whose fetch failed.
    """

    def __init__(self, message: str, date: str = "") -> None:
        super().__init__(message)
        self.date = date


class DestinationUnavailableError(ReconciliationError):
    """Raised when the existing TT events for a date cannot be listed."""


class AccessError(ReconciliationError):
    """Raised when every access strategy for a resource has failed.

    Attributes:
        attempts: The ordered access attempts, one per strategy.
    """

    def __init__(self, message: str, attempts: tuple = ()) -> None:
        super().__init__(message)
        self.attempts = attempts


class RecordNotFoundError(ReconciliationError):
    """Raised when a record to delete no longer exists in the store."""


class BackupIntegrityError(ReconciliationError):
    """Raised when a backup file cannot be written, verified, or parsed.

    Fatal to the cleanup or restore that hit it; no record is deleted or
    restored once this is raised.

    Attributes:
        path: The backup file involved.
    """

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path
