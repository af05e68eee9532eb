"""Data models for btc-import."""

from __future__ import annotations

from btc_import.models.cleanup import BackupRecord, CleanupResult, ItemFailure, RestoreResult
from btc_import.models.resolution import ResolutionAttempt, ResolutionLog, ResolvedEntity
from btc_import.models.run import (
    Assessment,
    Counts,
    DateResult,
    FailedEvent,
    ImportRun,
    ProcessedEvent,
)
from btc_import.models.source import BtcCategory, BtcEvent, BtcOrganizer, BtcVenue

__all__ = [
    "Assessment",
    "BackupRecord",
    "BtcCategory",
    "BtcEvent",
    "BtcOrganizer",
    "BtcVenue",
    "CleanupResult",
    "Counts",
    "DateResult",
    "FailedEvent",
    "ImportRun",
    "ItemFailure",
    "ProcessedEvent",
    "ResolutionAttempt",
    "ResolutionLog",
    "ResolvedEntity",
    "RestoreResult",
]
