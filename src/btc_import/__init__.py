"""btc-import: BTC-to-TT event import and reconciliation.

Pulls daily event feeds from BTC, resolves each event's organizer and
venue against TT, validates and writes the mapped events, and scores the
run with a go/no-go assessment.  Also provides backup-before-delete
cleanup of TT records and restore from those backups.
"""

from __future__ import annotations

from btc_import.assessment import assess
from btc_import.cleanup import (
    BackupCleanupFacility,
    EventDateCriterion,
    TempOrganizerCriterion,
    TempUserCriterion,
)
from btc_import.config import ConfigError, Settings, Thresholds, load_settings
from btc_import.exceptions import (
    AccessError,
    BackupIntegrityError,
    ReconciliationError,
    SourceUnavailableError,
)
from btc_import.fallback import DestinationAccess, FallbackAccessor
from btc_import.orchestrator import BatchOrchestrator
from btc_import.resolution import EntityResolver
from btc_import.runner import ImportRunner

__version__ = "0.1.0"

__all__ = [
    "AccessError",
    "BackupCleanupFacility",
    "BackupIntegrityError",
    "BatchOrchestrator",
    "ConfigError",
    "DestinationAccess",
    "EntityResolver",
    "EventDateCriterion",
    "FallbackAccessor",
    "ImportRunner",
    "ReconciliationError",
    "Settings",
    "SourceUnavailableError",
    "TempOrganizerCriterion",
    "TempUserCriterion",
    "Thresholds",
    "assess",
    "load_settings",
]
