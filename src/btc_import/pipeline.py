"""Wiring: build clients, resolvers and drivers from :class:`Settings`.

The CLI calls :func:`run_import`, :func:`run_cleanup` and
:func:`run_restore`; tests build the same objects directly with fakes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date
from pathlib import Path

from btc_import.categories import CategoryResolver
from btc_import.cleanup import BackupCleanupFacility, CleanupCriterion
from btc_import.clients.btc import BtcClient
from btc_import.clients.store import DirectStore
from btc_import.clients.tt import Endpoint, TTClient
from btc_import.config import Settings, Thresholds, require_auth_token
from btc_import.fallback import DestinationAccess
from btc_import.models.cleanup import CleanupResult, RestoreResult
from btc_import.models.run import ImportRun
from btc_import.orchestrator import BatchOrchestrator
from btc_import.resolution import (
    EntityResolver,
    organizer_strategies,
    venue_strategies,
)
from btc_import.runner import ImportRunner

logger = logging.getLogger(__name__)

# The secondary admin API serves user logins under /users.
_SECONDARY_ENDPOINTS = {"users": Endpoint("users", "users", ("users", "data"))}


def build_access(settings: Settings) -> DestinationAccess:
    """Build the primary / secondary / direct-store access chain."""
    primary = TTClient(settings.tt_api_base, settings.app_id, settings.auth_token)
    secondary = None
    if settings.tt_secondary_api_base:
        secondary = TTClient(
            settings.tt_secondary_api_base,
            settings.app_id,
            settings.auth_token,
            endpoints=_SECONDARY_ENDPOINTS,
        )
    store = None
    if settings.store_url:
        store = DirectStore(
            settings.store_url,
            settings.store_tables,
            settings.app_id,
            widen_tenant_filter=settings.widen_tenant_filter,
        )
    logger.debug(
        "Destination access: primary=%s secondary=%s store=%s",
        settings.tt_api_base,
        settings.tt_secondary_api_base or "-",
        "configured" if store is not None else "-",
    )
    return DestinationAccess(primary, secondary, store)


def build_runner(
    settings: Settings,
    access: DestinationAccess,
    dry_run: bool,
    update_existing: bool = False,
    use_default_organizer: bool = False,
    use_placeholder_venue: bool = False,
) -> ImportRunner:
    """Build an :class:`ImportRunner` over *access*."""
    organizers = EntityResolver(
        "organizer",
        organizer_strategies(
            access,
            fuzzy_threshold=settings.fuzzy_threshold,
            fuzzy_margin=settings.fuzzy_margin,
            use_default_organizer=use_default_organizer,
        ),
    )
    venues = EntityResolver(
        "venue",
        venue_strategies(
            access,
            fuzzy_threshold=settings.fuzzy_threshold,
            fuzzy_margin=settings.fuzzy_margin,
            use_placeholder_venue=use_placeholder_venue,
        ),
        name_fields=("name",),
    )
    return ImportRunner(
        btc=BtcClient(settings.btc_api_base),
        tt=access.primary,
        organizer_resolver=organizers,
        venue_resolver=venues,
        category_resolver=CategoryResolver(access),
        app_id=settings.app_id,
        dry_run=dry_run,
        update_existing=update_existing,
        mutation_delay=settings.mutation_delay,
    )


def build_orchestrator(
    settings: Settings,
    runner: ImportRunner,
    thresholds: Thresholds | None = None,
) -> BatchOrchestrator:
    return BatchOrchestrator(runner, settings.output_dir, thresholds or settings.thresholds)


# ---------------------------------------------------------------------------
# Entry points used by the CLI
# ---------------------------------------------------------------------------


def run_import(
    settings: Settings,
    start: date,
    end: date,
    dry_run: bool,
    update_existing: bool = False,
    use_default_organizer: bool = False,
    use_placeholder_venue: bool = False,
    thresholds: Thresholds | None = None,
    orchestrator_hook: Callable[[BatchOrchestrator], None] | None = None,
) -> ImportRun:
    """Import ``[start, end]`` and return the finalized run.

    Args:
        orchestrator_hook: Called with the orchestrator before the run
            starts, so the CLI can wire Ctrl-C to ``request_stop``.

    Raises:
        ConfigError: If the range is invalid or a live run has no token.
    """
    if not dry_run:
        require_auth_token(settings)
    access = build_access(settings)
    runner = build_runner(
        settings, access, dry_run, update_existing, use_default_organizer, use_placeholder_venue
    )
    orchestrator = build_orchestrator(settings, runner, thresholds)
    if orchestrator_hook is not None:
        orchestrator_hook(orchestrator)
    return orchestrator.run(start, end)


def build_facility(settings: Settings, dry_run: bool) -> BackupCleanupFacility:
    require_auth_token(settings)
    return BackupCleanupFacility(
        build_access(settings),
        settings.output_dir,
        dry_run=dry_run,
        mutation_delay=settings.mutation_delay,
    )


def run_cleanup(settings: Settings, criterion: CleanupCriterion, dry_run: bool) -> CleanupResult:
    """Back up and delete the records matching *criterion*."""
    return build_facility(settings, dry_run).cleanup(criterion)


def run_restore(
    settings: Settings,
    backup_file: Path,
    dry_run: bool,
    kind: str | None = None,
) -> RestoreResult:
    """Replay *backup_file* into TT."""
    return build_facility(settings, dry_run).restore(backup_file, kind)
