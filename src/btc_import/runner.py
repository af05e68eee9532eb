"""Per-date import: fetch, resolve, validate, then write (or simulate).

:class:`ImportRunner` processes one calendar date through a fixed
sequence of stages::

    FETCHING -> RESOLVING -> VALIDATING -> (DRY_RUN_SKIP | MUTATING) -> DONE

with ``ERROR`` reachable from any stage when the date cannot continue
(the BTC feed or the TT event listing is unreachable, or an unexpected
fault escapes a stage).  An error ends the date, not the batch: the
returned :class:`DateResult` carries the error and whatever counts were
reached.  A fault on a single event fails only that event.

Dry-run and live runs go through the same stages and produce the same
accounting; the only difference is that dry-run never calls a TT write
endpoint and records ``would_create`` / ``would_update`` actions instead.
"""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from btc_import.categories import CategoryResolver
from btc_import.clients.btc import BtcClient
from btc_import.clients.exceptions import ApiError, ApiNotFoundError
from btc_import.clients.tt import TTClient, record_id
from btc_import.event_mapper import is_same_event, map_to_tt_event, validate_tt_event
from btc_import.exceptions import DestinationUnavailableError, SourceUnavailableError
from btc_import.models.resolution import ResolutionLog
from btc_import.models.run import Counts, DateResult, FailedEvent, ProcessedEvent
from btc_import.models.source import BtcEvent
from btc_import.resolution import EntityResolver, SourceRef

logger = logging.getLogger(__name__)


class ImportStage(str, enum.Enum):
    """Stages of a per-date import."""

    FETCHING = "fetching"
    RESOLVING = "resolving"
    VALIDATING = "validating"
    DRY_RUN_SKIP = "dry_run_skip"
    MUTATING = "mutating"
    DONE = "done"
    ERROR = "error"


@dataclass
class _Resolved:
    event: BtcEvent
    organizer: ResolutionLog
    venue: ResolutionLog


@dataclass
class _DateState:
    """Single-owner accumulator for one date."""

    day: date
    stage: ImportStage = ImportStage.FETCHING
    counts: Counts = field(default_factory=Counts)
    processed: list[ProcessedEvent] = field(default_factory=list)
    failed: list[FailedEvent] = field(default_factory=list)
    logs: list[ResolutionLog] = field(default_factory=list)
    mutations: int = 0

    def enter(self, stage: ImportStage) -> None:
        logger.info("[%s] Stage %s", self.day.isoformat(), stage.value)
        self.stage = stage

    def bump(self, **deltas: int) -> None:
        self.counts = self.counts.incremented(**deltas)

    def fail(self, event: BtcEvent, reason: str, details: tuple[str, ...] = ()) -> None:
        self.failed.append(
            FailedEvent(str(event.id), event.title, self.stage.value, reason, details)
        )


class ImportRunner:
    """Imports the BTC events of a single date into TT.

    Args:
        btc: BTC feed client.
        tt: Primary TT client (event listing and writes).
        organizer_resolver: Resolver for event organizers.
        venue_resolver: Resolver for event venues.
        category_resolver: Resolver for event categories.
        app_id: TT tenant identifier.
        dry_run: Suppress every TT write when ``True``.
        update_existing: Update events already in TT instead of skipping.
        mutation_delay: Seconds to pause between TT writes.
        sleep: Sleep function; injectable for tests.
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        btc: BtcClient,
        tt: TTClient,
        organizer_resolver: EntityResolver,
        venue_resolver: EntityResolver,
        category_resolver: CategoryResolver,
        app_id: str,
        dry_run: bool = True,
        update_existing: bool = False,
        mutation_delay: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._btc = btc
        self._tt = tt
        self._organizers = organizer_resolver
        self._venues = venue_resolver
        self._categories = category_resolver
        self._app_id = app_id
        self.dry_run = dry_run
        self._update_existing = update_existing
        self._mutation_delay = mutation_delay
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run_date(self, day: date) -> DateResult:
        """Import every BTC event of *day*.

        Never raises for per-event or per-date failures; they are counted
        in the returned :class:`DateResult`.

        Args:
            day: The date to import.

        Returns:
            The immutable outcome for *day*.
        """
        started = time.monotonic()
        state = _DateState(day=day)
        error: str | None = None

        try:
            events = self._fetch(state)
            resolved = self._resolve(state, events)
            records = self._validate(state, resolved)
            self._mutate(state, records)
            state.enter(ImportStage.DONE)
        except (SourceUnavailableError, DestinationUnavailableError) as exc:
            error = f"{state.stage.value}: {exc}"
            logger.error("[%s] Date aborted during %s: %s", day.isoformat(), state.stage.value, exc)
            state.stage = ImportStage.ERROR
        except Exception as exc:
            error = f"{state.stage.value}: {type(exc).__name__}: {exc}"
            logger.exception(
                "[%s] Unexpected failure during %s", day.isoformat(), state.stage.value
            )
            state.stage = ImportStage.ERROR

        counts = state.counts
        logger.info(
            "[%s] %d BTC event(s): %d created, %d updated, %d skipped, %d failed%s",
            day.isoformat(),
            counts.btc_total,
            counts.created,
            counts.updated,
            counts.skipped,
            counts.failed,
            " (dry run)" if self.dry_run else "",
        )
        return DateResult(
            date=day.isoformat(),
            counts=counts,
            duration=time.monotonic() - started,
            dry_run=self.dry_run,
            error=error,
            processed_events=tuple(state.processed),
            failed_events=tuple(state.failed),
            resolution_logs=tuple(state.logs),
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _fetch(self, state: _DateState) -> list[BtcEvent]:
        state.enter(ImportStage.FETCHING)
        try:
            events, rejected = self._btc.fetch_events(state.day)
        except ApiError as exc:
            raise SourceUnavailableError(str(exc), date=state.day.isoformat()) from exc

        # Unparseable feed entries are still BTC events: they count in the
        # total and as unresolved, so every event is accounted for once.
        for payload in rejected:
            state.bump(btc_total=1, resolution_failure=1)
            state.failed.append(
                FailedEvent(
                    str(payload.get("id", "")),
                    str(payload.get("title", "")),
                    ImportStage.FETCHING.value,
                    "malformed BTC event",
                )
            )
        state.bump(btc_total=len(events))
        return events

    def _resolve(self, state: _DateState, events: list[BtcEvent]) -> list[_Resolved]:
        state.enter(ImportStage.RESOLVING)
        resolved: list[_Resolved] = []

        for event in events:
            try:
                organizer = self._organizers.resolve(SourceRef.from_organizer(event.organizer))
                venue = (
                    self._venues.resolve(SourceRef.from_venue(event.venue))
                    if organizer.success
                    else None
                )
            except Exception as exc:
                state.bump(resolution_failure=1)
                state.fail(event, "resolution error", (f"{type(exc).__name__}: {exc}",))
                logger.error("Failed to resolve entities for %r: %s", event.title, exc)
                continue

            state.logs.append(organizer)
            if venue is None:
                state.bump(resolution_failure=1)
                details = organizer.error_details or {}
                state.fail(event, "organizer not resolved", (details.get("message", ""),))
                continue

            state.bump(resolution_success=1)
            state.logs.append(venue)
            resolved.append(_Resolved(event, organizer, venue))

        return resolved

    def _validate(
        self, state: _DateState, resolved: list[_Resolved]
    ) -> list[tuple[BtcEvent, dict[str, Any]]]:
        state.enter(ImportStage.VALIDATING)
        records: list[tuple[BtcEvent, dict[str, Any]]] = []
        now = self._clock()

        for item in resolved:
            try:
                categories = self._categories.resolve(item.event.categories)
                record = map_to_tt_event(
                    item.event, self._app_id, item.organizer, item.venue, categories, now=now
                )
                outcome = validate_tt_event(record)
            except Exception as exc:
                state.bump(invalid=1)
                state.fail(item.event, "mapping failed", (f"{type(exc).__name__}: {exc}",))
                logger.error("Failed to map %r to a TT event: %s", item.event.title, exc)
                continue
            if not outcome.valid:
                state.bump(invalid=1)
                state.fail(item.event, "validation failed", outcome.errors)
                continue
            state.bump(valid=1)
            records.append((item.event, record))

        return records

    def _mutate(self, state: _DateState, records: list[tuple[BtcEvent, dict[str, Any]]]) -> None:
        state.enter(ImportStage.DRY_RUN_SKIP if self.dry_run else ImportStage.MUTATING)
        if not records:
            return

        try:
            existing = list(self._tt.list_events(state.day))
        except ApiError as exc:
            raise DestinationUnavailableError(f"cannot list TT events: {exc}") from exc

        for event, record in records:
            match = next((e for e in existing if is_same_event(record, e)), None)

            if match is not None and not self._update_existing:
                state.bump(btc_processed=1, skipped=1)
                state.processed.append(
                    ProcessedEvent(str(event.id), event.title, "skipped_existing", record_id(match))
                )
                continue

            action = "update" if match is not None else "create"
            if self.dry_run:
                state.bump(btc_processed=1, **{f"{action}d": 1})
                state.processed.append(
                    ProcessedEvent(str(event.id), event.title, f"would_{action}",
                                   record_id(match) if match else None)
                )
                if match is None:
                    existing.append(record)
                continue

            self._throttle(state)
            try:
                tt_id, action = self._write(record, match)
            except Exception as exc:
                state.bump(btc_processed=1, failed=1)
                state.fail(event, f"{action} failed", (str(exc),))
                logger.error("Failed to %s TT event for %r: %s", action, event.title, exc)
                continue

            state.bump(btc_processed=1, **{f"{action}d": 1})
            state.processed.append(ProcessedEvent(str(event.id), event.title, f"{action}d", tt_id))
            if action == "create":
                existing.append({**record, "_id": tt_id})

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _write(self, record: dict[str, Any], match: dict[str, Any] | None) -> tuple[str | None, str]:
        """Create or update one event; returns ``(tt_id, action)``."""
        if match is not None:
            try:
                self._tt.update_event(record_id(match), record)
                return record_id(match), "update"
            except ApiNotFoundError:
                logger.warning(
                    "TT event %s vanished before update; creating %r instead",
                    record_id(match),
                    record["title"],
                )
        created = self._tt.create_event(record)
        return record_id(created) or None, "create"

    def _throttle(self, state: _DateState) -> None:
        if state.mutations and self._mutation_delay > 0:
            self._sleep(self._mutation_delay)
        state.mutations += 1
