"""Result types for import runs.

- :class:`Counts` -- the counters shared by a single date and a whole run.
- :class:`DateResult` -- immutable outcome of one date.
- :class:`Assessment` -- the go/no-go verdict for a run.
- :class:`ImportRun` -- the run accumulator, finalized exactly once.

``to_dict`` methods emit the camelCase shape written to report files.
Dry-run and live runs produce structurally identical dictionaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any

from btc_import.models.resolution import ResolutionLog

# ---------------------------------------------------------------------------
# Counts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Counts:
    """Event counters for a date or a whole run.

    Every BTC event lands in exactly one of ``resolution_success`` /
    ``resolution_failure``.  Events that reach validation land in exactly
    one of ``valid`` / ``invalid``, and valid events land in exactly one of
    ``created`` / ``updated`` / ``skipped`` / ``failed``.
    """

    btc_total: int = 0
    btc_processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    resolution_success: int = 0
    resolution_failure: int = 0
    valid: int = 0
    invalid: int = 0

    def incremented(self, **deltas: int) -> Counts:
        """Return a copy with the named counters increased by *deltas*."""
        return replace(self, **{k: getattr(self, k) + v for k, v in deltas.items()})

    def __add__(self, other: Counts) -> Counts:
        return Counts(
            **{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)}
        )

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {
            "btcEvents": {"total": self.btc_total, "processed": self.btc_processed},
            "ttEvents": {
                "created": self.created,
                "updated": self.updated,
                "skipped": self.skipped,
                "failed": self.failed,
            },
            "entityResolution": {
                "success": self.resolution_success,
                "failure": self.resolution_failure,
            },
            "validation": {"valid": self.valid, "invalid": self.invalid},
        }


# ---------------------------------------------------------------------------
# DateResult
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FailedEvent:
    """A BTC event that did not make it into TT, with the reason."""

    btc_id: str
    title: str
    stage: str
    reason: str
    details: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "btcId": self.btc_id,
            "title": self.title,
            "stage": self.stage,
            "reason": self.reason,
            "details": list(self.details),
        }


@dataclass(frozen=True)
class ProcessedEvent:
    """A BTC event that reached the mutation step."""

    btc_id: str
    title: str
    action: str
    tt_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"btcId": self.btc_id, "title": self.title, "action": self.action, "ttId": self.tt_id}


@dataclass(frozen=True)
class DateResult:
    """Outcome of importing one calendar date.

    Attributes:
        date: The ``YYYY-MM-DD`` date.
        counts: Counters for this date.
        duration: Wall-clock seconds spent on the date.
        dry_run: Whether writes were suppressed.
        error: Set iff the date hit an unrecoverable fault.
        processed_events: Events that reached the mutation step.
        failed_events: Events dropped at resolution, validation or write.
        resolution_logs: Every organizer and venue resolution, in order.
    """

    date: str
    counts: Counts = field(default_factory=Counts)
    duration: float = 0.0
    dry_run: bool = True
    error: str | None = None
    processed_events: tuple[ProcessedEvent, ...] = ()
    failed_events: tuple[FailedEvent, ...] = ()
    resolution_logs: tuple[ResolutionLog, ...] = ()

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"date": self.date, **self.counts.to_dict()}
        data["duration"] = round(self.duration, 3)
        data["dryRun"] = self.dry_run
        data["error"] = self.error
        return data


# ---------------------------------------------------------------------------
# Assessment
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Assessment:
    """Go/no-go verdict computed from run totals.

    Attributes:
        entity_resolution_rate: Resolved organizers over all events.
        validation_rate: Valid records over validated records.
        overall_success_rate: Created records over all BTC events.
        thresholds: ``{"minimumResolutionRate", ...}`` used.
        can_proceed: ``True`` iff every rate meets its threshold.
        recommendations: One remediation line per failing metric.
    """

    entity_resolution_rate: float
    validation_rate: float
    overall_success_rate: float
    thresholds: dict[str, float]
    can_proceed: bool
    recommendations: tuple[str, ...] = ()

    @property
    def verdict(self) -> str:
        return "GO" if self.can_proceed else "NO-GO"

    def to_dict(self) -> dict[str, Any]:
        return {
            "metrics": {
                "entityResolutionRate": self.entity_resolution_rate,
                "validationRate": self.validation_rate,
                "overallSuccessRate": self.overall_success_rate,
            },
            "thresholds": dict(self.thresholds),
            "canProceed": self.can_proceed,
            "verdict": self.verdict,
            "recommendations": list(self.recommendations),
        }


# ---------------------------------------------------------------------------
# ImportRun
# ---------------------------------------------------------------------------


@dataclass
class ImportRun:
    """Accumulates :class:`DateResult` objects for one batch.

    Owned by a single orchestrator.  After :meth:`finalize` the run is
    read-only: further :meth:`add_date` or :meth:`finalize` calls raise
    ``RuntimeError``.
    """

    start: str
    end: str
    dry_run: bool = True
    dates: list[DateResult] = field(default_factory=list)
    stopped_early: bool = False
    assessment: Assessment | None = None
    duration: float = 0.0
    report_file: str | None = None
    assessment_file: str | None = None
    _finalized: bool = field(default=False, repr=False)

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def totals(self) -> Counts:
        total = Counts()
        for result in self.dates:
            total = total + result.counts
        return total

    @property
    def failed_dates(self) -> list[str]:
        return [r.date for r in self.dates if r.failed]

    @property
    def resolution_logs(self) -> list[ResolutionLog]:
        return [log for r in self.dates for log in r.resolution_logs]

    def add_date(self, result: DateResult) -> None:
        if self._finalized:
            raise RuntimeError("ImportRun is finalized; no more dates can be added")
        self.dates.append(result)

    def finalize(self, assessment: Assessment, duration: float) -> None:
        if self._finalized:
            raise RuntimeError("ImportRun is already finalized")
        self.assessment = assessment
        self.duration = duration
        self._finalized = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "dateRange": {"start": self.start, "end": self.end},
            "dryRun": self.dry_run,
            "dates": [r.to_dict() for r in self.dates],
            **self.totals.to_dict(),
            "failedDates": self.failed_dates,
            "stoppedEarly": self.stopped_early,
            "assessment": self.assessment.to_dict() if self.assessment else None,
            "assessmentFile": self.assessment_file,
            "duration": round(self.duration, 3),
        }
