"""Date-range driver for BTC imports.

:class:`BatchOrchestrator` walks an inclusive date range in ascending
order, runs the :class:`~btc_import.runner.ImportRunner` once per day,
folds every :class:`DateResult` into one :class:`ImportRun`, and finalizes
the run:

1. compute the go/no-go :class:`Assessment`;
2. write per-date detail files (failed events, resolution logs);
3. write ``go-nogo-assessment-{label}.json``;
4. write the run report ``import-results-{label}.json``.

A date that fails is recorded and the batch moves on.  A stop requested
with :meth:`BatchOrchestrator.request_stop` takes effect between dates;
the partial run is still finalized and written.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from datetime import date, timedelta
from pathlib import Path

from btc_import.assessment import assess
from btc_import.config import ConfigError, Thresholds
from btc_import.models.run import DateResult, ImportRun
from btc_import.report import run_label, write_json
from btc_import.runner import ImportRunner

logger = logging.getLogger(__name__)


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every date from *start* to *end*, inclusive, ascending.

    Raises:
        ConfigError: If *end* is before *start*.
    """
    if end < start:
        raise ConfigError(
            f"Invalid date range: end date {end.isoformat()} is before "
            f"start date {start.isoformat()}"
        )
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


class BatchOrchestrator:
    """Runs an import over a date range and persists the run report.

    Args:
        runner: The per-date runner.
        output_dir: Directory for report files.
        thresholds: Go/no-go thresholds.
    """

    def __init__(
        self,
        runner: ImportRunner,
        output_dir: Path,
        thresholds: Thresholds | None = None,
    ) -> None:
        self._runner = runner
        self._output_dir = Path(output_dir)
        self._thresholds = thresholds or Thresholds()
        self._stop_requested = False

    def request_stop(self) -> None:
        """Ask the batch to stop after the date in progress."""
        logger.warning("Stop requested; finishing the current date")
        self._stop_requested = True

    def run(self, start: date, end: date) -> ImportRun:
        """Import every date in ``[start, end]``.

        The range is validated before any network call.

        Args:
            start: First date.
            end: Last date (inclusive).

        Returns:
            The finalized :class:`ImportRun`.

        Raises:
            ConfigError: If *end* is before *start*.
        """
        days = list(iter_dates(start, end))
        started = time.monotonic()
        run = ImportRun(start=start.isoformat(), end=end.isoformat(), dry_run=self._runner.dry_run)

        logger.info(
            "Importing %d date(s) %s..%s (%s)",
            len(days),
            run.start,
            run.end,
            "dry run" if run.dry_run else "LIVE",
        )

        for index, day in enumerate(days):
            if self._stop_requested:
                run.stopped_early = True
                logger.warning(
                    "Stopping early: %d of %d date(s) processed", index, len(days)
                )
                break
            result = self._runner.run_date(day)
            run.add_date(result)
            self._write_date_details(result)

        return self._finalize(run, time.monotonic() - started)

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def _finalize(self, run: ImportRun, duration: float) -> ImportRun:
        assessment = assess(run.totals, self._thresholds)
        run.finalize(assessment, duration)

        label = run_label(run.start, run.end)
        assessment_path = write_json(
            self._output_dir / f"go-nogo-assessment-{label}.json",
            {"dateRange": {"start": run.start, "end": run.end}, "dryRun": run.dry_run,
             **assessment.to_dict()},
        )
        run.assessment_file = str(assessment_path)

        report_path = self._output_dir / f"import-results-{label}.json"
        run.report_file = str(report_path)
        write_json(report_path, run.to_dict())

        logger.info(
            "Import %s: verdict %s, report %s",
            label,
            assessment.verdict,
            report_path,
        )
        return run

    def _write_date_details(self, result: DateResult) -> None:
        if result.failed_events:
            write_json(
                self._output_dir / f"failed-events-{result.date}.json",
                [e.to_dict() for e in result.failed_events],
            )
        if result.processed_events:
            write_json(
                self._output_dir / f"processed-events-{result.date}.json",
                [e.to_dict() for e in result.processed_events],
            )
        if result.resolution_logs:
            write_json(
                self._output_dir / f"resolution-logs-{result.date}.json",
                [log.to_dict() for log in result.resolution_logs],
            )
