"""Report files and console summaries for imports and cleanups.

JSON reports are written to the output directory with stable names so
dry-run and live reports for the same dates can be diffed.  Console
summaries are built as a list of lines and printed in one go; the
``format_*`` functions return the text, the ``print_*`` functions write it
to stdout.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

from btc_import.models.cleanup import CleanupResult, RestoreResult
from btc_import.models.run import ImportRun

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_BANNER_WIDTH = 60
_SEPARATOR = "=" * _BANNER_WIDTH


# ---------------------------------------------------------------------------
# JSON files
# ---------------------------------------------------------------------------


def run_label(start: str, end: str) -> str:
    """File-name label for a date range: ``start`` or ``start_to_end``."""
    return start if start == end else f"{start}_to_{end}"


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as indented JSON, creating parent directories.

    Returns:
        *path*, for chaining.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, default=str) + "\n", encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Import summary
# ---------------------------------------------------------------------------


def _pct(value: float) -> str:
    return f"{value * 100:.1f}%"


def format_import_run(run: ImportRun) -> str:
    """Render an :class:`ImportRun` as a console summary.

    Args:
        run: A finalized run.

    Returns:
        A multi-line string ready for console display.
    """
    totals = run.totals
    lines: list[str] = [
        _SEPARATOR,
        "  BTC IMPORT" + ("  [DRY RUN]" if run.dry_run else ""),
        _SEPARATOR,
        f"Dates:           {run.start} -> {run.end} ({len(run.dates)} processed)",
        "",
        "--- PER DATE ---",
    ]

    for result in run.dates:
        counts = result.counts
        status = f"ERROR ({result.error})" if result.failed else "ok"
        lines.append(
            f"  {result.date}  events={counts.btc_total:<3} created={counts.created:<3} "
            f"updated={counts.updated:<3} skipped={counts.skipped:<3} failed={counts.failed:<3} {status}"
        )

    lines.extend(
        [
            "",
            "--- TOTALS ---",
            f"BTC events:      {totals.btc_total} ({totals.btc_processed} processed)",
            f"TT events:       {totals.created} created, {totals.updated} updated, "
            f"{totals.skipped} skipped, {totals.failed} failed",
            f"Resolution:      {totals.resolution_success} resolved, "
            f"{totals.resolution_failure} unresolved",
            f"Validation:      {totals.valid} valid, {totals.invalid} invalid",
        ]
    )
    if run.failed_dates:
        lines.append(f"Failed dates:    {', '.join(run.failed_dates)}")
    if run.stopped_early:
        lines.append("Stopped early:   yes (partial report)")

    if run.assessment is not None:
        a = run.assessment
        lines.extend(
            [
                "",
                f"--- GO/NO-GO: {a.verdict} ---",
                f"Entity resolution rate: {_pct(a.entity_resolution_rate)}",
                f"Validation rate:        {_pct(a.validation_rate)}",
                f"Overall success rate:   {_pct(a.overall_success_rate)}",
            ]
        )
        for recommendation in a.recommendations:
            lines.append(f"  - {recommendation}")

    if run.report_file:
        lines.extend(["", f"Report:          {run.report_file}"])
    lines.append(f"Duration:        {run.duration:.1f}s")
    lines.append(_SEPARATOR)
    return "\n".join(lines)


def print_import_run(run: ImportRun) -> None:
    """Format and print an :class:`ImportRun` to stdout."""
    sys.stdout.write(format_import_run(run) + "\n")


# ---------------------------------------------------------------------------
# Cleanup / restore summaries
# ---------------------------------------------------------------------------


def format_cleanup_result(result: CleanupResult) -> str:
    """Render a :class:`CleanupResult` as a console summary."""
    lines = [
        _SEPARATOR,
        f"  CLEANUP: {result.kind}" + ("  [DRY RUN]" if result.dry_run else ""),
        _SEPARATOR,
        f"Criterion:       {result.criterion}",
        f"Matched:         {result.total}",
    ]
    if result.access_method:
        lines.append(f"Fetched via:     {result.access_method}")
    lines.append(f"Backup file:     {result.backup_file or '(none, nothing matched)'}")
    if result.dry_run:
        lines.append(f"Would delete:    {result.total}")
    else:
        lines.append(f"Deleted:         {result.deleted} ({result.already_gone} already gone)")
        lines.append(f"Failed:          {result.failed}")
        for failure in result.failures:
            lines.append(f"  - {failure.label} ({failure.record_id}): {failure.error}")
    lines.append(_SEPARATOR)
    return "\n".join(lines)


def format_restore_result(result: RestoreResult) -> str:
    """Render a :class:`RestoreResult` as a console summary."""
    label = "Would restore:" if result.dry_run else "Restored:"
    lines = [
        _SEPARATOR,
        f"  RESTORE: {result.kind}" + ("  [DRY RUN]" if result.dry_run else ""),
        _SEPARATOR,
        f"Backup file:     {result.backup_file}",
        f"Items:           {result.total}",
        f"{label:<17}{result.restored}",
        f"Failed:          {result.failed}",
    ]
    for failure in result.failures:
        lines.append(f"  - {failure.label}: {failure.error}")
    lines.append(_SEPARATOR)
    return "\n".join(lines)


def print_cleanup_result(result: CleanupResult | RestoreResult) -> None:
    """Print a cleanup or restore summary to stdout."""
    if isinstance(result, RestoreResult):
        text = format_restore_result(result)
    else:
        text = format_cleanup_result(result)
    sys.stdout.write(text + "\n")
