"""Entry point for ``python -m btc_import``.

Subcommands:
    import   -- Import BTC events for a date or date range.
    cleanup  -- Back up, then delete, imported TT records.
    restore  -- Re-create TT records from a cleanup backup file.

Every command defaults to dry-run unless ``DRY_RUN=false`` or ``--live``
is given.  Live runs ask for a typed confirmation phrase unless
``--confirm`` is passed.

Exit codes:
    0   -- Completed (a NO-GO verdict or a declined confirmation included).
    1   -- Configuration error or fatal failure (bad date, missing token,
           no backend reachable, corrupt backup), or an import in which
           at least one date failed.  Per-event failures alone exit 0.
    2   -- Argument parsing error (handled by argparse).
    130 -- Interrupted at the confirmation prompt.
"""

from __future__ import annotations

import argparse
import signal
import sys
from collections.abc import Callable
from datetime import date
from pathlib import Path

from btc_import.cleanup import EventDateCriterion, TempOrganizerCriterion, TempUserCriterion
from btc_import.config import (
    ConfigError,
    Settings,
    Thresholds,
    default_target_date,
    load_settings,
    parse_date,
)
from btc_import.exceptions import ReconciliationError
from btc_import.log import setup_logging
from btc_import.pipeline import run_cleanup, run_import, run_restore
from btc_import.report import print_cleanup_result, print_import_run

_CONFIRM_PHRASE = "CONFIRM"
_RESTORE_PHRASE = "RESTORE"
_EXIT_INTERRUPTED = 130


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_common(parser: argparse.ArgumentParser) -> None:
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run",
        dest="mode",
        action="store_const",
        const="dry-run",
        help="Read and report only; never write to TT (default unless DRY_RUN=false).",
    )
    mode.add_argument(
        "--live",
        dest="mode",
        action="store_const",
        const="live",
        help="Perform TT writes.",
    )
    parser.add_argument(
        "--confirm",
        action="store_true",
        default=False,
        help="Skip the interactive confirmation prompt for live runs.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug-level logging.",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write log records to this file.",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="btc-import",
        description="Import BTC calendar events into TT, with backup-before-delete cleanup.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- "import" subcommand ------------------------------------------
    import_parser = subparsers.add_parser("import", help="Import BTC events into TT.")
    import_parser.add_argument("--date", help="Single date to import (YYYY-MM-DD).")
    import_parser.add_argument("--start", help="First date of the range (YYYY-MM-DD).")
    import_parser.add_argument("--end", help="Last date of the range (YYYY-MM-DD).")
    import_parser.add_argument(
        "--update-existing",
        action="store_true",
        default=False,
        help="Update events already in TT instead of skipping them.",
    )
    import_parser.add_argument(
        "--use-default-organizer",
        action="store_true",
        default=False,
        help="Fall back to the DEFAULT organizer when no organizer matches.",
    )
    import_parser.add_argument(
        "--use-placeholder-venue",
        action="store_true",
        default=False,
        help="Fall back to the NotFound venue when no venue matches.",
    )
    for flag, help_text in (
        ("--min-resolution-rate", "Go/no-go threshold for entity resolution."),
        ("--min-validation-rate", "Go/no-go threshold for validation."),
        ("--min-overall-rate", "Go/no-go threshold for overall success."),
    ):
        import_parser.add_argument(flag, type=float, default=None, help=help_text)
    _add_common(import_parser)

    # --- "cleanup" subcommand -----------------------------------------
    cleanup_parser = subparsers.add_parser("cleanup", help="Back up, then delete, TT records.")
    target = cleanup_parser.add_mutually_exclusive_group()
    target.add_argument("--date", help="Delete TT events on this date (YYYY-MM-DD).")
    target.add_argument(
        "--temp-organizers",
        action="store_true",
        help="Delete organizers with temporary Firebase IDs.",
    )
    target.add_argument(
        "--temp-users",
        action="store_true",
        help="Delete user logins with temporary Firebase IDs.",
    )
    cleanup_parser.add_argument(
        "--include-btc-organizers",
        action="store_true",
        default=False,
        help="With --temp-organizers, also delete organizers that carry a btcNiceName.",
    )
    _add_common(cleanup_parser)

    # --- "restore" subcommand -----------------------------------------
    restore_parser = subparsers.add_parser("restore", help="Re-create records from a backup.")
    restore_parser.add_argument("backup_file", type=Path, help="Backup file written by cleanup.")
    restore_parser.add_argument(
        "--kind",
        choices=("events", "organizers", "users"),
        default=None,
        help="Record kind (inferred from the file name by default).",
    )
    _add_common(restore_parser)

    return parser


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_dry_run(args: argparse.Namespace, settings: Settings) -> bool:
    if args.mode == "live":
        return False
    if args.mode == "dry-run":
        return True
    return settings.dry_run


def _confirm(message: str, phrase: str, input_fn: Callable[[str], str]) -> bool:
    """Ask the operator to type *phrase*; ``True`` only on an exact match."""
    print(message)
    answer = input_fn(f'Type "{phrase}" to proceed: ')
    return answer.strip() == phrase


def _gate(
    args: argparse.Namespace,
    dry_run: bool,
    message: str,
    phrase: str,
    input_fn: Callable[[str], str],
) -> int | None:
    """Run the confirmation step; returns an exit code to stop, else ``None``."""
    if dry_run or args.confirm:
        return None
    try:
        if _confirm(message, phrase, input_fn):
            return None
    except (EOFError, KeyboardInterrupt):
        print("\nCancelled.", file=sys.stderr)
        return _EXIT_INTERRUPTED
    print("Confirmation phrase not entered. Operation cancelled.")
    return 0


def _import_range(args: argparse.Namespace, settings: Settings) -> tuple[date, date]:
    if args.date and (args.start or args.end):
        raise ConfigError("Use either --date or --start/--end, not both")
    if args.date:
        day = parse_date(args.date, "--date")
        return day, day
    start = parse_date(args.start, "--start") if args.start else settings.start_date
    end = parse_date(args.end, "--end") if args.end else settings.end_date
    start = start or end or default_target_date()
    return start, end or start


def _thresholds(args: argparse.Namespace, settings: Settings) -> Thresholds:
    base = settings.thresholds
    values = {
        "minimum_resolution_rate": args.min_resolution_rate,
        "minimum_validation_rate": args.min_validation_rate,
        "minimum_overall_rate": args.min_overall_rate,
    }
    for name, value in values.items():
        if value is not None and not 0.0 <= value <= 1.0:
            raise ConfigError(f"{name} must be between 0 and 1, got {value}")
    return Thresholds(
        **{name: value if value is not None else getattr(base, name) for name, value in values.items()}
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _handle_import(
    args: argparse.Namespace, settings: Settings, input_fn: Callable[[str], str]
) -> int:
    start, end = _import_range(args, settings)
    thresholds = _thresholds(args, settings)
    dry_run = _is_dry_run(args, settings)

    stop = _gate(
        args,
        dry_run,
        f"LIVE import of BTC events {start.isoformat()}..{end.isoformat()} into TT "
        f"(app {settings.app_id}).",
        _CONFIRM_PHRASE,
        input_fn,
    )
    if stop is not None:
        return stop

    previous_handler = signal.getsignal(signal.SIGINT)

    def _wire_stop(orchestrator) -> None:
        signal.signal(signal.SIGINT, lambda *_: orchestrator.request_stop())

    try:
        run = run_import(
            settings,
            start,
            end,
            dry_run=dry_run,
            update_existing=args.update_existing,
            use_default_organizer=args.use_default_organizer,
            use_placeholder_venue=args.use_placeholder_venue,
            thresholds=thresholds,
            orchestrator_hook=_wire_stop,
        )
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print_import_run(run)
    # A date that could not be imported at all is a failed run.
    return 1 if run.failed_dates else 0


def _handle_cleanup(
    args: argparse.Namespace, settings: Settings, input_fn: Callable[[str], str]
) -> int:
    if args.temp_organizers:
        criterion = TempOrganizerCriterion(include_btc_imported=args.include_btc_organizers)
    elif args.temp_users:
        criterion = TempUserCriterion()
    else:
        if args.date:
            day = parse_date(args.date, "--date")
        elif settings.start_date is not None:
            day = settings.start_date
        else:
            raise ConfigError("Missing required environment variables: TARGET_DATE")
        criterion = EventDateCriterion(day)

    dry_run = _is_dry_run(args, settings)
    stop = _gate(
        args,
        dry_run,
        f"This will DELETE all {criterion.description} (app {settings.app_id}) "
        "after writing a backup.",
        _CONFIRM_PHRASE,
        input_fn,
    )
    if stop is not None:
        return stop

    print_cleanup_result(run_cleanup(settings, criterion, dry_run))
    return 0


def _handle_restore(
    args: argparse.Namespace, settings: Settings, input_fn: Callable[[str], str]
) -> int:
    dry_run = _is_dry_run(args, settings)
    stop = _gate(
        args,
        dry_run,
        f"This will RE-CREATE every record in {args.backup_file}.",
        _RESTORE_PHRASE,
        input_fn,
    )
    if stop is not None:
        return stop

    print_cleanup_result(run_restore(settings, args.backup_file, dry_run, args.kind))
    return 0


_HANDLERS = {
    "import": _handle_import,
    "cleanup": _handle_cleanup,
    "restore": _handle_restore,
}


def main(argv: list[str] | None = None, input_fn: Callable[[str], str] = input) -> int:
    """Run the btc-import CLI.

    Args:
        argv: Command-line arguments.  Defaults to ``sys.argv[1:]``.
        input_fn: Prompt function for confirmations; injectable for tests.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    try:
        settings = load_settings()
        log_level = "DEBUG" if args.verbose else settings.log_level
        setup_logging(log_level, log_file=args.log_file)
        return _HANDLERS[args.command](args, settings, input_fn)
    except (ConfigError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except ReconciliationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
