"""Backup-before-delete cleanup of imported TT records, and restore.

:class:`BackupCleanupFacility` offers two operations:

**cleanup(criterion)**
    1. Fetch the records matching the criterion, falling back across the
       primary API, secondary API and direct store.
    2. Write them to ``backup-{kind}-{label}-{timestamp}.json`` (temp file,
       fsync, atomic rename), then read the file back and verify it.
    3. In dry-run mode, stop here.
    4. Otherwise delete each record individually.  A record that is
       already gone counts as deleted; any other per-record failure is
       counted and the loop continues.

**restore(backup_file)**
    Read a backup, strip identity fields (``_id``, ``__v``, ``id``) from
    every item and re-create it through the primary API.  A backup file
    that cannot be read or parsed aborts the restore before any write;
    per-item failures are counted.

No record is ever deleted unless its backup is verified on disk.
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from btc_import.clients.exceptions import ApiConflictError, ApiError
from btc_import.clients.tt import record_id
from btc_import.exceptions import BackupIntegrityError
from btc_import.fallback import DestinationAccess
from btc_import.models.cleanup import (
    BackupRecord,
    CleanupResult,
    ItemFailure,
    RestoreResult,
)
from btc_import.report import write_json

logger = logging.getLogger(__name__)

IDENTITY_FIELDS = ("_id", "__v", "id")

_TEMP_ID_PREFIXES = ("temp_", "temp-", "fake_firebase_")
_TEMP_ID_MARKERS = ("temp", "fake")
_KINDS = ("events", "organizers", "users")

# ---------------------------------------------------------------------------
# Criteria
# ---------------------------------------------------------------------------


class CleanupCriterion(Protocol):
    """Selects the records a cleanup removes."""

    kind: str

    @property
    def label(self) -> str: ...

    @property
    def description(self) -> str: ...

    def filters(self) -> dict[str, str]: ...

    def matches(self, record: dict[str, Any]) -> bool: ...


def is_temporary_firebase_id(value: Any) -> bool:
    """Whether a ``firebaseUserId`` looks like a placeholder account."""
    text = str(value or "").strip().lower()
    if not text:
        return False
    return text.startswith(_TEMP_ID_PREFIXES) or any(m in text for m in _TEMP_ID_MARKERS)


@dataclass(frozen=True)
class EventDateCriterion:
    """All TT events starting on one date."""

    day: date
    kind: str = "events"

    @property
    def label(self) -> str:
        return self.day.isoformat()

    @property
    def description(self) -> str:
        return f"events on {self.day.isoformat()}"

    def filters(self) -> dict[str, str]:
        iso = self.day.isoformat()
        return {"start": f"{iso}T00:00:00.000Z", "end": f"{iso}T23:59:59.999Z"}

    def matches(self, record: dict[str, Any]) -> bool:
        return str(record.get("startDate", "")).startswith(self.day.isoformat())


@dataclass(frozen=True)
class TempOrganizerCriterion:
    """Organizers with placeholder Firebase IDs, optionally plus BTC imports."""

    include_btc_imported: bool = False
    kind: str = "organizers"

    @property
    def label(self) -> str:
        return "temp-and-btc" if self.include_btc_imported else "temp"

    @property
    def description(self) -> str:
        suffix = " or carrying a btcNiceName" if self.include_btc_imported else ""
        return f"organizers with temporary firebaseUserId{suffix}"

    def filters(self) -> dict[str, str]:
        return {}

    def matches(self, record: dict[str, Any]) -> bool:
        if is_temporary_firebase_id(record.get("firebaseUserId")):
            return True
        return self.include_btc_imported and bool(str(record.get("btcNiceName") or "").strip())


@dataclass(frozen=True)
class TempUserCriterion:
    """User logins with placeholder Firebase IDs."""

    kind: str = "users"

    @property
    def label(self) -> str:
        return "temp"

    @property
    def description(self) -> str:
        return "user logins with temporary firebaseUserId"

    def filters(self) -> dict[str, str]:
        return {}

    def matches(self, record: dict[str, Any]) -> bool:
        return is_temporary_firebase_id(record.get("firebaseUserId"))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _record_label(record: dict[str, Any]) -> str:
    for key in ("title", "fullName", "name", "email", "firebaseUserId"):
        if record.get(key):
            return str(record[key])
    return record_id(record) or "?"


def strip_identity(record: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *record* without identity/version fields."""
    return {k: v for k, v in record.items() if k not in IDENTITY_FIELDS}


def filesystem_timestamp(moment: datetime) -> str:
    """ISO 8601 timestamp with ``:`` and ``.`` replaced by ``-``."""
    iso = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return iso.replace("+00:00", "Z").replace(":", "-").replace(".", "-")


def kind_from_backup_name(path: Path) -> str | None:
    """Infer the record kind from a ``backup-{kind}-...`` file name."""
    parts = path.name.split("-")
    if len(parts) > 1 and parts[0] == "backup" and parts[1] in _KINDS:
        return parts[1]
    return None


def load_backup(path: Path) -> list[dict[str, Any]]:
    """Read and validate a backup file.

    Raises:
        BackupIntegrityError: If the file is missing, unreadable, not JSON,
            or not an array of objects.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BackupIntegrityError(f"Cannot read backup {path}: {exc}", path=str(path)) from exc
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise BackupIntegrityError(
            f"Backup {path} is not a JSON array of records", path=str(path)
        )
    return data


# ---------------------------------------------------------------------------
# Facility
# ---------------------------------------------------------------------------


class BackupCleanupFacility:
    """Destructive cleanup guarded by a verified backup, plus restore.

    Args:
        access: TT access chains.
        output_dir: Directory for backups and result files.
        dry_run: Suppress every delete and create when ``True``.
        mutation_delay: Seconds to pause between destructive calls.
        sleep: Sleep function; injectable for tests.
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        access: DestinationAccess,
        output_dir: Path,
        dry_run: bool = True,
        mutation_delay: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._access = access
        self._output_dir = Path(output_dir)
        self.dry_run = dry_run
        self._mutation_delay = mutation_delay
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def fetch(self, criterion: CleanupCriterion) -> tuple[list[dict[str, Any]], str | None]:
        """Fetch the records matching *criterion*.

        Returns:
            ``(records, access_method)``; the method is ``None`` when every
            backend answered but none had matching records.

        Raises:
            AccessError: If every backend failed.
        """
        result = self._access.find(criterion.kind, criterion.filters(), require_non_empty=True)
        if result.exhausted_empty:
            return [], None
        records = result.raise_for_failure()
        matching = [r for r in records if criterion.matches(r)]
        logger.info(
            "Found %d %s matching %s (via %s)",
            len(matching),
            criterion.kind,
            criterion.description,
            result.method,
        )
        return matching, result.method

    def cleanup(self, criterion: CleanupCriterion) -> CleanupResult:
        """Back up, then delete, every record matching *criterion*.

        Args:
            criterion: What to remove.

        Returns:
            Counters for the operation.

        Raises:
            AccessError: If the records cannot be fetched from any backend.
            BackupIntegrityError: If the backup cannot be written and
                verified; nothing is deleted in that case.
        """
        started = time.monotonic()
        records, method = self.fetch(criterion)
        result = CleanupResult(
            kind=criterion.kind,
            criterion=criterion.description,
            dry_run=self.dry_run,
            total=len(records),
            access_method=method,
        )

        if not records:
            logger.info("Nothing to clean up for %s", criterion.description)
            result.duration = time.monotonic() - started
            return self._write_cleanup_result(criterion, result)

        backup = self.write_backup(criterion.kind, criterion.label, criterion.description, records)
        result.backup_file = backup.file_path

        if self.dry_run:
            logger.info("[DRY RUN] Would delete %d %s", len(records), criterion.kind)
            result.duration = time.monotonic() - started
            return self._write_cleanup_result(criterion, result)

        for index, record in enumerate(records):
            identifier = record_id(record)
            label = _record_label(record)
            if not identifier:
                result.failed += 1
                result.failures.append(ItemFailure("", label, "record has no _id"))
                continue

            if index and self._mutation_delay > 0:
                self._sleep(self._mutation_delay)

            outcome = self._access.delete(criterion.kind, identifier)
            if outcome.success:
                result.deleted += 1
            elif outcome.terminal_error is not None:
                result.deleted += 1
                result.already_gone += 1
                logger.info("%s %s was already gone", criterion.kind, identifier)
            else:
                last = outcome.attempts[-1] if outcome.attempts else None
                error = "; ".join(f"{a.method}: {a.error}" for a in outcome.attempts)
                result.failed += 1
                result.failures.append(
                    ItemFailure(identifier, label, error, last.status if last else None)
                )
                logger.error("Failed to delete %s %s: %s", criterion.kind, identifier, error)

        result.duration = time.monotonic() - started
        logger.info(
            "Cleanup of %s: %d deleted (%d already gone), %d failed",
            criterion.description,
            result.deleted,
            result.already_gone,
            result.failed,
        )
        return self._write_cleanup_result(criterion, result)

    def write_backup(
        self,
        kind: str,
        label: str,
        criterion: str,
        items: list[dict[str, Any]],
    ) -> BackupRecord:
        """Durably write *items* and verify the file before returning.

        Raises:
            BackupIntegrityError: If the write fails or the file read back
                does not hold exactly *items*.
        """
        moment = self._clock()
        path = self._output_dir / f"backup-{kind}-{label}-{filesystem_timestamp(moment)}.json"
        tmp_path = path.with_name(path.name + ".tmp")

        try:
            self._output_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as fh:
                json.dump(items, fh, indent=2, default=str)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:
            raise BackupIntegrityError(f"Cannot write backup {path}: {exc}", path=str(path)) from exc

        written = load_backup(path)
        if [record_id(r) for r in written] != [record_id(r) for r in items]:
            raise BackupIntegrityError(
                f"Backup {path} does not match the fetched records", path=str(path)
            )

        logger.info("Backed up %d %s to %s", len(items), kind, path)
        return BackupRecord(
            kind=kind,
            criterion=criterion,
            timestamp=moment.isoformat(),
            items=tuple(written),
            file_path=str(path),
        )

    def _write_cleanup_result(self, criterion: CleanupCriterion, result: CleanupResult) -> CleanupResult:
        write_json(
            self._output_dir / f"cleanup-results-{criterion.kind}-{criterion.label}.json",
            result.to_dict(),
        )
        return result

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore(self, backup_file: Path, kind: str | None = None) -> RestoreResult:
        """Re-create every record saved in *backup_file*.

        Args:
            backup_file: A file written by :meth:`write_backup`.
            kind: Record kind; inferred from the file name when omitted.

        Returns:
            Counters for the operation.

        Raises:
            BackupIntegrityError: If the file cannot be read or parsed, or
                its kind cannot be determined.  Nothing is restored.
        """
        started = time.monotonic()
        path = Path(backup_file)
        resolved_kind = kind or kind_from_backup_name(path)
        if resolved_kind not in _KINDS:
            raise BackupIntegrityError(
                f"Cannot tell the record kind of {path.name}; pass it explicitly",
                path=str(path),
            )

        items = load_backup(path)
        result = RestoreResult(
            kind=resolved_kind, backup_file=str(path), dry_run=self.dry_run, total=len(items)
        )
        logger.info("Restoring %d %s from %s", len(items), resolved_kind, path)

        for index, item in enumerate(items):
            payload = strip_identity(item)
            label = _record_label(item)

            if self.dry_run:
                result.restored += 1
                continue

            if index and self._mutation_delay > 0:
                self._sleep(self._mutation_delay)

            try:
                self._access.create(resolved_kind, payload)
            except ApiConflictError as exc:
                result.failed += 1
                result.failures.append(
                    ItemFailure(record_id(item), label, f"already exists: {exc}", exc.status_code)
                )
                continue
            except (ApiError, ValueError) as exc:
                result.failed += 1
                result.failures.append(
                    ItemFailure(
                        record_id(item), label, str(exc), getattr(exc, "status_code", None)
                    )
                )
                logger.error("Failed to restore %s %r: %s", resolved_kind, label, exc)
                continue
            result.restored += 1

        result.duration = time.monotonic() - started
        logger.info(
            "Restore from %s: %d restored, %d failed", path.name, result.restored, result.failed
        )
        write_json(
            self._output_dir / f"restore-results-{filesystem_timestamp(self._clock())}.json",
            result.to_dict(),
        )
        return result
