"""Result types for the backup-and-restore cleanup facility."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Report key for the total count, per record kind.
_TOTAL_KEYS = {
    "events": "totalEvents",
    "organizers": "totalOrganizers",
    "users": "totalUsers",
}


@dataclass(frozen=True)
class BackupRecord:
    """A backup file that has been written and verified on disk.

    Attributes:
        kind: ``"events"``, ``"organizers"`` or ``"users"``.
        criterion: Human-readable description of what was selected.
        timestamp: ISO 8601 time the backup was taken.
        items: The raw record snapshots, exactly as fetched.
        file_path: Where the JSON array was written.
    """

    kind: str
    criterion: str
    timestamp: str
    items: tuple[dict[str, Any], ...]
    file_path: str

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class ItemFailure:
    """A single record that could not be deleted or restored."""

    record_id: str
    label: str
    error: str
    status: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.record_id, "label": self.label, "error": self.error, "status": self.status}


@dataclass
class CleanupResult:
    """Counters for one cleanup invocation."""

    kind: str
    criterion: str
    dry_run: bool
    total: int = 0
    deleted: int = 0
    already_gone: int = 0
    failed: int = 0
    backup_file: str | None = None
    access_method: str | None = None
    duration: float = 0.0
    failures: list[ItemFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "criterion": self.criterion,
            "dryRun": self.dry_run,
            _TOTAL_KEYS.get(self.kind, "total"): self.total,
            "deleted": self.deleted,
            "alreadyGone": self.already_gone,
            "failed": self.failed,
            "backupFile": self.backup_file,
            "accessMethod": self.access_method,
            "duration": round(self.duration, 3),
            "failures": [f.to_dict() for f in self.failures],
        }


@dataclass
class RestoreResult:
    """Counters for one restore invocation."""

    kind: str
    backup_file: str
    dry_run: bool
    total: int = 0
    restored: int = 0
    failed: int = 0
    duration: float = 0.0
    failures: list[ItemFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "backupFile": self.backup_file,
            "dryRun": self.dry_run,
            _TOTAL_KEYS.get(self.kind, "total"): self.total,
            "restored": self.restored,
            "failed": self.failed,
            "duration": round(self.duration, 3),
            "failures": [f.to_dict() for f in self.failures],
        }
