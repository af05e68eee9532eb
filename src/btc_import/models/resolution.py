"""Entity-resolution audit records.

A :class:`ResolutionLog` is produced for every organizer and venue an
import touches.  It lists every strategy that was tried, in order, so an
operator can see *why* an organizer did not match (zero hits by nice name,
three ambiguous hits by fuzzy name...) instead of just *that* it did not.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ``result_count`` value for attempts where counting candidates does not apply.
NOT_APPLICABLE = -1


@dataclass(frozen=True)
class ResolutionAttempt:
    """One try of one resolution strategy.

    Attributes:
        method: Strategy name (``"btc_nice_name"``, ``"exact_name"``...).
        query: The lookup input used, or ``""`` when the source had none.
        success: ``True`` iff exactly one unambiguous candidate was found.
        result_count: Number of candidates, or ``-1`` if not applicable.
        status: HTTP status of a failed lookup, if any.
        error: Failure reason, ``None`` on success.
    """

    method: str
    query: str
    success: bool
    result_count: int = NOT_APPLICABLE
    status: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "query": self.query,
            "success": self.success,
            "resultCount": self.result_count,
            "status": self.status,
            "error": self.error,
        }


@dataclass(frozen=True)
class ResolvedEntity:
    """The destination entity a resolution settled on."""

    id: str
    name: str
    method: str
    record: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "method": self.method}


@dataclass(frozen=True)
class ResolutionLog:
    """Outcome of resolving one source reference.

    Attributes:
        entity_type: ``"organizer"`` or ``"venue"``.
        source: Identifying fields of the source reference
            (``id``, ``name``, ``email``).
        timestamp: ISO 8601 time the resolution started.
        attempts: Ordered attempts, one per strategy tried.
        result: The resolved entity, present iff ``success``.
        error_details: ``{"type", "message"}`` describing the last
            failure, present iff not ``success``.
    """

    entity_type: str
    source: dict[str, Any]
    timestamp: str
    attempts: tuple[ResolutionAttempt, ...] = ()
    result: ResolvedEntity | None = None
    error_details: dict[str, str] | None = None

    @property
    def success(self) -> bool:
        return self.result is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "entityType": self.entity_type,
            "source": dict(self.source),
            "timestamp": self.timestamp,
            "attempts": [a.to_dict() for a in self.attempts],
            "success": self.success,
        }
        if self.result is not None:
            data["result"] = self.result.to_dict()
        if self.error_details is not None:
            data["errorDetails"] = dict(self.error_details)
        return data
