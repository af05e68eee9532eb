"""Multi-strategy entity resolution for BTC organizers and venues.

:class:`EntityResolver` maps a loosely identified BTC reference (a name,
maybe an email) onto exactly one TT record.  Strategies run in a fixed
priority order and the resolver stops at the first one that yields a
single unambiguous candidate.  Zero candidates or several candidates are
ordinary, non-fatal attempt failures; so is a lookup that fails on every
backend.  Every strategy is recorded in the :class:`ResolutionLog`, even
those skipped because the source had no value to look up, so two
resolutions of the same reference against the same TT state produce the
same attempt list.

Default organizer order::

    btc_nice_name -> exact_name -> fuzzy_name -> email [-> default_organizer]

Default venue order::

    exact_name -> fuzzy_name [-> not_found_venue]

Nothing is cached between calls; resolution depends only on the source
reference and the current TT state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from rapidfuzz.fuzz import token_set_ratio

from btc_import.clients.tt import record_id
from btc_import.exceptions import AccessError
from btc_import.fallback import DestinationAccess
from btc_import.models.resolution import (
    NOT_APPLICABLE,
    ResolutionAttempt,
    ResolutionLog,
    ResolvedEntity,
)
from btc_import.models.source import BtcOrganizer, BtcVenue

logger = logging.getLogger(__name__)

DEFAULT_FUZZY_THRESHOLD = 90.0
DEFAULT_FUZZY_MARGIN = 5.0

_ORGANIZER_NAME_FIELDS = ("fullName", "name", "shortName")
_VENUE_NAME_FIELDS = ("name",)
_EMAIL_FIELDS = ("email", "publicContactEmail", "contactEmail")

NO_QUERY = "no query value"

# ---------------------------------------------------------------------------
# Source references and strategies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceRef:
    """The BTC side of a resolution task."""

    id: str | None
    name: str
    email: str = ""

    @classmethod
    def from_organizer(cls, organizer: BtcOrganizer | None) -> SourceRef:
        if organizer is None:
            return cls(id=None, name="")
        return cls(
            id=str(organizer.id) if organizer.id is not None else None,
            name=organizer.name.strip(),
            email=organizer.email.strip(),
        )

    @classmethod
    def from_venue(cls, venue: BtcVenue | None) -> SourceRef:
        if venue is None:
            return cls(id=None, name="")
        return cls(id=str(venue.id) if venue.id is not None else None, name=venue.name.strip())

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class Strategy:
    """A named resolution strategy.

    Attributes:
        name: Strategy name recorded in attempts.
        query: Extracts the lookup input from the source; ``""`` means the
            strategy has nothing to look up.
        candidates: Returns the TT records matching a query.  May raise
            :class:`~btc_import.exceptions.AccessError`.
    """

    name: str
    query: Callable[[SourceRef], str]
    candidates: Callable[[str], list[dict[str, Any]]]


def _norm(value: Any) -> str:
    return " ".join(str(value or "").split()).casefold()


def _display_name(record: dict[str, Any], name_fields: Sequence[str]) -> str:
    for field_name in name_fields:
        if record.get(field_name):
            return str(record[field_name])
    return ""


# ---------------------------------------------------------------------------
# Candidate finders
# ---------------------------------------------------------------------------


def _field_match(
    access: DestinationAccess,
    kind: str,
    api_filter: str,
    fields: Sequence[str],
) -> Callable[[str], list[dict[str, Any]]]:
    """Server-side filter on *api_filter*, then exact re-check on *fields*."""

    def find(query: str) -> list[dict[str, Any]]:
        records = access.find(kind, {api_filter: query}).raise_for_failure()
        wanted = _norm(query)
        return [r for r in records if any(_norm(r.get(f)) == wanted for f in fields)]

    return find


def _listing_match(
    access: DestinationAccess,
    kind: str,
    fields: Sequence[str],
) -> Callable[[str], list[dict[str, Any]]]:
    """Full tenant listing, exact match on *fields* client-side."""

    def find(query: str) -> list[dict[str, Any]]:
        records = access.find(kind).raise_for_failure()
        wanted = _norm(query)
        return [r for r in records if any(_norm(r.get(f)) == wanted for f in fields)]

    return find


def fuzzy_candidates(
    query: str,
    records: Sequence[dict[str, Any]],
    name_fields: Sequence[str],
    threshold: float = DEFAULT_FUZZY_THRESHOLD,
    margin: float = DEFAULT_FUZZY_MARGIN,
) -> list[dict[str, Any]]:
    """Pick fuzzy name matches for *query*.

    Records scoring at least *threshold* (``token_set_ratio``, 0-100) are
    candidates.  When several qualify, the best one wins only if it leads
    the runner-up by at least *margin* points; otherwise all qualifying
    records are returned and the caller treats them as ambiguous.

    Returns:
        Candidate records, best first.
    """
    wanted = _norm(query)
    scored: list[tuple[float, int, dict[str, Any]]] = []
    for index, record in enumerate(records):
        name = _norm(_display_name(record, name_fields))
        if not name:
            continue
        score = token_set_ratio(wanted, name)
        if score >= threshold:
            scored.append((score, index, record))

    scored.sort(key=lambda item: (-item[0], item[1]))
    if len(scored) > 1 and scored[0][0] - scored[1][0] >= margin:
        return [scored[0][2]]
    return [record for _, _, record in scored]


def _fuzzy_match(
    access: DestinationAccess,
    kind: str,
    name_fields: Sequence[str],
    threshold: float,
    margin: float,
) -> Callable[[str], list[dict[str, Any]]]:
    def find(query: str) -> list[dict[str, Any]]:
        records = access.find(kind).raise_for_failure()
        return fuzzy_candidates(query, records, name_fields, threshold, margin)

    return find


# ---------------------------------------------------------------------------
# Strategy sets
# ---------------------------------------------------------------------------


def organizer_strategies(
    access: DestinationAccess,
    fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
    fuzzy_margin: float = DEFAULT_FUZZY_MARGIN,
    use_default_organizer: bool = False,
) -> list[Strategy]:
    """Build the organizer strategy chain in priority order."""
    strategies = [
        Strategy(
            "btc_nice_name",
            lambda src: src.name,
            _field_match(access, "organizers", "btcNiceName", ("btcNiceName",)),
        ),
        Strategy(
            "exact_name",
            lambda src: src.name,
            _field_match(access, "organizers", "name", _ORGANIZER_NAME_FIELDS),
        ),
        Strategy(
            "fuzzy_name",
            lambda src: src.name,
            _fuzzy_match(access, "organizers", _ORGANIZER_NAME_FIELDS, fuzzy_threshold, fuzzy_margin),
        ),
        Strategy(
            "email",
            lambda src: src.email,
            _listing_match(access, "organizers", _EMAIL_FIELDS),
        ),
    ]
    if use_default_organizer:
        strategies.append(
            Strategy(
                "default_organizer",
                lambda src: "DEFAULT",
                _field_match(access, "organizers", "shortName", ("shortName",)),
            )
        )
    return strategies


def venue_strategies(
    access: DestinationAccess,
    fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
    fuzzy_margin: float = DEFAULT_FUZZY_MARGIN,
    use_placeholder_venue: bool = False,
) -> list[Strategy]:
    """Build the venue strategy chain in priority order."""
    strategies = [
        Strategy(
            "exact_name",
            lambda src: src.name,
            _field_match(access, "venues", "name", _VENUE_NAME_FIELDS),
        ),
        Strategy(
            "fuzzy_name",
            lambda src: src.name,
            _fuzzy_match(access, "venues", _VENUE_NAME_FIELDS, fuzzy_threshold, fuzzy_margin),
        ),
    ]
    if use_placeholder_venue:
        strategies.append(
            Strategy(
                "not_found_venue",
                lambda src: "NotFound",
                _field_match(access, "venues", "name", _VENUE_NAME_FIELDS),
            )
        )
    return strategies


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class EntityResolver:
    """Resolves source references through an ordered strategy chain.

    Args:
        entity_type: ``"organizer"`` or ``"venue"``; recorded in logs.
        strategies: Strategies in priority order.
        name_fields: TT fields holding the display name of a record.
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        entity_type: str,
        strategies: Sequence[Strategy],
        name_fields: Sequence[str] = _ORGANIZER_NAME_FIELDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.entity_type = entity_type
        self._strategies = tuple(strategies)
        self._name_fields = tuple(name_fields)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def strategy_names(self) -> list[str]:
        return [s.name for s in self._strategies]

    def resolve(self, source: SourceRef) -> ResolutionLog:
        """Resolve *source* to a single TT record.

        Args:
            source: The BTC reference.

        Returns:
            A :class:`ResolutionLog` with one attempt per strategy tried,
            stopping after the first unambiguous match.
        """
        timestamp = self._clock().isoformat()
        attempts: list[ResolutionAttempt] = []

        for strategy in self._strategies:
            query = strategy.query(source).strip()
            if not query:
                attempts.append(ResolutionAttempt(strategy.name, "", False, error=NO_QUERY))
                continue

            try:
                candidates = strategy.candidates(query)
            except AccessError as exc:
                status = next((a.status for a in reversed(exc.attempts) if a.status), None)
                attempts.append(
                    ResolutionAttempt(
                        strategy.name, query, False, NOT_APPLICABLE, status=status, error=str(exc)
                    )
                )
                logger.warning(
                    "%s lookup %s failed for %r: %s", self.entity_type, strategy.name, query, exc
                )
                continue

            count = len(candidates)
            if count == 1:
                attempts.append(ResolutionAttempt(strategy.name, query, True, count))
                match = candidates[0]
                entity = ResolvedEntity(
                    id=record_id(match),
                    name=_display_name(match, self._name_fields) or source.name,
                    method=strategy.name,
                    record=match,
                )
                logger.debug(
                    "%s %r matched by %s -> %s", self.entity_type, source.name, strategy.name, entity.id
                )
                return ResolutionLog(
                    entity_type=self.entity_type,
                    source=source.to_dict(),
                    timestamp=timestamp,
                    attempts=tuple(attempts),
                    result=entity,
                )

            error = "no match" if count == 0 else f"ambiguous: {count} candidates"
            attempts.append(ResolutionAttempt(strategy.name, query, False, count, error=error))

        details = _error_details(attempts)
        logger.info(
            "Unresolved %s %r after %d attempt(s): %s",
            self.entity_type,
            source.name,
            len(attempts),
            details["message"],
        )
        return ResolutionLog(
            entity_type=self.entity_type,
            source=source.to_dict(),
            timestamp=timestamp,
            attempts=tuple(attempts),
            error_details=details,
        )


def _error_details(attempts: Sequence[ResolutionAttempt]) -> dict[str, str]:
    if not attempts:
        return {"type": "no_strategies", "message": "No resolution strategies configured"}
    last = attempts[-1]
    if last.result_count > 1:
        kind = "ambiguous"
    elif last.error in ("no match", NO_QUERY):
        kind = "no_match"
    else:
        kind = "lookup_error"
    return {"type": kind, "message": f"{last.method}: {last.error}"}
