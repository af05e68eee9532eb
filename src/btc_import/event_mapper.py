"""Map BTC events to TT event records and validate the result.

:func:`map_to_tt_event` assembles the TT payload from a
:class:`~btc_import.models.source.BtcEvent` plus its resolved organizer,
venue and categories.  Unresolved references simply leave their fields
empty; :func:`validate_tt_event` is what decides whether the record may be
written.

Imported events are flagged ``isDiscovered`` (not owner managed) and
expire one day after they end.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from btc_import.categories import CategoryMatch
from btc_import.models.resolution import ResolutionLog
from btc_import.models.source import BtcEvent

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: tuple[tuple[str, str], ...] = (
    ("appId", "App ID"),
    ("title", "Title"),
    ("startDate", "Start Date"),
    ("endDate", "End Date"),
    ("ownerOrganizerID", "Organizer ID"),
    ("ownerOrganizerName", "Organizer Name"),
    ("venueID", "Venue ID"),
    ("expiresAt", "Expiration Date"),
)

_DATE_FIELDS = ("startDate", "endDate", "expiresAt", "discoveredFirstDate", "discoveredLastDate")

# Venue fields copied onto the event for TT's geographic hierarchy.
_VENUE_GEO_FIELDS = (
    "masteredCityId",
    "masteredCityName",
    "masteredDivisionId",
    "masteredDivisionName",
    "masteredRegionId",
    "masteredRegionName",
)


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _venue_geography(venue: dict[str, Any]) -> dict[str, Any]:
    geo: dict[str, Any] = {f: venue[f] for f in _VENUE_GEO_FIELDS if venue.get(f)}
    location = venue.get("geolocation")
    if isinstance(location, dict) and location.get("coordinates"):
        geo["venueGeolocation"] = location
    elif venue.get("latitude") is not None and venue.get("longitude") is not None:
        geo["venueGeolocation"] = {
            "type": "Point",
            "coordinates": [venue["longitude"], venue["latitude"]],
        }
    return geo


def map_to_tt_event(
    event: BtcEvent,
    app_id: str,
    organizer: ResolutionLog,
    venue: ResolutionLog,
    categories: Sequence[CategoryMatch] = (),
    now: datetime | None = None,
) -> dict[str, Any]:
    """Convert a BTC event into a TT event payload.

    Args:
        event: The parsed BTC event.
        app_id: TT tenant identifier.
        organizer: Organizer resolution; its result fills the owner fields.
        venue: Venue resolution; its result fills venue and geo fields.
        categories: Up to two TT categories, in priority order.
        now: Discovery timestamp (defaults to the current UTC time).

    Returns:
        A ``dict`` ready for ``POST /events/post``.
    """
    discovered = _iso(now or datetime.now(timezone.utc))

    record: dict[str, Any] = {
        "appId": app_id,
        "title": event.title,
        "description": event.description,
        "startDate": _iso(event.start),
        "endDate": _iso(event.end),
        "allDay": event.all_day,
        "cost": event.cost,
        "ownerOrganizerID": organizer.result.id if organizer.result else None,
        "ownerOrganizerName": organizer.result.name if organizer.result else None,
        "venueID": venue.result.id if venue.result else None,
        "isDiscovered": True,
        "isOwnerManaged": False,
        "isActive": True,
        "isFeatured": False,
        "isCanceled": False,
        "discoveredFirstDate": discovered,
        "discoveredLastDate": discovered,
        "discoveredComments": f"Imported from BTC event ID: {event.id}",
        "expiresAt": _iso(event.end + timedelta(days=1)),
    }

    if venue.result is not None:
        record.update(_venue_geography(venue.result.record))

    for slot, match in zip(("First", "Second"), categories):
        record[f"category{slot}"] = match.tt_name
        record[f"category{slot}Id"] = match.tt_id

    if event.image_url:
        record["eventImage"] = event.image_url

    return record


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of validating one TT payload."""

    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors


def validate_tt_event(record: dict[str, Any]) -> ValidationOutcome:
    """Check a TT payload before it is written.

    Errors (record must not be written):

    - a required field is missing or blank;
    - a date field is not ISO 8601;
    - ``startDate`` is after ``endDate``.

    Warnings (record is still written):

    - ``categoryFirstId`` set without ``categoryFirst``.

    Args:
        record: The payload from :func:`map_to_tt_event`.

    Returns:
        A :class:`ValidationOutcome`.
    """
    errors: list[str] = []
    warnings: list[str] = []

    for field_name, label in REQUIRED_FIELDS:
        value = record.get(field_name)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(f"Missing required field: {label}")

    parsed: dict[str, datetime] = {}
    for field_name in _DATE_FIELDS:
        value = record.get(field_name)
        if not value:
            continue
        try:
            parsed[field_name] = _parse_iso(str(value))
        except ValueError:
            errors.append(f"Invalid date format for {field_name}: {value!r}")

    if "startDate" in parsed and "endDate" in parsed and parsed["startDate"] > parsed["endDate"]:
        errors.append("Start date is after end date")

    if record.get("categoryFirstId") and not record.get("categoryFirst"):
        warnings.append("categoryFirstId is set without categoryFirst")

    for warning in warnings:
        logger.warning("Validation warning for %r: %s", record.get("title"), warning)

    return ValidationOutcome(errors=tuple(errors), warnings=tuple(warnings))


def is_same_event(record: dict[str, Any], existing: dict[str, Any]) -> bool:
    """Whether *existing* is the TT copy of *record*.

    Same title (case-insensitive) and overlapping time, where an event
    with ``start == end`` overlaps anything covering its instant.
    """
    if str(existing.get("title", "")).strip().lower() != str(record.get("title", "")).strip().lower():
        return False
    try:
        start, end = _parse_iso(record["startDate"]), _parse_iso(record["endDate"])
        ex_start = _parse_iso(str(existing["startDate"]))
        ex_end = _parse_iso(str(existing.get("endDate") or existing["startDate"]))
    except (KeyError, ValueError):
        return False
    if start == ex_start:
        return True
    return start < ex_end and ex_start < end
