"""Unit tests for BTC-to-TT event mapping and validation."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from btc_import.categories import CategoryMatch
from btc_import.event_mapper import is_same_event, map_to_tt_event, validate_tt_event
from btc_import.models.resolution import ResolutionLog, ResolvedEntity
from btc_import.models.source import BtcEvent

_NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _log(entity_type: str, entity: ResolvedEntity | None) -> ResolutionLog:
    return ResolutionLog(
        entity_type=entity_type,
        source={"id": "1", "name": "x", "email": ""},
        timestamp=_NOW.isoformat(),
        result=entity,
        error_details=None if entity else {"type": "no_match", "message": "exact_name: no match"},
    )


@pytest.fixture()
def event(btc_payload) -> BtcEvent:
    return BtcEvent.from_feed(btc_payload(event_id=4242))


@pytest.fixture()
def organizer() -> ResolutionLog:
    return _log("organizer", ResolvedEntity("org-1", "Tango Society", "exact_name"))


@pytest.fixture()
def venue() -> ResolutionLog:
    record = {
        "_id": "ven-1",
        "name": "Dance Hall",
        "masteredCityId": "city-9",
        "masteredCityName": "Boston",
        "latitude": 42.36,
        "longitude": -71.06,
    }
    return _log("venue", ResolvedEntity("ven-1", "Dance Hall", "exact_name", record))


class TestMapToTTEvent:
    """Tests for payload assembly."""

    def test_core_fields(self, event, organizer, venue) -> None:
        record = map_to_tt_event(event, "1", organizer, venue, now=_NOW)

        assert record["appId"] == "1"
        assert record["title"] == "Friday Milonga"
        assert record["startDate"] == "2025-06-01T20:00:00.000Z"
        assert record["endDate"] == "2025-06-01T23:30:00.000Z"
        assert record["expiresAt"] == "2025-06-02T23:30:00.000Z"
        assert record["ownerOrganizerID"] == "org-1"
        assert record["ownerOrganizerName"] == "Tango Society"
        assert record["venueID"] == "ven-1"
        assert record["eventImage"] == "https://btc.test/img/4242.jpg"

    def test_discovery_flags(self, event, organizer, venue) -> None:
        record = map_to_tt_event(event, "1", organizer, venue, now=_NOW)

        assert record["isDiscovered"] is True
        assert record["isOwnerManaged"] is False
        assert record["discoveredFirstDate"] == "2025-06-01T12:00:00.000Z"
        assert record["discoveredComments"] == "Imported from BTC event ID: 4242"

    def test_venue_geography(self, event, organizer, venue) -> None:
        record = map_to_tt_event(event, "1", organizer, venue, now=_NOW)

        assert record["masteredCityName"] == "Boston"
        assert record["venueGeolocation"] == {"type": "Point", "coordinates": [-71.06, 42.36]}
        assert "masteredRegionId" not in record

    def test_categories_fill_slots(self, event, organizer, venue) -> None:
        categories = [
            CategoryMatch("Milonga", "Milonga", "cat-1"),
            CategoryMatch("Class", "Class", "cat-2"),
        ]

        record = map_to_tt_event(event, "1", organizer, venue, categories, now=_NOW)

        assert record["categoryFirst"] == "Milonga"
        assert record["categoryFirstId"] == "cat-1"
        assert record["categorySecond"] == "Class"
        assert record["categorySecondId"] == "cat-2"

    def test_unresolved_references_leave_fields_empty(self, event) -> None:
        record = map_to_tt_event(event, "1", _log("organizer", None), _log("venue", None), now=_NOW)

        assert record["ownerOrganizerID"] is None
        assert record["venueID"] is None


class TestValidateTTEvent:
    """Tests for pre-write validation."""

    def test_valid_record(self, event, organizer, venue) -> None:
        outcome = validate_tt_event(map_to_tt_event(event, "1", organizer, venue, now=_NOW))

        assert outcome.valid
        assert outcome.errors == ()

    def test_missing_required_fields(self, event) -> None:
        record = map_to_tt_event(event, "1", _log("organizer", None), _log("venue", None), now=_NOW)
        record["title"] = "   "

        outcome = validate_tt_event(record)

        assert not outcome.valid
        assert "Missing required field: Title" in outcome.errors
        assert "Missing required field: Organizer ID" in outcome.errors
        assert "Missing required field: Venue ID" in outcome.errors

    def test_start_after_end(self, event, organizer, venue) -> None:
        record = map_to_tt_event(event, "1", organizer, venue, now=_NOW)
        record["startDate"], record["endDate"] = record["endDate"], record["startDate"]

        outcome = validate_tt_event(record)

        assert "Start date is after end date" in outcome.errors

    def test_invalid_date_format(self, event, organizer, venue) -> None:
        record = map_to_tt_event(event, "1", organizer, venue, now=_NOW)
        record["startDate"] = "June 1st"

        outcome = validate_tt_event(record)

        assert not outcome.valid
        assert any("Invalid date format for startDate" in e for e in outcome.errors)

    def test_category_id_without_name_is_only_a_warning(self, event, organizer, venue) -> None:
        record = map_to_tt_event(event, "1", organizer, venue, now=_NOW)
        record["categoryFirstId"] = "cat-1"

        outcome = validate_tt_event(record)

        assert outcome.valid
        assert outcome.warnings == ("categoryFirstId is set without categoryFirst",)


class TestIsSameEvent:
    """Tests for duplicate detection against existing TT events."""

    _RECORD = {
        "title": "Friday Milonga",
        "startDate": "2025-06-01T20:00:00.000Z",
        "endDate": "2025-06-01T23:30:00.000Z",
    }

    def test_same_title_and_start(self) -> None:
        existing = {**self._RECORD, "title": "FRIDAY MILONGA", "endDate": None}

        assert is_same_event(self._RECORD, existing)

    def test_overlapping_window(self) -> None:
        existing = {
            "title": "Friday Milonga",
            "startDate": "2025-06-01T21:00:00.000Z",
            "endDate": "2025-06-02T01:00:00.000Z",
        }

        assert is_same_event(self._RECORD, existing)

    def test_different_title(self) -> None:
        assert not is_same_event(self._RECORD, {**self._RECORD, "title": "Saturday Milonga"})

    def test_disjoint_window(self) -> None:
        existing = {
            "title": "Friday Milonga",
            "startDate": "2025-06-01T10:00:00.000Z",
            "endDate": "2025-06-01T12:00:00.000Z",
        }

        assert not is_same_event(self._RECORD, existing)

    def test_unparseable_existing_dates(self) -> None:
        assert not is_same_event(self._RECORD, {"title": "Friday Milonga", "startDate": "soon"})
