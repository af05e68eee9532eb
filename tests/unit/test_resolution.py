"""Unit tests for multi-strategy entity resolution."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from btc_import.clients.exceptions import ApiServerError
from btc_import.models.source import BtcOrganizer, BtcVenue
from btc_import.resolution import (
    NO_QUERY,
    EntityResolver,
    SourceRef,
    fuzzy_candidates,
    organizer_strategies,
    venue_strategies,
)

_NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


@pytest.fixture()
def organizers(access) -> EntityResolver:
    return EntityResolver("organizer", organizer_strategies(access), clock=lambda: _NOW)


# ---------------------------------------------------------------------------
# SourceRef
# ---------------------------------------------------------------------------


class TestSourceRef:
    """Tests for building source references from feed models."""

    def test_from_organizer_strips_values(self) -> None:
        ref = SourceRef.from_organizer(BtcOrganizer(id=7, organizer="  Club B ", email=" b@x.org "))

        assert ref == SourceRef(id="7", name="Club B", email="b@x.org")

    def test_from_missing_organizer(self) -> None:
        assert SourceRef.from_organizer(None) == SourceRef(id=None, name="")

    def test_from_venue(self) -> None:
        ref = SourceRef.from_venue(BtcVenue(id=3, venue="Dance Hall"))

        assert ref.name == "Dance Hall"
        assert ref.email == ""


# ---------------------------------------------------------------------------
# Strategy order and outcomes
# ---------------------------------------------------------------------------


class TestOrganizerResolution:
    """Tests for the organizer strategy chain."""

    def test_strategy_order(self, organizers: EntityResolver) -> None:
        assert organizers.strategy_names == ["btc_nice_name", "exact_name", "fuzzy_name", "email"]

    def test_default_organizer_is_opt_in(self, access) -> None:
        resolver = EntityResolver("organizer", organizer_strategies(access, use_default_organizer=True))

        assert resolver.strategy_names[-1] == "default_organizer"

    def test_btc_nice_name_wins_first(self, organizers: EntityResolver, fake_tt) -> None:
        fake_tt.add("organizers", name="Studio A", btcNiceName="studio-a", _id="org-a")

        log = organizers.resolve(SourceRef(id="1", name="studio-a"))

        assert log.success
        assert log.result.id == "org-a"
        assert log.result.method == "btc_nice_name"
        assert len(log.attempts) == 1

    def test_exact_name_is_case_insensitive(self, organizers: EntityResolver, fake_tt) -> None:
        fake_tt.add("organizers", name="Club B", fullName="Club B", _id="org-b")

        log = organizers.resolve(SourceRef(id="1", name="CLUB B"))

        assert log.result.id == "org-b"
        assert [a.method for a in log.attempts] == ["btc_nice_name", "exact_name"]
        assert log.attempts[0].result_count == 0
        assert log.attempts[0].error == "no match"

    def test_fuzzy_name_match(self, organizers: EntityResolver, fake_tt) -> None:
        fake_tt.add("organizers", fullName="Tango Society of Boston", _id="org-t")

        log = organizers.resolve(SourceRef(id="1", name="Tango Society Boston"))

        assert log.result.method == "fuzzy_name"
        assert log.result.name == "Tango Society of Boston"

    def test_ambiguous_fuzzy_falls_through_to_email(self, organizers: EntityResolver, fake_tt) -> None:
        fake_tt.add("organizers", fullName="Tango Society Boston", email="a@x.org", _id="org-1")
        fake_tt.add("organizers", fullName="Tango Society Cambridge", email="c@x.org", _id="org-2")

        log = organizers.resolve(SourceRef(id="1", name="Tango Society", email="C@X.org"))

        fuzzy = log.attempts[2]
        assert fuzzy.method == "fuzzy_name"
        assert fuzzy.success is False
        assert fuzzy.result_count == 2
        assert fuzzy.error == "ambiguous: 2 candidates"
        assert log.result.method == "email"
        assert log.result.id == "org-2"

    def test_unresolved_records_every_strategy(self, organizers: EntityResolver) -> None:
        log = organizers.resolve(SourceRef(id="1", name="Nobody"))

        assert not log.success
        assert log.result is None
        assert [a.method for a in log.attempts] == ["btc_nice_name", "exact_name", "fuzzy_name", "email"]
        assert log.attempts[-1].error == NO_QUERY
        assert log.error_details["type"] == "no_match"
        assert log.error_details["message"].startswith("email:")

    def test_ambiguous_last_attempt_is_reported(self, access, fake_tt) -> None:
        fake_tt.add("organizers", fullName="Same Name", _id="o1")
        fake_tt.add("organizers", fullName="Same Name", _id="o2")
        resolver = EntityResolver("organizer", organizer_strategies(access)[:3])

        log = resolver.resolve(SourceRef(id="1", name="Same Name"))

        assert log.error_details == {
            "type": "ambiguous",
            "message": "fuzzy_name: ambiguous: 2 candidates",
        }

    def test_lookup_failures_are_attempts_not_errors(self, organizers: EntityResolver, fake_tt) -> None:
        fake_tt.failures["list:organizers"] = ApiServerError("unavailable", status_code=503)

        log = organizers.resolve(SourceRef(id="1", name="Club B", email="b@x.org"))

        assert not log.success
        assert len(log.attempts) == 4
        assert all(a.status == 503 for a in log.attempts)
        assert log.error_details["type"] == "lookup_error"

    def test_resolution_is_repeatable(self, organizers: EntityResolver, fake_tt) -> None:
        fake_tt.add("organizers", fullName="Tango Society Boston", _id="org-1")
        fake_tt.add("organizers", fullName="Tango Society Cambridge", _id="org-2")
        source = SourceRef(id="1", name="Tango Society")

        first = organizers.resolve(source)
        second = organizers.resolve(source)

        assert first.attempts == second.attempts
        assert first.to_dict() == second.to_dict()

    def test_default_organizer_fallback(self, access, fake_tt) -> None:
        fake_tt.add("organizers", fullName="Default Organizer", shortName="DEFAULT", _id="org-default")
        resolver = EntityResolver("organizer", organizer_strategies(access, use_default_organizer=True))

        log = resolver.resolve(SourceRef(id="1", name="Unknown Group"))

        assert log.result.id == "org-default"
        assert log.result.method == "default_organizer"


class TestVenueResolution:
    """Tests for the venue strategy chain."""

    def test_exact_venue(self, access, fake_tt) -> None:
        fake_tt.add("venues", name="Dance Hall", _id="ven-1")
        resolver = EntityResolver("venue", venue_strategies(access), name_fields=("name",))

        log = resolver.resolve(SourceRef(id="5", name="dance hall"))

        assert log.result.id == "ven-1"
        assert log.result.name == "Dance Hall"

    def test_placeholder_venue(self, access, fake_tt) -> None:
        fake_tt.add("venues", name="NotFound", _id="ven-nf")
        resolver = EntityResolver(
            "venue", venue_strategies(access, use_placeholder_venue=True), name_fields=("name",)
        )

        log = resolver.resolve(SourceRef(id="5", name="Somewhere Else"))

        assert log.result.method == "not_found_venue"
        assert log.result.id == "ven-nf"

    def test_venues_resolve_by_name_only(self, access) -> None:
        names = [s.name for s in venue_strategies(access, use_placeholder_venue=True)]

        assert names == ["exact_name", "fuzzy_name", "not_found_venue"]


# ---------------------------------------------------------------------------
# Fuzzy scoring
# ---------------------------------------------------------------------------


class TestFuzzyCandidates:
    """Tests for threshold and margin handling."""

    def test_below_threshold_is_dropped(self) -> None:
        records = [{"name": "Salsa Palace"}]

        assert fuzzy_candidates("Tango Society", records, ("name",)) == []

    def test_clear_winner_beats_runner_up(self) -> None:
        best = {"name": "tango society"}
        close = {"name": "tango societyy"}

        assert fuzzy_candidates("tango society", [close, best], ("name",), margin=3) == [best]

    def test_close_scores_are_ambiguous(self) -> None:
        best = {"name": "tango society"}
        close = {"name": "tango societyy"}

        assert fuzzy_candidates("tango society", [close, best], ("name",), margin=5) == [best, close]

    def test_records_without_names_are_ignored(self) -> None:
        assert fuzzy_candidates("tango", [{"name": ""}, {}], ("name",)) == []
