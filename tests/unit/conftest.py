"""Shared fixtures for btc-import unit tests.

``fake_tt`` is an in-memory stand-in for the TT REST API that honours the
same method surface as :class:`btc_import.clients.tt.TTClient`.  Listing
filters are applied as case-insensitive equality, which is how the TT
query endpoints behave.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import Any

import pytest

from btc_import.categories import CategoryResolver
from btc_import.clients.exceptions import ApiNotFoundError
from btc_import.fallback import DestinationAccess
from btc_import.models.source import BtcEvent
from btc_import.resolution import EntityResolver, organizer_strategies, venue_strategies
from btc_import.runner import ImportRunner

FIXED_NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

_DATE_FILTERS = ("start", "end")


class FakeTT:
    """In-memory TT backend."""

    def __init__(self) -> None:
        self.records: dict[str, list[dict[str, Any]]] = {
            "events": [],
            "organizers": [],
            "venues": [],
            "categories": [],
            "users": [],
        }
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self._ids = itertools.count(1)

    # -- seeding -------------------------------------------------------

    def add(self, kind: str, **fields: Any) -> dict[str, Any]:
        record = {"_id": fields.pop("_id", f"{kind[:3]}-{next(self._ids)}"), **fields}
        self.records[kind].append(record)
        return record

    def _check(self, operation: str, kind: str) -> None:
        self.calls.append((operation, kind))
        error = self.failures.get(f"{operation}:{kind}") or self.failures.get(operation)
        if error is not None:
            raise error

    # -- TTClient surface ------------------------------------------------

    def list_records(self, kind: str, filters: dict[str, str] | None = None) -> list[dict[str, Any]]:
        self._check("list", kind)
        rows = self.records[kind]
        for key, value in (filters or {}).items():
            if key in _DATE_FILTERS:
                continue
            rows = [r for r in rows if str(r.get(key, "")).lower() == str(value).lower()]
        return [dict(r) for r in rows]

    def list_events(self, day: date) -> list[dict[str, Any]]:
        self._check("list", "events")
        prefix = day.isoformat()
        return [dict(r) for r in self.records["events"] if str(r.get("startDate", "")).startswith(prefix)]

    def create_record(self, kind: str, record: dict[str, Any]) -> dict[str, Any]:
        self._check("create", kind)
        created = self.add(kind, **dict(record))
        return dict(created)

    def create_event(self, record: dict[str, Any]) -> dict[str, Any]:
        return self.create_record("events", record)

    def update_event(self, event_id: str, record: dict[str, Any]) -> dict[str, Any]:
        self._check("update", "events")
        for index, existing in enumerate(self.records["events"]):
            if existing["_id"] == event_id:
                self.records["events"][index] = {**record, "_id": event_id}
                return dict(self.records["events"][index])
        raise ApiNotFoundError(f"event {event_id} not found")

    def delete_record(self, kind: str, identifier: str) -> None:
        self._check("delete", kind)
        before = len(self.records[kind])
        self.records[kind] = [r for r in self.records[kind] if r["_id"] != identifier]
        if len(self.records[kind]) == before:
            raise ApiNotFoundError(f"{kind} {identifier} not found")


class FakeBtc:
    """BTC feed stub returning canned payloads per date."""

    def __init__(self) -> None:
        self.payloads: dict[str, list[dict[str, Any]]] = {}
        self.failures: dict[str, Exception] = {}
        self.requested: list[date] = []

    def fetch_events(self, day: date):
        self.requested.append(day)
        if day.isoformat() in self.failures:
            raise self.failures[day.isoformat()]
        events, rejected = [], []
        for payload in self.payloads.get(day.isoformat(), []):
            try:
                events.append(BtcEvent.from_feed(payload))
            except ValueError:
                rejected.append(payload)
        return events, rejected


def make_btc_payload(
    event_id: int = 101,
    title: str = "Friday Milonga",
    day: str = "2025-06-01",
    organizer: str | None = "Tango Society",
    organizer_email: str = "",
    venue: str | None = "Dance Hall",
    categories: tuple[str, ...] = ("Milonga",),
    start_time: str = "20:00:00",
    end_time: str = "23:30:00",
) -> dict[str, Any]:
    """Build a raw BTC feed entry."""
    return {
        "id": event_id,
        "title": title,
        "description": "<p>Dance all night</p>",
        "utc_start_date": f"{day} {start_time}",
        "utc_end_date": f"{day} {end_time}",
        "start_date": f"{day} {start_time}",
        "end_date": f"{day} {end_time}",
        "all_day": False,
        "cost": "$15",
        "image": {"url": f"https://btc.test/img/{event_id}.jpg"},
        "organizer": (
            [{"id": 900 + event_id, "organizer": organizer, "email": organizer_email}]
            if organizer
            else []
        ),
        "venue": {"id": 500, "venue": venue, "city": "Boston"} if venue else [],
        "categories": [{"id": i, "name": name} for i, name in enumerate(categories)],
    }


@pytest.fixture()
def fake_tt() -> FakeTT:
    tt = FakeTT()
    tt.add("categories", categoryName="Milonga", _id="cat-milonga")
    tt.add("categories", categoryName="Class", _id="cat-class")
    return tt


@pytest.fixture()
def fake_btc() -> FakeBtc:
    return FakeBtc()


@pytest.fixture()
def btc_payload() -> Callable[..., dict[str, Any]]:
    """Factory fixture for raw BTC feed entries."""
    return make_btc_payload


@pytest.fixture()
def access(fake_tt: FakeTT) -> DestinationAccess:
    return DestinationAccess(fake_tt)  # type: ignore[arg-type]


@pytest.fixture()
def make_runner(fake_btc: FakeBtc, fake_tt: FakeTT, access: DestinationAccess):
    """Factory fixture building an :class:`ImportRunner` over the fakes."""

    def build(dry_run: bool = True, **kwargs: Any) -> ImportRunner:
        clock = lambda: FIXED_NOW  # noqa: E731
        organizers = EntityResolver("organizer", organizer_strategies(access), clock=clock)
        venues = EntityResolver(
            "venue", venue_strategies(access), name_fields=("name",), clock=clock
        )
        return ImportRunner(
            btc=fake_btc,  # type: ignore[arg-type]
            tt=fake_tt,  # type: ignore[arg-type]
            organizer_resolver=organizers,
            venue_resolver=venues,
            category_resolver=CategoryResolver(access),
            app_id="1",
            dry_run=dry_run,
            sleep=lambda _s: None,
            clock=clock,
            **kwargs,
        )

    return build
