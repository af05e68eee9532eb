"""Pydantic models for events read from the BTC feed.

The feed is a WordPress "The Events Calendar" REST endpoint, and its shapes
are loose: ``organizer`` may be an object, a list of objects, or an empty
list; ``venue`` may be an object or an empty list; dates come in local
(``start_date``) and UTC (``utc_start_date``) flavours as
``"YYYY-MM-DD HH:MM:SS"`` strings.  The validators here normalise those
variations so the rest of the engine sees one shape.

- :class:`BtcOrganizer`, :class:`BtcVenue`, :class:`BtcCategory` -- nested
  references.
- :class:`BtcEvent` -- a single feed event with parsed UTC datetimes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_BTC_DATETIME_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S")


def parse_btc_datetime(value: str) -> datetime:
    """Parse a BTC ``"YYYY-MM-DD HH:MM:SS"`` string as a UTC datetime.

    Raises:
        ValueError: If *value* matches none of the known formats.
    """
    for fmt in _BTC_DATETIME_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    parsed = datetime.fromisoformat(value.strip())
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Nested references
# ---------------------------------------------------------------------------


class BtcOrganizer(BaseModel):
    """Organizer reference attached to a BTC event.

    Attributes:
        id: BTC organizer post ID.
        name: Display name (``organizer`` in the feed).
        email: Contact email, often empty.
        slug: WordPress slug.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int | str | None = None
    name: str = Field(default="", alias="organizer")
    email: str = ""
    slug: str = ""


class BtcVenue(BaseModel):
    """Venue reference attached to a BTC event."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int | str | None = None
    name: str = Field(default="", alias="venue")
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""


class BtcCategory(BaseModel):
    """Category tag attached to a BTC event."""

    model_config = ConfigDict(extra="ignore")

    id: int | str | None = None
    name: str = ""
    slug: str = ""


# ---------------------------------------------------------------------------
# BtcEvent
# ---------------------------------------------------------------------------


class BtcEvent(BaseModel):
    """A single event from the BTC feed.

    ``start`` and ``end`` are taken from the UTC fields when present and
    fall back to the local fields otherwise; both are timezone-aware.
    The untouched feed payload is kept in ``raw`` for failure reports.
    """

    model_config = ConfigDict(extra="ignore")

    id: int | str
    title: str = ""
    description: str = ""
    start: datetime
    end: datetime
    all_day: bool = False
    cost: str = ""
    image_url: str | None = None
    organizer: BtcOrganizer | None = None
    venue: BtcVenue | None = None
    categories: list[BtcCategory] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @field_validator("organizer", mode="before")
    @classmethod
    def _first_organizer(cls, value: Any) -> Any:
        """The feed sends a list of organizers; only the first one counts."""
        if isinstance(value, list):
            return value[0] if value else None
        return value or None

    @field_validator("venue", mode="before")
    @classmethod
    def _empty_venue(cls, value: Any) -> Any:
        if isinstance(value, list):
            return value[0] if value else None
        return value or None

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @classmethod
    def from_feed(cls, payload: dict[str, Any]) -> BtcEvent:
        """Build a :class:`BtcEvent` from one raw feed entry.

        Raises:
            pydantic.ValidationError: If the payload lacks an ID or has
                unparseable dates.
            ValueError: If no start/end date is present at all.
        """
        start_raw = payload.get("utc_start_date") or payload.get("start_date")
        end_raw = payload.get("utc_end_date") or payload.get("end_date") or start_raw
        if not start_raw:
            raise ValueError(f"BTC event {payload.get('id')!r} has no start date")

        image = payload.get("image")
        return cls(
            id=payload.get("id"),
            title=payload.get("title") or "",
            description=payload.get("description") or "",
            start=parse_btc_datetime(start_raw),
            end=parse_btc_datetime(end_raw),
            all_day=bool(payload.get("all_day", False)),
            cost=str(payload.get("cost") or ""),
            image_url=image.get("url") if isinstance(image, dict) else None,
            organizer=payload.get("organizer"),
            venue=payload.get("venue"),
            categories=payload.get("categories") or [],
            raw=payload,
        )
