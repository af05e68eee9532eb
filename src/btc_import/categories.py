"""Mapping of BTC category tags onto TT categories.

BTC tags events with free-form WordPress categories; TT has a fixed set.
:func:`map_to_tt_category` translates one tag, and
:class:`CategoryResolver` looks the translated names up in TT to obtain
category IDs for the first and second category slots of an event.

Categories never gate an import: an event with no usable category is
still imported, just without category IDs.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Mapping

from btc_import.clients.tt import record_id
from btc_import.fallback import DestinationAccess
from btc_import.models.source import BtcCategory

logger = logging.getLogger(__name__)

# Checked first, as case-insensitive substrings, in this order.
_SUBSTRING_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("class", "workshop"), "Class"),
    (("milonga",), "Milonga"),
    (("practica",), "Practica"),
)

_EXACT_MAP: Mapping[str, str] = {
    "Festivals": "Festival",
    "Festival": "Festival",
    "DayWorkshop": "Class",
    "Workshop": "Class",
    "Trips-Hosted": "Trip",
    "Trip": "Trip",
    "Virtual": "Virtual",
    "Party/Gathering": "Gathering",
    "Party": "Gathering",
    "Gathering": "Gathering",
    "Live Orchestra": "Orchestra",
    "Orchestra": "Orchestra",
    "Concert/Show": "Concert",
    "Concert": "Concert",
    "Show": "Concert",
    "Forum/RoundTable/Labs": "Forum",
    "Forum": "Forum",
    "First Timer Friendly": "Class",
}

IGNORED_CATEGORIES = frozenset({"Canceled", "Other"})

# TT category used for tags that are neither mapped nor ignored.
FALLBACK_CATEGORY = "Class"


def map_to_tt_category(name: str, fallback: str | None = None) -> str | None:
    """Translate a BTC category name to a TT category name.

    Args:
        name: The BTC category name.
        fallback: Returned for names that are neither mapped nor ignored.

    Returns:
        The TT category name, or ``None`` for ignored or unmapped names
        (when no *fallback* is given).
    """
    if not name:
        return None
    lowered = name.lower()
    for needles, category in _SUBSTRING_RULES:
        if any(needle in lowered for needle in needles):
            return category
    if name in IGNORED_CATEGORIES:
        return None
    return _EXACT_MAP.get(name, fallback)


@dataclass(frozen=True)
class CategoryMatch:
    """A TT category chosen for a BTC tag."""

    source_name: str
    tt_name: str
    tt_id: str | None


class CategoryResolver:
    """Resolves BTC category tags to TT category IDs.

    Args:
        access: TT access chains used for category lookups.
        fallback: TT category for unmapped, non-ignored tags.
    """

    def __init__(self, access: DestinationAccess, fallback: str | None = FALLBACK_CATEGORY) -> None:
        self._access = access
        self._fallback = fallback

    def resolve(self, categories: Sequence[BtcCategory], limit: int = 2) -> list[CategoryMatch]:
        """Return up to *limit* distinct TT categories for an event's tags."""
        matches: list[CategoryMatch] = []
        seen: set[str] = set()

        for category in categories:
            tt_name = map_to_tt_category(category.name, self._fallback)
            if tt_name is None:
                logger.debug("Category %r ignored", category.name)
                continue
            if tt_name in seen:
                continue
            seen.add(tt_name)
            matches.append(CategoryMatch(category.name, tt_name, self._lookup_id(tt_name)))
            if len(matches) >= limit:
                break

        return matches

    def _lookup_id(self, tt_name: str) -> str | None:
        result = self._access.find("categories", {"categoryName": tt_name})
        if not result.success:
            logger.warning("Category lookup for %r failed on every backend", tt_name)
            return None
        for record in result.value or []:
            if str(record.get("categoryName", "")).lower() == tt_name.lower():
                return record_id(record)
        logger.warning("TT has no category named %r", tt_name)
        return None
