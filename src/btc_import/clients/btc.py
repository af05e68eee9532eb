"""Read-only client for the BTC events feed.

The feed is paginated (``per_page`` / ``page``, with ``total_pages`` in
each response).  :meth:`BtcClient.fetch_events` follows every page for the
requested day and returns parsed :class:`~btc_import.models.source.BtcEvent`
objects, skipping (and logging) entries too malformed to parse.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

import requests
from pydantic import ValidationError

from btc_import.clients.exceptions import decode_json, with_retry
from btc_import.models.source import BtcEvent

logger = logging.getLogger(__name__)

_PAGE_SIZE = 50
_MAX_PAGES = 100
_DEFAULT_TIMEOUT = 30  # seconds


class BtcClient:
    """HTTP client for the BTC ``/events`` endpoint.

    Args:
        base_url: Feed base URL, e.g.
            ``https://bostontangocalendar.com/wp-json/tribe/events/v1``.
        session: Optional pre-built ``requests.Session``.  Pass a mock here
            in tests.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        self._timeout = timeout

    def fetch_events(self, day: date) -> tuple[list[BtcEvent], list[dict[str, Any]]]:
        """Fetch every BTC event overlapping *day* (00:00:00-23:59:59).

        Args:
            day: The calendar date to fetch.

        Returns:
            ``(events, rejected)`` -- parsed events in feed order, and the
            raw payloads of entries that could not be parsed.

        Raises:
            ApiError: If the feed is unreachable after retries.
        """
        events: list[BtcEvent] = []
        rejected: list[dict[str, Any]] = []
        page = 1

        while page <= _MAX_PAGES:
            payload = self._get_page(day, page)
            for entry in payload.get("events") or []:
                try:
                    events.append(BtcEvent.from_feed(entry))
                except (ValidationError, ValueError) as exc:
                    logger.warning("Skipping malformed BTC event %r: %s", entry.get("id"), exc)
                    rejected.append(entry)

            total_pages = int(payload.get("total_pages") or 1)
            if page >= total_pages:
                break
            page += 1

        logger.info("Fetched %d BTC event(s) for %s", len(events), day.isoformat())
        return events, rejected

    @with_retry()
    def _get_page(self, day: date, page: int) -> dict[str, Any]:
        iso = day.isoformat()
        response = self._session.get(
            f"{self._base_url}/events",
            params={
                "start_date": f"{iso} 00:00:00",
                "end_date": f"{iso} 23:59:59",
                "per_page": _PAGE_SIZE,
                "page": page,
            },
            timeout=self._timeout,
        )
        # The Events Calendar answers 404 "no events" for an empty window.
        if response.status_code == 404:
            return {"events": [], "total_pages": 1}
        response.raise_for_status()
        return decode_json(response)
