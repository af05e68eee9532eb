"""TT destination API client.

Provides :class:`TTClient`, a thin wrapper around the TT REST API that
handles:

- **Events** -- list by day, create, update by ID, delete by ID.
- **Organizers / venues / categories / users** -- filtered listing, plus
  create and delete for the record kinds the cleanup facility manages.

Responses are not uniform across TT routes (``{"events": [...]}``,
``{"organizers": [...]}``, ``{"data": [...]}`` or a bare list), so each
record kind declares the keys its listing may arrive under.

All API calls are wrapped with :func:`~btc_import.clients.exceptions.with_retry`
for automatic retry on transient failures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping

import requests

from btc_import.clients.exceptions import decode_json, with_retry

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30  # seconds


@dataclass(frozen=True)
class Endpoint:
    """Route layout of one TT record kind.

    Attributes:
        path: Collection path used for listing and ``/{id}`` operations.
        create_path: Path that accepts ``POST`` of a new record.
        list_keys: Keys the listing may be wrapped under, tried in order.
    """

    path: str
    create_path: str
    list_keys: tuple[str, ...]


DEFAULT_ENDPOINTS: Mapping[str, Endpoint] = {
    "events": Endpoint("events", "events/post", ("events", "data")),
    "organizers": Endpoint("organizers", "organizers", ("organizers", "data")),
    "venues": Endpoint("venues", "venues", ("data", "venues")),
    "categories": Endpoint("categories", "categories", ("data", "categories")),
    "users": Endpoint("userlogins", "userlogins", ("users", "userLogins", "data")),
}


def record_id(record: Mapping[str, Any]) -> str:
    """Return a TT record's identifier (``_id``, falling back to ``id``)."""
    return str(record.get("_id") or record.get("id") or "")


def _extract_list(payload: Any, keys: tuple[str, ...]) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return []


class TTClient:
    """High-level client for the TT REST API.

    Args:
        base_url: API base URL, e.g. ``http://localhost:3010/api``.
        app_id: Tenant identifier added to every request.
        auth_token: Bearer token; omitted from headers when empty.
        session: Optional pre-built ``requests.Session``.  Pass a mock here
            in tests.
        endpoints: Per-kind route overrides, e.g. a secondary admin API
            that serves users under ``/users`` instead of ``/userlogins``.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        app_id: str,
        auth_token: str = "",
        session: requests.Session | None = None,
        endpoints: Mapping[str, Endpoint] | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._app_id = app_id
        self._endpoints = {**DEFAULT_ENDPOINTS, **(endpoints or {})}
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        if auth_token:
            self._session.headers.update({"Authorization": f"Bearer {auth_token}"})

    @property
    def base_url(self) -> str:
        return self._base_url

    def _url(self, *parts: str) -> str:
        return "/".join([self._base_url, *parts])

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    @with_retry()
    def list_events(self, day: date) -> list[dict[str, Any]]:
        """List TT events that start on *day* (UTC, whole day inclusive)."""
        iso = day.isoformat()
        endpoint = self._endpoints["events"]
        response = self._session.get(
            self._url(endpoint.path),
            params={
                "appId": self._app_id,
                "start": f"{iso}T00:00:00.000Z",
                "end": f"{iso}T23:59:59.999Z",
            },
            timeout=self._timeout,
        )
        response.raise_for_status()
        events = _extract_list(decode_json(response), endpoint.list_keys)
        logger.debug("Listed %d TT event(s) for %s", len(events), iso)
        return events

    def create_event(self, record: Mapping[str, Any]) -> dict[str, Any]:
        return self.create_record("events", record)

    @with_retry()
    def update_event(self, event_id: str, record: Mapping[str, Any]) -> dict[str, Any]:
        """Replace the TT event *event_id* with *record*.

        Raises:
            ApiNotFoundError: If the event no longer exists.
        """
        response = self._session.put(
            self._url(self._endpoints["events"].path, event_id),
            params={"appId": self._app_id},
            json=dict(record),
            timeout=self._timeout,
        )
        response.raise_for_status()
        logger.info("Updated TT event %s", event_id)
        return decode_json(response) if response.content else {}

    def delete_event(self, event_id: str) -> None:
        self.delete_record("events", event_id)

    # ------------------------------------------------------------------
    # Generic record operations
    # ------------------------------------------------------------------

    @with_retry()
    def list_records(
        self,
        kind: str,
        filters: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """List records of *kind*, optionally filtered by query parameters.

        Args:
            kind: ``"organizers"``, ``"venues"``, ``"categories"``,
                ``"users"`` or ``"events"``.
            filters: Extra query parameters (``{"name": "..."}``).

        Returns:
            The records as returned by TT (possibly empty).
        """
        endpoint = self._endpoints[kind]
        params = {"appId": self._app_id, **(filters or {})}
        response = self._session.get(self._url(endpoint.path), params=params, timeout=self._timeout)
        response.raise_for_status()
        return _extract_list(decode_json(response), endpoint.list_keys)

    @with_retry()
    def create_record(self, kind: str, record: Mapping[str, Any]) -> dict[str, Any]:
        """Create a record of *kind* and return TT's response body.

        Raises:
            ApiConflictError: If TT reports that the record already exists.
        """
        endpoint = self._endpoints[kind]
        response = self._session.post(
            self._url(endpoint.create_path),
            params={"appId": self._app_id},
            json=dict(record),
            timeout=self._timeout,
        )
        response.raise_for_status()
        created = decode_json(response) if response.content else {}
        logger.info("Created TT %s %s", kind.rstrip("s"), record_id(created) or "?")
        return created

    @with_retry()
    def delete_record(self, kind: str, identifier: str) -> None:
        """Delete the record of *kind* with *identifier*.

        Raises:
            ApiNotFoundError: If the record does not exist.
        """
        response = self._session.delete(
            self._url(self._endpoints[kind].path, identifier),
            params={"appId": self._app_id},
            timeout=self._timeout,
        )
        response.raise_for_status()
        logger.info("Deleted TT %s %s", kind.rstrip("s"), identifier)
