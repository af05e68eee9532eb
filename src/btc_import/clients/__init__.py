"""Network and storage clients for btc-import."""

from __future__ import annotations

from btc_import.clients.btc import BtcClient
from btc_import.clients.exceptions import (
    ApiAuthError,
    ApiConflictError,
    ApiError,
    ApiNetworkError,
    ApiNotFoundError,
    ApiRateLimitError,
    ApiServerError,
)
from btc_import.clients.store import DirectStore, StoreTableNotFoundError
from btc_import.clients.tt import TTClient, record_id

__all__ = [
    "ApiAuthError",
    "ApiConflictError",
    "ApiError",
    "ApiNetworkError",
    "ApiNotFoundError",
    "ApiRateLimitError",
    "ApiServerError",
    "BtcClient",
    "DirectStore",
    "StoreTableNotFoundError",
    "TTClient",
    "record_id",
]
