"""HTTP exceptions and retry logic for the BTC and TT API clients.

Defines a hierarchy of API exceptions and a ``@with_retry`` decorator that
handles transient failures (rate limits, server errors, network errors)
with exponential backoff.

Exception hierarchy::

    ApiError                  (base for all API errors)
    +-- ApiAuthError          (401 / 403)
    +-- ApiNotFoundError      (404)
    +-- ApiConflictError      (409, record already exists)
    +-- ApiRateLimitError     (429)
    +-- ApiServerError        (5xx)
    +-- ApiNetworkError       (no usable response)
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

import requests

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------


class ApiError(Exception):
    """Base exception for BTC / TT API errors.

    Attributes:
        status_code: HTTP status code, or ``None`` when no response was
            received.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ApiAuthError(ApiError):
    """Raised on HTTP 401/403.  Never retried: the token will not heal."""

    def __init__(self, message: str = "API authentication failed", status_code: int = 401) -> None:
        super().__init__(message, status_code=status_code)


class ApiNotFoundError(ApiError):
    """Raised when a resource does not exist (HTTP 404)."""

    def __init__(self, message: str = "API resource not found") -> None:
        super().__init__(message, status_code=404)


class ApiConflictError(ApiError):
    """Raised when a record already exists (HTTP 409)."""

    def __init__(self, message: str = "API resource already exists") -> None:
        super().__init__(message, status_code=409)


class ApiRateLimitError(ApiError):
    """Raised when the API keeps returning HTTP 429 after all retries."""

    def __init__(self, message: str = "API rate limit exceeded") -> None:
        super().__init__(message, status_code=429)


class ApiServerError(ApiError):
    """Raised when the API keeps returning 5xx after all retries."""


class ApiNetworkError(ApiError):
    """Raised when no response could be obtained after all retries."""


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

_DEFAULT_MAX_RETRIES = 3
_DEFAULT_BASE_DELAY = 1.0  # seconds
_DEFAULT_MAX_DELAY = 30.0  # seconds


def classify_http_error(error: requests.HTTPError) -> ApiError:
    """Map a ``requests.HTTPError`` to the matching :class:`ApiError`.

    Args:
        error: The error raised by ``Response.raise_for_status()``.

    Returns:
        An :class:`ApiError` subclass matching the HTTP status code.
    """
    status = error.response.status_code if error.response is not None else None
    message = str(error)

    if status in (401, 403):
        return ApiAuthError(message, status_code=status)
    if status == 404:
        return ApiNotFoundError(message)
    if status == 409:
        return ApiConflictError(message)
    if status == 429:
        return ApiRateLimitError(message)
    if status is not None and status >= 500:
        return ApiServerError(message, status_code=status)
    return ApiError(message, status_code=status)


def decode_json(response: requests.Response) -> Any:
    """Return the JSON body of *response*.

    Raises:
        ApiError: If the body is not JSON (an HTML maintenance page, a
            truncated reply), carrying the response status code.
    """
    try:
        return response.json()
    except ValueError as exc:
        raise ApiError(
            f"Invalid JSON in response from {response.url}: {exc}",
            status_code=response.status_code,
        ) from exc


def _retry_after(error: requests.HTTPError) -> float | None:
    """Return the ``Retry-After`` header in seconds, if present and numeric."""
    if error.response is None:
        return None
    raw = error.response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Retry decorator
# ---------------------------------------------------------------------------


def with_retry(
    max_retries: int = _DEFAULT_MAX_RETRIES,
    base_delay: float = _DEFAULT_BASE_DELAY,
    max_delay: float = _DEFAULT_MAX_DELAY,
) -> Callable[[F], F]:
    """Decorator that retries HTTP calls on transient failures.

    Retry policy:
    - **HTTP 429**: wait ``Retry-After`` seconds when the server sends it,
      otherwise exponential backoff; up to *max_retries*.
    - **HTTP 5xx**: exponential backoff, up to *max_retries*.
    - **Network errors** (``requests.ConnectionError``,
      ``requests.Timeout``): exponential backoff, up to *max_retries*.
    - **HTTP 401/403, 404, 409 and other 4xx**: raised immediately.
    - **Any other** ``requests.RequestException`` (broken chunked body,
      redirect loop, invalid URL): raised immediately as
      :class:`ApiNetworkError`.

    Every wait is capped at *max_delay*.

    Args:
        max_retries: Maximum number of retry attempts.  Defaults to 3.
        base_delay: Initial backoff delay in seconds, doubled per retry.
        max_delay: Upper bound on any single wait.

    Returns:
        A decorator that wraps the target function with retry logic.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(max_retries + 1):
                backoff = min(base_delay * (2**attempt), max_delay)
                try:
                    return func(*args, **kwargs)

                except requests.HTTPError as exc:
                    api_error = classify_http_error(exc)

                    if not isinstance(api_error, (ApiRateLimitError, ApiServerError)):
                        logger.error("API error (HTTP %s): %s", api_error.status_code, exc)
                        raise api_error from exc

                    if attempt >= max_retries:
                        logger.error(
                            "HTTP %s after %d retries: %s",
                            api_error.status_code,
                            max_retries,
                            exc,
                        )
                        raise api_error from exc

                    delay = backoff
                    if isinstance(api_error, ApiRateLimitError):
                        hinted = _retry_after(exc)
                        if hinted is not None:
                            delay = min(hinted, max_delay)
                    logger.warning(
                        "HTTP %s, retrying in %.1fs (attempt %d/%d)",
                        api_error.status_code,
                        delay,
                        attempt + 1,
                        max_retries,
                    )
                    time.sleep(delay)

                except (requests.ConnectionError, requests.Timeout) as exc:
                    if attempt >= max_retries:
                        logger.error("Network error after %d retries: %s", max_retries, exc)
                        raise ApiNetworkError(
                            f"Network error after {max_retries} retries: {exc}"
                        ) from exc
                    logger.warning(
                        "Network error, retrying in %.1fs (attempt %d/%d): %s",
                        backoff,
                        attempt + 1,
                        max_retries,
                        exc,
                    )
                    time.sleep(backoff)

                except requests.RequestException as exc:
                    # Broken bodies, redirect loops, bad URLs: retrying will not help.
                    logger.error("Request failed: %s: %s", type(exc).__name__, exc)
                    raise ApiNetworkError(f"Request failed: {type(exc).__name__}: {exc}") from exc

            raise ApiError("Retry loop exhausted unexpectedly")  # pragma: no cover

        return wrapper  # type: ignore[return-value]

    return decorator
