"""Ordered "first success wins" access across TT backends.

A TT resource can be reached three ways: the primary API, a secondary
(admin) API, and the database directly.  Instead of nesting exception
handlers, each way is a named :class:`AccessStrategy`, and
:class:`FallbackAccessor` runs them in order:

- a strategy succeeds when it returns without raising (and, if the
  caller requires it, returns a non-empty collection);
- the first success is returned and no lower-priority strategy runs;
- every attempt is recorded, so callers can log which path served them;
- exceptions listed in ``stop_on`` (e.g. "record not found") are a
  definitive answer and end the chain without trying other strategies.

:class:`DestinationAccess` builds the standard strategy lists for the
TT record kinds.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence, Sized
from dataclasses import dataclass, field
from typing import Any, Generic, Mapping, TypeVar

from btc_import.clients.exceptions import ApiError, ApiNotFoundError
from btc_import.clients.store import DirectStore
from btc_import.clients.tt import TTClient
from btc_import.exceptions import AccessError, RecordNotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")

EMPTY_RESULT = "empty result"


@dataclass(frozen=True)
class AccessStrategy(Generic[T]):
    """One named way of performing an operation."""

    name: str
    operation: Callable[[], T]


@dataclass(frozen=True)
class AccessAttempt:
    """Outcome of running one strategy.

    Attributes:
        method: Strategy name.
        success: Whether this strategy produced the result.
        count: Size of the result when it is a collection, else ``-1``.
        error: Failure reason, ``None`` on success.
        status: HTTP status of the failure, if any.
    """

    method: str
    success: bool
    count: int = -1
    error: str | None = None
    status: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "success": self.success,
            "count": self.count,
            "error": self.error,
            "status": self.status,
        }


@dataclass(frozen=True)
class AccessResult(Generic[T]):
    """What a :meth:`FallbackAccessor.run` call produced.

    Attributes:
        value: The winning strategy's return value, ``None`` on failure.
        method: The winning strategy's name, ``None`` on failure.
        attempts: Every attempt, in execution order.
        terminal_error: The ``stop_on`` exception that ended the chain.
    """

    value: T | None = None
    method: str | None = None
    attempts: tuple[AccessAttempt, ...] = ()
    terminal_error: Exception | None = field(default=None, compare=False)

    @property
    def success(self) -> bool:
        return self.method is not None

    @property
    def exhausted_empty(self) -> bool:
        """``True`` when every strategy ran fine but found nothing."""
        return (
            not self.success
            and self.terminal_error is None
            and bool(self.attempts)
            and all(a.error == EMPTY_RESULT for a in self.attempts)
        )

    def raise_for_failure(self) -> T:
        """Return ``value`` or raise :class:`AccessError` naming each attempt."""
        if self.success:
            return self.value  # type: ignore[return-value]
        if self.terminal_error is not None:
            raise self.terminal_error
        summary = "; ".join(f"{a.method}: {a.error}" for a in self.attempts) or "no strategies"
        raise AccessError(f"All access strategies failed ({summary})", attempts=self.attempts)


class FallbackAccessor:
    """Runs :class:`AccessStrategy` lists in priority order.

    Args:
        stop_on: Exception types that end the chain immediately.
    """

    def __init__(self, stop_on: tuple[type[Exception], ...] = ()) -> None:
        self._stop_on = stop_on

    def run(
        self,
        strategies: Sequence[AccessStrategy[T]],
        require_non_empty: bool = False,
        label: str = "",
    ) -> AccessResult[T]:
        """Execute *strategies* until one succeeds.

        Args:
            strategies: Strategies in priority order.
            require_non_empty: Treat an empty collection as a failure and
                move on to the next strategy.
            label: Operation name for log messages.

        Returns:
            An :class:`AccessResult`; never raises for strategy failures.
        """
        attempts: list[AccessAttempt] = []

        for strategy in strategies:
            try:
                value = strategy.operation()
            except self._stop_on as exc:
                attempts.append(
                    AccessAttempt(strategy.name, False, error=str(exc), status=_status_of(exc))
                )
                logger.info("%s: %s gave a definitive answer: %s", label, strategy.name, exc)
                return AccessResult(attempts=tuple(attempts), terminal_error=exc)
            except Exception as exc:
                attempts.append(
                    AccessAttempt(strategy.name, False, error=str(exc), status=_status_of(exc))
                )
                logger.warning("%s: strategy %s failed: %s", label, strategy.name, exc)
                continue

            count = len(value) if isinstance(value, Sized) else -1
            if require_non_empty and count == 0:
                attempts.append(AccessAttempt(strategy.name, False, count=0, error=EMPTY_RESULT))
                logger.info("%s: strategy %s returned nothing", label, strategy.name)
                continue

            attempts.append(AccessAttempt(strategy.name, True, count=count))
            if len(attempts) > 1:
                logger.info("%s: served by fallback strategy %s", label, strategy.name)
            return AccessResult(value=value, method=strategy.name, attempts=tuple(attempts))

        return AccessResult(attempts=tuple(attempts))


def _status_of(exc: Exception) -> int | None:
    return exc.status_code if isinstance(exc, ApiError) else None


# ---------------------------------------------------------------------------
# TT destination strategies
# ---------------------------------------------------------------------------


class DestinationAccess:
    """Standard strategy chains over the TT backends.

    Args:
        primary: Client for the primary TT API.
        secondary: Optional client for the secondary (admin) TT API.
        store: Optional direct-store fallback.
    """

    def __init__(
        self,
        primary: TTClient,
        secondary: TTClient | None = None,
        store: DirectStore | None = None,
    ) -> None:
        self.primary = primary
        self.secondary = secondary
        self.store = store
        self._accessor = FallbackAccessor()
        self._delete_accessor = FallbackAccessor(stop_on=(ApiNotFoundError, RecordNotFoundError))

    def find(
        self,
        kind: str,
        filters: Mapping[str, str] | None = None,
        require_non_empty: bool = False,
    ) -> AccessResult[list[dict[str, Any]]]:
        """List records of *kind* through primary, secondary, then store."""
        query = dict(filters or {})
        strategies: list[AccessStrategy[list[dict[str, Any]]]] = [
            AccessStrategy("primary_api", lambda: self.primary.list_records(kind, query)),
        ]
        if self.secondary is not None:
            secondary = self.secondary
            strategies.append(
                AccessStrategy("secondary_api", lambda: secondary.list_records(kind, query))
            )
        if self.store is not None:
            store = self.store
            strategies.append(AccessStrategy("direct_store", lambda: store.find(kind, query)))
        return self._accessor.run(strategies, require_non_empty=require_non_empty, label=f"find {kind}")

    def delete(self, kind: str, identifier: str) -> AccessResult[None]:
        """Delete one record, falling back across backends.

        A "not found" answer from any backend ends the chain; it is
        reported through ``terminal_error``.
        """
        strategies: list[AccessStrategy[None]] = [
            AccessStrategy("primary_api", lambda: self.primary.delete_record(kind, identifier)),
        ]
        if self.secondary is not None:
            secondary = self.secondary
            strategies.append(
                AccessStrategy("secondary_api", lambda: secondary.delete_record(kind, identifier))
            )
        if self.store is not None:
            store = self.store

            def _store_delete() -> None:
                if store.delete(kind, identifier) == 0:
                    raise RecordNotFoundError(f"{kind} {identifier} not found in direct store")

            strategies.append(AccessStrategy("direct_store", _store_delete))
        return self._delete_accessor.run(strategies, label=f"delete {kind} {identifier}")

    def create(self, kind: str, record: Mapping[str, Any]) -> dict[str, Any]:
        """Create a record through the primary API only."""
        return self.primary.create_record(kind, record)
