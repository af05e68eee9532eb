"""Direct-store access to the TT database, used as the last fallback.

When both TT APIs are unavailable, cleanup and entity lookups can read
(and cleanup can delete) straight from the database through SQLAlchemy.

Table names come from an explicit logical-to-physical mapping
(:data:`btc_import.config.DEFAULT_STORE_TABLES`).  Only when the mapped
table is missing does the store fall back to introspecting the schema for
case variants of the name; that fallback logs a warning so the mapping
can be corrected.

Tenant filtering follows a "narrow, then widen" policy: queries first
filter on the tenant column (``appId`` / ``app_id``); if that finds
nothing and widening is enabled, the query is repeated once without the
tenant filter and a WARNING records that rows from other tenants may have
been returned.

Every call opens its own engine and disposes it before returning,
whatever the outcome.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, MetaData, Table, create_engine, delete, inspect, select

logger = logging.getLogger(__name__)

_TENANT_COLUMNS = ("appId", "app_id")
_ID_COLUMNS = ("_id", "id")
_DEFAULT_LIMIT = 1000

# Historical physical names seen for each logical entity, beyond the
# generated case variants.
_KNOWN_ALIASES: Mapping[str, tuple[str, ...]] = {
    "users": ("userLogins", "userlogins", "UserLogins", "users"),
    "organizers": ("organizers", "Organizers"),
    "events": ("events", "Events"),
    "venues": ("venues", "Venues"),
}


class StoreTableNotFoundError(LookupError):
    """Raised when no physical table can be found for a logical entity."""


# ---------------------------------------------------------------------------
# Name variants
# ---------------------------------------------------------------------------


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head[:1].lower() + head[1:] + "".join(p[:1].upper() + p[1:] for p in rest)


def table_name_candidates(logical: str, configured: str) -> list[str]:
    """Candidate physical names for *logical*, most trusted first.

    The configured name comes first, then its exact/lower/Capitalized/
    snake/camel variants, then known historical aliases.

    Returns:
        De-duplicated candidates in priority order.
    """
    camel = _camel(configured)
    generated = [
        configured,
        configured.lower(),
        configured[:1].upper() + configured[1:],
        _snake(configured),
        camel,
        camel[:1].upper() + camel[1:],
    ]
    ordered = [*generated, *_KNOWN_ALIASES.get(logical, ())]
    return list(dict.fromkeys(ordered))


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class DirectStore:
    """SQLAlchemy-backed reader/deleter for TT tables.

    Args:
        url: SQLAlchemy database URL.
        tables: Logical-to-physical table name mapping.
        app_id: Tenant identifier for the narrow query.
        widen_tenant_filter: Whether to retry without the tenant filter
            when the narrow query finds nothing.
        engine_factory: Callable building an engine from *url*.  Tests can
            substitute a factory that counts or inspects engines.
    """

    def __init__(
        self,
        url: str,
        tables: Mapping[str, str],
        app_id: str,
        widen_tenant_filter: bool = True,
        engine_factory: Callable[[str], Engine] = create_engine,
    ) -> None:
        self._url = url
        self._tables = dict(tables)
        self._app_id = app_id
        self._widen = widen_tenant_filter
        self._engine_factory = engine_factory
        self.last_query_widened = False

    # ------------------------------------------------------------------
    # Connection scope
    # ------------------------------------------------------------------

    @contextmanager
    def _engine(self) -> Iterator[Engine]:
        engine = self._engine_factory(self._url)
        try:
            yield engine
        finally:
            engine.dispose()

    # ------------------------------------------------------------------
    # Table discovery
    # ------------------------------------------------------------------

    def resolve_table(self, engine: Engine, logical: str) -> Table:
        """Return the reflected table backing *logical*.

        Raises:
            StoreTableNotFoundError: If neither the configured name nor any
                case variant exists.
        """
        configured = self._tables.get(logical, logical)
        existing = set(inspect(engine).get_table_names())

        if configured in existing:
            physical = configured
        else:
            candidates = table_name_candidates(logical, configured)
            found = [name for name in candidates if name in existing]
            if not found:
                raise StoreTableNotFoundError(
                    f"No table for {logical!r}; tried {', '.join(candidates)}"
                )
            physical = found[0]
            logger.warning(
                "Configured table %r for %s not found; using %r. "
                "Update STORE_TABLES to silence this warning.",
                configured,
                logical,
                physical,
            )

        return Table(physical, MetaData(), autoload_with=engine)

    @staticmethod
    def _column(table: Table, names: tuple[str, ...]) -> Any:
        for name in names:
            if name in table.c:
                return table.c[name]
        return None

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def find(
        self,
        logical: str,
        filters: Mapping[str, Any] | None = None,
        limit: int = _DEFAULT_LIMIT,
    ) -> list[dict[str, Any]]:
        """Return rows of *logical* matching *filters*.

        Filters naming columns the table does not have are ignored (logged
        at DEBUG); callers re-check candidates themselves.

        Args:
            logical: Logical entity name (``"organizers"``...).
            filters: Column equality filters.
            limit: Maximum number of rows.

        Returns:
            Matching rows as plain dictionaries.
        """
        self.last_query_widened = False
        with self._engine() as engine:
            table = self.resolve_table(engine, logical)
            base = select(table).limit(limit)
            for column_name, value in (filters or {}).items():
                if column_name in table.c:
                    base = base.where(table.c[column_name] == value)
                else:
                    logger.debug("Ignoring filter on unknown column %s.%s", table.name, column_name)

            tenant = self._column(table, _TENANT_COLUMNS)
            with engine.connect() as conn:
                if tenant is None:
                    return [dict(row._mapping) for row in conn.execute(base)]

                rows = [dict(row._mapping) for row in conn.execute(base.where(tenant == self._app_id))]
                if rows or not self._widen:
                    return rows

                rows = [dict(row._mapping) for row in conn.execute(base)]
                if rows:
                    self.last_query_widened = True
                    logger.warning(
                        "No %s rows tagged %s=%s; returning %d row(s) found without "
                        "the tenant filter (may include other tenants)",
                        table.name,
                        tenant.name,
                        self._app_id,
                        len(rows),
                    )
                return rows

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(self, logical: str, identifier: str) -> int:
        """Delete the row of *logical* whose primary key is *identifier*.

        Applies the same narrow-then-widen tenant policy as :meth:`find`.

        Returns:
            Number of rows deleted (``0`` if the row was not found).
        """
        self.last_query_widened = False
        with self._engine() as engine:
            table = self.resolve_table(engine, logical)
            id_column = self._column(table, _ID_COLUMNS)
            if id_column is None:
                raise StoreTableNotFoundError(f"Table {table.name!r} has no _id/id column")

            tenant = self._column(table, _TENANT_COLUMNS)
            stmt = delete(table).where(id_column == identifier)
            with engine.begin() as conn:
                if tenant is not None:
                    deleted = conn.execute(stmt.where(tenant == self._app_id)).rowcount
                    if deleted or not self._widen:
                        return deleted
                deleted = conn.execute(stmt).rowcount
                if deleted and tenant is not None:
                    self.last_query_widened = True
                    logger.warning(
                        "Deleted %s row %s without the tenant filter (%s=%s did not match)",
                        table.name,
                        identifier,
                        tenant.name,
                        self._app_id,
                    )
                return deleted
