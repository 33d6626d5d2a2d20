"""
PostgreSQL count and server adapters.

Uses SQLAlchemy's asyncio extension on the asyncpg driver with raw
`text()` statements; there are no mapped tables, only catalogue queries
and utility commands.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pgmigrate.adapters._connection import connect
from pgmigrate.adapters.interface import CountAdapter, ServerAdapter
from pgmigrate.config import ConnectionParams
from pgmigrate.models import Side, Unit
from pgmigrate.observability import (
    ATTR_DB_NAME,
    ATTR_DB_SYSTEM,
    ATTR_OPERATION,
    ATTR_SERVER_ADDRESS,
    ATTR_SIDE,
    ATTR_TABLE_COUNT,
    ATTR_UNIT_COUNT,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)

RESERVED_DATABASES: tuple[str, ...] = ("postgres", "template0", "template1")

LIST_DATABASES_SQL = """
SELECT datname, pg_database_size(datname) AS size
FROM pg_database
WHERE datallowconn AND NOT datistemplate AND datname <> ALL(:reserved)
"""

LIST_TABLES_SQL = """
SELECT schemaname, relname, n_live_tup
FROM pg_stat_user_tables
ORDER BY schemaname, relname
"""


class PostgreSQLCountAdapter(CountAdapter):
    """
    CountAdapter issuing count(*) for every user table.

    Tables are discovered from pg_stat_user_tables and counted one at a
    time over a single connection. With exact=False the statistics
    estimate n_live_tup is used instead, which is instant but may lag
    behind a freshly restored database.

    Example:
        >>> counts = PostgreSQLCountAdapter()
        >>> await counts.count_tables(config.source.for_database("orders"))
        {'public.orders': '5', 'public.users': '10'}
    """

    def __init__(
        self,
        *,
        exact: bool = True,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._exact = exact

    async def count_tables(
        self,
        params: ConnectionParams,
        side: Side = Side.SOURCE,
    ) -> dict[str, str]:
        with self._tracer.span(
            "pgmigrate.counts.count_tables",
            {
                ATTR_SIDE: side.value,
                ATTR_DB_SYSTEM: "postgresql",
                ATTR_DB_NAME: params.database,
                ATTR_SERVER_ADDRESS: params.host,
            },
        ) as span:
            counts: dict[str, str] = {}
            async with connect(
                params, side, operation="count_tables", unit=params.database
            ) as conn:
                tables = (await conn.execute(text(LIST_TABLES_SQL))).all()
                preparer = conn.dialect.identifier_preparer
                for schema, table, estimate in tables:
                    if self._exact:
                        qualified = (
                            f"{preparer.quote_identifier(schema)}."
                            f"{preparer.quote_identifier(table)}"
                        )
                        result = await conn.execute(text(f"SELECT count(*) FROM {qualified}"))
                        rows = result.scalar_one()
                    else:
                        rows = estimate
                    counts[f"{schema}.{table}"] = str(int(rows))

            if span is not None:
                span.set_attribute(ATTR_TABLE_COUNT, len(counts))
            logger.debug(
                "Counted %d tables of %s on %s", len(counts), params.database, side.value
            )
            return counts


class PostgreSQLServerAdapter(ServerAdapter):
    """
    ServerAdapter for catalogue queries and server-level settings.

    ALTER SYSTEM and CREATE DATABASE cannot run inside a transaction block,
    so those statements use an AUTOCOMMIT connection. Setting keys and
    values are interpolated verbatim (values are SQL literals); both come
    from the run configuration, never from the servers.
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def list_databases(self, params: ConnectionParams) -> list[Unit]:
        with self._tracer.span(
            "pgmigrate.server.list_databases",
            {ATTR_DB_SYSTEM: "postgresql", ATTR_SERVER_ADDRESS: params.host},
        ) as span:
            async with connect(params, Side.SOURCE, operation="list_databases") as conn:
                result = await conn.execute(
                    text(LIST_DATABASES_SQL), {"reserved": list(RESERVED_DATABASES)}
                )
                units = [Unit(name=name, size_bytes=int(size)) for name, size in result.all()]
            if span is not None:
                span.set_attribute(ATTR_UNIT_COUNT, len(units))
            return units

    async def create_database(self, params: ConnectionParams, name: str) -> bool:
        with self._tracer.span(
            "pgmigrate.server.create_database",
            {ATTR_DB_NAME: name, ATTR_SERVER_ADDRESS: params.host},
        ):
            async with connect(
                params, Side.DESTINATION, operation="create_database", unit=name, autocommit=True
            ) as conn:
                quoted = conn.dialect.identifier_preparer.quote_identifier(name)
                try:
                    await conn.execute(text(f"CREATE DATABASE {quoted}"))
                except SQLAlchemyError as e:
                    if "already exists" not in str(e):
                        raise
                    logger.warning("Database %s already exists on the destination", name)
                    return False
            logger.info("Created database %s on the destination", name)
            return True

    async def set_setting(self, params: ConnectionParams, key: str, value: str) -> None:
        with self._tracer.span(
            "pgmigrate.server.set_setting",
            {ATTR_OPERATION: f"ALTER SYSTEM SET {key}", ATTR_SERVER_ADDRESS: params.host},
        ):
            async with connect(
                params, Side.DESTINATION, operation=f"set {key}", autocommit=True
            ) as conn:
                await conn.execute(text(f"ALTER SYSTEM SET {key} TO {value}"))

    async def reset_setting(self, params: ConnectionParams, key: str) -> None:
        with self._tracer.span(
            "pgmigrate.server.reset_setting",
            {ATTR_OPERATION: f"ALTER SYSTEM RESET {key}", ATTR_SERVER_ADDRESS: params.host},
        ):
            async with connect(
                params, Side.DESTINATION, operation=f"reset {key}", autocommit=True
            ) as conn:
                await conn.execute(text(f"ALTER SYSTEM RESET {key}"))

    async def reload_configuration(self, params: ConnectionParams) -> None:
        with self._tracer.span(
            "pgmigrate.server.reload_configuration",
            {ATTR_SERVER_ADDRESS: params.host},
        ):
            async with connect(
                params, Side.DESTINATION, operation="pg_reload_conf", autocommit=True
            ) as conn:
                await conn.execute(text("SELECT pg_reload_conf()"))


__all__ = [
    "PostgreSQLCountAdapter",
    "PostgreSQLServerAdapter",
    "RESERVED_DATABASES",
    "LIST_DATABASES_SQL",
    "LIST_TABLES_SQL",
]
