"""
Connection handling helper for the SQLAlchemy-backed adapters.

Each adapter call opens its own short-lived engine: the pipeline talks to
many databases on two servers, each only a few times per run, so pooling
would only keep idle connections open on servers under bulk load.

The `connect` async context manager:
- Creates an asyncpg engine for the given parameters (NullPool)
- Translates connection failures into ConnectivityError
- Translates statement failures into ExternalOperationError
- Disposes the engine on every exit path
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine
from sqlalchemy.pool import NullPool

from pgmigrate.config import ConnectionParams
from pgmigrate.exceptions import ConnectivityError, ExternalOperationError
from pgmigrate.models import Side

CONNECT_TIMEOUT_SECONDS = 30


def _describe(error: BaseException) -> str:
    # SQLAlchemy wraps driver errors; the driver message is the useful part
    orig = getattr(error, "orig", None)
    return str(orig if orig is not None else error).strip()


@asynccontextmanager
async def connect(
    params: ConnectionParams,
    side: Side,
    *,
    operation: str,
    unit: str | None = None,
    autocommit: bool = False,
) -> AsyncIterator[AsyncConnection]:
    """
    Open a connection to params.database.

    Args:
        params: Server and database to connect to
        side: Which server this is, for error reporting
        operation: Operation name used in ExternalOperationError
        unit: Unit the operation belongs to
        autocommit: Run statements outside a transaction. Required for
            ALTER SYSTEM and CREATE DATABASE.

    Yields:
        AsyncConnection ready for execute() calls

    Example:
        >>> async with connect(params, Side.SOURCE, operation="count_tables") as conn:
        ...     result = await conn.execute(text("SELECT 1"))
    """
    engine = create_async_engine(
        params.url(),
        poolclass=NullPool,
        connect_args={"timeout": CONNECT_TIMEOUT_SECONDS},
    )
    try:
        try:
            connection = await engine.connect()
        except (SQLAlchemyError, OSError, TimeoutError) as e:
            raise ConnectivityError(
                side.value,
                f"{params.host}:{params.port}/{params.database}",
                _describe(e),
                unit=unit,
            ) from e

        try:
            if autocommit:
                connection = await connection.execution_options(isolation_level="AUTOCOMMIT")
            yield connection
        except SQLAlchemyError as e:
            raise ExternalOperationError(operation, unit=unit, details=_describe(e)) from e
        finally:
            await connection.close()
    finally:
        await engine.dispose()


__all__ = ["connect", "CONNECT_TIMEOUT_SECONDS"]
