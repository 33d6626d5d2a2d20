"""
External collaborator adapters.

Implementations:
    - PgToolsTransferAdapter: pg_dump / pg_restore / pg_dumpall / psql subprocesses
    - PostgreSQLCountAdapter, PostgreSQLServerAdapter: SQLAlchemy + asyncpg
    - InMemory*Adapter: Fakes for tests
"""

from pgmigrate.adapters.in_memory import (
    InMemoryCountAdapter,
    InMemoryServerAdapter,
    InMemoryTransferAdapter,
)
from pgmigrate.adapters.interface import CountAdapter, ServerAdapter, TransferAdapter
from pgmigrate.adapters.pgtools import PgToolsTransferAdapter, run_external
from pgmigrate.adapters.postgresql import (
    RESERVED_DATABASES,
    PostgreSQLCountAdapter,
    PostgreSQLServerAdapter,
)

__all__ = [
    "TransferAdapter",
    "CountAdapter",
    "ServerAdapter",
    "PgToolsTransferAdapter",
    "run_external",
    "PostgreSQLCountAdapter",
    "PostgreSQLServerAdapter",
    "RESERVED_DATABASES",
    "InMemoryTransferAdapter",
    "InMemoryCountAdapter",
    "InMemoryServerAdapter",
]
