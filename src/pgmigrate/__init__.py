"""
pgmigrate - Resumable PostgreSQL server-to-server migration.

This library provides:
- Discovery of the databases to migrate, smallest first
- Parallel, bounded dump and restore phases using the PostgreSQL client tools
- Stage markers so an interrupted run resumes without redoing work
- Row count snapshots and per-table verification reports
- A settings bracket that tunes the destination for the bulk load
- Cooperative cancellation of in-flight tools on SIGINT/SIGTERM
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pgmigrate-py")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from pgmigrate.adapters import (
    CountAdapter,
    InMemoryCountAdapter,
    InMemoryServerAdapter,
    InMemoryTransferAdapter,
    PgToolsTransferAdapter,
    PostgreSQLCountAdapter,
    PostgreSQLServerAdapter,
    ServerAdapter,
    TransferAdapter,
)
from pgmigrate.bracket import SettingsBracket
from pgmigrate.cancellation import CancellationToken
from pgmigrate.config import DEFAULT_TUNING_SETTINGS, ConnectionParams, RunConfig
from pgmigrate.controller import PipelineController
from pgmigrate.discovery import discover_units
from pgmigrate.exceptions import (
    CancellationError,
    ConnectivityError,
    ExternalOperationError,
    MigrationError,
    PersistenceError,
    VerificationMismatchError,
)
from pgmigrate.globals import filter_global_statements, migrate_globals
from pgmigrate.markers import (
    FileMarkerStore,
    InMemoryMarkerStore,
    MarkerStore,
    SQLiteMarkerStore,
)
from pgmigrate.models import PhaseResult, RunResult, Side, Stage, Unit, UnitState
from pgmigrate.scheduler import BoundedScheduler
from pgmigrate.snapshots import (
    FileSnapshotStore,
    InMemorySnapshotStore,
    Snapshot,
    SnapshotStore,
    SQLiteSnapshotStore,
    load_or_capture,
)
from pgmigrate.verification import (
    MISSING,
    ReportRow,
    RowStatus,
    VerificationReport,
    render_report,
    verify,
)

__all__ = [
    "__version__",
    # Configuration
    "ConnectionParams",
    "RunConfig",
    "DEFAULT_TUNING_SETTINGS",
    # Models
    "Stage",
    "Side",
    "UnitState",
    "Unit",
    "PhaseResult",
    "RunResult",
    # Exceptions
    "MigrationError",
    "ConnectivityError",
    "ExternalOperationError",
    "CancellationError",
    "VerificationMismatchError",
    "PersistenceError",
    # Stores
    "MarkerStore",
    "InMemoryMarkerStore",
    "FileMarkerStore",
    "SQLiteMarkerStore",
    "Snapshot",
    "SnapshotStore",
    "InMemorySnapshotStore",
    "FileSnapshotStore",
    "SQLiteSnapshotStore",
    "load_or_capture",
    # Adapters
    "TransferAdapter",
    "CountAdapter",
    "ServerAdapter",
    "PgToolsTransferAdapter",
    "PostgreSQLCountAdapter",
    "PostgreSQLServerAdapter",
    "InMemoryTransferAdapter",
    "InMemoryCountAdapter",
    "InMemoryServerAdapter",
    # Engine
    "CancellationToken",
    "BoundedScheduler",
    "SettingsBracket",
    "PipelineController",
    "discover_units",
    "filter_global_statements",
    "migrate_globals",
    # Verification
    "MISSING",
    "RowStatus",
    "ReportRow",
    "VerificationReport",
    "verify",
    "render_report",
]
