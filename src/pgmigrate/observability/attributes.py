"""
Standard span attributes for pgmigrate.

This module defines attribute constants used across all pgmigrate components
for consistent span naming. These follow OpenTelemetry semantic conventions
where applicable.

Example:
    >>> from pgmigrate.observability.attributes import ATTR_UNIT_NAME, ATTR_STAGE
    >>>
    >>> with tracer.span(
    ...     "pgmigrate.scheduler.run_task",
    ...     {ATTR_UNIT_NAME: unit.name, ATTR_STAGE: stage.value},
    ... ):
    ...     pass
"""

# =============================================================================
# Unit Attributes
# =============================================================================

ATTR_UNIT_NAME = "pgmigrate.unit.name"
"""Name of the unit (database) being migrated (string)."""

ATTR_UNIT_COUNT = "pgmigrate.unit.count"
"""Number of units involved in an operation (integer)."""

# =============================================================================
# Pipeline Attributes
# =============================================================================

ATTR_STAGE = "pgmigrate.stage"
"""Pipeline stage: 'dump', 'restore', 'verify' or 'globals' (string)."""

ATTR_SIDE = "pgmigrate.side"
"""Snapshot side: 'source' or 'destination' (string)."""

ATTR_CONCURRENCY_LIMIT = "pgmigrate.concurrency.limit"
"""Permit ceiling of the bounded scheduler for a phase (integer)."""

ATTR_UNITS_SKIPPED = "pgmigrate.units.skipped"
"""Number of units skipped because their marker already exists (integer)."""

ATTR_TABLE_COUNT = "pgmigrate.table.count"
"""Number of tables in a snapshot or report (integer)."""

ATTR_MISMATCH = "pgmigrate.verification.mismatch"
"""Whether a verification report contains a mismatch (boolean)."""

ATTR_SETTING_COUNT = "pgmigrate.settings.count"
"""Number of server settings applied or reverted (integer)."""

# =============================================================================
# External Operation Attributes
# =============================================================================

ATTR_OPERATION = "pgmigrate.operation"
"""Name of the external operation, e.g. 'pg_dump' (string)."""

ATTR_JOBS = "pgmigrate.operation.jobs"
"""Parallelism hint passed to the external operation (integer)."""

# =============================================================================
# Database Attributes (OpenTelemetry Semantic Conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier, always 'postgresql' here (string)."""

ATTR_DB_NAME = "db.name"
"""Database name (string)."""

ATTR_SERVER_ADDRESS = "server.address"
"""Host name of the server being addressed (string)."""

# =============================================================================
# Error Attributes
# =============================================================================

ATTR_ERROR_TYPE = "error.type"
"""Exception class name when an operation fails (string)."""


__all__ = [
    "ATTR_UNIT_NAME",
    "ATTR_UNIT_COUNT",
    "ATTR_STAGE",
    "ATTR_SIDE",
    "ATTR_CONCURRENCY_LIMIT",
    "ATTR_UNITS_SKIPPED",
    "ATTR_TABLE_COUNT",
    "ATTR_MISMATCH",
    "ATTR_SETTING_COUNT",
    "ATTR_OPERATION",
    "ATTR_JOBS",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_NAME",
    "ATTR_SERVER_ADDRESS",
    "ATTR_ERROR_TYPE",
]
