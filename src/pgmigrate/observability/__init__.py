"""
Observability utilities for pgmigrate.

This module provides the composition-based tracer and the standard span
attribute names used across all pgmigrate components.

Example:
    >>> from pgmigrate.observability import create_tracer
    >>>
    >>> class MyComponent:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
"""

from pgmigrate.observability.attributes import (
    ATTR_CONCURRENCY_LIMIT,
    ATTR_DB_NAME,
    ATTR_DB_SYSTEM,
    ATTR_ERROR_TYPE,
    ATTR_JOBS,
    ATTR_MISMATCH,
    ATTR_OPERATION,
    ATTR_SERVER_ADDRESS,
    ATTR_SETTING_COUNT,
    ATTR_SIDE,
    ATTR_STAGE,
    ATTR_TABLE_COUNT,
    ATTR_UNIT_COUNT,
    ATTR_UNIT_NAME,
    ATTR_UNITS_SKIPPED,
)
from pgmigrate.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer (composition-based API)
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Attributes
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
