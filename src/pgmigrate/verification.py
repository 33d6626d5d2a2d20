"""
Verification of a migrated unit.

Compares the source and destination row count snapshots of one unit and
produces a per-table report. Counts are compared exactly as captured
(string equality), never re-parsed as numbers; the snapshots guarantee
they are canonical decimals.

Usage:
    >>> report = verify("orders", {"public.orders": "5"}, {"public.orders": "4"})
    >>> report.mismatch
    True
    >>> print(render_report(report))
    Verification for orders:
    Table Name                               | Source Rows     | Dest Rows       | Status
    ...
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import typer

TABLE_WIDTH = 40
COUNT_WIDTH = 15


class Missing(Enum):
    """Sentinel type for a table absent from one side."""

    MISSING = "MISSING"

    def __str__(self) -> str:
        return self.value


MISSING = Missing.MISSING


class RowStatus(Enum):
    """Outcome of comparing one table."""

    OK = "OK"
    """Present on both sides with equal counts."""

    MISMATCH = "MISMATCH"
    """Counts differ, or the table is missing on one side."""


@dataclass(frozen=True)
class ReportRow:
    """
    Comparison of one table.

    Attributes:
        table: Qualified table name ("schema.table")
        source_count: Row count on the source, or MISSING
        destination_count: Row count on the destination, or MISSING
        status: OK iff both counts are present and equal
    """

    table: str
    source_count: str | Missing
    destination_count: str | Missing
    status: RowStatus

    @property
    def ok(self) -> bool:
        return self.status == RowStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "source_count": str(self.source_count),
            "destination_count": str(self.destination_count),
            "status": self.status.value,
        }


@dataclass(frozen=True)
class VerificationReport:
    """
    Verification result of one unit.

    Attributes:
        unit: Unit (database) name
        rows: One row per table of either side, ordered by table name
        mismatch: True if any row is not OK
    """

    unit: str
    rows: tuple[ReportRow, ...]
    mismatch: bool

    @property
    def mismatched_rows(self) -> list[ReportRow]:
        return [row for row in self.rows if not row.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit": self.unit,
            "mismatch": self.mismatch,
            "rows": [row.to_dict() for row in self.rows],
        }


def verify(
    unit: str,
    source: Mapping[str, str],
    destination: Mapping[str, str],
) -> VerificationReport:
    """
    Reconcile two row count snapshots of a unit.

    Every table present on either side gets one row; a table absent from
    one side is reported with MISSING for that side and never counts as
    OK. Rows are ordered lexicographically by table name.

    Args:
        unit: Unit (database) name
        source: Source snapshot (table -> count)
        destination: Destination snapshot (table -> count)

    Returns:
        The verification report
    """
    rows = []
    for table in sorted(set(source) | set(destination)):
        source_count = source.get(table, MISSING)
        destination_count = destination.get(table, MISSING)
        ok = (
            source_count is not MISSING
            and destination_count is not MISSING
            and source_count == destination_count
        )
        rows.append(
            ReportRow(
                table=table,
                source_count=source_count,
                destination_count=destination_count,
                status=RowStatus.OK if ok else RowStatus.MISMATCH,
            )
        )
    return VerificationReport(
        unit=unit,
        rows=tuple(rows),
        mismatch=any(not row.ok for row in rows),
    )


def _cell(value: str | Missing, width: int, color: bool) -> str:
    text = f"{value!s:<{width}}"
    if color and value is MISSING:
        return typer.style(text, fg=typer.colors.RED)
    return text


def render_report(report: VerificationReport, color: bool = False) -> str:
    """
    Render a report as the operator-facing table.

    Args:
        report: Report to render
        color: Highlight MISSING cells and statuses with ANSI colours

    Returns:
        Multi-line table, header first, without a trailing newline
    """
    lines = [
        f"Verification for {report.unit}:",
        f"{'Table Name':<{TABLE_WIDTH}} | {'Source Rows':<{COUNT_WIDTH}} | "
        f"{'Dest Rows':<{COUNT_WIDTH}} | Status",
        f"{'':-<{TABLE_WIDTH}}-|-{'':-<{COUNT_WIDTH}}-|-{'':-<{COUNT_WIDTH}}-|--------",
    ]
    for row in report.rows:
        status = row.status.value
        if color:
            status = typer.style(status, fg=typer.colors.GREEN if row.ok else typer.colors.RED)
        lines.append(
            f"{row.table:<{TABLE_WIDTH}} | "
            f"{_cell(row.source_count, COUNT_WIDTH, color)} | "
            f"{_cell(row.destination_count, COUNT_WIDTH, color)} | {status}"
        )
    if not report.mismatch:
        lines.append(f"Verified {report.unit}: {len(report.rows)} tables, all rows match")
    return "\n".join(lines)


__all__ = [
    "MISSING",
    "Missing",
    "RowStatus",
    "ReportRow",
    "VerificationReport",
    "verify",
    "render_report",
]
