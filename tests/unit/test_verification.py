"""
Unit tests for the verification engine.

Tests cover:
- Row ordering and key union
- MISSING handling on either side
- Exact string comparison of counts
- Report rendering, plain and coloured
"""

import pytest

from pgmigrate.models import Side
from pgmigrate.snapshots import Snapshot
from pgmigrate.verification import (
    MISSING,
    RowStatus,
    VerificationReport,
    render_report,
    verify,
)


class TestVerify:
    """Tests for verify()."""

    def test_count_mismatch(self) -> None:
        """A differing count marks that row and the report as mismatched."""
        src = {"public.users": "10", "public.orders": "5"}
        dst = {"public.users": "10", "public.orders": "4"}

        report = verify("shop", src, dst)

        assert len(report.rows) == 2
        rows = {row.table: row for row in report.rows}
        assert rows["public.orders"].status == RowStatus.MISMATCH
        assert rows["public.users"].status == RowStatus.OK
        assert report.mismatch is True

    def test_missing_destination_table(self) -> None:
        """A table absent from the destination is reported as MISSING."""
        report = verify("shop", {"public.t1": "3"}, {})

        assert len(report.rows) == 1
        row = report.rows[0]
        assert row.table == "public.t1"
        assert row.source_count == "3"
        assert row.destination_count is MISSING
        assert row.status == RowStatus.MISMATCH
        assert report.mismatch is True

    def test_missing_source_table(self) -> None:
        """A table only present on the destination is a mismatch too."""
        report = verify("shop", {}, {"public.extra": "0"})

        assert report.rows[0].source_count is MISSING
        assert report.mismatch is True

    def test_all_equal(self) -> None:
        """Equal snapshots produce an OK report."""
        counts = {"public.a": "1", "public.b": "0"}

        report = verify("shop", counts, dict(counts))

        assert report.mismatch is False
        assert all(row.ok for row in report.rows)
        assert report.mismatched_rows == []

    def test_empty_snapshots(self) -> None:
        """Two empty snapshots verify cleanly with no rows."""
        report = verify("empty", {}, {})

        assert report.rows == ()
        assert report.mismatch is False

    def test_rows_sorted_by_table(self) -> None:
        """Rows are ordered lexicographically regardless of input order."""
        src = {"z.last": "1", "a.first": "1", "m.middle": "1"}
        dst = {"m.middle": "1", "b.only_dst": "2"}

        report = verify("shop", src, dst)

        assert [row.table for row in report.rows] == [
            "a.first",
            "b.only_dst",
            "m.middle",
            "z.last",
        ]

    def test_counts_compared_as_strings(self) -> None:
        """Counts are compared as captured, not as numbers."""
        report = verify("shop", {"public.t": "10"}, {"public.t": "010"})

        assert report.mismatch is True

    def test_accepts_snapshots(self) -> None:
        """Snapshots can be passed directly since they are mappings."""
        src = Snapshot("shop", Side.SOURCE, {"public.t": "7"})
        dst = Snapshot("shop", Side.DESTINATION, {"public.t": "7"})

        report = verify("shop", src, dst)

        assert report.mismatch is False

    def test_report_is_deterministic(self) -> None:
        """The same input always yields an equal report."""
        src = {"public.b": "2", "public.a": "1"}
        dst = {"public.a": "1"}

        assert verify("shop", src, dst) == verify("shop", src, dst)

    def test_to_dict(self) -> None:
        """to_dict renders MISSING as its name."""
        report = verify("shop", {"public.t1": "3"}, {})

        assert report.to_dict() == {
            "unit": "shop",
            "mismatch": True,
            "rows": [
                {
                    "table": "public.t1",
                    "source_count": "3",
                    "destination_count": "MISSING",
                    "status": "MISMATCH",
                }
            ],
        }


class TestRenderReport:
    """Tests for render_report()."""

    @pytest.fixture
    def mismatch_report(self) -> VerificationReport:
        return verify(
            "shop",
            {"public.users": "10", "public.orders": "5"},
            {"public.users": "10"},
        )

    def test_header(self, mismatch_report: VerificationReport) -> None:
        """The table starts with the unit name and column headers."""
        lines = render_report(mismatch_report).splitlines()

        assert lines[0] == "Verification for shop:"
        assert lines[1].startswith("Table Name")
        assert lines[1].endswith("| Status")
        assert "Source Rows" in lines[1]
        assert "Dest Rows" in lines[1]
        assert set(lines[2]) == {"-", "|"}

    def test_rows(self, mismatch_report: VerificationReport) -> None:
        """Each table gets one row with both counts and its status."""
        lines = render_report(mismatch_report).splitlines()

        orders = next(line for line in lines if line.startswith("public.orders"))
        assert [cell.strip() for cell in orders.split("|")] == [
            "public.orders",
            "5",
            "MISSING",
            "MISMATCH",
        ]

    def test_columns_aligned(self, mismatch_report: VerificationReport) -> None:
        """Separators line up across header and rows in plain mode."""
        lines = render_report(mismatch_report).splitlines()[1:]

        positions = {line.index("|") for line in lines}
        assert positions == {41}

    def test_summary_when_ok(self) -> None:
        """A clean report ends with a summary line."""
        report = verify("shop", {"public.a": "1"}, {"public.a": "1"})

        assert render_report(report).splitlines()[-1] == (
            "Verified shop: 1 tables, all rows match"
        )

    def test_no_summary_on_mismatch(self, mismatch_report: VerificationReport) -> None:
        """A mismatched report ends with its last table row."""
        assert render_report(mismatch_report).splitlines()[-1].startswith("public.users")

    def test_plain_has_no_escape_codes(self, mismatch_report: VerificationReport) -> None:
        """Plain mode never emits ANSI sequences."""
        assert "\x1b[" not in render_report(mismatch_report)

    def test_color_highlights_problems(self, mismatch_report: VerificationReport) -> None:
        """Colour mode wraps MISSING and statuses in ANSI sequences."""
        rendered = render_report(mismatch_report, color=True)

        assert "\x1b[31mMISMATCH" in rendered
        assert "\x1b[32mOK" in rendered
        assert "\x1b[31mMISSING" in rendered
