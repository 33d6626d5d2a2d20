"""
Unit tests for discover_units().
"""

import pytest

from pgmigrate.adapters import InMemoryServerAdapter
from pgmigrate.config import ConnectionParams
from pgmigrate.discovery import discover_units
from pgmigrate.exceptions import ConnectivityError

MB = 1024 * 1024


class TestDiscoverUnits:
    """Tests for discovery ordering and filtering."""

    @pytest.mark.asyncio
    async def test_ascending_by_size(self) -> None:
        """Sizes 10MB, 1MB, 100MB come back as 1MB, 10MB, 100MB."""
        server = InMemoryServerAdapter({"ten": 10 * MB, "one": 1 * MB, "hundred": 100 * MB})

        units = await discover_units(server, ConnectionParams())

        assert [unit.size_bytes for unit in units] == [1 * MB, 10 * MB, 100 * MB]
        assert [unit.name for unit in units] == ["one", "ten", "hundred"]

    @pytest.mark.asyncio
    async def test_ties_broken_by_name(self) -> None:
        server = InMemoryServerAdapter({"b": 5, "a": 5, "c": 1})

        units = await discover_units(server, ConnectionParams())

        assert [unit.name for unit in units] == ["c", "a", "b"]

    @pytest.mark.asyncio
    async def test_reserved_databases_excluded(self) -> None:
        server = InMemoryServerAdapter(
            {"postgres": 1, "template0": 1, "template1": 1, "orders": 2}
        )

        units = await discover_units(server, ConnectionParams())

        assert [unit.name for unit in units] == ["orders"]

    @pytest.mark.asyncio
    async def test_empty_is_valid(self) -> None:
        """A server with nothing to migrate yields an empty list."""
        units = await discover_units(InMemoryServerAdapter({}), ConnectionParams())

        assert units == []

    @pytest.mark.asyncio
    async def test_unreachable_source(self) -> None:
        server = InMemoryServerAdapter({"orders": 1}, unreachable=True)

        with pytest.raises(ConnectivityError) as exc_info:
            await discover_units(server, ConnectionParams(host="old-db"))

        assert exc_info.value.side == "source"
