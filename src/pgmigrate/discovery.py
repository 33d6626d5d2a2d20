"""
Discovery of the units to migrate.

Units are ordered smallest first: small databases finish quickly, which
surfaces systemic problems (credentials, disk space, missing roles) early
and gets as many units as possible through each phase before a large one
can fail late.
"""

from __future__ import annotations

import logging

from pgmigrate.adapters.interface import ServerAdapter
from pgmigrate.adapters.postgresql import RESERVED_DATABASES
from pgmigrate.config import ConnectionParams
from pgmigrate.models import Unit

logger = logging.getLogger(__name__)


async def discover_units(server: ServerAdapter, params: ConnectionParams) -> list[Unit]:
    """
    List the source databases to migrate, ascending by size.

    Reserved databases are excluded. Ties are broken by name so the order
    is deterministic.

    Args:
        server: Server adapter for the source
        params: Source connection parameters

    Returns:
        Units ordered by (size_bytes, name); empty if there is nothing to do

    Raises:
        ConnectivityError: If the source server is unreachable
    """
    units = [
        unit
        for unit in await server.list_databases(params)
        if unit.name not in RESERVED_DATABASES
    ]
    units.sort(key=lambda unit: (unit.size_bytes, unit.name))

    if units:
        logger.info(
            "Discovered %d databases to migrate: %s",
            len(units),
            ", ".join(unit.name for unit in units),
        )
    else:
        logger.info("No databases to migrate on %s", params.host)
    return units


__all__ = ["discover_units"]
