"""
Migration of cluster-wide global objects.

Roles and tablespaces do not belong to any database, so pg_dump does not
carry them; they are copied once per run with pg_dumpall --globals-only
before any unit is restored, so that restored objects find their owners.

The destination login role is filtered out of the script: replaying its
CREATE ROLE / ALTER ROLE would replace the destination password with the
source one and lock the migration out mid-run.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from pgmigrate._files import write_atomic
from pgmigrate.adapters.interface import TransferAdapter
from pgmigrate.cancellation import CancellationToken
from pgmigrate.exceptions import PersistenceError
from pgmigrate.markers.interface import MarkerStore
from pgmigrate.models import Stage

logger = logging.getLogger(__name__)

# Marker key of the cluster-wide step
GLOBALS_UNIT = "cluster"

TOLERATED_ERRORS: tuple[str, ...] = (
    "already exists",
    "MD5-encrypted password",
    "MD5 password support is deprecated",
)


def filter_global_statements(sql: str, user: str) -> str:
    """
    Drop the role statements that target a given login role.

    Args:
        sql: Output of pg_dumpall --globals-only
        user: Destination login role to preserve

    Returns:
        The script without CREATE ROLE / ALTER ROLE lines for user
    """
    kept = []
    for line in sql.splitlines():
        is_role_statement = line.startswith(("CREATE ROLE ", "ALTER ROLE "))
        if is_role_statement and (f" {user} " in line or line.endswith(f" {user};")):
            logger.info("Skipping migration of role %s to preserve its password", user)
            continue
        kept.append(line)
    return "\n".join(kept) + "\n"


def _filter_file(path: Path, user: str) -> None:
    sql = path.read_text(encoding="utf-8")
    write_atomic(path, filter_global_statements(sql, user).encode("utf-8"))


async def migrate_globals(
    transfer: TransferAdapter,
    markers: MarkerStore,
    path: Path,
    user: str,
    cancel: CancellationToken,
) -> bool:
    """
    Copy global objects from the source to the destination server.

    Statement errors reported while applying the script are logged; the
    expected ones (objects that already exist, MD5 password deprecation
    notices) at INFO, anything else as a WARNING. Neither stops the run.

    Args:
        transfer: Transfer adapter
        markers: Marker store; the step is skipped if already marked
        path: File receiving the globals script
        user: Destination login role, excluded from the script
        cancel: Run cancellation token

    Returns:
        True if the step ran, False if it was already done
    """
    if await markers.exists(GLOBALS_UNIT, Stage.GLOBALS):
        logger.info("Global objects already migrated, skipping")
        return False

    logger.info("Migrating global objects")
    cancel.raise_if_cancelled("pg_dumpall")
    await transfer.dump_globals(path, cancel)
    try:
        await asyncio.to_thread(_filter_file, path, user)
    except OSError as e:
        raise PersistenceError(
            f"Cannot rewrite globals script: {e}", key=GLOBALS_UNIT, path=str(path)
        ) from e

    errors = await transfer.restore_globals(path, cancel)
    for line in errors:
        if any(marker in line for marker in TOLERATED_ERRORS):
            logger.info("Ignoring globals notice: %s", line)
        else:
            logger.warning("Globals statement failed: %s", line)

    await markers.mark(GLOBALS_UNIT, Stage.GLOBALS)
    logger.info("Global objects migrated")
    return True


__all__ = [
    "GLOBALS_UNIT",
    "TOLERATED_ERRORS",
    "filter_global_statements",
    "migrate_globals",
]
