"""
Command line entry point.

    pgmigrate --from-host old-db --to-host new-db --max-parallel 4

Every connection option can also be given through a PGMIGRATE_* environment
variable, which keeps passwords out of the process list. The exit status
is 0 when every database was migrated and verified (or there was nothing
to do) and 1 on any failure, including a verification mismatch and a
cancellation; the message tells them apart.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import typer

from pgmigrate.adapters import (
    PgToolsTransferAdapter,
    PostgreSQLCountAdapter,
    PostgreSQLServerAdapter,
)
from pgmigrate.cancellation import CancellationToken, register_signals, unregister_signals
from pgmigrate.config import DEFAULT_TUNING_SETTINGS, ConnectionParams, RunConfig
from pgmigrate.controller import PipelineController
from pgmigrate.exceptions import MigrationError
from pgmigrate.markers import FileMarkerStore, MarkerStore, SQLiteMarkerStore
from pgmigrate.models import RunResult
from pgmigrate.snapshots import FileSnapshotStore, SnapshotStore, SQLiteSnapshotStore
from pgmigrate.verification import render_report

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

app = typer.Typer(
    name="pgmigrate",
    help="Resumable PostgreSQL server-to-server migration with row count verification.",
    add_completion=False,
)


async def _open_stores(
    config: RunConfig,
    state_db: Path | None,
) -> tuple[MarkerStore, SnapshotStore]:
    if state_db is None:
        return (
            FileMarkerStore(config.state_dir, config.verify_dir),
            FileSnapshotStore(config.verify_dir),
        )
    state_db.parent.mkdir(parents=True, exist_ok=True)
    markers = SQLiteMarkerStore(str(state_db))
    snapshots = SQLiteSnapshotStore(str(state_db))
    await markers.initialize()
    await snapshots.initialize()
    return markers, snapshots


async def run_migration(
    config: RunConfig,
    *,
    state_db: Path | None = None,
    color: bool = False,
) -> RunResult:
    """
    Run a migration with the PostgreSQL adapters and signal handling.

    SIGINT and SIGTERM cancel the run; in-flight tools are killed and the
    next invocation resumes from the last completed stage.
    """
    token = CancellationToken()
    register_signals(token)
    try:
        markers, snapshots = await _open_stores(config, state_db)
        controller = PipelineController(
            config,
            transfer=PgToolsTransferAdapter(
                config.source, config.destination, dump_root=config.dump_root
            ),
            counts=PostgreSQLCountAdapter(),
            server=PostgreSQLServerAdapter(),
            markers=markers,
            snapshots=snapshots,
            cancel=token,
            report_sink=lambda report: typer.echo(render_report(report, color=color)),
        )
        return await controller.run()
    finally:
        unregister_signals()


@app.command()
def migrate(
    from_host: str = typer.Option("localhost", "--from-host", envvar="PGMIGRATE_FROM_HOST"),
    from_port: int = typer.Option(5432, "--from-port", envvar="PGMIGRATE_FROM_PORT"),
    from_user: str = typer.Option("postgres", "--from-user", envvar="PGMIGRATE_FROM_USER"),
    from_password: str = typer.Option(
        "", "--from-password", envvar="PGMIGRATE_FROM_PASSWORD", show_default=False
    ),
    from_db: str = typer.Option(
        "postgres", "--from-db", envvar="PGMIGRATE_FROM_DB", help="Maintenance database"
    ),
    to_host: str = typer.Option("localhost", "--to-host", envvar="PGMIGRATE_TO_HOST"),
    to_port: int = typer.Option(5432, "--to-port", envvar="PGMIGRATE_TO_PORT"),
    to_user: str = typer.Option("postgres", "--to-user", envvar="PGMIGRATE_TO_USER"),
    to_password: str = typer.Option(
        "", "--to-password", envvar="PGMIGRATE_TO_PASSWORD", show_default=False
    ),
    to_db: str = typer.Option(
        "postgres", "--to-db", envvar="PGMIGRATE_TO_DB", help="Maintenance database"
    ),
    max_parallel: int = typer.Option(
        6, "--max-parallel", "-p", min=1, help="Databases dumped concurrently"
    ),
    restore_parallel: int | None = typer.Option(
        None,
        "--restore-parallel",
        min=1,
        help="Databases restored concurrently [default: --max-parallel]",
    ),
    dump_jobs: int = typer.Option(24, "--dump-jobs", min=1, help="pg_dump -j per database"),
    restore_jobs: int = typer.Option(
        12, "--restore-jobs", min=1, help="pg_restore -j per database"
    ),
    dump_root: Path = typer.Option(Path("pg_dumps"), "--dump-root", help="Dump directory"),
    state_dir: Path = typer.Option(
        Path.home() / "pg_migrate_state", "--state-dir", help="Stage marker directory"
    ),
    verify_dir: Path = typer.Option(
        Path.home() / "pg_verify_state",
        "--verify-dir",
        help="Verification marker and row count directory",
    ),
    state_db: Path | None = typer.Option(
        None,
        "--state-db",
        help="Keep markers and row counts in this SQLite file instead of the state directories",
    ),
    migrate_globals: bool = typer.Option(
        True, "--migrate-globals/--skip-globals", help="Copy roles and tablespaces"
    ),
    skip_tuning: bool = typer.Option(
        False, "--skip-tuning", help="Leave destination server settings untouched"
    ),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
    no_color: bool = typer.Option(False, "--no-color", help="Plain verification reports"),
) -> None:
    """Migrate every database from the source server to the destination server."""
    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)

    try:
        config = RunConfig(
            source=ConnectionParams(
                host=from_host,
                port=from_port,
                user=from_user,
                password=from_password,
                database=from_db,
            ),
            destination=ConnectionParams(
                host=to_host,
                port=to_port,
                user=to_user,
                password=to_password,
                database=to_db,
            ),
            dump_parallelism=max_parallel,
            restore_parallelism=restore_parallel or max_parallel,
            dump_jobs=dump_jobs,
            restore_jobs=restore_jobs,
            dump_root=dump_root,
            state_dir=state_dir,
            verify_dir=verify_dir,
            migrate_globals=migrate_globals,
            skip_tuning=skip_tuning,
            tuning_settings=DEFAULT_TUNING_SETTINGS,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e

    color = not no_color and sys.stdout.isatty()
    try:
        result = asyncio.run(run_migration(config, state_db=state_db, color=color))
    except MigrationError as e:
        logger.error("%s", e)
        if e.suggested_action:
            logger.error("Suggested action: %s", e.suggested_action)
        raise typer.Exit(1) from None

    if result.units:
        typer.echo(f"Migrated and verified {len(result.units)} databases.")
    else:
        typer.echo("Nothing to migrate.")


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()


__all__ = ["app", "main", "migrate", "run_migration"]
