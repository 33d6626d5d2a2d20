"""
Run configuration for pgmigrate.

This module provides:
- ConnectionParams: Immutable connection parameters for one server
- RunConfig: Immutable, process-wide configuration of a migration run
- DEFAULT_TUNING_SETTINGS: Destination settings applied around the bulk load

A RunConfig is created once at startup and shared by reference across all
tasks; it is never mutated after construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from sqlalchemy.engine import URL

from pgmigrate._files import safe_name

# (key, value) pairs; values are SQL literals as accepted by ALTER SYSTEM SET
DEFAULT_TUNING_SETTINGS: tuple[tuple[str, str], ...] = (
    ("fsync", "off"),
    ("synchronous_commit", "off"),
    ("full_page_writes", "off"),
    ("maintenance_work_mem", "'2GB'"),
    ("checkpoint_completion_target", "0.9"),
)


@dataclass(frozen=True)
class ConnectionParams:
    """
    Connection parameters for a PostgreSQL server.

    The password is excluded from repr() and to_dict() so configurations
    can be logged safely.

    Attributes:
        host: Server host name or address.
        port: Server port.
        user: Login role.
        password: Login password.
        database: Maintenance database used for catalogue queries.

    Example:
        >>> params = ConnectionParams(host="old-db", password="secret")
        >>> params.for_database("orders").database
        'orders'
    """

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = field(default="", repr=False)
    database: str = "postgres"

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.host:
            raise ValueError("host must not be empty")
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")
        if not self.user:
            raise ValueError("user must not be empty")
        if not self.database:
            raise ValueError("database must not be empty")

    def for_database(self, database: str) -> ConnectionParams:
        """Return a copy of these parameters targeting another database."""
        return replace(self, database=database)

    def url(self, drivername: str = "postgresql+asyncpg") -> URL:
        """
        Build a SQLAlchemy URL for these parameters.

        Args:
            drivername: SQLAlchemy dialect+driver name.

        Returns:
            URL with credentials escaped.
        """
        return URL.create(
            drivername,
            username=self.user,
            password=self.password or None,
            host=self.host,
            port=self.port,
            database=self.database,
        )

    def cli_args(self) -> list[str]:
        """Connection arguments understood by the libpq command line tools."""
        return ["-h", self.host, "-p", str(self.port), "-U", self.user]

    def subprocess_env(self) -> dict[str, str]:
        """Environment additions that pass the password to libpq tools."""
        return {"PGPASSWORD": self.password}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, without the password."""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "database": self.database,
        }


@dataclass(frozen=True)
class RunConfig:
    """
    Configuration for a migration run.

    Attributes:
        source: Connection parameters of the server being migrated from.
        destination: Connection parameters of the server being migrated to.
        dump_parallelism: Max units dumped concurrently (dump phase ceiling).
        restore_parallelism: Max units restored concurrently (restore phase ceiling).
        dump_jobs: Parallel jobs hint passed to pg_dump for each unit.
        restore_jobs: Parallel jobs hint passed to pg_restore for each unit.
        dump_root: Directory holding one dump directory per unit.
        state_dir: Directory holding stage-completion markers.
        verify_dir: Directory holding verification markers and snapshots.
        migrate_globals: Whether to migrate roles and other global objects.
        skip_tuning: Whether to leave destination server settings untouched.
        tuning_settings: Settings applied to the destination around the load.

    Example:
        >>> config = RunConfig(
        ...     source=ConnectionParams(host="old-db"),
        ...     destination=ConnectionParams(host="new-db"),
        ...     dump_parallelism=4,
        ... )
        >>> config.restore_parallelism
        6
    """

    source: ConnectionParams = field(default_factory=ConnectionParams)
    destination: ConnectionParams = field(default_factory=ConnectionParams)
    dump_parallelism: int = 6
    restore_parallelism: int = 6
    dump_jobs: int = 24
    restore_jobs: int = 12
    dump_root: Path = field(default_factory=lambda: Path.home() / "pg_dumps")
    state_dir: Path = field(default_factory=lambda: Path.home() / "pg_migrate_state")
    verify_dir: Path = field(default_factory=lambda: Path.home() / "pg_verify_state")
    migrate_globals: bool = True
    skip_tuning: bool = False
    tuning_settings: tuple[tuple[str, str], ...] = DEFAULT_TUNING_SETTINGS

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.dump_parallelism < 1:
            raise ValueError(f"dump_parallelism must be >= 1, got {self.dump_parallelism}")

        if self.restore_parallelism < 1:
            raise ValueError(f"restore_parallelism must be >= 1, got {self.restore_parallelism}")

        if self.dump_jobs < 1:
            raise ValueError(f"dump_jobs must be >= 1, got {self.dump_jobs}")

        if self.restore_jobs < 1:
            raise ValueError(f"restore_jobs must be >= 1, got {self.restore_jobs}")

        keys = [key for key, _ in self.tuning_settings]
        if len(keys) != len(set(keys)):
            raise ValueError(f"tuning_settings contains duplicate keys: {keys}")

    def dump_path(self, unit: str) -> Path:
        """Directory that holds the dump of one unit."""
        return self.dump_root / safe_name(unit)

    @property
    def globals_path(self) -> Path:
        """File that holds the dump of global objects."""
        return self.dump_root / "globals.sql"

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for logging.

        Returns:
            Dictionary representation without passwords.
        """
        return {
            "source": self.source.to_dict(),
            "destination": self.destination.to_dict(),
            "dump_parallelism": self.dump_parallelism,
            "restore_parallelism": self.restore_parallelism,
            "dump_jobs": self.dump_jobs,
            "restore_jobs": self.restore_jobs,
            "dump_root": str(self.dump_root),
            "state_dir": str(self.state_dir),
            "verify_dir": str(self.verify_dir),
            "migrate_globals": self.migrate_globals,
            "skip_tuning": self.skip_tuning,
            "tuning_settings": [f"{key}={value}" for key, value in self.tuning_settings],
        }


__all__ = [
    "DEFAULT_TUNING_SETTINGS",
    "ConnectionParams",
    "RunConfig",
]
