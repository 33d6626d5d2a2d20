"""
Shared pytest fixtures for the pgmigrate tests.

This module provides:
- Configuration fixtures (run_config) rooted in a temporary directory
- Store fixtures (markers, snapshots) using the in-memory implementations
- Adapter fixtures (transfer, counts, server) using the in-memory fakes
- A shared journal recording the order of operations across the fakes
- A cancellation token per test
"""

from __future__ import annotations

from pathlib import Path

import pytest

from pgmigrate.adapters import InMemoryCountAdapter, InMemoryServerAdapter, InMemoryTransferAdapter
from pgmigrate.cancellation import CancellationToken
from pgmigrate.config import ConnectionParams, RunConfig
from pgmigrate.markers import InMemoryMarkerStore
from pgmigrate.snapshots import InMemorySnapshotStore

# Source catalogue used by most pipeline tests: name -> size in bytes
DATABASES = {
    "orders": 10 * 1024 * 1024,
    "users": 1024 * 1024,
    "events": 100 * 1024 * 1024,
}

SOURCE_COUNTS = {
    "orders": {"public.orders": "5", "public.items": "12"},
    "users": {"public.users": "10"},
    "events": {"public.events": "1000", "audit.log": "0"},
}


@pytest.fixture
def run_config(tmp_path: Path) -> RunConfig:
    """RunConfig with all state rooted in tmp_path and small ceilings."""
    return RunConfig(
        source=ConnectionParams(host="old-db", password="old-secret"),
        destination=ConnectionParams(host="new-db", user="migrator", password="new-secret"),
        dump_parallelism=2,
        restore_parallelism=2,
        dump_jobs=4,
        restore_jobs=2,
        dump_root=tmp_path / "dumps",
        state_dir=tmp_path / "state",
        verify_dir=tmp_path / "verify",
    )


@pytest.fixture
def token() -> CancellationToken:
    """Fresh cancellation token."""
    return CancellationToken()


@pytest.fixture
def markers() -> InMemoryMarkerStore:
    return InMemoryMarkerStore()


@pytest.fixture
def snapshots() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def journal() -> list[str]:
    """Operation log shared by the in-memory adapters."""
    return []


@pytest.fixture
def transfer(journal: list[str]) -> InMemoryTransferAdapter:
    return InMemoryTransferAdapter(delay=0.01, journal=journal)


@pytest.fixture
def counts(journal: list[str]) -> InMemoryCountAdapter:
    return InMemoryCountAdapter(SOURCE_COUNTS, journal=journal)


@pytest.fixture
def server(journal: list[str]) -> InMemoryServerAdapter:
    return InMemoryServerAdapter(DATABASES, journal=journal)
