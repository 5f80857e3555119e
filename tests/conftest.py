# File: tests/conftest.py
# Shared pytest fixtures: a fixed clock for deterministic migration ids and
# SQLite-backed databases in a temporary directory.

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Generator

import pytest

from scaffold_forge.migrations import Database, SqlLedgerStore


FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
FIXED_MIGRATION_ID = "20240102030405"


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return fixed_clock


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'test.sqlite3'}"


@pytest.fixture
def database(sqlite_url: str) -> Generator[Database, None, None]:
    db = Database.from_url(sqlite_url)
    yield db
    db.dispose()


@pytest.fixture
def sql_ledger(database: Database) -> SqlLedgerStore:
    return SqlLedgerStore(database.engine, lock_timeout=0.05, poll_interval=0.01, holder="test-host:1")
