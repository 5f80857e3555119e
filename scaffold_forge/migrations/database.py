"""
SQLAlchemy-backed transactional executor used by the migration engine.

Each migration script runs inside one ``Engine.begin()`` block: the block
commits when it exits normally and rolls back on any exception, including
KeyboardInterrupt, so a script is never left half-applied.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Union

from sqlalchemy import create_engine, event, make_url
from sqlalchemy.engine import Connection, Engine

from .dialects import dialect_for_url

logger = logging.getLogger(__name__)


def enable_sqlite_transactional_ddl(engine: Engine) -> None:
    """
    Make pysqlite honour BEGIN/ROLLBACK around DDL.

    By default the driver only opens transactions for DML, which would let a
    CREATE TABLE survive the rollback of a failed script.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(connection):
        connection.exec_driver_sql("BEGIN")


def resolve_sqlite_path(url: str, root: Union[str, Path]) -> str:
    """
    Anchor a relative SQLite database path at the project root and make sure
    its directory exists. Other URLs are returned unchanged.
    """
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite" or not parsed.database or parsed.database == ":memory:":
        return url

    database = Path(parsed.database)
    if not database.is_absolute():
        database = Path(root) / database
    database.parent.mkdir(parents=True, exist_ok=True)
    return parsed.set(database=str(database)).render_as_string(hide_password=False)


def create_database_engine(url: str, echo: bool = False) -> Engine:
    """Create an Engine for ``url``, configured for transactional migrations."""
    engine = create_engine(url, echo=echo)
    if engine.dialect.name == "sqlite":
        enable_sqlite_transactional_ddl(engine)
    logger.debug(f"Created database engine for {engine.url.render_as_string(hide_password=True)}")
    return engine


class Transaction:
    """Handle for the statements of one script; wraps an open connection."""

    def __init__(self, connection: Connection):
        self.connection = connection
        self.executed: List[str] = []

    def execute(self, sql: str) -> None:
        logger.debug(f"SQL: {sql}")
        # exec_driver_sql skips bind-parameter parsing of ':' in raw SQL
        self.connection.exec_driver_sql(sql)
        self.executed.append(sql)


class Database:
    """The migration target database."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> "Database":
        return cls(create_database_engine(url, echo=echo))

    @property
    def dialect(self) -> str:
        return dialect_for_url(self.engine.url)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        with self.engine.begin() as connection:
            yield Transaction(connection)

    def dispose(self) -> None:
        self.engine.dispose()
