"""
Persistent version ledgers.

A ledger is the append-only, ordered record of applied migration ids. Two
stores are provided:

* ``SqlLedgerStore`` keeps the ledger in a table of the target database, so
  the ledger row is written inside the same transaction as the script.
* ``FileLedgerStore`` keeps one id per line in a text file.

Both guard concurrent migrators with an exclusive lock whose acquisition
polls with a bounded timeout and raises ``LedgerLocked`` when it expires.
"""

import logging
import os
import socket
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    delete,
    func,
    insert,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from ..constants import DefaultConfig, LedgerDefaults
from ..exceptions import LedgerLocked, MigrationError

logger = logging.getLogger(__name__)


def default_holder() -> str:
    """Identify this process as ``host:pid``."""
    return f"{socket.gethostname()}:{os.getpid()}"


class LedgerStore:
    """
    Interface shared by the ledger stores.

    ``append``/``remove`` accept the open script transaction; stores that
    live in the target database write through it, others ignore it.
    """

    def __init__(
        self,
        lock_timeout: float = DefaultConfig.LOCK_TIMEOUT,
        poll_interval: float = DefaultConfig.LOCK_POLL_INTERVAL,
        holder: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.lock_timeout = lock_timeout
        self.poll_interval = poll_interval
        self.holder = holder or default_holder()
        self._sleep = sleep
        self._locked = False

    def list(self) -> List[str]:
        raise NotImplementedError

    def append(self, migration_id: str, transaction=None) -> None:
        raise NotImplementedError

    def remove(self, migration_id: str, transaction=None) -> None:
        raise NotImplementedError

    def _try_lock(self) -> bool:
        raise NotImplementedError

    def _release(self) -> None:
        raise NotImplementedError

    def current_holder(self) -> Optional[str]:
        return None

    @property
    def is_locked(self) -> bool:
        return self._locked

    def current_version(self) -> Optional[str]:
        ids = self.list()
        return ids[-1] if ids else None

    def lock(self) -> None:
        """
        Acquire the exclusive migrator lock.

        Raises:
            LedgerLocked: If another holder keeps the lock past ``lock_timeout``.
        """
        deadline = time.monotonic() + self.lock_timeout
        while True:
            if self._try_lock():
                self._locked = True
                logger.debug(f"Ledger lock acquired by {self.holder}")
                return
            if time.monotonic() >= deadline:
                holder = self.current_holder()
                raise LedgerLocked(
                    "Another migration run holds the ledger lock",
                    holder=holder,
                    timeout=self.lock_timeout,
                )
            self._sleep(self.poll_interval)

    def unlock(self) -> None:
        if not self._locked:
            return
        self._release()
        self._locked = False
        logger.debug(f"Ledger lock released by {self.holder}")

    def force_unlock(self) -> Optional[str]:
        """
        Remove the lock whoever holds it and return the previous holder.

        For locks left behind by a migrator that was killed mid-run; never
        call it while another migration run may still be active.
        """
        holder = self.current_holder()
        self._force_release()
        self._locked = False
        if holder:
            logger.warning(f"Removed ledger lock held by {holder}")
        return holder

    def _force_release(self) -> None:
        raise NotImplementedError

    @contextmanager
    def locked(self) -> Iterator["LedgerStore"]:
        self.lock()
        try:
            yield self
        finally:
            self.unlock()

    def _check_append(self, migration_id: str, existing: List[str]) -> None:
        if migration_id in existing:
            raise MigrationError(
                f"Migration {migration_id} is already recorded in the ledger",
                migration_id=migration_id,
            )

    def _check_remove(self, migration_id: str, existing: List[str]) -> None:
        if migration_id not in existing:
            raise MigrationError(
                f"Migration {migration_id} is not recorded in the ledger",
                migration_id=migration_id,
            )


class FileLedgerStore(LedgerStore):
    """Ledger kept as a text file, one migration id per line."""

    def __init__(self, path: Path, **kwargs):
        super().__init__(**kwargs)
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + LedgerDefaults.LOCK_SUFFIX)

    def list(self) -> List[str]:
        if not self.path.exists():
            return []
        lines = self.path.read_text(encoding="utf-8").splitlines()
        return [line.strip() for line in lines if line.strip()]

    def _write(self, ids: List[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(f".{self.path.name}.tmp")
        content = "".join(f"{migration_id}\n" for migration_id in ids)
        temp_path.write_text(content, encoding="utf-8")
        os.replace(temp_path, self.path)

    def append(self, migration_id: str, transaction=None) -> None:
        ids = self.list()
        self._check_append(migration_id, ids)
        self._write(ids + [migration_id])

    def remove(self, migration_id: str, transaction=None) -> None:
        ids = self.list()
        self._check_remove(migration_id, ids)
        self._write([existing for existing in ids if existing != migration_id])

    def _try_lock(self) -> bool:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as lock_file:
            lock_file.write(self.holder)
        return True

    def _release(self) -> None:
        self.lock_path.unlink(missing_ok=True)

    def _force_release(self) -> None:
        # The lock file carries no owner check, so forcing is the same as releasing
        self._release()

    def current_holder(self) -> Optional[str]:
        try:
            return self.lock_path.read_text(encoding="utf-8").strip() or None
        except FileNotFoundError:
            return None


class SqlLedgerStore(LedgerStore):
    """Ledger kept in a table of the migration target database."""

    def __init__(
        self,
        engine: Engine,
        table_name: str = LedgerDefaults.TABLE_NAME,
        lock_table_name: str = LedgerDefaults.LOCK_TABLE_NAME,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.engine = engine
        self.metadata = MetaData()
        self.table = Table(
            table_name,
            self.metadata,
            Column("id", String(64), primary_key=True),
            Column("position", Integer, nullable=False),
            Column("applied_at", DateTime, nullable=False),
        )
        self.lock_table = Table(
            lock_table_name,
            self.metadata,
            Column("name", String(64), primary_key=True),
            Column("holder", String(255), nullable=False),
            Column("acquired_at", DateTime, nullable=False),
        )
        self._tables_ready = False

    def ensure_tables(self) -> None:
        if not self._tables_ready:
            self.metadata.create_all(self.engine, checkfirst=True)
            self._tables_ready = True

    @contextmanager
    def _connection(self, transaction) -> Iterator[Connection]:
        if transaction is not None:
            yield transaction.connection
        else:
            with self.engine.begin() as connection:
                yield connection

    def list(self) -> List[str]:
        self.ensure_tables()
        with self.engine.connect() as connection:
            rows = connection.execute(
                select(self.table.c.id).order_by(self.table.c.position)
            )
            return [row.id for row in rows]

    def append(self, migration_id: str, transaction=None) -> None:
        self.ensure_tables()
        with self._connection(transaction) as connection:
            existing = [row.id for row in connection.execute(select(self.table.c.id))]
            self._check_append(migration_id, existing)
            next_position = connection.execute(
                select(func.coalesce(func.max(self.table.c.position), 0) + 1)
            ).scalar_one()
            connection.execute(
                insert(self.table).values(
                    id=migration_id,
                    position=next_position,
                    applied_at=datetime.now(timezone.utc).replace(tzinfo=None),
                )
            )

    def remove(self, migration_id: str, transaction=None) -> None:
        self.ensure_tables()
        with self._connection(transaction) as connection:
            existing = [row.id for row in connection.execute(select(self.table.c.id))]
            self._check_remove(migration_id, existing)
            connection.execute(delete(self.table).where(self.table.c.id == migration_id))

    def _try_lock(self) -> bool:
        self.ensure_tables()
        try:
            with self.engine.begin() as connection:
                connection.execute(
                    insert(self.lock_table).values(
                        name=LedgerDefaults.LOCK_NAME,
                        holder=self.holder,
                        acquired_at=datetime.now(timezone.utc).replace(tzinfo=None),
                    )
                )
        except IntegrityError:
            return False
        return True

    def _release(self) -> None:
        with self.engine.begin() as connection:
            connection.execute(
                delete(self.lock_table).where(
                    self.lock_table.c.name == LedgerDefaults.LOCK_NAME,
                    self.lock_table.c.holder == self.holder,
                )
            )

    def _force_release(self) -> None:
        self.ensure_tables()
        with self.engine.begin() as connection:
            connection.execute(
                delete(self.lock_table).where(self.lock_table.c.name == LedgerDefaults.LOCK_NAME)
            )

    def current_holder(self) -> Optional[str]:
        self.ensure_tables()
        with self.engine.connect() as connection:
            return connection.execute(
                select(self.lock_table.c.holder).where(
                    self.lock_table.c.name == LedgerDefaults.LOCK_NAME
                )
            ).scalar_one_or_none()
