"""
Tests for the file and SQL ledger stores.
"""

import pytest

from scaffold_forge.exceptions import LedgerLocked, MigrationError
from scaffold_forge.migrations import FileLedgerStore, SqlLedgerStore


@pytest.fixture
def file_ledger(tmp_path):
    return FileLedgerStore(tmp_path / "ledger.txt", lock_timeout=0.05, poll_interval=0.01, holder="me:1")


@pytest.fixture(params=["file", "sql"])
def ledger(request, tmp_path):
    if request.param == "file":
        yield FileLedgerStore(tmp_path / "ledger.txt", lock_timeout=0.05, poll_interval=0.01, holder="me:1")
    else:
        yield request.getfixturevalue("sql_ledger")


def test_append_keeps_order(ledger):
    assert ledger.list() == []
    assert ledger.current_version() is None

    ledger.append("20240102000000")
    ledger.append("20240101000000")

    assert ledger.list() == ["20240102000000", "20240101000000"]
    assert ledger.current_version() == "20240101000000"


def test_remove(ledger):
    ledger.append("1")
    ledger.append("2")
    ledger.append("3")

    ledger.remove("2")

    assert ledger.list() == ["1", "3"]


def test_duplicate_append_rejected(ledger):
    ledger.append("1")

    with pytest.raises(MigrationError):
        ledger.append("1")
    assert ledger.list() == ["1"]


def test_remove_unknown_rejected(ledger):
    with pytest.raises(MigrationError):
        ledger.remove("1")


def test_lock_and_unlock(ledger):
    expected_holder = ledger.holder

    with ledger.locked():
        assert ledger.is_locked
        assert ledger.current_holder() == expected_holder
    assert not ledger.is_locked
    assert ledger.current_holder() is None


def test_file_lock_contention(file_ledger, tmp_path):
    other = FileLedgerStore(tmp_path / "ledger.txt", lock_timeout=0.05, poll_interval=0.01, holder="other:2")
    other.lock()

    with pytest.raises(LedgerLocked) as excinfo:
        file_ledger.lock()

    assert excinfo.value.context["holder"] == "other:2"
    assert excinfo.value.context["timeout"] == 0.05
    assert not file_ledger.is_locked

    other.unlock()
    file_ledger.lock()
    assert file_ledger.lock_path.read_text() == "me:1"
    file_ledger.unlock()


def test_lock_polls_until_timeout(tmp_path):
    """The lock is retried every poll interval before giving up."""
    sleeps = []
    holder = FileLedgerStore(tmp_path / "ledger.txt", holder="other:2")
    holder.lock()
    waiting = FileLedgerStore(tmp_path / "ledger.txt", lock_timeout=0.05, poll_interval=0.01, sleep=sleeps.append)

    with pytest.raises(LedgerLocked):
        waiting.lock()

    assert sleeps
    assert set(sleeps) == {0.01}
    holder.unlock()


def test_sql_lock_contention(database, sql_ledger):
    other = SqlLedgerStore(database.engine, holder="other:2", lock_timeout=0.05, poll_interval=0.01)

    with sql_ledger.locked():
        with pytest.raises(LedgerLocked) as excinfo:
            other.lock()

    assert excinfo.value.context["holder"] == "test-host:1"
    with other.locked():
        assert other.current_holder() == "other:2"


def test_file_ledger_ignores_blank_lines(tmp_path):
    path = tmp_path / "ledger.txt"
    path.write_text("1\n\n2\n")

    assert FileLedgerStore(path).list() == ["1", "2"]


def crashed_migrator(ledger):
    """A second store on the same ledger whose lock is never released."""
    options = dict(lock_timeout=0.05, poll_interval=0.01, holder="crashed:9")
    if isinstance(ledger, FileLedgerStore):
        return FileLedgerStore(ledger.path, **options)
    return SqlLedgerStore(ledger.engine, **options)


def test_force_unlock_releases_stale_lock(ledger):
    crashed_migrator(ledger).lock()
    with pytest.raises(LedgerLocked):
        ledger.lock()

    assert ledger.force_unlock() == "crashed:9"

    assert ledger.current_holder() is None
    with ledger.locked():
        assert ledger.current_holder() == ledger.holder


def test_force_unlock_without_lock(ledger):
    assert ledger.force_unlock() is None
