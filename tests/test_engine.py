"""
Tests for the migration engine against SQLite databases.
"""

from unittest.mock import patch

import pytest
from sqlalchemy import inspect

from scaffold_forge.constants import ExitCodes
from scaffold_forge.exceptions import (
    DialectUnsupportedOperation,
    LedgerLocked,
    MigrationError,
    MigrationExecutionError,
    NothingToRevert,
    ScriptNotReversible,
)
from scaffold_forge.migrations import (
    ChangeColumn,
    ColumnSpec,
    CreateTable,
    DropTable,
    FileLedgerStore,
    MigrationEngine,
    MigrationScript,
    MigrationScriptRepository,
    MigrationState,
    RawStatement,
    SqlLedgerStore,
)
from scaffold_forge.migrations.database import Transaction


def create_table_script(migration_id, table, extra_up=(), reversible=True):
    up = [
        CreateTable(
            table=table,
            columns=[
                ColumnSpec(name="id", type="integer", nullable=False, primary_key=True, autoincrement=True),
                ColumnSpec(name="name", type="string"),
            ],
        ),
        *extra_up,
    ]
    down = [DropTable(table=table)] if reversible else []
    return MigrationScript(id=migration_id, name=f"create_{table}", up_operations=up, down_operations=down)


def table_names(database):
    return set(inspect(database.engine).get_table_names())


def make_engine(database, ledger, *scripts):
    engine = MigrationEngine(database, ledger)
    for script in scripts:
        engine.queue(script)
    return engine


def test_apply_pending_in_order(database, sql_ledger):
    engine = make_engine(
        database,
        sql_ledger,
        create_table_script("20240102000000", "posts"),
        create_table_script("20240101000000", "authors"),
    )

    applied = engine.apply_pending()

    assert list(applied) == ["20240101000000", "20240102000000"]
    assert sql_ledger.list() == ["20240101000000", "20240102000000"]
    assert {"authors", "posts"} <= table_names(database)
    assert applied.statements["20240101000000"][0].startswith('CREATE TABLE "authors"')
    assert engine.state_of("20240102000000") == MigrationState.APPLIED
    assert not sql_ledger.is_locked


def test_apply_twice_is_a_noop(database, sql_ledger):
    engine = make_engine(database, sql_ledger, create_table_script("20240101000000", "authors"))
    engine.apply_pending()

    second = engine.apply_pending()

    assert len(second) == 0
    assert sql_ledger.list() == ["20240101000000"]


def test_revert_then_reapply_restores_schema(database, sql_ledger):
    engine = make_engine(
        database,
        sql_ledger,
        create_table_script("20240101000000", "authors"),
        create_table_script("20240102000000", "posts"),
    )
    engine.apply_pending()
    schema = table_names(database)

    reverted = engine.revert(steps=2)

    assert list(reverted) == ["20240102000000", "20240101000000"]
    assert "posts" not in table_names(database) and "authors" not in table_names(database)
    assert sql_ledger.list() == []
    assert engine.state_of("20240101000000") == MigrationState.PENDING

    engine.apply_pending()
    assert table_names(database) == schema
    assert sql_ledger.list() == ["20240101000000", "20240102000000"]


def test_revert_more_steps_than_applied(database, sql_ledger):
    engine = make_engine(database, sql_ledger, create_table_script("20240101000000", "authors"))
    engine.apply_pending()

    assert list(engine.revert(steps=5)) == ["20240101000000"]


def test_revert_with_empty_ledger(database, sql_ledger):
    engine = make_engine(database, sql_ledger)

    with pytest.raises(NothingToRevert) as excinfo:
        engine.revert()

    assert excinfo.value.exit_code == ExitCodes.MIGRATION


def test_revert_rejects_invalid_steps(database, sql_ledger):
    with pytest.raises(MigrationError):
        make_engine(database, sql_ledger).revert(steps=0)


def test_failed_script_is_rolled_back_and_earlier_ones_kept(database, sql_ledger):
    engine = make_engine(
        database,
        sql_ledger,
        create_table_script("20240101000000", "authors"),
        create_table_script("20240102000000", "posts", extra_up=[RawStatement(sql="THIS IS NOT SQL")]),
        create_table_script("20240103000000", "tags"),
    )

    with pytest.raises(MigrationExecutionError) as excinfo:
        engine.apply_pending()

    assert excinfo.value.completed == ["20240101000000"]
    assert excinfo.value.context["migration_id"] == "20240102000000"
    assert sql_ledger.list() == ["20240101000000"]
    tables = table_names(database)
    assert "authors" in tables
    # CREATE TABLE ran before the failing statement but was rolled back with it
    assert "posts" not in tables
    assert "tags" not in tables
    assert engine.state_of("20240102000000") == MigrationState.ROLLED_BACK
    assert not sql_ledger.is_locked


def test_unsupported_operation_stops_before_the_script(database, sql_ledger):
    change = ChangeColumn(table="authors", column=ColumnSpec(name="name", type="text"))
    engine = make_engine(
        database,
        sql_ledger,
        create_table_script("20240101000000", "authors"),
        MigrationScript(id="20240102000000", name="change_name", up_operations=[change]),
    )

    with pytest.raises(DialectUnsupportedOperation) as excinfo:
        engine.apply_pending()

    assert excinfo.value.context["completed"] == ["20240101000000"]
    assert sql_ledger.list() == ["20240101000000"]


def test_irreversible_script_is_checked_before_reverting(database, sql_ledger):
    engine = make_engine(
        database,
        sql_ledger,
        create_table_script("20240101000000", "authors", reversible=False),
        create_table_script("20240102000000", "posts"),
    )
    engine.apply_pending()

    with pytest.raises(ScriptNotReversible):
        engine.revert(steps=2)

    # Nothing was reverted, not even the reversible newest script
    assert sql_ledger.list() == ["20240101000000", "20240102000000"]
    assert "posts" in table_names(database)


def test_pretend_touches_nothing(database, sql_ledger):
    engine = make_engine(database, sql_ledger, create_table_script("20240101000000", "authors"))

    result = engine.apply_pending(pretend=True)

    assert result.pretend
    assert result.statements["20240101000000"][0].startswith('CREATE TABLE "authors"')
    assert sql_ledger.list() == []
    assert "authors" not in table_names(database)


def test_pretend_with_other_dialect(database, sql_ledger):
    engine = make_engine(database, sql_ledger, create_table_script("20240101000000", "authors"))

    result = engine.apply_pending(dialect="mysql", pretend=True)

    assert "`authors`" in result.statements["20240101000000"][0]


def test_file_ledger(database, tmp_path):
    ledger = FileLedgerStore(tmp_path / "db" / "ledger.txt", lock_timeout=0.05, poll_interval=0.01)
    engine = make_engine(
        database,
        ledger,
        create_table_script("20240101000000", "authors"),
        create_table_script("20240102000000", "posts"),
    )

    engine.apply_pending()
    assert (tmp_path / "db" / "ledger.txt").read_text() == "20240101000000\n20240102000000\n"

    engine.revert()
    assert ledger.list() == ["20240101000000"]
    assert not ledger.lock_path.exists()


def test_status(database, sql_ledger):
    engine = make_engine(database, sql_ledger, create_table_script("20240101000000", "authors"))
    engine.apply_pending()
    engine.queue(create_table_script("20240102000000", "posts"))
    sql_ledger.append("20230101000000")

    report = {entry.migration_id: entry for entry in engine.status()}

    assert report["20240101000000"].state == MigrationState.APPLIED
    assert report["20240102000000"].state == MigrationState.PENDING
    assert report["20230101000000"].missing_script is True


def test_scripts_loaded_from_directory(database, sql_ledger, tmp_path):
    script = create_table_script("20240101000000", "authors")
    (tmp_path / script.filename).write_text(script.to_yaml())
    engine = MigrationEngine(database, sql_ledger, MigrationScriptRepository(tmp_path))

    assert list(engine.apply_pending()) == ["20240101000000"]


def test_locked_by_another_migrator(database, sql_ledger):
    other = SqlLedgerStore(database.engine, holder="other-host:2", lock_timeout=0.05, poll_interval=0.01)
    other.lock()
    engine = make_engine(database, sql_ledger, create_table_script("20240101000000", "authors"))

    try:
        with pytest.raises(LedgerLocked) as excinfo:
            engine.apply_pending()
    finally:
        other.unlock()

    assert excinfo.value.exit_code == ExitCodes.LOCKED
    assert excinfo.value.context["holder"] == "other-host:2"
    assert sql_ledger.list() == []

    # Once released, the run goes through
    assert list(engine.apply_pending()) == ["20240101000000"]


def test_interrupt_mid_script_leaves_ledger_consistent(database, sql_ledger):
    interrupt = RawStatement(sql="SELECT 'interrupt'")
    engine = make_engine(
        database,
        sql_ledger,
        create_table_script("20240101000000", "authors"),
        create_table_script("20240102000000", "posts", extra_up=[interrupt]),
    )
    real_execute = Transaction.execute

    def execute_until_interrupted(transaction, sql):
        if sql == interrupt.sql:
            raise KeyboardInterrupt
        real_execute(transaction, sql)

    with patch.object(Transaction, "execute", execute_until_interrupted):
        with pytest.raises(KeyboardInterrupt):
            engine.apply_pending()

    assert sql_ledger.list() == ["20240101000000"]
    tables = table_names(database)
    assert "authors" in tables
    assert "posts" not in tables
    assert not sql_ledger.is_locked
    assert sql_ledger.current_holder() is None
