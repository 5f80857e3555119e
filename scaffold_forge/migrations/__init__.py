"""
Schema migration package for Scaffold Forge.

Abstract schema operations, per-dialect SQL rendering, the persistent
version ledger and the engine that applies and reverts scripts.
"""

from .operations import (
    ColumnReference,
    ColumnSpec,
    CreateTable,
    DropTable,
    AddColumn,
    RemoveColumn,
    ChangeColumn,
    RenameColumn,
    AddIndex,
    RemoveIndex,
    AddForeignKey,
    RemoveForeignKey,
    RawStatement,
    SchemaOperation,
    invert,
)
from .scripts import MigrationScript, MigrationScriptRepository, new_migration_id
from .dialects import DIALECTS, DialectAdapter, emit, get_dialect, dialect_for_url, truncate_name
from .ledger import LedgerStore, FileLedgerStore, SqlLedgerStore
from .database import Database, create_database_engine, resolve_sqlite_path
from .engine import (
    MigrationEngine,
    MigrationRunResult,
    MigrationState,
    MigrationStatus,
    AppliedSet,
    RevertedSet,
)

__all__ = [
    # Operations
    'ColumnReference',
    'ColumnSpec',
    'CreateTable',
    'DropTable',
    'AddColumn',
    'RemoveColumn',
    'ChangeColumn',
    'RenameColumn',
    'AddIndex',
    'RemoveIndex',
    'AddForeignKey',
    'RemoveForeignKey',
    'RawStatement',
    'SchemaOperation',
    'invert',

    # Scripts
    'MigrationScript',
    'MigrationScriptRepository',
    'new_migration_id',

    # Dialects
    'DIALECTS',
    'DialectAdapter',
    'emit',
    'get_dialect',
    'dialect_for_url',
    'truncate_name',

    # Ledger and execution
    'LedgerStore',
    'FileLedgerStore',
    'SqlLedgerStore',
    'Database',
    'create_database_engine',
    'resolve_sqlite_path',
    'MigrationEngine',
    'MigrationRunResult',
    'MigrationState',
    'MigrationStatus',
    'AppliedSet',
    'RevertedSet',
]
