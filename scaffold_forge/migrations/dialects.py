"""
Dialect adapters: abstract schema operations to SQL statements.

Each supported database family is one adapter class. Dispatch is table
driven: ``EMITTERS`` maps an operation type to the adapter method that
renders it, and a dialect opts out of an operation by mapping it to
``None``. Adapters are stateless; ``emit`` is a pure function of its inputs.
"""

import hashlib
import logging
from typing import Callable, Dict, List, Optional, Type, Union

from sqlalchemy.engine import make_url

from ..constants import CascadePolicies, Dialects, SemanticTypes
from ..exceptions import DialectUnsupportedOperation, UnknownDialect
from .operations import (
    AddColumn,
    AddForeignKey,
    AddIndex,
    ChangeColumn,
    ColumnSpec,
    CreateTable,
    DropTable,
    RawStatement,
    RemoveColumn,
    RemoveForeignKey,
    RemoveIndex,
    RenameColumn,
)

logger = logging.getLogger(__name__)


def truncate_name(identifier: str, length: Optional[int] = None, hash_len: int = 4) -> str:
    """
    Shorten an identifier to ``length`` characters.

    The tail is replaced by a short md5 digest of the full name so that two
    long names sharing a prefix stay distinct.
    """
    if length is None or len(identifier) <= length:
        return identifier
    digest = hashlib.md5(identifier.encode("utf-8")).hexdigest()[:hash_len]
    return f"{identifier[:length - hash_len]}{digest}"


class DialectAdapter:
    """Shared SQL rendering; subclasses set the dialect-specific tables."""

    name: str = ""
    quote_open: str = '"'
    quote_close: str = '"'
    max_identifier_length: Optional[int] = None
    boolean_literals = ("TRUE", "FALSE")
    add_column_keyword = "ADD COLUMN"

    type_map: Dict[str, str] = {}
    identity_clause: str = ""

    # Operation type -> emitter method name; None marks "not supported"
    EMITTERS: Dict[Type, Optional[str]] = {
        CreateTable: "create_table",
        DropTable: "drop_table",
        AddColumn: "add_column",
        RemoveColumn: "remove_column",
        # No portable ALTER COLUMN; dialects that have one opt in
        ChangeColumn: None,
        RenameColumn: "rename_column",
        AddIndex: "add_index",
        RemoveIndex: "remove_index",
        AddForeignKey: "add_foreign_key",
        RemoveForeignKey: "remove_foreign_key",
        RawStatement: "raw_statement",
    }

    def emit(self, operation) -> List[str]:
        """Render one operation to zero or more SQL statements."""
        method_name = self.EMITTERS.get(type(operation))
        if method_name is None:
            raise DialectUnsupportedOperation(
                f"Operation '{operation.op}' is not supported by the {self.name} dialect",
                dialect=self.name,
                operation=operation.describe(),
            )
        emitter: Callable[..., List[str]] = getattr(self, method_name)
        return emitter(operation)

    # --- Identifiers and literals ---

    def quote(self, identifier: str) -> str:
        name = truncate_name(identifier, self.max_identifier_length)
        escaped = name.replace(self.quote_close, self.quote_close * 2)
        return f"{self.quote_open}{escaped}{self.quote_close}"

    def literal(self, value: Union[bool, int, float, str]) -> str:
        if isinstance(value, bool):
            return self.boolean_literals[0] if value else self.boolean_literals[1]
        if isinstance(value, (int, float)):
            return repr(value)
        return "'" + str(value).replace("'", "''") + "'"

    def on_delete_clause(self, policy: str) -> str:
        return f"ON DELETE {policy}"

    # --- Columns ---

    def column_type(self, column: ColumnSpec) -> str:
        if column.type == SemanticTypes.STRING:
            return self.type_map[SemanticTypes.STRING].format(
                limit=column.limit or SemanticTypes.DEFAULT_STRING_LIMIT
            )
        if column.type == SemanticTypes.DECIMAL:
            return self.type_map[SemanticTypes.DECIMAL].format(
                precision=column.precision or SemanticTypes.DEFAULT_PRECISION,
                scale=column.scale if column.scale is not None else SemanticTypes.DEFAULT_SCALE,
            )
        return self.type_map[column.type]

    def identity_column(self, column: ColumnSpec) -> str:
        return f"{self.quote(column.name)} {self.column_type(column)} {self.identity_clause} PRIMARY KEY"

    def column_definition(self, column: ColumnSpec) -> str:
        if column.primary_key and column.autoincrement:
            return self.identity_column(column)

        parts = [self.quote(column.name), self.column_type(column)]
        if column.primary_key:
            parts.append("PRIMARY KEY")
        if not column.nullable and not column.primary_key:
            parts.append("NOT NULL")
        if column.unique and not column.primary_key:
            parts.append("UNIQUE")
        if column.default is not None:
            parts.append(f"DEFAULT {self.literal(column.default)}")
        if column.references is not None:
            ref = column.references
            parts.append(
                f"REFERENCES {self.quote(ref.table)} ({self.quote(ref.column)}) "
                f"{self.on_delete_clause(ref.on_delete)}"
            )
        return " ".join(parts)

    # --- Emitters ---

    def create_table(self, op: CreateTable) -> List[str]:
        columns = ",\n  ".join(self.column_definition(column) for column in op.columns)
        return [f"CREATE TABLE {self.quote(op.table)} (\n  {columns}\n)"]

    def drop_table(self, op: DropTable) -> List[str]:
        if_exists = "IF EXISTS " if op.if_exists else ""
        return [f"DROP TABLE {if_exists}{self.quote(op.table)}"]

    def add_column(self, op: AddColumn) -> List[str]:
        return [f"ALTER TABLE {self.quote(op.table)} {self.add_column_keyword} {self.column_definition(op.column)}"]

    def remove_column(self, op: RemoveColumn) -> List[str]:
        return [f"ALTER TABLE {self.quote(op.table)} DROP COLUMN {self.quote(op.column)}"]

    def rename_column(self, op: RenameColumn) -> List[str]:
        return [
            f"ALTER TABLE {self.quote(op.table)} RENAME COLUMN {self.quote(op.column)} TO {self.quote(op.new_name)}"
        ]

    def add_index(self, op: AddIndex) -> List[str]:
        unique = "UNIQUE " if op.unique else ""
        columns = ", ".join(self.quote(column) for column in op.columns)
        return [f"CREATE {unique}INDEX {self.quote(op.index_name)} ON {self.quote(op.table)} ({columns})"]

    def remove_index(self, op: RemoveIndex) -> List[str]:
        return [f"DROP INDEX {self.quote(op.index_name)}"]

    def add_foreign_key(self, op: AddForeignKey) -> List[str]:
        return [
            f"ALTER TABLE {self.quote(op.table)} ADD CONSTRAINT {self.quote(op.constraint_name)} "
            f"FOREIGN KEY ({self.quote(op.column)}) "
            f"REFERENCES {self.quote(op.references_table)} ({self.quote(op.references_column)}) "
            f"{self.on_delete_clause(op.on_delete)}"
        ]

    def remove_foreign_key(self, op: RemoveForeignKey) -> List[str]:
        return [f"ALTER TABLE {self.quote(op.table)} DROP CONSTRAINT {self.quote(op.constraint_name)}"]

    def raw_statement(self, op: RawStatement) -> List[str]:
        sql = op.sql_for(self.name)
        if not sql:
            raise DialectUnsupportedOperation(
                f"Raw statement has no SQL for the {self.name} dialect",
                dialect=self.name,
                operation=op.describe(),
            )
        return [sql]


class SQLiteAdapter(DialectAdapter):
    """Embedded, file-oriented database; no ALTER TABLE constraint support."""

    name = Dialects.SQLITE
    boolean_literals = ("1", "0")
    type_map = {
        SemanticTypes.STRING: "VARCHAR({limit})",
        SemanticTypes.TEXT: "TEXT",
        SemanticTypes.INTEGER: "INTEGER",
        SemanticTypes.DECIMAL: "DECIMAL({precision}, {scale})",
        SemanticTypes.BOOLEAN: "BOOLEAN",
        SemanticTypes.DATETIME: "DATETIME",
        SemanticTypes.REFERENCE: "INTEGER",
    }
    def identity_column(self, column: ColumnSpec) -> str:
        # AUTOINCREMENT is only valid on an INTEGER PRIMARY KEY
        return f"{self.quote(column.name)} INTEGER PRIMARY KEY AUTOINCREMENT"

    def add_foreign_key(self, op: AddForeignKey) -> List[str]:
        logger.warning(
            f"{self.name} cannot add foreign key constraints to an existing table; "
            f"skipping {op.constraint_name} on {op.table}.{op.column}"
        )
        return []

    def remove_foreign_key(self, op: RemoveForeignKey) -> List[str]:
        logger.warning(
            f"{self.name} cannot drop foreign key constraints from an existing table; "
            f"skipping {op.constraint_name} on {op.table}.{op.column}"
        )
        return []


class PostgreSQLAdapter(DialectAdapter):
    name = Dialects.POSTGRESQL
    max_identifier_length = 63
    identity_clause = "GENERATED BY DEFAULT AS IDENTITY"
    type_map = {
        SemanticTypes.STRING: "VARCHAR({limit})",
        SemanticTypes.TEXT: "TEXT",
        SemanticTypes.INTEGER: "INTEGER",
        SemanticTypes.DECIMAL: "NUMERIC({precision}, {scale})",
        SemanticTypes.BOOLEAN: "BOOLEAN",
        SemanticTypes.DATETIME: "TIMESTAMP",
        SemanticTypes.REFERENCE: "INTEGER",
    }
    EMITTERS = {**DialectAdapter.EMITTERS, ChangeColumn: "change_column"}

    def change_column(self, op: ChangeColumn) -> List[str]:
        table = self.quote(op.table)
        column = self.quote(op.column.name)
        statements = [f"ALTER TABLE {table} ALTER COLUMN {column} TYPE {self.column_type(op.column)}"]
        nullability = "DROP NOT NULL" if op.column.nullable else "SET NOT NULL"
        statements.append(f"ALTER TABLE {table} ALTER COLUMN {column} {nullability}")
        if op.column.default is None:
            statements.append(f"ALTER TABLE {table} ALTER COLUMN {column} DROP DEFAULT")
        else:
            statements.append(
                f"ALTER TABLE {table} ALTER COLUMN {column} SET DEFAULT {self.literal(op.column.default)}"
            )
        return statements


class MySQLAdapter(DialectAdapter):
    name = Dialects.MYSQL
    quote_open = quote_close = "`"
    max_identifier_length = 64
    boolean_literals = ("1", "0")
    identity_clause = "AUTO_INCREMENT"
    type_map = {
        SemanticTypes.STRING: "VARCHAR({limit})",
        SemanticTypes.TEXT: "TEXT",
        SemanticTypes.INTEGER: "INT",
        SemanticTypes.DECIMAL: "DECIMAL({precision}, {scale})",
        SemanticTypes.BOOLEAN: "TINYINT(1)",
        SemanticTypes.DATETIME: "DATETIME",
        SemanticTypes.REFERENCE: "INT",
    }
    EMITTERS = {**DialectAdapter.EMITTERS, ChangeColumn: "change_column"}

    def change_column(self, op: ChangeColumn) -> List[str]:
        return [f"ALTER TABLE {self.quote(op.table)} MODIFY COLUMN {self.column_definition(op.column)}"]

    def remove_index(self, op: RemoveIndex) -> List[str]:
        return [f"DROP INDEX {self.quote(op.index_name)} ON {self.quote(op.table)}"]

    def remove_foreign_key(self, op: RemoveForeignKey) -> List[str]:
        return [f"ALTER TABLE {self.quote(op.table)} DROP FOREIGN KEY {self.quote(op.constraint_name)}"]


class MSSQLAdapter(DialectAdapter):
    name = Dialects.MSSQL
    quote_open = "["
    quote_close = "]"
    max_identifier_length = 128
    boolean_literals = ("1", "0")
    add_column_keyword = "ADD"
    identity_clause = "IDENTITY(1,1)"
    type_map = {
        SemanticTypes.STRING: "NVARCHAR({limit})",
        SemanticTypes.TEXT: "NVARCHAR(MAX)",
        SemanticTypes.INTEGER: "INT",
        SemanticTypes.DECIMAL: "DECIMAL({precision}, {scale})",
        SemanticTypes.BOOLEAN: "BIT",
        SemanticTypes.DATETIME: "DATETIME2",
        SemanticTypes.REFERENCE: "INT",
    }
    EMITTERS = {**DialectAdapter.EMITTERS, ChangeColumn: "change_column"}

    def on_delete_clause(self, policy: str) -> str:
        if policy == CascadePolicies.RESTRICT:
            policy = CascadePolicies.NO_ACTION
        return f"ON DELETE {policy}"

    def change_column(self, op: ChangeColumn) -> List[str]:
        nullability = "NULL" if op.column.nullable else "NOT NULL"
        return [
            f"ALTER TABLE {self.quote(op.table)} ALTER COLUMN {self.quote(op.column.name)} "
            f"{self.column_type(op.column)} {nullability}"
        ]

    def rename_column(self, op: RenameColumn) -> List[str]:
        table = truncate_name(op.table, self.max_identifier_length)
        column = truncate_name(op.column, self.max_identifier_length)
        new_name = truncate_name(op.new_name, self.max_identifier_length)
        return [f"EXEC sp_rename {self.literal(f'{table}.{column}')}, {self.literal(new_name)}, 'COLUMN'"]

    def remove_index(self, op: RemoveIndex) -> List[str]:
        return [f"DROP INDEX {self.quote(op.index_name)} ON {self.quote(op.table)}"]


DIALECTS: Dict[str, DialectAdapter] = {
    adapter.name: adapter
    for adapter in (SQLiteAdapter(), PostgreSQLAdapter(), MySQLAdapter(), MSSQLAdapter())
}

# SQLAlchemy backend names that map onto a supported dialect
_BACKEND_ALIASES = {
    "sqlite": Dialects.SQLITE,
    "postgresql": Dialects.POSTGRESQL,
    "postgres": Dialects.POSTGRESQL,
    "mysql": Dialects.MYSQL,
    "mariadb": Dialects.MYSQL,
    "mssql": Dialects.MSSQL,
}


def get_dialect(dialect: str) -> DialectAdapter:
    """Look up an adapter by dialect id."""
    adapter = DIALECTS.get(dialect)
    if adapter is None:
        raise UnknownDialect(
            f"Unknown dialect '{dialect}'",
            dialect=dialect,
            suggestions=[f"Supported dialects: {', '.join(Dialects.ALL)}"],
        )
    return adapter


def emit(operation, dialect: str) -> List[str]:
    """Render one schema operation for a dialect."""
    return get_dialect(dialect).emit(operation)


def dialect_for_url(url) -> str:
    """Derive the dialect id from a SQLAlchemy database URL (string or URL)."""
    backend = make_url(url).get_backend_name()
    if backend not in _BACKEND_ALIASES:
        raise UnknownDialect(
            f"Database backend '{backend}' has no dialect adapter",
            dialect=backend,
            suggestions=[f"Supported dialects: {', '.join(Dialects.ALL)}"],
        )
    return _BACKEND_ALIASES[backend]
