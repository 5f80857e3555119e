"""
Abstract schema operations.

Operations form a closed, discriminated union keyed by ``op``. They carry only
the structured fields a dialect adapter needs; no SQL text is built here.
Operations are immutable pydantic models so that migration scripts can be
loaded from and written to YAML without a bespoke codec.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import CascadePolicies, SemanticTypes


def normalize_cascade_policy(value: Any) -> str:
    """Accept 'set_null', 'set null', 'SET NULL'... and return the canonical spelling."""
    policy = str(value).upper().replace("_", " ")
    if policy not in CascadePolicies.ALL:
        raise ValueError(
            f"Unsupported cascade policy '{value}'. Supported: {', '.join(CascadePolicies.ALL)}"
        )
    return policy


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ColumnReference(_Frozen):
    """Inline foreign key target of a column."""

    table: str
    column: str = "id"
    on_delete: str = CascadePolicies.DEFAULT

    @field_validator("on_delete", mode="before")
    @classmethod
    def check_on_delete(cls, v: Any) -> str:
        return normalize_cascade_policy(v)


class ColumnSpec(_Frozen):
    """Dialect-neutral column definition."""

    name: str = Field(..., min_length=1)
    type: str
    nullable: bool = True
    unique: bool = False
    limit: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    default: Optional[Union[bool, int, float, str]] = None
    primary_key: bool = False
    autoincrement: bool = False
    references: Optional[ColumnReference] = None

    @field_validator("type")
    @classmethod
    def check_type(cls, v: str) -> str:
        if v not in SemanticTypes.ALL:
            raise ValueError(f"Unknown column type '{v}'. Supported: {', '.join(SemanticTypes.ALL)}")
        return v


class _Operation(_Frozen):
    op: str

    def to_dict(self) -> Dict[str, Any]:
        """Compact, YAML-friendly representation (defaults omitted, ``op`` kept)."""
        data = self.model_dump(mode="json", exclude_defaults=True)
        return {"op": self.op, **data}

    def describe(self) -> str:
        table = getattr(self, "table", None)
        return f"{self.op}({table})" if table else self.op


class CreateTable(_Operation):
    op: Literal["create_table"] = "create_table"
    table: str
    columns: List[ColumnSpec] = Field(..., min_length=1)


class DropTable(_Operation):
    op: Literal["drop_table"] = "drop_table"
    table: str
    if_exists: bool = False


class AddColumn(_Operation):
    op: Literal["add_column"] = "add_column"
    table: str
    column: ColumnSpec


class RemoveColumn(_Operation):
    op: Literal["remove_column"] = "remove_column"
    table: str
    column: str


class ChangeColumn(_Operation):
    op: Literal["change_column"] = "change_column"
    table: str
    column: ColumnSpec


class RenameColumn(_Operation):
    op: Literal["rename_column"] = "rename_column"
    table: str
    column: str
    new_name: str


class AddIndex(_Operation):
    op: Literal["add_index"] = "add_index"
    table: str
    columns: List[str] = Field(..., min_length=1)
    name: Optional[str] = None
    unique: bool = False

    @property
    def index_name(self) -> str:
        return self.name or default_index_name(self.table, self.columns)


class RemoveIndex(_Operation):
    op: Literal["remove_index"] = "remove_index"
    table: str
    columns: Optional[List[str]] = None
    name: Optional[str] = None

    @property
    def index_name(self) -> str:
        if self.name:
            return self.name
        if not self.columns:
            raise ValueError("RemoveIndex needs either a name or the indexed columns")
        return default_index_name(self.table, self.columns)


class AddForeignKey(_Operation):
    op: Literal["add_foreign_key"] = "add_foreign_key"
    table: str
    column: str
    references_table: str
    references_column: str = "id"
    on_delete: str = CascadePolicies.DEFAULT
    name: Optional[str] = None

    @field_validator("on_delete", mode="before")
    @classmethod
    def check_on_delete(cls, v: Any) -> str:
        return normalize_cascade_policy(v)

    @property
    def constraint_name(self) -> str:
        return self.name or default_foreign_key_name(self.table, self.column)


class RemoveForeignKey(_Operation):
    op: Literal["remove_foreign_key"] = "remove_foreign_key"
    table: str
    column: str
    name: Optional[str] = None

    @property
    def constraint_name(self) -> str:
        return self.name or default_foreign_key_name(self.table, self.column)


class RawStatement(_Operation):
    """
    Verbatim SQL, optionally specialised per dialect.

    ``dialect_sql`` entries win over ``sql`` for their dialect.
    """

    op: Literal["raw"] = "raw"
    sql: Optional[str] = None
    dialect_sql: Dict[str, str] = Field(default_factory=dict)

    def sql_for(self, dialect: str) -> Optional[str]:
        return self.dialect_sql.get(dialect, self.sql)


SchemaOperation = Annotated[
    Union[
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
    ],
    Field(discriminator="op"),
]


def default_index_name(table: str, columns: List[str]) -> str:
    return f"index_{table}_on_{'_and_'.join(columns)}"


def default_foreign_key_name(table: str, column: str) -> str:
    return f"fk_{table}_{column}"


def invert(operation: _Operation) -> Optional[_Operation]:
    """
    Return the operation that undoes ``operation``, or None if it cannot be
    derived (dropping a table, removing a column, changing a column, raw SQL).
    """
    if isinstance(operation, CreateTable):
        return DropTable(table=operation.table)
    if isinstance(operation, AddColumn):
        return RemoveColumn(table=operation.table, column=operation.column.name)
    if isinstance(operation, RenameColumn):
        return RenameColumn(table=operation.table, column=operation.new_name, new_name=operation.column)
    if isinstance(operation, AddIndex):
        return RemoveIndex(table=operation.table, name=operation.index_name)
    if isinstance(operation, AddForeignKey):
        return RemoveForeignKey(table=operation.table, column=operation.column, name=operation.name)
    return None
