"""
Centralized constants for Scaffold Forge.

This module contains configuration defaults, the supported field and dialect
vocabularies, and CLI exit codes. Keeping them in one place makes it easier
for contributors to extend the generator without hunting through modules.
"""

from typing import Dict, List, Set


# =============================================================================
# CORE CONFIGURATION
# =============================================================================

class DefaultConfig:
    """Default configuration values."""

    CONFIG_FILE = "scaffold-forge.yaml"
    OUTPUT_DIR = "."
    MIGRATIONS_DIR = "db/migrations"
    DATABASE_URL = "sqlite:///db/development.sqlite3"
    LEDGER_BACKEND = "table"
    LEDGER_PATH = "db/schema_ledger.txt"
    LOCK_TIMEOUT = 10.0
    LOCK_POLL_INTERVAL = 0.1

    # Generation options
    USE_TIMESTAMPS = True
    PRIMARY_KEY = "id"


class DefaultLayout:
    """
    Default mapping from artifact slot to target path pattern.

    Patterns are formatted with the naming variants of the resource plus
    ``migration_id``.
    """

    MIGRATION = "db/migrations/{migration_id}_create_{storage_identifier}.yaml"
    MODEL = "app/models/{singular_snake}.py"
    MODEL_INDEX = "app/models/__init__.py"
    HANDLER = "app/handlers/{plural_snake}.py"
    ROUTES = "app/routes.py"
    VIEW_INDEX = "app/views/{plural_snake}/index.html"
    VIEW_SHOW = "app/views/{plural_snake}/show.html"
    VIEW_FORM = "app/views/{plural_snake}/form.html"
    TEST = "tests/test_{plural_snake}.py"

    @classmethod
    def as_dict(cls) -> Dict[str, str]:
        return {
            "migration": cls.MIGRATION,
            "model": cls.MODEL,
            "model_index": cls.MODEL_INDEX,
            "handler": cls.HANDLER,
            "routes": cls.ROUTES,
            "view_index": cls.VIEW_INDEX,
            "view_show": cls.VIEW_SHOW,
            "view_form": cls.VIEW_FORM,
            "test": cls.TEST,
        }


# =============================================================================
# ARTIFACTS AND TEMPLATES
# =============================================================================

class ArtifactKinds:
    """Artifact kinds in the fixed order a plan emits them."""

    MIGRATION = "migration"
    MODEL = "model"
    HANDLER = "handler"
    VIEW = "view"
    TEST = "test"

    ORDERED: List[str] = [MIGRATION, MODEL, HANDLER, VIEW, TEST]
    ALL: Set[str] = set(ORDERED)


class TemplateIds:
    """Names of the embedded template catalogue entries."""

    MIGRATION = "migration.yaml.j2"
    MODEL = "model.py.j2"
    MODEL_INDEX = "model_index.py.j2"
    MODEL_REGISTRATION = "model_registration.py.j2"
    HANDLER = "handler.py.j2"
    ROUTES = "routes.py.j2"
    ROUTE_REGISTRATION = "route_registration.py.j2"
    VIEW_INDEX = "view_index.html.j2"
    VIEW_SHOW = "view_show.html.j2"
    VIEW_FORM = "view_form.html.j2"
    TEST = "test.py.j2"


class Markers:
    """Named insertion points inside host files."""

    MODELS = "models"
    ROUTES = "routes"

    # A marker line contains this token, e.g. ``# [scaffold-forge:routes]``
    TOKEN_TEMPLATE = "[scaffold-forge:{marker_id}]"


GENERATOR_STAMP_PREFIX = "scaffold-forge"


# =============================================================================
# FIELD TYPES
# =============================================================================

class SemanticTypes:
    """Semantic field types accepted in field declarations."""

    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    TEXT = "text"
    REFERENCE = "reference"

    ALL: List[str] = [STRING, INTEGER, DECIMAL, BOOLEAN, DATETIME, TEXT, REFERENCE]

    # Accepted spellings on the command line
    ALIASES: Dict[str, str] = {
        "str": STRING,
        "int": INTEGER,
        "bool": BOOLEAN,
        "timestamp": DATETIME,
        "references": REFERENCE,
        "belongs_to": REFERENCE,
    }

    DEFAULT_STRING_LIMIT = 255
    DEFAULT_PRECISION = 10
    DEFAULT_SCALE = 2


# Python annotation rendered into generated model classes
PYTHON_TYPE_MAP: Dict[str, str] = {
    SemanticTypes.STRING: "str",
    SemanticTypes.TEXT: "str",
    SemanticTypes.INTEGER: "int",
    SemanticTypes.DECIMAL: "Decimal",
    SemanticTypes.BOOLEAN: "bool",
    SemanticTypes.DATETIME: "datetime",
    SemanticTypes.REFERENCE: "int",
}

# Sample literal used by generated tests
SAMPLE_VALUE_MAP: Dict[str, str] = {
    SemanticTypes.STRING: '"sample"',
    SemanticTypes.TEXT: '"sample text"',
    SemanticTypes.INTEGER: "1",
    SemanticTypes.DECIMAL: 'Decimal("9.99")',
    SemanticTypes.BOOLEAN: "True",
    SemanticTypes.DATETIME: "datetime(2024, 1, 1, 12, 0, 0)",
    SemanticTypes.REFERENCE: "1",
}

# HTML input type rendered into generated form views
HTML_INPUT_MAP: Dict[str, str] = {
    SemanticTypes.STRING: "text",
    SemanticTypes.TEXT: "textarea",
    SemanticTypes.INTEGER: "number",
    SemanticTypes.DECIMAL: "number",
    SemanticTypes.BOOLEAN: "checkbox",
    SemanticTypes.DATETIME: "datetime-local",
    SemanticTypes.REFERENCE: "number",
}


# =============================================================================
# SQL DIALECTS
# =============================================================================

class Dialects:
    """Supported SQL dialect identifiers."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MSSQL = "mssql"

    ALL: List[str] = [SQLITE, POSTGRESQL, MYSQL, MSSQL]


class CascadePolicies:
    """Referential actions accepted on foreign keys."""

    CASCADE = "CASCADE"
    SET_NULL = "SET NULL"
    RESTRICT = "RESTRICT"
    NO_ACTION = "NO ACTION"

    ALL: List[str] = [CASCADE, SET_NULL, RESTRICT, NO_ACTION]
    DEFAULT = CASCADE


class LedgerDefaults:
    """Names used by the persisted version ledger."""

    TABLE_NAME = "scaffold_schema_migrations"
    LOCK_TABLE_NAME = "scaffold_migration_lock"
    LOCK_NAME = "migrator"
    LOCK_SUFFIX = ".lock"


# =============================================================================
# CLI
# =============================================================================

class ExitCodes:
    """Process exit codes, one per failure class."""

    OK = 0
    UNEXPECTED = 1
    VALIDATION = 2
    RENDER = 3
    IO = 4
    LOCKED = 5
    MIGRATION = 6


class FieldNames:
    """Common field names and patterns."""

    # Preferred label column for generated __str__ methods
    DESCRIPTIVE_NAMES: List[str] = [
        "name", "title", "username", "email", "label", "slug", "code"
    ]

    TIMESTAMP_NAMES: List[str] = ["created_at", "updated_at"]

    # Reserved Python keywords (for field name validation)
    PYTHON_KEYWORDS: Set[str] = {
        "False", "None", "True", "and", "as", "assert", "async", "await",
        "break", "class", "continue", "def", "del", "elif", "else", "except",
        "finally", "for", "from", "global", "if", "import", "in", "is",
        "lambda", "nonlocal", "not", "or", "pass", "raise", "return", "try",
        "while", "with", "yield"
    }


class FileExtensions:
    """Common file extensions."""

    PYTHON = ".py"
    YAML = ".yaml"
    HTML = ".html"
    JINJA2 = ".j2"
