"""
Custom exception hierarchy for Scaffold Forge.

This module provides the error taxonomy used by the generator and the
migration engine. Every error carries rich context, recovery suggestions and
a stable error code; every family maps to a distinct CLI exit code so that
calling scripts can branch on the failure class.
"""

from typing import Dict, Any, Optional, List

from .constants import ExitCodes, SemanticTypes


class ScaffoldForgeError(Exception):
    """
    Base exception for all Scaffold Forge errors.

    Provides rich context and error recovery guidance.
    """

    exit_code = ExitCodes.UNEXPECTED
    default_error_code = "SCAFFOLD_FORGE_ERROR"
    default_suggestions: List[str] = []

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        error_code: Optional[str] = None
    ):
        """
        Initialize the exception with context and recovery suggestions.

        Args:
            message: Human-readable error message
            context: Additional context about where/why the error occurred
            suggestions: List of potential solutions or next steps
            error_code: Unique error code for programmatic handling
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.suggestions = suggestions or list(self.default_suggestions)
        self.error_code = error_code or self.default_error_code

    def __str__(self) -> str:
        """Return formatted error message with context."""
        lines = [super().__str__()]

        if self.error_code:
            lines.append(f"Error Code: {self.error_code}")

        if self.context:
            lines.append("Context:")
            for key, value in self.context.items():
                lines.append(f"  {key}: {value}")

        if self.suggestions:
            lines.append("Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"  • {suggestion}")

        return "\n".join(lines)


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationError(ScaffoldForgeError):
    """Raised before any mutation when caller input is invalid."""

    exit_code = ExitCodes.VALIDATION
    default_error_code = "VALIDATION_ERROR"


class InvalidResourceName(ValidationError):
    """Raised when a resource name is empty or not alphanumeric/underscore."""

    default_error_code = "INVALID_RESOURCE_NAME"
    default_suggestions = [
        "Use letters, digits and underscores only",
        "Start the name with a letter, e.g. 'invoice_item' or 'InvoiceItem'",
    ]

    def __init__(self, message: str, name: Any = None, **kwargs):
        context = kwargs.pop("context", {})
        context["name"] = name
        super().__init__(message, context=context, **kwargs)


class InvalidFieldDeclaration(ValidationError):
    """Raised when a field declaration cannot be parsed or is inconsistent."""

    default_error_code = "INVALID_FIELD_DECLARATION"
    default_suggestions = [
        "Use the form name:type{limit}:modifier, e.g. 'title:string{120}:required'",
        "Field names must be snake_case identifiers",
    ]

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        super().__init__(message, context=context, **kwargs)


class UnknownFieldType(ValidationError):
    """Raised when a field's semantic type is not in the supported set."""

    default_error_code = "UNKNOWN_FIELD_TYPE"

    def __init__(self, message: str, field: Optional[str] = None, field_type: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        if field_type:
            context["field_type"] = field_type
        suggestions = kwargs.pop("suggestions", None) or [
            f"Supported types: {', '.join(SemanticTypes.ALL)}",
        ]
        super().__init__(message, context=context, suggestions=suggestions, **kwargs)


class DuplicateArtifact(ValidationError):
    """Raised when a plan would target the same path or storage identifier twice."""

    default_error_code = "DUPLICATE_ARTIFACT"
    default_suggestions = [
        "Check the layout configuration for patterns that collapse to one path",
        "Pick a resource name whose table name is not already taken",
    ]

    def __init__(self, message: str, target_path: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if target_path:
            context["target_path"] = target_path
        super().__init__(message, context=context, **kwargs)


class ConfigurationError(ValidationError):
    """Raised when configuration is invalid or missing."""

    default_error_code = "CONFIG_ERROR"
    default_suggestions = [
        "Check the configuration file syntax",
        "Verify all required fields are present",
        "Check the documentation for configuration examples",
    ]

    def __init__(self, message: str, config_file: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if config_file:
            context["config_file"] = config_file
        super().__init__(message, context=context, **kwargs)


# =============================================================================
# RENDERING
# =============================================================================

class RenderError(ScaffoldForgeError):
    """Raised when a template cannot be rendered or merged."""

    exit_code = ExitCodes.RENDER
    default_error_code = "RENDER_ERROR"

    def __init__(self, message: str, template_id: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if template_id:
            context["template_id"] = template_id
        super().__init__(message, context=context, **kwargs)


class UnresolvedVariable(RenderError):
    """Raised when a template references a placeholder with no value."""

    default_error_code = "UNRESOLVED_VARIABLE"
    default_suggestions = [
        "Check the placeholder spelling in the template",
        "Make sure the planner provides the variable for this artifact kind",
    ]


class TemplateNotFound(RenderError):
    """Raised when the template catalogue has no entry for a template id."""

    default_error_code = "TEMPLATE_NOT_FOUND"
    default_suggestions = [
        "Check the templates_dir configuration",
        "List the embedded templates shipped with scaffold_forge/templates",
    ]


class MarkerNotFound(RenderError):
    """Raised when a host file lacks the marker a fragment should go before."""

    default_error_code = "MARKER_NOT_FOUND"
    default_suggestions = [
        "Restore the marker comment in the host file",
        "Delete the host file so it is recreated from its template",
    ]

    def __init__(self, message: str, marker_id: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if marker_id:
            context["marker_id"] = marker_id
        super().__init__(message, context=context, **kwargs)


class DuplicateMarker(MarkerNotFound):
    """Raised when a marker occurs more than once in a host file."""

    default_error_code = "DUPLICATE_MARKER"
    default_suggestions = ["Keep exactly one marker comment per insertion point"]


# =============================================================================
# FILESYSTEM
# =============================================================================

class GenerationIOError(ScaffoldForgeError):
    """Raised when reading, writing or deleting a generated file fails."""

    exit_code = ExitCodes.IO
    default_error_code = "IO_ERROR"
    default_suggestions = [
        "Check file permissions in the output directory",
        "Check available disk space",
    ]

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if path:
            context["path"] = path
        super().__init__(message, context=context, **kwargs)


class PathConflict(GenerationIOError):
    """Raised when a target path holds a file the generator does not own."""

    default_error_code = "PATH_CONFLICT"
    default_suggestions = [
        "Move or rename the existing file",
        "Change the layout configuration to target another path",
    ]


# =============================================================================
# DIALECTS
# =============================================================================

class DialectError(ScaffoldForgeError):
    """Raised when a schema operation cannot be expressed in a dialect."""

    exit_code = ExitCodes.MIGRATION
    default_error_code = "DIALECT_ERROR"

    def __init__(self, message: str, dialect: Optional[str] = None, operation: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if dialect:
            context["dialect"] = dialect
        if operation:
            context["operation"] = operation
        super().__init__(message, context=context, **kwargs)


class DialectUnsupportedOperation(DialectError):
    """Raised when an operation has no mapping for the requested dialect."""

    default_error_code = "DIALECT_UNSUPPORTED_OPERATION"
    default_suggestions = [
        "Use a RawStatement with SQL written for this dialect",
        "Split the change into operations the dialect supports",
    ]


class UnknownDialect(DialectError):
    """Raised when a dialect id is not one of the supported dialects."""

    default_error_code = "UNKNOWN_DIALECT"


# =============================================================================
# MIGRATIONS
# =============================================================================

class MigrationError(ScaffoldForgeError):
    """Base class for migration engine failures."""

    exit_code = ExitCodes.MIGRATION
    default_error_code = "MIGRATION_ERROR"

    def __init__(self, message: str, migration_id: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if migration_id:
            context["migration_id"] = migration_id
        super().__init__(message, context=context, **kwargs)


class InvalidMigrationScript(MigrationError):
    """Raised when a migration script file cannot be parsed."""

    default_error_code = "INVALID_MIGRATION_SCRIPT"


class UnknownMigration(MigrationError):
    """Raised when the ledger references a script the engine cannot find."""

    default_error_code = "UNKNOWN_MIGRATION"
    default_suggestions = ["Restore the missing script file in the migrations directory"]


class ScriptNotReversible(MigrationError):
    """Raised when reverting a script that declares no down operations."""

    default_error_code = "SCRIPT_NOT_REVERSIBLE"
    default_suggestions = ["Add down operations to the script before reverting it"]


class NothingToRevert(MigrationError):
    """Raised when a revert is requested but the ledger is empty."""

    default_error_code = "NOTHING_TO_REVERT"
    default_suggestions = ["Run 'status' to inspect the applied migrations"]


class MigrationExecutionError(MigrationError):
    """Raised when a statement fails; the failing script was rolled back."""

    default_error_code = "MIGRATION_EXECUTION_ERROR"

    def __init__(self, message: str, migration_id: Optional[str] = None, completed: Optional[List[str]] = None, **kwargs):
        self.completed = list(completed or [])
        context = kwargs.pop("context", {})
        context["completed"] = self.completed
        super().__init__(message, migration_id=migration_id, context=context, **kwargs)


# =============================================================================
# CONCURRENCY
# =============================================================================

class ConcurrencyError(ScaffoldForgeError):
    """Raised on contention for shared state; safe to retry with backoff."""

    exit_code = ExitCodes.LOCKED
    default_error_code = "CONCURRENCY_ERROR"


class LedgerLocked(ConcurrencyError):
    """Raised when another migrator holds the ledger lock."""

    default_error_code = "LEDGER_LOCKED"
    default_suggestions = [
        "Wait for the other migration run to finish and retry",
        "Increase lock_timeout in the configuration",
        "If the holder crashed, release its stale lock with 'scaffold-forge unlock'",
    ]

    def __init__(self, message: str, holder: Optional[str] = None, timeout: Optional[float] = None, **kwargs):
        context = kwargs.pop("context", {})
        if holder:
            context["holder"] = holder
        if timeout is not None:
            context["timeout"] = timeout
        super().__init__(message, context=context, **kwargs)
