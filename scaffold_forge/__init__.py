"""
Scaffold Forge: resource scaffolding and schema migrations.

Plans and writes coordinated application artifacts for a resource (model,
migration, handlers, views, tests) as one all-or-nothing unit, and applies
or reverts migration scripts against SQLite, PostgreSQL, MySQL and SQL
Server under a lock-protected version ledger.
"""

from .domain import FieldDeclaration, GenerationPlan, ResourceName, parse_field_tokens, variants
from .generation import ArtifactPlanner, GenerationOrchestrator, TemplateRenderer, merge_at_marker
from .migrations import MigrationEngine, MigrationScript, emit

__version__ = "0.1.0"

__all__ = [
    'FieldDeclaration',
    'GenerationPlan',
    'ResourceName',
    'parse_field_tokens',
    'variants',
    'ArtifactPlanner',
    'GenerationOrchestrator',
    'TemplateRenderer',
    'merge_at_marker',
    'MigrationEngine',
    'MigrationScript',
    'emit',
]
