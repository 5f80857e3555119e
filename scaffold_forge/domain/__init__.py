"""
Domain module for Scaffold Forge.

This module contains the naming logic and the value objects shared by the
planner, the orchestrator and the CLI, separated from template and
filesystem concerns.
"""

from .models import (
    ResourceName,
    NamingVariantSet,
    FieldConstraints,
    FieldDeclaration,
    RelationshipInfo,
    ArtifactDescriptor,
    GenerationPlan,
    GeneratedFile,
)

from .naming import (
    variants,
    pluralize,
    singularize,
    to_snake_case,
    tokenize,
    with_article,
)

from .fields import (
    parse_field_token,
    parse_field_tokens,
    normalize_type,
)

__all__ = [
    # Core models
    'ResourceName',
    'NamingVariantSet',
    'FieldConstraints',
    'FieldDeclaration',
    'RelationshipInfo',
    'ArtifactDescriptor',
    'GenerationPlan',
    'GeneratedFile',

    # Naming
    'variants',
    'pluralize',
    'singularize',
    'to_snake_case',
    'tokenize',
    'with_article',

    # Field parsing
    'parse_field_token',
    'parse_field_tokens',
    'normalize_type',
]
