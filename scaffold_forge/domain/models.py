"""
Core domain models for Scaffold Forge.

These models represent the essential concepts of a generation run and are
independent of the template engine and the filesystem. They serve as the
contract between the planner, the orchestrator and the CLI.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Iterator, TYPE_CHECKING

from ..constants import ArtifactKinds, SemanticTypes, CascadePolicies
from ..exceptions import InvalidResourceName
from .naming import tokenize

if TYPE_CHECKING:
    from ..migrations.scripts import MigrationScript


_RESOURCE_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class ResourceName:
    """
    Immutable wrapper around a user-supplied resource identifier.

    ``InvoiceItem`` and ``invoice_item`` normalize to the same tokens and
    compare equal.
    """

    raw: str = field(compare=False)
    tokens: Tuple[str, ...] = field(init=False)

    def __post_init__(self):
        if not isinstance(self.raw, str) or not self.raw.strip():
            raise InvalidResourceName("Resource name must be a non-empty string", name=self.raw)

        stripped = self.raw.strip()
        if not _RESOURCE_NAME_PATTERN.match(stripped):
            raise InvalidResourceName(
                f"Resource name '{self.raw}' may only contain letters, digits and underscores "
                "and must start with a letter",
                name=self.raw,
            )
        object.__setattr__(self, "tokens", tokenize(stripped))

    def __str__(self) -> str:
        return "_".join(self.tokens)


@dataclass(frozen=True)
class NamingVariantSet:
    """All naming variants derived from one resource name."""

    singular_lower: str
    singular_capitalized: str
    plural_lower: str
    plural_capitalized: str
    storage_identifier: str

    # Extra forms used by templates and path layouts
    singular_snake: str
    plural_snake: str
    singular_camel: str
    human_singular: str
    human_plural: str

    def as_variables(self) -> Dict[str, str]:
        """Return the variants as a template variable map."""
        return {
            "singular_lower": self.singular_lower,
            "singular_capitalized": self.singular_capitalized,
            "plural_lower": self.plural_lower,
            "plural_capitalized": self.plural_capitalized,
            "storage_identifier": self.storage_identifier,
            "singular_snake": self.singular_snake,
            "plural_snake": self.plural_snake,
            "singular_camel": self.singular_camel,
            "human_singular": self.human_singular,
            "human_plural": self.human_plural,
        }


@dataclass(frozen=True)
class FieldConstraints:
    """Optional constraints attached to a field declaration."""

    required: bool = False
    unique: bool = False
    index: bool = False
    limit: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    default_value: Optional[str] = None


@dataclass(frozen=True)
class FieldDeclaration:
    """
    One typed field of a resource, as declared by the caller.

    ``semantic_type`` is validated by the planner, not here, so that an
    unknown type surfaces as ``UnknownFieldType`` with full context.
    """

    name: str
    semantic_type: str = SemanticTypes.STRING
    constraints: FieldConstraints = field(default_factory=FieldConstraints)

    @property
    def is_reference(self) -> bool:
        return self.semantic_type == SemanticTypes.REFERENCE


@dataclass(frozen=True)
class RelationshipInfo:
    """
    A belongs-to association synthesized from a foreign-key-shaped field.

    Consumed by the model and migration templates.
    """

    name: str
    column: str
    target_resource: str
    target_class: str
    target_table: str
    target_column: str = "id"
    on_delete: str = CascadePolicies.DEFAULT
    required: bool = False


@dataclass
class ArtifactDescriptor:
    """
    One file a plan will produce.

    Artifacts with a ``marker_id`` are merged into an existing host file
    instead of being created; ``host_template_id`` renders the host when it
    does not exist yet.
    """

    kind: str
    target_path: str
    template_id: str
    variables: Dict[str, str] = field(default_factory=dict)
    marker_id: Optional[str] = None
    host_template_id: Optional[str] = None

    @property
    def is_merge(self) -> bool:
        return self.marker_id is not None


@dataclass
class GenerationPlan:
    """Ordered artifact descriptors for one resource."""

    resource: ResourceName
    artifacts: List[ArtifactDescriptor] = field(default_factory=list)
    relationships: List[RelationshipInfo] = field(default_factory=list)
    migration: Optional["MigrationScript"] = None

    def __iter__(self) -> Iterator[ArtifactDescriptor]:
        return iter(self.artifacts)

    def __len__(self) -> int:
        return len(self.artifacts)

    def of_kind(self, kind: str, include_merges: bool = False) -> List[ArtifactDescriptor]:
        """Files of one kind; marker merges into shared hosts only on request."""
        return [
            artifact for artifact in self.artifacts
            if artifact.kind == kind and (include_merges or not artifact.is_merge)
        ]

    def merges(self) -> List[ArtifactDescriptor]:
        return [artifact for artifact in self.artifacts if artifact.is_merge]

    @property
    def target_paths(self) -> List[str]:
        return [artifact.target_path for artifact in self.artifacts]

    def is_ordered(self) -> bool:
        """Check that artifacts follow migration, model, handler, view, test order."""
        ranks = [ArtifactKinds.ORDERED.index(artifact.kind) for artifact in self.artifacts]
        return ranks == sorted(ranks)


@dataclass
class GeneratedFile:
    """A file written (or, in dry-run mode, that would be written) by a run."""

    path: str
    content: str
    is_new_file: bool
    changed: bool = True
