"""
Artifact planning for Scaffold Forge.

This module contains the logic that turns a resource name and its field
declarations into an ordered GenerationPlan. The planner derives the naming
variants once, validates every field, synthesizes belongs-to relationships
from foreign-key shaped fields and builds the migration script for the
resource's table. It performs no I/O.
"""

import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import PurePosixPath
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Union

from ..constants import (
    ArtifactKinds,
    CascadePolicies,
    DefaultConfig,
    DefaultLayout,
    FieldNames,
    GENERATOR_STAMP_PREFIX,
    HTML_INPUT_MAP,
    Markers,
    PYTHON_TYPE_MAP,
    SAMPLE_VALUE_MAP,
    SemanticTypes,
    TemplateIds,
)
from ..domain.models import (
    ArtifactDescriptor,
    FieldDeclaration,
    GenerationPlan,
    NamingVariantSet,
    RelationshipInfo,
    ResourceName,
)
from ..domain.naming import singularize, to_snake_case, variants, with_article
from ..exceptions import (
    ConfigurationError,
    DuplicateArtifact,
    InvalidFieldDeclaration,
    UnknownFieldType,
    ValidationError,
)
from ..migrations.operations import AddIndex, ColumnReference, ColumnSpec, CreateTable, invert
from ..migrations.scripts import MigrationScript, new_migration_id, utc_now

logger = logging.getLogger(__name__)

_FOREIGN_KEY_PATTERN = re.compile(r"^(?P<stem>[a-z][a-z0-9_]*?)_id$")
_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def generator_stamp(kind: str, resource: ResourceName) -> str:
    """Ownership stamp written into every file the generator creates."""
    return f"{GENERATOR_STAMP_PREFIX}:{kind}:{resource}"


def module_path(target_path: str) -> str:
    """Dotted import path of a generated Python file ("app/models/x.py" -> "app.models.x")."""
    path = PurePosixPath(target_path)
    return ".".join(path.with_suffix("").parts)


def convert_default(declaration: FieldDeclaration) -> Optional[Union[bool, int, float, str]]:
    """
    Convert a default value given as text into the field's semantic type.

    Raises:
        InvalidFieldDeclaration: If the text does not parse as that type.
    """
    value = declaration.constraints.default_value
    if value is None:
        return None

    semantic_type = declaration.semantic_type
    try:
        if semantic_type in (SemanticTypes.INTEGER, SemanticTypes.REFERENCE):
            return int(value)
        if semantic_type == SemanticTypes.DECIMAL:
            return float(Decimal(value))
    except (ValueError, InvalidOperation) as e:
        raise InvalidFieldDeclaration(
            f"Default '{value}' is not a valid {semantic_type}", field=declaration.name
        ) from e

    if semantic_type == SemanticTypes.BOOLEAN:
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise InvalidFieldDeclaration(
            f"Default '{value}' is not a valid boolean", field=declaration.name
        )
    return value


class ArtifactPlanner:
    """
    Builds GenerationPlans.

    Args:
        layout: Overrides for the path patterns in ``DefaultLayout``.
        use_timestamps: Add ``created_at``/``updated_at`` columns.
        known_resources: Resources that already exist in the project; used
            to detect foreign keys and storage identifier collisions.
        clock: Source of the migration id timestamp.
        latest_migration_id: Newest existing script id; new ids sort after it.
    """

    def __init__(
        self,
        layout: Optional[Mapping[str, str]] = None,
        use_timestamps: bool = DefaultConfig.USE_TIMESTAMPS,
        known_resources: Iterable[str] = (),
        clock: Callable[[], datetime] = utc_now,
        latest_migration_id: Optional[str] = None,
    ):
        defaults = DefaultLayout.as_dict()
        unknown_slots = set(layout or {}) - set(defaults)
        if unknown_slots:
            raise ConfigurationError(
                f"Unknown layout slot(s): {', '.join(sorted(unknown_slots))}",
                context={"supported": sorted(defaults)},
            )
        self.layout = {**defaults, **(layout or {})}
        self.use_timestamps = use_timestamps
        self.known_resources = [
            resource if isinstance(resource, ResourceName) else ResourceName(resource)
            for resource in known_resources
        ]
        self.clock = clock
        self.latest_migration_id = latest_migration_id

    # --- Validation ---

    def _check_kinds(self, kinds: Optional[Iterable[str]]) -> Set[str]:
        if kinds is None:
            return set(ArtifactKinds.ALL)
        requested = set(kinds)
        unknown = requested - ArtifactKinds.ALL
        if unknown:
            raise ValidationError(
                f"Unknown artifact kind(s): {', '.join(sorted(unknown))}",
                error_code="UNKNOWN_ARTIFACT_KIND",
                context={"supported": ArtifactKinds.ORDERED},
            )
        return requested

    def _reserved_columns(self) -> Set[str]:
        reserved = {DefaultConfig.PRIMARY_KEY}
        if self.use_timestamps:
            reserved.update(FieldNames.TIMESTAMP_NAMES)
        return reserved

    def _check_fields(self, fields: List[FieldDeclaration]) -> None:
        seen: Set[str] = set()
        reserved = self._reserved_columns()
        for declaration in fields:
            if declaration.semantic_type not in SemanticTypes.ALL:
                raise UnknownFieldType(
                    f"Field '{declaration.name}' has unknown type '{declaration.semantic_type}'",
                    field=declaration.name,
                    field_type=declaration.semantic_type,
                )
            column = self._column_name(declaration)
            if declaration.name in FieldNames.PYTHON_KEYWORDS:
                raise InvalidFieldDeclaration(
                    f"Field name '{declaration.name}' is a Python keyword", field=declaration.name
                )
            if column in reserved:
                raise InvalidFieldDeclaration(
                    f"Column '{column}' is generated automatically", field=declaration.name
                )
            if column in seen:
                raise InvalidFieldDeclaration(
                    f"Column '{column}' is declared more than once", field=declaration.name
                )
            seen.add(column)

    def _check_storage_collision(self, resource: ResourceName, names: NamingVariantSet) -> None:
        for known in self.known_resources:
            known_names = variants(known)
            if known_names.singular_snake == names.singular_snake:
                continue
            if known_names.storage_identifier == names.storage_identifier:
                raise DuplicateArtifact(
                    f"Resource '{resource}' would use table '{names.storage_identifier}', "
                    f"which already belongs to '{known}'",
                    context={"resource": str(resource), "existing_resource": str(known)},
                )

    # --- Fields and relationships ---

    @staticmethod
    def _column_name(declaration: FieldDeclaration) -> str:
        column = to_snake_case(declaration.name)
        if declaration.is_reference and not column.endswith("_id"):
            column = f"{column}_id"
        return column

    def _relationship_for(
        self, declaration: FieldDeclaration, known_singulars: Set[str]
    ) -> Optional[RelationshipInfo]:
        column = self._column_name(declaration)
        match = _FOREIGN_KEY_PATTERN.match(column)
        if match is None:
            return None

        stem = match.group("stem")
        if not declaration.is_reference:
            # Plain integer columns only count when the stem names a resource
            if declaration.semantic_type != SemanticTypes.INTEGER:
                return None
            if singularize(stem) not in known_singulars:
                return None

        target = variants(ResourceName(stem))
        required = declaration.constraints.required
        return RelationshipInfo(
            name=stem,
            column=column,
            target_resource=target.singular_snake,
            target_class=target.singular_capitalized,
            target_table=target.storage_identifier,
            target_column=DefaultConfig.PRIMARY_KEY,
            on_delete=CascadePolicies.DEFAULT if required else CascadePolicies.SET_NULL,
            required=required,
        )

    def _relationships(
        self, names: NamingVariantSet, fields: List[FieldDeclaration]
    ) -> Dict[str, RelationshipInfo]:
        known_singulars = {variants(known).singular_snake for known in self.known_resources}
        known_singulars.add(names.singular_snake)

        relationships: Dict[str, RelationshipInfo] = {}
        for declaration in fields:
            relationship = self._relationship_for(declaration, known_singulars)
            if relationship is not None:
                logger.debug(
                    f"Field '{declaration.name}' belongs to {relationship.target_class} "
                    f"({relationship.target_table}.{relationship.target_column})"
                )
                relationships[declaration.name] = relationship
        return relationships

    # --- Migration ---

    def _column_spec(
        self, declaration: FieldDeclaration, relationship: Optional[RelationshipInfo]
    ) -> ColumnSpec:
        constraints = declaration.constraints
        semantic_type = declaration.semantic_type
        if relationship is not None:
            semantic_type = SemanticTypes.REFERENCE

        references = None
        if relationship is not None:
            references = ColumnReference(
                table=relationship.target_table,
                column=relationship.target_column,
                on_delete=relationship.on_delete,
            )

        limit = constraints.limit
        if semantic_type == SemanticTypes.STRING and limit is None:
            limit = SemanticTypes.DEFAULT_STRING_LIMIT

        precision, scale = constraints.precision, constraints.scale
        if semantic_type == SemanticTypes.DECIMAL:
            precision = precision or SemanticTypes.DEFAULT_PRECISION
            scale = scale if scale is not None else SemanticTypes.DEFAULT_SCALE

        return ColumnSpec(
            name=self._column_name(declaration),
            type=semantic_type,
            nullable=not constraints.required,
            unique=constraints.unique,
            limit=limit,
            precision=precision,
            scale=scale,
            default=convert_default(declaration),
            references=references,
        )

    def build_migration(
        self,
        names: NamingVariantSet,
        fields: List[FieldDeclaration],
        relationships: Dict[str, RelationshipInfo],
        migration_id: str,
    ) -> MigrationScript:
        """Build the script that creates the resource's table and indexes."""
        table = names.storage_identifier
        columns = [
            ColumnSpec(
                name=DefaultConfig.PRIMARY_KEY,
                type=SemanticTypes.INTEGER,
                nullable=False,
                primary_key=True,
                autoincrement=True,
            )
        ]
        indexes: List[AddIndex] = []
        for declaration in fields:
            column = self._column_spec(declaration, relationships.get(declaration.name))
            columns.append(column)
            if column.references is not None or declaration.constraints.index:
                indexes.append(AddIndex(table=table, columns=[column.name]))

        if self.use_timestamps:
            for timestamp in FieldNames.TIMESTAMP_NAMES:
                columns.append(ColumnSpec(name=timestamp, type=SemanticTypes.DATETIME, nullable=False))

        up_operations = [CreateTable(table=table, columns=columns), *indexes]
        down_operations = [invert(operation) for operation in reversed(up_operations)]
        return MigrationScript(
            id=migration_id,
            name=f"create_{table}",
            up_operations=up_operations,
            down_operations=down_operations,
        )

    # --- Template variables ---

    @staticmethod
    def _python_type(declaration: FieldDeclaration) -> str:
        return PYTHON_TYPE_MAP[declaration.semantic_type]

    def _field_variables(
        self,
        names: NamingVariantSet,
        fields: List[FieldDeclaration],
        relationships: Dict[str, RelationshipInfo],
    ) -> Dict[str, str]:
        """Pre-render the per-field blocks used by the model, view and test templates."""
        columns = [self._column_name(declaration) for declaration in fields]
        used_types = {declaration.semantic_type for declaration in fields}

        test_imports = []
        if SemanticTypes.DATETIME in used_types:
            test_imports.append("from datetime import datetime")
        if SemanticTypes.DECIMAL in used_types:
            test_imports.append("from decimal import Decimal")
        imports = list(test_imports)
        if self.use_timestamps and SemanticTypes.DATETIME not in used_types:
            imports.insert(0, "from datetime import datetime")

        model_fields = [
            f"    {column}: Optional[{self._python_type(declaration)}] = None"
            for declaration, column in zip(fields, columns)
        ]
        if self.use_timestamps:
            model_fields.extend(f"    {name}: Optional[datetime] = None" for name in FieldNames.TIMESTAMP_NAMES)

        if relationships:
            entries = [
                f'        "{rel.name}": ("{rel.target_class}", "{rel.target_table}", "{rel.column}"),'
                for rel in relationships.values()
            ]
            belongs_to = "{\n" + "\n".join(entries) + "\n    }"
        else:
            belongs_to = "{}"

        display_field = next(
            (column for column in columns if column in FieldNames.DESCRIPTIVE_NAMES),
            next(
                (
                    column
                    for declaration, column in zip(fields, columns)
                    if declaration.semantic_type in (SemanticTypes.STRING, SemanticTypes.TEXT)
                ),
                DefaultConfig.PRIMARY_KEY,
            ),
        )

        record = names.singular_snake
        headers = [f"      <th>{column.replace('_', ' ').capitalize()}</th>" for column in columns]
        cells = [f"      <td>{{{{ {record}.{column} }}}}</td>" for column in columns]
        show_fields = [
            f"  <dt>{column.replace('_', ' ').capitalize()}</dt>\n  <dd>{{{{ {record}.{column} }}}}</dd>"
            for column in columns
        ]
        form_fields = [self._form_field(record, declaration, column) for declaration, column in zip(fields, columns)]

        sample_attributes = ", ".join(
            f'"{column}": {SAMPLE_VALUE_MAP[declaration.semantic_type]}'
            for declaration, column in zip(fields, columns)
        )
        permitted = ", ".join(f'"{column}"' for column in columns)
        if len(columns) == 1:
            permitted += ","

        return {
            "model_imports": "\n".join(imports),
            "model_fields": "\n".join(model_fields),
            "belongs_to": belongs_to,
            "display_field": display_field,
            "view_headers": "\n".join(headers),
            "view_cells": "\n".join(cells),
            "show_fields": "\n".join(show_fields),
            "form_fields": "\n".join(form_fields),
            "test_imports": "\n".join(test_imports),
            "sample_attributes": "{" + sample_attributes + "}",
            "permitted_fields": f"({permitted})",
        }

    @staticmethod
    def _form_field(record: str, declaration: FieldDeclaration, column: str) -> str:
        input_type = HTML_INPUT_MAP[declaration.semantic_type]
        label = f'  <label for="{column}">{column.replace("_", " ").capitalize()}</label>'
        required = " required" if declaration.constraints.required else ""
        if input_type == "textarea":
            control = f'  <textarea id="{column}" name="{column}"{required}>{{{{ {record}.{column} or "" }}}}</textarea>'
        elif input_type == "checkbox":
            control = f'  <input type="checkbox" id="{column}" name="{column}"{{% if {record}.{column} %}} checked{{% endif %}}>'
        else:
            control = (
                f'  <input type="{input_type}" id="{column}" name="{column}" '
                f'value="{{{{ {record}.{column} or "" }}}}"{required}>'
            )
        return f"{label}\n{control}"

    # --- Paths ---

    def _target_path(self, slot: str, path_variables: Dict[str, str]) -> str:
        pattern = self.layout[slot]
        try:
            target = pattern.format(**path_variables)
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigurationError(
                f"Layout pattern for '{slot}' is invalid: {pattern}",
                context={"slot": slot, "error": str(e)},
            ) from e

        path = PurePosixPath(target)
        if path.is_absolute() or ".." in path.parts:
            raise ConfigurationError(
                f"Layout pattern for '{slot}' must stay inside the project: {target}",
                context={"slot": slot},
            )
        return path.as_posix()

    # --- Planning ---

    def plan(
        self,
        name: Union[str, ResourceName],
        fields: Iterable[FieldDeclaration] = (),
        kinds: Optional[Iterable[str]] = None,
        migration_id: Optional[str] = None,
    ) -> GenerationPlan:
        """
        Build the ordered plan for one resource.

        ``migration_id`` pins the migration id, e.g. to address the files of
        an earlier run; by default a new id is taken from the clock.

        Raises:
            InvalidResourceName: If the name is not a valid identifier.
            UnknownFieldType: If a field's semantic type is not supported.
            InvalidFieldDeclaration: If fields clash with each other or with
                generated columns.
            DuplicateArtifact: If two artifacts share a target path, or the
                table name belongs to another known resource.
        """
        resource = name if isinstance(name, ResourceName) else ResourceName(name)
        fields = list(fields)
        requested = self._check_kinds(kinds)
        self._check_fields(fields)

        names = variants(resource)
        self._check_storage_collision(resource, names)
        relationships = self._relationships(names, fields)
        migration_id = migration_id or new_migration_id(self.clock, self.latest_migration_id)

        path_variables = {**names.as_variables(), "migration_id": migration_id, "resource_name": str(resource)}
        paths = {slot: self._target_path(slot, path_variables) for slot in self.layout}

        variables: Dict[str, str] = {
            **names.as_variables(),
            "resource_name": str(resource),
            "table_name": names.storage_identifier,
            "primary_key": DefaultConfig.PRIMARY_KEY,
            "migration_id": migration_id,
            "a_human_singular": with_article(names.human_singular),
            "model_module": module_path(paths["model"]),
            "handler_module": module_path(paths["handler"]),
            "handler_class": f"{names.plural_capitalized}Handler",
            **self._field_variables(names, fields, relationships),
        }

        plan = GenerationPlan(resource=resource, relationships=list(relationships.values()))

        def add(kind: str, slot: str, template_id: str, extra: Optional[Dict[str, Any]] = None, **merge):
            artifact_variables = {**variables, "generator_stamp": generator_stamp(kind, resource)}
            artifact_variables.update(extra or {})
            plan.artifacts.append(
                ArtifactDescriptor(
                    kind=kind,
                    target_path=paths[slot],
                    template_id=template_id,
                    variables=artifact_variables,
                    **merge,
                )
            )

        if ArtifactKinds.MIGRATION in requested:
            plan.migration = self.build_migration(names, fields, relationships, migration_id)
            add(
                ArtifactKinds.MIGRATION,
                "migration",
                TemplateIds.MIGRATION,
                {"migration_yaml": plan.migration.to_yaml().rstrip("\n")},
            )

        if ArtifactKinds.MODEL in requested:
            add(ArtifactKinds.MODEL, "model", TemplateIds.MODEL)
            add(
                ArtifactKinds.MODEL,
                "model_index",
                TemplateIds.MODEL_REGISTRATION,
                marker_id=Markers.MODELS,
                host_template_id=TemplateIds.MODEL_INDEX,
            )

        if ArtifactKinds.HANDLER in requested:
            add(ArtifactKinds.HANDLER, "handler", TemplateIds.HANDLER)
            add(
                ArtifactKinds.HANDLER,
                "routes",
                TemplateIds.ROUTE_REGISTRATION,
                marker_id=Markers.ROUTES,
                host_template_id=TemplateIds.ROUTES,
            )

        if ArtifactKinds.VIEW in requested:
            add(ArtifactKinds.VIEW, "view_index", TemplateIds.VIEW_INDEX)
            add(ArtifactKinds.VIEW, "view_show", TemplateIds.VIEW_SHOW)
            add(ArtifactKinds.VIEW, "view_form", TemplateIds.VIEW_FORM)

        if ArtifactKinds.TEST in requested:
            add(ArtifactKinds.TEST, "test", TemplateIds.TEST)

        self._check_duplicate_paths(plan)
        logger.info(
            f"Planned {len(plan)} artifact(s) for '{resource}' "
            f"({len(plan.relationships)} relationship(s))"
        )
        return plan

    @staticmethod
    def _check_duplicate_paths(plan: GenerationPlan) -> None:
        seen: Set[str] = set()
        for artifact in plan:
            if artifact.target_path in seen:
                raise DuplicateArtifact(
                    f"Two artifacts target '{artifact.target_path}'",
                    target_path=artifact.target_path,
                )
            seen.add(artifact.target_path)
