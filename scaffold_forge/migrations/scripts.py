"""
Migration scripts and the repository that discovers them.

A script is identified by a monotonic timestamp token (``YYYYMMDDHHMMSS``)
and is stored as a YAML document named ``<id>_<slug>.yaml`` in the
migrations directory.
"""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..constants import FileExtensions
from ..exceptions import InvalidMigrationScript, UnknownMigration
from .operations import SchemaOperation

logger = logging.getLogger(__name__)

MIGRATION_ID_FORMAT = "%Y%m%d%H%M%S"
_FILENAME_PATTERN = re.compile(r"^(?P<id>[0-9]+)(?:_(?P<slug>[A-Za-z0-9_]+))?$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_migration_id(clock: Callable[[], datetime] = utc_now, latest: Optional[str] = None) -> str:
    """
    Return a timestamp token for a newly authored script.

    Ids stay strictly increasing: when ``latest`` is not older than the clock
    (two scripts in the same second), the next id is ``latest + 1``.
    """
    token = clock().strftime(MIGRATION_ID_FORMAT)
    if latest is not None and migration_sort_key(token) <= migration_sort_key(latest):
        return str(int(latest) + 1)
    return token


def migration_sort_key(migration_id: str):
    # Numeric order for tokens of different widths
    return (len(migration_id), migration_id)


class MigrationScript(BaseModel):
    """
    An immutable, ordered pair of up and down operation lists.

    Identity is the ``id``; two scripts with the same id are the same script.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., pattern=r"^[0-9]+$")
    name: str = ""
    up_operations: List[SchemaOperation] = Field(default_factory=list)
    down_operations: List[SchemaOperation] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        # YAML reads an unquoted timestamp token as an int
        return str(v) if isinstance(v, int) else v

    @property
    def is_reversible(self) -> bool:
        return bool(self.down_operations)

    @property
    def filename(self) -> str:
        slug = re.sub(r"[^A-Za-z0-9_]+", "_", self.name).strip("_")
        return f"{self.id}_{slug}{FileExtensions.YAML}" if slug else f"{self.id}{FileExtensions.YAML}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "up_operations": [operation.to_dict() for operation in self.up_operations],
            "down_operations": [operation.to_dict() for operation in self.down_operations],
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)

    @classmethod
    def from_yaml(cls, text: str, source: Optional[str] = None) -> "MigrationScript":
        """
        Parse a script from YAML text.

        Raises:
            InvalidMigrationScript: If the document is not a valid script.
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise InvalidMigrationScript(
                f"Migration script is not valid YAML: {e}", context={"source": source}
            ) from e

        if not isinstance(data, dict):
            raise InvalidMigrationScript(
                "Migration script must be a YAML mapping", context={"source": source}
            )

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidMigrationScript(
                f"Migration script failed validation: {e.error_count()} error(s)",
                migration_id=str(data.get("id", "")),
                context={"source": source, "errors": e.errors(include_url=False)},
            ) from e


class MigrationScriptRepository:
    """
    All scripts known to the engine: YAML files from a directory plus
    scripts queued in-process by a generation run.
    """

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory) if directory else None
        self._queued: Dict[str, MigrationScript] = {}

    def queue(self, script: MigrationScript) -> None:
        """Register a script authored in this process."""
        existing = self._queued.get(script.id)
        if existing is not None and existing != script:
            raise InvalidMigrationScript(
                f"A different script with id {script.id} is already queued",
                migration_id=script.id,
            )
        self._queued[script.id] = script
        logger.debug(f"Queued migration script {script.id} ({script.name})")

    def _load_directory(self) -> Dict[str, MigrationScript]:
        scripts: Dict[str, MigrationScript] = {}
        if self.directory is None or not self.directory.is_dir():
            return scripts

        for path in sorted(self.directory.glob(f"*{FileExtensions.YAML}")):
            match = _FILENAME_PATTERN.match(path.stem)
            if not match:
                logger.warning(f"Skipping '{path.name}': file name does not start with a migration id")
                continue

            script = MigrationScript.from_yaml(path.read_text(encoding="utf-8"), source=str(path))
            if script.id != match.group("id"):
                raise InvalidMigrationScript(
                    f"Script id {script.id} does not match its file name '{path.name}'",
                    migration_id=script.id,
                )
            if script.id in scripts:
                raise InvalidMigrationScript(
                    f"Duplicate migration id {script.id}",
                    migration_id=script.id,
                    context={"source": str(path)},
                )
            scripts[script.id] = script
        return scripts

    def load(self) -> Dict[str, MigrationScript]:
        """Return every known script keyed by id."""
        scripts = self._load_directory()
        for script_id, script in self._queued.items():
            if script_id in scripts and scripts[script_id] != script:
                raise InvalidMigrationScript(
                    f"Queued script {script_id} differs from the file on disk",
                    migration_id=script_id,
                )
            scripts[script_id] = script
        return scripts

    def all(self) -> List[MigrationScript]:
        """Return every known script in ascending id order."""
        scripts = self.load()
        return [scripts[script_id] for script_id in sorted(scripts, key=migration_sort_key)]

    def latest_id(self) -> Optional[str]:
        scripts = self.load()
        return max(scripts, key=migration_sort_key) if scripts else None

    def get(self, migration_id: str) -> MigrationScript:
        scripts = self.load()
        if migration_id not in scripts:
            raise UnknownMigration(
                f"No script found for migration {migration_id}", migration_id=migration_id
            )
        return scripts[migration_id]
