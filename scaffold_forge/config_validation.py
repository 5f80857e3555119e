"""
Configuration schema and loading for Scaffold Forge.

Configuration comes from an optional YAML file, overridden by the options
given explicitly on the command line, and is validated with pydantic.
"""

from argparse import Namespace
import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Self

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .constants import DefaultConfig, DefaultLayout, Dialects
from .domain.models import ResourceName
from .exceptions import ConfigurationError, InvalidResourceName

logger = logging.getLogger(__name__)


class ToolConfigSchema(BaseModel):
    """Pydantic schema defining the expected structure and types for the configuration."""

    output_dir: str = Field(
        DefaultConfig.OUTPUT_DIR,
        min_length=1,
        description="Project root the generated files are written under.",
    )
    database_url: str = Field(
        DefaultConfig.DATABASE_URL,
        min_length=1,
        description="SQLAlchemy URL of the database migrations are applied to.",
    )
    dialect: Optional[str] = Field(
        default=None,
        description="SQL dialect; derived from database_url when omitted.",
    )
    migrations_dir: str = Field(
        DefaultConfig.MIGRATIONS_DIR,
        min_length=1,
        description="Directory of migration scripts, relative to output_dir.",
    )
    ledger_backend: Literal["file", "table"] = Field(
        default=DefaultConfig.LEDGER_BACKEND,
        description="Where applied migration ids are recorded.",
    )
    ledger_path: str = Field(
        DefaultConfig.LEDGER_PATH,
        min_length=1,
        description="Ledger file for the 'file' backend, relative to output_dir.",
    )
    lock_timeout: float = Field(
        default=DefaultConfig.LOCK_TIMEOUT,
        ge=0,
        description="Seconds to wait for the migrator lock before giving up.",
    )
    use_timestamps: bool = Field(
        default=DefaultConfig.USE_TIMESTAMPS,
        description="Add created_at/updated_at columns to generated tables.",
    )
    known_resources: List[str] = Field(
        default_factory=list,
        description="Resources already present in the project.",
    )
    templates_dir: Optional[str] = Field(
        default=None,
        description="Directory with template overrides, relative to output_dir.",
    )
    layout: Dict[str, str] = Field(
        default_factory=dict,
        description="Overrides for the target path patterns.",
    )

    model_config = ConfigDict(
        extra="ignore",  # Allow and ignore extra fields from input dict
    )

    @field_validator("dialect")
    @classmethod
    def check_dialect(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in Dialects.ALL:
            raise ValueError(f"Dialect '{v}' is not supported. Supported dialects are: {', '.join(Dialects.ALL)}")
        return v

    @field_validator("known_resources")
    @classmethod
    def check_known_resources(cls, v: List[str]) -> List[str]:
        for resource in v:
            try:
                ResourceName(resource)
            except InvalidResourceName as e:
                raise ValueError(e.message) from e
        return v

    @field_validator("layout")
    @classmethod
    def check_layout(cls, v: Dict[str, str]) -> Dict[str, str]:
        supported = DefaultLayout.as_dict()
        unknown = sorted(set(v) - set(supported))
        if unknown:
            raise ValueError(
                f"Unknown layout slot(s): {', '.join(unknown)}. Supported: {', '.join(supported)}"
            )
        return v

    @model_validator(mode="after")
    def check_ledger_config(self) -> Self:
        """Perform cross-field validation checks."""
        if self.ledger_backend == "table" and self.ledger_path != DefaultConfig.LEDGER_PATH:
            logger.warning("'ledger_path' is ignored because ledger_backend is 'table'.")
        return self

    # --- Resolved paths ---

    @property
    def root(self) -> Path:
        return Path(self.output_dir)

    @property
    def migrations_path(self) -> Path:
        return self.root / self.migrations_dir

    @property
    def ledger_file(self) -> Path:
        return self.root / self.ledger_path

    @property
    def templates_path(self) -> Optional[Path]:
        return self.root / self.templates_dir if self.templates_dir else None


def validate_and_parse_config(config_dict: Dict[str, Any], config_file: Optional[str] = None) -> ToolConfigSchema:
    """
    Validates a raw configuration dictionary against the ToolConfigSchema.

    Raises:
        ConfigurationError: Listing every validation failure.
    """
    try:
        validated_config = ToolConfigSchema.model_validate(config_dict)
    except ValidationError as e:
        problems = []
        for error in e.errors():
            loc_parts = [str(loc_item) for loc_item in error.get("loc", ())]
            loc_str = " -> ".join(loc_parts) if loc_parts else "Model Level"
            problems.append(f"{loc_str}: {error.get('msg', 'Unknown validation error')}")
        raise ConfigurationError(
            f"Configuration validation failed with {len(problems)} error(s)",
            config_file=config_file,
            context={"errors": problems},
        ) from e

    logger.debug("Configuration dictionary parsed and validated successfully against schema.")
    return validated_config


def load_config(config_path: Optional[str], cli_args: Optional[Namespace] = None) -> ToolConfigSchema:
    """
    Loads configuration from YAML file, merges with CLI arguments,
    validates the result, and returns a validated Pydantic model instance.

    A missing file is not an error; defaults and CLI arguments are used.

    Raises:
        ConfigurationError: If the file is not valid YAML or the merged
            configuration fails validation.
    """
    raw_config: Dict[str, Any] = {}

    # 1. Load from YAML file if path is provided
    if config_path:
        config_file = Path(config_path)
        if config_file.is_file():
            try:
                with open(config_file, "r", encoding="utf-8") as f:
                    yaml_config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"Error parsing YAML file: {e}", config_file=config_path
                ) from e
            except OSError as e:
                raise ConfigurationError(
                    f"Error reading config file: {e}", config_file=config_path
                ) from e

            if yaml_config and isinstance(yaml_config, dict):
                raw_config.update(yaml_config)
                logger.debug(f"Loaded configuration from {config_path}")
            elif yaml_config:
                raise ConfigurationError(
                    "Config file content must be a mapping", config_file=config_path
                )
        else:
            logger.debug(f"Config file not found at {config_path}. Using defaults and CLI arguments.")

    # 2. Override with CLI arguments (only those explicitly provided)
    if cli_args is not None:
        overridden_keys = set()
        for key, value in vars(cli_args).items():
            if value is not None and key in ToolConfigSchema.model_fields:
                raw_config[key] = value
                overridden_keys.add(key)
        if overridden_keys:
            logger.debug(f"Overridden config keys from CLI arguments: {sorted(overridden_keys)}")

    return validate_and_parse_config(raw_config, config_file=config_path)
