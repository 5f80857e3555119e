"""
Template catalogue: resolves template ids to template bodies.

The embedded templates ship in ``scaffold_forge/templates``. A project may
override any of them by placing a file with the same name in its own
templates directory, which is searched first.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from jinja2 import (
    BaseLoader,
    ChoiceLoader,
    DictLoader,
    Environment,
    FileSystemLoader,
    TemplateNotFound as JinjaTemplateNotFound,
)

from ..exceptions import TemplateNotFound

logger = logging.getLogger(__name__)

# Define the path to the templates directory relative to the package
TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


class TemplateCatalogue:
    """Named template bodies backed by a Jinja2 loader."""

    def __init__(self, templates_dir: Optional[Path] = None, loader: Optional[BaseLoader] = None):
        if loader is None:
            loaders: List[BaseLoader] = []
            if templates_dir:
                logger.debug(f"Template overrides enabled from {templates_dir}")
                loaders.append(FileSystemLoader(str(templates_dir)))
            loaders.append(FileSystemLoader(str(TEMPLATE_DIR)))
            loader = ChoiceLoader(loaders)
        self.loader = loader
        # Only used to satisfy the loader API; rendering has its own environment
        self._env = Environment(loader=loader)

    @classmethod
    def from_mapping(cls, templates: Dict[str, str]) -> "TemplateCatalogue":
        """Build a catalogue from in-memory bodies, mostly for tests."""
        return cls(loader=DictLoader(dict(templates)))

    def get(self, template_id: str) -> str:
        """
        Return the body of a template.

        Raises:
            TemplateNotFound: If no loader knows the template id.
        """
        try:
            source, _filename, _uptodate = self.loader.get_source(self._env, template_id)
        except JinjaTemplateNotFound as e:
            raise TemplateNotFound(
                f"Template '{template_id}' not found in the catalogue", template_id=template_id
            ) from e
        return source

    def has(self, template_id: str) -> bool:
        try:
            self.get(template_id)
        except TemplateNotFound:
            return False
        return True

    def names(self) -> List[str]:
        return sorted(self.loader.list_templates())
