"""
Template rendering and marker-based merging.

Rendering uses Jinja2 with ``StrictUndefined``: a placeholder without a value
is a hard error, never an empty string. Merging inserts a generated fragment
directly before a named marker line and is idempotent, so re-running a
generation against an already augmented file changes nothing.

Both operations are pure string transformations.
"""

import logging
import re
from typing import Mapping, Optional

from jinja2 import (
    Environment,
    StrictUndefined,
    TemplateSyntaxError,
    UndefinedError,
    meta,
    ext as jinja2_extensions,
)

from ..constants import Markers
from ..domain.naming import p, pluralize, singularize, with_article
from ..exceptions import DuplicateMarker, MarkerNotFound, RenderError, UnresolvedVariable
from .catalogue import TemplateCatalogue

logger = logging.getLogger(__name__)

_UNDEFINED_NAME = re.compile(r"'([^']+)' is undefined")


def setup_jinja_env() -> Environment:
    """Sets up and returns the Jinja2 environment used for all artifacts."""
    env = Environment(
        undefined=StrictUndefined,  # unresolved placeholders raise
        autoescape=False,  # output is source code, not HTML for a browser
        keep_trailing_newline=True,
        trim_blocks=True,  # Remove first newline after a block tag
        lstrip_blocks=True,  # Strip leading whitespace from lines with block tags
        extensions=[
            jinja2_extensions.do,
            jinja2_extensions.loopcontrols,
        ],
    )
    env.filters["pluralize"] = pluralize
    env.filters["singularize"] = singularize
    env.filters["with_article"] = with_article
    env.globals["p"] = p
    return env


def marker_token(marker_id: str) -> str:
    return Markers.TOKEN_TEMPLATE.format(marker_id=marker_id)


def merge_at_marker(existing_content: str, marker_id: str, fragment: str) -> str:
    """
    Insert ``fragment`` directly before the line holding marker ``marker_id``.

    The marker line is preserved so later fragments can still be added. The
    fragment is treated as whole lines (a trailing newline is added if
    missing). If that block already sits before the marker, the content is
    returned unchanged.

    Raises:
        MarkerNotFound: If no line carries the marker.
        DuplicateMarker: If more than one line carries it.
    """
    token = marker_token(marker_id)
    lines = existing_content.splitlines(keepends=True)
    marker_lines = [index for index, line in enumerate(lines) if token in line]

    if not marker_lines:
        raise MarkerNotFound(f"Marker '{marker_id}' not found", marker_id=marker_id)
    if len(marker_lines) > 1:
        raise DuplicateMarker(
            f"Marker '{marker_id}' occurs {len(marker_lines)} times",
            marker_id=marker_id,
            context={"lines": [index + 1 for index in marker_lines]},
        )

    offset = sum(len(line) for line in lines[:marker_lines[0]])
    before, after = existing_content[:offset], existing_content[offset:]
    block = fragment if fragment.endswith("\n") else fragment + "\n"

    if before.endswith(block):
        return existing_content
    # Earlier fragments for other resources may sit between this block and the marker
    if before.startswith(block) or ("\n" + block) in before:
        return existing_content

    return before + block + after


def remove_at_marker(existing_content: str, marker_id: str, fragment: str) -> str:
    """
    Undo ``merge_at_marker``: drop the fragment block from before the marker.

    Content without the block is returned unchanged.
    """
    token = marker_token(marker_id)
    offset = existing_content.find(token)
    if offset < 0:
        raise MarkerNotFound(f"Marker '{marker_id}' not found", marker_id=marker_id)

    line_start = existing_content.rfind("\n", 0, offset) + 1
    before, after = existing_content[:line_start], existing_content[line_start:]
    block = fragment if fragment.endswith("\n") else fragment + "\n"

    if before.startswith(block):
        return before[len(block):] + after
    position = before.rfind("\n" + block)
    if position < 0:
        return existing_content
    return before[:position + 1] + before[position + 1 + len(block):] + after


class TemplateRenderer:
    """Renders template bodies, or catalogue templates by id."""

    def __init__(self, catalogue: Optional[TemplateCatalogue] = None):
        self.catalogue = catalogue or TemplateCatalogue()
        self.env = setup_jinja_env()

    def _check_variables(self, template: str, variables: Mapping[str, str], template_id: Optional[str]):
        try:
            ast = self.env.parse(template)
        except TemplateSyntaxError as e:
            raise RenderError(
                f"Template syntax error at line {e.lineno}: {e.message}", template_id=template_id
            ) from e

        referenced = meta.find_undeclared_variables(ast)
        missing = sorted(name for name in referenced if name not in variables and name not in self.env.globals)
        if missing:
            raise UnresolvedVariable(
                f"Unresolved placeholder(s): {', '.join(missing)}",
                template_id=template_id,
                context={"missing": missing},
            )

    def render(self, template: str, variables: Mapping[str, str], template_id: Optional[str] = None) -> str:
        """
        Substitute ``{{ name }}`` placeholders in a template body.

        Raises:
            UnresolvedVariable: If any placeholder has no value.
            RenderError: If the template is malformed.
        """
        self._check_variables(template, variables, template_id)
        try:
            return self.env.from_string(template).render(**variables)
        except UndefinedError as e:
            match = _UNDEFINED_NAME.search(str(e.message))
            raise UnresolvedVariable(
                f"Unresolved placeholder: {match.group(1) if match else e.message}",
                template_id=template_id,
            ) from e

    def render_template(self, template_id: str, variables: Mapping[str, str]) -> str:
        """Render a catalogue template by id."""
        body = self.catalogue.get(template_id)
        logger.debug(f"Rendering template '{template_id}'")
        return self.render(body, variables, template_id=template_id)

    def merge_at_marker(self, existing_content: str, marker_id: str, fragment: str) -> str:
        return merge_at_marker(existing_content, marker_id, fragment)
