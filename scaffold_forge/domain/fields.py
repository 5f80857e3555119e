"""
Parsing of command-line field tokens into FieldDeclaration objects.

Token grammar::

    name[:type[{limit}|{precision,scale}]][:modifier...]

Modifiers are ``required``, ``unique``, ``index`` and ``default=<value>``.
A missing type means ``string``.
"""

import logging
import re
from typing import List, Iterable

from ..constants import SemanticTypes
from ..exceptions import InvalidFieldDeclaration
from .models import FieldConstraints, FieldDeclaration

logger = logging.getLogger(__name__)

_FIELD_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TYPE_PATTERN = re.compile(r"^(?P<type>[A-Za-z_]+)(?:\{(?P<args>[0-9,\s]+)\})?$")

FLAG_MODIFIERS = {"required", "unique", "index"}


def normalize_type(type_token: str) -> str:
    """Resolve CLI aliases (``int``, ``references``...) to a semantic type."""
    lowered = type_token.lower()
    return SemanticTypes.ALIASES.get(lowered, lowered)


def _parse_type(token: str, type_part: str):
    match = _TYPE_PATTERN.match(type_part)
    if not match:
        raise InvalidFieldDeclaration(f"Malformed type '{type_part}'", field=token)

    semantic_type = normalize_type(match.group("type"))
    limit = precision = scale = None

    args = match.group("args")
    if args:
        numbers = [int(part) for part in args.replace(" ", "").split(",") if part]
        if semantic_type == SemanticTypes.DECIMAL:
            if len(numbers) != 2:
                raise InvalidFieldDeclaration(
                    "Decimal fields take {precision,scale}", field=token
                )
            precision, scale = numbers
            if scale > precision:
                raise InvalidFieldDeclaration(
                    f"Scale {scale} cannot exceed precision {precision}", field=token
                )
        elif len(numbers) == 1:
            limit = numbers[0]
        else:
            raise InvalidFieldDeclaration(
                f"Type '{semantic_type}' takes a single {{limit}} argument", field=token
            )

    return semantic_type, limit, precision, scale


def parse_field_token(token: str) -> FieldDeclaration:
    """
    Parse a single ``name:type:modifier`` token.

    A ``default=<value>`` modifier must come last; its value may contain colons.

    Raises:
        InvalidFieldDeclaration: If the token is malformed.

    Example:
        >>> parse_field_token("title:string{120}:required").constraints.limit
        120
    """
    if not token or not token.strip():
        raise InvalidFieldDeclaration("Empty field declaration")

    # default= is the last modifier and keeps any colons in its value
    head, has_default, default_text = token.strip().partition(":default=")
    parts = head.split(":")
    name = parts[0]
    if not _FIELD_NAME_PATTERN.match(name):
        raise InvalidFieldDeclaration(f"Invalid field name '{name}'", field=token)

    semantic_type = SemanticTypes.STRING
    limit = precision = scale = None
    modifiers = parts[1:]
    if modifiers and modifiers[0] not in FLAG_MODIFIERS:
        semantic_type, limit, precision, scale = _parse_type(token, modifiers[0])
        modifiers = modifiers[1:]

    flags = set()
    default_value = default_text if has_default else None
    for modifier in modifiers:
        if modifier in FLAG_MODIFIERS:
            flags.add(modifier)
        else:
            raise InvalidFieldDeclaration(f"Unknown modifier '{modifier}'", field=token)

    constraints = FieldConstraints(
        required="required" in flags,
        unique="unique" in flags,
        index="index" in flags,
        limit=limit,
        precision=precision,
        scale=scale,
        default_value=default_value,
    )
    logger.debug(f"Parsed field token '{token}' as {semantic_type} ({constraints})")
    return FieldDeclaration(name=name, semantic_type=semantic_type, constraints=constraints)


def parse_field_tokens(tokens: Iterable[str]) -> List[FieldDeclaration]:
    """Parse several field tokens, rejecting duplicate field names."""
    declarations: List[FieldDeclaration] = []
    seen = set()
    for token in tokens:
        declaration = parse_field_token(token)
        if declaration.name in seen:
            raise InvalidFieldDeclaration(
                f"Field '{declaration.name}' is declared more than once", field=token
            )
        seen.add(declaration.name)
        declarations.append(declaration)
    return declarations
