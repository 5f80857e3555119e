"""
Naming convention utilities for Scaffold Forge.

This module derives every naming variant a generation run needs (singular and
plural forms, class names, table names) from one logical resource name.

Pluralization and singularization are declared, total functions: the
uncountable and irregular tables are consulted first, then an ordered list of
suffix rules, and finally the word is returned unchanged. Nothing in here
raises for a string input.
"""

import re
from functools import lru_cache
from typing import List, Tuple, TYPE_CHECKING

import inflect

if TYPE_CHECKING:
    from .models import ResourceName, NamingVariantSet


# inflect is used for prose only (articles); the rule tables below own morphology
p = inflect.engine()


UNCOUNTABLE = frozenset({
    "equipment", "information", "rice", "money", "species", "series",
    "fish", "sheep", "deer", "news", "data", "metadata", "feedback",
    "software", "hardware", "police", "jeans", "media",
})

IRREGULAR_PLURALS = {
    "person": "people",
    "man": "men",
    "woman": "women",
    "child": "children",
    "mouse": "mice",
    "goose": "geese",
    "foot": "feet",
    "tooth": "teeth",
    "ox": "oxen",
    "leaf": "leaves",
    "knife": "knives",
    "life": "lives",
    "wife": "wives",
    "half": "halves",
    "wolf": "wolves",
    "shelf": "shelves",
    "analysis": "analyses",
    "crisis": "crises",
    "thesis": "theses",
    "criterion": "criteria",
    "phenomenon": "phenomena",
    "cactus": "cacti",
    "quiz": "quizzes",
    "hero": "heroes",
    "potato": "potatoes",
    "tomato": "tomatoes",
    "echo": "echoes",
    "movie": "movies",
    "cookie": "cookies",
    "menu": "menus",
    "taxi": "taxis",
    "gas": "gases",
    "alias": "aliases",
    "cache": "caches",
    # -che, -as, -is, -ie and -use plurals the suffix rules would read differently
    "ache": "aches",
    "headache": "headaches",
    "niche": "niches",
    "cliche": "cliches",
    "avalanche": "avalanches",
    "canvas": "canvases",
    "bias": "biases",
    "atlas": "atlases",
    "iris": "irises",
    "lens": "lenses",
    "tie": "ties",
    "pie": "pies",
    "lie": "lies",
    "abuse": "abuses",
    "excuse": "excuses",
    "fuse": "fuses",
    "refuse": "refuses",
    "muse": "muses",
}

IRREGULAR_SINGULARS = {plural: singular for singular, plural in IRREGULAR_PLURALS.items()}

# Ordered (pattern, replacement) pairs; the first matching rule wins
PLURAL_RULES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"([^aeiou])y$"), r"\1ies"),
    (re.compile(r"(s|x|z|ch|sh)$"), r"\1es"),
    (re.compile(r"$"), "s"),
]

SINGULAR_RULES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"([^aeiou])ies$"), r"\1y"),
    (re.compile(r"(ss|x|ch|sh)es$"), r"\1"),
    # size/sizes but buzz/buzzes and waltz/waltzes
    (re.compile(r"([aeiou])zes$"), r"\1ze"),
    (re.compile(r"([^aeiou])zes$"), r"\1z"),
    (re.compile(r"([^aeiou]us)es$"), r"\1"),
    # words ending in -ss, -us, -is are already singular
    (re.compile(r"(ss|us|is)$"), r"\1"),
    (re.compile(r"([^s])s$"), r"\1"),
]


def _match_case(source: str, word: str) -> str:
    """Carry the capitalization of ``source``'s first letter over to ``word``."""
    if source[:1].isupper():
        return word[:1].upper() + word[1:]
    return word


def pluralize(word: str) -> str:
    """
    Return the plural form of a single English noun.

    Example:
        >>> pluralize("category")
        'categories'
        >>> pluralize("Person")
        'People'
    """
    if not isinstance(word, str) or not word:
        return word if isinstance(word, str) else ""

    lower = word.lower()
    if lower in UNCOUNTABLE:
        return word
    if lower in IRREGULAR_PLURALS:
        return _match_case(word, IRREGULAR_PLURALS[lower])
    # Already an irregular plural
    if lower in IRREGULAR_SINGULARS:
        return word

    for pattern, replacement in PLURAL_RULES:
        if pattern.search(lower):
            return _match_case(word, pattern.sub(replacement, lower, count=1))
    return word


def singularize(word: str) -> str:
    """
    Return the singular form of a single English noun.

    Words no rule recognises are returned unchanged.

    Example:
        >>> singularize("categories")
        'category'
        >>> singularize("status")
        'status'
    """
    if not isinstance(word, str) or not word:
        return word if isinstance(word, str) else ""

    lower = word.lower()
    if lower in UNCOUNTABLE:
        return word
    if lower in IRREGULAR_SINGULARS:
        return _match_case(word, IRREGULAR_SINGULARS[lower])
    if lower in IRREGULAR_PLURALS:
        return word

    for pattern, replacement in SINGULAR_RULES:
        if pattern.search(lower):
            return _match_case(word, pattern.sub(replacement, lower, count=1))
    return word


def to_snake_case(name: str) -> str:
    """
    Convert CamelCase or PascalCase to snake_case.

    Example:
        >>> to_snake_case("InvoiceItem")
        'invoice_item'
        >>> to_snake_case("XMLHttpRequest")
        'xml_http_request'
    """
    if not isinstance(name, str):
        raise TypeError(f"Expected string, got {type(name).__name__}")

    name = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    name = re.sub("__([A-Z])", r"_\1", name)
    name = re.sub("([a-z0-9])([A-Z])", r"\1_\2", name)
    return name.lower()


def tokenize(name: str) -> Tuple[str, ...]:
    """Split a snake_case or CamelCase identifier into lower-case tokens."""
    return tuple(token for token in to_snake_case(name).split("_") if token)


def capitalize_tokens(tokens: Tuple[str, ...]) -> str:
    return "".join(token[:1].upper() + token[1:] for token in tokens)


def with_article(phrase: str) -> str:
    """Prefix a phrase with the matching indefinite article ("an invoice")."""
    return p.a(phrase)


def _inflect_last(tokens: Tuple[str, ...], inflector) -> Tuple[str, ...]:
    return tokens[:-1] + (inflector(tokens[-1]),)


@lru_cache(maxsize=512)
def variants(name: "ResourceName") -> "NamingVariantSet":
    """
    Derive the naming variants of a resource name.

    Only the last token is inflected, so ``invoice_items`` and ``InvoiceItem``
    both give the singular ``invoice_item`` and the table ``invoice_items``.
    Results are cached per resource name.
    """
    from .models import NamingVariantSet

    singular = _inflect_last(name.tokens, singularize)
    plural = _inflect_last(singular, pluralize)

    return NamingVariantSet(
        singular_lower="".join(singular),
        singular_capitalized=capitalize_tokens(singular),
        plural_lower="".join(plural),
        plural_capitalized=capitalize_tokens(plural),
        storage_identifier="_".join(plural),
        singular_snake="_".join(singular),
        plural_snake="_".join(plural),
        singular_camel=singular[0] + capitalize_tokens(singular[1:]),
        human_singular=" ".join(singular),
        human_plural=" ".join(plural),
    )
