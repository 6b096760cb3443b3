"""Identifier helpers for generated code."""

import keyword
import re
from typing import Optional

import inflect

from .metadata import AssociationKind

# Initialize inflect engine for pluralization
p = inflect.engine()

_NON_IDENTIFIER_RE = re.compile(r"\W")

# status, bus, analysis: a trailing "s" that is not a plural suffix
_SINGULAR_S_ENDINGS = ("ss", "us", "is")


def _match_case(word: str, template: str) -> str:
    """Copy the letter case of `template` onto `word`, position by position."""
    if template.isupper():
        return word.upper()
    return "".join(
        ch.upper() if i < len(template) and template[i].isupper() else ch
        for i, ch in enumerate(word)
    )


def _singular_form(lowered: str) -> Optional[str]:
    # inflect strips a trailing "s" from words like "address"; only trust
    # answers that pluralize back to the input
    singular = p.singular_noun(lowered)
    if not singular or p.plural_noun(singular) != lowered:
        return None
    if singular == lowered[:-1] and lowered.endswith(_SINGULAR_S_ENDINGS):
        return None
    return singular


def pluralize(name: str) -> str:
    """Plural form of a table name. Already-plural names are kept."""
    if not name:
        return name
    # inflect treats capitalised words as proper nouns
    lowered = name.lower()
    if _singular_form(lowered):
        return name
    return _match_case(p.plural_noun(lowered) or lowered, name)


def singularize(name: str) -> str:
    if not name:
        return name
    singular = _singular_form(name.lower())
    if not singular:
        return name
    return _match_case(singular, name)


def navigation_name(kind: AssociationKind, target_name: str) -> str:
    """Default field name of a relationship: plural for *Many kinds, singular otherwise."""
    if kind.is_many:
        return pluralize(target_name)
    return singularize(target_name)


def numbered_name(kind: AssociationKind, target_name: str, index: int) -> str:
    """Field name of the index-th repeated link to one target: units, units1, units2, ..."""
    return navigation_name(kind, target_name) + (str(index) if index else "")


def python_identifier(name: str) -> str:
    """Make a valid Python identifier out of a database identifier."""
    ident = _NON_IDENTIFIER_RE.sub("_", name.strip())
    if not ident:
        ident = "_"
    if ident[0].isdigit():
        ident = f"_{ident}"
    if keyword.iskeyword(ident):
        ident = f"{ident}_"
    return ident


# Names DeclarativeBase reserves on mapped classes.
RESERVED_ATTRIBUTES = frozenset({"metadata", "registry", "query", "type_annotation_map"})


def attribute_name(name: str) -> str:
    """Python attribute name for a column or relationship on a generated model."""
    ident = python_identifier(name)
    if ident in RESERVED_ATTRIBUTES or ident.startswith("__"):
        ident = f"{ident.strip('_')}_"
    return ident
