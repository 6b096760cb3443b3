"""
Identifier case transforms.

Names are always derived from the original database identifiers, so
`origin_name` is never touched. Cross references (association targets, join
models, keys and foreign keys) are renamed from their current value, so a
table must be transformed exactly once.
"""

import copy
import dataclasses
import re
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from .errors import ConfigError
from .metadata import TableMetadata, TableName
from .naming import numbered_name


class TransformCase(str, Enum):
    UPPER = "upper"
    LOWER = "lower"
    UNDERSCORED = "underscored"
    CAMEL = "camel"
    PASCAL = "pascal"
    CONST = "const"


class TransformTarget(str, Enum):
    MODEL = "model"
    COLUMN = "column"


_CASE_ALIASES = {
    "snake": TransformCase.UNDERSCORED,
    "underscore": TransformCase.UNDERSCORED,
    "constant": TransformCase.CONST,
    "l": TransformCase.LOWER,
    "u": TransformCase.UPPER,
    "c": TransformCase.CAMEL,
    "p": TransformCase.PASCAL,
    "o": TransformCase.CONST,
}


def split_words(identifier: str) -> List[str]:
    """Split an identifier on separators and case boundaries: 'RaceID_x' -> ['Race', 'ID', 'x']."""
    s = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", identifier)
    s = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1 \2", s)
    return [w for w in re.split(r"[^A-Za-z0-9]+", s) if w]


def _capitalize(word: str) -> str:
    return word[:1].upper() + word[1:].lower()


def apply_case(identifier: str, case: TransformCase) -> str:
    if case is TransformCase.UPPER:
        return identifier.upper()
    if case is TransformCase.LOWER:
        return identifier.lower()
    words = split_words(identifier)
    if not words:
        return identifier
    if case is TransformCase.UNDERSCORED:
        return "_".join(w.lower() for w in words)
    if case is TransformCase.CONST:
        return "_".join(w.upper() for w in words)
    if case is TransformCase.PASCAL:
        return "".join(_capitalize(w) for w in words)
    if case is TransformCase.CAMEL:
        return words[0].lower() + "".join(_capitalize(w) for w in words[1:])
    raise ConfigError(f"Unknown case '{case}'")


def to_case(value: Union[str, TransformCase]) -> TransformCase:
    if isinstance(value, TransformCase):
        return value
    key = str(value).strip().lower()
    if key in _CASE_ALIASES:
        return _CASE_ALIASES[key]
    try:
        return TransformCase(key)
    except ValueError:
        raise ConfigError(
            f"Unknown case '{value}'. Expected one of: {', '.join(c.value for c in TransformCase)}"
        ) from None


def parse_case(value: str) -> Union[TransformCase, Dict[TransformTarget, TransformCase]]:
    """Parse the CLI form: 'camel' or 'model_case:column_case' (e.g. 'pascal:underscored')."""
    if ":" in value:
        model, _, column = value.partition(":")
        return {TransformTarget.MODEL: to_case(model), TransformTarget.COLUMN: to_case(column)}
    return to_case(value)


class CaseTransformer:
    """The single transform capability: (identifier, target) -> new identifier."""

    def __init__(self, func: Callable[[str, TransformTarget], str]):
        self._func = func

    def transform(self, identifier: str, target: TransformTarget) -> str:
        return self._func(identifier, target)

    __call__ = transform


def get_transformer(setting) -> Optional[CaseTransformer]:
    """Build a transformer from a case, a per-target case map, a callable or an object with transform()."""
    if setting is None:
        return None
    if isinstance(setting, CaseTransformer):
        return setting
    if isinstance(setting, (TransformCase, str)):
        case = to_case(setting)
        return CaseTransformer(lambda identifier, target: apply_case(identifier, case))
    if isinstance(setting, dict):
        cases = {TransformTarget(str(getattr(k, "value", k)).lower()): to_case(v) for k, v in setting.items()}

        def by_target(identifier: str, target: TransformTarget) -> str:
            case = cases.get(target)
            return apply_case(identifier, case) if case else identifier

        return CaseTransformer(by_target)
    if callable(getattr(setting, "transform", None)):
        return CaseTransformer(setting.transform)
    if callable(setting):
        return CaseTransformer(setting)
    raise ConfigError(f"Unsupported case transform: {setting!r}")


def _rename_table(name: TableName, transformer: CaseTransformer) -> TableName:
    return dataclasses.replace(name, name=transformer.transform(name.name, TransformTarget.MODEL))


def _rename_key(key: Optional[str], transformer: CaseTransformer) -> Optional[str]:
    if key is None:
        return None
    return transformer.transform(key, TransformTarget.COLUMN)


def transform_table(table: TableMetadata, transformer: CaseTransformer) -> TableMetadata:
    """Return a renamed copy of the table. Original names stay in origin_name / full_table_name."""
    result = copy.deepcopy(table)
    result.name = transformer.transform(table.origin_name, TransformTarget.MODEL)
    for column in result.columns.values():
        column.name = transformer.transform(column.origin_name, TransformTarget.COLUMN)
        fk = column.foreign_key
        if fk is not None:
            fk.name = transformer.transform(fk.name, TransformTarget.COLUMN)
            fk.target_key = _rename_key(fk.target_key, transformer)
            fk.target_model = _rename_table(fk.target_model, transformer)
    for assoc in result.associations:
        assoc.target_model = _rename_table(assoc.target_model, transformer)
        if assoc.join_model is not None:
            assoc.join_model = _rename_table(assoc.join_model, transformer)
        assoc.source_key = _rename_key(assoc.source_key, transformer)
        assoc.target_key = _rename_key(assoc.target_key, transformer)
        if assoc.name_index is not None:
            assoc.target_model_prop_name = assoc.target_alias = numbered_name(
                assoc.kind, assoc.target_model.name, assoc.name_index
            )
    return result


def transform_tables(tables: Dict[str, TableMetadata], transformer: CaseTransformer) -> Dict[str, TableMetadata]:
    return {key: transform_table(table, transformer) for key, table in tables.items()}
