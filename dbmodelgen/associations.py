"""
Association resolution.

Relationships come from two places: an explicit association file and the
foreign keys already embedded in column metadata. The file format is one
comma-separated row per relationship:

    cardinality,leftKey,rightKey,leftTable,rightTable[,joinTable[,leftPropName[,rightPropName]]]

    1:N,race_id,race_id,races,units
    N:N,author_id,book_id,authors,books,authors_books

Parsed files are cached per resolved path by AssociationsCache; the parsed
structures are never mutated once cached.
"""

import csv
import dataclasses
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .errors import AssociationParseError
from .metadata import (
    AssociationEntry,
    AssociationKind,
    AssociationMetadata,
    AssociationsParsed,
    ForeignKeyMetadata,
    TableMetadata,
    TableName,
    parse_full_table_name,
)
from .naming import numbered_name

logger = logging.getLogger(__name__)

CARDINALITIES = ("1:1", "1:N", "N:N")
REQUIRED_FIELDS = ("leftKey", "rightKey", "leftTable", "rightTable")


@dataclass
class AssociationRow:
    cardinality: str
    left_key: str
    right_key: str
    left_table: str
    right_table: str
    join_table: Optional[str] = None
    left_prop_name: Optional[str] = None
    right_prop_name: Optional[str] = None


# ============================================================================
# Parsing
# ============================================================================

def parse_association_row(fields: Sequence[str], line_number: Optional[int] = None) -> AssociationRow:
    """Validate one row. Raises AssociationParseError naming the offending field."""
    values = [f.strip() for f in fields] + [""] * max(0, 8 - len(fields))
    cardinality = values[0].upper()
    if cardinality not in CARDINALITIES:
        raise AssociationParseError(
            f"Invalid cardinality '{values[0]}', expected one of {', '.join(CARDINALITIES)}",
            line_number=line_number,
            field="cardinality",
        )
    for position, name in enumerate(REQUIRED_FIELDS, start=1):
        if not values[position]:
            raise AssociationParseError(f"Missing required {name}", line_number=line_number, field=name)
    if cardinality == "N:N" and not values[5]:
        raise AssociationParseError(
            "Missing required joinTable for N:N association", line_number=line_number, field="joinTable"
        )
    return AssociationRow(
        cardinality=cardinality,
        left_key=values[1],
        right_key=values[2],
        left_table=values[3],
        right_table=values[4],
        join_table=values[5] or None,
        left_prop_name=values[6] or None,
        right_prop_name=values[7] or None,
    )


def _entry(parsed: AssociationsParsed, table: TableName) -> AssociationEntry:
    return parsed.setdefault(table.full_table_name.lower(), AssociationEntry())


def _add_row(parsed: AssociationsParsed, row: AssociationRow) -> None:
    left = parse_full_table_name(row.left_table)
    right = parse_full_table_name(row.right_table)

    if row.cardinality == "N:N":
        join = parse_full_table_name(row.join_table)
        _entry(parsed, left).associations.append(AssociationMetadata(
            kind=AssociationKind.BELONGS_TO_MANY,
            target_model=right,
            join_model=join,
            source_key=row.left_key,
            target_key=row.right_key,
            target_alias=row.right_prop_name,
            target_model_prop_name=row.right_prop_name,
        ))
        _entry(parsed, right).associations.append(AssociationMetadata(
            kind=AssociationKind.BELONGS_TO_MANY,
            target_model=left,
            join_model=join,
            source_key=row.right_key,
            target_key=row.left_key,
            target_alias=row.left_prop_name,
            target_model_prop_name=row.left_prop_name,
        ))
        join_entry = _entry(parsed, join)
        join_entry.foreign_keys.append(ForeignKeyMetadata(name=row.left_key, target_model=left))
        join_entry.foreign_keys.append(ForeignKeyMetadata(name=row.right_key, target_model=right))
        return

    kind = AssociationKind.HAS_ONE if row.cardinality == "1:1" else AssociationKind.HAS_MANY
    _entry(parsed, left).associations.append(AssociationMetadata(
        kind=kind,
        target_model=right,
        source_key=row.left_key,
        target_key=row.right_key,
        target_alias=row.right_prop_name,
        target_model_prop_name=row.right_prop_name,
    ))
    right_entry = _entry(parsed, right)
    right_entry.associations.append(AssociationMetadata(
        kind=AssociationKind.BELONGS_TO,
        target_model=left,
        source_key=row.right_key,
        target_key=row.left_key,
        target_alias=row.left_prop_name,
        target_model_prop_name=row.left_prop_name,
    ))
    right_entry.foreign_keys.append(ForeignKeyMetadata(name=row.right_key, target_model=left, target_key=row.left_key))


def parse_associations_text(content: str) -> AssociationsParsed:
    """Parse association rows. Any invalid row aborts the whole parse."""
    parsed: AssociationsParsed = {}
    reader = csv.reader(io.StringIO(content))
    for fields in reader:
        if not fields or not any(f.strip() for f in fields):
            continue
        if fields[0].lstrip().startswith("#"):
            continue
        _add_row(parsed, parse_association_row(fields, line_number=reader.line_num))
    for entry in parsed.values():
        entry.associations[:] = disambiguate_associations(entry.associations)
        entry.foreign_keys[:] = disambiguate_foreign_keys(entry.foreign_keys)
    return parsed


def parse_associations(path: str) -> AssociationsParsed:
    return parse_associations_text(Path(path).read_text(encoding="utf-8"))


# ============================================================================
# Disambiguation
# ============================================================================

def disambiguate_associations(associations: List[AssociationMetadata]) -> List[AssociationMetadata]:
    """Drop exact duplicates and give repeated un-aliased links to one target distinct names.

    Repeats get numbered field names (units, units1, ...) used as their alias too,
    and are flagged has_multiple_for_same_target.
    """
    unique: List[AssociationMetadata] = []
    seen = set()
    for assoc in associations:
        if assoc.identity() in seen:
            continue
        seen.add(assoc.identity())
        unique.append(assoc)

    groups: Dict[tuple, List[AssociationMetadata]] = {}
    for assoc in unique:
        if assoc.target_alias or assoc.target_model_prop_name:
            continue
        groups.setdefault((assoc.kind, assoc.target_model.full_table_name.lower()), []).append(assoc)
    for group in groups.values():
        if len(group) < 2:
            continue
        for i, assoc in enumerate(group):
            assoc.name_index = i
            assoc.target_model_prop_name = assoc.target_alias = numbered_name(assoc.kind, assoc.target_model.name, i)
            assoc.has_multiple_for_same_target = True
    return unique


def disambiguate_foreign_keys(foreign_keys: List[ForeignKeyMetadata]) -> List[ForeignKeyMetadata]:
    unique: List[ForeignKeyMetadata] = []
    seen = set()
    for fk in foreign_keys:
        key = (fk.name.lower(), fk.target_model.full_table_name.lower())
        if key in seen:
            continue
        seen.add(key)
        unique.append(fk)
    counts: Dict[str, int] = {}
    for fk in unique:
        target = fk.target_model.full_table_name.lower()
        counts[target] = counts.get(target, 0) + 1
    for fk in unique:
        if counts[fk.target_model.full_table_name.lower()] > 1:
            fk.has_multiple_for_same_target = True
    return unique


# ============================================================================
# Cache
# ============================================================================

class AssociationsCache:
    """Parsed association files keyed by resolved path."""

    def __init__(self):
        self._entries: Dict[str, AssociationsParsed] = {}

    @staticmethod
    def _key(path: str) -> str:
        return str(Path(path).resolve())

    def get(self, path: str) -> AssociationsParsed:
        """Return the parsed file, parsing it on first use."""
        key = self._key(path)
        parsed = self._entries.get(key)
        if parsed is None:
            logger.info(f"Parsing associations file {key}")
            parsed = parse_associations(key)
            self._entries[key] = parsed
        return parsed

    def invalidate(self, path: Optional[str] = None) -> None:
        """Forget one file, or every file when no path is given."""
        if path is None:
            self._entries.clear()
        else:
            self._entries.pop(self._key(path), None)

    def __contains__(self, path: str) -> bool:
        return self._key(path) in self._entries

    def __len__(self) -> int:
        return len(self._entries)


default_cache = AssociationsCache()


# ============================================================================
# Applying to extracted tables
# ============================================================================

class _TableLookup:
    """Resolves table tokens against extracted tables: full name first, then an unambiguous bare name."""

    def __init__(self, tables: Dict[str, TableMetadata]):
        self.by_full: Dict[str, TableMetadata] = {}
        self.by_bare: Dict[str, List[TableMetadata]] = {}
        for table in tables.values():
            self.by_full[table.full_table_name.lower()] = table
            self.by_bare.setdefault(table.origin_name.lower(), []).append(table)

    def resolve(self, token: str) -> Optional[TableMetadata]:
        token = token.lower()
        table = self.by_full.get(token)
        if table is not None:
            return table
        candidates = self.by_bare.get(token, [])
        if len(candidates) == 1:
            return candidates[0]
        return None


def apply_associations(tables: Dict[str, TableMetadata], parsed: AssociationsParsed) -> None:
    """Copy parsed associations and foreign keys onto the extracted tables.

    Unknown tables and columns are reported as warnings and skipped.
    """
    lookup = _TableLookup(tables)
    for key, entry in parsed.items():
        owner = lookup.resolve(key)
        if owner is None:
            logger.warning(f"Association file references unknown table '{key}'")
            continue
        existing = {a.identity() for a in owner.associations}
        for assoc in entry.associations:
            target = lookup.resolve(assoc.target_model.full_table_name)
            join = lookup.resolve(assoc.join_model.full_table_name) if assoc.join_model else None
            if target is None or (assoc.join_model is not None and join is None):
                logger.warning(
                    f"Skipping {assoc.kind.value} association of {owner.full_table_name}: "
                    f"unknown table '{(assoc.join_model if target else assoc.target_model).full_table_name}'"
                )
                continue
            copy = dataclasses.replace(
                assoc,
                target_model=target.table_name,
                join_model=join.table_name if join else None,
            )
            if copy.identity() not in existing:
                existing.add(copy.identity())
                owner.associations.append(copy)

        columns = {c.origin_name.lower(): c for c in owner.columns.values()}
        for fk in entry.foreign_keys:
            column = columns.get(fk.name.lower())
            target = lookup.resolve(fk.target_model.full_table_name)
            if column is None or target is None:
                logger.warning(
                    f"Skipping foreign key {owner.full_table_name}.{fk.name}: "
                    f"unknown {'column' if column is None else 'target table'}"
                )
                continue
            column.foreign_key = dataclasses.replace(fk, name=column.origin_name, target_model=target.table_name)


def infer_associations(tables: Dict[str, TableMetadata]) -> None:
    """Derive BelongsTo / HasMany (HasOne for unique keys) pairs from embedded foreign keys."""
    lookup = _TableLookup(tables)
    for owner in tables.values():
        for column in owner.columns.values():
            fk = column.foreign_key
            if fk is None:
                continue
            target = lookup.resolve(fk.target_model.full_table_name)
            if target is None:
                logger.debug(f"Foreign key {owner.full_table_name}.{column.origin_name} targets a table outside the build")
                continue
            target_key = fk.target_key
            if target_key is None:
                pks = target.primary_key_columns
                if len(pks) != 1:
                    continue
                target_key = pks[0].origin_name
            _add_unique(owner, AssociationMetadata(
                kind=AssociationKind.BELONGS_TO,
                target_model=target.table_name,
                source_key=column.origin_name,
                target_key=target_key,
            ))
            _add_unique(target, AssociationMetadata(
                kind=AssociationKind.HAS_ONE if column.unique else AssociationKind.HAS_MANY,
                target_model=owner.table_name,
                source_key=target_key,
                target_key=column.origin_name,
            ))


def _add_unique(table: TableMetadata, assoc: AssociationMetadata) -> None:
    if any(a.identity() == assoc.identity() for a in table.associations):
        return
    table.associations.append(assoc)


def finalize_associations(tables: Dict[str, TableMetadata]) -> None:
    for table in tables.values():
        table.associations = disambiguate_associations(table.associations)
