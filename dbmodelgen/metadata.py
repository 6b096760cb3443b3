"""
Canonical, dialect-independent table metadata.

Adapters normalize catalog rows into these types; the association resolver,
case transformer and synthesizer only ever see this representation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


@dataclass(frozen=True)
class TableName:
    """Identity of a table. `full_table_name` is built from the original names and never changes."""

    schema: Optional[str]
    name: str
    full_table_name: str = ""

    def __post_init__(self):
        if not self.full_table_name:
            object.__setattr__(self, "full_table_name", make_full_table_name(self.schema, self.name))


def make_full_table_name(schema: Optional[str], name: str) -> str:
    return f"{schema}.{name}" if schema else name


def parse_full_table_name(token: str) -> TableName:
    """Split an optional `schema.` prefix off a table token."""
    token = token.strip()
    if "." in token:
        schema, _, name = token.partition(".")
        return TableName(schema=schema, name=name)
    return TableName(schema=None, name=token)


@dataclass
class IndexMetadata:
    """One column's participation in an index."""

    name: str
    unique: bool = False
    using: Optional[str] = None
    collation: Optional[str] = None
    seq: int = 1
    primary: bool = False


@dataclass
class ForeignKeyMetadata:
    name: str
    target_model: TableName
    has_multiple_for_same_target: bool = False
    target_key: Optional[str] = None


class AssociationKind(str, Enum):
    HAS_ONE = "HasOne"
    HAS_MANY = "HasMany"
    BELONGS_TO = "BelongsTo"
    BELONGS_TO_MANY = "BelongsToMany"

    @property
    def is_many(self) -> bool:
        return self in (AssociationKind.HAS_MANY, AssociationKind.BELONGS_TO_MANY)


@dataclass
class AssociationMetadata:
    """A navigation relationship from the owning table to `target_model`."""

    kind: AssociationKind
    target_model: TableName
    join_model: Optional[TableName] = None
    source_key: Optional[str] = None
    target_key: Optional[str] = None
    target_alias: Optional[str] = None
    target_model_prop_name: Optional[str] = None
    has_multiple_for_same_target: bool = False
    # position among repeated links to one target; set when the field name was generated
    name_index: Optional[int] = None

    def __post_init__(self):
        if self.kind is AssociationKind.BELONGS_TO_MANY and self.join_model is None:
            raise ValueError("BelongsToMany association requires a join model")
        if self.kind is not AssociationKind.BELONGS_TO_MANY and self.join_model is not None:
            raise ValueError(f"{self.kind.value} association cannot have a join model")

    def identity(self) -> tuple:
        """Two associations with the same identity describe the same link."""
        join = self.join_model.full_table_name.lower() if self.join_model else None
        return (
            self.kind,
            self.target_model.full_table_name.lower(),
            join,
            (self.source_key or "").lower(),
            (self.target_key or "").lower(),
        )


@dataclass
class ColumnMetadata:
    origin_name: str
    name: str
    native_type: str
    native_type_extended: str
    mapping_type: str
    host_type: str
    primary_key: bool = False
    auto_increment: bool = False
    allow_null: bool = True
    unique: bool = False
    default_value: Optional[str] = None
    comment: Optional[str] = None
    indices: List[IndexMetadata] = field(default_factory=list)
    foreign_key: Optional[ForeignKeyMetadata] = None

    def __post_init__(self):
        if self.primary_key:
            self.allow_null = False

    @property
    def is_required(self) -> bool:
        """Whether a value must be supplied when creating a row."""
        return not (self.auto_increment or self.allow_null or self.default_value is not None)


@dataclass
class TableMetadata:
    origin_name: str
    name: str
    schema: Optional[str] = None
    timestamps: bool = False
    comment: Optional[str] = None
    columns: Dict[str, ColumnMetadata] = field(default_factory=dict)
    associations: List[AssociationMetadata] = field(default_factory=list)

    @property
    def full_table_name(self) -> str:
        return make_full_table_name(self.schema, self.origin_name)

    @property
    def table_name(self) -> TableName:
        return TableName(schema=self.schema, name=self.name, full_table_name=self.full_table_name)

    @property
    def primary_key_columns(self) -> List[ColumnMetadata]:
        return [c for c in self.columns.values() if c.primary_key]


@dataclass
class TableEntry:
    """A table or view reported by an adapter's catalog listing."""

    table: TableName
    comment: Optional[str] = None
    is_view: bool = False


@dataclass
class AssociationEntry:
    """Associations and foreign keys declared for one table by an association file."""

    foreign_keys: List[ForeignKeyMetadata] = field(default_factory=list)
    associations: List[AssociationMetadata] = field(default_factory=list)


# Keyed by lower-cased full table name.
AssociationsParsed = Dict[str, AssociationEntry]
