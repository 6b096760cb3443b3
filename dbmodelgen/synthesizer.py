"""
Code synthesis: canonical table metadata -> SQLAlchemy 2.0 model modules.

Output layout (one package):
    _base.py      DeclarativeBase subclass (and TimestampMixin when used)
    <table>.py    one model class per table
    __init__.py   re-exports every model

Generated models use ``Mapped[]`` / ``mapped_column()`` / ``relationship()``.
In strict mode each model also gets a ``<Model>Attributes`` TypedDict bound to
its constructor. Synthesis is pure: no filesystem access, no shared state.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .metadata import AssociationKind, AssociationMetadata, ColumnMetadata, IndexMetadata, TableMetadata
from .naming import attribute_name, navigation_name, python_identifier

logger = logging.getLogger(__name__)

INDENT = "    "
MAX_LINE = 100
TIMESTAMP_COLUMNS = ("created_at", "updated_at")

_QUOTED_RE = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"")
_TYPE_NAME_RE = re.compile(r"\b[A-Z][A-Z0-9_]*\b")


def class_name(table: TableMetadata) -> str:
    return python_identifier(table.name)


def module_name(table: TableMetadata) -> str:
    return python_identifier(table.name)


def type_names(mapping_type: str) -> Set[str]:
    """Upper-case type names referenced by a type expression, e.g. ARRAY(INTEGER) -> {ARRAY, INTEGER}."""
    return set(_TYPE_NAME_RE.findall(_QUOTED_RE.sub("", mapping_type)))


def render_call(name: str, args: List[str], indent: str = INDENT, lead: str = "") -> str:
    """Render `lead + name(args)` on one line when it fits, otherwise one argument per line."""
    single = f"{lead}{name}({', '.join(args)})"
    if len(indent) + len(single) <= MAX_LINE:
        return single
    inner = indent + INDENT
    lines = [f"{lead}{name}("]
    lines.extend(f"{inner}{arg}," for arg in args)
    lines.append(f"{indent})")
    return "\n".join(lines)


@dataclass
class GeneratedModels:
    models: Dict[str, str] = field(default_factory=dict)
    module_names: Dict[str, str] = field(default_factory=dict)
    index: str = ""
    base: str = ""


class _Imports:
    """Import collector for one generated module."""

    def __init__(self, types_module: str):
        self.types_module = types_module
        self.stdlib: Set[str] = set()
        self.typing: Set[str] = set()
        self.core: Set[str] = set()
        self.types: Set[str] = set()
        self.orm: Set[str] = {"Mapped", "mapped_column"}
        self.extensions: Set[str] = set()
        self.base: Set[str] = {"Base"}
        self.siblings: Dict[str, str] = {}

    def host(self, host_type: str) -> None:
        if host_type == "Any":
            self.typing.add("Any")
        elif "." in host_type:
            self.stdlib.add(host_type.split(".", 1)[0])

    def render(self) -> List[str]:
        lines = [f"import {m}" for m in sorted(self.stdlib)]
        if self.typing:
            lines.append(f"from typing import {', '.join(sorted(self.typing, key=_import_key))}")
        lines.append("")
        core = set(self.core)
        if self.types_module == "sqlalchemy":
            core |= self.types
        if core:
            lines.append(f"from sqlalchemy import {', '.join(sorted(core, key=_import_key))}")
        if self.types and self.types_module != "sqlalchemy":
            lines.append(f"from {self.types_module} import {', '.join(sorted(self.types))}")
        lines.append(f"from sqlalchemy.orm import {', '.join(sorted(self.orm, key=_import_key))}")
        if self.extensions:
            lines.append(f"from typing_extensions import {', '.join(sorted(self.extensions))}")
        lines.append("")
        lines.append(f"from ._base import {', '.join(sorted(self.base))}")
        if self.siblings:
            lines.append("")
            lines.append("if TYPE_CHECKING:")
            for module, cls in sorted(self.siblings.items()):
                lines.append(f"{INDENT}from .{module} import {cls}")
        if lines and lines[0] == "":
            lines.pop(0)
        return lines


def _import_key(name: str) -> Tuple[int, str]:
    # isort order: CONSTANTS, Classes, functions
    if name.isupper():
        return (0, name)
    if name[:1].isupper():
        return (1, name)
    return (2, name)


@dataclass
class _Relationship:
    assoc: AssociationMetadata
    field_name: str
    owner: TableMetadata
    target: TableMetadata
    join: Optional[TableMetadata] = None
    back_populates: Optional[str] = None
    overlaps: List[str] = field(default_factory=list)


class ModelSynthesizer:
    """Renders model modules for one dialect's type module."""

    def __init__(self, types_module: str = "sqlalchemy", dialect_name: str = "sqlite", strict: bool = True):
        self.types_module = types_module
        self.dialect_name = dialect_name
        self.strict = strict

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def synthesize(self, tables: Dict[str, TableMetadata]) -> GeneratedModels:
        generated = GeneratedModels()
        plan = self.plan_relationships(tables)
        for key, table in tables.items():
            generated.models[key] = self.render_model(table, tables, plan)
            generated.module_names[key] = module_name(table)
        generated.index = self.render_index(tables)
        generated.base = self.render_base(tables)
        return generated

    def render_base(self, tables: Dict[str, TableMetadata]) -> str:
        lines = ['"""Declarative base shared by the generated models."""', ""]
        with_timestamps = any(self._uses_timestamp_mixin(t) for t in tables.values())
        if with_timestamps:
            lines.extend([
                "import datetime",
                "",
                "from sqlalchemy import DateTime, func",
                "from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column",
            ])
        else:
            lines.append("from sqlalchemy.orm import DeclarativeBase")
        lines.extend(["", "", "class Base(DeclarativeBase):", f"{INDENT}pass", ""])
        if with_timestamps:
            lines.extend([
                "",
                "class TimestampMixin:",
                f'{INDENT}"""created_at / updated_at maintained by the database."""',
                "",
                f"{INDENT}created_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now())",
                f"{INDENT}updated_at: Mapped[datetime.datetime] = mapped_column(",
                f"{INDENT}{INDENT}DateTime, server_default=func.now(), onupdate=func.now()",
                f"{INDENT})",
                "",
            ])
        return "\n".join(lines)

    def render_index(self, tables: Dict[str, TableMetadata]) -> str:
        names = ["Base"]
        lines = ['"""SQLAlchemy models generated from the database schema."""', ""]
        base_names = ["Base"]
        if any(self._uses_timestamp_mixin(t) for t in tables.values()):
            base_names.append("TimestampMixin")
            names.append("TimestampMixin")
        lines.append(f"from ._base import {', '.join(base_names)}")
        for table in sorted(tables.values(), key=module_name):
            lines.append(f"from .{module_name(table)} import {class_name(table)}")
            names.append(class_name(table))
        lines.extend(["", "__all__ = ["])
        lines.extend(f'{INDENT}"{name}",' for name in names)
        lines.extend(["]", ""])
        return "\n".join(lines)

    def render_model(
        self,
        table: TableMetadata,
        tables: Dict[str, TableMetadata],
        plan: Optional[Dict[str, List[_Relationship]]] = None,
    ) -> str:
        imports = _Imports(self.types_module)
        cls = class_name(table)
        if not table.primary_key_columns:
            logger.warning(f"Table {table.full_table_name} has no primary key; mapping every column as the key")

        column_lines = [self._render_column(table, column, tables, imports) for column in table.columns.values()]
        if plan is None:
            plan = self.plan_relationships(tables)
        relationships = plan.get(table.full_table_name)
        if relationships is None:
            relationships = self._select_relationships(table, tables, _column_attributes(table))
        relationship_blocks = [self._render_relationship(table, rel, imports) for rel in relationships]
        table_args = self._render_table_args(table, imports)

        bases = "Base"
        if self._uses_timestamp_mixin(table):
            imports.base.add("TimestampMixin")
            bases = "TimestampMixin, Base"

        body: List[str] = [f"{INDENT}__tablename__ = {json.dumps(table.origin_name)}"]
        if table_args:
            body.append(table_args)
        if not table.primary_key_columns and table.columns:
            keys = ", ".join(repr(attribute_name(c.name)) for c in table.columns.values())
            body.append(f'{INDENT}__mapper_args__ = {{"primary_key": [{keys}]}}')
        body.append("")
        body.extend(column_lines)
        if relationship_blocks:
            body.append("")
            body.extend(relationship_blocks)

        typed_dict: List[str] = []
        if self.strict:
            typed_dict = self._render_typed_dict(table, imports)
            imports.extensions.add("Unpack")
            body.extend([
                "",
                f"{INDENT}def __init__(self, **kwargs: Unpack[{cls}Attributes]) -> None:",
                f"{INDENT}{INDENT}super().__init__(**kwargs)",
            ])

        lines = [f'"""SQLAlchemy model for table {table.full_table_name}."""', ""]
        lines.extend(imports.render())
        lines.extend(["", ""])
        if typed_dict:
            lines.extend(typed_dict)
            lines.extend(["", ""])
        lines.append(f"class {cls}({bases}):")
        if table.comment:
            lines.append(f"{INDENT}{_docstring(table.comment)}")
            lines.append("")
        lines.extend(body)
        lines.append("")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def _annotation(self, column: ColumnMetadata, imports: _Imports) -> str:
        imports.host(column.host_type)
        if column.allow_null:
            imports.typing.add("Optional")
            return f"Optional[{column.host_type}]"
        return column.host_type

    def _render_column(
        self, table: TableMetadata, column: ColumnMetadata, tables: Dict[str, TableMetadata], imports: _Imports
    ) -> str:
        attr = attribute_name(column.name)
        args: List[str] = []
        if attr != column.origin_name:
            args.append(repr(column.origin_name))
        args.append(column.mapping_type)
        imports.types |= type_names(column.mapping_type)

        fk_target = self._foreign_key_target(table, column, tables)
        if fk_target:
            imports.core.add("ForeignKey")
            args.append(f"ForeignKey({fk_target!r})")
        if column.primary_key:
            args.append("primary_key=True")
        if column.auto_increment:
            args.append("autoincrement=True")
        if not column.primary_key:
            args.append(f"nullable={column.allow_null}")
        if column.unique and not any(idx.unique and not idx.primary for idx in column.indices):
            args.append("unique=True")
        if column.default_value is not None:
            imports.core.add("text")
            args.append(f"server_default=text({column.default_value!r})")
        if column.comment:
            args.append(f"comment={column.comment!r}")

        prefix = f"{attr}: Mapped[{self._annotation(column, imports)}] = "
        return INDENT + render_call("mapped_column", args, INDENT, lead=prefix)

    def _foreign_key_target(
        self, table: TableMetadata, column: ColumnMetadata, tables: Dict[str, TableMetadata]
    ) -> Optional[str]:
        fk = column.foreign_key
        if fk is None:
            return None
        target = _find_table(tables, fk.target_model.full_table_name)
        if target is None:
            logger.debug(f"Foreign key {table.full_table_name}.{column.origin_name} targets a table outside the build")
            return None
        if fk.target_key:
            target_column = _column_for_key(target, fk.target_key)
        else:
            pks = target.primary_key_columns
            target_column = pks[0] if len(pks) == 1 else None
        if target_column is None:
            return None
        # ForeignKey resolves against table columns, not mapped attributes
        return f"{target.full_table_name}.{target_column.origin_name}"

    # ------------------------------------------------------------------
    # Table args
    # ------------------------------------------------------------------

    def _render_table_args(self, table: TableMetadata, imports: _Imports) -> Optional[str]:
        items = [self._render_index(name, parts) for name, parts in self._group_indices(table).items()]
        if items:
            imports.core.add("Index")
        options = {}
        if table.schema:
            options["schema"] = table.schema
        if table.comment:
            options["comment"] = table.comment
        option_text = "{" + ", ".join(f'"{k}": {v!r}' for k, v in options.items()) + "}" if options else None
        if not items and not option_text:
            return None
        if not items:
            return f"{INDENT}__table_args__ = {option_text}"
        lines = [f"{INDENT}__table_args__ = ("]
        lines.extend(f"{INDENT}{INDENT}{item}," for item in items)
        if option_text:
            lines.append(f"{INDENT}{INDENT}{option_text},")
        lines.append(f"{INDENT})")
        return "\n".join(lines)

    def _group_indices(self, table: TableMetadata) -> Dict[str, List[Tuple[IndexMetadata, str]]]:
        """Index participations grouped by index name, columns ordered by position in the index."""
        groups: Dict[str, List[Tuple[IndexMetadata, str]]] = {}
        for column in table.columns.values():
            for idx in column.indices:
                if idx.primary:
                    continue
                groups.setdefault(idx.name, []).append((idx, attribute_name(column.name)))
        for parts in groups.values():
            parts.sort(key=lambda part: part[0].seq)
        return groups

    def _render_index(self, name: str, parts: List[Tuple[IndexMetadata, str]]) -> str:
        args = [repr(name)] + [repr(attr) for _, attr in parts]
        if any(idx.unique for idx, _ in parts):
            args.append("unique=True")
        using = (parts[0][0].using or "").lower()
        args.extend(self._index_dialect_options(using))
        return f"Index({', '.join(args)})"

    def _index_dialect_options(self, using: str) -> List[str]:
        if not using:
            return []
        if self.dialect_name == "postgres" and using != "btree":
            return [f"postgresql_using={using!r}"]
        if self.dialect_name in ("mysql", "mariadb"):
            if using in ("fulltext", "spatial"):
                return [f"mysql_prefix={using.upper()!r}"]
            if using == "hash":
                return ["mysql_using='hash'"]
        if self.dialect_name == "mssql" and using == "clustered":
            return ["mssql_clustered=True"]
        return []

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def _select_relationships(
        self, table: TableMetadata, tables: Dict[str, TableMetadata], claimed: Set[str]
    ) -> List[_Relationship]:
        """Pick the associations to render and give each a unique field name.

        Un-aliased duplicates of the same (kind, target) are suppressed. Field names
        are claimed by columns first, then aliased associations, then un-aliased ones;
        an association whose name is already taken is skipped.
        """
        candidates: List[_Relationship] = []
        seen_unaliased = set()
        for assoc in table.associations:
            target = _find_table(tables, assoc.target_model.full_table_name)
            join = _find_table(tables, assoc.join_model.full_table_name) if assoc.join_model else None
            if target is None or (assoc.join_model is not None and join is None):
                logger.debug(f"Skipping {assoc.kind.value} on {table.full_table_name}: related table not generated")
                continue
            if not assoc.target_alias:
                key = (assoc.kind, target.full_table_name.lower())
                if key in seen_unaliased:
                    logger.debug(f"Suppressing duplicate {assoc.kind.value} {table.full_table_name} -> {target.full_table_name}")
                    continue
                seen_unaliased.add(key)
            name = assoc.target_model_prop_name or assoc.target_alias or navigation_name(assoc.kind, target.name)
            candidates.append(_Relationship(
                assoc=assoc, field_name=attribute_name(name), owner=table, target=target, join=join
            ))

        accepted = set()
        taken = set(claimed)
        for aliased in (True, False):
            for rel in candidates:
                if bool(rel.assoc.target_alias) is not aliased:
                    continue
                if rel.field_name in taken:
                    logger.warning(
                        f"Skipping {rel.assoc.kind.value} {table.full_table_name}.{rel.field_name}: field name already used"
                    )
                    continue
                taken.add(rel.field_name)
                accepted.add(id(rel))
        return [rel for rel in candidates if id(rel) in accepted]

    def plan_relationships(self, tables: Dict[str, TableMetadata]) -> Dict[str, List[_Relationship]]:
        """Select every table's relationships, then link mirrored pairs.

        A BelongsTo and the HasOne/HasMany with the same keys reversed become
        back_populates partners, as do the two sides of a BelongsToMany. A
        BelongsToMany also declares `overlaps` with the relationships that write
        the columns of its join table directly.
        """
        plan = {
            table.full_table_name: self._select_relationships(table, tables, _column_attributes(table))
            for table in tables.values()
        }
        rels = [rel for selected in plan.values() for rel in selected]
        for rel in rels:
            if rel.back_populates is not None:
                continue
            partner = next(
                (other for other in rels if other is not rel and other.back_populates is None and _mirrors(rel, other)),
                None,
            )
            if partner is not None:
                rel.back_populates = partner.field_name
                partner.back_populates = rel.field_name
        for rel in rels:
            if rel.assoc.kind is not AssociationKind.BELONGS_TO_MANY:
                continue
            join_name = rel.join.full_table_name.lower()
            rel.overlaps = sorted({
                other.field_name
                for other in rels
                if other.assoc.kind is not AssociationKind.BELONGS_TO_MANY
                and join_name in (other.owner.full_table_name.lower(), other.target.full_table_name.lower())
            })
        return plan

    def _render_relationship(self, table: TableMetadata, rel: _Relationship, imports: _Imports) -> str:
        assoc = rel.assoc
        own_cls = class_name(table)
        target_cls = class_name(rel.target)
        self_referential = rel.target.full_table_name == table.full_table_name
        imports.orm.add("relationship")
        if not self_referential:
            imports.typing.add("TYPE_CHECKING")
            imports.siblings[module_name(rel.target)] = target_cls

        args = [repr(target_cls)]
        if assoc.kind is AssociationKind.BELONGS_TO_MANY:
            args.append(f"secondary={rel.join.full_table_name!r}")
            if self_referential:
                args.extend(self._self_many_to_many_joins(table, rel))
        else:
            source_attr = _attr_for_key(table, assoc.source_key) if assoc.source_key else None
            target_attr = _attr_for_key(rel.target, assoc.target_key) if assoc.target_key else None
            if source_attr and target_attr:
                if assoc.kind is AssociationKind.BELONGS_TO:
                    join = f"foreign({own_cls}.{source_attr}) == {target_cls}.{target_attr}"
                else:
                    join = f"{own_cls}.{source_attr} == foreign({target_cls}.{target_attr})"
                args.append(f"primaryjoin={join!r}")
                if self_referential:
                    args.append(f"remote_side={target_cls + '.' + target_attr!r}")
        if rel.back_populates:
            args.append(f"back_populates={rel.back_populates!r}")
        if rel.overlaps:
            args.append(f"overlaps={','.join(rel.overlaps)!r}")
        if assoc.kind is AssociationKind.HAS_ONE:
            args.append("uselist=False")
        args.append(f"info={self._relationship_info(assoc)}")

        if assoc.kind.is_many:
            imports.typing.add("List")
            annotation = f'Mapped[List["{target_cls}"]]'
        else:
            imports.typing.add("Optional")
            annotation = f'Mapped[Optional["{target_cls}"]]'
        return INDENT + render_call("relationship", args, INDENT, lead=f"{rel.field_name}: {annotation} = ")

    def _self_many_to_many_joins(self, table: TableMetadata, rel: _Relationship) -> List[str]:
        pk = _single_pk_attr(table)
        source = _attr_for_key(rel.join, rel.assoc.source_key) if rel.assoc.source_key else None
        target = _attr_for_key(rel.join, rel.assoc.target_key) if rel.assoc.target_key else None
        if not (pk and source and target):
            return []
        cls = class_name(table)
        join_cls = class_name(rel.join)
        return [
            f"primaryjoin={f'{cls}.{pk} == {join_cls}.{source}'!r}",
            f"secondaryjoin={f'{cls}.{pk} == {join_cls}.{target}'!r}",
        ]

    @staticmethod
    def _relationship_info(assoc: AssociationMetadata) -> str:
        info = {"association": assoc.kind.value, "target": assoc.target_model.full_table_name}
        if assoc.join_model is not None:
            info["join"] = assoc.join_model.full_table_name
        if assoc.source_key:
            info["source_key"] = assoc.source_key
        if assoc.target_key:
            info["target_key"] = assoc.target_key
        if assoc.target_alias:
            info["alias"] = assoc.target_alias
        return "{" + ", ".join(f'"{k}": {v!r}' for k, v in info.items()) + "}"

    # ------------------------------------------------------------------
    # Strict mode
    # ------------------------------------------------------------------

    def _render_typed_dict(self, table: TableMetadata, imports: _Imports) -> List[str]:
        imports.extensions.add("TypedDict")
        lines = [f"class {class_name(table)}Attributes(TypedDict):"]
        for column in table.columns.values():
            annotation = self._annotation(column, imports)
            if not column.is_required:
                imports.extensions.add("NotRequired")
                annotation = f"NotRequired[{annotation}]"
            lines.append(f"{INDENT}{attribute_name(column.name)}: {annotation}")
        if len(lines) == 1:
            lines.append(f"{INDENT}pass")
        return lines

    @staticmethod
    def _uses_timestamp_mixin(table: TableMetadata) -> bool:
        if not table.timestamps:
            return False
        names = {attribute_name(c.name) for c in table.columns.values()}
        return not names.intersection(TIMESTAMP_COLUMNS)


def _docstring(text: str) -> str:
    cleaned = " ".join(text.split()).replace("\\", "\\\\").replace('"""', '\\"\\"\\"')
    if cleaned.endswith('"'):
        cleaned += " "
    return f'"""{cleaned}"""'


def _find_table(tables: Dict[str, TableMetadata], full_table_name: str) -> Optional[TableMetadata]:
    table = tables.get(full_table_name)
    if table is not None:
        return table
    lowered = full_table_name.lower()
    for candidate in tables.values():
        if candidate.full_table_name.lower() == lowered:
            return candidate
    return None


def _column_attributes(table: TableMetadata) -> Set[str]:
    return {attribute_name(c.name) for c in table.columns.values()}


_MIRROR_KINDS = {
    AssociationKind.BELONGS_TO: (AssociationKind.HAS_ONE, AssociationKind.HAS_MANY),
    AssociationKind.HAS_ONE: (AssociationKind.BELONGS_TO,),
    AssociationKind.HAS_MANY: (AssociationKind.BELONGS_TO,),
    AssociationKind.BELONGS_TO_MANY: (AssociationKind.BELONGS_TO_MANY,),
}


def _same_key(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").lower() == (b or "").lower()


def _mirrors(rel: _Relationship, other: _Relationship) -> bool:
    """True when `other` is the far side of `rel`: reversed tables, keys and kind."""
    if other.assoc.kind not in _MIRROR_KINDS[rel.assoc.kind]:
        return False
    if rel.owner.full_table_name.lower() != other.target.full_table_name.lower():
        return False
    if rel.target.full_table_name.lower() != other.owner.full_table_name.lower():
        return False
    if rel.join is not None and rel.join.full_table_name.lower() != other.join.full_table_name.lower():
        return False
    return _same_key(rel.assoc.source_key, other.assoc.target_key) and _same_key(
        rel.assoc.target_key, other.assoc.source_key
    )


def _column_for_key(table: TableMetadata, key: str) -> Optional[ColumnMetadata]:
    """Column a key refers to: current name first, then original name, case-insensitive last."""
    for column in table.columns.values():
        if column.name == key:
            return column
    for column in table.columns.values():
        if column.origin_name == key:
            return column
    lowered = key.lower()
    for column in table.columns.values():
        if column.name.lower() == lowered or column.origin_name.lower() == lowered:
            return column
    return None


def _attr_for_key(table: TableMetadata, key: str) -> Optional[str]:
    column = _column_for_key(table, key)
    return attribute_name(column.name) if column is not None else None


def _single_pk_attr(table: TableMetadata) -> Optional[str]:
    pks = table.primary_key_columns
    if len(pks) != 1:
        return None
    return attribute_name(pks[0].name)
