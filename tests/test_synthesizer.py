"""Unit tests for rendering SQLAlchemy model modules from table metadata."""

import ast
import logging

from dbmodelgen.associations import (
    apply_associations,
    finalize_associations,
    infer_associations,
    parse_associations_text,
)
from dbmodelgen.metadata import (
    AssociationKind,
    AssociationMetadata,
    ColumnMetadata,
    ForeignKeyMetadata,
    IndexMetadata,
    TableMetadata,
    TableName,
)
from dbmodelgen.synthesizer import ModelSynthesizer, render_call, type_names


def column(name: str, mapping_type: str = "INTEGER", host_type: str = "int", **overrides) -> ColumnMetadata:
    return ColumnMetadata(
        origin_name=name,
        name=overrides.pop("attr", name),
        native_type=mapping_type.lower(),
        native_type_extended=mapping_type,
        mapping_type=mapping_type,
        host_type=host_type,
        **overrides,
    )


def table(name: str, *columns: ColumnMetadata, **overrides) -> TableMetadata:
    return TableMetadata(origin_name=name, name=name, columns={c.origin_name: c for c in columns}, **overrides)


def races_and_units():
    races = table(
        "races",
        column("race_id", primary_key=True, auto_increment=True),
        column("name", "VARCHAR(80)", "str", allow_null=False),
        comment="Playable races",
    )
    units = table(
        "units",
        column("unit_id", primary_key=True, auto_increment=True),
        column("race_id"),
        column("name", "VARCHAR(80)", "str", allow_null=False, unique=True),
        column("strength", allow_null=False, default_value="10"),
    )
    tables = {"races": races, "units": units}
    apply_associations(tables, parse_associations_text("1:N,race_id,race_id,races,units\n"))
    finalize_associations(tables)
    return tables


def relationship_count(source: str) -> int:
    return source.count("= relationship(")


class TestRenderModel:
    """Tests for a single model module."""

    def test_sources_are_valid_python(self):
        tables = races_and_units()
        generated = ModelSynthesizer().synthesize(tables)
        for source in list(generated.models.values()) + [generated.index, generated.base]:
            ast.parse(source)
        assert generated.module_names == {"races": "races", "units": "units"}

    def test_columns(self):
        source = ModelSynthesizer().synthesize(races_and_units()).models["units"]
        assert '__tablename__ = "units"' in source
        assert "unit_id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)" in source
        # too long for one line, so one argument per line
        assert "    race_id: Mapped[Optional[int]] = mapped_column(\n        INTEGER,\n" in source
        assert "        ForeignKey('races.race_id'),\n        nullable=True,\n    )" in source
        assert "name: Mapped[str] = mapped_column(VARCHAR(80), nullable=False, unique=True)" in source
        assert "server_default=text('10')" in source

    def test_imports(self):
        source = ModelSynthesizer().synthesize(races_and_units()).models["units"]
        assert "from sqlalchemy import INTEGER, VARCHAR, ForeignKey, text" in source
        assert "from sqlalchemy.orm import Mapped, mapped_column, relationship" in source
        assert "from ._base import Base" in source
        assert "if TYPE_CHECKING:\n    from .races import races" in source

    def test_dialect_types_module(self):
        tables = {
            "units": table(
                "units",
                column("unit_id", "INTEGER(unsigned=True)", primary_key=True),
                column("kind", "ENUM('AA','BB')", "str"),
            )
        }
        source = ModelSynthesizer("sqlalchemy.dialects.mysql", "mysql").synthesize(tables).models["units"]
        assert "from sqlalchemy.dialects.mysql import ENUM, INTEGER" in source
        assert "mapped_column(ENUM('AA','BB'), nullable=True)" in source
        ast.parse(source)

    def test_table_comment(self):
        source = ModelSynthesizer().synthesize(races_and_units()).models["races"]
        assert '"""Playable races"""' in source
        assert "__table_args__ = {\"comment\": 'Playable races'}" in source

    def test_schema_in_table_args(self):
        tables = {"game.races": table("races", column("race_id", primary_key=True), schema="game")}
        source = ModelSynthesizer().synthesize(tables).models["game.races"]
        assert "__table_args__ = {\"schema\": 'game'}" in source

    def test_renamed_and_reserved_columns_keep_database_names(self):
        tables = {
            "races": table(
                "races",
                column("RaceID", primary_key=True, attr="raceId"),
                column("metadata", "TEXT", "str"),
                column("class", "TEXT", "str"),
            )
        }
        source = ModelSynthesizer().synthesize(tables).models["races"]
        assert "raceId: Mapped[int] = mapped_column('RaceID', INTEGER, primary_key=True)" in source
        assert "metadata_: Mapped[Optional[str]] = mapped_column('metadata', TEXT, nullable=True)" in source
        assert "class_: Mapped[Optional[str]] = mapped_column('class', TEXT, nullable=True)" in source
        ast.parse(source)

    def test_table_without_primary_key_maps_all_columns(self, caplog):
        tables = {"race_names": table("race_names", column("name", "VARCHAR(80)", "str"))}
        with caplog.at_level(logging.WARNING):
            source = ModelSynthesizer().synthesize(tables).models["race_names"]
        assert "__mapper_args__ = {\"primary_key\": ['name']}" in source
        assert "race_names" in caplog.text

    def test_foreign_key_to_table_outside_build_is_dropped(self):
        orphan = column(
            "planet_id",
            foreign_key=ForeignKeyMetadata(name="planet_id", target_model=TableName(None, "planets"), target_key="id"),
        )
        tables = {"units": table("units", column("unit_id", primary_key=True), orphan)}
        source = ModelSynthesizer().synthesize(tables).models["units"]
        assert "ForeignKey" not in source

    def test_long_lines_are_wrapped(self):
        rendered = render_call("relationship", ["'x' * 10"] * 12, lead="field: Mapped[int] = ")
        assert rendered.splitlines()[0] == "field: Mapped[int] = relationship("
        assert rendered.splitlines()[-1] == "    )"


class TestTypedAttributes:
    """Strict mode adds a TypedDict bound to the constructor."""

    def test_required_and_optional_fields(self):
        source = ModelSynthesizer().synthesize(races_and_units()).models["units"]
        assert "class unitsAttributes(TypedDict):" in source
        assert "    name: str\n" in source
        assert "    unit_id: NotRequired[int]" in source
        assert "    race_id: NotRequired[Optional[int]]" in source
        assert "    strength: NotRequired[int]" in source
        assert "def __init__(self, **kwargs: Unpack[unitsAttributes]) -> None:" in source
        assert "from typing_extensions import NotRequired, TypedDict, Unpack" in source

    def test_non_strict_has_no_typed_dict(self):
        source = ModelSynthesizer(strict=False).synthesize(races_and_units()).models["units"]
        assert "TypedDict" not in source
        assert "__init__" not in source


class TestRelationships:
    """Tests for relationship rendering and field-name selection."""

    def test_has_many_and_belongs_to(self):
        generated = ModelSynthesizer().synthesize(races_and_units())
        races = generated.models["races"]
        units = generated.models["units"]
        assert 'units: Mapped[List["units"]] = relationship(' in races
        assert "primaryjoin='races.race_id == foreign(units.race_id)'" in races
        assert 'race: Mapped[Optional["races"]] = relationship(' in units
        assert "primaryjoin='foreign(units.race_id) == races.race_id'" in units
        assert '"association": \'BelongsTo\'' in units

    def test_mirrored_sides_back_populate(self):
        generated = ModelSynthesizer().synthesize(races_and_units())
        assert "back_populates='race'" in generated.models["races"]
        assert "back_populates='units'" in generated.models["units"]

    def test_unpaired_side_has_no_back_populates(self):
        tables = races_and_units()
        tables["units"].associations = []
        source = ModelSynthesizer().synthesize(tables).models["races"]
        assert relationship_count(source) == 1
        assert "back_populates" not in source

    def test_many_to_many_overlaps_join_table_relationships(self):
        tables = {
            "authors": table("authors", column("id", primary_key=True)),
            "books": table("books", column("id", primary_key=True)),
            "authors_books": table(
                "authors_books",
                column("author_id", primary_key=True),
                column("book_id", primary_key=True),
            ),
        }
        apply_associations(tables, parse_associations_text("N:N,author_id,book_id,authors,books,authors_books\n"))
        infer_associations(tables)
        finalize_associations(tables)
        generated = ModelSynthesizer().synthesize(tables)
        authors = generated.models["authors"]
        assert "back_populates='authors'" in authors
        assert "overlaps='author,authors_books,book'" in authors
        assert "back_populates='books'" in generated.models["books"]
        join = generated.models["authors_books"]
        assert "back_populates='authors_books'" in join
        assert "overlaps=" not in join

    def test_has_one_is_scalar(self):
        users = table("users", column("id", primary_key=True))
        profiles = table("profiles", column("id", primary_key=True), column("user_id"))
        tables = {"users": users, "profiles": profiles}
        apply_associations(tables, parse_associations_text("1:1,id,user_id,users,profiles\n"))
        source = ModelSynthesizer().synthesize(tables).models["users"]
        assert 'profile: Mapped[Optional["profiles"]] = relationship(' in source
        assert "uselist=False" in source

    def test_many_to_many(self):
        tables = {
            "authors": table("authors", column("id", primary_key=True)),
            "books": table("books", column("id", primary_key=True)),
            "authors_books": table(
                "authors_books",
                column("author_id", primary_key=True),
                column("book_id", primary_key=True),
            ),
        }
        apply_associations(tables, parse_associations_text("N:N,author_id,book_id,authors,books,authors_books\n"))
        generated = ModelSynthesizer().synthesize(tables)
        assert "books: Mapped[List[\"books\"]] = relationship(" in generated.models["authors"]
        assert "secondary='authors_books'" in generated.models["authors"]
        join = generated.models["authors_books"]
        assert "ForeignKey('authors.id')" in join
        assert "ForeignKey('books.id')" in join

    def test_self_referential_many_to_many(self):
        tables = {
            "users": table("users", column("id", primary_key=True)),
            "friendships": table(
                "friendships",
                column("user_id", primary_key=True),
                column("friend_id", primary_key=True),
            ),
        }
        apply_associations(
            tables, parse_associations_text("N:N,user_id,friend_id,users,users,friendships,friends_of,friends\n")
        )
        source = ModelSynthesizer().synthesize(tables).models["users"]
        assert "primaryjoin='users.id == friendships.user_id'" in source
        assert "secondaryjoin='users.id == friendships.friend_id'" in source
        assert "friends: Mapped[List[\"users\"]]" in source
        assert "friends_of: Mapped[List[\"users\"]]" in source
        ast.parse(source)

    def test_self_referential_tree(self):
        nodes = table(
            "nodes",
            column("id", primary_key=True),
            column(
                "parent_id",
                foreign_key=ForeignKeyMetadata(name="parent_id", target_model=TableName(None, "nodes"), target_key="id"),
            ),
        )
        nodes.associations = [
            AssociationMetadata(AssociationKind.BELONGS_TO, TableName(None, "nodes"), source_key="parent_id", target_key="id"),
            AssociationMetadata(AssociationKind.HAS_MANY, TableName(None, "nodes"), source_key="id", target_key="parent_id"),
        ]
        source = ModelSynthesizer().synthesize({"nodes": nodes}).models["nodes"]
        assert "remote_side='nodes.id'" in source
        assert "remote_side='nodes.parent_id'" in source
        assert "back_populates='nodes'" in source
        assert "back_populates='node'" in source
        assert "TYPE_CHECKING" not in source
        ast.parse(source)

    def test_unaliased_duplicates_are_suppressed(self):
        tables = races_and_units()
        tables["races"].associations.append(AssociationMetadata(
            AssociationKind.HAS_MANY, TableName(None, "units"), source_key="race_id", target_key="home_race_id",
        ))
        source = ModelSynthesizer().synthesize(tables).models["races"]
        assert relationship_count(source) == 1

    def test_aliased_association_colliding_with_column_is_skipped(self):
        tables = races_and_units()
        tables["races"].associations = [AssociationMetadata(
            AssociationKind.HAS_MANY, TableName(None, "units"), source_key="race_id", target_key="race_id",
            target_alias="name", target_model_prop_name="name",
        )]
        source = ModelSynthesizer().synthesize(tables).models["races"]
        assert relationship_count(source) == 0
        assert "name: Mapped[str] = mapped_column(" in source

    def test_aliased_claims_name_before_unaliased(self):
        tables = races_and_units()
        tables["races"].associations = [
            AssociationMetadata(AssociationKind.HAS_MANY, TableName(None, "units"), source_key="race_id", target_key="race_id"),
            AssociationMetadata(
                AssociationKind.HAS_ONE, TableName(None, "units"), source_key="race_id", target_key="race_id",
                target_alias="units", target_model_prop_name="units",
            ),
        ]
        source = ModelSynthesizer().synthesize(tables).models["races"]
        assert relationship_count(source) == 1
        assert "uselist=False" in source

    def test_association_to_table_outside_build_is_skipped(self):
        tables = races_and_units()
        del tables["units"]
        source = ModelSynthesizer().synthesize(tables).models["races"]
        assert relationship_count(source) == 0


class TestIndexes:
    def test_multi_column_index_rendered_once_in_order(self):
        tables = {
            "indices": table(
                "indices",
                column("id", primary_key=True, indices=[IndexMetadata("pk_indices", unique=True, primary=True)]),
                column("first_name", "TEXT", "str", indices=[IndexMetadata("idx_full_name", seq=2)]),
                column("last_name", "TEXT", "str", indices=[IndexMetadata("idx_full_name", seq=1)]),
                column("email", "TEXT", "str", unique=True, indices=[IndexMetadata("idx_email", unique=True)]),
            )
        }
        source = ModelSynthesizer().synthesize(tables).models["indices"]
        assert source.count("Index('idx_full_name'") == 1
        assert "Index('idx_full_name', 'last_name', 'first_name')" in source
        assert "Index('idx_email', 'email', unique=True)" in source
        assert "pk_indices" not in source
        assert "email: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)" in source
        ast.parse(source)

    def test_postgres_index_method(self):
        tables = {
            "public.docs": table(
                "docs",
                column("id", primary_key=True),
                column("body", "JSONB", "Any", indices=[IndexMetadata("idx_docs_body", using="gin")]),
                schema="public",
            )
        }
        source = ModelSynthesizer("sqlalchemy.dialects.postgresql", "postgres").synthesize(tables).models["public.docs"]
        assert "Index('idx_docs_body', 'body', postgresql_using='gin')" in source
        assert "from typing import Any, Optional" in source
        assert "{\"schema\": 'public'}," in source

    def test_mysql_fulltext(self):
        tables = {
            "posts": table(
                "posts",
                column("id", primary_key=True),
                column("body", "TEXT", "str", indices=[IndexMetadata("ft_body", using="fulltext")]),
            )
        }
        source = ModelSynthesizer("sqlalchemy.dialects.mysql", "mysql").synthesize(tables).models["posts"]
        assert "Index('ft_body', 'body', mysql_prefix='FULLTEXT')" in source


class TestPackageModules:
    def test_index_exports_every_model(self):
        generated = ModelSynthesizer().synthesize(races_and_units())
        assert "from .races import races" in generated.index
        assert "from .units import units" in generated.index
        assert '"Base",' in generated.index
        assert "TimestampMixin" not in generated.index

    def test_timestamp_mixin(self):
        tables = {
            "races": table("races", column("race_id", primary_key=True), timestamps=True),
            "logs": table(
                "logs",
                column("id", primary_key=True),
                column("created_at", "DATETIME", "datetime.datetime"),
                timestamps=True,
            ),
        }
        generated = ModelSynthesizer().synthesize(tables)
        assert "class races(TimestampMixin, Base):" in generated.models["races"]
        assert "class logs(Base):" in generated.models["logs"]
        assert "class TimestampMixin:" in generated.base
        assert "from ._base import Base, TimestampMixin" in generated.index
        ast.parse(generated.base)


def test_type_names_ignore_quoted_literals():
    assert type_names("ENUM('AA', 'BB', name='KIND')") == {"ENUM"}
    assert type_names("ARRAY(TEXT)") == {"ARRAY", "TEXT"}
