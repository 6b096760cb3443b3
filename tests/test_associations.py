"""Unit tests for association parsing, caching and resolution."""

import logging

import pytest

from dbmodelgen.associations import (
    apply_associations,
    finalize_associations,
    infer_associations,
    parse_association_row,
    parse_associations_text,
)
from dbmodelgen.errors import AssociationParseError
from dbmodelgen.metadata import (
    AssociationKind,
    AssociationMetadata,
    ColumnMetadata,
    ForeignKeyMetadata,
    TableMetadata,
    TableName,
)


def make_column(name: str, **overrides) -> ColumnMetadata:
    defaults = dict(
        origin_name=name,
        name=name,
        native_type="integer",
        native_type_extended="INTEGER",
        mapping_type="INTEGER",
        host_type="int",
    )
    defaults.update(overrides)
    return ColumnMetadata(**defaults)


def make_table(name: str, *columns: ColumnMetadata, schema=None) -> TableMetadata:
    return TableMetadata(origin_name=name, name=name, schema=schema, columns={c.origin_name: c for c in columns})


def races_and_units():
    races = make_table("races", make_column("race_id", primary_key=True), make_column("name", host_type="str"))
    units = make_table("units", make_column("unit_id", primary_key=True), make_column("race_id"))
    return {"races": races, "units": units}


class TestParseRow:
    """Tests for validating a single association row."""

    def test_parses_one_to_many(self):
        row = parse_association_row(["1:n", "race_id", "race_id", "races", "units"])
        assert row.cardinality == "1:N"
        assert row.left_table == "races"
        assert row.join_table is None

    def test_strips_whitespace(self):
        row = parse_association_row([" 1:1 ", " id ", " user_id ", " users ", " profiles "])
        assert (row.left_key, row.right_key) == ("id", "user_id")

    @pytest.mark.parametrize(
        "fields, bad_field",
        [
            (["2:N", "a", "b", "x", "y"], "cardinality"),
            (["1:N", "", "b", "x", "y"], "leftKey"),
            (["1:N", "a", "", "x", "y"], "rightKey"),
            (["1:N", "a", "b", "", "y"], "leftTable"),
            (["1:N", "a", "b", "x", ""], "rightTable"),
            (["1:N", "a", "b", "x"], "rightTable"),
            (["N:N", "a", "b", "x", "y"], "joinTable"),
            (["N:N", "a", "b", "x", "y", ""], "joinTable"),
        ],
    )
    def test_rejects_invalid_rows(self, fields, bad_field):
        with pytest.raises(AssociationParseError) as exc_info:
            parse_association_row(fields, line_number=3)
        assert exc_info.value.field == bad_field
        assert exc_info.value.line_number == 3
        assert "(line 3)" in str(exc_info.value)

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_association_row(["one", "a", "b", "x", "y"])


class TestParseText:
    """Tests for parsing whole association files."""

    def test_one_to_many_example(self):
        parsed = parse_associations_text("1:N,race_id,race_id,races,units\n")

        races = parsed["races"]
        assert len(races.associations) == 1
        has_many = races.associations[0]
        assert has_many.kind is AssociationKind.HAS_MANY
        assert has_many.target_model.full_table_name == "units"
        assert has_many.source_key == "race_id"
        assert races.foreign_keys == []

        units = parsed["units"]
        assert [a.kind for a in units.associations] == [AssociationKind.BELONGS_TO]
        assert units.associations[0].target_model.full_table_name == "races"
        assert len(units.foreign_keys) == 1
        assert units.foreign_keys[0].name == "race_id"
        assert units.foreign_keys[0].target_model.full_table_name == "races"

    def test_one_to_one_creates_has_one(self):
        parsed = parse_associations_text("1:1,id,user_id,users,profiles\n")
        assert [a.kind for a in parsed["users"].associations] == [AssociationKind.HAS_ONE]
        assert [a.kind for a in parsed["profiles"].associations] == [AssociationKind.BELONGS_TO]
        assert len(parsed["profiles"].foreign_keys) == 1

    def test_many_to_many_touches_three_tables(self):
        parsed = parse_associations_text("N:N,author_id,book_id,authors,books,authors_books\n")

        left = parsed["authors"].associations
        right = parsed["books"].associations
        assert [a.kind for a in left] == [AssociationKind.BELONGS_TO_MANY]
        assert [a.kind for a in right] == [AssociationKind.BELONGS_TO_MANY]
        assert left[0].join_model.full_table_name == "authors_books"
        assert right[0].join_model.full_table_name == "authors_books"
        assert left[0].source_key == "author_id"
        assert right[0].source_key == "book_id"

        join_fks = parsed["authors_books"].foreign_keys
        assert len(join_fks) == 2
        assert {fk.target_model.full_table_name for fk in join_fks} == {"authors", "books"}

    def test_schema_qualified_tables(self):
        parsed = parse_associations_text("1:N,id,team_id,league.teams,league.players\n")
        assert "league.teams" in parsed
        target = parsed["league.teams"].associations[0].target_model
        assert (target.schema, target.name) == ("league", "players")

    def test_skips_comments_and_blank_lines(self):
        parsed = parse_associations_text("# header\n\n1:N,race_id,race_id,races,units\n   \n")
        assert set(parsed) == {"races", "units"}

    def test_error_reports_line_number(self):
        with pytest.raises(AssociationParseError) as exc_info:
            parse_associations_text("1:N,race_id,race_id,races,units\n1:N,a,b,x\n")
        assert exc_info.value.line_number == 2

    def test_prop_names_become_aliases(self):
        parsed = parse_associations_text("1:1,id,user_id,users,profiles,,owner,profile\n")
        has_one = parsed["users"].associations[0]
        belongs_to = parsed["profiles"].associations[0]
        assert has_one.target_alias == "profile"
        assert belongs_to.target_alias == "owner"

    def test_exact_duplicate_rows_collapse(self):
        parsed = parse_associations_text("1:N,race_id,race_id,races,units\n1:N,race_id,race_id,races,units\n")
        assert len(parsed["races"].associations) == 1
        assert len(parsed["units"].associations) == 1
        assert len(parsed["units"].foreign_keys) == 1

    def test_repeated_unaliased_links_get_numbered_names(self):
        parsed = parse_associations_text(
            "1:N,race_id,race_id,races,units\n"
            "1:N,race_id,home_race_id,races,units\n"
        )
        has_many = parsed["races"].associations
        assert [a.target_model_prop_name for a in has_many] == ["units", "units1"]
        assert [a.name_index for a in has_many] == [0, 1]
        assert all(a.has_multiple_for_same_target for a in has_many)

        belongs_to = parsed["units"].associations
        assert [a.target_alias for a in belongs_to] == ["race", "race1"]

        fks = parsed["units"].foreign_keys
        assert [fk.name for fk in fks] == ["race_id", "home_race_id"]
        assert all(fk.has_multiple_for_same_target for fk in fks)

    def test_self_reference(self):
        parsed = parse_associations_text("1:N,id,parent_id,nodes,nodes\n")
        kinds = [a.kind for a in parsed["nodes"].associations]
        assert kinds == [AssociationKind.HAS_MANY, AssociationKind.BELONGS_TO]
        assert parsed["nodes"].foreign_keys[0].name == "parent_id"


class TestAssociationsCache:
    """Tests for per-path caching of parsed association files."""

    def test_same_path_returns_identical_object(self, associations_file, associations_cache):
        first = associations_cache.get(associations_file)
        assert associations_cache.get(associations_file) is first
        assert associations_file in associations_cache
        assert len(associations_cache) == 1

    def test_different_files_are_different_objects(self, tmp_path, associations_file, associations_cache):
        other = tmp_path / "other.csv"
        other.write_text("1:1,id,user_id,users,profiles\n", encoding="utf-8")
        assert associations_cache.get(str(other)) is not associations_cache.get(associations_file)
        assert len(associations_cache) == 2

    def test_invalidate_forces_reparse(self, associations_file, associations_cache):
        first = associations_cache.get(associations_file)
        associations_cache.invalidate(associations_file)
        assert associations_file not in associations_cache
        assert associations_cache.get(associations_file) is not first

    def test_invalidate_all(self, associations_file, associations_cache):
        associations_cache.get(associations_file)
        associations_cache.invalidate()
        assert len(associations_cache) == 0

    def test_parse_errors_are_not_cached(self, tmp_path, associations_cache):
        bad = tmp_path / "bad.csv"
        bad.write_text("9:9,a,b,x,y\n", encoding="utf-8")
        with pytest.raises(AssociationParseError):
            associations_cache.get(str(bad))
        assert str(bad) not in associations_cache


class TestApplyAssociations:
    """Tests for copying parsed associations onto extracted tables."""

    def test_races_and_units(self):
        tables = races_and_units()
        apply_associations(tables, parse_associations_text("1:N,race_id,race_id,races,units\n"))

        assert [a.kind for a in tables["races"].associations] == [AssociationKind.HAS_MANY]
        assert [a.kind for a in tables["units"].associations] == [AssociationKind.BELONGS_TO]
        fk = tables["units"].columns["race_id"].foreign_key
        assert fk is not None
        assert fk.target_model.full_table_name == "races"

    def test_does_not_mutate_parsed_entries(self):
        parsed = parse_associations_text("1:N,race_id,race_id,races,units\n")
        original = parsed["races"].associations[0]
        tables = races_and_units()
        apply_associations(tables, parsed)
        assert tables["races"].associations[0] is not original

    def test_applying_twice_adds_nothing(self):
        parsed = parse_associations_text("1:N,race_id,race_id,races,units\n")
        tables = races_and_units()
        apply_associations(tables, parsed)
        apply_associations(tables, parsed)
        assert len(tables["races"].associations) == 1

    def test_resolves_bare_names_against_schema_tables(self):
        races = make_table("races", make_column("race_id", primary_key=True), schema="public")
        units = make_table("units", make_column("unit_id", primary_key=True), make_column("race_id"), schema="public")
        tables = {"public.races": races, "public.units": units}
        apply_associations(tables, parse_associations_text("1:N,race_id,race_id,races,units\n"))
        assert races.associations[0].target_model.full_table_name == "public.units"

    def test_unknown_table_warns(self, caplog):
        tables = races_and_units()
        with caplog.at_level(logging.WARNING):
            apply_associations(tables, parse_associations_text("1:N,id,ghost_id,ghosts,units\n"))
        assert "ghosts" in caplog.text
        assert tables["units"].associations == []
        assert tables["units"].columns["race_id"].foreign_key is None

    def test_unknown_column_warns(self, caplog):
        tables = races_and_units()
        with caplog.at_level(logging.WARNING):
            apply_associations(tables, parse_associations_text("1:N,race_id,missing_id,races,units\n"))
        assert "missing_id" in caplog.text


class TestInferAssociations:
    """Tests for deriving associations from embedded foreign keys."""

    def test_foreign_key_yields_belongs_to_and_has_many(self):
        tables = races_and_units()
        tables["units"].columns["race_id"].foreign_key = ForeignKeyMetadata(
            name="race_id", target_model=TableName(schema=None, name="races"), target_key="race_id"
        )
        infer_associations(tables)

        belongs_to = tables["units"].associations
        assert [a.kind for a in belongs_to] == [AssociationKind.BELONGS_TO]
        assert (belongs_to[0].source_key, belongs_to[0].target_key) == ("race_id", "race_id")
        has_many = tables["races"].associations
        assert [a.kind for a in has_many] == [AssociationKind.HAS_MANY]
        assert has_many[0].target_key == "race_id"

    def test_unique_foreign_key_yields_has_one(self):
        tables = races_and_units()
        column = tables["units"].columns["race_id"]
        column.unique = True
        column.foreign_key = ForeignKeyMetadata(name="race_id", target_model=TableName(schema=None, name="races"))
        infer_associations(tables)
        assert [a.kind for a in tables["races"].associations] == [AssociationKind.HAS_ONE]

    def test_target_outside_build_is_ignored(self):
        tables = races_and_units()
        tables["units"].columns["race_id"].foreign_key = ForeignKeyMetadata(
            name="race_id", target_model=TableName(schema=None, name="planets"), target_key="id"
        )
        infer_associations(tables)
        assert tables["units"].associations == []

    def test_file_and_inferred_links_do_not_duplicate(self):
        tables = races_and_units()
        apply_associations(tables, parse_associations_text("1:N,race_id,race_id,races,units\n"))
        infer_associations(tables)
        finalize_associations(tables)
        assert len(tables["races"].associations) == 1
        assert len(tables["units"].associations) == 1


class TestAssociationMetadata:
    def test_many_to_many_requires_join_model(self):
        with pytest.raises(ValueError):
            AssociationMetadata(kind=AssociationKind.BELONGS_TO_MANY, target_model=TableName(None, "books"))

    def test_join_model_only_for_many_to_many(self):
        with pytest.raises(ValueError):
            AssociationMetadata(
                kind=AssociationKind.HAS_MANY,
                target_model=TableName(None, "books"),
                join_model=TableName(None, "authors_books"),
            )
