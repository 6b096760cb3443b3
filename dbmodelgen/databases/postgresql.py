"""PostgreSQL dialect adapter."""

import logging
from typing import Dict, List, Mapping, Optional, Set

from sqlalchemy.engine import Connection

from ..config import MetadataConfig
from ..metadata import ColumnMetadata, IndexMetadata, TableEntry, TableName
from .base import DialectAdapter
from .type_maps import POSTGRES_TYPES
from .utils import as_bool, group_rows_by, none_if_blank

logger = logging.getLogger(__name__)

# One row per (column, index participation); columns without indexes appear once with NULL index fields.
_COLUMNS_QUERY = """
    SELECT c.ordinal_position, c.column_name, c.data_type, c.udt_name, c.is_nullable, c.column_default,
           c.character_maximum_length, c.numeric_precision, c.numeric_scale, c.datetime_precision,
           c.is_identity,
           col_description(pa.attrelid, pa.attnum) AS column_comment,
           (SELECT array_agg(e.enumlabel::text ORDER BY e.enumsortorder)
              FROM pg_type t JOIN pg_enum e ON e.enumtypid = t.oid
             WHERE t.typname = c.udt_name) AS enum_values,
           ix.index_name, ix.index_type, ix.is_primary, ix.is_unique, ix.index_seq, ix.is_descending
    FROM information_schema.columns c
    JOIN pg_catalog.pg_namespace pn ON pn.nspname = c.table_schema
    JOIN pg_catalog.pg_class pc ON pc.relnamespace = pn.oid AND pc.relname = c.table_name
    JOIN pg_catalog.pg_attribute pa ON pa.attrelid = pc.oid AND pa.attname = c.column_name
    LEFT JOIN (
        SELECT x.indrelid, k.attnum, ic.relname AS index_name, am.amname AS index_type,
               x.indisprimary AS is_primary, x.indisunique AS is_unique, k.ord AS index_seq,
               (x.indoption[k.ord - 1] & 1) = 1 AS is_descending
        FROM pg_catalog.pg_index x
        JOIN pg_catalog.pg_class ic ON ic.oid = x.indexrelid
        JOIN pg_catalog.pg_am am ON am.oid = ic.relam
        CROSS JOIN LATERAL unnest(x.indkey::int2[]) WITH ORDINALITY AS k(attnum, ord)
    ) ix ON ix.indrelid = pc.oid AND ix.attnum = pa.attnum
    WHERE c.table_schema = :schema AND c.table_name = :table
    ORDER BY c.ordinal_position, ix.index_name
"""


class PostgresqlAdapter(DialectAdapter):
    """PostgreSQL dialect adapter."""

    dialect = "postgres"
    types_module = "sqlalchemy.dialects.postgresql"
    type_map = POSTGRES_TYPES
    columns_include_indices = True

    def default_schema(self) -> str:
        return "public"

    def fetch_tables(self, conn: Connection, config: MetadataConfig) -> List[TableEntry]:
        schema = self.resolve_schema(conn, config)
        rows = self.run_query(conn, """
            SELECT t.table_name, t.table_type,
                   obj_description(c.oid, 'pg_class') AS table_comment
            FROM information_schema.tables t
            JOIN pg_catalog.pg_namespace n ON n.nspname = t.table_schema
            JOIN pg_catalog.pg_class c ON c.relnamespace = n.oid AND c.relname = t.table_name
            WHERE t.table_schema = :schema
            ORDER BY t.table_name
        """, {"schema": schema})
        return [
            TableEntry(
                table=TableName(schema=schema, name=row["table_name"]),
                comment=none_if_blank(row["table_comment"]),
                is_view=row["table_type"] == "VIEW",
            )
            for row in rows
        ]

    def fetch_columns_metadata(
        self, conn: Connection, config: MetadataConfig, table: TableName
    ) -> List[ColumnMetadata]:
        rows = self.run_query(conn, _COLUMNS_QUERY, {"schema": table.schema or self.resolve_schema(conn, config), "table": table.name})
        return self.columns_from_rows(table, rows, with_indices=config.indices)

    def columns_from_rows(self, table: TableName, rows: List[Mapping], with_indices: bool = True) -> List[ColumnMetadata]:
        """Fold the column x index product: group by ordinal position, then collect each group's index rows."""
        groups = group_rows_by(rows, lambda r: r["ordinal_position"])
        index_members: Dict[str, Set[str]] = {}
        for group in groups.values():
            for row in group:
                if row["index_name"]:
                    index_members.setdefault(row["index_name"], set()).add(row["column_name"])

        columns = []
        for group in groups.values():
            first = group[0]
            indices = [self._index_from_row(r) for r in group if r["index_name"]]
            column = self._column_from_row(table, first)
            if column is None:
                continue
            column.primary_key = any(idx.primary for idx in indices)
            if column.primary_key:
                column.allow_null = False
            column.unique = any(
                idx.unique and not idx.primary and len(index_members[idx.name]) == 1
                for idx in indices
            )
            if with_indices:
                column.indices = indices
            columns.append(column)
        return columns

    def _index_from_row(self, row: Mapping) -> IndexMetadata:
        return IndexMetadata(
            name=row["index_name"],
            unique=as_bool(row["is_unique"]),
            using=row["index_type"],
            collation="D" if as_bool(row.get("is_descending")) else "A",
            seq=int(row["index_seq"] or 1),
            primary=as_bool(row["is_primary"]),
        )

    def _column_from_row(self, table: TableName, row: Mapping) -> Optional[ColumnMetadata]:
        name = row["column_name"]
        udt_name = (row["udt_name"] or "").lower()
        data_type = (row["data_type"] or "").lower()
        mapped = self._map_column_type(udt_name, data_type, row)
        if mapped is None:
            self.skip_unknown_type(table, name, udt_name or data_type)
            return None
        mapping_type, host_type = mapped
        default = row["column_default"]
        auto_increment = as_bool(row.get("is_identity")) or (
            default is not None and str(default).startswith("nextval(")
        )
        return ColumnMetadata(
            origin_name=name,
            name=name,
            native_type=udt_name,
            native_type_extended=data_type,
            mapping_type=mapping_type,
            host_type=host_type,
            auto_increment=auto_increment,
            allow_null=as_bool(row["is_nullable"]),
            default_value=None if auto_increment or default is None else str(default),
            comment=none_if_blank(row.get("column_comment")),
        )

    def _map_column_type(self, udt_name: str, data_type: str, row: Mapping):
        if data_type == "user-defined" and row.get("enum_values"):
            labels = ", ".join(repr(label) for label in row["enum_values"])
            return f"ENUM({labels}, name={udt_name!r})", "str"
        if data_type == "array" and udt_name.startswith("_"):
            element = self.map_native_type(udt_name[1:])
            if element is None:
                return None
            return f"ARRAY({element[0]})", "list"
        return self.map_native_type(
            udt_name,
            precision=row.get("numeric_precision"),
            scale=row.get("numeric_scale"),
            datetime_precision=row.get("datetime_precision"),
            length=row.get("character_maximum_length"),
        )

    def fetch_column_index_metadata(
        self, conn: Connection, config: MetadataConfig, table: TableName, column: str
    ) -> List[IndexMetadata]:
        rows = self.run_query(conn, """
            SELECT ic.relname AS index_name, am.amname AS index_type,
                   x.indisprimary AS is_primary, x.indisunique AS is_unique, k.ord AS index_seq,
                   (x.indoption[k.ord - 1] & 1) = 1 AS is_descending
            FROM pg_catalog.pg_index x
            JOIN pg_catalog.pg_class tc ON tc.oid = x.indrelid
            JOIN pg_catalog.pg_namespace n ON n.oid = tc.relnamespace
            JOIN pg_catalog.pg_class ic ON ic.oid = x.indexrelid
            JOIN pg_catalog.pg_am am ON am.oid = ic.relam
            CROSS JOIN LATERAL unnest(x.indkey::int2[]) WITH ORDINALITY AS k(attnum, ord)
            JOIN pg_catalog.pg_attribute a ON a.attrelid = tc.oid AND a.attnum = k.attnum
            WHERE n.nspname = :schema AND tc.relname = :table AND a.attname = :column
            ORDER BY ic.relname
        """, {"schema": table.schema or self.resolve_schema(conn, config), "table": table.name, "column": column})
        return [self._index_from_row(row) for row in rows]
