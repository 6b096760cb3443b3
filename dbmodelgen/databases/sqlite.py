"""SQLite dialect adapter."""

import logging
from typing import List, Mapping, Optional, Set

from sqlalchemy.engine import Connection

from ..config import MetadataConfig
from ..metadata import ColumnMetadata, IndexMetadata, TableEntry, TableName
from .base import DialectAdapter
from .type_maps import SQLITE_TYPES, sqlite_affinity, split_declared_type
from .utils import as_bool

logger = logging.getLogger(__name__)

# Indexes SQLite creates for PRIMARY KEY/UNIQUE constraints; the name prefix is reserved.
_AUTOINDEX_PREFIX = "sqlite_autoindex_"


class SqliteAdapter(DialectAdapter):
    """SQLite dialect adapter."""

    dialect = "sqlite"
    types_module = "sqlalchemy"
    type_map = SQLITE_TYPES
    qualify_tables = False

    def default_schema(self) -> Optional[str]:
        return None

    def fetch_tables(self, conn: Connection, config: MetadataConfig) -> List[TableEntry]:
        rows = self.run_query(conn, """
            SELECT name, type FROM sqlite_master
            WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%'
            ORDER BY name
        """)
        return [
            TableEntry(table=TableName(schema=None, name=row["name"]), is_view=row["type"] == "view")
            for row in rows
        ]

    def fetch_columns_metadata(
        self, conn: Connection, config: MetadataConfig, table: TableName
    ) -> List[ColumnMetadata]:
        rows = self.run_query(
            conn,
            'SELECT cid, name, type, "notnull" AS not_null, dflt_value, pk FROM pragma_table_info(:table) ORDER BY cid',
            {"table": table.name},
        )
        unique_columns = self._single_column_unique(conn, table)
        return self.columns_from_rows(table, rows, unique_columns)

    def columns_from_rows(
        self, table: TableName, rows: List[Mapping], unique_columns: Optional[Set[str]] = None
    ) -> List[ColumnMetadata]:
        pk_count = sum(1 for row in rows if row["pk"])
        columns = []
        for row in rows:
            declared = row["type"] or ""
            mapping_type, host_type = self._map_declared_type(table, row["name"], declared)
            primary_key = bool(row["pk"])
            columns.append(ColumnMetadata(
                origin_name=row["name"],
                name=row["name"],
                native_type=split_declared_type(declared)[0],
                native_type_extended=declared,
                mapping_type=mapping_type,
                host_type=host_type,
                primary_key=primary_key,
                # A lone INTEGER PRIMARY KEY aliases the rowid.
                auto_increment=primary_key and pk_count == 1 and declared.strip().upper() == "INTEGER",
                allow_null=not as_bool(row["not_null"]) and not primary_key,
                unique=row["name"] in (unique_columns or set()),
                default_value=row["dflt_value"],
            ))
        return columns

    def _map_declared_type(self, table: TableName, column: str, declared: str):
        base, args = split_declared_type(declared)
        mapping = self.type_map.get(base)
        if mapping is None:
            mapping = sqlite_affinity(declared)
            self.warn(
                f"Unknown sqlite type '{declared}' of column {table.full_table_name}.{column}; "
                f"using {mapping.mapping_type} affinity"
            )
            return mapping.mapping_type, mapping.host_type
        numbers = [a for a in args if a.isdigit()]
        return self.render_mapping(
            mapping,
            precision=numbers[0] if numbers else None,
            scale=numbers[1] if len(numbers) > 1 else None,
            length=numbers[0] if numbers else None,
        )

    def _index_rows(self, conn: Connection, table: TableName, column: Optional[str] = None) -> List[Mapping]:
        sql = """
            SELECT il.name AS index_name, il."unique" AS is_unique, il.origin AS origin,
                   ii.seqno AS seqno, ii."desc" AS is_desc, ii.name AS column_name
            FROM pragma_index_list(:table) AS il, pragma_index_xinfo(il.name) AS ii
            WHERE ii."key" = 1
        """
        params = {"table": table.name}
        if column is not None:
            sql += " AND ii.name = :column"
            params["column"] = column
        sql += " ORDER BY il.name, ii.seqno"
        return self.run_query(conn, sql, params)

    def _single_column_unique(self, conn: Connection, table: TableName) -> Set[str]:
        members = {}
        unique = set()
        for row in self._index_rows(conn, table):
            members.setdefault(row["index_name"], []).append(row["column_name"])
            if as_bool(row["is_unique"]) and row["origin"] != "pk":
                unique.add(row["index_name"])
        return {members[name][0] for name in unique if len(members[name]) == 1}

    def fetch_column_index_metadata(
        self, conn: Connection, config: MetadataConfig, table: TableName, column: str
    ) -> List[IndexMetadata]:
        return [
            IndexMetadata(
                name=row["index_name"],
                unique=as_bool(row["is_unique"]),
                collation="D" if as_bool(row["is_desc"]) else "A",
                seq=int(row["seqno"]) + 1,
                primary=row["origin"] == "pk",
            )
            for row in self._index_rows(conn, table, column)
            if not row["index_name"].startswith(_AUTOINDEX_PREFIX)
        ]
