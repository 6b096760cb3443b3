"""MySQL dialect adapter."""

import logging
import re
from typing import List, Mapping, Optional

from sqlalchemy.engine import Connection

from ..config import MetadataConfig
from ..metadata import ColumnMetadata, IndexMetadata, TableEntry, TableName
from .base import DialectAdapter
from .type_maps import MYSQL_TYPES, TypeMapping
from .utils import as_bool, none_if_blank

logger = logging.getLogger(__name__)

_NUMERIC_LITERAL_RE = re.compile(r"^-?\d+(\.\d+)?([eE][-+]?\d+)?$")
_EXPRESSION_RE = re.compile(
    r"^(CURRENT_TIMESTAMP|CURRENT_DATE|CURRENT_TIME|LOCALTIME|LOCALTIMESTAMP|NOW|NULL)\b",
    re.IGNORECASE,
)
_UNSIGNED_TYPES = {"BIGINT", "INTEGER", "MEDIUMINT", "SMALLINT", "TINYINT", "DECIMAL", "NUMERIC", "FLOAT", "DOUBLE", "REAL"}
_LITERAL_LIST_TYPES = ("enum", "set")


class MysqlAdapter(DialectAdapter):
    """MySQL dialect adapter."""

    dialect = "mysql"
    types_module = "sqlalchemy.dialects.mysql"
    type_map = MYSQL_TYPES
    qualify_tables = False
    temporal_precision_kw = "fsp"
    float_precision = True

    def __init__(self):
        super().__init__()
        self._schema: Optional[str] = None

    def default_schema(self) -> Optional[str]:
        return None

    def resolve_schema(self, conn: Connection, config: MetadataConfig) -> Optional[str]:
        """MySQL schemas are databases: use the configured one or the connection's current database."""
        if config.schema:
            return config.schema
        if self._schema is None:
            self._schema = self.run_query(conn, "SELECT DATABASE() AS current_database")[0]["current_database"]
        return self._schema

    def fetch_tables(self, conn: Connection, config: MetadataConfig) -> List[TableEntry]:
        sql = """
            SELECT TABLE_NAME AS table_name, TABLE_TYPE AS table_type, TABLE_COMMENT AS table_comment
            FROM information_schema.tables
            WHERE TABLE_SCHEMA = :schema
        """
        if config.no_views:
            sql += " AND TABLE_TYPE = 'BASE TABLE'"
        sql += " ORDER BY TABLE_NAME"
        entries = []
        for row in self.run_query(conn, sql, {"schema": self.resolve_schema(conn, config)}):
            is_view = row["table_type"] == "VIEW"
            entries.append(TableEntry(
                table=TableName(schema=None, name=row["table_name"]),
                comment=None if is_view else none_if_blank(row["table_comment"]),
                is_view=is_view,
            ))
        return entries

    def fetch_columns_metadata(
        self, conn: Connection, config: MetadataConfig, table: TableName
    ) -> List[ColumnMetadata]:
        rows = self.run_query(conn, """
            SELECT COLUMN_NAME AS column_name, DATA_TYPE AS data_type, COLUMN_TYPE AS column_type,
                   IS_NULLABLE AS is_nullable, COLUMN_KEY AS column_key, EXTRA AS extra,
                   COLUMN_DEFAULT AS column_default, COLUMN_COMMENT AS column_comment,
                   CHARACTER_MAXIMUM_LENGTH AS character_maximum_length,
                   NUMERIC_PRECISION AS numeric_precision, NUMERIC_SCALE AS numeric_scale,
                   DATETIME_PRECISION AS datetime_precision
            FROM information_schema.columns
            WHERE TABLE_SCHEMA = :schema AND TABLE_NAME = :table
            ORDER BY ORDINAL_POSITION
        """, {"schema": self.resolve_schema(conn, config), "table": table.name})
        columns = []
        for row in rows:
            column = self.column_from_row(table, row)
            if column is not None:
                columns.append(column)
        return columns

    def column_from_row(self, table: TableName, row: Mapping) -> Optional[ColumnMetadata]:
        """Normalize one information_schema.columns row."""
        name = row["column_name"]
        data_type = (row["data_type"] or "").lower()
        column_type = row["column_type"] or data_type
        mapping = self.type_map.get(data_type)
        if mapping is None:
            self.skip_unknown_type(table, name, column_type)
            return None
        mapping_type, host_type = self._render_column_type(mapping, data_type, column_type, row)
        column_key = (row.get("column_key") or "").upper()
        extra = (row.get("extra") or "").lower()
        return ColumnMetadata(
            origin_name=name,
            name=name,
            native_type=data_type,
            native_type_extended=column_type,
            mapping_type=mapping_type,
            host_type=host_type,
            primary_key=column_key == "PRI",
            auto_increment="auto_increment" in extra,
            allow_null=as_bool(row["is_nullable"]),
            unique=column_key == "UNI",
            default_value=self.normalize_default(row, host_type),
            comment=none_if_blank(row.get("column_comment")),
        )

    def _render_column_type(self, mapping: TypeMapping, data_type: str, column_type: str, row: Mapping):
        if data_type in _LITERAL_LIST_TYPES and "(" in column_type:
            # Literal list copied verbatim: enum('AA','BB') -> ENUM('AA','BB')
            literals = column_type[column_type.index("("):column_type.rindex(")") + 1]
            return mapping.mapping_type + literals, mapping.host_type
        mapping_type, host_type = self.render_mapping(
            mapping,
            precision=row.get("numeric_precision"),
            scale=row.get("numeric_scale"),
            datetime_precision=row.get("datetime_precision"),
            length=row.get("character_maximum_length"),
        )
        if "unsigned" in column_type.lower() and mapping.mapping_type in _UNSIGNED_TYPES:
            if mapping_type.endswith(")"):
                mapping_type = mapping_type[:-1] + ", unsigned=True)"
            else:
                mapping_type += "(unsigned=True)"
        return mapping_type, host_type

    def normalize_default(self, row: Mapping, host_type: str) -> Optional[str]:
        """Turn COLUMN_DEFAULT into a SQL expression. MySQL reports string literals unquoted."""
        default = row.get("column_default")
        if default is None:
            return None
        default = str(default)
        extra = (row.get("extra") or "").upper()
        if "DEFAULT_GENERATED" in extra or _EXPRESSION_RE.match(default) or default.startswith("b'"):
            return default
        if host_type in ("int", "float", "decimal.Decimal") and _NUMERIC_LITERAL_RE.match(default):
            return default
        return "'" + default.replace("'", "''") + "'"

    def fetch_column_index_metadata(
        self, conn: Connection, config: MetadataConfig, table: TableName, column: str
    ) -> List[IndexMetadata]:
        rows = self.run_query(conn, """
            SELECT INDEX_NAME AS index_name, NON_UNIQUE AS non_unique, SEQ_IN_INDEX AS seq_in_index,
                   COLLATION AS collation, INDEX_TYPE AS index_type
            FROM information_schema.statistics
            WHERE TABLE_SCHEMA = :schema AND TABLE_NAME = :table AND COLUMN_NAME = :column
            ORDER BY INDEX_NAME, SEQ_IN_INDEX
        """, {"schema": self.resolve_schema(conn, config), "table": table.name, "column": column})
        return [
            IndexMetadata(
                name=row["index_name"],
                unique=not as_bool(row["non_unique"]),
                using=(row["index_type"] or "").lower() or None,
                collation=row["collation"],
                seq=int(row["seq_in_index"]),
                primary=row["index_name"] == "PRIMARY",
            )
            for row in rows
        ]
