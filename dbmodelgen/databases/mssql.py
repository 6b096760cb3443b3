"""Microsoft SQL Server / Azure SQL dialect adapter."""

import logging
from typing import List, Mapping, Optional

from sqlalchemy.engine import Connection

from ..config import MetadataConfig
from ..metadata import ColumnMetadata, IndexMetadata, TableEntry, TableName
from .base import DialectAdapter
from .type_maps import MSSQL_TYPES
from .utils import as_bool, none_if_blank

logger = logging.getLogger(__name__)

_SIZED_TYPES = {"char", "varchar", "nchar", "nvarchar", "binary", "varbinary"}
_FRACTIONAL_SECONDS_TYPES = {"datetime2", "datetimeoffset", "time"}


def native_signature(data_type: str, row: Mapping) -> str:
    """The column type as SQL Server spells it, e.g. decimal(10,2) or nvarchar(max)."""
    if data_type in _SIZED_TYPES and row.get("character_maximum_length") is not None:
        length = row["character_maximum_length"]
        return f"{data_type}({'max' if length == -1 else length})"
    if data_type in ("decimal", "numeric") and row.get("numeric_precision") is not None:
        return f"{data_type}({row['numeric_precision']},{row.get('numeric_scale') or 0})"
    if data_type in _FRACTIONAL_SECONDS_TYPES and row.get("datetime_precision") is not None:
        return f"{data_type}({row['datetime_precision']})"
    return data_type


class MssqlAdapter(DialectAdapter):
    """Microsoft SQL Server / Azure SQL dialect adapter."""

    dialect = "mssql"
    types_module = "sqlalchemy.dialects.mssql"
    type_map = MSSQL_TYPES

    def quote_table(self, table: TableName) -> str:
        """[schema].[table], as OBJECT_ID expects it."""
        if table.schema:
            return f"[{table.schema}].[{table.name}]"
        return f"[{table.name}]"

    def default_schema(self) -> str:
        return "dbo"

    def fetch_tables(self, conn: Connection, config: MetadataConfig) -> List[TableEntry]:
        schema = self.resolve_schema(conn, config)
        rows = self.run_query(conn, """
            SELECT t.TABLE_NAME AS table_name, t.TABLE_TYPE AS table_type,
                   CAST(ep.value AS NVARCHAR(MAX)) AS table_comment
            FROM INFORMATION_SCHEMA.TABLES t
            LEFT JOIN sys.extended_properties ep
                ON ep.major_id = OBJECT_ID(QUOTENAME(t.TABLE_SCHEMA) + '.' + QUOTENAME(t.TABLE_NAME))
                AND ep.minor_id = 0
                AND ep.name = 'MS_Description'
            WHERE t.TABLE_SCHEMA = :schema
            ORDER BY t.TABLE_NAME
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
        rows = self.run_query(conn, """
            SELECT c.COLUMN_NAME AS column_name, c.DATA_TYPE AS data_type, c.IS_NULLABLE AS is_nullable,
                   c.COLUMN_DEFAULT AS column_default,
                   c.CHARACTER_MAXIMUM_LENGTH AS character_maximum_length,
                   c.NUMERIC_PRECISION AS numeric_precision, c.NUMERIC_SCALE AS numeric_scale,
                   c.DATETIME_PRECISION AS datetime_precision,
                   COLUMNPROPERTY(OBJECT_ID(QUOTENAME(c.TABLE_SCHEMA) + '.' + QUOTENAME(c.TABLE_NAME)),
                                  c.COLUMN_NAME, 'IsIdentity') AS is_identity,
                   CASE WHEN EXISTS (
                       SELECT 1 FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
                       JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE ku
                           ON tc.CONSTRAINT_NAME = ku.CONSTRAINT_NAME AND tc.TABLE_SCHEMA = ku.TABLE_SCHEMA
                       WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
                           AND ku.TABLE_SCHEMA = c.TABLE_SCHEMA AND ku.TABLE_NAME = c.TABLE_NAME
                           AND ku.COLUMN_NAME = c.COLUMN_NAME
                   ) THEN 1 ELSE 0 END AS is_primary,
                   CASE WHEN EXISTS (
                       SELECT 1 FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
                       JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE ku
                           ON tc.CONSTRAINT_NAME = ku.CONSTRAINT_NAME AND tc.TABLE_SCHEMA = ku.TABLE_SCHEMA
                       WHERE tc.CONSTRAINT_TYPE = 'UNIQUE'
                           AND ku.TABLE_SCHEMA = c.TABLE_SCHEMA AND ku.TABLE_NAME = c.TABLE_NAME
                           AND ku.COLUMN_NAME = c.COLUMN_NAME
                           AND (SELECT COUNT(*) FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE ku2
                                WHERE ku2.CONSTRAINT_NAME = tc.CONSTRAINT_NAME
                                    AND ku2.TABLE_SCHEMA = tc.TABLE_SCHEMA) = 1
                   ) THEN 1 ELSE 0 END AS is_unique,
                   CAST(ep.value AS NVARCHAR(MAX)) AS column_comment
            FROM INFORMATION_SCHEMA.COLUMNS c
            LEFT JOIN sys.extended_properties ep
                ON ep.major_id = OBJECT_ID(QUOTENAME(c.TABLE_SCHEMA) + '.' + QUOTENAME(c.TABLE_NAME))
                AND ep.minor_id = COLUMNPROPERTY(
                    OBJECT_ID(QUOTENAME(c.TABLE_SCHEMA) + '.' + QUOTENAME(c.TABLE_NAME)), c.COLUMN_NAME, 'ColumnId')
                AND ep.name = 'MS_Description'
            WHERE c.TABLE_SCHEMA = :schema AND c.TABLE_NAME = :table
            ORDER BY c.ORDINAL_POSITION
        """, {"schema": table.schema or self.resolve_schema(conn, config), "table": table.name})
        columns = []
        for row in rows:
            column = self.column_from_row(table, row)
            if column is not None:
                columns.append(column)
        return columns

    def column_from_row(self, table: TableName, row: Mapping) -> Optional[ColumnMetadata]:
        name = row["column_name"]
        data_type = (row["data_type"] or "").lower()
        mapped = self.map_native_type(
            data_type,
            precision=row.get("numeric_precision"),
            scale=row.get("numeric_scale"),
            datetime_precision=row.get("datetime_precision"),
            length=row.get("character_maximum_length"),
        )
        if mapped is None:
            self.skip_unknown_type(table, name, data_type)
            return None
        mapping_type, host_type = mapped
        return ColumnMetadata(
            origin_name=name,
            name=name,
            native_type=data_type,
            native_type_extended=native_signature(data_type, row),
            mapping_type=mapping_type,
            host_type=host_type,
            primary_key=as_bool(row["is_primary"]),
            auto_increment=as_bool(row["is_identity"]),
            allow_null=as_bool(row["is_nullable"]),
            unique=as_bool(row["is_unique"]),
            default_value=row.get("column_default"),
            comment=none_if_blank(row.get("column_comment")),
        )

    def fetch_column_index_metadata(
        self, conn: Connection, config: MetadataConfig, table: TableName, column: str
    ) -> List[IndexMetadata]:
        rows = self.run_query(conn, """
            SELECT i.name AS index_name, i.is_unique, i.is_primary_key, i.type_desc,
                   ic.key_ordinal, ic.is_descending_key
            FROM sys.indexes i
            JOIN sys.index_columns ic ON ic.object_id = i.object_id AND ic.index_id = i.index_id
            JOIN sys.columns col ON col.object_id = ic.object_id AND col.column_id = ic.column_id
            WHERE i.object_id = OBJECT_ID(:qualified_table) AND col.name = :column AND i.name IS NOT NULL
              AND ic.is_included_column = 0
            ORDER BY i.name
        """, {"qualified_table": self.quote_table(table), "column": column})
        return [
            IndexMetadata(
                name=row["index_name"],
                unique=as_bool(row["is_unique"]),
                using=(row["type_desc"] or "").lower() or None,
                collation="D" if as_bool(row["is_descending_key"]) else "A",
                seq=int(row["key_ordinal"] or 1),
                primary=as_bool(row["is_primary_key"]),
            )
            for row in rows
        ]
