"""
Dialect adapter base class for multi-database support.

Each database (PostgreSQL, MySQL, MariaDB, SQLite, MSSQL) implements this
interface to read its catalog and normalize it into canonical metadata.
Adapters only read: every query is parameterized and runs on the connection
handed in by the extractor.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection

from ..config import MetadataConfig
from ..metadata import ColumnMetadata, ForeignKeyMetadata, IndexMetadata, TableEntry, TableName
from .type_maps import DECIMAL, FLOAT, STRING, TEMPORAL, TypeMapping, precision_args, render_type

logger = logging.getLogger(__name__)


class DialectAdapter(ABC):
    """Abstract base for database dialect adapters."""

    dialect: str = ""
    # Module the generated models import type names from.
    types_module: str = "sqlalchemy"
    type_map: Dict[str, TypeMapping] = {}
    # True when fetch_columns_metadata already attaches index participation.
    columns_include_indices: bool = False
    # True when table names carry their schema (schema.table identity).
    qualify_tables: bool = True
    temporal_precision_kw: str = "precision"
    float_precision: bool = False

    def __init__(self):
        self.diagnostics: List[str] = []

    @abstractmethod
    def default_schema(self) -> Optional[str]:
        """Return the default schema name for this dialect."""
        pass

    def resolve_schema(self, conn: Connection, config: MetadataConfig) -> Optional[str]:
        """Schema to introspect: the configured one or the dialect default."""
        return config.schema or self.default_schema()

    @abstractmethod
    def fetch_tables(self, conn: Connection, config: MetadataConfig) -> List[TableEntry]:
        """List tables (and views unless suppressed) in catalog order."""
        pass

    @abstractmethod
    def fetch_columns_metadata(
        self, conn: Connection, config: MetadataConfig, table: TableName
    ) -> List[ColumnMetadata]:
        """Return the table's columns in ordinal order. Unmappable columns are reported and skipped."""
        pass

    @abstractmethod
    def fetch_column_index_metadata(
        self, conn: Connection, config: MetadataConfig, table: TableName, column: str
    ) -> List[IndexMetadata]:
        """Return every index the column participates in."""
        pass

    def fetch_foreign_keys(
        self, conn: Connection, config: MetadataConfig, table: TableName
    ) -> List[ForeignKeyMetadata]:
        """Foreign keys declared in the catalog, one entry per constrained column."""
        inspector = inspect(conn)
        schema = table.schema or config.schema
        result: List[ForeignKeyMetadata] = []
        for fk in inspector.get_foreign_keys(table.name, schema=schema):
            referred_schema = None
            if self.qualify_tables:
                referred_schema = fk.get("referred_schema") or table.schema
            target = TableName(schema=referred_schema, name=fk["referred_table"])
            for local, remote in zip(fk["constrained_columns"], fk["referred_columns"]):
                result.append(ForeignKeyMetadata(name=local, target_model=target, target_key=remote))
        return result

    def run_query(self, conn: Connection, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Mapping]:
        return list(conn.execute(text(sql), params or {}).mappings().all())

    def map_native_type(
        self,
        native_type: str,
        precision=None,
        scale=None,
        datetime_precision=None,
        length=None,
    ) -> Optional[Tuple[str, str]]:
        """Return (mapping_type, host_type) or None when the native type is unknown."""
        mapping = self.type_map.get((native_type or "").lower())
        if mapping is None:
            return None
        return self.render_mapping(mapping, precision, scale, datetime_precision, length)

    def render_mapping(
        self,
        mapping: TypeMapping,
        precision=None,
        scale=None,
        datetime_precision=None,
        length=None,
    ) -> Tuple[str, str]:
        args = list(mapping.args)
        if mapping.family == DECIMAL:
            args.extend(precision_args(precision, scale))
        elif mapping.family == FLOAT and self.float_precision:
            # MySQL floats take precision and scale together or not at all
            if precision is not None and scale is not None:
                args.extend((str(int(precision)), str(int(scale))))
        elif mapping.family == TEMPORAL and datetime_precision:
            args.append(f"{self.temporal_precision_kw}={int(datetime_precision)}")
        elif mapping.family == STRING and length and int(length) > 0:
            args.append(str(int(length)))
        return render_type(mapping.mapping_type, tuple(args)), mapping.host_type

    def warn(self, message: str) -> None:
        """Record a non-fatal diagnostic."""
        logger.warning(message)
        self.diagnostics.append(message)

    def skip_unknown_type(self, table: TableName, column: str, native_type: str) -> None:
        self.warn(
            f"Unable to map {self.dialect} type '{native_type}' of column "
            f"{table.full_table_name}.{column}; column skipped"
        )
