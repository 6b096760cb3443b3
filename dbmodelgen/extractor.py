"""
Metadata extraction: turns a live database catalog into TableMetadata.

The extractor drives a dialect adapter over one connection (or one pooled
connection per worker) and assembles canonical metadata per table. A table's
metadata is only published once it has been read completely.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Set, Union

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Connection, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

from .config import MetadataConfig
from .databases import DialectAdapter, get_adapter_for_engine, supported_dialects
from .databases.utils import merge_indices
from .errors import IntrospectionError, UnsupportedDialectError
from .metadata import ColumnMetadata, TableEntry, TableMetadata

logger = logging.getLogger(__name__)


# ============================================================================
# Database connection
# ============================================================================

def get_engine(
    database_url: Union[str, URL],
    pool_size: int = 5,
    connect_args: Optional[Dict] = None,
    echo: bool = False,
) -> Engine:
    """Create a SQLAlchemy engine from a database URL with connection pooling.

    `connect_args` go to the DBAPI driver on top of the defaults; `echo` logs every
    catalog query through the sqlalchemy.engine logger.
    """
    url = make_url(database_url)
    backend = url.get_backend_name()
    if backend == "sqlite":
        return create_engine(url, echo=echo, connect_args=dict(connect_args or {}))
    kwargs = dict(pool_size=pool_size, max_overflow=10, pool_pre_ping=True, echo=echo)
    driver_args = {"connect_timeout": 10} if backend in ("postgresql", "mysql", "mariadb") else {}
    driver_args.update(connect_args or {})
    if driver_args:
        kwargs["connect_args"] = driver_args
    return create_engine(url, **kwargs)


# ============================================================================
# Table selection
# ============================================================================

def _lowered(names: Optional[Iterable[str]]) -> Set[str]:
    return {n.strip().lower() for n in names or [] if n and n.strip()}


def _matches(entry: TableEntry, names: Set[str]) -> bool:
    return entry.table.name.lower() in names or entry.table.full_table_name.lower() in names


def filter_tables(entries: List[TableEntry], config: MetadataConfig) -> List[TableEntry]:
    """Drop views when asked, then apply the inclusion and exclusion lists (case-insensitive)."""
    included = _lowered(config.tables)
    skipped = _lowered(config.skip_tables)
    result = []
    for entry in entries:
        if config.no_views and entry.is_view:
            continue
        if config.tables is not None and not _matches(entry, included):
            continue
        if skipped and _matches(entry, skipped):
            continue
        result.append(entry)
    return result


# ============================================================================
# Per-table assembly
# ============================================================================

def mark_unique_columns(columns: List[ColumnMetadata]) -> None:
    """A column backed by a single-column unique index is unique."""
    members: Dict[str, List[ColumnMetadata]] = {}
    for column in columns:
        for idx in column.indices:
            members.setdefault(idx.name, []).append(column)
    for column in columns:
        for idx in column.indices:
            if idx.unique and not idx.primary and len(members[idx.name]) == 1:
                column.unique = True


def attach_foreign_keys(
    conn: Connection, adapter: DialectAdapter, config: MetadataConfig, entry: TableEntry, columns: List[ColumnMetadata]
) -> None:
    by_name = {c.origin_name.lower(): c for c in columns}
    fks = adapter.fetch_foreign_keys(conn, config, entry.table)
    targets: Dict[str, int] = {}
    for fk in fks:
        key = fk.target_model.full_table_name.lower()
        targets[key] = targets.get(key, 0) + 1
    for fk in fks:
        column = by_name.get(fk.name.lower())
        if column is None or column.foreign_key is not None:
            continue
        fk.has_multiple_for_same_target = targets[fk.target_model.full_table_name.lower()] > 1
        column.foreign_key = fk


def extract_table(
    conn: Connection, adapter: DialectAdapter, config: MetadataConfig, entry: TableEntry
) -> TableMetadata:
    """Read one table completely: columns, index participation, foreign keys."""
    table = entry.table
    logger.info(f"Processing table {table.full_table_name}")
    columns = adapter.fetch_columns_metadata(conn, config, table)
    if config.indices:
        if not adapter.columns_include_indices:
            for column in columns:
                found = adapter.fetch_column_index_metadata(conn, config, table, column.origin_name)
                column.indices = merge_indices(column.indices, found)
        mark_unique_columns(columns)
    if config.foreign_keys:
        attach_foreign_keys(conn, adapter, config, entry, columns)
    return TableMetadata(
        origin_name=table.name,
        name=table.name,
        schema=table.schema,
        timestamps=config.timestamps,
        comment=entry.comment,
        columns={c.origin_name: c for c in columns},
    )


def _extract_with_own_connection(
    engine: Engine, adapter: DialectAdapter, config: MetadataConfig, entry: TableEntry
) -> TableMetadata:
    with engine.connect() as conn:
        return extract_table(conn, adapter, config, entry)


def extract_metadata(
    engine: Engine,
    config: MetadataConfig,
    adapter: Optional[DialectAdapter] = None,
    workers: int = 1,
) -> Dict[str, TableMetadata]:
    """Extract metadata for every selected table, keyed by full table name in catalog order.

    Any catalog error aborts the whole extraction with IntrospectionError.
    """
    adapter = adapter or get_adapter_for_engine(engine)
    if adapter is None:
        raise UnsupportedDialectError(engine.dialect.name, supported_dialects())

    logger.info("Fetching metadata from source")
    try:
        with engine.connect() as conn:
            entries = filter_tables(adapter.fetch_tables(conn, config), config)
            if workers <= 1 or len(entries) <= 1:
                tables = [extract_table(conn, adapter, config, entry) for entry in entries]
            else:
                tables = None
        if tables is None:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [
                    pool.submit(_extract_with_own_connection, engine, adapter, config, entry)
                    for entry in entries
                ]
                tables = [f.result() for f in futures]
    except SQLAlchemyError as e:
        raise IntrospectionError(f"Failed to read {adapter.dialect} metadata: {e}") from e

    logger.info(f"Fetched metadata for {len(tables)} table(s)")
    return {t.full_table_name: t for t in tables}
