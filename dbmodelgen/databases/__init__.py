"""Database dialect adapters for multi-database support."""

from typing import Optional

from sqlalchemy.engine import Engine

from .base import DialectAdapter
from .mariadb import MariadbAdapter
from .mssql import MssqlAdapter
from .mysql import MysqlAdapter
from .postgresql import PostgresqlAdapter
from .sqlite import SqliteAdapter

_ADAPTERS = {
    "postgres": PostgresqlAdapter,
    "mysql": MysqlAdapter,
    "mariadb": MariadbAdapter,
    "sqlite": SqliteAdapter,
    "mssql": MssqlAdapter,
}

# SQLAlchemy dialect names that differ from the tags above.
_ALIASES = {
    "postgresql": "postgres",
}


def get_adapter(dialect_name: str) -> Optional[DialectAdapter]:
    """Get a fresh dialect adapter for the given dialect tag.

    Args:
        dialect_name: Dialect tag or SQLAlchemy dialect name (e.g. postgres, postgresql, mysql).

    Returns:
        DialectAdapter instance or None if dialect is not supported.
    """
    key = (dialect_name or "").lower()
    adapter_cls = _ADAPTERS.get(_ALIASES.get(key, key))
    if adapter_cls is None:
        return None
    return adapter_cls()


def get_adapter_for_engine(engine: Engine) -> Optional[DialectAdapter]:
    """Get the dialect adapter for the given engine."""
    return get_adapter(engine.dialect.name)


def supported_dialects() -> tuple:
    """Return tuple of supported dialect tags."""
    return tuple(_ADAPTERS.keys())


__all__ = [
    "DialectAdapter",
    "MariadbAdapter",
    "MssqlAdapter",
    "MysqlAdapter",
    "PostgresqlAdapter",
    "SqliteAdapter",
    "get_adapter",
    "get_adapter_for_engine",
    "supported_dialects",
]
