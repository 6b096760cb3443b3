"""
Per-dialect native type tables.

Each entry maps a lower-cased native type name to the SQLAlchemy type the
generated model declares (`mapping_type`, imported from the dialect's types
module) and the Python annotation used for it (`host_type`).
"""

import re
from typing import Dict, NamedTuple, Optional, Tuple

# Families decide which catalog attributes get appended as type arguments.
DECIMAL = "decimal"
FLOAT = "float"
TEMPORAL = "temporal"
STRING = "string"


class TypeMapping(NamedTuple):
    mapping_type: str
    host_type: str
    args: Tuple[str, ...] = ()
    family: Optional[str] = None


def render_type(name: str, args: Tuple[str, ...] = ()) -> str:
    """Compose a type expression, e.g. render_type("DECIMAL", ("7", "3")) -> "DECIMAL(7, 3)"."""
    if not args:
        return name
    return f"{name}({', '.join(args)})"


def precision_args(precision, scale) -> Tuple[str, ...]:
    if precision is None:
        return ()
    if scale:
        return (str(int(precision)), str(int(scale)))
    return (str(int(precision)),)


MYSQL_TYPES: Dict[str, TypeMapping] = {
    "bigint": TypeMapping("BIGINT", "int"),
    "int": TypeMapping("INTEGER", "int"),
    "integer": TypeMapping("INTEGER", "int"),
    "mediumint": TypeMapping("MEDIUMINT", "int"),
    "smallint": TypeMapping("SMALLINT", "int"),
    "tinyint": TypeMapping("TINYINT", "int"),
    "bit": TypeMapping("BIT", "int"),
    "bool": TypeMapping("BOOLEAN", "bool"),
    "boolean": TypeMapping("BOOLEAN", "bool"),
    "decimal": TypeMapping("DECIMAL", "decimal.Decimal", family=DECIMAL),
    "numeric": TypeMapping("NUMERIC", "decimal.Decimal", family=DECIMAL),
    "float": TypeMapping("FLOAT", "float", family=FLOAT),
    "double": TypeMapping("DOUBLE", "float", family=FLOAT),
    "real": TypeMapping("REAL", "float", family=FLOAT),
    "char": TypeMapping("CHAR", "str", family=STRING),
    "varchar": TypeMapping("VARCHAR", "str", family=STRING),
    "tinytext": TypeMapping("TINYTEXT", "str"),
    "text": TypeMapping("TEXT", "str"),
    "mediumtext": TypeMapping("MEDIUMTEXT", "str"),
    "longtext": TypeMapping("LONGTEXT", "str"),
    "binary": TypeMapping("BINARY", "bytes", family=STRING),
    "varbinary": TypeMapping("VARBINARY", "bytes", family=STRING),
    "tinyblob": TypeMapping("TINYBLOB", "bytes"),
    "blob": TypeMapping("BLOB", "bytes"),
    "mediumblob": TypeMapping("MEDIUMBLOB", "bytes"),
    "longblob": TypeMapping("LONGBLOB", "bytes"),
    "date": TypeMapping("DATE", "datetime.date"),
    "datetime": TypeMapping("DATETIME", "datetime.datetime", family=TEMPORAL),
    "timestamp": TypeMapping("TIMESTAMP", "datetime.datetime", family=TEMPORAL),
    "time": TypeMapping("TIME", "datetime.timedelta", family=TEMPORAL),
    "year": TypeMapping("YEAR", "int"),
    "enum": TypeMapping("ENUM", "str"),
    "set": TypeMapping("SET", "set"),
    "json": TypeMapping("JSON", "Any"),
}

POSTGRES_TYPES: Dict[str, TypeMapping] = {
    "int2": TypeMapping("SMALLINT", "int"),
    "int4": TypeMapping("INTEGER", "int"),
    "int8": TypeMapping("BIGINT", "int"),
    "oid": TypeMapping("OID", "int"),
    "numeric": TypeMapping("NUMERIC", "decimal.Decimal", family=DECIMAL),
    "float4": TypeMapping("REAL", "float"),
    "float8": TypeMapping("DOUBLE_PRECISION", "float"),
    "money": TypeMapping("MONEY", "str"),
    "bool": TypeMapping("BOOLEAN", "bool"),
    "varchar": TypeMapping("VARCHAR", "str", family=STRING),
    "bpchar": TypeMapping("CHAR", "str", family=STRING),
    "text": TypeMapping("TEXT", "str"),
    "citext": TypeMapping("CITEXT", "str"),
    "name": TypeMapping("TEXT", "str"),
    "xml": TypeMapping("TEXT", "str"),
    "bytea": TypeMapping("BYTEA", "bytes"),
    "uuid": TypeMapping("UUID", "uuid.UUID"),
    "json": TypeMapping("JSON", "Any"),
    "jsonb": TypeMapping("JSONB", "Any"),
    "jsonpath": TypeMapping("JSONPATH", "str"),
    "date": TypeMapping("DATE", "datetime.date"),
    "timestamp": TypeMapping("TIMESTAMP", "datetime.datetime", family=TEMPORAL),
    "timestamptz": TypeMapping("TIMESTAMP", "datetime.datetime", ("timezone=True",), TEMPORAL),
    "time": TypeMapping("TIME", "datetime.time", family=TEMPORAL),
    "timetz": TypeMapping("TIME", "datetime.time", ("timezone=True",), TEMPORAL),
    "interval": TypeMapping("INTERVAL", "datetime.timedelta"),
    "inet": TypeMapping("INET", "str"),
    "cidr": TypeMapping("CIDR", "str"),
    "macaddr": TypeMapping("MACADDR", "str"),
    "macaddr8": TypeMapping("MACADDR8", "str"),
    "bit": TypeMapping("BIT", "str"),
    "varbit": TypeMapping("BIT", "str", ("varying=True",)),
    "tsvector": TypeMapping("TSVECTOR", "str"),
    "tsquery": TypeMapping("TSQUERY", "str"),
}

MSSQL_TYPES: Dict[str, TypeMapping] = {
    "bigint": TypeMapping("BIGINT", "int"),
    "int": TypeMapping("INTEGER", "int"),
    "smallint": TypeMapping("SMALLINT", "int"),
    "tinyint": TypeMapping("TINYINT", "int"),
    "bit": TypeMapping("BIT", "bool"),
    "decimal": TypeMapping("DECIMAL", "decimal.Decimal", family=DECIMAL),
    "numeric": TypeMapping("NUMERIC", "decimal.Decimal", family=DECIMAL),
    "money": TypeMapping("MONEY", "decimal.Decimal"),
    "smallmoney": TypeMapping("SMALLMONEY", "decimal.Decimal"),
    "float": TypeMapping("FLOAT", "float"),
    "real": TypeMapping("REAL", "float"),
    "char": TypeMapping("CHAR", "str", family=STRING),
    "varchar": TypeMapping("VARCHAR", "str", family=STRING),
    "text": TypeMapping("TEXT", "str"),
    "nchar": TypeMapping("NCHAR", "str", family=STRING),
    "nvarchar": TypeMapping("NVARCHAR", "str", family=STRING),
    "ntext": TypeMapping("NTEXT", "str"),
    "binary": TypeMapping("BINARY", "bytes", family=STRING),
    "varbinary": TypeMapping("VARBINARY", "bytes", family=STRING),
    "image": TypeMapping("IMAGE", "bytes"),
    "date": TypeMapping("DATE", "datetime.date"),
    "datetime": TypeMapping("DATETIME", "datetime.datetime"),
    "datetime2": TypeMapping("DATETIME2", "datetime.datetime", family=TEMPORAL),
    "smalldatetime": TypeMapping("SMALLDATETIME", "datetime.datetime"),
    "datetimeoffset": TypeMapping("DATETIMEOFFSET", "datetime.datetime", family=TEMPORAL),
    "time": TypeMapping("TIME", "datetime.time", family=TEMPORAL),
    "timestamp": TypeMapping("ROWVERSION", "bytes"),
    "rowversion": TypeMapping("ROWVERSION", "bytes"),
    "uniqueidentifier": TypeMapping("UNIQUEIDENTIFIER", "uuid.UUID"),
    "xml": TypeMapping("XML", "str"),
    "sql_variant": TypeMapping("SQL_VARIANT", "Any"),
}

# SQLite declared types are free text; these are the common spellings.
SQLITE_TYPES: Dict[str, TypeMapping] = {
    "integer": TypeMapping("INTEGER", "int"),
    "int": TypeMapping("INTEGER", "int"),
    "tinyint": TypeMapping("SMALLINT", "int"),
    "smallint": TypeMapping("SMALLINT", "int"),
    "int2": TypeMapping("SMALLINT", "int"),
    "mediumint": TypeMapping("INTEGER", "int"),
    "bigint": TypeMapping("BIGINT", "int"),
    "int8": TypeMapping("BIGINT", "int"),
    "unsigned big int": TypeMapping("BIGINT", "int"),
    "real": TypeMapping("REAL", "float"),
    "double": TypeMapping("DOUBLE", "float"),
    "double precision": TypeMapping("DOUBLE", "float"),
    "float": TypeMapping("FLOAT", "float"),
    "numeric": TypeMapping("NUMERIC", "decimal.Decimal", family=DECIMAL),
    "decimal": TypeMapping("DECIMAL", "decimal.Decimal", family=DECIMAL),
    "boolean": TypeMapping("BOOLEAN", "bool"),
    "date": TypeMapping("DATE", "datetime.date"),
    "datetime": TypeMapping("DATETIME", "datetime.datetime"),
    "timestamp": TypeMapping("TIMESTAMP", "datetime.datetime"),
    "time": TypeMapping("TIME", "datetime.time"),
    "char": TypeMapping("CHAR", "str", family=STRING),
    "character": TypeMapping("CHAR", "str", family=STRING),
    "varchar": TypeMapping("VARCHAR", "str", family=STRING),
    "varying character": TypeMapping("VARCHAR", "str", family=STRING),
    "nchar": TypeMapping("NCHAR", "str", family=STRING),
    "native character": TypeMapping("NCHAR", "str", family=STRING),
    "nvarchar": TypeMapping("NVARCHAR", "str", family=STRING),
    "text": TypeMapping("TEXT", "str"),
    "clob": TypeMapping("CLOB", "str"),
    "blob": TypeMapping("BLOB", "bytes"),
    "json": TypeMapping("JSON", "Any"),
    "uuid": TypeMapping("UUID", "uuid.UUID"),
}

_SQLITE_INTEGER = TypeMapping("INTEGER", "int")
_SQLITE_TEXT = TypeMapping("TEXT", "str")
_SQLITE_BLOB = TypeMapping("BLOB", "bytes")
_SQLITE_REAL = TypeMapping("REAL", "float")
_SQLITE_NUMERIC = TypeMapping("NUMERIC", "decimal.Decimal")


def sqlite_affinity(declared: str) -> TypeMapping:
    """Resolve a declared SQLite type by the column affinity rules (sqlite.org/datatype3.html)."""
    upper = (declared or "").upper()
    if "INT" in upper:
        return _SQLITE_INTEGER
    if "CHAR" in upper or "CLOB" in upper or "TEXT" in upper:
        return _SQLITE_TEXT
    if "BLOB" in upper or not upper.strip():
        return _SQLITE_BLOB
    if "REAL" in upper or "FLOA" in upper or "DOUB" in upper:
        return _SQLITE_REAL
    return _SQLITE_NUMERIC


_TYPE_ARGS_RE = re.compile(r"^\s*([^(]*?)\s*(?:\((.*)\))?\s*$")


def split_declared_type(declared: str) -> Tuple[str, Tuple[str, ...]]:
    """Split 'DECIMAL(7,2)' into ('decimal', ('7', '2')). Whitespace inside the name is collapsed."""
    match = _TYPE_ARGS_RE.match(declared or "")
    if not match:
        return ((declared or "").lower(), ())
    base = " ".join(match.group(1).lower().split())
    raw_args = match.group(2)
    if not raw_args:
        return (base, ())
    return (base, tuple(a.strip() for a in raw_args.split(",") if a.strip()))
