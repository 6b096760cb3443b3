"""Generator configuration."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import URL, make_url

from .errors import ConfigError

# Dialect tag -> SQLAlchemy drivername used when no URL is given.
DEFAULT_DRIVERS = {
    "postgres": "postgresql+psycopg2",
    "postgresql": "postgresql+psycopg2",
    "mysql": "mysql+pymysql",
    "mariadb": "mariadb+pymysql",
    "mssql": "mssql+pyodbc",
    "sqlite": "sqlite",
}

# Backend -> driver keyword arguments that turn on TLS.
SSL_CONNECT_ARGS = {
    "postgresql": {"sslmode": "require"},
    "mysql": {"ssl": {"check_hostname": False}},
    "mariadb": {"ssl": {"check_hostname": False}},
    "mssql": {"Encrypt": "yes"},
}


@dataclass
class ConnectionConfig:
    """Where to connect. Either `url` or the dialect plus its connection fields."""

    dialect: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    schema: Optional[str] = None
    storage: Optional[str] = None
    url: Optional[str] = None
    ssl: bool = False
    # DBAPI driver replacing the default one, e.g. "asyncpg" or "mysqldb"
    protocol: Optional[str] = None
    # passed to the driver as-is
    dialect_options: Optional[Dict[str, Any]] = None
    echo: bool = False

    def to_url(self) -> URL:
        url = self._base_url()
        if self.protocol:
            url = url.set(drivername=f"{url.get_backend_name()}+{self.protocol}")
        return url

    def connect_args(self) -> Dict[str, Any]:
        """Driver keyword arguments: TLS settings, overridden by the explicit dialect options."""
        args: Dict[str, Any] = {}
        if self.ssl:
            backend = self.to_url().get_backend_name()
            if backend not in SSL_CONNECT_ARGS:
                raise ConfigError(f"SSL is not supported for the {backend} dialect")
            args.update(SSL_CONNECT_ARGS[backend])
        args.update(self.dialect_options or {})
        return args

    def _base_url(self) -> URL:
        if self.url:
            return make_url(self.url)
        if not self.dialect:
            raise ConfigError("Missing dialect: pass a database URL or a dialect")
        drivername = DEFAULT_DRIVERS.get(self.dialect.lower())
        if drivername is None:
            raise ConfigError(f"Unknown dialect '{self.dialect}'")
        if drivername == "sqlite":
            return URL.create("sqlite", database=self.storage or self.database)
        query = {}
        if drivername == "mssql+pyodbc":
            query["driver"] = "ODBC Driver 18 for SQL Server"
        return URL.create(
            drivername,
            username=self.username,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
            query=query,
        )


@dataclass
class MetadataConfig:
    """What to read from the catalog and how to shape it."""

    schema: Optional[str] = None
    tables: Optional[List[str]] = None
    skip_tables: Optional[List[str]] = None
    indices: bool = False
    timestamps: bool = False
    # TransformCase, {TransformTarget: TransformCase}, callable or CaseTransformer
    case: Any = None
    associations_file: Optional[str] = None
    no_views: bool = False
    foreign_keys: bool = True
    infer_associations: bool = False


@dataclass
class OutputConfig:
    out_dir: str = "output-models"
    clean: bool = False


@dataclass
class GeneratorConfig:
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    strict: bool = True
    workers: int = 1
    format_command: Optional[List[str]] = None

    def __post_init__(self):
        if self.workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.workers}")
