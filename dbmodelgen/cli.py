"""Command line entry point: dbmodelgen."""

import argparse
import json
import logging
import shlex
import sys
from typing import Any, Dict, List, Optional

from . import __version__
from .builder import ModelBuilder
from .case import parse_case
from .config import ConnectionConfig, GeneratorConfig, MetadataConfig, OutputConfig
from .databases import supported_dialects
from .env import env_value, load_env_file
from .errors import ConfigError, ModelGenError

logger = logging.getLogger(__name__)


def _csv_list(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def _json_object(text: str, source: str) -> Dict[str, Any]:
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid json for {source}: {e}") from e
    if not isinstance(value, dict):
        raise ConfigError(f"{source} must be a JSON object")
    return value


def _dialect_options(args: argparse.Namespace) -> Optional[Dict[str, Any]]:
    """Driver options from the file, then from the inline JSON (which wins)."""
    options: Dict[str, Any] = {}
    if args.dialect_options_file:
        try:
            with open(args.dialect_options_file, encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise ConfigError(f"--dialect-options-file '{args.dialect_options_file}' is not a valid path") from e
        options.update(_json_object(text, "--dialect-options-file"))
    if args.dialect_options:
        options.update(_json_object(args.dialect_options, "--dialect-options"))
    return options or None


def build_parser() -> argparse.ArgumentParser:
    # -h is the host flag, so help is --help only
    parser = argparse.ArgumentParser(
        prog="dbmodelgen",
        description="Generate SQLAlchemy models from an existing database schema",
        add_help=False,
    )
    parser.add_argument("--help", action="help", help="Show this help message and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    conn = parser.add_argument_group("connection")
    conn.add_argument("-D", "--dialect", choices=supported_dialects() + ("postgresql",), default=None,
                      help="Database dialect (default: inferred from --url / DATABASE_URL)")
    conn.add_argument("-h", "--host", default=None, help="Database host")
    conn.add_argument("-p", "--port", type=int, default=None, help="Database port")
    conn.add_argument("-d", "--database", default=None, help="Database name")
    conn.add_argument("-u", "--username", default=None, help="Database user")
    conn.add_argument("-x", "--password", default=None, help="Database password")
    conn.add_argument("-s", "--schema", default=None,
                      help="Schema to read (default: DATABASE_SCHEMA env or dialect default)")
    conn.add_argument("--url", default=None, help="SQLAlchemy database URL (default: DATABASE_URL env)")
    conn.add_argument("--storage", default=None, help="SQLite database file")
    conn.add_argument("--ssl", action="store_true", help="Connect over TLS")
    conn.add_argument("--protocol", default=None,
                      help="DBAPI driver to use instead of the default, e.g. asyncpg or mysqldb")
    conn.add_argument("--dialect-options", default=None, help="JSON object passed to the database driver")
    conn.add_argument("-f", "--dialect-options-file", default=None,
                      help="File holding the --dialect-options JSON object")
    conn.add_argument("--logs", action="store_true", help="Log every SQL statement sent to the database")

    meta = parser.add_argument_group("metadata")
    meta.add_argument("-t", "--tables", default=None, help="Comma-separated tables to include")
    meta.add_argument("-T", "--skip-tables", default=None, help="Comma-separated tables to skip")
    meta.add_argument("-i", "--indices", action="store_true", help="Read index metadata")
    meta.add_argument("-m", "--timestamps", action="store_true", help="Add created_at/updated_at to every model")
    meta.add_argument("-c", "--case", default=None,
                      help="Identifier case: upper, lower, underscored, camel, pascal, const, "
                           "or model_case:column_case")
    meta.add_argument("-a", "--associations-file", default=None, help="Association rows file")
    meta.add_argument("--no-views", action="store_true", help="Skip views")
    meta.add_argument("--infer-associations", action="store_true",
                      help="Derive relationships from foreign keys")

    out = parser.add_argument_group("output")
    out.add_argument("-o", "--out-dir", default=None,
                     help="Output directory (default: DBMODELGEN_OUT_DIR env or output-models)")
    out.add_argument("-l", "--clean", action="store_true", help="Empty the output directory first")
    out.add_argument("--no-strict", action="store_true", help="Skip typed constructor attributes")
    out.add_argument("--workers", type=int, default=1, help="Tables extracted in parallel (default: 1)")
    out.add_argument("--format-command", default=None,
                     help="Formatter run over the written files, e.g. 'ruff format'")
    out.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def config_from_args(args: argparse.Namespace) -> GeneratorConfig:
    has_fields = any([args.dialect, args.host, args.database, args.storage])
    url = args.url or (None if has_fields else env_value("DATABASE_URL"))
    if not url and not args.dialect:
        raise ConfigError("No connection: pass --url, set DATABASE_URL, or give --dialect with connection flags")
    schema = args.schema or env_value("DATABASE_SCHEMA")

    connection = ConnectionConfig(
        dialect=args.dialect,
        host=args.host,
        port=args.port,
        database=args.database,
        username=args.username,
        password=args.password,
        schema=schema,
        storage=args.storage,
        url=url,
        ssl=args.ssl,
        protocol=args.protocol,
        dialect_options=_dialect_options(args),
        echo=args.logs,
    )
    metadata = MetadataConfig(
        schema=schema,
        tables=_csv_list(args.tables),
        skip_tables=_csv_list(args.skip_tables),
        indices=args.indices,
        timestamps=args.timestamps,
        case=parse_case(args.case) if args.case else None,
        associations_file=args.associations_file,
        no_views=args.no_views,
        infer_associations=args.infer_associations,
    )
    output = OutputConfig(
        out_dir=args.out_dir or env_value("DBMODELGEN_OUT_DIR") or "output-models",
        clean=args.clean,
    )
    return GeneratorConfig(
        connection=connection,
        metadata=metadata,
        output=output,
        strict=not args.no_strict,
        workers=args.workers,
        format_command=shlex.split(args.format_command) if args.format_command else None,
    )


def main(argv: Optional[List[str]] = None) -> int:
    load_env_file()
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s: %(message)s")

    try:
        config = config_from_args(args)
        result = ModelBuilder(config).build()
    except ValueError as e:
        print(f"[ValidationError] {e}", file=sys.stderr)
        return 1
    except ModelGenError as e:
        logger.error(f"Model generation failed: {e}")
        return 1

    for line in result.diagnostics:
        logger.debug(f"Diagnostic: {line}")
    logger.info(f"Done: {len(result.models)} model(s) in {config.output.out_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
