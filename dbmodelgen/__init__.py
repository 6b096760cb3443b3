"""dbmodelgen: generate SQLAlchemy models from an existing database schema."""

__version__ = "0.1.0"

from .associations import AssociationsCache, parse_associations, parse_associations_text
from .builder import BuildResult, ModelBuilder, build_models
from .case import CaseTransformer, TransformCase, TransformTarget
from .config import ConnectionConfig, GeneratorConfig, MetadataConfig, OutputConfig
from .errors import (
    AssociationParseError,
    ConfigError,
    IntrospectionError,
    ModelGenError,
    UnsupportedDialectError,
)
from .metadata import (
    AssociationKind,
    AssociationMetadata,
    ColumnMetadata,
    ForeignKeyMetadata,
    IndexMetadata,
    TableMetadata,
    TableName,
)

__all__ = [
    "AssociationKind",
    "AssociationMetadata",
    "AssociationParseError",
    "AssociationsCache",
    "BuildResult",
    "CaseTransformer",
    "ColumnMetadata",
    "ConfigError",
    "ConnectionConfig",
    "ForeignKeyMetadata",
    "GeneratorConfig",
    "IndexMetadata",
    "IntrospectionError",
    "MetadataConfig",
    "ModelBuilder",
    "ModelGenError",
    "OutputConfig",
    "TableMetadata",
    "TableName",
    "TransformCase",
    "TransformTarget",
    "UnsupportedDialectError",
    "build_models",
    "parse_associations",
    "parse_associations_text",
]
