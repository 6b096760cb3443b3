"""Exceptions raised by the model generator."""

from typing import Optional


class ModelGenError(Exception):
    """Base class for every error raised by dbmodelgen."""


class ConfigError(ModelGenError, ValueError):
    """Invalid generator configuration (unknown case name, missing connection details)."""


class UnsupportedDialectError(ConfigError):
    """No adapter is registered for the requested dialect."""

    def __init__(self, dialect: str, supported: tuple):
        self.dialect = dialect
        self.supported = supported
        super().__init__(
            f"Unsupported dialect '{dialect}'. Supported: {', '.join(supported)}"
        )


class IntrospectionError(ModelGenError):
    """Reading the database catalog failed. The build is aborted."""


class AssociationParseError(ModelGenError, ValueError):
    """A row of the association file is malformed."""

    def __init__(self, message: str, line_number: Optional[int] = None, field: Optional[str] = None):
        self.line_number = line_number
        self.field = field
        if line_number is not None:
            message = f"{message} (line {line_number})"
        super().__init__(message)
