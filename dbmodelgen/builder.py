"""
Model build orchestration.

    extract metadata -> resolve associations -> transform case -> synthesize -> write -> format

ModelBuilder wires the stages together; every collaborator (engine, adapter,
writer, formatter, association cache) can be injected for tests or embedding.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from sqlalchemy.engine import Engine

from .associations import (
    AssociationsCache,
    apply_associations,
    default_cache,
    finalize_associations,
    infer_associations,
)
from .case import get_transformer, transform_tables
from .config import GeneratorConfig
from .databases import DialectAdapter, get_adapter, get_adapter_for_engine, supported_dialects
from .errors import UnsupportedDialectError
from .extractor import extract_metadata, get_engine
from .metadata import TableMetadata
from .output import ExternalFormatter, FileSystemWriter, OutputWriter, get_formatter
from .synthesizer import ModelSynthesizer

logger = logging.getLogger(__name__)

BASE_MODULE = "_base"
INDEX_MODULE = "__init__"


@dataclass
class BuildResult:
    tables: Dict[str, TableMetadata] = field(default_factory=dict)
    models: Dict[str, str] = field(default_factory=dict)
    index: str = ""
    base: str = ""
    diagnostics: List[str] = field(default_factory=list)
    module_names: Dict[str, str] = field(default_factory=dict)
    files: List[Path] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.models

    def artifacts(self) -> Dict[str, str]:
        """Generated sources keyed by file name: base module, one module per table, package index."""
        if self.empty:
            return {}
        artifacts = {f"{BASE_MODULE}.py": self.base}
        for key, source in self.models.items():
            artifacts[f"{self.module_names[key]}.py"] = source
        artifacts[f"{INDEX_MODULE}.py"] = self.index
        return artifacts


class ModelBuilder:
    def __init__(
        self,
        config: GeneratorConfig,
        engine: Optional[Engine] = None,
        adapter: Optional[DialectAdapter] = None,
        writer: Optional[OutputWriter] = None,
        formatter: Optional[ExternalFormatter] = None,
        associations_cache: Optional[AssociationsCache] = None,
    ):
        self.config = config
        self.engine = engine
        self.adapter = adapter
        self.writer = writer
        self.formatter = formatter
        self.associations_cache = associations_cache if associations_cache is not None else default_cache

    def _open_engine(self) -> Tuple[Engine, bool]:
        """Return the engine to use and whether this builder owns (and must dispose) it."""
        if self.engine is not None:
            return self.engine, False
        connection = self.config.connection
        url = connection.to_url()
        logger.info(f"Connecting to {url.render_as_string(hide_password=True)}")
        engine = get_engine(
            url,
            pool_size=max(5, self.config.workers),
            connect_args=connection.connect_args(),
            echo=connection.echo,
        )
        return engine, True

    def _resolve_adapter(self, engine: Engine) -> DialectAdapter:
        if self.adapter is not None:
            return self.adapter
        dialect = self.config.connection.dialect
        if dialect:
            adapter = get_adapter(dialect)
        elif getattr(engine.dialect, "is_mariadb", False):
            adapter = get_adapter("mariadb")
        else:
            adapter = get_adapter_for_engine(engine)
        if adapter is None:
            raise UnsupportedDialectError(dialect or engine.dialect.name, supported_dialects())
        return adapter

    def _resolve_associations(self, tables: Dict[str, TableMetadata]) -> None:
        metadata = self.config.metadata
        if metadata.associations_file:
            apply_associations(tables, self.associations_cache.get(metadata.associations_file))
        if metadata.infer_associations:
            infer_associations(tables)
        finalize_associations(tables)

    def generate(self) -> BuildResult:
        """Extract, resolve and synthesize. Nothing is written."""
        engine, owned = self._open_engine()
        try:
            adapter = self._resolve_adapter(engine)
            tables = extract_metadata(engine, self.config.metadata, adapter, workers=self.config.workers)
        finally:
            if owned:
                engine.dispose()

        diagnostics = list(adapter.diagnostics)
        if not tables:
            logger.warning("No tables matched the selection; nothing to generate")
            return BuildResult(diagnostics=diagnostics)

        self._resolve_associations(tables)

        transformer = get_transformer(self.config.metadata.case)
        if transformer is not None:
            tables = transform_tables(tables, transformer)

        synthesizer = ModelSynthesizer(
            types_module=adapter.types_module,
            dialect_name=adapter.dialect,
            strict=self.config.strict,
        )
        generated = synthesizer.synthesize(tables)
        _check_module_names(generated.module_names)
        logger.info(f"Generated {len(generated.models)} model(s)")
        return BuildResult(
            tables=tables,
            models=generated.models,
            index=generated.index,
            base=generated.base,
            diagnostics=diagnostics,
            module_names=generated.module_names,
        )

    def build(self) -> BuildResult:
        """Generate, write every module, then run the formatter if one is configured."""
        result = self.generate()
        if result.empty:
            return result
        writer = self.writer or FileSystemWriter(self.config.output.out_dir, clean=self.config.output.clean)
        result.files = writer.write_all(result.artifacts())
        formatter = self.formatter or get_formatter(self.config.format_command)
        if formatter is not None:
            formatter.format(result.files)
        return result


def _check_module_names(module_names: Dict[str, str]) -> None:
    seen: Dict[str, str] = {}
    for key, module in module_names.items():
        lowered = module.lower()
        if lowered in (BASE_MODULE, INDEX_MODULE) or lowered in seen:
            other = seen.get(lowered, module)
            logger.warning(f"Module name '{module}' for {key} collides with {other}; one file will overwrite the other")
        seen[lowered] = key


def build_models(config: GeneratorConfig, **kwargs) -> BuildResult:
    return ModelBuilder(config, **kwargs).build()
