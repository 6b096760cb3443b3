"""
Writing generated modules to disk and running an optional formatter over them.
"""

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class OutputWriter(ABC):
    """Destination for generated sources, keyed by file name."""

    @abstractmethod
    def write_all(self, artifacts: Dict[str, str]) -> List[Path]:
        """Write every artifact. Returns the written paths in input order."""
        pass


class FileSystemWriter(OutputWriter):
    def __init__(self, out_dir: str, clean: bool = False):
        self.out_dir = Path(out_dir)
        self.clean = clean

    def prepare(self) -> None:
        if self.clean and self.out_dir.exists():
            logger.info(f"Cleaning output directory {self.out_dir}")
            shutil.rmtree(self.out_dir)
        self.out_dir.mkdir(parents=True, exist_ok=True)

    def write_all(self, artifacts: Dict[str, str]) -> List[Path]:
        self.prepare()
        written = []
        for filename, source in artifacts.items():
            path = self.out_dir / filename
            with open(path, "w", encoding="utf-8") as f:
                f.write(source)
            logger.debug(f"Wrote {path}")
            written.append(path)
        logger.info(f"Wrote {len(written)} file(s) to {self.out_dir}")
        return written


class ExternalFormatter:
    """Runs a formatter or linter command over the written files.

    Formatting is advisory: a missing binary or a non-zero exit is logged as a
    warning and never fails the build.
    """

    def __init__(self, command: List[str]):
        if not command:
            raise ValueError("Formatter command must not be empty")
        self.command = list(command)

    def format(self, paths: List[Path]) -> bool:
        if not paths:
            return True
        args = self.command + [str(p) for p in paths]
        try:
            result = subprocess.run(args, capture_output=True, text=True)
        except FileNotFoundError:
            logger.warning(f"Formatter '{self.command[0]}' not found; generated files left unformatted")
            return False
        if result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip()
            logger.warning(f"Formatter '{self.command[0]}' exited with code {result.returncode}: {output}")
            return False
        logger.info(f"Formatted {len(paths)} file(s) with {self.command[0]}")
        return True


def get_formatter(command: Optional[List[str]]) -> Optional[ExternalFormatter]:
    if not command:
        return None
    return ExternalFormatter(command)
