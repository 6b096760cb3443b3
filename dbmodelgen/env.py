"""Environment loading for the command line entry point."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Variables the CLI falls back to when the matching flag is not given.
ENV_VARS = (
    "DATABASE_URL",
    "DATABASE_SCHEMA",
    "DBMODELGEN_OUT_DIR",
)


def load_env_file(search_dirs: Optional[tuple] = None) -> Optional[Path]:
    """Load the first .env found. Variables already set in the process win."""
    for base in search_dirs or (Path.cwd(),):
        env_path = Path(base) / ".env"
        if env_path.exists():
            load_dotenv(env_path, override=False)
            logger.debug(f"Loaded environment from {env_path}")
            return env_path
    return None


def env_value(key: str) -> Optional[str]:
    value = os.environ.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None
