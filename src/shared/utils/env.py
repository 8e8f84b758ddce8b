"""Environment variable helpers.

Entry points call :func:`load_env` once before reading configuration;
settings objects read individual values with :func:`get_env_int`.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import List, Optional
import logging

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def load_env(env_file: Optional[str] = None, override: bool = False) -> None:
    """Load environment variables from .env files.

    Args:
        env_file: Path to a .env file. If None, every .env from the
                 filesystem root down to the current directory is loaded,
                 outermost first.
        override: Whether .env values replace variables already set.
    """
    env_paths: List[Path] = []
    if env_file:
        env_path = Path(env_file)
        if env_path.exists():
            env_paths.append(env_path)
    else:
        current = Path.cwd()
        for directory in [*reversed(current.parents), current]:
            candidate = directory / ".env"
            if candidate.exists() and candidate not in env_paths:
                env_paths.append(candidate)

    if not env_paths:
        logger.debug("No .env file found, using system environment")
        return

    for path in env_paths:
        load_dotenv(path, override=override)
        logger.debug("Loaded environment from %s", path)


def get_env_int(key: str, default: int) -> int:
    """Read an integer variable, falling back to ``default`` when unset.

    Raises:
        ValueError: If the variable is set but is not an integer.
    """
    raw = (os.getenv(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {key} must be an integer, got {raw!r}") from exc
