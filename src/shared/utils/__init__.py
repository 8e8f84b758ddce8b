"""Shared utility functions."""

from .logging import setup_logging
from .env import get_env_int, load_env

__all__ = ["setup_logging", "load_env", "get_env_int"]
