"""Data source adapters for the stats ETL."""

from .base import (
    AdapterFetchOptions,
    BaseAdapter,
    HealthCheckResult,
    NFLBaseAdapter,
    is_nfl_adapter,
)
from .nfl_espn import NFLESPNAdapter
from .nfl_mock import NFLMockAdapter
from .registry import (
    get_adapter,
    get_adapter_names,
    get_adapter_names_by_sport,
    has_adapter,
    list_adapters,
    register_adapter,
    unregister_adapter,
)

__all__ = [
    "AdapterFetchOptions",
    "BaseAdapter",
    "HealthCheckResult",
    "NFLBaseAdapter",
    "NFLESPNAdapter",
    "NFLMockAdapter",
    "is_nfl_adapter",
    "get_adapter",
    "get_adapter_names",
    "get_adapter_names_by_sport",
    "has_adapter",
    "list_adapters",
    "register_adapter",
    "unregister_adapter",
]
