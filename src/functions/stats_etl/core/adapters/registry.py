"""Registry of data source adapters available to the runner."""

from __future__ import annotations

from typing import Dict, List

from ..exceptions import UnknownAdapterError
from .base import BaseAdapter
from .nfl_espn import NFLESPNAdapter
from .nfl_mock import NFLMockAdapter

_ADAPTERS: Dict[str, BaseAdapter] = {
    "nfl-espn": NFLESPNAdapter(),
    "nfl-mock": NFLMockAdapter(),
}


def register_adapter(adapter: BaseAdapter, *, replace: bool = False) -> None:
    """Make ``adapter`` available under ``adapter.name``."""
    if not adapter.name:
        raise ValueError("Adapter must define a name before registration")
    if adapter.name in _ADAPTERS and not replace:
        raise ValueError(f"Adapter '{adapter.name}' is already registered")
    _ADAPTERS[adapter.name] = adapter


def unregister_adapter(name: str) -> None:
    _ADAPTERS.pop(name, None)


def get_adapter(name: str) -> BaseAdapter:
    """Return the adapter registered under ``name``."""
    try:
        return _ADAPTERS[name]
    except KeyError as exc:
        available = ", ".join(get_adapter_names())
        raise UnknownAdapterError(f"Unknown adapter: {name}. Available: {available}") from exc


def has_adapter(name: str) -> bool:
    return name in _ADAPTERS


def get_adapter_names() -> List[str]:
    return sorted(_ADAPTERS)


def get_adapter_names_by_sport(sport_id: str) -> List[str]:
    return sorted(name for name, adapter in _ADAPTERS.items() if adapter.sport_id == sport_id)


def list_adapters() -> Dict[str, BaseAdapter]:
    """Expose registered adapters for discovery."""
    return dict(_ADAPTERS)
