"""Exceptions raised by the stats ETL."""

from __future__ import annotations

from typing import Optional


class EtlError(Exception):
    """Base class for ETL failures."""


class EtlRunError(EtlError):
    """The ``etl_runs`` audit row could not be created."""


class EtlLoaderError(EtlError):
    """A read needed to resolve foreign keys failed."""


class UnknownAdapterError(EtlError, KeyError):
    """No adapter is registered under the requested name."""

    def __str__(self) -> str:
        # KeyError wraps its message in quotes
        return str(self.args[0]) if self.args else ""


class DataSourceError(EtlError):
    """An external data source could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
