"""Utilities shared by the stats ETL scripts."""

from .cli import (
    handle_cli_errors,
    print_backfill_status,
    print_results,
    print_runs,
    setup_cli_logging,
    setup_cli_parser,
)

__all__ = [
    "handle_cli_errors",
    "print_backfill_status",
    "print_results",
    "print_runs",
    "setup_cli_logging",
    "setup_cli_parser",
]
