"""
Simple CLI Helpers
-------------------

Shared plumbing for the stats ETL command-line scripts:

* **setup_cli_parser** builds an ``argparse`` parser with the common
  ``--dry-run``, ``--verbose`` and ``--log-level`` flags.
* **setup_cli_logging** configures logging from those flags.
* **print_results** prints a human readable summary of a run result.
* **print_runs** prints the run history table.
* **print_backfill_status** prints historical backfill progress.
* **handle_cli_errors** wraps ``main`` so the process exits with 0 on
  success and 1 on failure instead of crashing with a stack trace.
"""

import argparse
import functools
from typing import Any, Callable, Dict, Iterable

from src.shared.utils.logging import setup_logging


def setup_cli_parser(description: str,
                     add_common_args: bool = True) -> argparse.ArgumentParser:
    """Create a standardized CLI argument parser.

    Args:
        description: Shown when the script runs with ``--help``.
        add_common_args: Whether to include the dry-run and logging flags.

    Returns:
        A configured ``ArgumentParser`` ready for script specific arguments.
    """
    parser = argparse.ArgumentParser(description=description)

    if add_common_args:
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Fetch, transform and validate without writing to the database"
        )
        parser.add_argument(
            "--verbose", "-v",
            action="store_true",
            help="Enable verbose logging"
        )
        parser.add_argument(
            "--log-level",
            choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            default="INFO",
            help="Set logging level"
        )

    return parser


def handle_cli_errors(func: Callable) -> Callable:
    """Decorator that turns the result of ``main`` into an exit code.

    A truthy return value maps to 0; a falsy one, ``KeyboardInterrupt`` or
    any unexpected exception maps to 1.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> int:
        try:
            result = func(*args, **kwargs)
            return 0 if bool(result) else 1
        except KeyboardInterrupt:
            print("\nOperation cancelled by user")
            return 1
        except Exception as e:
            print(f"Unexpected error: {str(e)}")
            return 1

    return wrapper


def setup_cli_logging(args: argparse.Namespace) -> None:
    """Configure logging from ``--verbose`` / ``--log-level``."""
    log_level = "DEBUG" if getattr(args, 'verbose', False) else getattr(args, 'log_level', 'INFO')
    setup_logging(level=log_level)


def print_results(result: Any, operation: str = "ETL run") -> None:
    """Print a summary of an :class:`EtlRunResult` (or its dict form)."""
    if hasattr(result, "to_dict"):
        result = result.to_dict()

    season = result.get("season")
    week = result.get("week") or "all"
    print(f"Adapter: {result.get('adapter_name')}  Season: {season}  Week: {week}")

    if result.get("success"):
        if result.get("dry_run"):
            print(f"DRY RUN - {operation} validated, nothing written")
        else:
            print(f"✅ Successfully completed {operation}")
            print(f"Run ID: {result.get('run_id')}")
            print(f"Processed: {result.get('records_processed', 0)} records")
    else:
        error_msg = result.get("message") or "Unknown error"
        print(f"❌ {operation} failed: {error_msg}")
        print(f"Processed before failure: {result.get('records_processed', 0)} records")

    _print_counts("Skipped", result.get("skipped") or {})

    errors = result.get("errors") or []
    if errors:
        print(f"Errors ({len(errors)}):")
        for error in errors:
            print(f" - {error}")

    if "duration_ms" in result:
        print(f"Duration: {result['duration_ms']}ms")


def print_runs(runs: Iterable[Any]) -> None:
    """Print ETL run history, newest first."""
    rows = [run.to_dict() if hasattr(run, "to_dict") else run for run in runs]
    if not rows:
        print("No ETL runs recorded")
        return

    for row in rows:
        error = f"  error: {row['error_message']}" if row.get("error_message") else ""
        print(
            f"{row.get('started_at') or '-':<32} {row.get('status', '-'):<8} "
            f"{row.get('adapter_name', '-'):<16} {row.get('sport_id') or '-':<4} "
            f"{row.get('records_processed', 0):>6} records{error}"
        )


def print_backfill_status(state: Any, recent: int = 10) -> None:
    """Print progress of a historical backfill and its latest season runs."""
    print(f"Adapter: {state.adapter_name}  Seasons: {state.start_season} -> {state.end_season}")

    total = state.start_season - state.end_season + 1
    next_season = state.next_season()
    if state.last_completed_season is None:
        print("Status: not started")
    elif next_season is None:
        print(f"Status: ✅ complete ({total}/{total} seasons)")
    else:
        done = state.start_season - state.last_completed_season + 1
        print(f"Status: in progress ({done}/{total} seasons, {done * 100 // total}%)")
        print(f"Last completed: {state.last_completed_season}  Next: {next_season}")

    failed = state.failed_seasons()
    if failed:
        print(f"Failed seasons: {', '.join(str(season) for season in failed)}")

    if state.history:
        print("Recent runs:")
        for record in state.history[:recent]:
            icon = "✅" if record.succeeded else "❌"
            error = f"  error: {record.error_message}" if record.error_message else ""
            print(f" {icon} {record.season}  {record.records_processed:>6} records  {record.duration_ms}ms{error}")

    if state.last_updated:
        print(f"Last updated: {state.last_updated}")


def _print_counts(label: str, counts: Dict[str, int]) -> None:
    if not counts:
        return
    print(f"{label}:")
    for key, value in sorted(counts.items()):
        print(f" - {key}: {value}")
