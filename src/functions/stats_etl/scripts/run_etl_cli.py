"""
CLI for running the stats ETL.

Fetches players, profiles, season snapshots and weekly stats from a
registered adapter and upserts them into Supabase.  Use ``--stats-only``
together with ``--week`` for the weekly refresh, and ``--dry-run`` to
validate everything without touching the database.

Examples::

    python src/functions/stats_etl/scripts/run_etl_cli.py --adapter nfl-mock --season 2024
    python src/functions/stats_etl/scripts/run_etl_cli.py --adapter nfl-mock --week 5 --stats-only
    python src/functions/stats_etl/scripts/run_etl_cli.py --list-adapters
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[4]))

from src.shared.utils.env import load_env

from src.functions.stats_etl.core.adapters.registry import list_adapters
from src.functions.stats_etl.core.contracts.config import EtlRunOptions
from src.functions.stats_etl.core.pipelines.runner import run_etl
from src.functions.stats_etl.core.utils.cli import (
    handle_cli_errors,
    print_results,
    setup_cli_logging,
    setup_cli_parser,
)

DEFAULT_ADAPTER = "nfl-mock"


def build_parser() -> argparse.ArgumentParser:
    parser = setup_cli_parser(description="Run the stats ETL pipeline for one adapter.")
    parser.add_argument(
        "--adapter",
        default=DEFAULT_ADAPTER,
        help=f"Registered adapter name (default: {DEFAULT_ADAPTER})",
    )
    parser.add_argument("--season", type=int, help="Season year (default: adapter's current season)")
    parser.add_argument("--week", type=int, help="Single week to load (1-18)")
    parser.add_argument(
        "--stats-only",
        action="store_true",
        help="Only load weekly stats; players and seasons must already exist",
    )
    parser.add_argument(
        "--list-adapters",
        action="store_true",
        help="Print registered adapters and exit",
    )
    return parser


def print_adapters() -> None:
    print("Available adapters:")
    for name, adapter in sorted(list_adapters().items()):
        print(f" - {name} ({adapter.sport_id}) v{adapter.version}: {adapter.description}")


@handle_cli_errors
def main(argv=None) -> bool:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_cli_logging(args)
    load_env()

    if args.list_adapters:
        print_adapters()
        return True

    options = EtlRunOptions(
        adapter_name=args.adapter,
        season=args.season,
        week=args.week,
        dry_run=args.dry_run,
        fetch_players=not args.stats_only,
    )
    result = asyncio.run(run_etl(options))
    print_results(result, operation="weekly stats update" if args.stats_only else "ETL run")
    return result.success


if __name__ == "__main__":
    sys.exit(main())
