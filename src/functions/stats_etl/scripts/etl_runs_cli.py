"""CLI for listing recent stats ETL runs from the ``etl_runs`` table."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[4]))

from src.shared.db.connection import get_async_supabase_client
from src.shared.utils.env import load_env

from src.functions.stats_etl.core.contracts.config import RecentRunsQuery
from src.functions.stats_etl.core.contracts.records import SPORT_IDS
from src.functions.stats_etl.core.loaders.supabase_loader import SupabaseLoader
from src.functions.stats_etl.core.utils.cli import (
    handle_cli_errors,
    print_runs,
    setup_cli_logging,
    setup_cli_parser,
)


async def fetch_runs(query: RecentRunsQuery):
    client = await get_async_supabase_client()
    return await SupabaseLoader(client).get_recent_runs(query.limit, query.sport)


@handle_cli_errors
def main(argv=None) -> bool:
    parser = setup_cli_parser(description="Show recent stats ETL runs.", add_common_args=False)
    parser.add_argument("--limit", type=int, default=10, help="Number of runs to show (1-100)")
    parser.add_argument("--sport", choices=SPORT_IDS, help="Only show runs for this sport")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args(argv)
    setup_cli_logging(args)
    load_env()

    query = RecentRunsQuery(limit=args.limit, sport=args.sport)
    print_runs(asyncio.run(fetch_runs(query)))
    return True


if __name__ == "__main__":
    sys.exit(main())
