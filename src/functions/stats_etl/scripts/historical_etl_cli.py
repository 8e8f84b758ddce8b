"""
CLI for the historical stats backfill.

Loads every season from the last completed one back to 2000, one full
pipeline run per season, newest first.  Progress is saved to a JSON state
file after each season, so rerunning the command resumes where it stopped.

Examples::

    python src/functions/stats_etl/scripts/historical_etl_cli.py
    python src/functions/stats_etl/scripts/historical_etl_cli.py --status
    python src/functions/stats_etl/scripts/historical_etl_cli.py --season 2015
    python src/functions/stats_etl/scripts/historical_etl_cli.py --reset --adapter nfl-mock --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[4]))

from src.shared.utils.env import load_env

from src.functions.stats_etl.core.adapters.registry import get_adapter, get_adapter_names, has_adapter
from src.functions.stats_etl.core.contracts.records import MIN_SEASON
from src.functions.stats_etl.core.pipelines.backfill import (
    DEFAULT_BACKFILL_ADAPTER,
    DEFAULT_STATE_FILE,
    DELAY_BETWEEN_SEASONS_SECONDS,
    MAX_RETRIES,
    RETRY_DELAY_SECONDS,
    BackfillState,
    load_state,
    run_backfill,
    run_season_with_retries,
    save_state,
)
from src.functions.stats_etl.core.utils.cli import (
    handle_cli_errors,
    print_backfill_status,
    setup_cli_logging,
    setup_cli_parser,
)


def build_parser() -> argparse.ArgumentParser:
    parser = setup_cli_parser(description="Backfill historical seasons, newest first, with resumable state.")
    parser.add_argument(
        "--adapter",
        default=DEFAULT_BACKFILL_ADAPTER,
        help=f"Registered adapter name for a new backfill (default: {DEFAULT_BACKFILL_ADAPTER})",
    )
    parser.add_argument(
        "--state-file",
        default=DEFAULT_STATE_FILE,
        help=f"Path of the progress file (default: {DEFAULT_STATE_FILE})",
    )
    parser.add_argument("--status", action="store_true", help="Print backfill progress and exit")
    parser.add_argument("--reset", action="store_true", help="Ignore saved progress and start over")
    parser.add_argument("--season", type=int, help="Load a single season instead of resuming")
    parser.add_argument(
        "--start-season",
        type=int,
        help="Newest season of a new backfill (default: last completed season)",
    )
    parser.add_argument(
        "--end-season",
        type=int,
        default=MIN_SEASON,
        help=f"Oldest season of a new backfill (default: {MIN_SEASON})",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=DELAY_BETWEEN_SEASONS_SECONDS,
        help="Seconds to wait between seasons",
    )
    parser.add_argument("--max-retries", type=int, default=MAX_RETRIES, help="Attempts per season")
    parser.add_argument(
        "--retry-delay",
        type=float,
        default=RETRY_DELAY_SECONDS,
        help="Seconds to wait between attempts",
    )
    return parser


def default_state(args: argparse.Namespace) -> BackfillState:
    adapter = get_adapter(args.adapter)
    start_season = args.start_season or adapter.current_season() - 1
    return BackfillState(
        adapter_name=args.adapter,
        start_season=start_season,
        end_season=args.end_season,
    )


@handle_cli_errors
def main(argv=None) -> bool:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_cli_logging(args)
    load_env()

    if not has_adapter(args.adapter):
        print(f"❌ Unknown adapter: {args.adapter}. Available: {', '.join(get_adapter_names())}")
        return False

    fresh = default_state(args)
    if fresh.start_season < fresh.end_season:
        print(f"❌ Start season {fresh.start_season} is older than end season {fresh.end_season}")
        return False

    state = fresh if args.reset else load_state(args.state_file, fresh)

    if args.status:
        print_backfill_status(state)
        return True

    if args.season is not None:
        newest = get_adapter(state.adapter_name).current_season()
        if not MIN_SEASON <= args.season <= newest:
            print(f"❌ Season {args.season} out of range ({MIN_SEASON}-{newest})")
            return False

        record = asyncio.run(
            run_season_with_retries(
                args.season,
                state.adapter_name,
                dry_run=args.dry_run,
                max_retries=args.max_retries,
                retry_delay_seconds=args.retry_delay,
            )
        )
        state.add_record(record)
        if not args.dry_run:
            save_state(args.state_file, state)

        if record.succeeded:
            print(f"✅ Season {args.season} loaded: {record.records_processed} records")
        else:
            print(f"❌ Season {args.season} failed: {record.error_message}")
        return record.succeeded

    completed = asyncio.run(
        run_backfill(
            state,
            state_path=args.state_file,
            dry_run=args.dry_run,
            max_retries=args.max_retries,
            retry_delay_seconds=args.retry_delay,
            delay_seconds=args.delay,
        )
    )
    print_backfill_status(state)
    return completed


if __name__ == "__main__":
    sys.exit(main())
