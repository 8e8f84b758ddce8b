"""Pipeline orchestration for the stats ETL."""

from .backfill import BackfillState, SeasonRunRecord, load_state, run_backfill, save_state
from .runner import PipelineRun, run_dry_run, run_etl, run_weekly_update, summarize_errors

__all__ = [
    "BackfillState",
    "PipelineRun",
    "SeasonRunRecord",
    "load_state",
    "run_backfill",
    "run_dry_run",
    "run_etl",
    "run_weekly_update",
    "save_state",
    "summarize_errors",
]
