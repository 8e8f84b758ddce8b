"""Historical backfill.

Runs the full pipeline once per season, newest season first, down to the
oldest season the database accepts.  Progress is kept in a small JSON
state file so an interrupted backfill resumes after the last season that
loaded successfully:

.. code-block:: json

    {
      "adapter_name": "nfl-espn",
      "start_season": 2024,
      "end_season": 2000,
      "last_completed_season": 2019,
      "history": [{"season": 2019, "status": "success", ...}],
      "last_updated": "2025-01-05T10:00:00+00:00"
    }

A season that still fails after its retries is recorded in the history
and skipped; the backfill stops once several seasons fail in a row.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..contracts.config import EtlRunOptions
from ..contracts.records import MIN_SEASON
from ..loaders.supabase_loader import SupabaseLoader
from .runner import run_etl

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "etl-state.json"
DEFAULT_BACKFILL_ADAPTER = "nfl-espn"

MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 10.0
DELAY_BETWEEN_SEASONS_SECONDS = 5.0
MAX_CONSECUTIVE_FAILURES = 3

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"

Sleep = Callable[[float], Awaitable[None]]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SeasonRunRecord:
    """Outcome of backfilling one season."""

    season: int
    status: str
    timestamp: str = field(default_factory=_now_iso)
    records_processed: int = 0
    duration_ms: int = 0
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SeasonRunRecord":
        return cls(
            season=int(data["season"]),
            status=str(data.get("status") or STATUS_FAILED),
            timestamp=str(data.get("timestamp") or ""),
            records_processed=int(data.get("records_processed") or 0),
            duration_ms=int(data.get("duration_ms") or 0),
            error_message=data.get("error_message"),
        )


@dataclass
class BackfillState:
    """Resumable progress of a backfill."""

    adapter_name: str
    start_season: int
    end_season: int = MIN_SEASON
    last_completed_season: Optional[int] = None
    history: List[SeasonRunRecord] = field(default_factory=list)
    last_updated: Optional[str] = None

    def next_season(self) -> Optional[int]:
        """The season to load next, or ``None`` once the backfill is complete."""
        if self.last_completed_season is None:
            candidate = self.start_season
        else:
            candidate = self.last_completed_season - 1
        return candidate if candidate >= self.end_season else None

    def remaining_seasons(self) -> List[int]:
        first = self.next_season()
        if first is None:
            return []
        return list(range(first, self.end_season - 1, -1))

    def failed_seasons(self) -> List[int]:
        return [record.season for record in self.history if not record.succeeded]

    def add_record(self, record: SeasonRunRecord) -> None:
        """Replace any earlier record for the season; history stays newest season first."""
        history = [existing for existing in self.history if existing.season != record.season]
        history.append(record)
        history.sort(key=lambda item: item.season, reverse=True)
        self.history = history
        self.last_updated = _now_iso()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "adapter_name": self.adapter_name,
            "start_season": self.start_season,
            "end_season": self.end_season,
            "last_completed_season": self.last_completed_season,
            "history": [record.to_dict() for record in self.history],
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackfillState":
        last_completed = data.get("last_completed_season")
        return cls(
            adapter_name=str(data["adapter_name"]),
            start_season=int(data["start_season"]),
            end_season=int(data.get("end_season", MIN_SEASON)),
            last_completed_season=None if last_completed is None else int(last_completed),
            history=[SeasonRunRecord.from_dict(item) for item in data.get("history") or []],
            last_updated=data.get("last_updated"),
        )


def load_state(path: Union[str, Path], default: BackfillState) -> BackfillState:
    """Read the state file, falling back to ``default`` when it is missing or unreadable."""
    path = Path(path)
    if not path.exists():
        return default

    try:
        return BackfillState.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, KeyError, TypeError) as exc:
        logger.warning("Could not read backfill state from %s, starting fresh: %s", path, exc)
        return default


def save_state(path: Union[str, Path], state: BackfillState) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    state.last_updated = _now_iso()
    path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
    logger.debug("Saved backfill state to %s", path)


async def run_season_with_retries(
    season: int,
    adapter_name: str,
    *,
    dry_run: bool = False,
    loader: Optional[SupabaseLoader] = None,
    max_retries: int = MAX_RETRIES,
    retry_delay_seconds: float = RETRY_DELAY_SECONDS,
    sleep: Sleep = asyncio.sleep,
) -> SeasonRunRecord:
    """Run the pipeline for ``season``, retrying a failed run up to ``max_retries`` times in total."""
    started = time.monotonic()
    last_error = "Unknown error"
    options = EtlRunOptions(adapter_name=adapter_name, season=season, dry_run=dry_run)

    for attempt in range(1, max_retries + 1):
        logger.info("Season %d: attempt %d/%d", season, attempt, max_retries)
        try:
            result = await run_etl(options, loader=loader)
        except Exception as exc:
            last_error = str(exc) or type(exc).__name__
            logger.error("Season %d: run raised on attempt %d: %s", season, attempt, last_error)
        else:
            if result.success:
                return SeasonRunRecord(
                    season=season,
                    status=STATUS_SUCCESS,
                    records_processed=result.records_processed,
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
            last_error = result.message or "; ".join(result.errors) or "Run reported failure"
            logger.warning("Season %d: run failed on attempt %d: %s", season, attempt, last_error)

        if attempt < max_retries:
            await sleep(retry_delay_seconds)

    return SeasonRunRecord(
        season=season,
        status=STATUS_FAILED,
        duration_ms=int((time.monotonic() - started) * 1000),
        error_message=last_error,
    )


async def run_backfill(
    state: BackfillState,
    *,
    state_path: Optional[Union[str, Path]] = None,
    dry_run: bool = False,
    loader: Optional[SupabaseLoader] = None,
    max_retries: int = MAX_RETRIES,
    retry_delay_seconds: float = RETRY_DELAY_SECONDS,
    delay_seconds: float = DELAY_BETWEEN_SEASONS_SECONDS,
    max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES,
    sleep: Sleep = asyncio.sleep,
) -> bool:
    """Load every remaining season of ``state``, newest first.

    ``state`` is updated in place and, unless ``dry_run``, saved to
    ``state_path`` after every season.

    Returns:
        ``False`` if the backfill stopped after ``max_consecutive_failures``
        failed seasons in a row, ``True`` otherwise.
    """
    seasons = state.remaining_seasons()
    if not seasons:
        logger.info("Historical backfill already complete")
        return True

    logger.info(
        "Starting historical backfill: adapter=%s seasons %d-%d dry_run=%s",
        state.adapter_name,
        seasons[0],
        seasons[-1],
        dry_run,
    )

    consecutive_failures = 0
    for index, season in enumerate(seasons):
        logger.info("Processing season %d (%d remaining)", season, len(seasons) - index)
        record = await run_season_with_retries(
            season,
            state.adapter_name,
            dry_run=dry_run,
            loader=loader,
            max_retries=max_retries,
            retry_delay_seconds=retry_delay_seconds,
            sleep=sleep,
        )
        state.add_record(record)

        if record.succeeded:
            state.last_completed_season = season
            consecutive_failures = 0
            logger.info(
                "Season %d complete: %d records in %dms",
                season,
                record.records_processed,
                record.duration_ms,
            )
        else:
            consecutive_failures += 1
            logger.error(
                "Season %d failed (%d in a row): %s",
                season,
                consecutive_failures,
                record.error_message,
            )

        if state_path is not None and not dry_run:
            save_state(state_path, state)

        if consecutive_failures >= max_consecutive_failures:
            logger.error("Stopping backfill after %d consecutive failures", consecutive_failures)
            return False

        if index < len(seasons) - 1 and delay_seconds > 0:
            await sleep(delay_seconds)

    logger.info("Historical backfill complete")
    return True
