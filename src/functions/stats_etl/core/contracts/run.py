"""Run bookkeeping and load result contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .records import PlayerProfileIdMap, PlayerSeasonIdMap


class EtlRunStatus(str, Enum):
    """Values stored in ``etl_runs.status``."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class RunStage(str, Enum):
    """Progress of a single pipeline run.

    Stages only move forward: ``created`` through ``finalizing`` and then
    exactly one of ``success`` or ``failed``.
    """

    CREATED = "created"
    WRITING_PLAYERS = "writing_players"
    WRITING_PROFILES = "writing_profiles"
    WRITING_SEASONS = "writing_seasons"
    WRITING_STATS = "writing_stats"
    FINALIZING = "finalizing"
    SUCCESS = "success"
    FAILED = "failed"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    # PostgREST returns ISO-8601, sometimes with a trailing Z
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class EtlRunRecord:
    """One row of the ``etl_runs`` audit table."""

    id: str
    adapter_name: str
    sport_id: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    status: EtlRunStatus
    records_processed: int
    error_message: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "EtlRunRecord":
        return cls(
            id=str(row["id"]),
            adapter_name=row["adapter_name"],
            sport_id=row.get("sport_id"),
            started_at=_parse_timestamp(row.get("started_at")),
            completed_at=_parse_timestamp(row.get("completed_at")),
            status=EtlRunStatus(row["status"]),
            records_processed=int(row.get("records_processed") or 0),
            error_message=row.get("error_message"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "adapter_name": self.adapter_name,
            "sport_id": self.sport_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "status": self.status.value,
            "records_processed": self.records_processed,
            "error_message": self.error_message,
        }


@dataclass
class LoadResult:
    """Outcome of one loader stage.

    A stage keeps going after a rejected batch, so ``records_upserted`` can be
    non-zero even when ``success`` is ``False``.
    """

    records_upserted: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "records_upserted": self.records_upserted,
            "errors": list(self.errors),
        }


@dataclass
class ProfileLoadResult(LoadResult):
    player_profile_id_map: PlayerProfileIdMap = field(default_factory=dict)


@dataclass
class SeasonLoadResult(LoadResult):
    player_season_id_map: PlayerSeasonIdMap = field(default_factory=dict)


@dataclass
class EtlRunResult:
    """Aggregated outcome returned by the runner and the HTTP trigger."""

    success: bool
    run_id: Optional[str]
    adapter_name: str
    sport_id: Optional[str]
    season: Optional[int] = None
    week: Optional[int] = None
    dry_run: bool = False
    stage: RunStage = RunStage.CREATED
    records_processed: int = 0
    duration_ms: int = 0
    errors: List[str] = field(default_factory=list)
    # records dropped before loading (resolution misses, failed validation)
    skipped: Dict[str, int] = field(default_factory=dict)
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "run_id": self.run_id,
            "adapter_name": self.adapter_name,
            "sport_id": self.sport_id,
            "season": self.season,
            "week": self.week,
            "dry_run": self.dry_run,
            "stage": self.stage.value,
            "records_processed": self.records_processed,
            "duration_ms": self.duration_ms,
            "errors": list(self.errors),
            "skipped": dict(self.skipped),
        }
        if self.message:
            payload["message"] = self.message
        return payload
