"""Contract exports for the stats ETL."""

from .config import EtlRunOptions, EtlSettings, RecentRunsQuery
from .records import (
    GAME_LOCATIONS,
    NFL_STAT_COLUMNS,
    NFL_TEAMS,
    NFL_WEEK_RANGE,
    SPORT_IDS,
    ExternalIdMap,
    PlayerProfileIdMap,
    PlayerSeasonIdMap,
    PlayerSeasonKey,
    RawPlayer,
    RawPlayerProfile,
    RawPlayerSeason,
    RawWeeklyStat,
    Row,
    make_player_season_key,
)
from .run import (
    EtlRunRecord,
    EtlRunResult,
    EtlRunStatus,
    LoadResult,
    ProfileLoadResult,
    RunStage,
    SeasonLoadResult,
)

__all__ = [
    "EtlRunOptions",
    "EtlSettings",
    "RecentRunsQuery",
    "GAME_LOCATIONS",
    "NFL_STAT_COLUMNS",
    "NFL_TEAMS",
    "NFL_WEEK_RANGE",
    "SPORT_IDS",
    "ExternalIdMap",
    "PlayerProfileIdMap",
    "PlayerSeasonIdMap",
    "PlayerSeasonKey",
    "RawPlayer",
    "RawPlayerProfile",
    "RawPlayerSeason",
    "RawWeeklyStat",
    "Row",
    "make_player_season_key",
    "EtlRunRecord",
    "EtlRunResult",
    "EtlRunStatus",
    "LoadResult",
    "ProfileLoadResult",
    "RunStage",
    "SeasonLoadResult",
]
