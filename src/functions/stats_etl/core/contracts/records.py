"""Record contracts shared by adapters, transformers and loaders.

Adapters produce the ``Raw*`` dataclasses below.  Transformers turn them into
plain dictionaries whose keys match the database columns so they can be
handed to ``upsert`` unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

SPORT_IDS: Tuple[str, ...] = ("nfl", "mlb", "nba", "f1")

NFL_TEAMS: Tuple[str, ...] = (
    "ARI", "ATL", "BAL", "BUF", "CAR", "CHI", "CIN", "CLE",
    "DAL", "DEN", "DET", "GB", "HOU", "IND", "JAX", "KC",
    "LAC", "LAR", "LV", "MIA", "MIN", "NE", "NO", "NYG",
    "NYJ", "PHI", "PIT", "SEA", "SF", "TB", "TEN", "WAS",
)

# Regular season weeks, inclusive
NFL_WEEK_RANGE: Tuple[int, int] = (1, 18)

MIN_SEASON = 2000

GAME_LOCATIONS: Tuple[str, ...] = ("H", "A")

# Numeric weekly stat columns; RawWeeklyStat attributes use the same names
NFL_STAT_COLUMNS: Tuple[str, ...] = (
    "passing_yards",
    "passing_tds",
    "interceptions",
    "completions",
    "attempts",
    "rushing_yards",
    "rushing_tds",
    "carries",
    "receiving_yards",
    "receiving_tds",
    "receptions",
    "targets",
)

# Database rows, keyed by column name
Row = Dict[str, Any]

# external player id -> internal player id (slug)
ExternalIdMap = Dict[str, str]
# player id -> player_profiles.id
PlayerProfileIdMap = Dict[str, str]
# (player_profile_id, season)
PlayerSeasonKey = Tuple[str, int]
# (player_profile_id, season) -> nfl_player_seasons.id
PlayerSeasonIdMap = Dict[PlayerSeasonKey, str]


def make_player_season_key(player_profile_id: str, season: int) -> PlayerSeasonKey:
    """Return the lookup key used by :data:`PlayerSeasonIdMap`."""
    return (str(player_profile_id), int(season))


@dataclass(frozen=True)
class RawPlayer:
    """Core player identity as reported by a data source."""

    external_id: str
    name: str
    image_url: Optional[str] = None


@dataclass(frozen=True)
class RawPlayerProfile:
    """Links a player to a sport with a position and free-form metadata."""

    player_external_id: str
    sport_id: str
    position: str
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class RawPlayerSeason:
    """Team and jersey snapshot of an NFL player for one season."""

    player_external_id: str
    season: int
    team: str
    jersey_number: int
    is_active: bool = True


@dataclass(frozen=True)
class RawWeeklyStat:
    """One NFL game for one player.

    Stat attributes are ``None`` when the source did not report them.
    """

    player_external_id: str
    season: int
    week: int
    opponent: str
    location: str
    result: Optional[str] = None

    passing_yards: Optional[int] = None
    passing_tds: Optional[int] = None
    interceptions: Optional[int] = None
    completions: Optional[int] = None
    attempts: Optional[int] = None

    rushing_yards: Optional[int] = None
    rushing_tds: Optional[int] = None
    carries: Optional[int] = None

    receiving_yards: Optional[int] = None
    receiving_tds: Optional[int] = None
    receptions: Optional[int] = None
    targets: Optional[int] = None
