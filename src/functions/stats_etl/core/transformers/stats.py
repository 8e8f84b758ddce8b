"""Transform raw adapter records into database-ready rows.

The functions here are pure: they never touch the network or the database.
Foreign keys are resolved through the ID maps handed in by the runner, and
records that cannot be resolved are skipped with a warning rather than
aborting the run.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from ..contracts.records import (
    GAME_LOCATIONS,
    MIN_SEASON,
    NFL_STAT_COLUMNS,
    NFL_WEEK_RANGE,
    SPORT_IDS,
    ExternalIdMap,
    PlayerProfileIdMap,
    RawPlayer,
    RawPlayerProfile,
    RawPlayerSeason,
    RawWeeklyStat,
    Row,
)

logger = logging.getLogger(__name__)

_SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
_INVALID_SLUG_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_REPEATED_HYPHENS = re.compile(r"-+")


def normalize_player_id(external_id: str) -> str:
    """Return the internal slug for ``external_id``.

    Ids that are already slug shaped are returned unchanged, so re-running a
    load never renames existing players.

    >>> normalize_player_id("Patrick Mahomes")
    'patrick-mahomes'
    >>> normalize_player_id("patrick-mahomes")
    'patrick-mahomes'
    """
    if _SLUG_PATTERN.match(external_id):
        return external_id

    slug = external_id.lower()
    slug = _INVALID_SLUG_CHARS.sub("", slug)
    slug = slug.strip()
    slug = _WHITESPACE.sub("-", slug)
    slug = _REPEATED_HYPHENS.sub("-", slug)
    return slug


def build_external_id_map(external_ids: Iterable[str]) -> ExternalIdMap:
    """Derive the external -> internal map without loading players.

    Internal ids are a pure function of the external id, so a run that only
    refreshes weekly stats can rebuild the map from the stat records alone.
    """
    return {external_id: normalize_player_id(external_id) for external_id in external_ids}


# ---------------------------------------------------------------------------
# Core player transformations (shared across sports)


def transform_players(raw_players: Sequence[RawPlayer]) -> Tuple[List[Row], ExternalIdMap]:
    """Map raw players to ``players`` rows.

    Returns the rows and the external -> internal id map used by every later
    stage.  Each input produces exactly one row and one map entry.
    """
    external_id_map: ExternalIdMap = {}
    players: List[Row] = []

    for raw in raw_players:
        internal_id = normalize_player_id(raw.external_id)
        external_id_map[raw.external_id] = internal_id
        players.append(
            {
                "id": internal_id,
                "name": raw.name,
                "image_url": raw.image_url,
            }
        )

    return players, external_id_map


def transform_player_profiles(
    raw_profiles: Sequence[RawPlayerProfile],
    external_id_map: ExternalIdMap,
) -> List[Row]:
    """Map raw profiles to ``player_profiles`` rows."""
    profiles: List[Row] = []

    for raw in raw_profiles:
        player_id = external_id_map.get(raw.player_external_id)
        if not player_id:
            logger.warning("Unknown player external ID: %s", raw.player_external_id)
            continue

        profiles.append(
            {
                "player_id": player_id,
                "sport_id": raw.sport_id,
                "position": raw.position,
                "metadata": dict(raw.metadata) if raw.metadata is not None else {},
            }
        )

    return profiles


# ---------------------------------------------------------------------------
# NFL transformations


def _resolve_profile_id(
    player_external_id: str,
    external_id_map: ExternalIdMap,
    player_profile_id_map: PlayerProfileIdMap,
    context: str,
) -> Optional[str]:
    player_id = external_id_map.get(player_external_id)
    if not player_id:
        logger.warning("Unknown player external ID in %s: %s", context, player_external_id)
        return None

    player_profile_id = player_profile_id_map.get(player_id)
    if not player_profile_id:
        logger.warning("No NFL profile found for player %s in %s", player_id, context)
        return None

    return player_profile_id


def transform_player_seasons(
    raw_seasons: Sequence[RawPlayerSeason],
    external_id_map: ExternalIdMap,
    player_profile_id_map: PlayerProfileIdMap,
) -> List[Row]:
    """Map raw season snapshots to ``nfl_player_seasons`` rows."""
    seasons: List[Row] = []

    for raw in raw_seasons:
        player_profile_id = _resolve_profile_id(
            raw.player_external_id, external_id_map, player_profile_id_map, "seasons"
        )
        if player_profile_id is None:
            continue

        seasons.append(
            {
                "player_profile_id": player_profile_id,
                "season": raw.season,
                "team": raw.team,
                "jersey_number": raw.jersey_number,
                "is_active": raw.is_active,
            }
        )

    return seasons


def transform_weekly_stats(
    raw_stats: Sequence[RawWeeklyStat],
    external_id_map: ExternalIdMap,
    player_profile_id_map: PlayerProfileIdMap,
) -> List[Row]:
    """Map raw weekly stats to ``nfl_weekly_stats`` rows.

    The rows carry ``player_profile_id`` and ``season`` instead of
    ``player_season_id``; the loader swaps them for the season id once the
    season rows exist.  Missing stats default to 0, explicit zeros are kept.
    """
    stats: List[Row] = []

    for raw in raw_stats:
        player_profile_id = _resolve_profile_id(
            raw.player_external_id, external_id_map, player_profile_id_map, "stats"
        )
        if player_profile_id is None:
            continue

        row: Row = {
            "player_profile_id": player_profile_id,
            "season": raw.season,
            "week": raw.week,
            "opponent": raw.opponent,
            "location": raw.location,
            "result": raw.result,
        }
        for column in NFL_STAT_COLUMNS:
            value = getattr(raw, column)
            row[column] = value if value is not None else 0
        stats.append(row)

    return stats


# ---------------------------------------------------------------------------
# Validation


def _max_season() -> int:
    return datetime.now(timezone.utc).year + 1


def _is_whole_number(value: Any) -> bool:
    # bool is an int subclass; True must not pass as week 1
    return isinstance(value, int) and not isinstance(value, bool)


def validate_player(player: Row) -> bool:
    """Return ``True`` if ``player`` has an id and a name."""
    if not player.get("id"):
        logger.warning("Player missing ID")
        return False

    if not player.get("name"):
        logger.warning("Player %s missing name", player["id"])
        return False

    return True


def validate_player_profile(profile: Row) -> bool:
    """Return ``True`` if ``profile`` references a player, a known sport and a position."""
    if not profile.get("player_id"):
        logger.warning("Profile missing player_id")
        return False

    if profile.get("sport_id") not in SPORT_IDS:
        logger.warning("Profile for %s has invalid sport_id: %s", profile["player_id"], profile.get("sport_id"))
        return False

    if not profile.get("position"):
        logger.warning("Profile for %s missing position", profile["player_id"])
        return False

    return True


def validate_player_season(season: Row) -> bool:
    """Return ``True`` if ``season`` has a profile, a team and a plausible year."""
    if not season.get("player_profile_id"):
        logger.warning("Season missing player_profile_id")
        return False

    year = season.get("season")
    if not _is_whole_number(year) or year < MIN_SEASON or year > _max_season():
        logger.warning("Invalid season %s for profile %s", year, season["player_profile_id"])
        return False

    if not season.get("team"):
        logger.warning("Season %s for profile %s missing team", year, season["player_profile_id"])
        return False

    return True


def validate_weekly_stat(stat: Row, week_range: Tuple[int, int] = NFL_WEEK_RANGE) -> bool:
    """Return ``True`` if ``stat`` has a week, season and location in range."""
    first_week, last_week = week_range
    week = stat.get("week")
    if not _is_whole_number(week) or week < first_week or week > last_week:
        logger.warning("Invalid week number: %s", week)
        return False

    season = stat.get("season")
    if not _is_whole_number(season) or season < MIN_SEASON or season > _max_season():
        logger.warning("Invalid season: %s", season)
        return False

    if stat.get("location") not in GAME_LOCATIONS:
        logger.warning("Invalid location: %s", stat.get("location"))
        return False

    if not stat.get("opponent"):
        logger.warning("Stat for week %s missing opponent", week)
        return False

    return True
