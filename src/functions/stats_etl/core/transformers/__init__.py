"""Transformer functions for the stats ETL."""

from .stats import (
    build_external_id_map,
    normalize_player_id,
    transform_player_profiles,
    transform_player_seasons,
    transform_players,
    transform_weekly_stats,
    validate_player,
    validate_player_profile,
    validate_player_season,
    validate_weekly_stat,
)

__all__ = [
    "build_external_id_map",
    "normalize_player_id",
    "transform_player_profiles",
    "transform_player_seasons",
    "transform_players",
    "transform_weekly_stats",
    "validate_player",
    "validate_player_profile",
    "validate_player_season",
    "validate_weekly_stat",
]
