"""Configuration and request models for the stats ETL."""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from src.shared.utils.env import get_env_int

SportId = Literal["nfl", "mlb", "nba", "f1"]


class EtlRunOptions(BaseModel):
    """Parameters of a single pipeline run."""

    adapter_name: str = Field(..., min_length=1, description="Registered adapter name")
    season: Optional[int] = Field(
        default=None,
        ge=2000,
        le=2100,
        description="Season year; defaults to the adapter's current season",
    )
    week: Optional[int] = Field(default=None, ge=1, le=18, description="Single week to load")
    dry_run: bool = Field(default=False, description="Transform and validate without writing")
    fetch_players: bool = Field(
        default=True,
        description="Load players, profiles and seasons before weekly stats",
    )
    fetch_weekly_stats: bool = Field(default=True)

    @field_validator("adapter_name")
    @classmethod
    def _strip_adapter_name(cls, value: str) -> str:
        return value.strip()


class RecentRunsQuery(BaseModel):
    """Filters for the run history endpoint."""

    limit: int = Field(default=10, ge=1, le=100)
    sport: Optional[SportId] = None


class EtlSettings(BaseModel):
    """Process-level settings read from the environment."""

    etl_secret: Optional[str] = Field(
        default=None,
        description="Shared secret required by the HTTP trigger when set",
    )
    batch_size: int = Field(default=100, ge=1, le=1000)
    cron_header: str = Field(
        default="x-cron-trigger",
        description="Header set by the scheduler for unattended runs",
    )

    @classmethod
    def from_env(cls) -> "EtlSettings":
        return cls(
            etl_secret=os.getenv("ETL_SECRET") or None,
            batch_size=get_env_int("ETL_BATCH_SIZE", 100),
        )
