"""Data source adapter interface.

Adapters fetch raw records from one data provider for one sport and
normalize them into the ``Raw*`` contracts.  They never write to the
database and never produce database rows; that is the job of the
transformers and the loader.

To add a data source, subclass :class:`NFLBaseAdapter` (or
:class:`BaseAdapter` for other sports) and register an instance with
:func:`~.registry.register_adapter`.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from ..contracts.records import (
    MIN_SEASON,
    NFL_WEEK_RANGE,
    RawPlayer,
    RawPlayerProfile,
    RawPlayerSeason,
    RawWeeklyStat,
)

# NFL seasons kick off in September
NFL_SEASON_START_MONTH = 9


@dataclass(frozen=True)
class AdapterFetchOptions:
    """Arguments passed to every adapter fetch call."""

    season: int
    week: Optional[int] = None


@dataclass(frozen=True)
class HealthCheckResult:
    healthy: bool
    message: str
    latency_ms: Optional[int] = None


class BaseAdapter(ABC):
    """Common behaviour for every data source adapter."""

    name: str = ""
    version: str = "0.0.0"
    description: str = ""
    sport_id: str = ""

    @abstractmethod
    async def fetch_players(self, options: AdapterFetchOptions) -> List[RawPlayer]:
        """Return core player identities."""

    @abstractmethod
    async def fetch_player_profiles(self, options: AdapterFetchOptions) -> List[RawPlayerProfile]:
        """Return sport profiles (position and metadata) for the players."""

    @abstractmethod
    async def health_check(self) -> HealthCheckResult:
        """Report whether the data source is reachable."""

    def generate_player_id(self, name: str) -> str:
        """Return a URL-safe slug for ``name`` (``"Patrick Mahomes"`` -> ``"patrick-mahomes"``)."""
        slug = re.sub(r"[^a-z0-9\s-]", "", name.lower()).strip()
        slug = re.sub(r"\s+", "-", slug)
        return re.sub(r"-+", "-", slug)

    def current_season(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        return now.year

    def is_valid_season(self, season: int) -> bool:
        """Seasons from 2000 up to next year (pre-season data) are accepted."""
        return MIN_SEASON <= season <= self.current_season() + 1

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, version={self.version!r})"


class NFLBaseAdapter(BaseAdapter):
    """Base class for NFL adapters."""

    sport_id = "nfl"
    completed_season_weeks = NFL_WEEK_RANGE[1]

    @abstractmethod
    async def fetch_season_summary(self, options: AdapterFetchOptions) -> List[RawPlayerSeason]:
        """Return one team/jersey snapshot per player for ``options.season``."""

    @abstractmethod
    async def fetch_weekly_stats(self, options: AdapterFetchOptions) -> List[RawWeeklyStat]:
        """Return game stats for ``options.week``, or every played week when unset."""

    def current_season(self, now: Optional[datetime] = None) -> int:
        """An NFL season spans two calendar years; before September it is last year's."""
        now = now or datetime.now(timezone.utc)
        return now.year if now.month >= NFL_SEASON_START_MONTH else now.year - 1

    def current_week(self, now: Optional[datetime] = None) -> int:
        """Approximate week of the current NFL season; 18 once it is over."""
        now = now or datetime.now(timezone.utc)
        season_start = datetime(self.current_season(now), NFL_SEASON_START_MONTH, 1, tzinfo=timezone.utc)
        weeks_since_start = (now - season_start).days // 7
        return min(max(weeks_since_start, 1), NFL_WEEK_RANGE[1])

    def weeks_for_season(self, season: int, now: Optional[datetime] = None) -> List[int]:
        """Weeks played so far in ``season``; a full season for past years."""
        now = now or datetime.now(timezone.utc)
        if season == self.current_season(now):
            last_week = self.current_week(now)
        else:
            last_week = self.completed_season_weeks
        return list(range(1, last_week + 1))

    def is_valid_week(self, week: int) -> bool:
        first_week, last_week = NFL_WEEK_RANGE
        return first_week <= week <= last_week


def is_nfl_adapter(adapter: BaseAdapter) -> bool:
    return isinstance(adapter, NFLBaseAdapter)
