"""Mock NFL adapter producing deterministic sample data.

Used for local development, dry runs and seeding a fresh database without
calling any external API.  Stats are seeded by player, season and week, so
repeated fetches return identical records.
"""

from __future__ import annotations

import asyncio
import hashlib
import random
import time
from typing import List, Optional, Tuple

from ..contracts.records import (
    NFL_TEAMS,
    RawPlayer,
    RawPlayerProfile,
    RawPlayerSeason,
    RawWeeklyStat,
)
from .base import AdapterFetchOptions, HealthCheckResult, NFLBaseAdapter

# (name, position, team, jersey number)
MOCK_PLAYERS: Tuple[Tuple[str, str, str, int], ...] = (
    ("Patrick Mahomes", "QB", "KC", 15),
    ("Josh Allen", "QB", "BUF", 17),
    ("Lamar Jackson", "QB", "BAL", 8),
    ("Joe Burrow", "QB", "CIN", 9),
    ("Jalen Hurts", "QB", "PHI", 1),
    ("Derrick Henry", "RB", "BAL", 22),
    ("Saquon Barkley", "RB", "PHI", 26),
    ("Jahmyr Gibbs", "RB", "DET", 26),
    ("Breece Hall", "RB", "NYJ", 20),
    ("Bijan Robinson", "RB", "ATL", 7),
    ("Tyreek Hill", "WR", "MIA", 10),
    ("CeeDee Lamb", "WR", "DAL", 88),
    ("Ja'Marr Chase", "WR", "CIN", 1),
    ("Amon-Ra St. Brown", "WR", "DET", 14),
    ("A.J. Brown", "WR", "PHI", 11),
    ("Travis Kelce", "TE", "KC", 87),
    ("Sam LaPorta", "TE", "DET", 87),
    ("T.J. Hockenson", "TE", "MIN", 87),
    ("George Kittle", "TE", "SF", 85),
    ("Mark Andrews", "TE", "BAL", 89),
)

MOCK_COLLEGES = (
    "Alabama",
    "Georgia",
    "Ohio State",
    "LSU",
    "Clemson",
    "Michigan",
    "Texas",
    "Oklahoma",
    "USC",
    "Notre Dame",
)


def _stable_seed(text: str) -> int:
    """Return a seed that is stable across processes (unlike ``hash``)."""
    return int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")


class NFLMockAdapter(NFLBaseAdapter):
    """NFL adapter backed by an in-process list of star players."""

    name = "nfl-mock"
    version = "2.0.0"
    description = "Mock NFL data adapter for testing and development"
    # weeks generated for completed seasons
    completed_season_weeks = 17

    def __init__(self, latency_seconds: float = 0.1) -> None:
        self.latency_seconds = latency_seconds

    async def fetch_players(self, options: AdapterFetchOptions) -> List[RawPlayer]:
        await self._simulate_latency()
        return [
            RawPlayer(external_id=self.generate_player_id(name), name=name)
            for name, _, _, _ in MOCK_PLAYERS
        ]

    async def fetch_player_profiles(self, options: AdapterFetchOptions) -> List[RawPlayerProfile]:
        await self._simulate_latency()
        profiles = []
        for name, position, _, _ in MOCK_PLAYERS:
            seed = _stable_seed(name)
            profiles.append(
                RawPlayerProfile(
                    player_external_id=self.generate_player_id(name),
                    sport_id=self.sport_id,
                    position=position,
                    metadata={
                        "college": MOCK_COLLEGES[seed % len(MOCK_COLLEGES)],
                        "draft_year": 2017 + seed % 7,
                    },
                )
            )
        return profiles

    async def fetch_season_summary(self, options: AdapterFetchOptions) -> List[RawPlayerSeason]:
        await self._simulate_latency()
        return [
            RawPlayerSeason(
                player_external_id=self.generate_player_id(name),
                season=options.season,
                team=team,
                jersey_number=jersey_number,
                is_active=True,
            )
            for name, _, team, jersey_number in MOCK_PLAYERS
        ]

    async def fetch_weekly_stats(self, options: AdapterFetchOptions) -> List[RawWeeklyStat]:
        await self._simulate_latency()
        weeks = [options.week] if options.week else self.weeks_for_season(options.season)

        stats: List[RawWeeklyStat] = []
        for name, position, team, _ in MOCK_PLAYERS:
            player_id = self.generate_player_id(name)
            for week in weeks:
                stats.append(self._generate_weekly_stat(player_id, position, team, options.season, week))
        return stats

    async def health_check(self) -> HealthCheckResult:
        start = time.monotonic()
        await self._simulate_latency(self.latency_seconds / 2)
        return HealthCheckResult(
            healthy=True,
            message="NFL Mock adapter is ready",
            latency_ms=int((time.monotonic() - start) * 1000),
        )

    # ------------------------------------------------------------------

    async def _simulate_latency(self, seconds: Optional[float] = None) -> None:
        delay = self.latency_seconds if seconds is None else seconds
        if delay > 0:
            await asyncio.sleep(delay)

    def _generate_weekly_stat(
        self,
        player_id: str,
        position: str,
        team: str,
        season: int,
        week: int,
    ) -> RawWeeklyStat:
        rng = random.Random(_stable_seed(f"{player_id}-{season}-{week}"))

        # 60% of games are good games
        good_game = rng.random() > 0.4
        multiplier = 1.2 if good_game else 0.8

        opponent = rng.choice([abbr for abbr in NFL_TEAMS if abbr != team])
        team_score = round(17 + rng.random() * 20)
        opponent_score = round(14 + rng.random() * 20)
        if team_score > opponent_score:
            result = f"W {team_score}-{opponent_score}"
        else:
            result = f"L {opponent_score}-{team_score}"
        location = "H" if rng.random() > 0.5 else "A"

        stats = {}
        if position == "QB":
            stats = {
                "passing_yards": round((220 + rng.random() * 150) * multiplier),
                "passing_tds": round((1.5 + rng.random() * 2) * multiplier),
                "interceptions": round(rng.random() * (1 if good_game else 2)),
                "completions": round((18 + rng.random() * 15) * multiplier),
                "attempts": round(28 + rng.random() * 15),
                "rushing_yards": round((5 + rng.random() * 40) * multiplier),
                "rushing_tds": 1 if rng.random() > 0.7 else 0,
            }
        elif position == "RB":
            stats = {
                "rushing_yards": round((50 + rng.random() * 80) * multiplier),
                "rushing_tds": round(rng.random() * (2 if good_game else 1)),
                "carries": round(12 + rng.random() * 12),
                "receiving_yards": round((10 + rng.random() * 40) * multiplier),
                "receiving_tds": 1 if rng.random() > 0.85 else 0,
                "receptions": round(1 + rng.random() * 5),
                "targets": round(2 + rng.random() * 6),
            }
        elif position == "WR":
            stats = {
                "receiving_yards": round((40 + rng.random() * 80) * multiplier),
                "receiving_tds": round(rng.random() * (2 if good_game else 0.5)),
                "receptions": round((3 + rng.random() * 6) * multiplier),
                "targets": round(5 + rng.random() * 8),
                "rushing_yards": round(rng.random() * 20) if rng.random() > 0.8 else 0,
                "rushing_tds": 1 if rng.random() > 0.95 else 0,
            }
        elif position == "TE":
            stats = {
                "receiving_yards": round((25 + rng.random() * 60) * multiplier),
                "receiving_tds": round(rng.random() * (1.5 if good_game else 0.5)),
                "receptions": round((2 + rng.random() * 5) * multiplier),
                "targets": round(4 + rng.random() * 6),
            }

        return RawWeeklyStat(
            player_external_id=player_id,
            season=season,
            week=week,
            opponent=opponent,
            location=location,
            result=result,
            **stats,
        )
