"""ESPN NFL adapter.

Reads ESPN's public (unofficial) site API:

* scoreboard: the games of one regular-season week
* summary: the box score of one game, source of players, teams and stats
* athletes: per-player detail (position, jersey, college, draft)

Only completed games contribute players and stats.  Every request goes
through :class:`RateLimitedHttpClient` (5 requests/second, retried with
backoff) and responses are cached in memory, so the box score of a game is
downloaded once even though players, seasons and stats are all read from it.

External ids are ESPN athlete ids (``"3139477"``).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..contracts.records import RawPlayer, RawPlayerProfile, RawPlayerSeason, RawWeeklyStat
from ..exceptions import DataSourceError
from ..utils.http_client import RateLimitedHttpClient, ResponseCache
from .base import AdapterFetchOptions, HealthCheckResult, NFLBaseAdapter

logger = logging.getLogger(__name__)

SCOREBOARD_URL = "https://site.api.espn.com/apis/site/v2/sports/football/nfl/scoreboard"
SUMMARY_URL = "https://site.api.espn.com/apis/site/v2/sports/football/nfl/summary"
ATHLETE_URL = "https://site.api.espn.com/apis/common/v3/sports/football/nfl/athletes"

REGULAR_SEASON_TYPE = 2

# Cache lifetimes, in seconds
CURRENT_SCHEDULE_TTL = 60 * 60
PAST_SCHEDULE_TTL = 24 * 60 * 60
COMPLETED_GAME_TTL = 24 * 60 * 60
ATHLETE_TTL = 24 * 60 * 60

# A full season is ~270 box scores plus one detail per player
ESPN_CACHE_SIZE = 2000

PROGRESS_INTERVAL = 50

# ESPN abbreviations that differ from ours
TEAM_ALIASES: Dict[str, str] = {
    "WSH": "WAS",
    "JAC": "JAX",
    "LA": "LAR",
    "STL": "LAR",
    "SD": "LAC",
    "OAK": "LV",
}

POSITION_ALIASES: Dict[str, str] = {"FB": "RB", "HB": "RB"}


@dataclass(frozen=True)
class ScheduledGame:
    game_id: str
    week: int
    home_team: str
    away_team: str
    home_score: int
    away_score: int
    completed: bool


def normalize_team(abbreviation: Optional[str]) -> str:
    team = (abbreviation or "").strip().upper()
    return TEAM_ALIASES.get(team, team)


def normalize_position(abbreviation: Optional[str]) -> str:
    position = (abbreviation or "").strip().upper()
    return POSITION_ALIASES.get(position, position)


def parse_int(value: Any) -> int:
    """ESPN reports numbers as strings (``"1,024"``, ``"--"``); unparseable values count as 0."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return int(str(value).replace(",", "").strip())
    except (TypeError, ValueError):
        return 0


def game_result(team_score: int, opponent_score: int) -> str:
    """``"W 27-20"`` / ``"L 27-20"`` / ``"T 20-20"``, winning score first."""
    high, low = max(team_score, opponent_score), min(team_score, opponent_score)
    if team_score > opponent_score:
        return f"W {high}-{low}"
    if team_score < opponent_score:
        return f"L {high}-{low}"
    return f"T {high}-{low}"


# ---------------------------------------------------------------------------
# Box score stat categories


def _stat_map(category: Dict[str, Any], values: List[Any]) -> Dict[str, Any]:
    """Map lowercased labels and keys of ``category`` to ``values``."""
    stats: Dict[str, Any] = {}
    for names in (category.get("labels") or [], category.get("keys") or []):
        for name, value in zip(names, values):
            stats[str(name).lower()] = value
    return stats


def _lookup(stats: Dict[str, Any], *names: str) -> Any:
    for name in names:
        if name in stats:
            return stats[name]
    return None


def _split_pair(value: Any) -> Tuple[int, int]:
    if not value or "/" not in str(value):
        return 0, 0
    first, _, second = str(value).partition("/")
    return parse_int(first), parse_int(second)


def _passing(stats: Dict[str, Any]) -> Dict[str, int]:
    completions, attempts = _split_pair(_lookup(stats, "completions/passingattempts", "c/att", "comp/att"))
    return {
        "completions": completions,
        "attempts": attempts,
        "passing_yards": parse_int(_lookup(stats, "passingyards", "yds")),
        "passing_tds": parse_int(_lookup(stats, "passingtouchdowns", "td")),
        "interceptions": parse_int(_lookup(stats, "interceptions", "int")),
    }


def _rushing(stats: Dict[str, Any]) -> Dict[str, int]:
    return {
        "carries": parse_int(_lookup(stats, "rushingattempts", "car")),
        "rushing_yards": parse_int(_lookup(stats, "rushingyards", "yds")),
        "rushing_tds": parse_int(_lookup(stats, "rushingtouchdowns", "td")),
    }


def _receiving(stats: Dict[str, Any]) -> Dict[str, int]:
    return {
        "receptions": parse_int(_lookup(stats, "receptions", "rec")),
        "receiving_yards": parse_int(_lookup(stats, "receivingyards", "yds")),
        "receiving_tds": parse_int(_lookup(stats, "receivingtouchdowns", "td")),
        "targets": parse_int(_lookup(stats, "receivingtargets", "tgt")),
    }


CATEGORY_PARSERS: Dict[str, Callable[[Dict[str, Any]], Dict[str, int]]] = {
    "passing": _passing,
    "rushing": _rushing,
    "receiving": _receiving,
}


def _boxscore_athletes(summary: Dict[str, Any]) -> Iterator[Tuple[str, Dict[str, Any], Dict[str, Any], List[Any]]]:
    """Yield ``(team, category, athlete, stat values)`` for every box score line."""
    for team_entry in (summary.get("boxscore") or {}).get("players") or []:
        team = normalize_team((team_entry.get("team") or {}).get("abbreviation"))
        for category in team_entry.get("statistics") or []:
            for line in category.get("athletes") or []:
                athlete = line.get("athlete") or {}
                if athlete.get("id"):
                    yield team, category, athlete, line.get("stats") or []


class NFLESPNAdapter(NFLBaseAdapter):
    """NFL adapter backed by ESPN's JSON endpoints."""

    name = "nfl-espn"
    version = "1.0.0"
    description = "ESPN unofficial JSON API adapter for NFL data"

    def __init__(self, http_client: Optional[RateLimitedHttpClient] = None) -> None:
        self.http = http_client or RateLimitedHttpClient("espn", cache=ResponseCache(max_size=ESPN_CACHE_SIZE))

    async def fetch_players(self, options: AdapterFetchOptions) -> List[RawPlayer]:
        players: Dict[str, RawPlayer] = {}
        for _, summary in await self._completed_game_summaries(options):
            for _, _, athlete, _ in _boxscore_athletes(summary):
                athlete_id = str(athlete["id"])
                if athlete_id in players:
                    continue
                players[athlete_id] = RawPlayer(
                    external_id=athlete_id,
                    name=athlete.get("displayName") or athlete.get("fullName") or "",
                    image_url=(athlete.get("headshot") or {}).get("href"),
                )
        return list(players.values())

    async def fetch_player_profiles(self, options: AdapterFetchOptions) -> List[RawPlayerProfile]:
        """Profiles from athlete detail; the box score position is used when detail is unavailable."""
        box_positions: Dict[str, str] = {}
        for _, summary in await self._completed_game_summaries(options):
            for _, _, athlete, _ in _boxscore_athletes(summary):
                box_positions.setdefault(
                    str(athlete["id"]), normalize_position((athlete.get("position") or {}).get("abbreviation"))
                )

        total = len(box_positions)
        logger.info("Fetching athlete details for %d players", total)
        started = time.monotonic()
        profiles: List[RawPlayerProfile] = []
        missing = 0

        for index, (athlete_id, box_position) in enumerate(box_positions.items(), start=1):
            detail = await self._fetch_athlete(athlete_id)
            if detail is None:
                missing += 1
                profiles.append(
                    RawPlayerProfile(player_external_id=athlete_id, sport_id=self.sport_id, position=box_position)
                )
            else:
                profiles.append(self._profile_from_detail(athlete_id, detail, box_position))

            if index % PROGRESS_INTERVAL == 0 or index == total:
                logger.info(
                    "Player profiles: %d/%d (%d%%), %d without detail, %ds elapsed",
                    index,
                    total,
                    index * 100 // total,
                    missing,
                    int(time.monotonic() - started),
                )

        return profiles

    async def fetch_season_summary(self, options: AdapterFetchOptions) -> List[RawPlayerSeason]:
        """One snapshot per player with the team of their latest game."""
        teams: Dict[str, str] = {}
        jerseys: Dict[str, int] = {}
        for _, summary in await self._completed_game_summaries(options):
            for team, _, athlete, _ in _boxscore_athletes(summary):
                athlete_id = str(athlete["id"])
                teams[athlete_id] = team
                jersey = parse_int(athlete.get("jersey"))
                if jersey:
                    jerseys[athlete_id] = jersey

        for athlete_id in teams:
            if athlete_id in jerseys:
                continue
            # box scores usually omit jerseys
            detail = await self._fetch_athlete(athlete_id)
            if detail is not None:
                jerseys[athlete_id] = parse_int(detail.get("jersey"))

        return [
            RawPlayerSeason(
                player_external_id=athlete_id,
                season=options.season,
                team=team,
                jersey_number=jerseys.get(athlete_id, 0),
                is_active=True,
            )
            for athlete_id, team in teams.items()
        ]

    async def fetch_weekly_stats(self, options: AdapterFetchOptions) -> List[RawWeeklyStat]:
        stats: List[RawWeeklyStat] = []
        for game, summary in await self._completed_game_summaries(options):
            stats.extend(self._stats_from_summary(summary, game, options.season))
        return stats

    async def health_check(self) -> HealthCheckResult:
        start = time.monotonic()
        try:
            await self.http.get_json(SCOREBOARD_URL, use_cache=False)
        except DataSourceError as exc:
            return HealthCheckResult(
                healthy=False,
                message=f"ESPN API health check failed: {exc}",
                latency_ms=int((time.monotonic() - start) * 1000),
            )
        return HealthCheckResult(
            healthy=True,
            message="ESPN API is accessible",
            latency_ms=int((time.monotonic() - start) * 1000),
        )

    # ------------------------------------------------------------------

    async def fetch_schedule(self, season: int, week: int) -> List[ScheduledGame]:
        """Regular-season games of ``week``; an unreachable scoreboard yields no games."""
        params = {"seasontype": REGULAR_SEASON_TYPE, "week": week, "dates": season}
        ttl = CURRENT_SCHEDULE_TTL if season >= self.current_season() else PAST_SCHEDULE_TTL
        try:
            data = await self.http.get_json(SCOREBOARD_URL, params, cache_ttl_seconds=ttl)
        except DataSourceError as exc:
            logger.warning("Failed to fetch schedule for %d week %d: %s", season, week, exc)
            return []

        games: List[ScheduledGame] = []
        for event in data.get("events") or []:
            competitions = event.get("competitions") or []
            if not competitions:
                continue
            competitors = {c.get("homeAway"): c for c in competitions[0].get("competitors") or []}
            home, away = competitors.get("home"), competitors.get("away")
            if not home or not away:
                continue

            games.append(
                ScheduledGame(
                    game_id=str(event.get("id")),
                    week=week,
                    home_team=normalize_team((home.get("team") or {}).get("abbreviation")),
                    away_team=normalize_team((away.get("team") or {}).get("abbreviation")),
                    home_score=parse_int(home.get("score")),
                    away_score=parse_int(away.get("score")),
                    completed=bool(((event.get("status") or {}).get("type") or {}).get("completed")),
                )
            )
        return games

    async def _completed_game_summaries(
        self, options: AdapterFetchOptions
    ) -> List[Tuple[ScheduledGame, Dict[str, Any]]]:
        weeks = [options.week] if options.week else self.weeks_for_season(options.season)

        summaries: List[Tuple[ScheduledGame, Dict[str, Any]]] = []
        for week in weeks:
            for game in await self.fetch_schedule(options.season, week):
                if not game.completed:
                    continue
                try:
                    summary = await self.http.get_json(
                        SUMMARY_URL, {"event": game.game_id}, cache_ttl_seconds=COMPLETED_GAME_TTL
                    )
                except DataSourceError as exc:
                    logger.warning("Failed to fetch game %s: %s", game.game_id, exc)
                    continue
                summaries.append((game, summary))
        return summaries

    async def _fetch_athlete(self, athlete_id: str) -> Optional[Dict[str, Any]]:
        try:
            data = await self.http.get_json(f"{ATHLETE_URL}/{athlete_id}", cache_ttl_seconds=ATHLETE_TTL)
        except DataSourceError as exc:
            logger.debug("No athlete detail for %s: %s", athlete_id, exc)
            return None
        return data.get("athlete") or None

    def _profile_from_detail(
        self, athlete_id: str, detail: Dict[str, Any], box_position: str
    ) -> RawPlayerProfile:
        draft = detail.get("draft") or {}
        metadata = {
            "college": (detail.get("college") or {}).get("name"),
            "draft_year": draft.get("year"),
            "draft_round": draft.get("round"),
            "draft_pick": draft.get("selection"),
        }
        return RawPlayerProfile(
            player_external_id=athlete_id,
            sport_id=self.sport_id,
            position=normalize_position((detail.get("position") or {}).get("abbreviation")) or box_position,
            metadata={key: value for key, value in metadata.items() if value is not None},
        )

    def _stats_from_summary(
        self, summary: Dict[str, Any], game: ScheduledGame, season: int
    ) -> List[RawWeeklyStat]:
        by_player: Dict[str, Dict[str, Any]] = {}

        for team, category, athlete, values in _boxscore_athletes(summary):
            is_home = team == game.home_team
            team_score, opponent_score = (
                (game.home_score, game.away_score) if is_home else (game.away_score, game.home_score)
            )
            fields = by_player.setdefault(
                str(athlete["id"]),
                {
                    "player_external_id": str(athlete["id"]),
                    "season": season,
                    "week": game.week,
                    "opponent": game.away_team if is_home else game.home_team,
                    "location": "H" if is_home else "A",
                    "result": game_result(team_score, opponent_score),
                },
            )
            parser = CATEGORY_PARSERS.get(str(category.get("name", "")).lower())
            if parser is not None:
                fields.update(parser(_stat_map(category, values)))

        return [RawWeeklyStat(**fields) for fields in by_player.values()]
