"""Supabase loader for the stats ETL.

Writes transformed rows with idempotent upserts keyed on each table's unique
constraint, and maintains the ``etl_runs`` audit table.

Rows are written in batches of ``batch_size`` (100 by default).  A batch the
database rejects, or one lost to a network error, is recorded in the stage's
error list and the remaining batches are still attempted, so one bad row
costs at most one batch.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from postgrest.exceptions import APIError

from ..contracts.records import (
    PlayerProfileIdMap,
    PlayerSeasonIdMap,
    Row,
    make_player_season_key,
)
from ..contracts.run import (
    EtlRunRecord,
    EtlRunStatus,
    LoadResult,
    ProfileLoadResult,
    SeasonLoadResult,
)
from ..exceptions import EtlLoaderError, EtlRunError
from ..transformers.stats import validate_player_profile

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100

PLAYERS_TABLE = "players"
PLAYER_PROFILES_TABLE = "player_profiles"
NFL_PLAYER_SEASONS_TABLE = "nfl_player_seasons"
NFL_WEEKLY_STATS_TABLE = "nfl_weekly_stats"
ETL_RUNS_TABLE = "etl_runs"

ETL_RUN_COLUMNS = (
    "id, adapter_name, sport_id, started_at, completed_at, "
    "status, records_processed, error_message"
)


def _batches(rows: Sequence[Row], size: int) -> Iterator[Tuple[int, Sequence[Row]]]:
    """Yield ``(batch_number, batch)`` with 1-based batch numbers."""
    for start in range(0, len(rows), size):
        yield start // size + 1, rows[start:start + size]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_text(exc: Exception) -> str:
    """PostgREST rejections carry a message; transport errors only their text."""
    if isinstance(exc, APIError) and exc.message:
        return exc.message
    return str(exc) or type(exc).__name__


class SupabaseLoader:
    """Persist ETL rows through an async Supabase client.

    The loader holds no per-run state; ID maps are returned to the caller,
    which owns them for the duration of one run.
    """

    def __init__(self, client: Any, *, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if client is None:
            raise ValueError("Supabase client is required for SupabaseLoader")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.client = client
        self.batch_size = batch_size

    # ------------------------------------------------------------------
    # Core player operations (shared across sports)

    async def load_players(self, players: Sequence[Row]) -> LoadResult:
        """Upsert ``players`` rows keyed on ``id``."""
        result = LoadResult()
        for number, batch in _batches(players, self.batch_size):
            data = await self._upsert_batch(PLAYERS_TABLE, batch, "id", "Player", number, result)
            if data is not None:
                result.records_upserted += len(data) or len(batch)
        logger.debug("Upserted %d/%d players", result.records_upserted, len(players))
        return result

    async def load_player_profiles(self, profiles: Sequence[Row]) -> ProfileLoadResult:
        """Upsert ``player_profiles`` keyed on ``(player_id, sport_id)``.

        Profiles that fail validation are reported and never sent.  The
        returned map points each ``player_id`` at the profile id the database
        assigned or already had.
        """
        result = ProfileLoadResult()

        valid_profiles: List[Row] = []
        for profile in profiles:
            if validate_player_profile(profile):
                valid_profiles.append(profile)
            else:
                result.errors.append(
                    f"Invalid player profile for {profile.get('player_id')!r} "
                    f"(sport {profile.get('sport_id')!r})"
                )

        for number, batch in _batches(valid_profiles, self.batch_size):
            data = await self._upsert_batch(
                PLAYER_PROFILES_TABLE, batch, "player_id,sport_id", "Player profile", number, result
            )
            if not data:
                continue
            result.records_upserted += len(data)
            for row in data:
                result.player_profile_id_map[row["player_id"]] = str(row["id"])

        logger.debug("Upserted %d/%d player profiles", result.records_upserted, len(profiles))
        return result

    # ------------------------------------------------------------------
    # NFL operations

    async def load_player_seasons(self, seasons: Sequence[Row]) -> SeasonLoadResult:
        """Upsert ``nfl_player_seasons`` keyed on ``(player_profile_id, season)``."""
        result = SeasonLoadResult()
        for number, batch in _batches(seasons, self.batch_size):
            data = await self._upsert_batch(
                NFL_PLAYER_SEASONS_TABLE,
                batch,
                "player_profile_id,season",
                "NFL player season",
                number,
                result,
            )
            if not data:
                continue
            result.records_upserted += len(data)
            for row in data:
                key = make_player_season_key(row["player_profile_id"], row["season"])
                result.player_season_id_map[key] = str(row["id"])

        logger.debug("Upserted %d/%d player seasons", result.records_upserted, len(seasons))
        return result

    async def load_weekly_stats(
        self,
        stats: Sequence[Row],
        player_season_id_map: PlayerSeasonIdMap,
    ) -> LoadResult:
        """Upsert ``nfl_weekly_stats`` keyed on ``(player_season_id, week)``.

        ``stats`` rows carry ``player_profile_id`` and ``season``; they are
        replaced by ``player_season_id`` here.  Rows whose season cannot be
        resolved are reported and dropped.
        """
        result = LoadResult()

        resolved: List[Row] = []
        for stat in stats:
            key = make_player_season_key(stat["player_profile_id"], stat["season"])
            player_season_id = player_season_id_map.get(key)
            if not player_season_id:
                result.errors.append(
                    f"Could not resolve player_season_id for profile "
                    f"{stat['player_profile_id']}, season {stat['season']}"
                )
                continue
            row = {k: v for k, v in stat.items() if k not in ("player_profile_id", "season")}
            row["player_season_id"] = player_season_id
            resolved.append(row)

        for number, batch in _batches(resolved, self.batch_size):
            data = await self._upsert_batch(
                NFL_WEEKLY_STATS_TABLE,
                batch,
                "player_season_id,week",
                "NFL weekly stats",
                number,
                result,
            )
            if data is not None:
                result.records_upserted += len(data) or len(batch)

        logger.debug("Upserted %d/%d weekly stats", result.records_upserted, len(stats))
        return result

    async def get_player_season_id_map(self, season: int) -> PlayerSeasonIdMap:
        """Rebuild the season id map from rows already stored for ``season``."""
        try:
            response = await (
                self.client.table(NFL_PLAYER_SEASONS_TABLE)
                .select("id, player_profile_id, season")
                .eq("season", season)
                .execute()
            )
        except Exception as exc:
            raise EtlLoaderError(f"Failed to fetch NFL player seasons: {_error_text(exc)}") from exc

        return {
            make_player_season_key(row["player_profile_id"], row["season"]): str(row["id"])
            for row in response.data or []
        }

    async def get_player_profile_id_map(self, sport_id: str) -> PlayerProfileIdMap:
        """Rebuild the ``player_id -> profile id`` map for ``sport_id``."""
        try:
            response = await (
                self.client.table(PLAYER_PROFILES_TABLE)
                .select("id, player_id")
                .eq("sport_id", sport_id)
                .execute()
            )
        except Exception as exc:
            raise EtlLoaderError(f"Failed to fetch player profiles: {_error_text(exc)}") from exc

        return {row["player_id"]: str(row["id"]) for row in response.data or []}

    # ------------------------------------------------------------------
    # ETL run bookkeeping

    async def create_run(self, adapter_name: str, sport_id: Optional[str]) -> str:
        """Insert a ``running`` audit row and return its id.

        Raises:
            EtlRunError: If the row could not be created.
        """
        payload = {
            "adapter_name": adapter_name,
            "sport_id": sport_id,
            "status": EtlRunStatus.RUNNING.value,
            "records_processed": 0,
            "started_at": _utc_now_iso(),
        }
        try:
            response = await self.client.table(ETL_RUNS_TABLE).insert(payload).execute()
        except Exception as exc:
            raise EtlRunError(f"Failed to create ETL run: {_error_text(exc)}") from exc

        rows = response.data or []
        if not rows or not rows[0].get("id"):
            raise EtlRunError("Failed to create ETL run: no id returned")

        return str(rows[0]["id"])

    async def update_run(
        self,
        run_id: str,
        status: EtlRunStatus,
        records_processed: int,
        error_message: Optional[str] = None,
    ) -> None:
        """Record the terminal status of a run.

        Failures are logged and swallowed so a lost audit write never hides
        the outcome of the data load itself.
        """
        payload = {
            "status": EtlRunStatus(status).value,
            "completed_at": _utc_now_iso(),
            "records_processed": records_processed,
            "error_message": error_message,
        }
        try:
            await self.client.table(ETL_RUNS_TABLE).update(payload).eq("id", run_id).execute()
        except Exception as exc:
            logger.error("Failed to update ETL run %s: %s", run_id, _error_text(exc))

    async def get_recent_runs(
        self,
        limit: int = 10,
        sport_id: Optional[str] = None,
    ) -> List[EtlRunRecord]:
        """Return the latest runs, newest first, optionally for one sport."""
        query = self.client.table(ETL_RUNS_TABLE).select(ETL_RUN_COLUMNS)
        if sport_id:
            query = query.eq("sport_id", sport_id)
        query = query.order("started_at", desc=True).limit(limit)

        try:
            response = await query.execute()
        except Exception as exc:
            raise EtlLoaderError(f"Failed to fetch ETL runs: {_error_text(exc)}") from exc

        return [EtlRunRecord.from_row(row) for row in response.data or []]

    # ------------------------------------------------------------------

    async def _upsert_batch(
        self,
        table_name: str,
        batch: Sequence[Row],
        on_conflict: str,
        label: str,
        number: int,
        result: LoadResult,
    ) -> Optional[List[Row]]:
        """Upsert one batch; on rejection record the error and return ``None``."""
        logger.debug(
            "Upserting %s batch %d (%d rows) with conflict cols: %s",
            table_name,
            number,
            len(batch),
            on_conflict,
        )
        try:
            response = await (
                self.client.table(table_name)
                .upsert(list(batch), on_conflict=on_conflict, ignore_duplicates=False)
                .execute()
            )
        except Exception as exc:
            message = f"{label} batch {number}: {_error_text(exc)}"
            logger.error("Supabase error: %s", message)
            result.errors.append(message)
            return None
        return list(response.data or [])
