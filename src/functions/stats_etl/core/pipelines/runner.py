"""Stats ETL runner.

Coordinates adapter -> transformer -> loader for one adapter, season and
optional week.  Stages run strictly in order (players, profiles, seasons,
weekly stats) because every stage needs the ID map produced by the one
before it.  The maps live on a :class:`PipelineRun` and are discarded with
it; nothing is shared between runs.

Runs are not locked against each other.  Two concurrent runs touching the
same ``(player_profile_id, season)`` rows rely on the per-row atomicity of
the database upsert only.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from src.shared.db.connection import get_async_supabase_client

from ..adapters.base import AdapterFetchOptions, BaseAdapter, is_nfl_adapter
from ..adapters.registry import get_adapter, get_adapter_names, has_adapter
from ..contracts.config import EtlRunOptions, EtlSettings
from ..contracts.records import (
    ExternalIdMap,
    PlayerProfileIdMap,
    PlayerSeasonIdMap,
    Row,
    make_player_season_key,
)
from ..contracts.run import EtlRunResult, EtlRunStatus, LoadResult, RunStage
from ..loaders.supabase_loader import SupabaseLoader
from ..transformers.stats import (
    build_external_id_map,
    transform_player_profiles,
    transform_player_seasons,
    transform_players,
    transform_weekly_stats,
    validate_player,
    validate_player_profile,
    validate_player_season,
    validate_weekly_stat,
)

logger = logging.getLogger(__name__)

# Placeholder profile ids let dry runs exercise the season/stat transforms
DRY_RUN_ID_PREFIX = "dry-run:"

# Errors copied into etl_runs.error_message
MAX_ERRORS_IN_MESSAGE = 5


def summarize_errors(errors: List[str]) -> Optional[str]:
    """Condense ``errors`` into a single audit message."""
    if not errors:
        return None
    message = "; ".join(errors[:MAX_ERRORS_IN_MESSAGE])
    remaining = len(errors) - MAX_ERRORS_IN_MESSAGE
    if remaining > 0:
        message += f" (+{remaining} more)"
    return message


class PipelineRun:
    """State of one pipeline execution.

    Owns the run-scoped ID maps, the accumulated loader errors and the
    current :class:`RunStage`.
    """

    def __init__(
        self,
        adapter: BaseAdapter,
        options: EtlRunOptions,
        season: int,
        loader: Optional[SupabaseLoader],
    ) -> None:
        self.adapter = adapter
        self.options = options
        self.season = season
        self.loader = loader
        self.fetch_options = AdapterFetchOptions(season=season, week=options.week)

        self.stage = RunStage.CREATED
        self.errors: List[str] = []
        self.skipped: Dict[str, int] = {}
        self.records_processed = 0

        self.external_id_map: ExternalIdMap = {}
        self.player_profile_id_map: PlayerProfileIdMap = {}
        self.player_season_id_map: PlayerSeasonIdMap = {}

    @property
    def dry_run(self) -> bool:
        return self.loader is None

    async def execute(self) -> None:
        """Run every enabled stage; loader failures accumulate in ``errors``."""
        health = await self.adapter.health_check()
        if not health.healthy:
            raise RuntimeError(f"Adapter health check failed: {health.message}")
        logger.info("Health check passed (%sms)", health.latency_ms)

        if self.options.fetch_players:
            await self._load_players()
            await self._load_profiles()

        if not is_nfl_adapter(self.adapter):
            logger.info("No season/stat tables for sport %s; skipping", self.adapter.sport_id)
            return

        if self.options.fetch_players:
            await self._load_seasons()
        if self.options.fetch_weekly_stats:
            await self._load_weekly_stats()

    # ------------------------------------------------------------------
    # Stages

    async def _load_players(self) -> None:
        self._enter(RunStage.WRITING_PLAYERS)
        raw_players = await self.adapter.fetch_players(self.fetch_options)
        logger.info("Fetched %d players", len(raw_players))

        players, self.external_id_map = transform_players(raw_players)
        valid_players = self._validated("players", players, validate_player)

        if self.loader is not None:
            self._record("players", await self.loader.load_players(valid_players))

    async def _load_profiles(self) -> None:
        self._enter(RunStage.WRITING_PROFILES)
        raw_profiles = await self.adapter.fetch_player_profiles(self.fetch_options)
        logger.info("Fetched %d player profiles", len(raw_profiles))

        profiles = transform_player_profiles(raw_profiles, self.external_id_map)
        self._count_skipped("profiles_unresolved", len(raw_profiles) - len(profiles))
        valid_profiles = self._validated("profiles", profiles, validate_player_profile)

        if self.loader is None:
            self.player_profile_id_map = {
                profile["player_id"]: DRY_RUN_ID_PREFIX + profile["player_id"]
                for profile in valid_profiles
                if profile["sport_id"] == self.adapter.sport_id
            }
            return

        result = await self.loader.load_player_profiles(valid_profiles)
        self._record("player profiles", result)
        self.player_profile_id_map = result.player_profile_id_map

    async def _load_seasons(self) -> None:
        self._enter(RunStage.WRITING_SEASONS)
        await self._ensure_profile_id_map()

        raw_seasons = await self.adapter.fetch_season_summary(self.fetch_options)
        logger.info("Fetched %d NFL player seasons", len(raw_seasons))

        seasons = transform_player_seasons(raw_seasons, self.external_id_map, self.player_profile_id_map)
        self._count_skipped("seasons_unresolved", len(raw_seasons) - len(seasons))
        valid_seasons = self._validated("seasons", seasons, validate_player_season)

        if self.loader is None:
            self.player_season_id_map = {
                make_player_season_key(row["player_profile_id"], row["season"]): DRY_RUN_ID_PREFIX
                + f"{row['player_profile_id']}:{row['season']}"
                for row in valid_seasons
            }
            return

        result = await self.loader.load_player_seasons(valid_seasons)
        self._record("NFL player seasons", result)
        self.player_season_id_map = result.player_season_id_map

    async def _load_weekly_stats(self) -> None:
        self._enter(RunStage.WRITING_STATS)
        raw_stats = await self.adapter.fetch_weekly_stats(self.fetch_options)
        logger.info("Fetched %d NFL weekly stat records", len(raw_stats))

        if not self.external_id_map:
            # Players stage skipped: internal ids are derivable from external ids
            self.external_id_map = build_external_id_map(
                {raw.player_external_id for raw in raw_stats}
            )
        await self._ensure_profile_id_map()

        stats = transform_weekly_stats(raw_stats, self.external_id_map, self.player_profile_id_map)
        self._count_skipped("stats_unresolved", len(raw_stats) - len(stats))
        valid_stats = self._validated("stats", stats, validate_weekly_stat)

        if self.loader is None:
            return

        if not self.player_season_id_map:
            logger.info("Fetching NFL player season IDs for %d from database", self.season)
            self.player_season_id_map = await self.loader.get_player_season_id_map(self.season)

        self._record("NFL weekly stats", await self.loader.load_weekly_stats(valid_stats, self.player_season_id_map))

    # ------------------------------------------------------------------

    async def _ensure_profile_id_map(self) -> None:
        if self.player_profile_id_map:
            return
        if self.loader is None:
            self.player_profile_id_map = {
                player_id: DRY_RUN_ID_PREFIX + player_id for player_id in self.external_id_map.values()
            }
            return
        logger.info("Fetching existing %s player profile IDs", self.adapter.sport_id)
        self.player_profile_id_map = await self.loader.get_player_profile_id_map(self.adapter.sport_id)

    def _enter(self, stage: RunStage) -> None:
        logger.debug("Run stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    def _validated(self, label: str, rows: List[Row], validator: Any) -> List[Row]:
        valid_rows = [row for row in rows if validator(row)]
        self._count_skipped(f"{label}_invalid", len(rows) - len(valid_rows))
        logger.info("%d/%d %s valid", len(valid_rows), len(rows), label)
        return valid_rows

    def _count_skipped(self, key: str, count: int) -> None:
        if count > 0:
            self.skipped[key] = self.skipped.get(key, 0) + count

    def _record(self, label: str, result: LoadResult) -> None:
        self.records_processed += result.records_upserted
        self.errors.extend(result.errors)
        if result.success:
            logger.info("Loaded %d %s", result.records_upserted, label)
        else:
            logger.warning(
                "Loaded %d %s with %d errors", result.records_upserted, label, len(result.errors)
            )


async def run_etl(
    options: EtlRunOptions,
    *,
    loader: Optional[SupabaseLoader] = None,
    adapter: Optional[BaseAdapter] = None,
    settings: Optional[EtlSettings] = None,
) -> EtlRunResult:
    """Run the pipeline described by ``options``.

    A run is ``success`` only if no loader stage reported an error and no
    stage raised.  In dry-run mode nothing is written, no ``etl_runs`` row is
    created and no database client is opened.

    Raises:
        EtlRunError: If the ``etl_runs`` row cannot be created.
    """
    started = time.monotonic()

    if adapter is None:
        if not has_adapter(options.adapter_name):
            message = (
                f"Unknown adapter: {options.adapter_name}. "
                f"Available: {', '.join(get_adapter_names())}"
            )
            logger.error(message)
            return EtlRunResult(
                success=False,
                run_id=None,
                adapter_name=options.adapter_name,
                sport_id=None,
                season=options.season,
                week=options.week,
                dry_run=options.dry_run,
                stage=RunStage.FAILED,
                errors=[message],
                message=message,
            )
        adapter = get_adapter(options.adapter_name)

    season = options.season or adapter.current_season()

    logger.info("Starting run with adapter: %s v%s", adapter.name, adapter.version)
    logger.info(
        "Sport: %s, Season: %s, Week: %s, Dry run: %s",
        adapter.sport_id,
        season,
        options.week or "all",
        options.dry_run,
    )

    if options.dry_run:
        loader = None
    elif loader is None:
        settings = settings or EtlSettings.from_env()
        client = await get_async_supabase_client()
        loader = SupabaseLoader(client, batch_size=settings.batch_size)

    run_id: Optional[str] = None
    if loader is not None:
        run_id = await loader.create_run(adapter.name, adapter.sport_id)
        logger.info("Created run record: %s", run_id)

    run = PipelineRun(adapter, options, season, loader)
    failure: Optional[str] = None
    try:
        await run.execute()
    except Exception as exc:
        logger.exception("Run failed during stage %s", run.stage.value)
        failure = str(exc) or type(exc).__name__
        run.errors.append(failure)

    failed_stage = run.stage
    run.stage = RunStage.FINALIZING
    status = EtlRunStatus.FAILED if run.errors else EtlRunStatus.SUCCESS
    if loader is not None and run_id:
        await loader.update_run(run_id, status, run.records_processed, summarize_errors(run.errors))
    run.stage = RunStage.SUCCESS if status is EtlRunStatus.SUCCESS else RunStage.FAILED

    duration_ms = int((time.monotonic() - started) * 1000)
    if status is EtlRunStatus.SUCCESS:
        if run.dry_run:
            message = "Dry run complete; nothing written"
        else:
            message = f"Loaded {run.records_processed} records"
        logger.info("Completed in %dms. Total records: %d", duration_ms, run.records_processed)
    else:
        message = failure or f"Run finished with {len(run.errors)} errors"
        if failure:
            message = f"{message} (stage {failed_stage.value})"
        logger.error("Failed after %dms: %s", duration_ms, message)

    return EtlRunResult(
        success=status is EtlRunStatus.SUCCESS,
        run_id=run_id,
        adapter_name=adapter.name,
        sport_id=adapter.sport_id,
        season=season,
        week=options.week,
        dry_run=run.dry_run,
        stage=run.stage,
        records_processed=run.records_processed,
        duration_ms=duration_ms,
        errors=list(run.errors),
        skipped=dict(run.skipped),
        message=message,
    )


async def run_weekly_update(
    adapter_name: str,
    season: int,
    week: int,
    **kwargs: Any,
) -> EtlRunResult:
    """Refresh one week of stats without re-loading players or seasons."""
    options = EtlRunOptions(
        adapter_name=adapter_name,
        season=season,
        week=week,
        fetch_players=False,
        fetch_weekly_stats=True,
    )
    return await run_etl(options, **kwargs)


async def run_dry_run(adapter_name: str, season: Optional[int] = None, **kwargs: Any) -> EtlRunResult:
    """Transform and validate everything for ``adapter_name`` without writing."""
    options = EtlRunOptions(adapter_name=adapter_name, season=season, dry_run=True)
    return await run_etl(options, **kwargs)
