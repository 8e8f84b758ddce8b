import asyncio

import httpx
import pytest

from src.functions.stats_etl.core.contracts.records import make_player_season_key
from src.functions.stats_etl.core.contracts.run import EtlRunStatus
from src.functions.stats_etl.core.exceptions import EtlLoaderError, EtlRunError
from src.functions.stats_etl.core.loaders.supabase_loader import SupabaseLoader
from tests.stats_etl.fakes import FakeAsyncSupabase


def _players(count):
    return [{"id": f"player-{i}", "name": f"Player {i}", "image_url": None} for i in range(count)]


def _profile(player_id, sport_id="nfl"):
    return {"player_id": player_id, "sport_id": sport_id, "position": "QB", "metadata": {}}


def _stat(profile_id, season=2024, week=1, **stats):
    row = {
        "player_profile_id": profile_id,
        "season": season,
        "week": week,
        "opponent": "KC",
        "location": "H",
        "result": None,
    }
    row.update(stats)
    return row


def test_loader_requires_client():
    with pytest.raises(ValueError):
        SupabaseLoader(None)


def test_load_players_writes_in_batches():
    client = FakeAsyncSupabase()
    loader = SupabaseLoader(client, batch_size=100)

    result = asyncio.run(loader.load_players(_players(250)))

    assert result.success
    assert result.records_upserted == 250
    assert client.upsert_calls("players") == [100, 100, 50]
    assert len(client.tables["players"]) == 250


def test_failed_batch_does_not_stop_remaining_batches():
    client = FakeAsyncSupabase()
    client.fail("players", "upsert", call_number=2)
    loader = SupabaseLoader(client, batch_size=100)

    result = asyncio.run(loader.load_players(_players(250)))

    assert not result.success
    assert result.records_upserted == 150
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Player batch 2:")
    assert len(client.upsert_calls("players")) == 3


def test_network_error_on_one_batch_does_not_stop_remaining_batches():
    client = FakeAsyncSupabase()
    client.fail("players", "upsert", call_number=1, error=httpx.ConnectError("connection reset"))
    loader = SupabaseLoader(client, batch_size=5)

    result = asyncio.run(loader.load_players(_players(12)))

    assert not result.success
    assert result.records_upserted == 7
    assert result.errors == ["Player batch 1: connection reset"]
    assert len(client.upsert_calls("players")) == 3


def test_upsert_is_idempotent():
    client = FakeAsyncSupabase()
    loader = SupabaseLoader(client)

    asyncio.run(loader.load_players(_players(3)))
    renamed = [dict(row, name=row["name"].upper()) for row in _players(3)]
    asyncio.run(loader.load_players(renamed))

    assert len(client.tables["players"]) == 3
    assert client.tables["players"][0]["name"] == "PLAYER 0"


def test_load_player_profiles_returns_id_map_and_keeps_ids_on_rerun():
    client = FakeAsyncSupabase()
    loader = SupabaseLoader(client)
    profiles = [_profile("patrick-mahomes"), _profile("josh-allen")]

    first = asyncio.run(loader.load_player_profiles(profiles))
    second = asyncio.run(loader.load_player_profiles(profiles))

    assert set(first.player_profile_id_map) == {"patrick-mahomes", "josh-allen"}
    assert first.player_profile_id_map == second.player_profile_id_map
    assert len(client.tables["player_profiles"]) == 2


def test_load_player_profiles_rejects_invalid_sport_before_writing():
    client = FakeAsyncSupabase()
    loader = SupabaseLoader(client)

    result = asyncio.run(loader.load_player_profiles([_profile("wayne-gretzky", sport_id="nhl")]))

    assert not result.success
    assert result.player_profile_id_map == {}
    assert client.upsert_calls("player_profiles") == []
    assert "wayne-gretzky" in result.errors[0]


def test_make_player_season_key_normalises_season_type():
    assert make_player_season_key("p1", "2024") == ("p1", 2024)
    assert make_player_season_key("p1", 2024) != make_player_season_key("p1", 2023)


def test_load_player_seasons_map_is_keyed_by_profile_and_season():
    client = FakeAsyncSupabase()
    loader = SupabaseLoader(client)
    seasons = [
        {"player_profile_id": "p1", "season": 2023, "team": "KC", "jersey_number": 15, "is_active": True},
        {"player_profile_id": "p1", "season": 2024, "team": "KC", "jersey_number": 15, "is_active": True},
    ]

    result = asyncio.run(loader.load_player_seasons(seasons))

    assert result.records_upserted == 2
    assert set(result.player_season_id_map) == {("p1", 2023), ("p1", 2024)}
    assert result.player_season_id_map[("p1", 2023)] != result.player_season_id_map[("p1", 2024)]


def test_load_weekly_stats_resolves_player_season_id():
    client = FakeAsyncSupabase()
    loader = SupabaseLoader(client)

    result = asyncio.run(
        loader.load_weekly_stats([_stat("p1", week=4, passing_yards=280)], {("p1", 2024): "season-1"})
    )

    assert result.success
    [stored] = client.tables["nfl_weekly_stats"]
    assert stored["player_season_id"] == "season-1"
    assert stored["week"] == 4
    assert "player_profile_id" not in stored
    assert "season" not in stored


def test_load_weekly_stats_reports_unresolved_rows_and_loads_the_rest():
    client = FakeAsyncSupabase()
    loader = SupabaseLoader(client)
    stats = [_stat("p1", week=1), _stat("p2", week=1), _stat("p1", week=2)]

    result = asyncio.run(loader.load_weekly_stats(stats, {("p1", 2024): "season-1"}))

    assert result.records_upserted == 2
    assert result.errors == ["Could not resolve player_season_id for profile p2, season 2024"]
    assert len(client.tables["nfl_weekly_stats"]) == 2


def test_weekly_stats_rerun_updates_in_place():
    client = FakeAsyncSupabase()
    loader = SupabaseLoader(client)
    season_map = {("p1", 2024): "season-1"}

    asyncio.run(loader.load_weekly_stats([_stat("p1", week=1, passing_yards=100)], season_map))
    asyncio.run(loader.load_weekly_stats([_stat("p1", week=1, passing_yards=250)], season_map))

    [stored] = client.tables["nfl_weekly_stats"]
    assert stored["passing_yards"] == 250


def test_get_player_season_id_map_reads_one_season():
    client = FakeAsyncSupabase()
    client.tables["nfl_player_seasons"].extend(
        [
            {"id": "s1", "player_profile_id": "p1", "season": 2024},
            {"id": "s2", "player_profile_id": "p1", "season": 2023},
        ]
    )
    loader = SupabaseLoader(client)

    assert asyncio.run(loader.get_player_season_id_map(2024)) == {("p1", 2024): "s1"}


def test_get_player_profile_id_map_raises_loader_error():
    client = FakeAsyncSupabase()
    client.fail("player_profiles", "select")
    loader = SupabaseLoader(client)

    with pytest.raises(EtlLoaderError):
        asyncio.run(loader.get_player_profile_id_map("nfl"))


def test_create_run_inserts_running_row():
    client = FakeAsyncSupabase()
    loader = SupabaseLoader(client)

    run_id = asyncio.run(loader.create_run("nfl-mock", "nfl"))

    [row] = client.tables["etl_runs"]
    assert row["id"] == run_id
    assert row["status"] == "running"
    assert row["records_processed"] == 0
    assert row["adapter_name"] == "nfl-mock"


def test_create_run_failure_raises():
    client = FakeAsyncSupabase()
    client.fail("etl_runs", "insert")
    loader = SupabaseLoader(client)

    with pytest.raises(EtlRunError):
        asyncio.run(loader.create_run("nfl-mock", "nfl"))


def test_create_run_without_returned_id_raises():
    client = FakeAsyncSupabase()
    client.return_nothing_on_insert("etl_runs")
    loader = SupabaseLoader(client)

    with pytest.raises(EtlRunError):
        asyncio.run(loader.create_run("nfl-mock", "nfl"))


def test_update_run_records_terminal_state():
    client = FakeAsyncSupabase()
    loader = SupabaseLoader(client)
    run_id = asyncio.run(loader.create_run("nfl-mock", "nfl"))

    asyncio.run(loader.update_run(run_id, EtlRunStatus.FAILED, 42, "Player batch 1: boom"))

    [row] = client.tables["etl_runs"]
    assert row["status"] == "failed"
    assert row["records_processed"] == 42
    assert row["error_message"] == "Player batch 1: boom"
    assert row["completed_at"]


def test_update_run_failure_is_swallowed(caplog):
    client = FakeAsyncSupabase()
    client.fail("etl_runs", "update")
    loader = SupabaseLoader(client)

    asyncio.run(loader.update_run("run-1", EtlRunStatus.SUCCESS, 10))

    assert "Failed to update ETL run run-1" in caplog.text


def test_update_run_network_error_is_swallowed(caplog):
    client = FakeAsyncSupabase()
    client.fail("etl_runs", "update", error=httpx.ReadTimeout("read timed out"))
    loader = SupabaseLoader(client)

    asyncio.run(loader.update_run("run-1", EtlRunStatus.SUCCESS, 10))

    assert "Failed to update ETL run run-1: read timed out" in caplog.text


def test_create_run_network_error_raises_run_error():
    client = FakeAsyncSupabase()
    client.fail("etl_runs", "insert", error=httpx.ConnectError("connection refused"))
    loader = SupabaseLoader(client)

    with pytest.raises(EtlRunError, match="connection refused"):
        asyncio.run(loader.create_run("nfl-mock", "nfl"))


def test_get_recent_runs_orders_newest_first_and_filters_by_sport():
    client = FakeAsyncSupabase()
    client.tables["etl_runs"].extend(
        [
            {
                "id": f"run-{day}",
                "adapter_name": "nfl-mock" if sport == "nfl" else "f1-mock",
                "sport_id": sport,
                "started_at": f"2024-09-{day:02d}T06:00:00+00:00",
                "completed_at": None,
                "status": "success",
                "records_processed": day,
                "error_message": None,
            }
            for day, sport in [(1, "nfl"), (3, "f1"), (2, "nfl"), (4, "nfl")]
        ]
    )
    loader = SupabaseLoader(client)

    runs = asyncio.run(loader.get_recent_runs(limit=2))
    nfl_runs = asyncio.run(loader.get_recent_runs(limit=10, sport_id="nfl"))

    assert [run.id for run in runs] == ["run-4", "run-3"]
    assert [run.id for run in nfl_runs] == ["run-4", "run-2", "run-1"]
    assert runs[0].status is EtlRunStatus.SUCCESS
    assert runs[0].to_dict()["started_at"] == "2024-09-04T06:00:00+00:00"
