import asyncio
import json
import logging

import pytest

from src.functions.stats_etl.core.contracts.run import EtlRunResult, RunStage
from src.functions.stats_etl.core.pipelines import backfill
from src.functions.stats_etl.core.pipelines.backfill import (
    BackfillState,
    SeasonRunRecord,
    load_state,
    run_backfill,
    run_season_with_retries,
    save_state,
)
from src.functions.stats_etl.scripts import historical_etl_cli


class FakeRunner:
    """Stands in for ``run_etl``; ``outcomes`` maps a season to the results of successive attempts."""

    def __init__(self, outcomes=None):
        self.outcomes = {season: list(results) for season, results in (outcomes or {}).items()}
        self.calls = []

    async def __call__(self, options, *, loader=None, adapter=None, settings=None):
        self.calls.append(options)
        queue = self.outcomes.get(options.season, [])
        outcome = queue.pop(0) if queue else True
        if isinstance(outcome, Exception):
            raise outcome
        return EtlRunResult(
            success=outcome,
            run_id=f"run-{len(self.calls)}",
            adapter_name=options.adapter_name,
            sport_id="nfl",
            season=options.season,
            dry_run=options.dry_run,
            stage=RunStage.SUCCESS if outcome else RunStage.FAILED,
            records_processed=100 if outcome else 0,
            errors=[] if outcome else ["Player batch 1: timeout"],
            message=None if outcome else "Player batch 1: timeout",
        )

    @property
    def seasons(self):
        return [options.season for options in self.calls]


class Sleeps:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def runner(monkeypatch):
    fake = FakeRunner()
    monkeypatch.setattr(backfill, "run_etl", fake)
    return fake


@pytest.fixture
def sleeps():
    return Sleeps()


def _state(**overrides):
    values = dict(adapter_name="nfl-mock", start_season=2024, end_season=2020)
    values.update(overrides)
    return BackfillState(**values)


def test_next_season_walks_backwards_to_end():
    state = _state()
    assert state.next_season() == 2024
    assert state.remaining_seasons() == [2024, 2023, 2022, 2021, 2020]

    state.last_completed_season = 2021
    assert state.remaining_seasons() == [2020]

    state.last_completed_season = 2020
    assert state.next_season() is None
    assert state.remaining_seasons() == []


def test_add_record_replaces_earlier_attempt_and_sorts_newest_first():
    state = _state()
    state.add_record(SeasonRunRecord(season=2022, status="failed", error_message="timeout"))
    state.add_record(SeasonRunRecord(season=2024, status="success"))
    state.add_record(SeasonRunRecord(season=2022, status="success"))

    assert [(record.season, record.status) for record in state.history] == [(2024, "success"), (2022, "success")]
    assert state.failed_seasons() == []
    assert state.last_updated is not None


def test_backfill_loads_every_season_and_saves_progress(runner, sleeps, tmp_path):
    state_path = tmp_path / "state.json"
    state = _state(start_season=2022)

    completed = asyncio.run(run_backfill(state, state_path=state_path, delay_seconds=5, sleep=sleeps))

    assert completed
    assert runner.seasons == [2022, 2021, 2020]
    assert sleeps.calls == [5, 5]
    saved = json.loads(state_path.read_text())
    assert saved["last_completed_season"] == 2020
    assert [item["season"] for item in saved["history"]] == [2022, 2021, 2020]
    assert saved["history"][0]["records_processed"] == 100


def test_backfill_resumes_after_last_completed_season(runner, sleeps, tmp_path):
    state_path = tmp_path / "state.json"
    save_state(state_path, _state(last_completed_season=2022))

    state = load_state(state_path, _state())
    asyncio.run(run_backfill(state, state_path=state_path, delay_seconds=0, sleep=sleeps))

    assert runner.seasons == [2021, 2020]
    assert load_state(state_path, _state()).last_completed_season == 2020


def test_failed_season_is_retried(runner, sleeps):
    runner.outcomes = {2024: [False, RuntimeError("connection reset")]}

    record = asyncio.run(run_season_with_retries(2024, "nfl-mock", retry_delay_seconds=10, sleep=sleeps))

    assert record.succeeded
    assert record.records_processed == 100
    assert runner.seasons == [2024, 2024, 2024]
    assert sleeps.calls == [10, 10]


def test_season_failing_every_attempt_keeps_last_error(runner, sleeps):
    runner.outcomes = {2024: [False, RuntimeError("connection reset")]}

    record = asyncio.run(run_season_with_retries(2024, "nfl-mock", max_retries=2, sleep=sleeps))

    assert not record.succeeded
    assert record.error_message == "connection reset"
    assert sleeps.calls == [backfill.RETRY_DELAY_SECONDS]


def test_failed_season_is_skipped_and_recorded(runner, sleeps, tmp_path):
    runner.outcomes = {2024: [False]}
    state = _state(start_season=2024, end_season=2023)

    completed = asyncio.run(
        run_backfill(state, state_path=tmp_path / "state.json", max_retries=1, delay_seconds=0, sleep=sleeps)
    )

    assert completed
    assert state.last_completed_season == 2023
    assert state.failed_seasons() == [2024]
    assert state.history[0].error_message == "Player batch 1: timeout"


def test_backfill_stops_after_consecutive_failures(runner, sleeps, tmp_path):
    state_path = tmp_path / "state.json"
    runner.outcomes = {season: [False] for season in range(2020, 2025)}
    state = _state()

    completed = asyncio.run(
        run_backfill(
            state,
            state_path=state_path,
            max_retries=1,
            delay_seconds=0,
            max_consecutive_failures=3,
            sleep=sleeps,
        )
    )

    assert not completed
    assert runner.seasons == [2024, 2023, 2022]
    assert state.last_completed_season is None
    assert json.loads(state_path.read_text())["history"][-1]["season"] == 2022


def test_success_resets_consecutive_failures(runner, sleeps):
    runner.outcomes = {2024: [False], 2023: [False], 2021: [False], 2020: [False]}

    completed = asyncio.run(
        run_backfill(_state(), max_retries=1, delay_seconds=0, max_consecutive_failures=3, sleep=sleeps)
    )

    assert completed
    assert runner.seasons == [2024, 2023, 2022, 2021, 2020]


def test_dry_run_writes_no_state(runner, sleeps, tmp_path):
    state_path = tmp_path / "state.json"

    asyncio.run(run_backfill(_state(start_season=2020), state_path=state_path, dry_run=True, sleep=sleeps))

    assert not state_path.exists()
    assert all(options.dry_run for options in runner.calls)


def test_completed_backfill_runs_nothing(runner, sleeps):
    assert asyncio.run(run_backfill(_state(last_completed_season=2020), sleep=sleeps))
    assert runner.calls == []


def test_missing_state_file_uses_default(tmp_path):
    default = _state()
    assert load_state(tmp_path / "missing.json", default) is default


@pytest.mark.parametrize("content", ["{not json", '{"history": []}', '["a list"]'])
def test_unreadable_state_file_uses_default(tmp_path, caplog, content):
    state_path = tmp_path / "state.json"
    state_path.write_text(content)
    default = _state()

    with caplog.at_level(logging.WARNING):
        assert load_state(state_path, default) is default

    assert "starting fresh" in caplog.text


def test_state_round_trips_through_file(tmp_path):
    state_path = tmp_path / "nested" / "state.json"
    state = _state(last_completed_season=2022)
    state.add_record(SeasonRunRecord(season=2023, status="failed", error_message="timeout"))

    save_state(state_path, state)
    loaded = load_state(state_path, _state())

    assert loaded.to_dict() == state.to_dict()


# ---------------------------------------------------------------------------
# CLI


def test_cli_status_prints_progress(tmp_path, capsys):
    state_path = tmp_path / "state.json"
    save_state(state_path, _state(last_completed_season=2022))

    exit_code = historical_etl_cli.main(["--status", "--state-file", str(state_path)])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "in progress (3/5 seasons, 60%)" in out
    assert "Next: 2021" in out


def test_cli_runs_backfill_and_saves_state(runner, tmp_path, capsys):
    state_path = tmp_path / "state.json"

    exit_code = historical_etl_cli.main(
        [
            "--adapter",
            "nfl-mock",
            "--start-season",
            "2002",
            "--state-file",
            str(state_path),
            "--delay",
            "0",
        ]
    )

    assert exit_code == 0
    assert runner.seasons == [2002, 2001, 2000]
    assert json.loads(state_path.read_text())["last_completed_season"] == 2000
    assert "complete (3/3 seasons)" in capsys.readouterr().out


def test_cli_single_season_records_result(runner, tmp_path):
    state_path = tmp_path / "state.json"

    exit_code = historical_etl_cli.main(
        ["--adapter", "nfl-mock", "--season", "2015", "--state-file", str(state_path)]
    )

    assert exit_code == 0
    assert runner.seasons == [2015]
    saved = json.loads(state_path.read_text())
    assert [item["season"] for item in saved["history"]] == [2015]
    assert saved["last_completed_season"] is None


def test_cli_single_season_out_of_range_exits_one(runner, tmp_path, capsys):
    exit_code = historical_etl_cli.main(
        ["--adapter", "nfl-mock", "--season", "1999", "--state-file", str(tmp_path / "state.json")]
    )

    assert exit_code == 1
    assert runner.calls == []
    assert "out of range" in capsys.readouterr().out


def test_cli_unknown_adapter_exits_one(runner, tmp_path):
    exit_code = historical_etl_cli.main(["--adapter", "espn", "--state-file", str(tmp_path / "state.json")])

    assert exit_code == 1
    assert runner.calls == []
