"""In-memory stand-ins for the async Supabase client used by the stats ETL tests.

``FakeAsyncSupabase`` supports the query-builder calls the loader makes
(``table().select/insert/upsert/update().eq().order().limit().execute()``)
and enforces upsert conflict keys the way Postgres does: a row whose key
already exists is updated in place and keeps its id.
"""

from __future__ import annotations

import copy
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from postgrest.exceptions import APIError

from src.functions.stats_etl.core.adapters.base import (
    AdapterFetchOptions,
    BaseAdapter,
    HealthCheckResult,
    NFLBaseAdapter,
)
from src.functions.stats_etl.core.contracts.records import (
    RawPlayer,
    RawPlayerProfile,
    RawPlayerSeason,
    RawWeeklyStat,
)


@dataclass
class FakeResponse:
    data: List[Dict[str, Any]]


class FakeQuery:
    def __init__(self, client: "FakeAsyncSupabase", table_name: str):
        self.client = client
        self.table_name = table_name
        self.operation = "select"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.ignore_duplicates = False
        self.filters: List[Tuple[str, Any]] = []
        self.order_by: Optional[Tuple[str, bool]] = None
        self.row_limit: Optional[int] = None

    def select(self, columns: str = "*") -> "FakeQuery":
        self.operation = "select"
        return self

    def insert(self, payload: Any) -> "FakeQuery":
        self.operation = "insert"
        self.payload = payload
        return self

    def upsert(self, payload: Any, on_conflict: str = "", ignore_duplicates: bool = False) -> "FakeQuery":
        self.operation = "upsert"
        self.payload = payload
        self.on_conflict = on_conflict
        self.ignore_duplicates = ignore_duplicates
        return self

    def update(self, payload: Dict[str, Any]) -> "FakeQuery":
        self.operation = "update"
        self.payload = payload
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.order_by = (column, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self.row_limit = count
        return self

    async def execute(self) -> FakeResponse:
        return self.client._execute(self)


class FakeAsyncSupabase:
    """Async Supabase client backed by dictionaries."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.calls: List[Tuple[str, str, int]] = []
        self._call_counts: Dict[Tuple[str, str], int] = defaultdict(int)
        self._failures: Dict[Tuple[str, str], Set[Optional[int]]] = defaultdict(set)
        self._errors: Dict[Tuple[str, str], Exception] = {}
        self._insert_returns_nothing: Set[str] = set()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail(
        self,
        table_name: str,
        operation: str,
        call_number: Optional[int] = None,
        error: Optional[Exception] = None,
    ) -> None:
        """Raise ``error`` (an ``APIError`` by default) for ``operation`` on ``table_name``.

        ``call_number`` is 1-based; ``None`` fails every call.
        """
        self._failures[(table_name, operation)].add(call_number)
        if error is not None:
            self._errors[(table_name, operation)] = error

    def return_nothing_on_insert(self, table_name: str) -> None:
        self._insert_returns_nothing.add(table_name)

    def upsert_calls(self, table_name: str) -> List[int]:
        return [size for table, operation, size in self.calls if table == table_name and operation == "upsert"]

    # ------------------------------------------------------------------

    def _execute(self, query: FakeQuery) -> FakeResponse:
        key = (query.table_name, query.operation)
        self._call_counts[key] += 1
        size = len(query.payload) if isinstance(query.payload, list) else 1
        self.calls.append((query.table_name, query.operation, size))

        failures = self._failures.get(key, set())
        if None in failures or self._call_counts[key] in failures:
            if key in self._errors:
                raise self._errors[key]
            raise APIError(
                {
                    "message": f"simulated failure on {query.table_name}",
                    "code": "XX000",
                    "hint": None,
                    "details": None,
                }
            )

        handler = getattr(self, f"_{query.operation}")
        return FakeResponse(data=copy.deepcopy(handler(query)))

    def _select(self, query: FakeQuery) -> List[Dict[str, Any]]:
        rows = [row for row in self.tables[query.table_name] if _matches(row, query.filters)]
        if query.order_by:
            column, desc = query.order_by
            rows.sort(key=lambda row: row.get(column) or "", reverse=desc)
        if query.row_limit is not None:
            rows = rows[: query.row_limit]
        return rows

    def _insert(self, query: FakeQuery) -> List[Dict[str, Any]]:
        payload = query.payload if isinstance(query.payload, list) else [query.payload]
        inserted = []
        for row in payload:
            stored = dict(row)
            stored.setdefault("id", str(uuid.uuid4()))
            stored.setdefault("created_at", _now())
            self.tables[query.table_name].append(stored)
            inserted.append(stored)
        if query.table_name in self._insert_returns_nothing:
            return []
        return inserted

    def _upsert(self, query: FakeQuery) -> List[Dict[str, Any]]:
        conflict_columns = [column.strip() for column in (query.on_conflict or "id").split(",")]
        table = self.tables[query.table_name]
        written = []
        for row in query.payload:
            key = tuple(row.get(column) for column in conflict_columns)
            existing = next(
                (
                    stored
                    for stored in table
                    if tuple(stored.get(column) for column in conflict_columns) == key
                ),
                None,
            )
            if existing is None:
                stored = dict(row)
                stored.setdefault("id", str(uuid.uuid4()))
                table.append(stored)
                written.append(stored)
            elif not query.ignore_duplicates:
                existing.update(row)
                written.append(existing)
        return written

    def _update(self, query: FakeQuery) -> List[Dict[str, Any]]:
        updated = []
        for row in self.tables[query.table_name]:
            if _matches(row, query.filters):
                row.update(query.payload)
                updated.append(row)
        return updated


def _matches(row: Dict[str, Any], filters: List[Tuple[str, Any]]) -> bool:
    return all(row.get(column) == value for column, value in filters)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Adapters


class StaticNFLAdapter(NFLBaseAdapter):
    """NFL adapter returning fixed records, for exercising edge cases."""

    name = "static-nfl"
    version = "1.0.0"
    description = "Fixed records for tests"

    def __init__(
        self,
        players: List[RawPlayer],
        profiles: List[RawPlayerProfile],
        seasons: List[RawPlayerSeason],
        stats: List[RawWeeklyStat],
        healthy: bool = True,
    ):
        self.players = players
        self.profiles = profiles
        self.seasons = seasons
        self.stats = stats
        self.healthy = healthy
        self.fetch_calls: List[str] = []

    async def fetch_players(self, options: AdapterFetchOptions) -> List[RawPlayer]:
        self.fetch_calls.append("players")
        return list(self.players)

    async def fetch_player_profiles(self, options: AdapterFetchOptions) -> List[RawPlayerProfile]:
        self.fetch_calls.append("profiles")
        return list(self.profiles)

    async def fetch_season_summary(self, options: AdapterFetchOptions) -> List[RawPlayerSeason]:
        self.fetch_calls.append("seasons")
        return list(self.seasons)

    async def fetch_weekly_stats(self, options: AdapterFetchOptions) -> List[RawWeeklyStat]:
        self.fetch_calls.append("stats")
        if options.week:
            return [stat for stat in self.stats if stat.week == options.week]
        return list(self.stats)

    async def health_check(self) -> HealthCheckResult:
        if self.healthy:
            return HealthCheckResult(healthy=True, message="ok", latency_ms=0)
        return HealthCheckResult(healthy=False, message="source unreachable")


class StaticF1Adapter(BaseAdapter):
    """Non-NFL adapter: players and profiles only."""

    name = "static-f1"
    version = "1.0.0"
    description = "Fixed F1 drivers for tests"
    sport_id = "f1"

    async def fetch_players(self, options: AdapterFetchOptions) -> List[RawPlayer]:
        return [RawPlayer(external_id="Max Verstappen", name="Max Verstappen")]

    async def fetch_player_profiles(self, options: AdapterFetchOptions) -> List[RawPlayerProfile]:
        return [RawPlayerProfile(player_external_id="Max Verstappen", sport_id="f1", position="Driver")]

    async def health_check(self) -> HealthCheckResult:
        return HealthCheckResult(healthy=True, message="ok", latency_ms=0)
