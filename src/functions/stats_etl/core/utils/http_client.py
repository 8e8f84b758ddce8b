"""
Rate-limited async HTTP client for external stats sources.

Wraps ``httpx.AsyncClient`` with per-source request pacing, retries with
exponential backoff for transient failures and an in-memory TTL cache of
decoded JSON responses, so one run downloads each resource once.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from ..exceptions import DataSourceError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "StatsETL/1.0 (NFL Stats Aggregator)"
DEFAULT_TIMEOUT_SECONDS = 30.0

# Caching constants
DEFAULT_CACHE_TTL_SECONDS = 300
MAX_CACHE_SIZE = 500

# Status codes worth another attempt
RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RateLimitConfig:
    """Request pacing for one data source."""

    requests_per_second: float
    base_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    max_retries: int = 3


RATE_LIMITS: Dict[str, RateLimitConfig] = {
    "espn": RateLimitConfig(requests_per_second=5.0, base_backoff_seconds=1.0, max_backoff_seconds=30.0),
}


@dataclass
class RequestStats:
    """Counters for one client, exposed for logging at the end of a run."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_retries: int = 0
    cache_hits: int = 0
    total_response_ms: int = 0

    @property
    def avg_response_ms(self) -> float:
        if not self.successful_requests:
            return 0.0
        return self.total_response_ms / self.successful_requests

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["avg_response_ms"] = round(self.avg_response_ms, 1)
        return data


class AsyncRateLimiter:
    """
    Minimum-interval rate limiter with failure backoff.

    Requests are spaced at least ``1 / requests_per_second`` apart.  After
    consecutive failures an extra delay of ``base * 2 ** (failures - 1)``
    seconds (capped at ``max_backoff_seconds``) is added before the next
    request.  Callers issue requests one at a time.
    """

    def __init__(self, config: RateLimitConfig, clock: Clock = time.monotonic, sleep: Sleep = asyncio.sleep):
        if config.requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.config = config
        self._clock = clock
        self._sleep = sleep
        self._last_request: Optional[float] = None
        self.consecutive_failures = 0

    @property
    def min_interval(self) -> float:
        return 1.0 / self.config.requests_per_second

    def backoff_delay(self) -> float:
        if self.consecutive_failures == 0:
            return 0.0
        delay = self.config.base_backoff_seconds * 2 ** (self.consecutive_failures - 1)
        return min(delay, self.config.max_backoff_seconds)

    async def acquire(self) -> None:
        """Wait until the next request may be sent."""
        wait = 0.0
        if self._last_request is not None:
            wait = max(self.min_interval - (self._clock() - self._last_request), 0.0)
        wait += self.backoff_delay()

        if wait > 0:
            logger.debug("Rate limit reached, sleeping %.2fs", wait)
            await self._sleep(wait)

        self._last_request = self._clock()

    def record_success(self) -> None:
        self.consecutive_failures = 0

    def record_failure(self) -> None:
        self.consecutive_failures += 1


class ResponseCache:
    """In-memory cache of decoded responses with TTL and LRU eviction."""

    def __init__(
        self,
        max_size: int = MAX_CACHE_SIZE,
        default_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Clock = time.monotonic,
    ):
        self.max_size = max_size
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()

    @staticmethod
    def make_key(url: str, params: Optional[Dict[str, Any]] = None) -> str:
        key_data = f"{url}:{json.dumps(params or {}, sort_keys=True, default=str)}"
        return hashlib.md5(key_data.encode("utf-8")).hexdigest()

    def get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        key = self.make_key(url, params)
        entry = self._entries.get(key)
        if entry is None:
            return None

        expires_at, data = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return data

    def put(
        self,
        url: str,
        params: Optional[Dict[str, Any]],
        data: Any,
        ttl_seconds: Optional[float] = None,
    ) -> None:
        key = self.make_key(url, params)
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds

        if key not in self._entries and len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted LRU cache entry: %s", evicted)

        self._entries[key] = (self._clock() + ttl, data)
        self._entries.move_to_end(key)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RateLimitedHttpClient:
    """
    JSON-over-HTTP client for one external data source.

    A fresh ``httpx.AsyncClient`` is opened per request so one instance can
    serve several ``asyncio.run`` invocations (every CLI call and HTTP
    trigger runs on its own event loop).

    Args:
        source: Key into :data:`RATE_LIMITS` (e.g. ``"espn"``).
        rate_limit: Overrides the configured limits for ``source``.
        cache: Response cache; ``None`` with ``enable_cache=True`` creates one.
        enable_cache: Set ``False`` to always hit the network.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        source: str,
        *,
        rate_limit: Optional[RateLimitConfig] = None,
        cache: Optional[ResponseCache] = None,
        enable_cache: bool = True,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        config = rate_limit or RATE_LIMITS.get(source)
        if config is None:
            raise ValueError(f"No rate limit configured for source: {source}")

        self.source = source
        self.limiter = AsyncRateLimiter(config, clock=clock, sleep=sleep)
        self.cache = cache if cache is not None else (ResponseCache(clock=clock) if enable_cache else None)
        self.timeout = timeout
        self.user_agent = user_agent
        self.transport = transport
        self.stats = RequestStats()

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        cache_ttl_seconds: Optional[float] = None,
        use_cache: bool = True,
    ) -> Any:
        """GET ``url`` and return the decoded JSON body.

        Raises:
            DataSourceError: On a non-retryable HTTP error, an undecodable
                body, or once retries for a transient failure are exhausted.
        """
        if use_cache and self.cache is not None:
            cached = self.cache.get(url, params)
            if cached is not None:
                self.stats.cache_hits += 1
                logger.debug("Cache hit for %s", url)
                return cached

        data = await self._get_with_retries(url, params)

        if use_cache and self.cache is not None:
            self.cache.put(url, params, data, ttl_seconds=cache_ttl_seconds)
        return data

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    # ------------------------------------------------------------------

    async def _get_with_retries(self, url: str, params: Optional[Dict[str, Any]]) -> Any:
        attempts = self.limiter.config.max_retries + 1
        last_error: Optional[DataSourceError] = None

        for attempt in range(1, attempts + 1):
            await self.limiter.acquire()
            self.stats.total_requests += 1
            started = time.monotonic()

            try:
                response = await self._send(url, params)
            except httpx.HTTPError as exc:
                last_error = DataSourceError(f"{self.source} request to {url} failed: {exc}")
            else:
                if response.status_code < 400:
                    self.limiter.record_success()
                    self.stats.successful_requests += 1
                    self.stats.total_response_ms += int((time.monotonic() - started) * 1000)
                    return self._decode(response, url)

                last_error = DataSourceError(
                    f"{self.source} returned HTTP {response.status_code} for {url}",
                    status_code=response.status_code,
                )
                if response.status_code not in RETRY_STATUS_CODES:
                    self.stats.failed_requests += 1
                    raise last_error

            self.limiter.record_failure()
            if attempt < attempts:
                self.stats.total_retries += 1
                logger.warning(
                    "%s request failed (attempt %d/%d), retrying: %s",
                    self.source,
                    attempt,
                    attempts,
                    last_error,
                )

        self.stats.failed_requests += 1
        raise last_error

    async def _send(self, url: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        logger.debug("Fetching %s %s", url, params or "")
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            transport=self.transport,
        ) as client:
            return await client.get(url, params=params)

    def _decode(self, response: httpx.Response, url: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise DataSourceError(f"{self.source} returned invalid JSON for {url}") from exc
