"""Cloud Function entry point for the stats ETL.

``POST`` triggers a run, ``GET`` returns recent run history.  Parameters are
read from the query string (scheduler-friendly) and, for ``POST``, from an
optional JSON body; body values win.
"""

from __future__ import annotations

import asyncio
import hmac
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import flask
import functions_framework
from pydantic import ValidationError

# Ensure project root is on sys.path before importing project modules
project_root = Path(__file__).parent.parent.parent.parent.parent.absolute()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.shared.db.connection import get_async_supabase_client
from src.shared.utils.env import load_env
from src.shared.utils.logging import setup_logging

from src.functions.stats_etl.core.adapters.registry import (
    get_adapter_names,
    get_adapter_names_by_sport,
    has_adapter,
)
from src.functions.stats_etl.core.contracts.config import (
    EtlRunOptions,
    EtlSettings,
    RecentRunsQuery,
)
from src.functions.stats_etl.core.contracts.records import SPORT_IDS
from src.functions.stats_etl.core.loaders.supabase_loader import SupabaseLoader
from src.functions.stats_etl.core.pipelines.runner import run_etl

load_env()
setup_logging()
logger = logging.getLogger(__name__)

TRUTHY_VALUES = ("true", "1", "yes")


def stats_etl_handler(request: flask.Request) -> flask.Response:
    """Route a request to the run trigger or the run history."""

    if request.method == "OPTIONS":
        return _cors_response({}, status=204)

    if request.method not in ("POST", "GET"):
        logger.warning("Unsupported HTTP method: %s", request.method)
        return _error_response("Method not allowed. Use POST or GET.", status=405)

    settings = EtlSettings.from_env()
    if not _is_authorized(request, settings):
        logger.warning("Rejected unauthorized %s request", request.method)
        return _error_response("Unauthorized", status=401)

    if request.method == "POST":
        return _handle_trigger(request, settings)
    return _handle_history(request, settings)


def _handle_trigger(request: flask.Request, settings: EtlSettings) -> flask.Response:
    params = _collect_params(request)

    adapter_name = str(params.get("adapter") or "").strip()
    if not adapter_name:
        return _cors_response(
            {
                "error": "Missing adapter parameter",
                "available_adapters": get_adapter_names(),
                "adapters_by_sport": _adapters_by_sport(),
            },
            status=400,
        )
    if not has_adapter(adapter_name):
        return _cors_response(
            {
                "error": f"Unknown adapter: {adapter_name}",
                "available_adapters": get_adapter_names(),
            },
            status=400,
        )

    try:
        options = EtlRunOptions(
            adapter_name=adapter_name,
            season=_optional_int(params.get("season"), "season"),
            week=_optional_int(params.get("week"), "week"),
            dry_run=_is_truthy(params.get("dryRun", params.get("dry_run"))),
        )
    except (ValueError, ValidationError) as exc:
        logger.warning("Invalid run parameters: %s", exc)
        return _error_response(_describe_invalid(exc), status=400)

    logger.info(
        "Triggering run: adapter=%s season=%s week=%s dry_run=%s",
        options.adapter_name,
        options.season,
        options.week,
        options.dry_run,
    )

    try:
        result = _run_async(_trigger_run(options, settings))
    except Exception as exc:
        logger.exception("Stats ETL run failed")
        return _cors_response({"error": "ETL run failed", "message": str(exc)}, status=500)

    return _cors_response(result.to_dict(), status=200 if result.success else 500)


def _handle_history(request: flask.Request, settings: EtlSettings) -> flask.Response:
    try:
        limit = _optional_int(request.args.get("limit"), "limit")
        query = RecentRunsQuery(
            limit=10 if limit is None else limit,
            sport=request.args.get("sport") or None,
        )
    except (ValueError, ValidationError) as exc:
        logger.warning("Invalid history parameters: %s", exc)
        if request.args.get("sport") and request.args.get("sport") not in SPORT_IDS:
            message = f"Invalid sport parameter. Valid options: {', '.join(SPORT_IDS)}"
        else:
            message = "Invalid limit parameter (must be 1-100)"
        return _error_response(message, status=400)

    try:
        runs = _run_async(_fetch_recent_runs(query, settings))
    except Exception as exc:
        logger.exception("Failed to fetch ETL runs")
        return _cors_response({"error": "Failed to fetch ETL runs", "message": str(exc)}, status=500)

    return _cors_response(
        {
            "runs": [run.to_dict() for run in runs],
            "available_adapters": get_adapter_names(),
            "adapters_by_sport": _adapters_by_sport(),
        }
    )


async def _create_loader(settings: EtlSettings) -> SupabaseLoader:
    client = await get_async_supabase_client()
    return SupabaseLoader(client, batch_size=settings.batch_size)


async def _trigger_run(options: EtlRunOptions, settings: EtlSettings):
    loader = None if options.dry_run else await _create_loader(settings)
    return await run_etl(options, loader=loader, settings=settings)


async def _fetch_recent_runs(query: RecentRunsQuery, settings: EtlSettings):
    loader = await _create_loader(settings)
    return await loader.get_recent_runs(query.limit, query.sport)


def _is_authorized(request: flask.Request, settings: EtlSettings) -> bool:
    """Accept the shared secret (header or query) or a scheduler trigger."""
    if not settings.etl_secret:
        logger.warning("No ETL_SECRET configured - allowing all requests")
        return True

    if request.headers.get(settings.cron_header, "").lower() == "true":
        return True

    for candidate in (request.headers.get("x-etl-secret"), request.args.get("secret")):
        if candidate and hmac.compare_digest(candidate, settings.etl_secret):
            return True
    return False


def _collect_params(request: flask.Request) -> Dict[str, Any]:
    params: Dict[str, Any] = dict(request.args.items())
    params.pop("secret", None)
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        params.update(body)
    return params


def _optional_int(value: Any, name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid {name} parameter")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid {name} parameter") from exc


def _is_truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY_VALUES


def _describe_invalid(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        fields = sorted({str(error["loc"][0]) for error in exc.errors() if error.get("loc")})
        if "week" in fields:
            return "Invalid week parameter (must be 1-18)"
        if "season" in fields:
            return "Invalid season parameter (must be 2000-2100)"
        return f"Invalid parameters: {', '.join(fields)}"
    return str(exc)


def _adapters_by_sport() -> Dict[str, Any]:
    return {sport_id: get_adapter_names_by_sport(sport_id) for sport_id in SPORT_IDS}


def _cors_response(body: Dict[str, Any], status: int = 200) -> flask.Response:
    response = flask.make_response(json.dumps(body, ensure_ascii=False, default=str), status)
    headers = response.headers
    headers["Content-Type"] = "application/json"
    headers["Access-Control-Allow-Origin"] = "*"
    headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
    headers["Access-Control-Allow-Headers"] = "Content-Type,x-etl-secret"
    return response


def _error_response(message: str, status: int) -> flask.Response:
    return _cors_response({"error": message, "status": status}, status=status)


def _run_async(coro):
    """Run ``coro`` to completion on a fresh event loop.

    Called from inside a running loop, ``asyncio.run`` refuses before the
    coroutine starts; it is closed so it is not reported as never awaited.
    """
    try:
        return asyncio.run(coro)
    except RuntimeError:
        coro.close()
        raise


@functions_framework.http
def stats_etl(request: flask.Request):
    return stats_etl_handler(request)
