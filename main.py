"""Deployment wrapper for the stats ETL Cloud Function."""

from __future__ import annotations

import sys
from pathlib import Path

import flask
import functions_framework

project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.functions.stats_etl.functions.main import stats_etl_handler


@functions_framework.http
def stats_etl(request: flask.Request) -> flask.Response:
    return stats_etl_handler(request)
