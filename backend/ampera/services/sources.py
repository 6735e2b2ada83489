"""
sources.py

Purpose:
  Upstream row providers for the live dashboard, all behind one small async
  interface so the derivation pipeline never cares where rows come from.

Sources:
  - ``SupabaseRowSource``: PostgREST tables over HTTP (the production store).
  - ``SqlRowSource``: the same tables in any SQLAlchemy database (SQLModel).
  - ``DemoRowSource``: seeded synthetic fleet; payloads are tagged "fallback".

Contract:
  - Rows come back as plain dicts, newest-first, at most ``limit`` of them.
  - Any failure reaching the store raises ``SourceUnavailableError``; the
    caller aborts the whole refresh, partial payloads are never served.
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ampera.models.db import PredictionRecord, TelemetryRecord, record_to_row
from ampera.models.domain import (
    PREDICTION_COLUMNS,
    TELEMETRY_COLUMNS,
    DashboardResponse,
    DataSource,
    PredictionRow,
    TelemetryRow,
)
from ampera.services.demo_fleet import DemoFleetConfig, generate_demo_rows
from ampera.services.fleet import build_dashboard_data

logger = logging.getLogger(__name__)

TELEMETRY_TABLE = "telemetry_live"
PREDICTION_TABLE = "charger_predictions_live"

DEFAULT_TELEMETRY_LIMIT = 5000
DEFAULT_PREDICTION_LIMIT = 3000


class SourceUnavailableError(RuntimeError):
    """The telemetry or prediction store could not be read."""


class RowSource:
    name: str = "base"
    data_source: DataSource = DataSource.LIVE

    async def fetch_telemetry(self, limit: int) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def fetch_predictions(self, limit: int) -> List[Dict[str, Any]]:
        raise NotImplementedError


# ============================================================
# 1) SUPABASE (PostgREST over HTTP)
# ============================================================

class SupabaseRowSource(RowSource):
    name = "supabase"

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout_s: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout_s = timeout_s
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Accept": "application/json",
        }

    async def _fetch(self, table: str, columns: List[str], order_column: str, limit: int) -> List[Dict[str, Any]]:
        params = {
            "select": ",".join(columns),
            "order": f"{order_column}.desc",
            "limit": str(limit),
        }
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                resp = await client.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as e:
            raise SourceUnavailableError(f"Supabase {table} request failed: {e}") from e

        if resp.status_code >= 400:
            raise SourceUnavailableError(
                f"Supabase {table} request failed ({resp.status_code}): {resp.text}"
            )
        try:
            body = resp.json()
        except ValueError as e:
            raise SourceUnavailableError(f"Supabase {table} returned invalid JSON") from e
        if not isinstance(body, list):
            raise SourceUnavailableError(f"Supabase {table} returned {type(body).__name__}, expected a list")
        return [r for r in body if isinstance(r, dict)]

    async def fetch_telemetry(self, limit: int) -> List[Dict[str, Any]]:
        return await self._fetch(TELEMETRY_TABLE, TELEMETRY_COLUMNS, "timestamp", limit)

    async def fetch_predictions(self, limit: int) -> List[Dict[str, Any]]:
        return await self._fetch(PREDICTION_TABLE, PREDICTION_COLUMNS, "as_of_timestamp", limit)


# ============================================================
# 2) SQL STORE (SQLModel)
# ============================================================

class SqlRowSource(RowSource):
    name = "sql"

    def __init__(self, engine: Engine):
        self.engine = engine

    def _query(self, model, order_column, limit: int) -> List[Dict[str, Any]]:
        try:
            with Session(self.engine) as session:
                stmt = select(model).order_by(order_column.desc()).limit(limit)
                return [record_to_row(r) for r in session.exec(stmt).all()]
        except SQLAlchemyError as e:
            raise SourceUnavailableError(f"SQL {model.__tablename__} query failed: {e}") from e

    async def fetch_telemetry(self, limit: int) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._query, TelemetryRecord, TelemetryRecord.timestamp, limit)

    async def fetch_predictions(self, limit: int) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._query, PredictionRecord, PredictionRecord.as_of_timestamp, limit)


# ============================================================
# 3) DEMO
# ============================================================

class DemoRowSource(RowSource):
    name = "demo"
    data_source = DataSource.FALLBACK

    def __init__(self, seed: int = 7, cfg: Optional[DemoFleetConfig] = None):
        self.seed = seed
        self.cfg = cfg or DemoFleetConfig()

    def _rows(self):
        # fresh generator per call, so every refresh sees the same fleet
        return generate_demo_rows(random.Random(self.seed), self.cfg)

    async def fetch_telemetry(self, limit: int) -> List[Dict[str, Any]]:
        return self._rows()[0][:limit]

    async def fetch_predictions(self, limit: int) -> List[Dict[str, Any]]:
        return self._rows()[1][:limit]


# ============================================================
# 4) LOADER
# ============================================================

def _coerce_rows(raw: List[Dict[str, Any]], model):
    # unreadable cells become None inside the row model; rows are never dropped here
    return [model.model_validate(item) for item in raw]


async def load_dashboard(
    source: RowSource,
    telemetry_limit: int = DEFAULT_TELEMETRY_LIMIT,
    prediction_limit: int = DEFAULT_PREDICTION_LIMIT,
) -> DashboardResponse:
    """Fetch both row sets concurrently, then derive the dashboard payload."""
    try:
        telemetry_raw, prediction_raw = await asyncio.gather(
            source.fetch_telemetry(telemetry_limit),
            source.fetch_predictions(prediction_limit),
        )
    except SourceUnavailableError:
        raise
    except Exception as e:
        raise SourceUnavailableError(f"{source.name} fetch failed: {e}") from e

    logger.debug(
        "Fetched %d telemetry / %d prediction rows from %s",
        len(telemetry_raw), len(prediction_raw), source.name,
    )
    return build_dashboard_data(
        _coerce_rows(telemetry_raw, TelemetryRow),
        _coerce_rows(prediction_raw, PredictionRow),
        source=source.data_source,
    )
