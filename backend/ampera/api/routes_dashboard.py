"""
routes_dashboard.py

Purpose:
  Serves the derived fleet model (chargers, incidents, fleet stats) that every
  dashboard tab renders. Clients re-poll; nothing is pushed.

Endpoints:
  - GET /api/live-dashboard

Contract:
  - Both upstream row sets are fetched concurrently; if either fails the
    request fails with HTTP 500 and the upstream message. No partial payloads.
  - ``source`` is "live" for real stores and "fallback" for the demo fleet.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from ampera.deps import FetchLimits, get_fetch_limits, get_row_source
from ampera.models.domain import DashboardResponse
from ampera.services.sources import RowSource, SourceUnavailableError, load_dashboard

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/live-dashboard", response_model=DashboardResponse)
async def live_dashboard(
    response: Response,
    source: RowSource = Depends(get_row_source),
    limits: FetchLimits = Depends(get_fetch_limits),
) -> DashboardResponse:
    response.headers["Cache-Control"] = "no-store"
    try:
        payload = await load_dashboard(source, limits.telemetry, limits.predictions)
    except SourceUnavailableError as e:
        logger.error("Live dashboard refresh failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e)) from e

    logger.info(
        "Live dashboard: %d chargers, %d incidents (source=%s)",
        len(payload.chargers), len(payload.incidents), payload.source.value,
    )
    return payload
