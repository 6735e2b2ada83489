from __future__ import annotations

from fastapi import APIRouter

from ampera.models.domain import HealthResponse
from ampera.services.timefmt import utc_now_iso

router = APIRouter()

@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", ts=utc_now_iso())
