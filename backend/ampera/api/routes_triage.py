"""
routes_triage.py

Purpose:
  Conversational triage over a dashboard snapshot supplied by the client.

Endpoints:
  - POST /api/ai-triage: chat turns + chargers/incidents/fleet stats in,
    answer text + recognised charger ids out.

Behaviour:
  - No model configured: deterministic local summary (``fromModel=false``).
  - Model timeout / empty answer: one retry with a compact context, then
    HTTP 502 carrying the local summary as ``fallbackSummary``.
  - Body that fails validation: 422; no user message: 400.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ampera.deps import get_triage_client
from ampera.models.domain import TriageRequest, TriageResponse
from ampera.services.llm_client import CompletionClient, CompletionError
from ampera.services.triage import (
    TriageUpstreamError,
    latest_user_message,
    local_status_summary,
    run_triage,
    sanitize_messages,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/ai-triage", response_model=TriageResponse)
async def ai_triage(
    req: TriageRequest,
    client: Optional[CompletionClient] = Depends(get_triage_client),
) -> TriageResponse:
    messages = sanitize_messages(req.messages)
    if latest_user_message(messages) is None:
        raise HTTPException(status_code=400, detail="At least one user message is required")

    if client is None:
        result = local_status_summary(req.chargers, req.incidents, req.fleet_stats, req.preloaded_charger_id)
    else:
        try:
            result = await run_triage(
                client,
                messages,
                req.chargers,
                req.incidents,
                req.fleet_stats,
                preloaded_charger_id=req.preloaded_charger_id,
            )
        except (TriageUpstreamError, CompletionError) as e:
            logger.error("AI triage failed: %s", e)
            fallback = local_status_summary(req.chargers, req.incidents, req.fleet_stats, req.preloaded_charger_id)
            raise HTTPException(
                status_code=502,
                detail={"error": str(e), "fallbackSummary": fallback.content},
            ) from e

    return TriageResponse(
        content=result.content,
        mentioned_charger_ids=result.mentioned_charger_ids,
        from_model=result.from_model,
    )
