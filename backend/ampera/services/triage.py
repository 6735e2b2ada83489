"""
AI Triage Service

Purpose:
  Answers operator questions about the fleet using a language model that
  only sees a compact JSON snapshot of the current dashboard state.

Features:
  - Message sanitation (rolling window, per-message cap)
  - Context snapshot: top-risk chargers, fleet summary, mentioned chargers
    with short histories, active incidents
  - One retry with a smaller snapshot on timeout or empty completion
  - Deterministic local summary when no model is configured or the model
    fails
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ampera.models.domain import (
    Charger,
    ChargerStatus,
    FleetStats,
    Incident,
    IncidentSeverity,
    IncidentStatus,
    TriageMessage,
)
from ampera.services.llm_client import CompletionClient, CompletionResult, CompletionTimeoutError
from ampera.services.timefmt import utc_now_iso

logger = logging.getLogger(__name__)

MAX_MESSAGES = 12
MAX_MESSAGE_CHARS = 6000

FULL_MAX_TOKENS = 2400
COMPACT_MAX_TOKENS = 3200

SYSTEM_PROMPT = " ".join([
    "You are Ampera AI Triage, a fleet operations assistant for EV chargers.",
    "Answer ONLY using the provided live context (derived from telemetry and model predictions).",
    "If data is missing, say it is unavailable instead of guessing.",
    "Be concise, operational, and specific.",
    "When discussing chargers, reference charger name/code and risk status when possible.",
    "If the user asks for prioritization, rank chargers by risk and include why.",
    "If the user asks for a summary, include counts and the most actionable items.",
])

_MENTION_RE = re.compile(r"charger\s*(\d{1,4})", re.IGNORECASE)

_SUMMARY_FIELDS = ("id", "name", "code", "location", "status", "risk_score", "temperature", "voltage", "uptime")


class TriageUpstreamError(RuntimeError):
    """The model failed (or stayed silent) even after the compact retry."""


# ============================================================
# 1) INPUT HANDLING
# ============================================================

def sanitize_messages(messages: Optional[Iterable[Any]]) -> List[TriageMessage]:
    if not isinstance(messages, (list, tuple)):
        return []
    kept: List[TriageMessage] = []
    for msg in messages:
        if not isinstance(msg, dict):
            continue
        role, content = msg.get("role"), msg.get("content")
        if role not in ("user", "assistant") or not isinstance(content, str) or not content.strip():
            continue
        kept.append(TriageMessage(role=role, content=content[:MAX_MESSAGE_CHARS]))
    return kept[-MAX_MESSAGES:]


def extract_charger_mentions(text: str) -> List[str]:
    """``"Charger 7"`` / ``"charger07"`` -> ``charger-7``; order kept, no dupes."""
    seen: Dict[str, None] = {}
    for match in _MENTION_RE.finditer(text or ""):
        seen.setdefault(f"charger-{int(match.group(1))}", None)
    return list(seen)


# ============================================================
# 2) CONTEXT SNAPSHOT
# ============================================================

def _summary(charger: Charger, with_updated: bool = True) -> Dict[str, Any]:
    out = charger.model_dump(mode="json", by_alias=True, include=set(_SUMMARY_FIELDS))
    if with_updated:
        out["lastUpdated"] = charger.last_updated
    return out


def _with_history(charger: Charger, risk_n: int, series_n: int, with_updated: bool = False) -> Dict[str, Any]:
    out = _summary(charger, with_updated=with_updated)
    out["riskHistory"] = charger.risk_history[-risk_n:]
    out["voltageHistory"] = charger.voltage_history[-series_n:]
    out["tempHistory"] = charger.temp_history[-series_n:]
    return out


def build_context_snapshot(
    chargers: Sequence[Charger],
    incidents: Sequence[Incident],
    fleet_stats: Optional[FleetStats],
    preloaded_charger_id: Optional[str],
    latest_user_prompt: str,
    compact: bool = False,
) -> Dict[str, Any]:
    mentioned_ids = set(extract_charger_mentions(latest_user_prompt))
    if preloaded_charger_id:
        mentioned_ids.add(preloaded_charger_id)

    selected = next((c for c in chargers if c.id == preloaded_charger_id), None) if preloaded_charger_id else None

    top_risk = sorted(chargers, key=lambda c: c.risk_score, reverse=True)[: 8 if compact else 15]
    everyone = chargers[:60] if compact else chargers
    active = [i for i in incidents if i.status != IncidentStatus.RESOLVED][: 20 if compact else 30]

    return {
        "generatedAt": utc_now_iso(),
        "fleetStats": fleet_stats.model_dump(mode="json", by_alias=True) if fleet_stats else None,
        "selectedCharger": _with_history(selected, 7, 12) if selected else None,
        "mentionedChargers": [_with_history(c, 7, 10) for c in chargers if c.id in mentioned_ids],
        "topRiskChargers": [
            _summary(c) if compact else dict(_with_history(c, 7, 10), lastUpdated=c.last_updated)
            for c in top_risk
        ],
        "activeIncidents": [
            i.model_dump(
                mode="json",
                by_alias=True,
                include={
                    "id", "charger_id", "charger_name", "charger_code", "severity", "status", "title",
                    "description", "metric", "threshold", "current_value", "time_ago", "location",
                },
            )
            for i in active
        ],
        "allChargersSummary": [_summary(c) for c in everyone],
    }


def build_model_messages(context: Dict[str, Any], messages: Sequence[TriageMessage]) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "system", "content": "LIVE_CONTEXT_JSON:\n" + json.dumps(context, separators=(",", ":"))},
        *({"role": m.role, "content": m.content} for m in messages),
    ]


# ============================================================
# 3) MODEL CALL
# ============================================================

@dataclass
class TriageResult:
    content: str
    mentioned_charger_ids: List[str] = field(default_factory=list)
    from_model: bool = True
    attempts: int = 1


def latest_user_message(messages: Sequence[TriageMessage]) -> Optional[TriageMessage]:
    return next((m for m in reversed(messages) if m.role == "user"), None)


def filter_known_mentions(texts: Iterable[str], chargers: Sequence[Charger]) -> List[str]:
    known = {c.id for c in chargers}
    ids: Dict[str, None] = {}
    for text in texts:
        for cid in extract_charger_mentions(text):
            ids.setdefault(cid, None)
    return [cid for cid in ids if cid in known]


async def run_triage(
    client: CompletionClient,
    messages: Sequence[TriageMessage],
    chargers: Sequence[Charger],
    incidents: Sequence[Incident],
    fleet_stats: Optional[FleetStats],
    preloaded_charger_id: Optional[str] = None,
) -> TriageResult:
    prompt_msg = latest_user_message(messages)
    if prompt_msg is None:
        raise ValueError("At least one user message is required")
    prompt = prompt_msg.content

    def snapshot(compact: bool) -> Dict[str, Any]:
        return build_context_snapshot(chargers, incidents, fleet_stats, preloaded_charger_id, prompt, compact=compact)

    attempts = 1
    result: Optional[CompletionResult] = None
    try:
        result = await client.complete(build_model_messages(snapshot(False), messages), FULL_MAX_TOKENS)
    except CompletionTimeoutError as e:
        logger.warning("Triage completion timed out (%s); retrying with compact context", e)

    if result is None or not result.content:
        if result is not None:
            logger.warning(
                "Triage completion was empty (finish_reason=%s); retrying with compact context",
                result.finish_reason,
            )
        attempts = 2
        try:
            result = await client.complete(build_model_messages(snapshot(True), messages), COMPACT_MAX_TOKENS)
        except CompletionTimeoutError as e:
            raise TriageUpstreamError(f"{client.provider} timed out twice: {e}") from e

    if not result.content:
        raise TriageUpstreamError(
            f"{client.provider} returned an empty response (finish_reason: {result.finish_reason or 'unknown'})"
        )

    return TriageResult(
        content=result.content,
        mentioned_charger_ids=filter_known_mentions([prompt, result.content], chargers),
        from_model=True,
        attempts=attempts,
    )


# ============================================================
# 4) LOCAL SUMMARY
# ============================================================

def local_status_summary(
    chargers: Sequence[Charger],
    incidents: Sequence[Incident],
    fleet_stats: Optional[FleetStats],
    preloaded_charger_id: Optional[str] = None,
    limit: int = 5,
) -> TriageResult:
    """Deterministic fleet summary built only from the snapshot."""
    if not chargers:
        return TriageResult(
            content="Live fleet data is unavailable right now, so I cannot summarize charger status.",
            mentioned_charger_ids=[],
            from_model=False,
            attempts=0,
        )

    total = fleet_stats.total_chargers if fleet_stats else len(chargers)
    critical = [c for c in chargers if c.status == ChargerStatus.CRITICAL]
    warning = [c for c in chargers if c.status == ChargerStatus.WARNING]
    healthy = fleet_stats.healthy if fleet_stats else total - len(critical) - len(warning)
    open_incidents = [i for i in incidents if i.status != IncidentStatus.RESOLVED]

    lines = ["**Current Fleet Status (local summary):**", ""]
    lines.append(f"- {healthy} of {total} chargers healthy")
    lines.append(f"- {len(warning)} warning, {len(critical)} critical")
    if fleet_stats:
        lines.append(f"- Fleet health score: {fleet_stats.health_score:.1f}")
    lines.append(f"- Open incidents: {len(open_incidents)}")

    focus: List[Charger] = []
    selected = next((c for c in chargers if c.id == preloaded_charger_id), None) if preloaded_charger_id else None
    if selected:
        focus.append(selected)
    ranked = sorted(critical + warning, key=lambda c: c.risk_score, reverse=True)
    focus += [c for c in ranked if c is not selected][: max(0, limit - len(focus))]

    by_charger = {i.charger_id: i for i in open_incidents}
    if focus:
        lines += ["", "**Needs attention:**"]
        for c in focus:
            incident = by_charger.get(c.id)
            detail = f" {incident.description}." if incident else ""
            lines.append(
                f"- **{c.name}** ({c.code}) {c.status.value}, risk {c.risk_score:.1f} at {c.location}.{detail}"
            )
    else:
        lines += ["", "No chargers currently need attention."]

    critical_open = sum(1 for i in open_incidents if i.severity == IncidentSeverity.CRITICAL)
    if critical_open:
        lines += ["", f"Address the {critical_open} critical incident(s) first."]

    return TriageResult(
        content="\n".join(lines),
        mentioned_charger_ids=[c.id for c in focus],
        from_model=False,
        attempts=0,
    )
