from __future__ import annotations

from typing import Any

from ampera.models.domain import ChargerStatus
from ampera.services.normalize import to_text

# Shared with incident derivation; keep the two in lockstep.
WARNING_RISK_THRESHOLD = 50.0
CRITICAL_RISK_THRESHOLD = 75.0

CRITICAL_LABELS = {"critical", "crit", "failed", "failure"}
WARNING_LABELS = {"warning", "warn", "at_risk", "at risk", "degraded", "attention"}


def normalize_status(raw_label: Any, risk_score: float) -> ChargerStatus:
    """Explicit upstream labels win; otherwise the risk score decides."""
    label = (to_text(raw_label) or "").lower()
    if label in CRITICAL_LABELS:
        return ChargerStatus.CRITICAL
    if label in WARNING_LABELS:
        return ChargerStatus.WARNING

    if risk_score >= CRITICAL_RISK_THRESHOLD:
        return ChargerStatus.CRITICAL
    if risk_score >= WARNING_RISK_THRESHOLD:
        return ChargerStatus.WARNING
    return ChargerStatus.HEALTHY
