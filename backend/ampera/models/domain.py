from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Raw upstream cells arrive as strings, numbers, booleans or null.
RawValue = Union[str, int, float, bool, None]


# ============================================================
# 0) ENUMS
# ============================================================

class ChargerStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class IncidentSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class IncidentStatus(str, Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class IncidentMetric(str, Enum):
    RISK = "risk"
    TEMPERATURE = "temperature"
    VOLTAGE = "voltage"


class DataSource(str, Enum):
    LIVE = "live"
    FALLBACK = "fallback"


class ApiModel(BaseModel):
    """snake_case in Python, camelCase on the wire (dashboard contract)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================
# 1) RAW UPSTREAM ROWS
# ============================================================

class RawRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _scalar_or_none(cls, value: Any) -> Any:
        # nested objects/arrays in a scalar column read as missing
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        return None


class TelemetryRow(RawRow):
    """One row of the live telemetry table. Every cell may be missing."""

    charger_id: RawValue = None
    latitude: RawValue = None
    longitude: RawValue = None
    area: RawValue = None
    voltage_v: RawValue = None
    current_a: RawValue = None
    temperature_c: RawValue = None
    ambient_temp_c: RawValue = None
    battery_temp_c: RawValue = None
    session_duration_min: RawValue = None
    charging_duration_min: RawValue = None
    error_count: RawValue = None
    risk_score: RawValue = None
    health_status: RawValue = None
    soc: RawValue = None
    efficiency: RawValue = None
    timestamp: RawValue = None


class PredictionRow(RawRow):
    """One row of the failure-prediction table."""

    charger_id: RawValue = None
    as_of_timestamp: RawValue = None
    failure_prone: RawValue = None
    normalized_risk_pct_100: RawValue = None
    composite_risk: RawValue = None
    failure_risk_prob_norm: RawValue = None
    failure_risk_prob_raw: RawValue = None
    predicted_failure_pattern: RawValue = None
    pattern_confidence: RawValue = None
    risk_trend: RawValue = None
    updated_at: RawValue = None


TELEMETRY_COLUMNS = list(TelemetryRow.model_fields.keys())
PREDICTION_COLUMNS = list(PredictionRow.model_fields.keys())


# ============================================================
# 2) DERIVED DASHBOARD MODEL
# ============================================================

class Charger(ApiModel):
    id: str
    name: str
    code: str
    location: str
    lat: float
    lng: float
    status: ChargerStatus
    risk_score: float = Field(ge=0.0, le=100.0)
    risk_history: List[float]
    temperature: float
    voltage: float
    uptime: float
    energy_delivered: float
    last_updated: str
    voltage_history: List[float]
    temp_history: List[float]


class TimelineEvent(ApiModel):
    event: str
    time: str


class Incident(ApiModel):
    id: str
    charger_id: str
    charger_name: str
    charger_code: str
    location: str
    severity: IncidentSeverity
    status: IncidentStatus = IncidentStatus.ACTIVE
    title: str
    description: str
    detailed_description: str
    metric: str
    threshold: float
    current_value: float
    time_ago: str
    timestamp: str
    timeline: List[TimelineEvent] = Field(default_factory=list)
    ai_recommendation: str


class FleetStats(ApiModel):
    total_chargers: int
    healthy: int
    warning: int
    critical: int
    total_locations: int
    health_score: float
    total_energy_today: float


class DashboardResponse(ApiModel):
    chargers: List[Charger]
    incidents: List[Incident]
    fleet_stats: FleetStats
    generated_at: str
    source: DataSource
    latest_timestamp: Optional[str] = None


# ============================================================
# 3) TRIAGE ASSISTANT
# ============================================================

class TriageMessage(ApiModel):
    role: str
    content: str


class TriageRequest(ApiModel):
    # Messages stay loose; unusable turns are dropped during sanitation.
    messages: Optional[List[Any]] = None
    chargers: List[Charger] = Field(default_factory=list)
    incidents: List[Incident] = Field(default_factory=list)
    fleet_stats: Optional[FleetStats] = None
    preloaded_charger_id: Optional[str] = None


class TriageResponse(ApiModel):
    content: str
    mentioned_charger_ids: List[str] = Field(default_factory=list)
    from_model: bool = True


class HealthResponse(BaseModel):
    status: str
    ts: str
