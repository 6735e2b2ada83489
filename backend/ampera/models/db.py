from typing import Any, Dict, Optional
from datetime import datetime
import os

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, SQLModel, create_engine

# ============================================================
# DB MODELS
# ============================================================
# Column names mirror the live Supabase tables so both sources yield the
# same row shape.

class TelemetryRecord(SQLModel, table=True):
    __tablename__ = "telemetry_live"

    id: Optional[int] = Field(default=None, primary_key=True)
    charger_id: Optional[str] = Field(default=None, index=True)
    timestamp: Optional[datetime] = Field(default=None, index=True)

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    area: Optional[str] = None

    voltage_v: Optional[float] = None
    current_a: Optional[float] = None
    temperature_c: Optional[float] = None
    ambient_temp_c: Optional[float] = None
    battery_temp_c: Optional[float] = None

    session_duration_min: Optional[float] = None
    charging_duration_min: Optional[float] = None
    error_count: Optional[int] = None
    risk_score: Optional[float] = None
    health_status: Optional[str] = None
    soc: Optional[float] = None
    efficiency: Optional[float] = None


class PredictionRecord(SQLModel, table=True):
    __tablename__ = "charger_predictions_live"

    id: Optional[int] = Field(default=None, primary_key=True)
    charger_id: Optional[str] = Field(default=None, index=True)
    as_of_timestamp: Optional[datetime] = Field(default=None, index=True)

    failure_prone: Optional[bool] = None
    normalized_risk_pct_100: Optional[float] = None
    composite_risk: Optional[float] = None
    failure_risk_prob_norm: Optional[float] = None
    failure_risk_prob_raw: Optional[float] = None
    predicted_failure_pattern: Optional[str] = None
    pattern_confidence: Optional[float] = None
    risk_trend: Optional[str] = None
    updated_at: Optional[datetime] = None


def record_to_row(record: SQLModel) -> Dict[str, Any]:
    """Plain dict with ISO timestamps, minus the surrogate key."""
    out: Dict[str, Any] = {}
    for key, value in record.model_dump().items():
        if key == "id":
            continue
        out[key] = value.isoformat() if isinstance(value, datetime) else value
    return out


# ============================================================
# SETUP
# ============================================================

sqlite_file_name = "ampera.db"
sqlite_url = f"sqlite:///{sqlite_file_name}"


def make_engine(database_url: Optional[str] = None) -> Engine:
    url = database_url or os.getenv("DATABASE_URL", sqlite_url)
    connect_args = {}
    kwargs: Dict[str, Any] = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise each worker thread sees an empty db
            kwargs["poolclass"] = StaticPool
    return create_engine(url, echo=False, connect_args=connect_args, **kwargs)


def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)
