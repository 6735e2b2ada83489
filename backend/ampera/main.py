from __future__ import annotations

import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ampera.api import routes_dashboard, routes_health, routes_triage
from ampera.logging_setup import configure_logging

configure_logging()

# ============================================================
# FASTAPI APP SETUP
# ============================================================

app = FastAPI(
    title="Ampera Fleet Backend",
    version="0.1.0",
    description="Live EV-charger fleet health, incidents and AI triage for the operations dashboard.",
)

# CORS: the dashboard is served from a separate origin in development
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*")
allow_origins = ["*"] if ALLOWED_ORIGINS == "*" else [o.strip() for o in ALLOWED_ORIGINS.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(routes_health.router, tags=["health"])
app.include_router(routes_dashboard.router, prefix="/api", tags=["dashboard"])
app.include_router(routes_triage.router, prefix="/api", tags=["triage"])


# ============================================================
# LOCAL RUN INSTRUCTIONS
# ============================================================
# Run (from backend/):
#   uvicorn ampera.main:app --reload --port 8000
#
# Frontend calls:
#   http://localhost:8000/api/live-dashboard
#   POST http://localhost:8000/api/ai-triage
