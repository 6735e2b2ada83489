# backend/ampera/deps.py
"""
deps.py

Purpose:
  Dependency providers for the API. Each provider builds its service once per
  process from environment configuration.

Services Managed:
  - `RowSource` (Supabase, SQL store or seeded demo fleet)
  - `CompletionClient` (Azure OpenAI or Gemini), or None when triage is off

Pattern:
  - `lru_cache` singletons, wired into routes with `Depends(...)`, so tests
    swap them through `app.dependency_overrides`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from ampera.config import env_flag, env_float, env_int, env_str
from ampera.models.db import make_engine
from ampera.services.llm_client import (
    DEFAULT_AZURE_MODEL,
    DEFAULT_GEMINI_MODEL,
    DEFAULT_TIMEOUT_S,
    AzureChatClient,
    CompletionClient,
    GeminiChatClient,
)
from ampera.services.sources import (
    DEFAULT_PREDICTION_LIMIT,
    DEFAULT_TELEMETRY_LIMIT,
    DemoRowSource,
    RowSource,
    SqlRowSource,
    SupabaseRowSource,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchLimits:
    telemetry: int
    predictions: int


def get_fetch_limits() -> FetchLimits:
    return FetchLimits(
        telemetry=env_int("TELEMETRY_LIMIT", DEFAULT_TELEMETRY_LIMIT),
        predictions=env_int("PREDICTION_LIMIT", DEFAULT_PREDICTION_LIMIT),
    )


@lru_cache(maxsize=1)
def get_row_source() -> RowSource:
    supabase_url = env_str("SUPABASE_URL")
    supabase_key = env_str("SUPABASE_SERVICE_ROLE_KEY")
    database_url = env_str("DATABASE_URL")

    kind = (env_str("LIVE_SOURCE") or "").lower()
    if not kind:
        if supabase_url and supabase_key:
            kind = "supabase"
        elif database_url:
            kind = "sql"
        else:
            kind = "demo"

    if kind == "supabase":
        if not (supabase_url and supabase_key):
            raise RuntimeError("LIVE_SOURCE=supabase needs SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")
        source: RowSource = SupabaseRowSource(
            supabase_url, supabase_key, timeout_s=env_float("SOURCE_TIMEOUT_S", 15.0)
        )
    elif kind == "sql":
        source = SqlRowSource(make_engine(database_url))
    else:
        source = DemoRowSource(seed=env_int("DEMO_SEED", 7))

    logger.info("Live dashboard source: %s", source.name)
    return source


@lru_cache(maxsize=1)
def get_triage_client() -> Optional[CompletionClient]:
    demo_mode = env_flag("DEMO_MODE", False)
    offline_mode = env_flag("OFFLINE_MODE", False)
    if not env_flag("TRIAGE_ENABLED", not (demo_mode or offline_mode)):
        return None

    timeout_s = env_float("TRIAGE_TIMEOUT_S", DEFAULT_TIMEOUT_S)
    provider = (env_str("TRIAGE_PROVIDER") or "").lower()

    azure_url = env_str("AZURE_OPENAI_CHAT_COMPLETIONS_URL")
    azure_key = env_str("AZURE_OPENAI_API_KEY")
    gemini_key = env_str("GEMINI_API_KEY") or env_str("GOOGLE_API_KEY")

    if provider in ("", "azure") and azure_url and azure_key:
        return AzureChatClient(
            azure_url,
            azure_key,
            model=env_str("AZURE_OPENAI_MODEL", DEFAULT_AZURE_MODEL) or DEFAULT_AZURE_MODEL,
            timeout_s=timeout_s,
        )
    if provider in ("", "gemini") and gemini_key:
        return GeminiChatClient(
            gemini_key,
            model=env_str("GEMINI_MODEL_ID", DEFAULT_GEMINI_MODEL) or DEFAULT_GEMINI_MODEL,
            timeout_s=timeout_s,
        )

    logger.warning("No triage model configured; answering with local summaries")
    return None
