import json
import logging
from unittest.mock import MagicMock

import pytest

from ampera import deps
from ampera.config import env_flag, env_float, env_int, env_str
from ampera.logging_setup import LOG_FILE_NAME, configure_logging
from ampera.services.llm_client import AzureChatClient, GeminiChatClient
from ampera.services.sources import DemoRowSource, SqlRowSource, SupabaseRowSource

ENV_KEYS = [
    "LIVE_SOURCE", "SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "DATABASE_URL", "DEMO_SEED",
    "TRIAGE_ENABLED", "TRIAGE_PROVIDER", "TRIAGE_TIMEOUT_S", "DEMO_MODE", "OFFLINE_MODE",
    "AZURE_OPENAI_CHAT_COMPLETIONS_URL", "AZURE_OPENAI_API_KEY", "AZURE_OPENAI_MODEL",
    "GEMINI_API_KEY", "GOOGLE_API_KEY", "GEMINI_MODEL_ID", "TELEMETRY_LIMIT", "PREDICTION_LIMIT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    deps.get_row_source.cache_clear()
    deps.get_triage_client.cache_clear()
    yield
    deps.get_row_source.cache_clear()
    deps.get_triage_client.cache_clear()


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("X_FLAG", "Yes")
    monkeypatch.setenv("X_INT", "not-a-number")
    monkeypatch.setenv("X_FLOAT", " 2.5 ")
    monkeypatch.setenv("X_STR", "   ")
    assert env_flag("X_FLAG") is True
    assert env_int("X_INT", 9) == 9
    assert env_float("X_FLOAT", 0.0) == 2.5
    assert env_str("X_STR", "fallback") == "fallback"


def test_fetch_limits(monkeypatch):
    monkeypatch.setenv("TELEMETRY_LIMIT", "100")
    limits = deps.get_fetch_limits()
    assert (limits.telemetry, limits.predictions) == (100, 3000)


def test_demo_source_by_default(monkeypatch):
    monkeypatch.setenv("DEMO_SEED", "11")
    source = deps.get_row_source()
    assert isinstance(source, DemoRowSource)
    assert source.seed == 11


def test_supabase_source_when_configured(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "svc")
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    assert isinstance(deps.get_row_source(), SupabaseRowSource)


def test_sql_source_from_database_url(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    assert isinstance(deps.get_row_source(), SqlRowSource)


def test_explicit_supabase_without_credentials(monkeypatch):
    monkeypatch.setenv("LIVE_SOURCE", "supabase")
    with pytest.raises(RuntimeError):
        deps.get_row_source()


def test_triage_off_in_demo_mode(monkeypatch):
    monkeypatch.setenv("DEMO_MODE", "1")
    monkeypatch.setenv("AZURE_OPENAI_CHAT_COMPLETIONS_URL", "https://x")
    monkeypatch.setenv("AZURE_OPENAI_API_KEY", "k")
    assert deps.get_triage_client() is None


def test_triage_unconfigured_is_none():
    assert deps.get_triage_client() is None


def test_azure_triage_client(monkeypatch):
    monkeypatch.setenv("AZURE_OPENAI_CHAT_COMPLETIONS_URL", "https://x/chat/completions")
    monkeypatch.setenv("AZURE_OPENAI_API_KEY", "k")
    monkeypatch.setenv("TRIAGE_TIMEOUT_S", "12")
    client = deps.get_triage_client()
    assert isinstance(client, AzureChatClient)
    assert client.timeout_s == 12.0
    assert client.model == "gpt-5"


def test_gemini_triage_client(monkeypatch):
    monkeypatch.setattr("ampera.services.llm_client.genai.Client", MagicMock())
    monkeypatch.setenv("TRIAGE_PROVIDER", "gemini")
    monkeypatch.setenv("AZURE_OPENAI_CHAT_COMPLETIONS_URL", "https://x")
    monkeypatch.setenv("AZURE_OPENAI_API_KEY", "k")
    monkeypatch.setenv("GOOGLE_API_KEY", "g")
    client = deps.get_triage_client()
    assert isinstance(client, GeminiChatClient)


def test_log_dir_adds_one_jsonl_handler(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        configure_logging()
        configure_logging()
        added = [h for h in root.handlers if h not in before]
        assert len(added) == 1

        logging.getLogger("ampera.test").warning("charger %s offline", "CH-001")
        added[0].flush()
        line = (tmp_path / LOG_FILE_NAME).read_text(encoding="utf-8").strip().splitlines()[-1]
        record = json.loads(line)
        assert record["level"] == "WARNING"
        assert record["message"] == "charger CH-001 offline"
    finally:
        for h in root.handlers[:]:
            if h not in before:
                root.removeHandler(h)
                h.close()
