from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone

from ampera.config import env_str

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_NAME = "backend.jsonl"


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        out = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            out["exc"] = self.formatException(record.exc_info)
        return json.dumps(out)


def configure_logging() -> None:
    """Console logging, plus LOG_DIR/backend.jsonl when LOG_DIR is set."""
    level = getattr(logging, (env_str("LOG_LEVEL", "INFO") or "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)

    log_dir = env_str("LOG_DIR")
    if not log_dir:
        return
    root = logging.getLogger()
    if any(getattr(h, "_ampera_jsonl", False) for h in root.handlers):
        return
    os.makedirs(log_dir, exist_ok=True)
    handler = logging.FileHandler(os.path.join(log_dir, LOG_FILE_NAME), encoding="utf-8")
    handler.setFormatter(JsonLineFormatter())
    handler._ampera_jsonl = True  # type: ignore[attr-defined]
    root.addHandler(handler)
