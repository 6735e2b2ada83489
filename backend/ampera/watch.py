"""Follow a running backend's live dashboard and log each refresh.

Usage:
  ampera-watch --url http://localhost:8000 --interval 30
  ampera-watch --once
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Any, Dict

from ampera.config import env_float, env_str
from ampera.logging_setup import configure_logging
from ampera.services.poller import DEFAULT_INTERVAL_S, LiveDashboardPoller, http_fetcher

logger = logging.getLogger(__name__)


def describe_payload(payload: Dict[str, Any]) -> str:
    stats = payload.get("fleetStats") or {}
    incidents = payload.get("incidents") or []
    critical = sum(1 for i in incidents if isinstance(i, dict) and i.get("severity") == "critical")
    return (
        f"{stats.get('totalChargers', 0)} chargers "
        f"({stats.get('healthy', 0)} healthy, {stats.get('warning', 0)} warning, {stats.get('critical', 0)} critical), "
        f"{len(incidents)} incidents ({critical} critical), "
        f"health {stats.get('healthScore', 'n/a')}, source={payload.get('source', 'unknown')}, "
        f"latest={payload.get('latestTimestamp') or 'n/a'}"
    )


def log_refresh(payload: Dict[str, Any]) -> None:
    logger.info("Live dashboard: %s", describe_payload(payload))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--url", default=env_str("AMPERA_URL", "http://localhost:8000"))
    parser.add_argument("--interval", type=float, default=env_float("POLL_INTERVAL_S", DEFAULT_INTERVAL_S))
    parser.add_argument("--once", action="store_true", help="fetch a single payload and exit")
    args = parser.parse_args(argv)

    configure_logging()
    poller = LiveDashboardPoller(http_fetcher(args.url), interval_s=args.interval, on_refresh=log_refresh)

    if args.once:
        asyncio.run(poller.refresh())
        return 0 if poller.error is None else 1

    logger.info("Polling %s every %.0fs", args.url, args.interval)
    try:
        asyncio.run(poller.run())
    except KeyboardInterrupt:
        logger.info("Stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
