"""
poller.py

Purpose:
  Interval refresh of the live-dashboard payload for long-running consumers
  such as the ``ampera-watch`` console (see ``ampera.watch``).

Rules:
  - One refresh in flight at a time. A refresh requested while another is
    outstanding is dropped, not queued.
  - A failed refresh keeps the previous payload and records the error.
  - ``run()`` returns only after every refresh it started has finished.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import httpx

from ampera.services.timefmt import utc_now

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 30.0

Fetcher = Callable[[], Awaitable[Dict[str, Any]]]
RefreshHook = Callable[[Dict[str, Any]], None]


def http_fetcher(base_url: str, timeout_s: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> Fetcher:
    """Fetcher that GETs ``/api/live-dashboard`` from a running backend."""

    async def fetch() -> Dict[str, Any]:
        async with httpx.AsyncClient(base_url=base_url, timeout=timeout_s, transport=transport) as client:
            resp = await client.get("/api/live-dashboard", headers={"Cache-Control": "no-store"})
        if resp.status_code >= 400:
            message = f"Live data request failed ({resp.status_code})"
            try:
                detail = resp.json().get("detail")
            except ValueError:
                detail = None
            raise RuntimeError(detail if isinstance(detail, str) and detail else message)
        return resp.json()

    return fetch


class LiveDashboardPoller:
    def __init__(self, fetch: Fetcher, interval_s: float = DEFAULT_INTERVAL_S, on_refresh: Optional[RefreshHook] = None):
        self.fetch = fetch
        self.interval_s = interval_s
        self.on_refresh = on_refresh

        self.payload: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None
        self.last_success: Optional[datetime] = None
        self.dropped = 0

        self._in_flight = False
        self._stop = asyncio.Event()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def refresh(self) -> Optional[Dict[str, Any]]:
        if self._in_flight:
            self.dropped += 1
            return None

        self._in_flight = True
        try:
            payload = await self.fetch()
        except Exception as e:
            self.error = str(e) or "Failed to load live dashboard data"
            logger.warning("Live dashboard refresh failed: %s", self.error)
            return None
        finally:
            self._in_flight = False

        self.payload = payload
        self.error = None
        self.last_success = utc_now()
        if self.on_refresh is not None:
            self.on_refresh(payload)
        return payload

    async def run(self) -> None:
        """Initial refresh, then one per interval until ``stop()``."""
        self._stop.clear()
        await self.refresh()
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_s)
            except asyncio.TimeoutError:
                # a slow fetch must not delay the next tick
                task = asyncio.create_task(self.refresh())
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def stop(self) -> None:
        self._stop.set()
