"""Delivery of approved addresses to the downstream application."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

import httpx

from .errors import SyncError
from .schemas import SyncPayload
from .settings import Settings

logger = logging.getLogger(__name__)


def build_payload(id_type: str, address: str, timestamp: datetime) -> dict:
    """Return the JSON body for a sync call: exactly ``idType``, ``address`` and ``timestamp``."""

    payload = SyncPayload(id_type=id_type, address=address, timestamp=timestamp)
    return payload.model_dump(mode="json", by_alias=True)


class SyncDispatcher:
    """Interface for sending one approved address downstream."""

    async def sync(self, id_type: str, address: str, timestamp: datetime) -> None:
        raise NotImplementedError


class HttpSyncDispatcher(SyncDispatcher):
    """POSTs the payload as JSON to a configured URL."""

    def __init__(
        self,
        url: str,
        *,
        timeout_s: float = 10.0,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout_s = timeout_s
        self.api_key = api_key
        self._transport = transport

    def _headers(self) -> dict:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "idscan-sync/1.0",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def sync(self, id_type: str, address: str, timestamp: datetime) -> None:
        payload = build_payload(id_type, address, timestamp)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                resp = await client.post(self.url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.error("Sync request to %s failed: %s", self.url, exc)
            raise SyncError("Failed to send data. Please try again.") from exc

        if not 200 <= resp.status_code < 300:
            logger.error("Sync rejected by %s: HTTP %s: %s", self.url, resp.status_code, resp.text[:500])
            raise SyncError(f"The application rejected the address (HTTP {resp.status_code}).")

        logger.info("Synced address for %r to %s", id_type, self.url)


class SimulatedSyncDispatcher(SyncDispatcher):
    """Stand-in for a real downstream API: waits, then logs the payload."""

    def __init__(self, delay_s: float = 2.0) -> None:
        self.delay_s = delay_s

    async def sync(self, id_type: str, address: str, timestamp: datetime) -> None:
        payload = build_payload(id_type, address, timestamp)
        await asyncio.sleep(self.delay_s)
        logger.info("Sending payload: %s", payload)


def build_dispatcher(settings: Settings) -> SyncDispatcher:
    """Use the configured downstream URL, or the simulated dispatcher when none is set."""

    if settings.sync_url:
        return HttpSyncDispatcher(
            settings.sync_url,
            timeout_s=settings.sync_timeout_s,
            api_key=settings.sync_api_key,
        )
    logger.info("No sync URL configured; approved addresses are only logged")
    return SimulatedSyncDispatcher(delay_s=settings.sync_delay_s)
