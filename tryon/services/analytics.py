"""Fire-and-forget analytics events."""

import asyncio
import logging
from typing import Protocol, runtime_checkable

import httpx

from ..config import AnalyticsConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class Analytics(Protocol):
    def track(self, name: str, properties: dict[str, str] | None = None) -> None: ...


class NullAnalytics:
    """Drops every event."""

    def track(self, name: str, properties: dict[str, str] | None = None) -> None:
        return None


class PlausibleAnalytics:
    """Sends named events to a Plausible-compatible ``/api/event`` endpoint.

    ``track`` returns immediately; delivery happens in a background task and
    failures are only logged.
    """

    def __init__(
        self,
        config: AnalyticsConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._pending: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.config.endpoint and self.config.domain)

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=10.0, transport=self._transport)
        return self._client

    def track(self, name: str, properties: dict[str, str] | None = None) -> None:
        if not self.enabled or name == "pageview":
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, dropping event %s", name)
            return
        task = loop.create_task(self._send(name, f"/{name}", properties or {}))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self):
        """Wait for in-flight events; used on shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _send(self, name: str, path: str, properties: dict[str, str]):
        event = {
            "name": name,
            "url": f"https://{self.config.domain}{path}",
            "domain": self.config.domain,
        }
        if properties:
            event["props"] = properties
        try:
            response = await self.client.post(self.config.endpoint, json=event)
            if not response.is_success:
                logger.warning("Analytics event %s rejected: %d", name, response.status_code)
        except Exception as e:
            logger.warning("Analytics event %s failed: %s", name, e)

    async def close(self):
        """Close the HTTP client."""
        await self.flush()
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
