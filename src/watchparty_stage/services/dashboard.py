"""Forward lifecycle events to the remote dashboard.

This module provides the DashboardClient class that pushes every published
event to the dashboard over HTTP. It includes:

- A lazily created ``httpx.AsyncClient`` shared by all requests
- Short-lived HS256 bearer tokens signed with the shared secret
- A bus subscriber that logs and drops delivery failures
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi.encoders import jsonable_encoder
from jose import jwt

from watchparty_stage.core.settings import settings
from watchparty_stage.services.events import Event

# Configure logger for this module
logger = logging.getLogger(__name__)

HTTP_INTERNAL_SERVER_ERROR = 500


class DashboardError(RuntimeError):
    """Base exception raised for dashboard delivery failures."""


class DashboardDisabledError(DashboardError):
    """Raised when a delivery is attempted while the dashboard is disabled."""


@dataclass(frozen=True)
class DashboardConfig:
    """Immutable configuration for dashboard delivery."""

    enabled: bool
    base_url: str | None
    events_path: str
    instance_id: str
    shared_secret: str | None
    audience: str
    token_ttl_seconds: int
    timeout_seconds: float


def load_dashboard_config() -> DashboardConfig:
    """Build configuration object from global settings."""

    return DashboardConfig(
        enabled=bool(settings.dashboard_enabled and settings.dashboard_base_url),
        base_url=settings.dashboard_base_url,
        events_path=settings.dashboard_events_path,
        instance_id=settings.dashboard_instance_id,
        shared_secret=settings.dashboard_shared_secret,
        audience=settings.dashboard_audience,
        token_ttl_seconds=settings.dashboard_token_ttl_seconds,
        timeout_seconds=float(settings.dashboard_http_timeout_seconds),
    )


class DashboardClient:
    """HTTP client wrapper for the remote dashboard."""

    def __init__(self, config: DashboardConfig | None = None) -> None:
        self.config = config or load_dashboard_config()
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self.delivered = 0
        self.failed = 0

    @property
    def enabled(self) -> bool:
        return self.config.enabled and bool(self.config.base_url)

    async def _ensure_client(self) -> httpx.AsyncClient:
        if not self.enabled:
            raise DashboardDisabledError("Dashboard notifications are not enabled")

        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url or "",
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                )

        return self._client

    def _build_auth_headers(self) -> dict[str, str]:
        headers = {
            "X-Watchparty-Instance-Id": self.config.instance_id,
        }

        if self.config.shared_secret:
            now = int(time.time())
            payload = {
                "iss": self.config.instance_id,
                "aud": self.config.audience,
                "iat": now,
                "exp": now + max(1, self.config.token_ttl_seconds),
                "jti": secrets.token_hex(8),
            }
            token = jwt.encode(payload, self.config.shared_secret, algorithm="HS256")
            headers["Authorization"] = f"Bearer {token}"

        return headers

    async def send_event(self, event: Event) -> None:
        """POST one event as ``{type, published_at, payload}``.

        Raises:
            DashboardError: If the request fails or the dashboard returns 5xx
        """
        client = await self._ensure_client()
        body: dict[str, Any] = jsonable_encoder(event.to_dict())
        try:
            response = await client.post(
                self.config.events_path,
                json=body,
                headers=self._build_auth_headers(),
            )
        except httpx.HTTPError as exc:
            raise DashboardError(f"Dashboard request failed: {exc}") from exc

        if response.status_code >= HTTP_INTERNAL_SERVER_ERROR:
            raise DashboardError(f"Dashboard responded with {response.status_code}")
        if response.is_error:
            logger.warning(
                "Dashboard rejected %s with status %d", event.name, response.status_code
            )

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class DashboardNotifier:
    """Event bus subscriber forwarding events to the dashboard."""

    def __init__(self, client: DashboardClient) -> None:
        self.client = client

    async def handle_event(self, event: Event) -> None:
        try:
            await self.client.send_event(event)
            self.client.delivered += 1
        except (DashboardError, httpx.HTTPError, OSError) as e:
            self.client.failed += 1
            logger.warning("Failed to forward %s to the dashboard: %s", event.name, e)
