"""Mirror sessions as calendar-style events on the chat platform.

The sync subscriber keeps one external event per session with a scheduled
time. It talks to the platform through an adapter so the HTTP client can be
swapped out in tests.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import httpx
from fastapi.encoders import jsonable_encoder

from watchparty_stage.core.settings import settings
from watchparty_stage.db.time import ensure_utc
from watchparty_stage.repositories.session_store import SessionStore
from watchparty_stage.services.events import (
    SESSION_CANCELLED,
    SESSION_CREATED,
    SESSION_DECIDED,
    SESSION_RESCHEDULED,
    Event,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404
HTTP_INTERNAL_SERVER_ERROR = 500

# Used when nothing better is known about the winner's runtime.
DEFAULT_EVENT_DURATION = timedelta(minutes=150)
DEFAULT_DESCRIPTION = "Watch party session - join us!"

SYNCED_EVENTS = (SESSION_CREATED, SESSION_RESCHEDULED, SESSION_DECIDED, SESSION_CANCELLED)


class ExternalEventError(RuntimeError):
    """Raised when the external event endpoint rejects a request."""


@dataclass(frozen=True)
class ExternalEventDetails:
    """What the platform needs to render one session as an event."""

    community_id: int
    session_id: int
    name: str
    description: str
    start_time: datetime
    end_time: datetime

    def as_payload(self) -> dict:
        return jsonable_encoder(
            {
                "community_id": self.community_id,
                "name": self.name,
                "description": self.description,
                "scheduled_start_time": self.start_time,
                "scheduled_end_time": self.end_time,
            }
        )


class ExternalEventAdapter(Protocol):
    async def create_external_event(self, details: ExternalEventDetails) -> str | None: ...

    async def update_external_event(self, ref: str, details: ExternalEventDetails) -> bool: ...

    async def delete_external_event(self, ref: str) -> bool: ...


class HttpExternalEventAdapter:
    """Calls a REST endpoint that manages scheduled events on the platform."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.base_url = base_url or settings.external_events_base_url
        self.token = token if token is not None else settings.external_events_token
        self.timeout_seconds = timeout_seconds or settings.external_events_timeout_seconds
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
                self._client = httpx.AsyncClient(
                    base_url=self.base_url or "",
                    timeout=httpx.Timeout(self.timeout_seconds),
                    headers=headers,
                )
        return self._client

    async def _request(self, method: str, path: str, json_data: dict | None = None) -> httpx.Response:
        client = await self._ensure_client()
        try:
            response = await client.request(method, path, json=json_data)
        except httpx.HTTPError as exc:
            raise ExternalEventError(f"External event request failed: {exc}") from exc
        if response.status_code >= HTTP_INTERNAL_SERVER_ERROR:
            raise ExternalEventError(f"External event endpoint responded with {response.status_code}")
        return response

    async def create_external_event(self, details: ExternalEventDetails) -> str | None:
        response = await self._request("POST", "/events", details.as_payload())
        if response.is_error:
            logger.warning(
                "External event creation for session %d rejected (%d)",
                details.session_id,
                response.status_code,
            )
            return None
        ref = response.json().get("id")
        return str(ref) if ref is not None else None

    async def update_external_event(self, ref: str, details: ExternalEventDetails) -> bool:
        response = await self._request("PATCH", f"/events/{ref}", details.as_payload())
        return not response.is_error

    async def delete_external_event(self, ref: str) -> bool:
        response = await self._request("DELETE", f"/events/{ref}")
        # Already gone counts as deleted.
        return response.status_code == HTTP_NOT_FOUND or not response.is_error

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


def external_events_enabled() -> bool:
    return bool(settings.external_events_base_url)


class ExternalEventSync:
    """Event bus subscriber keeping external events in line with sessions.

    ``session.created`` creates the event and stores its reference,
    ``session.rescheduled`` and ``session.decided`` update it and
    ``session.cancelled`` deletes it. Adapter failures are logged; the
    session itself is never rolled back because of them.
    """

    def __init__(self, store: SessionStore, adapter: ExternalEventAdapter) -> None:
        self.store = store
        self.adapter = adapter

    async def handle_event(self, event: Event) -> None:
        try:
            if event.name == SESSION_CANCELLED:
                await self._delete(event.payload.session_id)
            elif event.name in (SESSION_CREATED, SESSION_RESCHEDULED, SESSION_DECIDED):
                await self._upsert(event.payload.session_id, event.name)
        except (ExternalEventError, httpx.HTTPError, OSError) as exc:
            logger.warning(
                "External event sync for session %d failed on %s: %s",
                event.payload.session_id,
                event.name,
                exc,
            )

    async def details_for(self, session_id: int) -> ExternalEventDetails | None:
        """Build event details from the stored session; None without a start time."""
        voting_session = await self.store.get_session(session_id)
        if voting_session is None or voting_session.scheduled_at is None:
            return None

        start_time = ensure_utc(voting_session.scheduled_at)
        description = voting_session.description or DEFAULT_DESCRIPTION
        if voting_session.winner_item_id is not None:
            winner = await self.store.get_item(voting_session.winner_item_id)
            if winner is not None:
                description = f"Now showing: {winner.title}\n\n{description}"

        return ExternalEventDetails(
            community_id=voting_session.community_id,
            session_id=session_id,
            name=voting_session.name,
            description=f"{description}\n\nSESSION_UID:{session_id}",
            start_time=start_time,
            end_time=start_time + DEFAULT_EVENT_DURATION,
        )

    async def _upsert(self, session_id: int, event_name: str) -> None:
        details = await self.details_for(session_id)
        if details is None:
            logger.debug("Session %d has no start time; no external event", session_id)
            return

        voting_session = await self.store.get_session(session_id)
        ref = voting_session.external_event_ref
        if ref:
            updated = await self.adapter.update_external_event(ref, details)
            logger.info(
                "Updated external event %s for session %d after %s (ok=%s)",
                ref,
                session_id,
                event_name,
                updated,
            )
            return

        ref = await self.adapter.create_external_event(details)
        if ref:
            await self.store.set_external_event_ref(session_id, ref)
            logger.info("Created external event %s for session %d", ref, session_id)

    async def _delete(self, session_id: int) -> None:
        voting_session = await self.store.get_session(session_id)
        if voting_session is None or not voting_session.external_event_ref:
            return
        ref = voting_session.external_event_ref
        if await self.adapter.delete_external_event(ref):
            await self.store.set_external_event_ref(session_id, None)
            logger.info("Deleted external event %s for session %d", ref, session_id)
