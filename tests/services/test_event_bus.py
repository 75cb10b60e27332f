# tests/services/test_event_bus.py
"""Tests for the in-process event bus."""

from datetime import datetime

import pytest

from watchparty_stage.services.event_bus import EventBus
from watchparty_stage.services.events import (
    SESSION_CANCELLED,
    SESSION_DECIDED,
    SessionCancelled,
)

PAYLOAD = SessionCancelled(community_id=1, session_id=2, previous_status="voting")


@pytest.mark.asyncio
async def test_subscribers_run_in_registration_order() -> None:
    bus = EventBus()
    calls: list[str] = []

    async def first(event) -> None:
        calls.append("first")

    def second(event) -> None:
        calls.append("second")

    bus.subscribe(SESSION_CANCELLED, first)
    bus.subscribe(SESSION_CANCELLED, second)

    event = await bus.publish(SESSION_CANCELLED, PAYLOAD)

    assert calls == ["first", "second"]
    assert event.name == SESSION_CANCELLED
    assert event.community_id == 1


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_stop_delivery(caplog) -> None:
    bus = EventBus()
    received: list[str] = []

    async def broken_async(event) -> None:
        raise RuntimeError("boom")

    def broken_sync(event) -> None:
        raise KeyError("missing")

    bus.subscribe(SESSION_CANCELLED, broken_async)
    bus.subscribe(SESSION_CANCELLED, broken_sync)
    bus.subscribe(SESSION_CANCELLED, lambda event: received.append(event.name))

    await bus.publish(SESSION_CANCELLED, PAYLOAD)

    assert received == [SESSION_CANCELLED]
    assert "broken_async" in caplog.text
    assert "broken_sync" in caplog.text


@pytest.mark.asyncio
async def test_events_only_reach_their_subscribers() -> None:
    bus = EventBus()
    received: list[str] = []
    bus.subscribe(SESSION_DECIDED, lambda event: received.append(event.name))

    await bus.publish(SESSION_CANCELLED, PAYLOAD)

    assert received == []


@pytest.mark.asyncio
async def test_unsubscribe() -> None:
    bus = EventBus()
    received: list[str] = []

    def handler(event) -> None:
        received.append(event.name)

    bus.subscribe_many((SESSION_CANCELLED, SESSION_DECIDED), handler)
    bus.unsubscribe(SESSION_CANCELLED, handler)
    bus.unsubscribe(SESSION_CANCELLED, handler)

    await bus.publish(SESSION_CANCELLED, PAYLOAD)
    assert received == []
    assert bus.subscribers(SESSION_DECIDED) == [handler]


@pytest.mark.asyncio
async def test_event_to_dict() -> None:
    bus = EventBus()

    event = await bus.publish(SESSION_CANCELLED, PAYLOAD)
    data = event.to_dict()

    assert data["type"] == SESSION_CANCELLED
    assert isinstance(data["published_at"], datetime)
    assert data["payload"] == {
        "community_id": 1,
        "session_id": 2,
        "previous_status": "voting",
        "external_event_ref": None,
    }
