# tests/services/test_subscribers.py
"""Tests for the status panel, external event sync and dashboard subscribers."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import httpx
import pytest
from jose import jwt

from conftest import COMMUNITY_ID
from watchparty_stage.services.dashboard import DashboardClient, DashboardConfig
from watchparty_stage.services.events import SESSION_CANCELLED, SESSION_DECIDED
from watchparty_stage.services.external_events import (
    DEFAULT_EVENT_DURATION,
    ExternalEventDetails,
    ExternalEventError,
    HttpExternalEventAdapter,
)
from watchparty_stage.services.lifecycle import LifecycleEngine

DASHBOARD_SECRET = "dashboard-test-secret"


@pytest.fixture
def mock_adapter():
    adapter = AsyncMock(spec=HttpExternalEventAdapter)
    adapter.create_external_event.return_value = "evt-1"
    adapter.update_external_event.return_value = True
    adapter.delete_external_event.return_value = True
    return adapter


@pytest.fixture
def synced_lifecycle(store, bus, clock, cap_policy, mock_adapter) -> LifecycleEngine:
    return LifecycleEngine(
        store,
        bus=bus,
        clock=clock,
        horizon=timedelta(hours=24),
        vote_caps=cap_policy,
        external_events=mock_adapter,
    )


def _dashboard_config(**overrides) -> DashboardConfig:
    data = {
        "enabled": True,
        "base_url": "https://dashboard.test",
        "events_path": "/events",
        "instance_id": "stage-test",
        "shared_secret": DASHBOARD_SECRET,
        "audience": "watchparty-dashboard",
        "token_ttl_seconds": 60,
        "timeout_seconds": 1.0,
    }
    data.update(overrides)
    return DashboardConfig(**data)


def _mock_dashboard(handler) -> DashboardClient:
    client = DashboardClient(_dashboard_config())
    client._client = httpx.AsyncClient(
        base_url="https://dashboard.test",
        transport=httpx.MockTransport(handler),
    )
    return client


# --- Status panel -----------------------------------------------------------------
@pytest.mark.asyncio
async def test_panel_follows_voting(lifecycle, clock) -> None:
    voting_session = await lifecycle.create_session(
        COMMUNITY_ID, "Panel Night", voting_end_time=clock() + timedelta(days=2)
    )
    first = await lifecycle.nominate(COMMUNITY_ID, "Amelie", "movie")
    second = await lifecycle.nominate(COMMUNITY_ID, "Delicatessen", "movie")
    await lifecycle.cast_vote(second.id, "viewer", "up")

    panel = await lifecycle.get_panel(COMMUNITY_ID)

    assert panel.active_session.session_id == voting_session.id
    assert [tally.item_id for tally in panel.active_session.tallies] == [second.id, first.id]
    assert panel.last_decision is None
    assert panel.last_event == "vote.cast"

    await lifecycle.close_session(voting_session.id)
    panel = await lifecycle.get_panel(COMMUNITY_ID)

    assert panel.active_session is None
    assert panel.last_decision.session_id == voting_session.id
    assert panel.last_decision.winner_title == "Delicatessen"
    assert panel.last_event == SESSION_DECIDED


@pytest.mark.asyncio
async def test_panel_falls_back_to_planning_session(lifecycle) -> None:
    planning = await lifecycle.create_session(COMMUNITY_ID, "Later On")

    panel = await lifecycle.get_panel(COMMUNITY_ID)

    assert panel.active_session.session_id == planning.id
    assert panel.active_session.status == "planning"


@pytest.mark.asyncio
async def test_panel_for_quiet_community(lifecycle) -> None:
    panel = await lifecycle.get_panel(777)

    assert panel.community_id == 777
    assert panel.active_session is None
    assert panel.last_decision is None


# --- External events --------------------------------------------------------------
@pytest.mark.asyncio
async def test_external_event_follows_session(synced_lifecycle, mock_adapter, clock) -> None:
    start = clock() + timedelta(days=3)
    voting_session = await synced_lifecycle.create_session(
        COMMUNITY_ID,
        "Synced Night",
        scheduled_at=start,
        voting_end_time=clock() + timedelta(days=2),
    )

    mock_adapter.create_external_event.assert_awaited_once()
    details = mock_adapter.create_external_event.await_args.args[0]
    assert details.start_time == start
    assert details.end_time == start + DEFAULT_EVENT_DURATION
    assert details.description.endswith(f"SESSION_UID:{voting_session.id}")
    assert voting_session.external_event_ref == "evt-1"

    await synced_lifecycle.reschedule_session(
        voting_session.id,
        scheduled_at=start + timedelta(days=1),
        voting_end_time=clock() + timedelta(days=2),
    )
    ref, updated = mock_adapter.update_external_event.await_args.args
    assert ref == "evt-1"
    assert updated.start_time == start + timedelta(days=1)

    await synced_lifecycle.cancel_session(voting_session.id)
    mock_adapter.delete_external_event.assert_awaited_once_with("evt-1")
    assert voting_session.external_event_ref is None


@pytest.mark.asyncio
async def test_decision_adds_winner_to_external_event(
    synced_lifecycle, mock_adapter, make_session, make_item, add_votes
) -> None:
    voting_session = await make_session(external_event_ref="evt-9")
    winner = await make_item("Le Samourai", session_id=voting_session.id)
    await add_votes(winner.id, up=1)

    await synced_lifecycle.close_session(voting_session.id)

    ref, details = mock_adapter.update_external_event.await_args.args
    assert ref == "evt-9"
    assert details.description.startswith("Now showing: Le Samourai")


@pytest.mark.asyncio
async def test_unscheduled_session_gets_no_external_event(synced_lifecycle, mock_adapter) -> None:
    await synced_lifecycle.create_session(COMMUNITY_ID, "No Date Yet")

    mock_adapter.create_external_event.assert_not_awaited()


@pytest.mark.asyncio
async def test_external_event_failure_is_logged(
    synced_lifecycle, mock_adapter, clock, caplog
) -> None:
    mock_adapter.create_external_event.side_effect = ExternalEventError("platform down")

    voting_session = await synced_lifecycle.create_session(
        COMMUNITY_ID,
        "Unlucky Night",
        scheduled_at=clock() + timedelta(days=3),
        voting_end_time=clock() + timedelta(days=2),
    )

    assert voting_session.status == "voting"
    assert voting_session.external_event_ref is None
    assert "platform down" in caplog.text


@pytest.mark.asyncio
async def test_http_adapter_round_trip() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "POST":
            return httpx.Response(201, json={"id": 555})
        if request.method == "DELETE":
            return httpx.Response(404)
        return httpx.Response(200, json={})

    adapter = HttpExternalEventAdapter("https://platform.test", token="bot-token")
    adapter._client = httpx.AsyncClient(
        base_url="https://platform.test",
        transport=httpx.MockTransport(handler),
    )
    sync_details = _adapter_details()

    assert await adapter.create_external_event(sync_details) == "555"
    assert await adapter.update_external_event("555", sync_details) is True
    assert await adapter.delete_external_event("555") is True
    await adapter.close()

    assert [request.method for request in requests] == ["POST", "PATCH", "DELETE"]
    assert requests[1].url.path == "/events/555"
    assert json.loads(requests[0].content)["name"] == "Adapter Night"


def _adapter_details() -> ExternalEventDetails:
    start = datetime(2026, 10, 20, 19, 0, tzinfo=UTC)
    return ExternalEventDetails(
        community_id=COMMUNITY_ID,
        session_id=1,
        name="Adapter Night",
        description="SESSION_UID:1",
        start_time=start,
        end_time=start + DEFAULT_EVENT_DURATION,
    )


# --- Dashboard --------------------------------------------------------------------
@pytest.mark.asyncio
async def test_dashboard_receives_signed_events(store, bus, clock, cap_policy) -> None:
    received: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(202)

    dashboard = _mock_dashboard(handler)
    engine = LifecycleEngine(
        store, bus=bus, clock=clock, vote_caps=cap_policy, dashboard=dashboard
    )

    voting_session = await engine.create_session(
        COMMUNITY_ID, "Dashboard Night", voting_end_time=clock() + timedelta(days=2)
    )
    await engine.cancel_session(voting_session.id)
    await engine.stop()

    assert [json.loads(request.content)["type"] for request in received] == [
        "session.created",
        SESSION_CANCELLED,
    ]
    assert dashboard.delivered == 2

    request = received[0]
    assert request.url.path == "/events"
    assert request.headers["X-Watchparty-Instance-Id"] == "stage-test"
    token = request.headers["Authorization"].removeprefix("Bearer ")
    claims = jwt.decode(
        token,
        DASHBOARD_SECRET,
        algorithms=["HS256"],
        audience="watchparty-dashboard",
    )
    assert claims["iss"] == "stage-test"
    body = json.loads(request.content)
    assert body["payload"]["session_id"] == voting_session.id


@pytest.mark.asyncio
async def test_dashboard_failure_does_not_block_lifecycle(store, bus, clock, cap_policy) -> None:
    dashboard = _mock_dashboard(lambda request: httpx.Response(503))
    engine = LifecycleEngine(
        store, bus=bus, clock=clock, vote_caps=cap_policy, dashboard=dashboard
    )

    planning = await engine.create_session(COMMUNITY_ID, "Offline Dashboard")
    await dashboard.close()

    assert planning.status == "planning"
    assert dashboard.failed == 1
    assert dashboard.delivered == 0


def test_disabled_dashboard_is_not_subscribed(store, bus) -> None:
    dashboard = DashboardClient(_dashboard_config(enabled=False))

    engine = LifecycleEngine(store, bus=bus, dashboard=dashboard)

    assert len(engine.bus.subscribers(SESSION_CANCELLED)) == 2
