# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Awaitable, Callable, Generator, Iterator
from datetime import UTC, datetime, timedelta
from itertools import count
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DASHBOARD_ENABLED", "false")

from watchparty_stage.api.v1.dependencies import get_lifecycle
from watchparty_stage.db import Base, build_engine, create_tables, drop_tables
from watchparty_stage.main import app as fastapi_app
from watchparty_stage.models import ContentItem, VotingSession
from watchparty_stage.models.content import ITEM_STATUS_PENDING
from watchparty_stage.models.session import CATEGORY_MIXED, SESSION_STATUS_VOTING
from watchparty_stage.repositories.session_store import SessionStore
from watchparty_stage.services.event_bus import EventBus
from watchparty_stage.services.events import ALL_EVENTS, Event
from watchparty_stage.services.lifecycle import LifecycleEngine
from watchparty_stage.services.vote_caps import VoteCapPolicy

TEST_DB_URL = "sqlite://"
START_TIME = datetime(2026, 10, 16, 12, 0, tzinfo=UTC)
COMMUNITY_ID = 4242

_NOMINATION_COUNTER = count(1)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = build_engine(TEST_DB_URL, poolclass=StaticPool)
    create_tables(engine)
    try:
        yield engine
    finally:
        drop_tables(engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def store(db_session: Session) -> SessionStore:
    return SessionStore(db_session)


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(START_TIME)


@pytest.fixture()
def cap_policy() -> VoteCapPolicy:
    """Default cap parameters, independent of the environment."""
    return VoteCapPolicy(enabled=True, ratio_up=1 / 3, ratio_down=1 / 5, minimum=1)


@pytest.fixture()
def bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def published(bus: EventBus) -> list[Event]:
    """Record every event delivered on ``bus``."""
    events: list[Event] = []
    bus.subscribe_many(ALL_EVENTS, events.append)
    return events


@pytest.fixture()
def lifecycle(
    store: SessionStore,
    bus: EventBus,
    clock: FrozenClock,
    cap_policy: VoteCapPolicy,
) -> LifecycleEngine:
    return LifecycleEngine(
        store,
        bus=bus,
        clock=clock,
        horizon=timedelta(hours=24),
        sweep_hour_utc=0,
        vote_caps=cap_policy,
    )


@pytest.fixture()
def make_session(store: SessionStore, clock: FrozenClock) -> Callable[..., Awaitable[VotingSession]]:
    """Insert a session directly, bypassing validation and scheduling."""

    async def _make(**overrides: Any) -> VotingSession:
        data: dict[str, Any] = {
            "community_id": COMMUNITY_ID,
            "name": "Friday Watch Party",
            "status": SESSION_STATUS_VOTING,
            "content_category": CATEGORY_MIXED,
            "scheduled_at": clock() + timedelta(days=2),
            "voting_end_time": clock() + timedelta(days=1),
            "awaiting_tie_break": False,
        }
        data.update(overrides)
        return await store.create_session(**data)

    return _make


@pytest.fixture()
def make_item(store: SessionStore, clock: FrozenClock) -> Callable[..., Awaitable[ContentItem]]:
    """Insert a content item with a strictly increasing nomination time."""

    async def _make(title: str, **overrides: Any) -> ContentItem:
        data: dict[str, Any] = {
            "community_id": COMMUNITY_ID,
            "title": title,
            "content_type": "movie",
            "status": ITEM_STATUS_PENDING,
            "nominated_by": "nominator",
            "nominated_at": clock() - timedelta(hours=1) + timedelta(
                seconds=next(_NOMINATION_COUNTER)
            ),
        }
        data.update(overrides)
        return await store.create_item(**data)

    return _make


@pytest.fixture()
def add_votes(store: SessionStore) -> Callable[..., Awaitable[None]]:
    """Record ``up`` and ``down`` votes from distinct users on an item."""

    async def _add(item_id: int, up: int = 0, down: int = 0) -> None:
        for index in range(up):
            await store.upsert_vote(item_id, f"up-voter-{index}", "up")
        for index in range(down):
            await store.upsert_vote(item_id, f"down-voter-{index}", "down")

    return _add


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def client(app: FastAPI, lifecycle: LifecycleEngine) -> Iterator[TestClient]:
    # Startup is not triggered; the test engine is injected instead.
    app.dependency_overrides[get_lifecycle] = lambda: lifecycle
    try:
        yield TestClient(app, base_url="http://test")
    finally:
        app.dependency_overrides.pop(get_lifecycle, None)
