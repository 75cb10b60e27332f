"""Session lifecycle engine.

Wires the store, event bus, scheduler, closure engine, carryover, vote caps
and surface subscribers together and exposes the operational surface used
by the API and the command layer.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from watchparty_stage.db.time import utcnow
from watchparty_stage.models import CommunityConfig, ContentItem, VotingSession
from watchparty_stage.repositories.session_store import SessionStore
from watchparty_stage.services.carryover import CarryoverManager, CarryoverResult
from watchparty_stage.services.closure import ClosureEngine, ClosureResult
from watchparty_stage.services.dashboard import DashboardClient, DashboardNotifier
from watchparty_stage.services.event_bus import EventBus
from watchparty_stage.services.events import ALL_EVENTS, SESSION_CANCELLED, SESSION_DECIDED
from watchparty_stage.services.external_events import (
    SYNCED_EVENTS,
    ExternalEventAdapter,
    ExternalEventSync,
)
from watchparty_stage.services.scheduler import RecoveryReport, SessionScheduler
from watchparty_stage.services.sessions import SessionService
from watchparty_stage.services.status_panel import PanelSnapshot, StatusPanelService
from watchparty_stage.services.vote_caps import VoteCapEnforcer, VoteCapPolicy
from watchparty_stage.services.voting import VoteOutcome, VoteService

logger = logging.getLogger(__name__)


class LifecycleEngine:
    """Facade over every lifecycle component."""

    def __init__(
        self,
        store: SessionStore,
        *,
        bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
        horizon: timedelta | None = None,
        sweep_hour_utc: int | None = None,
        vote_caps: VoteCapPolicy | None = None,
        external_events: ExternalEventAdapter | None = None,
        dashboard: DashboardClient | None = None,
    ) -> None:
        """Build the engine and register the default subscribers.

        Args:
            store: Session store shared by every component
            bus: Event bus; a new one is created when omitted
            clock: Source of the current time
            horizon: Near-term timer horizon for the scheduler
            sweep_hour_utc: Hour of the daily sweep
            vote_caps: Default vote cap policy; settings when omitted
            external_events: Adapter for calendar-style events; sync is off without one
            dashboard: Dashboard client; notifications are off unless it is enabled
        """
        self.store = store
        self.bus = bus or EventBus()
        self.clock = clock

        self.closure = ClosureEngine(store, self.bus)
        self.carryover = CarryoverManager(store)
        self.scheduler = SessionScheduler(
            store,
            self.closure,
            horizon=horizon,
            sweep_hour_utc=sweep_hour_utc,
            clock=clock,
        )
        self.vote_caps = VoteCapEnforcer(store, vote_caps)
        self.votes = VoteService(store, self.bus, self.vote_caps, clock=clock)
        self.sessions = SessionService(store, self.bus, self.scheduler, clock=clock)
        self.status_panel = StatusPanelService(store)

        self.external_events = external_events
        self.dashboard = dashboard
        self._register_default_subscribers()

    def _register_default_subscribers(self) -> None:
        # Carryover must run before any surface sees the decision.
        self.bus.subscribe_many((SESSION_DECIDED, SESSION_CANCELLED), self.carryover.handle_event)
        self.bus.subscribe_many(ALL_EVENTS, self.status_panel.handle_event)

        if self.external_events is not None:
            sync = ExternalEventSync(self.store, self.external_events)
            self.bus.subscribe_many(SYNCED_EVENTS, sync.handle_event)
            logger.info("External event sync enabled")

        if self.dashboard is not None and self.dashboard.enabled:
            notifier = DashboardNotifier(self.dashboard)
            self.bus.subscribe_many(ALL_EVENTS, notifier.handle_event)
            logger.info("Dashboard notifications enabled")

    # --- Background lifecycle -----------------------------------------------------
    async def start(self) -> RecoveryReport:
        """Recover missed closures and start the daily sweep."""
        return await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        if self.dashboard is not None:
            await self.dashboard.close()
        close = getattr(self.external_events, "close", None)
        if close is not None:
            await close()

    # --- Scheduling and closure ---------------------------------------------------
    async def schedule_closure(self, session_id: int, voting_end_time: datetime | None) -> str:
        return await self.scheduler.schedule_closure(session_id, voting_end_time)

    def cancel_schedule(self, session_id: int) -> bool:
        return self.scheduler.cancel_schedule(session_id)

    async def recover_on_startup(self) -> RecoveryReport:
        return await self.scheduler.recover_on_startup()

    async def close_session(self, session_id: int) -> ClosureResult:
        """Close voting now, regardless of the scheduled end time."""
        self.scheduler.cancel_schedule(session_id)
        return await self.closure.close_session(session_id)

    async def resolve_tie(self, session_id: int, chosen_item_id: int) -> ClosureResult:
        """Pick the winner by hand; any armed timer is cleared first."""
        self.scheduler.cancel_schedule(session_id)
        return await self.closure.resolve_tie(session_id, chosen_item_id)

    async def carry_over(self, session_id: int) -> CarryoverResult:
        return await self.carryover.carry_over(session_id)

    # --- Votes --------------------------------------------------------------------
    async def cast_vote(self, item_id: int, user_id: str, direction: str) -> VoteOutcome:
        return await self.votes.cast_vote(item_id, user_id, direction)

    # --- Sessions and nominations -------------------------------------------------
    async def create_session(self, community_id: int, name: str, **kwargs: Any) -> VotingSession:
        return await self.sessions.create_session(community_id, name, **kwargs)

    async def get_session(self, session_id: int) -> VotingSession:
        return await self.sessions.get_session(session_id)

    async def list_items(self, session_id: int) -> list[ContentItem]:
        return await self.sessions.list_items(session_id)

    async def reschedule_session(
        self,
        session_id: int,
        *,
        scheduled_at: datetime | None,
        voting_end_time: datetime | None,
    ) -> VotingSession:
        return await self.sessions.reschedule_session(
            session_id,
            scheduled_at=scheduled_at,
            voting_end_time=voting_end_time,
        )

    async def cancel_session(self, session_id: int) -> VotingSession:
        return await self.sessions.cancel_session(session_id)

    async def complete_session(self, session_id: int) -> VotingSession:
        return await self.sessions.complete_session(session_id)

    async def nominate(
        self,
        community_id: int,
        title: str,
        content_type: str,
        *,
        nominated_by: str | None = None,
    ) -> ContentItem:
        return await self.sessions.nominate(
            community_id,
            title,
            content_type,
            nominated_by=nominated_by,
        )

    async def ban_item(self, item_id: int) -> ContentItem:
        return await self.sessions.ban_item(item_id)

    async def skip_item(self, item_id: int) -> ContentItem:
        return await self.sessions.skip_item(item_id)

    async def update_community_config(self, community_id: int, **changes: Any) -> CommunityConfig:
        return await self.sessions.update_community_config(community_id, **changes)

    async def get_panel(self, community_id: int) -> PanelSnapshot:
        return await self.status_panel.get_panel(community_id)
