"""Per-community status panel snapshots rebuilt from the store on every event."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from watchparty_stage.db.time import ensure_utc, utcnow
from watchparty_stage.models import VotingSession
from watchparty_stage.models.session import (
    SESSION_STATUS_COMPLETED,
    SESSION_STATUS_DECIDED,
    SESSION_STATUS_PLANNING,
    SESSION_STATUS_VOTING,
)
from watchparty_stage.repositories.session_store import SessionStore
from watchparty_stage.services.closure import rank_tallies
from watchparty_stage.services.events import Event, ItemTally

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PanelSession:
    session_id: int
    name: str
    status: str
    content_category: str
    scheduled_at: datetime | None
    voting_end_time: datetime | None
    awaiting_tie_break: bool
    tallies: tuple[ItemTally, ...] = ()


@dataclass(frozen=True)
class PanelDecision:
    session_id: int
    name: str
    status: str
    winner_item_id: int | None
    winner_title: str | None


@dataclass(frozen=True)
class PanelSnapshot:
    """Everything a community's status panel shows."""

    community_id: int
    active_session: PanelSession | None
    last_decision: PanelDecision | None
    last_event: str | None = None
    refreshed_at: datetime = field(default_factory=utcnow)


class StatusPanelService:
    """Keeps one snapshot per community.

    Snapshots are always rebuilt from the store; event payloads only tell
    the service which community to refresh.
    """

    def __init__(self, store: SessionStore) -> None:
        self.store = store
        self._snapshots: dict[int, PanelSnapshot] = {}

    async def handle_event(self, event: Event) -> None:
        """Event bus subscriber for every lifecycle event."""
        community_id = event.community_id
        if community_id is None:
            return
        await self.refresh(community_id, last_event=event.name)

    async def refresh(self, community_id: int, *, last_event: str | None = None) -> PanelSnapshot:
        snapshot = PanelSnapshot(
            community_id=community_id,
            active_session=await self._active_session(community_id),
            last_decision=await self._last_decision(community_id),
            last_event=last_event,
        )
        self._snapshots[community_id] = snapshot
        logger.debug("Refreshed status panel for community %d (%s)", community_id, last_event)
        return snapshot

    async def get_panel(self, community_id: int) -> PanelSnapshot:
        """Return the current snapshot, building it on first access."""
        snapshot = self._snapshots.get(community_id)
        if snapshot is None:
            snapshot = await self.refresh(community_id)
        return snapshot

    async def _active_session(self, community_id: int) -> PanelSession | None:
        voting_session = await self.store.get_active_voting_session(community_id)
        if voting_session is None:
            planning = await self.store.list_sessions_by_status(
                SESSION_STATUS_PLANNING, community_id
            )
            voting_session = planning[0] if planning else None
        if voting_session is None:
            return None

        tallies = []
        for item in await self.store.list_items_for_session(voting_session.id):
            counts = await self.store.count_votes_by_direction(item.id)
            tallies.append(
                ItemTally(item_id=item.id, title=item.title, upvotes=counts.up, downvotes=counts.down)
            )

        return PanelSession(
            session_id=voting_session.id,
            name=voting_session.name,
            status=voting_session.status,
            content_category=voting_session.content_category,
            scheduled_at=ensure_utc(voting_session.scheduled_at),
            voting_end_time=ensure_utc(voting_session.voting_end_time),
            awaiting_tie_break=voting_session.awaiting_tie_break,
            tallies=tuple(rank_tallies(tallies))
            if voting_session.status == SESSION_STATUS_VOTING
            else tuple(tallies),
        )

    async def _last_decision(self, community_id: int) -> PanelDecision | None:
        finished: list[VotingSession] = []
        for status in (SESSION_STATUS_DECIDED, SESSION_STATUS_COMPLETED):
            finished.extend(await self.store.list_sessions_by_status(status, community_id))
        if not finished:
            return None

        latest = max(finished, key=lambda candidate: candidate.id)
        winner_title = None
        if latest.winner_item_id is not None:
            winner = await self.store.get_item(latest.winner_item_id)
            winner_title = winner.title if winner is not None else None

        return PanelDecision(
            session_id=latest.id,
            name=latest.name,
            status=latest.status,
            winner_item_id=latest.winner_item_id,
            winner_title=winner_title,
        )
