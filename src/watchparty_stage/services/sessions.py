"""Command-side operations on sessions and nominations.

The SessionService is what the command layer talks to when a session is
created, moved, cancelled or completed and when content is nominated. Every
operation validates before it writes, and publishes the matching event once
the write succeeded so the surfaces can refresh.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from watchparty_stage.core.errors import (
    ActiveSessionExists,
    InvalidItemState,
    InvalidSessionState,
    ItemNotFound,
    ScheduleValidationError,
    SessionNotFound,
    TitleBanned,
)
from watchparty_stage.db.time import ensure_utc, utcnow
from watchparty_stage.models import CommunityConfig, ContentItem, VotingSession
from watchparty_stage.models.content import (
    CONTENT_TYPE_MOVIE,
    CONTENT_TYPE_TV_SHOW,
    ITEM_STATUS_BANNED,
    ITEM_STATUS_PENDING,
    ITEM_STATUS_PLANNED,
    ITEM_STATUS_SCHEDULED,
    ITEM_STATUS_SKIPPED,
    ITEM_STATUS_WATCHED,
    QUEUED_ITEM_STATUSES,
)
from watchparty_stage.models.session import (
    CATEGORY_MIXED,
    CATEGORY_MOVIE,
    CATEGORY_TV_SHOW,
    OPEN_SESSION_STATUSES,
    SESSION_STATUS_CANCELLED,
    SESSION_STATUS_COMPLETED,
    SESSION_STATUS_DECIDED,
    SESSION_STATUS_PLANNING,
    SESSION_STATUS_VOTING,
    category_accepts,
)
from watchparty_stage.repositories.session_store import SessionStore
from watchparty_stage.services.event_bus import EventBus
from watchparty_stage.services.events import (
    COMMUNITY_CONFIG_CHANGED,
    ITEM_BANNED,
    ITEM_NOMINATED,
    ITEM_SKIPPED,
    SESSION_CANCELLED,
    SESSION_COMPLETED,
    SESSION_CREATED,
    SESSION_RESCHEDULED,
    CommunityConfigChanged,
    ItemNominated,
    ItemRetired,
    SessionCancelled,
    SessionCompleted,
    SessionScheduled,
)
from watchparty_stage.services.scheduler import SessionScheduler

logger = logging.getLogger(__name__)

SESSION_CATEGORIES = (CATEGORY_MOVIE, CATEGORY_TV_SHOW, CATEGORY_MIXED)
CONTENT_TYPES = (CONTENT_TYPE_MOVIE, CONTENT_TYPE_TV_SHOW)
COMMUNITY_CONFIG_FIELDS = (
    "vote_cap_enabled",
    "vote_cap_ratio_up",
    "vote_cap_ratio_down",
    "vote_cap_minimum",
)


class SessionService:
    """Creates and drives sessions through their command-side transitions."""

    def __init__(
        self,
        store: SessionStore,
        bus: EventBus,
        scheduler: SessionScheduler,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.bus = bus
        self.scheduler = scheduler
        self.clock = clock

    # --- Sessions -----------------------------------------------------------------
    async def create_session(
        self,
        community_id: int,
        name: str,
        *,
        content_category: str = CATEGORY_MIXED,
        scheduled_at: datetime | None = None,
        voting_end_time: datetime | None = None,
        description: str | None = None,
        created_by: str | None = None,
    ) -> VotingSession:
        """Create a session and pull queued items into it.

        A session with a voting end time starts in ``voting`` and has its
        closure scheduled; without one it starts in ``planning``.

        Raises:
            ScheduleValidationError: For a blank name, unknown category or bad times
            ActiveSessionExists: If the community already has a session in voting
        """
        name = (name or "").strip()
        if not name:
            raise ScheduleValidationError("Session name must not be empty")
        if content_category not in SESSION_CATEGORIES:
            raise ScheduleValidationError(f"Unknown content category: {content_category}")

        scheduled_at, voting_end_time = self._validate_times(scheduled_at, voting_end_time)
        status = SESSION_STATUS_VOTING if voting_end_time is not None else SESSION_STATUS_PLANNING
        if status == SESSION_STATUS_VOTING:
            await self._ensure_no_active_voting(community_id)

        voting_session = await self.store.create_session(
            community_id=community_id,
            name=name,
            description=description,
            status=status,
            content_category=content_category,
            scheduled_at=scheduled_at,
            voting_end_time=voting_end_time,
            created_by=created_by,
        )
        session_id = voting_session.id

        pulled = 0
        for item in await self.store.list_unassigned_items(community_id, QUEUED_ITEM_STATUSES):
            if category_accepts(content_category, item.content_type):
                await self.store.reassign_item(item.id, session_id)
                pulled += 1

        logger.info(
            "Created session %d '%s' for community %d in %s with %d queued item(s)",
            session_id,
            name,
            community_id,
            status,
            pulled,
        )

        if status == SESSION_STATUS_VOTING:
            await self.scheduler.schedule_closure(session_id, voting_end_time)

        await self.bus.publish(
            SESSION_CREATED,
            SessionScheduled(
                community_id=community_id,
                session_id=session_id,
                name=name,
                status=status,
                scheduled_at=scheduled_at,
                voting_end_time=voting_end_time,
            ),
        )
        return await self.get_session(session_id)

    async def get_session(self, session_id: int) -> VotingSession:
        """Return a session or raise SessionNotFound."""
        voting_session = await self.store.get_session(session_id)
        if voting_session is None:
            raise SessionNotFound(session_id)
        return voting_session

    async def list_items(self, session_id: int) -> list[ContentItem]:
        await self.get_session(session_id)
        return await self.store.list_items_for_session(session_id)

    async def reschedule_session(
        self,
        session_id: int,
        *,
        scheduled_at: datetime | None,
        voting_end_time: datetime | None,
    ) -> VotingSession:
        """Move a planning or voting session to new times.

        The armed timer is cleared before the new times are written, then the
        closure is scheduled again. A planning session given a voting end time
        opens for voting.

        Raises:
            SessionNotFound: If the session does not exist
            InvalidSessionState: If the session is no longer open or awaits a tie-break
            ScheduleValidationError: If the new times are inconsistent
            ActiveSessionExists: If opening voting would clash with another session
        """
        voting_session = await self.get_session(session_id)
        if voting_session.status not in OPEN_SESSION_STATUSES:
            raise InvalidSessionState(
                f"Session {session_id} is {voting_session.status} and cannot be rescheduled"
            )
        if voting_session.awaiting_tie_break:
            raise InvalidSessionState(f"Session {session_id} is waiting for a tie-break")

        scheduled_at, voting_end_time = self._validate_times(scheduled_at, voting_end_time)
        status = voting_session.status
        if status == SESSION_STATUS_VOTING and voting_end_time is None:
            raise ScheduleValidationError("A session in voting needs a voting end time")
        if status == SESSION_STATUS_PLANNING and voting_end_time is not None:
            await self._ensure_no_active_voting(voting_session.community_id)
            status = SESSION_STATUS_VOTING

        self.scheduler.cancel_schedule(session_id)
        await self.store.update_session_times(
            session_id,
            scheduled_at=scheduled_at,
            voting_end_time=voting_end_time,
        )
        if status != voting_session.status:
            await self.store.update_session_status(session_id, status)

        logger.info("Rescheduled session %d (voting ends %s)", session_id, voting_end_time)
        if status == SESSION_STATUS_VOTING:
            await self.scheduler.schedule_closure(session_id, voting_end_time)

        await self.bus.publish(
            SESSION_RESCHEDULED,
            SessionScheduled(
                community_id=voting_session.community_id,
                session_id=session_id,
                name=voting_session.name,
                status=status,
                scheduled_at=scheduled_at,
                voting_end_time=voting_end_time,
                external_event_ref=voting_session.external_event_ref,
            ),
        )
        return await self.get_session(session_id)

    async def cancel_session(self, session_id: int) -> VotingSession:
        """Cancel a session; completed or already cancelled sessions are left alone.

        A winner already chosen goes back to ``planned`` outside the session.
        The remaining items are carried over by the ``session.cancelled``
        subscribers.
        """
        voting_session = await self.get_session(session_id)
        previous_status = voting_session.status
        if previous_status in (SESSION_STATUS_COMPLETED, SESSION_STATUS_CANCELLED):
            logger.info("Session %d is already %s; nothing to cancel", session_id, previous_status)
            return voting_session

        self.scheduler.cancel_schedule(session_id)

        winner_id = voting_session.winner_item_id
        if winner_id is not None:
            winner = await self.store.get_item(winner_id)
            if winner is not None and winner.status == ITEM_STATUS_SCHEDULED:
                await self.store.reassign_item(winner_id, None)
                await self.store.update_item_status(winner_id, ITEM_STATUS_PLANNED)

        await self.store.set_tie_pending(session_id, False)
        await self.store.update_session_status(session_id, SESSION_STATUS_CANCELLED)
        logger.info("Cancelled session %d (was %s)", session_id, previous_status)

        await self.bus.publish(
            SESSION_CANCELLED,
            SessionCancelled(
                community_id=voting_session.community_id,
                session_id=session_id,
                previous_status=previous_status,
                external_event_ref=voting_session.external_event_ref,
            ),
        )
        return await self.get_session(session_id)

    async def complete_session(self, session_id: int) -> VotingSession:
        """Mark a decided session as watched.

        Raises:
            SessionNotFound: If the session does not exist
            InvalidSessionState: If the session has not been decided
        """
        voting_session = await self.get_session(session_id)
        if voting_session.status != SESSION_STATUS_DECIDED:
            raise InvalidSessionState(
                f"Session {session_id} is {voting_session.status}; only decided sessions complete"
            )

        winner_id = voting_session.winner_item_id
        if winner_id is not None:
            await self.store.update_item_status(
                winner_id,
                ITEM_STATUS_WATCHED,
                watched_at=self.clock(),
            )
        await self.store.update_session_status(session_id, SESSION_STATUS_COMPLETED)
        logger.info("Completed session %d", session_id)

        await self.bus.publish(
            SESSION_COMPLETED,
            SessionCompleted(
                community_id=voting_session.community_id,
                session_id=session_id,
                winner_item_id=winner_id,
            ),
        )
        return await self.get_session(session_id)

    # --- Nominations --------------------------------------------------------------
    async def nominate(
        self,
        community_id: int,
        title: str,
        content_type: str = CONTENT_TYPE_MOVIE,
        *,
        nominated_by: str | None = None,
    ) -> ContentItem:
        """Add a content item, placing it in the open session that accepts it.

        Raises:
            ValueError: If the title is blank or the content type unknown
            TitleBanned: If the title is banned in the community
        """
        title = (title or "").strip()
        if not title:
            raise ValueError("Title must not be empty")
        if content_type not in CONTENT_TYPES:
            raise ValueError(f"Unknown content type: {content_type}")
        if await self.store.is_title_banned(community_id, title):
            raise TitleBanned(title)

        target = await self.store.find_open_session(community_id, content_type)
        item = await self.store.create_item(
            community_id=community_id,
            title=title,
            content_type=content_type,
            status=ITEM_STATUS_PENDING,
            session_id=target.id if target is not None else None,
            nominated_by=nominated_by,
            nominated_at=self.clock(),
        )
        logger.info(
            "Nominated '%s' (item %d) in community %d%s",
            title,
            item.id,
            community_id,
            f" into session {target.id}" if target is not None else "",
        )

        await self.bus.publish(
            ITEM_NOMINATED,
            ItemNominated(
                community_id=community_id,
                item_id=item.id,
                title=title,
                session_id=item.session_id,
            ),
        )
        return item

    async def ban_item(self, item_id: int) -> ContentItem:
        """Ban an item's title; later nominations of it are refused.

        Banning an already banned item is a no-op.

        Raises:
            ItemNotFound: If the item does not exist
            InvalidItemState: If the item is a scheduled winner
        """
        return await self._retire_item(item_id, ITEM_STATUS_BANNED, ITEM_BANNED)

    async def skip_item(self, item_id: int) -> ContentItem:
        """Drop a queued item without watching it.

        Raises:
            ItemNotFound: If the item does not exist
            InvalidItemState: If the item is not pending or planned
        """
        return await self._retire_item(item_id, ITEM_STATUS_SKIPPED, ITEM_SKIPPED)

    async def _retire_item(self, item_id: int, status: str, event_name: str) -> ContentItem:
        item = await self.store.get_item(item_id)
        if item is None:
            raise ItemNotFound(item_id)
        if item.status == status:
            logger.info("Item %d is already %s", item_id, status)
            return item

        allowed = QUEUED_ITEM_STATUSES
        if status == ITEM_STATUS_BANNED:
            allowed = (*QUEUED_ITEM_STATUSES, ITEM_STATUS_SKIPPED, ITEM_STATUS_WATCHED)
        if item.status not in allowed:
            raise InvalidItemState(f"Item {item_id} is {item.status} and cannot be {status}")

        previous_session_id = item.session_id
        removed_votes = await self.store.retire_item(item_id, status)
        logger.info(
            "Item %d '%s' is now %s (left session %s, %d vote(s) removed)",
            item_id,
            item.title,
            status,
            previous_session_id,
            removed_votes,
        )

        await self.bus.publish(
            event_name,
            ItemRetired(
                community_id=item.community_id,
                item_id=item_id,
                title=item.title,
                status=status,
                session_id=previous_session_id,
            ),
        )
        return item

    # --- Community configuration --------------------------------------------------
    async def update_community_config(self, community_id: int, **changes: Any) -> CommunityConfig:
        """Store vote cap overrides; a None value falls back to the defaults."""
        unknown = set(changes) - set(COMMUNITY_CONFIG_FIELDS)
        if unknown:
            raise ValueError(f"Unknown community settings: {', '.join(sorted(unknown))}")

        config = await self.store.upsert_community_config(community_id, **changes)
        logger.info("Updated configuration for community %d: %s", community_id, changes)
        await self.bus.publish(
            COMMUNITY_CONFIG_CHANGED,
            CommunityConfigChanged(community_id=community_id, changes=dict(changes)),
        )
        return config

    # --- Helpers ------------------------------------------------------------------
    def _validate_times(
        self,
        scheduled_at: datetime | None,
        voting_end_time: datetime | None,
    ) -> tuple[datetime | None, datetime | None]:
        scheduled_at = ensure_utc(scheduled_at)
        voting_end_time = ensure_utc(voting_end_time)
        if voting_end_time is None:
            return scheduled_at, None

        if voting_end_time <= self.clock():
            raise ScheduleValidationError("Voting end time must be in the future")
        if scheduled_at is not None and voting_end_time >= scheduled_at:
            raise ScheduleValidationError("Voting must end before the session starts")
        return scheduled_at, voting_end_time

    async def _ensure_no_active_voting(self, community_id: int) -> None:
        active = await self.store.get_active_voting_session(community_id)
        if active is not None:
            raise ActiveSessionExists(community_id, active.id)
