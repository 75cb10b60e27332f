"""Data access helpers for sessions, content items, votes and community config."""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import case, delete, func, select
from sqlalchemy.orm import Session

from watchparty_stage.core.errors import ItemNotFound, SessionNotFound
from watchparty_stage.models import CommunityConfig, ContentItem, ContentVote, VotingSession
from watchparty_stage.models.content import ITEM_STATUS_BANNED, ITEM_STATUS_SCHEDULED
from watchparty_stage.models.session import (
    OPEN_SESSION_STATUSES,
    SESSION_STATUS_DECIDED,
    SESSION_STATUS_VOTING,
    category_accepts,
)
from watchparty_stage.models.vote import VOTE_DOWN, VOTE_UP

__all__ = ["SessionStore", "VoteCounts"]


@dataclass(frozen=True)
class VoteCounts:
    """Up and down vote totals for one content item."""

    up: int = 0
    down: int = 0

    @property
    def score(self) -> int:
        return self.up - self.down


class SessionStore:
    """Thin wrapper around database access for the lifecycle engine.

    Every write commits immediately; a failed commit is rolled back so the
    session stays usable for the next operation.

    One store, and so one SQLAlchemy session, serves every request, timer and
    sweep on the event loop. The methods are ``async`` for the callers'
    benefit only: none of them awaits, so each runs to completion without
    yielding and calls never interleave on the shared session. Keep it that
    way; a method that awaits mid-write needs its own session.
    """

    def __init__(self, session: Session) -> None:
        """Initialize the store with a SQLAlchemy session."""
        self.session = session

    def _commit(self) -> None:
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    # --- Sessions -----------------------------------------------------------------
    async def get_session(self, session_id: int) -> VotingSession | None:
        """Return a session by identifier."""
        return self.session.get(VotingSession, session_id)

    async def list_sessions_by_status(
        self, status: str, community_id: int | None = None
    ) -> list[VotingSession]:
        """Return sessions in ``status`` ordered by voting end time."""
        stmt = select(VotingSession).where(VotingSession.status == status)
        if community_id is not None:
            stmt = stmt.where(VotingSession.community_id == community_id)
        stmt = stmt.order_by(VotingSession.voting_end_time, VotingSession.id)
        return list(self.session.scalars(stmt))

    async def get_active_voting_session(self, community_id: int) -> VotingSession | None:
        """Return the community's session in voting, if any."""
        sessions = await self.list_sessions_by_status(SESSION_STATUS_VOTING, community_id)
        return sessions[0] if sessions else None

    async def create_session(self, **data: Any) -> VotingSession:
        """Insert a new session and return the persisted ORM instance."""
        voting_session = VotingSession(**data)
        self.session.add(voting_session)
        self._commit()
        return voting_session

    async def update_session_status(self, session_id: int, status: str) -> None:
        voting_session = self._require_session(session_id)
        voting_session.status = status
        self._commit()

    async def record_decision(self, session_id: int, winner_item_id: int | None) -> None:
        """Store a closure outcome in a single commit.

        The winner becomes ``scheduled`` and the session gets its winner, loses
        any pending tie-break and moves to ``decided``. On failure nothing is
        written and the session stays in voting.
        """
        voting_session = self._require_session(session_id)
        if winner_item_id is not None:
            self._require_item(winner_item_id).status = ITEM_STATUS_SCHEDULED
        voting_session.winner_item_id = winner_item_id
        voting_session.awaiting_tie_break = False
        voting_session.status = SESSION_STATUS_DECIDED
        self._commit()

    async def set_tie_pending(self, session_id: int, pending: bool) -> None:
        voting_session = self._require_session(session_id)
        voting_session.awaiting_tie_break = pending
        self._commit()

    async def update_session_times(
        self,
        session_id: int,
        *,
        scheduled_at: datetime | None,
        voting_end_time: datetime | None,
    ) -> None:
        voting_session = self._require_session(session_id)
        voting_session.scheduled_at = scheduled_at
        voting_session.voting_end_time = voting_end_time
        self._commit()

    async def set_external_event_ref(self, session_id: int, ref: str | None) -> None:
        voting_session = self._require_session(session_id)
        voting_session.external_event_ref = ref
        self._commit()

    async def find_open_session(
        self,
        community_id: int,
        content_type: str,
        *,
        exclude_session_id: int | None = None,
    ) -> VotingSession | None:
        """Return the session currently accepting nominations of ``content_type``.

        Sessions in voting are preferred over planning ones; sessions awaiting
        a tie-break no longer accept items.
        """
        stmt = select(VotingSession).where(
            VotingSession.community_id == community_id,
            VotingSession.status.in_(OPEN_SESSION_STATUSES),
            VotingSession.awaiting_tie_break.is_(False),
        )
        if exclude_session_id is not None:
            stmt = stmt.where(VotingSession.id != exclude_session_id)
        stmt = stmt.order_by(
            case((VotingSession.status == SESSION_STATUS_VOTING, 0), else_=1),
            VotingSession.id,
        )
        for candidate in self.session.scalars(stmt):
            if category_accepts(candidate.content_category, content_type):
                return candidate
        return None

    # --- Content items ------------------------------------------------------------
    async def get_item(self, item_id: int) -> ContentItem | None:
        return self.session.get(ContentItem, item_id)

    async def create_item(self, **data: Any) -> ContentItem:
        """Insert a new content item and return the persisted ORM instance."""
        item = ContentItem(**data)
        self.session.add(item)
        self._commit()
        return item

    async def list_items_for_session(self, session_id: int) -> list[ContentItem]:
        """Return the items assigned to a session in nomination order."""
        stmt = (
            select(ContentItem)
            .where(ContentItem.session_id == session_id)
            .order_by(ContentItem.nominated_at, ContentItem.id)
        )
        return list(self.session.scalars(stmt))

    async def count_items_in_session(self, session_id: int) -> int:
        stmt = select(func.count()).select_from(ContentItem).where(
            ContentItem.session_id == session_id
        )
        return int(self.session.scalar(stmt) or 0)

    async def list_unassigned_items(
        self, community_id: int, statuses: Iterable[str]
    ) -> list[ContentItem]:
        """Return queued items outside any session, carried-over items first."""
        stmt = (
            select(ContentItem)
            .where(
                ContentItem.community_id == community_id,
                ContentItem.session_id.is_(None),
                ContentItem.status.in_(tuple(statuses)),
            )
            .order_by(
                ContentItem.carried_over.desc(),
                ContentItem.nominated_at,
                ContentItem.id,
            )
        )
        return list(self.session.scalars(stmt))

    async def update_item_status(
        self, item_id: int, status: str, *, watched_at: datetime | None = None
    ) -> None:
        item = self._require_item(item_id)
        item.status = status
        if watched_at is not None:
            item.watched_at = watched_at
        self._commit()

    async def reassign_item(self, item_id: int, new_session_id: int | None) -> None:
        """Move an item into another session, or out of every session with None."""
        item = self._require_item(item_id)
        item.session_id = new_session_id
        if new_session_id is not None:
            item.carried_over = False
        self._commit()

    async def set_item_carried_over(self, item_id: int, carried_over: bool) -> None:
        item = self._require_item(item_id)
        item.carried_over = carried_over
        self._commit()

    async def retire_item(self, item_id: int, status: str) -> int:
        """Take an item out of play with a terminal ``status`` in a single commit.

        The item leaves its session, loses its votes and its carried-over
        flag. Returns how many votes were removed.
        """
        item = self._require_item(item_id)
        result = self.session.execute(delete(ContentVote).where(ContentVote.item_id == item_id))
        item.session_id = None
        item.carried_over = False
        item.status = status
        self._commit()
        return int(result.rowcount or 0)

    async def is_title_banned(self, community_id: int, title: str) -> bool:
        stmt = select(func.count()).select_from(ContentItem).where(
            ContentItem.community_id == community_id,
            ContentItem.status == ITEM_STATUS_BANNED,
            func.lower(ContentItem.title) == title.strip().lower(),
        )
        return bool(self.session.scalar(stmt))

    # --- Votes --------------------------------------------------------------------
    async def get_vote(self, item_id: int, user_id: str) -> ContentVote | None:
        return self.session.get(ContentVote, (item_id, user_id))

    async def upsert_vote(self, item_id: int, user_id: str, direction: str) -> None:
        """Record ``direction`` as the user's single vote on the item."""
        vote = self.session.get(ContentVote, (item_id, user_id))
        if vote is None:
            self.session.add(ContentVote(item_id=item_id, user_id=user_id, direction=direction))
        else:
            vote.direction = direction
        self._commit()

    async def delete_vote(self, item_id: int, user_id: str) -> None:
        self.session.execute(
            delete(ContentVote).where(
                ContentVote.item_id == item_id,
                ContentVote.user_id == user_id,
            )
        )
        self._commit()

    async def reset_votes(self, item_id: int) -> int:
        """Delete every vote on an item and return how many were removed."""
        result = self.session.execute(delete(ContentVote).where(ContentVote.item_id == item_id))
        self._commit()
        return int(result.rowcount or 0)

    async def count_votes_by_direction(self, item_id: int) -> VoteCounts:
        stmt = (
            select(ContentVote.direction, func.count())
            .where(ContentVote.item_id == item_id)
            .group_by(ContentVote.direction)
        )
        counts = dict(self.session.execute(stmt).all())
        return VoteCounts(up=int(counts.get(VOTE_UP, 0)), down=int(counts.get(VOTE_DOWN, 0)))

    async def count_user_votes_in_session(
        self, user_id: str, session_id: int, direction: str
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(ContentVote)
            .join(ContentItem, ContentItem.id == ContentVote.item_id)
            .where(
                ContentVote.user_id == user_id,
                ContentVote.direction == direction,
                ContentItem.session_id == session_id,
            )
        )
        return int(self.session.scalar(stmt) or 0)

    # --- Community configuration --------------------------------------------------
    async def get_community_config(self, community_id: int) -> CommunityConfig | None:
        return self.session.get(CommunityConfig, community_id)

    async def upsert_community_config(self, community_id: int, **values: Any) -> CommunityConfig:
        """Apply vote cap overrides for a community, creating the row if needed."""
        config = self.session.get(CommunityConfig, community_id)
        if config is None:
            config = CommunityConfig(community_id=community_id)
            self.session.add(config)
        for key, value in values.items():
            setattr(config, key, value)
        self._commit()
        return config

    # --- Helpers ------------------------------------------------------------------
    def _require_session(self, session_id: int) -> VotingSession:
        voting_session = self.session.get(VotingSession, session_id)
        if voting_session is None:
            raise SessionNotFound(session_id)
        return voting_session

    def _require_item(self, item_id: int) -> ContentItem:
        item = self.session.get(ContentItem, item_id)
        if item is None:
            raise ItemNotFound(item_id)
        return item
