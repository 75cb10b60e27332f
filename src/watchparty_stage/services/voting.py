"""Recording votes on content items within a session."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from watchparty_stage.core.errors import ItemNotFound, VoteRejected
from watchparty_stage.db.time import ensure_utc, utcnow
from watchparty_stage.models.session import SESSION_STATUS_VOTING
from watchparty_stage.models.vote import VOTE_DOWN, VOTE_UP
from watchparty_stage.repositories.session_store import SessionStore
from watchparty_stage.services.event_bus import EventBus
from watchparty_stage.services.events import VOTE_CAST, VoteCast
from watchparty_stage.services.vote_caps import VoteCapEnforcer

logger = logging.getLogger(__name__)

VOTE_ACTION_ADDED = "added"
VOTE_ACTION_CHANGED = "changed"
VOTE_ACTION_REMOVED = "removed"

VOTE_DIRECTIONS = (VOTE_UP, VOTE_DOWN)


@dataclass(frozen=True)
class VoteOutcome:
    """Result of a cast vote with the item's fresh totals."""

    item_id: int
    session_id: int
    user_id: str
    action: str
    # The user's vote after the operation; None once toggled off.
    direction: str | None
    upvotes: int
    downvotes: int

    @property
    def score(self) -> int:
        return self.upvotes - self.downvotes


class VoteService:
    """Applies toggle semantics and vote caps for a single vote."""

    def __init__(
        self,
        store: SessionStore,
        bus: EventBus,
        enforcer: VoteCapEnforcer,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.bus = bus
        self.enforcer = enforcer
        self.clock = clock

    async def cast_vote(self, item_id: int, user_id: str, direction: str) -> VoteOutcome:
        """Record ``user_id``'s ``direction`` vote on an item.

        Voting the same direction again removes the vote; the opposite
        direction replaces it. Removing a vote is never capped.

        Args:
            item_id: Content item being voted on
            user_id: Voting user
            direction: ``up`` or ``down``

        Returns:
            VoteOutcome with the action taken and the item's totals

        Raises:
            ValueError: If the direction is unknown
            ItemNotFound: If the item does not exist
            VoteRejected: If the session is not open for votes or a cap is hit
        """
        if direction not in VOTE_DIRECTIONS:
            raise ValueError(f"Unknown vote direction: {direction}")

        item = await self.store.get_item(item_id)
        if item is None:
            raise ItemNotFound(item_id)
        if item.session_id is None:
            raise VoteRejected("not_in_session", "This item is not part of a voting session")

        voting_session = await self.store.get_session(item.session_id)
        if voting_session is None or voting_session.status != SESSION_STATUS_VOTING:
            raise VoteRejected("session_closed", "Voting is not open for this session")
        if voting_session.awaiting_tie_break:
            raise VoteRejected("session_closed", "Voting has ended and a tie-break is pending")

        end_time = ensure_utc(voting_session.voting_end_time)
        if end_time is not None and end_time <= self.clock():
            raise VoteRejected("voting_ended", "The voting period for this session has ended")

        existing = await self.store.get_vote(item_id, user_id)
        if existing is not None and existing.direction == direction:
            await self.store.delete_vote(item_id, user_id)
            action = VOTE_ACTION_REMOVED
            current: str | None = None
        else:
            await self.enforcer.ensure_within_cap(
                community_id=voting_session.community_id,
                session_id=voting_session.id,
                user_id=user_id,
                direction=direction,
            )
            await self.store.upsert_vote(item_id, user_id, direction)
            action = VOTE_ACTION_ADDED if existing is None else VOTE_ACTION_CHANGED
            current = direction

        counts = await self.store.count_votes_by_direction(item_id)
        logger.debug(
            "Vote %s by %s on item %d (session %d): +%d/-%d",
            action,
            user_id,
            item_id,
            voting_session.id,
            counts.up,
            counts.down,
        )

        await self.bus.publish(
            VOTE_CAST,
            VoteCast(
                community_id=voting_session.community_id,
                session_id=voting_session.id,
                item_id=item_id,
                user_id=user_id,
                direction=direction,
                action=action,
                upvotes=counts.up,
                downvotes=counts.down,
            ),
        )
        return VoteOutcome(
            item_id=item_id,
            session_id=voting_session.id,
            user_id=user_id,
            action=action,
            direction=current,
            upvotes=counts.up,
            downvotes=counts.down,
        )
