"""Voting closure: turn an ended voting window into a decision.

The engine has one entry point per trigger kind (``close_session`` for
timers, sweeps, recovery and manual closes; ``resolve_tie`` for operators)
and both share the same guard: only a session that is in ``voting``, not
awaiting a tie-break and not already being decided is acted on. Everything
else is a no-op that publishes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from watchparty_stage.core.errors import ItemNotFound, ItemNotInSession, SessionNotFound
from watchparty_stage.models import ContentItem, VotingSession
from watchparty_stage.models.session import SESSION_STATUS_VOTING
from watchparty_stage.repositories.session_store import SessionStore
from watchparty_stage.services.event_bus import EventBus
from watchparty_stage.services.events import (
    SESSION_DECIDED,
    SESSION_TIE,
    ItemTally,
    SessionDecided,
    SessionTie,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

OUTCOME_DECIDED = "decided"
OUTCOME_TIE = "tie"
OUTCOME_NOOP = "noop"


@dataclass(frozen=True)
class ClosureResult:
    """What a closure attempt did."""

    session_id: int
    outcome: str
    winner: ItemTally | None = None
    tallies: tuple[ItemTally, ...] = ()
    tied: tuple[ItemTally, ...] = ()

    @property
    def changed(self) -> bool:
        return self.outcome != OUTCOME_NOOP


def rank_tallies(tallies: list[ItemTally]) -> list[ItemTally]:
    """Order tallies by score, highest first.

    ``tallies`` must already be in nomination order; the sort is stable so
    equal scores keep it.
    """
    return sorted(tallies, key=lambda tally: -tally.score)


class ClosureEngine:
    """Tallies votes for a session and records the winner or a tie."""

    def __init__(self, store: SessionStore, bus: EventBus) -> None:
        self.store = store
        self.bus = bus
        # Sessions whose closure is in progress ("deciding", never persisted).
        self._deciding: set[int] = set()

    def is_deciding(self, session_id: int) -> bool:
        return session_id in self._deciding

    async def close_session(self, session_id: int) -> ClosureResult:
        """Close voting for a session whose window has ended.

        Args:
            session_id: Session to close

        Returns:
            ClosureResult describing the decision, tie or no-op

        Raises:
            SessionNotFound: If the session does not exist
        """
        if session_id in self._deciding:
            logger.debug("Session %d is already being decided", session_id)
            return ClosureResult(session_id=session_id, outcome=OUTCOME_NOOP)

        self._deciding.add(session_id)
        try:
            voting_session = await self.store.get_session(session_id)
            if voting_session is None:
                raise SessionNotFound(session_id)

            if not self._accepts_closure(voting_session):
                logger.debug(
                    "Skipping closure for session %d (status=%s, awaiting_tie_break=%s)",
                    session_id,
                    voting_session.status,
                    voting_session.awaiting_tie_break,
                )
                return ClosureResult(session_id=session_id, outcome=OUTCOME_NOOP)

            items = await self.store.list_items_for_session(session_id)
            tallies = await self._tally(items)

            if not tallies:
                logger.info("Session %d closed with no nominations", session_id)
                return await self._decide(voting_session, None, (), manual=False)

            ranked = rank_tallies(tallies)
            top_score = ranked[0].score
            leaders = tuple(tally for tally in ranked if tally.score == top_score)

            if len(leaders) == 1:
                return await self._decide(voting_session, leaders[0], tuple(ranked), manual=False)

            await self.store.set_tie_pending(session_id, True)
            logger.info(
                "Tie detected for session %d: %d items tied with score %d",
                session_id,
                len(leaders),
                top_score,
            )
            await self.bus.publish(
                SESSION_TIE,
                SessionTie(
                    community_id=voting_session.community_id,
                    session_id=session_id,
                    tied=leaders,
                    tallies=tuple(ranked),
                ),
            )
            return ClosureResult(
                session_id=session_id,
                outcome=OUTCOME_TIE,
                tallies=tuple(ranked),
                tied=leaders,
            )
        finally:
            self._deciding.discard(session_id)

    async def resolve_tie(self, session_id: int, chosen_item_id: int) -> ClosureResult:
        """Pick ``chosen_item_id`` as the winner of a session still in voting.

        Used by operators after a tie, or to pick a winner manually before the
        window ends. Decided, completed or cancelled sessions are left alone.

        Raises:
            SessionNotFound: If the session does not exist
            ItemNotFound: If the item does not exist
            ItemNotInSession: If the item belongs to another session
        """
        voting_session = await self.store.get_session(session_id)
        if voting_session is None:
            raise SessionNotFound(session_id)

        if voting_session.status != SESSION_STATUS_VOTING or session_id in self._deciding:
            logger.info(
                "Ignoring tie resolution for session %d in status %s",
                session_id,
                voting_session.status,
            )
            return ClosureResult(session_id=session_id, outcome=OUTCOME_NOOP)

        chosen = await self.store.get_item(chosen_item_id)
        if chosen is None:
            raise ItemNotFound(chosen_item_id)
        if chosen.session_id != session_id:
            raise ItemNotInSession(chosen_item_id, session_id)

        self._deciding.add(session_id)
        try:
            items = await self.store.list_items_for_session(session_id)
            ranked = tuple(rank_tallies(await self._tally(items)))
            winner = next(tally for tally in ranked if tally.item_id == chosen_item_id)
            return await self._decide(voting_session, winner, ranked, manual=True)
        finally:
            self._deciding.discard(session_id)

    @staticmethod
    def _accepts_closure(voting_session: VotingSession) -> bool:
        return (
            voting_session.status == SESSION_STATUS_VOTING
            and not voting_session.awaiting_tie_break
        )

    async def _tally(self, items: list[ContentItem]) -> list[ItemTally]:
        tallies = []
        for item in items:
            counts = await self.store.count_votes_by_direction(item.id)
            tallies.append(
                ItemTally(
                    item_id=item.id,
                    title=item.title,
                    upvotes=counts.up,
                    downvotes=counts.down,
                )
            )
        return tallies

    async def _decide(
        self,
        voting_session: VotingSession,
        winner: ItemTally | None,
        tallies: tuple[ItemTally, ...],
        *,
        manual: bool,
    ) -> ClosureResult:
        session_id = voting_session.id
        await self.store.record_decision(session_id, winner.item_id if winner else None)

        if winner is not None:
            logger.info(
                "Session %d decided: '%s' wins with score %d%s",
                session_id,
                winner.title,
                winner.score,
                " (manual pick)" if manual else "",
            )

        await self.bus.publish(
            SESSION_DECIDED,
            SessionDecided(
                community_id=voting_session.community_id,
                session_id=session_id,
                winner=winner,
                tallies=tallies,
                manual=manual,
                external_event_ref=voting_session.external_event_ref,
            ),
        )
        return ClosureResult(
            session_id=session_id,
            outcome=OUTCOME_DECIDED,
            winner=winner,
            tallies=tallies,
        )
