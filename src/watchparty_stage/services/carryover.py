"""Carry non-winning content items of a finished session into the next round."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from watchparty_stage.core.errors import SessionNotFound
from watchparty_stage.models.content import (
    ITEM_STATUS_PENDING,
    ITEM_STATUS_SCHEDULED,
    TERMINAL_ITEM_STATUSES,
)
from watchparty_stage.repositories.session_store import SessionStore
from watchparty_stage.services.events import Event

logger = logging.getLogger(__name__)


@dataclass
class CarryoverResult:
    """Outcome of one carryover pass."""

    session_id: int
    # item id -> session it joined, or None when it is waiting unassigned
    moved: dict[int, int | None] = field(default_factory=dict)
    skipped: list[int] = field(default_factory=list)


class CarryoverManager:
    """Releases leftover items so the next open session can pick them up."""

    def __init__(self, store: SessionStore) -> None:
        self.store = store

    async def carry_over(self, session_id: int) -> CarryoverResult:
        """Move every non-winning, non-terminal item out of ``session_id``.

        Each moved item loses its votes, returns to ``pending`` and is either
        placed in the community's compatible open session or flagged as
        carried over for the next session created.

        Raises:
            SessionNotFound: If the session does not exist
        """
        voting_session = await self.store.get_session(session_id)
        if voting_session is None:
            raise SessionNotFound(session_id)

        result = CarryoverResult(session_id=session_id)
        items = await self.store.list_items_for_session(session_id)
        for item in items:
            if (
                item.id == voting_session.winner_item_id
                or item.status == ITEM_STATUS_SCHEDULED
                or item.status in TERMINAL_ITEM_STATUSES
            ):
                result.skipped.append(item.id)
                continue

            await self.store.reassign_item(item.id, None)
            await self.store.reset_votes(item.id)
            await self.store.update_item_status(item.id, ITEM_STATUS_PENDING)
            await self.store.set_item_carried_over(item.id, True)

            target = await self.store.find_open_session(
                voting_session.community_id,
                item.content_type,
                exclude_session_id=session_id,
            )
            if target is not None:
                await self.store.reassign_item(item.id, target.id)
                result.moved[item.id] = target.id
            else:
                result.moved[item.id] = None

        logger.info(
            "Carried over %d item(s) from session %d (%d left in place)",
            len(result.moved),
            session_id,
            len(result.skipped),
        )
        return result

    async def handle_event(self, event: Event) -> None:
        """Event bus subscriber for ``session.decided`` and ``session.cancelled``."""
        await self.carry_over(event.payload.session_id)
