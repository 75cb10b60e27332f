"""Per-user, per-direction vote limits within a session."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from fractions import Fraction

from watchparty_stage.core.errors import VoteRejected
from watchparty_stage.core.settings import settings
from watchparty_stage.models.vote import VOTE_UP
from watchparty_stage.repositories.session_store import SessionStore

logger = logging.getLogger(__name__)


def _as_fraction(ratio: float) -> Fraction:
    # 1/3 arrives as 0.333...; snap it back so 3 items floor to exactly 1.
    return Fraction(ratio).limit_denominator(1000)


def compute_cap(
    direction: str,
    total_items: int,
    ratio_up: float,
    ratio_down: float,
    minimum_cap: int,
) -> int:
    """Return how many votes of ``direction`` one user may cast in a session.

    ``cap = max(minimum_cap, floor(total_items * ratio))`` where the ratio is
    chosen by direction.
    """
    ratio = ratio_up if direction == VOTE_UP else ratio_down
    return max(minimum_cap, math.floor(total_items * _as_fraction(ratio)))


@dataclass(frozen=True)
class VoteCapPolicy:
    """Resolved cap parameters for one community."""

    enabled: bool
    ratio_up: float
    ratio_down: float
    minimum: int

    @classmethod
    def from_settings(cls) -> "VoteCapPolicy":
        return cls(
            enabled=settings.vote_cap_enabled,
            ratio_up=settings.vote_cap_ratio_up,
            ratio_down=settings.vote_cap_ratio_down,
            minimum=settings.vote_cap_minimum,
        )


class VoteCapEnforcer:
    """Checks a pending vote against the user's cap for its direction."""

    def __init__(self, store: SessionStore, defaults: VoteCapPolicy | None = None) -> None:
        self.store = store
        self.defaults = defaults or VoteCapPolicy.from_settings()

    async def policy_for(self, community_id: int) -> VoteCapPolicy:
        """Merge the community's overrides over the defaults."""
        config = await self.store.get_community_config(community_id)
        if config is None:
            return self.defaults

        def pick(value, fallback):
            return fallback if value is None else value

        return VoteCapPolicy(
            enabled=pick(config.vote_cap_enabled, self.defaults.enabled),
            ratio_up=pick(config.vote_cap_ratio_up, self.defaults.ratio_up),
            ratio_down=pick(config.vote_cap_ratio_down, self.defaults.ratio_down),
            minimum=pick(config.vote_cap_minimum, self.defaults.minimum),
        )

    async def ensure_within_cap(
        self,
        *,
        community_id: int,
        session_id: int,
        user_id: str,
        direction: str,
    ) -> None:
        """Raise VoteRejected if recording the vote would exceed the cap.

        Args:
            community_id: Community owning the session
            session_id: Session the voted item belongs to
            user_id: Voting user
            direction: Direction about to be recorded

        Raises:
            VoteRejected: With reason ``cap_reached`` when the user is at the cap
        """
        policy = await self.policy_for(community_id)
        if not policy.enabled:
            return

        total_items = await self.store.count_items_in_session(session_id)
        cap = compute_cap(
            direction,
            total_items,
            policy.ratio_up,
            policy.ratio_down,
            policy.minimum,
        )
        used = await self.store.count_user_votes_in_session(user_id, session_id, direction)
        if used >= cap:
            logger.info(
                "Rejected %s vote from %s in session %d: %d/%d used",
                direction,
                user_id,
                session_id,
                used,
                cap,
            )
            raise VoteRejected(
                "cap_reached",
                f"You have used all {cap} {direction}vote(s) for this session",
            )
