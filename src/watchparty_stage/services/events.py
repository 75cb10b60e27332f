"""Event names and payload records published on the event bus.

Payloads are frozen dataclasses holding identifiers and computed tallies
only, never ORM instances.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from watchparty_stage.db.time import utcnow

SESSION_CREATED = "session.created"
SESSION_RESCHEDULED = "session.rescheduled"
SESSION_DECIDED = "session.decided"
SESSION_TIE = "session.tie"
SESSION_CANCELLED = "session.cancelled"
SESSION_COMPLETED = "session.completed"
VOTE_CAST = "vote.cast"
ITEM_NOMINATED = "item.nominated"
ITEM_BANNED = "item.banned"
ITEM_SKIPPED = "item.skipped"
COMMUNITY_CONFIG_CHANGED = "community.config.changed"

ALL_EVENTS = (
    SESSION_CREATED,
    SESSION_RESCHEDULED,
    SESSION_DECIDED,
    SESSION_TIE,
    SESSION_CANCELLED,
    SESSION_COMPLETED,
    VOTE_CAST,
    ITEM_NOMINATED,
    ITEM_BANNED,
    ITEM_SKIPPED,
    COMMUNITY_CONFIG_CHANGED,
)


@dataclass(frozen=True)
class ItemTally:
    """Vote totals for one content item at the time of a tally."""

    item_id: int
    title: str
    upvotes: int
    downvotes: int

    @property
    def score(self) -> int:
        return self.upvotes - self.downvotes


@dataclass(frozen=True)
class SessionScheduled:
    """Payload for ``session.created`` and ``session.rescheduled``."""

    community_id: int
    session_id: int
    name: str
    status: str
    scheduled_at: datetime | None
    voting_end_time: datetime | None
    external_event_ref: str | None = None


@dataclass(frozen=True)
class SessionDecided:
    """Payload for ``session.decided``; ``winner`` is None for an empty session."""

    community_id: int
    session_id: int
    winner: ItemTally | None
    tallies: tuple[ItemTally, ...]
    manual: bool = False
    external_event_ref: str | None = None


@dataclass(frozen=True)
class SessionTie:
    """Payload for ``session.tie``; ``tied`` is in nomination order."""

    community_id: int
    session_id: int
    tied: tuple[ItemTally, ...]
    tallies: tuple[ItemTally, ...]


@dataclass(frozen=True)
class SessionCancelled:
    community_id: int
    session_id: int
    previous_status: str
    external_event_ref: str | None = None


@dataclass(frozen=True)
class SessionCompleted:
    community_id: int
    session_id: int
    winner_item_id: int | None


@dataclass(frozen=True)
class VoteCast:
    """Payload for ``vote.cast``; ``action`` is added, changed or removed."""

    community_id: int
    session_id: int
    item_id: int
    user_id: str
    direction: str
    action: str
    upvotes: int
    downvotes: int


@dataclass(frozen=True)
class ItemNominated:
    community_id: int
    item_id: int
    title: str
    session_id: int | None


@dataclass(frozen=True)
class ItemRetired:
    """Payload for ``item.banned`` and ``item.skipped``.

    ``session_id`` is the session the item was taken out of, if any.
    """

    community_id: int
    item_id: int
    title: str
    status: str
    session_id: int | None


@dataclass(frozen=True)
class CommunityConfigChanged:
    community_id: int
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Event:
    """Envelope delivered to subscribers."""

    name: str
    payload: Any
    published_at: datetime = field(default_factory=utcnow)

    @property
    def community_id(self) -> int | None:
        return getattr(self.payload, "community_id", None)

    def to_dict(self) -> dict[str, Any]:
        """Return a plain dictionary view of the event."""
        return {
            "type": self.name,
            "published_at": self.published_at,
            "payload": asdict(self.payload),
        }
