# src/watchparty_stage/models/session.py
"""Models describing voting sessions and their lifecycle state."""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from watchparty_stage.db.session import Base
from watchparty_stage.db.time import utcnow

SESSION_STATUS_PLANNING = "planning"
SESSION_STATUS_VOTING = "voting"
SESSION_STATUS_DECIDED = "decided"
SESSION_STATUS_COMPLETED = "completed"
SESSION_STATUS_CANCELLED = "cancelled"

# Sessions that still accept nominations.
OPEN_SESSION_STATUSES = (SESSION_STATUS_PLANNING, SESSION_STATUS_VOTING)

CATEGORY_MOVIE = "movie"
CATEGORY_TV_SHOW = "tv_show"
CATEGORY_MIXED = "mixed"


def category_accepts(category: str, content_type: str) -> bool:
    """Return True if a session of ``category`` accepts items of ``content_type``."""
    return category == CATEGORY_MIXED or category == content_type


class VotingSession(Base):
    """One bounded voting round owned by a community.

    Status moves planning -> voting -> decided -> completed, or to cancelled.
    A tie leaves the session in voting with ``awaiting_tie_break`` set until
    an operator picks the winner.
    """

    __tablename__ = "voting_session"
    __table_args__ = (
        CheckConstraint(
            "status IN ('planning', 'voting', 'decided', 'completed', 'cancelled')",
            name="ck_voting_session_status",
        ),
        CheckConstraint(
            "content_category IN ('movie', 'tv_show', 'mixed')",
            name="ck_voting_session_category",
        ),
        Index("ix_voting_session_community_status", "community_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    community_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=SESSION_STATUS_PLANNING)
    content_category: Mapped[str] = mapped_column(Text, nullable=False, default=CATEGORY_MIXED)

    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    voting_end_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Plain integer rather than a foreign key; content_item already points back here.
    winner_item_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    awaiting_tie_break: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    external_event_ref: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
