# src/watchparty_stage/models/content.py
"""Models for nominated content items."""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from watchparty_stage.db.session import Base
from watchparty_stage.db.time import utcnow

ITEM_STATUS_PENDING = "pending"
ITEM_STATUS_PLANNED = "planned"
ITEM_STATUS_SCHEDULED = "scheduled"
ITEM_STATUS_WATCHED = "watched"
ITEM_STATUS_SKIPPED = "skipped"
ITEM_STATUS_BANNED = "banned"

# History is preserved for these; they never re-enter a round.
TERMINAL_ITEM_STATUSES = (ITEM_STATUS_WATCHED, ITEM_STATUS_SKIPPED, ITEM_STATUS_BANNED)
# Statuses eligible to be pulled into a new session.
QUEUED_ITEM_STATUSES = (ITEM_STATUS_PENDING, ITEM_STATUS_PLANNED)

CONTENT_TYPE_MOVIE = "movie"
CONTENT_TYPE_TV_SHOW = "tv_show"


class ContentItem(Base):
    """A nomination competing for selection within a session."""

    __tablename__ = "content_item"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'planned', 'scheduled', 'watched', 'skipped', 'banned')",
            name="ck_content_item_status",
        ),
        CheckConstraint(
            "content_type IN ('movie', 'tv_show')",
            name="ck_content_item_content_type",
        ),
        Index("ix_content_item_session_id", "session_id"),
        Index("ix_content_item_community_status", "community_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    community_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(Text, nullable=False, default=CONTENT_TYPE_MOVIE)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=ITEM_STATUS_PENDING)

    # Null when the item is not part of any active round.
    session_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("voting_session.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Set by carryover; cleared once a new session picks the item up.
    carried_over: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    nominated_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    nominated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    watched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
