# src/watchparty_stage/models/vote.py
"""Models capturing voting interactions on content items."""

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from watchparty_stage.db.session import Base

VOTE_UP = "up"
VOTE_DOWN = "down"


class ContentVote(Base):
    """Per-user vote on a content item."""

    __tablename__ = "content_vote"
    __table_args__ = (
        CheckConstraint("direction IN ('up', 'down')", name="ck_content_vote_direction"),
        Index("ix_content_vote_item_id", "item_id"),
    )

    item_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("content_item.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(Text, primary_key=True)

    # Composite primary key prevents duplicate votes from the same user.

    direction: Mapped[str] = mapped_column(Text, nullable=False)
