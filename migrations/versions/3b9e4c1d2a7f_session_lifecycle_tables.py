"""session lifecycle tables

Revision ID: 3b9e4c1d2a7f
Revises:
Create Date: 2026-10-16 09:12:44.318207

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3b9e4c1d2a7f"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create sessions, content items, votes and community overrides."""
    op.create_table(
        "voting_session",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("community_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("content_category", sa.Text(), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voting_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("winner_item_id", sa.Integer(), nullable=True),
        sa.Column("awaiting_tie_break", sa.Boolean(), nullable=False),
        sa.Column("external_event_ref", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('planning', 'voting', 'decided', 'completed', 'cancelled')",
            name="ck_voting_session_status",
        ),
        sa.CheckConstraint(
            "content_category IN ('movie', 'tv_show', 'mixed')",
            name="ck_voting_session_category",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_voting_session_community_status",
        "voting_session",
        ["community_id", "status"],
    )

    op.create_table(
        "content_item",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("community_id", sa.BigInteger(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("content_type", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=True),
        sa.Column("carried_over", sa.Boolean(), nullable=False),
        sa.Column("nominated_by", sa.Text(), nullable=True),
        sa.Column("nominated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("watched_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'planned', 'scheduled', 'watched', 'skipped', 'banned')",
            name="ck_content_item_status",
        ),
        sa.CheckConstraint(
            "content_type IN ('movie', 'tv_show')",
            name="ck_content_item_content_type",
        ),
        sa.ForeignKeyConstraint(
            ["session_id"], ["voting_session.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_content_item_session_id", "content_item", ["session_id"])
    op.create_index(
        "ix_content_item_community_status",
        "content_item",
        ["community_id", "status"],
    )

    op.create_table(
        "content_vote",
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("direction", sa.Text(), nullable=False),
        sa.CheckConstraint("direction IN ('up', 'down')", name="ck_content_vote_direction"),
        sa.ForeignKeyConstraint(["item_id"], ["content_item.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("item_id", "user_id"),
    )
    op.create_index("ix_content_vote_item_id", "content_vote", ["item_id"])

    op.create_table(
        "community_config",
        sa.Column("community_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("vote_cap_enabled", sa.Boolean(), nullable=True),
        sa.Column("vote_cap_ratio_up", sa.Float(), nullable=True),
        sa.Column("vote_cap_ratio_down", sa.Float(), nullable=True),
        sa.Column("vote_cap_minimum", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("community_id"),
    )


def downgrade() -> None:
    """Drop the session lifecycle tables."""
    op.drop_table("community_config")
    op.drop_index("ix_content_vote_item_id", table_name="content_vote")
    op.drop_table("content_vote")
    op.drop_index("ix_content_item_community_status", table_name="content_item")
    op.drop_index("ix_content_item_session_id", table_name="content_item")
    op.drop_table("content_item")
    op.drop_index("ix_voting_session_community_status", table_name="voting_session")
    op.drop_table("voting_session")
