# src/watchparty_stage/models/__init__.py
"""SQLAlchemy models for the Watchparty Stage application."""

from .community import CommunityConfig
from .content import ContentItem
from .session import VotingSession
from .vote import ContentVote

__all__ = [
    "CommunityConfig",
    "ContentItem",
    "VotingSession",
    "ContentVote",
]
