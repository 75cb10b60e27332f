"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .community import CommunityConfigResponse, CommunityConfigUpdate
from .content import ContentItemResponse, ItemCreate
from .panel import PanelResponse
from .session import (
    CarryoverResponse,
    ClosureResponse,
    SessionCreate,
    SessionDetailResponse,
    SessionReschedule,
    SessionResponse,
    TieResolution,
)
from .vote import VoteCreate, VoteResponse

__all__ = [
    "CommunityConfigResponse", "CommunityConfigUpdate",
    "ContentItemResponse", "ItemCreate",
    "PanelResponse",
    "CarryoverResponse", "ClosureResponse", "SessionCreate", "SessionDetailResponse",
    "SessionReschedule", "SessionResponse", "TieResolution",
    "VoteCreate", "VoteResponse",
]
