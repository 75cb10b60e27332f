"""Vote-related Pydantic schemas."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class VoteCreate(BaseModel):
    """Schema for casting a vote."""

    item_id: int
    user_id: str = Field(..., min_length=1)
    direction: Literal["up", "down"] = Field(..., description="up or down; repeat to remove")


class VoteResponse(BaseModel):
    """Result of a vote with the item's fresh totals."""

    item_id: int
    session_id: int
    user_id: str
    action: Literal["added", "changed", "removed"]
    direction: Literal["up", "down"] | None
    upvotes: int
    downvotes: int
    score: int

    model_config = ConfigDict(from_attributes=True)
