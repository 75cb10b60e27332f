"""Session-related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from watchparty_stage.db.time import ensure_utc

from .content import ContentItemResponse


class SessionCreate(BaseModel):
    """Schema for creating a new session."""

    community_id: int
    name: str = Field(..., min_length=1, max_length=200)
    content_category: Literal["movie", "tv_show", "mixed"] = "mixed"
    scheduled_at: datetime | None = Field(None, description="When the watch party starts")
    voting_end_time: datetime | None = Field(
        None,
        description="When voting closes; omit to create the session in planning",
    )
    description: str | None = None
    created_by: str | None = None


class SessionReschedule(BaseModel):
    """Schema for moving a session to new times."""

    scheduled_at: datetime | None = None
    voting_end_time: datetime | None = None


class TieResolution(BaseModel):
    """Schema for picking a session winner by hand."""

    item_id: int


class SessionResponse(BaseModel):
    """Schema for session information returned by the API."""

    id: int
    community_id: int
    name: str
    description: str | None
    status: str
    content_category: str
    scheduled_at: datetime | None
    voting_end_time: datetime | None
    winner_item_id: int | None
    awaiting_tie_break: bool
    external_event_ref: str | None
    created_by: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("scheduled_at", "voting_end_time", "created_at", mode="after")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class SessionDetailResponse(SessionResponse):
    """Session with the items currently assigned to it."""

    items: list[ContentItemResponse] = Field(default_factory=list)


class ItemTallyResponse(BaseModel):
    """Vote totals for one item."""

    item_id: int
    title: str
    upvotes: int
    downvotes: int
    score: int

    model_config = ConfigDict(from_attributes=True)


class ClosureResponse(BaseModel):
    """Outcome of a close or tie resolution request."""

    session_id: int
    outcome: Literal["decided", "tie", "noop"]
    winner: ItemTallyResponse | None = None
    tallies: list[ItemTallyResponse] = Field(default_factory=list)
    tied: list[ItemTallyResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class CarryoverResponse(BaseModel):
    """Items moved out of a session by carryover."""

    session_id: int
    moved: dict[int, int | None]
    skipped: list[int]

    model_config = ConfigDict(from_attributes=True)
