"""Content item Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from watchparty_stage.db.time import ensure_utc


class ItemCreate(BaseModel):
    """Schema for nominating a content item."""

    community_id: int
    title: str = Field(..., min_length=1, max_length=300)
    content_type: Literal["movie", "tv_show"] = "movie"
    nominated_by: str | None = None


class ContentItemResponse(BaseModel):
    """Schema for content item information returned by the API."""

    id: int
    community_id: int
    title: str
    content_type: str
    status: str
    session_id: int | None
    carried_over: bool
    nominated_by: str | None
    nominated_at: datetime
    watched_at: datetime | None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("nominated_at", "watched_at", mode="after")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)
