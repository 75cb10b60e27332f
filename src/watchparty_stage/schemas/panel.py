"""Status panel Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from .session import ItemTallyResponse


class PanelSessionResponse(BaseModel):
    session_id: int
    name: str
    status: str
    content_category: str
    scheduled_at: datetime | None
    voting_end_time: datetime | None
    awaiting_tie_break: bool
    tallies: list[ItemTallyResponse]

    model_config = ConfigDict(from_attributes=True)


class PanelDecisionResponse(BaseModel):
    session_id: int
    name: str
    status: str
    winner_item_id: int | None
    winner_title: str | None

    model_config = ConfigDict(from_attributes=True)


class PanelResponse(BaseModel):
    """Snapshot shown on a community's status panel."""

    community_id: int
    active_session: PanelSessionResponse | None
    last_decision: PanelDecisionResponse | None
    last_event: str | None
    refreshed_at: datetime

    model_config = ConfigDict(from_attributes=True)
