"""Community configuration Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field


class CommunityConfigUpdate(BaseModel):
    """Vote cap overrides; omitted fields are left unchanged, null clears one."""

    vote_cap_enabled: bool | None = None
    vote_cap_ratio_up: float | None = Field(None, gt=0, le=1)
    vote_cap_ratio_down: float | None = Field(None, gt=0, le=1)
    vote_cap_minimum: int | None = Field(None, ge=0)


class CommunityConfigResponse(BaseModel):
    """Stored overrides for one community."""

    community_id: int
    vote_cap_enabled: bool | None
    vote_cap_ratio_up: float | None
    vote_cap_ratio_down: float | None
    vote_cap_minimum: int | None

    model_config = ConfigDict(from_attributes=True)
