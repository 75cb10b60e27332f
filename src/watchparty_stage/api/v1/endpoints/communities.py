"""Community endpoints for the Watchparty Stage API."""

from __future__ import annotations

from fastapi import APIRouter

from watchparty_stage.core.errors import LifecycleError
from watchparty_stage.models import CommunityConfig
from watchparty_stage.schemas.community import CommunityConfigResponse, CommunityConfigUpdate
from watchparty_stage.schemas.panel import PanelResponse

from ..dependencies import LifecycleDep, to_http_exception

router = APIRouter(prefix="/communities", tags=["communities"])


@router.get("/{community_id}/panel", response_model=PanelResponse)
async def get_panel(community_id: int, lifecycle: LifecycleDep) -> PanelResponse:
    """Return the community's status panel snapshot."""
    snapshot = await lifecycle.get_panel(community_id)
    return PanelResponse.model_validate(snapshot)


@router.put("/{community_id}/config", response_model=CommunityConfigResponse)
async def update_config(
    community_id: int,
    config_data: CommunityConfigUpdate,
    lifecycle: LifecycleDep,
) -> CommunityConfig:
    """Store vote cap overrides for a community."""
    try:
        return await lifecycle.update_community_config(
            community_id,
            **config_data.model_dump(exclude_unset=True),
        )
    except (LifecycleError, ValueError) as err:
        raise to_http_exception(err) from err
