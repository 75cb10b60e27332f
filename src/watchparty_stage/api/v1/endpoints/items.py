"""Content item endpoints for the Watchparty Stage API."""

from fastapi import APIRouter, status

from watchparty_stage.core.errors import LifecycleError
from watchparty_stage.models import ContentItem
from watchparty_stage.schemas.content import ContentItemResponse, ItemCreate

from ..dependencies import LifecycleDep, to_http_exception

router = APIRouter(prefix="/items", tags=["items"])


@router.post("/", response_model=ContentItemResponse, status_code=status.HTTP_201_CREATED)
async def nominate_item(item_data: ItemCreate, lifecycle: LifecycleDep) -> ContentItem:
    """Nominate content; it joins the community's open session when one accepts it."""
    try:
        return await lifecycle.nominate(
            item_data.community_id,
            item_data.title,
            item_data.content_type,
            nominated_by=item_data.nominated_by,
        )
    except (LifecycleError, ValueError) as err:
        raise to_http_exception(err) from err


@router.post("/{item_id}/ban", response_model=ContentItemResponse)
async def ban_item(item_id: int, lifecycle: LifecycleDep) -> ContentItem:
    """Ban an item's title so it cannot be nominated again."""
    try:
        return await lifecycle.ban_item(item_id)
    except LifecycleError as err:
        raise to_http_exception(err) from err


@router.post("/{item_id}/skip", response_model=ContentItemResponse)
async def skip_item(item_id: int, lifecycle: LifecycleDep) -> ContentItem:
    """Drop a queued item without watching it."""
    try:
        return await lifecycle.skip_item(item_id)
    except LifecycleError as err:
        raise to_http_exception(err) from err
