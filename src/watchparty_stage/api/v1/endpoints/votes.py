"""Vote endpoints for the Watchparty Stage API."""

from fastapi import APIRouter

from watchparty_stage.core.errors import LifecycleError
from watchparty_stage.schemas.vote import VoteCreate, VoteResponse

from ..dependencies import LifecycleDep, to_http_exception

router = APIRouter(prefix="/votes", tags=["votes"])


@router.post("/", response_model=VoteResponse)
async def cast_vote(vote_data: VoteCreate, lifecycle: LifecycleDep) -> VoteResponse:
    """Cast, switch or remove a vote on a content item."""
    try:
        outcome = await lifecycle.cast_vote(
            vote_data.item_id,
            vote_data.user_id,
            vote_data.direction,
        )
    except (LifecycleError, ValueError) as err:
        raise to_http_exception(err) from err
    return VoteResponse.model_validate(outcome)
