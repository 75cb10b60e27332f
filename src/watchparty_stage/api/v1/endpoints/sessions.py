"""Session endpoints for the Watchparty Stage API."""

from __future__ import annotations

from fastapi import APIRouter, status

from watchparty_stage.core.errors import LifecycleError
from watchparty_stage.models import VotingSession
from watchparty_stage.schemas.content import ContentItemResponse
from watchparty_stage.schemas.session import (
    CarryoverResponse,
    ClosureResponse,
    SessionCreate,
    SessionDetailResponse,
    SessionReschedule,
    SessionResponse,
    TieResolution,
)
from watchparty_stage.services.lifecycle import LifecycleEngine

from ..dependencies import LifecycleDep, to_http_exception

router = APIRouter(prefix="/sessions", tags=["sessions"])


async def _detail(lifecycle: LifecycleEngine, voting_session: VotingSession) -> SessionDetailResponse:
    items = await lifecycle.list_items(voting_session.id)
    return SessionDetailResponse(
        **SessionResponse.model_validate(voting_session).model_dump(),
        items=[ContentItemResponse.model_validate(item) for item in items],
    )


@router.post("/", response_model=SessionDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    session_data: SessionCreate,
    lifecycle: LifecycleDep,
) -> SessionDetailResponse:
    """Create a session; queued nominations are pulled into it."""
    try:
        voting_session = await lifecycle.create_session(
            session_data.community_id,
            session_data.name,
            content_category=session_data.content_category,
            scheduled_at=session_data.scheduled_at,
            voting_end_time=session_data.voting_end_time,
            description=session_data.description,
            created_by=session_data.created_by,
        )
        return await _detail(lifecycle, voting_session)
    except (LifecycleError, ValueError) as err:
        raise to_http_exception(err) from err


@router.get("/{session_id}", response_model=SessionDetailResponse)
async def get_session(session_id: int, lifecycle: LifecycleDep) -> SessionDetailResponse:
    """Get a session with its current items."""
    try:
        voting_session = await lifecycle.get_session(session_id)
        return await _detail(lifecycle, voting_session)
    except LifecycleError as err:
        raise to_http_exception(err) from err


@router.post("/{session_id}/reschedule", response_model=SessionResponse)
async def reschedule_session(
    session_id: int,
    times: SessionReschedule,
    lifecycle: LifecycleDep,
) -> VotingSession:
    """Move a session to new times and re-arm its closure."""
    try:
        return await lifecycle.reschedule_session(
            session_id,
            scheduled_at=times.scheduled_at,
            voting_end_time=times.voting_end_time,
        )
    except LifecycleError as err:
        raise to_http_exception(err) from err


@router.post("/{session_id}/cancel", response_model=SessionResponse)
async def cancel_session(session_id: int, lifecycle: LifecycleDep) -> VotingSession:
    """Cancel a session; its items are carried over."""
    try:
        return await lifecycle.cancel_session(session_id)
    except LifecycleError as err:
        raise to_http_exception(err) from err


@router.post("/{session_id}/close", response_model=ClosureResponse)
async def close_session(session_id: int, lifecycle: LifecycleDep) -> ClosureResponse:
    """Close voting immediately.

    Sessions that are not in voting, or already wait for a tie-break, are
    returned unchanged with outcome ``noop``.
    """
    try:
        result = await lifecycle.close_session(session_id)
    except LifecycleError as err:
        raise to_http_exception(err) from err
    return ClosureResponse.model_validate(result)


@router.post("/{session_id}/resolve-tie", response_model=ClosureResponse)
async def resolve_tie(
    session_id: int,
    choice: TieResolution,
    lifecycle: LifecycleDep,
) -> ClosureResponse:
    """Pick the winner of a tied (or still open) session by hand."""
    try:
        result = await lifecycle.resolve_tie(session_id, choice.item_id)
    except LifecycleError as err:
        raise to_http_exception(err) from err
    return ClosureResponse.model_validate(result)


@router.post("/{session_id}/complete", response_model=SessionResponse)
async def complete_session(session_id: int, lifecycle: LifecycleDep) -> VotingSession:
    """Mark a decided session as watched."""
    try:
        return await lifecycle.complete_session(session_id)
    except LifecycleError as err:
        raise to_http_exception(err) from err


@router.post("/{session_id}/carryover", response_model=CarryoverResponse)
async def carry_over(session_id: int, lifecycle: LifecycleDep) -> CarryoverResponse:
    """Move leftover items of a session into the next round."""
    try:
        result = await lifecycle.carry_over(session_id)
    except LifecycleError as err:
        raise to_http_exception(err) from err
    return CarryoverResponse.model_validate(result)
