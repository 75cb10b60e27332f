"""Shared API dependencies and error mapping."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from watchparty_stage.core.errors import (
    ActiveSessionExists,
    InvalidItemState,
    InvalidSessionState,
    ItemNotFound,
    ItemNotInSession,
    LifecycleError,
    ScheduleValidationError,
    SessionNotFound,
    TitleBanned,
    VoteRejected,
)
from watchparty_stage.services.lifecycle import LifecycleEngine


def get_lifecycle(request: Request) -> LifecycleEngine:
    """Return the lifecycle engine built at application startup.

    Raises:
        HTTPException: If the engine has not been started yet
    """
    lifecycle = getattr(request.app.state, "lifecycle", None)
    if lifecycle is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Lifecycle engine is not running",
        )
    return lifecycle


# Type alias for lifecycle engine dependency
LifecycleDep = Annotated[LifecycleEngine, Depends(get_lifecycle)]


def to_http_exception(err: Exception) -> HTTPException:
    """Translate a rejected lifecycle operation into an HTTP error.

    Args:
        err: LifecycleError subclass, or ValueError for malformed input

    Returns:
        HTTPException with 404, 409 or 422 and the error message as detail
    """
    if isinstance(err, (SessionNotFound, ItemNotFound)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(
        err, (ActiveSessionExists, InvalidItemState, InvalidSessionState, TitleBanned)
    ):
        code = status.HTTP_409_CONFLICT
    elif isinstance(err, VoteRejected):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"reason": err.reason, "message": str(err)},
        )
    elif isinstance(err, (ScheduleValidationError, ItemNotInSession, ValueError)):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(err, LifecycleError):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(err))
