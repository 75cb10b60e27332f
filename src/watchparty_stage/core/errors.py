"""Exceptions raised by the session lifecycle services.

Every exception here describes a rejected operation: nothing was written
when it is raised. Transient store failures propagate as whatever the store
raised and are handled by the scheduler.
"""

from __future__ import annotations


class LifecycleError(RuntimeError):
    """Base exception for rejected lifecycle operations."""


class SessionNotFound(LifecycleError):
    """Raised when a session id does not resolve to a stored session."""

    def __init__(self, session_id: int) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class ItemNotFound(LifecycleError):
    """Raised when a content item id does not resolve to a stored item."""

    def __init__(self, item_id: int) -> None:
        super().__init__(f"Content item {item_id} not found")
        self.item_id = item_id


class ItemNotInSession(LifecycleError):
    """Raised when an item is chosen for a session it does not belong to."""

    def __init__(self, item_id: int, session_id: int) -> None:
        super().__init__(f"Content item {item_id} is not part of session {session_id}")
        self.item_id = item_id
        self.session_id = session_id


class ActiveSessionExists(LifecycleError):
    """Raised when a community already has a session in voting."""

    def __init__(self, community_id: int, session_id: int) -> None:
        super().__init__(
            f"Community {community_id} already has session {session_id} in voting"
        )
        self.community_id = community_id
        self.session_id = session_id


class ScheduleValidationError(LifecycleError):
    """Raised for malformed or inconsistent session times."""


class InvalidSessionState(LifecycleError):
    """Raised when an operation needs a session status it does not have."""


class InvalidItemState(LifecycleError):
    """Raised when an operation needs an item status it does not have."""


class TitleBanned(LifecycleError):
    """Raised when a nomination matches a title banned in the community."""

    def __init__(self, title: str) -> None:
        super().__init__(f"'{title}' is banned in this community")
        self.title = title


class VoteRejected(LifecycleError):
    """Raised when a vote cannot be recorded.

    ``reason`` is a short machine-readable code: ``cap_reached``,
    ``session_closed``, ``not_in_session`` or ``voting_ended``.
    """

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason
