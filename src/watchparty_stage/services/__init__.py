"""Business logic services for the session lifecycle engine."""

from .carryover import CarryoverManager
from .closure import ClosureEngine
from .event_bus import EventBus
from .lifecycle import LifecycleEngine
from .scheduler import SessionScheduler
from .sessions import SessionService
from .vote_caps import VoteCapEnforcer
from .voting import VoteService

__all__ = [
    "CarryoverManager",
    "ClosureEngine",
    "EventBus",
    "LifecycleEngine",
    "SessionScheduler",
    "SessionService",
    "VoteCapEnforcer",
    "VoteService",
]
