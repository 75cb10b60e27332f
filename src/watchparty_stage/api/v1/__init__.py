"""Version 1 API endpoints."""

from .endpoints import (
    communities_router,
    items_router,
    sessions_router,
    system_router,
    votes_router,
)

__all__ = [
    "sessions_router",
    "items_router",
    "votes_router",
    "communities_router",
    "system_router",
]
