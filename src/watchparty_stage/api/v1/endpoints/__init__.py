"""API endpoint modules for version 1."""

from .communities import router as communities_router
from .items import router as items_router
from .sessions import router as sessions_router
from .system import router as system_router
from .votes import router as votes_router

__all__ = [
    "communities_router",
    "items_router",
    "sessions_router",
    "system_router",
    "votes_router",
]
