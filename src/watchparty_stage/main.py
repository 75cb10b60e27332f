# src/watchparty_stage/main.py
"""Main entry point for the Watchparty Stage application."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from watchparty_stage.api.v1 import (
    communities_router,
    items_router,
    sessions_router,
    system_router,
    votes_router,
)
from watchparty_stage.core.settings import settings
from watchparty_stage.db.session import SessionLocal, create_tables
from watchparty_stage.repositories.session_store import SessionStore
from watchparty_stage.services.dashboard import DashboardClient
from watchparty_stage.services.external_events import (
    HttpExternalEventAdapter,
    external_events_enabled,
)
from watchparty_stage.services.lifecycle import LifecycleEngine

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Watchparty Stage API",
    description="Session lifecycle engine for community watch parties",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(sessions_router, prefix="/api/v1")
app.include_router(items_router, prefix="/api/v1")
app.include_router(votes_router, prefix="/api/v1")
app.include_router(communities_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


def build_lifecycle() -> LifecycleEngine:
    """Build the lifecycle engine with the integrations enabled in settings."""
    return LifecycleEngine(
        SessionStore(SessionLocal()),
        external_events=HttpExternalEventAdapter() if external_events_enabled() else None,
        dashboard=DashboardClient(),
    )


@app.on_event("startup")
async def on_startup() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    create_tables()
    lifecycle = build_lifecycle()
    app.state.lifecycle = lifecycle
    if settings.scheduler_enabled:
        report = await lifecycle.start()
        logger.info(
            "Lifecycle engine started: %d session(s) recovered, %d timer(s) armed",
            len(report.closed),
            len(report.armed),
        )
    else:
        logger.warning("Scheduler disabled; voting sessions will not close on their own")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    lifecycle: LifecycleEngine | None = getattr(app.state, "lifecycle", None)
    if lifecycle:
        await lifecycle.stop()
        lifecycle.store.session.close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Session lifecycle engine for community watch parties",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("watchparty_stage.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
