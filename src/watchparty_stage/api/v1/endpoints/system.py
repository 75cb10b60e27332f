"""System and transparency endpoints for the Watchparty Stage API."""

from __future__ import annotations

from fastapi import APIRouter

from watchparty_stage.core.settings import settings

from ..dependencies import LifecycleDep

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/config")
async def get_public_config() -> dict[str, object]:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes secrets and connection strings.
    """
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "debug": settings.debug,
        },
        "scheduler": {
            "enabled": settings.scheduler_enabled,
            "horizon_hours": settings.scheduler_horizon_hours,
            "sweep_hour_utc": settings.scheduler_sweep_hour_utc,
        },
        "vote_caps": {
            "enabled": settings.vote_cap_enabled,
            **settings.vote_cap_defaults,
        },
        "integrations": {
            "dashboard": bool(settings.dashboard_enabled and settings.dashboard_base_url),
            "external_events": bool(settings.external_events_base_url),
        },
    }


@router.get("/scheduler")
async def get_scheduler_state(lifecycle: LifecycleDep) -> dict[str, object]:
    """Expose armed closure timers and the next sweep.

    Args:
        lifecycle: Running lifecycle engine

    Returns:
        Dictionary with the horizon, next sweep delay and armed timers
    """
    scheduler = lifecycle.scheduler
    armed = scheduler.armed_sessions()
    return {
        "horizon_hours": scheduler.horizon.total_seconds() / 3600,
        "sweep_hour_utc": scheduler.sweep_hour_utc,
        "next_sweep_in_seconds": round(scheduler.seconds_until_next_sweep()),
        "armed": [
            {"session_id": session_id, "deadline": deadline.isoformat()}
            for session_id, deadline in sorted(armed.items(), key=lambda entry: entry[1])
        ],
    }
