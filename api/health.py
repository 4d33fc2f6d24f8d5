"""
Health checks for the wind server API.

Liveness (``/pulse``) only proves the process answers. The full check
looks at the artifact store and at how fresh the newest snapshot is.
"""
import asyncio
import logging
import os
from typing import Dict, Any, Optional
from datetime import datetime, timezone
from enum import Enum
from dataclasses import dataclass

from api.config import settings
from api.state import get_app_state
from windserver.errors import StoreError
from windserver.grid import age_days

logger = logging.getLogger(__name__)

# GFS publishes every 6h with a few hours lag; older than this means
# several cycles in a row failed.
STALE_AFTER_DAYS = 1.0


class HealthStatus(Enum):
    """Health check status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""
    name: str
    status: HealthStatus
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


def check_store_health() -> ComponentHealth:
    """Artifact directories exist and are writable."""
    store = get_app_state().components.store
    try:
        count = store.count()
    except StoreError as e:
        logger.error(f"Store health check failed: {e}")
        return ComponentHealth(name="store", status=HealthStatus.UNHEALTHY, message=str(e))

    writable = os.access(store.raw_dir, os.W_OK) and os.access(store.servable_dir, os.W_OK)
    return ComponentHealth(
        name="store",
        status=HealthStatus.HEALTHY if writable else HealthStatus.UNHEALTHY,
        message="Artifact directories writable" if writable else "Artifact directories not writable",
        details={"servable_count": count},
    )


def check_freshness_health() -> ComponentHealth:
    """Newest servable snapshot is recent enough."""
    components = get_app_state().components
    try:
        newest = components.store.newest()
    except StoreError as e:
        return ComponentHealth(name="freshness", status=HealthStatus.UNHEALTHY, message=str(e))

    if newest is None:
        return ComponentHealth(
            name="freshness",
            status=HealthStatus.DEGRADED,
            message="No snapshots harvested yet",
        )

    age = age_days(newest, components.clock.now())
    status = HealthStatus.HEALTHY if age <= STALE_AFTER_DAYS else HealthStatus.DEGRADED
    return ComponentHealth(
        name="freshness",
        status=status,
        message=f"Newest snapshot {newest} is {age:.2f} days old",
        details={"newest": str(newest), "age_days": round(age, 3)},
    )


async def perform_full_health_check() -> Dict[str, Any]:
    """Run all component checks and derive an overall status."""
    # Both checks scan the artifact directories
    components = list(await asyncio.gather(
        asyncio.to_thread(check_store_health),
        asyncio.to_thread(check_freshness_health),
    ))

    if any(c.status == HealthStatus.UNHEALTHY for c in components):
        overall_status = HealthStatus.UNHEALTHY
    elif any(c.status == HealthStatus.DEGRADED for c in components):
        overall_status = HealthStatus.DEGRADED
    else:
        overall_status = HealthStatus.HEALTHY

    return {
        "status": overall_status.value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            c.name: {
                "status": c.status.value,
                "message": c.message,
                **({"details": c.details} if c.details else {}),
            }
            for c in components
        },
    }


async def get_detailed_status() -> Dict[str, Any]:
    """Health plus scheduler state, last reports and configuration summary."""
    from api.middleware import metrics_collector

    health = await perform_full_health_check()
    app_state = get_app_state()

    return {
        **health,
        "uptime_seconds": round(app_state.uptime_seconds, 2),
        "environment": settings.environment,
        "scheduler": app_state.components.scheduler.status(),
        "metrics": metrics_collector.get_metrics(),
        "config": {
            "poll_interval_seconds": settings.poll_interval_seconds,
            "harvest_horizon_days": settings.harvest_horizon_days,
            "serving_horizon_days": settings.serving_horizon_days,
            "retention_max_age_days": settings.retention_max_age_days,
        },
    }
