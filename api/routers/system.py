"""
System router: greeting, liveness, health, status and metrics.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from api.middleware import metrics_collector, get_request_id

router = APIRouter(tags=["System"])

logger = logging.getLogger(__name__)


@router.get("/", response_class=PlainTextResponse)
async def root():
    """Static greeting."""
    return "hello wind server.. go to /latest for wind data.."


@router.get("/pulse", response_class=PlainTextResponse)
async def pulse():
    """Liveness probe."""
    return "ok"


# Path used by existing deployments' probes
@router.get("/alive", response_class=PlainTextResponse, include_in_schema=False)
async def alive():
    return "ok"


@router.get("/api/health")
async def health_check():
    """
    Store and data-freshness health.

    Returns:
        - status: healthy / degraded / unhealthy
        - components: per-check status and message
    """
    from api.health import perform_full_health_check
    result = await perform_full_health_check()
    result["request_id"] = get_request_id()
    return result


@router.get("/api/status")
async def detailed_status():
    """Health plus scheduler state, last harvest / sweep reports and config."""
    from api.health import get_detailed_status
    return await get_detailed_status()


@router.get("/metrics", response_class=PlainTextResponse)
async def get_metrics():
    """Prometheus-compatible metrics."""
    return metrics_collector.get_prometheus_metrics()
