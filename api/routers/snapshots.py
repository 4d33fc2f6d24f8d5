"""
Snapshot router: serve the latest or nearest converted GFS snapshot.

Endpoints:
    GET /latest                                 -> newest snapshot
    GET /nearest?timeIso=...&searchLimit=<days> -> snapshot nearest a time

Snapshots in the past never change, so /nearest responses are cached for
much longer than /latest.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from starlette.responses import FileResponse

from api.config import settings
from api.state import get_app_state
from windserver.grid import Stamp
from windserver.lookup import LookupResult, parse_search_limit, parse_time_iso

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Snapshots"])


def _snapshot_response(stamp: Stamp, max_age: int) -> FileResponse:
    store = get_app_state().components.store
    path = store.servable_path(stamp)
    if not path.is_file():
        # Swept between resolution and send
        logger.warning(f"Snapshot {stamp} disappeared before it could be sent")
        raise HTTPException(status_code=404, detail=f"Snapshot {stamp} no longer available")
    return FileResponse(
        path,
        media_type="application/json",
        headers={
            "Cache-Control": f"public, max-age={max_age}",
            "X-Snapshot-Stamp": str(stamp),
        },
    )


def _not_found(result: LookupResult) -> HTTPException:
    return HTTPException(status_code=404, detail=result.message or "No data found")


@router.get("/latest")
def latest():
    """Newest converted snapshot within the serving horizon."""
    result = get_app_state().components.resolver.resolve_latest()
    if not result.found:
        raise _not_found(result)
    logger.debug(f"/latest -> {result.stamp} after {result.probes} probes")
    return _snapshot_response(result.stamp, settings.latest_max_age_seconds)


@router.get("/nearest")
def nearest(
    time_iso: Optional[str] = Query(None, alias="timeIso"),
    search_limit: Optional[str] = Query(None, alias="searchLimit"),
):
    """
    Snapshot nearest to ``timeIso``.

    Searches backwards first; with ``searchLimit`` (days) it then searches
    forwards up to the same distance before giving up.
    """
    target = parse_time_iso(time_iso)
    limit = parse_search_limit(search_limit)

    result = get_app_state().components.resolver.resolve_nearest(target, limit)
    if not result.found:
        raise _not_found(result)
    logger.debug(f"/nearest {time_iso} -> {result.stamp} after {result.probes} probes")
    return _snapshot_response(result.stamp, settings.nearest_max_age_seconds)
