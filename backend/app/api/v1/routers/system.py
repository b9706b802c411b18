# backend/app/api/v1/routers/system.py
"""
System API Router: health reporting for the database and object storage.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Request

from ....core.storage.object_store import ManagedObjectStore
from ..models import ComponentHealth, HealthResponse

logger = logging.getLogger("docvault.api.system")

router = APIRouter(prefix="/system", tags=["System"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health_check(request: Request) -> HealthResponse:
    """Report database and object storage connectivity."""
    state = request.app.state

    db_health = await state.database.health_check()
    components = {
        "database": ComponentHealth(status=db_health.pop("status"), detail=db_health),
    }

    store = state.object_store
    if isinstance(store, ManagedObjectStore):
        connected, buckets, error = store.check_health()
        detail = {"bucket": store.bucket, "bucket_exists": bool(buckets and store.bucket in buckets)}
        if error:
            detail["error"] = error
        components["storage"] = ComponentHealth(
            status="healthy" if connected else "unhealthy",
            detail=detail,
        )
    else:
        components["storage"] = ComponentHealth(status="unknown", detail={"bucket": store.bucket})

    overall = "healthy" if all(c.status != "unhealthy" for c in components.values()) else "degraded"
    if overall != "healthy":
        statuses = {name: c.status for name, c in components.items()}
        logger.warning(f"Health check degraded: {statuses}")

    return HealthResponse(
        status=overall,
        version=request.app.version,
        timestamp=datetime.now(),
        components=components,
    )
