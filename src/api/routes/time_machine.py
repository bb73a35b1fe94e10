"""Time machine endpoints: windowed media, stats, histogram, maintenance."""

from fastapi import APIRouter, Depends, HTTPException, Query

from src.api.routes.dependencies import get_container, parse_types_param
from src.api.routes.models import MediaTypesRequest
from src.services.container import ServiceContainer

router = APIRouter(tags=["time-machine"])


def _media_response(items, container: ServiceContainer) -> dict:
    view = container.navigator.current_view
    return {
        "items": [item.to_dict() for item in items],
        "count": len(items),
        "time_range": view.time_range.to_dict(),
        "user_controlled": view.user_controlled,
        "active_types": sorted(t.value for t in view.active_types),
    }


@router.get("/current")
async def get_current_media(container: ServiceContainer = Depends(get_container)):
    """Media of the active types in the current window."""
    return _media_response(container.feed_service.get_current_media(), container)


@router.get("/media")
async def get_media_for_range(
    start: int,
    end: int,
    types: str | None = None,
    container: ServiceContainer = Depends(get_container),
):
    """Range query that leaves the current view alone."""
    items = container.feed_service.get_media_for_range(start, end, parse_types_param(types))
    return {"items": [item.to_dict() for item in items], "count": len(items)}


@router.get("/stats")
async def get_stats(container: ServiceContainer = Depends(get_container)):
    return container.feed_service.stats()


@router.get("/periods")
async def get_periods(
    bucket_minutes: int | None = Query(default=None, ge=1, le=7 * 24 * 60),
    container: ServiceContainer = Depends(get_container),
):
    """Image histogram for the time scrubber, newest bucket first."""
    buckets = container.feed_service.periods(bucket_minutes)
    return {"periods": [bucket.to_dict() for bucket in buckets]}


@router.put("/media-types")
async def set_media_types(
    request: MediaTypesRequest, container: ServiceContainer = Depends(get_container)
):
    items = container.feed_service.set_active_types(request.types)
    if items is None:
        raise HTTPException(status_code=400, detail="Unknown media type")
    return _media_response(items, container)


@router.post("/dedupe")
async def dedupe_archive(container: ServiceContainer = Depends(get_container)):
    removed = container.feed_service.dedupe(triggered_by="api")
    return {"removed": removed, "total_removed": sum(removed.values())}
