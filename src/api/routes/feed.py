"""Live feed endpoints: recent posts, SSE stream, post and author lookups."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from src.api.routes.dependencies import get_broadcaster, get_container
from src.api.routes.models import TimeTravelRequest
from src.services.container import ServiceContainer
from src.services.core.feed_service import TimeTravelCommand

router = APIRouter(tags=["feed"])


@router.get("/feed")
async def get_feed(
    limit: int | None = Query(default=None, ge=1, le=200),
    container: ServiceContainer = Depends(get_container),
):
    """Most recent posts with media, newest first."""
    items = await container.feed_service.get_feed_items(limit)
    return {"items": [item.to_dict() for item in items], "count": len(items)}


@router.get("/stream")
async def stream_feed(request: Request, broadcaster=Depends(get_broadcaster)):
    """Server-Sent Events stream of new feed items."""
    return StreamingResponse(
        broadcaster.stream(is_disconnected=request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/posts/{event_id}")
async def get_post(event_id: str, container: ServiceContainer = Depends(get_container)):
    """Full post for an event id, from the live buffer or the archive."""
    post = await container.feed_service.find_post(event_id)
    if post is None:
        raise HTTPException(status_code=404, detail="Post not found")
    return post.to_dict()


@router.get("/authors/{pubkey}/media")
async def get_author_media(pubkey: str, container: ServiceContainer = Depends(get_container)):
    items = container.feed_service.find_media_by_author(pubkey)
    return {"pubkey": pubkey, "items": [item.to_dict() for item in items], "count": len(items)}


@router.post("/time-travel")
async def time_travel(
    request: TimeTravelRequest, container: ServiceContainer = Depends(get_container)
):
    """Move the current view. Invalid commands return ``success: false``."""
    result = container.feed_service.time_travel(
        TimeTravelCommand(
            action=request.action,
            minutes=request.minutes,
            timestamp=request.timestamp,
            span_minutes=request.span_minutes,
            start=request.start,
            end=request.end,
        )
    )
    return result.to_dict(include_items=request.include_items)
