"""Request-scoped access to the services attached to the app."""

from fastapi import HTTPException, Request

from src.models.time_range import parse_media_types
from src.exceptions import InvalidMediaItemError


def get_container(request: Request):
    return request.app.state.container


def get_broadcaster(request: Request):
    return request.app.state.broadcaster


def parse_types_param(types: str | None):
    """Parse a comma-separated ``types`` query parameter (None means all types)."""
    if not types:
        return None
    try:
        return parse_media_types(t.strip() for t in types.split(",") if t.strip())
    except InvalidMediaItemError as e:
        raise HTTPException(status_code=400, detail=str(e))
