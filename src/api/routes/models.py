"""Pydantic request models for the feed and time machine API."""

from typing import Optional, Union

from pydantic import BaseModel, Field


class TimeTravelRequest(BaseModel):
    action: str
    minutes: Optional[int] = Field(default=None, ge=1)
    timestamp: Optional[Union[int, str]] = None
    span_minutes: Optional[int] = Field(default=None, ge=1)
    start: Optional[int] = None
    end: Optional[int] = None
    include_items: bool = False


class MediaTypesRequest(BaseModel):
    types: list[str] = Field(min_length=1)
