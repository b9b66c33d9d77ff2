"""Pydantic schemas for going / ratings / comments / images."""
from __future__ import annotations
from typing import Any, Optional
from pydantic import BaseModel

from eventfinder.schemas.event import UTCDateTime


class GoingOut(BaseModel):
    event_id: str
    is_going: bool
    changed: bool


class RatingIn(BaseModel):
    # Left untyped so the service reports every bad value the same way.
    rating: Any


class RatingOut(BaseModel):
    rating_id: str
    event_id: str
    user_id: str
    rating: float
    created_at: Optional[UTCDateTime] = None

    model_config = {"from_attributes": True}


class AuthorOut(BaseModel):
    user_id: str
    username: str
    avatar_url: Optional[str] = None

    model_config = {"from_attributes": True}


class CommentIn(BaseModel):
    body: str


class CommentOut(BaseModel):
    comment_id: str
    event_id: str
    body: str
    created_at: Optional[UTCDateTime] = None
    author: AuthorOut

    model_config = {"from_attributes": True}


class ImageIn(BaseModel):
    image_ref: str


class ImageOut(BaseModel):
    image_id: str
    event_id: str
    image_url: str
    created_at: Optional[UTCDateTime] = None
    uploader: AuthorOut


class RatingSummaryOut(BaseModel):
    event_id: str
    average: Optional[float] = None
    count: int
