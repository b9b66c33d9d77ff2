"""Pydantic schemas for Events and the feed."""
from __future__ import annotations
from datetime import datetime
from typing import Annotated, Optional
from pydantic import AfterValidator, BaseModel

from eventfinder.models.event import EventStatus, Genre, PriceType
from eventfinder.services.window_policy import as_utc

# SQLite hands back naive datetimes; they are UTC.
UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]


class EventCreate(BaseModel):
    title: str
    description: Optional[str] = None
    lineup: Optional[str] = None
    poster_url: Optional[str] = None
    region: str
    city: str
    address: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    starts_at: datetime
    ends_at: datetime
    genre: str
    age_label: str = "18+"
    price_type: str
    price: Optional[float] = None
    ticket_url: Optional[str] = None
    status: str = "draft"


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    lineup: Optional[str] = None
    poster_url: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    genre: Optional[str] = None
    age_label: Optional[str] = None
    price_type: Optional[str] = None
    price: Optional[float] = None
    ticket_url: Optional[str] = None
    status: Optional[str] = None


class EventOut(BaseModel):
    event_id: str
    organizer_id: str
    title: str
    description: Optional[str] = None
    lineup: Optional[str] = None
    poster_url: Optional[str] = None
    region: str
    city: str
    address: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    starts_at: UTCDateTime
    ends_at: UTCDateTime
    genre: Genre
    age_label: str
    price_type: PriceType
    price: Optional[float] = None
    ticket_url: Optional[str] = None
    status: EventStatus
    created_at: Optional[UTCDateTime] = None

    model_config = {"from_attributes": True}


class OrganizerSummary(BaseModel):
    user_id: str
    username: Optional[str] = None
    role: Optional[str] = None


class FeedEventOut(EventOut):
    organizer: OrganizerSummary
    distance_km: Optional[float] = None
    going_count: int = 0
    comment_count: int = 0
    image_count: int = 0
    rating_count: int = 0
    avg_rating: Optional[float] = None
    is_today: bool = False
    is_cancelled: bool = False


class WindowOut(BaseModel):
    state: str
    allowed_actions: list[str]
    denial_reasons: dict[str, str]


class EventDetailOut(FeedEventOut):
    is_going: Optional[bool] = None
    is_following_organizer: Optional[bool] = None
    user_rating: Optional[float] = None
    user_rating_id: Optional[str] = None
    window: Optional[WindowOut] = None
