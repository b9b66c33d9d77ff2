"""Pydantic schemas for Profiles."""
from __future__ import annotations
from typing import Optional
from pydantic import BaseModel

from eventfinder.models.profile import Role
from eventfinder.schemas.event import EventOut, UTCDateTime


class ProfileCreate(BaseModel):
    username: str
    role: Role = Role.user
    avatar_url: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    show_location: bool = True


class ProfileUpdate(BaseModel):
    avatar_url: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    show_location: Optional[bool] = None


class ProfileOut(BaseModel):
    user_id: str
    username: str
    role: Role
    avatar_url: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    show_location: bool
    created_at: Optional[UTCDateTime] = None

    model_config = {"from_attributes": True}


class RoleUpdate(BaseModel):
    role: str


class GoingEventOut(EventOut):
    is_past: bool
    can_interact: bool


class OrganizerOut(ProfileOut):
    follower_count: int = 0
    is_following: Optional[bool] = None
