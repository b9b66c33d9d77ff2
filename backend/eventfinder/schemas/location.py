"""Pydantic schemas for location and media resolution."""
from __future__ import annotations
from typing import Optional
from pydantic import BaseModel


class LocationResolveIn(BaseModel):
    viewer_id: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    city: Optional[str] = None


class LocationOut(BaseModel):
    lat: float
    lng: float
    source: str


class MediaResolveOut(BaseModel):
    bucket: str
    ref: str
    url: Optional[str] = None
