"""Viewer location routes: resolve once, reuse for every feed request."""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from eventfinder.database import get_db
from eventfinder.deps import get_location_registry
from eventfinder.routers.events import resolve_viewer_location
from eventfinder.schemas.location import LocationOut, LocationResolveIn
from eventfinder.services import event_service
from eventfinder.services.location import GeoResolverRegistry

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/resolve", response_model=LocationOut)
def resolve_location(
    payload: LocationResolveIn,
    db: Session = Depends(get_db),
    registry: GeoResolverRegistry = Depends(get_location_registry),
):
    """Best-effort coordinate for a viewer; never fails (country fallback)."""
    viewer = event_service.get_profile_or_404(db, payload.viewer_id) if payload.viewer_id else None
    location = resolve_viewer_location(registry, viewer, payload.lat, payload.lng, payload.city)
    return LocationOut(**location.as_dict())


@router.delete("/{viewer_id}")
def forget_location(
    viewer_id: str,
    db: Session = Depends(get_db),
    registry: GeoResolverRegistry = Depends(get_location_registry),
):
    """Drop the remembered coordinate, e.g. after the user picks another city."""
    viewer = event_service.get_profile_or_404(db, viewer_id)
    registry.forget(viewer.user_id)
    logger.info("Forgot stored location for viewer %s", viewer.user_id)
    return {"status": "ok"}
