"""Event API routes: feed, detail, organizer CRUD. Delegates to the service layer."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from eventfinder.database import get_db
from eventfinder.deps import get_location_registry, get_media_resolver
from eventfinder.errors import ValidationError
from eventfinder.models.event import EventStatus
from eventfinder.models.profile import Profile
from eventfinder.schemas.event import (
    EventCreate, EventDetailOut, EventOut, EventUpdate, FeedEventOut, OrganizerSummary, WindowOut,
)
from eventfinder.services import event_service, feed_service, interaction_service, rating_service
from eventfinder.services.feed_service import FeedFilters, FeedItem, FeedScope
from eventfinder.services.geo import parse_coordinate
from eventfinder.services.location import GeoResolverRegistry, ResolvedLocation
from eventfinder.services.media import MediaURLResolver

logger = logging.getLogger(__name__)
router = APIRouter()

POSTER_BUCKET = "posters"


def render_feed_item(item: FeedItem, media: MediaURLResolver, out_cls=FeedEventOut, **extra):
    """Turn a feed item into its response model, resolving the poster URL."""
    base = EventOut.model_validate(item.event).model_dump()
    base["poster_url"] = media.resolve(POSTER_BUCKET, base["poster_url"])
    return out_cls(
        **base,
        organizer=OrganizerSummary(
            user_id=item.event.organizer_id,
            username=item.organizer_username,
            role=item.organizer_role,
        ),
        distance_km=item.distance_km,
        going_count=item.going_count,
        comment_count=item.comment_count,
        image_count=item.image_count,
        rating_count=item.rating_count,
        avg_rating=item.avg_rating,
        is_today=item.is_today,
        is_cancelled=item.event.status == EventStatus.cancelled,
        **extra,
    )


def _optional_viewer(db: Session, viewer_id: Optional[str]) -> Optional[Profile]:
    if not viewer_id:
        return None
    return event_service.get_profile_or_404(db, viewer_id)


def resolve_viewer_location(
    registry: GeoResolverRegistry,
    viewer: Optional[Profile],
    lat: Optional[float],
    lng: Optional[float],
    viewer_city: Optional[str] = None,
) -> ResolvedLocation:
    """A coordinate sent by the client wins and is remembered; otherwise walk the chain."""
    resolver = registry.for_viewer(viewer.user_id if viewer else None)
    if lat is not None or lng is not None:
        device = parse_coordinate(lat, lng)
        if device is None:
            raise ValidationError("Invalid lat or lng")
        resolver.remember(device)
        return ResolvedLocation(device, "device")
    return resolver.resolve(city=viewer_city or (viewer.city if viewer else None))


@router.get("/", response_model=list[FeedEventOut])
def list_events(
    lat: Optional[float] = Query(None),
    lng: Optional[float] = Query(None),
    viewer_city: Optional[str] = Query(None, description="City used when no coordinate is known"),
    region: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    genre: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    when: Optional[str] = Query(None, description="upcoming | past"),
    organizer_id: Optional[str] = Query(None),
    scope: FeedScope = Query(FeedScope.public),
    viewer_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    media: MediaURLResolver = Depends(get_media_resolver),
    registry: GeoResolverRegistry = Depends(get_location_registry),
):
    """Ranked feed: published events (or a wider authorized scope), nearest first."""
    viewer = _optional_viewer(db, viewer_id)
    location = resolve_viewer_location(registry, viewer, lat, lng, viewer_city)
    filters = FeedFilters(region=region, city=city, genre=genre, search=search, when=when, organizer_id=organizer_id)
    items = feed_service.list_feed(db, location.coordinate, filters, viewer=viewer, scope=scope)
    return [render_feed_item(item, media) for item in items]


@router.get("/dashboard", response_model=list[FeedEventOut])
def organizer_dashboard(
    actor_user_id: str = Query(..., description="Organizer (or admin) requesting the dashboard"),
    db: Session = Depends(get_db),
    media: MediaURLResolver = Depends(get_media_resolver),
):
    """The organizer's own events in every status, with counters."""
    actor = event_service.get_profile_or_404(db, actor_user_id)
    return [render_feed_item(item, media) for item in feed_service.organizer_dashboard(db, actor)]


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreate,
    actor_user_id: str = Query(..., description="ID of the organizer creating the event"),
    db: Session = Depends(get_db),
):
    """Create an event (organizer or admin)."""
    return event_service.create_event(db, actor_user_id, payload.model_dump())


@router.get("/{event_id}", response_model=EventDetailOut)
def get_event(
    event_id: str,
    viewer_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    media: MediaURLResolver = Depends(get_media_resolver),
):
    """Event detail with counters and, for a signed-in viewer, their relation to it."""
    viewer = _optional_viewer(db, viewer_id)
    item = feed_service.event_detail(db, event_id, viewer)
    extra = {}
    if viewer is not None:
        own_rating = rating_service.user_rating(db, item.event.event_id, viewer.user_id)
        evaluation = interaction_service.evaluate_for(db, item.event, viewer)
        extra = {
            "is_going": interaction_service.is_going(db, item.event.event_id, viewer.user_id),
            "is_following_organizer": interaction_service.is_following(db, item.event.organizer_id, viewer.user_id),
            "user_rating": own_rating.rating if own_rating else None,
            "user_rating_id": own_rating.rating_id if own_rating else None,
            "window": WindowOut(**evaluation.as_dict()),
        }
    return render_feed_item(item, media, out_cls=EventDetailOut, **extra)


@router.get("/{event_id}/window", response_model=WindowOut)
def get_window(
    event_id: str,
    viewer_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Current window state and which actions the viewer may take."""
    viewer = _optional_viewer(db, viewer_id)
    item = feed_service.event_detail(db, event_id, viewer)
    return WindowOut(**interaction_service.evaluate_for(db, item.event, viewer).as_dict())


@router.put("/{event_id}", response_model=EventOut)
def update_event(
    event_id: str,
    payload: EventUpdate,
    actor_user_id: str = Query(..., description="ID of the user performing the update"),
    db: Session = Depends(get_db),
):
    """Update an event (organizer or admin)."""
    updates = payload.model_dump(exclude_unset=True)
    return event_service.update_event(db, event_id, actor_user_id, updates)


@router.delete("/{event_id}")
def delete_event(
    event_id: str,
    actor_user_id: str = Query(...),
    db: Session = Depends(get_db),
):
    """Delete an event and everything attached to it."""
    event_service.delete_event(db, event_id, actor_user_id)
    return {"status": "ok"}
