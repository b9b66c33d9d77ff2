"""Event feed: visibility scope, filters, grouped counters, distance ranking.

Steps, in order:
  (a) visibility scope, applied in SQL so draft/cancelled rows never leave the
      database for callers who may not see them
  (b) equality filters on region / city / genre
  (c) case-insensitive substring search on title / description
  (d) going / comment / image / rating counters from one grouped subquery
      per child table (no per-row queries, no join fan-out)
  (e) stable ordering by distance from the viewer
"""
import enum
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import pytz
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from eventfinder.config import settings
from eventfinder.errors import ValidationError, forbidden, not_found
from eventfinder.models.attendance import EventGoing
from eventfinder.models.comment import EventComment
from eventfinder.models.event import Event, EventStatus, Genre
from eventfinder.models.image import EventImage
from eventfinder.models.profile import Profile, Role
from eventfinder.models.rating import EventRating
from eventfinder.services.geo import Coordinate, rank_by_distance, resolve_event_coords
from eventfinder.services.window_policy import as_utc

logger = logging.getLogger(__name__)


class FeedScope(str, enum.Enum):
    public = "public"        # published only
    organizer = "organizer"  # published + the viewer's own events in any status
    admin = "admin"          # everything


@dataclass
class FeedFilters:
    region: Optional[str] = None
    city: Optional[str] = None
    genre: Optional[str] = None
    search: Optional[str] = None
    when: Optional[str] = None  # "upcoming" | "past"
    organizer_id: Optional[str] = None


@dataclass
class FeedItem:
    event: Event
    organizer_username: Optional[str]
    organizer_role: Optional[str]
    going_count: int
    comment_count: int
    image_count: int
    rating_count: int
    avg_rating: Optional[float]
    is_today: bool
    distance_km: Optional[float] = None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _count_by_event(db: Session, model, key):
    return (
        db.query(model.event_id.label("event_id"), func.count(key).label("n"))
        .group_by(model.event_id)
        .subquery()
    )


def _base_query(db: Session):
    going = _count_by_event(db, EventGoing, EventGoing.going_id)
    comments = _count_by_event(db, EventComment, EventComment.comment_id)
    images = _count_by_event(db, EventImage, EventImage.image_id)
    ratings = (
        db.query(
            EventRating.event_id.label("event_id"),
            func.count(EventRating.rating_id).label("n"),
            func.avg(EventRating.rating).label("mean"),
        )
        .group_by(EventRating.event_id)
        .subquery()
    )
    return (
        db.query(
            Event,
            Profile.username,
            Profile.role,
            func.coalesce(going.c.n, 0),
            func.coalesce(comments.c.n, 0),
            func.coalesce(images.c.n, 0),
            func.coalesce(ratings.c.n, 0),
            ratings.c.mean,
        )
        .outerjoin(Profile, Profile.user_id == Event.organizer_id)
        .outerjoin(going, going.c.event_id == Event.event_id)
        .outerjoin(comments, comments.c.event_id == Event.event_id)
        .outerjoin(images, images.c.event_id == Event.event_id)
        .outerjoin(ratings, ratings.c.event_id == Event.event_id)
    )


def _apply_scope(query, scope: FeedScope, viewer: Optional[Profile]):
    if scope == FeedScope.public:
        return query.filter(Event.status == EventStatus.published)
    if viewer is None:
        raise forbidden("Sign in to use this view")
    if scope == FeedScope.organizer:
        if viewer.role not in (Role.organizer, Role.admin):
            raise forbidden("Must be organizer or admin")
        return query.filter(or_(Event.status == EventStatus.published, Event.organizer_id == viewer.user_id))
    if not viewer.is_admin:
        raise forbidden("Admin only")
    return query


def _apply_filters(query, filters: FeedFilters, now: datetime):
    region, city, search = _clean(filters.region), _clean(filters.city), _clean(filters.search)
    if region:
        query = query.filter(Event.region == region)
    if city:
        query = query.filter(Event.city == city)
    if _clean(filters.genre):
        try:
            genre = Genre(filters.genre.strip())
        except ValueError:
            raise ValidationError(f"Invalid genre: {filters.genre}")
        query = query.filter(Event.genre == genre)
    if search:
        pattern = f"%{_escape_like(search)}%"
        query = query.filter(
            or_(Event.title.ilike(pattern, escape="\\"), Event.description.ilike(pattern, escape="\\"))
        )
    if filters.when == "upcoming":
        query = query.filter(Event.ends_at >= now)
    elif filters.when == "past":
        query = query.filter(Event.ends_at < now)
    elif filters.when:
        raise ValidationError(f"Invalid time filter: {filters.when}")
    if filters.organizer_id:
        query = query.filter(Event.organizer_id == str(filters.organizer_id))
    return query


def is_today(starts_at: datetime, now: datetime) -> bool:
    tz = pytz.timezone(settings.APP_TIMEZONE)
    return as_utc(starts_at).astimezone(tz).date() == as_utc(now).astimezone(tz).date()


def _to_item(row, now: datetime) -> FeedItem:
    event, username, role, going, comments, images, ratings, mean = row
    return FeedItem(
        event=event,
        organizer_username=username,
        organizer_role=role.value if isinstance(role, enum.Enum) else role,
        going_count=int(going),
        comment_count=int(comments),
        image_count=int(images),
        rating_count=int(ratings),
        avg_rating=float(mean) if mean is not None else None,
        is_today=is_today(event.starts_at, now),
    )


def event_coords(event: Event) -> Optional[Coordinate]:
    return resolve_event_coords(event.lat, event.lng, event.city)


def query_feed(
    db: Session,
    filters: Optional[FeedFilters] = None,
    viewer: Optional[Profile] = None,
    scope: FeedScope = FeedScope.public,
    now: Optional[datetime] = None,
) -> list[FeedItem]:
    """Scoped, filtered events with counters, in a deterministic base order."""
    now = now or datetime.now(timezone.utc)
    query = _apply_scope(_base_query(db), scope, viewer)
    query = _apply_filters(query, filters or FeedFilters(), now)
    rows = query.order_by(Event.starts_at, Event.event_id).all()
    return [_to_item(row, now) for row in rows]


def list_feed(
    db: Session,
    viewer_coord: Coordinate,
    filters: Optional[FeedFilters] = None,
    viewer: Optional[Profile] = None,
    scope: FeedScope = FeedScope.public,
    now: Optional[datetime] = None,
) -> list[FeedItem]:
    """Ranked feed: nearest first, unknown positions last in base order."""
    items = query_feed(db, filters, viewer, scope, now)
    ranked = rank_by_distance(viewer_coord, items, lambda item: event_coords(item.event))
    result = []
    for item, distance in ranked:
        item.distance_km = None if math.isinf(distance) else round(distance, 3)
        result.append(item)
    logger.info(
        "Feed for %s (%s): %d events near (%.4f, %.4f)",
        viewer.user_id if viewer else "anonymous", scope.value, len(result), viewer_coord.lat, viewer_coord.lng,
    )
    return result


def organizer_dashboard(db: Session, actor: Profile, now: Optional[datetime] = None) -> list[FeedItem]:
    """The organizer's own events in every status, newest first (admins see all)."""
    if actor.role not in (Role.organizer, Role.admin):
        raise forbidden("Must be organizer or admin")
    query = _base_query(db)
    if not actor.is_admin:
        query = query.filter(Event.organizer_id == actor.user_id)
    now = now or datetime.now(timezone.utc)
    rows = query.order_by(Event.created_at.desc(), Event.event_id).all()
    return [_to_item(row, now) for row in rows]


def event_detail(db: Session, event_id: str, viewer: Optional[Profile] = None, now: Optional[datetime] = None) -> FeedItem:
    """One event with counters; invisible events look exactly like missing ones."""
    now = now or datetime.now(timezone.utc)
    query = _base_query(db).filter(Event.event_id == str(event_id))
    if viewer is None:
        query = query.filter(Event.status == EventStatus.published)
    elif not viewer.is_admin:
        query = query.filter(or_(Event.status == EventStatus.published, Event.organizer_id == viewer.user_id))
    row = query.first()
    if row is None:
        raise not_found("Event")
    return _to_item(row, now)
