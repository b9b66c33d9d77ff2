"""Core event service: organizer-side writes and lookups.

Responsibilities:
- Authorization hook: only the organizer (or an admin) may update/delete
- Record validation at the storage boundary (end > start, price only when paid,
  coordinates both-or-neither) so bad rows never reach ranking or window logic
- Delete cascades to going/ratings/comments/images through the FK constraints
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from eventfinder.errors import ValidationError, forbidden, not_found
from eventfinder.models.event import Event, EventStatus, Genre, PriceType
from eventfinder.models.profile import Profile, Role
from eventfinder.services.geo import parse_coordinate
from eventfinder.services.window_policy import as_utc

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "region", "city", "address", "starts_at", "ends_at", "genre", "price_type")
MUTABLE_FIELDS = (
    "title", "description", "lineup", "poster_url", "region", "city", "address", "lat", "lng",
    "starts_at", "ends_at", "genre", "age_label", "price_type", "price", "ticket_url", "status",
)


def get_event_or_404(db: Session, event_id: str) -> Event:
    event = db.query(Event).filter(Event.event_id == str(event_id)).first()
    if not event:
        raise not_found("Event")
    return event


def get_profile_or_404(db: Session, user_id: str) -> Profile:
    profile = db.query(Profile).filter(Profile.user_id == str(user_id)).first()
    if not profile:
        raise not_found("User")
    return profile


def is_owner_or_admin(event: Event, profile: Optional[Profile]) -> bool:
    if profile is None:
        return False
    return profile.is_admin or event.organizer_id == profile.user_id


def _check_authorization(event: Event, actor: Profile) -> None:
    if not is_owner_or_admin(event, actor):
        raise forbidden("Only the organizer or an admin may modify this event")


def _coerce_enum(enum_cls, value, field: str):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {field}: {value}")


def _validate_record(values: dict[str, Any]) -> dict[str, Any]:
    """Normalize and check a full set of event values; raises ValidationError."""
    for name in REQUIRED_FIELDS:
        value = values.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{name} is required")

    values["genre"] = _coerce_enum(Genre, values.get("genre"), "genre")
    values["price_type"] = _coerce_enum(PriceType, values.get("price_type"), "price_type")
    values["status"] = _coerce_enum(EventStatus, values.get("status") or EventStatus.draft, "status")

    # Stored as UTC wall time; SQLite keeps no offset.
    values["starts_at"] = as_utc(values["starts_at"])
    values["ends_at"] = as_utc(values["ends_at"])
    if values["ends_at"] <= values["starts_at"]:
        raise ValidationError("ends_at must be after starts_at")

    if values["price_type"] == PriceType.free:
        if values.get("price") not in (None, 0):
            raise ValidationError("price is only allowed for paid events")
        values["price"] = None
    elif values.get("price") is not None and values["price"] < 0:
        raise ValidationError("price must not be negative")

    lat, lng = values.get("lat"), values.get("lng")
    if (lat is None) != (lng is None):
        raise ValidationError("lat and lng must be given together")
    if lat is not None and parse_coordinate(lat, lng) is None:
        raise ValidationError("lat/lng out of range")

    values["title"] = values["title"].strip()
    values["age_label"] = values.get("age_label") or "18+"
    return values


def create_event(db: Session, actor_user_id: str, fields: dict[str, Any]) -> Event:
    """Create an event owned by the acting organizer (admins may create too)."""
    actor = get_profile_or_404(db, actor_user_id)
    if actor.role not in (Role.organizer, Role.admin):
        raise forbidden("Must be organizer or admin")

    values = _validate_record({name: fields.get(name) for name in MUTABLE_FIELDS})
    event = Event(organizer_id=actor.user_id, **values)
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Created event '%s' (%s) by organizer %s", event.title, event.event_id, actor.user_id)
    return event


def update_event(db: Session, event_id: str, actor_user_id: str, updates: dict[str, Any]) -> Event:
    """Partial update; the merged record is re-validated before it is written."""
    event = get_event_or_404(db, event_id)
    actor = get_profile_or_404(db, actor_user_id)
    _check_authorization(event, actor)

    merged = {name: getattr(event, name) for name in MUTABLE_FIELDS}
    for field, value in updates.items():
        if field in MUTABLE_FIELDS:
            merged[field] = value
    values = _validate_record(merged)

    for field, value in values.items():
        setattr(event, field, value)
    db.commit()
    db.refresh(event)
    logger.info("Updated event %s by %s", event.event_id, actor.user_id)
    return event


def delete_event(db: Session, event_id: str, actor_user_id: str, now: Optional[datetime] = None) -> None:
    """Hard delete. Organizers cannot delete an event that already ended; admins can."""
    now = now or datetime.now(timezone.utc)
    event = get_event_or_404(db, event_id)
    actor = get_profile_or_404(db, actor_user_id)
    _check_authorization(event, actor)

    if not actor.is_admin and as_utc(event.ends_at) < as_utc(now):
        raise forbidden("Cannot delete ended events")

    db.delete(event)
    db.commit()
    logger.info("Deleted event %s by %s", event_id, actor.user_id)
