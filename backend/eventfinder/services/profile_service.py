"""Profiles, role management and administrative ban cleanup."""
import logging
import re

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventfinder.errors import ConflictError, ValidationError, forbidden
from eventfinder.models.attendance import EventGoing
from eventfinder.models.comment import EventComment
from eventfinder.models.event import Event
from eventfinder.models.follow import OrganizerFollow
from eventfinder.models.image import EventImage
from eventfinder.models.profile import Profile, Role
from eventfinder.models.rating import EventRating
from eventfinder.services.event_service import get_profile_or_404

logger = logging.getLogger(__name__)

_USERNAME = re.compile(r"^[a-z0-9_-]{3,}$")


def create_profile(db: Session, username: str, **fields) -> Profile:
    username = (username or "").strip().lower()
    if not _USERNAME.match(username):
        raise ValidationError("Username must be at least 3 characters of a-z, 0-9, _ or -")
    profile = Profile(username=username, **fields)
    db.add(profile)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("username-taken", "Username already taken")
    db.refresh(profile)
    logger.info("Created profile %s (%s)", profile.user_id, profile.username)
    return profile


def update_profile(db: Session, user_id: str, updates: dict) -> Profile:
    profile = get_profile_or_404(db, user_id)
    for field in ("avatar_url", "region", "city", "show_location"):
        if field in updates:
            setattr(profile, field, updates[field])
    db.commit()
    db.refresh(profile)
    logger.info("Updated profile %s", user_id)
    return profile


def _require_admin(db: Session, actor_user_id: str) -> Profile:
    actor = get_profile_or_404(db, actor_user_id)
    if not actor.is_admin:
        raise forbidden("Admin only")
    return actor


def set_role(db: Session, user_id: str, role: str, actor_user_id: str) -> Profile:
    actor = _require_admin(db, actor_user_id)
    try:
        new_role = Role(role)
    except ValueError:
        raise ValidationError(f"Invalid role: {role}")
    profile = get_profile_or_404(db, user_id)
    profile.role = new_role
    db.commit()
    db.refresh(profile)
    logger.info("Admin %s set role of %s to %s", actor.user_id, user_id, new_role.value)
    return profile


def ban_user(db: Session, user_id: str, actor_user_id: str) -> None:
    """Delete a user and everything that references them, in one transaction.

    The explicit deletes mirror the ON DELETE CASCADE constraints so cleanup
    does not depend on the backend enforcing foreign keys.
    """
    actor = _require_admin(db, actor_user_id)
    profile = get_profile_or_404(db, user_id)
    if profile.user_id == actor.user_id:
        raise ValidationError("Admins cannot ban themselves")

    owned_events = select(Event.event_id).where(Event.organizer_id == profile.user_id)
    for model in (EventGoing, EventComment, EventImage, EventRating):
        db.query(model).filter(
            or_(model.user_id == profile.user_id, model.event_id.in_(owned_events))
        ).delete(synchronize_session=False)
    db.query(OrganizerFollow).filter(
        or_(OrganizerFollow.user_id == profile.user_id, OrganizerFollow.organizer_id == profile.user_id)
    ).delete(synchronize_session=False)
    db.query(Event).filter(Event.organizer_id == profile.user_id).delete(synchronize_session=False)
    db.query(Profile).filter(Profile.user_id == profile.user_id).delete(synchronize_session=False)
    db.commit()
    logger.info("Admin %s banned user %s and removed their data", actor.user_id, user_id)
