"""Attendee-side interactions: going, comments, images, attendee list, follows.

Every write evaluates the interaction window for the acting user first and
raises ``EligibilityDenied`` with the specific reason.  Uniqueness of "going"
and follows is left to the unique indexes; a duplicate is an idempotent no-op.
"""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventfinder.config import settings
from eventfinder.errors import ValidationError, forbidden, not_found
from eventfinder.models.attendance import EventGoing
from eventfinder.models.comment import EventComment
from eventfinder.models.event import Event, EventStatus
from eventfinder.models.follow import OrganizerFollow
from eventfinder.models.image import EventImage
from eventfinder.models.profile import Profile, Role
from eventfinder.models.rating import EventRating
from eventfinder.services.event_service import get_event_or_404, get_profile_or_404
from eventfinder.services.window_policy import Action, ViewerContext, WindowEvaluation, evaluate_window, require

logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"https?://\S+")


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def is_going(db: Session, event_id: str, user_id: str) -> bool:
    return (
        db.query(EventGoing.going_id)
        .filter(EventGoing.event_id == event_id, EventGoing.user_id == user_id)
        .first()
        is not None
    )


def image_count(db: Session, event_id: str, user_id: str) -> int:
    return (
        db.query(func.count(EventImage.image_id))
        .filter(EventImage.event_id == event_id, EventImage.user_id == user_id)
        .scalar()
    ) or 0


def viewer_context(db: Session, event: Event, profile: Optional[Profile]) -> ViewerContext:
    """Collect the viewer facts the window policy needs (anonymous -> defaults)."""
    if profile is None:
        return ViewerContext(event_published=event.status == EventStatus.published)
    has_rated = (
        db.query(EventRating.rating_id)
        .filter(EventRating.event_id == event.event_id, EventRating.user_id == profile.user_id)
        .first()
        is not None
    )
    return ViewerContext(
        is_going=is_going(db, event.event_id, profile.user_id),
        is_owner=event.organizer_id == profile.user_id,
        is_admin=profile.is_admin,
        has_rated=has_rated,
        image_count=image_count(db, event.event_id, profile.user_id),
        event_published=event.status == EventStatus.published,
    )


def evaluate_for(db: Session, event: Event, profile: Optional[Profile], now: Optional[datetime] = None) -> WindowEvaluation:
    return evaluate_window(
        event.starts_at,
        event.ends_at,
        _now(now),
        viewer_context(db, event, profile),
        grace=timedelta(hours=settings.INTERACTION_WINDOW_HOURS),
        max_images=settings.MAX_IMAGES_PER_USER,
    )


def _gate(db: Session, event: Event, profile: Profile, action: Action, now: Optional[datetime]) -> None:
    require(evaluate_for(db, event, profile, now), action, settings.MAX_IMAGES_PER_USER)


# ── Going ──────────────────────────────────────────────────────────


def mark_going(db: Session, event_id: str, user_id: str, now: Optional[datetime] = None) -> bool:
    """Mark the user as going. Returns False when they already were (not an error)."""
    event = get_event_or_404(db, event_id)
    profile = get_profile_or_404(db, user_id)
    _gate(db, event, profile, Action.mark_going, now)

    db.add(EventGoing(event_id=event.event_id, user_id=profile.user_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("User %s already marked going on event %s", profile.user_id, event.event_id)
        return False
    logger.info("User %s marked going on event %s", profile.user_id, event.event_id)
    return True


def unmark_going(db: Session, event_id: str, user_id: str, now: Optional[datetime] = None) -> None:
    event = get_event_or_404(db, event_id)
    profile = get_profile_or_404(db, user_id)
    _gate(db, event, profile, Action.unmark_going, now)

    db.query(EventGoing).filter(
        EventGoing.event_id == event.event_id,
        EventGoing.user_id == profile.user_id,
    ).delete(synchronize_session=False)
    db.commit()
    logger.info("User %s removed going on event %s", profile.user_id, event.event_id)


def toggle_going(db: Session, event_id: str, user_id: str, now: Optional[datetime] = None) -> bool:
    """Flip the user's going mark; returns the new state."""
    if is_going(db, str(event_id), str(user_id)):
        unmark_going(db, event_id, user_id, now)
        return False
    mark_going(db, event_id, user_id, now)
    return True


def list_attendees(db: Session, event_id: str, user_id: str, now: Optional[datetime] = None) -> list[Profile]:
    event = get_event_or_404(db, event_id)
    profile = get_profile_or_404(db, user_id)
    _gate(db, event, profile, Action.view_attendees, now)

    return (
        db.query(Profile)
        .join(EventGoing, EventGoing.user_id == Profile.user_id)
        .filter(EventGoing.event_id == event.event_id)
        .order_by(EventGoing.created_at, Profile.username)
        .all()
    )


def going_events(db: Session, user_id: str, when: Optional[str] = None, now: Optional[datetime] = None) -> list[Event]:
    """Events the user marked going on, newest first; ``when`` is 'upcoming' or 'past'."""
    now = _now(now)
    query = (
        db.query(Event)
        .join(EventGoing, EventGoing.event_id == Event.event_id)
        .filter(EventGoing.user_id == str(user_id))
    )
    if when == "upcoming":
        query = query.filter(Event.ends_at >= now)
    elif when == "past":
        query = query.filter(Event.ends_at < now)
    return query.order_by(Event.starts_at.desc()).all()


# ── Comments ───────────────────────────────────────────────────────


def sanitize_comment(body: Optional[str]) -> str:
    """Strip URLs and surrounding whitespace."""
    return _URL_PATTERN.sub("", body or "").strip()


def add_comment(db: Session, event_id: str, user_id: str, body: str, now: Optional[datetime] = None) -> EventComment:
    event = get_event_or_404(db, event_id)
    profile = get_profile_or_404(db, user_id)
    _gate(db, event, profile, Action.comment, now)

    sanitized = sanitize_comment(body)
    if not sanitized:
        raise ValidationError("Comment cannot be empty")
    if len(sanitized) > settings.MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment must be max {settings.MAX_COMMENT_LENGTH} characters")

    comment = EventComment(event_id=event.event_id, user_id=profile.user_id, body=sanitized)
    db.add(comment)
    db.commit()
    db.refresh(comment)
    logger.info("Comment %s added to event %s by %s", comment.comment_id, event.event_id, profile.user_id)
    return comment


def list_comments(db: Session, event_id: str) -> list[EventComment]:
    return (
        db.query(EventComment)
        .filter(EventComment.event_id == str(event_id))
        .order_by(EventComment.created_at.desc())
        .all()
    )


def delete_comment(db: Session, comment_id: str, actor_user_id: str) -> None:
    comment = db.query(EventComment).filter(EventComment.comment_id == str(comment_id)).first()
    if not comment:
        raise not_found("Comment")
    actor = get_profile_or_404(db, actor_user_id)
    if comment.user_id != actor.user_id and not actor.is_admin:
        raise forbidden()
    db.delete(comment)
    db.commit()
    logger.info("Comment %s deleted by %s", comment_id, actor.user_id)


# ── Images ─────────────────────────────────────────────────────────


def upload_image(db: Session, event_id: str, user_id: str, image_ref: str, now: Optional[datetime] = None) -> EventImage:
    """Record an uploaded image.

    The quota is a count taken just before the insert, so two racing uploads
    can transiently produce a sixth image; that soft limit is accepted.
    """
    event = get_event_or_404(db, event_id)
    profile = get_profile_or_404(db, user_id)
    _gate(db, event, profile, Action.upload_image, now)

    image_ref = (image_ref or "").strip()
    if not image_ref:
        raise ValidationError("image_ref is required")

    image = EventImage(event_id=event.event_id, user_id=profile.user_id, image_ref=image_ref)
    db.add(image)
    db.commit()
    db.refresh(image)
    logger.info("Image %s uploaded to event %s by %s", image.image_id, event.event_id, profile.user_id)
    return image


def list_images(db: Session, event_id: str) -> list[EventImage]:
    return (
        db.query(EventImage)
        .filter(EventImage.event_id == str(event_id))
        .order_by(EventImage.created_at.desc())
        .all()
    )


def delete_image(db: Session, image_id: str, actor_user_id: str) -> None:
    image = db.query(EventImage).filter(EventImage.image_id == str(image_id)).first()
    if not image:
        raise not_found("Image")
    actor = get_profile_or_404(db, actor_user_id)
    if image.user_id != actor.user_id and not actor.is_admin:
        raise forbidden()
    db.delete(image)
    db.commit()
    logger.info("Image %s deleted by %s", image_id, actor.user_id)


# ── Follows ────────────────────────────────────────────────────────


def follow_organizer(db: Session, organizer_id: str, user_id: str) -> bool:
    """Follow an organizer. Returns False when already following."""
    organizer = db.query(Profile).filter(Profile.user_id == str(organizer_id)).first()
    if not organizer:
        raise not_found("Organizer")
    if organizer.role != Role.organizer:
        raise forbidden("Can only follow organizers")
    profile = get_profile_or_404(db, user_id)
    if profile.user_id == organizer.user_id:
        raise ValidationError("Cannot follow yourself")

    db.add(OrganizerFollow(organizer_id=organizer.user_id, user_id=profile.user_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("User %s already follows organizer %s", profile.user_id, organizer.user_id)
        return False
    logger.info("User %s followed organizer %s", profile.user_id, organizer.user_id)
    return True


def unfollow_organizer(db: Session, organizer_id: str, user_id: str) -> None:
    db.query(OrganizerFollow).filter(
        OrganizerFollow.organizer_id == str(organizer_id),
        OrganizerFollow.user_id == str(user_id),
    ).delete(synchronize_session=False)
    db.commit()
    logger.info("User %s unfollowed organizer %s", user_id, organizer_id)


def is_following(db: Session, organizer_id: str, user_id: str) -> bool:
    return (
        db.query(OrganizerFollow.follow_id)
        .filter(OrganizerFollow.organizer_id == organizer_id, OrganizerFollow.user_id == user_id)
        .first()
        is not None
    )


def follower_count(db: Session, organizer_id: str) -> int:
    return (
        db.query(func.count(OrganizerFollow.follow_id))
        .filter(OrganizerFollow.organizer_id == str(organizer_id))
        .scalar()
    ) or 0
