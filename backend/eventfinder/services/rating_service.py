"""Rating aggregation: one rating per (event, user), mean computed on read.

The pre-flight "already rated" check comes from the window policy, but the
unique index on (event_id, user_id) is the real guard: a racing duplicate
insert fails with ``IntegrityError`` and is reported as a conflict.  No
running average is stored, so updates and deletes can never make it drift.
"""
import logging
import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventfinder.errors import ConflictError, DenialReason, EligibilityDenied, ValidationError, forbidden, not_found
from eventfinder.models.rating import EventRating
from eventfinder.services.event_service import get_event_or_404, get_profile_or_404
from eventfinder.services.interaction_service import evaluate_for
from eventfinder.services.window_policy import Action, WindowState, denial_message, require

logger = logging.getLogger(__name__)

MIN_RATING = 1.0
MAX_RATING = 5.0

_INVALID = "Rating must be between 1.0 and 5.0 with 1 decimal"


def validate_rating_value(value: Any) -> float:
    """Return ``value`` as a float in [1.0, 5.0] with at most one decimal place."""
    if isinstance(value, bool):
        raise ValidationError(_INVALID)
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ValidationError(_INVALID)
    elif isinstance(value, (int, float, Decimal)):
        number = float(value)
    else:
        raise ValidationError(_INVALID)

    if not math.isfinite(number) or number < MIN_RATING or number > MAX_RATING:
        raise ValidationError(_INVALID)
    if round(number, 1) != number:
        raise ValidationError(_INVALID)
    return number


def submit_rating(db: Session, event_id: str, user_id: str, value: Any, now: Optional[datetime] = None) -> EventRating:
    """Create the user's rating for an event; a second attempt is a conflict."""
    number = validate_rating_value(value)
    event = get_event_or_404(db, event_id)
    profile = get_profile_or_404(db, user_id)
    require(evaluate_for(db, event, profile, now), Action.rate)

    rating = EventRating(event_id=event.event_id, user_id=profile.user_id, rating=number)
    db.add(rating)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("User %s already rated event %s", profile.user_id, event.event_id)
        raise ConflictError(DenialReason.ALREADY_RATED, "Already rated this event")
    db.refresh(rating)
    logger.info("Rating %s (%.1f) on event %s by %s", rating.rating_id, number, event.event_id, profile.user_id)
    return rating


def get_rating_or_404(db: Session, rating_id: str) -> EventRating:
    rating = db.query(EventRating).filter(EventRating.rating_id == str(rating_id)).first()
    if not rating:
        raise not_found("Rating")
    return rating


def update_rating(
    db: Session,
    rating_id: str,
    actor_user_id: str,
    value: Any,
    now: Optional[datetime] = None,
) -> EventRating:
    """Change an existing rating. Owner (while the window is open) or admin only."""
    number = validate_rating_value(value)
    rating = get_rating_or_404(db, rating_id)
    actor = get_profile_or_404(db, actor_user_id)
    if rating.user_id != actor.user_id and not actor.is_admin:
        raise forbidden()

    if not actor.is_admin:
        state = evaluate_for(db, rating.event, actor, now).state
        if state == WindowState.ended_locked:
            raise EligibilityDenied(DenialReason.WINDOW_CLOSED, denial_message(DenialReason.WINDOW_CLOSED))

    rating.rating = number
    db.commit()
    db.refresh(rating)
    logger.info("Rating %s updated to %.1f by %s", rating.rating_id, number, actor.user_id)
    return rating


def delete_rating(db: Session, rating_id: str, actor_user_id: str) -> None:
    """Hard delete (admin only)."""
    actor = get_profile_or_404(db, actor_user_id)
    if not actor.is_admin:
        raise forbidden("Admin only")
    rating = get_rating_or_404(db, rating_id)
    db.delete(rating)
    db.commit()
    logger.info("Rating %s deleted by admin %s", rating_id, actor.user_id)


def user_rating(db: Session, event_id: str, user_id: str) -> Optional[EventRating]:
    return (
        db.query(EventRating)
        .filter(EventRating.event_id == str(event_id), EventRating.user_id == str(user_id))
        .first()
    )


def average_rating(db: Session, event_id: str) -> Optional[float]:
    """Arithmetic mean over all ratings, or None when there are none."""
    mean = db.query(func.avg(EventRating.rating)).filter(EventRating.event_id == str(event_id)).scalar()
    return float(mean) if mean is not None else None


def rating_count(db: Session, event_id: str) -> int:
    return (
        db.query(func.count(EventRating.rating_id)).filter(EventRating.event_id == str(event_id)).scalar()
    ) or 0
