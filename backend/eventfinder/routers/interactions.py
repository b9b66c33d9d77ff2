"""Going / comments / images / ratings API routes.

Every write is gated by the interaction window in the service layer.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from eventfinder.database import get_db
from eventfinder.deps import get_media_resolver
from eventfinder.models.image import EventImage
from eventfinder.schemas.interaction import (
    AuthorOut, CommentIn, CommentOut, GoingOut, ImageIn, ImageOut, RatingIn, RatingOut, RatingSummaryOut,
)
from eventfinder.services import event_service, feed_service, interaction_service, rating_service
from eventfinder.services.media import MediaURLResolver

logger = logging.getLogger(__name__)
router = APIRouter()

IMAGE_BUCKET = "event-images"
AVATAR_BUCKET = "avatars"


def _author(profile, media: MediaURLResolver) -> AuthorOut:
    return AuthorOut(
        user_id=profile.user_id,
        username=profile.username,
        avatar_url=media.resolve(AVATAR_BUCKET, profile.avatar_url),
    )


def _image_out(image: EventImage, media: MediaURLResolver) -> ImageOut:
    return ImageOut(
        image_id=image.image_id,
        event_id=image.event_id,
        image_url=media.resolve(IMAGE_BUCKET, image.image_ref),
        created_at=image.created_at,
        uploader=_author(image.uploader, media),
    )


def _visible_event(db: Session, event_id: str, viewer_id: Optional[str]):
    viewer = event_service.get_profile_or_404(db, viewer_id) if viewer_id else None
    return feed_service.event_detail(db, event_id, viewer).event


# ── Going ──────────────────────────────────────────────────────────


@router.post("/events/{event_id}/going", response_model=GoingOut)
def mark_going(event_id: str, actor_user_id: str = Query(...), db: Session = Depends(get_db)):
    """Mark going. Marking twice is not an error."""
    changed = interaction_service.mark_going(db, event_id, actor_user_id)
    return GoingOut(event_id=event_id, is_going=True, changed=changed)


@router.delete("/events/{event_id}/going", response_model=GoingOut)
def unmark_going(event_id: str, actor_user_id: str = Query(...), db: Session = Depends(get_db)):
    """Remove going; closed once the event has started."""
    interaction_service.unmark_going(db, event_id, actor_user_id)
    return GoingOut(event_id=event_id, is_going=False, changed=True)


@router.post("/events/{event_id}/going/toggle", response_model=GoingOut)
def toggle_going(event_id: str, actor_user_id: str = Query(...), db: Session = Depends(get_db)):
    going = interaction_service.toggle_going(db, event_id, actor_user_id)
    return GoingOut(event_id=event_id, is_going=going, changed=True)


@router.get("/events/{event_id}/attendees", response_model=list[AuthorOut])
def list_attendees(
    event_id: str,
    actor_user_id: str = Query(...),
    db: Session = Depends(get_db),
    media: MediaURLResolver = Depends(get_media_resolver),
):
    """Attendee list; only visible to people going (and the organizer/admins)."""
    return [_author(p, media) for p in interaction_service.list_attendees(db, event_id, actor_user_id)]


# ── Comments ───────────────────────────────────────────────────────


@router.get("/events/{event_id}/comments", response_model=list[CommentOut])
def list_comments(
    event_id: str,
    viewer_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    media: MediaURLResolver = Depends(get_media_resolver),
):
    event = _visible_event(db, event_id, viewer_id)
    return [
        CommentOut(
            comment_id=c.comment_id,
            event_id=c.event_id,
            body=c.body,
            created_at=c.created_at,
            author=_author(c.author, media),
        )
        for c in interaction_service.list_comments(db, event.event_id)
    ]


@router.post("/events/{event_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
def add_comment(
    event_id: str,
    payload: CommentIn,
    actor_user_id: str = Query(...),
    db: Session = Depends(get_db),
    media: MediaURLResolver = Depends(get_media_resolver),
):
    comment = interaction_service.add_comment(db, event_id, actor_user_id, payload.body)
    return CommentOut(
        comment_id=comment.comment_id,
        event_id=comment.event_id,
        body=comment.body,
        created_at=comment.created_at,
        author=_author(comment.author, media),
    )


@router.delete("/comments/{comment_id}")
def delete_comment(comment_id: str, actor_user_id: str = Query(...), db: Session = Depends(get_db)):
    """Delete a comment (author or admin)."""
    interaction_service.delete_comment(db, comment_id, actor_user_id)
    return {"status": "ok"}


# ── Images ─────────────────────────────────────────────────────────


@router.get("/events/{event_id}/images", response_model=list[ImageOut])
def list_images(
    event_id: str,
    viewer_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    media: MediaURLResolver = Depends(get_media_resolver),
):
    event = _visible_event(db, event_id, viewer_id)
    return [_image_out(image, media) for image in interaction_service.list_images(db, event.event_id)]


@router.post("/events/{event_id}/images", response_model=ImageOut, status_code=status.HTTP_201_CREATED)
def upload_image(
    event_id: str,
    payload: ImageIn,
    actor_user_id: str = Query(...),
    db: Session = Depends(get_db),
    media: MediaURLResolver = Depends(get_media_resolver),
):
    """Attach an already-stored image to the event (max 5 per uploader)."""
    image = interaction_service.upload_image(db, event_id, actor_user_id, payload.image_ref)
    return _image_out(image, media)


@router.delete("/images/{image_id}")
def delete_image(image_id: str, actor_user_id: str = Query(...), db: Session = Depends(get_db)):
    interaction_service.delete_image(db, image_id, actor_user_id)
    return {"status": "ok"}


# ── Ratings ────────────────────────────────────────────────────────


@router.post("/events/{event_id}/ratings", response_model=RatingOut, status_code=status.HTTP_201_CREATED)
def submit_rating(event_id: str, payload: RatingIn, actor_user_id: str = Query(...), db: Session = Depends(get_db)):
    """Rate an event once; later changes go through PUT /ratings/{id}."""
    return rating_service.submit_rating(db, event_id, actor_user_id, payload.rating)


@router.get("/events/{event_id}/ratings/summary", response_model=RatingSummaryOut)
def rating_summary(event_id: str, viewer_id: Optional[str] = Query(None), db: Session = Depends(get_db)):
    event = _visible_event(db, event_id, viewer_id)
    return RatingSummaryOut(
        event_id=event.event_id,
        average=rating_service.average_rating(db, event.event_id),
        count=rating_service.rating_count(db, event.event_id),
    )


@router.put("/ratings/{rating_id}", response_model=RatingOut)
def update_rating(rating_id: str, payload: RatingIn, actor_user_id: str = Query(...), db: Session = Depends(get_db)):
    """Change a rating (owner or admin)."""
    return rating_service.update_rating(db, rating_id, actor_user_id, payload.rating)


@router.delete("/ratings/{rating_id}")
def delete_rating(rating_id: str, actor_user_id: str = Query(...), db: Session = Depends(get_db)):
    """Hard delete a rating (admin only)."""
    rating_service.delete_rating(db, rating_id, actor_user_id)
    return {"status": "ok"}
