"""Profile, organizer-follow and admin moderation routes."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from eventfinder.config import settings
from eventfinder.database import get_db
from eventfinder.errors import not_found
from eventfinder.models.profile import Role
from eventfinder.schemas.event import EventOut
from eventfinder.schemas.profile import GoingEventOut, OrganizerOut, ProfileCreate, ProfileOut, ProfileUpdate, RoleUpdate
from eventfinder.services import event_service, interaction_service, profile_service
from eventfinder.services.window_policy import WindowState, window_state

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/profiles/", response_model=ProfileOut, status_code=status.HTTP_201_CREATED)
def create_profile(payload: ProfileCreate, db: Session = Depends(get_db)):
    """Create a profile for a newly authenticated user."""
    fields = payload.model_dump(exclude={"username"})
    return profile_service.create_profile(db, payload.username, **fields)


@router.get("/profiles/{user_id}", response_model=ProfileOut)
def get_profile(user_id: str, db: Session = Depends(get_db)):
    return event_service.get_profile_or_404(db, user_id)


@router.patch("/profiles/{user_id}", response_model=ProfileOut)
def update_profile(user_id: str, payload: ProfileUpdate, db: Session = Depends(get_db)):
    """Update profile preferences (partial update)."""
    return profile_service.update_profile(db, user_id, payload.model_dump(exclude_unset=True))


@router.get("/profiles/{user_id}/going", response_model=list[GoingEventOut])
def going_events(user_id: str, when: Optional[str] = Query(None, description="upcoming | past"), db: Session = Depends(get_db)):
    """Events the user is going to, with whether the post-event window is open."""
    event_service.get_profile_or_404(db, user_id)
    now = datetime.now(timezone.utc)
    grace = timedelta(hours=settings.INTERACTION_WINDOW_HOURS)
    result = []
    for event in interaction_service.going_events(db, user_id, when, now):
        state = window_state(event.starts_at, event.ends_at, now, grace)
        result.append(GoingEventOut(
            **EventOut.model_validate(event).model_dump(),
            is_past=state in (WindowState.ended_interactable, WindowState.ended_locked),
            can_interact=state == WindowState.ended_interactable,
        ))
    return result


@router.put("/profiles/{user_id}/role", response_model=ProfileOut)
def set_role(user_id: str, payload: RoleUpdate, actor_user_id: str = Query(...), db: Session = Depends(get_db)):
    """Set a user's role (admin only)."""
    return profile_service.set_role(db, user_id, payload.role, actor_user_id)


@router.post("/profiles/{user_id}/ban")
def ban_user(user_id: str, actor_user_id: str = Query(...), db: Session = Depends(get_db)):
    """Ban a user and delete all their data (admin only)."""
    profile_service.ban_user(db, user_id, actor_user_id)
    return {"status": "ok"}


@router.get("/organizers/{organizer_id}", response_model=OrganizerOut)
def get_organizer(organizer_id: str, viewer_id: Optional[str] = Query(None), db: Session = Depends(get_db)):
    organizer = event_service.get_profile_or_404(db, organizer_id)
    if organizer.role != Role.organizer:
        raise not_found("Organizer")
    return OrganizerOut(
        **ProfileOut.model_validate(organizer).model_dump(),
        follower_count=interaction_service.follower_count(db, organizer.user_id),
        is_following=interaction_service.is_following(db, organizer.user_id, viewer_id) if viewer_id else None,
    )


@router.post("/organizers/{organizer_id}/follow")
def follow_organizer(organizer_id: str, actor_user_id: str = Query(...), db: Session = Depends(get_db)):
    """Follow an organizer; following twice is not an error."""
    changed = interaction_service.follow_organizer(db, organizer_id, actor_user_id)
    return {"status": "ok", "is_following": True, "changed": changed}


@router.delete("/organizers/{organizer_id}/follow")
def unfollow_organizer(organizer_id: str, actor_user_id: str = Query(...), db: Session = Depends(get_db)):
    interaction_service.unfollow_organizer(db, organizer_id, actor_user_id)
    return {"status": "ok", "is_following": False}
