"""Interaction window policy: which post-attendance actions are open right now.

A pure function of (event start, event end, now, viewer facts).  The state is
derived on demand and never stored:

    UPCOMING            now < start
    LIVE                start <= now <= end
    ENDED_INTERACTABLE  end < now <= end + grace
    ENDED_LOCKED        now > end + grace

The server evaluates this before every write and is authoritative; the client
package imports the same module to grey out buttons, nothing more.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import pytz

from eventfinder.errors import DenialReason, EligibilityDenied

INTERACTION_GRACE = timedelta(hours=7 * 24)
MAX_IMAGES_PER_USER = 5


class WindowState(str, enum.Enum):
    upcoming = "UPCOMING"
    live = "LIVE"
    ended_interactable = "ENDED_INTERACTABLE"
    ended_locked = "ENDED_LOCKED"


class Action(str, enum.Enum):
    mark_going = "mark_going"
    unmark_going = "unmark_going"
    comment = "comment"
    rate = "rate"
    upload_image = "upload_image"
    view_attendees = "view_attendees"


_MESSAGES = {
    DenialReason.NOT_GOING: "You must be going to this event",
    DenialReason.WINDOW_NOT_OPEN: "This is only possible after the event ends",
    DenialReason.WINDOW_CLOSED: "The window for this action has closed",
    DenialReason.ALREADY_RATED: "You already rated this event",
    DenialReason.OWN_EVENT: "Organizers cannot mark going on their own event",
    DenialReason.IMAGE_QUOTA_EXCEEDED: "Max %d images per user per event",
    DenialReason.EVENT_NOT_PUBLISHED: "This event is not open for attendance",
}


def denial_message(reason: str, max_images: int = MAX_IMAGES_PER_USER) -> str:
    message = _MESSAGES.get(reason, reason)
    return message % max_images if "%d" in message else message


@dataclass(frozen=True)
class ViewerContext:
    """What the caller already knows about the viewer's relation to the event."""

    is_going: bool = False
    is_owner: bool = False
    is_admin: bool = False
    has_rated: bool = False
    image_count: int = 0
    event_published: bool = True


@dataclass(frozen=True)
class WindowEvaluation:
    state: WindowState
    allowed_actions: frozenset
    denial_reasons: dict = field(default_factory=dict)

    def allows(self, action: Action) -> bool:
        return action in self.allowed_actions

    def reason_for(self, action: Action) -> Optional[str]:
        return self.denial_reasons.get(action)

    def as_dict(self) -> dict:
        return {
            "state": self.state.value,
            "allowed_actions": sorted(a.value for a in self.allowed_actions),
            "denial_reasons": {a.value: r for a, r in sorted(self.denial_reasons.items())},
        }


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if moment.tzinfo is None:
        return pytz.utc.localize(moment)
    return moment.astimezone(pytz.utc)


def window_state(
    starts_at: datetime,
    ends_at: datetime,
    now: datetime,
    grace: timedelta = INTERACTION_GRACE,
) -> WindowState:
    start, end, current = as_utc(starts_at), as_utc(ends_at), as_utc(now)
    if current < start:
        return WindowState.upcoming
    if current <= end:
        return WindowState.live
    if current <= end + grace:
        return WindowState.ended_interactable
    return WindowState.ended_locked


def _retrospective_denial(state: WindowState, viewer: ViewerContext) -> Optional[str]:
    if state in (WindowState.upcoming, WindowState.live):
        return DenialReason.WINDOW_NOT_OPEN
    if state == WindowState.ended_locked:
        return DenialReason.WINDOW_CLOSED
    if not viewer.is_going:
        return DenialReason.NOT_GOING
    return None


def _denial(action: Action, state: WindowState, viewer: ViewerContext, max_images: int) -> Optional[str]:
    if action == Action.mark_going:
        if viewer.is_owner:
            return DenialReason.OWN_EVENT
        if not viewer.event_published:
            return DenialReason.EVENT_NOT_PUBLISHED
        if state not in (WindowState.upcoming, WindowState.live):
            return DenialReason.WINDOW_CLOSED
        return None

    if action == Action.unmark_going:
        # Retraction closes at the stroke of start (LIVE includes now == start).
        if state != WindowState.upcoming:
            return DenialReason.WINDOW_CLOSED
        if not viewer.is_going:
            return DenialReason.NOT_GOING
        return None

    if action == Action.view_attendees:
        if viewer.is_going or viewer.is_owner or viewer.is_admin:
            return None
        return DenialReason.NOT_GOING

    reason = _retrospective_denial(state, viewer)
    if reason is not None:
        return reason
    if action == Action.rate and viewer.has_rated:
        return DenialReason.ALREADY_RATED
    if action == Action.upload_image and viewer.image_count >= max_images:
        return DenialReason.IMAGE_QUOTA_EXCEEDED
    return None


def evaluate_window(
    starts_at: datetime,
    ends_at: datetime,
    now: datetime,
    viewer: Optional[ViewerContext] = None,
    grace: timedelta = INTERACTION_GRACE,
    max_images: int = MAX_IMAGES_PER_USER,
) -> WindowEvaluation:
    """Evaluate every action for one viewer at one instant."""
    viewer = viewer or ViewerContext()
    state = window_state(starts_at, ends_at, now, grace)
    allowed = set()
    reasons = {}
    for action in Action:
        reason = _denial(action, state, viewer, max_images)
        if reason is None:
            allowed.add(action)
        else:
            reasons[action] = reason
    return WindowEvaluation(state=state, allowed_actions=frozenset(allowed), denial_reasons=reasons)


def require(evaluation: WindowEvaluation, action: Action, max_images: int = MAX_IMAGES_PER_USER) -> None:
    """Raise ``EligibilityDenied`` with the specific reason when ``action`` is not allowed."""
    reason = evaluation.reason_for(action)
    if reason is not None:
        raise EligibilityDenied(reason, denial_message(reason, max_images))
