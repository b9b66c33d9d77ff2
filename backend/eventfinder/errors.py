"""Error kinds raised by the service layer.

Services raise these directly (they are ``HTTPException`` subclasses), so the
routers stay thin and FastAPI renders them without extra handlers.
``TransientIOError`` is the exception: it is raised by I/O collaborators and
usually caught by a resolver that degrades to a fallback value.
"""
from typing import Optional

from fastapi import HTTPException, status


class DenialReason:
    """Reason codes carried by ``EligibilityDenied``."""

    NOT_GOING = "not-going"
    WINDOW_NOT_OPEN = "window-not-open"
    WINDOW_CLOSED = "window-closed"
    ALREADY_RATED = "already-rated"
    OWN_EVENT = "own-event"
    IMAGE_QUOTA_EXCEEDED = "image-quota-exceeded"
    EVENT_NOT_PUBLISHED = "event-not-published"


class ValidationError(HTTPException):
    """Malformed input (rating value, empty comment, missing event field). Never retried."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "validation", "message": message},
        )


class EligibilityDenied(HTTPException):
    """A window-state or attendance precondition failed."""

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        self.message = message or reason
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "eligibility", "reason": reason, "message": self.message},
        )


class ConflictError(HTTPException):
    """A unique constraint rejected the write (the action was already done)."""

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        self.message = message or reason
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "conflict", "reason": reason, "message": self.message},
        )


class TransientIOError(Exception):
    """Location or signing service failure; callers may retry."""


def not_found(what: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")


def forbidden(message: str = "Unauthorized") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)
