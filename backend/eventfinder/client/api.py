"""HTTP client for the Event Finder API.

Wraps any ``httpx.Client`` (FastAPI's ``TestClient`` is one).  The window
preview uses the same policy module as the server, but only to decide what to
show; the server re-checks every write.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from eventfinder.client.feed import CancelToken, FeedCancelled
from eventfinder.services.window_policy import ViewerContext, WindowEvaluation, evaluate_window

logger = logging.getLogger(__name__)


def _parse_time(value: str) -> datetime:
    # fromisoformat only learned the "Z" suffix in 3.11
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


class ApiError(Exception):
    """Non-2xx answer from the API, with the reason code when there is one."""

    def __init__(self, status_code: int, detail: Any):
        self.status_code = status_code
        self.detail = detail
        self.reason = detail.get("reason") if isinstance(detail, dict) else None
        message = detail.get("message") if isinstance(detail, dict) else detail
        super().__init__(f"{status_code}: {message}")


class EventFinderClient:
    def __init__(self, http: httpx.Client, user_id: Optional[str] = None):
        self.http = http
        self.user_id = user_id

    def _call(self, method: str, path: str, **kwargs) -> Any:
        response = self.http.request(method, path, **kwargs)
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            logger.debug("%s %s failed with %d", method, path, response.status_code)
            raise ApiError(response.status_code, detail)
        return response.json()

    def _actor(self) -> dict[str, str]:
        if not self.user_id:
            raise ValueError("this call needs a signed-in user")
        return {"actor_user_id": self.user_id}

    # ── Reads ──────────────────────────────────────────────────────

    def feed(self, token: Optional[CancelToken] = None, **params) -> list[dict]:
        query = {k: v for k, v in params.items() if v is not None}
        if self.user_id:
            query.setdefault("viewer_id", self.user_id)
        events = self._call("GET", "/api/events/", params=query)
        if token is not None and token.cancelled:
            raise FeedCancelled()
        return events

    def event(self, event_id: str) -> dict:
        params = {"viewer_id": self.user_id} if self.user_id else {}
        return self._call("GET", f"/api/events/{event_id}", params=params)

    def resolve_location(self, lat: Optional[float] = None, lng: Optional[float] = None, city: Optional[str] = None) -> dict:
        payload = {"viewer_id": self.user_id, "lat": lat, "lng": lng, "city": city}
        return self._call("POST", "/api/location/resolve", json=payload)

    # ── Writes ─────────────────────────────────────────────────────

    def mark_going(self, event_id: str) -> dict:
        return self._call("POST", f"/api/events/{event_id}/going", params=self._actor())

    def unmark_going(self, event_id: str) -> dict:
        return self._call("DELETE", f"/api/events/{event_id}/going", params=self._actor())

    def toggle_going(self, event_id: str) -> dict:
        return self._call("POST", f"/api/events/{event_id}/going/toggle", params=self._actor())

    def comment(self, event_id: str, body: str) -> dict:
        return self._call("POST", f"/api/events/{event_id}/comments", params=self._actor(), json={"body": body})

    def rate(self, event_id: str, rating: float) -> dict:
        return self._call("POST", f"/api/events/{event_id}/ratings", params=self._actor(), json={"rating": rating})

    def upload_image(self, event_id: str, image_ref: str) -> dict:
        return self._call("POST", f"/api/events/{event_id}/images", params=self._actor(), json={"image_ref": image_ref})

    # ── Local preview ──────────────────────────────────────────────

    def preview_window(self, detail: dict, now: Optional[datetime] = None) -> WindowEvaluation:
        """Evaluate the window locally from an event detail payload."""
        viewer = ViewerContext(
            is_going=bool(detail.get("is_going")),
            is_owner=bool(self.user_id) and detail.get("organizer_id") == self.user_id,
            has_rated=detail.get("user_rating") is not None,
            event_published=detail.get("status") == "published",
        )
        return evaluate_window(
            _parse_time(detail["starts_at"]),
            _parse_time(detail["ends_at"]),
            now or datetime.now(timezone.utc),
            viewer,
        )
