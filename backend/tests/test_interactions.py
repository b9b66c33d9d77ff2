"""Tests for going, attendee lists, comments and images.

Covers:
- Going is idempotent, closed after the event starts, never on your own event
- Attendee list visibility
- Comments: window gating, URL stripping, length limits, deletion rights
- Images: 5 per uploader per event, the 6th is denied
"""
from eventfinder.models.attendance import EventGoing
from tests.conftest import add_going, create_past_event, create_test_event, create_test_profile, hours_from_now


def _going(client, event_id, user_id, method="post"):
    return getattr(client, method)(f"/api/events/{event_id}/going", params={"actor_user_id": user_id})


def _comment(client, event_id, user_id, body):
    return client.post(f"/api/events/{event_id}/comments", params={"actor_user_id": user_id}, json={"body": body})


def _upload(client, event_id, user_id, ref):
    return client.post(f"/api/events/{event_id}/images", params={"actor_user_id": user_id}, json={"image_ref": ref})


def _setup(client):
    organizer = create_test_profile(client, "club-org", role="organizer")
    attendee = create_test_profile(client, "raver")
    return organizer, attendee


class TestGoing:
    """POST/DELETE /api/events/{id}/going."""

    def test_mark_going_twice_is_idempotent(self, client, db):
        organizer, attendee = _setup(client)
        event = create_test_event(client, organizer["user_id"])

        first = _going(client, event["event_id"], attendee["user_id"])
        second = _going(client, event["event_id"], attendee["user_id"])
        assert first.status_code == 200 and first.json()["changed"] is True
        assert second.status_code == 200 and second.json()["changed"] is False
        assert db.query(EventGoing).filter(EventGoing.event_id == event["event_id"]).count() == 1

    def test_going_count_in_detail(self, client):
        organizer, attendee = _setup(client)
        event = create_test_event(client, organizer["user_id"])
        _going(client, event["event_id"], attendee["user_id"])

        detail = client.get(f"/api/events/{event['event_id']}", params={"viewer_id": attendee["user_id"]}).json()
        assert detail["going_count"] == 1
        assert detail["is_going"] is True

    def test_own_event_denied(self, client):
        organizer, _ = _setup(client)
        event = create_test_event(client, organizer["user_id"])
        resp = _going(client, event["event_id"], organizer["user_id"])
        assert resp.status_code == 403
        assert resp.json()["detail"]["reason"] == "own-event"

    def test_own_event_denied_after_it_ended(self, client):
        organizer, _ = _setup(client)
        event = create_past_event(client, organizer["user_id"])
        resp = _going(client, event["event_id"], organizer["user_id"])
        assert resp.json()["detail"]["reason"] == "own-event"

    def test_draft_event_denied(self, client):
        organizer, attendee = _setup(client)
        event = create_test_event(client, organizer["user_id"], status="draft")
        resp = _going(client, event["event_id"], attendee["user_id"])
        assert resp.status_code == 403
        assert resp.json()["detail"]["reason"] == "event-not-published"

    def test_can_mark_going_while_live(self, client):
        organizer, attendee = _setup(client)
        event = create_test_event(client, organizer["user_id"], starts_at=hours_from_now(-1))
        assert _going(client, event["event_id"], attendee["user_id"]).status_code == 200

    def test_cannot_mark_going_after_end(self, client):
        organizer, attendee = _setup(client)
        event = create_past_event(client, organizer["user_id"])
        resp = _going(client, event["event_id"], attendee["user_id"])
        assert resp.json()["detail"]["reason"] == "window-closed"

    def test_unmark_before_start(self, client):
        organizer, attendee = _setup(client)
        event = create_test_event(client, organizer["user_id"])
        _going(client, event["event_id"], attendee["user_id"])
        resp = _going(client, event["event_id"], attendee["user_id"], method="delete")
        assert resp.status_code == 200
        assert resp.json()["is_going"] is False

    def test_unmark_after_start_denied(self, client):
        organizer, attendee = _setup(client)
        event = create_test_event(client, organizer["user_id"], starts_at=hours_from_now(-1))
        _going(client, event["event_id"], attendee["user_id"])
        resp = _going(client, event["event_id"], attendee["user_id"], method="delete")
        assert resp.status_code == 403
        assert resp.json()["detail"]["reason"] == "window-closed"

    def test_unmark_when_not_going(self, client):
        organizer, attendee = _setup(client)
        event = create_test_event(client, organizer["user_id"])
        resp = _going(client, event["event_id"], attendee["user_id"], method="delete")
        assert resp.json()["detail"]["reason"] == "not-going"

    def test_toggle(self, client):
        organizer, attendee = _setup(client)
        event = create_test_event(client, organizer["user_id"])
        url = f"/api/events/{event['event_id']}/going/toggle"
        assert client.post(url, params={"actor_user_id": attendee["user_id"]}).json()["is_going"] is True
        assert client.post(url, params={"actor_user_id": attendee["user_id"]}).json()["is_going"] is False

    def test_toggle_off_after_start_denied(self, client):
        organizer, attendee = _setup(client)
        event = create_test_event(client, organizer["user_id"], starts_at=hours_from_now(-1))
        url = f"/api/events/{event['event_id']}/going/toggle"
        client.post(url, params={"actor_user_id": attendee["user_id"]})
        resp = client.post(url, params={"actor_user_id": attendee["user_id"]})
        assert resp.status_code == 403
        assert resp.json()["detail"]["reason"] == "window-closed"

    def test_unknown_event(self, client):
        _, attendee = _setup(client)
        assert _going(client, "missing", attendee["user_id"]).status_code == 404


class TestAttendees:
    def test_visible_to_attendees_and_organizer(self, client):
        organizer, attendee = _setup(client)
        stranger = create_test_profile(client, "stranger")
        event = create_test_event(client, organizer["user_id"])
        _going(client, event["event_id"], attendee["user_id"])

        url = f"/api/events/{event['event_id']}/attendees"
        resp = client.get(url, params={"actor_user_id": attendee["user_id"]})
        assert resp.status_code == 200
        assert [a["username"] for a in resp.json()] == ["raver"]
        assert client.get(url, params={"actor_user_id": organizer["user_id"]}).status_code == 200

        resp = client.get(url, params={"actor_user_id": stranger["user_id"]})
        assert resp.status_code == 403
        assert resp.json()["detail"]["reason"] == "not-going"


class TestComments:
    """Comments open after the event ends, for people who went."""

    def test_comment_after_event(self, client, db):
        organizer, attendee = _setup(client)
        event = create_past_event(client, organizer["user_id"])
        add_going(db, event["event_id"], attendee["user_id"])

        resp = _comment(client, event["event_id"], attendee["user_id"], "Great set!")
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["body"] == "Great set!"
        assert data["author"]["username"] == "raver"

        listed = client.get(f"/api/events/{event['event_id']}/comments").json()
        assert [c["comment_id"] for c in listed] == [data["comment_id"]]

    def test_comment_before_end_denied(self, client):
        organizer, attendee = _setup(client)
        event = create_test_event(client, organizer["user_id"])
        _going(client, event["event_id"], attendee["user_id"])
        resp = _comment(client, event["event_id"], attendee["user_id"], "Can't wait")
        assert resp.status_code == 403
        assert resp.json()["detail"]["reason"] == "window-not-open"

    def test_comment_requires_going(self, client):
        organizer, attendee = _setup(client)
        event = create_past_event(client, organizer["user_id"])
        resp = _comment(client, event["event_id"], attendee["user_id"], "I was there, honest")
        assert resp.json()["detail"]["reason"] == "not-going"

    def test_comment_locked_after_grace(self, client, db):
        organizer, attendee = _setup(client)
        event = create_past_event(client, organizer["user_id"], ended_hours_ago=24 * 8)
        add_going(db, event["event_id"], attendee["user_id"])
        resp = _comment(client, event["event_id"], attendee["user_id"], "Late to the party")
        assert resp.json()["detail"]["reason"] == "window-closed"

    def test_links_stripped_and_empty_rejected(self, client, db):
        organizer, attendee = _setup(client)
        event = create_past_event(client, organizer["user_id"])
        add_going(db, event["event_id"], attendee["user_id"])

        resp = _comment(client, event["event_id"], attendee["user_id"], "pics at https://spam.example/x here")
        assert resp.json()["body"] == "pics at  here"

        resp = _comment(client, event["event_id"], attendee["user_id"], "   https://spam.example/only  ")
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "validation"

    def test_too_long(self, client, db):
        organizer, attendee = _setup(client)
        event = create_past_event(client, organizer["user_id"])
        add_going(db, event["event_id"], attendee["user_id"])
        assert _comment(client, event["event_id"], attendee["user_id"], "x" * 300).status_code == 201
        assert _comment(client, event["event_id"], attendee["user_id"], "x" * 301).status_code == 400

    def test_delete_rights(self, client, db):
        organizer, attendee = _setup(client)
        admin = create_test_profile(client, "admin", role="admin")
        event = create_past_event(client, organizer["user_id"])
        add_going(db, event["event_id"], attendee["user_id"])
        first = _comment(client, event["event_id"], attendee["user_id"], "one").json()
        second = _comment(client, event["event_id"], attendee["user_id"], "two").json()

        resp = client.delete(f"/api/comments/{first['comment_id']}", params={"actor_user_id": organizer["user_id"]})
        assert resp.status_code == 403
        resp = client.delete(f"/api/comments/{first['comment_id']}", params={"actor_user_id": attendee["user_id"]})
        assert resp.status_code == 200
        resp = client.delete(f"/api/comments/{second['comment_id']}", params={"actor_user_id": admin["user_id"]})
        assert resp.status_code == 200
        assert client.get(f"/api/events/{event['event_id']}/comments").json() == []


class TestImages:
    """Max 5 images per uploader per event."""

    def test_sixth_upload_denied(self, client, db):
        organizer, attendee = _setup(client)
        event = create_past_event(client, organizer["user_id"])
        add_going(db, event["event_id"], attendee["user_id"])

        for n in range(5):
            resp = _upload(client, event["event_id"], attendee["user_id"], f"{attendee['user_id']}/{n}.jpg")
            assert resp.status_code == 201, resp.text

        resp = _upload(client, event["event_id"], attendee["user_id"], f"{attendee['user_id']}/5.jpg")
        assert resp.status_code == 403
        assert resp.json()["detail"]["reason"] == "image-quota-exceeded"
        assert len(client.get(f"/api/events/{event['event_id']}/images").json()) == 5

    def test_quota_is_per_uploader(self, client, db):
        organizer, attendee = _setup(client)
        friend = create_test_profile(client, "friend")
        event = create_past_event(client, organizer["user_id"])
        add_going(db, event["event_id"], attendee["user_id"])
        add_going(db, event["event_id"], friend["user_id"])
        for n in range(5):
            _upload(client, event["event_id"], attendee["user_id"], f"a/{n}.jpg")
        assert _upload(client, event["event_id"], friend["user_id"], "f/0.jpg").status_code == 201

    def test_image_url_is_signed(self, client, db, signer):
        organizer, attendee = _setup(client)
        event = create_past_event(client, organizer["user_id"])
        add_going(db, event["event_id"], attendee["user_id"])
        data = _upload(client, event["event_id"], attendee["user_id"], "a/0.jpg").json()
        assert "/storage/v1/object/sign/event-images/a/0.jpg" in data["image_url"]
        assert data["uploader"]["username"] == "raver"

        listed = client.get(f"/api/events/{event['event_id']}/images").json()
        assert listed[0]["image_url"] == data["image_url"]
        assert len(signer.calls) == 1

    def test_deleting_frees_quota(self, client, db):
        organizer, attendee = _setup(client)
        event = create_past_event(client, organizer["user_id"])
        add_going(db, event["event_id"], attendee["user_id"])
        images = [_upload(client, event["event_id"], attendee["user_id"], f"a/{n}.jpg").json() for n in range(5)]

        resp = client.delete(f"/api/images/{images[0]['image_id']}", params={"actor_user_id": attendee["user_id"]})
        assert resp.status_code == 200
        assert _upload(client, event["event_id"], attendee["user_id"], "a/5.jpg").status_code == 201

    def test_upload_before_end_denied(self, client):
        organizer, attendee = _setup(client)
        event = create_test_event(client, organizer["user_id"])
        _going(client, event["event_id"], attendee["user_id"])
        resp = _upload(client, event["event_id"], attendee["user_id"], "a/0.jpg")
        assert resp.json()["detail"]["reason"] == "window-not-open"
