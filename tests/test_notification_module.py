from __future__ import annotations

from types import SimpleNamespace

import pytest

# Skip suite when FastAPI dependency is not present in local environment.
pytest.importorskip("fastapi")

from fastapi import HTTPException

from conftest import create_user
from skillhub.services import notification_service
from skillhub.services.session_engine import SessionEvent
from skillhub.api.notification import (
    get_my_notifications,
    get_unread_count,
    mark_all_notifications_read,
    mark_notification_read,
)


class InlineThread:
    """Runs the email worker synchronously so tests can observe it."""

    def __init__(self, target, args=(), kwargs=None, daemon=None):
        self._target = target
        self._args = args
        self._kwargs = kwargs or {}

    def start(self):
        self._target(*self._args, **self._kwargs)


@pytest.fixture
def inline_email(monkeypatch):
    monkeypatch.setattr(notification_service, "threading", SimpleNamespace(Thread=InlineThread))
    monkeypatch.setattr(notification_service, "is_email_enabled", lambda: True)


def test_notification_api_read_flow(db_session):
    user = create_user(db_session, "user@test.edu", "User")

    first = notification_service.create_notification(
        db_session,
        recipient_id=user.id,
        actor_id=None,
        session_id=None,
        event_type="session_requested",
        message="New session request",
    )
    second = notification_service.create_notification(
        db_session,
        recipient_id=user.id,
        actor_id=None,
        session_id=None,
        event_type="session_accepted",
        message="Session accepted",
    )
    second.is_read = True
    db_session.commit()

    unread = get_my_notifications(
        unread_only=True,
        limit=50,
        current_user=user,
        db=db_session,
    )
    assert len(unread) == 1
    assert unread[0]["id"] == first.id

    count_before = get_unread_count(current_user=user, db=db_session)
    assert count_before["unread_count"] == 1

    marked = mark_notification_read(
        notification_id=first.id,
        current_user=user,
        db=db_session,
    )
    assert marked["id"] == first.id

    count_after = get_unread_count(current_user=user, db=db_session)
    assert count_after["unread_count"] == 0

    notification_service.create_notification(
        db_session,
        recipient_id=user.id,
        actor_id=None,
        session_id=None,
        event_type="cancellation_requested",
        message="Cancellation requested",
    )
    db_session.commit()

    all_marked = mark_all_notifications_read(current_user=user, db=db_session)
    assert all_marked["updated"] == 1

    final_count = get_unread_count(current_user=user, db=db_session)
    assert final_count["unread_count"] == 0


def test_mark_notification_read_404(db_session):
    user = create_user(db_session, "user@test.edu", "User")
    with pytest.raises(HTTPException) as exc_info:
        mark_notification_read(notification_id=99999, current_user=user, db=db_session)
    assert exc_info.value.status_code == 404


def test_other_users_notification_is_404(db_session):
    owner = create_user(db_session, "owner@test.edu", "Owner")
    other = create_user(db_session, "other@test.edu", "Other")
    notification = notification_service.create_notification(
        db_session,
        recipient_id=owner.id,
        actor_id=None,
        session_id=None,
        event_type="session_requested",
        message="Requested",
    )
    db_session.commit()
    with pytest.raises(HTTPException) as exc_info:
        mark_notification_read(notification_id=notification.id, current_user=other, db=db_session)
    assert exc_info.value.status_code == 404


def test_dispatch_email_for_notification_success(db_session, inline_email, monkeypatch):
    user = create_user(db_session, "mailok@test.edu", "Mail OK")
    notification = notification_service.create_notification(
        db_session,
        recipient_id=user.id,
        actor_id=None,
        session_id=7,
        event_type="completion_approved",
        message="Completed",
    )
    db_session.commit()

    sent_payload = {}

    def fake_send_email(**kwargs):
        sent_payload.update(kwargs)
        return True

    monkeypatch.setattr(notification_service, "send_email", fake_send_email)

    sent = notification_service.dispatch_email_for_notification(db_session, notification)
    assert sent is True
    assert sent_payload["to_email"] == "mailok@test.edu"
    assert sent_payload["subject"] == "Your skill swap is complete"
    assert "Completed" in sent_payload["body_text"]
    assert "Session ID: 7" in sent_payload["body_text"]


def test_dispatch_email_disabled(db_session, monkeypatch):
    user = create_user(db_session, "off@test.edu", "Off")
    notification = notification_service.create_notification(
        db_session,
        recipient_id=user.id,
        actor_id=None,
        session_id=None,
        event_type="session_rejected",
        message="Declined",
    )
    db_session.commit()

    assert notification_service.dispatch_email_for_notification(db_session, notification) is False


def test_notify_session_events_renders_actor_and_extra(db_session, inline_email, monkeypatch):
    actor = create_user(db_session, "actor@test.edu", "Alice")
    recipient = create_user(db_session, "recipient@test.edu", "Bob")
    outbox = []
    monkeypatch.setattr(notification_service, "send_email", lambda **kwargs: outbox.append(kwargs) or True)

    created = notification_service.notify_session_events(
        db_session,
        actor=actor,
        session_id=None,
        events=[SessionEvent(recipient_id=recipient.id, event_type="cancellation_requested", extra="moving")],
    )

    assert len(created) == 1
    assert created[0].message == "Alice requested to cancel your session. Reason: moving"
    assert created[0].actor_id == actor.id
    assert [mail["to_email"] for mail in outbox] == ["recipient@test.edu"]
