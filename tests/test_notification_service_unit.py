from __future__ import annotations

from types import SimpleNamespace

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from skillhub.database import Base
from skillhub.models.user import User
from skillhub.services import notification_service
from skillhub.utils import email as email_utils


def _build_db():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    return SessionLocal()


def _create_user(db, email: str = "notify@test.edu") -> User:
    user = User(
        name="Notify User",
        email=email,
        password_hash="hash",
        role="student",
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def test_notification_service_crud_flow():
    db = _build_db()
    try:
        user = _create_user(db)
        notification_service.create_notification(
            db,
            recipient_id=user.id,
            actor_id=None,
            session_id=None,
            event_type="session_requested",
            message="Requested",
        )
        notification_service.create_notification(
            db,
            recipient_id=user.id,
            actor_id=None,
            session_id=None,
            event_type="session_accepted",
            message="Accepted",
        )
        db.commit()

        unread = notification_service.list_user_notifications(
            db,
            user_id=user.id,
            unread_only=True,
            limit=50,
        )
        assert len(unread) == 2
        assert notification_service.get_unread_count(db, user_id=user.id) == 2

        assert notification_service.mark_notification_read(
            db,
            user_id=user.id,
            notification_id=unread[0].id,
        ) is True
        assert notification_service.get_unread_count(db, user_id=user.id) == 1
        assert notification_service.mark_notification_read(
            db,
            user_id=user.id + 1,
            notification_id=unread[1].id,
        ) is False

        updated = notification_service.mark_all_notifications_read(db, user_id=user.id)
        assert updated == 1
        assert notification_service.get_unread_count(db, user_id=user.id) == 0
    finally:
        db.close()


def test_email_worker_failure_is_non_blocking(monkeypatch):
    db = _build_db()
    try:
        user = _create_user(db, email="safe@test.edu")
        notification = notification_service.create_notification(
            db,
            recipient_id=user.id,
            actor_id=None,
            session_id=None,
            event_type="session_rejected",
            message="Declined",
        )
        db.commit()

        class InlineThread:
            def __init__(self, target, args=(), kwargs=None, daemon=None):
                self.run = lambda: target(*args, **(kwargs or {}))

            def start(self):
                self.run()

        monkeypatch.setattr(notification_service, "threading", SimpleNamespace(Thread=InlineThread))
        monkeypatch.setattr(notification_service, "is_email_enabled", lambda: True)
        monkeypatch.setattr(
            notification_service,
            "send_email",
            lambda **kwargs: (_ for _ in ()).throw(RuntimeError("SMTP down")),
        )

        # the worker logs the SMTP failure; the caller only sees a started dispatch
        assert notification_service.dispatch_email_for_notification(db, notification) is True
    finally:
        db.close()


def test_render_event_message_defaults():
    assert notification_service.render_event_message("session_accepted", None) == (
        "Your partner accepted your skill swap request."
    )
    assert notification_service.render_event_message("completion_rejected", "Bob") == (
        "Bob rejected your completion request. Reason: -"
    )
    assert notification_service.render_event_message("something_new", "Bob") == "Bob updated your session."


def test_render_notification_email_escapes_html():
    subject, text, html = email_utils.render_notification_email(
        recipient_name="<Ann>",
        event_type="session_requested",
        message="a < b",
        session_id=None,
    )
    assert subject == "New skill swap request on SkillHub"
    assert "Session ID: N/A" in text
    assert "&lt;Ann&gt;" in html
    assert "a &lt; b" in html


def test_send_email_swallows_smtp_errors(monkeypatch):
    monkeypatch.setattr(email_utils, "is_email_enabled", lambda: True)
    monkeypatch.setattr(email_utils.settings, "EMAIL_FROM", "noreply@skillhub.test")

    def refuse():
        raise OSError("connection refused")

    monkeypatch.setattr(email_utils, "_open_smtp_connection", refuse)
    assert email_utils.send_email(to_email="x@test.edu", subject="s", body_text="b") is False
