"""
In-app notification inbox plus best-effort email fan-out for session events.

Session transitions hand their ``SessionEvent`` list to ``notify_session_events``
only after the transition has committed; nothing here may fail the caller.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from skillhub import models
from skillhub.models.notification import Notification
from skillhub.utils.email import is_email_enabled, render_notification_email, send_email

logger = logging.getLogger(__name__)


EVENT_MESSAGES = {
    "session_requested": "{actor} requested a skill swap session with you.",
    "session_accepted": "{actor} accepted your skill swap request.",
    "session_rejected": "{actor} declined your skill swap request.",
    "counter_offer_received": "{actor} sent you a counter offer.",
    "counter_offer_accepted": "{actor} accepted your counter offer. The session is now active.",
    "counter_offer_rejected": "{actor} declined your counter offer.",
    "completion_requested": "{actor} asked to mark your session as completed.",
    "completion_approved": "{actor} approved the completion of your session.",
    "completion_rejected": "{actor} rejected your completion request. Reason: {extra}",
    "cancellation_requested": "{actor} requested to cancel your session. Reason: {extra}",
    "cancellation_agreed": "{actor} agreed to cancel the session.",
    "cancellation_disputed": "{actor} disputed your cancellation request.",
    "cancellation_finalized": "{actor} finalized the cancellation of your session.",
    "progress_updated": "{actor} updated their session progress to {extra}%.",
}


def render_event_message(event_type: str, actor_name: Optional[str], extra: Optional[str] = None) -> str:
    template = EVENT_MESSAGES.get(event_type, "{actor} updated your session.")
    return template.format(actor=actor_name or "Your partner", extra=extra or "-")


# =====================================
# INBOX
# =====================================

def _inbox(db: Session, user_id: int, *, unread_only: bool = False) -> Query:
    query = db.query(Notification).filter(Notification.recipient_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query


def list_user_notifications(db: Session, *, user_id: int, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    return (
        _inbox(db, user_id, unread_only=unread_only)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


def get_unread_count(db: Session, *, user_id: int) -> int:
    return _inbox(db, user_id, unread_only=True).count()


def mark_notification_read(db: Session, *, user_id: int, notification_id: int) -> bool:
    """Returns False when the notification does not exist or belongs to someone else."""
    matched = _inbox(db, user_id).filter(Notification.id == notification_id).update(
        {"is_read": True}, synchronize_session=False
    )
    db.commit()
    return matched > 0


def mark_all_notifications_read(db: Session, *, user_id: int) -> int:
    updated = _inbox(db, user_id, unread_only=True).update({"is_read": True}, synchronize_session=False)
    db.commit()
    return int(updated)


def create_notification(
    db: Session,
    *,
    recipient_id: int,
    actor_id: Optional[int],
    session_id: Optional[int],
    event_type: str,
    message: str,
) -> Notification:
    """Stage a notification row; the caller owns the commit."""
    row = Notification(
        recipient_id=recipient_id,
        actor_id=actor_id,
        session_id=session_id,
        event_type=event_type,
        message=message,
    )
    db.add(row)
    db.flush()
    return row


def notify_session_events(
    db: Session,
    *,
    actor: Optional[models.User],
    session_id: Optional[int],
    events: Iterable,
) -> List[Notification]:
    """
    Persist and email notifications for already-committed session transitions.

    Runs in its own transaction. Any failure is logged and swallowed so the
    committed state change is never rolled back or reported as failed.
    """
    events = list(events)
    if not events:
        return []

    actor_id = actor.id if actor is not None else None
    actor_name = actor.name if actor is not None else None
    try:
        created = [
            create_notification(
                db,
                recipient_id=event.recipient_id,
                actor_id=actor_id,
                session_id=session_id,
                event_type=event.event_type,
                message=render_event_message(event.event_type, actor_name, event.extra),
            )
            for event in events
        ]
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning(
            "Session notifications not stored (session_id=%s, events=%s): %s",
            session_id,
            [event.event_type for event in events],
            exc,
        )
        return []

    for notification in created:
        dispatch_email_for_notification(db, notification)
    return created


# =====================================
# EMAIL
# =====================================

def _email_worker(to_email: str, subject: str, body_text: str, body_html: str, notification_id: Optional[int]) -> None:
    try:
        delivered = send_email(to_email=to_email, subject=subject, body_text=body_text, body_html=body_html)
    except Exception as exc:
        logger.warning("Email worker crashed for notification %s: %s", notification_id, exc)
        return
    if not delivered:
        logger.info("Email for notification %s was not delivered", notification_id)


def _start_email_worker(**payload) -> None:
    threading.Thread(target=_email_worker, kwargs=payload, daemon=True).start()


def dispatch_email_for_notification(db: Session, notification: Notification) -> bool:
    """
    Hand a committed notification to a background SMTP worker.

    Returns True once the worker is started. Never raises: email is a
    courtesy copy of the in-app notification.
    """
    if not is_email_enabled():
        return False
    try:
        recipient = db.get(models.User, notification.recipient_id)
        if recipient is None or not recipient.email:
            return False

        subject, body_text, body_html = render_notification_email(
            recipient_name=recipient.name,
            event_type=notification.event_type,
            message=notification.message,
            session_id=notification.session_id,
        )
        _start_email_worker(
            to_email=recipient.email,
            subject=subject,
            body_text=body_text,
            body_html=body_html,
            notification_id=notification.id,
        )
        return True
    except Exception as exc:
        logger.warning("Email dispatch skipped for notification %s: %s", getattr(notification, "id", None), exc)
        return False
