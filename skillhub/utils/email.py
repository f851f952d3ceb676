from __future__ import annotations

import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Tuple

from skillhub.config import settings

logger = logging.getLogger(__name__)


EMAIL_SUBJECT_BY_EVENT = {
    "session_requested": "New skill swap request on SkillHub",
    "session_accepted": "Your skill swap was accepted on SkillHub",
    "session_rejected": "Skill swap request update on SkillHub",
    "counter_offer_received": "You received a counter offer on SkillHub",
    "counter_offer_accepted": "Your counter offer was accepted on SkillHub",
    "counter_offer_rejected": "Your counter offer was declined on SkillHub",
    "completion_requested": "Completion requested for your skill swap",
    "completion_approved": "Your skill swap is complete",
    "completion_rejected": "Completion request declined on SkillHub",
    "cancellation_requested": "Cancellation requested for your skill swap",
    "cancellation_agreed": "Cancellation agreed on SkillHub",
    "cancellation_disputed": "Cancellation disputed on SkillHub",
    "cancellation_finalized": "Skill swap cancelled on SkillHub",
    "progress_updated": "Progress update on your skill swap",
}


def is_email_enabled() -> bool:
    """Return True when email notifications are configured and enabled."""
    return bool(
        settings.EMAIL_NOTIFICATIONS_ENABLED
        and settings.SMTP_SERVER
        and settings.EMAIL_FROM
    )


def render_notification_email(
    *,
    recipient_name: Optional[str],
    event_type: str,
    message: str,
    session_id: Optional[int],
) -> Tuple[str, str, str]:
    """Build (subject, text body, html body) for a session notification."""
    subject = EMAIL_SUBJECT_BY_EVENT.get(event_type, "New notification from SkillHub")
    name = (recipient_name or "").strip() or "there"
    session_ref = session_id if session_id is not None else "N/A"

    body_text = (
        f"Hi {name},\n\n"
        f"{message}\n\n"
        f"Session ID: {session_ref}\n\n"
        "Open SkillHub to view details."
    )
    body_html = (
        f"<p>Hi {html.escape(name)},</p>"
        f"<p>{html.escape(message)}</p>"
        f"<p style=\"color:#6b7280\">Session ID: {session_ref}</p>"
        "<p>Open SkillHub to view details.</p>"
    )
    return subject, body_text, body_html


def _open_smtp_connection() -> smtplib.SMTP:
    smtp_cls = smtplib.SMTP_SSL if settings.SMTP_USE_SSL else smtplib.SMTP
    server = smtp_cls(
        settings.SMTP_SERVER,
        settings.SMTP_PORT,
        timeout=settings.SMTP_TIMEOUT_SECONDS,
    )
    if settings.SMTP_USE_TLS and not settings.SMTP_USE_SSL:
        server.starttls()
    password = settings.EMAIL_PASSWORD or ""
    if password:
        server.login(settings.SMTP_USERNAME or settings.EMAIL_FROM, password)
    return server


def send_email(
    *,
    to_email: str,
    subject: str,
    body_text: str,
    body_html: Optional[str] = None,
) -> bool:
    """
    Send an email using SMTP settings.

    Returns True on success. Failures are logged and False is returned.
    """
    if not is_email_enabled():
        return False

    msg = MIMEMultipart("alternative")
    msg["From"] = settings.EMAIL_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.attach(MIMEText(body_text, "plain", "utf-8"))
    if body_html:
        msg.attach(MIMEText(body_html, "html", "utf-8"))

    try:
        with _open_smtp_connection() as server:
            server.sendmail(settings.EMAIL_FROM, [to_email], msg.as_string())
        return True
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("Email send failed for '%s': %s", to_email, exc)
        return False
