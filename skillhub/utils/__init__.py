# skillhub/utils/__init__.py
from .email import is_email_enabled, render_notification_email, send_email
from .security import (
    authenticate_user,
    create_access_token,
    get_current_user,
    get_password_hash,
    oauth2_scheme,
    verify_password,
)

__all__ = [
    "authenticate_user",
    "create_access_token",
    "get_current_user",
    "get_password_hash",
    "oauth2_scheme",
    "verify_password",
    "is_email_enabled",
    "render_notification_email",
    "send_email",
]
