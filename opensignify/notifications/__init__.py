"""Signing links and recipient notifications."""

from .links import SigningLink, build_signing_link, parse_signing_link
from .notifier import LoggingNotifier, Notifier, SmtpNotifier, create_notifier, render_message
from .params import NOT_AVAILABLE, NotificationParams, build_notification_params

__all__ = [
    "NOT_AVAILABLE",
    "LoggingNotifier",
    "NotificationParams",
    "Notifier",
    "SigningLink",
    "SmtpNotifier",
    "build_notification_params",
    "build_signing_link",
    "create_notifier",
    "parse_signing_link",
    "render_message",
]
