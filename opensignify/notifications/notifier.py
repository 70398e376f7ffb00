"""Delivery of "please sign" messages.

``SmtpNotifier`` renders the jinja2 templates and sends through smtplib,
retrying transient failures with backoff. ``LoggingNotifier`` is used when
SMTP is not configured: delivery is simulated and only logged.
"""

from __future__ import annotations

import asyncio
import smtplib
import ssl
from email.message import EmailMessage
from typing import Protocol

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

from opensignify.exceptions import ConfigurationError, NotificationError
from opensignify.utils.config import Settings
from opensignify.utils.logging import get_logger
from opensignify.utils.retry import SMTP_RETRY, RetryConfig, retry_async

from .params import NotificationParams

logger = get_logger(__name__)

_environment = Environment(
    loader=PackageLoader("opensignify.notifications", "templates"),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def render_message(params: NotificationParams) -> tuple[str, str, str]:
    """Render (subject, text body, html body) for a signing request."""
    subject = f"Invoice {params['invoice_number']} from {params['from_name']} awaiting your signature"
    text = _environment.get_template("signing_request.txt").render(**params)
    html = _environment.get_template("signing_request.html").render(**params)
    return subject, text, html


class Notifier(Protocol):
    """Collaborator that delivers a signing request."""

    async def send(self, params: NotificationParams) -> None: ...


class LoggingNotifier:
    """Simulated delivery: logs the request and keeps it in ``sent``."""

    def __init__(self) -> None:
        self.sent: list[NotificationParams] = []

    async def send(self, params: NotificationParams) -> None:
        self.sent.append(params)
        logger.info(
            "notification_simulated",
            to_email=params["to_email"],
            invoice_number=params["invoice_number"],
            invoice_link=params["invoice_link"],
        )


class SmtpNotifier:
    """Send signing requests by e-mail."""

    def __init__(self, settings: Settings, retry_config: RetryConfig = SMTP_RETRY) -> None:
        if not settings.smtp_enabled:
            raise ConfigurationError(
                "SMTP host and sender must be configured", setting="smtp_host"
            )
        self.settings = settings
        self.retry_config = retry_config

    def build_message(self, params: NotificationParams) -> EmailMessage:
        subject, text, html = render_message(params)

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"{params['from_name']} <{self.settings.smtp_sender}>"
        msg["Reply-To"] = params["from_email"]
        msg["To"] = f"{params['to_name']} <{params['to_email']}>"
        msg.set_content(text)
        msg.add_alternative(html, subtype="html")
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        settings = self.settings
        host = settings.smtp_host or ""
        if settings.smtp_use_ssl:
            with smtplib.SMTP_SSL(
                host, settings.smtp_port, context=ssl.create_default_context()
            ) as server:
                if settings.smtp_username:
                    server.login(settings.smtp_username, settings.smtp_password or "")
                server.send_message(msg)
        else:
            with smtplib.SMTP(host, settings.smtp_port) as server:
                server.starttls(context=ssl.create_default_context())
                if settings.smtp_username:
                    server.login(settings.smtp_username, settings.smtp_password or "")
                server.send_message(msg)

    async def send(self, params: NotificationParams) -> None:
        msg = self.build_message(params)

        async def attempt() -> None:
            await asyncio.to_thread(self._deliver, msg)

        try:
            await retry_async(attempt, config=self.retry_config)
        except Exception as e:
            logger.error(
                "notification_failed",
                to_email=params["to_email"],
                invoice_number=params["invoice_number"],
                error=str(e),
                error_type=type(e).__name__,
            )
            raise NotificationError(
                f"Failed to send invoice {params['invoice_number']}",
                context={"to_email": params["to_email"]},
                original_error=e,
            ) from e

        logger.info(
            "notification_sent",
            to_email=params["to_email"],
            invoice_number=params["invoice_number"],
        )


def create_notifier(settings: Settings) -> Notifier:
    """SMTP delivery when configured, simulated delivery otherwise."""
    if settings.smtp_enabled:
        return SmtpNotifier(settings)
    logger.debug("smtp_not_configured", fallback="LoggingNotifier")
    return LoggingNotifier()
