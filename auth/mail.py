"""
auth/mail.py -- Outbound delivery of password reset tokens.

AuthLifecycle only needs one capability: send(to_email, reset_token). Two
implementations satisfy it:

  SmtpMailer   -- production. Builds a multipart text+html message with a
                  reset link and sends it over SMTP (STARTTLS by default).
                  Any smtplib or socket failure is raised as DeliveryError so
                  the caller learns the mail did not go out.

  MemoryMailer -- keeps (to, token) pairs in .outbox. Used by the test suite
                  and by DEBUG runs with no SMTP_HOST configured.

Neither implementation logs the token or the recipient address; AuthLifecycle
logs the account id instead.

Layer rule: no imports from api/ or vault/.
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from core.config import RESET_TOKEN_MINUTES
from core.errors import DeliveryError

logger = logging.getLogger("secretvault.mail")


class Mailer(Protocol):
    def send(self, to_email: str, reset_token: str) -> None: ...


def render_reset_mail(reset_url: str, reset_token: str) -> tuple[str, str, str]:
    """Return (subject, text_body, html_body) for a password reset mail."""
    link = f"{reset_url}?token={reset_token}"
    subject = "Password Reset Request"
    text_body = (
        "You requested a password reset. Open the link below to choose a new password:\n\n"
        f"{link}\n\n"
        f"This link expires in {RESET_TOKEN_MINUTES} minutes."
    )
    html_body = (
        "<p>You requested a password reset. Click the link below to choose a new password:</p>"
        f'<p><a href="{link}">Reset Password</a></p>'
        f"<p>Note: this link expires in {RESET_TOKEN_MINUTES} minutes.</p>"
    )
    return subject, text_body, html_body


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_email: str,
        reset_url: str,
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.reset_url = reset_url
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, to_email: str, reset_token: str) -> None:
        subject, text_body, html_body = render_reset_mail(self.reset_url, reset_token)
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Reset mail delivery failed: %s", type(exc).__name__)
            raise DeliveryError(detail=type(exc).__name__) from exc
        logger.debug("Reset mail handed to %s:%d", self.host, self.port)


class MemoryMailer:
    """In-memory mailer. outbox holds (to_email, reset_token) in send order."""

    def __init__(self) -> None:
        self.outbox: list[tuple[str, str]] = []

    def send(self, to_email: str, reset_token: str) -> None:
        self.outbox.append((to_email, reset_token))
        logger.info("Reset mail kept in memory (no SMTP configured)")
