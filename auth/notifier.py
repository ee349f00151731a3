"""
auth/notifier.py -- Out-of-band delivery of verification links and 2FA codes.

The login flow decides WHAT to send and WHEN; this module only knows HOW.
AuthService depends on the Notifier protocol, so tests swap in a recorder and
production wires SmtpNotifier.

Delivery failures are not swallowed. Any SMTP, TLS, socket or timeout error
is logged (recipient redacted) and re-raised as NotificationError, which the
API turns into a 500. A user whose mail bounced can always ask again via
resend-verification or a fresh login.

Dev mode: when no SMTP host is configured, messages are logged instead of
sent. The secret itself (token, code) is never written to the log.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Protocol
from urllib.parse import urlencode

from auth.errors import NotificationError

logger = logging.getLogger("gatehouse.notifier")


class Notifier(Protocol):
    def send_verification(self, email: str, token: str) -> None: ...

    def send_two_factor_code(self, email: str, code: str) -> None: ...


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class SmtpNotifier:
    """Sends transactional mail over SMTP (STARTTLS or implicit TLS)."""

    def __init__(
        self,
        *,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        smtp_use_tls: bool = True,
        from_email: str = "",
        from_name: str = "Gatehouse",
        frontend_url: str = "http://localhost:3000",
        timeout: float = 10.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.frontend_url = frontend_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> SmtpNotifier:
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            smtp_use_tls=settings.smtp_use_tls,
            from_email=settings.mail_from,
            from_name=settings.mail_from_name,
            frontend_url=settings.frontend_url,
            timeout=settings.smtp_timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def verification_url(self, token: str) -> str:
        return f"{self.frontend_url}/verify-email?{urlencode({'token': token})}"

    def send_verification(self, email: str, token: str) -> None:
        url = self.verification_url(token)
        body = (
            f"Hello {email},\n\n"
            "Please confirm your email address by opening the link below:\n\n"
            f"{url}\n\n"
            "The link expires in 24 hours. If you did not create an account, ignore this message.\n"
        )
        self._send(email, "Email Verification", body)

    def send_two_factor_code(self, email: str, code: str) -> None:
        body = (
            f"Hello {email},\n\n"
            f"Your two-factor authentication code is: {code}\n\n"
            "The code expires in 5 minutes. If you did not try to sign in, change your password.\n"
        )
        self._send(email, "Two-Factor Authentication Code", body)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _build(self, to_email: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg.set_content(body)
        return msg

    def _send(self, to_email: str, subject: str, body: str) -> None:
        if not self.is_configured:
            logger.info("Mail transport not configured; dropping %r to %s", subject, redact_email(to_email))
            return

        msg = self._build(to_email, subject, body)
        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=self.timeout) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.send_message(msg)
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error(
                "Mail delivery failed: %s to %s via %s:%d (%s)",
                subject,
                redact_email(to_email),
                self.smtp_host,
                self.smtp_port,
                type(exc).__name__,
            )
            raise NotificationError() from exc

        logger.info("Mail sent: %s to %s", subject, redact_email(to_email))
