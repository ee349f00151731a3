"""Unit tests for auth/notifier.py -- SMTP delivery of links and codes.

smtplib is patched; no socket is opened.

Covers:
- Dev mode (no SMTP host): nothing is sent, the secret is not logged
- STARTTLS path logs in and sends one message with the link / code
- Transport failures surface as NotificationError
- Email redaction for logs
"""

import logging
import smtplib
from unittest.mock import MagicMock, patch

import pytest

from auth.errors import NotificationError
from auth.notifier import SmtpNotifier, redact_email


def _configured(**overrides) -> SmtpNotifier:
    fields = dict(
        smtp_host="smtp.example.com",
        smtp_user="mailer",
        smtp_password="pw",
        from_email="noreply@example.com",
        frontend_url="https://app.example.com/",
    )
    fields.update(overrides)
    return SmtpNotifier(**fields)


class TestDevMode:
    def test_unconfigured_sends_nothing(self, caplog) -> None:
        notifier = SmtpNotifier()
        assert notifier.is_configured is False
        with patch("auth.notifier.smtplib.SMTP") as smtp, caplog.at_level(logging.INFO, "gatehouse.notifier"):
            notifier.send_two_factor_code("alice@example.com", "424242")
        smtp.assert_not_called()
        assert "424242" not in caplog.text
        assert "alice@example.com" not in caplog.text


class TestSmtp:
    def test_verification_mail(self) -> None:
        notifier = _configured()
        with patch("auth.notifier.smtplib.SMTP") as smtp:
            server = smtp.return_value.__enter__.return_value
            notifier.send_verification("alice@example.com", "tok-123")

        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer", "pw")
        msg = server.send_message.call_args.args[0]
        assert msg["To"] == "alice@example.com"
        assert msg["Subject"] == "Email Verification"
        assert "https://app.example.com/verify-email?token=tok-123" in msg.get_content()

    def test_two_factor_mail(self) -> None:
        with patch("auth.notifier.smtplib.SMTP") as smtp:
            server = smtp.return_value.__enter__.return_value
            _configured().send_two_factor_code("alice@example.com", "012345")
        msg = server.send_message.call_args.args[0]
        assert msg["Subject"] == "Two-Factor Authentication Code"
        assert "012345" in msg.get_content()

    def test_implicit_tls(self) -> None:
        with patch("auth.notifier.smtplib.SMTP_SSL") as smtp_ssl:
            server = smtp_ssl.return_value.__enter__.return_value
            _configured(smtp_use_tls=False, smtp_port=465).send_two_factor_code("a@x.com", "123456")
        server.starttls.assert_not_called()
        server.send_message.assert_called_once()

    def test_connection_refused_raises(self) -> None:
        with patch("auth.notifier.smtplib.SMTP", side_effect=ConnectionRefusedError()):
            with pytest.raises(NotificationError):
                _configured().send_verification("a@x.com", "tok")

    def test_smtp_error_raises(self) -> None:
        with patch("auth.notifier.smtplib.SMTP") as smtp:
            server: MagicMock = smtp.return_value.__enter__.return_value
            server.send_message.side_effect = smtplib.SMTPRecipientsRefused({"a@x.com": (550, b"no")})
            with pytest.raises(NotificationError):
                _configured().send_verification("a@x.com", "tok")


class TestRedaction:
    def test_redact_email(self) -> None:
        assert redact_email("alice@example.com") == "al***@example.com"
        assert redact_email("not-an-email") == "redacted"
