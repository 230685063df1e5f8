# tests/test_email_channel.py

"""Tests for the email channel and its transports."""

import smtplib
import unittest
from unittest.mock import MagicMock, patch

from cenownik.config.settings import Settings
from cenownik.models.notification import NotificationEvent
from cenownik.notifications.dispatcher import SAMPLE_LISTING
from cenownik.notifications.email_channel import (
    EmailChannel,
    GmailOAuth2Transport,
    SmtpTransport,
    build_message,
    create_transport,
)


def _bare_settings() -> Settings:
    """Settings with every email credential unset."""
    settings = Settings()
    settings.EMAIL_OAUTH_CLIENT_ID = None
    settings.EMAIL_OAUTH_CLIENT_SECRET = None
    settings.EMAIL_OAUTH_REFRESH_TOKEN = None
    settings.EMAIL_OAUTH_USER = None
    settings.SMTP_HOST = None
    settings.SMTP_USER = None
    settings.SMTP_PASS = None
    return settings


class TestCreateTransport(unittest.TestCase):
    """Verify transport selection from configuration."""

    def test_nothing_configured(self) -> None:
        self.assertIsNone(create_transport(_bare_settings()))

    def test_smtp(self) -> None:
        settings = _bare_settings()
        settings.SMTP_HOST = "smtp.example.com"
        settings.SMTP_USER = "user"
        settings.SMTP_PASS = "secret"
        transport = create_transport(settings)
        self.assertIsInstance(transport, SmtpTransport)
        assert transport is not None
        self.assertEqual(transport.auth_type, "smtp")

    def test_oauth2_takes_precedence(self) -> None:
        settings = _bare_settings()
        settings.SMTP_HOST = "smtp.example.com"
        settings.SMTP_USER = "user"
        settings.SMTP_PASS = "secret"
        settings.EMAIL_OAUTH_CLIENT_ID = "id"
        settings.EMAIL_OAUTH_CLIENT_SECRET = "secret"
        settings.EMAIL_OAUTH_REFRESH_TOKEN = "refresh"
        settings.EMAIL_OAUTH_USER = "me@gmail.com"
        self.assertIsInstance(create_transport(settings), GmailOAuth2Transport)


class TestBuildMessage(unittest.TestCase):
    def test_headers_and_parts(self) -> None:
        msg = build_message(
            "from@example.com", "to@example.com", "Temat", "<p>x</p>", "x"
        )
        self.assertEqual(msg["To"], "to@example.com")
        self.assertEqual(msg["X-Mailer"], "Cenownik Price Alert System")
        self.assertEqual(msg["X-Priority"], "3")
        self.assertTrue(msg.is_multipart())
        self.assertEqual(
            [p.get_content_type() for p in msg.iter_parts()],
            ["text/plain", "text/html"],
        )


class TestSmtpTransport(unittest.TestCase):
    @patch("cenownik.notifications.email_channel.smtplib.SMTP")
    def test_starttls_on_587(self, mock_smtp: MagicMock) -> None:
        transport = SmtpTransport("smtp.example.com", 587, "u", "p", "f@x.pl")
        transport.send("to@example.com", "s", "<p>h</p>")

        server = mock_smtp.return_value
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("u", "p")
        server.__enter__.return_value.send_message.assert_called_once()

    @patch("cenownik.notifications.email_channel.smtplib.SMTP_SSL")
    def test_ssl_on_465(self, mock_ssl: MagicMock) -> None:
        transport = SmtpTransport("smtp.example.com", 465, "u", "p", "f@x.pl")
        transport.verify()
        mock_ssl.return_value.login.assert_called_once_with("u", "p")


class TestEmailChannel(unittest.TestCase):
    """Verify retry and backoff behaviour."""

    def setUp(self) -> None:
        self.transport = MagicMock()
        self.transport.auth_type = "smtp"
        self.sleep = MagicMock()
        self.channel = EmailChannel(
            transport=self.transport, sleep=self.sleep, max_attempts=3
        )

    def test_not_configured_fails_fast(self) -> None:
        channel = EmailChannel(settings=_bare_settings(), sleep=self.sleep)
        self.assertFalse(channel.is_configured())
        self.assertEqual(channel.auth_type, "none")
        self.assertFalse(channel.send("a@b.c", "s", "<p/>"))
        self.assertFalse(channel.is_ready())
        self.sleep.assert_not_called()

    def test_success(self) -> None:
        self.assertTrue(self.channel.send("a@b.c", "s", "<p/>", "t"))
        self.transport.send.assert_called_once_with("a@b.c", "s", "<p/>", "t")
        self.sleep.assert_not_called()

    def test_backoff_then_success(self) -> None:
        """Two failures wait 1s then 2s before the third attempt."""
        self.transport.send.side_effect = [
            smtplib.SMTPServerDisconnected("gone"),
            OSError("timeout"),
            None,
        ]
        self.assertTrue(self.channel.send("a@b.c", "s", "<p/>"))
        self.assertEqual(self.transport.send.call_count, 3)
        self.assertEqual(
            [c.args[0] for c in self.sleep.call_args_list], [1.0, 2.0]
        )

    def test_gives_up_after_budget(self) -> None:
        self.transport.send.side_effect = OSError("down")
        self.assertFalse(self.channel.send("a@b.c", "s", "<p/>"))
        self.assertEqual(self.transport.send.call_count, 3)
        self.assertEqual(self.sleep.call_count, 2)

    def test_is_ready(self) -> None:
        self.assertTrue(self.channel.is_ready())
        self.transport.verify.side_effect = smtplib.SMTPAuthenticationError(
            535, b"bad credentials"
        )
        self.assertFalse(self.channel.is_ready())

    def test_send_event_renders(self) -> None:
        event = NotificationEvent.build("jan@example.com", "jan", SAMPLE_LISTING)
        self.assertTrue(self.channel.send_event(event))
        to, subject, html, text = self.transport.send.call_args.args
        self.assertEqual(to, "jan@example.com")
        self.assertTrue(subject.startswith("CENOWNIK — "))
        self.assertIn("3499,00 zł", html)
        self.assertIn("Twój próg: 3599,00 zł", text)


if __name__ == "__main__":
    unittest.main()
