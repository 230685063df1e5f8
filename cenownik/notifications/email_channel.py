# cenownik/notifications/email_channel.py

"""Email channel: SMTP or Gmail OAuth2 transport with retry and backoff."""

import logging
import smtplib
import ssl
import time
from email.message import EmailMessage
from typing import Any, Protocol

from curl_cffi import requests as curl_requests

from cenownik.config.settings import Settings
from cenownik.models.notification import NotificationEvent
from cenownik.notifications.retry import RetrySchedule, Sleeper
from cenownik.notifications.templates import (
    render_html,
    render_plain_text,
    render_subject,
)

logger = logging.getLogger("cenownik.notifications.email")

_MAILER_HEADERS: dict[str, str] = {
    "X-Mailer": "Cenownik Price Alert System",
    "X-Priority": "3",
}


class EmailTransport(Protocol):
    """Delivers one message; raises on any failure."""

    auth_type: str

    def send(
        self, to: str, subject: str, html: str, text: str | None = None,
    ) -> None: ...

    def verify(self) -> None: ...


def build_message(
    sender: str, to: str, subject: str, html: str, text: str | None,
) -> EmailMessage:
    """Assemble a multipart message with a plain-text alternative."""
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to
    for name, value in _MAILER_HEADERS.items():
        msg[name] = value
    msg.set_content(text or "Otwórz tę wiadomość w kliencie obsługującym HTML.")
    msg.add_alternative(html, subtype="html")
    return msg


class SmtpTransport:
    """Plain SMTP with username/password (SSL on 465, STARTTLS otherwise)."""

    auth_type = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        sender: str,
        timeout: int = 20,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        server: smtplib.SMTP
        if self.port == 465:
            server = smtplib.SMTP_SSL(
                self.host, self.port, context=context, timeout=self.timeout
            )
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            server.ehlo()
            server.starttls(context=context)
            server.ehlo()
        server.login(self.user, self.password)
        return server

    def send(
        self, to: str, subject: str, html: str, text: str | None = None,
    ) -> None:
        msg = build_message(self.sender, to, subject, html, text)
        with self._connect() as server:
            server.send_message(msg)

    def verify(self) -> None:
        with self._connect() as server:
            server.noop()


class GmailOAuth2Transport:
    """Gmail SMTP authenticated with XOAUTH2 using a refresh token."""

    auth_type = "oauth2"

    TOKEN_URL = "https://oauth2.googleapis.com/token"
    SMTP_HOST = "smtp.gmail.com"
    SMTP_PORT = 587

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        user: str,
        sender: str,
        timeout: int = 20,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.user = user
        self.sender = sender
        self.timeout = timeout
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0

    def _get_access_token(self) -> str:
        """Exchange the refresh token, reusing it until shortly before expiry."""
        if self._access_token and time.time() < self._token_expires_at:
            return self._access_token
        resp = curl_requests.post(
            self.TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            raise smtplib.SMTPAuthenticationError(
                resp.status_code, f"OAuth2 token refresh failed: {resp.text}"
            )
        data: dict[str, Any] = resp.json()
        self._access_token = str(data["access_token"])
        self._token_expires_at = (
            time.time() + float(data.get("expires_in", 3600)) - 60
        )
        return self._access_token

    def _connect(self) -> smtplib.SMTP:
        token = self._get_access_token()
        auth_string = f"user={self.user}\x01auth=Bearer {token}\x01\x01"
        server = smtplib.SMTP(
            self.SMTP_HOST, self.SMTP_PORT, timeout=self.timeout
        )
        server.ehlo()
        server.starttls(context=ssl.create_default_context())
        server.ehlo()
        server.auth("XOAUTH2", lambda challenge=None: auth_string)
        return server

    def send(
        self, to: str, subject: str, html: str, text: str | None = None,
    ) -> None:
        msg = build_message(self.sender, to, subject, html, text)
        with self._connect() as server:
            server.send_message(msg)

    def verify(self) -> None:
        with self._connect() as server:
            server.noop()


def create_transport(settings: Settings) -> EmailTransport | None:
    """Pick OAuth2 when fully configured, else SMTP, else nothing."""
    if (
        settings.EMAIL_OAUTH_CLIENT_ID
        and settings.EMAIL_OAUTH_CLIENT_SECRET
        and settings.EMAIL_OAUTH_REFRESH_TOKEN
        and settings.EMAIL_OAUTH_USER
    ):
        logger.info(
            "Email channel using Gmail OAuth2 for %s",
            settings.EMAIL_OAUTH_USER,
        )
        return GmailOAuth2Transport(
            client_id=settings.EMAIL_OAUTH_CLIENT_ID,
            client_secret=settings.EMAIL_OAUTH_CLIENT_SECRET,
            refresh_token=settings.EMAIL_OAUTH_REFRESH_TOKEN,
            user=settings.EMAIL_OAUTH_USER,
            sender=settings.EMAIL_FROM,
            timeout=settings.SMTP_TIMEOUT,
        )

    if settings.SMTP_HOST and settings.SMTP_USER and settings.SMTP_PASS:
        logger.info(
            "Email channel using SMTP %s:%d",
            settings.SMTP_HOST,
            settings.SMTP_PORT,
        )
        return SmtpTransport(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            user=settings.SMTP_USER,
            password=settings.SMTP_PASS,
            sender=settings.EMAIL_FROM,
            timeout=settings.SMTP_TIMEOUT,
        )

    logger.warning(
        "Email channel disabled. Configure either Gmail OAuth2 "
        "(EMAIL_OAUTH_CLIENT_ID, EMAIL_OAUTH_CLIENT_SECRET, "
        "EMAIL_OAUTH_REFRESH_TOKEN, EMAIL_OAUTH_USER) or SMTP "
        "(SMTP_HOST, SMTP_USER, SMTP_PASS)."
    )
    return None


class EmailChannel:
    """Sends price-match emails, retrying transport errors with backoff."""

    def __init__(
        self,
        transport: EmailTransport | None = None,
        settings: Settings | None = None,
        sleep: Sleeper | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.transport = (
            transport
            if transport is not None
            else create_transport(self.settings)
        )
        self._sleep: Sleeper = sleep or time.sleep
        self.max_attempts = (
            max_attempts or self.settings.NOTIFY_MAX_ATTEMPTS
        )

    @property
    def auth_type(self) -> str:
        return self.transport.auth_type if self.transport else "none"

    def is_configured(self) -> bool:
        return self.transport is not None

    def is_ready(self) -> bool:
        """Connect and authenticate against the transport."""
        if self.transport is None:
            return False
        try:
            self.transport.verify()
        except Exception as exc:
            logger.warning("Email transport verification failed: %s", exc)
            return False
        return True

    def send(
        self, to: str, subject: str, html: str, text: str | None = None,
    ) -> bool:
        """Deliver one message; False after the last failed attempt."""
        if self.transport is None:
            logger.error("Email transport not configured, not sending to %s", to)
            return False

        schedule = RetrySchedule(
            max_attempts=self.max_attempts,
            base_delay=self.settings.EMAIL_BASE_DELAY,
        )
        while schedule.next_attempt():
            logger.debug(
                "Sending email to %s (attempt %d/%d)",
                to,
                schedule.attempt,
                schedule.max_attempts,
            )
            try:
                self.transport.send(to, subject, html, text)
            except Exception as exc:
                logger.error(
                    "Failed to send email (attempt %d/%d): %s",
                    schedule.attempt,
                    schedule.max_attempts,
                    exc,
                )
                if schedule.has_remaining:
                    self._sleep(schedule.backoff_delay())
                continue
            logger.info("Email sent to %s (subject=%s)", to, subject)
            return True

        return False

    def send_event(self, event: NotificationEvent) -> bool:
        """Render and send the price-match email for an event."""
        return self.send(
            event.recipient_email,
            render_subject(event),
            render_html(event),
            render_plain_text(event),
        )
