# cenownik/notifications/webhook_channel.py

"""Discord webhook channel with rate-limit aware retries."""

import logging
import re
import time
from typing import Any

from curl_cffi import requests as curl_requests

from cenownik.config.settings import Settings
from cenownik.models.notification import NotificationEvent
from cenownik.notifications.retry import RetrySchedule, Sleeper
from cenownik.notifications.templates import format_price

logger = logging.getLogger("cenownik.notifications.webhook")

_WEBHOOK_URL_RE = re.compile(
    r"^https://(?:discord|discordapp)\.com/api/webhooks/\d+/[\w-]+$"
)

_SOURCE_NAMES: dict[str, str] = {
    "morele": "Morele.net",
    "morele.net": "Morele.net",
    "x-kom": "x-kom",
    "xkom": "x-kom",
}

EMBED_COLOR = 0x333333


def is_valid_webhook_url(url: str | None) -> bool:
    """Match ``https://discord.com/api/webhooks/<numeric id>/<token>``."""
    return bool(url) and _WEBHOOK_URL_RE.match(url or "") is not None


def parse_retry_after(value: str | None, default: float) -> float:
    """Seconds from a Retry-After header, ``default`` if absent or junk."""
    if value is None or value.strip() == "":
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    return seconds if seconds >= 0 else default


def build_payload(event: NotificationEvent) -> dict[str, Any]:
    """Build the embed payload (without username/avatar) for an event."""
    listing = event.listing
    source_name = _SOURCE_NAMES.get(
        listing.source.lower().strip(), listing.source
    ).upper()

    price_line = f"**{format_price(listing.current_price)} zł**"
    if listing.previous_price is not None:
        price_line = (
            f"~~{format_price(listing.previous_price)} zł~~ → "
            f"**{format_price(listing.current_price)} zł**"
        )
    if event.price_drop_percentage > 0:
        price_line += f" *(−{event.price_drop_percentage:.0f}%)*"

    desc_lines = [
        price_line,
        "",
        f"Twój próg: {format_price(listing.target_price)} zł",
    ]
    if event.savings_amount > 0:
        desc_lines.append(
            f"Oszczędzasz: {format_price(event.savings_amount)} zł"
        )

    embed: dict[str, Any] = {
        "author": {"name": "CENOWNIK"},
        "title": listing.title,
        "url": listing.link,
        "color": EMBED_COLOR,
        "description": "\n".join(desc_lines),
        "footer": {
            "text": (
                f"{source_name} • #{listing.id} • "
                f"{event.display_name.upper()}"
            ),
        },
    }
    if listing.images:
        embed["image"] = {"url": listing.images[0]}

    return {"embeds": [embed]}


class WebhookChannel:
    """Posts price-match embeds to a user's Discord webhook."""

    def __init__(
        self,
        session: curl_requests.Session | None = None,
        settings: Settings | None = None,
        sleep: Sleeper | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.session = session or curl_requests.Session()
        self._sleep: Sleeper = sleep or time.sleep
        self.max_attempts = (
            max_attempts or self.settings.NOTIFY_MAX_ATTEMPTS
        )

    def send_payload(
        self,
        webhook_url: str,
        payload: dict[str, Any],
        max_attempts: int | None = None,
    ) -> bool:
        """POST a payload; True on 2xx, False once attempts run out.

        A 429 waits for ``Retry-After`` seconds; any other failure waits
        ``2 ** (attempt - 1)`` seconds.  Invalid URLs fail without I/O.
        """
        if not is_valid_webhook_url(webhook_url):
            logger.error("Invalid Discord webhook URL format")
            return False

        body = {
            "username": self.settings.WEBHOOK_USERNAME,
            "avatar_url": self.settings.WEBHOOK_AVATAR_URL,
            **payload,
        }
        schedule = RetrySchedule(
            max_attempts=max_attempts or self.max_attempts,
            base_delay=1.0,
        )

        while schedule.next_attempt():
            try:
                resp = self.session.post(
                    webhook_url,
                    json=body,
                    timeout=self.settings.WEBHOOK_TIMEOUT,
                )
            except Exception as exc:
                logger.error(
                    "Discord webhook error (attempt %d/%d): %s",
                    schedule.attempt,
                    schedule.max_attempts,
                    exc,
                )
                if schedule.has_remaining:
                    self._sleep(schedule.backoff_delay())
                continue

            if 200 <= resp.status_code < 300:
                logger.info(
                    "Discord webhook message sent (attempt %d)",
                    schedule.attempt,
                )
                return True

            if resp.status_code == 429:
                wait = parse_retry_after(
                    resp.headers.get("Retry-After"),
                    self.settings.WEBHOOK_RATE_LIMIT_DEFAULT_WAIT,
                )
                logger.warning(
                    "Discord rate limited, waiting %.1fs before retry", wait
                )
                if schedule.has_remaining:
                    self._sleep(wait)
                continue

            logger.error(
                "Discord webhook failed (attempt %d/%d): %d - %s",
                schedule.attempt,
                schedule.max_attempts,
                resp.status_code,
                resp.text[:200],
            )
            if schedule.has_remaining:
                self._sleep(schedule.backoff_delay())

        logger.error("Discord webhook failed after all retries")
        return False

    def send_event(self, event: NotificationEvent) -> bool:
        """Send the price-match embed to the event's webhook."""
        if not event.webhook_url:
            return False
        return self.send_payload(event.webhook_url, build_payload(event))

    def validate_webhook(self, webhook_url: str) -> bool:
        """Check the URL format, then GET it to confirm the webhook exists."""
        if not is_valid_webhook_url(webhook_url):
            return False
        try:
            resp = self.session.get(
                webhook_url, timeout=self.settings.WEBHOOK_TIMEOUT
            )
        except Exception as exc:
            logger.error("Webhook validation failed: %s", exc)
            return False
        if 200 <= resp.status_code < 300:
            name = "Unknown"
            try:
                name = str(resp.json().get("name") or "Unknown")
            except ValueError:
                pass
            logger.info("Webhook validated: %s", name)
            return True
        return False
