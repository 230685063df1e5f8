# cenownik/notifications/dispatcher.py

"""Fans a price-match event out to the email and webhook channels."""

import asyncio
import logging
from collections.abc import Callable

from cenownik.models.notification import (
    DispatchResult,
    ListingSnapshot,
    NotificationEvent,
)
from cenownik.notifications.email_channel import EmailChannel
from cenownik.notifications.webhook_channel import (
    WebhookChannel,
    is_valid_webhook_url,
)

logger = logging.getLogger("cenownik.notifications.dispatcher")

SAMPLE_LISTING = ListingSnapshot(
    id=0,
    title="Karta graficzna GeForce RTX 4070 Ti SUPER",
    link="https://www.x-kom.pl/p/1234567",
    current_price=3499.0,
    target_price=3599.0,
    previous_price=3999.0,
    source="x-kom",
    description="12GB GDDR6X, 2610 MHz, 256-bit",
    images=[
        "https://cdn.x-kom.pl/i/setup/images/prod/big/"
        "product-new-big,,2024/1/pr_2024_1_16_8_52_10_701_00.jpg"
    ],
)


def _guarded(channel: str, send: Callable[[], bool]) -> Callable[[], bool]:
    """Wrap a channel call so an unexpected error reads as not delivered."""

    def run() -> bool:
        try:
            return send()
        except Exception:
            logger.exception("Unexpected error in %s channel", channel)
            return False

    return run


class NotificationDispatcher:
    """Delivers one event through both channels independently.

    Each call dispatches at most once per channel; nothing here re-invokes
    delivery for the same event.
    """

    def __init__(
        self,
        email: EmailChannel | None = None,
        webhook: WebhookChannel | None = None,
    ) -> None:
        self.email = email or EmailChannel()
        self.webhook = webhook or WebhookChannel()

    async def send_price_match(self, event: NotificationEvent) -> DispatchResult:
        """Run both channels concurrently and report each one's outcome.

        The webhook channel is skipped, not failed, when the recipient has
        no webhook configured.
        """
        email_task = asyncio.to_thread(
            _guarded("email", lambda: self.email.send_event(event))
        )
        if event.webhook_url:
            webhook_task = asyncio.to_thread(
                _guarded("webhook", lambda: self.webhook.send_event(event))
            )
            email_sent, discord_sent = await asyncio.gather(
                email_task, webhook_task
            )
        else:
            email_sent = await email_task
            discord_sent = False

        listing_id = event.listing.id
        if email_sent:
            logger.info(
                "Email notification sent to %s for listing #%d",
                event.recipient_email,
                listing_id,
            )
        if discord_sent:
            logger.info("Discord notification sent for listing #%d", listing_id)
        return DispatchResult(
            email_sent=bool(email_sent), discord_sent=bool(discord_sent)
        )

    async def send_test_email(
        self, email: str, display_name: str,
    ) -> tuple[bool, str]:
        """Send the sample price-match email to an address."""
        event = NotificationEvent.build(email, display_name, SAMPLE_LISTING)
        sent = await asyncio.to_thread(
            _guarded("email", lambda: self.email.send_event(event))
        )
        message = f"Test email sent to {email}" if sent else "Failed to send test email"
        return sent, message

    async def send_test_webhook(self, webhook_url: str) -> tuple[bool, str]:
        """Send the sample price-match embed to a webhook."""
        event = NotificationEvent.build(
            "", "Użytkownik", SAMPLE_LISTING, webhook_url=webhook_url
        )
        sent = await asyncio.to_thread(
            _guarded("webhook", lambda: self.webhook.send_event(event))
        )
        message = (
            "Test Discord notification sent"
            if sent
            else "Failed to send Discord notification"
        )
        return sent, message

    async def validate_webhook(self, webhook_url: str) -> tuple[bool, str]:
        if not is_valid_webhook_url(webhook_url):
            return False, "Invalid Discord webhook URL format"
        valid = await asyncio.to_thread(
            self.webhook.validate_webhook, webhook_url
        )
        return valid, "Webhook is valid" if valid else "Webhook validation failed"

    async def is_email_ready(self) -> bool:
        return await asyncio.to_thread(self.email.is_ready)
