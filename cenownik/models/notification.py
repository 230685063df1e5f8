# cenownik/models/notification.py

"""Price-match notification payloads."""

from dataclasses import dataclass, field
from datetime import datetime

from cenownik.services.price_decision import percentage_drop, savings


@dataclass(frozen=True)
class ListingSnapshot:
    """Listing state at the moment its target price was reached."""

    id: int
    title: str
    link: str
    current_price: float
    target_price: float
    previous_price: float | None
    source: str
    description: str | None = None
    images: list[str] = field(default_factory=lambda: list[str]())
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class NotificationEvent:
    """Everything a channel needs to tell one user about a price match."""

    recipient_email: str
    display_name: str
    listing: ListingSnapshot
    webhook_url: str | None = None
    user_id: int | None = None
    price_drop_percentage: float = 0.0
    savings_amount: float = 0.0

    @classmethod
    def build(
        cls,
        recipient_email: str,
        display_name: str,
        listing: ListingSnapshot,
        webhook_url: str | None = None,
        user_id: int | None = None,
    ) -> "NotificationEvent":
        """Create an event, deriving drop percentage and savings."""
        return cls(
            recipient_email=recipient_email,
            display_name=display_name,
            listing=listing,
            webhook_url=webhook_url,
            user_id=user_id,
            price_drop_percentage=percentage_drop(
                listing.previous_price, listing.current_price
            ),
            savings_amount=savings(
                listing.previous_price, listing.current_price
            ),
        )


@dataclass(frozen=True)
class DispatchResult:
    """Per-channel delivery outcome of one dispatch."""

    email_sent: bool = False
    discord_sent: bool = False

    @property
    def any_sent(self) -> bool:
        return self.email_sent or self.discord_sent
