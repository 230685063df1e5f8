# cenownik/models/listing.py

"""Tracked listing and owner models."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Owner:
    """The user a listing belongs to, as far as notifications care."""

    id: int
    email: str
    username: str | None = None
    discord_webhook_url: str | None = None

    @property
    def display_name(self) -> str:
        """Username, or the local part of the email when unset."""
        if self.username:
            return self.username
        return self.email.split("@")[0]


@dataclass
class ListingRef:
    """Minimal listing projection used to drive a sweep."""

    id: int
    url: str


@dataclass
class TrackedListing:
    """A marketplace offer whose price is being watched."""

    id: int
    url: str
    price: float
    title: str
    target_price: float | None = None
    description: str | None = None
    images: list[str] = field(default_factory=lambda: list[str]())
    source: str = ""
    owner: Owner | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
