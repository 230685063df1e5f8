# cenownik/models/price_observation.py

"""Append-only price history records."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PriceObservation:
    """A recorded price change for a listing.

    Only written when the observed price differs from the last known one.
    """

    listing_id: int
    price: float
    previous_price: float | None
    target_price: float | None
    target_reached: bool
    observed_at: datetime
    id: int | None = None


@dataclass(frozen=True)
class TargetReachedEntry:
    """A target-reached observation joined with its listing and owner."""

    observation: PriceObservation
    listing_title: str
    listing_url: str
    listing_source: str = ""
    owner_id: int | None = None
    owner_email: str | None = None
    owner_username: str | None = None
