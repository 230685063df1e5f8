# cenownik/storage/repositories.py

"""Narrow storage interfaces the price monitor depends on."""

from datetime import datetime
from typing import Any, Protocol

from cenownik.models.listing import ListingRef, TrackedListing
from cenownik.models.price_observation import (
    PriceObservation,
    TargetReachedEntry,
)


class ConfigStore(Protocol):
    """Persistent key/value settings (e.g. the active cron expression)."""

    def get(self, key: str) -> str | None: ...

    def upsert(self, key: str, value: str) -> None: ...


class ListingRepository(Protocol):
    """Read access to tracked listings plus price/title updates."""

    def list_all(self) -> list[ListingRef]: ...

    def get(self, listing_id: int) -> TrackedListing | None: ...

    def update(self, listing_id: int, **fields: Any) -> None: ...

    def count(self) -> int: ...


class HistoryRepository(Protocol):
    """Append-only price history."""

    def append(self, observation: PriceObservation) -> PriceObservation: ...

    def query(
        self,
        listing_id: int | None = None,
        target_reached: bool | None = None,
        limit: int | None = None,
    ) -> list[PriceObservation]: ...

    def query_target_reached(
        self,
        listing_id: int | None = None,
        owner_id: int | None = None,
        limit: int | None = None,
    ) -> list[TargetReachedEntry]: ...

    def count(
        self,
        target_reached: bool | None = None,
        since: datetime | None = None,
    ) -> int: ...
