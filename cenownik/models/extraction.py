# cenownik/models/extraction.py

"""Result of extracting a price from a source page."""

from dataclasses import dataclass

UNKNOWN_SOURCE = "unknown"


@dataclass(frozen=True)
class ExtractionResult:
    """Price and title parsed from a listing page.

    ``price is None`` means the page could not be read or its layout was
    not recognised; callers skip the listing rather than fail.
    """

    price: float | None
    title: str | None
    source: str

    @property
    def has_price(self) -> bool:
        return self.price is not None

    @classmethod
    def empty(cls, source: str = UNKNOWN_SOURCE) -> "ExtractionResult":
        return cls(price=None, title=None, source=source)
