# cenownik/extractors/morele_extractor.py

"""Extractor for morele.net product pages (static markup)."""

from bs4 import BeautifulSoup

from cenownik.extractors.base_extractor import BaseExtractor
from cenownik.models.extraction import ExtractionResult


class MoreleExtractor(BaseExtractor):
    """Extractor for morele.net product pages (static markup)."""

    HOSTS = ("morele.net",)

    def __init__(self) -> None:
        super().__init__("morele")

    @property
    def homepage(self) -> str:
        return "https://www.morele.net/"

    def parse(self, html: str) -> ExtractionResult:
        """Parse price and title out of a product page."""
        try:
            soup = BeautifulSoup(html, "lxml")
            price_el = soup.select_one(self.selectors["price"])
            price: float | None = None
            if price_el is not None:
                raw = price_el.get(self.selectors["price_attr"])
                price = self.parse_price(
                    raw if isinstance(raw, str) else None
                )

            title_el = soup.select_one(self.selectors["title"])
            title = title_el.get_text(strip=True) if title_el else ""
        except Exception as exc:
            self.logger.warning(
                "[morele] Could not parse page: %s", exc, exc_info=True
            )
            return self._empty()

        if price is None:
            self.logger.warning("[morele] No price found on page")

        self.logger.debug(
            "[morele] Parsed price=%s, title=%s", price, title or None
        )
        return ExtractionResult(
            price=price, title=title or None, source="morele"
        )

    def extract(self, url: str) -> ExtractionResult:
        """Fetch a morele.net page and parse it."""
        html = self._fetch_html(url)
        return self.parse(html)
