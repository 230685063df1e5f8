# cenownik/extractors/xkom_extractor.py

"""Extractor for x-kom.pl, whose product pages render client-side."""

from playwright.sync_api import Browser, Page, sync_playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PWTimeoutError

from cenownik.extractors.base_extractor import BaseExtractor, ExtractionError
from cenownik.models.extraction import ExtractionResult


class XkomExtractor(BaseExtractor):
    """Extractor for x-kom.pl driven through headless Chromium.

    The price lives in Open Graph / product meta tags injected by the
    page's JavaScript, so the page is loaded in a real browser.  The
    browser is closed on every exit path.
    """

    HOSTS = ("x-kom.pl",)

    def __init__(self) -> None:
        super().__init__("xkom")

    @property
    def homepage(self) -> str:
        return "https://www.x-kom.pl/"

    def extract(self, url: str) -> ExtractionResult:
        """Load the page in headless Chromium and read its meta tags."""
        with sync_playwright() as p:
            browser: Browser | None = None
            try:
                try:
                    browser = p.chromium.launch(headless=True)
                    context = browser.new_context(
                        user_agent=self.settings.BROWSER_USER_AGENT,
                        locale=self.settings.BROWSER_LOCALE,
                    )
                    page = context.new_page()
                    response = page.goto(
                        url,
                        wait_until="domcontentloaded",
                        timeout=self.settings.BROWSER_TIMEOUT_MS,
                    )
                except PlaywrightError as exc:
                    raise ExtractionError(
                        self.source_name, url, str(exc)
                    ) from exc
                if response is not None and not response.ok:
                    raise ExtractionError(
                        self.source_name, url, f"HTTP {response.status}"
                    )

                return self._read_meta(page)
            finally:
                if browser is not None:
                    browser.close()

    def _read_meta(self, page: Page) -> ExtractionResult:
        """Read price and title meta tags; degrade to empty on failure."""
        try:
            try:
                page.wait_for_selector(
                    self.selectors["price"],
                    state="attached",
                    timeout=self.settings.BROWSER_SELECTOR_TIMEOUT_MS,
                )
            except PWTimeoutError:
                self.logger.warning(
                    "[xkom] Price meta tag did not appear in time"
                )

            price_tag = page.locator(
                self.selectors["price"]
            )
            price_content = (
                price_tag.first.get_attribute("content")
                if price_tag.count()
                else None
            )
            title_tag = page.locator(
                self.selectors["title"]
            )
            title = (
                title_tag.first.get_attribute("content")
                if title_tag.count()
                else None
            )
        except PlaywrightError as exc:
            self.logger.warning(
                "[xkom] Could not read page meta: %s", exc
            )
            return self._empty()

        price = self.parse_price(price_content)
        self.logger.debug(
            "[xkom] Parsed price=%s, title=%s", price, title
        )
        return ExtractionResult(price=price, title=title, source="xkom")
