# cenownik/extractors/base_extractor.py

"""Abstract base class for all source-specific price extractors."""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlparse

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests

from cenownik.config.settings import Settings
from cenownik.models.extraction import ExtractionResult


class ExtractionError(Exception):
    """A listing page could not be fetched (HTTP, timeout, DNS)."""

    def __init__(self, source: str, url: str, reason: str) -> None:
        super().__init__(f"[{source}] {url}: {reason}")
        self.source = source
        self.url = url
        self.reason = reason


class BaseExtractor(ABC):
    """Abstract base class for all source-specific price extractors.

    Subclasses declare the hosts they serve in ``HOSTS`` and implement
    :meth:`extract`.  ``can_handle`` is a pure host match, so registry
    dispatch never touches the network.
    """

    HOSTS: tuple[str, ...] = ()

    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        self.logger = logging.getLogger(
            f"cenownik.extractors.{source_name}"
        )
        self.settings = Settings()
        self.selectors: dict[str, str] = self._load_selectors()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._current_delay: float = self.settings.REQUEST_DELAY
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT

    def _load_selectors(self) -> dict[str, str]:
        """Load CSS selectors for this source from selectors.json."""
        with open(self.settings.SELECTORS_PATH, encoding="utf-8") as f:
            all_selectors: dict[str, Any] = json.load(f)
        result: dict[str, str] = all_selectors.get(
            self.source_name, {}
        )
        return result

    def can_handle(self, url: str) -> bool:
        """Return True when the URL's host belongs to this source."""
        host = (urlparse(url).hostname or "").lower()
        return any(
            host == h or host.endswith(f".{h}") for h in self.HOSTS
        )

    # Cloudflare challenge page markers (checked before keyword scan)
    _CF_CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "just a moment",
        "cf-turnstile",
        "cf_chl_opt",
    ]

    def _validate_response(self, text: str) -> bool:
        """Check for Cloudflare challenge pages and CAPTCHA indicators."""
        lower = text.lower()

        for marker in self._CF_CHALLENGE_MARKERS:
            if marker in lower:
                self.logger.warning(
                    "[%s] Cloudflare challenge detected "
                    "(marker: '%s')",
                    self.source_name,
                    marker,
                )
                return False

        # Real product pages are large; only small pages are scanned
        # for CAPTCHA wording to avoid false positives.
        has_body_content = "<body" in lower and len(text) > 5000
        if not has_body_content:
            for keyword in self.settings.CAPTCHA_KEYWORDS:
                if keyword in lower:
                    self.logger.warning(
                        "[%s] CAPTCHA keyword '%s' detected",
                        self.source_name,
                        keyword,
                    )
                    return False
        return True

    def _escalate_delay(self) -> None:
        """Double the current delay up to the configured max."""
        max_delay = (
            self.settings.REQUEST_DELAY
            * self.settings.MAX_DELAY_MULTIPLIER
        )
        self._current_delay = min(self._current_delay * 2, max_delay)
        self.logger.warning(
            "[%s] Rate-limited, delay escalated to %.1fs",
            self.source_name,
            self._current_delay,
        )

    def _fetch_html(self, url: str) -> str:
        """GET a page with retries, falling back to cloudscraper.

        Raises:
            ExtractionError: every attempt failed at the network level.
        """
        headers: dict[str, str] = {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self.homepage,
        }
        last_error = "no response"

        for attempt in range(self.settings.MAX_RETRIES):
            try:
                resp = self.session.get(
                    url,
                    headers=headers,
                    timeout=self._request_timeout,
                )
            except Exception as exc:
                last_error = str(exc)
                self.logger.warning(
                    "[%s] Request error on attempt %d: %s",
                    self.source_name,
                    attempt + 1,
                    exc,
                )
                time.sleep(self._current_delay * (attempt + 1))
                continue

            if 200 <= resp.status_code < 300:
                if self._validate_response(resp.text):
                    self._current_delay = self.settings.REQUEST_DELAY
                    return str(resp.text)
                last_error = "challenge page"
                self._escalate_delay()
                time.sleep(self._current_delay)
                continue

            last_error = f"HTTP {resp.status_code}"
            self.logger.warning(
                "[%s] HTTP %d on attempt %d",
                self.source_name,
                resp.status_code,
                attempt + 1,
            )
            if resp.status_code == 404:
                raise ExtractionError(self.source_name, url, last_error)
            if resp.status_code in (429, 403):
                self._escalate_delay()
                time.sleep(self._current_delay)

        # Fallback: cloudscraper (JS challenge solver)
        self.logger.info(
            "[%s] curl_cffi exhausted, falling back to cloudscraper",
            self.source_name,
        )
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            fallback_resp: Any = scraper.get(
                url,
                headers=headers,
                timeout=self._request_timeout,
            )
            if 200 <= fallback_resp.status_code < 300:
                return str(fallback_resp.text)
            last_error = f"HTTP {fallback_resp.status_code}"
        except Exception as exc:
            self.logger.warning(
                "[%s] cloudscraper fallback also failed: %s",
                self.source_name,
                exc,
            )
            last_error = str(exc)

        raise ExtractionError(self.source_name, url, last_error)

    @staticmethod
    def parse_price(text: str | None) -> float | None:
        """Parse '1 299,00 zł' or '1299.00' into a float, None if absent."""
        if not text:
            return None
        cleaned = (
            text.replace("\xa0", "").replace(" ", "").replace(",", ".")
        )
        match = re.search(r"\d+(?:\.\d+)?", cleaned)
        return float(match.group(0)) if match else None

    def _empty(self) -> ExtractionResult:
        return ExtractionResult.empty(self.source_name)

    @property
    @abstractmethod
    def homepage(self) -> str:
        """Homepage URL, used as Referer and for health probes."""
        ...

    @abstractmethod
    def extract(self, url: str) -> ExtractionResult:
        """Fetch the listing page and parse its price and title.

        Malformed or unrecognised pages yield an empty result; network
        failures raise :class:`ExtractionError`.
        """
        ...
