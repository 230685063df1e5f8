# cenownik/extractors/registry.py

"""Ordered extractor registry: the first extractor claiming a URL wins."""

import importlib
import logging
from typing import Any

from cenownik.config.settings import Settings
from cenownik.extractors.base_extractor import BaseExtractor
from cenownik.models.extraction import ExtractionResult

logger = logging.getLogger("cenownik.extractors.registry")


def _load_extractor_class(dotted_path: str) -> type[Any]:
    """Dynamically import an extractor class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


class ExtractorRegistry:
    """Dispatches URLs to extractors in registration order.

    Order is significant: when two extractors could claim the same URL,
    the one registered first is used.
    """

    def __init__(self, extractors: list[BaseExtractor] | None = None) -> None:
        self._extractors: list[BaseExtractor] = list(extractors or [])

    @classmethod
    def from_settings(
        cls, sources: list[dict[str, str]] | None = None,
    ) -> "ExtractorRegistry":
        """Build the registry from ``Settings.AVAILABLE_SOURCES`` order."""
        registry = cls()
        for src in sources or Settings.AVAILABLE_SOURCES:
            extractor_cls = _load_extractor_class(src["extractor"])
            registry.register(extractor_cls())
        return registry

    def register(self, extractor: BaseExtractor) -> None:
        """Append an extractor; it loses to every earlier registration."""
        self._extractors.append(extractor)

    @property
    def extractors(self) -> list[BaseExtractor]:
        return list(self._extractors)

    def supported_sources(self) -> list[str]:
        """Hosts served by the registered extractors, in order."""
        return [h for e in self._extractors for h in e.HOSTS]

    def resolve(self, url: str) -> BaseExtractor | None:
        """Return the first extractor whose ``can_handle`` accepts the URL."""
        for extractor in self._extractors:
            if extractor.can_handle(url):
                return extractor
        return None

    def extract(self, url: str) -> ExtractionResult:
        """Extract a URL with its extractor.

        Unsupported URLs return an empty ``unknown`` result.  Network
        failures propagate as ``ExtractionError``.
        """
        extractor = self.resolve(url)
        if extractor is None:
            logger.warning("Unsupported store: %s", url)
            return ExtractionResult.empty()
        return extractor.extract(url)
