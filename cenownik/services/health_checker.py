# cenownik/services/health_checker.py

"""Connectivity probes against every registered store."""

import asyncio
import logging
import time
from dataclasses import dataclass

from cenownik.extractors.base_extractor import BaseExtractor
from cenownik.extractors.registry import ExtractorRegistry

logger = logging.getLogger("cenownik.health")

_HEALTH_TIMEOUT = 10  # seconds per source
_SLOW_THRESHOLD_MS = 5000


@dataclass
class HealthResult:
    """Result of a single source health check."""

    source_id: str
    status: str  # "ok", "slow", "down"
    latency_ms: float
    message: str


def probe_extractor(extractor: BaseExtractor) -> HealthResult:
    """GET the store's homepage with the extractor's own session."""
    source_id = extractor.source_name
    start = time.monotonic()
    try:
        homepage = extractor.homepage
        resp = extractor.session.get(
            homepage,
            headers={
                **extractor.settings.DEFAULT_HEADERS,
                "Referer": homepage,
            },
            timeout=_HEALTH_TIMEOUT,
        )
    except Exception as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        return HealthResult(source_id, "down", elapsed_ms, str(exc)[:80])

    elapsed_ms = (time.monotonic() - start) * 1000
    if resp.status_code != 200:
        return HealthResult(
            source_id, "down", elapsed_ms, f"HTTP {resp.status_code}"
        )
    if elapsed_ms > _SLOW_THRESHOLD_MS:
        return HealthResult(source_id, "slow", elapsed_ms, "High latency")
    return HealthResult(source_id, "ok", elapsed_ms, "")


class HealthChecker:
    """Runs concurrent health probes against all registered stores."""

    def __init__(self, registry: ExtractorRegistry) -> None:
        self.registry = registry

    async def check_all(self) -> list[HealthResult]:
        tasks = [
            asyncio.to_thread(probe_extractor, extractor)
            for extractor in self.registry.extractors
        ]
        results: list[HealthResult] = list(await asyncio.gather(*tasks))
        for r in results:
            logger.info(
                "Health check %s: %s (%.0fms) %s",
                r.source_id,
                r.status,
                r.latency_ms,
                r.message,
            )
        return results
