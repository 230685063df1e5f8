# tests/test_health_checker.py

"""Tests for the store health checker service."""

import unittest
from unittest.mock import MagicMock

from cenownik.extractors.registry import ExtractorRegistry
from cenownik.services.health_checker import HealthChecker, probe_extractor


def _extractor(name: str = "morele") -> MagicMock:
    extractor = MagicMock()
    extractor.source_name = name
    extractor.homepage = "https://www.morele.net/"
    extractor.settings.DEFAULT_HEADERS = {}
    return extractor


class TestProbeExtractor(unittest.TestCase):
    """Tests for the per-store probe."""

    def test_ok_status(self) -> None:
        """A fast 200 response should return 'ok' status."""
        extractor = _extractor()
        extractor.session.get.return_value = MagicMock(status_code=200)

        result = probe_extractor(extractor)
        self.assertEqual(result.source_id, "morele")
        self.assertEqual(result.status, "ok")
        self.assertGreaterEqual(result.latency_ms, 0)
        headers = extractor.session.get.call_args.kwargs["headers"]
        self.assertEqual(headers["Referer"], "https://www.morele.net/")

    def test_down_on_http_error(self) -> None:
        extractor = _extractor()
        extractor.session.get.return_value = MagicMock(status_code=403)

        result = probe_extractor(extractor)
        self.assertEqual(result.status, "down")
        self.assertIn("403", result.message)

    def test_down_on_exception(self) -> None:
        extractor = _extractor()
        extractor.session.get.side_effect = ConnectionError(
            "Connection refused",
        )

        result = probe_extractor(extractor)
        self.assertEqual(result.status, "down")
        self.assertIn("Connection refused", result.message)


class TestHealthChecker(unittest.IsolatedAsyncioTestCase):
    async def test_check_all_probes_every_extractor(self) -> None:
        first, second = _extractor("morele"), _extractor("xkom")
        first.session.get.return_value = MagicMock(status_code=200)
        second.session.get.return_value = MagicMock(status_code=500)

        checker = HealthChecker(ExtractorRegistry([first, second]))
        results = await checker.check_all()

        self.assertEqual([r.source_id for r in results], ["morele", "xkom"])
        self.assertEqual([r.status for r in results], ["ok", "down"])


if __name__ == "__main__":
    unittest.main()
