# tests/test_scheduler.py

"""Tests for cron-driven sweep scheduling and its reconfiguration."""

import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from cenownik.config.settings import Settings
from cenownik.services.cron_validator import CronValidationError
from cenownik.services.price_monitor import SweepReport
from cenownik.services.scheduler import (
    STATE_IDLE,
    STATE_SCHEDULED,
    CroniterTrigger,
    SweepScheduler,
)


class _MemoryConfigStore:
    """Dict-backed config store."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def upsert(self, key: str, value: str) -> None:
        self.values[key] = value


class _BrokenConfigStore(_MemoryConfigStore):
    def get(self, key: str) -> str | None:
        raise OSError("database is locked")


def _settings() -> Settings:
    settings = Settings()
    settings.SCRAPE_CRON = "0 * * * *"
    settings.SCRAPE_MIN_INTERVAL_MINUTES = 10
    return settings


class TestCroniterTrigger(unittest.TestCase):
    """Verify next fire time computation."""

    def test_next_hour(self) -> None:
        trigger = CroniterTrigger("0 * * * *")
        now = datetime(2026, 3, 2, 12, 30, tzinfo=timezone.utc)
        self.assertEqual(
            trigger.get_next_fire_time(None, now),
            datetime(2026, 3, 2, 13, 0, tzinfo=timezone.utc),
        )

    def test_follows_previous_fire_time(self) -> None:
        trigger = CroniterTrigger("*/15 * * * *")
        previous = datetime(2026, 3, 2, 12, 15, tzinfo=timezone.utc)
        now = datetime(2026, 3, 2, 12, 16, tzinfo=timezone.utc)
        self.assertEqual(
            trigger.get_next_fire_time(previous, now),
            datetime(2026, 3, 2, 12, 30, tzinfo=timezone.utc),
        )

    def test_day_of_week_uses_cron_numbering(self) -> None:
        """1 means Monday, as in any crontab."""
        trigger = CroniterTrigger("0 9 * * 1")
        sunday = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
        fire = trigger.get_next_fire_time(None, sunday)
        assert fire is not None
        self.assertEqual(fire.weekday(), 0)
        self.assertEqual(fire, datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


class TestSweepScheduler(unittest.TestCase):
    """Reconfiguration against an unstarted scheduler."""

    def setUp(self) -> None:
        self.store = _MemoryConfigStore()
        self.monitor = MagicMock()
        self.scheduler = SweepScheduler(
            self.monitor,
            self.store,
            settings=_settings(),
            scheduler=AsyncIOScheduler(),
        )

    def _jobs(self) -> list[object]:
        return list(self.scheduler._scheduler.get_jobs())

    def _active_expression(self) -> str:
        job = self.scheduler._scheduler.get_job("scrape-cron-job")
        assert job is not None
        return str(job.trigger.expression)

    def test_expression_fallback_chain(self) -> None:
        self.assertEqual(self.scheduler.get_cron_expression(), "0 * * * *")
        self.store.upsert("SCRAPE_CRON", "*/30 * * * *")
        self.assertEqual(self.scheduler.get_cron_expression(), "*/30 * * * *")

    def test_store_error_falls_back_to_default(self) -> None:
        scheduler = SweepScheduler(
            self.monitor,
            _BrokenConfigStore(),
            settings=_settings(),
            scheduler=AsyncIOScheduler(),
        )
        self.assertEqual(scheduler.get_cron_expression(), "0 * * * *")

    def test_set_persists_and_replaces_job(self) -> None:
        self.assertEqual(self.scheduler.state, STATE_IDLE)
        self.scheduler.set_cron_expression("*/30 * * * *")
        self.scheduler.set_cron_expression("0 */2 * * *")

        self.assertEqual(len(self._jobs()), 1)
        self.assertEqual(self._active_expression(), "0 */2 * * *")
        self.assertEqual(self.store.get("SCRAPE_CRON"), "0 */2 * * *")
        self.assertEqual(self.scheduler.state, STATE_SCHEDULED)

    def test_invalid_expression_leaves_job_untouched(self) -> None:
        self.scheduler.set_cron_expression("*/30 * * * *")

        for bad in ("not a cron", "* * * * *", "0 0 30 2 *"):
            with self.subTest(expression=bad):
                with self.assertRaises(CronValidationError):
                    self.scheduler.set_cron_expression(bad)
                self.assertEqual(len(self._jobs()), 1)
                self.assertEqual(self._active_expression(), "*/30 * * * *")
                self.assertEqual(self.store.get("SCRAPE_CRON"), "*/30 * * * *")

    def test_concurrent_updates_leave_one_job(self) -> None:
        expressions = [f"{m} * * * *" for m in range(0, 40, 5)]
        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(self.scheduler.set_cron_expression, expressions))

        self.assertEqual(len(self._jobs()), 1)
        self.assertEqual(self._active_expression(), self.store.get("SCRAPE_CRON"))

    def test_sync_applies_changed_store_value(self) -> None:
        self.scheduler.set_cron_expression("*/30 * * * *")
        self.store.upsert("SCRAPE_CRON", "0 */3 * * *")

        self.assertTrue(self.scheduler.sync_cron_from_store())
        self.assertEqual(len(self._jobs()), 1)
        self.assertEqual(self._active_expression(), "0 */3 * * *")

    def test_sync_ignores_same_value(self) -> None:
        self.scheduler.set_cron_expression("*/30 * * * *")
        self.assertFalse(self.scheduler.sync_cron_from_store())
        self.assertEqual(self._active_expression(), "*/30 * * * *")

    def test_sync_keeps_job_on_invalid_store_value(self) -> None:
        self.scheduler.set_cron_expression("*/30 * * * *")
        for bad in ("not a cron", "* * * * *", "0 0 30 2 *"):
            with self.subTest(expression=bad):
                self.store.upsert("SCRAPE_CRON", bad)
                self.assertFalse(self.scheduler.sync_cron_from_store())
                self.assertEqual(len(self._jobs()), 1)
                self.assertEqual(self._active_expression(), "*/30 * * * *")

    def test_sync_survives_store_error(self) -> None:
        self.scheduler.set_cron_expression("*/30 * * * *")
        self.scheduler.config_store = _BrokenConfigStore()
        self.assertFalse(self.scheduler.sync_cron_from_store())
        self.assertEqual(self._active_expression(), "*/30 * * * *")


class TestSweepSchedulerLifecycle(unittest.IsolatedAsyncioTestCase):
    """Start, tick and shutdown inside a running event loop."""

    def setUp(self) -> None:
        self.store = _MemoryConfigStore({"SCRAPE_CRON": "*/20 * * * *"})
        self.monitor = MagicMock()
        self.monitor.run_sweep = AsyncMock(return_value=SweepReport(total=0))
        self.settings = _settings()
        self.scheduler = SweepScheduler(
            self.monitor, self.store, settings=self.settings
        )

    async def test_start_installs_persisted_schedule(self) -> None:
        self.scheduler.start()
        try:
            job = self.scheduler._scheduler.get_job("scrape-cron-job")
            assert job is not None
            self.assertEqual(job.trigger.expression, "*/20 * * * *")
            self.assertEqual(job.max_instances, 1)
            self.assertTrue(job.coalesce)
            self.assertIsNotNone(self.scheduler.next_run_time)
        finally:
            self.scheduler.shutdown()
        self.assertEqual(self.scheduler.state, STATE_IDLE)
        self.monitor.request_stop.assert_called_once()

    async def test_reconfigure_while_running(self) -> None:
        self.scheduler.start()
        try:
            self.scheduler.set_cron_expression("0 * * * *")
            jobs = [
                job
                for job in self.scheduler._scheduler.get_jobs()
                if job.id == "scrape-cron-job"
            ]
            self.assertEqual(len(jobs), 1)
            self.assertEqual(jobs[0].trigger.expression, "0 * * * *")
        finally:
            self.scheduler.shutdown()

    async def test_start_installs_cron_sync_job(self) -> None:
        self.scheduler.start()
        try:
            job = self.scheduler._scheduler.get_job("cron-sync-job")
            assert job is not None
            self.assertEqual(job.trigger.interval.total_seconds(), 60)
            self.assertEqual(job.max_instances, 1)
        finally:
            self.scheduler.shutdown()

    async def test_no_sync_job_when_disabled(self) -> None:
        self.settings.CRON_SYNC_INTERVAL_SECONDS = 0
        self.scheduler.start()
        try:
            self.assertIsNone(self.scheduler._scheduler.get_job("cron-sync-job"))
        finally:
            self.scheduler.shutdown()

    async def test_running_service_picks_up_stored_expression(self) -> None:
        """A value written by another process replaces the live job."""
        self.scheduler.start()
        try:
            self.store.upsert("SCRAPE_CRON", "*/45 * * * *")
            await self.scheduler._sync_tick()
            job = self.scheduler._scheduler.get_job("scrape-cron-job")
            assert job is not None
            self.assertEqual(job.trigger.expression, "*/45 * * * *")
            self.assertEqual(self.scheduler.state, STATE_SCHEDULED)
            self.assertFalse(self.scheduler.sync_cron_from_store())
        finally:
            self.scheduler.shutdown()

    async def test_run_sweep_delegates_to_monitor(self) -> None:
        report = await self.scheduler.run_sweep()
        self.assertEqual(report.total, 0)
        self.monitor.run_sweep.assert_awaited_once_with(
            deadline_seconds=self.settings.SWEEP_DEADLINE_SECONDS
        )

    async def test_deadline_passed_to_monitor(self) -> None:
        self.settings.SWEEP_DEADLINE_SECONDS = 0.05
        self.monitor.run_sweep = AsyncMock(
            return_value=SweepReport(total=2, processed=1, timed_out=True)
        )
        report = await self.scheduler.run_sweep()
        self.assertTrue(report.timed_out)
        self.monitor.run_sweep.assert_awaited_once_with(deadline_seconds=0.05)
        await self.scheduler._tick()

    async def test_tick_survives_sweep_error(self) -> None:
        self.monitor.run_sweep = AsyncMock(side_effect=RuntimeError("db"))
        await self.scheduler._tick()


if __name__ == "__main__":
    unittest.main()
