# cenownik/services/scheduler.py

"""Cron-driven sweep scheduling with a persisted, reconfigurable schedule."""

import logging
import threading
from datetime import datetime, tzinfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.schedulers.base import BaseScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.base import BaseTrigger  # type: ignore[import-untyped]
from croniter import croniter

from cenownik.config.settings import Settings
from cenownik.services.cron_validator import (
    CronValidationError,
    validate_cron_expression,
)
from cenownik.services.price_monitor import PriceMonitor, SweepReport
from cenownik.storage.repositories import ConfigStore

logger = logging.getLogger("cenownik.scheduler")

STATE_IDLE = "idle"
STATE_SCHEDULED = "scheduled"
STATE_RECONFIGURING = "reconfiguring"


class CroniterTrigger(BaseTrigger):  # type: ignore[misc]
    """Fires on a standard five-field cron expression.

    Day-of-week follows cron numbering (0 = Sunday), so stored expressions
    mean the same thing here as in any crontab.
    """

    def __init__(self, expression: str, timezone: tzinfo | None = None) -> None:
        self.expression = expression
        self.timezone = timezone

    def get_next_fire_time(
        self, previous_fire_time: datetime | None, now: datetime,
    ) -> datetime | None:
        base = previous_fire_time or now
        if self.timezone is not None:
            base = base.astimezone(self.timezone)
        next_time: datetime = croniter(self.expression, base).get_next(datetime)
        return next_time

    def __str__(self) -> str:
        return f"cron[{self.expression}]"

    def __repr__(self) -> str:
        return f"<CroniterTrigger (expression='{self.expression}')>"


class SweepScheduler:
    """Owns the single named sweep job and its cron expression.

    The expression is read from the config store at start, then the
    ``SCRAPE_CRON`` environment value, then ``0 * * * *``.  While running,
    a stored value changed by another process is picked up by the sync job.
    Exactly one job named ``scrape-cron-job`` exists at any time;
    reconfiguration swaps it under a lock so two concurrent updates cannot
    leave two jobs behind.
    """

    def __init__(
        self,
        monitor: PriceMonitor,
        config_store: ConfigStore,
        settings: Settings | None = None,
        scheduler: BaseScheduler | None = None,
    ) -> None:
        self.monitor = monitor
        self.config_store = config_store
        self.settings = settings or Settings()
        self._scheduler: BaseScheduler = scheduler or AsyncIOScheduler()
        self._lock = threading.Lock()
        self._state = STATE_IDLE
        self._expression: str | None = None

    @property
    def state(self) -> str:
        return self._state

    @property
    def job_id(self) -> str:
        return self.settings.SCRAPE_CRON_JOB

    @property
    def next_run_time(self) -> datetime | None:
        job = self._scheduler.get_job(self.job_id)
        if job is None:
            return None
        return getattr(job, "next_run_time", None)

    def get_cron_expression(self) -> str:
        """Persisted expression, else ``SCRAPE_CRON``, else the default."""
        try:
            stored = self.config_store.get(self.settings.SCRAPE_CRON_CONFIG_KEY)
        except Exception as exc:
            logger.warning("Failed to read cron expression from store: %s", exc)
            stored = None
        if stored:
            return stored
        return self.settings.SCRAPE_CRON or self.settings.DEFAULT_CRON

    def start(self) -> None:
        """Install the sweep job and start the scheduler.

        Must be called from within a running event loop.  Unless
        ``CRON_SYNC_INTERVAL_SECONDS`` is 0, a second job re-reads the stored
        expression periodically, so ``--set-cron`` from another process
        reaches the running service.
        """
        expression = self.get_cron_expression()
        with self._lock:
            self._replace_job(expression)
        interval = self.settings.CRON_SYNC_INTERVAL_SECONDS
        if interval > 0:
            self._scheduler.add_job(
                self._sync_tick,
                trigger="interval",
                seconds=interval,
                id=self.settings.CRON_SYNC_JOB,
                name=self.settings.CRON_SYNC_JOB,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("Scrape cron job registered with expression: %s", expression)

    def set_cron_expression(self, cron_expression: str) -> str:
        """Validate, persist and apply a new schedule.

        Raises:
            CronValidationError: the expression is malformed or fires too
                often; the stored value and the running job are unchanged.
        """
        expression = validate_cron_expression(
            cron_expression, self.settings.SCRAPE_MIN_INTERVAL_MINUTES
        )
        with self._lock:
            self.config_store.upsert(
                self.settings.SCRAPE_CRON_CONFIG_KEY, expression
            )
            self._replace_job(expression)
        logger.info("Scrape cron updated to: %s", expression)
        return expression

    def sync_cron_from_store(self) -> bool:
        """Swap the sweep job to the stored expression if it has changed.

        Returns True when the job was replaced.  An unreadable store or an
        invalid stored value keeps the current job.
        """
        try:
            stored = self.config_store.get(self.settings.SCRAPE_CRON_CONFIG_KEY)
        except Exception as exc:
            logger.warning("Failed to read cron expression from store: %s", exc)
            return False
        if not stored or stored.strip() == self._expression:
            return False
        try:
            expression = validate_cron_expression(
                stored, self.settings.SCRAPE_MIN_INTERVAL_MINUTES
            )
        except CronValidationError as exc:
            logger.warning("Ignoring stored cron expression: %s", exc)
            return False
        with self._lock:
            if expression == self._expression:
                return False
            self._replace_job(expression)
        logger.info("Scrape cron reloaded from store: %s", expression)
        return True

    async def _sync_tick(self) -> None:
        self.sync_cron_from_store()

    def _replace_job(self, expression: str) -> None:
        self._state = STATE_RECONFIGURING
        try:
            if self._scheduler.get_job(self.job_id) is not None:
                self._scheduler.remove_job(self.job_id)
            self._scheduler.add_job(
                self._tick,
                trigger=CroniterTrigger(expression),
                id=self.job_id,
                name=self.job_id,
                max_instances=1,
                coalesce=True,
            )
        except Exception:
            self._state = STATE_IDLE
            raise
        self._expression = expression
        self._state = STATE_SCHEDULED

    async def _tick(self) -> None:
        logger.info("Starting scheduled price scraping...")
        try:
            await self.run_sweep()
        except Exception:
            logger.exception("Scheduled sweep failed")

    async def run_sweep(self) -> SweepReport:
        """Run one sweep, bounded by ``SWEEP_DEADLINE_SECONDS`` when set.

        The deadline is checked between listings, so it ends the sweep
        early without cancelling a listing in flight.
        """
        return await self.monitor.run_sweep(
            deadline_seconds=self.settings.SWEEP_DEADLINE_SECONDS
        )

    def shutdown(self) -> None:
        """Stop firing new ticks and ask an in-flight sweep to end."""
        self.monitor.request_stop()
        with self._lock:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._state = STATE_IDLE
        logger.info("Scheduler stopped")
