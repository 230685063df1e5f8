# cenownik/services/price_monitor.py

"""Scrape → decide → notify pipeline over all tracked listings."""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from cenownik.config.settings import Settings
from cenownik.extractors.base_extractor import ExtractionError
from cenownik.extractors.registry import ExtractorRegistry
from cenownik.models.extraction import ExtractionResult
from cenownik.models.listing import TrackedListing
from cenownik.models.notification import (
    DispatchResult,
    ListingSnapshot,
    NotificationEvent,
)
from cenownik.models.price_observation import (
    PriceObservation,
    TargetReachedEntry,
)
from cenownik.notifications.dispatcher import NotificationDispatcher
from cenownik.services.price_decision import PriceDecision, decide
from cenownik.storage.repositories import HistoryRepository, ListingRepository

logger = logging.getLogger("cenownik.monitor")

AsyncDelay = Callable[[float], Awaitable[None]]


@dataclass
class ListingOutcome:
    """What happened to one listing during processing."""

    listing_id: int
    status: str  # "changed", "unchanged", "no_price", "failed", "not_found", "busy"
    decision: PriceDecision | None = None
    observation: PriceObservation | None = None
    dispatch: DispatchResult | None = None


@dataclass
class SweepReport:
    """Summary of one pass over all tracked listings."""

    total: int = 0
    processed: int = 0
    changed: int = 0
    notified: int = 0
    failed: int = 0
    skipped: bool = False
    cancelled: bool = False
    timed_out: bool = False
    outcomes: list[ListingOutcome] = field(
        default_factory=lambda: list[ListingOutcome]()
    )


@dataclass
class MonitorStats:
    total_listings: int
    total_price_matches: int
    recent_matches: int
    email_service_ready: bool
    email_auth_type: str = "none"


class PriceMonitor:
    """Runs sweeps sequentially, one listing at a time.

    Only one sweep runs at a time; a sweep requested while another is in
    flight is skipped.  Listings are spaced by ``SWEEP_ITEM_DELAY`` to stay
    under the sources' rate limits.
    """

    def __init__(
        self,
        listings: ListingRepository,
        history: HistoryRepository,
        registry: ExtractorRegistry,
        dispatcher: NotificationDispatcher,
        settings: Settings | None = None,
        delay: AsyncDelay | None = None,
    ) -> None:
        self.listings = listings
        self.history = history
        self.registry = registry
        self.dispatcher = dispatcher
        self.settings = settings or Settings()
        self._delay: AsyncDelay = delay or asyncio.sleep
        self._sweep_lock = asyncio.Lock()
        self._stop = threading.Event()

    @property
    def sweep_in_progress(self) -> bool:
        return self._sweep_lock.locked()

    def request_stop(self) -> None:
        """Stop the running sweep before its next listing."""
        self._stop.set()

    # ── Sweeps ───────────────────────────────────────────

    async def run_sweep(
        self, deadline_seconds: float | None = None,
    ) -> SweepReport:
        """Process every tracked listing once, in id order.

        With a positive ``deadline_seconds`` the sweep ends once the deadline
        has passed.  The check happens between listings only, so a listing
        is never left half processed.
        """
        if self._sweep_lock.locked():
            logger.warning("Sweep already in progress, skipping this one")
            return SweepReport(skipped=True)

        async with self._sweep_lock:
            refs = self.listings.list_all()
            report = SweepReport(total=len(refs))
            logger.info("Scraping %d listings...", len(refs))
            loop = asyncio.get_running_loop()
            deadline = (
                loop.time() + deadline_seconds
                if deadline_seconds and deadline_seconds > 0
                else None
            )

            for index, ref in enumerate(refs):
                if self._stop.is_set():
                    logger.info(
                        "Stop requested, ending sweep after %d/%d listings",
                        report.processed,
                        report.total,
                    )
                    report.cancelled = True
                    break
                if deadline is not None and loop.time() >= deadline:
                    logger.error(
                        "Sweep deadline of %.0fs reached after %d/%d listings",
                        deadline_seconds,
                        report.processed,
                        report.total,
                    )
                    report.timed_out = True
                    break
                if index > 0:
                    await self._delay(self.settings.SWEEP_ITEM_DELAY)

                try:
                    outcome = await self.process_listing(ref.id)
                except Exception:
                    logger.exception("Failed to process listing %d", ref.id)
                    outcome = ListingOutcome(ref.id, "failed")

                report.processed += 1
                report.outcomes.append(outcome)
                if outcome.status == "changed":
                    report.changed += 1
                elif outcome.status == "failed":
                    report.failed += 1
                if outcome.dispatch is not None and outcome.dispatch.any_sent:
                    report.notified += 1

            logger.info(
                "Finished scraping: %d processed, %d changed, "
                "%d failed, %d notified",
                report.processed,
                report.changed,
                report.failed,
                report.notified,
            )
            return report

    async def trigger_listing(self, listing_id: int) -> ListingOutcome:
        """Process one listing on demand, unless a sweep is running."""
        if self._sweep_lock.locked():
            logger.warning(
                "Sweep in progress, not processing listing %d now", listing_id
            )
            return ListingOutcome(listing_id, "busy")
        async with self._sweep_lock:
            return await self.process_listing(listing_id)

    async def process_listing(self, listing_id: int) -> ListingOutcome:
        """Extract, record a changed price and notify on target reached."""
        listing = self.listings.get(listing_id)
        if listing is None:
            logger.warning("Listing %d not found", listing_id)
            return ListingOutcome(listing_id, "not_found")

        try:
            result = await asyncio.to_thread(self.registry.extract, listing.url)
        except ExtractionError as exc:
            logger.warning(
                "Extraction failed for listing %d: %s", listing_id, exc
            )
            return ListingOutcome(listing_id, "failed")

        if result.price is None:
            logger.info("No price found for listing %d", listing_id)
            return ListingOutcome(listing_id, "no_price")

        previous_price = listing.price
        new_price = result.price
        decision = decide(previous_price, new_price, listing.target_price)

        observation: PriceObservation | None = None
        dispatch: DispatchResult | None = None
        if decision.should_record:
            observation = self.history.append(
                PriceObservation(
                    listing_id=listing_id,
                    price=new_price,
                    previous_price=previous_price,
                    target_price=listing.target_price,
                    target_reached=decision.target_reached,
                    observed_at=datetime.now(),
                )
            )

        self.listings.update(
            listing_id,
            price=new_price,
            title=result.title or listing.title,
            source=result.source,
        )
        if decision.price_changed:
            logger.info(
                "Updated listing %d: %s - %.2f (was %.2f)",
                listing_id,
                result.title,
                new_price,
                previous_price,
            )
        else:
            logger.info(
                "Updated listing %d: %s - %.2f",
                listing_id,
                result.title,
                new_price,
            )

        # Stored before dispatch; a failed send must not re-record the change.
        if decision.should_notify:
            logger.info(
                "TARGET REACHED for listing %d: %.2f <= %.2f",
                listing_id,
                new_price,
                listing.target_price,
            )
            dispatch = await self._notify_owner(listing, result)

        return ListingOutcome(
            listing_id,
            "changed" if decision.price_changed else "unchanged",
            decision=decision,
            observation=observation,
            dispatch=dispatch,
        )

    async def _notify_owner(
        self, listing: TrackedListing, result: ExtractionResult,
    ) -> DispatchResult | None:
        """Dispatch a price-match event to the listing's owner, if any."""
        owner = listing.owner
        if owner is None or not owner.email:
            logger.debug(
                "Listing %d has no owner email, skipping notification",
                listing.id,
            )
            return None

        assert result.price is not None
        assert listing.target_price is not None
        snapshot = ListingSnapshot(
            id=listing.id,
            title=result.title or listing.title,
            link=listing.url,
            current_price=result.price,
            target_price=listing.target_price,
            previous_price=listing.price,
            source=result.source,
            description=listing.description,
            images=list(listing.images),
            created_at=listing.created_at,
            updated_at=datetime.now(),
        )
        event = NotificationEvent.build(
            recipient_email=owner.email,
            display_name=owner.display_name,
            listing=snapshot,
            webhook_url=owner.discord_webhook_url,
            user_id=owner.id,
        )
        try:
            dispatch = await self.dispatcher.send_price_match(event)
        except Exception:
            logger.exception("Error sending notifications")
            return DispatchResult()

        if dispatch.email_sent:
            logger.info("Email sent to %s for target price reached", owner.email)
        if dispatch.discord_sent:
            logger.info("Discord notification sent for target price reached")
        if not dispatch.any_sent:
            logger.warning("No notifications sent to user %d", owner.id)
        return dispatch

    # ── Read side ────────────────────────────────────────

    async def test_extract(self, url: str) -> ExtractionResult:
        """Extract a URL without touching any stored listing."""
        try:
            return await asyncio.to_thread(self.registry.extract, url)
        except ExtractionError as exc:
            logger.warning("Test extraction failed: %s", exc)
            return ExtractionResult.empty(exc.source)

    def supported_sources(self) -> list[str]:
        return self.registry.supported_sources()

    def get_history(self, listing_id: int) -> list[PriceObservation]:
        """Price history of a listing, newest first."""
        return self.history.query(listing_id=listing_id)

    def get_target_reached_history(
        self, listing_id: int | None = None,
    ) -> list[TargetReachedEntry]:
        return self.history.query_target_reached(listing_id=listing_id)

    def get_notification_history(
        self, user_id: int | None = None,
    ) -> list[TargetReachedEntry]:
        return self.history.query_target_reached(
            owner_id=user_id,
            limit=self.settings.NOTIFICATION_HISTORY_LIMIT,
        )

    async def get_stats(self) -> MonitorStats:
        week_ago = datetime.now() - timedelta(days=7)
        return MonitorStats(
            total_listings=self.listings.count(),
            total_price_matches=self.history.count(target_reached=True),
            recent_matches=self.history.count(
                target_reached=True, since=week_ago
            ),
            email_service_ready=await self.dispatcher.is_email_ready(),
            email_auth_type=self.dispatcher.email.auth_type,
        )
