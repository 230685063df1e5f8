# tests/test_price_db.py

"""Tests for the SQLite listing, history and config repositories."""

import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path

from cenownik.models.price_observation import PriceObservation
from cenownik.storage.price_db import (
    PriceDB,
    SqliteConfigStore,
    SqliteHistoryRepository,
    SqliteListingRepository,
)


class _DBTestCase(unittest.TestCase):
    def setUp(self) -> None:
        """Create a fresh temp DB for each test."""
        self.tmp_dir = tempfile.mkdtemp()
        self.db = PriceDB(db_path=Path(self.tmp_dir) / "test.db")
        self.listings = SqliteListingRepository(self.db)
        self.history = SqliteHistoryRepository(self.db)
        self.config = SqliteConfigStore(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def _observation(
        self,
        listing_id: int,
        price: float,
        reached: bool = False,
        at: datetime | None = None,
    ) -> PriceObservation:
        return PriceObservation(
            listing_id=listing_id,
            price=price,
            previous_price=100.0,
            target_price=90.0,
            target_reached=reached,
            observed_at=at or datetime.now(),
        )


class TestConfigStore(_DBTestCase):
    def test_missing_key(self) -> None:
        self.assertIsNone(self.config.get("SCRAPE_CRON"))

    def test_upsert_overwrites(self) -> None:
        self.config.upsert("SCRAPE_CRON", "0 * * * *")
        self.config.upsert("SCRAPE_CRON", "*/30 * * * *")
        self.assertEqual(self.config.get("SCRAPE_CRON"), "*/30 * * * *")


class TestListingRepository(_DBTestCase):
    """Verify listing CRUD used by the monitor."""

    def test_get_with_owner(self) -> None:
        user_id = self.listings.add_user(
            "jan@example.com", "jan", "https://discord.com/api/webhooks/1/t"
        )
        listing_id = self.listings.add_listing(
            "https://www.morele.net/x/",
            100.0,
            "Karta",
            target_price=90.0,
            user_id=user_id,
            images=["https://cdn.example.com/a.jpg"],
        )

        listing = self.listings.get(listing_id)
        assert listing is not None
        self.assertEqual(listing.price, 100.0)
        self.assertEqual(listing.target_price, 90.0)
        self.assertEqual(listing.images, ["https://cdn.example.com/a.jpg"])
        assert listing.owner is not None
        self.assertEqual(listing.owner.email, "jan@example.com")
        self.assertEqual(
            listing.owner.discord_webhook_url,
            "https://discord.com/api/webhooks/1/t",
        )

    def test_get_unowned(self) -> None:
        listing_id = self.listings.add_listing("https://x-kom.pl/p/1", 10.0, "t")
        listing = self.listings.get(listing_id)
        assert listing is not None
        self.assertIsNone(listing.owner)
        self.assertIsNone(listing.target_price)

    def test_get_missing(self) -> None:
        self.assertIsNone(self.listings.get(999))

    def test_list_all_in_id_order(self) -> None:
        first = self.listings.add_listing("https://a.pl/1", 1.0, "a")
        second = self.listings.add_listing("https://a.pl/2", 2.0, "b")
        refs = self.listings.list_all()
        self.assertEqual([r.id for r in refs], [first, second])
        self.assertEqual(refs[0].url, "https://a.pl/1")
        self.assertEqual(self.listings.count(), 2)

    def test_update(self) -> None:
        listing_id = self.listings.add_listing("https://a.pl/1", 1.0, "a")
        self.listings.update(listing_id, price=2.5, title="b", source="morele")
        listing = self.listings.get(listing_id)
        assert listing is not None
        self.assertEqual(listing.price, 2.5)
        self.assertEqual(listing.title, "b")
        self.assertEqual(listing.source, "morele")

    def test_update_rejects_unknown_fields(self) -> None:
        listing_id = self.listings.add_listing("https://a.pl/1", 1.0, "a")
        with self.assertRaises(ValueError):
            self.listings.update(listing_id, url="https://b.pl")


class TestHistoryRepository(_DBTestCase):
    """Verify append-only history queries."""

    def setUp(self) -> None:
        super().setUp()
        self.user_id = self.listings.add_user("jan@example.com", "jan")
        self.listing_id = self.listings.add_listing(
            "https://a.pl/1", 100.0, "Karta", 90.0, user_id=self.user_id
        )

    def test_append_assigns_id(self) -> None:
        stored = self.history.append(self._observation(self.listing_id, 95.0))
        self.assertIsNotNone(stored.id)
        self.assertEqual(stored.price, 95.0)

    def test_query_newest_first(self) -> None:
        now = datetime.now()
        self.history.append(
            self._observation(self.listing_id, 95.0, at=now - timedelta(hours=1))
        )
        self.history.append(self._observation(self.listing_id, 85.0, True, now))

        rows = self.history.query(listing_id=self.listing_id)
        self.assertEqual([r.price for r in rows], [85.0, 95.0])
        self.assertEqual(rows[0].observed_at, now)

        reached = self.history.query(target_reached=True)
        self.assertEqual([r.price for r in reached], [85.0])

    def test_query_target_reached_joins_owner(self) -> None:
        self.history.append(self._observation(self.listing_id, 95.0))
        self.history.append(self._observation(self.listing_id, 85.0, True))

        entries = self.history.query_target_reached()
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].observation.price, 85.0)
        self.assertEqual(entries[0].listing_title, "Karta")
        self.assertEqual(entries[0].owner_email, "jan@example.com")

        self.assertEqual(
            len(self.history.query_target_reached(owner_id=self.user_id)), 1
        )
        self.assertEqual(
            self.history.query_target_reached(owner_id=self.user_id + 1), []
        )

    def test_query_target_reached_limit(self) -> None:
        for price in (89.0, 88.0, 87.0):
            self.history.append(self._observation(self.listing_id, price, True))
        entries = self.history.query_target_reached(limit=2)
        self.assertEqual(len(entries), 2)

    def test_count(self) -> None:
        old = datetime.now() - timedelta(days=30)
        self.history.append(self._observation(self.listing_id, 85.0, True, old))
        self.history.append(self._observation(self.listing_id, 84.0, True))
        self.history.append(self._observation(self.listing_id, 95.0))

        self.assertEqual(self.history.count(), 3)
        self.assertEqual(self.history.count(target_reached=True), 2)
        self.assertEqual(
            self.history.count(
                target_reached=True,
                since=datetime.now() - timedelta(days=7),
            ),
            1,
        )


if __name__ == "__main__":
    unittest.main()
