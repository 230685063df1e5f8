# cenownik/storage/price_db.py

"""SQLite-backed listing, price history and config store."""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from cenownik.config.settings import Settings
from cenownik.models.listing import ListingRef, Owner, TrackedListing
from cenownik.models.price_observation import (
    PriceObservation,
    TargetReachedEntry,
)

logger = logging.getLogger("cenownik.storage")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS users (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    email               TEXT    NOT NULL UNIQUE,
    username            TEXT,
    discord_webhook_url TEXT
);

CREATE TABLE IF NOT EXISTS listings (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    url          TEXT    NOT NULL,
    price        REAL    NOT NULL,
    target_price REAL,
    title        TEXT    NOT NULL,
    description  TEXT,
    images       TEXT    NOT NULL DEFAULT '[]',
    source       TEXT    NOT NULL DEFAULT '',
    user_id      INTEGER REFERENCES users(id) ON DELETE SET NULL,
    created_at   TEXT    NOT NULL,
    updated_at   TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS price_history (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    listing_id      INTEGER NOT NULL
                    REFERENCES listings(id) ON DELETE CASCADE,
    price           REAL    NOT NULL,
    previous_price  REAL,
    target_price    REAL,
    target_reached  INTEGER NOT NULL DEFAULT 0,
    observed_at     TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_listing_date
    ON price_history(listing_id, observed_at);

CREATE TABLE IF NOT EXISTS config (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

_UPDATABLE_FIELDS: frozenset[str] = frozenset({
    "price", "title", "source", "target_price", "description", "images",
})

_HISTORY_COLUMNS = (
    "h.id, h.listing_id, h.price, h.previous_price, "
    "h.target_price, h.target_reached, h.observed_at"
)


def _row_to_observation(row: sqlite3.Row | tuple[Any, ...]) -> PriceObservation:
    return PriceObservation(
        id=row[0],
        listing_id=row[1],
        price=row[2],
        previous_price=row[3],
        target_price=row[4],
        target_reached=bool(row[5]),
        observed_at=datetime.fromisoformat(row[6]),
    )


class PriceDB:
    """One SQLite connection shared by the repositories below."""

    def __init__(self, db_path: Path | None = None) -> None:
        path = db_path or Settings.DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(path), check_same_thread=False)
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self.conn.executescript(_SCHEMA)
        logger.debug("PriceDB opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()


class SqliteConfigStore:
    """Key/value settings table."""

    def __init__(self, db: PriceDB) -> None:
        self._conn = db.conn

    def get(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM config WHERE key = ?", (key,),
        ).fetchone()
        return str(row[0]) if row else None

    def upsert(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT INTO config (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (key, value),
        )
        self._conn.commit()


class SqliteListingRepository:
    """Tracked listings joined with their (optional) owners."""

    def __init__(self, db: PriceDB) -> None:
        self._conn = db.conn

    # ── Seeding (used by tests and local setup) ──────────

    def add_user(
        self,
        email: str,
        username: str | None = None,
        discord_webhook_url: str | None = None,
    ) -> int:
        cur = self._conn.execute(
            "INSERT INTO users (email, username, discord_webhook_url) "
            "VALUES (?, ?, ?)",
            (email, username, discord_webhook_url),
        )
        self._conn.commit()
        return int(cur.lastrowid or 0)

    def add_listing(
        self,
        url: str,
        price: float,
        title: str,
        target_price: float | None = None,
        user_id: int | None = None,
        description: str | None = None,
        images: list[str] | None = None,
        source: str = "",
    ) -> int:
        now = datetime.now().isoformat(timespec="microseconds")
        cur = self._conn.execute(
            "INSERT INTO listings (url, price, target_price, title, "
            "description, images, source, user_id, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                url, price, target_price, title, description,
                json.dumps(images or []), source, user_id, now, now,
            ),
        )
        self._conn.commit()
        return int(cur.lastrowid or 0)

    # ── Repository interface ─────────────────────────────

    def list_all(self) -> list[ListingRef]:
        rows = self._conn.execute(
            "SELECT id, url FROM listings ORDER BY id",
        ).fetchall()
        return [ListingRef(id=r[0], url=r[1]) for r in rows]

    def get(self, listing_id: int) -> TrackedListing | None:
        row = self._conn.execute(
            "SELECT l.id, l.url, l.price, l.target_price, l.title, "
            "       l.description, l.images, l.source, l.created_at, "
            "       l.updated_at, u.id, u.email, u.username, "
            "       u.discord_webhook_url "
            "FROM listings l LEFT JOIN users u ON u.id = l.user_id "
            "WHERE l.id = ?",
            (listing_id,),
        ).fetchone()
        if row is None:
            return None
        owner = (
            Owner(
                id=row[10],
                email=row[11],
                username=row[12],
                discord_webhook_url=row[13],
            )
            if row[10] is not None
            else None
        )
        return TrackedListing(
            id=row[0],
            url=row[1],
            price=row[2],
            target_price=row[3],
            title=row[4],
            description=row[5],
            images=list(json.loads(row[6] or "[]")),
            source=row[7],
            created_at=datetime.fromisoformat(row[8]),
            updated_at=datetime.fromisoformat(row[9]),
            owner=owner,
        )

    def update(self, listing_id: int, **fields: Any) -> None:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update listing fields: {sorted(unknown)}")
        if "images" in fields:
            fields["images"] = json.dumps(fields["images"])
        fields["updated_at"] = datetime.now().isoformat(timespec="microseconds")
        assignments = ", ".join(f"{name} = ?" for name in fields)
        self._conn.execute(
            f"UPDATE listings SET {assignments} WHERE id = ?",
            (*fields.values(), listing_id),
        )
        self._conn.commit()

    def count(self) -> int:
        row = self._conn.execute("SELECT COUNT(id) FROM listings").fetchone()
        return int(row[0])


class SqliteHistoryRepository:
    """Insert-only price history."""

    def __init__(self, db: PriceDB) -> None:
        self._conn = db.conn

    def append(self, observation: PriceObservation) -> PriceObservation:
        cur = self._conn.execute(
            "INSERT INTO price_history (listing_id, price, previous_price, "
            "target_price, target_reached, observed_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                observation.listing_id,
                observation.price,
                observation.previous_price,
                observation.target_price,
                int(observation.target_reached),
                observation.observed_at.isoformat(timespec="microseconds"),
            ),
        )
        self._conn.commit()
        return PriceObservation(
            id=cur.lastrowid,
            listing_id=observation.listing_id,
            price=observation.price,
            previous_price=observation.previous_price,
            target_price=observation.target_price,
            target_reached=observation.target_reached,
            observed_at=observation.observed_at,
        )

    def query(
        self,
        listing_id: int | None = None,
        target_reached: bool | None = None,
        limit: int | None = None,
    ) -> list[PriceObservation]:
        """Observations matching the filters, newest first."""
        clauses: list[str] = []
        params: list[Any] = []
        if listing_id is not None:
            clauses.append("h.listing_id = ?")
            params.append(listing_id)
        if target_reached is not None:
            clauses.append("h.target_reached = ?")
            params.append(int(target_reached))
        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        sql = (
            f"SELECT {_HISTORY_COLUMNS} FROM price_history h {where}"
            "ORDER BY h.observed_at DESC, h.id DESC"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_observation(r) for r in rows]

    def query_target_reached(
        self,
        listing_id: int | None = None,
        owner_id: int | None = None,
        limit: int | None = None,
    ) -> list[TargetReachedEntry]:
        """Target-reached observations joined with listing and owner."""
        clauses = ["h.target_reached = 1"]
        params: list[Any] = []
        if listing_id is not None:
            clauses.append("h.listing_id = ?")
            params.append(listing_id)
        if owner_id is not None:
            clauses.append("l.user_id = ?")
            params.append(owner_id)
        sql = (
            f"SELECT {_HISTORY_COLUMNS}, l.title, l.url, l.source, "
            "       u.id, u.email, u.username "
            "FROM price_history h "
            "JOIN listings l ON l.id = h.listing_id "
            "LEFT JOIN users u ON u.id = l.user_id "
            f"WHERE {' AND '.join(clauses)} "
            "ORDER BY h.observed_at DESC, h.id DESC"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = self._conn.execute(sql, params).fetchall()
        return [
            TargetReachedEntry(
                observation=_row_to_observation(r),
                listing_title=r[7],
                listing_url=r[8],
                listing_source=r[9],
                owner_id=r[10],
                owner_email=r[11],
                owner_username=r[12],
            )
            for r in rows
        ]

    def count(
        self,
        target_reached: bool | None = None,
        since: datetime | None = None,
    ) -> int:
        clauses: list[str] = []
        params: list[Any] = []
        if target_reached is not None:
            clauses.append("target_reached = ?")
            params.append(int(target_reached))
        if since is not None:
            clauses.append("observed_at >= ?")
            params.append(since.isoformat(timespec="microseconds"))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        row = self._conn.execute(
            f"SELECT COUNT(id) FROM price_history{where}", params,
        ).fetchone()
        return int(row[0])
