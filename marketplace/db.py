# marketplace/db.py
# SQLite persistence layer: connections, schema, timestamps

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path as FsPath
from typing import Generator, Optional

from marketplace import config
from marketplace.coerce import compare_text, fold_text, parse_price

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


class StoreError(Exception):
    """Raised when the listings store cannot be read or written."""
    pass


def database_file() -> str:
    """Resolve DATABASE_PATH (relative paths live next to this package)."""
    return str(FsPath(__file__).resolve().parent / config.DATABASE_PATH)


def _sql_listing_price(value):
    # Exposed to SQL so price bounds use the same parser as price sorting
    return parse_price(value)


def prepare_connection(conn: sqlite3.Connection) -> sqlite3.Connection:
    """Apply row factory and SQL helper functions to a connection."""
    conn.row_factory = sqlite3.Row
    conn.create_function("listing_price", 1, _sql_listing_price, deterministic=True)
    conn.create_function("fold_text", 1, fold_text, deterministic=True)
    conn.create_collation("locale_nocase", compare_text)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def get_db() -> sqlite3.Connection:
    """
    Create and return a SQLite connection with Row factory.

    Raises:
        StoreError: If the database file cannot be opened
    """
    try:
        conn = sqlite3.connect(database_file(), check_same_thread=False)
        return prepare_connection(conn)
    except sqlite3.Error as e:
        print(f"[DB] Could not open database: {e}")
        raise StoreError("Could not open database") from e


def db_session() -> Generator[sqlite3.Connection, None, None]:
    """
    FastAPI dependency yielding one connection per request.

    The quota check and the write it guards share this connection.
    Anything left uncommitted when the request ends is rolled back.
    """
    conn = get_db()
    try:
        yield conn
    finally:
        if conn.in_transaction:
            conn.rollback()
        conn.close()


# ---------------------------------------------------------
# Timestamps (UTC, lexicographically comparable)
# ---------------------------------------------------------
def to_timestamp(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.strftime(TIMESTAMP_FORMAT)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_timestamp(now: Optional[datetime] = None) -> str:
    return to_timestamp(now or utcnow())


# ---------------------------------------------------------
# Schema
# ---------------------------------------------------------
SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT UNIQUE NOT NULL,
        full_name TEXT,
        role TEXT NOT NULL DEFAULT 'client',
        subscription_type TEXT DEFAULT 'basic',
        agency_id INTEGER,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS listings (
        property_id INTEGER PRIMARY KEY AUTOINCREMENT,
        agent_id INTEGER NOT NULL,
        agency_id INTEGER,
        title TEXT,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        is_featured INTEGER NOT NULL DEFAULT 0,
        featured_expires_at TEXT,
        purchase_category TEXT,
        price NUMERIC,
        location TEXT,
        state TEXT,
        property_type TEXT,
        subtype TEXT,
        bedrooms INTEGER,
        bathrooms INTEGER,
        date_listed TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS favourites (
        user_id INTEGER NOT NULL,
        property_id INTEGER NOT NULL REFERENCES listings(property_id) ON DELETE CASCADE,
        created_at TEXT NOT NULL,
        UNIQUE (user_id, property_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_listings_agent_status ON listings(agent_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_listings_agent_featured ON listings(agent_id, is_featured, featured_expires_at)",
    "CREATE INDEX IF NOT EXISTS idx_listings_agency ON listings(agency_id)",
    "CREATE INDEX IF NOT EXISTS idx_favourites_user ON favourites(user_id, created_at)",
)


def init_db(conn: Optional[sqlite3.Connection] = None) -> None:
    """Create tables and indexes if missing (idempotent)."""
    owns_connection = conn is None
    if owns_connection:
        conn = get_db()
    try:
        cur = conn.cursor()
        for statement in SCHEMA:
            cur.execute(statement)
        conn.commit()
        if config.IS_DEV and owns_connection:
            print(f"[DB] Ensured schema at {database_file()}")
    except sqlite3.Error as e:
        print(f"[DB] Schema initialisation failed: {e}")
        raise StoreError("Schema initialisation failed") from e
    finally:
        if owns_connection:
            conn.close()
