# marketplace/jobs.py
# Maintenance jobs, run from cron: python -m marketplace.jobs

import sqlite3
from datetime import datetime
from typing import Optional

from marketplace.db import StoreError, get_db, init_db, now_timestamp


def expire_featured_listings(conn: sqlite3.Connection, now: Optional[datetime] = None) -> int:
    """
    Clear the featured flag on listings whose featured period has ended.

    Also repairs rows flagged featured without an expiry, so that every
    featured row carries featured_expires_at.

    Returns:
        Number of listings un-featured

    Raises:
        StoreError: If the update fails
    """
    try:
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE listings
            SET is_featured = 0, featured_expires_at = NULL
            WHERE is_featured = 1
              AND (featured_expires_at IS NULL OR featured_expires_at <= ?)
            """,
            (now_timestamp(now),),
        )
        expired = cur.rowcount
        conn.commit()
    except sqlite3.Error as e:
        print(f"[JOBS] Featured expiry failed: {e}")
        raise StoreError("Featured expiry failed") from e

    print(f"[JOBS] Expired {expired} featured listings")
    return expired


def main() -> None:
    init_db()
    conn = get_db()
    try:
        expire_featured_listings(conn)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
