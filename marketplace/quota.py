"""
marketplace/quota.py

Subscription quota enforcement for mutating listing actions.

Two actions are gated:
- addListing: active ("available") listings owned by the agent
- featureListing: actively featured listings (featured_expires_at in the future)

Counts are read live from the store on every check, on the same connection
the caller uses for the write that follows. Two concurrent requests from the
same agent can still both pass the check and both write (check-then-write);
set QUOTA_STRICT_LOCKING to serialize writers at the cost of lock waits.

Deny is a policy decision, not an error. Store failures raise StoreError.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol, Union

from marketplace.db import StoreError, now_timestamp
from marketplace.models import ListingStatus
from marketplace.tiers import SubscriptionTier, TierTable


class QuotaAction(str, Enum):
    ADD_LISTING = "addListing"
    FEATURE_LISTING = "featureListing"


class QuotaSubject(Protocol):
    """Anything carrying the user fields the enforcer reads (e.g. AuthContext)."""
    user_id: int
    subscription_type: Optional[str]


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None
    limit: Optional[int] = None
    message: Optional[str] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str, message: str, limit: Optional[int] = None) -> "Decision":
        return cls(allowed=False, reason=reason, limit=limit, message=message)


class QuotaDenied(Exception):
    """Raised by the HTTP layer when a Decision denies the action (HTTP 403)."""

    def __init__(self, decision: Decision):
        super().__init__(decision.message or decision.reason)
        self.decision = decision


class QuotaEnforcer:
    """Decides allow/deny for gated actions against a user's tier."""

    def __init__(self, tiers: TierTable):
        self.tiers = tiers

    def tier_for(self, user: QuotaSubject) -> SubscriptionTier:
        return self.tiers.resolve(getattr(user, "subscription_type", None))

    def check_quota(
        self,
        conn: sqlite3.Connection,
        user: QuotaSubject,
        action: Union[QuotaAction, str],
        now: Optional[datetime] = None,
    ) -> Decision:
        """
        Check whether `user` may perform `action` right now.

        Args:
            conn: Request-scoped connection (the same one the write will use)
            user: Object with user_id and subscription_type
            action: QuotaAction or its string value
            now: Clock override for featured expiry comparisons

        Returns:
            Decision (allowed, or denied with reason/limit/message)

        Raises:
            StoreError: If a count query fails
        """
        tier = self.tier_for(user)

        if action == QuotaAction.ADD_LISTING:
            count = self.count_active_listings(conn, user.user_id)
            if count >= tier.max_listings:
                return Decision.deny(
                    reason="plan listing limit reached",
                    limit=tier.max_listings,
                    message=f"Your plan allows only {tier.max_listings} active listings. Upgrade to add more.",
                )
            return Decision.allow()

        if action == QuotaAction.FEATURE_LISTING:
            if tier.max_featured == 0:
                return Decision.deny(
                    reason="plan forbids featured listings",
                    limit=0,
                    message="Your plan does not allow featured listings.",
                )
            count = self.count_active_featured(conn, user.user_id, now)
            if count >= tier.max_featured:
                return Decision.deny(
                    reason="plan featured limit reached",
                    limit=tier.max_featured,
                    message=f"Your plan allows only {tier.max_featured} featured listings at once.",
                )
            return Decision.allow()

        # Only the two actions above are gated
        print(f"[QUOTA] Warning: no quota rule for action={action!r}; allowing")
        return Decision.allow()

    def count_active_listings(self, conn: sqlite3.Connection, agent_id: int) -> int:
        return self._count(
            conn,
            "SELECT COUNT(*) AS n FROM listings WHERE agent_id = ? AND status = ?",
            (agent_id, ListingStatus.available.value),
        )

    def count_active_featured(
        self, conn: sqlite3.Connection, agent_id: int, now: Optional[datetime] = None
    ) -> int:
        return self._count(
            conn,
            """
            SELECT COUNT(*) AS n FROM listings
            WHERE agent_id = ?
              AND is_featured = 1
              AND featured_expires_at > ?
            """,
            (agent_id, now_timestamp(now)),
        )

    @staticmethod
    def _count(conn: sqlite3.Connection, query: str, params: tuple) -> int:
        try:
            cur = conn.cursor()
            cur.execute(query, params)
            row = cur.fetchone()
        except sqlite3.Error as e:
            print(f"[QUOTA] Count query failed: {e}")
            raise StoreError("Quota count failed") from e
        return int(row[0]) if row else 0
