"""
marketplace/tiers.py

Subscription tiers: server-side source of truth for listing quotas.

The tier table is loaded once at startup and handed to the QuotaEnforcer.
It never changes while the process runs; edit the JSON file (TIERS_FILE)
and restart to change limits.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

DEFAULT_TIER = "basic"

# Stand-in for "no practical limit" (enterprise listings)
UNLIMITED = 1_000_000


class ConfigError(Exception):
    """Raised when the tier table is missing or malformed. Fatal at boot."""
    pass


@dataclass(frozen=True)
class SubscriptionTier:
    """Limits attached to a subscription plan."""
    name: str
    max_listings: int
    max_featured: int
    featured_days: int = 0


DEFAULT_TIERS: Dict[str, SubscriptionTier] = {
    "basic": SubscriptionTier("basic", max_listings=5, max_featured=0, featured_days=0),
    "pro": SubscriptionTier("pro", max_listings=20, max_featured=5, featured_days=14),
    "enterprise": SubscriptionTier("enterprise", max_listings=UNLIMITED, max_featured=10, featured_days=30),
}


class TierTable:
    """Immutable mapping of tier name -> SubscriptionTier with basic fallback."""

    def __init__(self, tiers: Mapping[str, SubscriptionTier]):
        normalized = {name.strip().lower(): tier for name, tier in tiers.items()}
        if DEFAULT_TIER not in normalized:
            raise ConfigError(f"Tier table must define a '{DEFAULT_TIER}' tier")
        self._tiers = MappingProxyType(normalized)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._tiers

    def __len__(self) -> int:
        return len(self._tiers)

    @property
    def names(self) -> tuple:
        return tuple(self._tiers)

    def resolve(self, subscription_type: Optional[str]) -> SubscriptionTier:
        """Return the tier for a user's subscription_type, or basic when absent/unknown."""
        if subscription_type:
            tier = self._tiers.get(str(subscription_type).strip().lower())
            if tier is not None:
                return tier
        return self._tiers[DEFAULT_TIER]


def _limit(raw: Dict[str, Any], key: str, tier_name: str, default: Optional[int] = None) -> int:
    value = raw.get(key, default)
    if value == "unlimited":
        return UNLIMITED
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"Tier '{tier_name}': {key} must be a non-negative integer, got {value!r}")
    return value


def parse_tiers(data: Mapping[str, Any]) -> TierTable:
    """
    Build a TierTable from a JSON-style mapping.

    Example:
        {"basic": {"max_listings": 5, "max_featured": 0},
         "pro": {"max_listings": 20, "max_featured": 5, "featured_days": 14}}
    """
    if not isinstance(data, Mapping) or not data:
        raise ConfigError("Tier table must be a non-empty object")

    tiers = {}
    for name, raw in data.items():
        if not isinstance(raw, Mapping):
            raise ConfigError(f"Tier '{name}' must be an object")
        tiers[name] = SubscriptionTier(
            name=name.strip().lower(),
            max_listings=_limit(raw, "max_listings", name),
            max_featured=_limit(raw, "max_featured", name),
            featured_days=_limit(raw, "featured_days", name, default=0),
        )
    return TierTable(tiers)


def load_tiers(path: Optional[str] = None) -> TierTable:
    """
    Load the tier table from a JSON file, or the built-in defaults.

    Raises:
        ConfigError: If the file is unreadable, not JSON, or lacks a basic tier
    """
    if not path:
        return TierTable(DEFAULT_TIERS)

    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Could not load tier table from {path}: {e}") from e

    table = parse_tiers(data)
    print(f"[TIERS] Loaded {len(table)} tiers from {path}: {', '.join(table.names)}")
    return table
