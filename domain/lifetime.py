"""
Domain: Lifetime access tiers.

Lifetime access is sold in three sequential, capacity-capped pricing bands
that open in order as slots fill up:

- early: first 50 slots
- mid:   up to 125 slots in total
- final: up to 150 slots in total (overall program capacity)

Tier limits are cumulative thresholds, not per-tier buckets. Once the final
threshold is reached the offer is "closed".
"""

from __future__ import annotations

from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class LifetimeTier(str, Enum):
    EARLY = "early"
    MID = "mid"
    FINAL = "final"
    CLOSED = "closed"

    @staticmethod
    def parse(value: Any) -> Optional["LifetimeTier"]:
        """
        Resolve a purchasable tier from a raw value.

        Returns None for anything outside {early, mid, final}, including the
        "closed" sentinel.
        """

        if isinstance(value, LifetimeTier):
            return value if value in PURCHASABLE_TIERS else None
        if not isinstance(value, str):
            return None
        try:
            tier = LifetimeTier(value)
        except ValueError:
            return None
        return tier if tier in PURCHASABLE_TIERS else None


class PurchaseStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    REFUNDED = "refunded"


PURCHASABLE_TIERS: Tuple[LifetimeTier, ...] = (
    LifetimeTier.EARLY,
    LifetimeTier.MID,
    LifetimeTier.FINAL,
)

# Cumulative slot thresholds used when no tier-limit row is configured.
DEFAULT_TIER_LIMITS: Dict[LifetimeTier, int] = {
    LifetimeTier.EARLY: 50,
    LifetimeTier.MID: 125,
    LifetimeTier.FINAL: 150,
}

# Major currency units (EUR).
TIER_PRICING: Dict[LifetimeTier, Decimal] = {
    LifetimeTier.EARLY: Decimal("100"),
    LifetimeTier.MID: Decimal("149"),
    LifetimeTier.FINAL: Decimal("200"),
}

TIER_DISPLAY_NAMES: Dict[LifetimeTier, str] = {
    LifetimeTier.EARLY: "Early Supporter",
    LifetimeTier.MID: "Early Bird",
    LifetimeTier.FINAL: "Final Wave",
}

TIER_RANK: Dict[LifetimeTier, int] = {
    LifetimeTier.EARLY: 0,
    LifetimeTier.MID: 1,
    LifetimeTier.FINAL: 2,
}

LIFETIME_CURRENCY = "eur"
RESERVATION_TTL = timedelta(minutes=15)


def tier_rank(tier: Any) -> int:
    """Rank of a purchasable tier; -1 for no tier or anything unrecognised."""

    parsed = LifetimeTier.parse(tier)
    if parsed is None:
        return -1
    return TIER_RANK[parsed]


def is_tier_upgrade(current: Any, incoming: Any) -> bool:
    """True iff `incoming` ranks strictly above `current`. Never downgrades."""

    return tier_rank(incoming) > tier_rank(current)


def price_in_minor_units(price: Decimal) -> int:
    """Convert a major-unit price into integer cents, rounded half-up and floored at 0."""

    cents = (price * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(int(cents), 0)


__all__ = [
    "LifetimeTier",
    "PurchaseStatus",
    "PURCHASABLE_TIERS",
    "DEFAULT_TIER_LIMITS",
    "TIER_PRICING",
    "TIER_DISPLAY_NAMES",
    "TIER_RANK",
    "LIFETIME_CURRENCY",
    "RESERVATION_TTL",
    "tier_rank",
    "is_tier_upgrade",
    "price_in_minor_units",
]
