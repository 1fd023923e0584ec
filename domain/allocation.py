"""
Domain: Lifetime slot allocation engine (pure).

Availability is always derived from a scan of purchase records; there is no
stored counter. That is what lets a lapsed `pending` reservation stop counting
without any row being rewritten.

Tier resolution by cumulative thresholds (checked highest first):
- total_active >= limit[final] -> closed
- total_active >= limit[mid]   -> final
- total_active >= limit[early] -> mid
- otherwise                    -> early

All functions take an explicit `now` so results are deterministic.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .lifetime import DEFAULT_TIER_LIMITS, PURCHASABLE_TIERS, LifetimeTier, PurchaseStatus
from .purchase import PurchaseRecord, TierLimit

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class Availability:
    """Global lifetime capacity snapshot."""

    tier_limits: Dict[LifetimeTier, int]
    effective_max_slots: int
    reserved_slots: int
    available_slots: int
    total_active: int
    total_paid: int
    tier: LifetimeTier  # may be CLOSED
    active_tier: Optional[LifetimeTier]
    remaining_in_tier: int
    claimed_percentage: int

    @property
    def is_closed(self) -> bool:
        return self.active_tier is None


@dataclass(frozen=True, slots=True)
class AllocationAnalysis:
    availability: Availability
    active_purchases: List[PurchaseRecord]
    paid_purchases: List[PurchaseRecord]


class UserPurchaseState(str, Enum):
    NONE = "none"
    PENDING = "pending"
    PAID = "paid"


@dataclass(frozen=True, slots=True)
class UserStatus:
    """
    A single user's lifetime entitlement.

    Never both paid and pending: a paid record always wins over a pending one,
    regardless of which is more recent.
    """

    state: UserPurchaseState
    tier: Optional[LifetimeTier] = None
    reservation_expires_at: Optional[datetime] = None
    purchase: Optional[PurchaseRecord] = None

    @staticmethod
    def none() -> "UserStatus":
        return UserStatus(state=UserPurchaseState.NONE)


def resolve_tier_limits(rows: Optional[Iterable[TierLimit]]) -> Dict[LifetimeTier, int]:
    """Start from the defaults and apply every valid configured row."""

    limits = dict(DEFAULT_TIER_LIMITS)
    if not rows:
        return limits

    for row in rows:
        if row is None:
            continue
        tier = LifetimeTier.parse(row.tier)
        if tier is None:
            continue
        # bool is an int subclass; a stray True must not become a limit of 1
        if isinstance(row.max_slots, bool) or not isinstance(row.max_slots, int):
            continue
        if row.max_slots < 0:
            continue
        limits[tier] = row.max_slots

    return limits


def determine_tier_from_count(count: int, limits: Dict[LifetimeTier, int]) -> LifetimeTier:
    if count >= limits[LifetimeTier.FINAL]:
        return LifetimeTier.CLOSED
    if count >= limits[LifetimeTier.MID]:
        return LifetimeTier.FINAL
    if count >= limits[LifetimeTier.EARLY]:
        return LifetimeTier.MID
    return LifetimeTier.EARLY


def remaining_slots_for_tier(count: int, tier: LifetimeTier, limits: Dict[LifetimeTier, int]) -> int:
    if tier == LifetimeTier.CLOSED:
        return 0
    return max(limits[tier] - count, 0)


def _claimed_percentage(total_active: int, effective_max_slots: int) -> int:
    if effective_max_slots <= 0:
        return 0
    # Half-up rounding, clamped: over-reservation can push the ratio past 1.
    percentage = math.floor(total_active * 100 / effective_max_slots + 0.5)
    return max(0, min(100, percentage))


def analyze_purchases(
    purchases: Optional[Iterable[PurchaseRecord]],
    tier_limit_rows: Optional[Iterable[TierLimit]],
    now: datetime,
) -> AllocationAnalysis:
    """
    Compute availability plus the active and paid record lists.

    Degrades gracefully: empty or malformed input never raises.
    """

    tier_limits = resolve_tier_limits(tier_limit_rows)

    active: List[PurchaseRecord] = []
    paid: List[PurchaseRecord] = []

    for purchase in purchases or []:
        if purchase is None or not purchase.has_valid_tier:
            continue
        if purchase.status == PurchaseStatus.PAID:
            paid.append(purchase)
            active.append(purchase)
        elif purchase.is_pending_active(now):
            active.append(purchase)

    total_active = len(active)
    total_paid = len(paid)
    tier = determine_tier_from_count(total_active, tier_limits)
    effective_max_slots = max(tier_limits[t] for t in PURCHASABLE_TIERS)

    availability = Availability(
        tier_limits=tier_limits,
        effective_max_slots=effective_max_slots,
        reserved_slots=min(total_active, effective_max_slots),
        available_slots=max(effective_max_slots - total_active, 0),
        total_active=total_active,
        total_paid=total_paid,
        tier=tier,
        active_tier=None if tier == LifetimeTier.CLOSED else tier,
        remaining_in_tier=remaining_slots_for_tier(total_active, tier, tier_limits),
        claimed_percentage=_claimed_percentage(total_active, effective_max_slots),
    )

    return AllocationAnalysis(
        availability=availability,
        active_purchases=active,
        paid_purchases=paid,
    )


def compute_availability(
    purchases: Optional[Iterable[PurchaseRecord]],
    tier_limit_rows: Optional[Iterable[TierLimit]],
    now: datetime,
) -> Availability:
    return analyze_purchases(purchases, tier_limit_rows, now).availability


def resolve_user_status(
    active_purchases: Iterable[PurchaseRecord],
    user_id: Optional[str],
    now: datetime,
) -> UserStatus:
    """
    Resolve a user's lifetime status from the active purchase list.

    Records are ordered most recent first (missing `created_at` sorts as
    oldest); the first paid record wins, else the first still-active pending.
    """

    if not user_id:
        return UserStatus.none()

    user_purchases = sorted(
        (p for p in active_purchases if p.user_id == user_id),
        key=lambda p: p.created_at or _OLDEST,
        reverse=True,
    )

    for purchase in user_purchases:
        if purchase.status == PurchaseStatus.PAID and purchase.has_valid_tier:
            return UserStatus(
                state=UserPurchaseState.PAID,
                tier=purchase.tier,
                purchase=purchase,
            )

    for purchase in user_purchases:
        if purchase.is_pending_active(now):
            return UserStatus(
                state=UserPurchaseState.PENDING,
                tier=purchase.tier,
                reservation_expires_at=purchase.reserved_until,
                purchase=purchase,
            )

    return UserStatus.none()


__all__ = [
    "Availability",
    "AllocationAnalysis",
    "UserPurchaseState",
    "UserStatus",
    "resolve_tier_limits",
    "determine_tier_from_count",
    "remaining_slots_for_tier",
    "analyze_purchases",
    "compute_availability",
    "resolve_user_status",
]
