"""
Domain: Lifetime purchase records and tier capacity configuration.

A PurchaseRecord is one attempted or completed lifetime purchase. It is
created as a `pending` reservation at checkout time and settled to `paid`,
`cancelled` or `expired` by payment-provider events.

Contract excerpts implemented here:
- A record counts toward capacity ("active") iff it is `paid`, or it is
  `pending` and its reservation window has not lapsed.
- A `pending` record without `reserved_until` is reserved indefinitely.
- A record whose tier is not one of {early, mid, final} is invisible to
  capacity accounting.

This module contains only pure domain entities/value objects: no I/O, no database, no frameworks.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .lifetime import LifetimeTier, PurchaseStatus
from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class PurchaseRecord:
    """
    Immutable snapshot of a row in `lifetime_purchases`.

    `tier` is None when the stored value is not a purchasable tier; such
    records are ignored by the allocation engine.
    """

    purchase_id: str
    user_id: Optional[str]
    status: PurchaseStatus
    tier: Optional[LifetimeTier]
    email: Optional[str] = None
    reserved_until: Optional[datetime] = None
    created_at: Optional[datetime] = None
    stripe_session_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    amount_cents: Optional[int] = None
    currency: Optional[str] = None

    def __post_init__(self) -> None:
        if self.reserved_until is not None:
            require_utc_timestamp("reserved_until", self.reserved_until)
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)

    @property
    def has_valid_tier(self) -> bool:
        return LifetimeTier.parse(self.tier) is not None

    def is_pending_active(self, now: datetime) -> bool:
        """A pending reservation holds its slot until `reserved_until` passes."""

        if not self.has_valid_tier or self.status != PurchaseStatus.PENDING:
            return False
        if self.reserved_until is None:
            return True
        return self.reserved_until > now

    def is_active(self, now: datetime) -> bool:
        """Whether this record currently counts toward capacity."""

        if not self.has_valid_tier:
            return False
        if self.status == PurchaseStatus.PAID:
            return True
        return self.is_pending_active(now)


@dataclass(frozen=True, slots=True)
class TierLimit:
    """
    Row of `lifetime_tier_limits`.

    `max_slots` is a cumulative threshold covering this tier and every lower
    tier. Rows with an unknown tier or a missing/negative limit are ignored.
    """

    tier: Optional[LifetimeTier]
    max_slots: Optional[int]


@dataclass(frozen=True, slots=True)
class UserProfile:
    """
    Billing-relevant slice of a row in `users`.

    `lifetime_tier` is a denormalized cache of the user's best paid lifetime
    purchase, written only by webhook settlement.
    """

    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    company_name: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    lifetime_tier: Optional[LifetimeTier] = None
    subscription_tier: Optional[str] = None
    subscription_status: Optional[str] = None
    stripe_subscription_id: Optional[str] = None

    @property
    def has_lifetime_access(self) -> bool:
        return self.lifetime_tier is not None
