"""
Domain: Subscription entitlements.

Maps a user's recurring-subscription tier/status and lifetime tier onto the
feature limits the application enforces. Lifetime access always grants the
full (business-level) feature set.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional

from .lifetime import LifetimeTier

FREE = "free"
PRO = "pro"
BUSINESS = "business"

SUBSCRIPTION_TIERS: FrozenSet[str] = frozenset({FREE, PRO, BUSINESS})
ACTIVE_SUBSCRIPTION_STATUSES: FrozenSet[str] = frozenset({"active", "trialing", "past_due"})

MONTHLY_CHANGE_ORDER_LIMITS: Dict[str, Optional[int]] = {
    FREE: 3,
    PRO: None,
    BUSINESS: None,
}

FREE_WATERMARK = "powered by ScopeSafe"


@dataclass(frozen=True, slots=True)
class SubscriptionEntitlements:
    tier: str
    status: Optional[str]
    max_monthly_change_orders: Optional[int]  # None means unlimited
    watermark_text: Optional[str]
    can_send_emails: bool
    has_lifetime_access: bool


def _is_paid_tier(tier: str) -> bool:
    return tier in (PRO, BUSINESS)


def get_subscription_entitlements(
    tier: Optional[str],
    status: Optional[str],
    lifetime_tier: Any = None,
) -> SubscriptionEntitlements:
    normalized_tier = tier if tier in SUBSCRIPTION_TIERS else FREE
    has_lifetime_access = LifetimeTier.parse(lifetime_tier) is not None

    is_paid = _is_paid_tier(normalized_tier)
    has_paid_access = is_paid and status in ACTIVE_SUBSCRIPTION_STATUSES

    if has_lifetime_access:
        entitlement_tier = BUSINESS
    elif is_paid and not has_paid_access:
        entitlement_tier = FREE
    else:
        entitlement_tier = normalized_tier

    if has_lifetime_access:
        max_monthly = None
        watermark = None
    else:
        max_monthly = MONTHLY_CHANGE_ORDER_LIMITS[entitlement_tier]
        watermark = FREE_WATERMARK if entitlement_tier == FREE else None

    return SubscriptionEntitlements(
        tier=normalized_tier,
        status=status,
        max_monthly_change_orders=max_monthly,
        watermark_text=watermark,
        can_send_emails=has_lifetime_access or has_paid_access,
        has_lifetime_access=has_lifetime_access,
    )


def is_change_order_limit_reached(
    usage_count: Optional[int],
    entitlements: Optional[SubscriptionEntitlements],
) -> bool:
    if entitlements is None or entitlements.max_monthly_change_orders is None:
        return False
    if not isinstance(usage_count, int):
        return False
    return usage_count >= entitlements.max_monthly_change_orders
