"""
Recurring-subscription service.

Keeps the subscription fields on `users` in step with Stripe
`customer.subscription.*` events, and resolves a user's feature
entitlements from those fields plus their lifetime tier.

This is a separate state machine from lifetime purchases: it never touches
`lifetime_purchases` or `users.lifetime_tier`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, Mapping, Optional

from domain.entitlements import FREE, SubscriptionEntitlements, get_subscription_entitlements
from domain.time import from_epoch_seconds
from repositories.user_repository import get_user_profile, update_user, update_user_by_customer
from services.errors import PersistenceFailure
from services.stripe_gateway import ref_id, subscription_tier_for_product

logger = logging.getLogger(__name__)

SUBSCRIPTION_EVENTS: FrozenSet[str] = frozenset({
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
})

_CANCELLED_STATUSES: FrozenSet[str] = frozenset({"canceled", "incomplete_expired"})


def _first_item(subscription: Mapping[str, Any]) -> Mapping[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def build_subscription_update(
    subscription: Mapping[str, Any],
    event_type: str,
) -> Dict[str, Any]:
    """
    Map a Stripe subscription object onto `users` columns.

    Cancelled subscriptions reset the user to the free tier and clear the
    Stripe subscription/price references.
    """
    item = _first_item(subscription)
    price = item.get("price") or {}
    plan = item.get("plan") or {}

    price_id = price.get("id") or plan.get("id")
    product_id = ref_id(price.get("product")) or ref_id(plan.get("product"))
    tier = subscription_tier_for_product(product_id)

    cancelled = (
        event_type == "customer.subscription.deleted"
        or subscription.get("status") in _CANCELLED_STATUSES
    )

    # Newer API versions report the period end per item.
    period_end = item.get("current_period_end") or subscription.get("current_period_end")

    updates: Dict[str, Any] = {
        "stripe_customer_id": ref_id(subscription.get("customer")),
        "stripe_subscription_id": None if cancelled else subscription.get("id"),
        "stripe_price_id": None if cancelled else price_id,
        "subscription_status": FREE if cancelled else subscription.get("status"),
        "cancel_at": from_epoch_seconds(subscription.get("cancel_at")),
        "current_period_end": from_epoch_seconds(period_end),
    }

    if cancelled:
        updates["subscription_tier"] = FREE
        updates["cancel_at"] = None
    elif tier:
        updates["subscription_tier"] = tier

    return updates


def _subscription_user_id(subscription: Mapping[str, Any]) -> Optional[str]:
    user_id = (subscription.get("metadata") or {}).get("supabaseUserId")
    if user_id:
        return user_id

    customer = subscription.get("customer")
    if isinstance(customer, Mapping) and not customer.get("deleted"):
        return (customer.get("metadata") or {}).get("supabaseUserId")
    return None


def sync_subscription(subscription: Mapping[str, Any], event_type: str) -> bool:
    """
    Apply a subscription event to the owning user.

    Targets the user named in metadata, otherwise whoever is linked to the
    Stripe customer. Errors are logged, never raised.

    Returns:
        True if the update was written
    """
    updates = build_subscription_update(subscription, event_type)
    user_id = _subscription_user_id(subscription)
    customer_id = updates["stripe_customer_id"]

    try:
        if user_id:
            logger.info(f"Updating subscription for user {user_id}")
            update_user(user_id, updates)
        elif customer_id:
            update_user_by_customer(customer_id, updates)
        else:
            logger.error(f"Subscription {subscription.get('id')} has no user or customer reference")
            return False
    except RuntimeError as e:
        logger.error(f"Stripe webhook subscription update error: {str(e)}")
        return False

    return True


def get_entitlements_for_user(user_id: str) -> SubscriptionEntitlements:
    """
    Resolve a user's feature entitlements from their profile.

    Raises:
        PersistenceFailure: if the profile cannot be read or does not exist
    """
    try:
        profile = get_user_profile(user_id)
    except RuntimeError as e:
        logger.error(f"Failed to load profile for entitlements: {str(e)}")
        raise PersistenceFailure("Unable to load your account details.")

    if profile is None:
        raise PersistenceFailure("Unable to load your account details.")

    return get_subscription_entitlements(
        profile.subscription_tier,
        profile.subscription_status,
        lifetime_tier=profile.lifetime_tier,
    )


__all__ = [
    "SUBSCRIPTION_EVENTS",
    "build_subscription_update",
    "sync_subscription",
    "get_entitlements_for_user",
]
