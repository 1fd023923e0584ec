"""
Subscription checkout service.

Starts recurring `pro`/`business` checkouts and opens the Stripe billing
portal. Subscription state itself is written only by the webhook
(`services/subscription_service.py`); nothing here touches `users`
subscription columns apart from linking a newly created Stripe customer.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import stripe

from domain.entitlements import ACTIVE_SUBSCRIPTION_STATUSES, BUSINESS, PRO
from domain.purchase import UserProfile
from repositories.user_repository import get_user_profile, link_stripe_customer
from services.errors import (
    MisconfiguredTier,
    NoBillingCustomer,
    PersistenceFailure,
    ProviderSessionCreationFailed,
    SubscriptionAlreadyActive,
    UnsupportedSubscriptionTier,
)
from services.stripe_gateway import (
    create_customer,
    create_portal_session,
    create_subscription_checkout_session,
    resolve_active_price_id,
    subscription_product_id,
    tag_customer,
)

logger = logging.getLogger(__name__)

_CHECKOUT_FAILED = "Unable to create Stripe checkout session."
_PORTAL_FAILED = "Unable to create billing portal session."


def normalize_subscription_tier(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    return normalized if normalized in (PRO, BUSINESS) else None


def _has_active_subscription(profile: UserProfile) -> bool:
    return bool(
        profile.stripe_subscription_id
        and profile.subscription_status in ACTIVE_SUBSCRIPTION_STATUSES
    )


def _ensure_customer(profile: UserProfile) -> str:
    """Return the user's Stripe customer, creating and linking one if needed."""

    if profile.stripe_customer_id:
        tag_customer(
            profile.stripe_customer_id,
            user_id=profile.user_id,
            name=profile.name,
            current_tier=profile.subscription_tier,
        )
        return profile.stripe_customer_id

    customer_id = create_customer(
        user_id=profile.user_id,
        email=profile.email,
        name=profile.name,
        company_name=profile.company_name,
    )
    try:
        link_stripe_customer(profile.user_id, customer_id)
    except RuntimeError as e:
        # The webhook links the customer again on checkout completion.
        logger.error(f"Failed to persist Stripe customer id: {str(e)}")
    return customer_id


def start_subscription_checkout(user_id: str, requested_tier: Any) -> str:
    """
    Open a recurring Stripe checkout for `requested_tier`.

    Process:
    1. Normalize the tier (`pro` or `business` only)
    2. Resolve the Stripe product and its active price
    3. Reject users who already have an active subscription
    4. Reuse or create the user's Stripe customer
    5. Create the subscription checkout session (3-day trial on `pro`)

    Returns:
        Stripe-hosted checkout URL

    Raises:
        BillingError subclass describing why checkout cannot start
    """
    tier = normalize_subscription_tier(requested_tier)
    if tier is None:
        raise UnsupportedSubscriptionTier()

    product_id = subscription_product_id(tier)
    if not product_id:
        logger.error(f'Stripe product not configured for subscription tier "{tier}".')
        raise MisconfiguredTier("Stripe product not configured for this tier.")

    price_id = resolve_active_price_id(product_id)
    if not price_id:
        raise MisconfiguredTier("Unable to resolve Stripe price for this tier.")

    try:
        profile = get_user_profile(user_id)
    except RuntimeError as e:
        logger.error(f"Stripe checkout profile error: {str(e)}")
        raise PersistenceFailure("Unable to load profile information.")

    if profile is None:
        raise PersistenceFailure("Unable to load profile information.")

    if _has_active_subscription(profile):
        logger.info(f"Subscription checkout rejected: user {user_id} already subscribed")
        raise SubscriptionAlreadyActive()

    try:
        customer_id = _ensure_customer(profile)
        session = create_subscription_checkout_session(
            price_id=price_id,
            tier=tier,
            user_id=user_id,
            customer_id=customer_id,
        )
    except (stripe.StripeError, RuntimeError) as e:
        logger.error(f"Stripe checkout session error: {str(e)}")
        raise ProviderSessionCreationFailed(_CHECKOUT_FAILED)

    if not session.url:
        logger.error(f"Stripe did not return a URL for subscription checkout {session.session_id}")
        raise ProviderSessionCreationFailed(_CHECKOUT_FAILED)

    logger.info(f"Started {tier} subscription checkout {session.session_id} for user {user_id}")
    return session.url


def open_billing_portal(user_id: str) -> str:
    """
    Create a billing portal session for the user's Stripe customer.

    Raises:
        NoBillingCustomer: if the user has never been linked to a Stripe customer
        ProviderSessionCreationFailed: if Stripe rejects the request
    """
    try:
        profile = get_user_profile(user_id)
    except RuntimeError as e:
        logger.error(f"Stripe portal profile error: {str(e)}")
        profile = None

    if profile is None or not profile.stripe_customer_id:
        raise NoBillingCustomer()

    try:
        url = create_portal_session(profile.stripe_customer_id)
    except (stripe.StripeError, RuntimeError) as e:
        logger.error(f"Stripe portal session error: {str(e)}")
        raise ProviderSessionCreationFailed(_PORTAL_FAILED)

    if not url:
        raise ProviderSessionCreationFailed(_PORTAL_FAILED)
    return url


__all__ = [
    "normalize_subscription_tier",
    "start_subscription_checkout",
    "open_billing_portal",
]
