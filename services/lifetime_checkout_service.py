"""
Lifetime checkout service (reservation writer).

Handles:
- Eligibility checks (already owns access, reservation in progress, sold out)
- Two-phase reserve-then-pay: a `pending` row holds the slot for 15 minutes
  while the user completes the Stripe checkout
- Compensating release of the reservation if checkout creation fails

Known limitation: availability is read and the reservation inserted without
a serializing transaction, so two concurrent requests can both take the last
slot of a tier. The overbooking is bounded by request concurrency and is
tolerated; strict enforcement would need a unique (tier, slot index)
constraint or a serializable transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

import stripe

from domain.allocation import (
    AllocationAnalysis,
    Availability,
    UserPurchaseState,
    UserStatus,
    analyze_purchases,
    resolve_user_status,
)
from domain.lifetime import (
    LIFETIME_CURRENCY,
    RESERVATION_TTL,
    TIER_PRICING,
    LifetimeTier,
    PurchaseStatus,
    price_in_minor_units,
)
from domain.time import utc_now
from repositories.purchase_repository import (
    insert_pending_purchase,
    list_purchases,
    release_reservation,
    update_purchase,
)
from repositories.tier_limit_repository import list_tier_limits
from repositories.user_repository import get_user_profile
from services.errors import (
    AlreadyOwnsAccess,
    BillingError,
    MisconfiguredTier,
    PersistenceFailure,
    ProviderSessionCreationFailed,
    ReservationInProgress,
    SoldOut,
)
from services.stripe_gateway import (
    create_lifetime_checkout_session,
    lifetime_product_id,
    resolve_active_price_id,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LifetimeCheckoutResult:
    """
    Outcome of a successful checkout initiation.

    checkout_url: Stripe-hosted checkout page the caller is redirected to
    """
    purchase_id: str
    tier: LifetimeTier
    amount_cents: int
    currency: str
    reserved_until: datetime
    session_id: str
    checkout_url: str


def load_allocation(now: datetime) -> AllocationAnalysis:
    """
    Read purchase and tier-limit rows and run the allocation engine.

    Raises:
        PersistenceFailure: if either table cannot be read
    """
    try:
        purchases = list_purchases([PurchaseStatus.PENDING, PurchaseStatus.PAID])
        tier_limits = list_tier_limits()
    except RuntimeError as e:
        logger.error(f"Failed to load lifetime allocation data: {str(e)}")
        raise PersistenceFailure()

    return analyze_purchases(purchases, tier_limits, now)


def get_lifetime_overview(
    user_id: Optional[str],
    now: Optional[datetime] = None,
) -> Tuple[Availability, UserStatus]:
    """Current availability plus the given user's status (NONE when anonymous)."""

    now = now or utc_now()
    analysis = load_allocation(now)
    return analysis.availability, resolve_user_status(analysis.active_purchases, user_id, now)


def _release_quietly(purchase_id: str) -> None:
    try:
        release_reservation(purchase_id)
        logger.info(f"Released lifetime reservation {purchase_id} after checkout failure")
    except Exception:
        # The reservation lapses on its own once reserved_until passes.
        logger.exception(f"Failed to release lifetime slot {purchase_id} after checkout error")


def start_lifetime_checkout(user_id: str, now: Optional[datetime] = None) -> LifetimeCheckoutResult:
    """
    Reserve a lifetime slot for `user_id` and open a Stripe checkout for it.

    Process:
    1. Reject users whose profile already records a lifetime tier
    2. Compute availability and the user's own status from purchase rows
    3. Reject users who already paid or hold an active reservation
    4. Reject when the offer is closed or the open tier has no slots left
    5. Resolve the Stripe price for the open tier
    6. Insert a `pending` reservation valid for 15 minutes
    7. Create the Stripe checkout session (reservation id in metadata)
    8. Attach the session references to the reservation
    If step 7 fails the reservation is released (best effort).

    Raises:
        BillingError subclass describing why checkout cannot start
    """
    now = now or utc_now()

    # 1. Profile
    try:
        profile = get_user_profile(user_id)
    except RuntimeError as e:
        logger.error(f"Failed to load user profile for lifetime checkout: {str(e)}")
        raise PersistenceFailure("Unable to load your account details.")

    if profile is None:
        logger.error(f"No user profile found for lifetime checkout (user {user_id})")
        raise PersistenceFailure("Unable to load your account details.")

    if profile.has_lifetime_access:
        logger.info(f"Lifetime checkout rejected: user {user_id} already has tier {profile.lifetime_tier.value}")
        raise AlreadyOwnsAccess()

    # 2-3. Availability and user status
    analysis = load_allocation(now)
    availability = analysis.availability
    user_status = resolve_user_status(analysis.active_purchases, user_id, now)

    if user_status.state == UserPurchaseState.PAID:
        logger.info(f"Lifetime checkout rejected: user {user_id} already paid")
        raise AlreadyOwnsAccess()

    if user_status.state == UserPurchaseState.PENDING:
        logger.info(f"Lifetime checkout rejected: user {user_id} has a reservation in progress")
        raise ReservationInProgress()

    # 4. Capacity
    tier = availability.active_tier
    if tier is None or availability.remaining_in_tier <= 0:
        logger.info(f"Lifetime checkout rejected: sold out ({availability.total_active} active)")
        raise SoldOut()

    # 5. Pricing
    product_id = lifetime_product_id(tier)
    if not product_id:
        logger.error(f'Stripe product not configured for tier "{tier.value}".')
        raise MisconfiguredTier()

    price = TIER_PRICING.get(tier)
    if price is None:
        logger.error(f'Lifetime price missing for tier "{tier.value}".')
        raise MisconfiguredTier("Lifetime pricing is not configured for this tier.")

    price_id = resolve_active_price_id(product_id)
    if not price_id:
        raise MisconfiguredTier("Unable to resolve Stripe price for this tier.")

    # 6. Reserve
    reserved_until = now + RESERVATION_TTL
    amount_cents = price_in_minor_units(price)

    try:
        reservation = insert_pending_purchase(
            user_id=user_id,
            email=profile.email,
            tier=tier,
            amount_cents=amount_cents,
            reserved_until=reserved_until,
            currency=LIFETIME_CURRENCY,
            metadata={"source": "checkout"},
        )
    except RuntimeError as e:
        logger.error(f"Failed to reserve lifetime slot: {str(e)}")
        raise PersistenceFailure("Unable to reserve a lifetime slot right now.")

    # 7. Checkout session
    try:
        session = create_lifetime_checkout_session(
            price_id=price_id,
            tier=tier,
            user_id=user_id,
            purchase_id=reservation.purchase_id,
            customer_id=profile.stripe_customer_id,
            customer_email=profile.email,
        )
        if not session.url:
            raise ProviderSessionCreationFailed()
    except BillingError:
        logger.error(f"Stripe did not return a checkout URL for reservation {reservation.purchase_id}")
        _release_quietly(reservation.purchase_id)
        raise
    except (stripe.StripeError, RuntimeError) as e:
        logger.error(f"Lifetime checkout session error: {str(e)}")
        _release_quietly(reservation.purchase_id)
        raise ProviderSessionCreationFailed()
    except Exception:
        logger.exception("Unexpected lifetime checkout session error")
        _release_quietly(reservation.purchase_id)
        raise

    # 8. Link the session to the reservation
    session_refs = {"stripe_session_id": session.session_id}
    if session.payment_intent_id:
        session_refs["stripe_payment_intent_id"] = session.payment_intent_id

    try:
        update_purchase(reservation.purchase_id, session_refs)
    except RuntimeError as e:
        # The webhook still finds the row through the purchase id in metadata.
        logger.error(f"Failed to update lifetime purchase with Stripe session data: {str(e)}")

    logger.info(
        f"Reserved lifetime slot {reservation.purchase_id} in tier {tier.value} "
        f"for user {user_id} until {reserved_until.isoformat()}"
    )

    return LifetimeCheckoutResult(
        purchase_id=reservation.purchase_id,
        tier=tier,
        amount_cents=amount_cents,
        currency=LIFETIME_CURRENCY,
        reserved_until=reserved_until,
        session_id=session.session_id,
        checkout_url=session.url,
    )


__all__ = [
    "LifetimeCheckoutResult",
    "load_allocation",
    "get_lifetime_overview",
    "start_lifetime_checkout",
]
