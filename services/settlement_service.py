"""
Webhook settlement service.

Applies Stripe checkout lifecycle events to lifetime purchase records and
user profiles:

- checkout.session.completed (payment mode, paid)  -> purchase `paid`,
  user's lifetime tier upgraded (never downgraded)
- checkout.session.expired                         -> purchase `expired`
- checkout.session.async_payment_failed            -> purchase `cancelled`
- customer.subscription.*                          -> subscription fields
- anything else                                    -> logged no-op

Each sub-operation logs and swallows its own datastore errors, so a failure
to update the user's tier never prevents the purchase from being marked
paid. Re-delivered events are safe: state assignment and the rank comparison
are idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from domain.lifetime import LifetimeTier, PurchaseStatus, is_tier_upgrade
from repositories.purchase_repository import update_purchase, update_purchase_by_session
from repositories.user_repository import (
    find_user_by_email,
    get_user_profile,
    link_stripe_customer,
    set_lifetime_tier,
)
from services.stripe_gateway import ref_id
from services.subscription_service import SUBSCRIPTION_EVENTS, sync_subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SettlementResult:
    """
    What handling one event did.

    handled: False for event types / sessions that are not ours to settle
    purchase_updated: the purchase row update succeeded
    user_id: user whose profile was located (None if unresolvable)
    tier_upgraded: the user's stored lifetime tier was raised
    """
    event_type: str
    handled: bool
    purchase_updated: bool = False
    user_id: Optional[str] = None
    tier_upgraded: bool = False


def _metadata(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("metadata") or {}


def _session_user_id(session: Mapping[str, Any]) -> Optional[str]:
    reference = session.get("client_reference_id")
    if isinstance(reference, str) and reference:
        return reference
    return _metadata(session).get("supabaseUserId") or None


def _session_email(session: Mapping[str, Any]) -> Optional[str]:
    details = session.get("customer_details") or {}
    email = details.get("email") or session.get("customer_email")
    return email.strip().lower() if email else None


def _apply_purchase_update(
    session: Mapping[str, Any],
    updates: Dict[str, Any],
    only_if_status: Optional[PurchaseStatus] = None,
) -> bool:
    """
    Update the purchase a session belongs to.

    Matched by the reservation id carried in metadata, falling back to the
    Stripe session id.
    """
    purchase_id = _metadata(session).get("lifetimePurchaseId")
    session_id = session.get("id")

    try:
        if purchase_id:
            update_purchase(purchase_id, updates, only_if_status=only_if_status)
        elif session_id:
            logger.warning(
                f"Lifetime checkout session {session_id} missing purchase metadata. "
                "Falling back to session lookup."
            )
            update_purchase_by_session(session_id, updates, only_if_status=only_if_status)
        else:
            logger.error("Checkout session carries neither purchase metadata nor an id")
            return False
    except RuntimeError as e:
        logger.error(f"Failed to update lifetime purchase to {updates.get('status')}: {str(e)}")
        return False

    return True


def link_customer(user_id: str, customer_id: str) -> None:
    try:
        link_stripe_customer(user_id, customer_id)
    except RuntimeError as e:
        logger.error(f"Failed to link Stripe customer to user: {str(e)}")


def settle_paid_session(session: Mapping[str, Any]) -> SettlementResult:
    """Mark a paid lifetime checkout's purchase `paid` and upgrade the buyer's tier."""

    event_type = "checkout.session.completed"

    if session.get("mode") != "payment" or session.get("payment_status") != "paid":
        return SettlementResult(event_type=event_type, handled=False)

    tier = LifetimeTier.parse(_metadata(session).get("lifetimeTier"))
    if tier is None:
        return SettlementResult(event_type=event_type, handled=False)

    logger.info(f"Processing lifetime checkout session: {session.get('id')}")

    user_id = _session_user_id(session)
    email = _session_email(session)
    payment_intent_id = ref_id(session.get("payment_intent"))

    updates: Dict[str, Any] = {
        "status": PurchaseStatus.PAID.value,
        "reserved_expires_at": None,
        "stripe_session_id": session.get("id"),
    }
    if payment_intent_id:
        updates["stripe_payment_intent_id"] = payment_intent_id
    if user_id:
        updates["user_id"] = user_id
    if email:
        updates["email"] = email

    purchase_updated = _apply_purchase_update(session, updates)

    if not user_id and not email:
        logger.error(f"Lifetime checkout completed without user identifiers. Session: {session.get('id')}")
        return SettlementResult(event_type=event_type, handled=True, purchase_updated=purchase_updated)

    try:
        profile = get_user_profile(user_id) if user_id else find_user_by_email(email)
    except RuntimeError as e:
        logger.error(f"Failed to locate user for lifetime checkout: {str(e)}")
        return SettlementResult(event_type=event_type, handled=True, purchase_updated=purchase_updated)

    if profile is None:
        logger.warning(
            f"Lifetime checkout completed for {user_id or email}, "
            "but no matching user record was found."
        )
        return SettlementResult(event_type=event_type, handled=True, purchase_updated=purchase_updated)

    if not is_tier_upgrade(profile.lifetime_tier, tier):
        return SettlementResult(
            event_type=event_type,
            handled=True,
            purchase_updated=purchase_updated,
            user_id=profile.user_id,
        )

    try:
        set_lifetime_tier(profile.user_id, tier)
    except RuntimeError as e:
        logger.error(f"Failed to persist lifetime tier on user: {str(e)}")
        return SettlementResult(
            event_type=event_type,
            handled=True,
            purchase_updated=purchase_updated,
            user_id=profile.user_id,
        )

    logger.info(f"Lifetime tier {tier.value} recorded for user {profile.user_id}")
    return SettlementResult(
        event_type=event_type,
        handled=True,
        purchase_updated=purchase_updated,
        user_id=profile.user_id,
        tier_upgraded=True,
    )


def settle_closed_session(
    session: Mapping[str, Any],
    status: PurchaseStatus,
    event_type: str,
) -> SettlementResult:
    """Release a reservation whose checkout expired or whose payment failed."""

    updates: Dict[str, Any] = {
        "status": status.value,
        "reserved_expires_at": None,
    }
    if session.get("id"):
        updates["stripe_session_id"] = session.get("id")
    payment_intent_id = ref_id(session.get("payment_intent"))
    if payment_intent_id:
        updates["stripe_payment_intent_id"] = payment_intent_id

    # A settled (paid) purchase is never reopened by a late close event.
    purchase_updated = _apply_purchase_update(session, updates, only_if_status=PurchaseStatus.PENDING)
    return SettlementResult(event_type=event_type, handled=True, purchase_updated=purchase_updated)


def handle_event(event: Mapping[str, Any]) -> SettlementResult:
    """
    Dispatch a verified Stripe event.

    Raises only on unexpected errors; the caller turns that into a 500 so
    Stripe retries delivery.
    """
    event_type = str(event.get("type") or "")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == "checkout.session.completed":
        logger.info("Processing checkout.session.completed event")
        user_id = _session_user_id(obj)
        customer_id = ref_id(obj.get("customer"))
        if user_id and customer_id:
            link_customer(user_id, customer_id)
        return settle_paid_session(obj)

    if event_type == "checkout.session.expired":
        return settle_closed_session(obj, PurchaseStatus.EXPIRED, event_type)

    if event_type == "checkout.session.async_payment_failed":
        return settle_closed_session(obj, PurchaseStatus.CANCELLED, event_type)

    if event_type in SUBSCRIPTION_EVENTS:
        sync_subscription(obj, event_type)
        return SettlementResult(event_type=event_type, handled=True)

    logger.debug(f"Unhandled Stripe webhook event: {event_type}")
    return SettlementResult(event_type=event_type, handled=False)


__all__ = [
    "SettlementResult",
    "link_customer",
    "settle_paid_session",
    "settle_closed_session",
    "handle_event",
]
