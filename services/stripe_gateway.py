"""
Stripe gateway.

Thin wrapper over the Stripe API for everything billing needs: product/price
resolution, lifetime and subscription checkout sessions, customers, the
billing portal, and webhook signature verification.
Services depend on these functions rather than on the `stripe` module so the
provider can be faked in tests.

Environment variables:
- STRIPE_SECRET_KEY: API key used for outbound calls
- STRIPE_WEBHOOK_SECRET: shared secret for verifying webhook payloads
- STRIPE_PRODUCT_ID_EARLY_SUPPORTER_LIFETIME / _EARLY_BIRD_LIFETIME / _FINAL_WAVE_LIFETIME
- STRIPE_PRODUCT_ID_PRO / STRIPE_PRODUCT_ID_BUSINESS
- APP_URL: base URL for checkout redirects
- STRIPE_CHECKOUT_SUCCESS_URL / STRIPE_CHECKOUT_CANCEL_URL / STRIPE_PORTAL_RETURN_URL:
  optional overrides for subscription checkout and billing portal redirects
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

import stripe
from dotenv import load_dotenv

from domain.entitlements import BUSINESS, PRO
from domain.lifetime import LifetimeTier
from services.errors import InvalidSignature, WebhookMisconfigured

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

logger = logging.getLogger(__name__)

_LIFETIME_PRODUCT_ENV: Dict[LifetimeTier, str] = {
    LifetimeTier.EARLY: "STRIPE_PRODUCT_ID_EARLY_SUPPORTER_LIFETIME",
    LifetimeTier.MID: "STRIPE_PRODUCT_ID_EARLY_BIRD_LIFETIME",
    LifetimeTier.FINAL: "STRIPE_PRODUCT_ID_FINAL_WAVE_LIFETIME",
}

_SUBSCRIPTION_PRODUCT_ENV: Dict[str, str] = {
    PRO: "STRIPE_PRODUCT_ID_PRO",
    BUSINESS: "STRIPE_PRODUCT_ID_BUSINESS",
}

_SUBSCRIPTION_TRIAL_DAYS: Dict[str, int] = {
    PRO: 3,
}

_DEFAULT_APP_URL = "http://localhost:3000"


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    """The parts of a Stripe checkout session billing cares about."""
    session_id: str
    url: Optional[str]
    payment_intent_id: Optional[str]


def _configure() -> bool:
    secret_key = os.getenv("STRIPE_SECRET_KEY")
    if not secret_key:
        logger.error("Stripe secret key is not configured; Stripe API calls will fail.")
        return False
    stripe.api_key = secret_key
    return True


def app_url() -> str:
    return (os.getenv("APP_URL") or _DEFAULT_APP_URL).rstrip("/")


def lifetime_checkout_urls(tier: LifetimeTier) -> tuple[str, str]:
    """Success and cancel URLs for a lifetime checkout in `tier`."""

    base = f"{app_url()}/get-lifetime-access"
    success = urlencode({"checkout": "success", "tier": tier.value})
    cancel = urlencode({"checkout": "cancelled", "tier": tier.value})
    return f"{base}?{success}", f"{base}?{cancel}"


def lifetime_product_id(tier: LifetimeTier) -> Optional[str]:
    env_name = _LIFETIME_PRODUCT_ENV.get(tier)
    if env_name is None:
        return None
    return os.getenv(env_name) or None


def subscription_tier_for_product(product_id: Optional[str]) -> Optional[str]:
    """Map a recurring-subscription product id to `pro`/`business`."""

    if not product_id:
        return None
    for tier in _SUBSCRIPTION_PRODUCT_ENV:
        if product_id == subscription_product_id(tier):
            return tier
    return None


def ref_id(value: Any) -> Optional[str]:
    """Stripe expandable fields arrive as an id string, a dict, or an object with `.id`."""

    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return value.get("id")
    return getattr(value, "id", None)


def resolve_active_price_id(product_id: str) -> Optional[str]:
    """
    Resolve the price to charge for a product.

    Uses the product's first active price, falling back to its default price.

    Returns:
        Price id, or None if Stripe is unconfigured or no price exists
    """
    if not _configure():
        return None

    try:
        prices = stripe.Price.list(product=product_id, active=True, limit=1)
        if prices.data:
            return prices.data[0].id

        product = stripe.Product.retrieve(product_id)
        price_id = ref_id(getattr(product, "default_price", None))
        if not price_id:
            logger.error(f"No active Stripe price found for product {product_id}")
        return price_id

    except stripe.StripeError as e:
        logger.error(f"Stripe API error resolving price for product {product_id}: {str(e)}")
        return None


def create_lifetime_checkout_session(
    *,
    price_id: str,
    tier: LifetimeTier,
    user_id: str,
    purchase_id: str,
    customer_id: Optional[str],
    customer_email: Optional[str],
) -> CheckoutSession:
    """
    Create a one-time-payment checkout session for a lifetime reservation.

    The reservation id travels in session metadata so the webhook can settle
    the exact record without relying on user or email matching.

    Raises:
        stripe.StripeError: on any provider failure
        RuntimeError: if Stripe is not configured
    """
    if not _configure():
        raise RuntimeError("Stripe is not configured on the server.")

    success_url, cancel_url = lifetime_checkout_urls(tier)

    params: Dict[str, Any] = {
        "mode": "payment",
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": {
            "lifetimeTier": tier.value,
            "supabaseUserId": user_id,
            "lifetimePurchaseId": purchase_id,
        },
        "client_reference_id": user_id,
    }

    if customer_id:
        params["customer"] = customer_id
    else:
        params["customer_creation"] = "always"
        if customer_email:
            params["customer_email"] = customer_email

    session = stripe.checkout.Session.create(**params)

    return CheckoutSession(
        session_id=session.id,
        url=getattr(session, "url", None),
        payment_intent_id=ref_id(getattr(session, "payment_intent", None)),
    )


def subscription_product_id(tier: str) -> Optional[str]:
    env_name = _SUBSCRIPTION_PRODUCT_ENV.get(tier)
    if env_name is None:
        return None
    return os.getenv(env_name) or None


def subscription_checkout_urls() -> tuple[str, str]:
    """Success and cancel URLs for a subscription checkout."""

    settings_url = f"{app_url()}/dashboard/settings"
    success = os.getenv("STRIPE_CHECKOUT_SUCCESS_URL") or f"{settings_url}?checkout=success"
    cancel = os.getenv("STRIPE_CHECKOUT_CANCEL_URL") or f"{settings_url}?checkout=cancelled"
    return success, cancel


def portal_return_url() -> str:
    return os.getenv("STRIPE_PORTAL_RETURN_URL") or f"{app_url()}/dashboard/settings"


def create_customer(
    *,
    user_id: str,
    email: Optional[str],
    name: Optional[str],
    company_name: Optional[str] = None,
) -> str:
    """
    Create a Stripe customer tagged with the Supabase user id.

    Raises:
        stripe.StripeError: on any provider failure
        RuntimeError: if Stripe is not configured
    """
    if not _configure():
        raise RuntimeError("Stripe is not configured on the server.")

    metadata = {"supabaseUserId": user_id}
    if company_name:
        metadata["companyName"] = company_name

    params: Dict[str, Any] = {"metadata": metadata}
    if email:
        params["email"] = email
    if name:
        params["name"] = name

    customer = stripe.Customer.create(**params)
    logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
    return customer.id


def tag_customer(
    customer_id: str,
    *,
    user_id: str,
    name: Optional[str],
    current_tier: Optional[str],
) -> None:
    """Refresh the Supabase user reference on an existing Stripe customer."""

    if not _configure():
        raise RuntimeError("Stripe is not configured on the server.")

    metadata = {"supabaseUserId": user_id}
    if current_tier:
        metadata["currentTier"] = current_tier

    params: Dict[str, Any] = {"metadata": metadata}
    if name:
        params["name"] = name

    stripe.Customer.modify(customer_id, **params)


def create_subscription_checkout_session(
    *,
    price_id: str,
    tier: str,
    user_id: str,
    customer_id: str,
) -> CheckoutSession:
    """
    Create a recurring checkout session for the `pro` or `business` plan.

    Raises:
        stripe.StripeError: on any provider failure
        RuntimeError: if Stripe is not configured
    """
    if not _configure():
        raise RuntimeError("Stripe is not configured on the server.")

    success_url, cancel_url = subscription_checkout_urls()
    metadata = {"supabaseUserId": user_id, "subscriptionTier": tier}

    subscription_data: Dict[str, Any] = {"metadata": metadata}
    trial_days = _SUBSCRIPTION_TRIAL_DAYS.get(tier)
    if trial_days:
        subscription_data["trial_period_days"] = trial_days

    session = stripe.checkout.Session.create(
        mode="subscription",
        customer=customer_id,
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=success_url,
        cancel_url=cancel_url,
        allow_promotion_codes=True,
        client_reference_id=user_id,
        metadata=metadata,
        subscription_data=subscription_data,
    )

    return CheckoutSession(
        session_id=session.id,
        url=getattr(session, "url", None),
        payment_intent_id=None,
    )


def create_portal_session(customer_id: str) -> Optional[str]:
    """
    Create a Stripe customer portal session.

    Returns:
        Portal URL

    Raises:
        stripe.StripeError: on any provider failure
        RuntimeError: if Stripe is not configured
    """
    if not _configure():
        raise RuntimeError("Stripe is not configured on the server.")

    session = stripe.billing_portal.Session.create(
        customer=customer_id,
        return_url=portal_return_url(),
    )
    return getattr(session, "url", None)


def verify_webhook_payload(payload: bytes, sig_header: Optional[str]) -> Mapping[str, Any]:
    """
    Verify a webhook payload's signature and decode it.

    Returns:
        The event as a plain dict

    Raises:
        WebhookMisconfigured: if no webhook secret is configured
        InvalidSignature: if the header is missing, the signature does not
            match, the signed timestamp is older than the tolerance, or the
            payload is not JSON
    """
    webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET")
    if not webhook_secret:
        logger.error("Stripe webhook invoked without STRIPE_WEBHOOK_SECRET configured.")
        raise WebhookMisconfigured()

    if not sig_header:
        raise InvalidSignature("Missing Stripe-Signature header.")

    try:
        body = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            body,
            sig_header,
            webhook_secret,
            tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
        )
        event = json.loads(body)
    except (stripe.SignatureVerificationError, UnicodeDecodeError, ValueError) as e:
        logger.error(f"Stripe webhook signature verification failed: {str(e)}")
        raise InvalidSignature()

    if not isinstance(event, dict):
        raise InvalidSignature("Invalid payload.")
    return event


__all__ = [
    "CheckoutSession",
    "app_url",
    "lifetime_checkout_urls",
    "lifetime_product_id",
    "ref_id",
    "subscription_product_id",
    "subscription_tier_for_product",
    "subscription_checkout_urls",
    "portal_return_url",
    "resolve_active_price_id",
    "create_lifetime_checkout_session",
    "create_customer",
    "tag_customer",
    "create_subscription_checkout_session",
    "create_portal_session",
    "verify_webhook_payload",
]
