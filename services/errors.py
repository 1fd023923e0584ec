"""
Billing error taxonomy.

Every error carries a stable `code`, the HTTP status it maps to, and a
user-facing `message`. Messages never include internal details.
"""

from __future__ import annotations

from typing import Optional


class BillingError(Exception):
    """Base class for errors surfaced to API callers."""

    code: str = "billing_error"
    status_code: int = 500
    default_message: str = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthenticated(BillingError):
    code = "not_authenticated"
    status_code = 401
    default_message = "Please sign in to purchase lifetime access."


class AlreadyOwnsAccess(BillingError):
    code = "already_owns_access"
    status_code = 409
    default_message = "Lifetime access is already active on this account."


class ReservationInProgress(BillingError):
    code = "reservation_in_progress"
    status_code = 409
    default_message = (
        "You already have a lifetime checkout in progress. "
        "Please finish the existing checkout to keep your reservation."
    )


class SoldOut(BillingError):
    code = "sold_out"
    status_code = 409
    default_message = "The lifetime offer is sold out."


class MisconfiguredTier(BillingError):
    code = "misconfigured_tier"
    status_code = 500
    default_message = "Stripe is not configured for this lifetime tier."


class ProviderSessionCreationFailed(BillingError):
    code = "provider_session_creation_failed"
    status_code = 502
    default_message = "Unable to create lifetime checkout session."


class PersistenceFailure(BillingError):
    code = "persistence_failure"
    status_code = 500
    default_message = "Unable to verify lifetime availability."


class InvalidSignature(BillingError):
    code = "invalid_signature"
    status_code = 400
    default_message = "Invalid signature."


class WebhookMisconfigured(BillingError):
    code = "webhook_misconfigured"
    status_code = 500
    default_message = "Stripe webhook misconfigured."


class UnsupportedSubscriptionTier(BillingError):
    code = "unsupported_subscription_tier"
    status_code = 400
    default_message = "Unsupported subscription tier requested."


class SubscriptionAlreadyActive(BillingError):
    code = "subscription_already_active"
    status_code = 409
    default_message = "There is already an active subscription. Manage changes via the billing portal."


class NoBillingCustomer(BillingError):
    code = "no_billing_customer"
    status_code = 400
    default_message = "No Stripe customer found. Start a subscription before accessing the billing portal."


# Expected control flow; logged at INFO, never at ERROR.
BUSINESS_RULE_ERRORS = (
    NotAuthenticated,
    AlreadyOwnsAccess,
    ReservationInProgress,
    SoldOut,
    UnsupportedSubscriptionTier,
    SubscriptionAlreadyActive,
    NoBillingCustomer,
)


__all__ = [
    "BillingError",
    "NotAuthenticated",
    "AlreadyOwnsAccess",
    "ReservationInProgress",
    "SoldOut",
    "MisconfiguredTier",
    "ProviderSessionCreationFailed",
    "PersistenceFailure",
    "InvalidSignature",
    "WebhookMisconfigured",
    "UnsupportedSubscriptionTier",
    "SubscriptionAlreadyActive",
    "NoBillingCustomer",
    "BUSINESS_RULE_ERRORS",
]
