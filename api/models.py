"""
API Request and Response Models.

Pydantic models for serializing API responses.
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel

from domain.allocation import Availability, UserStatus
from domain.entitlements import SubscriptionEntitlements
from domain.lifetime import PURCHASABLE_TIERS, TIER_DISPLAY_NAMES, TIER_PRICING


# ============================================================================
# Lifetime Models
# ============================================================================

class TierPriceResponse(BaseModel):
    """Display price of a single lifetime tier."""
    tier: str
    name: str
    price: str  # major units, e.g. "149"
    currency: str


class AvailabilityResponse(BaseModel):
    """Global lifetime capacity snapshot."""
    tier: str  # "early", "mid", "final" or "closed"
    active_tier: Optional[str] = None
    tier_limits: Dict[str, int]
    effective_max_slots: int
    reserved_slots: int
    available_slots: int
    total_active: int
    total_paid: int
    remaining_in_tier: int
    claimed_percentage: int

    class Config:
        json_schema_extra = {
            "example": {
                "tier": "mid",
                "active_tier": "mid",
                "tier_limits": {"early": 50, "mid": 125, "final": 150},
                "effective_max_slots": 150,
                "reserved_slots": 50,
                "available_slots": 100,
                "total_active": 50,
                "total_paid": 50,
                "remaining_in_tier": 75,
                "claimed_percentage": 33
            }
        }

    @classmethod
    def from_domain(cls, availability: Availability) -> "AvailabilityResponse":
        return cls(
            tier=availability.tier.value,
            active_tier=availability.active_tier.value if availability.active_tier else None,
            tier_limits={tier.value: limit for tier, limit in availability.tier_limits.items()},
            effective_max_slots=availability.effective_max_slots,
            reserved_slots=availability.reserved_slots,
            available_slots=availability.available_slots,
            total_active=availability.total_active,
            total_paid=availability.total_paid,
            remaining_in_tier=availability.remaining_in_tier,
            claimed_percentage=availability.claimed_percentage,
        )


class UserStatusResponse(BaseModel):
    """The caller's own lifetime purchase state."""
    status: str  # "none", "pending" or "paid"
    tier: Optional[str] = None
    reservation_expires_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, status: UserStatus) -> "UserStatusResponse":
        return cls(
            status=status.state.value,
            tier=status.tier.value if status.tier else None,
            reservation_expires_at=status.reservation_expires_at,
        )


class LifetimeOverviewResponse(BaseModel):
    """Response for the lifetime availability endpoint."""
    availability: AvailabilityResponse
    prices: list[TierPriceResponse]
    user: Optional[UserStatusResponse] = None


def tier_prices(currency: str) -> list[TierPriceResponse]:
    return [
        TierPriceResponse(
            tier=tier.value,
            name=TIER_DISPLAY_NAMES[tier],
            price=str(TIER_PRICING[tier]),
            currency=currency,
        )
        for tier in PURCHASABLE_TIERS
    ]


# ============================================================================
# Account Models
# ============================================================================

class EntitlementsResponse(BaseModel):
    """Feature entitlements for the authenticated user."""
    tier: str
    status: Optional[str] = None
    max_monthly_change_orders: Optional[int] = None  # null means unlimited
    watermark_text: Optional[str] = None
    can_send_emails: bool
    has_lifetime_access: bool

    @classmethod
    def from_domain(cls, entitlements: SubscriptionEntitlements) -> "EntitlementsResponse":
        return cls(
            tier=entitlements.tier,
            status=entitlements.status,
            max_monthly_change_orders=entitlements.max_monthly_change_orders,
            watermark_text=entitlements.watermark_text,
            can_send_emails=entitlements.can_send_emails,
            has_lifetime_access=entitlements.has_lifetime_access,
        )


class SubscriptionCheckoutRequest(BaseModel):
    """Request to start a recurring subscription checkout."""
    tier: Optional[str] = None  # "pro" or "business"

    class Config:
        json_schema_extra = {
            "example": {
                "tier": "pro"
            }
        }


class RedirectUrlResponse(BaseModel):
    """Stripe-hosted page the client should navigate to."""
    url: str


# ============================================================================
# Error / Webhook Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Error body returned for every billing failure."""
    error: str
    code: str

    class Config:
        json_schema_extra = {
            "example": {
                "error": "The lifetime offer is sold out.",
                "code": "sold_out"
            }
        }


class WebhookAck(BaseModel):
    received: bool = True
