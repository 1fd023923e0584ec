"""
User repository for billing-related profile fields.

Reads and writes the lifetime tier cache, Stripe customer link, and
recurring-subscription fields on the `users` table.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from domain.lifetime import LifetimeTier
from domain.purchase import UserProfile
from repositories.client import execute, get_supabase

_USERS_TABLE: str = "users"

_PROFILE_COLUMNS = (
    "id,email,name,company_name,stripe_customer_id,lifetime_tier,"
    "subscription_tier,subscription_status,stripe_subscription_id"
)


def _row_to_profile(row: Mapping[str, Any]) -> UserProfile:
    return UserProfile(
        user_id=str(row["id"]),
        email=row.get("email"),
        name=row.get("name"),
        company_name=row.get("company_name"),
        stripe_customer_id=row.get("stripe_customer_id"),
        lifetime_tier=LifetimeTier.parse(row.get("lifetime_tier")),
        subscription_tier=row.get("subscription_tier"),
        subscription_status=row.get("subscription_status"),
        stripe_subscription_id=row.get("stripe_subscription_id"),
    )


def _first_profile(response: Any) -> Optional[UserProfile]:
    rows = getattr(response, "data", None) or []
    if not rows:
        return None
    return _row_to_profile(rows[0])


def get_user_profile(user_id: str) -> Optional[UserProfile]:
    """
    Get a user's billing profile by id.

    Returns:
        UserProfile or None if not found
    """
    response = execute(
        get_supabase()
        .table(_USERS_TABLE)
        .select(_PROFILE_COLUMNS)
        .eq("id", user_id)
        .limit(1),
        "fetch user profile",
    )
    return _first_profile(response)


def find_user_by_email(email: str) -> Optional[UserProfile]:
    """Look up a user by (already normalized) email address."""

    response = execute(
        get_supabase()
        .table(_USERS_TABLE)
        .select(_PROFILE_COLUMNS)
        .eq("email", email)
        .limit(1),
        "fetch user by email",
    )
    return _first_profile(response)


def update_user(user_id: str, payload: Mapping[str, Any]) -> None:
    execute(
        get_supabase()
        .table(_USERS_TABLE)
        .update(dict(payload))
        .eq("id", user_id),
        "update user",
    )


def update_user_by_customer(customer_id: str, payload: Mapping[str, Any]) -> None:
    """Update whichever user is linked to the given Stripe customer."""

    execute(
        get_supabase()
        .table(_USERS_TABLE)
        .update(dict(payload))
        .eq("stripe_customer_id", customer_id),
        "update user by customer",
    )


def set_lifetime_tier(user_id: str, tier: LifetimeTier) -> None:
    update_user(user_id, {"lifetime_tier": tier.value})


def link_stripe_customer(user_id: str, customer_id: str) -> None:
    update_user(user_id, {"stripe_customer_id": customer_id})


__all__ = [
    "get_user_profile",
    "find_user_by_email",
    "update_user",
    "update_user_by_customer",
    "set_lifetime_tier",
    "link_stripe_customer",
]
