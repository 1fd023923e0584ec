"""
Lifetime purchase repository (persistence).

This module provides *only* persistence operations for PurchaseRecord rows.
It does not decide eligibility or capacity; that lives in the allocation
engine and the checkout/settlement services.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional
from uuid import uuid4

from domain.lifetime import LIFETIME_CURRENCY, LifetimeTier, PurchaseStatus
from domain.purchase import PurchaseRecord
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.client import execute, get_supabase

# Supabase table name for lifetime purchase records.
_PURCHASES_TABLE: str = "lifetime_purchases"

_PURCHASE_COLUMNS = (
    "id,user_id,email,tier,status,reserved_expires_at,created_at,"
    "stripe_session_id,stripe_payment_intent_id,amount_cents,currency"
)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _row_to_purchase(row: Mapping[str, Any]) -> Optional[PurchaseRecord]:
    """Convert a Supabase row into a PurchaseRecord; rows with an unknown status are skipped."""

    try:
        status = PurchaseStatus(str(row.get("status")))
    except ValueError:
        return None

    return PurchaseRecord(
        purchase_id=str(row["id"]),
        user_id=str(row["user_id"]) if row.get("user_id") else None,
        email=row.get("email"),
        tier=LifetimeTier.parse(row.get("tier")),
        status=status,
        reserved_until=parse_utc_datetime(row.get("reserved_expires_at")),
        created_at=parse_utc_datetime(row.get("created_at")),
        stripe_session_id=row.get("stripe_session_id"),
        stripe_payment_intent_id=row.get("stripe_payment_intent_id"),
        amount_cents=_optional_int(row.get("amount_cents")),
        currency=row.get("currency"),
    )


def _rows(response: Any) -> List[Mapping[str, Any]]:
    return getattr(response, "data", None) or []


def list_purchases(statuses: Iterable[PurchaseStatus]) -> List[PurchaseRecord]:
    """
    Retrieve every purchase record whose status is in `statuses`.

    Returns:
        List[PurchaseRecord] (possibly empty)
    """

    response = execute(
        get_supabase()
        .table(_PURCHASES_TABLE)
        .select(_PURCHASE_COLUMNS)
        .in_("status", [s.value for s in statuses]),
        "list lifetime purchases",
    )

    records = (_row_to_purchase(row) for row in _rows(response))
    return [r for r in records if r is not None]


def insert_pending_purchase(
    user_id: str,
    email: Optional[str],
    tier: LifetimeTier,
    amount_cents: int,
    reserved_until: datetime,
    currency: str = LIFETIME_CURRENCY,
    metadata: Optional[Dict[str, Any]] = None,
) -> PurchaseRecord:
    """
    Insert a new `pending` reservation.

    Args:
        user_id: Purchasing user
        email: Snapshot of the purchaser's email (fallback lookup key)
        tier: Tier the slot is reserved in
        amount_cents: Price snapshot in minor currency units
        reserved_until: UTC timestamp after which the reservation lapses
        currency: ISO currency code
        metadata: Free-form JSON stored alongside the row

    Returns:
        PurchaseRecord for the inserted row
    """

    purchase_id = str(uuid4())
    now = datetime.now(timezone.utc)

    payload: dict[str, Any] = {
        "id": purchase_id,
        "user_id": user_id,
        "email": email,
        "tier": tier.value,
        "status": PurchaseStatus.PENDING.value,
        "amount_cents": amount_cents,
        "currency": currency,
        "reserved_expires_at": to_iso_utc(reserved_until, name="reserved_until"),
        "metadata": metadata or {},
        "created_at": now.isoformat(),
    }

    execute(get_supabase().table(_PURCHASES_TABLE).insert(payload), "reserve lifetime slot")

    return PurchaseRecord(
        purchase_id=purchase_id,
        user_id=user_id,
        email=email,
        tier=tier,
        status=PurchaseStatus.PENDING,
        reserved_until=reserved_until,
        created_at=now,
        amount_cents=amount_cents,
        currency=currency,
    )


def _update_where(
    column: str,
    value: str,
    payload: Mapping[str, Any],
    only_if_status: Optional[PurchaseStatus],
) -> None:
    body = dict(payload)
    body["updated_at"] = datetime.now(timezone.utc).isoformat()

    query = get_supabase().table(_PURCHASES_TABLE).update(body).eq(column, value)
    if only_if_status is not None:
        query = query.eq("status", only_if_status.value)

    execute(query, "update lifetime purchase")


def update_purchase(
    purchase_id: str,
    payload: Mapping[str, Any],
    only_if_status: Optional[PurchaseStatus] = None,
) -> None:
    """
    Apply `payload` to the purchase with the given id.

    When `only_if_status` is given, rows in any other status are left untouched.
    """

    _update_where("id", purchase_id, payload, only_if_status)


def update_purchase_by_session(
    session_id: str,
    payload: Mapping[str, Any],
    only_if_status: Optional[PurchaseStatus] = None,
) -> None:
    """Apply `payload` to the purchase linked to a Stripe checkout session."""

    _update_where("stripe_session_id", session_id, payload, only_if_status)


def release_reservation(purchase_id: str) -> None:
    """Cancel a reservation so it stops holding a slot."""

    update_purchase(
        purchase_id,
        {"status": PurchaseStatus.CANCELLED.value, "reserved_expires_at": None},
    )


def list_lapsed_reservations(now: datetime) -> List[PurchaseRecord]:
    """Pending records whose reservation window ended before `now`."""

    response = execute(
        get_supabase()
        .table(_PURCHASES_TABLE)
        .select(_PURCHASE_COLUMNS)
        .eq("status", PurchaseStatus.PENDING.value)
        .lt("reserved_expires_at", to_iso_utc(now, name="now")),
        "list lapsed reservations",
    )

    records = (_row_to_purchase(row) for row in _rows(response))
    return [r for r in records if r is not None]


def expire_reservations(purchase_ids: List[str]) -> None:
    """Mark the given pending records as expired."""

    if not purchase_ids:
        return

    execute(
        get_supabase()
        .table(_PURCHASES_TABLE)
        .update({
            "status": PurchaseStatus.EXPIRED.value,
            "reserved_expires_at": None,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        })
        .in_("id", purchase_ids)
        .eq("status", PurchaseStatus.PENDING.value),
        "expire lapsed reservations",
    )


__all__ = [
    "list_purchases",
    "insert_pending_purchase",
    "update_purchase",
    "update_purchase_by_session",
    "release_reservation",
    "list_lapsed_reservations",
    "expire_reservations",
]
