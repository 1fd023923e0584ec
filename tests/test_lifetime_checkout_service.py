"""
Tests for `services/lifetime_checkout_service.py`.

Repository and Stripe-gateway calls are swapped for the in-memory fakes in
conftest, so these exercise the full reserve-then-pay flow without I/O.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
import stripe

from conftest import NOW, make_purchase
from domain.allocation import UserPurchaseState
from domain.lifetime import RESERVATION_TTL, LifetimeTier, PurchaseStatus
from services.errors import (
    AlreadyOwnsAccess,
    MisconfiguredTier,
    PersistenceFailure,
    ProviderSessionCreationFailed,
    ReservationInProgress,
    SoldOut,
)
from services.lifetime_checkout_service import get_lifetime_overview, start_lifetime_checkout

USER = "user-1"


@pytest.fixture
def buyer(store):
    return store.add_user(USER, email="buyer@example.com")


def _fill(store, count: int, tier: LifetimeTier = LifetimeTier.EARLY) -> None:
    for i in range(count):
        store.add_purchase(make_purchase(f"paid-{i}", tier=tier, user_id=f"other-{i}"))


def test_checkout_reserves_slot_and_returns_session(store, gateway, buyer) -> None:
    """First buyer gets an early-tier reservation for 15 minutes at 100 EUR."""

    result = start_lifetime_checkout(USER, now=NOW)

    assert result.tier == LifetimeTier.EARLY
    assert result.amount_cents == 10000
    assert result.currency == "eur"
    assert result.reserved_until == NOW + RESERVATION_TTL
    assert result.checkout_url == "https://checkout.stripe.test/session"

    reservation = store.purchases[result.purchase_id]
    assert reservation.status == PurchaseStatus.PENDING
    assert reservation.user_id == USER
    assert reservation.email == "buyer@example.com"
    assert reservation.stripe_session_id == result.session_id

    request = gateway.sessions[0]
    assert request["purchase_id"] == result.purchase_id
    assert request["price_id"] == "price_123"
    assert request["tier"] == LifetimeTier.EARLY
    assert request["customer_email"] == "buyer@example.com"


def test_checkout_uses_mid_tier_price_once_early_fills(store, gateway, buyer) -> None:
    _fill(store, 50)

    result = start_lifetime_checkout(USER, now=NOW)

    assert result.tier == LifetimeTier.MID
    assert result.amount_cents == 14900


def test_second_checkout_within_window_is_rejected(store, gateway, buyer) -> None:
    """A user with a live reservation cannot open another one."""

    start_lifetime_checkout(USER, now=NOW)

    with pytest.raises(ReservationInProgress):
        start_lifetime_checkout(USER, now=NOW + timedelta(minutes=5))

    pending = [p for p in store.purchases.values() if p.status == PurchaseStatus.PENDING]
    assert len(pending) == 1


def test_checkout_allowed_again_after_reservation_lapses(store, gateway, buyer) -> None:
    first = start_lifetime_checkout(USER, now=NOW)

    second = start_lifetime_checkout(USER, now=NOW + RESERVATION_TTL + timedelta(seconds=1))

    assert second.purchase_id != first.purchase_id


def test_overview_reports_pending_reservation(store, gateway, buyer) -> None:
    result = start_lifetime_checkout(USER, now=NOW)

    availability, status = get_lifetime_overview(USER, now=NOW + timedelta(minutes=1))

    assert availability.total_active == 1
    assert availability.remaining_in_tier == 49
    assert status.state == UserPurchaseState.PENDING
    assert status.reservation_expires_at == result.reserved_until


def test_overview_for_anonymous_user(store) -> None:
    _fill(store, 3)

    availability, status = get_lifetime_overview(None, now=NOW)

    assert availability.total_paid == 3
    assert status.state == UserPurchaseState.NONE


def test_profile_with_lifetime_tier_already_owns_access(store, gateway) -> None:
    store.add_user(USER, email="buyer@example.com", lifetime_tier=LifetimeTier.MID)

    with pytest.raises(AlreadyOwnsAccess):
        start_lifetime_checkout(USER, now=NOW)

    assert store.purchases == {}
    assert gateway.sessions == []


def test_paid_purchase_record_already_owns_access(store, gateway, buyer) -> None:
    store.add_purchase(make_purchase("mine", user_id=USER, created_at=NOW - timedelta(days=1)))

    with pytest.raises(AlreadyOwnsAccess):
        start_lifetime_checkout(USER, now=NOW)


def test_sold_out_when_all_slots_active(store, gateway, buyer) -> None:
    _fill(store, 150)

    with pytest.raises(SoldOut) as exc_info:
        start_lifetime_checkout(USER, now=NOW)

    assert exc_info.value.status_code == 409
    assert len(store.purchases) == 150


def test_unconfigured_product_is_misconfigured(store, gateway, buyer) -> None:
    gateway.product_ids[LifetimeTier.EARLY] = None

    with pytest.raises(MisconfiguredTier):
        start_lifetime_checkout(USER, now=NOW)

    assert store.purchases == {}


def test_unresolvable_price_is_misconfigured(store, gateway, buyer) -> None:
    gateway.price_id = None

    with pytest.raises(MisconfiguredTier):
        start_lifetime_checkout(USER, now=NOW)

    assert store.purchases == {}


def test_stripe_failure_releases_reservation(store, gateway, buyer) -> None:
    """Slot is cancelled when the checkout session cannot be created."""

    gateway.error = stripe.StripeError("card network unavailable")

    with pytest.raises(ProviderSessionCreationFailed):
        start_lifetime_checkout(USER, now=NOW)

    (reservation,) = store.purchases.values()
    assert reservation.status == PurchaseStatus.CANCELLED
    assert reservation.reserved_until is None

    # Released slot frees the user to try again.
    gateway.error = None
    assert start_lifetime_checkout(USER, now=NOW).tier == LifetimeTier.EARLY


def test_missing_checkout_url_releases_reservation(store, gateway, buyer) -> None:
    gateway.session_url = None

    with pytest.raises(ProviderSessionCreationFailed):
        start_lifetime_checkout(USER, now=NOW)

    (reservation,) = store.purchases.values()
    assert reservation.status == PurchaseStatus.CANCELLED


def test_failed_release_still_reports_provider_error(store, gateway, buyer) -> None:
    gateway.error = stripe.StripeError("boom")
    store.fail_on.add("release_reservation")

    with pytest.raises(ProviderSessionCreationFailed):
        start_lifetime_checkout(USER, now=NOW)

    (reservation,) = store.purchases.values()
    assert reservation.status == PurchaseStatus.PENDING


def test_unreadable_purchases_is_persistence_failure(store, gateway, buyer) -> None:
    store.fail_on.add("list_purchases")

    with pytest.raises(PersistenceFailure):
        start_lifetime_checkout(USER, now=NOW)


def test_failed_insert_is_persistence_failure(store, gateway, buyer) -> None:
    store.fail_on.add("insert_pending_purchase")

    with pytest.raises(PersistenceFailure):
        start_lifetime_checkout(USER, now=NOW)

    assert gateway.sessions == []


def test_missing_profile_is_persistence_failure(store, gateway) -> None:
    with pytest.raises(PersistenceFailure):
        start_lifetime_checkout("ghost", now=NOW)


def test_session_link_failure_does_not_fail_checkout(store, gateway, buyer) -> None:
    """The webhook can still match on the purchase id in metadata."""

    store.fail_on.add("update_purchase")

    result = start_lifetime_checkout(USER, now=NOW)

    reservation = store.purchases[result.purchase_id]
    assert reservation.status == PurchaseStatus.PENDING
    assert reservation.stripe_session_id is None


def test_known_customer_is_passed_to_stripe(store, gateway) -> None:
    store.add_user(USER, email="buyer@example.com", stripe_customer_id="cus_123")

    start_lifetime_checkout(USER, now=NOW)

    assert gateway.sessions[0]["customer_id"] == "cus_123"
