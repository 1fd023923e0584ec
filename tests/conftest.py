"""
Pytest configuration and shared fixtures.

Adds the project root to the Python path so tests can import domain,
repositories, services and api. Service tests swap the repository and
Stripe-gateway functions imported into each service module for the
in-memory fakes below; nothing here talks to Supabase or Stripe.
"""

import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.lifetime import RESERVATION_TTL, LifetimeTier, PurchaseStatus  # noqa: E402
from domain.purchase import PurchaseRecord, TierLimit, UserProfile  # noqa: E402
from domain.time import parse_utc_datetime  # noqa: E402
from services.stripe_gateway import CheckoutSession  # noqa: E402

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


def make_purchase(
    purchase_id: str,
    *,
    status: PurchaseStatus = PurchaseStatus.PAID,
    tier: Optional[LifetimeTier] = LifetimeTier.EARLY,
    user_id: Optional[str] = None,
    reserved_until: Optional[datetime] = None,
    created_at: Optional[datetime] = None,
    stripe_session_id: Optional[str] = None,
) -> PurchaseRecord:
    return PurchaseRecord(
        purchase_id=purchase_id,
        user_id=user_id,
        status=status,
        tier=tier,
        reserved_until=reserved_until,
        created_at=created_at,
        stripe_session_id=stripe_session_id,
    )


class FakeBillingStore:
    """In-memory stand-in for the lifetime_purchases, lifetime_tier_limits and users tables."""

    def __init__(self) -> None:
        self.purchases: Dict[str, PurchaseRecord] = {}
        self.tier_limits: List[TierLimit] = []
        self.users: Dict[str, UserProfile] = {}
        self.user_updates: List[tuple] = []
        self.fail_on: set[str] = set()
        self._next_id = 0

    # -- helpers -----------------------------------------------------------

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RuntimeError(f"simulated datastore failure in {operation}")

    def add_purchase(self, record: PurchaseRecord) -> PurchaseRecord:
        self.purchases[record.purchase_id] = record
        return record

    def add_user(self, user_id: str, **fields: Any) -> UserProfile:
        profile = UserProfile(user_id=user_id, **fields)
        self.users[user_id] = profile
        return profile

    def _apply(self, record: PurchaseRecord, payload: Mapping[str, Any]) -> PurchaseRecord:
        changes: Dict[str, Any] = {}
        if "status" in payload:
            changes["status"] = PurchaseStatus(payload["status"])
        if "reserved_expires_at" in payload:
            changes["reserved_until"] = parse_utc_datetime(payload["reserved_expires_at"])
        for column in ("stripe_session_id", "stripe_payment_intent_id", "user_id", "email"):
            if column in payload:
                changes[column] = payload[column]
        return replace(record, **changes)

    # -- purchase repository -----------------------------------------------

    def list_purchases(self, statuses) -> List[PurchaseRecord]:
        self._maybe_fail("list_purchases")
        wanted = set(statuses)
        return [p for p in self.purchases.values() if p.status in wanted]

    def insert_pending_purchase(
        self,
        user_id,
        email,
        tier,
        amount_cents,
        reserved_until,
        currency="eur",
        metadata=None,
    ) -> PurchaseRecord:
        self._maybe_fail("insert_pending_purchase")
        self._next_id += 1
        record = PurchaseRecord(
            purchase_id=f"purchase-{self._next_id}",
            user_id=user_id,
            email=email,
            tier=tier,
            status=PurchaseStatus.PENDING,
            reserved_until=reserved_until,
            created_at=reserved_until - RESERVATION_TTL,
            amount_cents=amount_cents,
            currency=currency,
        )
        self.purchases[record.purchase_id] = record
        return record

    def update_purchase(self, purchase_id, payload, only_if_status=None) -> None:
        self._maybe_fail("update_purchase")
        record = self.purchases.get(purchase_id)
        if record is None:
            return
        if only_if_status is not None and record.status != only_if_status:
            return
        self.purchases[purchase_id] = self._apply(record, payload)

    def update_purchase_by_session(self, session_id, payload, only_if_status=None) -> None:
        self._maybe_fail("update_purchase_by_session")
        for purchase_id, record in list(self.purchases.items()):
            if record.stripe_session_id != session_id:
                continue
            if only_if_status is not None and record.status != only_if_status:
                continue
            self.purchases[purchase_id] = self._apply(record, payload)

    def release_reservation(self, purchase_id) -> None:
        self._maybe_fail("release_reservation")
        self.update_purchase(
            purchase_id,
            {"status": PurchaseStatus.CANCELLED.value, "reserved_expires_at": None},
        )

    def list_lapsed_reservations(self, now) -> List[PurchaseRecord]:
        return [
            p for p in self.purchases.values()
            if p.status == PurchaseStatus.PENDING
            and p.reserved_until is not None
            and p.reserved_until < now
        ]

    def expire_reservations(self, purchase_ids) -> None:
        for purchase_id in purchase_ids:
            self.update_purchase(
                purchase_id,
                {"status": PurchaseStatus.EXPIRED.value, "reserved_expires_at": None},
                only_if_status=PurchaseStatus.PENDING,
            )

    # -- tier limit repository ---------------------------------------------

    def list_tier_limits(self) -> List[TierLimit]:
        self._maybe_fail("list_tier_limits")
        return list(self.tier_limits)

    # -- user repository ---------------------------------------------------

    def get_user_profile(self, user_id) -> Optional[UserProfile]:
        self._maybe_fail("get_user_profile")
        return self.users.get(user_id)

    def find_user_by_email(self, email) -> Optional[UserProfile]:
        self._maybe_fail("find_user_by_email")
        for profile in self.users.values():
            if profile.email == email:
                return profile
        return None

    def set_lifetime_tier(self, user_id, tier) -> None:
        self._maybe_fail("set_lifetime_tier")
        self.user_updates.append((user_id, {"lifetime_tier": tier.value}))
        self.users[user_id] = replace(self.users[user_id], lifetime_tier=tier)

    def link_stripe_customer(self, user_id, customer_id) -> None:
        self._maybe_fail("link_stripe_customer")
        self.user_updates.append((user_id, {"stripe_customer_id": customer_id}))
        if user_id in self.users:
            self.users[user_id] = replace(self.users[user_id], stripe_customer_id=customer_id)

    def update_user(self, user_id, payload) -> None:
        self._maybe_fail("update_user")
        self.user_updates.append((user_id, dict(payload)))

    def update_user_by_customer(self, customer_id, payload) -> None:
        self._maybe_fail("update_user_by_customer")
        self.user_updates.append((f"customer:{customer_id}", dict(payload)))


class FakeStripeGateway:
    """Records checkout, customer and portal requests and returns canned results."""

    def __init__(self) -> None:
        self.product_ids: Dict[LifetimeTier, Optional[str]] = {
            LifetimeTier.EARLY: "prod_early",
            LifetimeTier.MID: "prod_mid",
            LifetimeTier.FINAL: "prod_final",
        }
        self.price_id: Optional[str] = "price_123"
        self.session_url: Optional[str] = "https://checkout.stripe.test/session"
        self.error: Optional[Exception] = None
        self.sessions: List[Dict[str, Any]] = []
        self.subscription_product_ids: Dict[str, Optional[str]] = {
            "pro": "prod_pro",
            "business": "prod_business",
        }
        self.customers: List[Dict[str, Any]] = []
        self.tagged_customers: List[str] = []
        self.portal_url: Optional[str] = "https://billing.stripe.test/portal"
        self.portal_customers: List[str] = []

    def lifetime_product_id(self, tier):
        return self.product_ids.get(tier)

    def resolve_active_price_id(self, product_id):
        return self.price_id

    def create_lifetime_checkout_session(self, **kwargs) -> CheckoutSession:
        if self.error is not None:
            raise self.error
        self.sessions.append(kwargs)
        return CheckoutSession(
            session_id=f"cs_test_{len(self.sessions)}",
            url=self.session_url,
            payment_intent_id=None,
        )

    def subscription_product_id(self, tier):
        return self.subscription_product_ids.get(tier)

    def create_customer(self, **kwargs) -> str:
        if self.error is not None:
            raise self.error
        self.customers.append(kwargs)
        return f"cus_new_{len(self.customers)}"

    def tag_customer(self, customer_id, **kwargs) -> None:
        if self.error is not None:
            raise self.error
        self.tagged_customers.append(customer_id)

    def create_subscription_checkout_session(self, **kwargs) -> CheckoutSession:
        return self.create_lifetime_checkout_session(**kwargs)

    def create_portal_session(self, customer_id) -> Optional[str]:
        if self.error is not None:
            raise self.error
        self.portal_customers.append(customer_id)
        return self.portal_url


_STORE_BINDINGS = {
    "services.lifetime_checkout_service": (
        "list_purchases",
        "list_tier_limits",
        "insert_pending_purchase",
        "update_purchase",
        "release_reservation",
        "get_user_profile",
    ),
    "services.settlement_service": (
        "update_purchase",
        "update_purchase_by_session",
        "get_user_profile",
        "find_user_by_email",
        "set_lifetime_tier",
        "link_stripe_customer",
    ),
    "services.subscription_service": (
        "get_user_profile",
        "update_user",
        "update_user_by_customer",
    ),
    "services.reservation_sweep_service": (
        "list_lapsed_reservations",
        "expire_reservations",
    ),
    "services.subscription_checkout_service": (
        "get_user_profile",
        "link_stripe_customer",
    ),
}

_GATEWAY_BINDINGS = {
    "services.lifetime_checkout_service": (
        "lifetime_product_id",
        "resolve_active_price_id",
        "create_lifetime_checkout_session",
    ),
    "services.subscription_checkout_service": (
        "subscription_product_id",
        "resolve_active_price_id",
        "create_customer",
        "tag_customer",
        "create_subscription_checkout_session",
        "create_portal_session",
    ),
}


@pytest.fixture
def store(monkeypatch) -> FakeBillingStore:
    import importlib

    fake = FakeBillingStore()
    for module_name, names in _STORE_BINDINGS.items():
        module = importlib.import_module(module_name)
        for name in names:
            monkeypatch.setattr(module, name, getattr(fake, name))
    return fake


@pytest.fixture
def gateway(monkeypatch) -> FakeStripeGateway:
    import importlib

    fake = FakeStripeGateway()
    for module_name, names in _GATEWAY_BINDINGS.items():
        module = importlib.import_module(module_name)
        for name in names:
            monkeypatch.setattr(module, name, getattr(fake, name))
    return fake
