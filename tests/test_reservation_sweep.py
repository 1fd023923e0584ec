"""
Tests for `services/reservation_sweep_service.py`.
"""

from __future__ import annotations

from datetime import timedelta

from conftest import NOW, make_purchase
from domain.lifetime import PurchaseStatus
from services.reservation_sweep_service import expire_lapsed_reservations


def _seed(store) -> None:
    store.add_purchase(make_purchase("lapsed", status=PurchaseStatus.PENDING, reserved_until=NOW - timedelta(minutes=1)))
    store.add_purchase(make_purchase("live", status=PurchaseStatus.PENDING, reserved_until=NOW + timedelta(minutes=1)))
    store.add_purchase(make_purchase("paid", status=PurchaseStatus.PAID))


def test_sweep_expires_only_lapsed_reservations(store) -> None:
    _seed(store)

    assert expire_lapsed_reservations(now=NOW) == 1

    assert store.purchases["lapsed"].status == PurchaseStatus.EXPIRED
    assert store.purchases["live"].status == PurchaseStatus.PENDING
    assert store.purchases["paid"].status == PurchaseStatus.PAID


def test_dry_run_changes_nothing(store) -> None:
    _seed(store)

    assert expire_lapsed_reservations(now=NOW, dry_run=True) == 1

    assert store.purchases["lapsed"].status == PurchaseStatus.PENDING


def test_sweep_with_nothing_lapsed(store) -> None:
    assert expire_lapsed_reservations(now=NOW) == 0
