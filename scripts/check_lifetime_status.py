"""
Check lifetime offer status - slots claimed per tier, open tier, pending reservations.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.lifetime import PURCHASABLE_TIERS, PurchaseStatus
from domain.time import utc_now
from repositories.purchase_repository import list_purchases
from services.lifetime_checkout_service import load_allocation


def check_lifetime_status():
    """Print capacity, open tier, and reservation breakdown."""

    now = utc_now()
    availability = load_allocation(now).availability
    pending = list_purchases([PurchaseStatus.PENDING])
    lapsed = [p for p in pending if not p.is_pending_active(now)]

    print("=" * 50)
    print("LIFETIME OFFER STATUS")
    print("=" * 50)
    print(f"Open tier:                 {availability.tier.value}")
    print(f"Remaining in tier:         {availability.remaining_in_tier}")
    print(f"Active (paid + reserved):  {availability.total_active} / {availability.effective_max_slots}")
    print(f"Paid:                      {availability.total_paid}")
    print(f"Claimed:                   {availability.claimed_percentage}%")
    print("=" * 50)

    print("\nTier thresholds (cumulative):")
    print("-" * 50)
    for tier in PURCHASABLE_TIERS:
        print(f"{tier.value}: {availability.tier_limits[tier]}")

    print("\nPending reservations:")
    print("-" * 50)
    print(f"Holding a slot:            {len(pending) - len(lapsed)}")
    print(f"Lapsed (not counted):      {len(lapsed)}")
    print("-" * 50)


if __name__ == "__main__":
    check_lifetime_status()
