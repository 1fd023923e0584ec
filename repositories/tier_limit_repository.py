"""
Tier limit repository for lifetime capacity configuration.

Fetches the cumulative slot thresholds from the lifetime_tier_limits table.
Tiers without a row fall back to the domain defaults.
"""

from __future__ import annotations

from typing import List

from domain.lifetime import LifetimeTier
from domain.purchase import TierLimit
from repositories.client import execute, get_supabase


def list_tier_limits() -> List[TierLimit]:
    """
    Get every configured tier limit row.

    Returns:
        List[TierLimit] (possibly empty). Values are passed through as-is;
        validation happens in the allocation engine.
    """
    response = execute(
        get_supabase()
        .table("lifetime_tier_limits")
        .select("tier,max_slots"),
        "fetch lifetime tier limits",
    )

    rows = getattr(response, "data", None) or []

    limits: List[TierLimit] = []
    for row in rows:
        max_slots = row.get("max_slots")
        limits.append(TierLimit(
            tier=LifetimeTier.parse(row.get("tier")),
            max_slots=max_slots if isinstance(max_slots, int) else None,
        ))

    return limits


__all__ = ["list_tier_limits"]
