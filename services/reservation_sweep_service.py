"""
Reservation sweep service.

Marks pending lifetime reservations whose window has lapsed as `expired`.
Capacity accounting already ignores lapsed reservations, so running this is
storage hygiene only; availability is correct whether or not it runs.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from domain.time import utc_now
from repositories.purchase_repository import expire_reservations, list_lapsed_reservations

logger = logging.getLogger(__name__)


def expire_lapsed_reservations(now: Optional[datetime] = None, dry_run: bool = False) -> int:
    """
    Expire every pending reservation whose `reserved_until` is before `now`.

    Args:
        now: Reference time (defaults to the current UTC time)
        dry_run: Only count the lapsed reservations

    Returns:
        Number of reservations expired (or that would be, in dry-run mode)
    """
    now = now or utc_now()
    lapsed = [p for p in list_lapsed_reservations(now) if not p.is_pending_active(now)]

    if not lapsed:
        return 0

    if dry_run:
        logger.info(f"{len(lapsed)} lapsed lifetime reservations found (dry run)")
        return len(lapsed)

    expire_reservations([p.purchase_id for p in lapsed])
    logger.info(f"Expired {len(lapsed)} lapsed lifetime reservations")
    return len(lapsed)


__all__ = ["expire_lapsed_reservations"]
