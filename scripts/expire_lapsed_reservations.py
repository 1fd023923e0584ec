"""
Expire lapsed lifetime reservations.

Marks `pending` purchases whose reservation window has passed as `expired`.
Safe to run repeatedly (e.g. from cron); capacity accounting does not depend
on it.

Usage:
    python scripts/expire_lapsed_reservations.py [--dry-run]
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.reservation_sweep_service import expire_lapsed_reservations


def main():
    parser = argparse.ArgumentParser(description="Expire lapsed lifetime reservations")
    parser.add_argument("--dry-run", action="store_true", help="Only count lapsed reservations")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    count = expire_lapsed_reservations(dry_run=args.dry_run)

    if args.dry_run:
        print(f"{count} lapsed reservation(s) would be expired")
    else:
        print(f"Expired {count} lapsed reservation(s)")


if __name__ == "__main__":
    main()
