#!/usr/bin/env python3
"""
Expiry Check Script

Marks every blood unit past its 35-day shelf life as expired, across all
blood groups. Safe to run repeatedly: a second run with no time passing
expires nothing.

Usage:
    python run_expiry_check.py
    python run_expiry_check.py --as-of "2025-12-27T00:00:00"
    python run_expiry_check.py --dry-run

Schedule via cron (daily at 1 AM UTC):
    0 1 * * * cd /app && INVENTORY_BACKEND=supabase python scripts/run_expiry_check.py
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.dependencies import Settings, build_inventory_service
from services.inventory_service import ExpiryCheckResult, InventoryService


def _parse_as_of(value: str) -> datetime:
    as_of = datetime.fromisoformat(value)
    if as_of.tzinfo is None:
        return as_of.replace(tzinfo=timezone.utc)
    return as_of.astimezone(timezone.utc)


def preview_expiry(service: InventoryService) -> dict[str, int]:
    """Count units that would expire, per blood group, without writing anything."""

    now = service.now()
    preview = {}
    for ledger in service.list_ledgers():
        pending = len(ledger.expired_unmarked(now))
        if pending:
            preview[ledger.blood_group.value] = pending
    return preview


def print_summary(result: ExpiryCheckResult) -> None:
    print("=" * 50)
    print("EXPIRY CHECK")
    print("=" * 50)
    for item in result.results:
        print(f"{item.blood_group.value:<5} {item.expired_units:>6} unit(s) expired")
    print("-" * 50)
    print(f"Total expired:             {result.total_expired}")
    print("=" * 50)


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Mark expired blood units across all blood groups",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Expire against the current time
  python run_expiry_check.py

  # Expire as of a specific instant (UTC if no offset is given)
  python run_expiry_check.py --as-of "2025-12-27T00:00:00"

  # Show what would expire without writing
  python run_expiry_check.py --dry-run
        """
    )

    parser.add_argument(
        "--as-of",
        type=str,
        help="ISO timestamp to evaluate expiry against (default: now)"
    )

    parser.add_argument(
        "--actor",
        type=str,
        default="expiry-job",
        help="Identity recorded in the ledger history (default: expiry-job)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report pending expiries without marking them"
    )

    args = parser.parse_args()

    try:
        settings = Settings.from_env()
        logging.basicConfig(level=settings.log_level)

        service = build_inventory_service(settings)
        if args.as_of:
            as_of = _parse_as_of(args.as_of)
            service = InventoryService(
                service.repository,
                clock=lambda: as_of,
                location=settings.location,
                max_retries=settings.max_retries,
            )

        if args.dry_run:
            preview = preview_expiry(service)
            print("DRY RUN - no units will be marked")
            for group, count in sorted(preview.items()):
                print(f"{group:<5} {count:>6} unit(s) pending expiry")
            print(f"Total pending: {sum(preview.values())}")
            return 0

        result = service.check_all_expiry(args.actor)
        print_summary(result)
        return 0

    except KeyboardInterrupt:
        print("\n\nExpiry check interrupted by user")
        return 130

    except Exception as e:
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
