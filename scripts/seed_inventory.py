#!/usr/bin/env python3
"""
Inventory Seeding Script

Fills every blood group with starter stock, recorded as donations of at most
two units each (the most a single donation can yield).

Usage:
    python seed_inventory.py
    python seed_inventory.py --actor admin@bloodbank.example
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from uuid import uuid4

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.dependencies import Settings, build_inventory_service
from domain.blood_group import BloodGroup
from services.inventory_service import InventoryService

MAX_UNITS_PER_DONATION = 2

DEFAULT_STOCK = {
    BloodGroup.O_POS: 15,
    BloodGroup.O_NEG: 8,
    BloodGroup.A_POS: 12,
    BloodGroup.A_NEG: 6,
    BloodGroup.B_POS: 10,
    BloodGroup.B_NEG: 5,
    BloodGroup.AB_POS: 7,
    BloodGroup.AB_NEG: 4,
}


def seed_inventory(service: InventoryService, actor: str, stock: dict[BloodGroup, int] = DEFAULT_STOCK) -> dict[str, int]:
    """Add the requested stock per group. Returns units actually added per group."""

    added: dict[str, int] = {}
    for group, target in stock.items():
        remaining = target
        added[group.value] = 0
        while remaining > 0:
            batch = min(remaining, MAX_UNITS_PER_DONATION)
            ledger = service.add_from_donation(
                group,
                batch,
                f"seed-{uuid4().hex[:12]}",
                service.now(),
                actor,
            )
            if ledger is None:
                print(f"  [WARN] Failed to add {batch} unit(s) of {group.value}")
            else:
                added[group.value] += batch
            remaining -= batch
        print(f"  {group.value:<5} {added[group.value]:>3} unit(s) added")
    return added


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(description="Seed blood inventory with starter stock")
    parser.add_argument(
        "--actor",
        type=str,
        default="seed-script",
        help="Identity recorded in the ledger history (default: seed-script)"
    )
    args = parser.parse_args()

    try:
        service = build_inventory_service(Settings.from_env())
        print("Adding blood units to inventory...\n")
        added = seed_inventory(service, args.actor)
        print(f"\nSeeding complete. {sum(added.values())} unit(s) added.")
        return 0
    except Exception as e:
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
