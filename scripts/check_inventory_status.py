"""
Check inventory status - units available, reserved, issued and expired per blood group.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.dependencies import Settings, build_inventory_service
from services.reporting_service import InventoryReportingService


def check_inventory_status():
    """Print the overview and status breakdown for every blood group."""

    service = build_inventory_service(Settings.from_env())
    reporting = InventoryReportingService(service)

    overview = reporting.overview()
    stats = reporting.stats()

    print("=" * 50)
    print("INVENTORY STATUS")
    print("=" * 50)
    print(f"Available:                 {overview.total_available}")
    print(f"Reserved:                  {overview.total_reserved}")
    print(f"Issued:                    {stats.total_issued}")
    print(f"Expired (marked):          {stats.total_expired}")
    print(f"Expired (awaiting sweep):  {overview.total_expired}")
    print(f"Expiring within 7 days:    {overview.total_expiring_soon}")
    print("=" * 50)

    print("\nBreakdown by blood group:")
    print("-" * 50)
    print(f"{'Group':<6}{'Avail':>7}{'Resv':>7}{'Issued':>8}{'Expd':>7}{'Soon':>7}")
    for group, g in sorted(stats.by_blood_group.items(), key=lambda item: item[0].value):
        print(f"{group.value:<6}{g.available:>7}{g.reserved:>7}{g.issued:>8}{g.expired:>7}{g.expiring_soon:>7}")
    print("-" * 50)


if __name__ == "__main__":
    check_inventory_status()
