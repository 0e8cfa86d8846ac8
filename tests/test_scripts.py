"""
Tests for the operational scripts in `scripts/`.

Covers:
- Seeding adds the default stock per group in donation-sized batches.
- The expiry preview counts pending expiries without writing.
"""

from __future__ import annotations

from domain.blood_group import BloodGroup
from domain.ledger_event import LedgerAction
from scripts.run_expiry_check import preview_expiry
from scripts.seed_inventory import DEFAULT_STOCK, seed_inventory


def test_seed_inventory_adds_default_stock(service, capsys) -> None:
    added = seed_inventory(service, "seed-script")

    assert added == {group.value: units for group, units in DEFAULT_STOCK.items()}
    o_pos = service.get_ledger(BloodGroup.O_POS)
    assert o_pos.units_available == 15
    # 15 units in batches of at most 2
    assert len(o_pos.history) == 8
    assert all(e.action is LedgerAction.ADDED and e.units <= 2 for e in o_pos.history)


def test_preview_expiry_does_not_write(service, repository, clock) -> None:
    service.add_units("O+", 2, "staff-1")
    service.add_units("B+", 1, "staff-1")
    clock.advance(days=36)
    before = repository.get(BloodGroup.O_POS)

    preview = preview_expiry(service)

    assert preview == {"B+": 1, "O+": 2}
    assert repository.get(BloodGroup.O_POS) is before
