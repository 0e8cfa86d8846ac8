"""
Tests for `domain/inventory.py`.

Covers ledger rules:
- Counters always equal the number of units in the matching status.
- Reserve is FIFO by expiry and all-or-nothing.
- Issue only consumes units reserved for the same request.
- Unreserve releases every unit of a request; nothing held is a no-op.
- Expiry decrements the counter matching the unit's pre-expiry status and is idempotent.
- Discard skips unknown and terminal units.
- No side effects: transitions return new ledgers; prior ledgers are unchanged.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from domain.blood_group import BloodGroup
from domain.blood_unit import UnitStatus
from domain.errors import ConflictError, InsufficientStockError, ValidationError
from domain.inventory import InventoryLedger
from domain.ledger_event import LedgerAction

DAY_0 = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
ACTOR = "staff-1"


def _day(n: float) -> datetime:
    return DAY_0 + timedelta(days=n)


def _assert_counts_consistent(ledger: InventoryLedger) -> None:
    assert ledger.units_available == sum(1 for u in ledger.units if u.status is UnitStatus.AVAILABLE)
    assert ledger.units_reserved == sum(1 for u in ledger.units if u.status is UnitStatus.RESERVED)


def _ledger_with(*batches: tuple[float, int]) -> InventoryLedger:
    """Build an O+ ledger from (collected_day, count) batches."""

    ledger = InventoryLedger.empty(BloodGroup.O_POS, DAY_0)
    for index, (collected_day, count) in enumerate(batches):
        ledger = ledger.add_units(
            unit_ids=[f"u{index}-{i}" for i in range(count)],
            collected_date=_day(collected_day),
            performed_by=ACTOR,
            now=_day(collected_day),
        )
    return ledger


def test_add_units_from_donation_creates_available_units_and_event() -> None:
    ledger = InventoryLedger.empty(BloodGroup.O_POS, DAY_0).add_units(
        unit_ids=["a", "b"],
        collected_date=DAY_0,
        performed_by=ACTOR,
        now=DAY_0,
        donation_id="donation-1",
    )

    assert ledger.units_available == 2
    assert ledger.units_reserved == 0
    assert all(u.expiry_date == _day(35) for u in ledger.units)
    assert all(u.donation_id == "donation-1" for u in ledger.units)
    assert len(ledger.history) == 1
    event = ledger.history[0]
    assert event.action is LedgerAction.ADDED
    assert event.units == 2
    assert event.related_id == "donation-1"
    assert event.reason == "Added from donation donation-1"
    assert ledger.version == 1


def test_add_units_rejects_empty_batch() -> None:
    with pytest.raises(ValidationError):
        InventoryLedger.empty(BloodGroup.O_POS, DAY_0).add_units(
            unit_ids=[], collected_date=DAY_0, performed_by=ACTOR, now=DAY_0
        )


def test_duplicate_unit_ids_are_rejected() -> None:
    ledger = _ledger_with((0, 1))
    with pytest.raises(ConflictError):
        ledger.add_units(unit_ids=["u0-0"], collected_date=DAY_0, performed_by=ACTOR, now=DAY_0)


def test_reserve_selects_oldest_expiry_first() -> None:
    # Added newest first so insertion order differs from expiry order.
    ledger = _ledger_with((10, 2), (0, 2), (5, 2))

    reserved = ledger.reserve(quantity=3, request_id="req-1", performed_by=ACTOR, now=_day(11))

    picked = [u for u in reserved.units if u.status is UnitStatus.RESERVED]
    left = [u for u in reserved.units if u.status is UnitStatus.AVAILABLE]
    assert len(picked) == 3
    assert max(u.expiry_date for u in picked) <= min(u.expiry_date for u in left)
    assert {u.unit_id for u in picked} == {"u1-0", "u1-1", "u2-0"}
    assert reserved.units_available == 3
    assert reserved.units_reserved == 3
    _assert_counts_consistent(reserved)


def test_reserve_skips_units_past_expiry() -> None:
    ledger = _ledger_with((0, 1), (20, 1))

    reserved = ledger.reserve(quantity=1, request_id="req-1", performed_by=ACTOR, now=_day(36))

    picked = [u for u in reserved.units if u.status is UnitStatus.RESERVED]
    assert [u.unit_id for u in picked] == ["u1-0"]


def test_reserve_is_all_or_nothing() -> None:
    ledger = _ledger_with((0, 3))

    with pytest.raises(InsufficientStockError) as exc_info:
        ledger.reserve(quantity=5, request_id="req-9", performed_by=ACTOR, now=_day(1))

    assert exc_info.value.requested == 5
    assert exc_info.value.available == 3
    assert ledger.units_available == 3
    assert ledger.units_reserved == 0
    assert all(u.status is UnitStatus.AVAILABLE for u in ledger.units)
    assert len(ledger.history) == 1


@pytest.mark.parametrize("quantity", [0, -1, True, 1.5])
def test_reserve_rejects_bad_quantity(quantity) -> None:
    ledger = _ledger_with((0, 3))
    with pytest.raises(ValidationError):
        ledger.reserve(quantity=quantity, request_id="req-1", performed_by=ACTOR, now=_day(1))


def test_issue_consumes_only_units_reserved_for_request() -> None:
    ledger = _ledger_with((0, 4))
    ledger = ledger.reserve(quantity=2, request_id="req-A", performed_by=ACTOR, now=_day(1))
    ledger = ledger.reserve(quantity=1, request_id="req-B", performed_by=ACTOR, now=_day(1))

    with pytest.raises(InsufficientStockError):
        ledger.issue(quantity=2, request_id="req-B", performed_by=ACTOR, now=_day(2))

    issued = ledger.issue(quantity=2, request_id="req-A", performed_by=ACTOR, now=_day(2))
    assert issued.units_available == 1
    assert issued.units_reserved == 1
    assert issued.count(UnitStatus.ISSUED) == 2
    assert [u.reserved_for for u in issued.units if u.status is UnitStatus.RESERVED] == ["req-B"]
    _assert_counts_consistent(issued)


def test_issue_without_reservation_fails() -> None:
    ledger = _ledger_with((0, 2))
    with pytest.raises(InsufficientStockError):
        ledger.issue(quantity=1, request_id="req-1", performed_by=ACTOR, now=_day(1))


def test_reserve_then_unreserve_round_trip() -> None:
    ledger = _ledger_with((0, 5))
    before = (ledger.units_available, ledger.units_reserved)

    reserved = ledger.reserve(quantity=3, request_id="req-1", performed_by=ACTOR, now=_day(1))
    released = reserved.unreserve(request_id="req-1", performed_by=ACTOR, now=_day(1))

    assert (released.units_available, released.units_reserved) == before
    assert all(u.status is UnitStatus.AVAILABLE and u.reserved_for is None for u in released.units)
    assert released.history[-1].action is LedgerAction.UNRESERVED
    assert released.history[-1].units == 3


def test_unreserve_with_nothing_held_is_noop() -> None:
    ledger = _ledger_with((0, 2))

    same = ledger.unreserve(request_id="missing", performed_by=ACTOR, now=_day(1))

    assert same is ledger


def test_mark_expired_decrements_matching_counter() -> None:
    ledger = _ledger_with((0, 3))
    ledger = ledger.reserve(quantity=1, request_id="req-1", performed_by=ACTOR, now=_day(1))

    expired, count = ledger.mark_expired(performed_by=ACTOR, now=_day(35))

    assert count == 3
    assert expired.units_available == 0
    assert expired.units_reserved == 0
    assert expired.count(UnitStatus.EXPIRED) == 3
    assert expired.history[-1].action is LedgerAction.EXPIRED
    assert expired.history[-1].units == 3
    _assert_counts_consistent(expired)


def test_mark_expired_is_idempotent() -> None:
    ledger = _ledger_with((0, 2))

    once, first = ledger.mark_expired(performed_by=ACTOR, now=_day(40))
    twice, second = once.mark_expired(performed_by=ACTOR, now=_day(40))

    assert first == 2
    assert second == 0
    assert twice is once
    assert len(twice.history) == len(once.history)


def test_mark_expired_leaves_issued_units_alone() -> None:
    ledger = _ledger_with((0, 1))
    ledger = ledger.reserve(quantity=1, request_id="req-1", performed_by=ACTOR, now=_day(1))
    ledger = ledger.issue(quantity=1, request_id="req-1", performed_by=ACTOR, now=_day(1))

    after, count = ledger.mark_expired(performed_by=ACTOR, now=_day(50))

    assert count == 0
    assert after.units[0].status is UnitStatus.ISSUED


def test_discard_skips_unknown_and_terminal_units() -> None:
    ledger = _ledger_with((0, 4))
    ledger = ledger.reserve(quantity=2, request_id="req-1", performed_by=ACTOR, now=_day(1))
    ledger = ledger.issue(quantity=1, request_id="req-1", performed_by=ACTOR, now=_day(1))
    reserved_id = next(u.unit_id for u in ledger.units if u.status is UnitStatus.RESERVED)
    issued_id = next(u.unit_id for u in ledger.units if u.status is UnitStatus.ISSUED)
    available_id = next(u.unit_id for u in ledger.units if u.status is UnitStatus.AVAILABLE)

    after, count = ledger.discard(
        unit_ids=[reserved_id, issued_id, available_id, available_id, "nope"],
        performed_by=ACTOR,
        now=_day(2),
        reason="Bag damaged",
    )

    assert count == 2
    assert after.units_available == ledger.units_available - 1
    assert after.units_reserved == ledger.units_reserved - 1
    assert after.find_unit(issued_id).status is UnitStatus.ISSUED
    assert after.history[-1].reason == "Bag damaged"
    _assert_counts_consistent(after)


def test_discard_nothing_eligible_returns_same_ledger() -> None:
    ledger = _ledger_with((0, 1))

    after, count = ledger.discard(unit_ids=["nope"], performed_by=ACTOR, now=_day(1))

    assert count == 0
    assert after is ledger


def test_queries_expiring_soon_and_expired_unmarked() -> None:
    ledger = _ledger_with((0, 1), (25, 1))
    now = _day(30)

    assert [u.unit_id for u in ledger.expiring_soon(now)] == ["u0-0"]
    assert ledger.expired_unmarked(now) == []
    assert [u.unit_id for u in ledger.expired_unmarked(_day(35))] == ["u0-0"]


def test_restore_recomputes_drifted_counters() -> None:
    ledger = _ledger_with((0, 2)).reserve(quantity=1, request_id="r", performed_by=ACTOR, now=_day(1))

    restored = InventoryLedger.restore(
        blood_group=ledger.blood_group,
        units=ledger.units,
        history=ledger.history,
        last_updated=ledger.last_updated,
        version=ledger.version,
    )

    assert restored == ledger


def test_constructor_rejects_inconsistent_counters() -> None:
    ledger = _ledger_with((0, 2))
    with pytest.raises(ConflictError):
        InventoryLedger(
            blood_group=ledger.blood_group,
            last_updated=ledger.last_updated,
            units=ledger.units,
            units_available=5,
        )


def test_transitions_do_not_mutate_previous_ledger() -> None:
    ledger = _ledger_with((0, 2))
    snapshot = (ledger.units, ledger.history, ledger.units_available, ledger.version)

    ledger.reserve(quantity=1, request_id="r", performed_by=ACTOR, now=_day(1))
    ledger.mark_expired(performed_by=ACTOR, now=_day(40))

    assert (ledger.units, ledger.history, ledger.units_available, ledger.version) == snapshot
