"""
Tests for `domain/blood_unit.py` and `domain/blood_group.py`.

Covers:
- Fixed 35-day shelf life from collection.
- Legal status transitions and ConflictError for everything else.
- reserved_for is present only while reserved.
- Expiring-soon window and expiry predicates.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from domain.blood_group import BloodGroup
from domain.blood_unit import SHELF_LIFE, BloodUnit, UnitStatus, new_unit_id
from domain.errors import ConflictError, ValidationError

COLLECTED = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


def _unit() -> BloodUnit:
    return BloodUnit.collect(unit_id="O+-1", blood_group=BloodGroup.O_POS, collected_date=COLLECTED)


def test_collect_sets_35_day_expiry_and_available_status() -> None:
    unit = _unit()

    assert unit.expiry_date == COLLECTED + timedelta(days=35)
    assert SHELF_LIFE == timedelta(days=35)
    assert unit.status is UnitStatus.AVAILABLE
    assert unit.reserved_for is None


def test_unit_is_immutable() -> None:
    unit = _unit()
    with pytest.raises(FrozenInstanceError):
        unit.status = UnitStatus.ISSUED  # type: ignore[misc]


def test_unit_requires_utc_timestamps() -> None:
    with pytest.raises(ValueError):
        BloodUnit.collect(unit_id="x", blood_group=BloodGroup.A_POS, collected_date=datetime(2025, 1, 1))


def test_reserve_issue_happy_path() -> None:
    reserved = _unit().reserve("req-7")
    assert reserved.status is UnitStatus.RESERVED
    assert reserved.reserved_for == "req-7"

    issued = reserved.issue()
    assert issued.status is UnitStatus.ISSUED
    assert issued.reserved_for is None


def test_release_returns_unit_to_available() -> None:
    released = _unit().reserve("req-7").release()
    assert released.status is UnitStatus.AVAILABLE
    assert released.reserved_for is None


@pytest.mark.parametrize(
    "build, action",
    [
        (lambda u: u, lambda u: u.issue()),
        (lambda u: u, lambda u: u.release()),
        (lambda u: u.reserve("r"), lambda u: u.reserve("other")),
        (lambda u: u.reserve("r").issue(), lambda u: u.discard()),
        (lambda u: u.reserve("r").issue(), lambda u: u.expire()),
        (lambda u: u.expire(), lambda u: u.reserve("r")),
        (lambda u: u.discard(), lambda u: u.expire()),
    ],
)
def test_illegal_transitions_raise_conflict(build, action) -> None:
    unit = build(_unit())
    with pytest.raises(ConflictError):
        action(unit)


def test_reserved_unit_can_expire_or_be_discarded() -> None:
    assert _unit().reserve("r").expire().status is UnitStatus.EXPIRED
    assert _unit().reserve("r").discard().status is UnitStatus.DISCARDED


def test_reserved_for_must_match_status() -> None:
    with pytest.raises(ValueError):
        BloodUnit(
            unit_id="x",
            blood_group=BloodGroup.O_POS,
            collected_date=COLLECTED,
            expiry_date=COLLECTED + SHELF_LIFE,
            status=UnitStatus.AVAILABLE,
            reserved_for="req-1",
        )


def test_expiring_soon_window() -> None:
    unit = _unit()
    expiry = unit.expiry_date

    assert unit.is_expiring_soon(expiry - timedelta(days=7)) is True
    assert unit.is_expiring_soon(expiry - timedelta(days=7, seconds=1)) is False
    assert unit.is_expiring_soon(expiry) is False
    assert unit.reserve("r").is_expiring_soon(expiry - timedelta(days=1)) is False


def test_awaiting_expiry_only_for_stock_units() -> None:
    unit = _unit()
    after = unit.expiry_date

    assert unit.awaiting_expiry(after) is True
    assert unit.reserve("r").awaiting_expiry(after) is True
    assert unit.reserve("r").issue().awaiting_expiry(after) is False
    assert unit.expire().awaiting_expiry(after) is False
    assert unit.awaiting_expiry(after - timedelta(seconds=1)) is False


def test_new_unit_ids_are_unique_and_prefixed() -> None:
    ids = {new_unit_id(BloodGroup.AB_NEG) for _ in range(100)}
    assert len(ids) == 100
    assert all(i.startswith("AB--") for i in ids)


def test_blood_group_parse() -> None:
    assert BloodGroup.parse("O+") is BloodGroup.O_POS
    assert BloodGroup.parse(" ab- ") is BloodGroup.AB_NEG
    assert BloodGroup.parse(BloodGroup.B_POS) is BloodGroup.B_POS
    with pytest.raises(ValidationError):
        BloodGroup.parse("C+")
