"""
Tests for `repositories/ledger_repository.py`.

Covers:
- In-memory store: version-checked saves, ordering.
- Supabase row mapping preserves units and history, repairs drifted counters.
- Supabase repository uses insert for new ledgers and a version-guarded update otherwise.

No network access: the Supabase client is replaced by a small recording fake.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List

import pytest

from domain.blood_group import BloodGroup
from domain.blood_unit import UnitStatus
from domain.errors import ConcurrentModificationError
from domain.inventory import InventoryLedger
from repositories.ledger_repository import (
    InMemoryLedgerRepository,
    SupabaseLedgerRepository,
    ledger_to_row,
    row_to_ledger,
)

DAY_0 = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
ACTOR = "staff-1"


def _sample_ledger() -> InventoryLedger:
    ledger = InventoryLedger.empty(BloodGroup.O_NEG, DAY_0).add_units(
        unit_ids=["u1", "u2", "u3"],
        collected_date=DAY_0,
        performed_by=ACTOR,
        now=DAY_0,
        donation_id="donation-1",
    )
    return ledger.reserve(quantity=1, request_id="req-1", performed_by=ACTOR, now=DAY_0 + timedelta(days=1))


def test_in_memory_save_requires_expected_version() -> None:
    repository = InMemoryLedgerRepository()
    ledger = _sample_ledger()

    repository.save(ledger, None)
    with pytest.raises(ConcurrentModificationError):
        repository.save(ledger, None)
    with pytest.raises(ConcurrentModificationError):
        repository.save(ledger, ledger.version + 5)

    assert repository.get(BloodGroup.O_NEG) is ledger


def test_in_memory_list_all_sorted_by_group() -> None:
    repository = InMemoryLedgerRepository()
    for group in (BloodGroup.O_POS, BloodGroup.A_NEG, BloodGroup.AB_POS):
        repository.save(InventoryLedger.empty(group, DAY_0), None)

    assert [ledger.blood_group.value for ledger in repository.list_all()] == ["A-", "AB+", "O+"]


def test_row_mapping_preserves_ledger() -> None:
    ledger = _sample_ledger()

    row = ledger_to_row(ledger)

    assert row["blood_group"] == "O-"
    assert row["units_available"] == 2
    assert row["units_reserved"] == 1
    assert row["units"][0]["status"] in ("available", "reserved")
    assert row_to_ledger(row) == ledger


def test_row_mapping_accepts_z_suffix_and_repairs_counters(caplog) -> None:
    row = ledger_to_row(_sample_ledger())
    row["last_updated_utc"] = "2025-01-02T00:00:00Z"
    row["units_available"] = 7

    with caplog.at_level(logging.WARNING, logger="repositories.ledger_repository"):
        ledger = row_to_ledger(row)

    assert ledger.last_updated == DAY_0 + timedelta(days=1)
    assert ledger.units_available == 2
    assert ledger.count(UnitStatus.RESERVED) == 1
    assert "Reconciled O- ledger counters" in caplog.text


class _Response:
    def __init__(self, data: List[dict]) -> None:
        self.data = data
        self.error = None


class _Query:
    def __init__(self, client: "_FakeClient", op: str, payload: Any = None) -> None:
        self.client = client
        self.op = op
        self.payload = payload
        self.filters: List[tuple] = []

    def select(self, *_args, **_kwargs) -> "_Query":
        return self

    def eq(self, column: str, value: Any) -> "_Query":
        self.filters.append((column, value))
        return self

    def limit(self, _n: int) -> "_Query":
        return self

    def order(self, _column: str) -> "_Query":
        return self

    def execute(self) -> _Response:
        self.client.calls.append((self.op, self.filters, self.payload))
        if self.op == "update":
            return _Response(self.client.update_result)
        if self.op == "insert":
            return _Response([self.payload])
        return _Response(self.client.rows)


class _Table:
    def __init__(self, client: "_FakeClient") -> None:
        self.client = client

    def select(self, *_args, **_kwargs) -> _Query:
        return _Query(self.client, "select")

    def insert(self, payload: dict) -> _Query:
        return _Query(self.client, "insert", payload)

    def update(self, payload: dict) -> _Query:
        return _Query(self.client, "update", payload)


class _FakeClient:
    def __init__(self) -> None:
        self.rows: List[dict] = []
        self.update_result: List[dict] = []
        self.calls: List[tuple] = []

    def table(self, name: str) -> _Table:
        assert name == "inventory"
        return _Table(self)


def test_supabase_get_and_list() -> None:
    client = _FakeClient()
    client.rows = [ledger_to_row(_sample_ledger())]
    repository = SupabaseLedgerRepository(client)

    assert repository.get(BloodGroup.O_NEG) == _sample_ledger()
    assert len(repository.list_all()) == 1
    assert client.calls[0][1] == [("blood_group", "O-")]


def test_supabase_save_new_ledger_inserts() -> None:
    client = _FakeClient()
    repository = SupabaseLedgerRepository(client)

    repository.save(_sample_ledger(), None)

    op, _, payload = client.calls[-1]
    assert op == "insert"
    assert payload["blood_group"] == "O-"


def test_supabase_save_existing_ledger_is_version_guarded() -> None:
    client = _FakeClient()
    repository = SupabaseLedgerRepository(client)
    ledger = _sample_ledger()

    client.update_result = [ledger_to_row(ledger)]
    repository.save(ledger, ledger.version - 1)
    op, filters, _ = client.calls[-1]
    assert op == "update"
    assert filters == [("blood_group", "O-"), ("version", ledger.version - 1)]

    client.update_result = []
    with pytest.raises(ConcurrentModificationError):
        repository.save(ledger, ledger.version - 1)
