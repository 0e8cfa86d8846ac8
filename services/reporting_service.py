"""
Inventory reporting service.

Read-only views over the ledgers: per-group summaries, a system-wide overview,
full detail for one group, status statistics and the history log.

Everything here is computed from the current unit lists at a given instant;
nothing is stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from domain.blood_group import BloodGroup
from domain.blood_unit import BloodUnit, UnitStatus
from domain.errors import NotFoundError
from domain.inventory import RECENT_HISTORY_LIMIT, InventoryLedger
from domain.ledger_event import LedgerEvent
from services.inventory_service import InventoryService

DEFAULT_HISTORY_LIMIT = 50


@dataclass(frozen=True, slots=True)
class LedgerSummary:
    blood_group: BloodGroup
    units_available: int
    units_reserved: int
    expiring_soon: int
    expired: int
    location: str
    last_updated: datetime

    @staticmethod
    def of(ledger: InventoryLedger, now: datetime) -> "LedgerSummary":
        return LedgerSummary(
            blood_group=ledger.blood_group,
            units_available=ledger.units_available,
            units_reserved=ledger.units_reserved,
            expiring_soon=len(ledger.expiring_soon(now)),
            expired=len(ledger.expired_unmarked(now)),
            location=ledger.location,
            last_updated=ledger.last_updated,
        )


@dataclass(frozen=True, slots=True)
class InventoryOverview:
    """Summaries for every existing ledger plus system-wide totals."""
    ledgers: List[LedgerSummary]
    total_available: int
    total_reserved: int
    total_expiring_soon: int
    total_expired: int


@dataclass(frozen=True, slots=True)
class LedgerDetail:
    blood_group: BloodGroup
    units_available: int
    units_reserved: int
    location: str
    last_updated: datetime
    units: List[BloodUnit]
    expiring_soon: List[BloodUnit]
    expired: List[BloodUnit]
    history: List[LedgerEvent]


@dataclass(frozen=True, slots=True)
class GroupStats:
    available: int
    reserved: int
    issued: int
    expired: int
    expiring_soon: int


@dataclass(frozen=True, slots=True)
class InventoryStats:
    total_available: int = 0
    total_reserved: int = 0
    total_issued: int = 0
    total_expired: int = 0
    expiring_soon: int = 0
    by_blood_group: Dict[BloodGroup, GroupStats] = field(default_factory=dict)


def build_overview(ledgers: Iterable[InventoryLedger], now: datetime) -> InventoryOverview:
    summaries = [LedgerSummary.of(ledger, now) for ledger in ledgers]
    return InventoryOverview(
        ledgers=summaries,
        total_available=sum(s.units_available for s in summaries),
        total_reserved=sum(s.units_reserved for s in summaries),
        total_expiring_soon=sum(s.expiring_soon for s in summaries),
        total_expired=sum(s.expired for s in summaries),
    )


def build_detail(ledger: InventoryLedger, now: datetime, history_limit: int = RECENT_HISTORY_LIMIT) -> LedgerDetail:
    return LedgerDetail(
        blood_group=ledger.blood_group,
        units_available=ledger.units_available,
        units_reserved=ledger.units_reserved,
        location=ledger.location,
        last_updated=ledger.last_updated,
        units=list(ledger.units),
        expiring_soon=ledger.expiring_soon(now),
        expired=ledger.expired_unmarked(now),
        history=ledger.recent_history(history_limit),
    )


def build_stats(ledgers: Iterable[InventoryLedger], now: datetime) -> InventoryStats:
    """
    Status counts per blood group.

    `expired` here counts units already marked expired, unlike the overview
    which counts units awaiting the expiry sweep.
    """

    by_group: Dict[BloodGroup, GroupStats] = {}
    for ledger in ledgers:
        by_group[ledger.blood_group] = GroupStats(
            available=ledger.units_available,
            reserved=ledger.units_reserved,
            issued=ledger.count(UnitStatus.ISSUED),
            expired=ledger.count(UnitStatus.EXPIRED),
            expiring_soon=len(ledger.expiring_soon(now)),
        )

    groups = by_group.values()
    return InventoryStats(
        total_available=sum(g.available for g in groups),
        total_reserved=sum(g.reserved for g in groups),
        total_issued=sum(g.issued for g in groups),
        total_expired=sum(g.expired for g in groups),
        expiring_soon=sum(g.expiring_soon for g in groups),
        by_blood_group=by_group,
    )


class InventoryReportingService:
    """Reporting facade over an InventoryService (shares its clock and repository)."""

    def __init__(self, inventory: InventoryService) -> None:
        self._inventory = inventory

    def overview(self) -> InventoryOverview:
        return build_overview(self._inventory.list_ledgers(), self._inventory.now())

    def detail(self, blood_group: BloodGroup | str) -> LedgerDetail:
        """Full detail for one group; a group never seeded reads as an empty ledger."""

        return build_detail(self._inventory.get_ledger(blood_group), self._inventory.now())

    def stats(self) -> InventoryStats:
        return build_stats(self._inventory.list_ledgers(), self._inventory.now())

    def history(self, blood_group: BloodGroup | str, limit: Optional[int] = None) -> List[LedgerEvent]:
        """Most recent `limit` history entries, newest first."""

        group = BloodGroup.parse(blood_group)
        ledger = self._inventory.find_ledger(group)
        if ledger is None:
            raise NotFoundError(group.value)

        limit = DEFAULT_HISTORY_LIMIT if limit is None else limit
        return list(reversed(ledger.recent_history(limit)))


__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "GroupStats",
    "InventoryOverview",
    "InventoryReportingService",
    "InventoryStats",
    "LedgerDetail",
    "LedgerSummary",
    "build_detail",
    "build_overview",
    "build_stats",
]
