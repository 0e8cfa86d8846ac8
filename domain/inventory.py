"""
Domain: Per-blood-group inventory ledger.

Rules implemented here:
- One ledger per blood group; the ledger exclusively owns its units.
- units_available == count(units with status available) and
  units_reserved == count(units with status reserved), after every operation.
- Reserve selects eligible units oldest-expiry-first and is all-or-nothing.
- Issue only consumes units reserved for the same request.
- Unreserve releases every unit held by a request; nothing held is a no-op.
- Expiry decrements whichever counter matched the unit's pre-expiry status.
- Units are never removed; issued, expired and discarded are terminal.
- History is append-only.

This module contains only pure domain structures: no I/O, no database, no frameworks.
All timestamps must be passed explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .blood_group import BloodGroup
from .blood_unit import BloodUnit, UnitStatus
from .errors import ConflictError, InsufficientStockError, ValidationError
from .ledger_event import LedgerAction, LedgerEvent
from .time import require_utc_timestamp

DEFAULT_LOCATION = "Main Blood Bank"
RECENT_HISTORY_LIMIT = 20


def _require_positive_quantity(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")


def _require_reference(name: str, value: Optional[str]) -> None:
    if value is None or not str(value).strip():
        raise ValidationError(f"{name} is required")


def _count(units: Iterable[BloodUnit], status: UnitStatus) -> int:
    return sum(1 for unit in units if unit.status is status)


@dataclass(frozen=True, slots=True)
class InventoryLedger:
    """
    Aggregate root for one blood group's stock.

    Every operation returns a new ledger; the receiver is left unchanged, so a
    failed operation never leaves a half-applied state behind. `version` is bumped
    on each mutation and lets the persistence layer detect concurrent writers.
    """

    blood_group: BloodGroup
    last_updated: datetime
    units: Tuple[BloodUnit, ...] = ()
    history: Tuple[LedgerEvent, ...] = ()
    units_available: int = 0
    units_reserved: int = 0
    location: str = DEFAULT_LOCATION
    version: int = 0
    _index: Dict[str, int] = field(default_factory=dict, init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        require_utc_timestamp("last_updated", self.last_updated)

        index: Dict[str, int] = {}
        for position, unit in enumerate(self.units):
            if unit.unit_id in index:
                raise ConflictError(f"Duplicate unit_id {unit.unit_id} in {self.blood_group.value} ledger")
            if unit.blood_group is not self.blood_group:
                raise ConflictError(
                    f"Unit {unit.unit_id} is {unit.blood_group.value}, "
                    f"not {self.blood_group.value}"
                )
            index[unit.unit_id] = position
        object.__setattr__(self, "_index", index)

        if self.units_available != _count(self.units, UnitStatus.AVAILABLE):
            raise ConflictError("units_available does not match units in available status")
        if self.units_reserved != _count(self.units, UnitStatus.RESERVED):
            raise ConflictError("units_reserved does not match units in reserved status")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @staticmethod
    def empty(blood_group: BloodGroup, now: datetime, location: str = DEFAULT_LOCATION) -> "InventoryLedger":
        return InventoryLedger(blood_group=blood_group, last_updated=now, location=location)

    @staticmethod
    def restore(
        *,
        blood_group: BloodGroup,
        units: Sequence[BloodUnit],
        history: Sequence[LedgerEvent],
        last_updated: datetime,
        location: str = DEFAULT_LOCATION,
        version: int = 0,
    ) -> "InventoryLedger":
        """
        Rebuild a ledger from persisted parts.

        Cached counters are always recomputed from the units, so a stored
        document whose counters drifted is repaired on load.
        """

        units = tuple(units)
        return InventoryLedger(
            blood_group=blood_group,
            last_updated=last_updated,
            units=units,
            history=tuple(history),
            units_available=_count(units, UnitStatus.AVAILABLE),
            units_reserved=_count(units, UnitStatus.RESERVED),
            location=location,
            version=version,
        )

    def _evolve(
        self,
        *,
        units: Tuple[BloodUnit, ...],
        event: LedgerEvent,
    ) -> "InventoryLedger":
        return replace(
            self,
            units=units,
            history=self.history + (event,),
            units_available=_count(units, UnitStatus.AVAILABLE),
            units_reserved=_count(units, UnitStatus.RESERVED),
            last_updated=event.timestamp,
            version=self.version + 1,
        )

    def _with_replaced(self, changed: Dict[str, BloodUnit]) -> Tuple[BloodUnit, ...]:
        return tuple(changed.get(unit.unit_id, unit) for unit in self.units)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_unit(self, unit_id: str) -> Optional[BloodUnit]:
        position = self._index.get(unit_id)
        return None if position is None else self.units[position]

    def count(self, status: UnitStatus) -> int:
        return _count(self.units, status)

    def units_reserved_for(self, request_id: str) -> List[BloodUnit]:
        return [
            unit
            for unit in self.units
            if unit.status is UnitStatus.RESERVED and unit.reserved_for == str(request_id)
        ]

    def expiring_soon(self, now: datetime) -> List[BloodUnit]:
        """Available units with 0 < expiry_date - now <= 7 days."""

        return [unit for unit in self.units if unit.is_expiring_soon(now)]

    def expired_unmarked(self, now: datetime) -> List[BloodUnit]:
        """Units past expiry that are still counted as available or reserved."""

        return [unit for unit in self.units if unit.awaiting_expiry(now)]

    def recent_history(self, limit: int = RECENT_HISTORY_LIMIT) -> List[LedgerEvent]:
        """The last `limit` events in chronological order."""

        if limit <= 0:
            return []
        return list(self.history[-limit:])

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def add_units(
        self,
        *,
        unit_ids: Sequence[str],
        collected_date: datetime,
        performed_by: str,
        now: datetime,
        donation_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> "InventoryLedger":
        """Create len(unit_ids) new available units collected at collected_date."""

        require_utc_timestamp("now", now)
        _require_positive_quantity("units", len(unit_ids))
        _require_reference("performed_by", performed_by)

        new_units = tuple(
            BloodUnit.collect(
                unit_id=unit_id,
                blood_group=self.blood_group,
                collected_date=collected_date,
                donation_id=donation_id,
            )
            for unit_id in unit_ids
        )
        if reason is None:
            reason = f"Added from donation {donation_id}" if donation_id else "Manual addition"

        event = LedgerEvent(
            action=LedgerAction.ADDED,
            units=len(new_units),
            performed_by=performed_by,
            timestamp=now,
            reason=reason,
            related_id=donation_id,
        )
        return self._evolve(units=self.units + new_units, event=event)

    def reserve(self, *, quantity: int, request_id: str, performed_by: str, now: datetime) -> "InventoryLedger":
        """
        Reserve `quantity` usable units for a request, oldest expiry first.

        Raises InsufficientStockError (and changes nothing) if fewer than
        `quantity` units are available and unexpired.
        """

        require_utc_timestamp("now", now)
        _require_positive_quantity("quantity", quantity)
        _require_reference("request_id", request_id)
        _require_reference("performed_by", performed_by)

        eligible = sorted(
            (unit for unit in self.units if unit.is_usable(now)),
            key=lambda unit: unit.expiry_date,
        )
        if len(eligible) < quantity:
            raise InsufficientStockError(self.blood_group.value, quantity, len(eligible))

        request_id = str(request_id)
        changed = {unit.unit_id: unit.reserve(request_id) for unit in eligible[:quantity]}
        event = LedgerEvent(
            action=LedgerAction.RESERVED,
            units=quantity,
            performed_by=performed_by,
            timestamp=now,
            reason=f"Reserved for request {request_id}",
            related_id=request_id,
        )
        return self._evolve(units=self._with_replaced(changed), event=event)

    def issue(self, *, quantity: int, request_id: str, performed_by: str, now: datetime) -> "InventoryLedger":
        """
        Hand `quantity` units reserved for `request_id` out of the facility.

        Reservations held by other requests are never touched.
        """

        require_utc_timestamp("now", now)
        _require_positive_quantity("quantity", quantity)
        _require_reference("request_id", request_id)
        _require_reference("performed_by", performed_by)

        held = self.units_reserved_for(request_id)
        if len(held) < quantity:
            raise InsufficientStockError(self.blood_group.value, quantity, len(held), reserved=True)

        request_id = str(request_id)
        changed = {unit.unit_id: unit.issue() for unit in held[:quantity]}
        event = LedgerEvent(
            action=LedgerAction.ISSUED,
            units=quantity,
            performed_by=performed_by,
            timestamp=now,
            reason=f"Issued for request {request_id}",
            related_id=request_id,
        )
        return self._evolve(units=self._with_replaced(changed), event=event)

    def unreserve(self, *, request_id: str, performed_by: str, now: datetime) -> "InventoryLedger":
        """Release every unit held for `request_id`. Returns self if none are held."""

        require_utc_timestamp("now", now)
        _require_reference("request_id", request_id)
        _require_reference("performed_by", performed_by)

        held = self.units_reserved_for(request_id)
        if not held:
            return self

        request_id = str(request_id)
        changed = {unit.unit_id: unit.release() for unit in held}
        event = LedgerEvent(
            action=LedgerAction.UNRESERVED,
            units=len(held),
            performed_by=performed_by,
            timestamp=now,
            reason=f"Unreserved from request {request_id}",
            related_id=request_id,
        )
        return self._evolve(units=self._with_replaced(changed), event=event)

    def mark_expired(self, *, performed_by: str, now: datetime) -> Tuple["InventoryLedger", int]:
        """
        Mark every unit past its expiry date as expired.

        Reserved units that expire leave the reserved count, available ones the
        available count. Zero eligible units returns (self, 0) with no event.
        """

        require_utc_timestamp("now", now)
        _require_reference("performed_by", performed_by)

        candidates = self.expired_unmarked(now)
        if not candidates:
            return self, 0

        changed = {unit.unit_id: unit.expire() for unit in candidates}
        event = LedgerEvent(
            action=LedgerAction.EXPIRED,
            units=len(candidates),
            performed_by=performed_by,
            timestamp=now,
            reason="Automatic expiry check",
        )
        return self._evolve(units=self._with_replaced(changed), event=event), len(candidates)

    def discard(
        self,
        *,
        unit_ids: Sequence[str],
        performed_by: str,
        now: datetime,
        reason: Optional[str] = None,
    ) -> Tuple["InventoryLedger", int]:
        """
        Write off the referenced units that are still available or reserved.

        Unknown ids and units already issued, expired or discarded are skipped.
        Returns the new ledger and the number of units actually discarded.
        """

        require_utc_timestamp("now", now)
        _require_reference("performed_by", performed_by)
        if not unit_ids:
            raise ValidationError("unit_ids must contain at least one id")

        changed: Dict[str, BloodUnit] = {}
        for unit_id in unit_ids:
            unit = self.find_unit(str(unit_id))
            if unit is None or unit.unit_id in changed or not unit.status.holds_stock:
                continue
            changed[unit.unit_id] = unit.discard()

        if not changed:
            return self, 0

        event = LedgerEvent(
            action=LedgerAction.DISCARDED,
            units=len(changed),
            performed_by=performed_by,
            timestamp=now,
            reason=reason or "Units discarded",
        )
        return self._evolve(units=self._with_replaced(changed), event=event), len(changed)
