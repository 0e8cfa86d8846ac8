"""
Ledger repository (persistence).

This module provides *only* persistence operations for the InventoryLedger
aggregate. It contains no business rules about reservations or expiry; it only
enforces the optimistic concurrency check on save: a ledger is written only if
the stored version still equals the version it was loaded at.

Layout: one row per blood group, embedding its units and history as JSON arrays.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

from domain.blood_group import BloodGroup
from domain.blood_unit import BloodUnit, UnitStatus
from domain.errors import ConcurrentModificationError
from domain.inventory import DEFAULT_LOCATION, InventoryLedger
from domain.ledger_event import LedgerAction, LedgerEvent
from domain.time import require_utc_timestamp

logger = logging.getLogger(__name__)

# Supabase table name for inventory ledgers.
# Keep this aligned with your database schema.
_INVENTORY_TABLE: str = "inventory"

_UNIQUE_VIOLATION = "23505"


class LedgerRepository(Protocol):
    def get(self, blood_group: BloodGroup) -> Optional[InventoryLedger]:
        ...

    def list_all(self) -> List[InventoryLedger]:
        ...

    def save(self, ledger: InventoryLedger, expected_version: Optional[int]) -> None:
        """
        Persist `ledger`.

        expected_version is the version the caller loaded (None if the ledger
        did not exist). Raises ConcurrentModificationError on mismatch.
        """
        ...


class InMemoryLedgerRepository:
    """Process-local store. Ledgers are immutable, so they are kept as-is."""

    def __init__(self) -> None:
        self._ledgers: Dict[BloodGroup, InventoryLedger] = {}
        self._lock = threading.Lock()

    def get(self, blood_group: BloodGroup) -> Optional[InventoryLedger]:
        with self._lock:
            return self._ledgers.get(blood_group)

    def list_all(self) -> List[InventoryLedger]:
        with self._lock:
            ledgers = list(self._ledgers.values())
        return sorted(ledgers, key=lambda ledger: ledger.blood_group.value)

    def save(self, ledger: InventoryLedger, expected_version: Optional[int]) -> None:
        with self._lock:
            current = self._ledgers.get(ledger.blood_group)
            current_version = None if current is None else current.version
            if current_version != expected_version:
                raise ConcurrentModificationError(ledger.blood_group.value, expected_version)
            self._ledgers[ledger.blood_group] = ledger

    def clear(self) -> None:
        with self._lock:
            self._ledgers.clear()


# ----------------------------------------------------------------------
# Supabase row mapping
# ----------------------------------------------------------------------


def _to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a Supabase timestamp into a timezone-aware UTC datetime.

    Supabase commonly returns ISO-8601 strings, sometimes with a trailing 'Z'.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _unit_to_json(unit: BloodUnit) -> dict[str, Any]:
    return {
        "unit_id": unit.unit_id,
        "donation_id": unit.donation_id,
        "collected_date_utc": _to_iso_utc(unit.collected_date, name="collected_date"),
        "expiry_date_utc": _to_iso_utc(unit.expiry_date, name="expiry_date"),
        "status": unit.status.value,
        "reserved_for": unit.reserved_for,
    }


def _json_to_unit(blood_group: BloodGroup, data: Mapping[str, Any]) -> BloodUnit:
    return BloodUnit(
        unit_id=str(data["unit_id"]),
        blood_group=blood_group,
        collected_date=_parse_utc_datetime(data["collected_date_utc"]),
        expiry_date=_parse_utc_datetime(data["expiry_date_utc"]),
        status=UnitStatus(str(data["status"])),
        donation_id=_optional_str(data.get("donation_id")),
        reserved_for=_optional_str(data.get("reserved_for")),
    )


def _event_to_json(event: LedgerEvent) -> dict[str, Any]:
    return {
        "action": event.action.value,
        "units": event.units,
        "performed_by": event.performed_by,
        "reason": event.reason,
        "related_id": event.related_id,
        "timestamp_utc": _to_iso_utc(event.timestamp, name="timestamp"),
    }


def _json_to_event(data: Mapping[str, Any]) -> LedgerEvent:
    return LedgerEvent(
        action=LedgerAction(str(data["action"])),
        units=int(data["units"]),
        performed_by=str(data["performed_by"]),
        timestamp=_parse_utc_datetime(data["timestamp_utc"]),
        reason=_optional_str(data.get("reason")),
        related_id=_optional_str(data.get("related_id")),
    )


def ledger_to_row(ledger: InventoryLedger) -> dict[str, Any]:
    """Convert an InventoryLedger into a Supabase row payload."""

    return {
        "blood_group": ledger.blood_group.value,
        "location": ledger.location,
        "units_available": ledger.units_available,
        "units_reserved": ledger.units_reserved,
        "last_updated_utc": _to_iso_utc(ledger.last_updated, name="last_updated"),
        "version": ledger.version,
        "units": [_unit_to_json(unit) for unit in ledger.units],
        "history": [_event_to_json(event) for event in ledger.history],
    }


def row_to_ledger(row: Mapping[str, Any]) -> InventoryLedger:
    """
    Convert a Supabase row into an InventoryLedger.

    Stored counters are ignored in favour of recounting the units; a mismatch
    is logged so drifted rows can be spotted.
    """

    blood_group = BloodGroup(str(row["blood_group"]))
    ledger = InventoryLedger.restore(
        blood_group=blood_group,
        units=[_json_to_unit(blood_group, unit) for unit in row.get("units") or []],
        history=[_json_to_event(event) for event in row.get("history") or []],
        last_updated=_parse_utc_datetime(row["last_updated_utc"]),
        location=str(row.get("location") or DEFAULT_LOCATION),
        version=int(row.get("version") or 0),
    )

    stored = (row.get("units_available"), row.get("units_reserved"))
    if stored != (ledger.units_available, ledger.units_reserved):
        logger.warning(
            "Reconciled %s ledger counters: stored available=%s reserved=%s, "
            "recounted available=%s reserved=%s",
            blood_group.value,
            stored[0],
            stored[1],
            ledger.units_available,
            ledger.units_reserved,
        )
    return ledger


class SupabaseLedgerRepository:
    """Ledger store backed by a Supabase (PostgREST) table."""

    def __init__(self, client: Any, table: str = _INVENTORY_TABLE) -> None:
        self._client = client
        self._table = table

    def get(self, blood_group: BloodGroup) -> Optional[InventoryLedger]:
        response = (
            self._client.table(self._table)
            .select("*")
            .eq("blood_group", blood_group.value)
            .limit(1)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to fetch inventory ledger: {error}")

        rows = getattr(response, "data", None) or []
        return row_to_ledger(rows[0]) if rows else None

    def list_all(self) -> List[InventoryLedger]:
        response = self._client.table(self._table).select("*").order("blood_group").execute()
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to fetch inventory ledgers: {error}")

        rows = getattr(response, "data", None) or []
        return [row_to_ledger(row) for row in rows]

    def save(self, ledger: InventoryLedger, expected_version: Optional[int]) -> None:
        from postgrest.exceptions import APIError

        payload = ledger_to_row(ledger)
        blood_group = ledger.blood_group.value

        if expected_version is None:
            try:
                response = self._client.table(self._table).insert(payload).execute()
            except APIError as e:
                if str(getattr(e, "code", "")) == _UNIQUE_VIOLATION:
                    raise ConcurrentModificationError(blood_group, expected_version) from None
                raise RuntimeError(f"Failed to create inventory ledger: {e}") from e

            error = getattr(response, "error", None)
            if error:
                if str(getattr(error, "code", None)) == _UNIQUE_VIOLATION:
                    raise ConcurrentModificationError(blood_group, expected_version) from None
                raise RuntimeError(f"Failed to create inventory ledger: {error}")
            return

        # Conditional update: only matches if nobody wrote since we loaded.
        try:
            response = (
                self._client.table(self._table)
                .update(payload)
                .eq("blood_group", blood_group)
                .eq("version", expected_version)
                .execute()
            )
        except APIError as e:
            raise RuntimeError(f"Failed to update inventory ledger: {e}") from e

        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to update inventory ledger: {error}")

        updated_rows = getattr(response, "data", None) or []
        if not updated_rows:
            raise ConcurrentModificationError(blood_group, expected_version)


__all__ = [
    "LedgerRepository",
    "InMemoryLedgerRepository",
    "SupabaseLedgerRepository",
    "ledger_to_row",
    "row_to_ledger",
]
