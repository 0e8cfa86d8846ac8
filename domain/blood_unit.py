"""
Domain: Individually tracked blood units.

Rules implemented here:
- Shelf life is a fixed 35 days: expiry_date = collected_date + 35 days.
- unit_id, collected_date and expiry_date never change after creation.
- Status transitions:
    available -> reserved -> issued
    reserved  -> available            (release / cancellation)
    available | reserved -> expired
    available | reserved -> discarded
  issued, expired and discarded are terminal. Anything else is a ConflictError.
- reserved_for is set iff status is reserved.

Units are immutable; each transition returns a new BloodUnit.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import uuid4

from .blood_group import BloodGroup
from .errors import ConflictError
from .time import require_utc_timestamp

SHELF_LIFE = timedelta(days=35)
EXPIRING_SOON_WINDOW = timedelta(days=7)


class UnitStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    ISSUED = "issued"
    EXPIRED = "expired"
    DISCARDED = "discarded"

    @property
    def holds_stock(self) -> bool:
        """True while the unit is physically on the shelf and counted."""

        return self in (UnitStatus.AVAILABLE, UnitStatus.RESERVED)


def new_unit_id(blood_group: BloodGroup) -> str:
    return f"{blood_group.value}-{uuid4().hex}"


@dataclass(frozen=True, slots=True)
class BloodUnit:
    """One discrete bag of collected blood with its own expiry."""

    unit_id: str
    blood_group: BloodGroup
    collected_date: datetime
    expiry_date: datetime
    status: UnitStatus = UnitStatus.AVAILABLE
    donation_id: Optional[str] = None
    reserved_for: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("collected_date", self.collected_date)
        require_utc_timestamp("expiry_date", self.expiry_date)
        if not self.unit_id:
            raise ValueError("unit_id must be non-empty")
        if self.expiry_date <= self.collected_date:
            raise ValueError("expiry_date must be after collected_date")
        if (self.status is UnitStatus.RESERVED) != (self.reserved_for is not None):
            raise ValueError("reserved_for must be set iff status is reserved")

    @staticmethod
    def collect(
        *,
        unit_id: str,
        blood_group: BloodGroup,
        collected_date: datetime,
        donation_id: Optional[str] = None,
    ) -> "BloodUnit":
        """Create a fresh available unit with the fixed shelf life."""

        require_utc_timestamp("collected_date", collected_date)
        return BloodUnit(
            unit_id=unit_id,
            blood_group=blood_group,
            collected_date=collected_date,
            expiry_date=collected_date + SHELF_LIFE,
            status=UnitStatus.AVAILABLE,
            donation_id=donation_id,
        )

    def _require(self, action: str, *allowed: UnitStatus) -> None:
        if self.status not in allowed:
            raise ConflictError(f"Cannot {action} unit {self.unit_id}: status is {self.status.value}")

    def reserve(self, request_id: str) -> "BloodUnit":
        self._require("reserve", UnitStatus.AVAILABLE)
        return replace(self, status=UnitStatus.RESERVED, reserved_for=request_id)

    def issue(self) -> "BloodUnit":
        self._require("issue", UnitStatus.RESERVED)
        return replace(self, status=UnitStatus.ISSUED, reserved_for=None)

    def release(self) -> "BloodUnit":
        self._require("release", UnitStatus.RESERVED)
        return replace(self, status=UnitStatus.AVAILABLE, reserved_for=None)

    def expire(self) -> "BloodUnit":
        self._require("expire", UnitStatus.AVAILABLE, UnitStatus.RESERVED)
        return replace(self, status=UnitStatus.EXPIRED, reserved_for=None)

    def discard(self) -> "BloodUnit":
        self._require("discard", UnitStatus.AVAILABLE, UnitStatus.RESERVED)
        return replace(self, status=UnitStatus.DISCARDED, reserved_for=None)

    def is_past_expiry(self, now: datetime) -> bool:
        return self.expiry_date <= now

    def is_usable(self, now: datetime) -> bool:
        """Available and not yet past its expiry date."""

        return self.status is UnitStatus.AVAILABLE and self.expiry_date > now

    def is_expiring_soon(self, now: datetime, window: timedelta = EXPIRING_SOON_WINDOW) -> bool:
        """Available units expiring within the window (but not already expired)."""

        if self.status is not UnitStatus.AVAILABLE:
            return False
        remaining = self.expiry_date - now
        return timedelta(0) < remaining <= window

    def awaiting_expiry(self, now: datetime) -> bool:
        """Past expiry but still counted as stock, i.e. not yet marked expired."""

        return self.status.holds_stock and self.is_past_expiry(now)
