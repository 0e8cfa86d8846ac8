"""
Domain: Inventory error kinds.

Every failure raised by the ledger is one of these. The API layer maps them to
HTTP status codes; services let them propagate unchanged.
"""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for all inventory domain errors."""


class ValidationError(InventoryError):
    """Bad input: non-positive quantity, unknown blood group, empty id list."""


class NotFoundError(InventoryError):
    """No ledger exists for a blood group that a mutation targets."""

    def __init__(self, blood_group: str):
        self.blood_group = blood_group
        super().__init__(f"No inventory found for blood group {blood_group}")


class InsufficientStockError(InventoryError):
    """Raised when a reservation or issue cannot be fulfilled in full."""

    def __init__(self, blood_group: str, requested: int, available: int, *, reserved: bool = False):
        self.blood_group = blood_group
        self.requested = requested
        self.available = available
        kind = "reserved units" if reserved else "units available"
        super().__init__(
            f"Insufficient {kind} for {blood_group}. "
            f"Requested: {requested}, Available: {available}"
        )


class ConflictError(InventoryError):
    """Illegal unit state transition or inconsistent ledger state."""


class ConcurrentModificationError(ConflictError):
    """The stored ledger changed between load and save."""

    def __init__(self, blood_group: str, expected_version: int | None):
        self.blood_group = blood_group
        self.expected_version = expected_version
        super().__init__(
            f"Ledger for {blood_group} was modified concurrently "
            f"(expected version {expected_version})"
        )
