"""
Domain: Ledger history events.

The history log is append-only and is replayed for display only. It is never
used to derive current inventory state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .time import require_utc_timestamp


class LedgerAction(str, Enum):
    ADDED = "added"
    RESERVED = "reserved"
    UNRESERVED = "unreserved"
    ISSUED = "issued"
    EXPIRED = "expired"
    DISCARDED = "discarded"


@dataclass(frozen=True, slots=True)
class LedgerEvent:
    action: LedgerAction
    units: int
    performed_by: str
    timestamp: datetime
    reason: Optional[str] = None
    related_id: Optional[str] = None  # donation or request id

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)
        if self.units <= 0:
            raise ValueError("units must be > 0")
