"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from domain.blood_unit import BloodUnit
from domain.inventory import InventoryLedger
from domain.ledger_event import LedgerEvent


# ============================================================================
# Shared Models
# ============================================================================

class BloodUnitResponse(BaseModel):
    """Single tracked blood unit."""
    unit_id: str
    donation_id: Optional[str] = None
    collected_date: datetime
    expiry_date: datetime
    status: str  # available, reserved, issued, expired, discarded
    reserved_for: Optional[str] = None

    @staticmethod
    def from_domain(unit: BloodUnit) -> "BloodUnitResponse":
        return BloodUnitResponse(
            unit_id=unit.unit_id,
            donation_id=unit.donation_id,
            collected_date=unit.collected_date,
            expiry_date=unit.expiry_date,
            status=unit.status.value,
            reserved_for=unit.reserved_for,
        )


class LedgerEventResponse(BaseModel):
    """Single history entry."""
    action: str
    units: int
    performed_by: str
    reason: Optional[str] = None
    related_id: Optional[str] = None
    timestamp: datetime

    @staticmethod
    def from_domain(event: LedgerEvent) -> "LedgerEventResponse":
        return LedgerEventResponse(
            action=event.action.value,
            units=event.units,
            performed_by=event.performed_by,
            reason=event.reason,
            related_id=event.related_id,
            timestamp=event.timestamp,
        )


class LedgerCountsResponse(BaseModel):
    """Counters returned after a mutation."""
    blood_group: str
    units_available: int
    units_reserved: int
    message: Optional[str] = None

    @staticmethod
    def from_domain(ledger: InventoryLedger, message: Optional[str] = None) -> "LedgerCountsResponse":
        return LedgerCountsResponse(
            blood_group=ledger.blood_group.value,
            units_available=ledger.units_available,
            units_reserved=ledger.units_reserved,
            message=message,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "blood_group": "O+",
                "units_available": 14,
                "units_reserved": 2,
                "message": "2 unit(s) of O+ reserved successfully"
            }
        }


# ============================================================================
# Overview / Detail / Stats Models
# ============================================================================

class LedgerSummaryResponse(BaseModel):
    blood_group: str
    units_available: int
    units_reserved: int
    expiring_soon: int
    expired: int
    location: str
    last_updated: datetime


class InventoryTotals(BaseModel):
    total_available: int
    total_reserved: int
    total_expiring_soon: int
    total_expired: int


class InventoryOverviewResponse(BaseModel):
    """Response for the all-groups inventory overview."""
    inventory: List[LedgerSummaryResponse]
    summary: InventoryTotals

    class Config:
        json_schema_extra = {
            "example": {
                "inventory": [
                    {
                        "blood_group": "A+",
                        "units_available": 12,
                        "units_reserved": 0,
                        "expiring_soon": 3,
                        "expired": 0,
                        "location": "Main Blood Bank",
                        "last_updated": "2025-01-01T12:00:00Z"
                    }
                ],
                "summary": {
                    "total_available": 12,
                    "total_reserved": 0,
                    "total_expiring_soon": 3,
                    "total_expired": 0
                }
            }
        }


class LedgerDetailResponse(BaseModel):
    """Full detail for one blood group."""
    blood_group: str
    units_available: int
    units_reserved: int
    location: str
    last_updated: datetime
    units: List[BloodUnitResponse]
    expiring_soon: List[BloodUnitResponse]
    expired: List[BloodUnitResponse]
    history: List[LedgerEventResponse]


class GroupStatsResponse(BaseModel):
    available: int
    reserved: int
    issued: int
    expired: int
    expiring_soon: int


class InventoryStatsResponse(BaseModel):
    total_available: int
    total_reserved: int
    total_issued: int
    total_expired: int
    expiring_soon: int
    by_blood_group: Dict[str, GroupStatsResponse]


class HistoryResponse(BaseModel):
    blood_group: str
    history: List[LedgerEventResponse]


# ============================================================================
# Mutation Requests
# ============================================================================

class AddUnitsRequest(BaseModel):
    """Manually add units to a blood group."""
    blood_group: str = Field(..., description="Blood group, e.g. 'O+'")
    units: int = Field(..., gt=0, description="Number of units to add")
    collected_date: Optional[datetime] = Field(None, description="Collection time (default: now)")
    reason: Optional[str] = Field(None, description="Reason recorded in the history log")

    class Config:
        json_schema_extra = {
            "example": {
                "blood_group": "O+",
                "units": 2,
                "collected_date": "2025-01-01T09:30:00Z",
                "reason": "Transfer from partner blood bank"
            }
        }


class DonationIntakeRequest(BaseModel):
    """Units collected by a donation the caller has already recorded."""
    blood_group: str
    units_collected: int = Field(1, description="Units collected in the donation")
    donation_id: str = Field(..., min_length=1)
    donation_date: Optional[datetime] = Field(None, description="Donation time (default: now)")


class DonationIntakeResponse(BaseModel):
    donation_id: str
    inventory_updated: bool
    units_available: Optional[int] = None
    message: str


class ReserveRequest(BaseModel):
    blood_group: str
    units: int = Field(..., gt=0)
    request_id: str = Field(..., min_length=1, description="Blood request the units are held for")


class IssueRequest(BaseModel):
    blood_group: str
    units: int = Field(..., gt=0)
    request_id: str = Field(..., min_length=1)


class UnreserveRequest(BaseModel):
    blood_group: str
    request_id: str = Field(..., min_length=1)


class DiscardRequest(BaseModel):
    blood_group: str
    unit_ids: List[str] = Field(..., min_length=1)
    reason: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "blood_group": "B-",
                "unit_ids": ["B--3f9a0c2e8d1b4c6fa7e5d9b0c1a2f3e4"],
                "reason": "Bag damaged in transport"
            }
        }


class DiscardResponse(LedgerCountsResponse):
    discarded_units: int


class MarkExpiredResponse(LedgerCountsResponse):
    expired_units: int


class GroupExpiryResponse(BaseModel):
    blood_group: str
    expired_units: int


class ExpiryCheckResponse(BaseModel):
    results: List[GroupExpiryResponse]
    total_expired: int
    message: str


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int
    requested: Optional[int] = None
    available: Optional[int] = None

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Insufficient stock",
                "detail": "Insufficient units available for O-. Requested: 5, Available: 3",
                "status_code": 409,
                "requested": 5,
                "available": 3
            }
        }
