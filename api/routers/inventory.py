"""
Inventory API Endpoints.

Endpoints for querying blood inventory and driving the reserve/issue/unreserve
workflow, plus administrative additions, write-offs and expiry sweeps.

Domain errors raised here are translated to HTTP responses by the exception
handlers registered in `api.main`.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import get_actor, get_inventory_service, get_reporting_service
from api.models import (
    AddUnitsRequest,
    BloodUnitResponse,
    DiscardRequest,
    DiscardResponse,
    DonationIntakeRequest,
    DonationIntakeResponse,
    ExpiryCheckResponse,
    GroupExpiryResponse,
    GroupStatsResponse,
    HistoryResponse,
    InventoryOverviewResponse,
    InventoryStatsResponse,
    InventoryTotals,
    IssueRequest,
    LedgerCountsResponse,
    LedgerDetailResponse,
    LedgerEventResponse,
    LedgerSummaryResponse,
    MarkExpiredResponse,
    ReserveRequest,
    UnreserveRequest,
)
from domain.blood_group import BloodGroup
from services.inventory_service import InventoryService
from services.reporting_service import DEFAULT_HISTORY_LIMIT, InventoryReportingService

router = APIRouter()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Request timestamps without an offset are taken to be UTC."""

    if value is None:
        return None
    if value.tzinfo is None or value.utcoffset() is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ============================================================================
# Reads
# ============================================================================

@router.get(
    "/inventory",
    response_model=InventoryOverviewResponse,
    summary="Inventory Overview",
    description="Counts for every blood group with stock, plus system-wide totals."
)
def get_all_inventory(reporting: InventoryReportingService = Depends(get_reporting_service)):
    overview = reporting.overview()
    return InventoryOverviewResponse(
        inventory=[
            LedgerSummaryResponse(
                blood_group=s.blood_group.value,
                units_available=s.units_available,
                units_reserved=s.units_reserved,
                expiring_soon=s.expiring_soon,
                expired=s.expired,
                location=s.location,
                last_updated=s.last_updated,
            )
            for s in overview.ledgers
        ],
        summary=InventoryTotals(
            total_available=overview.total_available,
            total_reserved=overview.total_reserved,
            total_expiring_soon=overview.total_expiring_soon,
            total_expired=overview.total_expired,
        ),
    )


@router.get(
    "/inventory/stats",
    response_model=InventoryStatsResponse,
    summary="Inventory Statistics",
    description="Available, reserved, issued, expired and expiring-soon counts per blood group."
)
def get_inventory_stats(reporting: InventoryReportingService = Depends(get_reporting_service)):
    stats = reporting.stats()
    return InventoryStatsResponse(
        total_available=stats.total_available,
        total_reserved=stats.total_reserved,
        total_issued=stats.total_issued,
        total_expired=stats.total_expired,
        expiring_soon=stats.expiring_soon,
        by_blood_group={
            group.value: GroupStatsResponse(
                available=g.available,
                reserved=g.reserved,
                issued=g.issued,
                expired=g.expired,
                expiring_soon=g.expiring_soon,
            )
            for group, g in stats.by_blood_group.items()
        },
    )


@router.get(
    "/inventory/history/{blood_group}",
    response_model=HistoryResponse,
    summary="Inventory History",
    description="Most recent history entries for a blood group, newest first."
)
def get_inventory_history(
    blood_group: str,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=1000, description="Maximum entries to return"),
    reporting: InventoryReportingService = Depends(get_reporting_service),
):
    group = BloodGroup.parse(blood_group)
    events = reporting.history(group, limit)
    return HistoryResponse(
        blood_group=group.value,
        history=[LedgerEventResponse.from_domain(e) for e in events],
    )


@router.get(
    "/inventory/{blood_group}",
    response_model=LedgerDetailResponse,
    summary="Blood Group Detail",
    description="Units, expiring-soon and expired units, and the last 20 history entries. "
                "Blood groups must be URL-encoded (e.g. `O%2B`)."
)
def get_inventory_by_blood_group(
    blood_group: str,
    reporting: InventoryReportingService = Depends(get_reporting_service),
):
    detail = reporting.detail(blood_group)
    return LedgerDetailResponse(
        blood_group=detail.blood_group.value,
        units_available=detail.units_available,
        units_reserved=detail.units_reserved,
        location=detail.location,
        last_updated=detail.last_updated,
        units=[BloodUnitResponse.from_domain(u) for u in detail.units],
        expiring_soon=[BloodUnitResponse.from_domain(u) for u in detail.expiring_soon],
        expired=[BloodUnitResponse.from_domain(u) for u in detail.expired],
        history=[LedgerEventResponse.from_domain(e) for e in detail.history],
    )


# ============================================================================
# Mutations
# ============================================================================

@router.post(
    "/inventory/add",
    response_model=LedgerCountsResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add Units Manually",
)
def add_units_manually(
    request: AddUnitsRequest,
    actor: str = Depends(get_actor),
    inventory: InventoryService = Depends(get_inventory_service),
):
    ledger = inventory.add_units(
        request.blood_group,
        request.units,
        actor,
        collected_date=_as_utc(request.collected_date),
        reason=request.reason,
    )
    return LedgerCountsResponse.from_domain(
        ledger, f"{request.units} unit(s) of {ledger.blood_group.value} added successfully"
    )


@router.post(
    "/inventory/donations",
    response_model=DonationIntakeResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Ingest Donation Units",
    description="Called after a donation is recorded. Inventory failures are logged and "
                "reported in the body, never as an error status: the donation stands."
)
def ingest_donation(
    request: DonationIntakeRequest,
    actor: str = Depends(get_actor),
    inventory: InventoryService = Depends(get_inventory_service),
):
    donation_date = _as_utc(request.donation_date) or inventory.now()
    ledger = inventory.add_from_donation(
        request.blood_group,
        request.units_collected,
        request.donation_id,
        donation_date,
        actor,
    )
    if ledger is None:
        return DonationIntakeResponse(
            donation_id=request.donation_id,
            inventory_updated=False,
            message="Donation accepted but inventory could not be updated",
        )
    return DonationIntakeResponse(
        donation_id=request.donation_id,
        inventory_updated=True,
        units_available=ledger.units_available,
        message=f"Added {request.units_collected} unit(s) of {ledger.blood_group.value} to inventory",
    )


@router.post("/inventory/reserve", response_model=LedgerCountsResponse, summary="Reserve Units")
def reserve_units(
    request: ReserveRequest,
    actor: str = Depends(get_actor),
    inventory: InventoryService = Depends(get_inventory_service),
):
    """
    Reserve units for a blood request, oldest expiry first.

    **All-or-nothing:** if fewer usable units exist than requested, nothing is
    reserved and a 409 is returned with the requested and available counts.
    """
    ledger = inventory.reserve(request.blood_group, request.units, request.request_id, actor)
    return LedgerCountsResponse.from_domain(
        ledger, f"{request.units} unit(s) of {ledger.blood_group.value} reserved successfully"
    )


@router.post("/inventory/issue", response_model=LedgerCountsResponse, summary="Issue Reserved Units")
def issue_units(
    request: IssueRequest,
    actor: str = Depends(get_actor),
    inventory: InventoryService = Depends(get_inventory_service),
):
    ledger = inventory.issue(request.blood_group, request.units, request.request_id, actor)
    return LedgerCountsResponse.from_domain(
        ledger, f"{request.units} unit(s) of {ledger.blood_group.value} issued successfully"
    )


@router.post("/inventory/unreserve", response_model=LedgerCountsResponse, summary="Cancel Reservation")
def unreserve_units(
    request: UnreserveRequest,
    actor: str = Depends(get_actor),
    inventory: InventoryService = Depends(get_inventory_service),
):
    ledger, released = inventory.unreserve(request.blood_group, request.request_id, actor)
    return LedgerCountsResponse.from_domain(
        ledger, f"{released} unit(s) of {ledger.blood_group.value} unreserved"
    )


@router.post(
    "/inventory/mark-expired/{blood_group}",
    response_model=MarkExpiredResponse,
    summary="Mark Expired Units",
)
def mark_expired_units(
    blood_group: str,
    actor: str = Depends(get_actor),
    inventory: InventoryService = Depends(get_inventory_service),
):
    ledger, expired = inventory.mark_expired(blood_group, actor)
    return MarkExpiredResponse(
        blood_group=ledger.blood_group.value,
        units_available=ledger.units_available,
        units_reserved=ledger.units_reserved,
        expired_units=expired,
        message=f"{expired} expired unit(s) marked",
    )


@router.post("/inventory/check-expiry", response_model=ExpiryCheckResponse, summary="Run Expiry Check")
def check_all_expiry(
    actor: str = Depends(get_actor),
    inventory: InventoryService = Depends(get_inventory_service),
):
    result = inventory.check_all_expiry(actor)
    return ExpiryCheckResponse(
        results=[
            GroupExpiryResponse(blood_group=r.blood_group.value, expired_units=r.expired_units)
            for r in result.results
        ],
        total_expired=result.total_expired,
        message=f"Expiry check complete. {result.total_expired} total unit(s) expired",
    )


@router.post("/inventory/discard", response_model=DiscardResponse, summary="Discard Units")
def discard_units(
    request: DiscardRequest,
    actor: str = Depends(get_actor),
    inventory: InventoryService = Depends(get_inventory_service),
):
    """
    Write off damaged or unusable units.

    Unknown ids and units that were already issued, expired or discarded are
    skipped; `discarded_units` reports how many were actually written off.
    """
    ledger, discarded = inventory.discard(request.blood_group, request.unit_ids, actor, reason=request.reason)
    return DiscardResponse(
        blood_group=ledger.blood_group.value,
        units_available=ledger.units_available,
        units_reserved=ledger.units_reserved,
        discarded_units=discarded,
        message=f"{discarded} unit(s) discarded",
    )
