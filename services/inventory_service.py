"""
Inventory ledger service.

Drives the per-blood-group ledgers on behalf of the donation recorder, the
request fulfillment workflow and administrative callers.

Key Features:
- Single writer per blood group (per-group lock); groups run in parallel
- Optimistic version check on save, retried on conflict
- Reserve/Issue are all-or-nothing and surface InsufficientStockError
- Donation ingestion never raises: failures are logged, the donation stands
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from domain.blood_group import BloodGroup
from domain.blood_unit import new_unit_id
from domain.errors import (
    ConcurrentModificationError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from domain.inventory import DEFAULT_LOCATION, InventoryLedger
from domain.time import require_utc_timestamp, utc_now
from repositories.ledger_repository import LedgerRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class GroupExpiryResult:
    blood_group: BloodGroup
    expired_units: int


@dataclass(frozen=True, slots=True)
class ExpiryCheckResult:
    """Outcome of an expiry sweep over every ledger. Only groups with expiries are listed."""
    results: List[GroupExpiryResult]
    total_expired: int


class InventoryService:
    """
    Application service for the inventory ledgers.

    All mutations of one blood group go through that group's lock, and every
    write is a version-checked load/transition/save cycle so that another
    process writing the same row is detected and retried.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        *,
        clock: Optional[Clock] = None,
        location: str = DEFAULT_LOCATION,
        max_retries: int = 3,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._repository = repository
        self._clock = clock or utc_now
        self._location = location
        self._max_retries = max_retries
        self._locks: Dict[BloodGroup, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def repository(self) -> LedgerRepository:
        return self._repository

    def now(self) -> datetime:
        now = self._clock()
        require_utc_timestamp("now", now)
        return now

    def _lock_for(self, blood_group: BloodGroup) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(blood_group)
            if lock is None:
                lock = self._locks[blood_group] = threading.Lock()
            return lock

    def _mutate(
        self,
        blood_group: BloodGroup,
        transition: Callable[[InventoryLedger, datetime], Tuple[InventoryLedger, T]],
        *,
        create_missing: bool = False,
    ) -> Tuple[InventoryLedger, T]:
        """
        Run one read-modify-write cycle on a blood group's ledger.

        The transition receives the current ledger and `now` and returns the new
        ledger plus a result. Nothing is written when the ledger comes back
        unchanged (no-op unreserve, zero expiries).
        """

        with self._lock_for(blood_group):
            attempt = 0
            while True:
                current = self._repository.get(blood_group)
                now = self.now()
                if current is None:
                    if not create_missing:
                        raise NotFoundError(blood_group.value)
                    base = InventoryLedger.empty(blood_group, now, self._location)
                    expected_version = None
                else:
                    base = current
                    expected_version = current.version

                updated, result = transition(base, now)
                if updated is base:
                    return base, result

                try:
                    self._repository.save(updated, expected_version)
                except ConcurrentModificationError:
                    attempt += 1
                    if attempt > self._max_retries:
                        logger.error(
                            "Giving up on %s ledger after %d concurrent modification retries",
                            blood_group.value,
                            self._max_retries,
                        )
                        raise
                    logger.warning(
                        "Concurrent modification on %s ledger, retrying (%d/%d)",
                        blood_group.value,
                        attempt,
                        self._max_retries,
                    )
                    continue
                return updated, result

    # ------------------------------------------------------------------
    # Additions
    # ------------------------------------------------------------------

    def add_units(
        self,
        blood_group: BloodGroup | str,
        units: int,
        performed_by: str,
        *,
        collected_date: Optional[datetime] = None,
        reason: Optional[str] = None,
    ) -> InventoryLedger:
        """Manually add `units` available units; creates the ledger on first use."""

        group = BloodGroup.parse(blood_group)
        _require_unit_count(units)
        if collected_date is not None:
            require_utc_timestamp("collected_date", collected_date)

        def transition(ledger: InventoryLedger, now: datetime) -> Tuple[InventoryLedger, None]:
            return (
                ledger.add_units(
                    unit_ids=[new_unit_id(group) for _ in range(units)],
                    collected_date=collected_date or now,
                    performed_by=performed_by,
                    now=now,
                    reason=reason or "Manual addition",
                ),
                None,
            )

        ledger, _ = self._mutate(group, transition, create_missing=True)
        logger.info("Added %d unit(s) of %s to inventory (manual)", units, group.value)
        return ledger

    def add_from_donation(
        self,
        blood_group: BloodGroup | str,
        units_collected: int,
        donation_id: str,
        donation_date: datetime,
        performed_by: str,
    ) -> Optional[InventoryLedger]:
        """
        Ingest the units of a recorded donation.

        The donation has already happened and been persisted by the caller, so
        this never raises: any failure is logged and None is returned.
        """

        try:
            group = BloodGroup.parse(blood_group)
            _require_unit_count(units_collected)
            require_utc_timestamp("donation_date", donation_date)
            donation_ref = str(donation_id)

            def transition(ledger: InventoryLedger, now: datetime) -> Tuple[InventoryLedger, None]:
                return (
                    ledger.add_units(
                        unit_ids=[new_unit_id(group) for _ in range(units_collected)],
                        collected_date=donation_date,
                        performed_by=performed_by,
                        now=now,
                        donation_id=donation_ref,
                    ),
                    None,
                )

            ledger, _ = self._mutate(group, transition, create_missing=True)
        except Exception:
            logger.exception(
                "Failed to add donation %s (%s x%s) to inventory; donation record is kept",
                donation_id,
                blood_group,
                units_collected,
            )
            return None

        logger.info(
            "Added %d unit(s) of %s to inventory from donation %s",
            units_collected,
            group.value,
            donation_ref,
        )
        return ledger

    # ------------------------------------------------------------------
    # Reservation workflow
    # ------------------------------------------------------------------

    def reserve(
        self,
        blood_group: BloodGroup | str,
        quantity: int,
        request_id: str,
        performed_by: str,
    ) -> InventoryLedger:
        group = BloodGroup.parse(blood_group)
        try:
            ledger, _ = self._mutate(
                group,
                lambda current, now: (
                    current.reserve(
                        quantity=quantity,
                        request_id=request_id,
                        performed_by=performed_by,
                        now=now,
                    ),
                    None,
                ),
            )
        except InsufficientStockError as e:
            logger.warning("Reservation for request %s failed: %s", request_id, e)
            raise
        logger.info("Reserved %d unit(s) of %s for request %s", quantity, group.value, request_id)
        return ledger

    def issue(
        self,
        blood_group: BloodGroup | str,
        quantity: int,
        request_id: str,
        performed_by: str,
    ) -> InventoryLedger:
        group = BloodGroup.parse(blood_group)
        try:
            ledger, _ = self._mutate(
                group,
                lambda current, now: (
                    current.issue(
                        quantity=quantity,
                        request_id=request_id,
                        performed_by=performed_by,
                        now=now,
                    ),
                    None,
                ),
            )
        except InsufficientStockError as e:
            logger.warning("Issue for request %s failed: %s", request_id, e)
            raise
        logger.info("Issued %d unit(s) of %s for request %s", quantity, group.value, request_id)
        return ledger

    def unreserve(
        self,
        blood_group: BloodGroup | str,
        request_id: str,
        performed_by: str,
    ) -> Tuple[InventoryLedger, int]:
        """Release every unit held for the request. Returns the ledger and the count released."""

        group = BloodGroup.parse(blood_group)

        def transition(ledger: InventoryLedger, now: datetime) -> Tuple[InventoryLedger, int]:
            held = len(ledger.units_reserved_for(request_id))
            return ledger.unreserve(request_id=request_id, performed_by=performed_by, now=now), held

        ledger, released = self._mutate(group, transition)
        if released:
            logger.info("Unreserved %d unit(s) of %s from request %s", released, group.value, request_id)
        return ledger, released

    # ------------------------------------------------------------------
    # Write-offs
    # ------------------------------------------------------------------

    def discard(
        self,
        blood_group: BloodGroup | str,
        unit_ids: Sequence[str],
        performed_by: str,
        *,
        reason: Optional[str] = None,
    ) -> Tuple[InventoryLedger, int]:
        group = BloodGroup.parse(blood_group)
        if not unit_ids:
            raise ValidationError("unit_ids must contain at least one id")

        ledger, discarded = self._mutate(
            group,
            lambda current, now: current.discard(
                unit_ids=unit_ids,
                performed_by=performed_by,
                now=now,
                reason=reason,
            ),
        )
        logger.info("Discarded %d of %d requested %s unit(s)", discarded, len(unit_ids), group.value)
        return ledger, discarded

    def mark_expired(self, blood_group: BloodGroup | str, performed_by: str) -> Tuple[InventoryLedger, int]:
        group = BloodGroup.parse(blood_group)
        ledger, expired = self._mutate(
            group,
            lambda current, now: current.mark_expired(performed_by=performed_by, now=now),
        )
        if expired:
            logger.info("Marked %d %s unit(s) as expired", expired, group.value)
        return ledger, expired

    def check_all_expiry(self, performed_by: str) -> ExpiryCheckResult:
        """Run the expiry sweep over every existing ledger."""

        results: List[GroupExpiryResult] = []
        for ledger in self._repository.list_all():
            _, expired = self.mark_expired(ledger.blood_group, performed_by)
            if expired > 0:
                results.append(GroupExpiryResult(blood_group=ledger.blood_group, expired_units=expired))

        total = sum(result.expired_units for result in results)
        logger.info("Expiry check complete. %d total unit(s) expired", total)
        return ExpiryCheckResult(results=results, total_expired=total)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_ledger(self, blood_group: BloodGroup | str) -> Optional[InventoryLedger]:
        return self._repository.get(BloodGroup.parse(blood_group))

    def get_ledger(self, blood_group: BloodGroup | str) -> InventoryLedger:
        """The stored ledger, or an empty unsaved one if the group was never seeded."""

        group = BloodGroup.parse(blood_group)
        ledger = self._repository.get(group)
        if ledger is None:
            return InventoryLedger.empty(group, self.now(), self._location)
        return ledger

    def list_ledgers(self) -> List[InventoryLedger]:
        return self._repository.list_all()


def _require_unit_count(units: int) -> None:
    if isinstance(units, bool) or not isinstance(units, int) or units <= 0:
        raise ValidationError(f"units must be a positive integer, got {units!r}")


__all__ = [
    "Clock",
    "ExpiryCheckResult",
    "GroupExpiryResult",
    "InventoryService",
]
