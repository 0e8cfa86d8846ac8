"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api modules.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from repositories.ledger_repository import InMemoryLedgerRepository  # noqa: E402
from services.inventory_service import InventoryService  # noqa: E402

DAY_0 = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


@pytest.fixture
def day0() -> datetime:
    return DAY_0


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(DAY_0)


@pytest.fixture
def repository() -> InMemoryLedgerRepository:
    return InMemoryLedgerRepository()


@pytest.fixture
def service(repository: InMemoryLedgerRepository, clock: FakeClock) -> InventoryService:
    return InventoryService(repository, clock=clock)
