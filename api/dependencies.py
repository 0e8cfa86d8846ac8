"""
Application settings and service wiring.

Settings come from environment variables (a `.env` file in the project root is
loaded first). The inventory service is built once at startup and injected into
routes with FastAPI dependencies, so tests can swap it out.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import Header, Request

from domain.inventory import DEFAULT_LOCATION
from repositories.client import ENV_PATH
from repositories.ledger_repository import (
    InMemoryLedgerRepository,
    LedgerRepository,
    SupabaseLedgerRepository,
)
from services.inventory_service import InventoryService
from services.reporting_service import InventoryReportingService

logger = logging.getLogger(__name__)

DEFAULT_ACTOR = "system"


@dataclass(frozen=True, slots=True)
class Settings:
    backend: str = "memory"  # "memory" or "supabase"
    location: str = DEFAULT_LOCATION
    max_retries: int = 3
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = ("*",)

    @staticmethod
    def from_env() -> "Settings":
        load_dotenv(dotenv_path=ENV_PATH)

        backend = os.getenv("INVENTORY_BACKEND", "memory").strip().lower()
        if backend not in ("memory", "supabase"):
            raise RuntimeError(
                f"Invalid INVENTORY_BACKEND '{backend}'. Must be 'memory' or 'supabase'."
            )

        raw_retries = os.getenv("INVENTORY_MAX_RETRIES", "3")
        try:
            max_retries = int(raw_retries)
        except ValueError:
            raise RuntimeError(f"INVENTORY_MAX_RETRIES must be an integer, got '{raw_retries}'") from None

        origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

        return Settings(
            backend=backend,
            location=os.getenv("INVENTORY_LOCATION", DEFAULT_LOCATION),
            max_retries=max_retries,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cors_origins=tuple(origins) or ("*",),
        )


def build_repository(settings: Settings) -> LedgerRepository:
    if settings.backend == "supabase":
        from repositories.client import create_supabase_client

        logger.info("Using Supabase ledger repository")
        return SupabaseLedgerRepository(create_supabase_client())

    logger.info("Using in-memory ledger repository")
    return InMemoryLedgerRepository()


def build_inventory_service(settings: Settings, repository: Optional[LedgerRepository] = None) -> InventoryService:
    return InventoryService(
        repository if repository is not None else build_repository(settings),
        location=settings.location,
        max_retries=settings.max_retries,
    )


def get_inventory_service(request: Request) -> InventoryService:
    return request.app.state.inventory_service


def get_reporting_service(request: Request) -> InventoryReportingService:
    return InventoryReportingService(request.app.state.inventory_service)


def get_actor(x_actor_id: Optional[str] = Header(None, description="Staff member performing the action")) -> str:
    """Identity recorded in the ledger history. Authentication happens upstream."""

    if x_actor_id is None or not x_actor_id.strip():
        return DEFAULT_ACTOR
    return x_actor_id.strip()


__all__: List[str] = [
    "DEFAULT_ACTOR",
    "Settings",
    "build_inventory_service",
    "build_repository",
    "get_actor",
    "get_inventory_service",
    "get_reporting_service",
]
