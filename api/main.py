"""
Blood Inventory API - Main Application.

FastAPI application with CORS enabled for the camp management frontend.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from api.dependencies import Settings, build_inventory_service
from domain.errors import (
    ConflictError,
    InsufficientStockError,
    InventoryError,
    NotFoundError,
    ValidationError,
)
from services.inventory_service import InventoryService

logger = logging.getLogger(__name__)


def _error_response(status_code: int, error: str, exc: Exception, **extra) -> JSONResponse:
    body = {"error": error, "detail": str(exc), "status_code": status_code}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors onto HTTP status codes."""

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        return _error_response(400, "Invalid request", exc)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "Not found", exc)

    @app.exception_handler(InsufficientStockError)
    async def handle_insufficient_stock(request: Request, exc: InsufficientStockError):
        return _error_response(
            409, "Insufficient stock", exc, requested=exc.requested, available=exc.available
        )

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        return _error_response(409, "Conflict", exc)

    @app.exception_handler(InventoryError)
    async def handle_inventory_error(request: Request, exc: InventoryError):
        logger.error("Unhandled inventory error on %s: %s", request.url.path, exc)
        return _error_response(500, "Inventory error", exc)


def create_app(settings: Optional[Settings] = None, service: Optional[InventoryService] = None) -> FastAPI:
    """
    Build the application.

    The inventory service is constructed here, once, and stored on app.state;
    pass `service` to inject a pre-built one (tests, scripts).
    """

    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Blood Inventory API",
        description="REST API for blood unit inventory, reservations and expiry tracking",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],  # Allow all HTTP methods
        allow_headers=["*"],  # Allow all headers
    )

    app.state.settings = settings
    app.state.inventory_service = service or build_inventory_service(settings)
    register_exception_handlers(app)

    @app.get("/health", tags=["Health"])
    def health_check():
        """
        Health check endpoint.

        Returns the API status and version.
        """
        return {
            "status": "healthy",
            "version": __version__,
            "service": "blood-inventory-api"
        }

    @app.get("/", tags=["Root"])
    def root():
        """
        Root endpoint with API information.
        """
        return {
            "message": "Blood Inventory API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health"
        }

    # Import and include routers
    from api.routers import inventory

    app.include_router(inventory.router, prefix="/api/v1", tags=["Inventory"])

    logger.info("Blood Inventory API %s started (%s backend)", __version__, settings.backend)
    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=os.getenv("API_HOST", "127.0.0.1"),
        port=int(os.getenv("API_PORT", "8000")),
    )
