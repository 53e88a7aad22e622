"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the resource pool and services, registers routers, and loads the
optional pool snapshot on startup.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.controllers.allocation_controller import router as allocation_router
from backend.repository.resource_pool import ResourcePoolRepository
from backend.services.commit_service import AllocationCommitService
from backend.services.matching_service import ResourceMatchingService
from backend.services.metrics_service import MetricsService
from backend.services.validation_service import AllocationValidationService
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[ResourcePoolRepository] = None,
) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Instantiates all services with explicit dependency injection via app.state.
    Every service shares the one repository passed in or built here.
    """
    settings = settings or get_settings()

    # --- Repository (in-memory pool, one per app) ---
    repository = repository or ResourcePoolRepository(settings)

    # --- Services ---
    validation_service = AllocationValidationService(repository=repository, settings=settings)
    matching_service = ResourceMatchingService(repository=repository, settings=settings)
    commit_service = AllocationCommitService(repository=repository, settings=settings)
    metrics_service = MetricsService(repository=repository, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(allocation_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": settings.app_version}

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.validation_service = validation_service
    app.state.matching_service = matching_service
    app.state.commit_service = commit_service
    app.state.metrics_service = metrics_service

    return app


def _startup(app: FastAPI) -> None:
    """Load the configured pool snapshot, if any. Without one the pool starts empty."""
    settings: Settings = app.state.settings
    repository: ResourcePoolRepository = app.state.repository

    if settings.snapshot_path is None:
        logger.info("Startup: no snapshot configured, pool starts empty")
    else:
        logger.info("Startup: loading pool snapshot | path=%s", settings.snapshot_path)
        repository.load_snapshot_file(settings.snapshot_path)

    logger.info("Startup complete | app=%s | version=%s", settings.app_name, settings.app_version)


# Module-level app object for uvicorn
app = create_app()
