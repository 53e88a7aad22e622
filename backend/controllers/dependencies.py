"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from backend.services.commit_service import AllocationCommitService
from backend.services.matching_service import ResourceMatchingService
from backend.services.metrics_service import MetricsService
from backend.services.validation_service import AllocationValidationService


def _require_service(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} service is not initialized",
        )
    return service


def get_validation_service(request: Request) -> AllocationValidationService:
    return _require_service(request, "validation_service", "Validation")


def get_matching_service(request: Request) -> ResourceMatchingService:
    return _require_service(request, "matching_service", "Matching")


def get_commit_service(request: Request) -> AllocationCommitService:
    return _require_service(request, "commit_service", "Commit")


def get_metrics_service(request: Request) -> MetricsService:
    return _require_service(request, "metrics_service", "Metrics")
