"""HTTP controller layer for allocation validation, matching and commit."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from backend.controllers.dependencies import (
    get_commit_service,
    get_matching_service,
    get_metrics_service,
    get_validation_service,
)
from backend.domain.models import Allocation, MatchResult, ValidationResult
from backend.services.commit_service import (
    AllocationCommitService,
    AllocationNotFoundError,
    CommitTimeoutError,
)
from backend.services.matching_service import ResourceMatchingService
from backend.services.metrics_service import MetricsService
from backend.services.validation_service import (
    AllocationError,
    AllocationInputError,
    AllocationValidationService,
    ResourceNotFoundError,
    WorkOrderNotFoundError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["allocation"])


class ValidateAllocationRequest(BaseModel):
    """Input DTO validated before entering service layer."""

    work_order_id: str = Field(min_length=1)
    operator_ids: list[str] = Field(default_factory=list)
    machine_ids: list[str] = Field(default_factory=list)
    material_ids: list[str] = Field(default_factory=list)
    now: Optional[datetime] = None


class ValidationIssueResponse(BaseModel):
    severity: Literal["conflict", "warning", "suggestion"]
    code: str
    message: str
    resource_id: Optional[str] = None


class ValidationResultResponse(BaseModel):
    is_valid: bool
    conflicts: list[str]
    warnings: list[str]
    suggestions: list[str]
    issues: list[ValidationIssueResponse]

    @classmethod
    def from_domain(cls, result: ValidationResult) -> "ValidationResultResponse":
        return cls.model_validate(result.to_dict())


class FindOptimalRequest(BaseModel):
    work_order_id: str = Field(min_length=1)
    now: Optional[datetime] = None


class ScoredResourceResponse(BaseModel):
    resource_id: str
    name: str
    score: float = Field(ge=0.0, le=100.0)


class FindOptimalResponse(BaseModel):
    suggested_operators: list[ScoredResourceResponse]
    suggested_machines: list[ScoredResourceResponse]
    match_score: int = Field(ge=0, le=100)

    @classmethod
    def from_domain(cls, result: MatchResult) -> "FindOptimalResponse":
        return cls(
            suggested_operators=[
                ScoredResourceResponse(
                    resource_id=operator.operator_id,
                    name=operator.name,
                    score=score,
                )
                for operator, score in zip(result.suggested_operators, result.operator_scores)
            ],
            suggested_machines=[
                ScoredResourceResponse(
                    resource_id=machine.machine_id,
                    name=machine.name,
                    score=score,
                )
                for machine, score in zip(result.suggested_machines, result.machine_scores)
            ],
            match_score=result.match_score,
        )


class CommitAllocationRequest(BaseModel):
    work_order_id: str = Field(min_length=1)
    operator_ids: list[str] = Field(default_factory=list)
    machine_ids: list[str] = Field(default_factory=list)
    material_ids: list[str] = Field(default_factory=list)
    allocated_by: str = Field(min_length=1)
    start_time: datetime
    accept_warnings: bool = True
    status: Optional[Literal["proposed", "active"]] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0.0)
    now: Optional[datetime] = None


class AllocationResponse(BaseModel):
    allocation_id: str
    work_order_id: str
    operator_id: Optional[str] = None
    machine_id: Optional[str] = None
    material_id: Optional[str] = None
    status: Literal["proposed", "active", "completed", "cancelled"]
    allocated_at: datetime
    allocated_by: str
    start_time: datetime
    end_time: Optional[datetime] = None
    reserved_quantity: float = Field(ge=0.0)

    @classmethod
    def from_domain(cls, allocation: Allocation) -> "AllocationResponse":
        return cls(
            allocation_id=allocation.allocation_id,
            work_order_id=allocation.work_order_id,
            operator_id=allocation.operator_id,
            machine_id=allocation.machine_id,
            material_id=allocation.material_id,
            status=allocation.status.value,
            allocated_at=allocation.allocated_at,
            allocated_by=allocation.allocated_by,
            start_time=allocation.start_time,
            end_time=allocation.end_time,
            reserved_quantity=allocation.reserved_quantity,
        )


class CommitAllocationResponse(BaseModel):
    allocations: list[AllocationResponse]
    validation: ValidationResultResponse


class ReleaseAllocationRequest(BaseModel):
    status: Literal["completed", "cancelled"] = "cancelled"
    end_time: Optional[datetime] = None


class UtilizationResponse(BaseModel):
    overall: float = Field(ge=0.0, le=100.0)
    operators: float = Field(ge=0.0, le=100.0)
    machines: float = Field(ge=0.0, le=100.0)


class IdleResponse(BaseModel):
    idle_operators: int = Field(ge=0)
    idle_machines: int = Field(ge=0)


class ProductionResponse(BaseModel):
    active_orders: int = Field(ge=0)
    completed_orders: int = Field(ge=0)
    blocked_orders: int = Field(ge=0)
    pending_orders: int = Field(ge=0)


class DashboardMetricsResponse(BaseModel):
    utilization: UtilizationResponse
    idle: IdleResponse
    production: ProductionResponse
    last_updated: datetime


def _to_http_error(exc: AllocationError) -> HTTPException:
    if isinstance(exc, (WorkOrderNotFoundError, ResourceNotFoundError, AllocationNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, CommitTimeoutError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, AllocationInputError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post(
    "/validate_allocation",
    response_model=ValidationResultResponse,
    status_code=status.HTTP_200_OK,
)
async def validate_allocation(
    payload: ValidateAllocationRequest,
    service: AllocationValidationService = Depends(get_validation_service),
) -> ValidationResultResponse:
    """Classify a proposed resource set without changing the pool."""
    try:
        result = service.validate(
            work_order_id=payload.work_order_id,
            operator_ids=payload.operator_ids,
            machine_ids=payload.machine_ids,
            material_ids=payload.material_ids,
            now=payload.now,
        )
    except AllocationError as exc:
        raise _to_http_error(exc) from exc
    return ValidationResultResponse.from_domain(result)


@router.post(
    "/find_optimal_resources",
    response_model=FindOptimalResponse,
    status_code=status.HTTP_200_OK,
)
async def find_optimal_resources(
    payload: FindOptimalRequest,
    service: ResourceMatchingService = Depends(get_matching_service),
) -> FindOptimalResponse:
    try:
        result = service.find_optimal(work_order_id=payload.work_order_id, now=payload.now)
    except AllocationError as exc:
        raise _to_http_error(exc) from exc
    return FindOptimalResponse.from_domain(result)


@router.post(
    "/allocations",
    response_model=CommitAllocationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={status.HTTP_409_CONFLICT: {"model": ValidationResultResponse}},
)
def commit_allocation(
    payload: CommitAllocationRequest,
    service: AllocationCommitService = Depends(get_commit_service),
):
    """Commit a proposal; 409 carries the fresh validation that rejected it."""
    try:
        result = service.commit_allocation(
            work_order_id=payload.work_order_id,
            operator_ids=payload.operator_ids,
            machine_ids=payload.machine_ids,
            material_ids=payload.material_ids,
            allocated_by=payload.allocated_by,
            start_time=payload.start_time,
            accept_warnings=payload.accept_warnings,
            status=payload.status,
            timeout=payload.timeout_seconds,
            now=payload.now,
        )
    except AllocationError as exc:
        raise _to_http_error(exc) from exc

    validation = ValidationResultResponse.from_domain(result.validation)
    if not result.committed:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=validation.model_dump(mode="json"),
        )
    return CommitAllocationResponse(
        allocations=[AllocationResponse.from_domain(item) for item in result.allocations],
        validation=validation,
    )


@router.post(
    "/allocations/{allocation_id}/release",
    response_model=AllocationResponse,
    status_code=status.HTTP_200_OK,
)
def release_allocation(
    allocation_id: str,
    payload: Optional[ReleaseAllocationRequest] = None,
    service: AllocationCommitService = Depends(get_commit_service),
) -> AllocationResponse:
    request = payload or ReleaseAllocationRequest()
    try:
        allocation = service.release_allocation(
            allocation_id,
            status=request.status,
            end_time=request.end_time,
        )
    except AllocationError as exc:
        raise _to_http_error(exc) from exc
    return AllocationResponse.from_domain(allocation)


@router.get(
    "/metrics",
    response_model=DashboardMetricsResponse,
    status_code=status.HTTP_200_OK,
)
async def get_metrics(
    service: MetricsService = Depends(get_metrics_service),
) -> DashboardMetricsResponse:
    try:
        metrics = service.get_metrics()
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected metrics failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute metrics",
        ) from exc
    return DashboardMetricsResponse.model_validate(metrics.to_dict())
