"""Domain models for shop-floor resource allocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from backend.utils.clock import ensure_utc


class ResourceStatus(str, Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"


class Shift(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    NIGHT = "night"


class WorkOrderStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class WorkOrderPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class AllocationStatus(str, Enum):
    PROPOSED = "proposed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class IssueSeverity(str, Enum):
    CONFLICT = "conflict"
    WARNING = "warning"
    SUGGESTION = "suggestion"


SpecificationValue = Union[str, int, float]


@dataclass(frozen=True)
class Skill:
    skill_id: str
    name: str
    level: int
    certification_required: bool = False
    certification_expiry: Optional[datetime] = None

    def meets_level(self, preferred_level: int) -> bool:
        return self.level >= preferred_level

    def is_compliant(self, now: datetime) -> bool:
        if not self.certification_required:
            return True
        if self.certification_expiry is None:
            return False
        return ensure_utc(self.certification_expiry) > ensure_utc(now)


@dataclass(frozen=True)
class Capability:
    capability_id: str
    name: str
    specifications: dict[str, SpecificationValue] = field(
        default_factory=dict, compare=False, hash=False
    )


@dataclass(frozen=True)
class AvailabilityWindow:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Operator:
    operator_id: str
    name: str
    employee_id: str
    status: ResourceStatus
    skills: tuple[Skill, ...]
    shift: Shift
    location: str
    utilization_rate: float
    availability: Optional[AvailabilityWindow] = None
    current_work_order: Optional[str] = None

    @property
    def skill_ids(self) -> frozenset[str]:
        return frozenset(skill.skill_id for skill in self.skills)

    @property
    def is_free(self) -> bool:
        return self.status == ResourceStatus.AVAILABLE and self.current_work_order is None


@dataclass(frozen=True)
class MaintenanceSchedule:
    next_maintenance: datetime
    last_maintenance: Optional[datetime] = None


@dataclass(frozen=True)
class MachinePerformance:
    efficiency: float
    uptime: float


@dataclass(frozen=True)
class Machine:
    machine_id: str
    name: str
    machine_type: str
    status: ResourceStatus
    capabilities: tuple[Capability, ...]
    location: str
    utilization_rate: float
    performance: MachinePerformance
    maintenance_schedule: Optional[MaintenanceSchedule] = None
    current_work_order: Optional[str] = None

    @property
    def capability_ids(self) -> frozenset[str]:
        return frozenset(capability.capability_id for capability in self.capabilities)

    @property
    def is_free(self) -> bool:
        return self.status == ResourceStatus.AVAILABLE and self.current_work_order is None


@dataclass(frozen=True)
class Material:
    material_id: str
    name: str
    sku: str
    quantity: float
    unit: str
    location: str
    reserved_quantity: float = 0.0
    reorder_point: float = 0.0

    @property
    def available_quantity(self) -> float:
        return self.quantity - self.reserved_quantity


@dataclass(frozen=True)
class OperatorRequirements:
    count: int = 0
    required_skills: tuple[str, ...] = ()
    preferred_skill_level: Optional[int] = None


@dataclass(frozen=True)
class MachineRequirements:
    count: int = 0
    required_capabilities: tuple[str, ...] = ()
    machine_types: Optional[tuple[str, ...]] = None


@dataclass(frozen=True)
class MaterialRequirement:
    material_id: str
    required_quantity: float


@dataclass(frozen=True)
class WorkOrderRequirements:
    operators: OperatorRequirements = field(default_factory=OperatorRequirements)
    machines: MachineRequirements = field(default_factory=MachineRequirements)
    materials: tuple[MaterialRequirement, ...] = ()

    def required_quantity_for(self, material_id: str) -> float:
        return sum(
            item.required_quantity
            for item in self.materials
            if item.material_id == material_id
        )


@dataclass(frozen=True)
class AssignedResources:
    operators: tuple[str, ...] = ()
    machines: tuple[str, ...] = ()
    materials: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.operators or self.machines or self.materials)


@dataclass(frozen=True)
class WorkOrder:
    work_order_id: str
    order_number: str
    product_name: str
    priority: WorkOrderPriority
    status: WorkOrderStatus
    requirements: WorkOrderRequirements
    quantity: int = 0
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    assigned_resources: AssignedResources = field(default_factory=AssignedResources)


@dataclass(frozen=True)
class Allocation:
    """Binds exactly one operator, machine or material to one work order."""

    allocation_id: str
    work_order_id: str
    status: AllocationStatus
    allocated_at: datetime
    allocated_by: str
    start_time: datetime
    operator_id: Optional[str] = None
    machine_id: Optional[str] = None
    material_id: Optional[str] = None
    end_time: Optional[datetime] = None
    reserved_quantity: float = 0.0

    @property
    def is_released(self) -> bool:
        return self.status in (AllocationStatus.COMPLETED, AllocationStatus.CANCELLED)

    @property
    def resource_kind(self) -> str:
        if self.operator_id is not None:
            return "operator"
        if self.machine_id is not None:
            return "machine"
        return "material"

    @property
    def resource_id(self) -> str:
        return self.operator_id or self.machine_id or self.material_id or ""


@dataclass(frozen=True)
class ValidationIssue:
    severity: IssueSeverity
    code: str
    message: str
    resource_id: Optional[str] = None


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validation; the string lists render ``issues`` by severity."""

    issues: tuple[ValidationIssue, ...] = ()

    def _messages(self, severity: IssueSeverity) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == severity]

    @property
    def conflicts(self) -> list[str]:
        return self._messages(IssueSeverity.CONFLICT)

    @property
    def warnings(self) -> list[str]:
        return self._messages(IssueSeverity.WARNING)

    @property
    def suggestions(self) -> list[str]:
        return self._messages(IssueSeverity.SUGGESTION)

    @property
    def is_valid(self) -> bool:
        return not any(issue.severity == IssueSeverity.CONFLICT for issue in self.issues)

    def to_dict(self) -> dict[str, object]:
        return {
            "is_valid": self.is_valid,
            "conflicts": self.conflicts,
            "warnings": self.warnings,
            "suggestions": self.suggestions,
            "issues": [
                {
                    "severity": issue.severity.value,
                    "code": issue.code,
                    "message": issue.message,
                    "resource_id": issue.resource_id,
                }
                for issue in self.issues
            ],
        }


@dataclass(frozen=True)
class MatchResult:
    suggested_operators: tuple[Operator, ...]
    suggested_machines: tuple[Machine, ...]
    match_score: int
    operator_scores: tuple[float, ...] = ()
    machine_scores: tuple[float, ...] = ()


@dataclass(frozen=True)
class CommitResult:
    committed: bool
    validation: ValidationResult
    allocations: tuple[Allocation, ...] = ()
