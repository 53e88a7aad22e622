"""JSON snapshot schema for seeding the resource pool from the host store.

Field names follow the store's camelCase export; snake_case is accepted too.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from backend.domain.models import (
    AssignedResources,
    AvailabilityWindow,
    Capability,
    Machine,
    MachinePerformance,
    MachineRequirements,
    MaintenanceSchedule,
    Material,
    MaterialRequirement,
    Operator,
    OperatorRequirements,
    ResourceStatus,
    Shift,
    Skill,
    WorkOrder,
    WorkOrderPriority,
    WorkOrderRequirements,
    WorkOrderStatus,
)


class SnapshotLoadError(Exception):
    """Raised when a snapshot file is missing or does not match the schema."""


class _SnapshotModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SkillRecord(_SnapshotModel):
    id: str = Field(min_length=1)
    name: str
    level: int = Field(ge=1, le=5)
    certification_required: bool = False
    certification_expiry: Optional[datetime] = None

    def to_domain(self) -> Skill:
        return Skill(
            skill_id=self.id,
            name=self.name,
            level=self.level,
            certification_required=self.certification_required,
            certification_expiry=self.certification_expiry,
        )


class CapabilityRecord(_SnapshotModel):
    id: str = Field(min_length=1)
    name: str
    specifications: dict[str, Union[str, int, float]] = Field(default_factory=dict)

    def to_domain(self) -> Capability:
        return Capability(
            capability_id=self.id,
            name=self.name,
            specifications=dict(self.specifications),
        )


class WindowRecord(_SnapshotModel):
    start: datetime
    end: datetime


class OperatorRecord(_SnapshotModel):
    id: str = Field(min_length=1)
    name: str
    employee_id: str = ""
    status: ResourceStatus
    skills: list[SkillRecord] = Field(default_factory=list)
    current_work_order: Optional[str] = None
    shift: Shift
    location: str
    availability: Optional[WindowRecord] = None
    utilization_rate: float = Field(ge=0.0, le=100.0)

    def to_domain(self) -> Operator:
        return Operator(
            operator_id=self.id,
            name=self.name,
            employee_id=self.employee_id,
            status=self.status,
            skills=tuple(skill.to_domain() for skill in self.skills),
            shift=self.shift,
            location=self.location,
            utilization_rate=self.utilization_rate,
            availability=(
                AvailabilityWindow(start=self.availability.start, end=self.availability.end)
                if self.availability is not None
                else None
            ),
            current_work_order=self.current_work_order,
        )


class MaintenanceRecord(_SnapshotModel):
    next_maintenance: datetime
    last_maintenance: Optional[datetime] = None


class PerformanceRecord(_SnapshotModel):
    efficiency: float = Field(ge=0.0, le=100.0)
    uptime: float = Field(ge=0.0, le=100.0)


class MachineRecord(_SnapshotModel):
    id: str = Field(min_length=1)
    name: str
    machine_type: str = Field(alias="type")
    status: ResourceStatus
    capabilities: list[CapabilityRecord] = Field(default_factory=list)
    current_work_order: Optional[str] = None
    location: str
    maintenance_schedule: Optional[MaintenanceRecord] = None
    utilization_rate: float = Field(ge=0.0, le=100.0)
    performance: PerformanceRecord

    def to_domain(self) -> Machine:
        return Machine(
            machine_id=self.id,
            name=self.name,
            machine_type=self.machine_type,
            status=self.status,
            capabilities=tuple(capability.to_domain() for capability in self.capabilities),
            location=self.location,
            utilization_rate=self.utilization_rate,
            performance=MachinePerformance(
                efficiency=self.performance.efficiency,
                uptime=self.performance.uptime,
            ),
            maintenance_schedule=(
                MaintenanceSchedule(
                    next_maintenance=self.maintenance_schedule.next_maintenance,
                    last_maintenance=self.maintenance_schedule.last_maintenance,
                )
                if self.maintenance_schedule is not None
                else None
            ),
            current_work_order=self.current_work_order,
        )


class MaterialRecord(_SnapshotModel):
    id: str = Field(min_length=1)
    name: str
    sku: str = ""
    quantity: float = Field(ge=0.0)
    unit: str = ""
    location: str = ""
    reserved_quantity: float = Field(default=0.0, ge=0.0)
    reorder_point: float = Field(default=0.0, ge=0.0)

    def to_domain(self) -> Material:
        return Material(
            material_id=self.id,
            name=self.name,
            sku=self.sku,
            quantity=self.quantity,
            unit=self.unit,
            location=self.location,
            reserved_quantity=self.reserved_quantity,
            reorder_point=self.reorder_point,
        )


class OperatorRequirementRecord(_SnapshotModel):
    count: int = Field(default=0, ge=0)
    required_skills: list[str] = Field(default_factory=list)
    preferred_skill_level: Optional[int] = Field(default=None, ge=1, le=5)


class MachineRequirementRecord(_SnapshotModel):
    count: int = Field(default=0, ge=0)
    required_capabilities: list[str] = Field(default_factory=list)
    machine_types: Optional[list[str]] = None


class MaterialRequirementRecord(_SnapshotModel):
    material_id: str
    required_quantity: float = Field(ge=0.0)


class RequirementsRecord(_SnapshotModel):
    operators: OperatorRequirementRecord = Field(default_factory=OperatorRequirementRecord)
    machines: MachineRequirementRecord = Field(default_factory=MachineRequirementRecord)
    materials: list[MaterialRequirementRecord] = Field(default_factory=list)

    def to_domain(self) -> WorkOrderRequirements:
        return WorkOrderRequirements(
            operators=OperatorRequirements(
                count=self.operators.count,
                required_skills=tuple(self.operators.required_skills),
                preferred_skill_level=self.operators.preferred_skill_level,
            ),
            machines=MachineRequirements(
                count=self.machines.count,
                required_capabilities=tuple(self.machines.required_capabilities),
                machine_types=(
                    tuple(self.machines.machine_types)
                    if self.machines.machine_types is not None
                    else None
                ),
            ),
            materials=tuple(
                MaterialRequirement(
                    material_id=item.material_id,
                    required_quantity=item.required_quantity,
                )
                for item in self.materials
            ),
        )


class AssignedResourcesRecord(_SnapshotModel):
    operators: list[str] = Field(default_factory=list)
    machines: list[str] = Field(default_factory=list)
    materials: list[str] = Field(default_factory=list)


class WorkOrderRecord(_SnapshotModel):
    id: str = Field(min_length=1)
    order_number: str = ""
    product_name: str = ""
    quantity: int = Field(default=0, ge=0)
    priority: WorkOrderPriority = WorkOrderPriority.MEDIUM
    status: WorkOrderStatus = WorkOrderStatus.PENDING
    requirements: RequirementsRecord = Field(default_factory=RequirementsRecord)
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    assigned_resources: AssignedResourcesRecord = Field(default_factory=AssignedResourcesRecord)

    def to_domain(self) -> WorkOrder:
        return WorkOrder(
            work_order_id=self.id,
            order_number=self.order_number,
            product_name=self.product_name,
            priority=self.priority,
            status=self.status,
            requirements=self.requirements.to_domain(),
            quantity=self.quantity,
            scheduled_start=self.scheduled_start,
            scheduled_end=self.scheduled_end,
            assigned_resources=AssignedResources(
                operators=tuple(self.assigned_resources.operators),
                machines=tuple(self.assigned_resources.machines),
                materials=tuple(self.assigned_resources.materials),
            ),
        )


class SnapshotDocument(_SnapshotModel):
    operators: list[OperatorRecord] = Field(default_factory=list)
    machines: list[MachineRecord] = Field(default_factory=list)
    materials: list[MaterialRecord] = Field(default_factory=list)
    work_orders: list[WorkOrderRecord] = Field(default_factory=list)

    def to_operators(self) -> list[Operator]:
        return [record.to_domain() for record in self.operators]

    def to_machines(self) -> list[Machine]:
        return [record.to_domain() for record in self.machines]

    def to_materials(self) -> list[Material]:
        return [record.to_domain() for record in self.materials]

    def to_work_orders(self) -> list[WorkOrder]:
        return [record.to_domain() for record in self.work_orders]


def load_snapshot_document(path: Path) -> SnapshotDocument:
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise SnapshotLoadError(f"Snapshot file could not be read: {path}") from exc
    try:
        return SnapshotDocument.model_validate_json(raw)
    except ValidationError as exc:
        raise SnapshotLoadError(f"Snapshot file {path} is invalid: {exc}") from exc
