"""Constraint validation of a proposed resource set against one work order.

``validate_allocation`` is a pure function of its snapshot inputs. Hard
violations become ``conflicts`` and soft ones ``warnings``/``suggestions``; the
checks never short-circuit, so independent violations all accumulate in a
stable order. Nothing here raises for a well-formed work order.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence

from backend.domain.constraints import (
    AllocationThresholds,
    validate_allocation_thresholds,
    validate_requirement_counts,
)
from backend.domain.models import (
    IssueSeverity,
    Machine,
    Material,
    Operator,
    ResourceStatus,
    ValidationIssue,
    ValidationResult,
    WorkOrder,
)
from backend.repository.resource_pool import PoolSnapshot, ResourcePoolRepository
from backend.utils.clock import resolve_now, whole_days_until
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class AllocationError(Exception):
    """Base exception for allocation workflow failures."""


class AllocationInputError(AllocationError):
    """Raised when a caller passes malformed allocation input."""


class WorkOrderNotFoundError(AllocationError):
    """Raised when a work order id is unknown to the resource pool."""


class ResourceNotFoundError(AllocationError):
    """Raised when an operator, machine or material id is unknown."""


class _IssueCollector:
    def __init__(self) -> None:
        self._issues: list[ValidationIssue] = []

    def add(
        self,
        severity: IssueSeverity,
        code: str,
        message: str,
        resource_id: Optional[str] = None,
    ) -> None:
        self._issues.append(
            ValidationIssue(
                severity=severity,
                code=code,
                message=message,
                resource_id=resource_id,
            )
        )

    def conflict(self, code: str, message: str, resource_id: Optional[str] = None) -> None:
        self.add(IssueSeverity.CONFLICT, code, message, resource_id)

    def warning(self, code: str, message: str, resource_id: Optional[str] = None) -> None:
        self.add(IssueSeverity.WARNING, code, message, resource_id)

    def suggestion(self, code: str, message: str, resource_id: Optional[str] = None) -> None:
        self.add(IssueSeverity.SUGGESTION, code, message, resource_id)

    @property
    def has_conflicts(self) -> bool:
        return any(issue.severity == IssueSeverity.CONFLICT for issue in self._issues)

    def result(self) -> ValidationResult:
        return ValidationResult(issues=tuple(self._issues))


def _missing(required: Iterable[str], present: set[str]) -> list[str]:
    return [item for item in dict.fromkeys(required) if item not in present]


def _format_quantity(value: float) -> str:
    return f"{value:g}"


def _check_operators(
    issues: _IssueCollector,
    work_order: WorkOrder,
    operators: Sequence[Operator],
) -> None:
    requirements = work_order.requirements.operators
    if len(operators) < requirements.count:
        issues.conflict(
            "insufficient_operators",
            f"Insufficient operators: need {requirements.count}, assigned {len(operators)}",
        )
    elif len(operators) > requirements.count:
        issues.warning(
            "over_allocated_operators",
            f"Over-allocated operators: {len(operators)} assigned, only {requirements.count} needed",
        )

    assigned_skills = {skill_id for operator in operators for skill_id in operator.skill_ids}
    missing_skills = _missing(requirements.required_skills, assigned_skills)
    if missing_skills:
        issues.conflict(
            "missing_skills",
            f"Missing required skills: {', '.join(missing_skills)}",
        )

    preferred = requirements.preferred_skill_level
    if preferred:
        low_skill_operators = [
            operator
            for operator in operators
            if any(not skill.meets_level(preferred) for skill in operator.skills)
        ]
        if low_skill_operators:
            issues.warning(
                "skill_level_below_preferred",
                f"Some operators have skill levels below preferred level ({preferred})",
            )
            issues.suggestion(
                "prefer_experienced_operators",
                "Consider assigning more experienced operators for better efficiency",
            )

    for operator in operators:
        if operator.status != ResourceStatus.AVAILABLE:
            issues.conflict(
                "operator_unavailable",
                f"Operator {operator.name} is not available "
                f"(status: {ResourceStatus(operator.status).value})",
                operator.operator_id,
            )
        if operator.current_work_order:
            issues.conflict(
                "operator_already_assigned",
                f"Operator {operator.name} is already assigned to work order "
                f"{operator.current_work_order}",
                operator.operator_id,
            )


def _check_machines(
    issues: _IssueCollector,
    work_order: WorkOrder,
    machines: Sequence[Machine],
    thresholds: AllocationThresholds,
    now: datetime,
) -> None:
    requirements = work_order.requirements.machines
    if len(machines) < requirements.count:
        issues.conflict(
            "insufficient_machines",
            f"Insufficient machines: need {requirements.count}, assigned {len(machines)}",
        )
    elif len(machines) > requirements.count:
        issues.warning(
            "over_allocated_machines",
            f"Over-allocated machines: {len(machines)} assigned, only {requirements.count} needed",
        )

    assigned_capabilities = {
        capability_id for machine in machines for capability_id in machine.capability_ids
    }
    missing_capabilities = _missing(requirements.required_capabilities, assigned_capabilities)
    if missing_capabilities:
        issues.conflict(
            "missing_capabilities",
            f"Missing required capabilities: {', '.join(missing_capabilities)}",
        )

    if requirements.machine_types:
        assigned_types = {machine.machine_type for machine in machines}
        missing_types = _missing(requirements.machine_types, assigned_types)
        if missing_types:
            issues.conflict(
                "missing_machine_types",
                f"Missing required machine types: {', '.join(missing_types)}",
            )

    for machine in machines:
        if machine.status != ResourceStatus.AVAILABLE:
            issues.conflict(
                "machine_unavailable",
                f"Machine {machine.name} is not available "
                f"(status: {ResourceStatus(machine.status).value})",
                machine.machine_id,
            )
        if machine.current_work_order:
            issues.conflict(
                "machine_already_assigned",
                f"Machine {machine.name} is already assigned to work order "
                f"{machine.current_work_order}",
                machine.machine_id,
            )

    low_efficiency = [
        machine
        for machine in machines
        if machine.performance.efficiency < thresholds.efficiency_warning_threshold
    ]
    if low_efficiency:
        issues.warning(
            "low_machine_efficiency",
            "Some machines have low efficiency: "
            + ", ".join(machine.name for machine in low_efficiency),
        )
        issues.suggestion(
            "prefer_efficient_machines",
            "Consider using machines with higher efficiency for better throughput",
        )

    for machine in machines:
        if machine.maintenance_schedule is None:
            continue
        days = whole_days_until(machine.maintenance_schedule.next_maintenance, now)
        if days < thresholds.maintenance_warning_days:
            issues.warning(
                "maintenance_due",
                f"Machine {machine.name} has scheduled maintenance in {days} days",
                machine.machine_id,
            )


def _check_materials(
    issues: _IssueCollector,
    work_order: WorkOrder,
    materials: Sequence[Material],
) -> None:
    for material in materials:
        needed = work_order.requirements.required_quantity_for(material.material_id)
        if needed > material.available_quantity:
            issues.conflict(
                "insufficient_material",
                f"Insufficient material {material.name}: need {_format_quantity(needed)}, "
                f"available {_format_quantity(material.available_quantity)}",
                material.material_id,
            )


def _check_cohesion(
    issues: _IssueCollector,
    operators: Sequence[Operator],
    machines: Sequence[Machine],
    thresholds: AllocationThresholds,
) -> None:
    # Either side spanning several zones is enough; operator and machine zones
    # are not compared with each other.
    operator_locations = {operator.location for operator in operators}
    machine_locations = {machine.location for machine in machines}
    if len(operator_locations) > 1 or len(machine_locations) > 1:
        issues.warning(
            "mixed_zones",
            "Resources are located in different zones, which may impact coordination",
        )
        issues.suggestion(
            "co_locate_resources",
            "Try to allocate resources from the same zone when possible",
        )

    low_utilization = [
        operator
        for operator in operators
        if operator.utilization_rate < thresholds.low_utilization_threshold
    ]
    if low_utilization:
        issues.suggestion(
            "low_utilization_operators",
            "Prioritizing low-utilization operators: "
            + ", ".join(operator.name for operator in low_utilization),
        )

    if len({operator.shift for operator in operators}) > 1:
        issues.warning("mixed_shifts", "Operators are from different shifts")


def validate_allocation(
    work_order: WorkOrder,
    operators: Sequence[Operator],
    machines: Sequence[Machine],
    *,
    materials: Optional[Sequence[Material]] = None,
    now: Optional[datetime] = None,
    thresholds: Optional[AllocationThresholds] = None,
) -> ValidationResult:
    """Classify a candidate resource set for ``work_order``.

    ``materials`` is optional; when given, each material's available quantity
    is checked against the work order's requirement for it. ``now`` pins the
    evaluation clock used by maintenance checks.

    Raises ``ValueError`` only for caller contract violations such as negative
    requirement counts.
    """
    active_thresholds = thresholds or AllocationThresholds()
    validate_allocation_thresholds(active_thresholds)
    validate_requirement_counts(work_order.requirements)
    current_time = resolve_now(now)

    issues = _IssueCollector()
    _check_operators(issues, work_order, operators)
    _check_machines(issues, work_order, machines, active_thresholds, current_time)
    if materials:
        _check_materials(issues, work_order, materials)
    _check_cohesion(issues, operators, machines, active_thresholds)

    if not issues.has_conflicts:
        requirements = work_order.requirements
        if (
            len(operators) == requirements.operators.count
            and len(machines) == requirements.machines.count
        ):
            issues.suggestion(
                "optimal_allocation",
                "Allocation is optimal - all requirements met exactly",
            )

    return issues.result()


def thresholds_from_settings(settings: Settings) -> AllocationThresholds:
    thresholds = AllocationThresholds(
        efficiency_warning_threshold=settings.efficiency_warning_threshold,
        maintenance_warning_days=settings.maintenance_warning_days,
        low_utilization_threshold=settings.low_utilization_threshold,
        maintenance_horizon_full_days=settings.maintenance_horizon_full_days,
        maintenance_horizon_partial_days=settings.maintenance_horizon_partial_days,
    )
    validate_allocation_thresholds(thresholds)
    return thresholds


def ensure_unique_ids(label: str, ids: Sequence[str]) -> None:
    duplicates = sorted({item for item in ids if ids.count(item) > 1})
    if duplicates:
        raise AllocationInputError(f"Duplicate {label} ids in proposal: {', '.join(duplicates)}")


def resolve_work_order(snapshot: PoolSnapshot, work_order_id: str) -> WorkOrder:
    work_order = snapshot.work_orders.get(work_order_id)
    if work_order is None:
        raise WorkOrderNotFoundError(f"Work order {work_order_id} not found")
    return work_order


def resolve_operators(snapshot: PoolSnapshot, operator_ids: Sequence[str]) -> list[Operator]:
    ensure_unique_ids("operator", operator_ids)
    missing = [item for item in operator_ids if item not in snapshot.operators]
    if missing:
        raise ResourceNotFoundError(f"Operators not found: {', '.join(missing)}")
    return [snapshot.operators[item] for item in operator_ids]


def resolve_machines(snapshot: PoolSnapshot, machine_ids: Sequence[str]) -> list[Machine]:
    ensure_unique_ids("machine", machine_ids)
    missing = [item for item in machine_ids if item not in snapshot.machines]
    if missing:
        raise ResourceNotFoundError(f"Machines not found: {', '.join(missing)}")
    return [snapshot.machines[item] for item in machine_ids]


def resolve_materials(snapshot: PoolSnapshot, material_ids: Sequence[str]) -> list[Material]:
    ensure_unique_ids("material", material_ids)
    missing = [item for item in material_ids if item not in snapshot.materials]
    if missing:
        raise ResourceNotFoundError(f"Materials not found: {', '.join(missing)}")
    return [snapshot.materials[item] for item in material_ids]


class AllocationValidationService:
    """Validates id-based proposals against the pool's current snapshot."""

    def __init__(
        self,
        repository: Optional[ResourcePoolRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or ResourcePoolRepository(self._settings)
        self._thresholds = thresholds_from_settings(self._settings)

    @property
    def thresholds(self) -> AllocationThresholds:
        return self._thresholds

    def validate(
        self,
        *,
        work_order_id: str,
        operator_ids: Sequence[str] = (),
        machine_ids: Sequence[str] = (),
        material_ids: Sequence[str] = (),
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        snapshot = self._repository.snapshot()
        work_order = resolve_work_order(snapshot, work_order_id)
        operators = resolve_operators(snapshot, list(operator_ids))
        machines = resolve_machines(snapshot, list(machine_ids))
        materials = resolve_materials(snapshot, list(material_ids))
        try:
            result = validate_allocation(
                work_order,
                operators,
                machines,
                materials=materials,
                now=now,
                thresholds=self._thresholds,
            )
        except ValueError as exc:
            raise AllocationInputError(str(exc)) from exc

        logger.info(
            "Validation completed | work_order_id=%s | is_valid=%s | conflicts=%s | warnings=%s",
            work_order_id,
            result.is_valid,
            len(result.conflicts),
            len(result.warnings),
        )
        return result
