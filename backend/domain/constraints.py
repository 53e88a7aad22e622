"""Domain-level input rules for allocation validation and scoring."""

from __future__ import annotations

from dataclasses import dataclass

from backend.domain.models import Machine, Material, Operator, WorkOrderRequirements

MIN_SKILL_LEVEL = 1
MAX_SKILL_LEVEL = 5


@dataclass(frozen=True)
class AllocationThresholds:
    efficiency_warning_threshold: float = 75.0
    maintenance_warning_days: int = 7
    low_utilization_threshold: float = 50.0
    maintenance_horizon_full_days: int = 30
    maintenance_horizon_partial_days: int = 7


def validate_allocation_thresholds(thresholds: AllocationThresholds) -> None:
    if not 0.0 <= thresholds.efficiency_warning_threshold <= 100.0:
        raise ValueError("efficiency_warning_threshold must be between 0 and 100")
    if not 0.0 <= thresholds.low_utilization_threshold <= 100.0:
        raise ValueError("low_utilization_threshold must be between 0 and 100")
    if thresholds.maintenance_warning_days < 0:
        raise ValueError("maintenance_warning_days must be >= 0")
    if thresholds.maintenance_horizon_partial_days < 0:
        raise ValueError("maintenance_horizon_partial_days must be >= 0")
    if thresholds.maintenance_horizon_full_days < thresholds.maintenance_horizon_partial_days:
        raise ValueError(
            "maintenance_horizon_full_days must be >= maintenance_horizon_partial_days"
        )


def validate_requirement_counts(requirements: WorkOrderRequirements) -> None:
    """Reject caller contract violations; empty requirement sets are fine."""
    if requirements.operators.count < 0:
        raise ValueError("operators.count must be >= 0")
    if requirements.machines.count < 0:
        raise ValueError("machines.count must be >= 0")
    for item in requirements.materials:
        if item.required_quantity < 0:
            raise ValueError(f"required_quantity for {item.material_id} must be >= 0")


def validate_work_order_requirements(requirements: WorkOrderRequirements) -> None:
    """Full record check applied when work orders enter the pool."""
    validate_requirement_counts(requirements)
    preferred = requirements.operators.preferred_skill_level
    if preferred is not None and not MIN_SKILL_LEVEL <= preferred <= MAX_SKILL_LEVEL:
        raise ValueError(
            f"operators.preferred_skill_level must be between {MIN_SKILL_LEVEL} and {MAX_SKILL_LEVEL}"
        )


def _validate_percentage(label: str, value: float) -> None:
    if not 0.0 <= value <= 100.0:
        raise ValueError(f"{label} must be between 0 and 100")


def validate_operator(operator: Operator) -> None:
    _validate_percentage(f"operator {operator.operator_id} utilization_rate", operator.utilization_rate)
    seen: set[str] = set()
    for skill in operator.skills:
        if skill.skill_id in seen:
            raise ValueError(
                f"operator {operator.operator_id} lists skill {skill.skill_id} more than once"
            )
        seen.add(skill.skill_id)
        if not MIN_SKILL_LEVEL <= skill.level <= MAX_SKILL_LEVEL:
            raise ValueError(
                f"skill {skill.skill_id} level must be between {MIN_SKILL_LEVEL} and {MAX_SKILL_LEVEL}"
            )


def validate_machine(machine: Machine) -> None:
    _validate_percentage(f"machine {machine.machine_id} utilization_rate", machine.utilization_rate)
    _validate_percentage(f"machine {machine.machine_id} efficiency", machine.performance.efficiency)
    _validate_percentage(f"machine {machine.machine_id} uptime", machine.performance.uptime)
    capability_ids = [capability.capability_id for capability in machine.capabilities]
    if len(capability_ids) != len(set(capability_ids)):
        raise ValueError(f"machine {machine.machine_id} lists a capability more than once")


def validate_material(material: Material) -> None:
    if material.quantity < 0:
        raise ValueError(f"material {material.material_id} quantity must be >= 0")
    if not 0 <= material.reserved_quantity <= material.quantity:
        raise ValueError(
            f"material {material.material_id} reserved_quantity must be within [0, quantity]"
        )
