"""Tests for threshold, requirement and pool record validation rules."""

from __future__ import annotations

import pytest

from backend.domain.constraints import (
    AllocationThresholds,
    validate_allocation_thresholds,
    validate_machine,
    validate_material,
    validate_operator,
    validate_requirement_counts,
    validate_work_order_requirements,
)
from backend.domain.models import (
    Capability,
    Machine,
    MachinePerformance,
    MachineRequirements,
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
from backend.repository.resource_pool import ResourcePoolRepository


def valid_thresholds(**overrides) -> AllocationThresholds:
    """Return the default thresholds, optionally overriding fields."""
    defaults = {
        "efficiency_warning_threshold": 75.0,
        "maintenance_warning_days": 7,
        "low_utilization_threshold": 50.0,
        "maintenance_horizon_full_days": 30,
        "maintenance_horizon_partial_days": 7,
    }
    defaults.update(overrides)
    return AllocationThresholds(**defaults)


def _operator(**overrides) -> Operator:
    defaults = {
        "operator_id": "op-001",
        "name": "Ana",
        "employee_id": "EMP-001",
        "status": ResourceStatus.AVAILABLE,
        "skills": (Skill(skill_id="skill-weld", name="Welding", level=3),),
        "shift": Shift.MORNING,
        "location": "Zone A",
        "utilization_rate": 40.0,
    }
    defaults.update(overrides)
    return Operator(**defaults)


def _machine(**overrides) -> Machine:
    defaults = {
        "machine_id": "mach-001",
        "name": "Press",
        "machine_type": "Press",
        "status": ResourceStatus.AVAILABLE,
        "capabilities": (Capability(capability_id="cap-press", name="Pressing"),),
        "location": "Zone A",
        "utilization_rate": 40.0,
        "performance": MachinePerformance(efficiency=80.0, uptime=90.0),
    }
    defaults.update(overrides)
    return Machine(**defaults)


# --- Thresholds ---

def test_default_thresholds_pass() -> None:
    validate_allocation_thresholds(valid_thresholds())


def test_efficiency_threshold_above_hundred_raises() -> None:
    with pytest.raises(ValueError):
        validate_allocation_thresholds(valid_thresholds(efficiency_warning_threshold=100.5))


def test_low_utilization_threshold_negative_raises() -> None:
    with pytest.raises(ValueError):
        validate_allocation_thresholds(valid_thresholds(low_utilization_threshold=-1.0))


def test_maintenance_warning_days_negative_raises() -> None:
    with pytest.raises(ValueError):
        validate_allocation_thresholds(valid_thresholds(maintenance_warning_days=-1))


def test_horizon_full_below_partial_raises() -> None:
    with pytest.raises(ValueError):
        validate_allocation_thresholds(
            valid_thresholds(maintenance_horizon_full_days=5, maintenance_horizon_partial_days=7)
        )


def test_zero_thresholds_pass() -> None:
    """Exact lower boundaries must pass."""
    validate_allocation_thresholds(
        valid_thresholds(
            efficiency_warning_threshold=0.0,
            maintenance_warning_days=0,
            low_utilization_threshold=0.0,
            maintenance_horizon_full_days=0,
            maintenance_horizon_partial_days=0,
        )
    )


# --- Work order requirements ---

def test_empty_requirements_pass() -> None:
    validate_work_order_requirements(WorkOrderRequirements())


def test_negative_operator_count_raises() -> None:
    with pytest.raises(ValueError):
        validate_work_order_requirements(
            WorkOrderRequirements(operators=OperatorRequirements(count=-1))
        )


def test_negative_machine_count_raises() -> None:
    with pytest.raises(ValueError):
        validate_work_order_requirements(
            WorkOrderRequirements(machines=MachineRequirements(count=-2))
        )


@pytest.mark.parametrize("level", [0, 6])
def test_pool_rejects_work_order_with_out_of_range_preferred_level(level) -> None:
    work_order = WorkOrder(
        work_order_id="wo-001",
        order_number="WO-1",
        product_name="Bracket",
        priority=WorkOrderPriority.LOW,
        status=WorkOrderStatus.PENDING,
        requirements=WorkOrderRequirements(
            operators=OperatorRequirements(count=1, preferred_skill_level=level)
        ),
    )
    repository = ResourcePoolRepository()

    with pytest.raises(ValueError):
        repository.upsert_work_orders([work_order])

    assert repository.get_work_order("wo-001") is None


@pytest.mark.parametrize("level", [0, 6])
def test_requirement_counts_ignore_preferred_level(level) -> None:
    validate_requirement_counts(
        WorkOrderRequirements(
            operators=OperatorRequirements(count=1, preferred_skill_level=level)
        )
    )


def test_requirement_counts_reject_negative_count() -> None:
    with pytest.raises(ValueError):
        validate_requirement_counts(
            WorkOrderRequirements(operators=OperatorRequirements(count=-1))
        )


def test_negative_material_quantity_raises() -> None:
    with pytest.raises(ValueError):
        validate_work_order_requirements(
            WorkOrderRequirements(
                materials=(MaterialRequirement(material_id="mat-001", required_quantity=-1.0),)
            )
        )


# --- Pool records ---

def test_valid_operator_passes() -> None:
    validate_operator(_operator())


def test_operator_utilization_above_hundred_raises() -> None:
    with pytest.raises(ValueError):
        validate_operator(_operator(utilization_rate=101.0))


def test_operator_duplicate_skill_raises() -> None:
    skill = Skill(skill_id="skill-weld", name="Welding", level=3)
    with pytest.raises(ValueError):
        validate_operator(_operator(skills=(skill, skill)))


def test_operator_skill_level_out_of_range_raises() -> None:
    with pytest.raises(ValueError):
        validate_operator(_operator(skills=(Skill(skill_id="s", name="S", level=7),)))


def test_machine_efficiency_out_of_range_raises() -> None:
    with pytest.raises(ValueError):
        validate_machine(_machine(performance=MachinePerformance(efficiency=120.0, uptime=90.0)))


def test_machine_duplicate_capability_raises() -> None:
    capability = Capability(capability_id="cap-press", name="Pressing")
    with pytest.raises(ValueError):
        validate_machine(_machine(capabilities=(capability, capability)))


def test_material_over_reserved_raises() -> None:
    material = Material(
        material_id="mat-001",
        name="Steel",
        sku="S-1",
        quantity=5.0,
        unit="kg",
        location="Zone A",
        reserved_quantity=6.0,
    )
    with pytest.raises(ValueError):
        validate_material(material)
