from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from backend.domain.constraints import AllocationThresholds
from backend.domain.models import (
    Capability,
    Machine,
    MachinePerformance,
    MachineRequirements,
    MaintenanceSchedule,
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
from backend.services.matching_service import (
    find_optimal_resources,
    score_machine,
    score_operator,
)


NOW = datetime(2026, 2, 13, 8, 0, tzinfo=timezone.utc)
WELDING = Skill(
    skill_id="skill-weld",
    name="Welding",
    level=5,
    certification_required=True,
    certification_expiry=datetime(2027, 2, 13, tzinfo=timezone.utc),
)


def _build_work_order(
    *,
    operator_count: int = 1,
    required_skills: tuple[str, ...] = ("skill-weld",),
    machine_count: int = 1,
    required_capabilities: tuple[str, ...] = ("cap-mig",),
) -> WorkOrder:
    return WorkOrder(
        work_order_id="wo-001",
        order_number="WO-2026-0001",
        product_name="Test Product",
        priority=WorkOrderPriority.HIGH,
        status=WorkOrderStatus.PENDING,
        requirements=WorkOrderRequirements(
            operators=OperatorRequirements(count=operator_count, required_skills=required_skills),
            machines=MachineRequirements(
                count=machine_count, required_capabilities=required_capabilities
            ),
        ),
    )


def _build_operator(operator_id: str = "op-001", **overrides) -> Operator:
    defaults = {
        "operator_id": operator_id,
        "name": f"Operator {operator_id}",
        "employee_id": f"EMP-{operator_id}",
        "status": ResourceStatus.AVAILABLE,
        "skills": (WELDING,),
        "shift": Shift.MORNING,
        "location": "Zone A",
        "utilization_rate": 50.0,
    }
    defaults.update(overrides)
    return Operator(**defaults)


def _build_machine(machine_id: str = "mach-001", **overrides) -> Machine:
    defaults = {
        "machine_id": machine_id,
        "name": f"Machine {machine_id}",
        "machine_type": "Welding",
        "status": ResourceStatus.AVAILABLE,
        "capabilities": (Capability(capability_id="cap-mig", name="MIG Welding"),),
        "location": "Zone A",
        "utilization_rate": 60.0,
        "performance": MachinePerformance(efficiency=95.0, uptime=98.0),
    }
    defaults.update(overrides)
    return Machine(**defaults)


# --- Scoring ---

def test_operator_score_sums_weighted_components() -> None:
    requirements = _build_work_order().requirements.operators

    assert score_operator(_build_operator(), requirements, NOW) == pytest.approx(90.0)


def test_expired_certification_loses_compliance_points() -> None:
    expired = replace(WELDING, certification_expiry=NOW - timedelta(days=1))
    operator = _build_operator(skills=(expired,))
    requirements = _build_work_order().requirements.operators

    assert score_operator(operator, requirements, NOW) == pytest.approx(70.0)


def test_empty_skill_requirement_earns_no_match_points() -> None:
    requirements = _build_work_order(required_skills=()).requirements.operators

    assert score_operator(_build_operator(), requirements, NOW) == pytest.approx(50.0)


def test_operator_without_skills_scores_headroom_only() -> None:
    requirements = _build_work_order().requirements.operators
    operator = _build_operator(skills=(), utilization_rate=0.0)

    assert score_operator(operator, requirements, NOW) == pytest.approx(20.0)


def test_machine_score_sums_weighted_components() -> None:
    requirements = _build_work_order().requirements.machines

    assert score_machine(_build_machine(), requirements, NOW) == pytest.approx(86.95)


@pytest.mark.parametrize(
    ("days_out", "expected"),
    [(31, 86.95), (30, 81.95), (8, 81.95), (7, 76.95), (2, 76.95)],
)
def test_machine_maintenance_horizon_points(days_out, expected) -> None:
    machine = _build_machine(
        maintenance_schedule=MaintenanceSchedule(next_maintenance=NOW + timedelta(days=days_out))
    )
    requirements = _build_work_order().requirements.machines

    score = score_machine(machine, requirements, NOW, AllocationThresholds())

    assert score == pytest.approx(expected)


# --- Selection ---

def test_finds_resources_matching_work_order() -> None:
    result = find_optimal_resources(
        _build_work_order(), [_build_operator()], [_build_machine()], now=NOW
    )

    assert [item.operator_id for item in result.suggested_operators] == ["op-001"]
    assert [item.machine_id for item in result.suggested_machines] == ["mach-001"]
    assert result.match_score == 88


def test_filters_out_unavailable_operators() -> None:
    busy = _build_operator("op-busy", status=ResourceStatus.BUSY)

    result = find_optimal_resources(_build_work_order(), [busy], [_build_machine()], now=NOW)

    assert result.suggested_operators == ()


def test_filters_out_unavailable_machines() -> None:
    maintenance = _build_machine("mach-maint", status=ResourceStatus.MAINTENANCE)

    result = find_optimal_resources(
        _build_work_order(), [_build_operator()], [maintenance], now=NOW
    )

    assert result.suggested_machines == ()


def test_bound_but_available_operator_is_still_suggested() -> None:
    bound = _build_operator(current_work_order="wo-777")

    result = find_optimal_resources(_build_work_order(), [bound], [_build_machine()], now=NOW)

    assert [item.operator_id for item in result.suggested_operators] == ["op-001"]


def test_skill_match_ranks_operator_first() -> None:
    other = _build_operator(
        "op-002",
        skills=(Skill(skill_id="skill-other", name="Other", level=5),),
    )

    result = find_optimal_resources(
        _build_work_order(), [other, _build_operator()], [_build_machine()], now=NOW
    )

    assert result.suggested_operators[0].operator_id == "op-001"


def test_capability_match_ranks_machine_first() -> None:
    other = _build_machine(
        "mach-002",
        capabilities=(Capability(capability_id="cap-other", name="Other"),),
    )

    result = find_optimal_resources(
        _build_work_order(), [_build_operator()], [other, _build_machine()], now=NOW
    )

    assert result.suggested_machines[0].machine_id == "mach-001"


def test_low_utilization_operator_selected_first() -> None:
    busy_operator = _build_operator("op-001", utilization_rate=90.0)
    idle_operator = _build_operator("op-002", utilization_rate=20.0)

    result = find_optimal_resources(
        _build_work_order(), [busy_operator, idle_operator], [_build_machine()], now=NOW
    )

    assert [item.operator_id for item in result.suggested_operators] == ["op-002"]


def test_equal_scores_keep_input_order() -> None:
    operators = [_build_operator("op-003"), _build_operator("op-001"), _build_operator("op-002")]

    result = find_optimal_resources(
        _build_work_order(operator_count=3), operators, [_build_machine()], now=NOW
    )

    assert [item.operator_id for item in result.suggested_operators] == [
        "op-003",
        "op-001",
        "op-002",
    ]


def test_smaller_pool_returns_fewer_suggestions() -> None:
    result = find_optimal_resources(
        _build_work_order(operator_count=4, machine_count=3),
        [_build_operator(), _build_operator("op-002")],
        [_build_machine()],
        now=NOW,
    )

    assert len(result.suggested_operators) == 2
    assert len(result.suggested_machines) == 1


def test_zero_machine_count_contributes_zero_to_match_score() -> None:
    result = find_optimal_resources(
        _build_work_order(machine_count=0), [_build_operator()], [_build_machine()], now=NOW
    )

    assert result.suggested_machines == ()
    assert result.match_score == 45


def test_empty_pools_score_zero() -> None:
    result = find_optimal_resources(_build_work_order(), [], [], now=NOW)

    assert result.match_score == 0


@pytest.mark.parametrize("utilization", [0.0, 35.5, 100.0])
@pytest.mark.parametrize("efficiency", [0.0, 74.9, 100.0])
def test_match_score_stays_within_bounds(utilization, efficiency) -> None:
    operators = [
        _build_operator(utilization_rate=utilization),
        _build_operator("op-002", skills=(), utilization_rate=100.0 - utilization),
    ]
    machines = [
        _build_machine(
            utilization_rate=utilization,
            performance=MachinePerformance(efficiency=efficiency, uptime=efficiency),
        )
    ]

    result = find_optimal_resources(
        _build_work_order(operator_count=2), operators, machines, now=NOW
    )

    assert 0 <= result.match_score <= 100
    assert len(result.suggested_operators) <= 2


def test_negative_count_fails_fast() -> None:
    with pytest.raises(ValueError):
        find_optimal_resources(
            _build_work_order(operator_count=-1), [_build_operator()], [], now=NOW
        )
