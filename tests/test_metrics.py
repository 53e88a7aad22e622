from __future__ import annotations

from datetime import datetime, timezone

import pytest

from backend.domain.models import (
    Machine,
    MachinePerformance,
    Operator,
    ResourceStatus,
    Shift,
    WorkOrder,
    WorkOrderPriority,
    WorkOrderRequirements,
    WorkOrderStatus,
)
from backend.repository.resource_pool import ResourcePoolRepository
from backend.services.metrics_service import MetricsService, compute_dashboard_metrics


NOW = datetime(2026, 2, 13, 8, 0, tzinfo=timezone.utc)


def _operator(operator_id: str, utilization: float, **overrides) -> Operator:
    defaults = {
        "operator_id": operator_id,
        "name": operator_id,
        "employee_id": operator_id,
        "status": ResourceStatus.AVAILABLE,
        "skills": (),
        "shift": Shift.NIGHT,
        "location": "Zone B",
        "utilization_rate": utilization,
    }
    defaults.update(overrides)
    return Operator(**defaults)


def _machine(machine_id: str, utilization: float, **overrides) -> Machine:
    defaults = {
        "machine_id": machine_id,
        "name": machine_id,
        "machine_type": "CNC",
        "status": ResourceStatus.AVAILABLE,
        "capabilities": (),
        "location": "Zone B",
        "utilization_rate": utilization,
        "performance": MachinePerformance(efficiency=90.0, uptime=95.0),
    }
    defaults.update(overrides)
    return Machine(**defaults)


def _work_order(work_order_id: str, status: WorkOrderStatus) -> WorkOrder:
    return WorkOrder(
        work_order_id=work_order_id,
        order_number=work_order_id,
        product_name="Housing",
        priority=WorkOrderPriority.LOW,
        status=status,
        requirements=WorkOrderRequirements(),
    )


def test_empty_pool_metrics_are_zero() -> None:
    metrics = compute_dashboard_metrics([], [], [], now=NOW)

    assert metrics.overall_utilization == 0.0
    assert metrics.operator_utilization == 0.0
    assert metrics.machine_utilization == 0.0
    assert metrics.idle_operators == 0
    assert metrics.idle_machines == 0
    assert metrics.active_orders == 0
    assert metrics.pending_orders == 0
    assert metrics.last_updated == NOW


def test_metrics_aggregate_utilization_idle_and_orders() -> None:
    operators = [
        _operator("op-1", 80.0, status=ResourceStatus.BUSY, current_work_order="wo-1"),
        _operator("op-2", 20.0),
        _operator("op-3", 50.0, status=ResourceStatus.OFFLINE),
    ]
    machines = [
        _machine("m-1", 90.0, status=ResourceStatus.BUSY, current_work_order="wo-1"),
        _machine("m-2", 30.0),
    ]
    work_orders = [
        _work_order("wo-1", WorkOrderStatus.IN_PROGRESS),
        _work_order("wo-2", WorkOrderStatus.PENDING),
        _work_order("wo-3", WorkOrderStatus.PENDING),
        _work_order("wo-4", WorkOrderStatus.BLOCKED),
        _work_order("wo-5", WorkOrderStatus.COMPLETED),
    ]

    metrics = compute_dashboard_metrics(operators, machines, work_orders, now=NOW)

    assert metrics.operator_utilization == pytest.approx(50.0)
    assert metrics.machine_utilization == pytest.approx(60.0)
    assert metrics.overall_utilization == pytest.approx(54.0)
    assert metrics.idle_operators == 1
    assert metrics.idle_machines == 1
    assert metrics.active_orders == 1
    assert metrics.pending_orders == 2
    assert metrics.blocked_orders == 1
    assert metrics.completed_orders == 1


def test_metrics_payload_shape() -> None:
    payload = compute_dashboard_metrics([_operator("op-1", 10.0)], [], [], now=NOW).to_dict()

    assert payload["utilization"] == {"overall": 10.0, "operators": 10.0, "machines": 0.0}
    assert payload["idle"] == {"idle_operators": 1, "idle_machines": 0}
    assert payload["last_updated"] == NOW.isoformat()


def test_metrics_service_reads_repository_snapshot() -> None:
    repository = ResourcePoolRepository()
    repository.upsert_operators([_operator("op-1", 40.0)])
    repository.upsert_machines([_machine("m-1", 60.0)])
    service = MetricsService(repository=repository)

    metrics = service.get_metrics(now=NOW)

    assert metrics.overall_utilization == pytest.approx(50.0)
    assert metrics.idle_operators == 1
    assert metrics.idle_machines == 1
