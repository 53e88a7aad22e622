"""Pool-wide utilisation and production counters for the dashboard."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

import pandas as pd

from backend.domain.models import Machine, Operator, ResourceStatus, WorkOrder, WorkOrderStatus
from backend.repository.resource_pool import ResourcePoolRepository
from backend.utils.clock import resolve_now
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

_RESOURCE_COLUMNS = ["kind", "resource_id", "status", "utilization_rate", "bound"]


@dataclass(frozen=True)
class DashboardMetrics:
    overall_utilization: float
    operator_utilization: float
    machine_utilization: float
    idle_operators: int
    idle_machines: int
    active_orders: int
    completed_orders: int
    blocked_orders: int
    pending_orders: int
    last_updated: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "utilization": {
                "overall": self.overall_utilization,
                "operators": self.operator_utilization,
                "machines": self.machine_utilization,
            },
            "idle": {
                "idle_operators": self.idle_operators,
                "idle_machines": self.idle_machines,
            },
            "production": {
                "active_orders": self.active_orders,
                "completed_orders": self.completed_orders,
                "blocked_orders": self.blocked_orders,
                "pending_orders": self.pending_orders,
            },
            "last_updated": self.last_updated.isoformat(),
        }


def _build_resource_frame(
    operators: Sequence[Operator],
    machines: Sequence[Machine],
) -> pd.DataFrame:
    rows = [
        {
            "kind": "operator",
            "resource_id": operator.operator_id,
            "status": ResourceStatus(operator.status).value,
            "utilization_rate": float(operator.utilization_rate),
            "bound": operator.current_work_order is not None,
        }
        for operator in operators
    ]
    rows += [
        {
            "kind": "machine",
            "resource_id": machine.machine_id,
            "status": ResourceStatus(machine.status).value,
            "utilization_rate": float(machine.utilization_rate),
            "bound": machine.current_work_order is not None,
        }
        for machine in machines
    ]
    return pd.DataFrame(rows, columns=_RESOURCE_COLUMNS)


def _mean_utilization(frame: pd.DataFrame) -> float:
    if frame.empty:
        return 0.0
    return round(float(frame["utilization_rate"].mean()), 2)


def compute_dashboard_metrics(
    operators: Sequence[Operator],
    machines: Sequence[Machine],
    work_orders: Sequence[WorkOrder],
    now: Optional[datetime] = None,
) -> DashboardMetrics:
    """Aggregate a pool snapshot; an empty pool yields all-zero metrics."""

    resources = _build_resource_frame(operators, machines)
    operator_rows = resources[resources["kind"] == "operator"]
    machine_rows = resources[resources["kind"] == "machine"]

    idle = resources[
        (resources["status"] == ResourceStatus.AVAILABLE.value) & ~resources["bound"].astype(bool)
    ]
    idle_counts = idle["kind"].value_counts()

    order_statuses = pd.Series(
        [WorkOrderStatus(work_order.status).value for work_order in work_orders],
        dtype="object",
    )
    status_counts = order_statuses.value_counts()

    return DashboardMetrics(
        overall_utilization=_mean_utilization(resources),
        operator_utilization=_mean_utilization(operator_rows),
        machine_utilization=_mean_utilization(machine_rows),
        idle_operators=int(idle_counts.get("operator", 0)),
        idle_machines=int(idle_counts.get("machine", 0)),
        active_orders=int(status_counts.get(WorkOrderStatus.IN_PROGRESS.value, 0)),
        completed_orders=int(status_counts.get(WorkOrderStatus.COMPLETED.value, 0)),
        blocked_orders=int(status_counts.get(WorkOrderStatus.BLOCKED.value, 0)),
        pending_orders=int(status_counts.get(WorkOrderStatus.PENDING.value, 0)),
        last_updated=resolve_now(now),
    )


class MetricsService:
    def __init__(
        self,
        repository: Optional[ResourcePoolRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or ResourcePoolRepository(self._settings)

    def get_metrics(self, now: Optional[datetime] = None) -> DashboardMetrics:
        snapshot = self._repository.snapshot()
        metrics = compute_dashboard_metrics(
            list(snapshot.operators.values()),
            list(snapshot.machines.values()),
            list(snapshot.work_orders.values()),
            now=now,
        )
        logger.debug(
            "Metrics computed | overall=%s | idle_operators=%s | idle_machines=%s",
            metrics.overall_utilization,
            metrics.idle_operators,
            metrics.idle_machines,
        )
        return metrics
