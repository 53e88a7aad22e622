"""In-memory resource pool: the only owner of mutable allocation state."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from threading import RLock
from typing import Iterable, Optional

from backend.domain.constraints import (
    validate_machine,
    validate_material,
    validate_operator,
    validate_work_order_requirements,
)
from backend.domain.models import (
    Allocation,
    Machine,
    Material,
    Operator,
    ResourceStatus,
    WorkOrder,
)
from backend.repository.locks import KeyedLockRegistry
from backend.repository.snapshot_loader import SnapshotLoadError, load_snapshot_document
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class PoolSnapshot:
    """Point-in-time copy of the pool; safe to read without holding locks."""

    operators: dict[str, Operator]
    machines: dict[str, Machine]
    materials: dict[str, Material]
    work_orders: dict[str, WorkOrder]
    allocations: dict[str, Allocation]


@dataclass(frozen=True)
class PoolChangeSet:
    operators: tuple[Operator, ...] = ()
    machines: tuple[Machine, ...] = ()
    materials: tuple[Material, ...] = ()
    work_orders: tuple[WorkOrder, ...] = ()
    allocations: tuple[Allocation, ...] = ()


def _check_binding(
    kind: str,
    resource_id: str,
    status: ResourceStatus,
    current_work_order: Optional[str],
) -> None:
    if status == ResourceStatus.AVAILABLE and current_work_order is not None:
        raise ValueError(
            f"{kind} {resource_id} is available but still bound to work order {current_work_order}"
        )


def resource_lock_key(kind: str, resource_id: str) -> str:
    return f"{kind}:{resource_id}"


class ResourcePoolRepository:
    """Explicitly constructed pool context shared by the services of one process.

    Reads return snapshots. Writes go through ``apply_changes`` which replaces
    every entity of a change set under one internal lock, so readers never see
    half of a commit. Callers that read-validate-write hold the key locks from
    ``locks`` for the ids they touch.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._state_lock = RLock()
        self._operators: dict[str, Operator] = {}
        self._machines: dict[str, Machine] = {}
        self._materials: dict[str, Material] = {}
        self._work_orders: dict[str, WorkOrder] = {}
        self._allocations: dict[str, Allocation] = {}
        self.locks = KeyedLockRegistry()

    def upsert_operators(self, operators: Iterable[Operator]) -> None:
        items = list(operators)
        for operator in items:
            validate_operator(operator)
            _check_binding(
                "operator", operator.operator_id, operator.status, operator.current_work_order
            )
        with self._state_lock:
            for operator in items:
                self._operators[operator.operator_id] = operator

    def upsert_machines(self, machines: Iterable[Machine]) -> None:
        items = list(machines)
        for machine in items:
            validate_machine(machine)
            _check_binding(
                "machine", machine.machine_id, machine.status, machine.current_work_order
            )
        with self._state_lock:
            for machine in items:
                self._machines[machine.machine_id] = machine

    def upsert_materials(self, materials: Iterable[Material]) -> None:
        items = list(materials)
        for material in items:
            validate_material(material)
        with self._state_lock:
            for material in items:
                self._materials[material.material_id] = material

    def upsert_work_orders(self, work_orders: Iterable[WorkOrder]) -> None:
        items = list(work_orders)
        for work_order in items:
            validate_work_order_requirements(work_order.requirements)
        with self._state_lock:
            for work_order in items:
                self._work_orders[work_order.work_order_id] = work_order

    def load_snapshot_file(self, path: Path) -> None:
        """Replace pool contents with a JSON snapshot exported by the host store."""
        document = load_snapshot_document(path)
        operators = document.to_operators()
        machines = document.to_machines()
        materials = document.to_materials()
        work_orders = document.to_work_orders()

        staging = ResourcePoolRepository(self._settings)
        try:
            staging.upsert_operators(operators)
            staging.upsert_machines(machines)
            staging.upsert_materials(materials)
            staging.upsert_work_orders(work_orders)
        except ValueError as exc:
            raise SnapshotLoadError(f"Snapshot file {path} is inconsistent: {exc}") from exc
        with self._state_lock:
            self.clear()
            self._operators.update(staging._operators)
            self._machines.update(staging._machines)
            self._materials.update(staging._materials)
            self._work_orders.update(staging._work_orders)
        logger.info(
            "Snapshot loaded | path=%s | operators=%s | machines=%s | materials=%s | work_orders=%s",
            path,
            len(operators),
            len(machines),
            len(materials),
            len(work_orders),
        )

    def clear(self) -> None:
        with self._state_lock:
            self._operators.clear()
            self._machines.clear()
            self._materials.clear()
            self._work_orders.clear()
            self._allocations.clear()

    def snapshot(self) -> PoolSnapshot:
        with self._state_lock:
            return PoolSnapshot(
                operators=dict(self._operators),
                machines=dict(self._machines),
                materials=dict(self._materials),
                work_orders=dict(self._work_orders),
                allocations=dict(self._allocations),
            )

    def list_operators(self) -> list[Operator]:
        with self._state_lock:
            return list(self._operators.values())

    def list_machines(self) -> list[Machine]:
        with self._state_lock:
            return list(self._machines.values())

    def list_work_orders(self) -> list[WorkOrder]:
        with self._state_lock:
            return list(self._work_orders.values())

    def list_allocations(self, work_order_id: Optional[str] = None) -> list[Allocation]:
        with self._state_lock:
            return [
                allocation
                for allocation in self._allocations.values()
                if work_order_id is None or allocation.work_order_id == work_order_id
            ]

    def get_operator(self, operator_id: str) -> Optional[Operator]:
        with self._state_lock:
            return self._operators.get(operator_id)

    def get_machine(self, machine_id: str) -> Optional[Machine]:
        with self._state_lock:
            return self._machines.get(machine_id)

    def get_material(self, material_id: str) -> Optional[Material]:
        with self._state_lock:
            return self._materials.get(material_id)

    def get_work_order(self, work_order_id: str) -> Optional[WorkOrder]:
        with self._state_lock:
            return self._work_orders.get(work_order_id)

    def get_allocation(self, allocation_id: str) -> Optional[Allocation]:
        with self._state_lock:
            return self._allocations.get(allocation_id)

    def apply_changes(self, changes: PoolChangeSet) -> None:
        with self._state_lock:
            for operator in changes.operators:
                self._operators[operator.operator_id] = operator
            for machine in changes.machines:
                self._machines[machine.machine_id] = machine
            for material in changes.materials:
                self._materials[material.material_id] = material
            for work_order in changes.work_orders:
                self._work_orders[work_order.work_order_id] = work_order
            for allocation in changes.allocations:
                self._allocations[allocation.allocation_id] = allocation
