"""Lock-scoped commit and release of allocations against the resource pool."""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime
from typing import Optional, Sequence, TypeVar, Union

from backend.domain.models import (
    AssignedResources,
    Allocation,
    AllocationStatus,
    CommitResult,
    Machine,
    Material,
    Operator,
    ResourceStatus,
    ValidationResult,
    WorkOrder,
    WorkOrderStatus,
)
from backend.repository.locks import LockAcquisitionTimeout
from backend.repository.resource_pool import (
    PoolChangeSet,
    PoolSnapshot,
    ResourcePoolRepository,
    resource_lock_key,
)
from backend.services.validation_service import (
    AllocationError,
    AllocationInputError,
    ensure_unique_ids,
    resolve_machines,
    resolve_materials,
    resolve_operators,
    resolve_work_order,
    thresholds_from_settings,
    validate_allocation,
)
from backend.utils.clock import ensure_utc, resolve_now
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

COMMIT_STATUSES = (AllocationStatus.PROPOSED, AllocationStatus.ACTIVE)
RELEASE_STATUSES = (AllocationStatus.COMPLETED, AllocationStatus.CANCELLED)

ResourceT = TypeVar("ResourceT", Operator, Machine)


class AllocationNotFoundError(AllocationError):
    """Raised when an allocation id is unknown to the resource pool."""


class CommitTimeoutError(AllocationError):
    """Raised when the resource locks could not be taken in time."""


def _parse_status(
    value: Union[AllocationStatus, str],
    allowed: Sequence[AllocationStatus],
    action: str,
) -> AllocationStatus:
    try:
        status = AllocationStatus(value)
    except ValueError as exc:
        raise AllocationInputError(f"Unknown allocation status: {value}") from exc
    if status not in allowed:
        allowed_values = ", ".join(item.value for item in allowed)
        raise AllocationInputError(
            f"Allocation status for {action} must be one of: {allowed_values}"
        )
    return status


def _bind_operator(operator: Operator, work_order_id: str) -> Operator:
    return replace(operator, status=ResourceStatus.BUSY, current_work_order=work_order_id)


def _bind_machine(machine: Machine, work_order_id: str) -> Machine:
    return replace(machine, status=ResourceStatus.BUSY, current_work_order=work_order_id)


def _remove_first(items: tuple[str, ...], value: str) -> tuple[str, ...]:
    if value not in items:
        return items
    index = items.index(value)
    return items[:index] + items[index + 1 :]


def _release_binding(resource: ResourceT) -> ResourceT:
    """View a resource as if the work order had not bound it yet."""
    status = ResourceStatus.AVAILABLE if resource.status == ResourceStatus.BUSY else resource.status
    return replace(resource, status=status, current_work_order=None)


def _held_resources(
    snapshot: PoolSnapshot,
    work_order_id: str,
    operator_ids: Sequence[str],
    machine_ids: Sequence[str],
) -> tuple[list[Operator], list[Machine]]:
    """Resources still bound to the work order through active allocations.

    Ids that are proposed again are left out so the proposal keeps its own
    conflict for them.
    """
    held_operators: list[Operator] = []
    held_machines: list[Machine] = []
    for allocation in snapshot.allocations.values():
        if allocation.work_order_id != work_order_id or allocation.is_released:
            continue
        if allocation.operator_id is not None and allocation.operator_id not in operator_ids:
            operator = snapshot.operators.get(allocation.operator_id)
            if operator is not None and operator.current_work_order == work_order_id:
                held_operators.append(_release_binding(operator))
        elif allocation.machine_id is not None and allocation.machine_id not in machine_ids:
            machine = snapshot.machines.get(allocation.machine_id)
            if machine is not None and machine.current_work_order == work_order_id:
                held_machines.append(_release_binding(machine))
    return held_operators, held_machines


class AllocationCommitService:
    """Turns validated proposals into allocations and releases them again.

    Every commit and release holds the key locks of the work order and each
    resource it touches, re-reads the pool under those locks, and writes one
    ``PoolChangeSet``. Proposals that overlap serialise; disjoint ones run in
    parallel.
    """

    def __init__(
        self,
        repository: Optional[ResourcePoolRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or ResourcePoolRepository(self._settings)
        self._thresholds = thresholds_from_settings(self._settings)

    def _new_allocation_id(self) -> str:
        return f"{self._settings.allocation_id_prefix}{uuid.uuid4().hex}"

    def _timeout(self, timeout: Optional[float]) -> float:
        return self._settings.commit_lock_timeout_seconds if timeout is None else timeout

    def commit_allocation(
        self,
        *,
        work_order_id: str,
        operator_ids: Sequence[str] = (),
        machine_ids: Sequence[str] = (),
        material_ids: Sequence[str] = (),
        allocated_by: str,
        start_time: datetime,
        accept_warnings: bool = True,
        status: Optional[Union[AllocationStatus, str]] = None,
        timeout: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> CommitResult:
        """Validate the proposal against the live pool and persist it.

        Resources the work order already holds through active allocations are
        validated together with the proposal, so a second commit is a top-up
        rather than a fresh assignment. Returns ``committed=False`` with the
        fresh validation when a conflict exists, or when ``accept_warnings``
        is off and warnings exist. Raises
        ``CommitTimeoutError`` if the locks are not acquired within ``timeout``
        seconds; the pool is untouched in that case.
        """
        operator_ids = list(operator_ids)
        machine_ids = list(machine_ids)
        material_ids = list(material_ids)
        if not (operator_ids or machine_ids or material_ids):
            raise AllocationInputError("Allocation proposal contains no resources")
        if not allocated_by.strip():
            raise AllocationInputError("allocated_by must not be empty")
        ensure_unique_ids("operator", operator_ids)
        ensure_unique_ids("machine", machine_ids)
        ensure_unique_ids("material", material_ids)
        allocation_status = _parse_status(
            status or self._settings.default_allocation_status, COMMIT_STATUSES, "commit"
        )

        lock_keys = [resource_lock_key("work_order", work_order_id)]
        lock_keys += [resource_lock_key("operator", item) for item in operator_ids]
        lock_keys += [resource_lock_key("machine", item) for item in machine_ids]
        lock_keys += [resource_lock_key("material", item) for item in material_ids]

        try:
            with self._repository.locks.hold(lock_keys, timeout=self._timeout(timeout)):
                snapshot = self._repository.snapshot()
                return self._commit_locked(
                    snapshot,
                    work_order_id=work_order_id,
                    operator_ids=operator_ids,
                    machine_ids=machine_ids,
                    material_ids=material_ids,
                    allocated_by=allocated_by,
                    start_time=ensure_utc(start_time),
                    accept_warnings=accept_warnings,
                    allocation_status=allocation_status,
                    now=resolve_now(now),
                )
        except LockAcquisitionTimeout as exc:
            logger.warning(
                "Commit timed out | work_order_id=%s | lock=%s", work_order_id, exc.key
            )
            raise CommitTimeoutError(
                f"Could not lock resources for work order {work_order_id}: {exc}"
            ) from exc

    def _commit_locked(
        self,
        snapshot: PoolSnapshot,
        *,
        work_order_id: str,
        operator_ids: list[str],
        machine_ids: list[str],
        material_ids: list[str],
        allocated_by: str,
        start_time: datetime,
        accept_warnings: bool,
        allocation_status: AllocationStatus,
        now: datetime,
    ) -> CommitResult:
        work_order = resolve_work_order(snapshot, work_order_id)
        if work_order.status == WorkOrderStatus.COMPLETED:
            raise AllocationInputError(f"Work order {work_order_id} is already completed")
        operators = resolve_operators(snapshot, operator_ids)
        machines = resolve_machines(snapshot, machine_ids)
        materials = resolve_materials(snapshot, material_ids)
        held_operators, held_machines = _held_resources(
            snapshot, work_order_id, operator_ids, machine_ids
        )

        # Counts and coverage are checked for everything the work order will hold.
        try:
            validation = validate_allocation(
                work_order,
                held_operators + operators,
                held_machines + machines,
                materials=materials,
                now=now,
                thresholds=self._thresholds,
            )
        except ValueError as exc:
            raise AllocationInputError(str(exc)) from exc

        if not validation.is_valid or (validation.warnings and not accept_warnings):
            self._log_rejection(work_order_id, validation, accept_warnings)
            return CommitResult(committed=False, validation=validation)

        changes = self._build_commit_changes(
            work_order,
            operators,
            machines,
            materials,
            allocated_by=allocated_by,
            start_time=start_time,
            allocation_status=allocation_status,
            now=now,
        )
        self._repository.apply_changes(changes)
        logger.info(
            "Allocation committed | work_order_id=%s | allocations=%s | operators=%s | machines=%s | materials=%s",
            work_order_id,
            len(changes.allocations),
            operator_ids,
            machine_ids,
            material_ids,
        )
        return CommitResult(
            committed=True,
            validation=validation,
            allocations=changes.allocations,
        )

    def _log_rejection(
        self,
        work_order_id: str,
        validation: ValidationResult,
        accept_warnings: bool,
    ) -> None:
        logger.info(
            "Allocation rejected | work_order_id=%s | conflicts=%s | warnings=%s | accept_warnings=%s",
            work_order_id,
            len(validation.conflicts),
            len(validation.warnings),
            accept_warnings,
        )

    def _build_commit_changes(
        self,
        work_order: WorkOrder,
        operators: list[Operator],
        machines: list[Machine],
        materials: list[Material],
        *,
        allocated_by: str,
        start_time: datetime,
        allocation_status: AllocationStatus,
        now: datetime,
    ) -> PoolChangeSet:
        work_order_id = work_order.work_order_id

        def new_allocation(**resource: object) -> Allocation:
            return Allocation(
                allocation_id=self._new_allocation_id(),
                work_order_id=work_order_id,
                status=allocation_status,
                allocated_at=now,
                allocated_by=allocated_by,
                start_time=start_time,
                **resource,
            )

        allocations = [new_allocation(operator_id=item.operator_id) for item in operators]
        allocations += [new_allocation(machine_id=item.machine_id) for item in machines]

        reserved_materials = []
        for material in materials:
            quantity = work_order.requirements.required_quantity_for(material.material_id)
            reserved_materials.append(
                replace(material, reserved_quantity=material.reserved_quantity + quantity)
            )
            allocations.append(
                new_allocation(material_id=material.material_id, reserved_quantity=quantity)
            )

        assigned = work_order.assigned_resources
        updated_work_order = replace(
            work_order,
            status=WorkOrderStatus.IN_PROGRESS,
            assigned_resources=AssignedResources(
                operators=assigned.operators + tuple(item.operator_id for item in operators),
                machines=assigned.machines + tuple(item.machine_id for item in machines),
                materials=assigned.materials + tuple(item.material_id for item in materials),
            ),
        )

        return PoolChangeSet(
            operators=tuple(_bind_operator(item, work_order_id) for item in operators),
            machines=tuple(_bind_machine(item, work_order_id) for item in machines),
            materials=tuple(reserved_materials),
            work_orders=(updated_work_order,),
            allocations=tuple(allocations),
        )

    def release_allocation(
        self,
        allocation_id: str,
        *,
        status: Union[AllocationStatus, str] = AllocationStatus.CANCELLED,
        end_time: Optional[datetime] = None,
        timeout: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Allocation:
        """Close an allocation and free the resource it bound.

        Releasing an allocation that is already completed or cancelled returns
        the stored record unchanged.
        """
        release_status = _parse_status(status, RELEASE_STATUSES, "release")
        allocation = self._repository.get_allocation(allocation_id)
        if allocation is None:
            raise AllocationNotFoundError(f"Allocation {allocation_id} not found")

        lock_keys = [
            resource_lock_key("allocation", allocation_id),
            resource_lock_key("work_order", allocation.work_order_id),
            resource_lock_key(allocation.resource_kind, allocation.resource_id),
        ]
        try:
            with self._repository.locks.hold(lock_keys, timeout=self._timeout(timeout)):
                current = self._repository.get_allocation(allocation_id)
                if current is None:
                    raise AllocationNotFoundError(f"Allocation {allocation_id} not found")
                if current.is_released:
                    logger.info(
                        "Release skipped | allocation_id=%s | status=%s",
                        allocation_id,
                        current.status.value,
                    )
                    return current
                closed_at = ensure_utc(end_time) if end_time is not None else resolve_now(now)
                changes = self._build_release_changes(
                    self._repository.snapshot(), current, release_status, closed_at
                )
                self._repository.apply_changes(changes)
        except LockAcquisitionTimeout as exc:
            logger.warning(
                "Release timed out | allocation_id=%s | lock=%s", allocation_id, exc.key
            )
            raise CommitTimeoutError(
                f"Could not lock resources for allocation {allocation_id}: {exc}"
            ) from exc

        released = changes.allocations[0]
        logger.info(
            "Allocation released | allocation_id=%s | work_order_id=%s | %s=%s | status=%s",
            allocation_id,
            released.work_order_id,
            released.resource_kind,
            released.resource_id,
            released.status.value,
        )
        return released

    def _build_release_changes(
        self,
        snapshot: PoolSnapshot,
        allocation: Allocation,
        status: AllocationStatus,
        end_time: datetime,
    ) -> PoolChangeSet:
        work_order_id = allocation.work_order_id
        operators: tuple[Operator, ...] = ()
        machines: tuple[Machine, ...] = ()
        materials: tuple[Material, ...] = ()

        # A resource rebound to another work order since this allocation is left alone.
        if allocation.operator_id is not None:
            operator = snapshot.operators.get(allocation.operator_id)
            if operator is not None and operator.current_work_order == work_order_id:
                operators = (
                    replace(operator, status=ResourceStatus.AVAILABLE, current_work_order=None),
                )
        elif allocation.machine_id is not None:
            machine = snapshot.machines.get(allocation.machine_id)
            if machine is not None and machine.current_work_order == work_order_id:
                machines = (
                    replace(machine, status=ResourceStatus.AVAILABLE, current_work_order=None),
                )
        elif allocation.material_id is not None:
            material = snapshot.materials.get(allocation.material_id)
            if material is not None:
                remaining = max(0.0, material.reserved_quantity - allocation.reserved_quantity)
                materials = (replace(material, reserved_quantity=remaining),)

        work_orders: tuple[WorkOrder, ...] = ()
        work_order = snapshot.work_orders.get(work_order_id)
        if work_order is not None:
            assigned = work_order.assigned_resources
            if allocation.operator_id is not None:
                assigned = replace(
                    assigned, operators=_remove_first(assigned.operators, allocation.operator_id)
                )
            elif allocation.machine_id is not None:
                assigned = replace(
                    assigned, machines=_remove_first(assigned.machines, allocation.machine_id)
                )
            elif allocation.material_id is not None:
                assigned = replace(
                    assigned, materials=_remove_first(assigned.materials, allocation.material_id)
                )
            work_orders = (replace(work_order, assigned_resources=assigned),)

        return PoolChangeSet(
            operators=operators,
            machines=machines,
            materials=materials,
            work_orders=work_orders,
            allocations=(replace(allocation, status=status, end_time=end_time),),
        )
