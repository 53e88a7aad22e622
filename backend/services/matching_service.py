"""Weighted scoring and ranking of pool resources for one work order."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Generic, Optional, Sequence, TypeVar

from backend.domain.constraints import (
    AllocationThresholds,
    validate_allocation_thresholds,
    validate_requirement_counts,
)
from backend.domain.models import (
    Machine,
    MachineRequirements,
    MatchResult,
    Operator,
    OperatorRequirements,
    ResourceStatus,
    WorkOrder,
)
from backend.repository.resource_pool import ResourcePoolRepository
from backend.services.validation_service import (
    AllocationInputError,
    resolve_work_order,
    thresholds_from_settings,
)
from backend.utils.clock import resolve_now, whole_days_until
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

SKILL_MATCH_WEIGHT = 40.0
SKILL_LEVEL_WEIGHT = 20.0
OPERATOR_HEADROOM_WEIGHT = 20.0
CERTIFICATION_WEIGHT = 20.0

CAPABILITY_MATCH_WEIGHT = 40.0
EFFICIENCY_WEIGHT = 15.0
UPTIME_WEIGHT = 15.0
MACHINE_HEADROOM_WEIGHT = 20.0
MAINTENANCE_WEIGHT = 10.0

MAX_SKILL_LEVEL = 5

ResourceT = TypeVar("ResourceT", Operator, Machine)


@dataclass(frozen=True)
class ScoredResource(Generic[ResourceT]):
    resource: ResourceT
    score: float


def _coverage(required: Sequence[str], present: frozenset[str]) -> float:
    # An empty requirement contributes 0.
    unique_required = list(dict.fromkeys(required))
    if not unique_required:
        return 0.0
    matching = sum(1 for item in unique_required if item in present)
    return matching / len(unique_required)


def _headroom(utilization_rate: float) -> float:
    return (100.0 - utilization_rate) / 100.0


def score_operator(
    operator: Operator,
    requirements: OperatorRequirements,
    now: datetime,
) -> float:
    score = _coverage(requirements.required_skills, operator.skill_ids) * SKILL_MATCH_WEIGHT

    skills = operator.skills
    if skills:
        average_level = sum(skill.level for skill in skills) / len(skills)
        score += (average_level / MAX_SKILL_LEVEL) * SKILL_LEVEL_WEIGHT

    score += _headroom(operator.utilization_rate) * OPERATOR_HEADROOM_WEIGHT

    if skills:
        compliant = sum(1 for skill in skills if skill.is_compliant(now))
        score += (compliant / len(skills)) * CERTIFICATION_WEIGHT
    return score


def _maintenance_points(
    machine: Machine,
    now: datetime,
    thresholds: AllocationThresholds,
) -> float:
    if machine.maintenance_schedule is None:
        return MAINTENANCE_WEIGHT
    days = whole_days_until(machine.maintenance_schedule.next_maintenance, now)
    if days > thresholds.maintenance_horizon_full_days:
        return MAINTENANCE_WEIGHT
    if days > thresholds.maintenance_horizon_partial_days:
        return MAINTENANCE_WEIGHT / 2
    return 0.0


def score_machine(
    machine: Machine,
    requirements: MachineRequirements,
    now: datetime,
    thresholds: Optional[AllocationThresholds] = None,
) -> float:
    active_thresholds = thresholds or AllocationThresholds()
    score = (
        _coverage(requirements.required_capabilities, machine.capability_ids)
        * CAPABILITY_MATCH_WEIGHT
    )
    score += (machine.performance.efficiency / 100.0) * EFFICIENCY_WEIGHT
    score += (machine.performance.uptime / 100.0) * UPTIME_WEIGHT
    score += _headroom(machine.utilization_rate) * MACHINE_HEADROOM_WEIGHT
    score += _maintenance_points(machine, now, active_thresholds)
    return score


def _rank(scored: list[ScoredResource]) -> list[ScoredResource]:
    # sorted() is stable, so equal scores keep their input order.
    return sorted(scored, key=lambda item: item.score, reverse=True)


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def rank_operators(
    work_order: WorkOrder,
    operators: Sequence[Operator],
    now: datetime,
) -> list[ScoredResource[Operator]]:
    requirements = work_order.requirements.operators
    return _rank(
        [
            ScoredResource(resource=operator, score=score_operator(operator, requirements, now))
            for operator in operators
            if operator.status == ResourceStatus.AVAILABLE
        ]
    )


def rank_machines(
    work_order: WorkOrder,
    machines: Sequence[Machine],
    now: datetime,
    thresholds: Optional[AllocationThresholds] = None,
) -> list[ScoredResource[Machine]]:
    requirements = work_order.requirements.machines
    return _rank(
        [
            ScoredResource(
                resource=machine,
                score=score_machine(machine, requirements, now, thresholds),
            )
            for machine in machines
            if machine.status == ResourceStatus.AVAILABLE
        ]
    )


def find_optimal_resources(
    work_order: WorkOrder,
    all_operators: Sequence[Operator],
    all_machines: Sequence[Machine],
    *,
    now: Optional[datetime] = None,
    thresholds: Optional[AllocationThresholds] = None,
) -> MatchResult:
    """Rank available resources and pick the top ``count`` of each kind.

    Only ``status`` filters the pool; ``current_work_order`` is left to the
    validator. Fewer suggestions than requested is a valid result.
    """
    active_thresholds = thresholds or AllocationThresholds()
    validate_allocation_thresholds(active_thresholds)
    validate_requirement_counts(work_order.requirements)
    current_time = resolve_now(now)

    requirements = work_order.requirements
    selected_operators = rank_operators(work_order, all_operators, current_time)[
        : requirements.operators.count
    ]
    selected_machines = rank_machines(
        work_order, all_machines, current_time, active_thresholds
    )[: requirements.machines.count]

    operator_scores = [item.score for item in selected_operators]
    machine_scores = [item.score for item in selected_machines]
    match_score = round((_mean(operator_scores) + _mean(machine_scores)) / 2)

    return MatchResult(
        suggested_operators=tuple(item.resource for item in selected_operators),
        suggested_machines=tuple(item.resource for item in selected_machines),
        match_score=max(0, min(100, int(match_score))),
        operator_scores=tuple(operator_scores),
        machine_scores=tuple(machine_scores),
    )


class ResourceMatchingService:
    """Scores the pool's current snapshot for a stored work order."""

    def __init__(
        self,
        repository: Optional[ResourcePoolRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or ResourcePoolRepository(self._settings)
        self._thresholds = thresholds_from_settings(self._settings)

    def find_optimal(
        self,
        *,
        work_order_id: str,
        now: Optional[datetime] = None,
    ) -> MatchResult:
        snapshot = self._repository.snapshot()
        work_order = resolve_work_order(snapshot, work_order_id)
        try:
            result = find_optimal_resources(
                work_order,
                list(snapshot.operators.values()),
                list(snapshot.machines.values()),
                now=now,
                thresholds=self._thresholds,
            )
        except ValueError as exc:
            raise AllocationInputError(str(exc)) from exc

        requirements = work_order.requirements
        if (
            len(result.suggested_operators) < requirements.operators.count
            or len(result.suggested_machines) < requirements.machines.count
        ):
            logger.warning(
                "Pool cannot cover work order | work_order_id=%s | operators=%s/%s | machines=%s/%s",
                work_order_id,
                len(result.suggested_operators),
                requirements.operators.count,
                len(result.suggested_machines),
                requirements.machines.count,
            )
        logger.info(
            "Match completed | work_order_id=%s | match_score=%s | operators=%s | machines=%s",
            work_order_id,
            result.match_score,
            [operator.operator_id for operator in result.suggested_operators],
            [machine.machine_id for machine in result.suggested_machines],
        )
        return result
