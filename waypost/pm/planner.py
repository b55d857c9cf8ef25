"""
Plan generation for waypost.

Turns a ProductSpec into a list of candidate Tasks, either with the
built-in heuristic (one task per requirement) or through a PlanGenerator
port backed by an AI provider. Candidates are then reconciled against the
existing plan, so manually added tasks survive regeneration.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, Protocol

from waypost.lib.constants import TASK_ID_PREFIX
from waypost.lib.errors import OperationCancelled
from waypost.lib.timeutil import format_timestamp, utc_now
from waypost.pm.models import ProductSpec
from waypost.workflow.graph import validate_plan
from waypost.workflow.models import ApprovalStatus, Plan, Task, TaskPriority

logger = logging.getLogger(__name__)


def requirement_task_id(requirement_id: str) -> str:
    return f"{TASK_ID_PREFIX}{requirement_id}"


@dataclass
class Decomposition:
    """What a PlanGenerator returns: candidate tasks plus token accounting."""
    tasks: list[Task] = field(default_factory=list)
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0


class PlanGenerator(Protocol):
    """Port for AI-backed spec decomposition."""

    def decompose_spec(self, spec: ProductSpec) -> Decomposition:
        ...


def decompose_heuristic(spec: ProductSpec) -> list[Task]:
    """One task per requirement, one per requirement-less feature.

    Requirement dependencies become task dependencies on task-<dep>.
    """
    tasks = []
    for feature in spec.features:
        if not feature.requirements:
            tasks.append(Task(
                id=requirement_task_id(feature.id),
                title=feature.title,
                feature_id=feature.id,
                description=feature.description,
            ))
            continue
        for req in feature.requirements:
            tasks.append(Task(
                id=requirement_task_id(req.id),
                title=f"{req.title} ({feature.title})",
                feature_id=feature.id,
                description=req.description,
                priority=TaskPriority.parse(req.priority),
                estimate=req.estimate,
                depends_on=[requirement_task_id(dep) for dep in req.depends_on],
            ))
    return tasks


def decompose_with_generator(
    generator: PlanGenerator,
    spec: ProductSpec,
    cancel: Optional[threading.Event] = None,
) -> Decomposition:
    """Ask the generator for tasks.

    Raises:
        OperationCancelled: cancel was set before the generator was called.
    """
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("Plan generation cancelled")
    result = generator.decompose_spec(spec)
    logger.info(
        f"[PLAN] {result.model or 'generator'} proposed {len(result.tasks)} tasks "
        f"({result.input_tokens} in / {result.output_tokens} out tokens)"
    )
    return result


def reconcile_plan(
    spec: ProductSpec,
    proposed: list[Task],
    existing: Optional[Plan] = None,
    now: Optional[datetime] = None,
) -> Plan:
    """Merge proposed tasks into a new pending plan.

    Proposed tasks replace existing ones with the same id and keep their
    order. Existing tasks that were not proposed (manual tasks) are kept
    after them. Tasks without an id or title are dropped. The plan id and
    creation time carry over from the existing plan.

    Raises:
        ValidationError: The merged plan has unknown dependencies or a cycle.
    """
    now = now or utc_now()
    stamp = format_timestamp(now)

    if existing is not None:
        plan_id = existing.id
        created_at = existing.created_at or stamp
        carried = {t.id: t for t in existing.tasks}
    else:
        plan_id = f"plan-{spec.id}-{int(now.timestamp())}"
        created_at = stamp
        carried = {}

    tasks = []
    seen = set()
    for task in proposed:
        if not task.id or not task.title:
            logger.warning(f"[PLAN] Dropping malformed proposed task: {task!r}")
            continue
        if task.id in seen:
            continue
        seen.add(task.id)
        carried.pop(task.id, None)
        tasks.append(task)

    for task in carried.values():
        if not task.id or not task.title:
            continue
        tasks.append(task)

    plan = Plan(
        id=plan_id,
        spec_id=spec.id,
        tasks=tasks,
        approval_status=ApprovalStatus.PENDING,
        created_at=created_at,
        updated_at=stamp,
    )
    validate_plan(plan)
    return plan


def prune_tasks(spec: ProductSpec, plan: Plan) -> tuple[list[Task], list[str]]:
    """Drop tasks that match neither a requirement nor a feature in spec.

    Returns (kept tasks, removed ids). Dependencies on removed tasks are
    stripped from the kept ones.
    """
    requirement_ids = {requirement_task_id(r.id) for _, r in spec.iter_requirements()}
    feature_ids = {f.id for f in spec.features}

    kept = []
    removed = []
    for task in plan.tasks:
        if task.id in requirement_ids or task.feature_id in feature_ids:
            kept.append(task)
        else:
            removed.append(task.id)

    if removed:
        gone = set(removed)
        kept = [
            replace(t, depends_on=[d for d in t.depends_on if d not in gone])
            if gone.intersection(t.depends_on) else t
            for t in kept
        ]
        logger.info(f"[PLAN] Pruned {len(removed)} tasks: {', '.join(removed)}")
    return kept, removed
