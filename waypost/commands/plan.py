"""
wp plan - Generate, approve, reject, prune and show the plan.
"""

from waypost.lib.config import ProjectConfig
from waypost.lib.errors import NoPlanError
from waypost.lib.repository import FilesystemRepository
from waypost.workflow.engine import Coordinator
from waypost.workflow.graph import DependencyGraph
from waypost.workflow.state_machine import TaskStatus

STATUS_MARKERS = {
    TaskStatus.PENDING: " ",
    TaskStatus.BLOCKED: "!",
    TaskStatus.IN_PROGRESS: ">",
    TaskStatus.DONE: "x",
    TaskStatus.VERIFIED: "V",
}


def cmd_plan_generate(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    coord = Coordinator(repo, config)
    plan = coord.generate_plan(actor=args.actor)
    print(f"Generated plan {plan.id} with {len(plan.tasks)} task(s)")
    print("Plan is pending approval. Review with 'wp plan show', then 'wp plan approve'.")
    return 0


def cmd_plan_approve(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    coord = Coordinator(repo, config)
    plan = coord.approve_plan(actor=args.actor)
    print(f"Plan {plan.id} approved")
    ready = coord.ready_tasks()
    if ready:
        print(f"Ready to start: {', '.join(ready)}")
    return 0


def cmd_plan_reject(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    coord = Coordinator(repo, config)
    plan = coord.reject_plan(actor=args.actor)
    print(f"Plan {plan.id} rejected")
    return 0


def cmd_plan_prune(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    coord = Coordinator(repo, config)
    removed = coord.prune_plan(actor=args.actor)
    if not removed:
        print("Nothing to prune.")
        return 0
    print(f"Pruned {len(removed)} task(s):")
    for task_id in removed:
        print(f"  - {task_id}")
    return 0


def cmd_plan_show(args, repo: FilesystemRepository, config: ProjectConfig) -> int:
    plan = repo.load_plan()
    if plan is None:
        raise NoPlanError()
    state = Coordinator(repo, config).snapshot()

    status_of = {}
    for status, ids in (
        (TaskStatus.PENDING, state.pending),
        (TaskStatus.BLOCKED, state.blocked),
        (TaskStatus.IN_PROGRESS, state.in_progress),
        (TaskStatus.DONE, state.done),
        (TaskStatus.VERIFIED, state.verified),
    ):
        for task_id in ids:
            status_of[task_id] = status

    print(f"Plan:     {plan.id}")
    print(f"Spec:     {plan.spec_id}")
    print(f"Approval: {plan.approval_status.value}")
    print(f"Tasks:    {len(plan.tasks)}")
    print()

    order = DependencyGraph.from_plan(plan).topological_order()
    for task_id in order:
        task = plan.get_task(task_id)
        marker = STATUS_MARKERS[status_of.get(task_id, TaskStatus.PENDING)]
        line = f"  [{marker}] {task.id}  {task.title}  ({task.priority.value})"
        if task.depends_on:
            line += f"  <- {', '.join(task.depends_on)}"
        print(line)
    return 0
