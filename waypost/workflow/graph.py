"""
Dependency graph over a plan's tasks.

Edges point from a task to the tasks it depends on. The graph answers two
questions: is the plan acyclic, and is a given task unlocked (every
dependency done or verified). Traversals are iterative so deep chains do
not hit the recursion limit.

Usage:
    from waypost.workflow.graph import DependencyGraph

    graph = DependencyGraph.from_plan(plan)
    graph.validate()                      # raises on cycles / unknown ids
    graph.is_unlocked("task-b", state)
"""

import logging
from collections import Counter

from waypost.lib.errors import (
    CyclicDependencyError,
    DuplicateTaskError,
    UnknownDependencyError,
)
from waypost.workflow.models import ExecutionState, Plan, Task
from waypost.workflow.state_machine import TaskStatus

logger = logging.getLogger(__name__)

# Three-color marking for cycle detection
WHITE, GRAY, BLACK = 0, 1, 2


class DependencyGraph:
    """Read-only view of DependsOn edges, built from a list of tasks."""

    def __init__(self, tasks: list[Task]):
        self._tasks = {}
        self._order = []
        self._duplicates = []
        for task in tasks:
            if task.id in self._tasks:
                self._duplicates.append(task.id)
                continue
            self._tasks[task.id] = task
            self._order.append(task.id)

    @classmethod
    def from_plan(cls, plan: Plan) -> "DependencyGraph":
        return cls(plan.tasks)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._order)

    def dependencies(self, task_id: str) -> list[str]:
        task = self._tasks.get(task_id)
        return list(task.depends_on) if task else []

    def dependents(self, task_id: str) -> list[str]:
        """Tasks that list task_id in their DependsOn, in plan order."""
        return [tid for tid in self._order if task_id in self._tasks[tid].depends_on]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """Check that the graph is usable.

        Raises:
            DuplicateTaskError: Two tasks share an id.
            UnknownDependencyError: A DependsOn entry names a task not in the plan.
            CyclicDependencyError: The DependsOn relation has a cycle.
        """
        if self._duplicates:
            raise DuplicateTaskError(self._duplicates[0])

        for tid in self._order:
            for dep in self._tasks[tid].depends_on:
                if dep not in self._tasks:
                    raise UnknownDependencyError(tid, dep)

        cycle = self.find_cycle()
        if cycle:
            raise CyclicDependencyError(cycle)
        logger.debug(f"[GRAPH] {len(self._order)} tasks validated, no cycles")

    def find_cycle(self) -> list[str] | None:
        """Depth-first search with white/gray/black marking.

        Returns the cycle as a path that starts and ends on the same task,
        or None if the graph is acyclic. Dependencies on unknown ids are
        ignored here; validate() reports them first.
        """
        color = {tid: WHITE for tid in self._order}

        for root in self._order:
            if color[root] != WHITE:
                continue
            # Stack of (task id, index of next dependency to visit)
            stack = [(root, 0)]
            path = [root]
            color[root] = GRAY
            while stack:
                node, idx = stack[-1]
                deps = self._tasks[node].depends_on
                if idx >= len(deps):
                    color[node] = BLACK
                    stack.pop()
                    path.pop()
                    continue
                stack[-1] = (node, idx + 1)
                dep = deps[idx]
                if dep not in color:
                    continue
                if color[dep] == GRAY:
                    start = path.index(dep)
                    return path[start:] + [dep]
                if color[dep] == WHITE:
                    color[dep] = GRAY
                    stack.append((dep, 0))
                    path.append(dep)
        return None

    def topological_order(self) -> list[str]:
        """Task ids with every dependency before its dependents.

        Ties keep plan order. Assumes validate() has passed.
        """
        remaining = Counter()
        for tid in self._order:
            remaining[tid] = len({d for d in self._tasks[tid].depends_on if d in self._tasks})

        ordered = []
        ready = [tid for tid in self._order if remaining[tid] == 0]
        while ready:
            tid = ready.pop(0)
            ordered.append(tid)
            for dependent in self.dependents(tid):
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    ready.append(dependent)
            ready.sort(key=self._order.index)
        if len(ordered) != len(self._order):
            cycle = self.find_cycle() or []
            raise CyclicDependencyError(cycle)
        return ordered

    # ------------------------------------------------------------------
    # Unlock queries
    # ------------------------------------------------------------------

    def unmet_dependencies(self, task_id: str, state: ExecutionState) -> list[tuple[str, TaskStatus]]:
        """Dependencies of task_id that are not complete, with their status."""
        return [
            (dep, state.status_of(dep))
            for dep in self.dependencies(task_id)
            if not state.status_of(dep).is_complete
        ]

    def is_unlocked(self, task_id: str, state: ExecutionState) -> bool:
        """True iff every dependency is done or verified.

        Missing state entries count as pending.
        """
        return not self.unmet_dependencies(task_id, state)

    def unlocked_tasks(self, state: ExecutionState) -> list[str]:
        """Pending tasks whose dependencies are all complete, in plan order."""
        return [
            tid for tid in self._order
            if state.status_of(tid) == TaskStatus.PENDING and self.is_unlocked(tid, state)
        ]

    def newly_unlocked(self, task_id: str, before: ExecutionState, after: ExecutionState) -> list[str]:
        """Pending dependents of task_id that were locked before and are unlocked after."""
        return [
            dep for dep in self.dependents(task_id)
            if after.status_of(dep) == TaskStatus.PENDING
            and not self.is_unlocked(dep, before)
            and self.is_unlocked(dep, after)
        ]


def validate_plan(plan: Plan) -> None:
    """Validate a plan's dependency graph. See DependencyGraph.validate()."""
    DependencyGraph.from_plan(plan).validate()


def is_unlocked(task: Task, state: ExecutionState) -> bool:
    """True iff every id in task.depends_on is done or verified in state."""
    return all(state.status_of(dep).is_complete for dep in task.depends_on)
