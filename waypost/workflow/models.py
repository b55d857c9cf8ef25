"""
Data models for plans and execution state.

A Plan owns its Tasks. ExecutionState maps task ids to TaskResults and is
only ever changed by the coordinator, which builds new TaskResults with
dataclasses.replace rather than assigning fields in place.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from waypost.workflow.state_machine import TaskStatus, parse_status


class TaskPriority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: Optional[str]) -> "TaskPriority":
        """Parse a priority string, defaulting to medium."""
        if not value:
            return cls.MEDIUM
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.MEDIUM


class ApprovalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class Task:
    """A unit of planned work."""
    id: str
    title: str
    feature_id: str = ""
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    estimate: str = ""  # Opaque effort string, e.g. "2d"
    depends_on: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "feature_id": self.feature_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "estimate": self.estimate,
            "depends_on": list(self.depends_on),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        return cls(
            id=data["id"],
            title=data["title"],
            feature_id=data.get("feature_id", ""),
            description=data.get("description", ""),
            priority=TaskPriority.parse(data.get("priority")),
            estimate=data.get("estimate", ""),
            depends_on=list(data.get("depends_on", [])),
        )


@dataclass
class Plan:
    """An ordered set of tasks derived from a spec."""
    id: str
    spec_id: str
    tasks: list[Task] = field(default_factory=list)
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def get_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    @property
    def task_ids(self) -> list[str]:
        return [t.id for t in self.tasks]

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "spec_id": self.spec_id,
            "approval_status": self.approval_status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "tasks": [t.to_dict() for t in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Plan":
        return cls(
            id=data["id"],
            spec_id=data.get("spec_id", ""),
            tasks=[Task.from_dict(t) for t in data.get("tasks", [])],
            approval_status=ApprovalStatus(data.get("approval_status", "pending")),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass(frozen=True)
class TaskResult:
    """Execution record for one task."""
    status: TaskStatus = TaskStatus.PENDING
    owner: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    evidence: tuple[str, ...] = ()

    def with_status(self, status: TaskStatus, **changes) -> "TaskResult":
        return replace(self, status=status, **changes)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "owner": self.owner,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "evidence": list(self.evidence),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TaskResult":
        status = parse_status(data.get("status"))
        if status is None:
            raise ValueError(f"Unknown task status: {data.get('status')!r}")
        return cls(
            status=status,
            owner=data.get("owner"),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            evidence=tuple(data.get("evidence", [])),
        )


@dataclass
class ExecutionState:
    """Per-plan task results keyed by task id."""
    plan_id: str
    task_states: dict[str, TaskResult] = field(default_factory=dict)
    updated_at: Optional[str] = None

    def result_of(self, task_id: str) -> TaskResult:
        """Result for a task. Missing entries read as pending."""
        return self.task_states.get(task_id, TaskResult())

    def status_of(self, task_id: str) -> TaskStatus:
        return self.result_of(task_id).status

    def ids_with_status(self, status: TaskStatus) -> list[str]:
        return [tid for tid, r in self.task_states.items() if r.status == status]

    def copy(self) -> "ExecutionState":
        # TaskResult is frozen, so a shallow dict copy is enough
        return ExecutionState(
            plan_id=self.plan_id,
            task_states=dict(self.task_states),
            updated_at=self.updated_at,
        )

    def to_dict(self) -> dict:
        return {
            "plan_id": self.plan_id,
            "updated_at": self.updated_at,
            "task_states": {tid: r.to_dict() for tid, r in self.task_states.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExecutionState":
        return cls(
            plan_id=data["plan_id"],
            task_states={
                tid: TaskResult.from_dict(r) for tid, r in data.get("task_states", {}).items()
            },
            updated_at=data.get("updated_at"),
        )
