"""
Error taxonomy for waypost.

Four kinds, each a base class callers can catch:
- PreconditionError: something required (spec, plan, state) is missing
- ValidationError: data is structurally invalid (cycles, bad references, schema)
- GuardViolationError: a transition was refused (dependency, FSM table, policy)
- PersistenceError: the repository failed to load, save or append

Concrete errors carry the ids and statuses a caller needs to build a message.
"""


class WaypostError(Exception):
    """Base class for all waypost errors."""


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------

class PreconditionError(WaypostError):
    """Required project data is missing. Run a setup operation first."""


class NotInitializedError(PreconditionError):
    def __init__(self, root):
        self.root = root
        super().__init__(f"No waypost project at {root}. Run 'wp init' first.")


class NoSpecError(PreconditionError):
    def __init__(self):
        super().__init__("No spec found")


class NoPlanError(PreconditionError):
    def __init__(self):
        super().__init__("No plan found")


class NoStateError(PreconditionError):
    def __init__(self):
        super().__init__("No execution state found")


class PlanNotApprovedError(PreconditionError):
    def __init__(self, plan_id: str, approval_status: str):
        self.plan_id = plan_id
        self.approval_status = approval_status
        super().__init__(f"Plan {plan_id} is not approved (status: {approval_status})")


class TaskNotFoundError(PreconditionError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found in plan: {task_id}")


class OperationCancelled(WaypostError):
    """The caller's cancellation signal was set before the operation ran."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class ValidationError(WaypostError):
    """Data failed structural validation."""


class CyclicDependencyError(ValidationError):
    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(f"Cyclic dependency detected: {' -> '.join(self.cycle)}")


class UnknownDependencyError(ValidationError):
    def __init__(self, task_id: str, dependency_id: str):
        self.task_id = task_id
        self.dependency_id = dependency_id
        super().__init__(
            f"Task {task_id} depends on {dependency_id}, which is not in the plan"
        )


class DuplicateTaskError(ValidationError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Duplicate task id in plan: {task_id}")


class SchemaValidationError(ValidationError):
    def __init__(self, schema_name: str, message: str, path: str | None = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


class InvalidApprovalTransition(ValidationError):
    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot change plan approval from {from_status} to {to_status}")


# ---------------------------------------------------------------------------
# Guard violations
# ---------------------------------------------------------------------------

class GuardViolationError(WaypostError):
    """A transition was refused. Nothing was changed."""


class TransitionError(GuardViolationError):
    def __init__(self, task_id: str, from_status: str, to_status: str | None, event: str):
        self.task_id = task_id
        self.from_status = from_status
        self.to_status = to_status
        self.event = event
        target = to_status or "?"
        super().__init__(
            f"Cannot transition task {task_id} from {from_status} to {target} via {event}"
        )


class DependencyError(GuardViolationError):
    def __init__(self, task_id: str, dependency_id: str, status: str):
        self.task_id = task_id
        self.dependency_id = dependency_id
        self.status = status
        super().__init__(
            f"Task {task_id} blocked by dependency {dependency_id} (status: {status})"
        )


class EvidenceRequiredError(GuardViolationError):
    def __init__(self, task_id: str, event: str = "verify"):
        self.task_id = task_id
        self.event = event
        super().__init__(f"Evidence is required to {event} task {task_id}")


class PolicyViolationError(GuardViolationError):
    def __init__(self, violations: list):
        self.violations = list(violations)
        messages = "; ".join(f"[{v.rule_id}] {v.message}" for v in self.violations)
        super().__init__(f"Policy violation: {messages}")

    @property
    def rule_ids(self) -> list[str]:
        return [v.rule_id for v in self.violations]


class AIDisabledError(PolicyViolationError):
    """AI-backed operations are turned off by policy."""


class TokenLimitError(PolicyViolationError):
    """AI token usage has reached the policy limit."""


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class PersistenceError(WaypostError):
    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class JournalWriteError(PersistenceError):
    """Appending to the journal failed; the operation did not take effect."""
