"""
Policy engine: stateless rule evaluation.

Rules are plain functions of (plan, state, policy config, usage) that return
Violations. Nothing here mutates or persists anything. Only the coordinator
turns an ERROR violation into a refused transition; check_compliance() just
reports.

Rules:
- max-wip: in-progress tasks must stay within max_wip (0 or less = unlimited)
- dependency-check: an in-progress task should not have incomplete dependencies
- ai-disabled / token-limit: gate for AI-backed operations
- budget-hours: logged hours over budget (warning, never blocking)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from waypost.lib.errors import AIDisabledError, TokenLimitError
from waypost.workflow.models import ExecutionState, Plan
from waypost.workflow.state_machine import TaskEvent, TaskStatus

logger = logging.getLogger(__name__)

# Token usage thresholds as fractions of token_limit
TOKEN_INFO_RATIO = 0.75
TOKEN_WARNING_RATIO = 0.90


class ViolationLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Violation:
    rule_id: str
    message: str
    level: ViolationLevel = ViolationLevel.ERROR

    @property
    def is_blocking(self) -> bool:
        return self.level == ViolationLevel.ERROR


@dataclass
class PolicyConfig:
    """Project-wide governance settings from policy.yaml."""
    max_wip: int = 3
    allow_ai: bool = True
    token_limit: int = 0      # 0 = no limit
    budget_hours: float = 0   # 0 = no budget

    def to_dict(self) -> dict:
        return {
            "max_wip": self.max_wip,
            "allow_ai": self.allow_ai,
            "token_limit": self.token_limit,
            "budget_hours": self.budget_hours,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PolicyConfig":
        defaults = cls()
        return cls(
            max_wip=int(data.get("max_wip", defaults.max_wip)),
            allow_ai=bool(data.get("allow_ai", defaults.allow_ai)),
            token_limit=int(data.get("token_limit", defaults.token_limit)),
            budget_hours=float(data.get("budget_hours", defaults.budget_hours)),
        )


# ---------------------------------------------------------------------------
# Individual rules
# ---------------------------------------------------------------------------

def check_wip(state: ExecutionState, policy: PolicyConfig, task_id: Optional[str] = None) -> list[Violation]:
    """WIP headroom for starting task_id, or the current WIP if task_id is None."""
    if policy.max_wip <= 0:
        return []

    in_progress = [tid for tid in state.ids_with_status(TaskStatus.IN_PROGRESS) if tid != task_id]
    if task_id is not None:
        if len(in_progress) >= policy.max_wip:
            return [Violation(
                "max-wip",
                f"WIP limit reached: {len(in_progress)} tasks in progress (limit: {policy.max_wip})",
                ViolationLevel.ERROR,
            )]
        return []

    if len(in_progress) > policy.max_wip:
        return [Violation(
            "max-wip",
            f"WIP limit exceeded: {len(in_progress)} tasks in progress (limit: {policy.max_wip})",
            ViolationLevel.WARNING,
        )]
    return []


def check_dependencies(plan: Plan, state: ExecutionState) -> list[Violation]:
    violations = []
    for task in plan.tasks:
        if state.status_of(task.id) != TaskStatus.IN_PROGRESS:
            continue
        for dep in task.depends_on:
            if not state.status_of(dep).is_complete:
                violations.append(Violation(
                    "dependency-check",
                    f"Task '{task.id}' is in progress but depends on '{dep}' which is not done",
                    ViolationLevel.ERROR,
                ))
    return violations


def check_ai_usage(policy: PolicyConfig, tokens_used: int) -> list[Violation]:
    """AI quota rule. An ERROR here means no further AI calls."""
    if not policy.allow_ai:
        return [Violation("ai-disabled", "AI-backed operations are disabled by policy", ViolationLevel.ERROR)]
    if policy.token_limit <= 0:
        return []

    ratio = tokens_used / policy.token_limit
    pct = int(ratio * 100)
    if ratio >= 1.0:
        level = ViolationLevel.ERROR
        message = f"Token limit reached: {tokens_used}/{policy.token_limit} ({pct}%)"
    elif ratio >= TOKEN_WARNING_RATIO:
        level = ViolationLevel.WARNING
        message = f"Token usage at {pct}% of limit ({tokens_used}/{policy.token_limit})"
    elif ratio >= TOKEN_INFO_RATIO:
        level = ViolationLevel.INFO
        message = f"Token usage at {pct}% of limit ({tokens_used}/{policy.token_limit})"
    else:
        return []
    return [Violation("token-limit", message, level)]


def check_budget(policy: PolicyConfig, logged_hours: float) -> list[Violation]:
    if policy.budget_hours <= 0 or logged_hours <= policy.budget_hours:
        return []
    return [Violation(
        "budget-hours",
        f"Budget exceeded: {logged_hours:g}h logged of {policy.budget_hours:g}h budget",
        ViolationLevel.WARNING,
    )]


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def evaluate_transition(
    state: ExecutionState,
    policy: PolicyConfig,
    task_id: str,
    event: TaskEvent,
) -> list[Violation]:
    """Violations for a proposed transition. Only start is policy-gated."""
    if event != TaskEvent.START:
        return []
    violations = check_wip(state, policy, task_id=task_id)
    if violations:
        logger.debug(f"[POLICY] {task_id}: {[v.rule_id for v in violations]}")
    return violations


def require_ai_allowed(policy: PolicyConfig, tokens_used: int) -> list[Violation]:
    """Raise if an AI call is not permitted. Returns non-blocking notices otherwise.

    Raises:
        AIDisabledError: allow_ai is false.
        TokenLimitError: usage is at or over token_limit.
    """
    violations = check_ai_usage(policy, tokens_used)
    blocking = [v for v in violations if v.is_blocking]
    if blocking:
        if blocking[0].rule_id == "ai-disabled":
            raise AIDisabledError(blocking)
        raise TokenLimitError(blocking)
    return violations


def check_compliance(
    plan: Optional[Plan],
    state: Optional[ExecutionState],
    policy: PolicyConfig,
    tokens_used: int = 0,
    logged_hours: float = 0.0,
) -> list[Violation]:
    """Evaluate every rule against the current snapshot. Never raises, never blocks."""
    violations = []
    if plan is not None and state is not None:
        violations.extend(check_wip(state, policy))
        violations.extend(check_dependencies(plan, state))
    # ai-disabled is a gate on calls, not a compliance finding
    violations.extend(v for v in check_ai_usage(policy, tokens_used) if v.rule_id != "ai-disabled")
    violations.extend(check_budget(policy, logged_hours))
    return violations
