"""Coordinator for plan execution and governance.

The coordinator is the only thing that mutates execution state. Every
operation follows the same order:

    load -> check guards -> compute -> save -> append journal event

The journal tail is read before anything is saved. If the append fails
after the save, the previous documents are written back and
JournalWriteError is raised, so an operation either
happens and is journaled or does not happen at all.

Usage:
    from waypost.workflow.engine import Coordinator

    coord = Coordinator(repo, config)
    coord.start("task-a")
    outcome = coord.complete("task-a")
    outcome.unlocked   # tasks that became ready
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from waypost.lib.config import ProjectConfig
from waypost.lib.errors import (
    DependencyError,
    InvalidApprovalTransition,
    JournalWriteError,
    NoPlanError,
    NoSpecError,
    NoStateError,
    PersistenceError,
    PlanNotApprovedError,
    PolicyViolationError,
    TaskNotFoundError,
    TransitionError,
    ValidationError,
)
from waypost.lib.forecast import ForecastResult, get_forecast
from waypost.lib.journal import Event, Journal
from waypost.lib.timeutil import format_timestamp, utc_now
from waypost.lib.usage import UsageStats
from waypost.pm.drift import DriftReport, build_spec_lock, detect_drift
from waypost.pm.models import ProductSpec, validate_spec
from waypost.pm.planner import (
    PlanGenerator,
    decompose_heuristic,
    decompose_with_generator,
    prune_tasks,
    reconcile_plan,
)
from waypost.workflow.fsm import TaskFSM
from waypost.workflow.graph import DependencyGraph, validate_plan
from waypost.workflow.models import ApprovalStatus, ExecutionState, Plan, TaskResult
from waypost.workflow.policy import (
    PolicyConfig,
    Violation,
    check_compliance,
    evaluate_transition,
    require_ai_allowed,
)
from waypost.workflow.state_machine import TaskEvent, TaskStatus, parse_event

logger = logging.getLogger(__name__)

# Allowed plan approval changes: from -> {to}
APPROVAL_TRANSITIONS = {
    ApprovalStatus.PENDING: {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED},
    ApprovalStatus.APPROVED: {ApprovalStatus.PENDING},
    ApprovalStatus.REJECTED: {ApprovalStatus.PENDING},
}


@dataclass
class TransitionOutcome:
    """Result of a successful task transition."""
    task_id: str
    event: TaskEvent
    from_status: TaskStatus
    to_status: TaskStatus
    result: TaskResult
    journal_event: Event
    unlocked: list[str] = field(default_factory=list)


@dataclass
class ProjectSnapshot:
    plan_id: str
    approval_status: ApprovalStatus
    total: int
    pending: list[str] = field(default_factory=list)
    ready: list[str] = field(default_factory=list)
    blocked: list[str] = field(default_factory=list)
    in_progress: list[str] = field(default_factory=list)
    done: list[str] = field(default_factory=list)
    verified: list[str] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return len(self.done) + len(self.verified)

    @property
    def progress_percent(self) -> float:
        if self.total == 0:
            return 0.0
        return round(100.0 * self.completed / self.total, 1)


class Coordinator:
    """Orchestrates graph, policy, FSM, persistence and journal."""

    def __init__(
        self,
        repo,
        config: ProjectConfig,
        generator: Optional[PlanGenerator] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repo = repo
        self.config = config
        self.generator = generator
        self.clock = clock
        self.journal = Journal(repo, clock=clock)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_policy(self) -> PolicyConfig:
        """Policy is read fresh on every call."""
        return self.repo.load_policy() or PolicyConfig()

    def load_usage(self) -> UsageStats:
        return self.repo.load_usage() or UsageStats()

    def _require_spec(self) -> ProductSpec:
        spec = self.repo.load_spec()
        if spec is None:
            raise NoSpecError()
        return spec

    def _require_plan(self) -> Plan:
        plan = self.repo.load_plan()
        if plan is None:
            raise NoPlanError()
        return plan

    def _load_state(self, plan: Plan, stored: Optional[ExecutionState] = None) -> ExecutionState:
        """State for plan. A missing file reads as every task pending.

        Raises:
            NoStateError: state.json belongs to a different plan
        """
        state = stored if stored is not None else self.repo.load_state()
        if state is None:
            return ExecutionState(plan_id=plan.id)
        if state.plan_id != plan.id:
            logger.warning(f"[COORD] state.json belongs to {state.plan_id}, plan is {plan.id}")
            raise NoStateError()
        return state

    # ------------------------------------------------------------------
    # Persistence with rollback
    # ------------------------------------------------------------------

    def _commit(
        self,
        writes: list[Callable[[], object]],
        rollback: list[Callable[[], object]],
        action: str,
        actor: str,
        metadata: dict,
    ) -> Event:
        """Run writes, then append the journal event; undo writes if the append fails."""
        self.journal.prepare()
        for write in writes:
            write()
        try:
            return self.journal.append(action, actor, metadata)
        except PersistenceError as e:
            logger.error(f"[COORD] Journal append failed for {action}, rolling back: {e}")
            for undo in rollback:
                try:
                    undo()
                except PersistenceError as undo_error:
                    raise JournalWriteError(
                        e.path,
                        f"{e.reason}; rollback also failed ({undo_error.reason}), state may be inconsistent",
                    ) from undo_error
            raise

    def _restore_state(self, previous: Optional[ExecutionState]) -> Callable[[], object]:
        if previous is None:
            return self.repo.delete_state
        return lambda: self.repo.save_state(previous)

    # ------------------------------------------------------------------
    # Task transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        task_id: str,
        event: "TaskEvent | str",
        actor: Optional[str] = None,
        evidence: Optional[str] = None,
        owner: Optional[str] = None,
    ) -> TransitionOutcome:
        """Apply a lifecycle event to a task.

        Raises:
            NoPlanError, TaskNotFoundError, PlanNotApprovedError: preconditions
            TransitionError: event not valid from the task's status
            DependencyError: start with an incomplete dependency
            PolicyViolationError: start refused by policy
            EvidenceRequiredError: verify without evidence
            PersistenceError / JournalWriteError: nothing was changed
        """
        actor = actor or self.config.actor
        plan = self._require_plan()
        task = plan.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        stored_state = self.repo.load_state()
        state = self._load_state(plan, stored_state)
        before = state.result_of(task_id)

        parsed = parse_event(event)
        if parsed is None:
            raise TransitionError(task_id, before.status.value, None, str(event))
        if parsed == TaskEvent.START and not plan.is_approved:
            raise PlanNotApprovedError(plan.id, plan.approval_status.value)

        graph = DependencyGraph.from_plan(plan)
        policy = self.load_policy()

        def admit(tid: str, ev: TaskEvent) -> None:
            unmet = graph.unmet_dependencies(tid, state)
            if unmet:
                dep_id, dep_status = unmet[0]
                raise DependencyError(tid, dep_id, dep_status.value)
            blocking = [v for v in evaluate_transition(state, policy, tid, ev) if v.is_blocking]
            if blocking:
                raise PolicyViolationError(blocking)

        fsm = TaskFSM(task_id, before.status, admission_guard=admit)
        kwargs = {"evidence": evidence} if parsed == TaskEvent.VERIFY else {}
        new_status = fsm.fire(parsed, **kwargs)

        now = format_timestamp(self.clock())
        result = self._next_result(before, parsed, new_status, now, owner or actor, evidence)
        new_state = state.copy()
        new_state.task_states[task_id] = result
        new_state.updated_at = now

        unlocked = []
        if new_status.is_complete and not before.status.is_complete:
            unlocked = graph.newly_unlocked(task_id, state, new_state)

        metadata = {
            "task_id": task_id,
            "event": parsed.value,
            "from": before.status.value,
            "to": new_status.value,
        }
        if parsed == TaskEvent.START:
            metadata["owner"] = result.owner
        if parsed == TaskEvent.VERIFY:
            metadata["evidence"] = evidence
        if unlocked:
            metadata["unlocked"] = unlocked

        journal_event = self._commit(
            writes=[lambda: self.repo.save_state(new_state)],
            rollback=[self._restore_state(stored_state)],
            action=f"task.{parsed.value}",
            actor=actor,
            metadata=metadata,
        )
        if unlocked:
            logger.info(f"[COORD] {task_id} unlocked: {', '.join(unlocked)}")
        return TransitionOutcome(
            task_id=task_id,
            event=parsed,
            from_status=before.status,
            to_status=new_status,
            result=result,
            journal_event=journal_event,
            unlocked=unlocked,
        )

    @staticmethod
    def _next_result(
        before: TaskResult,
        event: TaskEvent,
        status: TaskStatus,
        now: str,
        owner: str,
        evidence: Optional[str],
    ) -> TaskResult:
        if event == TaskEvent.START:
            return before.with_status(status, owner=owner, started_at=now, completed_at=None)
        if event == TaskEvent.COMPLETE:
            return before.with_status(status, completed_at=now)
        if event == TaskEvent.VERIFY:
            return before.with_status(
                status,
                completed_at=before.completed_at or now,
                evidence=before.evidence + (evidence.strip(),),
            )
        if event == TaskEvent.REOPEN:
            return before.with_status(status, completed_at=None)
        return before.with_status(status)

    def start(self, task_id: str, actor: Optional[str] = None, owner: Optional[str] = None) -> TransitionOutcome:
        return self.transition(task_id, TaskEvent.START, actor=actor, owner=owner)

    def complete(self, task_id: str, actor: Optional[str] = None) -> TransitionOutcome:
        return self.transition(task_id, TaskEvent.COMPLETE, actor=actor)

    def block(self, task_id: str, actor: Optional[str] = None) -> TransitionOutcome:
        return self.transition(task_id, TaskEvent.BLOCK, actor=actor)

    def unblock(self, task_id: str, actor: Optional[str] = None) -> TransitionOutcome:
        return self.transition(task_id, TaskEvent.UNBLOCK, actor=actor)

    def stop(self, task_id: str, actor: Optional[str] = None) -> TransitionOutcome:
        return self.transition(task_id, TaskEvent.STOP, actor=actor)

    def reopen(self, task_id: str, actor: Optional[str] = None) -> TransitionOutcome:
        return self.transition(task_id, TaskEvent.REOPEN, actor=actor)

    def verify(self, task_id: str, evidence: Optional[str], actor: Optional[str] = None) -> TransitionOutcome:
        return self.transition(task_id, TaskEvent.VERIFY, actor=actor, evidence=evidence)

    # ------------------------------------------------------------------
    # Plan operations
    # ------------------------------------------------------------------

    def generate_plan(
        self,
        actor: Optional[str] = None,
        use_generator: bool = False,
        cancel: Optional[threading.Event] = None,
    ) -> Plan:
        """Derive a plan from the spec and reconcile it with the current one.

        The new plan is pending approval. The spec lock is updated to the
        spec the plan was generated from.

        Raises:
            NoSpecError: no spec
            ValidationError: invalid spec or dependency graph
            AIDisabledError / TokenLimitError: generator refused by policy
            OperationCancelled: cancel set before the generator ran
        """
        actor = actor or self.config.actor
        spec = self._require_spec()
        problems = validate_spec(spec)
        if problems:
            raise ValidationError("Invalid spec: " + "; ".join(problems))

        existing = self.repo.load_plan()
        usage = None
        if use_generator:
            if self.generator is None:
                raise ValidationError("No plan generator is configured")
            usage = self.load_usage()
            require_ai_allowed(self.load_policy(), usage.total_tokens())
            decomposition = decompose_with_generator(self.generator, spec, cancel)
            usage.record_token_usage(
                decomposition.model, decomposition.input_tokens, decomposition.output_tokens
            )
            proposed = decomposition.tasks
            source = decomposition.model or "generator"
        else:
            proposed = decompose_heuristic(spec)
            source = "heuristic"

        plan = reconcile_plan(spec, proposed, existing, now=self.clock())
        lock = build_spec_lock(spec, now=self.clock())
        previous_lock = self.repo.load_spec_lock()

        writes = [lambda: self.repo.save_plan(plan), lambda: self.repo.save_spec_lock(lock)]
        rollback = [
            (lambda: self.repo.save_plan(existing)) if existing is not None else self.repo.delete_plan,
            (lambda: self.repo.save_spec_lock(previous_lock)) if previous_lock is not None
            else self.repo.delete_spec_lock,
        ]
        if usage is not None:
            # Tokens were spent whether or not the journal write succeeds
            self.repo.save_usage(usage)

        self._commit(writes, rollback, "plan.generate", actor, {
            "plan_id": plan.id,
            "spec_id": spec.id,
            "task_count": len(plan.tasks),
            "source": source,
        })
        logger.info(f"[COORD] Generated plan {plan.id} with {len(plan.tasks)} tasks ({source})")
        return plan

    def _set_approval(self, target: ApprovalStatus, actor: Optional[str]) -> Plan:
        actor = actor or self.config.actor
        plan = self._require_plan()
        current = plan.approval_status
        if current == target:
            logger.debug(f"[COORD] Plan {plan.id} already {target.value}")
            return plan
        if target not in APPROVAL_TRANSITIONS[current]:
            raise InvalidApprovalTransition(current.value, target.value)

        stored_state = self.repo.load_state()
        updated = Plan(
            id=plan.id,
            spec_id=plan.spec_id,
            tasks=plan.tasks,
            approval_status=target,
            created_at=plan.created_at,
            updated_at=format_timestamp(self.clock()),
        )
        writes = [lambda: self.repo.save_plan(updated)]
        rollback = [lambda: self.repo.save_plan(plan)]

        if target == ApprovalStatus.APPROVED:
            state = self._initial_state(plan, stored_state)
            writes.append(lambda: self.repo.save_state(state))
            rollback.append(self._restore_state(stored_state))

        action = "plan.approve" if target == ApprovalStatus.APPROVED else "plan.reject"
        self._commit(writes, rollback, action, actor, {
            "plan_id": plan.id,
            "from": current.value,
            "to": target.value,
        })
        return updated

    def _initial_state(self, plan: Plan, stored: Optional[ExecutionState]) -> ExecutionState:
        """Every plan task gets an entry; results for tasks still in the plan carry over."""
        previous = stored.task_states if stored is not None and stored.plan_id == plan.id else {}
        return ExecutionState(
            plan_id=plan.id,
            task_states={t.id: previous.get(t.id, TaskResult()) for t in plan.tasks},
            updated_at=format_timestamp(self.clock()),
        )

    def approve_plan(self, actor: Optional[str] = None) -> Plan:
        """Approve the plan and initialize execution state. No-op if already approved."""
        return self._set_approval(ApprovalStatus.APPROVED, actor)

    def reject_plan(self, actor: Optional[str] = None) -> Plan:
        return self._set_approval(ApprovalStatus.REJECTED, actor)

    def prune_plan(self, actor: Optional[str] = None) -> list[str]:
        """Remove tasks that no longer match the spec. Returns removed ids."""
        actor = actor or self.config.actor
        spec = self._require_spec()
        plan = self._require_plan()
        kept, removed = prune_tasks(spec, plan)
        if not removed:
            return []

        pruned = Plan(
            id=plan.id,
            spec_id=plan.spec_id,
            tasks=kept,
            approval_status=plan.approval_status,
            created_at=plan.created_at,
            updated_at=format_timestamp(self.clock()),
        )
        validate_plan(pruned)

        stored_state = self.repo.load_state()
        writes = [lambda: self.repo.save_plan(pruned)]
        rollback = [lambda: self.repo.save_plan(plan)]
        if stored_state is not None:
            trimmed = ExecutionState(
                plan_id=stored_state.plan_id,
                task_states={k: v for k, v in stored_state.task_states.items() if k not in removed},
                updated_at=format_timestamp(self.clock()),
            )
            writes.append(lambda: self.repo.save_state(trimmed))
            rollback.append(lambda: self.repo.save_state(stored_state))

        self._commit(writes, rollback, "plan.prune", actor, {
            "plan_id": plan.id,
            "removed": removed,
        })
        return removed

    # ------------------------------------------------------------------
    # Drift
    # ------------------------------------------------------------------

    def detect_drift(self) -> DriftReport:
        spec = self._require_spec()
        plan = self.repo.load_plan()
        return detect_drift(
            spec,
            plan,
            spec_lock=self.repo.load_spec_lock(),
            violations=self.check_compliance(),
            now=self.clock(),
        )

    def accept_drift(self, actor: Optional[str] = None) -> dict:
        """Lock the current spec as accepted intent."""
        actor = actor or self.config.actor
        spec = self._require_spec()
        lock = build_spec_lock(spec, now=self.clock())
        previous = self.repo.load_spec_lock()
        if previous is not None:
            rollback = [lambda: self.repo.save_spec_lock(previous)]
        else:
            rollback = [self.repo.delete_spec_lock]
        self._commit(
            [lambda: self.repo.save_spec_lock(lock)],
            rollback,
            "drift.accepted",
            actor,
            {"spec_id": spec.id, "spec_hash": lock["spec_hash"]},
        )
        return lock

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def snapshot(self) -> ProjectSnapshot:
        plan = self._require_plan()
        state = self._load_state(plan)
        graph = DependencyGraph.from_plan(plan)
        snap = ProjectSnapshot(plan_id=plan.id, approval_status=plan.approval_status, total=len(plan.tasks))
        buckets = {
            TaskStatus.PENDING: snap.pending,
            TaskStatus.BLOCKED: snap.blocked,
            TaskStatus.IN_PROGRESS: snap.in_progress,
            TaskStatus.DONE: snap.done,
            TaskStatus.VERIFIED: snap.verified,
        }
        for task in plan.tasks:
            buckets[state.status_of(task.id)].append(task.id)
        snap.ready = graph.unlocked_tasks(state)
        return snap

    def ready_tasks(self) -> list[str]:
        plan = self._require_plan()
        return DependencyGraph.from_plan(plan).unlocked_tasks(self._load_state(plan))

    def check_graph(self) -> list[str]:
        """Validate the plan graph and return a topological order."""
        plan = self._require_plan()
        graph = DependencyGraph.from_plan(plan)
        graph.validate()
        return graph.topological_order()

    def check_compliance(self) -> list[Violation]:
        plan = self.repo.load_plan()
        state = None
        if plan is not None:
            stored = self.repo.load_state()
            state = stored if stored is not None and stored.plan_id == plan.id else ExecutionState(plan.id)
        usage = self.load_usage()
        return check_compliance(
            plan,
            state,
            self.load_policy(),
            tokens_used=usage.total_tokens(),
            logged_hours=usage.logged_hours,
        )

    def forecast(self, now: Optional[datetime] = None) -> ForecastResult:
        plan = self._require_plan()
        state = self._load_state(plan)
        return get_forecast(plan, state, self.journal.load_all(), self.config, now=now or self.clock())
