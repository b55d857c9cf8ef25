"""Task state machine using transitions library.

Each task gets a short-lived TaskFSM built from its current status. Triggers
are the TaskEvent values; guards are transitions conditions that raise a
structured error instead of returning False, so the caller learns why a
transition was refused.

The FSM never persists anything. The coordinator reads fsm.status after a
successful fire() and writes the new TaskResult itself.

Usage:
    from waypost.workflow.fsm import TaskFSM

    fsm = TaskFSM("task-a", TaskStatus.PENDING, admission_guard=check)
    fsm.fire(TaskEvent.START)     # runs check(task_id, event) first
    fsm.status                    # TaskStatus.IN_PROGRESS
"""

import logging
from typing import Callable

from transitions import Machine, MachineError

from waypost.lib.errors import EvidenceRequiredError, TransitionError
from waypost.workflow.state_machine import (
    INTENDED_TARGET,
    TRANSITION_TABLE,
    TaskEvent,
    TaskStatus,
    parse_event,
)

logger = logging.getLogger(__name__)


STATES = [status.value for status in TaskStatus]

# Guards attached to specific events
CONDITIONS = {
    TaskEvent.START: ["check_admission"],
    TaskEvent.VERIFY: ["check_evidence"],
}

TRANSITIONS = [
    {
        "trigger": event.value,
        "source": source.value,
        "dest": dest.value,
        "conditions": CONDITIONS.get(event, []),
    }
    for (source, event), dest in TRANSITION_TABLE.items()
]

AdmissionGuard = Callable[[str, TaskEvent], None]


class TaskFSM:
    """State machine for a single task's status."""

    def __init__(
        self,
        task_id: str,
        status: TaskStatus,
        admission_guard: AdmissionGuard | None = None,
        on_transition: Callable[[str, str, str], None] | None = None,
    ):
        """Initialize FSM for a task.

        Args:
            task_id: Task identifier, used in errors and logs
            status: Current status to start from
            admission_guard: Optional callback(task_id, event) run before start;
                raises to refuse the transition
            on_transition: Optional callback(from_state, to_state, trigger) called after transitions
        """
        self.task_id = task_id
        self.admission_guard = admission_guard
        self.on_transition = on_transition

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=status.value,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    @property
    def status(self) -> TaskStatus:
        return TaskStatus(self.state)

    def check_admission(self, event) -> bool:
        """Condition for start: dependency and policy admission."""
        if self.admission_guard is not None:
            self.admission_guard(self.task_id, TaskEvent(event.event.name))
        return True

    def check_evidence(self, event) -> bool:
        """Condition for verify: non-empty evidence string."""
        evidence = event.kwargs.get("evidence")
        if not evidence or not str(evidence).strip():
            raise EvidenceRequiredError(self.task_id, event.event.name)
        return True

    def on_state_change(self, event) -> None:
        """Called after any successful state change."""
        source = event.transition.source
        dest = event.transition.dest
        trigger = event.event.name
        logger.info(f"[FSM] {self.task_id}: {source} -> {dest} ({trigger})")
        if self.on_transition:
            self.on_transition(source, dest, trigger)

    def available_events(self) -> list[str]:
        """Triggers valid from the current status."""
        return self.machine.get_triggers(self.state)

    def fire(self, event: "TaskEvent | str", **kwargs) -> TaskStatus:
        """Apply event and return the new status.

        Keyword arguments are passed to guards (e.g. evidence=... for verify).

        Raises:
            TransitionError: The event is unknown or not valid from the current status.
            EvidenceRequiredError: verify without evidence.
            Whatever the admission guard raises for start.
        """
        parsed = parse_event(event)
        source = self.state
        if parsed is None:
            raise TransitionError(self.task_id, source, None, str(event))
        target = INTENDED_TARGET[parsed].value
        if parsed.value not in self.available_events():
            raise TransitionError(self.task_id, source, target, parsed.value)

        try:
            moved = self.trigger(parsed.value, **kwargs)
        except MachineError as e:
            raise TransitionError(self.task_id, source, target, parsed.value) from e
        if not moved:
            raise TransitionError(self.task_id, source, target, parsed.value)
        return self.status
