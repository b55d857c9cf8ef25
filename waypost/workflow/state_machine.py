"""Task lifecycle: statuses, events and the transition table.

The table is the single authority on which (status, event) pairs are legal.
The FSM in fsm.py is built from it and adds guard hooks; the coordinator
uses next_status() to reject illegal events before touching anything.

Usage:
    from waypost.workflow.state_machine import TaskStatus, TaskEvent, next_status

    next_status(TaskStatus.PENDING, TaskEvent.START, task_id="task-a")
    # -> TaskStatus.IN_PROGRESS
"""

from enum import Enum

from waypost.lib.errors import TransitionError


class TaskStatus(Enum):
    """All task statuses. Values are what gets persisted in state.json."""

    PENDING = "pending"
    BLOCKED = "blocked"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    VERIFIED = "verified"

    @property
    def is_complete(self) -> bool:
        """True for done and verified. This is what satisfies a dependency."""
        return self in (TaskStatus.DONE, TaskStatus.VERIFIED)

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class TaskEvent(Enum):
    """Closed set of events a task can receive."""

    START = "start"
    BLOCK = "block"
    UNBLOCK = "unblock"
    COMPLETE = "complete"
    STOP = "stop"
    REOPEN = "reopen"
    VERIFY = "verify"


# (from, event) -> to
TRANSITION_TABLE: dict[tuple[TaskStatus, TaskEvent], TaskStatus] = {
    (TaskStatus.PENDING, TaskEvent.START): TaskStatus.IN_PROGRESS,
    (TaskStatus.IN_PROGRESS, TaskEvent.BLOCK): TaskStatus.BLOCKED,
    (TaskStatus.BLOCKED, TaskEvent.UNBLOCK): TaskStatus.PENDING,
    (TaskStatus.IN_PROGRESS, TaskEvent.COMPLETE): TaskStatus.DONE,
    (TaskStatus.IN_PROGRESS, TaskEvent.STOP): TaskStatus.PENDING,
    (TaskStatus.DONE, TaskEvent.REOPEN): TaskStatus.IN_PROGRESS,
    (TaskStatus.DONE, TaskEvent.VERIFY): TaskStatus.VERIFIED,
    (TaskStatus.VERIFIED, TaskEvent.REOPEN): TaskStatus.IN_PROGRESS,
}

# Natural target of each event, used to fill TransitionError when the pair is illegal
INTENDED_TARGET: dict[TaskEvent, TaskStatus] = {
    TaskEvent.START: TaskStatus.IN_PROGRESS,
    TaskEvent.BLOCK: TaskStatus.BLOCKED,
    TaskEvent.UNBLOCK: TaskStatus.PENDING,
    TaskEvent.COMPLETE: TaskStatus.DONE,
    TaskEvent.STOP: TaskStatus.PENDING,
    TaskEvent.REOPEN: TaskStatus.IN_PROGRESS,
    TaskEvent.VERIFY: TaskStatus.VERIFIED,
}


def parse_status(value: str | None) -> TaskStatus | None:
    """Parse a status string into TaskStatus.

    Empty string is read as pending for files written by older versions.
    Returns None if the status is unknown.
    """
    if value is None:
        return None
    if value == "":
        return TaskStatus.PENDING
    for status in TaskStatus:
        if status.value == value:
            return status
    return None


def parse_event(value: "str | TaskEvent") -> TaskEvent | None:
    """Parse an event name. Returns None if it is not a known event."""
    if isinstance(value, TaskEvent):
        return value
    for event in TaskEvent:
        if event.value == value:
            return event
    return None


def next_status(current: TaskStatus, event: "TaskEvent | str", task_id: str = "") -> TaskStatus:
    """Return the status reached by applying event to current.

    Raises:
        TransitionError: If the pair is not in the transition table.
    """
    parsed = parse_event(event)
    event_name = parsed.value if parsed else str(event)
    if parsed is None:
        raise TransitionError(task_id, current.value, None, event_name)

    target = TRANSITION_TABLE.get((current, parsed))
    if target is None:
        raise TransitionError(task_id, current.value, INTENDED_TARGET[parsed].value, event_name)
    return target


def can_apply(current: TaskStatus, event: "TaskEvent | str") -> bool:
    parsed = parse_event(event)
    return parsed is not None and (current, parsed) in TRANSITION_TABLE


def valid_events(current: TaskStatus) -> list[TaskEvent]:
    """Events accepted from current, in declaration order."""
    return [event for (source, event) in TRANSITION_TABLE if source == current]
