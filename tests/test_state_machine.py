"""Tests for waypost.workflow.state_machine module."""

import pytest

from waypost.lib.errors import TransitionError
from waypost.workflow.state_machine import (
    TRANSITION_TABLE,
    TaskEvent,
    TaskStatus,
    can_apply,
    next_status,
    parse_event,
    parse_status,
    valid_events,
)


class TestTaskStatus:
    """Tests for TaskStatus enum."""

    def test_values_match_persisted_strings(self):
        assert [s.value for s in TaskStatus] == [
            "pending", "blocked", "in_progress", "done", "verified"
        ]

    def test_is_complete_only_for_done_and_verified(self):
        complete = {s for s in TaskStatus if s.is_complete}
        assert complete == {TaskStatus.DONE, TaskStatus.VERIFIED}

    def test_display_name(self):
        assert TaskStatus.IN_PROGRESS.display_name == "In Progress"


class TestParsing:

    def test_parse_status_known(self):
        assert parse_status("done") == TaskStatus.DONE

    def test_parse_status_empty_is_pending(self):
        assert parse_status("") == TaskStatus.PENDING

    def test_parse_status_unknown(self):
        assert parse_status("finished") is None
        assert parse_status(None) is None

    def test_parse_event(self):
        assert parse_event("verify") == TaskEvent.VERIFY
        assert parse_event(TaskEvent.STOP) == TaskEvent.STOP
        assert parse_event("launch") is None


class TestTransitionTable:
    """The table is the contract for task lifecycle."""

    @pytest.mark.parametrize("source,event,dest", [
        (TaskStatus.PENDING, TaskEvent.START, TaskStatus.IN_PROGRESS),
        (TaskStatus.IN_PROGRESS, TaskEvent.BLOCK, TaskStatus.BLOCKED),
        (TaskStatus.BLOCKED, TaskEvent.UNBLOCK, TaskStatus.PENDING),
        (TaskStatus.IN_PROGRESS, TaskEvent.COMPLETE, TaskStatus.DONE),
        (TaskStatus.IN_PROGRESS, TaskEvent.STOP, TaskStatus.PENDING),
        (TaskStatus.DONE, TaskEvent.REOPEN, TaskStatus.IN_PROGRESS),
        (TaskStatus.DONE, TaskEvent.VERIFY, TaskStatus.VERIFIED),
        (TaskStatus.VERIFIED, TaskEvent.REOPEN, TaskStatus.IN_PROGRESS),
    ])
    def test_listed_transitions(self, source, event, dest):
        assert next_status(source, event) == dest

    def test_table_has_exactly_eight_entries(self):
        assert len(TRANSITION_TABLE) == 8

    def test_every_unlisted_pair_raises(self):
        """Any (status, event) not in the table is a TransitionError."""
        for status in TaskStatus:
            for event in TaskEvent:
                if (status, event) in TRANSITION_TABLE:
                    continue
                with pytest.raises(TransitionError) as exc_info:
                    next_status(status, event, task_id="task-x")
                err = exc_info.value
                assert err.task_id == "task-x"
                assert err.from_status == status.value
                assert err.event == event.value
                assert err.to_status is not None

    def test_unknown_event_raises_without_target(self):
        with pytest.raises(TransitionError) as exc_info:
            next_status(TaskStatus.PENDING, "launch", task_id="task-x")
        assert exc_info.value.to_status is None
        assert exc_info.value.event == "launch"

    def test_pending_cannot_complete(self):
        with pytest.raises(TransitionError, match="from pending to done via complete"):
            next_status(TaskStatus.PENDING, TaskEvent.COMPLETE, task_id="t")

    def test_can_apply(self):
        assert can_apply(TaskStatus.DONE, "verify")
        assert not can_apply(TaskStatus.PENDING, "verify")
        assert not can_apply(TaskStatus.PENDING, "bogus")

    def test_valid_events(self):
        assert valid_events(TaskStatus.IN_PROGRESS) == [
            TaskEvent.BLOCK, TaskEvent.COMPLETE, TaskEvent.STOP
        ]
        assert valid_events(TaskStatus.VERIFIED) == [TaskEvent.REOPEN]
