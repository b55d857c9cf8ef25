"""Tests for waypost.workflow.fsm module."""

import logging

import pytest

from waypost.lib.errors import DependencyError, EvidenceRequiredError, TransitionError
from waypost.workflow.fsm import STATES, TRANSITIONS, TaskFSM
from waypost.workflow.state_machine import TaskEvent, TaskStatus


class TestFSMDefinitions:
    """Tests for FSM state and transition definitions."""

    def test_states_cover_all_statuses(self):
        assert set(STATES) == {s.value for s in TaskStatus}

    def test_transitions_built_from_table(self):
        assert len(TRANSITIONS) == 8
        triggers = {t["trigger"] for t in TRANSITIONS}
        assert triggers == {e.value for e in TaskEvent}

    def test_guards_attached(self):
        start = [t for t in TRANSITIONS if t["trigger"] == "start"][0]
        verify = [t for t in TRANSITIONS if t["trigger"] == "verify"][0]
        assert start["conditions"] == ["check_admission"]
        assert verify["conditions"] == ["check_evidence"]


class TestFSMBasic:
    """Basic FSM functionality tests."""

    def test_initial_status(self):
        fsm = TaskFSM("task-a", TaskStatus.DONE)
        assert fsm.status == TaskStatus.DONE

    def test_start_transition(self):
        fsm = TaskFSM("task-a", TaskStatus.PENDING)
        assert fsm.fire(TaskEvent.START) == TaskStatus.IN_PROGRESS
        assert fsm.status == TaskStatus.IN_PROGRESS

    def test_fire_accepts_event_name(self):
        fsm = TaskFSM("task-a", TaskStatus.IN_PROGRESS)
        assert fsm.fire("block") == TaskStatus.BLOCKED

    def test_full_happy_path(self):
        fsm = TaskFSM("task-a", TaskStatus.PENDING)
        fsm.fire(TaskEvent.START)
        fsm.fire(TaskEvent.COMPLETE)
        fsm.fire(TaskEvent.VERIFY, evidence="CI run #42")
        assert fsm.status == TaskStatus.VERIFIED

    def test_available_events(self):
        fsm = TaskFSM("task-a", TaskStatus.DONE)
        assert set(fsm.available_events()) == {"reopen", "verify"}


class TestFSMInvalidTransitions:

    def test_invalid_event_raises_transition_error(self):
        fsm = TaskFSM("task-a", TaskStatus.PENDING)
        with pytest.raises(TransitionError) as exc_info:
            fsm.fire(TaskEvent.COMPLETE)
        assert exc_info.value.from_status == "pending"
        assert exc_info.value.to_status == "done"
        assert fsm.status == TaskStatus.PENDING

    def test_unknown_event_raises(self):
        fsm = TaskFSM("task-a", TaskStatus.PENDING)
        with pytest.raises(TransitionError):
            fsm.fire("launch")
        assert fsm.status == TaskStatus.PENDING


class TestFSMGuards:
    """Guards raise structured errors and leave the status unchanged."""

    def test_admission_guard_called_on_start(self):
        calls = []

        def guard(task_id, event):
            calls.append((task_id, event))

        fsm = TaskFSM("task-a", TaskStatus.PENDING, admission_guard=guard)
        fsm.fire(TaskEvent.START)
        assert calls == [("task-a", TaskEvent.START)]

    def test_admission_guard_can_refuse(self):
        def guard(task_id, event):
            raise DependencyError(task_id, "task-dep", "pending")

        fsm = TaskFSM("task-a", TaskStatus.PENDING, admission_guard=guard)
        with pytest.raises(DependencyError):
            fsm.fire(TaskEvent.START)
        assert fsm.status == TaskStatus.PENDING

    def test_admission_guard_not_called_for_other_events(self):
        def guard(task_id, event):
            raise AssertionError("should not be called")

        fsm = TaskFSM("task-a", TaskStatus.IN_PROGRESS, admission_guard=guard)
        assert fsm.fire(TaskEvent.STOP) == TaskStatus.PENDING

    def test_verify_requires_evidence(self):
        fsm = TaskFSM("task-a", TaskStatus.DONE)
        with pytest.raises(EvidenceRequiredError):
            fsm.fire(TaskEvent.VERIFY)
        assert fsm.status == TaskStatus.DONE

    def test_verify_rejects_blank_evidence(self):
        fsm = TaskFSM("task-a", TaskStatus.DONE)
        with pytest.raises(EvidenceRequiredError):
            fsm.fire(TaskEvent.VERIFY, evidence="   ")
        assert fsm.status == TaskStatus.DONE


class TestFSMCallbacks:

    def test_on_transition_callback(self):
        seen = []
        fsm = TaskFSM(
            "task-a", TaskStatus.PENDING,
            on_transition=lambda src, dst, trig: seen.append((src, dst, trig)),
        )
        fsm.fire(TaskEvent.START)
        assert seen == [("pending", "in_progress", "start")]

    def test_transition_logged(self, caplog):
        caplog.set_level(logging.INFO, logger="waypost.workflow.fsm")
        fsm = TaskFSM("task-a", TaskStatus.IN_PROGRESS)
        fsm.fire(TaskEvent.COMPLETE)
        assert "[FSM] task-a: in_progress -> done (complete)" in caplog.text
