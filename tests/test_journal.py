"""Tests for waypost.lib.journal module."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from waypost.lib.errors import JournalWriteError
from waypost.lib.journal import Event, Journal, compute_hash
from waypost.lib.repository import FilesystemRepository

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        current = self.now
        self.now += timedelta(minutes=1)
        return current


@pytest.fixture
def repo(tmp_path):
    repo = FilesystemRepository(tmp_path)
    repo.initialize()
    return repo


@pytest.fixture
def journal(repo):
    return Journal(repo, clock=FakeClock())


class TestAppendAndLoad:
    """Append order is the only order."""

    def test_empty_journal(self, journal):
        assert journal.load_all() == []

    def test_append_returns_event_with_timestamp(self, journal):
        event = journal.append("task.start", "alice", {"task_id": "a"})
        assert event.timestamp == "2025-03-01T09:00:00+00:00"
        assert event.actor == "alice"
        assert event.id
        assert event.hash

    def test_explicit_timestamp_kept(self, journal):
        ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
        event = journal.append("task.start", "alice", {}, timestamp=ts)
        assert event.time == ts

    def test_events_in_append_order(self, journal):
        for action in ["task.start", "task.complete", "task.verify"]:
            journal.append(action, "cli", {"task_id": "a"})
        assert [e.action for e in journal.load_all()] == ["task.start", "task.complete", "task.verify"]

    def test_order_not_resorted_by_timestamp(self, journal):
        journal.append("task.start", "cli", {"task_id": "late"}, timestamp=T0 + timedelta(days=1))
        journal.append("task.start", "cli", {"task_id": "early"}, timestamp=T0)
        assert [e.task_id for e in journal.load_all()] == ["late", "early"]

    def test_loading_twice_is_identical(self, journal):
        journal.append("task.start", "cli", {"task_id": "a"})
        journal.append("task.complete", "cli", {"task_id": "a"})
        assert journal.load_all() == journal.load_all()

    def test_one_json_object_per_line(self, journal, repo):
        journal.append("task.start", "cli", {"task_id": "a"})
        journal.append("task.stop", "cli", {"task_id": "a"})
        lines = repo.path("events.jsonl").read_text().splitlines()
        assert len(lines) == 2
        for line in lines:
            data = json.loads(line)
            assert set(data) >= {"timestamp", "actor", "action", "metadata"}

    def test_timeline_is_most_recent_first(self, journal):
        journal.append("task.start", "cli", {"task_id": "a"})
        journal.append("task.complete", "cli", {"task_id": "a"})
        assert [e.action for e in journal.get_timeline()] == ["task.complete", "task.start"]

    def test_timeline_filters(self, journal):
        journal.append("task.start", "cli", {"task_id": "a"})
        journal.append("task.start", "cli", {"task_id": "b"})
        journal.append("task.complete", "cli", {"task_id": "a"})
        assert [e.action for e in journal.get_timeline(task_id="a")] == ["task.complete", "task.start"]
        assert len(journal.get_timeline(limit=1)) == 1
        assert len(journal.get_timeline(since=T0 + timedelta(minutes=1))) == 2

    def test_corrupted_lines_skipped(self, journal, repo, caplog):
        journal.append("task.start", "cli", {"task_id": "a"})
        with open(repo.path("events.jsonl"), "a") as f:
            f.write("{not json\n")
            f.write('{"action": "missing fields"}\n')
        journal.append("task.complete", "cli", {"task_id": "a"})
        events = journal.load_all()
        assert [e.action for e in events] == ["task.start", "task.complete"]
        assert "Skipping corrupted event line 2" in caplog.text

    def test_unicode_line_separators_in_metadata(self, journal):
        evidence = "CI log\u2028line two\u2029para\u0085next"
        journal.append("task.start", "cli", {"task_id": "a"})
        journal.append("task.verify", "cli", {"task_id": "a", "evidence": evidence})
        events = journal.load_all()
        assert [e.action for e in events] == ["task.start", "task.verify"]
        assert events[1].metadata["evidence"] == evidence
        assert journal.verify_integrity().ok

    def test_timeline_zero_limit(self, journal):
        journal.append("task.start", "cli", {"task_id": "a"})
        assert journal.get_timeline(limit=0) == []

    def test_timeline_negative_limit_rejected(self, journal):
        journal.append("task.start", "cli", {"task_id": "a"})
        with pytest.raises(ValueError, match="negative"):
            journal.get_timeline(limit=-1)


class TestAppendFailure:

    def test_write_error_raises_journal_write_error(self, journal, repo):
        with patch("waypost.lib.repository.open", side_effect=OSError("disk full"), create=True):
            with pytest.raises(JournalWriteError, match="disk full"):
                journal.append("task.start", "cli", {"task_id": "a"})
        assert journal.load_all() == []

    def test_invalid_event_rejected(self, repo):
        with pytest.raises(JournalWriteError):
            repo.append_event({"actor": "cli", "action": "", "timestamp": "x", "metadata": {}})


class TestIntegrity:
    """Hash chain detects edits."""

    def test_fresh_journal_verifies(self, journal):
        for i in range(3):
            journal.append("task.start", "cli", {"task_id": f"t{i}"})
        report = journal.verify_integrity()
        assert report.ok
        assert report.checked == 3

    def test_chain_links(self, journal):
        first = journal.append("task.start", "cli", {"task_id": "a"})
        second = journal.append("task.complete", "cli", {"task_id": "a"})
        assert first.prev_hash == ""
        assert second.prev_hash == first.hash

    def test_chain_continues_across_instances(self, repo):
        first = Journal(repo, clock=FakeClock()).append("task.start", "cli", {"task_id": "a"})
        second = Journal(repo, clock=FakeClock()).append("task.complete", "cli", {"task_id": "a"})
        assert second.prev_hash == first.hash

    def test_edited_metadata_detected(self, journal, repo):
        journal.append("task.start", "cli", {"task_id": "a"})
        journal.append("task.complete", "cli", {"task_id": "a"})
        path = repo.path("events.jsonl")
        lines = path.read_text().splitlines()
        data = json.loads(lines[0])
        data["actor"] = "mallory"
        lines[0] = json.dumps(data)
        path.write_text("\n".join(lines) + "\n")

        report = journal.verify_integrity()
        assert not report.ok
        assert any("does not match its hash" in p for p in report.problems)

    def test_deleted_event_detected(self, journal, repo):
        for i in range(3):
            journal.append("task.start", "cli", {"task_id": f"t{i}"})
        path = repo.path("events.jsonl")
        lines = path.read_text().splitlines()
        path.write_text("\n".join([lines[0], lines[2]]) + "\n")

        report = journal.verify_integrity()
        assert any("chain broken" in p for p in report.problems)

    def test_hash_is_deterministic(self):
        h1 = compute_hash("", "id", "ts", "a", "cli", {"b": 1, "a": 2})
        h2 = compute_hash("", "id", "ts", "a", "cli", {"a": 2, "b": 1})
        assert h1 == h2


class TestEvent:

    def test_round_trip(self):
        event = Event(timestamp="2025-01-01T00:00:00+00:00", actor="cli", action="task.start",
                      metadata={"task_id": "a"}, id="x", prev_hash="", hash="h")
        assert Event.from_dict(event.to_dict()) == event

    def test_completion_flag(self):
        assert Event("t", "cli", "task.verify").is_completion
        assert not Event("t", "cli", "task.start").is_completion
