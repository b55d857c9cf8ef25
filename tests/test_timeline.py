"""Tests for waypost.lib.timeline and waypost.lib.usage modules."""

from datetime import datetime, timedelta, timezone

import pytest

from waypost.lib.journal import Event
from waypost.lib.timeline import format_event_oneline, parse_since, summarize
from waypost.lib.usage import UsageStats

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestSummarize:

    def test_task_event(self):
        event = Event("2025-03-01T12:00:00+00:00", "cli", "task.complete",
                      {"task_id": "a", "from": "in_progress", "to": "done", "unlocked": ["b", "c"]})
        assert summarize(event) == "a: in_progress -> done (unlocked b, c)"

    def test_plan_events(self):
        gen = Event("t", "cli", "plan.generate", {"plan_id": "p1", "task_count": 4, "source": "heuristic"})
        assert summarize(gen) == "Generated p1 (4 tasks, heuristic)"
        prune = Event("t", "cli", "plan.prune", {"plan_id": "p1", "removed": ["x"]})
        assert summarize(prune) == "Pruned 1 task(s): x"

    def test_unknown_action(self):
        assert summarize(Event("t", "cli", "custom.thing")) == "custom.thing"

    def test_oneline_plain(self):
        event = Event("2025-03-01T12:00:00+00:00", "alice", "task.start",
                      {"task_id": "a", "from": "pending", "to": "in_progress"})
        assert format_event_oneline(event, colorize=False) == \
            "2025-03-01 12:00 [>] a: pending -> in_progress (alice)"

    def test_oneline_colored(self):
        event = Event("2025-03-01T12:00:00+00:00", "alice", "task.start", {"task_id": "a"})
        assert "\033[" in format_event_oneline(event, colorize=True)


class TestParseSince:

    @pytest.mark.parametrize("value,delta", [
        ("1h", timedelta(hours=1)),
        ("2d", timedelta(days=2)),
        ("1w", timedelta(weeks=1)),
    ])
    def test_relative(self, value, delta):
        assert parse_since(value, now=NOW) == NOW - delta

    def test_iso(self):
        assert parse_since("2025-02-01T00:00:00Z", now=NOW) == datetime(2025, 2, 1, tzinfo=timezone.utc)

    def test_naive_iso_gets_utc(self):
        assert parse_since("2025-02-01T00:00:00", now=NOW).tzinfo is not None

    def test_invalid(self):
        assert parse_since("soon", now=NOW) is None


class TestUsageStats:

    def test_tokens_by_model(self):
        usage = UsageStats()
        usage.record_token_usage("m1", 100, 20)
        usage.record_token_usage("m1", 10, 5)
        usage.record_token_usage("m2", 1, 1)
        assert usage.provider_stats["m1"].calls == 2
        assert usage.total_tokens() == 137

    def test_negative_hours_rejected(self):
        with pytest.raises(ValueError):
            UsageStats().record_logged_hours(-1)

    def test_increment_command(self):
        usage = UsageStats()
        usage.increment_command(NOW)
        assert usage.total_commands == 1
        assert usage.last_command_at == "2025-03-01T12:00:00+00:00"

    def test_round_trip(self):
        usage = UsageStats(logged_hours=3.0)
        usage.record_token_usage("m1", 5, 5)
        assert UsageStats.from_dict(usage.to_dict()) == usage
