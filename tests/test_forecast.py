"""Tests for waypost.lib.forecast module."""

from collections import Counter
from datetime import date, datetime, timedelta, timezone

import pytest

from waypost.lib.config import ProjectConfig
from waypost.lib.forecast import (
    TrendDirection,
    VelocityTrend,
    build_burndown,
    completion_days,
    compute_trend,
    confidence_for,
    confidence_interval,
    get_forecast,
    velocity_stats,
    window_velocity,
)
from waypost.lib.journal import Event
from waypost.workflow.models import ExecutionState, Plan, Task, TaskResult
from waypost.workflow.state_machine import TaskStatus

NOW = datetime(2025, 3, 20, 15, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def ev(action, task_id, days_ago=0):
    ts = NOW - timedelta(days=days_ago)
    return Event(timestamp=ts.isoformat(), actor="cli", action=action, metadata={"task_id": task_id})


def make_plan(n):
    return Plan(id="plan-1", spec_id="s", tasks=[Task(id=f"t{i}", title=f"T{i}") for i in range(n)])


def make_state(done_ids):
    return ExecutionState(
        plan_id="plan-1",
        task_states={tid: TaskResult(status=TaskStatus.DONE) for tid in done_ids},
    )


class TestCompletionReplay:
    """Completions counted once per task, again after a reopen."""

    def test_complete_then_verify_counts_once(self):
        events = [ev("task.complete", "a", 2), ev("task.verify", "a", 1)]
        assert completion_days(events) == [TODAY - timedelta(days=2)]

    def test_reopen_allows_second_count(self):
        events = [
            ev("task.complete", "a", 3),
            ev("task.reopen", "a", 2),
            ev("task.complete", "a", 1),
        ]
        assert len(completion_days(events)) == 2

    def test_other_actions_ignored(self):
        events = [ev("task.start", "a"), ev("task.block", "a")]
        assert completion_days(events) == []

    def test_events_without_task_ignored(self):
        events = [Event(timestamp=NOW.isoformat(), actor="cli", action="task.complete", metadata={})]
        assert completion_days(events) == []


class TestVelocity:

    def test_window_velocity(self):
        daily = Counter({TODAY: 2, TODAY - timedelta(days=6): 1, TODAY - timedelta(days=7): 5})
        assert window_velocity(daily, 7, TODAY) == pytest.approx(3 / 7)

    def test_empty_window(self):
        assert window_velocity(Counter(), 7, TODAY) == 0.0

    @pytest.mark.parametrize("n,expected", [(0, 0.0), (9, 0.5), (99, 1.0), (10_000, 1.0)])
    def test_confidence(self, n, expected):
        assert confidence_for(n) == pytest.approx(expected)


class TestTrend:

    def test_accelerating(self):
        daily = Counter({TODAY: 2, TODAY - timedelta(days=1): 1, TODAY - timedelta(days=2): 1})
        trend = compute_trend(daily, [7, 14, 30], TODAY)
        assert trend.direction == TrendDirection.ACCELERATING
        assert trend.slope > 0
        assert set(trend.window_velocities) == {7, 14, 30}

    def test_decelerating(self):
        daily = Counter({TODAY - timedelta(days=20): 10})
        trend = compute_trend(daily, [7, 30], TODAY)
        assert trend.direction == TrendDirection.DECELERATING
        assert trend.slope == -1.0

    def test_even_pace_is_stable(self):
        daily = Counter({TODAY - timedelta(days=i): 1 for i in range(30)})
        trend = compute_trend(daily, [7, 30], TODAY)
        assert trend.direction == TrendDirection.STABLE
        assert trend.slope == 0.0

    def test_no_history_is_stable(self):
        trend = compute_trend(Counter(), [7, 30], TODAY)
        assert trend.direction == TrendDirection.STABLE
        assert trend.confidence == 0.0

    def test_single_window_is_stable(self):
        trend = compute_trend(Counter({TODAY: 3}), [7], TODAY)
        assert trend.direction == TrendDirection.STABLE


class TestConfidenceInterval:

    def test_stable_full_confidence(self):
        trend = VelocityTrend(TrendDirection.STABLE, 0.0, 1.0)
        interval = confidence_interval(10.0, trend)
        assert (interval.low, interval.expected, interval.high) == (8.0, 10.0, 13.0)

    def test_low_confidence_widens(self):
        trend = VelocityTrend(TrendDirection.DECELERATING, -0.5, 0.0)
        interval = confidence_interval(10.0, trend)
        assert (interval.low, interval.high) == (8.0, 26.0)

    def test_low_never_negative(self):
        trend = VelocityTrend(TrendDirection.ACCELERATING, 2.0, 0.0)
        assert confidence_interval(1.0, trend).low >= 0.0


class TestBurndown:

    def test_actual_then_projected(self):
        daily = Counter({TODAY - timedelta(days=2): 1, TODAY: 1})
        points = build_burndown(daily, total=5, remaining=3, velocity=1.0, today=TODAY, horizon_days=10)
        assert [p.actual for p in points[:3]] == [4, 4, 3]
        assert [p.projected for p in points[3:]] == [2, 1, 0]
        assert points[-1].date == TODAY + timedelta(days=3)

    def test_each_point_actual_or_projected(self):
        daily = Counter({TODAY - timedelta(days=1): 2})
        points = build_burndown(daily, total=10, remaining=8, velocity=0.5, today=TODAY, horizon_days=30)
        for point in points:
            assert (point.actual is None) != (point.projected is None)
            assert point.completed == 10 - point.remaining

    def test_horizon_caps_projection(self):
        points = build_burndown(Counter(), total=100, remaining=100, velocity=0.1, today=TODAY, horizon_days=5)
        assert len([p for p in points if p.is_projected]) == 5

    def test_zero_velocity_has_no_projection(self):
        points = build_burndown(Counter(), total=3, remaining=3, velocity=0.0, today=TODAY, horizon_days=5)
        assert len(points) == 1
        assert points[0].actual == 3


class TestVelocityStats:

    def test_includes_zero_days(self):
        daily = Counter({TODAY: 3, TODAY - timedelta(days=1): 1})
        stats = velocity_stats(daily, 4, TODAY)
        assert stats.days == 4
        assert stats.mean == 1.0
        assert stats.median == 0.5
        assert (stats.min, stats.max) == (0, 3)


class TestGetForecast:

    def test_estimate_from_velocity(self):
        events = [
            ev("task.complete", "t0", 2),
            ev("task.complete", "t1", 2),
            ev("task.complete", "t2", 1),
            ev("task.complete", "t3", 0),
        ]
        result = get_forecast(make_plan(10), make_state(["t0", "t1", "t2", "t3"]), events,
                              ProjectConfig(root="."), now=NOW)
        assert result.total == 10
        assert result.completed == 4
        assert result.remaining == 6
        assert result.velocity == pytest.approx(4 / 7, abs=1e-4)
        assert result.estimated_days == 11
        assert result.completion_date == date(2025, 3, 31)
        assert result.trend.direction == TrendDirection.ACCELERATING
        assert result.interval.low <= result.interval.expected <= result.interval.high
        assert result.progress_percent == 40.0

    def test_zero_velocity_is_not_estimable(self):
        result = get_forecast(make_plan(3), None, [], ProjectConfig(root="."), now=NOW)
        assert result.estimated_days is None
        assert result.interval is None
        assert not result.is_estimable
        assert result.completion_date is None
        assert result.remaining == 3

    def test_all_done(self):
        events = [ev("task.complete", "t0", 0)]
        result = get_forecast(make_plan(1), make_state(["t0"]), events, ProjectConfig(root="."), now=NOW)
        assert result.remaining == 0
        assert result.estimated_days == 0
        assert result.is_estimable

    def test_projection_capped_by_config(self):
        events = [ev("task.complete", "t0", 0)]
        config = ProjectConfig(root=".", projection_horizon_days=3)
        result = get_forecast(make_plan(50), make_state(["t0"]), events, config, now=NOW)
        assert len([p for p in result.burndown if p.is_projected]) == 3
