"""
Velocity and forecast analytics derived from the journal.

Completions are counted by replaying task events in journal order: a task
counts once when it first reaches done or verified, and again only if it
was reopened in between. Counts are bucketed by UTC calendar day and
averaged over trailing windows.

Everything here is read-only and recomputed on demand.
"""

import math
import statistics
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from waypost.lib.config import ProjectConfig
from waypost.lib.journal import COMPLETION_ACTIONS, REOPEN_ACTION, Event
from waypost.lib.timeutil import utc_now
from waypost.workflow.models import ExecutionState, Plan

# (low margin, high margin) applied to the expected estimate, per trend
INTERVAL_MARGINS = {
    "accelerating": (0.3, 0.2),
    "decelerating": (0.1, 0.8),
    "stable": (0.2, 0.3),
}


class TrendDirection(Enum):
    ACCELERATING = "accelerating"
    DECELERATING = "decelerating"
    STABLE = "stable"


@dataclass
class VelocityTrend:
    direction: TrendDirection
    slope: float
    confidence: float
    window_velocities: dict[int, float] = field(default_factory=dict)


@dataclass
class ConfidenceInterval:
    """Estimated days to completion."""
    low: float
    expected: float
    high: float


@dataclass
class BurndownPoint:
    """Remaining task count on a day. Exactly one of actual/projected is set."""
    date: date
    actual: Optional[int] = None
    projected: Optional[int] = None
    completed: int = 0

    @property
    def is_projected(self) -> bool:
        return self.projected is not None

    @property
    def remaining(self) -> int:
        return self.projected if self.projected is not None else self.actual


@dataclass
class VelocityStats:
    """Distribution of daily completion counts over a window."""
    days: int
    mean: float
    median: float
    stddev: float
    min: int
    max: int


@dataclass
class ForecastResult:
    velocity: float                       # tasks/day over the shortest window
    remaining: int
    completed: int
    total: int
    estimated_days: Optional[int]         # None when velocity is zero and work remains
    trend: VelocityTrend
    interval: Optional[ConfidenceInterval]
    burndown: list[BurndownPoint] = field(default_factory=list)
    stats: Optional[VelocityStats] = None
    generated_at: Optional[datetime] = None

    @property
    def is_estimable(self) -> bool:
        return self.estimated_days is not None

    @property
    def completion_date(self) -> Optional[date]:
        if self.estimated_days is None or self.generated_at is None:
            return None
        return self.generated_at.date() + timedelta(days=self.estimated_days)

    @property
    def progress_percent(self) -> float:
        if self.total == 0:
            return 0.0
        return 100.0 * self.completed / self.total


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------

def completion_days(events: list[Event]) -> list[date]:
    """Day of every counted completion, in journal order."""
    done: set[str] = set()
    days = []
    for event in events:
        task_id = event.task_id
        if not task_id:
            continue
        if event.action == REOPEN_ACTION:
            done.discard(task_id)
        elif event.action in COMPLETION_ACTIONS and task_id not in done:
            done.add(task_id)
            ts = event.time
            if ts is not None:
                days.append(ts.date())
    return days


def daily_completions(events: list[Event]) -> Counter:
    """Counter of date -> completions on that day."""
    return Counter(completion_days(events))


def window_velocity(daily: Counter, window: int, today: date) -> float:
    """Average completions per day over the window ending today (inclusive)."""
    if window <= 0:
        return 0.0
    start = today - timedelta(days=window - 1)
    total = sum(count for day, count in daily.items() if start <= day <= today)
    return total / window


# ---------------------------------------------------------------------------
# Trend and confidence
# ---------------------------------------------------------------------------

def confidence_for(sample_size: int) -> float:
    """Grows with the number of completions observed, capped at 1.0."""
    if sample_size <= 0:
        return 0.0
    return min(1.0, math.log10(sample_size + 1) / 2)


def compute_trend(
    daily: Counter,
    windows: list[int],
    today: date,
    threshold: float = 0.1,
) -> VelocityTrend:
    """Compare the shortest window's velocity to the longest's."""
    windows = sorted(set(windows))
    velocities = {w: window_velocity(daily, w, today) for w in windows}
    confidence = confidence_for(sum(daily.values()))

    if len(windows) < 2:
        return VelocityTrend(TrendDirection.STABLE, 0.0, confidence, velocities)

    short = velocities[windows[0]]
    long = velocities[windows[-1]]
    if long > 0:
        slope = (short - long) / long
    elif short > 0:
        slope = 1.0
    else:
        slope = 0.0

    if slope > threshold:
        direction = TrendDirection.ACCELERATING
    elif slope < -threshold:
        direction = TrendDirection.DECELERATING
    else:
        direction = TrendDirection.STABLE
    return VelocityTrend(direction, round(slope, 4), round(confidence, 4), velocities)


def confidence_interval(expected_days: float, trend: VelocityTrend) -> ConfidenceInterval:
    """Band around the expected estimate. Lower confidence widens it."""
    low_margin, high_margin = INTERVAL_MARGINS[trend.direction.value]
    widen = 2.0 - trend.confidence
    low = max(0.0, expected_days * (1 - low_margin * widen))
    high = expected_days * (1 + high_margin * widen)
    return ConfidenceInterval(round(low, 1), round(expected_days, 1), round(high, 1))


# ---------------------------------------------------------------------------
# Burndown and stats
# ---------------------------------------------------------------------------

def build_burndown(
    daily: Counter,
    total: int,
    remaining: int,
    velocity: float,
    today: date,
    horizon_days: int,
) -> list[BurndownPoint]:
    """Actual remaining per day from the first completion up to today, then
    a linear projection at velocity until zero or the horizon."""
    points = []
    start = min(daily) if daily else today
    start = min(start, today)

    cumulative = 0
    day = start
    while day <= today:
        cumulative += daily.get(day, 0)
        actual = remaining if day == today else max(0, min(total, total - cumulative))
        points.append(BurndownPoint(date=day, actual=actual, completed=total - actual))
        day += timedelta(days=1)

    if velocity <= 0 or remaining <= 0:
        return points

    for offset in range(1, horizon_days + 1):
        projected = max(0, math.ceil(remaining - velocity * offset - 1e-9))
        points.append(BurndownPoint(
            date=today + timedelta(days=offset),
            projected=projected,
            completed=total - projected,
        ))
        if projected == 0:
            break
    return points


def velocity_stats(daily: Counter, window: int, today: date) -> VelocityStats:
    """Distribution of per-day counts over the window, zero days included."""
    counts = [daily.get(today - timedelta(days=i), 0) for i in range(window)]
    if not counts:
        return VelocityStats(0, 0.0, 0.0, 0.0, 0, 0)
    return VelocityStats(
        days=len(counts),
        mean=round(statistics.fmean(counts), 3),
        median=float(statistics.median(counts)),
        stddev=round(statistics.pstdev(counts), 3),
        min=min(counts),
        max=max(counts),
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def get_forecast(
    plan: Plan,
    state: Optional[ExecutionState],
    events: list[Event],
    config: ProjectConfig,
    now: Optional[datetime] = None,
) -> ForecastResult:
    """Compute velocity, trend, estimate, interval and burndown.

    Remaining/completed come from the current state; velocity comes from
    the journal. With zero velocity and work remaining, estimated_days and
    interval are None.
    """
    now = now or utc_now()
    today = now.date()
    windows = sorted(set(config.velocity_windows)) or [7]

    total = len(plan.tasks)
    completed = 0
    if state is not None:
        completed = sum(1 for t in plan.tasks if state.status_of(t.id).is_complete)
    remaining = total - completed

    daily = daily_completions(events)
    trend = compute_trend(daily, windows, today, config.trend_threshold)
    velocity = trend.window_velocities[windows[0]]

    if remaining == 0:
        estimated_days = 0
        interval = ConfidenceInterval(0.0, 0.0, 0.0)
    elif velocity > 0:
        estimated_days = math.ceil(remaining / velocity)
        interval = confidence_interval(float(estimated_days), trend)
    else:
        estimated_days = None
        interval = None

    if estimated_days:
        horizon = min(math.ceil(estimated_days * 1.5), config.projection_horizon_days)
    else:
        horizon = 0
    burndown = build_burndown(daily, total, remaining, velocity, today, horizon)

    return ForecastResult(
        velocity=round(velocity, 4),
        remaining=remaining,
        completed=completed,
        total=total,
        estimated_days=estimated_days,
        trend=trend,
        interval=interval,
        burndown=burndown,
        stats=velocity_stats(daily, windows[-1], today),
        generated_at=now,
    )
