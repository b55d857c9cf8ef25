"""
Timeline formatting for journal events.

Renders events one per line, like `git log --oneline`.
Used by: wp log, wp task <event> output
"""

from datetime import datetime, timedelta
from typing import Optional

from waypost.lib.journal import Event
from waypost.lib.timeutil import utc_now

# ANSI color codes
COLORS = {
    "reset": "\033[0m",
    "dim": "\033[2m",
    "bold": "\033[1m",
    "green": "\033[32m",
    "red": "\033[31m",
    "yellow": "\033[33m",
    "blue": "\033[34m",
    "cyan": "\033[36m",
}

EVENT_COLORS = {
    "task.start": "cyan",
    "task.complete": "green",
    "task.verify": "green",
    "task.block": "yellow",
    "task.unblock": "cyan",
    "task.stop": "dim",
    "task.reopen": "yellow",
    "plan.generate": "blue",
    "plan.approve": "green",
    "plan.reject": "red",
    "plan.prune": "blue",
    "drift.accepted": "blue",
}

EVENT_SYMBOLS = {
    "task.start": ">",
    "task.complete": "*",
    "task.verify": "V",
    "task.block": "!",
    "task.unblock": "~",
    "task.stop": "-",
    "task.reopen": "<",
    "plan.generate": "+",
    "plan.approve": "A",
    "plan.reject": "x",
    "plan.prune": "P",
    "drift.accepted": "D",
}


def summarize(event: Event) -> str:
    """Human summary of an event from its action and metadata."""
    meta = event.metadata
    if event.action.startswith("task."):
        summary = f"{meta.get('task_id', '?')}: {meta.get('from', '?')} -> {meta.get('to', '?')}"
        if meta.get("unlocked"):
            summary += f" (unlocked {', '.join(meta['unlocked'])})"
        return summary
    if event.action == "plan.generate":
        return f"Generated {meta.get('plan_id', '?')} ({meta.get('task_count', 0)} tasks, {meta.get('source', '?')})"
    if event.action in ("plan.approve", "plan.reject"):
        return f"Plan {meta.get('plan_id', '?')} {meta.get('to', '?')}"
    if event.action == "plan.prune":
        removed = meta.get("removed") or []
        return f"Pruned {len(removed)} task(s): {', '.join(removed)}"
    if event.action == "drift.accepted":
        return f"Accepted spec {meta.get('spec_id', '?')} ({str(meta.get('spec_hash', ''))[:12]})"
    return event.action


def format_event_oneline(event: Event, colorize: bool = True) -> str:
    """Format a single event as a one-line string (like git log --oneline)."""
    ts = event.time
    ts_str = ts.strftime("%Y-%m-%d %H:%M") if ts else event.timestamp
    symbol = EVENT_SYMBOLS.get(event.action, "?")
    summary = summarize(event)

    if colorize:
        color = COLORS.get(EVENT_COLORS.get(event.action, "reset"), "")
        reset = COLORS["reset"]
        dim = COLORS["dim"]
        return f"{dim}{ts_str}{reset} {color}[{symbol}]{reset} {summary} {dim}({event.actor}){reset}"
    else:
        return f"{ts_str} [{symbol}] {summary} ({event.actor})"


def parse_since(value: str, now: Optional[datetime] = None) -> datetime | None:
    """Parse --since value (1h, 2d, 1w or ISO timestamp) into an aware datetime."""
    now = now or utc_now()

    units = {"h": "hours", "d": "days", "w": "weeks"}
    unit = units.get(value[-1:]) if value else None
    if unit:
        try:
            return now - timedelta(**{unit: int(value[:-1])})
        except ValueError:
            pass

    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=now.tzinfo)
    return ts
