"""
Append-only audit journal.

Every governance event (task transitions, plan operations, drift
acceptance) is one JSON line in events.jsonl. Order is append order; nothing
here ever re-sorts by timestamp, edits or deletes an event.

Each event links to the previous one through prev_hash/hash, so
verify_integrity() can tell if the file was edited after the fact.
"""

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from waypost.lib.timeutil import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

GENESIS_HASH = ""

# Actions that count as a task reaching completion
COMPLETION_ACTIONS = ("task.complete", "task.verify")
REOPEN_ACTION = "task.reopen"


@dataclass(frozen=True)
class Event:
    """One journal entry. Immutable once appended."""
    timestamp: str
    actor: str
    action: str
    metadata: dict = field(default_factory=dict)
    id: str = ""
    prev_hash: str = ""
    hash: str = ""

    @property
    def time(self) -> Optional[datetime]:
        return parse_timestamp(self.timestamp)

    @property
    def task_id(self) -> Optional[str]:
        return self.metadata.get("task_id")

    @property
    def is_completion(self) -> bool:
        return self.action in COMPLETION_ACTIONS

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "actor": self.actor,
            "action": self.action,
            "metadata": dict(self.metadata),
            "prev_hash": self.prev_hash,
            "hash": self.hash,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(
            timestamp=data["timestamp"],
            actor=data.get("actor", ""),
            action=data["action"],
            metadata=dict(data.get("metadata") or {}),
            id=data.get("id", ""),
            prev_hash=data.get("prev_hash", ""),
            hash=data.get("hash", ""),
        )


def compute_hash(prev_hash: str, event_id: str, timestamp: str, action: str, actor: str, metadata: dict) -> str:
    """SHA-256 over the chain link and the event content."""
    canonical = json.dumps(metadata, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    payload = "\n".join([prev_hash, event_id, timestamp, action, actor, canonical])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass
class IntegrityReport:
    checked: int = 0
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


class Journal:
    """Ordered event log on top of a repository's append_event/load_events."""

    def __init__(self, repo, clock: Callable[[], datetime] = utc_now):
        self.repo = repo
        self.clock = clock
        self._last_hash: Optional[str] = None

    def prepare(self) -> str:
        """Resolve the hash the next event will link to.

        Callers that persist other documents before appending call this
        first, so a failure to read the journal surfaces before anything
        has been written.

        Raises:
            PersistenceError: events.jsonl could not be read.
        """
        if self._last_hash is None:
            events = self.repo.load_events()
            self._last_hash = events[-1].get("hash", GENESIS_HASH) if events else GENESIS_HASH
        return self._last_hash

    def append(
        self,
        action: str,
        actor: str,
        metadata: Optional[dict] = None,
        timestamp: Optional[datetime] = None,
    ) -> Event:
        """Append an event and return it once it is durably written.

        The timestamp is set at append time unless one is given.

        Raises:
            JournalWriteError: The event could not be written.
        """
        metadata = dict(metadata or {})
        ts = format_timestamp(timestamp or self.clock())
        event_id = str(uuid.uuid4())
        prev_hash = self.prepare()
        event = Event(
            timestamp=ts,
            actor=actor,
            action=action,
            metadata=metadata,
            id=event_id,
            prev_hash=prev_hash,
            hash=compute_hash(prev_hash, event_id, ts, action, actor, metadata),
        )
        self.repo.append_event(event.to_dict())
        self._last_hash = event.hash
        logger.debug(f"[JOURNAL] {action} by {actor} {metadata}")
        return event

    def load_all(self) -> list[Event]:
        """All events in append order. Reading has no side effects."""
        return [Event.from_dict(d) for d in self.repo.load_events()]

    def get_timeline(
        self,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
        task_id: Optional[str] = None,
    ) -> list[Event]:
        """Events most recent first, optionally filtered.

        Args:
            since: Only events at or after this time
            limit: Maximum number of events (most recent)
            task_id: Only events about this task
        """
        events = list(reversed(self.load_all()))
        if task_id:
            events = [e for e in events if e.task_id == task_id]
        if since:
            events = [e for e in events if e.time is not None and e.time >= since]
        if limit is not None:
            if limit < 0:
                raise ValueError(f"limit must not be negative: {limit}")
            events = events[:limit]
        return events

    def verify_integrity(self) -> IntegrityReport:
        """Walk the chain and report broken links and altered events."""
        report = IntegrityReport()
        prev_hash = GENESIS_HASH
        for index, event in enumerate(self.load_all(), 1):
            report.checked += 1
            label = f"event {index} ({event.action})"
            if not event.hash:
                report.problems.append(f"{label}: missing hash")
                prev_hash = GENESIS_HASH
                continue
            if event.prev_hash != prev_hash:
                report.problems.append(f"{label}: chain broken, expected prev_hash {prev_hash[:12] or '<genesis>'}")
            expected = compute_hash(
                event.prev_hash, event.id, event.timestamp, event.action, event.actor, event.metadata
            )
            if expected != event.hash:
                report.problems.append(f"{label}: content does not match its hash")
            prev_hash = event.hash
        return report
