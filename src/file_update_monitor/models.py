"""Data models for the file update monitor package."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class EventKind(Enum):
    """Kinds of raw filesystem changes."""
    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED_FROM = "renamed_from"
    RENAMED_TO = "renamed_to"

    @classmethod
    def parse(cls, value: Union[str, "EventKind"]) -> "EventKind":
        """Accept an EventKind, its value or its name (any case)."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for kind in cls:
            if text in (kind.value, kind.name.lower()):
                return kind
        raise ValueError(f"unknown event kind: {value!r}")


ALL_KINDS = frozenset(EventKind)


class RenameMode(Enum):
    """How the two halves of a rename reach the debounce table."""
    MERGE = "merge"
    DISTINCT = "distinct"


class MonitorState(Enum):
    """Lifecycle states of a Monitor."""
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class RawEvent:
    """
    A single change notification produced by a raw event source.

    Attributes:
        path: Absolute path of the changed file
        kind: What happened to it
        observed_at: Monotonic timestamp (same clock as the asyncio loop)
    """
    path: str
    kind: EventKind = EventKind.MODIFIED
    observed_at: float = field(default_factory=time.monotonic)


@dataclass
class PendingEntry:
    """
    Debounce state for one path.

    Attributes:
        path: The path waiting for its quiet period to elapse
        deadline: Loop time at which the entry matures
        generation: Bumped on every reset; lets stale timer fires be ignored
        kind: Kind of the most recent event for this path
    """
    path: str
    deadline: float
    generation: int = 0
    kind: EventKind = EventKind.MODIFIED


@dataclass
class MonitorStats:
    """Counters emitted by the monitor for observability."""

    events_received: int = 0
    events_ignored: int = 0
    deliveries: int = 0
    failures: int = 0
    stale_timers: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return {
            "events_received": self.events_received,
            "events_ignored": self.events_ignored,
            "deliveries": self.deliveries,
            "failures": self.failures,
            "stale_timers": self.stale_timers,
        }
