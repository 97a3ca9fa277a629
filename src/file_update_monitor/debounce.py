"""Per-path debouncing of raw change events."""

import logging
from typing import Dict, List, Optional

from .dispatcher import Dispatcher
from .models import EventKind, PendingEntry
from .scheduler import TimerDriver

logger = logging.getLogger(__name__)


class DebounceTable:
    """
    Collapses bursts of raw events per path into a single delivery.

    Every event for a path resets that path's quiet period: the entry's
    deadline moves to ``now + window`` and its timer is re-armed. The path
    is delivered once the timer matures without another reset.

    Quiet-period semantics, not fixed-interval batching: a path that keeps
    changing faster than the window is postponed for as long as the changes
    continue. There is no maximum postponement.

    Each timer carries the generation it was armed for. A fire whose
    generation no longer matches the entry (the entry was reset after the
    timer had already been queued) is a stale timer and is ignored.

    Concurrency: the table is owned by the event-loop thread. Event arrival
    and timer fires are both loop callbacks that run to completion, so each
    per-path read-modify-write is atomic without a lock, and work for one
    path never waits on another path.
    """

    def __init__(self, window: float, dispatcher: Dispatcher, scheduler: Optional[TimerDriver] = None):
        """
        Initialize the debounce table.

        Args:
            window: Quiet period in seconds
            dispatcher: Receives matured paths
            scheduler: Timer driver; one bound to on_timer_fire is created if omitted
        """
        if window < 0:
            raise ValueError(f"window must be non-negative, got {window}")
        self.window = window
        self._dispatcher = dispatcher
        self._scheduler = scheduler or TimerDriver(self.on_timer_fire)
        self._entries: Dict[str, PendingEntry] = {}
        self.stale_timers = 0

    @property
    def scheduler(self) -> TimerDriver:
        return self._scheduler

    def on_event(self, path: str, now: float, kind: EventKind = EventKind.MODIFIED) -> PendingEntry:
        """
        Record a raw event for a path.

        Args:
            path: Path the event refers to
            now: Time the event was observed, on the scheduler's clock
            kind: Kind of the event

        Returns:
            The (new or reset) pending entry
        """
        entry = self._entries.get(path)
        if entry is None:
            entry = PendingEntry(path=path, deadline=now + self.window, generation=0, kind=kind)
            self._entries[path] = entry
        else:
            entry.generation += 1
            entry.deadline = now + self.window
            entry.kind = kind

        self._scheduler.arm(path, entry.generation, entry.deadline)
        return entry

    def on_timer_fire(self, path: str, generation: int, now: float) -> bool:
        """
        Handle a matured timer.

        Args:
            path: Path the timer was armed for
            generation: Generation the timer was armed for
            now: Time of the fire

        Returns:
            True if the path was handed to the dispatcher, False for a stale timer
        """
        entry = self._entries.get(path)
        if entry is None or entry.generation != generation:
            self.stale_timers += 1
            logger.debug("Ignoring superseded timer for %s (generation %d)", path, generation)
            return False

        del self._entries[path]
        self._dispatcher.deliver(path, entry.kind)
        return True

    def clear(self) -> int:
        """
        Cancel all timers and drop every pending entry without delivering.

        Returns:
            Number of entries dropped
        """
        count = len(self._entries)
        self._scheduler.cancel_all()
        self._entries.clear()
        return count

    def get(self, path: str) -> Optional[PendingEntry]:
        """Get the pending entry for a path, if any."""
        return self._entries.get(path)

    def pending_paths(self) -> List[str]:
        """Get the paths currently waiting for their quiet period."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: str) -> bool:
        return path in self._entries
