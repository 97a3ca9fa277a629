"""Per-path expiring timers driven by the asyncio event loop."""

import asyncio
import logging
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

FireCallback = Callable[[str, int, float], None]


class TimerDriver:
    """
    One independent timer per path, without a global tick.

    Timers are ``loop.call_at`` handles. The loop keeps them in a heap
    ordered by deadline and drops cancelled handles lazily, so arming,
    re-arming and cancelling cost O(log n) and no tick scans every path.

    Guarantees:
        - a timer never fires before its deadline (asyncio may run a handle
          up to one clock resolution early; such fires are re-armed)
        - after the deadline, firing waits for the current loop iteration to
          finish, so the slack is bounded by how long other callbacks and
          task steps on the loop hold it

    Firing calls ``on_fire(path, generation, now)`` synchronously on the loop
    thread. It must not block; the debounce table hands deliveries off to
    tasks, so new ``arm`` calls keep being served while callbacks run.
    """

    def __init__(self, on_fire: FireCallback, loop: Optional[asyncio.AbstractEventLoop] = None):
        """
        Initialize the timer driver.

        Args:
            on_fire: Called with (path, generation, now) when a timer matures
            loop: Event loop to schedule on; can be supplied later via attach()
        """
        self._on_fire = on_fire
        self._loop = loop
        self._handles: Dict[str, Tuple[int, asyncio.TimerHandle]] = {}

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Bind the driver to the loop it schedules on."""
        if self._handles and loop is not self._loop:
            raise RuntimeError("cannot move a driver with armed timers to another loop")
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        """Current time on the driver's clock."""
        return self.loop.time()

    def arm(self, path: str, generation: int, deadline: float) -> None:
        """
        Arm (or re-arm) the timer for a path.

        Any previous registration for the path is cancelled first.

        Args:
            path: Path the timer belongs to
            generation: Entry generation the timer was armed for
            deadline: Loop time at which the timer may fire
        """
        self.cancel(path)
        handle = self.loop.call_at(deadline, self._fire, path, generation, deadline)
        self._handles[path] = (generation, handle)

    def cancel(self, path: str) -> bool:
        """
        Cancel the timer for a path.

        Returns:
            True if a timer was armed, False otherwise
        """
        entry = self._handles.pop(path, None)
        if entry is None:
            return False
        entry[1].cancel()
        return True

    def cancel_all(self) -> int:
        """
        Cancel every armed timer.

        Returns:
            Number of timers cancelled
        """
        count = len(self._handles)
        for _, handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        return count

    def is_armed(self, path: str) -> bool:
        """Check whether a timer is armed for a path."""
        return path in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def _fire(self, path: str, generation: int, deadline: float) -> None:
        now = self.loop.time()
        if now < deadline:
            current = self._handles.get(path)
            if current is not None and current[0] == generation:
                handle = self.loop.call_at(deadline, self._fire, path, generation, deadline)
                self._handles[path] = (generation, handle)
            return

        current = self._handles.get(path)
        if current is not None and current[0] == generation:
            del self._handles[path]

        try:
            self._on_fire(path, generation, now)
        except Exception:
            logger.exception("Timer callback failed for %s", path)
