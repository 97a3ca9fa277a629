"""Shared fixtures for monitor tests."""

import asyncio
import threading
from typing import List, Optional, Tuple

import pytest

from file_update_monitor.models import EventKind


class Recorder:
    """Async change callback that remembers what it saw and when."""

    def __init__(self, fail_for: Optional[set] = None):
        self.calls: List[Tuple[str, Optional[EventKind], float]] = []
        self.fail_for = set(fail_for or ())
        self._lock = threading.Lock()

    async def __call__(self, path: str, kind: Optional[EventKind] = None) -> None:
        now = asyncio.get_running_loop().time()
        with self._lock:
            self.calls.append((path, kind, now))
        if path in self.fail_for:
            raise RuntimeError(f"cannot handle {path}")

    @property
    def paths(self) -> List[str]:
        with self._lock:
            return [c[0] for c in self.calls]

    def times_for(self, path: str) -> List[float]:
        with self._lock:
            return [c[2] for c in self.calls if c[0] == path]

    def kinds_for(self, path: str) -> List[Optional[EventKind]]:
        with self._lock:
            return [c[1] for c in self.calls if c[0] == path]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_recorder():
    """Factory for recorders that raise for selected paths."""
    return Recorder
