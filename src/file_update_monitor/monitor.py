"""Monitor facade: composes source, debounce table, timers and dispatcher."""

import asyncio
import dataclasses
import logging
import os
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Union

from .config import MonitorConfig
from .debounce import DebounceTable
from .dispatcher import Callback, Dispatcher, ErrorHandler
from .exceptions import (
    MonitorAlreadyStartedError,
    MonitorStoppedError,
    SetupError,
    SourceFailure,
)
from .models import MonitorState, MonitorStats, RawEvent
from .root_manager import RootManager
from .sources import RawEventSource, WatchdogEventSource

logger = logging.getLogger(__name__)

RootArg = Union[str, os.PathLike, Iterable[Union[str, os.PathLike]]]


class Monitor:
    """
    Watches directory trees and calls back once per debounced change.

    Lifecycle: CREATED -> RUNNING -> STOPPED. ``start()`` runs until
    ``stop()`` is called, the source ends, or the source fails (in which
    case ``SourceFailure`` is raised). A stopped monitor cannot be started
    again; create a new one.

    Example::

        async def on_change(path):
            print("changed:", path)

        monitor = Monitor("./src", 500, on_change)
        await monitor.start()
    """

    def __init__(
        self,
        root: RootArg,
        debounce_window_ms: int,
        callback: Callback,
        *,
        config: Optional[MonitorConfig] = None,
        source: Optional[RawEventSource] = None,
        on_error: Optional[ErrorHandler] = None,
    ):
        """
        Initialize the monitor.

        Args:
            root: Directory to watch, or an iterable of directories
            debounce_window_ms: Quiet period in milliseconds (non-negative)
            callback: Callable, coroutine function or ChangeHandler receiving
                the changed path
            config: Remaining options; its debounce_ms is replaced by
                debounce_window_ms
            source: Raw event source; a WatchdogEventSource built from the
                config by default
            on_error: Receives a CallbackFailure whenever the callback raises

        Raises:
            SetupError: If a root is missing, not a directory, unreadable or
                overlaps another root
            ValueError: If debounce_window_ms is negative or not an integer
        """
        self._config = dataclasses.replace(config or MonitorConfig(), debounce_ms=debounce_window_ms)

        self._roots = RootManager()
        for path in _root_list(root):
            self._roots.add_root(path)
        if not len(self._roots):
            raise SetupError("At least one root directory is required")

        self._dispatcher = Dispatcher(
            callback,
            on_error=on_error,
            pass_kind=self._config.pass_kind,
            max_workers=self._config.max_workers,
            run_sync_in_executor=self._config.run_sync_in_executor,
        )
        self._table = DebounceTable(self._config.debounce_seconds, self._dispatcher)
        self._source = source or WatchdogEventSource(
            recursive=self._config.recursive,
            include_directories=self._config.include_directories,
            poll_interval=self._config.source_poll_interval,
        )
        self._state = MonitorState.CREATED
        self._events_received = 0
        self._events_ignored = 0
        self._runner: Optional[asyncio.Task] = None

    @classmethod
    def from_config(
        cls,
        root: RootArg,
        callback: Callback,
        config: MonitorConfig,
        **kwargs,
    ) -> "Monitor":
        """Create a monitor whose debounce window comes from the config."""
        return cls(root, config.debounce_ms, callback, config=config, **kwargs)

    async def start(self) -> None:
        """
        Start watching and process events until stopped.

        Raises:
            MonitorAlreadyStartedError: If the monitor is already running
            MonitorStoppedError: If the monitor has been stopped
            SetupError: If the raw event source cannot be started
            SourceFailure: If the raw event source fails while running
        """
        if self._state is MonitorState.RUNNING:
            raise MonitorAlreadyStartedError("Monitor is already running")
        if self._state is MonitorState.STOPPED:
            raise MonitorStoppedError("Monitor has been stopped; create a new one to watch again")

        loop = asyncio.get_running_loop()
        self._state = MonitorState.RUNNING
        self._table.scheduler.attach(loop)
        self._dispatcher.attach(loop)

        try:
            self._source.open(sorted(self._roots.get_roots()), loop)
        except SetupError as e:
            logger.error("Monitor failed to start: %s", e)
            self.stop()
            raise

        logger.info(
            "Monitor started with %d root(s), debounce window %d ms",
            len(self._roots), self._config.debounce_ms,
        )

        try:
            async for event in self._source.events():
                self._handle_event(event)
        except SourceFailure as e:
            logger.error("Monitor stopping after source failure: %s", e)
            raise
        finally:
            self.stop()

    def stop(self) -> None:
        """
        Stop the monitor.

        Pending timers are cancelled without delivering, so no callback
        starts after this returns. Deliveries already in flight may still
        complete; ``wait_idle()`` waits for them and for the
        source's watch threads to exit. Must be called from the
        event-loop thread. Calling it again is a no-op.
        """
        if self._state is MonitorState.STOPPED:
            return
        was_running = self._state is MonitorState.RUNNING
        self._state = MonitorState.STOPPED

        dropped = self._table.clear()
        self._source.close()
        self._dispatcher.close()
        self._roots.clear()

        if was_running:
            logger.info("Monitor stopped, %d pending change(s) dropped", dropped)

    def _handle_event(self, event: RawEvent) -> None:
        if self._state is not MonitorState.RUNNING:
            return
        self._events_received += 1

        kind = self._config.normalize_kind(event.kind)
        if not self._config.accepts(kind):
            self._events_ignored += 1
            return

        logger.debug("Raw event %s: %s", kind.value, event.path)
        self._table.on_event(event.path, self._table.scheduler.now(), kind)

    async def wait_idle(self) -> None:
        """
        Wait for deliveries that are currently running to finish.

        After stop() this also waits for the raw source's watch threads to
        exit, which stop() itself does not block on.
        """
        await self._dispatcher.wait_idle()
        if self._state is MonitorState.STOPPED:
            await self._source.wait_closed()

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the monitor is running."""
        return self._state is MonitorState.RUNNING

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def roots(self) -> FrozenSet[Path]:
        """Roots being watched (empty once stopped)."""
        return self._roots.get_roots()

    @property
    def pending_count(self) -> int:
        """Number of paths waiting for their quiet period."""
        return len(self._table)

    def pending_paths(self) -> List[str]:
        return self._table.pending_paths()

    @property
    def stats(self) -> MonitorStats:
        """Snapshot of the monitor's counters."""
        return MonitorStats(
            events_received=self._events_received,
            events_ignored=self._events_ignored,
            deliveries=self._dispatcher.delivered,
            failures=self._dispatcher.failed,
            stale_timers=self._table.stale_timers,
        )

    async def __aenter__(self) -> "Monitor":
        self._runner = asyncio.ensure_future(self.start())
        # Let start() open the source so setup errors surface here.
        await asyncio.sleep(0)
        if self._runner.done():
            self._runner.result()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        if self._runner is not None:
            try:
                await self._runner
            except SourceFailure:
                if exc_type is None:
                    raise
        return False

    def __repr__(self) -> str:
        return (
            f"<Monitor state={self._state.value} roots={len(self._roots)} "
            f"debounce_ms={self._config.debounce_ms}>"
        )


def _root_list(root: RootArg) -> list:
    if isinstance(root, (str, os.PathLike)):
        return [root]
    return list(root)
