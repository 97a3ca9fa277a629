"""Raw event sources feeding the debounce engine."""

import asyncio
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import AsyncIterator, Dict, Iterable, List, Optional, Tuple, Union

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .exceptions import SetupError, SourceFailure
from .models import EventKind, RawEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


def _running_on(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


class RawEventSource(ABC):
    """
    Produces an async stream of RawEvents for a set of roots.

    Producers may live on other threads: items are handed to the consumer
    through an asyncio queue with ``loop.call_soon_threadsafe``. A fatal
    error is queued like an event and raised from ``events()`` as a
    ``SourceFailure``. ``close()`` ends the stream normally.

    Subclasses implement ``_open`` and ``_close``, and may override
    ``_check_health``, which runs once every ``poll_interval`` seconds while
    the stream is being consumed, busy or idle.
    """

    def __init__(self, poll_interval: float = 0.5):
        self.poll_interval = poll_interval
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._opened = False
        self._closed = False

    def open(self, roots: Iterable[Path], loop: asyncio.AbstractEventLoop) -> None:
        """
        Start producing events for the given roots.

        Must be called on the loop thread.

        Raises:
            SetupError: If the source was already opened or failed to start
        """
        if self._opened:
            raise SetupError("raw event source can only be opened once")
        self._loop = loop
        self._queue = asyncio.Queue()
        self._opened = True
        try:
            self._open(list(roots))
        except SetupError:
            raise
        except Exception as e:
            raise SetupError(f"Failed to start raw event source: {e}") from e

    def close(self) -> None:
        """Stop producing events and end the stream. Must be called on the loop thread."""
        if self._closed:
            return
        self._closed = True
        if not self._opened:
            return
        try:
            self._close()
        finally:
            self._queue.put_nowait(_CLOSED)

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    async def events(self) -> AsyncIterator[RawEvent]:
        """
        Iterate over raw events until the source is closed.

        Raises:
            SourceFailure: If the source fails while running
        """
        if not self._opened:
            raise SetupError("raw event source has not been opened")

        loop = asyncio.get_running_loop()
        next_check = loop.time() + self.poll_interval
        while True:
            if not self._closed and loop.time() >= next_check:
                next_check = loop.time() + self.poll_interval
                self._check_health()

            # Drain queued items without yielding to the loop, so events that
            # arrived together are all recorded before any timer can fire.
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    continue

            if item is _CLOSED:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    def _submit(self, item) -> None:
        """Hand an item to the consumer. Safe to call from any thread."""
        if self._closed or self._loop is None:
            return
        try:
            if _running_on(self._loop):
                self._queue.put_nowait(item)
            else:
                self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # Loop already closed; the monitor is gone.
            logger.debug("Dropping raw event item, event loop is closed")

    def _fail(self, error: SourceFailure) -> None:
        logger.error("Raw event source failed: %s", error)
        self._submit(error)

    @abstractmethod
    def _open(self, roots: List[Path]) -> None:
        """Start the underlying producer."""

    @abstractmethod
    def _close(self) -> None:
        """Stop the underlying producer."""

    async def wait_closed(self) -> None:
        """Wait for producer threads stopped by close() to exit."""

    def _check_health(self) -> None:
        """Raise SourceFailure if the producer died silently."""


class MemoryEventSource(RawEventSource):
    """
    A source fed programmatically.

    Use it to drive the debounce engine from a producer other than the
    filesystem (a poller, a message bus, a test). Events emitted before the
    monitor starts are buffered and replayed in order when it opens.
    """

    def __init__(self, poll_interval: float = 0.5):
        super().__init__(poll_interval)
        self._backlog: list = []
        self._backlog_lock = threading.Lock()

    def emit(
        self,
        path: Union[str, os.PathLike],
        kind: Union[EventKind, str] = EventKind.MODIFIED,
        observed_at: Optional[float] = None,
    ) -> RawEvent:
        """
        Emit a raw event. Safe to call from any thread.

        Args:
            path: Path that changed
            kind: Kind of change
            observed_at: Monotonic timestamp; defaults to now

        Returns:
            The emitted event
        """
        event = RawEvent(
            path=os.fspath(path),
            kind=EventKind.parse(kind),
            observed_at=time.monotonic() if observed_at is None else observed_at,
        )
        self._push(event)
        return event

    def fail(self, error: Union[str, BaseException]) -> None:
        """Make the stream fail with a SourceFailure."""
        if isinstance(error, SourceFailure):
            failure = error
        else:
            failure = SourceFailure(str(error))
            if isinstance(error, BaseException):
                failure.__cause__ = error
        logger.error("Raw event source failed: %s", failure)
        self._push(failure)

    def finish(self) -> None:
        """End the stream normally after the events already emitted."""
        self._push(_CLOSED)

    def _push(self, item) -> None:
        with self._backlog_lock:
            if not self._opened:
                self._backlog.append(item)
                return
        self._submit(item)

    def _open(self, roots: List[Path]) -> None:
        with self._backlog_lock:
            for item in self._backlog:
                self._queue.put_nowait(item)
            self._backlog.clear()

    def _close(self) -> None:
        pass


class _ForwardingHandler(FileSystemEventHandler):
    """Converts watchdog events under one root into RawEvents."""

    def __init__(self, source: "WatchdogEventSource", root: Path, include_directories: bool):
        super().__init__()
        self.source = source
        self.root = root
        self.include_directories = include_directories

    def _emit(self, kind: EventKind, path, is_directory: bool) -> None:
        if is_directory and not self.include_directories:
            return
        self.source._submit(RawEvent(
            path=os.path.abspath(os.fsdecode(path)),
            kind=kind,
            observed_at=time.monotonic(),
        ))

    def _is_root(self, path) -> bool:
        return Path(os.path.abspath(os.fsdecode(path))) == self.root

    def on_created(self, event):
        self._emit(EventKind.CREATED, event.src_path, event.is_directory)

    def on_modified(self, event):
        self._emit(EventKind.MODIFIED, event.src_path, event.is_directory)

    def on_deleted(self, event):
        if self._is_root(event.src_path):
            self.source._fail(SourceFailure(f"Watch root was removed: {self.root}"))
            return
        self._emit(EventKind.REMOVED, event.src_path, event.is_directory)

    def on_moved(self, event):
        if self._is_root(event.src_path):
            self.source._fail(SourceFailure(f"Watch root was moved away: {self.root}"))
            return
        self._emit(EventKind.RENAMED_FROM, event.src_path, event.is_directory)
        self._emit(EventKind.RENAMED_TO, event.dest_path, event.is_directory)


class WatchdogEventSource(RawEventSource):
    """
    Raw events from the operating system, via watchdog.

    One observer thread serves every root, with one (recursive) watch per
    root. A root that disappears or is moved away, or an observer or emitter
    thread that dies, is reported as a SourceFailure.

    Some backends (inotify among them) keep following a directory after it
    is renamed and report nothing for the rename itself, so each root's
    device and inode are recorded at open and compared on every health check.
    """

    def __init__(
        self,
        recursive: bool = True,
        include_directories: bool = False,
        poll_interval: float = 0.5,
        join_timeout: float = 5.0,
    ):
        """
        Initialize the watchdog source.

        Args:
            recursive: Whether to watch subdirectories
            include_directories: Whether to forward directory events
            poll_interval: Seconds between liveness checks
            join_timeout: Seconds to wait for the observer thread on close
        """
        super().__init__(poll_interval)
        self.recursive = recursive
        self.include_directories = include_directories
        self.join_timeout = join_timeout
        self._observer: Optional[Observer] = None
        self._handlers: List[_ForwardingHandler] = []
        self._root_ids: Dict[Path, Tuple[int, int]] = {}
        self._join_future: Optional[asyncio.Future] = None

    def _open(self, roots: List[Path]) -> None:
        observer = Observer()
        for root in roots:
            handler = _ForwardingHandler(self, root, self.include_directories)
            try:
                st = os.stat(root)
                observer.schedule(handler, str(root), recursive=self.recursive)
            except OSError as e:
                self._handlers.clear()
                self._root_ids.clear()
                raise SetupError(f"Cannot watch {root}: {e}") from e
            self._root_ids[root] = (st.st_dev, st.st_ino)
            self._handlers.append(handler)

        try:
            observer.start()
        except OSError as e:
            # Emitters for earlier roots may already be running.
            observer.stop()
            self._handlers.clear()
            self._root_ids.clear()
            raise SetupError(f"Cannot start filesystem observer: {e}") from e

        self._observer = observer
        for root in roots:
            logger.info("Watching %s (recursive=%s)", root, self.recursive)

    def _close(self) -> None:
        observer = self._observer
        self._observer = None
        self._handlers.clear()
        self._root_ids.clear()
        if observer is None:
            return
        observer.stop()
        if not observer.is_alive():
            return
        if _running_on(self._loop):
            self._join_future = self._loop.run_in_executor(None, observer.join, self.join_timeout)
        else:
            observer.join(timeout=self.join_timeout)

    async def wait_closed(self) -> None:
        future = self._join_future
        if future is not None:
            await future
            self._join_future = None

    def _check_health(self) -> None:
        observer = self._observer
        if observer is None:
            return
        if not observer.is_alive():
            raise SourceFailure("Filesystem observer thread stopped unexpectedly")
        for emitter in list(observer.emitters):
            if not emitter.is_alive():
                raise SourceFailure(f"Watch on {emitter.watch.path} stopped unexpectedly")
        for root, identity in self._root_ids.items():
            try:
                st = os.stat(root)
            except FileNotFoundError:
                raise SourceFailure(f"Watch root was removed or moved away: {root}")
            except OSError as e:
                raise SourceFailure(f"Watch root is no longer accessible: {root}: {e}") from e
            if (st.st_dev, st.st_ino) != identity:
                raise SourceFailure(f"Watch root was moved away: {root}")

    @property
    def watched_roots(self) -> List[Path]:
        """Roots currently scheduled on the observer."""
        return [h.root for h in self._handlers]
