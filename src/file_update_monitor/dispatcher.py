"""Delivery of matured paths to the user callback."""

import asyncio
import functools
import inspect
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, Set, Union

from .exceptions import CallbackFailure
from .models import EventKind

logger = logging.getLogger(__name__)


class ChangeHandler(ABC):
    """
    Single-method contract for objects that react to path changes.

    ``on_change`` may be a plain method or a coroutine method. Raising an
    exception reports a failure for that path.
    """

    @abstractmethod
    def on_change(self, path: str) -> Any:
        """Handle one debounced change of ``path``."""


Callback = Union[Callable[..., Any], ChangeHandler]
ErrorHandler = Callable[[CallbackFailure], Any]


def resolve_callback(callback: Callback) -> Callable[..., Any]:
    """Turn a ChangeHandler (or any object with on_change) into a callable."""
    if isinstance(callback, ChangeHandler):
        return callback.on_change
    if not callable(callback):
        on_change = getattr(callback, "on_change", None)
        if callable(on_change):
            return on_change
        raise TypeError(f"callback must be callable or provide on_change(), got {callback!r}")
    return callback


def _is_async_callable(func: Callable[..., Any]) -> bool:
    if inspect.iscoroutinefunction(func):
        return True
    call = getattr(func, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


class Dispatcher:
    """
    Invokes the user callback once per matured path.

    Each delivery runs as its own task, so a slow callback never holds up
    the timer driver, the debounce table or the raw event source, and
    deliveries for different paths overlap freely. Two deliveries for the
    same path cannot overlap: the table removes an entry before handing the
    path over, and a new entry for that path only matures after a full
    quiet period of its own.

    Coroutine callbacks are awaited on the loop. Synchronous callbacks run on
    a thread pool (or inline when ``run_sync_in_executor`` is False).

    A callback that raises is reported as a ``CallbackFailure``: logged,
    counted and handed to ``on_error`` if given. Nothing is retried; the
    next change to the path triggers a fresh attempt.
    """

    def __init__(
        self,
        callback: Callback,
        on_error: Optional[ErrorHandler] = None,
        pass_kind: bool = False,
        max_workers: int = 4,
        run_sync_in_executor: bool = True,
    ):
        """
        Initialize the dispatcher.

        Args:
            callback: Callable, coroutine function or ChangeHandler
            on_error: Receives a CallbackFailure for every failed delivery
            pass_kind: Call callback(path, kind) instead of callback(path)
            max_workers: Thread pool size for synchronous callbacks
            run_sync_in_executor: Run synchronous callbacks off the loop
        """
        self._callback = resolve_callback(callback)
        self._is_async = _is_async_callable(self._callback)
        self._on_error = on_error
        self._pass_kind = pass_kind
        self._max_workers = max_workers
        self._run_sync_in_executor = run_sync_in_executor
        self._executor: Optional[ThreadPoolExecutor] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False
        self.delivered = 0
        self.failed = 0

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Bind the dispatcher to the loop deliveries run on."""
        self._loop = loop

    def deliver(self, path: str, kind: EventKind = EventKind.MODIFIED) -> Optional[asyncio.Task]:
        """
        Start delivering a path to the callback.

        Args:
            path: The matured path
            kind: Kind of the last event recorded for the path

        Returns:
            The delivery task, or None if the dispatcher is closed
        """
        if self._closed:
            logger.debug("Dispatcher closed, dropping delivery for %s", path)
            return None

        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self._run(path, kind), name=f"deliver:{path}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    async def _run(self, path: str, kind: EventKind) -> None:
        args = (path, kind) if self._pass_kind else (path,)
        logger.debug("Delivering %s (%s)", path, kind.value)
        try:
            if self._is_async:
                await self._callback(*args)
            elif self._run_sync_in_executor:
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(
                    self._get_executor(), functools.partial(self._callback, *args)
                )
                if inspect.isawaitable(result):
                    await result
            else:
                result = self._callback(*args)
                if inspect.isawaitable(result):
                    await result
        except Exception as e:
            self.failed += 1
            self._report(CallbackFailure(path, e))
        else:
            self.delivered += 1

    def _report(self, failure: CallbackFailure) -> None:
        logger.error(
            "Change callback failed for %s: %s",
            failure.path, failure.cause, exc_info=failure.cause,
        )
        if self._on_error is None:
            return
        try:
            result = self._on_error(failure)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)
                task.add_done_callback(_log_error_handler_failure)
        except Exception:
            logger.error("Error handler failed for %s", failure.path, exc_info=True)

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="file-monitor-callback",
            )
        return self._executor

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if self._closed and not self._tasks:
            self._shutdown_executor()

    @property
    def in_flight(self) -> int:
        """Number of deliveries (and async error handlers) still running."""
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every in-flight delivery has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """
        Refuse new deliveries.

        In-flight deliveries keep running; the thread pool is released once
        the last one finishes.
        """
        self._closed = True
        if not self._tasks:
            self._shutdown_executor()

    def _shutdown_executor(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None


def _log_error_handler_failure(future: "asyncio.Future") -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Error handler failed", exc_info=exc)
