"""
File Update Monitor

Watches one or more directory trees and invokes a callback once per logical
change, coalescing bursts of raw filesystem events for the same path into a
single notification after a quiet period.

Features:
- Per-path debouncing with independent timers
- Sync, async and handler-object callbacks, isolated from each other
- Recursive watching of several roots via watchdog
- Pluggable raw event sources
- Configurable rename handling and event-kind filtering
"""

from .models import (
    EventKind,
    RenameMode,
    MonitorState,
    RawEvent,
    PendingEntry,
    MonitorStats,
)

from .config import MonitorConfig

from .exceptions import (
    MonitorError,
    SetupError,
    RootNotFoundError,
    RootNotDirectoryError,
    RootNotReadableError,
    RootOverlapError,
    SourceFailure,
    CallbackFailure,
    MonitorStateError,
    MonitorAlreadyStartedError,
    MonitorStoppedError,
)

from .root_manager import RootManager
from .scheduler import TimerDriver
from .dispatcher import ChangeHandler, Dispatcher
from .debounce import DebounceTable
from .sources import RawEventSource, MemoryEventSource, WatchdogEventSource
from .monitor import Monitor


__all__ = [
    # Models
    "EventKind",
    "RenameMode",
    "MonitorState",
    "RawEvent",
    "PendingEntry",
    "MonitorStats",
    # Config
    "MonitorConfig",
    # Exceptions
    "MonitorError",
    "SetupError",
    "RootNotFoundError",
    "RootNotDirectoryError",
    "RootNotReadableError",
    "RootOverlapError",
    "SourceFailure",
    "CallbackFailure",
    "MonitorStateError",
    "MonitorAlreadyStartedError",
    "MonitorStoppedError",
    # Components
    "RootManager",
    "TimerDriver",
    "ChangeHandler",
    "Dispatcher",
    "DebounceTable",
    "RawEventSource",
    "MemoryEventSource",
    "WatchdogEventSource",
    # Facade
    "Monitor",
]

__version__ = "0.1.0"
