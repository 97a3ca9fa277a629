"""Custom exceptions for the file update monitor package."""

from typing import Optional


class MonitorError(Exception):
    """Base exception for all monitor errors."""
    pass


class SetupError(MonitorError):
    """A monitor could not be set up (bad root, raw source failed to open)."""
    pass


class RootNotFoundError(SetupError):
    """Specified root folder does not exist."""
    pass


class RootNotDirectoryError(SetupError):
    """Specified root exists but is not a directory."""
    pass


class RootNotReadableError(SetupError):
    """Specified root folder cannot be listed by this process."""
    pass


class RootOverlapError(SetupError):
    """New root overlaps with an existing root (parent or child)."""

    def __init__(self, message: str, existing_root: str, new_root: str, relationship: str):
        super().__init__(message)
        self.existing_root = existing_root
        self.new_root = new_root
        self.relationship = relationship


class SourceFailure(MonitorError):
    """The raw event source failed while the monitor was running."""
    pass


class CallbackFailure(MonitorError):
    """
    The user callback raised for a path.

    The original exception is available as ``__cause__`` and ``cause``.
    """

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        super().__init__(f"callback failed for {path}: {cause!r}")
        self.path = path
        self.cause = cause
        self.__cause__ = cause


class MonitorStateError(MonitorError):
    """Illegal lifecycle transition."""
    pass


class MonitorAlreadyStartedError(MonitorStateError):
    """start() was called on a monitor that is already running."""
    pass


class MonitorStoppedError(MonitorStateError):
    """The monitor has been stopped and cannot be started again."""
    pass
