"""Configuration for the file update monitor package."""

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional

from .models import ALL_KINDS, EventKind, RenameMode


@dataclass
class MonitorConfig:
    """
    Configuration options for a monitor.

    Attributes:
        debounce_ms: Quiet period in milliseconds a path must stay unchanged
            before its callback fires. 0 delivers on the next loop iteration,
            still coalescing duplicates that arrive together.
        recursive: Whether to watch subdirectories of each root
        rename_mode: MERGE turns rename halves into REMOVED/CREATED,
            DISTINCT keeps RENAMED_FROM/RENAMED_TO
        kinds: Event kinds that reach the debounce table; others are ignored
        include_directories: Whether directory events are forwarded
        pass_kind: Call the callback as callback(path, kind) instead of
            callback(path)
        max_workers: Thread pool size for synchronous callbacks
        run_sync_in_executor: Run synchronous callbacks on the thread pool so
            a slow callback never blocks the event loop
        source_poll_interval_ms: How often the raw source checks that its
            watch threads are still alive while idle
    """
    debounce_ms: int = 1000
    recursive: bool = True
    rename_mode: RenameMode = RenameMode.MERGE
    kinds: FrozenSet[EventKind] = field(default_factory=lambda: ALL_KINDS)
    include_directories: bool = False
    pass_kind: bool = False
    max_workers: int = 4
    run_sync_in_executor: bool = True
    source_poll_interval_ms: int = 500

    def __post_init__(self):
        if isinstance(self.debounce_ms, bool) or not isinstance(self.debounce_ms, int):
            raise ValueError(f"debounce_ms must be a non-negative integer, got {self.debounce_ms!r}")
        if self.debounce_ms < 0:
            raise ValueError(f"debounce_ms must be a non-negative integer, got {self.debounce_ms}")
        if isinstance(self.rename_mode, str):
            self.rename_mode = RenameMode(self.rename_mode.lower())
        if isinstance(self.kinds, str):
            self.kinds = parse_kinds(self.kinds)
        else:
            self.kinds = frozenset(EventKind.parse(k) for k in self.kinds)
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.source_poll_interval_ms <= 0:
            raise ValueError("source_poll_interval_ms must be positive")

    @property
    def debounce_seconds(self) -> float:
        """Debounce window in seconds."""
        return self.debounce_ms / 1000.0

    @property
    def source_poll_interval(self) -> float:
        """Source liveness check interval in seconds."""
        return self.source_poll_interval_ms / 1000.0

    def normalize_kind(self, kind: EventKind) -> EventKind:
        """
        Apply the rename mode to a raw event kind.

        Args:
            kind: Kind reported by the raw source

        Returns:
            The kind the debounce table should record
        """
        if self.rename_mode is RenameMode.MERGE:
            if kind is EventKind.RENAMED_FROM:
                return EventKind.REMOVED
            if kind is EventKind.RENAMED_TO:
                return EventKind.CREATED
        return kind

    def accepts(self, kind: EventKind) -> bool:
        """Check whether a (normalised) kind should be debounced."""
        return kind in self.kinds

    @classmethod
    def from_env(
        cls,
        prefix: str = "FILE_MONITOR_",
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> "MonitorConfig":
        """
        Build a config from environment variables.

        Recognised variables (with the default prefix): FILE_MONITOR_DEBOUNCE_MS,
        FILE_MONITOR_RECURSIVE, FILE_MONITOR_RENAME_MODE, FILE_MONITOR_KINDS,
        FILE_MONITOR_INCLUDE_DIRECTORIES, FILE_MONITOR_PASS_KIND,
        FILE_MONITOR_MAX_WORKERS.

        Keyword overrides that are not None win over the environment.
        """
        env = os.environ if environ is None else environ
        values = {}

        def get(name: str) -> Optional[str]:
            value = env.get(prefix + name)
            return value if value not in (None, "") else None

        if get("DEBOUNCE_MS") is not None:
            values["debounce_ms"] = _parse_int(prefix + "DEBOUNCE_MS", get("DEBOUNCE_MS"))
        if get("RECURSIVE") is not None:
            values["recursive"] = _parse_bool(get("RECURSIVE"))
        if get("RENAME_MODE") is not None:
            values["rename_mode"] = get("RENAME_MODE")
        if get("KINDS") is not None:
            values["kinds"] = get("KINDS")
        if get("INCLUDE_DIRECTORIES") is not None:
            values["include_directories"] = _parse_bool(get("INCLUDE_DIRECTORIES"))
        if get("PASS_KIND") is not None:
            values["pass_kind"] = _parse_bool(get("PASS_KIND"))
        if get("MAX_WORKERS") is not None:
            values["max_workers"] = _parse_int(prefix + "MAX_WORKERS", get("MAX_WORKERS"))

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def parse_kinds(value: str) -> FrozenSet[EventKind]:
    """
    Parse a comma-separated list of event kinds.

    "all" (or an empty string) selects every kind.
    """
    parts = [p.strip() for p in value.split(",") if p.strip()]
    if not parts or parts == ["all"]:
        return ALL_KINDS
    return frozenset(EventKind.parse(p) for p in parts)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e

