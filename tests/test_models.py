"""Tests for data models."""

import dataclasses

import pytest

from file_update_monitor.exceptions import (
    CallbackFailure,
    MonitorAlreadyStartedError,
    MonitorError,
    MonitorStateError,
    RootOverlapError,
    SetupError,
    SourceFailure,
)
from file_update_monitor.models import EventKind, MonitorStats, PendingEntry, RawEvent


class TestEventKind:
    """Tests for EventKind."""

    def test_parse_value(self):
        assert EventKind.parse("renamed_to") is EventKind.RENAMED_TO

    def test_parse_name_any_case(self):
        assert EventKind.parse("Modified") is EventKind.MODIFIED
        assert EventKind.parse(" REMOVED ") is EventKind.REMOVED

    def test_parse_passthrough(self):
        assert EventKind.parse(EventKind.CREATED) is EventKind.CREATED

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            EventKind.parse("touched")


class TestRawEvent:
    """Tests for RawEvent."""

    def test_defaults(self):
        event = RawEvent("/a/f.txt")
        assert event.kind is EventKind.MODIFIED
        assert event.observed_at > 0

    def test_frozen(self):
        event = RawEvent("/a/f.txt")
        with pytest.raises(dataclasses.FrozenInstanceError):
            event.path = "/b"


class TestPendingEntry:
    def test_defaults(self):
        entry = PendingEntry(path="/a", deadline=1.5)
        assert entry.generation == 0
        assert entry.kind is EventKind.MODIFIED


class TestMonitorStats:
    """Tests for MonitorStats."""

    def test_to_dict(self):
        stats = MonitorStats(events_received=3, deliveries=1, failures=1)
        assert stats.to_dict() == {
            "events_received": 3,
            "events_ignored": 0,
            "deliveries": 1,
            "failures": 1,
            "stale_timers": 0,
        }


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_hierarchy(self):
        assert issubclass(SetupError, MonitorError)
        assert issubclass(SourceFailure, MonitorError)
        assert issubclass(CallbackFailure, MonitorError)
        assert issubclass(MonitorAlreadyStartedError, MonitorStateError)

    def test_callback_failure_chains_cause(self):
        cause = KeyError("x")
        failure = CallbackFailure("/a", cause)
        assert failure.path == "/a"
        assert failure.cause is cause
        assert failure.__cause__ is cause
        assert "/a" in str(failure)

    def test_root_overlap_details(self):
        error = RootOverlapError("overlap", "/a", "/a/b", "child")
        assert error.existing_root == "/a"
        assert error.new_root == "/a/b"
        assert error.relationship == "child"
        assert str(error) == "overlap"
