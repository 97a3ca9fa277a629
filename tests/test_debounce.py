"""Tests for the debounce table."""

import asyncio

import pytest

from file_update_monitor.debounce import DebounceTable
from file_update_monitor.dispatcher import Dispatcher
from file_update_monitor.models import EventKind


class FakeScheduler:
    """Records arm/cancel calls instead of scheduling anything."""

    def __init__(self):
        self.armed = {}
        self.arm_calls = []

    def arm(self, path, generation, deadline):
        self.armed[path] = (generation, deadline)
        self.arm_calls.append((path, generation, deadline))

    def cancel(self, path):
        return self.armed.pop(path, None) is not None

    def cancel_all(self):
        count = len(self.armed)
        self.armed.clear()
        return count

    def now(self):
        return 0.0


class FakeDispatcher:
    def __init__(self):
        self.delivered = []

    def deliver(self, path, kind=EventKind.MODIFIED):
        self.delivered.append((path, kind))


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def table(scheduler, dispatcher):
    return DebounceTable(0.1, dispatcher, scheduler)


class TestOnEvent:
    """Tests for DebounceTable.on_event."""

    def test_first_event_creates_entry(self, table, scheduler):
        entry = table.on_event("/a/f.txt", 10.0)

        assert entry.path == "/a/f.txt"
        assert entry.generation == 0
        assert entry.deadline == pytest.approx(10.1)
        assert "/a/f.txt" in table
        assert scheduler.armed["/a/f.txt"] == (0, pytest.approx(10.1))

    def test_repeat_event_resets_entry(self, table, scheduler):
        table.on_event("/a/f.txt", 10.0)
        entry = table.on_event("/a/f.txt", 10.03)

        assert entry.generation == 1
        assert entry.deadline == pytest.approx(10.13)
        assert len(table) == 1
        assert scheduler.armed["/a/f.txt"] == (1, pytest.approx(10.13))

    def test_generation_increments_per_reset(self, table):
        for i in range(5):
            entry = table.on_event("/a/f.txt", 10.0 + i * 0.01)

        assert entry.generation == 4

    def test_last_kind_wins(self, table):
        table.on_event("/a/f.txt", 10.0, EventKind.CREATED)
        table.on_event("/a/f.txt", 10.01, EventKind.MODIFIED)

        assert table.get("/a/f.txt").kind is EventKind.MODIFIED

    def test_paths_are_independent(self, table):
        table.on_event("/a/f.txt", 10.0)
        table.on_event("/a/g.txt", 10.01)
        table.on_event("/a/f.txt", 10.03)

        assert table.get("/a/g.txt").generation == 0
        assert table.get("/a/g.txt").deadline == pytest.approx(10.11)
        assert table.get("/a/f.txt").generation == 1
        assert sorted(table.pending_paths()) == ["/a/f.txt", "/a/g.txt"]

    def test_negative_window_rejected(self, dispatcher, scheduler):
        with pytest.raises(ValueError):
            DebounceTable(-0.1, dispatcher, scheduler)


class TestOnTimerFire:
    """Tests for DebounceTable.on_timer_fire."""

    def test_matching_generation_delivers_once(self, table, dispatcher):
        table.on_event("/a/f.txt", 10.0, EventKind.MODIFIED)

        assert table.on_timer_fire("/a/f.txt", 0, 10.1) is True
        assert dispatcher.delivered == [("/a/f.txt", EventKind.MODIFIED)]
        assert "/a/f.txt" not in table

    def test_second_fire_for_same_generation_is_ignored(self, table, dispatcher):
        table.on_event("/a/f.txt", 10.0)
        table.on_timer_fire("/a/f.txt", 0, 10.1)

        assert table.on_timer_fire("/a/f.txt", 0, 10.1) is False
        assert len(dispatcher.delivered) == 1

    def test_stale_generation_is_ignored(self, table, dispatcher):
        table.on_event("/a/f.txt", 10.0)
        table.on_event("/a/f.txt", 10.06)

        # The timer armed for generation 0 fires at the original deadline.
        assert table.on_timer_fire("/a/f.txt", 0, 10.1) is False
        assert dispatcher.delivered == []
        assert table.stale_timers == 1
        assert table.get("/a/f.txt").generation == 1

        assert table.on_timer_fire("/a/f.txt", 1, 10.16) is True
        assert dispatcher.delivered == [("/a/f.txt", EventKind.MODIFIED)]

    def test_fire_for_unknown_path_is_ignored(self, table, dispatcher):
        assert table.on_timer_fire("/nope", 0, 1.0) is False
        assert dispatcher.delivered == []
        assert table.stale_timers == 1

    def test_new_burst_after_delivery_delivers_again(self, table, dispatcher):
        table.on_event("/a/f.txt", 10.0)
        table.on_timer_fire("/a/f.txt", 0, 10.1)

        entry = table.on_event("/a/f.txt", 11.0)
        assert entry.generation == 0
        table.on_timer_fire("/a/f.txt", 0, 11.1)

        assert [p for p, _ in dispatcher.delivered] == ["/a/f.txt", "/a/f.txt"]

    def test_delivers_last_kind(self, table, dispatcher):
        table.on_event("/a/f.txt", 10.0, EventKind.CREATED)
        table.on_event("/a/f.txt", 10.01, EventKind.REMOVED)
        table.on_timer_fire("/a/f.txt", 1, 10.11)

        assert dispatcher.delivered == [("/a/f.txt", EventKind.REMOVED)]


class TestClear:
    """Tests for DebounceTable.clear."""

    def test_clear_drops_entries_without_delivering(self, table, scheduler, dispatcher):
        table.on_event("/a/f.txt", 10.0)
        table.on_event("/a/g.txt", 10.0)

        assert table.clear() == 2
        assert len(table) == 0
        assert scheduler.armed == {}

        table.on_timer_fire("/a/f.txt", 0, 10.1)
        assert dispatcher.delivered == []


class TestWithRealTimers:
    """DebounceTable driven by the real timer driver and dispatcher."""

    @pytest.mark.asyncio
    async def test_burst_is_coalesced(self, recorder):
        dispatcher = Dispatcher(recorder)
        table = DebounceTable(0.05, dispatcher)

        for _ in range(5):
            table.on_event("/a/f.txt", table.scheduler.now())
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.15)
        await dispatcher.wait_idle()

        assert recorder.paths == ["/a/f.txt"]
        assert len(table) == 0
