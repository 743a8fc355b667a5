"""Tests for ManualClock and the daemon-thread timers."""

import threading
from datetime import UTC, datetime, timedelta

import pytest

from tickspine.core.clock import ManualClock, SystemClock
from tickspine.core.timers import IntervalTimer, TimerThread


class TestManualClock:
    def test_advance_by_kwargs(self):
        clock = ManualClock(datetime(2026, 1, 5, 9, 0, tzinfo=UTC))
        clock.advance(minutes=5)
        assert clock.now() == datetime(2026, 1, 5, 9, 5, tzinfo=UTC)

    def test_advance_by_timedelta(self):
        clock = ManualClock(datetime(2026, 1, 5, tzinfo=UTC))
        assert clock.advance(timedelta(hours=1)) == datetime(2026, 1, 5, 1, tzinfo=UTC)

    def test_cannot_go_backwards(self):
        with pytest.raises(ValueError):
            ManualClock().advance(seconds=-1)

    def test_naive_start_is_utc(self):
        assert ManualClock(datetime(2026, 1, 1)).now().tzinfo is UTC

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None


class TestTimerThread:
    def test_ticks_until_stopped(self):
        """Callback runs repeatedly on the background thread."""
        ticked = threading.Event()
        calls = []

        def callback():
            calls.append(1)
            if len(calls) >= 3:
                ticked.set()

        timer = TimerThread("test", callback, delay_fn=lambda: 0.01)
        timer.start()
        try:
            assert ticked.wait(2.0)
            assert timer.is_running
        finally:
            timer.stop()
        assert not timer.is_running
        assert timer.tick_count >= 3

    def test_callback_errors_do_not_stop_timer(self):
        ticked = threading.Event()
        calls = []

        def callback():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first tick fails")
            ticked.set()

        timer = TimerThread("flaky", callback, delay_fn=lambda: 0.01)
        timer.start()
        try:
            assert ticked.wait(2.0)
        finally:
            timer.stop()
        assert timer.health()["error_count"] == 1

    def test_async_callback(self):
        ticked = threading.Event()

        async def callback():
            ticked.set()

        timer = TimerThread("async", callback, delay_fn=lambda: 0.01)
        timer.start()
        try:
            assert ticked.wait(2.0)
        finally:
            timer.stop()

    def test_stop_before_start_is_noop(self):
        TimerThread("idle", lambda: None, delay_fn=lambda: 1.0).stop()


class TestIntervalTimer:
    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            IntervalTimer("bad", lambda: None, 0)

    def test_keeps_interval(self):
        assert IntervalTimer("sample", lambda: None, 300).interval_seconds == 300
