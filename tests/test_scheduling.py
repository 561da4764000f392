# type: ignore
# tests/test_scheduling.py

import os
import sys
# Add the project root directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

import threading

import pytest
from unittest.mock import Mock

from scheduling import ManualClock, ManualScheduler, RepeatingTask, ThreadScheduler


class TestManualScheduler:

    def test_calls_fire_in_due_order(self, clock, scheduler):
        fired = []
        scheduler.call_later(300, lambda: fired.append(("b", clock.now_ms())))
        scheduler.call_later(100, lambda: fired.append(("a", clock.now_ms())))
        scheduler.advance(500)

        assert fired == [("a", 10_100), ("b", 10_300)]
        assert clock.now_ms() == 10_500

    def test_cancelled_call_does_not_fire(self, scheduler):
        callback = Mock()
        handle = scheduler.call_later(100, callback)
        handle.cancel()
        handle.cancel()
        scheduler.advance(200)

        callback.assert_not_called()
        assert scheduler.pending == 0

    def test_calls_scheduled_during_advance_fire_if_due(self, scheduler):
        callback = Mock()
        scheduler.call_later(100, lambda: scheduler.call_later(100, callback))
        scheduler.advance(250)
        callback.assert_called_once()


class TestRepeatingTask:

    def test_runs_every_interval_while_active(self, scheduler):
        action = Mock()
        task = RepeatingTask(scheduler, 500, action)
        task.start()
        scheduler.advance(1_600)
        assert action.call_count == 3

    def test_stop_prevents_further_runs(self, scheduler):
        action = Mock()
        task = RepeatingTask(scheduler, 500, action)
        task.start()
        scheduler.advance(500)
        task.stop()
        scheduler.advance(5_000)

        assert action.call_count == 1
        assert task.is_active is False

    def test_start_is_idempotent(self, scheduler):
        action = Mock()
        task = RepeatingTask(scheduler, 500, action)
        task.start()
        task.start()
        scheduler.advance(500)
        assert action.call_count == 1

    def test_stop_from_inside_action_does_not_reschedule(self, scheduler):
        task = None

        def action():
            task.stop()

        task = RepeatingTask(scheduler, 100, Mock(side_effect=action))
        task.start()
        scheduler.advance(1_000)
        assert task._action.call_count == 1

    def test_restart_inside_action_does_not_double_schedule(self, scheduler):
        calls = []

        def action():
            calls.append(1)
            if len(calls) == 1:
                task.stop()
                task.start()

        task = RepeatingTask(scheduler, 100, action)
        task.start()
        scheduler.advance(300)
        assert len(calls) == 3

    def test_failing_action_keeps_running(self, scheduler):
        action = Mock(side_effect=[RuntimeError("boom"), None])
        task = RepeatingTask(scheduler, 100, action)
        task.start()
        scheduler.advance(200)
        assert action.call_count == 2


class TestRealTime:

    def test_thread_scheduler_fires(self):
        fired = threading.Event()
        ThreadScheduler().call_later(10, fired.set)
        assert fired.wait(2.0)

    def test_thread_scheduler_cancel(self):
        fired = threading.Event()
        handle = ThreadScheduler().call_later(200, fired.set)
        handle.cancel()
        assert not fired.wait(0.4)

    def test_manual_clock(self):
        clock = ManualClock()
        clock.advance(1_500)
        assert clock.now_ms() == 1_500
        clock.set(42)
        assert clock.now_ms() == 42
