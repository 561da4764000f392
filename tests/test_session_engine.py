# type: ignore
# tests/test_session_engine.py

import os
import sys
# Add the project root directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from dataclasses import FrozenInstanceError
from datetime import datetime, timezone

import pytest
from unittest.mock import ANY, Mock

from errors import DeviceUnavailableError, PersistenceError
from events import EventSource
from motion_tracker import DeviceMotion, MotionTracker
from session_engine import (SessionEngine, SessionState, SessionSummary, format_duration,
                            parse_duration, parse_timestamp)


class TestDurationFormatting:

    def test_format_duration(self):
        assert format_duration(0) == "0:00"
        assert format_duration(65) == "1:05"
        assert format_duration(600) == "10:00"

    def test_parse_duration(self):
        assert parse_duration("1:05") == 65
        assert parse_duration("1:00:00") == 3600
        assert parse_duration("") == 0
        assert parse_duration("abc") == 0

    def test_parse_timestamp(self):
        assert parse_timestamp("2024-05-01T18:30:00") == datetime(2024, 5, 1, 18, 30)
        utc = datetime(2024, 5, 1, 18, 30, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
        assert parse_timestamp("2024-05-01T18:30:00.000Z") == utc
        assert parse_timestamp("2024-05-01T18:30:00+00:00") == utc


class TestSessionLifecycle:

    @pytest.fixture
    def gateway(self):
        gateway = Mock()
        gateway.save.return_value = 1
        return gateway

    @pytest.fixture
    def sensors(self):
        return {"posture_monitor": Mock(), "motion_tracker": Mock(), "tempo_estimator": Mock()}

    @pytest.fixture
    def engine(self, gateway, sensors, clock, scheduler):
        return SessionEngine(gateway, clock=clock, scheduler=scheduler, **sensors)

    def test_initial_state(self, engine):
        assert engine.state == SessionState.IDLE
        assert engine.elapsed_seconds() == 0

    def test_start_transitions_and_starts_sensors(self, engine, sensors, clock):
        assert engine.start("Salsa") is True
        assert engine.state == SessionState.ACTIVE
        assert engine.routine_name == "Salsa"
        assert engine.started_at == clock.now()
        for sensor in sensors.values():
            sensor.start.assert_called_once_with(ANY, resume=False)
        assert engine.active_sensors == ["posture", "motion", "tempo"]

    def test_start_twice_is_a_no_op(self, engine, sensors):
        engine.start("Salsa")
        assert engine.start("Tango") is False
        assert engine.routine_name == "Salsa"
        assert sensors["motion_tracker"].start.call_count == 1

    def test_failing_sensor_does_not_abort_start(self, engine, sensors):
        sensors["posture_monitor"].start.side_effect = DeviceUnavailableError("camera")
        sensors["tempo_estimator"].start.side_effect = RuntimeError("boom")

        assert engine.start("Freestyle") is True
        assert engine.state == SessionState.ACTIVE
        assert engine.active_sensors == ["motion"]

    def test_invalid_transitions_are_no_ops(self, engine):
        assert engine.pause() is False
        assert engine.resume() is False
        assert engine.end() is None
        engine.start("Freestyle")
        assert engine.resume() is False
        assert engine.state == SessionState.ACTIVE

    def test_pause_resume_excludes_paused_time(self, engine, sensors, scheduler):
        engine.start("Freestyle")
        scheduler.advance(5_000)
        engine.pause()
        scheduler.advance(60_000)
        assert engine.elapsed_seconds() == 5

        engine.resume()
        scheduler.advance(3_000)
        summary = engine.end()

        assert summary.duration_seconds == 8
        sensors["motion_tracker"].start.assert_called_with(ANY, resume=True)

    def test_pause_stops_sensors_and_tick(self, engine, sensors, scheduler):
        listener = Mock()
        engine.add_tick_listener(listener)
        engine.start("Freestyle")
        engine.pause()

        for sensor in sensors.values():
            sensor.stop.assert_called_once()
        scheduler.advance(5_000)
        listener.assert_not_called()

    def test_end_from_paused_uses_pause_instant(self, engine, scheduler):
        engine.start("Freestyle")
        scheduler.advance(4_000)
        engine.pause()
        scheduler.advance(30_000)
        assert engine.end().duration_seconds == 4

    def test_second_end_does_not_save_again(self, engine, gateway):
        engine.start("Freestyle")
        first = engine.end()
        assert engine.end() is None
        assert first.session_id == 1
        gateway.save.assert_called_once()

    def test_persistence_failure_still_tears_down(self, engine, gateway, sensors, scheduler):
        gateway.save.side_effect = PersistenceError("disk full")
        engine.start("Freestyle")
        summary = engine.end()

        assert summary is not None
        assert summary.session_id is None
        assert engine.state == SessionState.ENDED
        for sensor in sensors.values():
            sensor.stop.assert_called()
        assert scheduler.pending == 0

    def test_stop_failure_is_isolated(self, engine, sensors):
        sensors["posture_monitor"].stop.side_effect = RuntimeError("stuck")
        engine.start("Freestyle")
        engine.end()
        sensors["tempo_estimator"].stop.assert_called()
        assert engine.state == SessionState.ENDED


class TestReadings:

    @pytest.fixture
    def engine(self, clock, scheduler):
        return SessionEngine(None, clock=clock, scheduler=scheduler)

    def test_update_ignored_unless_active(self, engine):
        assert engine.update("posture", 80) is False
        engine.start("Freestyle")
        engine.pause()
        assert engine.update("posture", 80) is False
        engine.resume()
        assert engine.update("posture", 80) is True
        assert engine.posture_readings == [80]

    def test_unknown_kind_is_rejected(self, engine):
        engine.start("Freestyle")
        assert engine.update("spins", 3) is False

    def test_counters_overwrite_and_readings_append(self, engine):
        engine.start("Freestyle")
        engine.update("steps", 3)
        engine.update("steps", 5)
        engine.update("tempo", 118.4)
        engine.update("bpm", 121.6)
        engine.update("energy", 42.5)

        summary = engine.end()
        assert summary.steps == 5
        assert summary.avg_tempo_bpm == 120
        assert summary.energy == 43
        assert summary.tempo_readings == (118.4, 121.6)

    def test_out_of_range_readings_are_bounded(self, engine):
        engine.start("Freestyle")
        assert engine.update("posture", 250) is True
        assert engine.update("posture", -5) is True
        assert engine.update("energy", -40) is True
        assert engine.update("steps", 4) is True
        assert engine.update("steps", -1) is False
        assert engine.update("turns", -2) is False

        summary = engine.end()
        assert summary.posture_readings == (100, 0)
        assert summary.posture_score == 50
        assert summary.energy == 0
        assert summary.steps == 4
        assert summary.turns == 0

    def test_empty_session_summary_is_zero(self, engine):
        engine.start("Freestyle")
        summary = engine.end()
        assert summary.posture_score == 0
        assert summary.avg_tempo_bpm == 0
        assert summary.posture_readings == ()

    def test_sensor_callbacks_feed_buffers(self, engine):
        engine.start("Freestyle")
        engine._on_pose(None, 75)
        engine._on_motion({"steps": 4, "turns": 1, "energy": 55.0})
        engine._on_tempo(112.0)

        snapshot = engine.snapshot()
        assert snapshot["lastPosture"] == 75
        assert snapshot["steps"] == 4
        assert snapshot["turns"] == 1
        assert snapshot["lastBPM"] == 112.0

    def test_tick_listener_receives_snapshots(self, engine, scheduler):
        listener = Mock()
        engine.add_tick_listener(listener)
        engine.start("Freestyle")
        scheduler.advance(65_000)

        assert listener.call_count == 65
        assert listener.call_args[0][0]["duration"] == "1:05"
        assert engine.formatted_time() == "1:05"

    def test_failing_tick_listener_does_not_stop_tick(self, engine, scheduler):
        engine.add_tick_listener(Mock(side_effect=RuntimeError("socket closed")))
        good = Mock()
        engine.add_tick_listener(good)
        engine.start("Freestyle")
        scheduler.advance(2_000)
        assert good.call_count == 2


class TestFreestyleSession:
    """End-to-end: real motion tracker, stored summary"""

    def test_freestyle_session(self, gateway, clock, scheduler):
        source = EventSource("devicemotion")
        tracker = MotionTracker(source, scheduler, clock=clock)
        engine = SessionEngine(gateway, motion_tracker=tracker, clock=clock, scheduler=scheduler)

        engine.start("Freestyle")
        source.publish(DeviceMotion(0.0, 0.0, 9.8, timestamp_ms=9_950))
        source.publish(DeviceMotion(0.0, 0.0, 12.0, timestamp_ms=10_000))
        source.publish(DeviceMotion(0.0, 0.0, 9.5, timestamp_ms=10_500))
        source.publish(DeviceMotion(0.0, 0.0, 12.0, timestamp_ms=10_600))
        engine.update("posture", 80)
        engine.update("posture", 60)
        scheduler.advance(3_000)

        summary = engine.end()

        assert summary.routine_name == "Freestyle"
        assert summary.steps == 2
        assert summary.posture_score == 70
        assert summary.duration_seconds == 3
        assert 0 <= summary.energy <= 100
        assert summary.session_id is not None
        assert source.subscriber_count == 0

        stored = gateway.list()
        assert [s.session_id for s in stored] == [summary.session_id]
        assert gateway.get_statistics().total_steps == 2


class TestSessionSummary:

    @pytest.fixture
    def summary(self):
        return SessionSummary(
            routine_name="Freestyle", started_at=datetime(2024, 5, 1, 18, 30),
            duration_seconds=125, posture_score=70, avg_tempo_bpm=118, steps=12,
            turns=2, energy=64, posture_readings=(80, 60), tempo_readings=(117.5, 118.5)
        )

    def test_summary_is_immutable(self, summary):
        with pytest.raises(FrozenInstanceError):
            summary.steps = 3

    def test_to_dict(self, summary):
        data = summary.to_dict()
        assert data["duration"] == "2:05"
        assert data["date"] == "2024-05-01T18:30:00"
        assert data["score"] == 70
        assert data["postureReadings"] == [80, 60]

    def test_from_dict_falls_back_to_duration_string(self, summary):
        data = summary.to_dict()
        del data["durationSeconds"]
        restored = SessionSummary.from_dict(data)
        assert restored.duration_seconds == 125
        assert restored.started_at == summary.started_at
