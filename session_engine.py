"""
session_engine.py - Practice session lifecycle, sensor wiring and summary computation

State machine:

    IDLE --start()--> ACTIVE --pause()--> PAUSED --resume()--> ACTIVE
                        |                   |
                        +------end()--------+------> ENDED (terminal)

A transition requested from the wrong state is a no-op, so duplicate UI
events (double taps, repeated socket messages) are harmless.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import Config
from errors import DeviceUnavailableError, PermissionDeniedError
from pose_scorer import round_half_up
from scheduling import RepeatingTask, SystemClock, ThreadScheduler

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


def format_duration(seconds: int) -> str:
    """Format seconds as M:SS"""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


def parse_duration(duration: Optional[str]) -> int:
    """Parse M:SS (or H:MM:SS) back into seconds, 0 for anything unparsable"""
    if not duration:
        return 0
    try:
        parts = [int(p) for p in str(duration).split(":")]
    except ValueError:
        return 0
    seconds = 0
    for part in parts:
        seconds = seconds * 60 + part
    return seconds


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into local naive time, accepting the trailing Z of browser exports"""
    value = value.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _mean(values) -> float:
    return sum(values) / len(values) if values else 0


def _clamp_percent(value):
    return max(0, min(100, value))


@dataclass(frozen=True)
class SessionSummary:
    """Immutable aggregate record produced when a session ends"""
    routine_name: str
    started_at: datetime
    duration_seconds: int
    posture_score: int
    avg_tempo_bpm: int
    steps: int
    turns: int
    energy: int
    posture_readings: Tuple[int, ...] = field(default_factory=tuple)
    tempo_readings: Tuple[float, ...] = field(default_factory=tuple)
    session_id: Optional[int] = None

    @property
    def duration(self) -> str:
        return format_duration(self.duration_seconds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.session_id,
            "routineName": self.routine_name,
            "date": self.started_at.isoformat(),
            "duration": self.duration,
            "durationSeconds": self.duration_seconds,
            "score": self.posture_score,
            "avgBPM": self.avg_tempo_bpm,
            "steps": self.steps,
            "turns": self.turns,
            "energy": self.energy,
            "postureReadings": list(self.posture_readings),
            "bpmReadings": list(self.tempo_readings)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionSummary":
        """Inverse of to_dict; records without durationSeconds fall back to the M:SS string"""
        started_at = data.get("date")
        if isinstance(started_at, str):
            started_at = parse_timestamp(started_at)
        duration_seconds = data.get("durationSeconds")
        if duration_seconds is None:
            duration_seconds = parse_duration(data.get("duration"))

        return cls(
            routine_name=data.get("routineName") or Config.DEFAULT_ROUTINE,
            started_at=started_at or datetime.now(),
            duration_seconds=int(duration_seconds),
            posture_score=int(data.get("score") or 0),
            avg_tempo_bpm=int(data.get("avgBPM") or 0),
            steps=int(data.get("steps") or 0),
            turns=int(data.get("turns") or 0),
            energy=int(data.get("energy") or 0),
            posture_readings=tuple(data.get("postureReadings") or ()),
            tempo_readings=tuple(data.get("bpmReadings") or ()),
            session_id=data.get("id")
        )


class SessionEngine:
    """
    Owns one practice session from start() to end().

    Sensor collaborators (posture monitor, motion tracker, tempo estimator)
    are optional; each must expose start(callback, resume=False) and an
    idempotent stop(). The engine never touches hardware handles itself.
    All transitions and updates are serialized on a re-entrant lock since
    timers and sensor callbacks may fire from other threads.
    """

    def __init__(self, gateway=None, posture_monitor=None, motion_tracker=None,
                 tempo_estimator=None, clock=None, scheduler=None,
                 tick_ms: int = Config.SESSION_TICK_MS):
        self.gateway = gateway
        self._clock = clock or SystemClock()
        self._scheduler = scheduler or ThreadScheduler()
        self._lock = threading.RLock()

        self._sensor_bindings = {
            "posture": (posture_monitor, self._on_pose),
            "motion": (motion_tracker, self._on_motion),
            "tempo": (tempo_estimator, self._on_tempo),
        }
        self.active_sensors: List[str] = []
        self._tick_listeners: List[Callable[[Dict], None]] = []
        self._tick = RepeatingTask(self._scheduler, tick_ms, self._on_tick, name="session-tick")

        self._state = SessionState.IDLE
        self.routine_name: Optional[str] = None
        self.started_at: Optional[datetime] = None
        self._anchor_ms: Optional[int] = None
        self._paused_at_ms: Optional[int] = None
        self._reset_data()

    def _reset_data(self) -> None:
        self.duration_seconds = 0
        self.steps = 0
        self.turns = 0
        self.energy = 0.0
        self.posture_readings: List[int] = []
        self.tempo_readings: List[float] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == SessionState.ACTIVE

    @property
    def is_paused(self) -> bool:
        return self._state == SessionState.PAUSED

    def add_tick_listener(self, listener: Callable[[Dict], None]) -> None:
        self._tick_listeners.append(listener)

    # ==================== LIFECYCLE ====================

    def start(self, routine_name: str = Config.DEFAULT_ROUTINE) -> bool:
        with self._lock:
            if self._state != SessionState.IDLE:
                logger.warning(f"⚠️ start() ignored in state {self._state.value}")
                return False

            logger.info(f"🎬 Starting session: {routine_name}")
            self.routine_name = routine_name
            self.started_at = self._clock.now()
            self._anchor_ms = self._clock.now_ms()
            self._paused_at_ms = None
            self._reset_data()
            self._state = SessionState.ACTIVE

            self._tick.start()
            self._start_sensors(resume=False)
            logger.info(f"✅ Session started with sensors: {self.active_sensors or 'none'}")
            return True

    def pause(self) -> bool:
        with self._lock:
            if self._state != SessionState.ACTIVE:
                return False

            logger.info("⏸️ Session paused")
            self._paused_at_ms = self._clock.now_ms()
            self.duration_seconds = self._elapsed_ms() // 1000
            self._state = SessionState.PAUSED
            self._stop_timer()
            self._stop_sensors()
            return True

    def resume(self) -> bool:
        with self._lock:
            if self._state != SessionState.PAUSED:
                return False

            logger.info("▶️ Session resumed")
            pause_duration = self._clock.now_ms() - self._paused_at_ms
            self._anchor_ms += pause_duration
            self._paused_at_ms = None
            self._state = SessionState.ACTIVE

            self._tick.start()
            self._start_sensors(resume=True)
            return True

    def update(self, kind: str, value) -> bool:
        """Record a reading (posture, tempo) or overwrite a counter (steps, turns, energy)

        Posture and energy are clamped to 0..100; negative step or turn counts are rejected.
        """
        with self._lock:
            if self._state != SessionState.ACTIVE:
                return False

            if kind in ("steps", "turns") and value < 0:
                logger.warning(f"⚠️ Negative {kind} count ignored: {value}")
                return False

            if kind == "posture":
                self.posture_readings.append(_clamp_percent(int(value)))
            elif kind in ("tempo", "bpm"):
                self.tempo_readings.append(float(value))
            elif kind == "steps":
                self.steps = int(value)
            elif kind == "turns":
                self.turns = int(value)
            elif kind == "energy":
                self.energy = _clamp_percent(float(value))
            else:
                logger.warning(f"⚠️ Unknown reading kind ignored: {kind}")
                return False

            self.duration_seconds = self._elapsed_ms() // 1000
            return True

    def end(self) -> Optional[SessionSummary]:
        with self._lock:
            if self._state not in (SessionState.ACTIVE, SessionState.PAUSED):
                return None

            logger.info("🏁 Ending session...")
            self.duration_seconds = self._elapsed_ms() // 1000
            summary = self.build_summary()

            try:
                if self.gateway is not None:
                    session_id = self.gateway.save(summary)
                    summary = replace(summary, session_id=session_id)
                    logger.info(f"✅ Session saved to database (id={session_id})")
            except Exception as e:
                logger.error(f"❌ Failed to save session: {e}")
            finally:
                self._stop_timer()
                self._stop_sensors()
                self._state = SessionState.ENDED

            return summary

    # ==================== SUMMARY ====================

    def build_summary(self) -> SessionSummary:
        return SessionSummary(
            routine_name=self.routine_name or Config.DEFAULT_ROUTINE,
            started_at=self.started_at or self._clock.now(),
            duration_seconds=self.duration_seconds,
            posture_score=round_half_up(_mean(self.posture_readings)),
            avg_tempo_bpm=round_half_up(_mean(self.tempo_readings)),
            steps=self.steps,
            turns=self.turns,
            energy=round_half_up(self.energy),
            posture_readings=tuple(self.posture_readings),
            tempo_readings=tuple(self.tempo_readings)
        )

    def _elapsed_ms(self) -> int:
        if self._anchor_ms is None:
            return 0
        if self._state == SessionState.PAUSED and self._paused_at_ms is not None:
            return self._paused_at_ms - self._anchor_ms
        return self._clock.now_ms() - self._anchor_ms

    def elapsed_seconds(self) -> int:
        """Live active time, frozen while paused"""
        with self._lock:
            if self._state == SessionState.IDLE:
                return 0
            if self._state == SessionState.ENDED:
                return self.duration_seconds
            return self._elapsed_ms() // 1000

    def formatted_time(self) -> str:
        return format_duration(self.elapsed_seconds())

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            elapsed = self.elapsed_seconds()
            return {
                "state": self._state.value,
                "routineName": self.routine_name,
                "durationSeconds": elapsed,
                "duration": format_duration(elapsed),
                "postureScore": round_half_up(_mean(self.posture_readings)),
                "lastPosture": self.posture_readings[-1] if self.posture_readings else None,
                "avgBPM": round_half_up(_mean(self.tempo_readings)),
                "lastBPM": round(self.tempo_readings[-1], 1) if self.tempo_readings else None,
                "steps": self.steps,
                "turns": self.turns,
                "energy": round_half_up(self.energy),
                "activeSensors": list(self.active_sensors)
            }

    # ==================== TIMERS AND SENSORS ====================

    def _on_tick(self) -> None:
        with self._lock:
            if self._state != SessionState.ACTIVE:
                return
            self.duration_seconds = self._elapsed_ms() // 1000
            snapshot = self.snapshot()

        for listener in list(self._tick_listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"⚠️ Tick listener failed: {e}")

    def _on_pose(self, pose, score: int) -> None:
        self.update("posture", score)

    def _on_motion(self, reading: Dict) -> None:
        with self._lock:
            self.update("steps", reading.get("steps", self.steps))
            self.update("turns", reading.get("turns", self.turns))
            self.update("energy", reading.get("energy", self.energy))

    def _on_tempo(self, bpm: float) -> None:
        self.update("tempo", bpm)

    def _start_sensors(self, resume: bool) -> None:
        self.active_sensors = []
        for name, (sensor, callback) in self._sensor_bindings.items():
            if sensor is None:
                continue
            try:
                sensor.start(callback, resume=resume)
                self.active_sensors.append(name)
            except PermissionDeniedError as e:
                logger.warning(f"⚠️ {name} permission denied, continuing without it: {e}")
            except DeviceUnavailableError as e:
                logger.warning(f"⚠️ {name} unavailable, continuing without it: {e}")
            except Exception as e:
                logger.error(f"❌ Failed to start {name} sensor: {e}")

    def _stop_sensors(self) -> None:
        for name, (sensor, _) in self._sensor_bindings.items():
            if sensor is None:
                continue
            try:
                sensor.stop()
            except Exception as e:
                logger.warning(f"⚠️ Error stopping {name} sensor: {e}")
        self.active_sensors = []

    def _stop_timer(self) -> None:
        try:
            self._tick.stop()
        except Exception as e:
            logger.warning(f"⚠️ Could not stop session tick: {e}")
