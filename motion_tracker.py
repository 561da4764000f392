"""
motion_tracker.py - Step, turn and energy tracking from device acceleration
"""

import logging
import math
import random
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from config import Config
from scheduling import RepeatingTask, SystemClock

logger = logging.getLogger(__name__)


class MotionMode(str, Enum):
    IDLE = "idle"
    REAL_SENSOR = "real_sensor"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class DeviceMotion:
    """Raw devicemotion reading: acceleration including gravity"""
    x: Optional[float]
    y: Optional[float]
    z: Optional[float]
    timestamp_ms: Optional[int] = None

    def magnitude(self) -> Optional[float]:
        if self.x is None or self.y is None or self.z is None:
            return None
        return math.sqrt(self.x ** 2 + self.y ** 2 + self.z ** 2)


@dataclass(frozen=True)
class MotionSample:
    timestamp_ms: int
    acceleration_magnitude: float


class MotionTracker:
    """
    Converts acceleration into step/turn counts and an energy level.

    Mode transitions:
        IDLE -> REAL_SENSOR   on start()
        REAL_SENSOR -> FALLBACK   when no acceleration sample arrived within
                                  the grace period, or no motion source exists
    FALLBACK is one-way for the session: resuming keeps the synthetic
    generator and never retries the hardware.
    """

    def __init__(self, motion_source, scheduler, orientation_source=None, clock=None,
                 rng: Optional[random.Random] = None,
                 step_threshold: float = Config.STEP_THRESHOLD,
                 debounce_ms: int = Config.STEP_DEBOUNCE_MS,
                 turn_threshold: float = Config.TURN_THRESHOLD,
                 buffer_size: int = Config.ACTIVITY_BUFFER_SIZE,
                 energy_scale: float = Config.ENERGY_SCALE,
                 grace_period_ms: int = Config.SENSOR_GRACE_PERIOD_MS,
                 fallback_interval_ms: int = Config.FALLBACK_INTERVAL_MS):
        self.motion_source = motion_source
        self.orientation_source = orientation_source
        self._scheduler = scheduler
        self._clock = clock or SystemClock()
        self._rng = rng or random.Random()

        self.step_threshold = step_threshold
        self.debounce_ms = debounce_ms
        self.turn_threshold = turn_threshold  # gyroscope turn detection not implemented
        self.energy_scale = energy_scale
        self.grace_period_ms = grace_period_ms

        # Tracking state
        self.is_tracking = False
        self.mode = MotionMode.IDLE
        self.step_count = 0
        self.turn_count = 0
        self.energy_level = 0.0
        self.activity_buffer = deque(maxlen=buffer_size)
        self.last_acceleration_magnitude: Optional[float] = None
        self.last_step_timestamp: Optional[int] = None
        self.samples_observed = 0
        self.calibration_data: Optional[Dict[str, float]] = None

        self._callback: Optional[Callable[[Dict], None]] = None
        self._subscriptions: List = []
        self._grace_timer = None
        self._fallback_task = RepeatingTask(scheduler, fallback_interval_ms,
                                            self._generate_fallback_reading, name="motion-fallback")

    def start(self, on_update: Callable[[Dict], None], resume: bool = False) -> bool:
        """
        Begin tracking. A fresh start resets counters and the fallback latch;
        resume=True keeps counters and stays in fallback if it was engaged.
        """
        if self.is_tracking:
            return True

        self._callback = on_update
        self.is_tracking = True

        if not resume:
            self.step_count = 0
            self.turn_count = 0
            self.energy_level = 0.0
            self.activity_buffer.clear()
            self.last_acceleration_magnitude = None
            self.last_step_timestamp = None
            self.samples_observed = 0
            self.mode = MotionMode.IDLE

        if self.mode == MotionMode.FALLBACK:
            self._fallback_task.start()
            logger.info("📱 Motion tracking resumed in fallback mode")
            return True

        if self.motion_source is None:
            logger.warning("⚠️ Motion sensors not available - using synthetic readings")
            self._enter_fallback()
            return True

        self.mode = MotionMode.REAL_SENSOR
        self._subscriptions.append(self.motion_source.subscribe(self.handle_motion))
        if self.orientation_source is not None:
            self._subscriptions.append(self.orientation_source.subscribe(self.handle_orientation))

        # Samples observed before a resume count as proof the hardware works
        if self.samples_observed == 0:
            self._grace_timer = self._scheduler.call_later(self.grace_period_ms, self._check_sensor_activity)

        logger.info("📱 Motion tracking started")
        return True

    def handle_motion(self, event: DeviceMotion) -> None:
        """Real-sensor path: register a step on a large enough, debounced change"""
        if not self.is_tracking or self.mode != MotionMode.REAL_SENSOR:
            return

        magnitude = event.magnitude()
        if magnitude is None:
            return  # No data

        self.samples_observed += 1
        timestamp = event.timestamp_ms if event.timestamp_ms is not None else self._clock.now_ms()
        self.process_sample(MotionSample(timestamp_ms=timestamp, acceleration_magnitude=magnitude))

    def process_sample(self, sample: MotionSample) -> bool:
        """Apply the step rule to one sample, returns True when a step was registered"""
        registered = False
        magnitude = sample.acceleration_magnitude

        if self.last_acceleration_magnitude is not None:
            delta = abs(magnitude - self.last_acceleration_magnitude)
            debounced = (self.last_step_timestamp is None or
                         sample.timestamp_ms - self.last_step_timestamp >= self.debounce_ms)

            if delta > self.step_threshold and debounced:
                self.step_count += 1
                self.last_step_timestamp = sample.timestamp_ms
                self._update_energy(delta)
                self._notify()
                registered = True

        self.last_acceleration_magnitude = magnitude
        return registered

    def handle_orientation(self, event) -> None:
        """Rotation-rate turn detection is a declared but unimplemented capability"""
        return None

    def _update_energy(self, movement_intensity: float) -> None:
        self.activity_buffer.append(movement_intensity)
        avg_activity = sum(self.activity_buffer) / len(self.activity_buffer)
        self.energy_level = min(100.0, avg_activity * self.energy_scale)

    def _check_sensor_activity(self) -> None:
        self._grace_timer = None
        if not self.is_tracking or self.mode != MotionMode.REAL_SENSOR:
            return
        if self.samples_observed == 0:
            logger.warning(f"⚠️ No motion samples within {self.grace_period_ms} ms - switching to fallback")
            self._enter_fallback()

    def _enter_fallback(self) -> None:
        """REAL_SENSOR/IDLE -> FALLBACK, one-way for this session"""
        self._cancel_subscriptions()
        self.mode = MotionMode.FALLBACK
        if self.energy_level == 0:
            self.energy_level = 50.0
        self._fallback_task.start()
        logger.info("🎲 Motion fallback mode engaged")

    def _generate_fallback_reading(self) -> None:
        if not self.is_tracking or self.mode != MotionMode.FALLBACK:
            return
        self.step_count += self._rng.randint(0, 2)
        if self._rng.random() < 0.15:
            self.turn_count += 1
        self.energy_level = min(100.0, max(0.0, self.energy_level + self._rng.uniform(-10.0, 10.0)))
        self._notify()

    def _notify(self) -> None:
        if self._callback:
            self._callback({
                "steps": self.step_count,
                "turns": self.turn_count,
                "energy": self.energy_level
            })

    def calibrate(self, readings: List[DeviceMotion]) -> Optional[Dict[str, float]]:
        """Average the first CALIBRATION_SAMPLES complete readings into a resting baseline"""
        usable = [r for r in readings if r.magnitude() is not None][:Config.CALIBRATION_SAMPLES]
        if len(usable) < Config.CALIBRATION_SAMPLES:
            return None

        self.calibration_data = {
            "x": sum(r.x for r in usable) / len(usable),
            "y": sum(r.y for r in usable) / len(usable),
            "z": sum(r.z for r in usable) / len(usable)
        }
        logger.info(f"✅ Calibration complete: {self.calibration_data}")
        return self.calibration_data

    def _cancel_subscriptions(self) -> None:
        for subscription in self._subscriptions:
            try:
                subscription.cancel()
            except Exception as e:
                logger.warning(f"⚠️ Could not cancel motion subscription: {e}")
        self._subscriptions = []

    def stop(self) -> None:
        self.is_tracking = False
        self._cancel_subscriptions()
        try:
            if self._grace_timer is not None:
                self._grace_timer.cancel()
        except Exception as e:
            logger.warning(f"⚠️ Could not cancel sensor grace timer: {e}")
        finally:
            self._grace_timer = None
        try:
            self._fallback_task.stop()
        except Exception as e:
            logger.warning(f"⚠️ Could not stop fallback generator: {e}")
        logger.info("📱 Motion tracking stopped")

    def status(self) -> Dict:
        return {
            "is_tracking": self.is_tracking,
            "mode": self.mode.value,
            "steps": self.step_count,
            "turns": self.turn_count,
            "energy": round(self.energy_level, 1)
        }
