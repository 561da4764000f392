"""
coach.py - DanceCoach: the registry wiring relays, collaborators, engine and store
"""

import logging
import random
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

from motion_tracker import MotionTracker
from permissions import PermissionsManager
from pose_scorer import Pose, PostureMonitor
from scheduling import SystemClock, ThreadScheduler
from sensor_relays import KeypointRelay, MicrophoneRelay, MotionRelay
from session_engine import SessionEngine, SessionState, SessionSummary
from tempo_estimator import TempoEstimator

logger = logging.getLogger(__name__)


class DanceCoach:
    """
    Owns one instance of everything and hands a fresh SessionEngine (with
    fresh collaborators) to every practice session.
    """

    def __init__(self, gateway, clock=None, scheduler=None, rng: Optional[random.Random] = None):
        self.gateway = gateway
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or ThreadScheduler()
        self.rng = rng

        self.keypoints = KeypointRelay()
        self.motion = MotionRelay()
        self.microphone = MicrophoneRelay()

        self._reported: Dict[str, bool] = {}
        self.permissions = PermissionsManager(gateway, probes={
            "camera": lambda: self._reported.get("camera", False),
            "microphone": lambda: self._reported.get("microphone", False),
            "motion": lambda: self._reported.get("motion", False),
        })

        self.engine: Optional[SessionEngine] = None
        self.last_summary: Optional[SessionSummary] = None
        self._tick_listeners: List[Callable[[Dict], None]] = []
        self._lock = threading.Lock()

    # ==================== PERMISSIONS ====================

    def report_permissions(self, report: Dict[str, bool]) -> Dict[str, bool]:
        """Record what the browser was granted and enable the matching relays"""
        self._reported = {k: bool(v) for k, v in report.items()}
        results = self.permissions.request_all()
        self._apply_permissions(results)
        return results

    def restore_permissions(self) -> Dict[str, bool]:
        status = self.permissions.load_saved_status()
        self._apply_permissions(status)
        return status

    def _apply_permissions(self, status: Dict[str, bool]) -> None:
        self.keypoints.available = status.get("camera", False)
        self.microphone.available = status.get("microphone", False)
        self.motion.available = status.get("motion", False)

    # ==================== SESSIONS ====================

    def add_tick_listener(self, listener: Callable[[Dict], None]) -> None:
        self._tick_listeners.append(listener)
        if self.engine is not None:
            self.engine.add_tick_listener(listener)

    def new_engine(self) -> SessionEngine:
        posture = PostureMonitor(self.keypoints if self.keypoints.available else None,
                                 self.keypoints, self.scheduler)
        motion = MotionTracker(self.motion.motion_source, self.scheduler,
                               orientation_source=self.motion.orientation_source,
                               clock=self.clock, rng=self.rng)
        tempo = TempoEstimator(self.microphone if self.microphone.available else None,
                               self.scheduler, clock=self.clock)

        engine = SessionEngine(self.gateway, posture_monitor=posture, motion_tracker=motion,
                               tempo_estimator=tempo, clock=self.clock, scheduler=self.scheduler)
        for listener in self._tick_listeners:
            engine.add_tick_listener(listener)
        return engine

    @property
    def session_in_progress(self) -> bool:
        return self.engine is not None and self.engine.state in (SessionState.ACTIVE, SessionState.PAUSED)

    def start_session(self, routine_name: Optional[str] = None) -> bool:
        with self._lock:
            if self.session_in_progress:
                logger.warning("⚠️ A session is already in progress")
                return False
            routine = routine_name or self.gateway.get_selected_routine()
            self.engine = self.new_engine()
            return self.engine.start(routine)

    def pause_session(self) -> bool:
        return self.engine.pause() if self.engine else False

    def resume_session(self) -> bool:
        return self.engine.resume() if self.engine else False

    def end_session(self) -> Optional[SessionSummary]:
        if self.engine is None:
            return None
        summary = self.engine.end()
        if summary is not None:
            self.last_summary = summary
        return summary

    def record(self, kind: str, value) -> bool:
        return self.engine.update(kind, value) if self.engine else False

    # ==================== SENSOR RELAYS ====================

    def push_poses(self, raw_poses: Iterable[Iterable[Dict[str, Any]]]) -> int:
        poses = [Pose.from_keypoints(raw) for raw in raw_poses]
        return self.keypoints.push(poses)

    def push_motion(self, x, y, z, timestamp_ms: Optional[int] = None) -> int:
        return self.motion.push_motion(x, y, z, timestamp_ms)

    def push_audio(self, samples) -> int:
        return self.microphone.push_pcm(samples)

    def status(self) -> Dict[str, Any]:
        return {
            "session": self.engine.snapshot() if self.engine else None,
            "permissions": dict(self.permissions.status),
            "lastSummary": self.last_summary.to_dict() if self.last_summary else None
        }

    def shutdown(self) -> None:
        if self.session_in_progress:
            logger.info("🛑 Ending session in progress before shutdown")
            self.end_session()
