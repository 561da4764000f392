"""
sensor_relays.py - Browser-fed sensor sources

The browser owns the real camera, microphone and motion APIs. It pushes
pose keypoints, PCM audio chunks and devicemotion readings over the local
UI bridge; these relays expose them through the same source contracts the
collaborators use for hardware (open()/read_frame(), open_stream()/read(),
subscribe()).
"""

import logging
import threading
from collections import deque
from typing import List, Optional

import numpy as np

from config import Config
from errors import DeviceUnavailableError
from events import EventSource
from motion_tracker import DeviceMotion
from pose_scorer import Pose

logger = logging.getLogger(__name__)


class KeypointStream:
    """Latest-frame mailbox: read_frame() hands out each pushed frame once"""

    def __init__(self, relay: "KeypointRelay"):
        self._relay = relay
        self._lock = threading.Lock()
        self._latest: Optional[List[Pose]] = None
        self.is_open = True

    def deliver(self, poses: List[Pose]) -> None:
        with self._lock:
            self._latest = poses

    def read_frame(self) -> Optional[List[Pose]]:
        with self._lock:
            frame, self._latest = self._latest, None
        return frame

    def stop(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        self._relay._detach(self)


class KeypointRelay:
    """
    Camera source and pose source in one: the browser runs the pose model
    and pushes its output, so a "frame" is already a list of poses.
    """

    def __init__(self, available: bool = False):
        self.available = available
        self._streams: List[KeypointStream] = []
        self._lock = threading.Lock()

    def open(self) -> KeypointStream:
        if not self.available:
            raise DeviceUnavailableError("camera")
        stream = KeypointStream(self)
        with self._lock:
            self._streams.append(stream)
        return stream

    def _detach(self, stream: KeypointStream) -> None:
        with self._lock:
            if stream in self._streams:
                self._streams.remove(stream)

    def push(self, poses: List[Pose]) -> int:
        """Hand detector output to every open stream, returns how many received it"""
        with self._lock:
            targets = list(self._streams)
        for stream in targets:
            stream.deliver(poses)
        return len(targets)

    def estimate(self, frame) -> List[Pose]:
        return list(frame) if frame else []


class MotionRelay:
    """devicemotion / deviceorientation event sources fed by the browser"""

    def __init__(self, available: bool = False):
        self.available = available
        self.motion = EventSource("devicemotion")
        self.orientation = EventSource("deviceorientation")

    @property
    def motion_source(self) -> Optional[EventSource]:
        return self.motion if self.available else None

    @property
    def orientation_source(self) -> Optional[EventSource]:
        return self.orientation if self.available else None

    def push_motion(self, x, y, z, timestamp_ms: Optional[int] = None) -> int:
        return self.motion.publish(DeviceMotion(x=x, y=y, z=z, timestamp_ms=timestamp_ms))

    def push_orientation(self, alpha=None, beta=None, gamma=None) -> int:
        return self.orientation.publish({"alpha": alpha, "beta": beta, "gamma": gamma})


class AudioRingStream:
    """Bounded PCM buffer; read(n) returns the newest n samples, zero padded"""

    def __init__(self, relay: "MicrophoneRelay", capacity: int):
        self._relay = relay
        self._buffer = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self.is_open = True

    def write(self, samples) -> None:
        with self._lock:
            self._buffer.extend(np.asarray(samples, dtype=np.float32).ravel().tolist())

    def read(self, frames: int) -> np.ndarray:
        with self._lock:
            data = np.fromiter(self._buffer, dtype=np.float32, count=len(self._buffer))
        data = data[-frames:]
        if data.size < frames:
            data = np.concatenate([np.zeros(frames - data.size, dtype=np.float32), data])
        return data

    def stop(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        self._relay._detach(self)


class MicrophoneRelay:
    """Microphone source fed with PCM chunks captured in the browser"""

    def __init__(self, available: bool = False, capacity: int = Config.AUDIO_FFT_SIZE * 4):
        self.available = available
        self.capacity = capacity
        self._streams: List[AudioRingStream] = []
        self._lock = threading.Lock()

    def open_stream(self) -> AudioRingStream:
        if not self.available:
            raise DeviceUnavailableError("microphone")
        stream = AudioRingStream(self, self.capacity)
        with self._lock:
            self._streams.append(stream)
        return stream

    def _detach(self, stream: AudioRingStream) -> None:
        with self._lock:
            if stream in self._streams:
                self._streams.remove(stream)

    def push_pcm(self, samples) -> int:
        with self._lock:
            targets = list(self._streams)
        for stream in targets:
            stream.write(samples)
        return len(targets)
