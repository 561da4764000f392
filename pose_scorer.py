"""
pose_scorer.py - Posture scoring from 17-keypoint poses and the camera detection loop
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from config import Config
from errors import DeviceUnavailableError
from scheduling import RepeatingTask

logger = logging.getLogger(__name__)


class KeypointIndex:
    """COCO keypoint order produced by MoveNet / YOLO pose models"""
    NOSE = 0
    LEFT_EYE = 1
    RIGHT_EYE = 2
    LEFT_EAR = 3
    RIGHT_EAR = 4
    LEFT_SHOULDER = 5
    RIGHT_SHOULDER = 6
    LEFT_ELBOW = 7
    RIGHT_ELBOW = 8
    LEFT_WRIST = 9
    RIGHT_WRIST = 10
    LEFT_HIP = 11
    RIGHT_HIP = 12
    LEFT_KNEE = 13
    RIGHT_KNEE = 14
    LEFT_ANKLE = 15
    RIGHT_ANKLE = 16

    NAMES = [
        "nose", "left_eye", "right_eye", "left_ear", "right_ear",
        "left_shoulder", "right_shoulder", "left_elbow", "right_elbow",
        "left_wrist", "right_wrist", "left_hip", "right_hip",
        "left_knee", "right_knee", "left_ankle", "right_ankle"
    ]


# Skeleton overlay connections (head points are drawn but not connected)
SKELETON_CONNECTIONS = [
    (5, 6),    # shoulders
    (5, 7),    # left upper arm
    (7, 9),    # left lower arm
    (6, 8),    # right upper arm
    (8, 10),   # right lower arm
    (5, 11),   # left torso
    (6, 12),   # right torso
    (11, 12),  # hips
    (11, 13),  # left upper leg
    (13, 15),  # left lower leg
    (12, 14),  # right upper leg
    (14, 16)   # right lower leg
]


@dataclass(frozen=True)
class Keypoint:
    """One labeled 2-D body-joint estimate"""
    id: int
    x: float
    y: float
    confidence: float
    name: Optional[str] = None

    def is_confident(self, threshold: float) -> bool:
        return self.confidence > threshold


@dataclass(frozen=True)
class Pose:
    """All keypoints for one detected person in one frame"""
    keypoints: Tuple[Keypoint, ...]

    def __len__(self) -> int:
        return len(self.keypoints)

    def keypoint(self, index: int) -> Optional[Keypoint]:
        if 0 <= index < len(self.keypoints):
            return self.keypoints[index]
        return None

    @classmethod
    def from_keypoints(cls, raw: Iterable[Dict]) -> "Pose":
        """
        Build a Pose from detector output.

        Accepts MoveNet style dicts ({"x", "y", "score", "name"}) as well as
        {"x", "y", "confidence"}; list position becomes the keypoint id.
        """
        keypoints = []
        for index, item in enumerate(raw):
            confidence = item.get("confidence", item.get("score", 0.0))
            keypoints.append(Keypoint(
                id=int(item.get("id", index)),
                x=float(item["x"]),
                y=float(item["y"]),
                confidence=float(confidence if confidence is not None else 0.0),
                name=item.get("name")
            ))
        return cls(keypoints=tuple(keypoints))

    @classmethod
    def from_arrays(cls, points: Sequence[Sequence[float]], confidences: Sequence[float]) -> "Pose":
        """Build a Pose from YOLO style parallel arrays"""
        if len(points) != len(confidences):
            raise ValueError("points and confidences must have the same length")
        return cls(keypoints=tuple(
            Keypoint(id=i, x=float(p[0]), y=float(p[1]), confidence=float(c))
            for i, (p, c) in enumerate(zip(points, confidences))
        ))


def round_half_up(value: float) -> int:
    """Round like JavaScript Math.round (ties go towards +infinity)"""
    return math.floor(value + 0.5)


class PoseScorer:
    """Stateless posture scorer: shoulder level, back straightness and hip level"""

    def __init__(self, min_confidence: float = Config.POSE_SCORE_CONFIDENCE,
                 draw_confidence: float = Config.POSE_DRAW_CONFIDENCE):
        self.min_confidence = min_confidence
        self.draw_confidence = draw_confidence

    def _confident(self, pose: Pose, *indices: int) -> Optional[List[Keypoint]]:
        points = [pose.keypoint(i) for i in indices]
        if any(p is None or not p.is_confident(self.min_confidence) for p in points):
            return None
        return points

    def check_shoulders(self, pose: Pose) -> Optional[float]:
        """Weighted shoulder-level contribution, None when not evaluable"""
        points = self._confident(pose, KeypointIndex.LEFT_SHOULDER, KeypointIndex.RIGHT_SHOULDER)
        if points is None:
            return None
        left, right = points
        distance = abs(left.x - right.x)
        if distance == 0:
            return None
        ratio = abs(left.y - right.y) / distance
        return Config.SHOULDER_WEIGHT * max(0.0, 1 - ratio / Config.SHOULDER_RATIO_CUTOFF)

    def check_back(self, pose: Pose) -> Optional[float]:
        """Weighted back-straightness contribution (left shoulder over left hip)"""
        points = self._confident(pose, KeypointIndex.LEFT_SHOULDER, KeypointIndex.LEFT_HIP)
        if points is None:
            return None
        shoulder, hip = points
        height = abs(shoulder.y - hip.y)
        if height == 0:
            return None
        ratio = abs(shoulder.x - hip.x) / height
        return Config.BACK_WEIGHT * max(0.0, 1 - ratio / Config.BACK_RATIO_CUTOFF)

    def check_hips(self, pose: Pose) -> Optional[float]:
        """Weighted hip-level contribution"""
        points = self._confident(pose, KeypointIndex.LEFT_HIP, KeypointIndex.RIGHT_HIP)
        if points is None:
            return None
        left, right = points
        distance = abs(left.x - right.x)
        if distance == 0:
            return None
        ratio = abs(left.y - right.y) / distance
        return Config.HIP_WEIGHT * max(0.0, 1 - ratio / Config.HIP_RATIO_CUTOFF)

    def score(self, pose: Pose) -> int:
        """
        Posture score 0-100.

        Checks whose keypoints fall under the confidence floor are left out
        of the denominator rather than scored zero. No evaluable check -> 0.
        """
        contributions = [
            c for c in (self.check_shoulders(pose), self.check_back(pose), self.check_hips(pose))
            if c is not None
        ]
        if not contributions:
            return 0
        return round_half_up(sum(contributions) / len(contributions))

    def visible_keypoints(self, pose: Pose) -> List[Keypoint]:
        """Keypoints confident enough to draw"""
        return [kp for kp in pose.keypoints if kp.is_confident(self.draw_confidence)]

    def visible_segments(self, pose: Pose) -> List[Tuple[Tuple[float, float], Tuple[float, float]]]:
        """Skeleton line segments whose both ends are confident enough to draw"""
        segments = []
        for i, j in SKELETON_CONNECTIONS:
            a, b = pose.keypoint(i), pose.keypoint(j)
            if a and b and a.is_confident(self.draw_confidence) and b.is_confident(self.draw_confidence):
                segments.append(((a.x, a.y), (b.x, b.y)))
        return segments


class PostureMonitor:
    """
    Camera-driven detection loop feeding posture scores to a callback.

    Owns the camera stream between start() and stop(). Each tick reads a
    frame, asks the pose source for poses, scores the first one and reports
    (pose, score). A failed read is logged and skipped.
    """

    def __init__(self, camera, pose_source, scheduler, scorer: Optional[PoseScorer] = None,
                 interval_ms: int = Config.POSE_DETECTION_INTERVAL_MS):
        self.camera = camera
        self.pose_source = pose_source
        self.scorer = scorer or PoseScorer()
        self.is_detecting = False
        self.last_pose: Optional[Pose] = None
        self.last_score: Optional[int] = None
        self._stream = None
        self._callback: Optional[Callable[[Pose, int], None]] = None
        self._task = RepeatingTask(scheduler, interval_ms, self._detect, name="pose-detection")

    def start(self, on_pose: Callable[[Pose, int], None], resume: bool = False) -> bool:
        if self.is_detecting:
            return True
        if self.camera is None:
            raise DeviceUnavailableError("camera")

        self._stream = self.camera.open()
        self._callback = on_pose
        self.is_detecting = True
        self._task.start()
        logger.info("📷 Pose detection started")
        return True

    def _detect(self) -> None:
        if not self.is_detecting or self._stream is None:
            return
        try:
            frame = self._stream.read_frame()
            if frame is None:
                return
            poses = self.pose_source.estimate(frame)
            if not poses:
                return
            pose = poses[0]
            score = self.scorer.score(pose)
            self.last_pose = pose
            self.last_score = score
            if self._callback:
                self._callback(pose, score)
        except Exception as e:
            logger.warning(f"⚠️ Pose detection error (skipping frame): {e}")

    def stop(self) -> None:
        self.is_detecting = False
        try:
            self._task.stop()
        except Exception as e:
            logger.warning(f"⚠️ Could not stop pose detection loop: {e}")
        try:
            if self._stream is not None:
                self._stream.stop()
        except Exception as e:
            logger.warning(f"⚠️ Error stopping camera stream: {e}")
        finally:
            self._stream = None
        logger.info("📷 Pose detection stopped")
