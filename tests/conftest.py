# type: ignore
# tests/conftest.py

import os
import sys
# Add the project root directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

import pytest

from persistence import create_gateway
from pose_scorer import Keypoint, Pose
from scheduling import ManualClock, ManualScheduler


def make_pose(points=None, default_confidence=0.0):
    """17-keypoint pose; points maps index -> (x, y, confidence)"""
    points = points or {}
    keypoints = []
    for i in range(17):
        x, y, confidence = points.get(i, (0.0, 0.0, default_confidence))
        keypoints.append(Keypoint(id=i, x=x, y=y, confidence=confidence))
    return Pose(keypoints=tuple(keypoints))


@pytest.fixture
def clock():
    return ManualClock(start_ms=10_000)


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def gateway():
    """Gateway over a fresh in-memory SQLite database"""
    return create_gateway("sqlite://")
