# type: ignore
# tests/test_pose_scorer.py

import os
import sys
# Add the project root directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

import pytest
from unittest.mock import Mock

from conftest import make_pose
from errors import DeviceUnavailableError
from pose_scorer import (SKELETON_CONNECTIONS, KeypointIndex, Pose, PoseScorer, PostureMonitor,
                         round_half_up)

LEVEL_SHOULDERS = {5: (100.0, 100.0, 0.9), 6: (200.0, 100.0, 0.9)}
STRAIGHT_BACK = {5: (100.0, 100.0, 0.9), 11: (100.0, 300.0, 0.9)}
LEVEL_HIPS = {11: (100.0, 300.0, 0.9), 12: (200.0, 300.0, 0.9)}


class TestRoundHalfUp:

    def test_ties_round_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(17.5) == 18

    def test_regular_values(self):
        assert round_half_up(33.33) == 33
        assert round_half_up(0) == 0


class TestPoseScorer:
    """Posture checks and score averaging"""

    @pytest.fixture
    def scorer(self):
        return PoseScorer()

    def test_no_confident_keypoints_scores_zero(self, scorer):
        assert scorer.score(make_pose(default_confidence=0.4)) == 0

    def test_confidence_exactly_at_threshold_is_excluded(self, scorer):
        pose = make_pose({5: (100.0, 100.0, 0.5), 6: (200.0, 100.0, 0.5)})
        assert scorer.check_shoulders(pose) is None
        assert scorer.score(pose) == 0

    def test_only_shoulders_evaluated(self, scorer):
        assert scorer.score(make_pose(LEVEL_SHOULDERS)) == 40

    def test_all_checks_perfect_average_weighted_contributions(self, scorer):
        pose = make_pose({**LEVEL_SHOULDERS, **STRAIGHT_BACK, **LEVEL_HIPS})
        assert scorer.check_shoulders(pose) == 40
        assert scorer.check_back(pose) == 35
        assert scorer.check_hips(pose) == 25
        assert scorer.score(pose) == 33

    def test_shoulder_ratio_scales_contribution(self, scorer):
        pose = make_pose({5: (100.0, 100.0, 0.9), 6: (200.0, 110.0, 0.9)})
        assert scorer.check_shoulders(pose) == pytest.approx(20.0)

    def test_ratio_at_cutoff_counts_as_zero_not_skipped(self, scorer):
        # shoulders tilted to ratio 0.2 -> 0, back straight -> 35; (0 + 35) / 2 = 17.5
        pose = make_pose({
            5: (100.0, 100.0, 0.9), 6: (200.0, 120.0, 0.9),
            11: (100.0, 300.0, 0.9)
        })
        assert scorer.check_shoulders(pose) == 0
        assert scorer.score(pose) == 18

    def test_vertical_shoulders_skip_check(self, scorer):
        pose = make_pose({5: (100.0, 100.0, 0.9), 6: (100.0, 150.0, 0.9)})
        assert scorer.check_shoulders(pose) is None

    def test_back_skipped_when_shoulder_and_hip_same_height(self, scorer):
        pose = make_pose({5: (100.0, 200.0, 0.9), 11: (120.0, 200.0, 0.9)})
        assert scorer.check_back(pose) is None

    def test_leaning_back_reduces_score(self, scorer):
        pose = make_pose({5: (130.0, 100.0, 0.9), 11: (100.0, 300.0, 0.9)})
        # ratio 30 / 200 = 0.15 -> 35 * 0.5
        assert scorer.check_back(pose) == pytest.approx(17.5)

    def test_short_pose_is_not_evaluable(self, scorer):
        pose = Pose.from_keypoints([{"x": 1, "y": 1, "score": 0.9}] * 6)
        assert scorer.score(pose) == 0

    def test_score_is_bounded(self, scorer):
        pose = make_pose({**LEVEL_SHOULDERS, **STRAIGHT_BACK, **LEVEL_HIPS})
        assert 0 <= scorer.score(pose) <= 100


class TestPoseConstruction:

    def test_from_keypoints_accepts_score_field(self):
        pose = Pose.from_keypoints([{"x": 1.0, "y": 2.0, "score": 0.7, "name": "nose"}])
        assert pose.keypoint(0).confidence == 0.7
        assert pose.keypoint(0).name == "nose"

    def test_from_arrays(self):
        pose = Pose.from_arrays([[1, 2], [3, 4]], [0.1, 0.9])
        assert len(pose) == 2
        assert pose.keypoint(1).x == 3.0
        assert pose.keypoint(5) is None

    def test_from_arrays_length_mismatch(self):
        with pytest.raises(ValueError):
            Pose.from_arrays([[1, 2]], [0.1, 0.2])


class TestDrawing:

    def test_visible_keypoints_use_draw_threshold(self):
        scorer = PoseScorer()
        pose = make_pose({0: (10.0, 10.0, 0.35), 1: (12.0, 10.0, 0.3)})
        visible = scorer.visible_keypoints(pose)
        assert [kp.id for kp in visible] == [KeypointIndex.NOSE]

    def test_visible_segments(self):
        scorer = PoseScorer()
        pose = make_pose({**LEVEL_SHOULDERS, 7: (90.0, 150.0, 0.2)})
        assert scorer.visible_segments(pose) == [((100.0, 100.0), (200.0, 100.0))]

    def test_skeleton_has_twelve_connections(self):
        assert len(SKELETON_CONNECTIONS) == 12


class TestPostureMonitor:

    @pytest.fixture
    def stream(self):
        stream = Mock()
        stream.read_frame.return_value = None
        return stream

    @pytest.fixture
    def camera(self, stream):
        camera = Mock()
        camera.open.return_value = stream
        return camera

    def test_start_without_camera_raises(self, scheduler):
        monitor = PostureMonitor(None, Mock(), scheduler)
        with pytest.raises(DeviceUnavailableError):
            monitor.start(Mock())
        assert monitor.is_detecting is False

    def test_detection_reports_first_pose_score(self, camera, stream, scheduler):
        good = make_pose(LEVEL_SHOULDERS)
        stream.read_frame.return_value = [good, make_pose()]
        pose_source = Mock()
        pose_source.estimate.side_effect = lambda frame: frame
        callback = Mock()

        monitor = PostureMonitor(camera, pose_source, scheduler, interval_ms=100)
        monitor.start(callback)
        scheduler.advance(100)

        callback.assert_called_once_with(good, 40)
        assert monitor.last_score == 40

    def test_detection_error_is_skipped(self, camera, stream, scheduler):
        stream.read_frame.side_effect = [RuntimeError("frame lost"), [make_pose(LEVEL_SHOULDERS)]]
        pose_source = Mock()
        pose_source.estimate.side_effect = lambda frame: frame
        callback = Mock()

        monitor = PostureMonitor(camera, pose_source, scheduler, interval_ms=100)
        monitor.start(callback)
        scheduler.advance(200)

        assert callback.call_count == 1

    def test_stop_releases_stream_and_is_idempotent(self, camera, stream, scheduler):
        monitor = PostureMonitor(camera, Mock(), scheduler)
        monitor.start(Mock())
        monitor.stop()
        monitor.stop()

        stream.stop.assert_called_once()
        assert scheduler.pending == 0

    def test_stop_never_started(self, scheduler):
        PostureMonitor(None, Mock(), scheduler).stop()

    def test_stop_survives_stream_failure(self, camera, stream, scheduler):
        stream.stop.side_effect = RuntimeError("busy")
        monitor = PostureMonitor(camera, Mock(), scheduler)
        monitor.start(Mock())
        monitor.stop()
        assert monitor.is_detecting is False
