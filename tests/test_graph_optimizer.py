"""End-to-end tests for the per-frame driver."""

import pytest
from conftest import ScriptedEstimator, make_frames

from radar_odometry import (
    GraphOptimizer,
    GraphOptimizerConfig,
    Pose2,
    TrajectoryRecorder,
)
from radar_odometry.backend import IncrementalPoseGraphSolver, OdometryStatus
from radar_odometry.errors import SolverDivergenceError


def straight_line(n: int):
    """Frames one meter apart along the x-axis."""
    return make_frames([(float(i), 0.0, 0.0) for i in range(n)])


class FailingSolver(IncrementalPoseGraphSolver):
    """Solver whose every solve diverges."""

    def solve(self):
        raise SolverDivergenceError("Pose graph solve did not converge")


@pytest.fixture
def recorder() -> TrajectoryRecorder:
    """Recorder for published pose events."""
    return TrajectoryRecorder()


class TestGraphOptimizer:
    """Test suite for GraphOptimizer."""

    def test_prior_is_staged(self, estimator, config):
        """Test that construction stages the origin prior."""
        optimizer = GraphOptimizer(estimator, config)

        assert optimizer.solver.has_pending
        assert optimizer.solver.pending_guesses == {0: Pose2.identity()}
        assert optimizer.state.pose_count == 0
        assert not optimizer.state.initialized

    def test_first_frame_initializes(self, estimator, config):
        """Test that the first frame only becomes the initial keyframe."""
        optimizer = GraphOptimizer(estimator, config)

        result = optimizer.process_frame(straight_line(1)[0])

        assert optimizer.state.initialized
        assert result.odometry is None
        assert result.pose_count == 0
        assert optimizer.window.node(0) == 0
        assert estimator.calls == []

    def test_straight_line(self, estimator, config, recorder):
        """Test raw poses of consistent forward motion."""
        optimizer = GraphOptimizer(estimator, config, recorder)

        results = [optimizer.process_frame(f) for f in straight_line(4)]

        assert all(r.is_accepted for r in results[1:])
        assert not any(r.is_keyframe for r in results)
        expected = [Pose2(1, 0, 0), Pose2(2, 0, 0), Pose2(3, 0, 0)]
        for event, pose in zip(recorder.raw_events, expected):
            assert event.pose.is_close(pose, atol=1e-9)
        assert [e.node for e in recorder.raw_events] == [1, 2, 3]
        assert optimizer.current_pose.is_close(Pose2(3, 0, 0), atol=1e-9)
        assert len(optimizer.window) == 4

    def test_full_window_forces_keyframe(self, estimator, config, recorder):
        """Test that the fourth accumulated frame establishes a keyframe."""
        optimizer = GraphOptimizer(estimator, config, recorder)

        results = [optimizer.process_frame(f) for f in straight_line(5)]
        keyframe = results[4].keyframe

        assert results[4].is_keyframe
        assert keyframe.reasons == ("window_full",)
        assert keyframe.pivot == 4
        assert keyframe.previous_key_node == 0
        assert keyframe.num_rotation_relations == 4
        assert keyframe.solved
        assert keyframe.optimized_pose.is_close(Pose2.identity(), atol=1e-3)

        state = optimizer.state
        assert state.key_node == 4
        assert state.window_loop == 5
        assert state.frames_since_solve == 0
        assert state.keyframe_nodes == [0, 4]
        assert len(optimizer.window) == 1
        assert optimizer.window[0].timestamp_ns == 4

        assert len(recorder.optimized_events) == 1
        event = recorder.optimized_events[0]
        assert event.node == 0
        assert event.timestamp_ns == 0
        assert event.frame_id == "opt_odom"
        assert optimizer.solver.estimate(4).is_close(Pose2(4, 0, 0), atol=1e-3)

    def test_continues_from_new_keyframe(self, estimator, config):
        """Test that frames after a keyframe anchor to the keyframe node."""
        optimizer = GraphOptimizer(estimator, config)

        results = [optimizer.process_frame(f) for f in straight_line(6)]
        odometry = results[5].odometry

        assert odometry.anchor == 4
        assert odometry.node == 5
        assert odometry.pose.is_close(Pose2(5, 0, 0), atol=1e-9)

    def test_declining_score_pivots_back(self, estimator, config):
        """Test a keyframe whose pivot is not the newest slot."""
        frames = make_frames([(0, 0, 0), (1, 0, 0), (1, 1, 0), (3, 0, 0)])
        optimizer = GraphOptimizer(estimator, config)

        results = [optimizer.process_frame(f) for f in frames[:3]]
        keyframe = results[2].keyframe

        assert keyframe.declared
        assert keyframe.reasons == ("declining_score",)
        assert keyframe.pivot == 1
        assert keyframe.num_rotation_relations == 1
        assert keyframe.solved
        assert optimizer.state.key_node == 1
        assert optimizer.state.window_loop == 3
        assert optimizer.window[0].timestamp_ns == 1

        result = optimizer.process_frame(frames[3])

        assert result.odometry.anchor == 1
        assert result.odometry.node == 3
        assert result.odometry.pose.is_close(Pose2(3, 0, 0), atol=1e-9)

    def test_deferred_solves(self, estimator):
        """Test that keyframe solves wait for enough accepted frames."""
        config = GraphOptimizerConfig(
            resolution=0.01, odom_threshold=0.1, min_solve_frames=10
        )
        optimizer = GraphOptimizer(estimator, config)

        results = [optimizer.process_frame(f) for f in straight_line(13)]
        keyframes = [r.keyframe for r in results if r.is_keyframe]

        assert [k.key_node for k in keyframes] == [4, 8, 12]
        assert [k.solved for k in keyframes] == [False, False, True]
        assert keyframes[0].optimized_pose is None
        assert optimizer.state.keyframe_nodes == [0, 4, 8, 12]
        assert optimizer.state.window_loop == 15
        assert optimizer.solver.estimate(12).is_close(Pose2(12, 0, 0), atol=1e-3)

    def test_finalize_solves_pending(self, estimator, config):
        """Test that finalize solves what the keyframes left pending."""
        optimizer = GraphOptimizer(estimator, config)
        for frame in straight_line(3):
            optimizer.process_frame(frame)

        estimates = optimizer.finalize()

        assert sorted(estimates) == [0, 1, 2]
        assert estimates[2].is_close(Pose2(2, 0, 0), atol=1e-3)
        assert not optimizer.solver.has_pending
        assert optimizer.state.frames_since_solve == 0

    def test_dropped_frames_keep_pose_count(self, config):
        """Test that rejected frames never advance the pose count."""
        frames = make_frames(
            [(0, 0, 0), (1, 0, 0), (1, 0.0001, 0), (-2, 0, 0), (2, 0, 0)]
        )
        optimizer = GraphOptimizer(ScriptedEstimator(), config)

        results = [optimizer.process_frame(f) for f in frames]

        assert results[2].odometry.status == OdometryStatus.NEGLIGIBLE_MOTION
        assert results[3].odometry.status == OdometryStatus.LOW_CONFIDENCE
        assert [r.pose_count for r in results] == [0, 1, 1, 1, 2]
        assert results[4].odometry.anchor == 1
        assert optimizer.num_frames == 5
        assert len(optimizer.raw_trajectory) == 3

    def test_pose_count_is_monotonic(self, estimator, config):
        """Test pose count over a longer run with keyframes."""
        optimizer = GraphOptimizer(estimator, config)

        counts = [optimizer.process_frame(f).pose_count for f in straight_line(20)]

        assert counts == sorted(counts)
        assert counts[-1] == 19

    def test_failed_solve_withdraws_rotation_relations(self, estimator, config):
        """Test that a diverged keyframe solve leaves the batch and state as before."""
        solver = FailingSolver()
        optimizer = GraphOptimizer(estimator, config, solver=solver)
        frames = straight_line(5)
        for frame in frames[:4]:
            optimizer.process_frame(frame)

        with pytest.raises(SolverDivergenceError):
            optimizer.process_frame(frames[4])

        # Origin prior plus four odometry relations, no rotation relations
        assert solver.num_pending_relations == 5
        assert sorted(solver.pending_guesses) == [0, 1, 2, 3, 4]
        assert optimizer.state.key_node == 0
        assert optimizer.state.keyframe_nodes == [0]
        assert optimizer.state.frames_since_solve == 4
        assert len(optimizer.window) == 5
