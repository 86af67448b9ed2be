"""Per-frame driver of the adaptive keyframe pose-graph estimator.

GraphOptimizer combines:
- Odometry factors: anchor every new frame to an established pose node
- Keyframe selection: promote one window frame to a durable keyframe
- Incremental solver: batched re-estimation at keyframe events

Frames are processed synchronously and in order; each call to
process_frame runs to completion before the next frame is considered.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .backend import (
    IncrementalPoseGraphSolver,
    KeyframeResult,
    KeyframeSelector,
    NoiseModel,
    OdometryFactorBuilder,
    OdometryResult,
    PriorRelation,
    TrajectoryState,
)
from .config import GraphOptimizerConfig
from .frontend import Frame, FrameWindow, TransformEstimator
from .geometry import Pose2
from .io import OdometryPublisher

logger = logging.getLogger(__name__)


@dataclass
class FrameResult:
    """Output of the back end for a single frame."""

    frame_index: int
    timestamp_ns: int
    pose_count: int
    key_node: int
    odometry: OdometryResult | None = None  # None for the initializing frame
    keyframe: KeyframeResult | None = None

    @property
    def is_accepted(self) -> bool:
        """Return True if the frame became a pose node."""
        return self.odometry is not None and self.odometry.is_accepted

    @property
    def is_keyframe(self) -> bool:
        """Return True if a keyframe was declared on this frame."""
        return self.keyframe is not None and self.keyframe.declared

    @property
    def solved(self) -> bool:
        """Return True if a batched solve ran on this frame."""
        return self.keyframe is not None and self.keyframe.solved


class GraphOptimizer:
    """Turns a stream of frames into a pose graph trajectory estimate."""

    def __init__(
        self,
        estimator: TransformEstimator,
        config: GraphOptimizerConfig | None = None,
        publisher: OdometryPublisher | None = None,
        solver: IncrementalPoseGraphSolver | None = None,
    ) -> None:
        """Initialize the graph with the origin prior on node 0.

        Args:
            estimator: Frame registration routine
            config: Thresholds, heuristics and noise sigmas
            publisher: Receives raw and optimized pose events
            solver: Incremental solver (default: a new one from config)
        """
        self._config = config or GraphOptimizerConfig()
        self._publisher = publisher
        self._solver = solver or IncrementalPoseGraphSolver(self._config.solver)

        self._window = FrameWindow()
        self._state = TrajectoryState()
        self._odometry_builder = OdometryFactorBuilder(estimator, self._config)
        self._keyframe_selector = KeyframeSelector(estimator, self._config)
        self._num_frames = 0

        prior_pose = Pose2.identity()
        self._solver.add_batch(
            [PriorRelation(0, prior_pose, NoiseModel(self._config.noise.prior))],
            {0: prior_pose},
        )

    def process_frame(self, frame: Frame) -> FrameResult:
        """Run odometry and keyframe selection for one frame.

        Args:
            frame: Newest sensor frame

        Returns:
            FrameResult for this frame

        Raises:
            SolverDivergenceError: If the batched solve of a keyframe event
                fails. The trajectory segment should be considered lost.
        """
        frame_index = self._num_frames
        self._num_frames += 1
        slot = self._window.append(frame)

        if not self._state.initialized:
            self._state.initialized = True
            self._window.set_node(slot, 0)
            logger.info("Initialized with frame at %d ns", frame.timestamp_ns)
            return self._result(frame_index, frame)

        odometry = self._odometry_builder.build(
            self._window, self._state, self._solver, self._publisher
        )
        if not odometry.is_accepted:
            return self._result(frame_index, frame, odometry)

        keyframe = self._keyframe_selector.select(
            self._window, self._state, self._solver, self._publisher
        )
        return self._result(frame_index, frame, odometry, keyframe)

    def _result(
        self,
        frame_index: int,
        frame: Frame,
        odometry: OdometryResult | None = None,
        keyframe: KeyframeResult | None = None,
    ) -> FrameResult:
        return FrameResult(
            frame_index=frame_index,
            timestamp_ns=frame.timestamp_ns,
            pose_count=self._state.pose_count,
            key_node=self._state.key_node,
            odometry=odometry,
            keyframe=keyframe,
        )

    def finalize(self) -> dict[int, Pose2]:
        """Solve any batch deferred at the end of the stream.

        Returns:
            All solved estimates (node -> pose)
        """
        if self._solver.has_pending:
            self._solver.solve()
            self._state.frames_since_solve = 0
        return self._solver.estimates

    @property
    def state(self) -> TrajectoryState:
        """Return the trajectory accumulator."""
        return self._state

    @property
    def window(self) -> FrameWindow:
        """Return the current frame window."""
        return self._window

    @property
    def solver(self) -> IncrementalPoseGraphSolver:
        """Return the incremental solver."""
        return self._solver

    @property
    def config(self) -> GraphOptimizerConfig:
        """Return the configuration."""
        return self._config

    @property
    def current_pose(self) -> Pose2:
        """Raw pose of the newest pose node."""
        return self._state.current_pose

    @property
    def raw_trajectory(self) -> list[Pose2]:
        """Raw pose of every node (index = node)."""
        return list(self._state.raw_poses)

    @property
    def num_frames(self) -> int:
        """Number of frames processed."""
        return self._num_frames
