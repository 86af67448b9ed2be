"""Odometry factor generation with a coarse-to-fine baseline search.

For the newest frame of the window, the builder tries to anchor it to an
already established pose node, starting with the nearest frame and widening
the baseline one frame at a time:

    ii = 1: slot N-1 -> slot N
    ii = 2: slot N-2 -> slot N
    ...

Registration accuracy degrades with baseline distance, so the first
baseline whose acceptance score clears the threshold wins. A vehicle that
did not move is detected on the nearest baseline only, and the frame is
dropped without paying for wider-baseline registrations.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

from ..config import GraphOptimizerConfig
from ..frontend.registration import TransformEstimator
from ..frontend.window import FrameWindow
from ..geometry import Pose2
from ..io.trajectory import OdometryPublisher, PoseEvent
from .optimizer import IncrementalPoseGraphSolver
from .relations import BetweenRelation, NoiseModel
from .state import TrajectoryState

logger = logging.getLogger(__name__)


def acceptance_score(delta: Pose2) -> float:
    """Agreement between translation direction and rotation.

    exp(-|atan2(Δy, Δx) + Δθ|): 1 when they agree, lower the more they
    disagree.
    """
    return math.exp(-abs(math.atan2(delta.y, delta.x) + delta.theta))


class OdometryStatus(Enum):
    """Outcome of an odometry factor attempt."""

    ACCEPTED = "ACCEPTED"
    NEGLIGIBLE_MOTION = "NEGLIGIBLE_MOTION"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"


@dataclass
class OdometryResult:
    """Result of an odometry factor attempt for the newest frame."""

    status: OdometryStatus
    node: int | None = None  # New pose node (accepted only)
    anchor: int | None = None  # Node the relation starts from
    baseline: int = 0  # Frames between anchor and newest slot
    delta: Pose2 | None = None
    pose: Pose2 | None = None  # Raw composed pose of the new node
    score: float = 0.0

    @property
    def is_accepted(self) -> bool:
        """Return True if a relation was added."""
        return self.status == OdometryStatus.ACCEPTED


class OdometryFactorBuilder:
    """Anchors the newest window frame to an earlier pose node."""

    def __init__(
        self,
        estimator: TransformEstimator,
        config: GraphOptimizerConfig,
    ) -> None:
        """Initialize the builder.

        Args:
            estimator: Frame registration routine
            config: Thresholds and noise sigmas
        """
        self._estimator = estimator
        self._config = config
        self._noise = NoiseModel(config.noise.odometry)

    def build(
        self,
        window: FrameWindow,
        state: TrajectoryState,
        solver: IncrementalPoseGraphSolver,
        publisher: OdometryPublisher | None = None,
    ) -> OdometryResult:
        """Try to add one between relation for the newest slot.

        On failure the newest frame is dropped from the window and the
        state is left unchanged.

        Args:
            window: Current frame window (slot N is the newest frame)
            state: Trajectory accumulator (updated on acceptance)
            solver: Receives the relation and the new node's initial guess
            publisher: Receives the raw pose event

        Returns:
            OdometryResult describing the outcome
        """
        num = window.num_accumulated
        if num < 1:
            raise ValueError("Window holds no frame beyond the keyframe")
        newest = window[num]

        for ii in range(1, num + 1):
            delta = self._estimator.estimate_transform(window[num - ii], newest)
            score = acceptance_score(delta)
            logger.debug(
                "[%d & %d] score %.4f, dtheta %.2f deg, norm %.4f",
                window.node(num - ii),
                state.pose_count + 1,
                score,
                delta.heading_deg,
                delta.norm,
            )

            if ii == 1 and delta.norm < self._config.resolution:
                logger.warning("Negligible change (%.4f), dropping frame", delta.norm)
                window.drop_last()
                return OdometryResult(
                    status=OdometryStatus.NEGLIGIBLE_MOTION,
                    baseline=ii,
                    delta=delta,
                    score=score,
                )

            if score > self._config.odom_threshold:
                return self._accept(window, state, solver, publisher, ii, delta, score)

        logger.warning("No baseline cleared the odometry threshold, dropping frame")
        window.drop_last()
        return OdometryResult(status=OdometryStatus.LOW_CONFIDENCE)

    def _accept(
        self,
        window: FrameWindow,
        state: TrajectoryState,
        solver: IncrementalPoseGraphSolver,
        publisher: OdometryPublisher | None,
        baseline: int,
        delta: Pose2,
        score: float,
    ) -> OdometryResult:
        anchor = window.node(window.num_accumulated - baseline)
        state.pose_count += 1
        node = state.pose_count

        pose = state.raw_poses[anchor].compose(delta)
        state.raw_poses.append(pose)
        state.frames_since_solve += 1

        solver.add_initial_guess(node, pose)
        solver.add_relation(BetweenRelation(anchor, node, delta, self._noise))
        window.set_node(window.num_accumulated, node)
        window.set_odometry_delta(window.num_accumulated, delta)

        if publisher is not None:
            publisher.publish(PoseEvent(node, window.newest.timestamp_ns, pose))

        logger.info("Pose %d anchored to %d: %r", node, anchor, pose)
        return OdometryResult(
            status=OdometryStatus.ACCEPTED,
            node=node,
            anchor=anchor,
            baseline=baseline,
            delta=delta,
            pose=pose,
            score=score,
        )
