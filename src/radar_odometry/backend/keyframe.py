"""Keyframe selection over the sliding window of accepted frames.

After every accepted frame the window (slot 0 = last keyframe, slots 1..N
accumulated since) is re-evaluated against the keyframe:

1. Score every slot by how well its translation direction agrees with its
   rotation, with two vetoes for motions above 1 m:
   - forward motion dominates on a nonholonomic vehicle (small lateral drift)
   - rotation between frames is bounded
2. Rank the slots by score and by absolute rotation
3. Declare a keyframe when the newest score drops, when the window is full,
   or when the first step already moved far
4. Pick the pivot slot that becomes the new keyframe and attach rotation-only
   relations from the keyframe to every corroborating slot
5. Solve the accumulated batch when enough frames were accepted, then reset
   the window to the pivot
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from ..config import GraphOptimizerConfig
from ..errors import SolverDivergenceError
from ..frontend.registration import TransformEstimator
from ..frontend.window import FrameWindow
from ..geometry import Pose2
from ..io.trajectory import OdometryPublisher, PoseEvent
from .odometry_factor import acceptance_score
from .optimizer import IncrementalPoseGraphSolver
from .relations import NoiseModel, RotationRelation
from .state import TrajectoryState

logger = logging.getLogger(__name__)


@dataclass
class WindowScores:
    """Per-slot keyframe evidence for the current window.

    Arrays are indexed by slot, slot 0 being the keyframe itself. Rankings
    only contain the accumulated slots 1..N.
    """

    score: np.ndarray
    rotation_deg: np.ndarray
    motion_norm: np.ndarray
    deltas: list[Pose2] = field(default_factory=list)
    by_score: np.ndarray = field(init=False)
    by_rotation: np.ndarray = field(init=False)

    def __post_init__(self) -> None:
        """Build both rankings (ascending, ties keep slot order)."""
        self.score = np.asarray(self.score, dtype=np.float64)
        self.rotation_deg = np.asarray(self.rotation_deg, dtype=np.float64)
        self.motion_norm = np.asarray(self.motion_norm, dtype=np.float64)
        if not (self.score.shape == self.rotation_deg.shape == self.motion_norm.shape):
            raise ValueError("Score, rotation and motion arrays must match in length")

        slots = np.arange(1, len(self.score))
        self.by_score = slots[np.argsort(self.score[1:], kind="stable")]
        self.by_rotation = slots[
            np.argsort(np.abs(self.rotation_deg[1:]), kind="stable")
        ]

    @property
    def num_accumulated(self) -> int:
        """Number of accumulated slots (N)."""
        return len(self.score) - 1

    @property
    def best_slot(self) -> int:
        """Slot ranked last in ascending score order."""
        return int(self.by_score[-1])


def compute_window_scores(
    deltas: Sequence[Pose2],
    config: GraphOptimizerConfig,
) -> WindowScores:
    """Score every slot of the window against the keyframe.

    Args:
        deltas: Keyframe deltas indexed by slot (deltas[0] is the identity)
        config: Heuristic constants

    Returns:
        WindowScores with vetoes applied
    """
    n = len(deltas)
    score = np.zeros(n)
    rotation_deg = np.zeros(n)
    motion_norm = np.zeros(n)

    for k, d in enumerate(deltas):
        motion_norm[k] = d.norm
        rotation_deg[k] = d.theta * 180.0 / math.pi
        score[k] = acceptance_score(d)

        if motion_norm[k] > config.veto_motion:
            # Forward motion dominates on a nonholonomic vehicle
            if abs(d.y) > config.max_lateral:
                score[k] = 0.0
            # Bounded angular motion
            if abs(rotation_deg[k]) > config.max_rotation_deg:
                score[k] = 0.0

    return WindowScores(
        score=score,
        rotation_deg=rotation_deg,
        motion_norm=motion_norm,
        deltas=list(deltas),
    )


@dataclass
class KeyframeDecision:
    """Whether the window declares a keyframe, and which slot."""

    declared: bool
    reasons: tuple[str, ...] = ()
    threshold: float = 0.0
    pivot: int | None = None
    degenerate: bool = False  # Pivot fell back to the best-score slot


def select_pivot(scores: WindowScores, threshold: float) -> tuple[int, bool]:
    """Pick the slot that becomes the next keyframe.

    Scans the rotation ranking from its largest rotation downwards and
    returns the first slot whose score exceeds the threshold. Falls back to
    the best-score slot when none does.

    Returns:
        Tuple of (pivot slot, True if the fallback was used)
    """
    for slot in scores.by_rotation[::-1]:
        if scores.score[slot] > threshold:
            return int(slot), False
    return scores.best_slot, True


def decide_keyframe(
    scores: WindowScores,
    config: GraphOptimizerConfig,
) -> KeyframeDecision:
    """Apply the keyframe constraints to the scored window.

    Needs a newest and a second-newest accumulated slot (N >= 2). This holds
    for every reason, including large_motion: a window with a single
    accumulated slot never declares, however far that first step moved. The
    large first step forces the keyframe on the next accepted frame.
    """
    num = scores.num_accumulated
    if num < 2:
        return KeyframeDecision(declared=False)

    score = scores.score
    threshold = config.keyframe_threshold * score[scores.best_slot]

    reasons = []
    if score[num] < score[num - 1] and score[num] < threshold:
        reasons.append("declining_score")
    if num > config.max_window_frames:
        reasons.append("window_full")
    if scores.motion_norm[1] > config.max_first_motion:
        reasons.append("large_motion")

    if not reasons:
        return KeyframeDecision(declared=False, threshold=threshold)

    pivot, degenerate = select_pivot(scores, threshold)
    return KeyframeDecision(
        declared=True,
        reasons=tuple(reasons),
        threshold=threshold,
        pivot=pivot,
        degenerate=degenerate,
    )


@dataclass
class KeyframeResult:
    """Outcome of one keyframe evaluation."""

    declared: bool
    key_node: int  # Keyframe node after this evaluation
    scores: WindowScores | None = None
    reasons: tuple[str, ...] = ()
    threshold: float = 0.0
    pivot: int | None = None
    previous_key_node: int | None = None
    num_rotation_relations: int = 0
    solved: bool = False
    optimized_pose: Pose2 | None = None  # Refined pose of previous_key_node


class KeyframeSelector:
    """Chooses keyframes and drives the batched solves."""

    def __init__(
        self,
        estimator: TransformEstimator,
        config: GraphOptimizerConfig,
    ) -> None:
        """Initialize the selector.

        Args:
            estimator: Frame registration routine
            config: Thresholds, heuristics and noise sigmas
        """
        self._estimator = estimator
        self._config = config
        self._noise = NoiseModel(config.noise.rotation)

    def score_window(self, window: FrameWindow) -> WindowScores:
        """Register every accumulated slot against slot 0 and score it."""
        keyframe = window[0]
        deltas = [Pose2.identity()]
        for k in range(1, len(window)):
            deltas.append(self._estimator.estimate_transform(keyframe, window[k]))
        return compute_window_scores(deltas, self._config)

    def select(
        self,
        window: FrameWindow,
        state: TrajectoryState,
        solver: IncrementalPoseGraphSolver,
        publisher: OdometryPublisher | None = None,
    ) -> KeyframeResult:
        """Evaluate the window and, if declared, establish a new keyframe.

        Args:
            window: Current frame window
            state: Trajectory accumulator
            solver: Receives rotation relations and runs the batched solve
            publisher: Receives the optimized pose event

        Returns:
            KeyframeResult describing the outcome

        Raises:
            SolverDivergenceError: If the batched solve fails. The rotation
                relations of this evaluation are withdrawn, so the window,
                the state and the pending batch are left as they were before
                the keyframe event.
        """
        num = window.num_accumulated
        scores = self.score_window(window)
        logger.debug("Scores: %s", np.round(scores.score[1:], 4).tolist())
        logger.debug("motion_norm: %s", np.round(scores.motion_norm[1:], 4).tolist())
        logger.debug("rotation_deg: %s", np.round(scores.rotation_deg[1:], 4).tolist())
        logger.debug(
            "Slots by score: %s, by rotation: %s",
            scores.by_score.tolist(),
            scores.by_rotation.tolist(),
        )

        decision = decide_keyframe(scores, self._config)
        if not decision.declared:
            return KeyframeResult(
                declared=False,
                key_node=state.key_node,
                scores=scores,
                threshold=decision.threshold,
            )

        pivot = decision.pivot
        if decision.degenerate:
            logger.warning(
                "No slot exceeds threshold %.4f, falling back to slot %d",
                decision.threshold,
                pivot,
            )

        relations = []
        for k in range(1, num + 1):
            if k == pivot or scores.score[k] > decision.threshold:
                relations.append(
                    RotationRelation(
                        state.key_node,
                        window.node(k),
                        scores.deltas[k].theta,
                        self._noise,
                    )
                )
        solver.add_batch(relations)

        previous_key_node = state.key_node
        optimized_pose = None
        solved = state.frames_since_solve >= self._config.min_solve_frames
        if solved:
            try:
                solver.solve()
            except SolverDivergenceError:
                solver.retract(relations)
                raise
            optimized_pose = solver.estimate(previous_key_node)
            state.frames_since_solve = 0
            if publisher is not None:
                publisher.publish(
                    PoseEvent(
                        previous_key_node,
                        window[0].timestamp_ns,
                        optimized_pose,
                        optimized=True,
                    )
                )
        else:
            logger.info(
                "Deferring solve: %d accepted frames since last solve",
                state.frames_since_solve,
            )

        state.key_node = window.node(pivot)
        state.window_loop += num + 1
        state.keyframe_nodes.append(state.key_node)
        window.reset_to(pivot)

        logger.info(
            "Keyframe %d -> %d (%s), %d rotation relations",
            previous_key_node,
            state.key_node,
            ", ".join(decision.reasons),
            len(relations),
        )
        return KeyframeResult(
            declared=True,
            key_node=state.key_node,
            scores=scores,
            reasons=decision.reasons,
            threshold=decision.threshold,
            pivot=pivot,
            previous_key_node=previous_key_node,
            num_rotation_relations=len(relations),
            solved=solved,
            optimized_pose=optimized_pose,
        )
