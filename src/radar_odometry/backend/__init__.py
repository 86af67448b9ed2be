"""Keyframe pose-graph back end."""

from .keyframe import (
    KeyframeDecision,
    KeyframeResult,
    KeyframeSelector,
    WindowScores,
    compute_window_scores,
    decide_keyframe,
    select_pivot,
)
from .odometry_factor import (
    OdometryFactorBuilder,
    OdometryResult,
    OdometryStatus,
    acceptance_score,
)
from .optimizer import IncrementalPoseGraphSolver, SolveResult
from .relations import (
    BetweenRelation,
    NoiseModel,
    PriorRelation,
    Relation,
    RotationRelation,
)
from .state import TrajectoryState

__all__ = [
    # Relations
    "NoiseModel",
    "PriorRelation",
    "BetweenRelation",
    "RotationRelation",
    "Relation",
    # State
    "TrajectoryState",
    # Odometry
    "OdometryFactorBuilder",
    "OdometryResult",
    "OdometryStatus",
    "acceptance_score",
    # Keyframes
    "KeyframeSelector",
    "KeyframeResult",
    "KeyframeDecision",
    "WindowScores",
    "compute_window_scores",
    "decide_keyframe",
    "select_pivot",
    # Solver
    "IncrementalPoseGraphSolver",
    "SolveResult",
]
