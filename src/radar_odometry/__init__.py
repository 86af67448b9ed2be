"""Radar odometry - adaptive keyframe pose-graph back end in Python."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .config import GraphOptimizerConfig, NoiseConfig, SolverConfig
from .dataset_reader import RadarDatasetReader
from .errors import ConfigError, RadarOdometryError, SolverDivergenceError
from .geometry import Pose2
from .frontend import Frame, FrameWindow, PhaseCorrelationEstimator, TransformEstimator
from .backend import (
    BetweenRelation,
    IncrementalPoseGraphSolver,
    KeyframeSelector,
    NoiseModel,
    OdometryFactorBuilder,
    OdometryStatus,
    PriorRelation,
    RotationRelation,
    TrajectoryState,
)
from .io import OdometryPublisher, PoseEvent, TrajectoryRecorder
from .graph_optimizer import FrameResult, GraphOptimizer

__all__ = [
    "__version__",
    # Configuration
    "GraphOptimizerConfig",
    "NoiseConfig",
    "SolverConfig",
    # Errors
    "RadarOdometryError",
    "SolverDivergenceError",
    "ConfigError",
    # Geometry
    "Pose2",
    # Dataset / frames
    "RadarDatasetReader",
    "Frame",
    "FrameWindow",
    "TransformEstimator",
    "PhaseCorrelationEstimator",
    # Back end
    "GraphOptimizer",
    "FrameResult",
    "TrajectoryState",
    "OdometryFactorBuilder",
    "OdometryStatus",
    "KeyframeSelector",
    "IncrementalPoseGraphSolver",
    "NoiseModel",
    "PriorRelation",
    "BetweenRelation",
    "RotationRelation",
    # Publishing
    "OdometryPublisher",
    "PoseEvent",
    "TrajectoryRecorder",
]
