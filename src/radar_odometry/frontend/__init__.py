"""Frame handling and registration for the odometry back end."""

from .registration import PhaseCorrelationEstimator, TransformEstimator
from .window import Frame, FrameWindow

__all__ = [
    "Frame",
    "FrameWindow",
    "TransformEstimator",
    "PhaseCorrelationEstimator",
]
