"""Pose event publishing and trajectory recording."""

from .trajectory import OdometryPublisher, PoseEvent, TrajectoryRecorder

__all__ = [
    "OdometryPublisher",
    "PoseEvent",
    "TrajectoryRecorder",
]
