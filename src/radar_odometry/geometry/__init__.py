"""Planar geometry primitives."""

from .pose2 import Pose2, wrap_angle

__all__ = [
    "Pose2",
    "wrap_angle",
]
