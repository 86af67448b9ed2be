"""Pose graph optimizers."""

from .incremental import IncrementalPoseGraphSolver, SolveResult

__all__ = [
    "IncrementalPoseGraphSolver",
    "SolveResult",
]
