"""Pose graph relations (factors) between pose nodes.

Relations are write-once: once staged they are never modified. Each one
turns the current node values into a whitened residual vector

    r = error(values) / sigmas

so the solver can minimize sum ||r||^2 (diagonal Gaussian noise).
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from ..geometry import Pose2, wrap_angle


@dataclass(frozen=True)
class NoiseModel:
    """Diagonal noise model given by per-dimension standard deviations."""

    sigmas: tuple[float, ...]

    def __post_init__(self) -> None:
        """Validate sigmas."""
        sigmas = tuple(float(s) for s in self.sigmas)
        if not sigmas or any(not (s > 0 and math.isfinite(s)) for s in sigmas):
            raise ValueError(f"Sigmas must be positive and finite, got {sigmas}")
        object.__setattr__(self, "sigmas", sigmas)

    @classmethod
    def diagonal(cls, *sigmas: float) -> NoiseModel:
        """Create a diagonal noise model from sigmas."""
        return cls(tuple(sigmas))

    @property
    def dim(self) -> int:
        """Return the noise dimension."""
        return len(self.sigmas)

    def whiten(self, error: np.ndarray) -> np.ndarray:
        """Scale an error vector by the inverse sigmas."""
        return np.asarray(error, dtype=np.float64) / np.asarray(self.sigmas)


def _pose_error(predicted: np.ndarray, measured: Pose2) -> np.ndarray:
    return np.array(
        [
            predicted[0] - measured.x,
            predicted[1] - measured.y,
            wrap_angle(predicted[2] - measured.theta),
        ],
        dtype=np.float64,
    )


def _relative(xi: np.ndarray, xj: np.ndarray) -> np.ndarray:
    """Pose of xj in the frame of xi, as [x, y, theta] (theta unwrapped)."""
    c, s = math.cos(xi[2]), math.sin(xi[2])
    dx, dy = xj[0] - xi[0], xj[1] - xi[1]
    return np.array([c * dx + s * dy, -s * dx + c * dy, xj[2] - xi[2]])


@dataclass(frozen=True)
class PriorRelation:
    """Anchors a node to an absolute pose."""

    node: int
    pose: Pose2
    noise: NoiseModel

    def __post_init__(self) -> None:
        """Validate noise dimension."""
        if self.noise.dim != 3:
            raise ValueError(f"Prior noise must be 3D, got {self.noise.dim}")

    @property
    def keys(self) -> tuple[int, ...]:
        """Nodes touched by this relation."""
        return (self.node,)

    @property
    def dim(self) -> int:
        """Number of residual rows."""
        return 3

    def whitened_error(self, values: dict[int, np.ndarray]) -> np.ndarray:
        """Return the whitened residual for the given node values."""
        return self.noise.whiten(_pose_error(values[self.node], self.pose))


@dataclass(frozen=True)
class BetweenRelation:
    """Full relative pose constraint between two nodes."""

    from_node: int
    to_node: int
    measurement: Pose2
    noise: NoiseModel

    def __post_init__(self) -> None:
        """Validate noise dimension."""
        if self.noise.dim != 3:
            raise ValueError(f"Between noise must be 3D, got {self.noise.dim}")

    @property
    def keys(self) -> tuple[int, ...]:
        """Nodes touched by this relation."""
        return (self.from_node, self.to_node)

    @property
    def dim(self) -> int:
        """Number of residual rows."""
        return 3

    def whitened_error(self, values: dict[int, np.ndarray]) -> np.ndarray:
        """Return the whitened residual for the given node values."""
        predicted = _relative(values[self.from_node], values[self.to_node])
        return self.noise.whiten(_pose_error(predicted, self.measurement))


@dataclass(frozen=True)
class RotationRelation:
    """Relative heading constraint between two nodes.

    Carries only Δθ, so corroborating frames can reinforce the heading of a
    keyframe without committing to their translation.
    """

    from_node: int
    to_node: int
    delta_theta: float
    noise: NoiseModel

    def __post_init__(self) -> None:
        """Validate noise dimension."""
        if self.noise.dim != 1:
            raise ValueError(f"Rotation noise must be 1D, got {self.noise.dim}")

    @property
    def keys(self) -> tuple[int, ...]:
        """Nodes touched by this relation."""
        return (self.from_node, self.to_node)

    @property
    def dim(self) -> int:
        """Number of residual rows."""
        return 1

    def whitened_error(self, values: dict[int, np.ndarray]) -> np.ndarray:
        """Return the whitened residual for the given node values."""
        theta_i = values[self.from_node][2]
        theta_j = values[self.to_node][2]
        error = wrap_angle(theta_j - theta_i - self.delta_theta)
        return self.noise.whiten(np.array([error]))


Relation = PriorRelation | BetweenRelation | RotationRelation
