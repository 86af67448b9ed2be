"""SE(2) pose representation for planar rigid body transformations."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np


def wrap_angle(theta: float) -> float:
    """Normalize an angle to (-pi, pi]."""
    wrapped = math.atan2(math.sin(theta), math.cos(theta))
    # atan2 returns -pi for some inputs that should map to +pi
    if wrapped == -math.pi:
        return math.pi
    return wrapped


@dataclass(frozen=True)
class Pose2:
    """Rigid body transformation in SE(2).

    Represents a vehicle pose T_world_body that maps points from the body
    frame to the world frame:

        p_world = R(theta) @ p_body + [x, y]

    The same type is used for relative transforms between two frames
    (Δx, Δy, Δθ), expressed in the frame of the first one.

    Attributes:
        x: Translation along the world x-axis
        y: Translation along the world y-axis
        theta: Heading in radians, normalized to (-pi, pi]
    """

    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0

    def __post_init__(self) -> None:
        """Coerce to floats and normalize the heading."""
        object.__setattr__(self, "x", float(self.x))
        object.__setattr__(self, "y", float(self.y))
        theta = float(self.theta)
        if math.isfinite(theta):
            theta = wrap_angle(theta)
        object.__setattr__(self, "theta", theta)

    @classmethod
    def identity(cls) -> Pose2:
        """Create identity transformation (no rotation, no translation)."""
        return cls(0.0, 0.0, 0.0)

    @classmethod
    def from_array(cls, values: np.ndarray) -> Pose2:
        """Create Pose2 from a (3,) array [x, y, theta].

        Args:
            values: Anything that flattens to three numbers

        Returns:
            Pose2 transformation
        """
        values = np.asarray(values, dtype=np.float64).flatten()
        if values.shape != (3,):
            raise ValueError(f"Pose2 needs 3 values, got {values.shape}")
        return cls(values[0], values[1], values[2])

    def to_array(self) -> np.ndarray:
        """Return the pose as a (3,) array [x, y, theta]."""
        return np.array([self.x, self.y, self.theta], dtype=np.float64)

    @property
    def translation(self) -> np.ndarray:
        """Return the (2,) translation vector."""
        return np.array([self.x, self.y], dtype=np.float64)

    @property
    def rotation_matrix(self) -> np.ndarray:
        """Return the 2x2 rotation matrix R(theta)."""
        c, s = math.cos(self.theta), math.sin(self.theta)
        return np.array([[c, -s], [s, c]], dtype=np.float64)

    @property
    def norm(self) -> float:
        """Translation magnitude sqrt(x^2 + y^2)."""
        return math.hypot(self.x, self.y)

    @property
    def heading_deg(self) -> float:
        """Heading in degrees."""
        return math.degrees(self.theta)

    def compose(self, other: Pose2) -> Pose2:
        """Compose with another transformation: self @ other.

        The other translation is rotated by this heading and added to this
        translation; headings add.

        Example:
            T_world_prev.compose(T_prev_curr) gives T_world_curr

        Args:
            other: Pose2 expressed in the frame of self

        Returns:
            Composed Pose2 transformation (self @ other)
        """
        c, s = math.cos(self.theta), math.sin(self.theta)
        return Pose2(
            self.x + c * other.x - s * other.y,
            self.y + s * other.x + c * other.y,
            self.theta + other.theta,
        )

    def inverse(self) -> Pose2:
        """Compute the inverse transformation T^{-1}.

        For T = [R, t], the inverse is [R^T, -R^T @ t].
        """
        c, s = math.cos(self.theta), math.sin(self.theta)
        return Pose2(
            -c * self.x - s * self.y,
            s * self.x - c * self.y,
            -self.theta,
        )

    def between(self, other: Pose2) -> Pose2:
        """Relative transform from self to other: self^{-1} @ other."""
        return self.inverse().compose(other)

    def to_quaternion(self) -> tuple[float, float, float, float]:
        """Return the heading as a yaw-only unit quaternion (w, x, y, z)."""
        half = 0.5 * self.theta
        return math.cos(half), 0.0, 0.0, math.sin(half)

    def is_close(self, other: Pose2, atol: float = 1e-9) -> bool:
        """Return True if both poses agree within atol (heading wrapped)."""
        return (
            abs(self.x - other.x) <= atol
            and abs(self.y - other.y) <= atol
            and abs(wrap_angle(self.theta - other.theta)) <= atol
        )

    def __repr__(self) -> str:
        """Return string representation."""
        return f"Pose2(x={self.x:.3f}, y={self.y:.3f}, theta={self.theta:.4f})"

    def __matmul__(self, other: Pose2) -> Pose2:
        """Matrix multiplication operator for composition.

        Allows: T_result = T1 @ T2
        """
        return self.compose(other)
