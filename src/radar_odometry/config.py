"""Configuration for the keyframe pose-graph back end.

Parameters are constant after startup. They can be built in code or loaded
from a YAML parameter file:

    odom_factor_cost_threshold: 0.9
    keyframe_factor_cost_threshold: 0.5
    resolution: 0.0432
    noise:
      prior: [0.01, 0.01, 0.001]
      odometry: [1.0, 1.0, 0.1]
      rotation: [0.01]
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import numpy as np
import yaml

from .errors import ConfigError

# Parameter names used by existing launch files
_ALIASES = {
    "odom_factor_cost_threshold": "odom_threshold",
    "keyframe_factor_cost_threshold": "keyframe_threshold",
    "RESOL": "resolution",
}


def _check_sigmas(name: str, sigmas: tuple[float, ...], dim: int) -> None:
    if len(sigmas) != dim:
        raise ConfigError(f"{name} needs {dim} sigmas, got {len(sigmas)}")
    if not all(np.isfinite(s) and s > 0 for s in sigmas):
        raise ConfigError(f"{name} sigmas must be positive, got {list(sigmas)}")


@dataclass
class NoiseConfig:
    """Diagonal noise sigmas for each relation kind."""

    prior: tuple[float, ...] = (0.01, 0.01, 0.001)  # m, m, rad
    odometry: tuple[float, ...] = (1.0, 1.0, 1e-1)  # m, m, rad
    rotation: tuple[float, ...] = (1e-2,)  # rad

    def __post_init__(self) -> None:
        """Normalize to float tuples and validate."""
        self.prior = tuple(float(s) for s in self.prior)
        self.odometry = tuple(float(s) for s in self.odometry)
        self.rotation = tuple(float(s) for s in self.rotation)
        _check_sigmas("noise.prior", self.prior, 3)
        _check_sigmas("noise.odometry", self.odometry, 3)
        _check_sigmas("noise.rotation", self.rotation, 1)


@dataclass
class SolverConfig:
    """Settings for the incremental nonlinear least-squares solve."""

    max_iterations: int = 50
    ftol: float = 1e-8
    xtol: float = 1e-8
    gtol: float = 1e-8
    # Most recently solved nodes re-optimized with each batch; older nodes
    # are held fixed. None re-optimizes the whole graph.
    active_nodes: int | None = 100

    def __post_init__(self) -> None:
        """Validate the re-optimization window."""
        if self.active_nodes is not None and self.active_nodes < 1:
            raise ConfigError(
                f"solver.active_nodes must be >= 1 or None, got {self.active_nodes}"
            )


@dataclass
class GraphOptimizerConfig:
    """Configuration for odometry acceptance and keyframe selection."""

    resolution: float = 0.05  # Negligible-motion translation threshold
    odom_threshold: float = 0.5  # Odometry acceptance score threshold
    keyframe_threshold: float = 0.5  # Keyframe score ratio threshold
    # Keyframe heuristics
    veto_motion: float = 1.0  # Vetoes only apply above this translation
    max_lateral: float = 2.0  # Nonholonomic lateral displacement bound
    max_rotation_deg: float = 90.0  # Bounded per-step rotation
    max_window_frames: int = 3  # More accumulated frames forces a keyframe
    max_first_motion: float = 30.0  # First-slot displacement forcing a keyframe
    min_solve_frames: int = 2  # Accepted frames needed before a solve
    noise: NoiseConfig = field(default_factory=NoiseConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)

    def __post_init__(self) -> None:
        """Validate parameter ranges."""
        if isinstance(self.noise, dict):
            self.noise = NoiseConfig(**self.noise)
        if isinstance(self.solver, dict):
            self.solver = SolverConfig(**self.solver)

        if self.resolution < 0:
            raise ConfigError(f"resolution must be >= 0, got {self.resolution}")
        if not 0.0 <= self.odom_threshold <= 1.0:
            raise ConfigError(
                f"odom_threshold must be in [0, 1], got {self.odom_threshold}"
            )
        if self.keyframe_threshold < 0:
            raise ConfigError(
                f"keyframe_threshold must be >= 0, got {self.keyframe_threshold}"
            )
        if self.max_window_frames < 1:
            raise ConfigError(
                f"max_window_frames must be >= 1, got {self.max_window_frames}"
            )
        if self.min_solve_frames < 1:
            raise ConfigError(
                f"min_solve_frames must be >= 1, got {self.min_solve_frames}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GraphOptimizerConfig:
        """Create a config from a (possibly aliased) parameter dictionary.

        Args:
            data: Parameter mapping, e.g. parsed from YAML

        Returns:
            GraphOptimizerConfig

        Raises:
            ConfigError: If a key is unknown or a value is invalid
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise ConfigError(f"Unknown parameter: {key}")
            kwargs[name] = value

        try:
            return cls(**kwargs)
        except TypeError as e:
            raise ConfigError(f"Invalid parameters: {e}") from e

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> GraphOptimizerConfig:
        """Load a config from a YAML parameter file.

        Args:
            yaml_path: Path to the parameter file

        Returns:
            GraphOptimizerConfig

        Raises:
            ConfigError: If the file is missing or its content is invalid
        """
        path = Path(yaml_path)
        if not path.exists():
            raise ConfigError(f"Parameter file not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigError(f"Expected a mapping in {yaml_path}")

        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Return the config as a plain dictionary."""
        data = asdict(self)
        data["noise"] = {k: list(v) for k, v in data["noise"].items()}
        return data
