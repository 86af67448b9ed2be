"""Exception types raised by the radar odometry back end."""


class RadarOdometryError(RuntimeError):
    """Base class for failures of the odometry back end."""


class SolverDivergenceError(RadarOdometryError):
    """The incremental solve did not produce a consistent estimate.

    Raised instead of publishing a corrupted pose. The solver state is left
    exactly as it was before the failed solve.
    """


class ConfigError(ValueError):
    """Invalid or missing configuration parameters."""
