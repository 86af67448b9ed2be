"""Pose events emitted by the back end and a recorder that stores them.

Raw events are emitted for every accepted frame; optimized events for every
completed batched solve. TrajectoryRecorder keeps both streams in memory and
can write them in TUM trajectory format:

    timestamp[s] tx ty tz qx qy qz qw
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import numpy as np

from ..geometry import Pose2


@dataclass(frozen=True)
class PoseEvent:
    """A pose estimate handed to the publish layer."""

    node: int
    timestamp_ns: int
    pose: Pose2
    optimized: bool = False

    @property
    def frame_id(self) -> str:
        """Name of the output stream this event belongs to."""
        return "opt_odom" if self.optimized else "odom"


class OdometryPublisher(Protocol):
    """Sink for raw and optimized pose events."""

    def publish(self, event: PoseEvent) -> None:
        """Receive one pose event."""
        ...


class TrajectoryRecorder:
    """Publisher that records every event it receives."""

    def __init__(self) -> None:
        """Initialize empty event lists."""
        self._raw: list[PoseEvent] = []
        self._optimized: list[PoseEvent] = []

    def publish(self, event: PoseEvent) -> None:
        """Store a pose event in the matching stream."""
        if event.optimized:
            self._optimized.append(event)
        else:
            self._raw.append(event)

    @property
    def raw_events(self) -> list[PoseEvent]:
        """Raw pose events in arrival order."""
        return list(self._raw)

    @property
    def optimized_events(self) -> list[PoseEvent]:
        """Optimized pose events in arrival order."""
        return list(self._optimized)

    def raw_trajectory(self) -> np.ndarray:
        """Return raw poses as an (M, 3) array [x, y, theta]."""
        return self._as_array(self._raw)

    def optimized_trajectory(self) -> np.ndarray:
        """Return optimized poses as an (M, 3) array [x, y, theta]."""
        return self._as_array(self._optimized)

    @staticmethod
    def _as_array(events: list[PoseEvent]) -> np.ndarray:
        if not events:
            return np.empty((0, 3), dtype=np.float64)
        return np.stack([e.pose.to_array() for e in events])

    def save_tum(self, path: str | Path, optimized: bool = False) -> int:
        """Write one stream in TUM trajectory format.

        Args:
            path: Output file path
            optimized: If True write the optimized stream, else the raw one

        Returns:
            Number of lines written
        """
        events = self._optimized if optimized else self._raw
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            f.write("# timestamp tx ty tz qx qy qz qw\n")
            for event in events:
                qw, qx, qy, qz = event.pose.to_quaternion()
                f.write(
                    f"{event.timestamp_ns / 1e9:.9f} "
                    f"{event.pose.x:.6f} {event.pose.y:.6f} 0.000000 "
                    f"{qx:.6f} {qy:.6f} {qz:.6f} {qw:.6f}\n"
                )

        return len(events)

    def __len__(self) -> int:
        """Return total number of recorded events."""
        return len(self._raw) + len(self._optimized)
