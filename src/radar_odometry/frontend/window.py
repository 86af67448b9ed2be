"""Sliding window of accepted frames since the last keyframe.

Slot 0 is always the carry-over frame of the most recent keyframe; slots
1..N are the frames accepted since. The window is sized to its current
contents: per-slot data lives in lists that shrink and are cleared together
with the frames, so nothing from a previous window survives a reset.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

from ..geometry import Pose2


@dataclass
class Frame:
    """A sensor observation handed to the back end.

    The payload is opaque to the back end; only the transform estimator
    looks inside it.
    """

    timestamp_ns: int
    data: Any = None


class FrameWindow:
    """Ordered, growable and truncatable sequence of frames."""

    def __init__(self) -> None:
        """Initialize an empty window."""
        self._frames: list[Frame] = []
        # Per-slot data, None until the slot's frame is accepted
        self._nodes: list[int | None] = []
        self._odometry: list[Pose2 | None] = []

    def append(self, frame: Frame) -> int:
        """Append a frame as the newest slot.

        Args:
            frame: Frame to append

        Returns:
            Slot index of the appended frame
        """
        self._frames.append(frame)
        self._nodes.append(None)
        self._odometry.append(None)
        return len(self._frames) - 1

    def drop_last(self) -> Frame:
        """Remove the newest slot together with its per-slot data.

        Returns:
            The removed frame

        Raises:
            IndexError: If only the keyframe carry-over is left
        """
        if len(self._frames) <= 1:
            raise IndexError("Cannot drop the keyframe carry-over frame")
        self._nodes.pop()
        self._odometry.pop()
        return self._frames.pop()

    def reset_to(self, slot: int) -> Frame:
        """Keep only the given slot, which becomes the new slot 0.

        Args:
            slot: Slot index to keep

        Returns:
            The kept frame
        """
        if not 0 <= slot < len(self._frames):
            raise IndexError(f"Slot {slot} out of range for window of {len(self)}")
        kept = self._frames[slot]
        self._frames = [kept]
        self._nodes = [self._nodes[slot]]
        self._odometry = [None]
        return kept

    def set_node(self, slot: int, node: int) -> None:
        """Record the pose node created for a slot."""
        self._nodes[slot] = node

    def node(self, slot: int) -> int:
        """Return the pose node of a slot.

        Raises:
            LookupError: If the slot has not been accepted as a pose node
        """
        node = self._nodes[slot]
        if node is None:
            raise LookupError(f"Slot {slot} has no pose node")
        return node

    def set_odometry_delta(self, slot: int, delta: Pose2) -> None:
        """Store the accepted odometry delta of a slot."""
        self._odometry[slot] = delta

    def odometry_delta(self, slot: int) -> Pose2 | None:
        """Return the accepted odometry delta of a slot, if any."""
        return self._odometry[slot]

    def size(self) -> int:
        """Return the number of frames in the window."""
        return len(self._frames)

    @property
    def newest(self) -> Frame:
        """Return the newest frame."""
        return self._frames[-1]

    @property
    def num_accumulated(self) -> int:
        """Number of frames accumulated since the keyframe (N)."""
        return max(len(self._frames) - 1, 0)

    @property
    def frames(self) -> list[Frame]:
        """Return a copy of the frame list (oldest first)."""
        return list(self._frames)

    def __getitem__(self, slot: int) -> Frame:
        """Return the frame at a slot."""
        return self._frames[slot]

    def __len__(self) -> int:
        """Return the number of frames in the window."""
        return len(self._frames)

    def __iter__(self) -> Iterator[Frame]:
        """Iterate frames oldest first."""
        return iter(self._frames)
