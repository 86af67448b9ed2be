"""Running trajectory bookkeeping shared by the factor builders."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..geometry import Pose2


@dataclass
class TrajectoryState:
    """Accumulator passed explicitly into every component call.

    While the window slots are consecutive nodes, slot k of a window with N
    accumulated frames is node pose_count - N + k and slot 0 is key_node.
    The window records the node of every slot, which stays correct after a
    reset to a pivot that is not the newest slot.
    """

    pose_count: int = 0  # Highest pose node created (node 0 is the origin)
    key_node: int = 0  # Pose node of the last established keyframe
    window_loop: int = 0  # Frames consumed across all keyframe resets
    frames_since_solve: int = 0  # Odometry acceptances since the last solve
    initialized: bool = False
    # Raw (unoptimized) pose of every node, index = node
    raw_poses: list[Pose2] = field(default_factory=lambda: [Pose2.identity()])
    keyframe_nodes: list[int] = field(default_factory=lambda: [0])

    @property
    def current_pose(self) -> Pose2:
        """Raw pose of the newest node."""
        return self.raw_poses[self.pose_count]
