"""Shared fixtures for the back-end tests.

Frames in these tests carry their ground-truth Pose2 as payload, and the
scripted estimator registers two frames by computing the exact relative
transform between their payloads. Individual registrations can be
overridden to simulate poor or misleading measurements.
"""

from __future__ import annotations

import pytest

from radar_odometry import Frame, GraphOptimizerConfig, Pose2


class ScriptedEstimator:
    """Transform estimator driven by ground-truth poses stored in the frames."""

    def __init__(self, overrides: dict[tuple[int, int], Pose2] | None = None) -> None:
        self.overrides = dict(overrides or {})
        self.calls: list[tuple[int, int]] = []

    def estimate_transform(self, source: Frame, target: Frame) -> Pose2:
        key = (source.timestamp_ns, target.timestamp_ns)
        self.calls.append(key)
        if key in self.overrides:
            return self.overrides[key]
        return source.data.between(target.data)


def make_frames(poses: list[tuple[float, float, float]]) -> list[Frame]:
    """Create frames with timestamps 0, 1, 2, ... and the given true poses."""
    return [Frame(timestamp_ns=i, data=Pose2(*pose)) for i, pose in enumerate(poses)]


@pytest.fixture
def config() -> GraphOptimizerConfig:
    """Config with thresholds suited to the scripted motions."""
    return GraphOptimizerConfig(
        resolution=0.01,
        odom_threshold=0.1,
        keyframe_threshold=0.5,
    )


@pytest.fixture
def estimator() -> ScriptedEstimator:
    """Scripted estimator without overrides."""
    return ScriptedEstimator()
