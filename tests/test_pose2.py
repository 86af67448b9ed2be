"""Tests for Pose2 SE(2) transforms."""

import math

import numpy as np
import pytest

from radar_odometry.geometry import Pose2, wrap_angle


class TestWrapAngle:
    """Test suite for angle normalization."""

    def test_inside_range_unchanged(self):
        """Test that angles already in range are kept."""
        assert wrap_angle(0.5) == pytest.approx(0.5)
        assert wrap_angle(-3.0) == pytest.approx(-3.0)

    def test_wraps_large_angles(self):
        """Test wrapping of angles beyond +-pi."""
        assert wrap_angle(2 * math.pi + 0.1) == pytest.approx(0.1)
        assert wrap_angle(-2 * math.pi - 0.1) == pytest.approx(-0.1)

    def test_minus_pi_maps_to_pi(self):
        """Test that the half-open interval excludes -pi."""
        assert wrap_angle(-math.pi) == pytest.approx(math.pi)
        assert wrap_angle(math.pi) == pytest.approx(math.pi)


class TestPose2:
    """Test suite for Pose2."""

    def test_identity(self):
        """Test identity pose values."""
        pose = Pose2.identity()
        assert (pose.x, pose.y, pose.theta) == (0.0, 0.0, 0.0)
        assert pose.norm == 0.0

    def test_heading_is_normalized(self):
        """Test that construction wraps the heading."""
        pose = Pose2(0.0, 0.0, 3 * math.pi / 2)
        assert pose.theta == pytest.approx(-math.pi / 2)

    def test_compose_rotates_translation(self):
        """Test that composition rotates the second translation."""
        a = Pose2(1.0, 0.0, math.pi / 2)
        b = Pose2(1.0, 0.0, 0.0)

        c = a.compose(b)

        assert c.x == pytest.approx(1.0)
        assert c.y == pytest.approx(1.0)
        assert c.theta == pytest.approx(math.pi / 2)
        assert (a @ b).is_close(c)

    def test_inverse(self):
        """Test that T @ T^-1 is the identity."""
        pose = Pose2(2.0, -1.0, 0.7)
        assert pose.compose(pose.inverse()).is_close(Pose2.identity(), atol=1e-12)
        assert pose.inverse().compose(pose).is_close(Pose2.identity(), atol=1e-12)

    def test_between(self):
        """Test relative transform between two poses."""
        a = Pose2(1.0, 2.0, 0.3)
        b = Pose2(-0.5, 4.0, -1.2)

        delta = a.between(b)

        assert a.compose(delta).is_close(b, atol=1e-12)

    def test_array_conversion(self):
        """Test conversion to and from arrays."""
        pose = Pose2(1.0, 2.0, 0.5)
        np.testing.assert_allclose(pose.to_array(), [1.0, 2.0, 0.5])
        assert Pose2.from_array(pose.to_array()).is_close(pose)

    def test_from_array_wrong_size(self):
        """Test that from_array rejects arrays without three values."""
        with pytest.raises(ValueError, match="needs 3 values"):
            Pose2.from_array(np.zeros(2))

    def test_norm_and_heading_deg(self):
        """Test derived quantities."""
        pose = Pose2(3.0, 4.0, math.pi / 2)
        assert pose.norm == pytest.approx(5.0)
        assert pose.heading_deg == pytest.approx(90.0)

    def test_quaternion_is_yaw_only(self):
        """Test the yaw quaternion of a heading."""
        w, x, y, z = Pose2(0.0, 0.0, math.pi / 2).to_quaternion()
        assert (x, y) == (0.0, 0.0)
        assert w == pytest.approx(math.sqrt(0.5))
        assert z == pytest.approx(math.sqrt(0.5))

    def test_non_finite_heading_is_kept(self):
        """Test that a NaN heading passes through unwrapped."""
        pose = Pose2(0.0, 0.0, float("nan"))
        assert math.isnan(pose.theta)
