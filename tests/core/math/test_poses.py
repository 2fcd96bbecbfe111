"""Tests for Pose2 and Pose3."""

import numpy as np
import pytest

from magpose.core.math.poses import Pose2, Pose3
from magpose.core.math.rotations import Rot2, Rot3


class TestPose2:
    """Test planar poses."""

    def test_tangent_layout(self):
        """Rotation occupies the last tangent coordinate."""
        assert Pose2.dimension == 3
        assert Pose2.rotation_type is Rot2
        assert Pose2.rotation_interval() == (2, 1)
        assert Pose2.translation_interval() == (0, 2)
        assert Pose2.tangent_labels() == ["x", "y", "theta"]

    def test_accessors(self):
        """Rotation and translation components."""
        pose = Pose2(1.0, -2.0, 0.5)

        np.testing.assert_allclose(pose.translation(), [1.0, -2.0])
        assert pose.rotation().theta == pytest.approx(0.5)

    def test_compose_inverse(self):
        """A pose composed with its inverse is the identity."""
        pose = Pose2(1.0, 2.0, 0.3)

        assert (pose * pose.inverse()).equals(Pose2.identity(), tol=1e-12)
        assert (pose.inverse() * pose).equals(Pose2.identity(), tol=1e-12)

    def test_compose(self):
        """Translation of the second pose is rotated into the first frame."""
        a = Pose2(1.0, 0.0, np.pi / 2)
        b = Pose2(1.0, 0.0, 0.0)

        assert (a * b).equals(Pose2(1.0, 1.0, np.pi / 2), tol=1e-12)

    def test_retract_is_body_frame(self):
        """Translation increments are expressed in the body frame."""
        pose = Pose2(0.0, 0.0, np.pi / 2)
        moved = pose.retract(np.array([1.0, 0.0, 0.1]))

        np.testing.assert_allclose(moved.translation(), [0.0, 1.0], atol=1e-12)
        assert moved.theta == pytest.approx(np.pi / 2 + 0.1)

    def test_retract_local_coordinates(self):
        """local_coordinates inverts retract."""
        pose = Pose2(3.0, -1.0, 2.5)
        delta = np.array([0.2, -0.4, 0.9])

        np.testing.assert_allclose(pose.local_coordinates(pose.retract(delta)), delta, atol=1e-12)

    def test_retract_wrong_size(self):
        """Tangent vector must have 3 elements."""
        with pytest.raises(ValueError):
            Pose2().retract(np.zeros(6))

    def test_translation_read_only(self):
        """Returned translation is a copy."""
        pose = Pose2(1.0, 2.0, 0.0)
        t = pose.translation()
        t[0] = 10.0

        assert pose.x == pytest.approx(1.0)


class TestPose3:
    """Test spatial poses."""

    def test_tangent_layout(self):
        """Rotation occupies the first three tangent coordinates."""
        assert Pose3.dimension == 6
        assert Pose3.rotation_type is Rot3
        assert Pose3.rotation_interval() == (0, 3)
        assert Pose3.translation_interval() == (3, 3)

    def test_compose_inverse(self):
        """A pose composed with its inverse is the identity."""
        pose = Pose3(Rot3.from_rotation_vector(np.array([0.1, 0.2, 0.3])), np.array([1.0, 2.0, 3.0]))

        assert (pose * pose.inverse()).equals(Pose3.identity(), tol=1e-12)

    def test_retract_local_coordinates(self):
        """local_coordinates inverts retract."""
        pose = Pose3(Rot3.Ry(1.0), np.array([0.5, -0.5, 2.0]))
        delta = np.array([0.1, -0.2, 0.05, 1.0, 2.0, -3.0])

        np.testing.assert_allclose(pose.local_coordinates(pose.retract(delta)), delta, atol=1e-10)

    def test_retract_translation_only(self):
        """Translation increments leave the rotation untouched."""
        pose = Pose3(Rot3.Rz(0.7), np.zeros(3))
        moved = pose.retract(np.array([0.0, 0.0, 0.0, 1.0, 0.0, 0.0]))

        assert moved.rotation().equals(pose.rotation())
        np.testing.assert_allclose(moved.translation(), Rot3.Rz(0.7).rotate(np.array([1.0, 0.0, 0.0])))

    def test_equals(self):
        """Equality respects tolerance and type."""
        pose = Pose3(Rot3.Rx(0.1), np.array([1.0, 2.0, 3.0]))
        close = Pose3(Rot3.Rx(0.1), np.array([1.0, 2.0, 3.0 + 1e-12]))

        assert pose.equals(close)
        assert not pose.equals(Pose3(Rot3.Rx(0.1), np.array([1.0, 2.0, 3.1])))
        assert not pose.equals(Pose2())

    def test_bad_translation(self):
        """Translation must be 3D."""
        with pytest.raises(ValueError):
            Pose3(Rot3(), np.zeros(2))
