"""Tests for serializable pose, noise and factor models."""

import numpy as np
import pytest
from pydantic import ValidationError

from magpose.core.math.poses import Pose2, Pose3
from magpose.core.math.rotations import Rot3
from magpose.core.models.factors import MagPoseFactorModel, NoiseModelSpec, PoseModel
from magpose.core.models.solve import SolveResult, SolverSettings
from magpose.core.optimization.mag_pose_factor import MagPoseFactor2, MagPoseFactor3
from magpose.core.optimization.noise import NoiseModel
from magpose.core.solver.manifold_solver import SolverOptions


class TestPoseModel:
    """Test pose serialization."""

    def test_pose2_round_trip(self):
        """Planar pose survives conversion."""
        pose = Pose2(1.0, -2.0, 0.75)

        model = PoseModel.from_pose(pose)

        assert model.kind == "pose2"
        assert model.to_pose().equals(pose)

    def test_pose3_round_trip(self):
        """Spatial pose survives JSON."""
        pose = Pose3(Rot3.from_rotation_vector(np.array([0.3, -0.2, 1.1])), np.array([1.0, 2.0, 3.0]))

        model = PoseModel.model_validate_json(PoseModel.from_pose(pose).model_dump_json())

        assert model.to_pose().equals(pose, tol=1e-9)

    def test_size_validation(self):
        """Rotation and translation sizes must match the kind."""
        with pytest.raises(ValidationError):
            PoseModel(kind="pose2", rotation=[0.1, 0.2, 0.3], translation=[0.0, 0.0])
        with pytest.raises(ValidationError):
            PoseModel(kind="pose3", rotation=[0.1, 0.2, 0.3], translation=[0.0, 0.0])


class TestNoiseModelSpec:
    """Test noise model serialization."""

    def test_round_trip(self):
        """Sigmas and robust loss survive conversion."""
        noise = NoiseModel.diagonal([0.5, 1.0, 2.0], loss="cauchy", loss_scale=3.0)

        assert NoiseModelSpec.from_noise_model(noise).to_noise_model().equals(noise)

    def test_invalid_sigmas(self):
        """Non-positive sigmas are rejected."""
        with pytest.raises(ValidationError):
            NoiseModelSpec(sigmas=[1.0, -1.0])
        with pytest.raises(ValidationError):
            NoiseModelSpec(sigmas=[])

    def test_invalid_loss(self):
        """Unknown losses are rejected."""
        with pytest.raises(ValidationError):
            NoiseModelSpec(sigmas=[1.0], loss="tukey")


class TestMagPoseFactorModel:
    """Test factor serialization."""

    def test_pose3_round_trip(self):
        """A mounted spatial factor survives JSON."""
        factor = MagPoseFactor3(
            "x7",
            np.array([21000.0, -3000.0, 43000.0]),
            48000.0,
            np.array([0.3, 0.1, 0.9]),
            np.array([120.0, -40.0, 15.0]),
            NoiseModel.isotropic(3, 50.0),
            Pose3(Rot3.Ry(0.1), np.array([0.0, 0.1, 0.0])),
        )

        data = MagPoseFactorModel.from_factor(factor).model_dump_json()
        restored = MagPoseFactorModel.model_validate_json(data).to_factor()

        assert isinstance(restored, MagPoseFactor3)
        assert restored.equals(factor, tol=1e-6)

    def test_pose2_round_trip(self):
        """A planar factor with an integer key survives conversion."""
        factor = MagPoseFactor2(3, np.array([1.0, 2.0]), 5.0, np.array([0.0, 1.0]), np.zeros(2),
                                NoiseModel.unit(2))

        model = MagPoseFactorModel.from_factor(factor)
        restored = model.to_factor()

        assert model.pose_kind == "pose2"
        assert model.key == 3
        assert restored.equals(factor, tol=1e-9)

    def test_tuple_key_round_trip(self):
        """A tuple key survives JSON and is restored as the same tuple."""
        factor = MagPoseFactor2(("x", 3), np.array([1.0, 2.0]), 5.0, np.array([0.0, 1.0]), np.zeros(2),
                                NoiseModel.unit(2))

        data = MagPoseFactorModel.from_factor(factor).model_dump_json()
        restored = MagPoseFactorModel.model_validate_json(data).to_factor()

        assert restored.key == ("x", 3)
        assert restored.equals(factor, tol=1e-9)

    def test_zero_field(self):
        """A zero-scale factor is rebuilt with a zero field."""
        factor = MagPoseFactor2("x0", np.array([1.0, 2.0]), 0.0, np.array([0.0, 1.0]), np.zeros(2),
                                NoiseModel.unit(2))

        restored = MagPoseFactorModel.from_factor(factor).to_factor()

        np.testing.assert_allclose(restored.nav_field, [0.0, 0.0])
        assert restored.equals(factor)

    def test_shared_noise_model(self):
        """A supplied noise model is attached instead of a new one."""
        shared = NoiseModel.unit(2)
        factor = MagPoseFactor2("x0", np.array([1.0, 2.0]), 1.0, np.array([1.0, 0.0]), np.zeros(2), shared)

        restored = MagPoseFactorModel.from_factor(factor).to_factor(noise_model=shared)

        assert restored.noise_model is shared

    def test_size_validation(self):
        """Vectors must match the pose kind."""
        with pytest.raises(ValidationError):
            MagPoseFactorModel(
                pose_kind="pose3",
                key="x0",
                measured=[1.0, 2.0],
                nav_field=[1.0, 0.0, 0.0],
                bias=[0.0, 0.0, 0.0],
                noise=NoiseModelSpec(sigmas=[1.0, 1.0, 1.0]),
            )

    def test_mount_kind_validation(self):
        """Mount kind must match the pose kind."""
        with pytest.raises(ValidationError):
            MagPoseFactorModel(
                pose_kind="pose2",
                key="x0",
                measured=[1.0, 0.0],
                nav_field=[1.0, 0.0],
                bias=[0.0, 0.0],
                noise=NoiseModelSpec(sigmas=[1.0, 1.0]),
                sensor_mount=PoseModel(kind="pose3", rotation=[0.0, 0.0, 0.0], translation=[0.0, 0.0, 0.0]),
            )

    def test_noise_dimension_checked_on_load(self):
        """Construction checks run when a factor is rebuilt."""
        model = MagPoseFactorModel(
            pose_kind="pose2",
            key="x0",
            measured=[1.0, 0.0],
            nav_field=[1.0, 0.0],
            bias=[0.0, 0.0],
            noise=NoiseModelSpec(sigmas=[1.0, 1.0, 1.0]),
        )

        with pytest.raises(ValueError):
            model.to_factor()


class TestSolverModels:
    """Test solver settings and results."""

    def test_defaults(self):
        """Default settings map onto default options."""
        assert SolverSettings().to_options() == SolverOptions()

    def test_validation(self):
        """Settings are validated."""
        with pytest.raises(ValidationError):
            SolverSettings(max_iterations=0)
        with pytest.raises(ValidationError):
            SolverSettings(method="newton")
        with pytest.raises(ValidationError):
            SolverSettings(max_workers=0)

    def test_result_serialization(self):
        """Results serialize to JSON."""
        result = SolveResult(
            success=True,
            iterations=4,
            final_cost=1e-12,
            convergence_reason="Converged: cost below tolerance",
            unconstrained_dofs=["x0.x"],
            largest_residuals=[("0:MagPoseFactor2(x0)", 1e-6)],
        )

        restored = SolveResult.model_validate_json(result.model_dump_json())

        assert restored.unconstrained_dofs == ["x0.x"]
        assert restored.largest_residuals == [("0:MagPoseFactor2(x0)", 1e-6)]

    def test_statistics_serialized(self):
        """Residual statistics survive JSON."""
        result = SolveResult(success=True, iterations=1, final_cost=0.5, convergence_reason="Converged",
                             statistics={"rms": 0.5, "max_abs": 1.0, "cost": 0.5})

        restored = SolveResult.model_validate_json(result.model_dump_json())

        assert restored.statistics == {"rms": 0.5, "max_abs": 1.0, "cost": 0.5}
