"""Synthetic magnetometer readings for tests and simulations."""

import numpy as np
from typing import Hashable, List, Optional, Sequence, Union

from ..math.poses import Pose2, Pose3
from ..math.rotations import Rot3
from ..optimization.mag_pose_factor import MagPoseFactor, MagPoseFactor2, MagPoseFactor3, unit_direction
from ..optimization.noise import NoiseModel

Pose = Union[Pose2, Pose3]


def random_pose2(rng: np.random.Generator, extent: float = 10.0) -> Pose2:
    """Draw a planar pose with uniform position and heading."""
    x, y = rng.uniform(-extent, extent, 2)
    return Pose2(x, y, rng.uniform(-np.pi, np.pi))


def random_pose3(rng: np.random.Generator, extent: float = 10.0) -> Pose3:
    """Draw a spatial pose with uniform position and uniformly random rotation."""
    rotation = Rot3.from_quaternion(rng.normal(size=4))
    return Pose3(rotation, rng.uniform(-extent, extent, 3))


class MagnetometerSimulator:
    """Generates magnetometer readings bM = nRs^T * nM + bias + noise."""

    def __init__(
        self,
        scale: float,
        direction: np.ndarray,
        bias: Optional[np.ndarray] = None,
        sigma: float = 0.0,
        sensor_mount: Optional[Pose] = None,
        seed: Optional[int] = None
    ):
        """Initialize simulator.

        Args:
            scale: Field magnitude in sensor units
            direction: Field direction in the nav frame (2D or 3D)
            bias: Additive bias, zero when omitted
            sigma: Standard deviation of white noise added per axis
            sensor_mount: Optional pose of the sensor in the body frame
            seed: Random seed for reproducible noise
        """
        direction = np.asarray(direction, dtype=float)
        if direction.shape not in ((2,), (3,)):
            raise ValueError("direction must be a 2D or 3D vector")

        self.scale = float(scale)
        self.direction = direction
        self.nav_field = self.scale * unit_direction(direction)
        self.bias = np.zeros_like(direction) if bias is None else np.asarray(bias, dtype=float)
        self.sigma = float(sigma)
        self.sensor_mount = sensor_mount
        self.rng = np.random.default_rng(seed)

    @property
    def dimension(self) -> int:
        return len(self.nav_field)

    def measure(self, pose: Pose) -> np.ndarray:
        """Simulate one reading at ``pose``."""
        nRs = pose.rotation()
        if self.sensor_mount is not None:
            nRs = nRs * self.sensor_mount.rotation()

        reading = nRs.unrotate(self.nav_field) + self.bias
        if self.sigma > 0:
            reading = reading + self.rng.normal(0.0, self.sigma, self.dimension)
        return reading

    def make_factors(
        self,
        poses: Sequence[Pose],
        noise_model: Optional[NoiseModel] = None,
        key_prefix: str = "x",
        keys: Optional[Sequence[Hashable]] = None
    ) -> List[MagPoseFactor]:
        """Simulate a reading per pose and wrap each in a factor.

        Args:
            poses: True poses
            noise_model: Shared noise model; defaults to isotropic ``sigma``
            key_prefix: Prefix of generated keys ``x0, x1, ...``
            keys: Explicit keys, one per pose

        Returns:
            List of MagPoseFactor2 / MagPoseFactor3 instances
        """
        if keys is None:
            keys = [f"{key_prefix}{i}" for i in range(len(poses))]
        if len(keys) != len(poses):
            raise ValueError("Need exactly one key per pose")

        if noise_model is None:
            noise_model = NoiseModel.isotropic(self.dimension, self.sigma if self.sigma > 0 else 1.0)

        factors = []
        for key, pose in zip(keys, poses):
            factor_type = MagPoseFactor2 if isinstance(pose, Pose2) else MagPoseFactor3
            factors.append(factor_type(
                key,
                self.measure(pose),
                self.scale,
                self.direction,
                self.bias,
                noise_model,
                self.sensor_mount,
            ))
        return factors
