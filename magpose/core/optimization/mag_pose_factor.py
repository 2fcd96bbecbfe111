"""Magnetometer factor constraining the rotation of a Pose2 or Pose3.

Measurement model, with the sensor rotation ``nRs = nRb * bRs``:

    h(x) = nRs^T * nM + bias,    nM = scale * direction / |direction|

The residual is ``h(x) - measured``. Scale, direction and bias are known
constants; only the pose's rotation is observable, so the Jacobian columns of
the translation block are zero. A sensor mount rotates the prediction but is
not differentiated.
"""

import copy
import numpy as np
from typing import ClassVar, Generic, Hashable, Optional, Tuple, Type, TypeVar

from ..errors import DimensionMismatchError, InvalidArgumentError
from ..math.poses import Pose2, Pose3
from .factor_graph import KeyFormatter, NoiseModelFactor1
from .noise import NoiseModel

PoseT = TypeVar("PoseT", Pose2, Pose3)


def _frozen_vector(value, size: int, name: str) -> np.ndarray:
    vector = np.array(value, dtype=float).reshape(-1)
    if vector.shape != (size,):
        raise InvalidArgumentError(f"{name} must have {size} elements, got {vector.shape[0]}")
    if not np.all(np.isfinite(vector)):
        raise InvalidArgumentError(f"{name} must be finite, got {vector}")
    vector.setflags(write=False)
    return vector


def unit_direction(direction: np.ndarray) -> np.ndarray:
    """Normalize a non-zero vector without overflow or underflow.

    Dividing by the largest magnitude first keeps the norm in range for any
    finite input, so every positive rescaling of ``direction`` gives the same
    unit vector.

    Raises:
        InvalidArgumentError: If ``direction`` is exactly zero
    """
    direction = np.asarray(direction, dtype=float)
    peak = np.max(np.abs(direction))
    if peak == 0:
        raise InvalidArgumentError("direction must be a non-zero vector")
    scaled = direction / peak
    return scaled / np.linalg.norm(scaled)


def _frozen_copy(vector: np.ndarray) -> np.ndarray:
    duplicate = vector.copy()
    duplicate.setflags(write=False)
    return duplicate


class MagPoseFactor(NoiseModelFactor1, Generic[PoseT]):
    """Factor to estimate the rotation of a pose from a magnetometer reading.

    Use the ``MagPoseFactor2`` / ``MagPoseFactor3`` bindings; this class only
    carries the implementation shared by both pose types.
    """

    pose_type: ClassVar[Optional[Type]] = None

    def __init__(
        self,
        pose_key: Hashable,
        measured: np.ndarray,
        scale: float,
        direction: np.ndarray,
        bias: np.ndarray,
        noise_model: NoiseModel,
        sensor_mount: Optional[PoseT] = None,
    ):
        """Initialize magnetometer factor.

        Args:
            pose_key: Key of the unknown pose nav_P_body
            measured: Magnetometer reading, 2D or 3D to match the pose type
            scale: Scale turning a unit field direction into a reading
            direction: Direction of the local magnetic field in the nav frame
            bias: Additive magnetometer bias (after scaling)
            noise_model: Noise model of the reading, shared and never mutated
            sensor_mount: Optional pose of the magnetometer in the body frame
        """
        if self.pose_type is None:
            raise TypeError("Instantiate MagPoseFactor2 or MagPoseFactor3")

        meas_dim = self.pose_type.translation_dimension

        if noise_model is None or noise_model.dim != meas_dim:
            raise InvalidArgumentError(
                f"Noise model dimension must be {meas_dim} for {self.pose_type.__name__}"
            )
        if not np.isfinite(scale):
            raise InvalidArgumentError(f"scale must be finite, got {scale}")
        if sensor_mount is not None and not isinstance(sensor_mount, self.pose_type):
            raise InvalidArgumentError(
                f"sensor_mount must be a {self.pose_type.__name__}, got {type(sensor_mount).__name__}"
            )

        direction = unit_direction(_frozen_vector(direction, meas_dim, "direction"))

        super().__init__(noise_model, pose_key)

        self._measured = _frozen_vector(measured, meas_dim, "measured")
        self._nav_field = _frozen_vector(float(scale) * direction, meas_dim, "nav_field")
        self._bias = _frozen_vector(bias, meas_dim, "bias")
        self._sensor_mount = sensor_mount

    @property
    def measured(self) -> np.ndarray:
        """Magnetometer reading (read-only)."""
        return self._measured

    @property
    def nav_field(self) -> np.ndarray:
        """Local magnetic field in the nav frame, in sensor units (read-only)."""
        return self._nav_field

    @property
    def bias(self) -> np.ndarray:
        return self._bias

    @property
    def sensor_mount(self) -> Optional[PoseT]:
        return self._sensor_mount

    @property
    def measurement_dimension(self) -> int:
        return self.pose_type.translation_dimension

    @property
    def pose_dimension(self) -> int:
        return self.pose_type.dimension

    @property
    def rotation_dimension(self) -> int:
        return self.pose_type.rotation_type.dimension

    def _rotation_block(self, pose) -> Tuple[int, int]:
        """Validate the pose's tangent layout and return its rotation interval."""
        if not isinstance(pose, self.pose_type):
            raise DimensionMismatchError(
                f"{type(self).__name__} expects a {self.pose_type.__name__}, got {type(pose).__name__}"
            )

        pose_dim = pose.dimension
        rot_dim = pose.rotation_type.dimension
        rot0, rot_len = pose.rotation_interval()

        if pose_dim != self.pose_dimension or rot_dim != self.rotation_dimension:
            raise DimensionMismatchError(
                f"Pose tangent dimension {pose_dim}/{rot_dim} does not match "
                f"{self.pose_dimension}/{self.rotation_dimension}"
            )
        if rot_len != rot_dim or rot0 < 0 or rot0 + rot_len > pose_dim:
            raise DimensionMismatchError(
                f"Invalid rotation interval ({rot0}, {rot_len}) for pose dimension {pose_dim}"
            )

        meas_dim = self.measurement_dimension
        if not (self._measured.shape == self._bias.shape == self._nav_field.shape == (meas_dim,)):
            raise DimensionMismatchError("measured, bias and nav_field sizes disagree")

        return rot0, rot_len

    def evaluate_error(
        self, pose: PoseT, want_jacobian: bool = False
    ) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        """Return the error h(x) - z and, optionally, its Jacobian.

        Args:
            pose: Pose nav_P_body at which to evaluate
            want_jacobian: Whether to compute d(error)/d(pose)

        Returns:
            Tuple of (residual, Jacobian of shape (MeasDim, PoseDim) or None)
        """
        rot0, rot_dim = self._rotation_block(pose)

        # Rotation of the sensor frame in the nav frame
        if self._sensor_mount is not None:
            nRs = pose.rotation() * self._sensor_mount.rotation()
        else:
            nRs = pose.rotation()

        if not want_jacobian:
            hx = nRs.unrotate(self._nav_field) + self._bias
            return hx - self._measured, None

        predicted, H_rot = nRs.unrotate(self._nav_field, want_jacobian=True)
        hx = predicted + self._bias

        # Only the rotation columns are non-zero
        H = np.zeros((self.measurement_dimension, self.pose_dimension))
        H[:, rot0:rot0 + rot_dim] = H_rot

        return hx - self._measured, H

    def clone(self) -> "MagPoseFactor":
        duplicate = copy.copy(self)
        duplicate._measured = _frozen_copy(self._measured)
        duplicate._nav_field = _frozen_copy(self._nav_field)
        duplicate._bias = _frozen_copy(self._bias)
        duplicate._sensor_mount = copy.deepcopy(self._sensor_mount)
        return duplicate

    def equals(self, other: "MagPoseFactor", tol: float = 1e-9) -> bool:
        if not super().equals(other, tol):
            return False

        if (self._sensor_mount is None) != (other._sensor_mount is None):
            return False
        if self._sensor_mount is not None and not self._sensor_mount.equals(other._sensor_mount, tol):
            return False

        return (bool(np.allclose(self._measured, other._measured, rtol=0.0, atol=tol)) and
                bool(np.allclose(self._nav_field, other._nav_field, rtol=0.0, atol=tol)) and
                bool(np.allclose(self._bias, other._bias, rtol=0.0, atol=tol)))

    def describe(self, prefix: str = "", key_formatter: KeyFormatter = str, verbose: bool = False) -> str:
        text = super().describe(prefix, key_formatter, verbose)
        if verbose:
            text += (f"\n  measured: {np.array2string(self._measured, precision=6)}"
                     f"\n  nM: {np.array2string(self._nav_field, precision=6)}"
                     f"\n  bias: {np.array2string(self._bias, precision=6)}")
            if self._sensor_mount is not None:
                text += f"\n  body_P_sensor: {self._sensor_mount!r}"
        return text

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r})"


class MagPoseFactor2(MagPoseFactor[Pose2]):
    """Magnetometer factor on a planar pose (2D field, rotation column 2)."""

    pose_type = Pose2


class MagPoseFactor3(MagPoseFactor[Pose3]):
    """Magnetometer factor on a spatial pose (3D field, rotation columns 0-2)."""

    pose_type = Pose3
