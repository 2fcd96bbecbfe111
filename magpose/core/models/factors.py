"""Plain data-transfer models for poses, noise models and magnetometer factors.

Factors are persisted as their stored vectors and rebuilt through the regular
constructor, so every construction-time check applies on load.
"""

import numpy as np
from typing import List, Literal, Optional, Tuple, Union
from pydantic import BaseModel, Field, field_validator, model_validator

from ..math.poses import Pose2, Pose3
from ..math.rotations import Rot3, so3_log
from ..optimization.mag_pose_factor import MagPoseFactor, MagPoseFactor2, MagPoseFactor3
from ..optimization.noise import NoiseModel

PoseKind = Literal["pose2", "pose3"]
Key = Union[int, str, Tuple[Union[int, str], ...]]

_FACTOR_TYPES = {"pose2": MagPoseFactor2, "pose3": MagPoseFactor3}


def _dimension(kind: str) -> int:
    return 2 if kind == "pose2" else 3


class PoseModel(BaseModel):
    """Pose as rotation parameters plus translation.

    - pose2: rotation = [theta], translation = [x, y]
    - pose3: rotation = axis-angle [rx, ry, rz], translation = [x, y, z]
    """

    kind: PoseKind = Field(description="Pose type")
    rotation: List[float] = Field(description="Rotation parameters", min_length=1, max_length=3)
    translation: List[float] = Field(description="Translation", min_length=2, max_length=3)

    @model_validator(mode="after")
    def validate_sizes(self):
        rot_size = 1 if self.kind == "pose2" else 3
        if len(self.rotation) != rot_size:
            raise ValueError(f"{self.kind} rotation must have {rot_size} elements")
        if len(self.translation) != _dimension(self.kind):
            raise ValueError(f"{self.kind} translation must have {_dimension(self.kind)} elements")
        return self

    @classmethod
    def from_pose(cls, pose: Union[Pose2, Pose3]) -> "PoseModel":
        if isinstance(pose, Pose2):
            return cls(kind="pose2", rotation=[pose.theta], translation=[pose.x, pose.y])
        return cls(
            kind="pose3",
            rotation=so3_log(pose.rotation().matrix()).tolist(),
            translation=pose.translation().tolist(),
        )

    def to_pose(self) -> Union[Pose2, Pose3]:
        if self.kind == "pose2":
            return Pose2(self.translation[0], self.translation[1], self.rotation[0])
        return Pose3(Rot3.from_rotation_vector(np.array(self.rotation)), np.array(self.translation))


class NoiseModelSpec(BaseModel):
    """Diagonal noise model description."""

    sigmas: List[float] = Field(description="Per-component standard deviations", min_length=1)
    loss: Literal["none", "huber", "cauchy"] = Field(default="none", description="Robust loss type")
    loss_scale: float = Field(default=1.0, gt=0, description="Huber delta or Cauchy sigma")

    @field_validator("sigmas")
    @classmethod
    def validate_sigmas(cls, v):
        if any(not np.isfinite(s) or s <= 0 for s in v):
            raise ValueError("sigmas must be positive and finite")
        return v

    @classmethod
    def from_noise_model(cls, noise_model: NoiseModel) -> "NoiseModelSpec":
        return cls(
            sigmas=noise_model.sigmas.tolist(),
            loss=noise_model.loss_type,
            loss_scale=noise_model.loss_scale,
        )

    def to_noise_model(self) -> NoiseModel:
        return NoiseModel(self.sigmas, loss=self.loss, loss_scale=self.loss_scale)


class MagPoseFactorModel(BaseModel):
    """Serializable magnetometer factor."""

    type: Literal["mag_pose"] = "mag_pose"
    pose_kind: PoseKind = Field(description="Pose type of the constrained variable")
    key: Key = Field(description="Pose variable key; tuples are stored as JSON arrays")
    measured: List[float] = Field(description="Magnetometer reading")
    nav_field: List[float] = Field(description="Scaled nav-frame field nM")
    bias: List[float] = Field(description="Additive magnetometer bias")
    noise: NoiseModelSpec = Field(description="Measurement noise model")
    sensor_mount: Optional[PoseModel] = Field(default=None, description="Sensor pose in body frame")

    @model_validator(mode="after")
    def validate_sizes(self):
        dim = _dimension(self.pose_kind)
        for name in ("measured", "nav_field", "bias"):
            if len(getattr(self, name)) != dim:
                raise ValueError(f"{name} must have {dim} elements for {self.pose_kind}")
        if self.sensor_mount is not None and self.sensor_mount.kind != self.pose_kind:
            raise ValueError("sensor_mount kind must match pose_kind")
        return self

    @classmethod
    def from_factor(cls, factor: MagPoseFactor) -> "MagPoseFactorModel":
        kind = "pose2" if factor.pose_type is Pose2 else "pose3"
        mount = factor.sensor_mount
        return cls(
            pose_kind=kind,
            key=factor.key,
            measured=factor.measured.tolist(),
            nav_field=factor.nav_field.tolist(),
            bias=factor.bias.tolist(),
            noise=NoiseModelSpec.from_noise_model(factor.noise_model),
            sensor_mount=PoseModel.from_pose(mount) if mount is not None else None,
        )

    def to_factor(self, noise_model: Optional[NoiseModel] = None) -> MagPoseFactor:
        """Rebuild the factor.

        Args:
            noise_model: Shared noise model to attach instead of a new one built
                from ``noise``

        Returns:
            MagPoseFactor2 or MagPoseFactor3
        """
        nav_field = np.array(self.nav_field)
        scale = float(np.linalg.norm(nav_field))
        if scale > 0:
            direction = nav_field
        else:
            # Any direction gives a zero field when the scale is zero
            direction = np.eye(len(nav_field))[0]

        factor_type = _FACTOR_TYPES[self.pose_kind]
        return factor_type(
            self.key,
            np.array(self.measured),
            scale,
            direction,
            np.array(self.bias),
            noise_model if noise_model is not None else self.noise.to_noise_model(),
            self.sensor_mount.to_pose() if self.sensor_mount is not None else None,
        )
