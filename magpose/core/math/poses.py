"""SE(2) and SE(3) poses built on the rotation groups.

Both pose types use the same retraction, a body-frame perturbation applied
separately to the rotation and translation parts:

    R' = R * Exp(omega),    t' = t + R v

so the rotation block of any Jacobian with respect to the pose's tangent
coordinates is the Jacobian with respect to the rotation's own tangent
coordinates. Tangent layouts:

    Pose2: [vx, vy, omega]                   rotation interval (2, 1)
    Pose3: [wx, wy, wz, vx, vy, vz]          rotation interval (0, 3)
"""

import numpy as np
from typing import List, Optional, Tuple

from .rotations import Rot2, Rot3


def _as_translation(t, size: int) -> np.ndarray:
    t = np.array(t, dtype=float)
    if t.shape != (size,):
        raise ValueError(f"translation must be {size}-element vector, got shape {t.shape}")
    t.setflags(write=False)
    return t


class Pose2:
    """Planar rigid transform (x, y, theta)."""

    dimension = 3
    rotation_type = Rot2
    translation_dimension = 2

    def __init__(self, x: float = 0.0, y: float = 0.0, theta: float = 0.0):
        self._R = Rot2(theta)
        self._t = _as_translation([x, y], 2)

    @classmethod
    def from_rotation_translation(cls, rotation: Rot2, translation: np.ndarray) -> "Pose2":
        t = _as_translation(translation, 2)
        return cls(t[0], t[1], rotation.theta)

    @classmethod
    def identity(cls) -> "Pose2":
        return cls()

    @classmethod
    def rotation_interval(cls) -> Tuple[int, int]:
        """(offset, length) of the rotation block in tangent coordinates."""
        return 2, 1

    @classmethod
    def translation_interval(cls) -> Tuple[int, int]:
        return 0, 2

    @classmethod
    def tangent_labels(cls) -> List[str]:
        return ["x", "y", "theta"]

    @property
    def x(self) -> float:
        return float(self._t[0])

    @property
    def y(self) -> float:
        return float(self._t[1])

    @property
    def theta(self) -> float:
        return self._R.theta

    def rotation(self) -> Rot2:
        return self._R

    def translation(self) -> np.ndarray:
        return self._t.copy()

    def compose(self, other: "Pose2") -> "Pose2":
        return Pose2.from_rotation_translation(
            self._R * other._R, self._t + self._R.rotate(other._t)
        )

    def __mul__(self, other: "Pose2") -> "Pose2":
        return self.compose(other)

    def inverse(self) -> "Pose2":
        R_inv = self._R.inverse()
        return Pose2.from_rotation_translation(R_inv, -R_inv.rotate(self._t))

    def retract(self, delta: np.ndarray) -> "Pose2":
        delta = np.asarray(delta, dtype=float)
        if delta.shape != (3,):
            raise ValueError(f"delta must be 3-element vector, got shape {delta.shape}")
        return Pose2.from_rotation_translation(
            self._R.retract(delta[2:3]), self._t + self._R.rotate(delta[:2])
        )

    def local_coordinates(self, other: "Pose2") -> np.ndarray:
        v = self._R.unrotate(other._t - self._t)
        return np.concatenate([v, self._R.local_coordinates(other._R)])

    def equals(self, other: "Pose2", tol: float = 1e-9) -> bool:
        if not isinstance(other, Pose2):
            return False
        return (self._R.equals(other._R, tol) and
                bool(np.allclose(self._t, other._t, rtol=0.0, atol=tol)))

    def __repr__(self) -> str:
        return f"Pose2(x={self.x:.6f}, y={self.y:.6f}, theta={self.theta:.6f})"


class Pose3:
    """Spatial rigid transform (R, t)."""

    dimension = 6
    rotation_type = Rot3
    translation_dimension = 3

    def __init__(self, rotation: Optional[Rot3] = None, translation: Optional[np.ndarray] = None):
        self._R = rotation if rotation is not None else Rot3()
        self._t = _as_translation(translation if translation is not None else np.zeros(3), 3)

    @classmethod
    def identity(cls) -> "Pose3":
        return cls()

    @classmethod
    def rotation_interval(cls) -> Tuple[int, int]:
        """(offset, length) of the rotation block in tangent coordinates."""
        return 0, 3

    @classmethod
    def translation_interval(cls) -> Tuple[int, int]:
        return 3, 3

    @classmethod
    def tangent_labels(cls) -> List[str]:
        return ["rx", "ry", "rz", "x", "y", "z"]

    def rotation(self) -> Rot3:
        return self._R

    def translation(self) -> np.ndarray:
        return self._t.copy()

    def compose(self, other: "Pose3") -> "Pose3":
        return Pose3(self._R * other._R, self._t + self._R.rotate(other._t))

    def __mul__(self, other: "Pose3") -> "Pose3":
        return self.compose(other)

    def inverse(self) -> "Pose3":
        R_inv = self._R.inverse()
        return Pose3(R_inv, -R_inv.rotate(self._t))

    def retract(self, delta: np.ndarray) -> "Pose3":
        delta = np.asarray(delta, dtype=float)
        if delta.shape != (6,):
            raise ValueError(f"delta must be 6-element vector, got shape {delta.shape}")
        return Pose3(self._R.retract(delta[:3]), self._t + self._R.rotate(delta[3:]))

    def local_coordinates(self, other: "Pose3") -> np.ndarray:
        omega = self._R.local_coordinates(other._R)
        v = self._R.unrotate(other._t - self._t)
        return np.concatenate([omega, v])

    def equals(self, other: "Pose3", tol: float = 1e-9) -> bool:
        if not isinstance(other, Pose3):
            return False
        return (self._R.equals(other._R, tol) and
                bool(np.allclose(self._t, other._t, rtol=0.0, atol=tol)))

    def __repr__(self) -> str:
        return f"Pose3(R={self._R!r}, t={np.array2string(self._t, precision=6)})"
