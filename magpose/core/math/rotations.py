"""SO(2) and SO(3) rotation groups with tangent-space operations."""

import numpy as np
from typing import Optional, Tuple, Union


def wrap_angle(theta: float) -> float:
    """Wrap angle to [-pi, pi)."""
    return float((theta + np.pi) % (2 * np.pi) - np.pi)


def skew_symmetric(v: np.ndarray) -> np.ndarray:
    """Create skew-symmetric matrix from 3D vector."""
    v = np.asarray(v, dtype=float)
    if v.shape != (3,):
        raise ValueError(f"v must be 3-element vector, got shape {v.shape}")

    return np.array([
        [0, -v[2], v[1]],
        [v[2], 0, -v[0]],
        [-v[1], v[0], 0]
    ])


def quat_to_matrix(q: np.ndarray) -> np.ndarray:
    """Convert quaternion [w, x, y, z] to rotation matrix."""
    q = np.asarray(q, dtype=float)
    if q.shape != (4,):
        raise ValueError(f"Quaternion must be 4-element vector, got shape {q.shape}")

    norm = np.linalg.norm(q)
    if norm < 1e-12:
        raise ValueError("Cannot normalize zero quaternion")
    w, x, y, z = q / norm

    return np.array([
        [1 - 2*(y**2 + z**2), 2*(x*y - w*z), 2*(x*z + w*y)],
        [2*(x*y + w*z), 1 - 2*(x**2 + z**2), 2*(y*z - w*x)],
        [2*(x*z - w*y), 2*(y*z + w*x), 1 - 2*(x**2 + y**2)]
    ])


def so3_exp(phi: np.ndarray) -> np.ndarray:
    """Exponential map from rotation vector to rotation matrix (Rodrigues).

    Args:
        phi: 3-element rotation vector (axis * angle)

    Returns:
        3x3 rotation matrix
    """
    phi = np.asarray(phi, dtype=float)
    if phi.shape != (3,):
        raise ValueError(f"phi must be 3-element vector, got shape {phi.shape}")

    theta = np.linalg.norm(phi)
    K = skew_symmetric(phi)

    if theta < 1e-6:
        # Second-order expansion
        return np.eye(3) + K + 0.5 * K @ K

    return (np.eye(3) + (np.sin(theta) / theta) * K +
            ((1 - np.cos(theta)) / theta**2) * K @ K)


def so3_log(R: np.ndarray) -> np.ndarray:
    """Logarithm map from rotation matrix to rotation vector.

    Args:
        R: 3x3 rotation matrix

    Returns:
        3-element rotation vector
    """
    R = np.asarray(R, dtype=float)
    if R.shape != (3, 3):
        raise ValueError(f"R must be 3x3 matrix, got shape {R.shape}")

    trace = np.trace(R)
    theta = np.arccos(np.clip((trace - 1) / 2, -1, 1))
    vee = np.array([R[2, 1] - R[1, 2], R[0, 2] - R[2, 0], R[1, 0] - R[0, 1]])

    if theta < 1e-6:
        return 0.5 * vee

    if np.pi - theta < 1e-6:
        # sin(theta) ~ 0, recover the axis from the symmetric part
        B = 0.5 * (R + np.eye(3))
        k = int(np.argmax(np.diag(B)))
        axis = B[:, k] / np.sqrt(B[k, k])
        return theta * axis / np.linalg.norm(axis)

    return theta / (2 * np.sin(theta)) * vee


def _as_vector(v, size: int, name: str = "v") -> np.ndarray:
    v = np.asarray(v, dtype=float)
    if v.shape != (size,):
        raise ValueError(f"{name} must be {size}-element vector, got shape {v.shape}")
    return v


class Rot2:
    """Planar rotation, parametrized by a single angle.

    The tangent space is one-dimensional: ``retract([w])`` rotates by ``w``.
    """

    dimension = 1

    def __init__(self, theta: float = 0.0):
        self._theta = wrap_angle(float(theta))

    @classmethod
    def identity(cls) -> "Rot2":
        return cls(0.0)

    @property
    def theta(self) -> float:
        return self._theta

    def matrix(self) -> np.ndarray:
        c, s = np.cos(self._theta), np.sin(self._theta)
        return np.array([[c, -s], [s, c]])

    def compose(self, other: "Rot2") -> "Rot2":
        return Rot2(self._theta + other._theta)

    def __mul__(self, other: "Rot2") -> "Rot2":
        return self.compose(other)

    def inverse(self) -> "Rot2":
        return Rot2(-self._theta)

    def rotate(self, v: np.ndarray) -> np.ndarray:
        return self.matrix() @ _as_vector(v, 2)

    def unrotate(
        self, v: np.ndarray, want_jacobian: bool = False
    ) -> Union[np.ndarray, Tuple[np.ndarray, np.ndarray]]:
        """Apply the inverse rotation to ``v``.

        Args:
            v: 2D vector
            want_jacobian: Also return d(R^T v)/d(theta), a 2x1 matrix

        Returns:
            ``R^T v``, or ``(R^T v, H)`` when ``want_jacobian`` is set
        """
        q = self.matrix().T @ _as_vector(v, 2)
        if not want_jacobian:
            return q
        H = np.array([[q[1]], [-q[0]]])
        return q, H

    def retract(self, delta: np.ndarray) -> "Rot2":
        delta = _as_vector(np.atleast_1d(delta), 1, "delta")
        return Rot2(self._theta + delta[0])

    def local_coordinates(self, other: "Rot2") -> np.ndarray:
        return np.array([wrap_angle(other._theta - self._theta)])

    def equals(self, other: "Rot2", tol: float = 1e-9) -> bool:
        if not isinstance(other, Rot2):
            return False
        return abs(wrap_angle(self._theta - other._theta)) <= tol

    def __repr__(self) -> str:
        return f"Rot2(theta={self._theta:.6f})"


class Rot3:
    """Spatial rotation stored as an orthonormal 3x3 matrix.

    Perturbations are applied on the right: ``retract(w) = R * Exp(w)``.
    """

    dimension = 3

    def __init__(self, matrix: Optional[np.ndarray] = None):
        if matrix is None:
            R = np.eye(3)
        else:
            R = np.array(matrix, dtype=float)
            if R.shape != (3, 3):
                raise ValueError(f"Rotation matrix must be 3x3, got shape {R.shape}")
            if not np.allclose(R @ R.T, np.eye(3), atol=1e-6) or np.linalg.det(R) < 0:
                raise ValueError("Rotation matrix must be orthonormal with det +1")
        R.setflags(write=False)
        self._R = R

    @classmethod
    def identity(cls) -> "Rot3":
        return cls()

    @classmethod
    def from_rotation_vector(cls, phi: np.ndarray) -> "Rot3":
        return cls(so3_exp(phi))

    @classmethod
    def from_axis_angle(cls, axis: np.ndarray, angle: float) -> "Rot3":
        axis = _as_vector(axis, 3, "axis")
        norm = np.linalg.norm(axis)
        if norm < 1e-12:
            return cls()
        return cls(so3_exp(axis / norm * angle))

    @classmethod
    def from_quaternion(cls, q: np.ndarray) -> "Rot3":
        """Create rotation from unit quaternion [w, x, y, z]."""
        return cls(quat_to_matrix(q))

    @classmethod
    def Rx(cls, angle: float) -> "Rot3":
        return cls.from_axis_angle(np.array([1.0, 0.0, 0.0]), angle)

    @classmethod
    def Ry(cls, angle: float) -> "Rot3":
        return cls.from_axis_angle(np.array([0.0, 1.0, 0.0]), angle)

    @classmethod
    def Rz(cls, angle: float) -> "Rot3":
        return cls.from_axis_angle(np.array([0.0, 0.0, 1.0]), angle)

    def matrix(self) -> np.ndarray:
        return self._R.copy()

    def compose(self, other: "Rot3") -> "Rot3":
        return Rot3(self._R @ other._R)

    def __mul__(self, other: "Rot3") -> "Rot3":
        return self.compose(other)

    def inverse(self) -> "Rot3":
        return Rot3(self._R.T)

    def rotate(self, v: np.ndarray) -> np.ndarray:
        return self._R @ _as_vector(v, 3)

    def unrotate(
        self, v: np.ndarray, want_jacobian: bool = False
    ) -> Union[np.ndarray, Tuple[np.ndarray, np.ndarray]]:
        """Apply the inverse rotation to ``v``.

        With ``R' = R * Exp(w)``, ``R'^T v = Exp(-w) R^T v ~ q + [q]x w``, so
        the 3x3 Jacobian with respect to ``w`` is ``skew(q)``.

        Args:
            v: 3D vector
            want_jacobian: Also return d(R^T v)/dw

        Returns:
            ``R^T v``, or ``(R^T v, H)`` when ``want_jacobian`` is set
        """
        q = self._R.T @ _as_vector(v, 3)
        if not want_jacobian:
            return q
        return q, skew_symmetric(q)

    def retract(self, omega: np.ndarray) -> "Rot3":
        return Rot3(self._R @ so3_exp(_as_vector(omega, 3, "omega")))

    def local_coordinates(self, other: "Rot3") -> np.ndarray:
        return so3_log(self._R.T @ other._R)

    def equals(self, other: "Rot3", tol: float = 1e-9) -> bool:
        if not isinstance(other, Rot3):
            return False
        return bool(np.allclose(self._R, other._R, rtol=0.0, atol=tol))

    def __repr__(self) -> str:
        return f"Rot3(rotvec={np.array2string(so3_log(self._R), precision=6)})"
