"""Rotation and pose manifolds plus numerical helpers."""

from .rotations import Rot2, Rot3, skew_symmetric, so3_exp, so3_log, wrap_angle
from .poses import Pose2, Pose3
from .robust import huber_loss, cauchy_loss, apply_robust_loss
from .jacobians import finite_difference_jacobian, numerical_manifold_jacobian, check_jacobian

__all__ = [
    "Rot2",
    "Rot3",
    "Pose2",
    "Pose3",
    "skew_symmetric",
    "so3_exp",
    "so3_log",
    "wrap_angle",
    "huber_loss",
    "cauchy_loss",
    "apply_robust_loss",
    "finite_difference_jacobian",
    "numerical_manifold_jacobian",
    "check_jacobian",
]
