"""Robust loss functions for iteratively reweighted least squares.

Each loss takes a (whitened) residual magnitude and returns ``(rho, weight)``
where ``weight = rho'(r) / r`` scales the squared-error contribution.
"""

import numpy as np
from typing import Tuple, Union

ArrayLike = Union[float, np.ndarray]


def huber_loss(residual: ArrayLike, delta: float = 1.0) -> Tuple[np.ndarray, np.ndarray]:
    """Huber robust loss function.

    Args:
        residual: Residual values
        delta: Threshold parameter

    Returns:
        Tuple of (rho, weights)
    """
    residual = np.asarray(residual, dtype=float)
    abs_residual = np.abs(residual)
    is_inlier = abs_residual <= delta

    rho = np.where(
        is_inlier,
        0.5 * residual**2,
        delta * (abs_residual - 0.5 * delta)
    )

    # Guard the division, inliers take weight 1 anyway
    safe_abs = np.maximum(abs_residual, 1e-12)
    weights = np.where(is_inlier, 1.0, delta / safe_abs)

    return rho, weights


def cauchy_loss(residual: ArrayLike, sigma: float = 1.0) -> Tuple[np.ndarray, np.ndarray]:
    """Cauchy robust loss function.

    Args:
        residual: Residual values
        sigma: Scale parameter

    Returns:
        Tuple of (rho, weights)
    """
    residual = np.asarray(residual, dtype=float)
    sigma2 = sigma**2
    r2_over_sigma2 = residual**2 / sigma2

    rho = 0.5 * sigma2 * np.log1p(r2_over_sigma2)
    weights = 1.0 / (1 + r2_over_sigma2)

    return rho, weights


def no_loss(residual: ArrayLike) -> Tuple[np.ndarray, np.ndarray]:
    """Plain squared loss: rho = 0.5 * r^2, weight = 1."""
    residual = np.asarray(residual, dtype=float)
    rho = 0.5 * residual**2
    weights = np.ones_like(residual)
    return rho, weights


ROBUST_LOSSES = ("none", "huber", "cauchy")


def apply_robust_loss(residual: ArrayLike, loss_type: str = "none", scale: float = 1.0) -> Tuple[np.ndarray, np.ndarray]:
    """Apply robust loss function.

    Args:
        residual: Residual values
        loss_type: Type of loss ("none", "huber", "cauchy")
        scale: Huber delta or Cauchy sigma

    Returns:
        Tuple of (rho, weights)
    """
    if loss_type == "none":
        return no_loss(residual)
    elif loss_type == "huber":
        return huber_loss(residual, scale)
    elif loss_type == "cauchy":
        return cauchy_loss(residual, scale)
    else:
        raise ValueError(f"Unknown loss type: {loss_type}")
