"""Jacobian computation utilities."""

import numpy as np
from typing import Any, Callable


def finite_difference_jacobian(
    func: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    h: float = 1e-8,
    method: str = "central"
) -> np.ndarray:
    """Compute Jacobian using finite differences.

    Args:
        func: Function that takes x and returns residual vector
        x: Input parameters
        h: Step size for finite differences
        method: Finite difference method ("forward", "backward", "central")

    Returns:
        Jacobian matrix J where J[i,j] = df_i/dx_j
    """
    x = np.atleast_1d(np.asarray(x, dtype=float))
    f0 = np.atleast_1d(func(x))

    m, n = len(f0), len(x)
    J = np.zeros((m, n))

    if method == "forward":
        for j in range(n):
            x_plus = x.copy()
            x_plus[j] += h
            J[:, j] = (func(x_plus) - f0) / h

    elif method == "backward":
        for j in range(n):
            x_minus = x.copy()
            x_minus[j] -= h
            J[:, j] = (f0 - func(x_minus)) / h

    elif method == "central":
        for j in range(n):
            x_plus = x.copy()
            x_minus = x.copy()
            x_plus[j] += h
            x_minus[j] -= h
            J[:, j] = (func(x_plus) - func(x_minus)) / (2 * h)

    else:
        raise ValueError(f"Unknown finite difference method: {method}")

    return J


def numerical_manifold_jacobian(
    func: Callable[[Any], np.ndarray],
    value: Any,
    h: float = 1e-6,
    method: str = "central"
) -> np.ndarray:
    """Differentiate ``func`` with respect to the tangent coordinates of ``value``.

    The perturbation ``delta`` is applied through ``value.retract(delta)``, which
    matches the convention analytic Jacobians are expressed in.

    Args:
        func: Function of a manifold value returning a vector
        value: Linearization point (must provide ``dimension`` and ``retract``)
        h: Step size in tangent coordinates
        method: Finite difference method

    Returns:
        Jacobian matrix of shape (len(func(value)), value.dimension)
    """
    return finite_difference_jacobian(
        lambda delta: np.asarray(func(value.retract(delta)), dtype=float),
        np.zeros(value.dimension),
        h=h,
        method=method,
    )


def check_jacobian(
    func: Callable[[np.ndarray], np.ndarray],
    jacobian_func: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    h: float = 1e-8,
    atol: float = 1e-6,
    rtol: float = 1e-6
) -> tuple[bool, float, np.ndarray]:
    """Check analytic Jacobian against finite differences.

    Args:
        func: Function that computes residuals
        jacobian_func: Function that computes analytic Jacobian
        x: Input parameters
        h: Step size for finite differences
        atol: Absolute tolerance
        rtol: Relative tolerance

    Returns:
        Tuple of (is_correct, max_error, error_matrix)
    """
    J_analytic = jacobian_func(x)
    J_numeric = finite_difference_jacobian(func, x, h)

    error = np.abs(J_analytic - J_numeric)
    relative_error = error / (np.abs(J_analytic) + 1e-12)

    max_error = np.max(error)
    max_rel_error = np.max(relative_error)

    is_correct = np.allclose(J_analytic, J_numeric, atol=atol, rtol=rtol)

    return is_correct, max(max_error, max_rel_error), error
