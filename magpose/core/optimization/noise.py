"""Gaussian noise models with optional robust reweighting."""

import numpy as np
from typing import List, Optional, Sequence, Tuple

from ..errors import InvalidArgumentError
from ..math.robust import ROBUST_LOSSES, apply_robust_loss


class NoiseModel:
    """Diagonal Gaussian noise model shared by any number of factors.

    Residuals are whitened by dividing by the per-component standard deviation.
    With a robust loss the whitened system is additionally scaled by
    ``sqrt(w)``, where ``w`` is the loss weight at the Mahalanobis distance.
    Instances are never mutated after construction.
    """

    def __init__(self, sigmas: Sequence[float], loss: str = "none", loss_scale: float = 1.0):
        sigmas = np.array(sigmas, dtype=float).reshape(-1)
        if sigmas.size == 0:
            raise InvalidArgumentError("Noise model needs at least one sigma")
        if not np.all(np.isfinite(sigmas)) or np.any(sigmas <= 0):
            raise InvalidArgumentError(f"Sigmas must be positive and finite, got {sigmas}")
        if loss not in ROBUST_LOSSES:
            raise InvalidArgumentError(f"Unknown loss type: {loss}")
        if not np.isfinite(loss_scale) or loss_scale <= 0:
            raise InvalidArgumentError(f"Loss scale must be positive, got {loss_scale}")

        sigmas.setflags(write=False)
        self._sigmas = sigmas
        self._loss = loss
        self._loss_scale = float(loss_scale)

    @classmethod
    def isotropic(cls, dim: int, sigma: float, **kwargs) -> "NoiseModel":
        return cls(np.full(dim, sigma, dtype=float), **kwargs)

    @classmethod
    def diagonal(cls, sigmas: Sequence[float], **kwargs) -> "NoiseModel":
        return cls(sigmas, **kwargs)

    @classmethod
    def unit(cls, dim: int, **kwargs) -> "NoiseModel":
        return cls(np.ones(dim), **kwargs)

    @property
    def dim(self) -> int:
        return int(self._sigmas.size)

    @property
    def sigmas(self) -> np.ndarray:
        return self._sigmas.copy()

    @property
    def loss_type(self) -> str:
        return self._loss

    @property
    def loss_scale(self) -> float:
        return self._loss_scale

    @property
    def is_robust(self) -> bool:
        return self._loss != "none"

    def _check_dim(self, residual: np.ndarray) -> np.ndarray:
        residual = np.asarray(residual, dtype=float)
        if residual.shape != (self.dim,):
            raise ValueError(f"Residual shape {residual.shape} does not match noise model dim {self.dim}")
        return residual

    def whiten(self, residual: np.ndarray) -> np.ndarray:
        """Divide each residual component by its sigma."""
        return self._check_dim(residual) / self._sigmas

    def distance(self, residual: np.ndarray) -> float:
        """Mahalanobis distance of the residual."""
        return float(np.linalg.norm(self.whiten(residual)))

    def loss(self, residual: np.ndarray) -> float:
        """Cost contribution: 0.5 * |r_w|^2, or rho(|r_w|) for a robust loss."""
        rho, _ = apply_robust_loss(self.distance(residual), self._loss, self._loss_scale)
        return float(rho)

    def whiten_system(
        self, residual: np.ndarray, jacobians: Optional[List[np.ndarray]] = None
    ) -> Tuple[np.ndarray, Optional[List[np.ndarray]]]:
        """Whiten a residual and its Jacobian blocks.

        Args:
            residual: Unwhitened residual
            jacobians: Unwhitened Jacobian blocks (one per variable), or None

        Returns:
            Tuple of (whitened residual, whitened Jacobian blocks or None)
        """
        r_w = self.whiten(residual)
        row_scale = 1.0 / self._sigmas

        if self.is_robust:
            _, weight = apply_robust_loss(np.linalg.norm(r_w), self._loss, self._loss_scale)
            sqrt_w = float(np.sqrt(weight))
            r_w = sqrt_w * r_w
            row_scale = sqrt_w * row_scale

        if jacobians is None:
            return r_w, None
        return r_w, [row_scale[:, None] * np.asarray(J, dtype=float) for J in jacobians]

    def equals(self, other: "NoiseModel", tol: float = 1e-9) -> bool:
        if not isinstance(other, NoiseModel):
            return False
        return (self.dim == other.dim and
                self._loss == other._loss and
                abs(self._loss_scale - other._loss_scale) <= tol and
                bool(np.allclose(self._sigmas, other._sigmas, rtol=0.0, atol=tol)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NoiseModel):
            return NotImplemented
        return self.equals(other)

    def __hash__(self) -> int:
        return hash((self.dim, self._loss))

    def describe(self) -> str:
        text = f"diagonal sigmas {np.array2string(self._sigmas, precision=6)}"
        if self.is_robust:
            text += f", {self._loss} loss (scale {self._loss_scale:g})"
        return text

    def __repr__(self) -> str:
        return f"NoiseModel({self.describe()})"
