"""Factor graph over manifold-valued variables."""

import logging
import numpy as np
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple

from scipy.sparse import csr_matrix

from .noise import NoiseModel

logger = logging.getLogger(__name__)

KeyFormatter = Callable[[Hashable], str]


@dataclass
class Variable:
    """Optimization variable in the factor graph.

    ``value`` is a manifold element (e.g. ``Pose2``/``Pose3``) providing
    ``dimension`` and ``retract``.
    """

    id: Hashable
    value: Any
    is_constant: bool = False

    def __post_init__(self):
        """Validate that the value can be optimized on its manifold."""
        if not hasattr(self.value, "retract") or not hasattr(self.value, "dimension"):
            raise ValueError(f"Variable {self.id}: value {self.value!r} is not a manifold element")

    @property
    def size(self) -> int:
        """Tangent-space dimension of the variable."""
        return int(self.value.dimension)


class Factor(ABC):
    """Abstract base class for noise-model factors.

    Subclasses produce an unwhitened residual ``h(x) - z`` and its Jacobian
    blocks; whitening and robust weighting are delegated to the noise model.
    """

    def __init__(self, noise_model: NoiseModel, keys: Sequence[Hashable]):
        """Initialize factor.

        Args:
            noise_model: Noise model applied to the residual (shared, read-only)
            keys: Keys of the variables this factor depends on
        """
        self._noise_model = noise_model
        self._keys = tuple(keys)

    @property
    def keys(self) -> Tuple[Hashable, ...]:
        return self._keys

    @property
    def noise_model(self) -> NoiseModel:
        return self._noise_model

    @property
    def dim(self) -> int:
        return self._noise_model.dim

    def residual_dimension(self) -> int:
        """Get dimension of residual vector."""
        return self.dim

    @abstractmethod
    def unwhitened_error(
        self, values: Mapping[Hashable, Any], want_jacobians: bool = False
    ) -> Tuple[np.ndarray, Optional[List[np.ndarray]]]:
        """Compute the raw residual and, optionally, one Jacobian per key.

        Args:
            values: Mapping from variable keys to manifold values
            want_jacobians: Whether to compute Jacobian blocks

        Returns:
            Tuple of (residual, list of Jacobians or None)
        """

    @abstractmethod
    def clone(self) -> "Factor":
        """Return an independent copy sharing the noise model."""

    def whitened_error(self, values: Mapping[Hashable, Any]) -> np.ndarray:
        residual, _ = self.unwhitened_error(values)
        r_w, _ = self._noise_model.whiten_system(residual)
        return r_w

    def error(self, values: Mapping[Hashable, Any]) -> float:
        """Cost contribution of this factor at ``values``."""
        residual, _ = self.unwhitened_error(values)
        return self._noise_model.loss(residual)

    def linearize(
        self, values: Mapping[Hashable, Any]
    ) -> Tuple[np.ndarray, List[np.ndarray]]:
        """Whitened residual and Jacobian blocks at ``values``."""
        residual, jacobians = self.unwhitened_error(values, want_jacobians=True)
        return self._noise_model.whiten_system(residual, jacobians)

    def equals(self, other: "Factor", tol: float = 1e-9) -> bool:
        """Same concrete type, keys and noise model."""
        return (type(self) is type(other) and
                self._keys == other._keys and
                self._noise_model.equals(other._noise_model, tol))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Factor):
            return NotImplemented
        return self.equals(other)

    def __hash__(self) -> int:
        # Only the exactly compared fields; tolerance-equal factors must collide
        return hash((type(self), self._keys))

    def describe(self, prefix: str = "", key_formatter: KeyFormatter = str, verbose: bool = False) -> str:
        keys = ", ".join(key_formatter(k) for k in self._keys)
        return (f"{prefix}{type(self).__name__}({keys})\n"
                f"  noise model: {self._noise_model.describe()}")

    def __str__(self) -> str:
        return self.describe()


class NoiseModelFactor1(Factor):
    """Factor on a single variable."""

    def __init__(self, noise_model: NoiseModel, key: Hashable):
        super().__init__(noise_model, [key])

    @property
    def key(self) -> Hashable:
        return self._keys[0]

    @abstractmethod
    def evaluate_error(
        self, value: Any, want_jacobian: bool = False
    ) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        """Residual and optional Jacobian with respect to ``value``."""

    def unwhitened_error(
        self, values: Mapping[Hashable, Any], want_jacobians: bool = False
    ) -> Tuple[np.ndarray, Optional[List[np.ndarray]]]:
        if self.key not in values:
            raise ValueError(f"Variable {self.key} required by {type(self).__name__} has no value")
        residual, H = self.evaluate_error(values[self.key], want_jacobian=want_jacobians)
        return residual, ([H] if want_jacobians else None)


class FactorGraph:
    """Factor graph holding manifold variables and the factors that constrain them."""

    def __init__(self):
        """Initialize empty factor graph."""
        self.variables: Dict[Hashable, Variable] = {}
        self.factors: List[Factor] = []
        self._variable_ordering: List[Hashable] = []

    def add_variable(self, variable_id: Hashable, value: Any, is_constant: bool = False) -> None:
        """Add a variable to the graph.

        Args:
            variable_id: Unique key for the variable
            value: Initial manifold value
            is_constant: Exclude the variable from optimization
        """
        if variable_id in self.variables:
            raise ValueError(f"Variable {variable_id} already exists")

        self.variables[variable_id] = Variable(variable_id, value, is_constant)
        self._variable_ordering.append(variable_id)

    def add_factor(self, factor: Factor) -> None:
        """Add a factor to the graph.

        Args:
            factor: Factor to add
        """
        for var_id in factor.keys:
            if var_id not in self.variables:
                raise ValueError(f"Factor {type(factor).__name__} references unknown variable {var_id}")

        self.factors.append(factor)
        logger.debug(f"Added {type(factor).__name__} on {factor.keys}")

    def get_variable(self, variable_id: Hashable) -> Variable:
        """Get variable by ID."""
        if variable_id not in self.variables:
            raise ValueError(f"Variable {variable_id} not found")
        return self.variables[variable_id]

    def get_variable_ids(self) -> List[Hashable]:
        """Get list of all variable IDs in order."""
        return self._variable_ordering.copy()

    def values(self) -> Dict[Hashable, Any]:
        """Current assignment of every variable."""
        return {var_id: self.variables[var_id].value for var_id in self._variable_ordering}

    def update_values(self, values: Mapping[Hashable, Any]) -> None:
        """Overwrite variable values from an assignment."""
        for var_id, value in values.items():
            self.get_variable(var_id).value = value

    def free_variable_offsets(self) -> Tuple[Dict[Hashable, int], int]:
        """Column offset of each free variable and the total tangent dimension."""
        offsets = {}
        offset = 0
        for var_id in self._variable_ordering:
            variable = self.variables[var_id]
            if not variable.is_constant:
                offsets[var_id] = offset
                offset += variable.size
        return offsets, offset

    def error(self, values: Optional[Mapping[Hashable, Any]] = None) -> float:
        """Total cost over all factors."""
        values = self.values() if values is None else values
        return float(sum(factor.error(values) for factor in self.factors))

    def compute_all_residuals(self, values: Optional[Mapping[Hashable, Any]] = None) -> np.ndarray:
        """Concatenated whitened residuals of all factors."""
        values = self.values() if values is None else values
        residuals = [factor.whitened_error(values) for factor in self.factors]

        if not residuals:
            return np.array([])

        return np.concatenate(residuals)

    def linearize(
        self,
        values: Optional[Mapping[Hashable, Any]] = None,
        max_workers: Optional[int] = None
    ) -> Tuple[np.ndarray, csr_matrix, Dict[Hashable, int]]:
        """Linearize every factor and stack the whitened system.

        Args:
            values: Assignment to linearize at (defaults to current values)
            max_workers: Linearize factors concurrently on this many threads

        Returns:
            Tuple of (residual vector, sparse Jacobian over free variables,
            column offset per free variable)
        """
        values = self.values() if values is None else values
        offsets, n_params = self.free_variable_offsets()

        if max_workers and len(self.factors) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                linearized = list(executor.map(lambda f: f.linearize(values), self.factors))
        else:
            linearized = [factor.linearize(values) for factor in self.factors]

        residuals = []
        rows, cols, data = [], [], []
        residual_offset = 0

        for factor, (r_w, jacobians) in zip(self.factors, linearized):
            for var_id, J in zip(factor.keys, jacobians):
                if var_id not in offsets:
                    continue
                block_rows, block_cols = np.indices(J.shape)
                rows.append(block_rows.ravel() + residual_offset)
                cols.append(block_cols.ravel() + offsets[var_id])
                data.append(J.ravel())

            residuals.append(r_w)
            residual_offset += len(r_w)

        if data:
            jacobian = csr_matrix(
                (np.concatenate(data), (np.concatenate(rows), np.concatenate(cols))),
                shape=(residual_offset, n_params)
            )
        else:
            jacobian = csr_matrix((residual_offset, n_params))

        residual = np.concatenate(residuals) if residuals else np.array([])
        return residual, jacobian, offsets

    def retract(
        self, delta: np.ndarray, values: Optional[Mapping[Hashable, Any]] = None
    ) -> Dict[Hashable, Any]:
        """Apply a stacked tangent update to every free variable.

        Args:
            delta: Update vector ordered like the Jacobian columns
            values: Assignment to update (defaults to current values)

        Returns:
            New assignment; constant variables are carried over unchanged
        """
        values = dict(self.values() if values is None else values)
        offsets, n_params = self.free_variable_offsets()

        if len(delta) != n_params:
            raise ValueError(f"Parameter vector size mismatch: {len(delta)} vs {n_params}")

        for var_id, offset in offsets.items():
            size = self.variables[var_id].size
            values[var_id] = values[var_id].retract(delta[offset:offset + size])

        return values

    def summary(self) -> Dict[str, Any]:
        """Get summary information about the factor graph.

        Returns:
            Dictionary with graph statistics
        """
        _, n_params = self.free_variable_offsets()
        constant_vars = sum(1 for v in self.variables.values() if v.is_constant)

        var_type_counts: Dict[str, int] = {}
        for variable in self.variables.values():
            var_type = type(variable.value).__name__
            var_type_counts[var_type] = var_type_counts.get(var_type, 0) + 1

        factor_type_counts: Dict[str, int] = {}
        for factor in self.factors:
            factor_type = type(factor).__name__
            factor_type_counts[factor_type] = factor_type_counts.get(factor_type, 0) + 1

        return {
            "variables": {
                "total": len(self.variables),
                "constant": constant_vars,
                "free": len(self.variables) - constant_vars,
                "total_parameters": n_params,
                "by_type": var_type_counts
            },
            "factors": {
                "total": len(self.factors),
                "total_residuals": sum(f.residual_dimension() for f in self.factors),
                "by_type": factor_type_counts
            }
        }
