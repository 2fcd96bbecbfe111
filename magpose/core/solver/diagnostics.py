"""Solver diagnostics and analysis tools."""

import numpy as np
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union
from scipy.linalg import svd
from scipy.sparse import csr_matrix, issparse, spmatrix
from scipy.sparse.csgraph import connected_components

from ..optimization.factor_graph import FactorGraph


def factor_id(index: int, factor) -> str:
    """Readable identifier of a factor within its graph."""
    keys = ",".join(str(k) for k in factor.keys)
    return f"{index}:{type(factor).__name__}({keys})"


def _group(labels: np.ndarray, items: np.ndarray, n_groups: int) -> List[np.ndarray]:
    order = np.argsort(labels, kind="stable")
    counts = np.bincount(labels, minlength=n_groups)
    return np.split(items[order], np.cumsum(counts)[:-1])


def _connected_blocks(jacobian: spmatrix) -> Iterator[Tuple[np.ndarray, np.ndarray, np.ndarray]]:
    """Split a sparse Jacobian into independent dense blocks.

    Yields:
        Tuples of (column indices, row indices, dense block). Columns touched
        by no row form blocks of their own with no rows.
    """
    J = csr_matrix(jacobian, copy=True)
    J.eliminate_zeros()

    pattern = J.copy()
    pattern.data = np.ones_like(pattern.data)
    n_components, component = connected_components(pattern.T @ pattern, directed=False)

    row_ids = np.flatnonzero(np.diff(J.indptr))
    row_component = component[J.indices[J.indptr[row_ids]]]

    column_groups = _group(component, np.arange(J.shape[1]), n_components)
    row_groups = _group(row_component, row_ids, n_components)

    for columns, rows in zip(column_groups, row_groups):
        yield columns, rows, J[rows][:, columns].toarray()


class SolveDiagnostics:
    """Diagnostics and analysis for optimization results."""

    def __init__(self, null_threshold: float = 0.5, rank_tolerance: float = 1e-9):
        """Initialize diagnostics.

        Args:
            null_threshold: Report a tangent direction as unconstrained when its
                projection onto the Jacobian nullspace exceeds this norm
            rank_tolerance: Relative singular value cutoff for the rank
        """
        self.null_threshold = null_threshold
        self.rank_tolerance = rank_tolerance

    def compute_diagnostics(
        self,
        factor_graph: FactorGraph,
        max_workers: Optional[int] = None
    ) -> Dict[str, Any]:
        """Compute diagnostics at the graph's current values.

        Args:
            factor_graph: Factor graph
            max_workers: Threads used to linearize factors

        Returns:
            Dictionary with diagnostic information
        """
        residuals, jacobian, offsets = factor_graph.linearize(max_workers=max_workers)

        per_factor = self._compute_per_factor_residuals(factor_graph, residuals)

        return {
            "residuals": per_factor,
            "largest_residuals": self._find_largest_residuals(per_factor),
            "unconstrained_dofs": self._analyze_unconstrained_dofs(factor_graph, jacobian, offsets),
            "statistics": self._compute_statistics(residuals),
        }

    def _compute_per_factor_residuals(
        self,
        factor_graph: FactorGraph,
        residuals: np.ndarray
    ) -> Dict[str, float]:
        """RMS whitened residual of each factor."""
        per_factor = {}
        residual_offset = 0

        for index, factor in enumerate(factor_graph.factors):
            residual_dim = factor.residual_dimension()
            factor_residuals = residuals[residual_offset:residual_offset + residual_dim]
            per_factor[factor_id(index, factor)] = float(np.sqrt(np.mean(factor_residuals**2)))
            residual_offset += residual_dim

        return per_factor

    def _analyze_unconstrained_dofs(
        self,
        factor_graph: FactorGraph,
        jacobian: spmatrix,
        offsets: Dict[Any, int]
    ) -> List[str]:
        """Tangent directions lying (mostly) in the Jacobian nullspace.

        Columns that share no factor are decoupled, so the nullspace is found
        per connected block of the sparsity pattern. The rank cutoff is taken
        relative to the largest singular value over all blocks, which matches
        an SVD of the whole Jacobian.

        Returns:
            Labels of the form ``"<variable>.<tangent label>"``
        """
        n_params = jacobian.shape[1]
        if n_params == 0:
            return []

        blocks = []
        for columns, rows, block in _connected_blocks(jacobian):
            if rows.size == 0:
                blocks.append((columns, np.zeros(0), np.eye(columns.size)))
                continue
            _, s, Vt = svd(block, full_matrices=block.shape[0] < block.shape[1])
            blocks.append((columns, s, Vt))

        largest = max((s[0] for _, s, _ in blocks if s.size), default=0.0)
        cutoff = self.rank_tolerance * largest

        free_columns = []
        for columns, s, Vt in blocks:
            rank = int(np.sum(s > cutoff))
            null_basis = Vt[rank:].T
            if null_basis.shape[1] == 0:
                continue
            projection = np.linalg.norm(null_basis, axis=1)
            free_columns.extend(int(c) for c in columns[projection > self.null_threshold])

        column_labels = self._column_labels(factor_graph, offsets, n_params)
        return [column_labels[c] for c in sorted(free_columns)]

    def _column_labels(
        self,
        factor_graph: FactorGraph,
        offsets: Dict[Any, int],
        n_params: int
    ) -> List[str]:
        labels = [str(c) for c in range(n_params)]
        for var_id, offset in offsets.items():
            value = factor_graph.variables[var_id].value
            names = value.tangent_labels() if hasattr(value, "tangent_labels") else \
                [str(i) for i in range(value.dimension)]
            for i, name in enumerate(names):
                labels[offset + i] = f"{var_id}.{name}"
        return labels

    def _find_largest_residuals(
        self,
        per_factor: Dict[str, float],
        n_largest: int = 10
    ) -> List[Tuple[str, float]]:
        ranked = sorted(per_factor.items(), key=lambda item: item[1], reverse=True)
        return ranked[:n_largest]

    def _compute_statistics(self, residuals: np.ndarray) -> Dict[str, float]:
        """Compute overall residual statistics."""
        if len(residuals) == 0:
            return {"rms": 0.0, "max_abs": 0.0, "cost": 0.0}

        return {
            "rms": float(np.sqrt(np.mean(residuals**2))),
            "max_abs": float(np.max(np.abs(residuals))),
            "cost": float(0.5 * np.sum(residuals**2)),
        }


def analyze_jacobian_rank(jacobian: Union[np.ndarray, spmatrix], tolerance: float = 1e-6) -> Dict[str, Any]:
    """Analyze Jacobian matrix rank and condition.

    Args:
        jacobian: Jacobian matrix (dense or sparse)
        tolerance: Numerical tolerance for rank determination

    Returns:
        Dictionary with rank analysis
    """
    if issparse(jacobian):
        jacobian = jacobian.toarray()

    if jacobian.size == 0:
        return {
            "rank": 0,
            "full_rank": True,
            "condition_number": 1.0,
            "singular_values": [],
            "nullspace_dimension": 0
        }

    s = svd(jacobian, compute_uv=False)

    rank = int(np.sum(s > tolerance * s[0])) if s[0] > 0 else 0
    full_rank = rank == min(jacobian.shape)
    nullspace_dim = jacobian.shape[1] - rank
    condition_number = s[0] / s[-1] if s[-1] > 0 else np.inf

    return {
        "rank": rank,
        "full_rank": bool(full_rank),
        "condition_number": float(condition_number),
        "singular_values": s.tolist(),
        "nullspace_dimension": int(nullspace_dim),
        "matrix_shape": jacobian.shape,
        "largest_singular_value": float(s[0]),
        "smallest_singular_value": float(s[-1])
    }
