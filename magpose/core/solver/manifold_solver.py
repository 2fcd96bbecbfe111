"""Levenberg-Marquardt and Gauss-Newton over manifold variables."""

import logging
import time
import warnings
import numpy as np
from dataclasses import dataclass
from typing import Any, Dict, Hashable, List, Optional, Tuple

from scipy.linalg import lstsq
from scipy.sparse import csc_matrix, identity
from scipy.sparse.linalg import MatrixRankWarning, spsolve

from ..models.solve import SolveResult
from ..optimization.factor_graph import FactorGraph
from .diagnostics import SolveDiagnostics

logger = logging.getLogger(__name__)

Values = Dict[Hashable, Any]


@dataclass
class SolverOptions:
    """Options for the manifold solver."""

    method: str = "lm"  # "lm", "gauss_newton"
    max_iterations: int = 100
    tolerance: float = 1e-9
    relative_tolerance: float = 1e-9
    parameter_tolerance: float = 1e-10
    initial_damping: float = 1e-3
    max_workers: Optional[int] = None
    compute_diagnostics: bool = True


def solve_normal_equations(H: csc_matrix, b: np.ndarray) -> np.ndarray:
    """Solve H x = b, falling back to least squares when H is singular."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", MatrixRankWarning)
        x = np.atleast_1d(spsolve(H, b))

    if not np.all(np.isfinite(x)):
        x = lstsq(H.toarray(), b)[0]

    return x


class ManifoldSolver:
    """Nonlinear least squares solver that updates variables by retraction.

    Each iteration linearizes every factor at the current estimate, solves the
    sparse normal equations for a tangent step and retracts each free variable.
    """

    def __init__(self, options: Optional[SolverOptions] = None):
        """Initialize solver.

        Args:
            options: Solver options
        """
        self.options = options or SolverOptions()
        self.diagnostics = SolveDiagnostics()
        self.cost_history: List[float] = []

        if self.options.method not in ("lm", "gauss_newton"):
            raise ValueError(f"Unknown method: {self.options.method}")

    def solve(self, factor_graph: FactorGraph) -> SolveResult:
        """Optimize the graph and write the estimate back into it.

        Args:
            factor_graph: Factor graph to optimize

        Returns:
            Solve result with diagnostics
        """
        start_time = time.time()
        values = factor_graph.values()
        initial_cost = factor_graph.error(values)
        self.cost_history = [initial_cost]

        _, n_params = factor_graph.free_variable_offsets()
        if n_params == 0:
            return SolveResult(
                success=True,
                iterations=0,
                initial_cost=initial_cost,
                final_cost=initial_cost,
                convergence_reason="No free variables",
                cost_history=self.cost_history.copy(),
                computation_time=time.time() - start_time
            )

        logger.info(
            f"Solving {len(factor_graph.factors)} factors over {n_params} parameters "
            f"with {self.options.method}, initial cost {initial_cost:.6g}"
        )

        try:
            if self.options.method == "lm":
                values, iterations, reason = self._levenberg_marquardt(factor_graph, values)
            else:
                values, iterations, reason = self._gauss_newton(factor_graph, values)
        except np.linalg.LinAlgError as e:
            logger.warning(f"Linear solve failed: {e}")
            return SolveResult(
                success=False,
                iterations=len(self.cost_history) - 1,
                initial_cost=initial_cost,
                final_cost=self.cost_history[-1],
                convergence_reason=f"Solver error: {e}",
                cost_history=self.cost_history.copy(),
                computation_time=time.time() - start_time
            )

        factor_graph.update_values(values)
        diagnostics = {}
        if self.options.compute_diagnostics:
            diagnostics = self.diagnostics.compute_diagnostics(factor_graph, self.options.max_workers)
        final_cost = self.cost_history[-1]

        logger.info(f"{reason} after {iterations} iterations, final cost {final_cost:.6g}")

        return SolveResult(
            success=reason.startswith("Converged"),
            iterations=iterations,
            initial_cost=initial_cost,
            final_cost=final_cost,
            convergence_reason=reason,
            residuals=diagnostics.get("residuals", {}),
            unconstrained_dofs=diagnostics.get("unconstrained_dofs", []),
            largest_residuals=diagnostics.get("largest_residuals", []),
            statistics=diagnostics.get("statistics", {}),
            cost_history=self.cost_history.copy(),
            computation_time=time.time() - start_time
        )

    def _linear_system(
        self, factor_graph: FactorGraph, values: Values
    ) -> Tuple[csc_matrix, np.ndarray]:
        """Build H = J^T J and g = J^T r at ``values``."""
        r, J, _ = factor_graph.linearize(values, max_workers=self.options.max_workers)
        H = (J.T @ J).tocsc()
        g = J.T @ r
        return H, np.asarray(g).ravel()

    def _converged(self, previous_cost: float, cost: float) -> Optional[str]:
        reduction = previous_cost - cost
        if cost < self.options.tolerance:
            return "Converged: cost below tolerance"
        if abs(reduction) < self.options.tolerance:
            return "Converged: absolute cost decrease below tolerance"
        if abs(reduction) < self.options.relative_tolerance * previous_cost:
            return "Converged: relative cost decrease below tolerance"
        return None

    def _gauss_newton(
        self, factor_graph: FactorGraph, values: Values
    ) -> Tuple[Values, int, str]:
        """Gauss-Newton: solve (J^T J) d = -J^T r and retract."""
        cost = self.cost_history[-1]

        for iteration in range(1, self.options.max_iterations + 1):
            H, g = self._linear_system(factor_graph, values)
            d = solve_normal_equations(H, -g)

            values = factor_graph.retract(d, values)
            previous_cost, cost = cost, factor_graph.error(values)
            self.cost_history.append(cost)
            logger.debug(f"Iteration {iteration}: cost {cost:.6g}, |d| {np.linalg.norm(d):.3g}")

            reason = self._converged(previous_cost, cost)
            if reason is not None:
                return values, iteration, reason
            if np.linalg.norm(d) < self.options.parameter_tolerance:
                return values, iteration, "Converged: step below parameter tolerance"

        return values, self.options.max_iterations, "Maximum iterations reached"

    def _levenberg_marquardt(
        self, factor_graph: FactorGraph, values: Values
    ) -> Tuple[Values, int, str]:
        """Levenberg-Marquardt with gain-ratio damping control.

        Solves (J^T J + mu I) d = -J^T r. A step is accepted when the actual
        cost reduction is positive relative to the reduction predicted by the
        linear model, 0.5 * d^T (mu d - g); mu then shrinks by
        max(1/3, 1 - (2 rho - 1)^3). Rejected steps grow mu by a doubling nu.
        """
        cost = self.cost_history[-1]
        mu = self.options.initial_damping
        nu = 2.0

        for iteration in range(1, self.options.max_iterations + 1):
            H, g = self._linear_system(factor_graph, values)
            H_damped = H + mu * identity(H.shape[0], format="csc")
            d = solve_normal_equations(H_damped, -g)

            new_values = factor_graph.retract(d, values)
            new_cost = factor_graph.error(new_values)

            actual_reduction = cost - new_cost
            predicted_reduction = 0.5 * float(np.dot(d, mu * d - g))
            gain = actual_reduction / predicted_reduction if predicted_reduction > 0 else 0.0

            if gain > 0:
                values = new_values
                previous_cost, cost = cost, new_cost
                self.cost_history.append(cost)
                mu *= max(1.0 / 3.0, 1.0 - (2.0 * gain - 1.0) ** 3)
                nu = 2.0
                logger.debug(f"Iteration {iteration}: accepted, cost {cost:.6g}, mu {mu:.3g}")

                reason = self._converged(previous_cost, cost)
                if reason is not None:
                    return values, iteration, reason
            else:
                mu *= nu
                nu *= 2.0
                logger.debug(f"Iteration {iteration}: rejected, mu {mu:.3g}")

            if np.linalg.norm(d) < self.options.parameter_tolerance:
                return values, iteration, "Converged: step below parameter tolerance"

        return values, self.options.max_iterations, "Maximum iterations reached"
