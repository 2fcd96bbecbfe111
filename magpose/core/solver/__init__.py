"""Nonlinear optimization solvers for magpose."""

from .manifold_solver import ManifoldSolver, SolverOptions
from .diagnostics import SolveDiagnostics, analyze_jacobian_rank

__all__ = [
    "ManifoldSolver",
    "SolverOptions",
    "SolveDiagnostics",
    "analyze_jacobian_rank",
]
