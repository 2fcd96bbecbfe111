"""Solver configuration and result models."""

from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, Field


class SolverSettings(BaseModel):
    """Solver configuration settings."""

    method: Literal["lm", "gauss_newton"] = Field(default="lm", description="Optimization method")
    max_iterations: int = Field(default=100, gt=0, description="Maximum solver iterations")
    tolerance: float = Field(default=1e-9, gt=0, description="Absolute cost-decrease tolerance")
    relative_tolerance: float = Field(default=1e-9, gt=0, description="Relative cost-decrease tolerance")
    parameter_tolerance: float = Field(default=1e-10, gt=0, description="Step-norm tolerance")
    initial_damping: float = Field(default=1e-3, gt=0, description="Initial Levenberg-Marquardt damping")
    max_workers: Optional[int] = Field(
        default=None,
        gt=0,
        description="Threads used to linearize factors (None = serial)"
    )
    compute_diagnostics: bool = Field(
        default=True,
        description="Compute residual and nullspace diagnostics after solving"
    )

    def to_options(self):
        """Convert to solver options."""
        from ..solver.manifold_solver import SolverOptions

        return SolverOptions(**self.model_dump())


class SolveResult(BaseModel):
    """Results from optimization solve."""

    success: bool = Field(description="Whether solve succeeded")
    iterations: int = Field(description="Number of iterations performed")
    initial_cost: float = Field(default=0.0, description="Cost at the initial estimate")
    final_cost: float = Field(description="Final optimization cost")
    convergence_reason: str = Field(description="Reason for convergence/termination")
    residuals: Dict[str, float] = Field(
        default_factory=dict,
        description="Per-factor RMS whitened residuals"
    )
    unconstrained_dofs: List[str] = Field(
        default_factory=list,
        description="Tangent directions not constrained by any factor"
    )
    largest_residuals: List[tuple[str, float]] = Field(
        default_factory=list,
        description="Largest residuals by factor ID"
    )
    statistics: Dict[str, float] = Field(
        default_factory=dict,
        description="Whitened residual statistics (rms, max_abs, cost)"
    )
    cost_history: List[float] = Field(default_factory=list, description="Cost after each accepted step")
    computation_time: float = Field(default=0.0, description="Computation time in seconds")
