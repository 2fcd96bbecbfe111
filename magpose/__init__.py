"""magpose - magnetometer pose factors for factor-graph estimation

Residual and analytic Jacobian of a magnetometer reading with respect to a
Pose2 or Pose3, plus the manifold types, noise models, factor graph and solver
needed to use it.
"""

__version__ = "0.1.0"

# Errors
from .core.errors import DimensionMismatchError, InvalidArgumentError

# Manifolds
from .core.math.rotations import Rot2, Rot3
from .core.math.poses import Pose2, Pose3

# Optimization
from .core.optimization.noise import NoiseModel
from .core.optimization.factor_graph import Factor, FactorGraph
from .core.optimization.mag_pose_factor import MagPoseFactor, MagPoseFactor2, MagPoseFactor3
from .core.solver.manifold_solver import ManifoldSolver, SolverOptions

# Models
from .core.models.factors import MagPoseFactorModel
from .core.models.solve import SolveResult, SolverSettings

__all__ = [
    # Version
    "__version__",
    # Errors
    "InvalidArgumentError",
    "DimensionMismatchError",
    # Manifolds
    "Rot2",
    "Rot3",
    "Pose2",
    "Pose3",
    # Optimization
    "NoiseModel",
    "Factor",
    "FactorGraph",
    "MagPoseFactor",
    "MagPoseFactor2",
    "MagPoseFactor3",
    "ManifoldSolver",
    "SolverOptions",
    # Models
    "MagPoseFactorModel",
    "SolverSettings",
    "SolveResult",
]
