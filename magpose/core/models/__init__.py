"""Data models for magpose."""

from .factors import MagPoseFactorModel, NoiseModelSpec, PoseModel
from .solve import SolveResult, SolverSettings

__all__ = [
    "PoseModel",
    "NoiseModelSpec",
    "MagPoseFactorModel",
    "SolverSettings",
    "SolveResult",
]
