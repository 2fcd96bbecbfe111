"""Noise models, factors and the factor graph."""

from .noise import NoiseModel
from .factor_graph import Factor, FactorGraph, NoiseModelFactor1, Variable
from .mag_pose_factor import MagPoseFactor, MagPoseFactor2, MagPoseFactor3

__all__ = [
    "NoiseModel",
    "Factor",
    "FactorGraph",
    "NoiseModelFactor1",
    "Variable",
    "MagPoseFactor",
    "MagPoseFactor2",
    "MagPoseFactor3",
]
