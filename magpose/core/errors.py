"""Exceptions raised by factors and noise models."""


class InvalidArgumentError(ValueError):
    """Malformed construction input (degenerate direction, bad sizes, ...)."""


class DimensionMismatchError(ValueError):
    """Pose tangent layout or vector sizes disagree at evaluation time."""
