"""Synthetic magnetometer data generation for testing."""

from .magnetometer import MagnetometerSimulator, random_pose2, random_pose3

__all__ = [
    "MagnetometerSimulator",
    "random_pose2",
    "random_pose3",
]
