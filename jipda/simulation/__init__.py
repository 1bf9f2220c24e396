"""
Simulation utilities: ground-truth trajectories and cluttered measurement scans
"""

from .measurement_simulator import MultiTargetMeasurementSimulator, generate_ground_truth

__all__ = [
    'MultiTargetMeasurementSimulator',
    'generate_ground_truth',
]
