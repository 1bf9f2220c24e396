"""
Multi-target measurement simulation.

Generates constant-velocity ground truth and the measurement batches a
position sensor would report: each present target is detected with
probability P_D and observed with Gaussian noise, and Poisson clutter is
scattered uniformly over the surveillance region.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from ..tracking.clutter_models import DetectionModel, PoissonUniformClutterModel
from ..tracking.motion_models import ConstantVelocityModel, LinearGaussianMeasurementModel
from ..tracking.tracker_base import Measurement, MeasurementBatch

logger = logging.getLogger(__name__)


def generate_ground_truth(model: ConstantVelocityModel, initial_states: Sequence[Sequence[float]],
                          num_steps: int, dt: float = 1.0,
                          rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Generate ground-truth trajectories.

    Args:
        model: Transition model used to propagate every target
        initial_states: Initial state per target (n_targets x state_dim)
        num_steps: Number of time steps including the initial one
        dt: Time step
        rng: Random generator for process noise (noise-free when None)

    Returns:
        Array of shape (num_steps, n_targets, state_dim)
    """
    initial_states = np.asarray(initial_states, dtype=np.float64)
    if initial_states.ndim != 2 or initial_states.shape[1] != model.state_dim:
        raise ValueError(f"initial_states must have shape (n, {model.state_dim})")
    if num_steps < 1:
        raise ValueError(f"num_steps must be positive, got {num_steps}")

    states = np.zeros((num_steps,) + initial_states.shape)
    states[0] = initial_states
    for k in range(1, num_steps):
        for i in range(initial_states.shape[0]):
            states[k, i] = model.propagate(states[k - 1, i], dt, rng)
    return states


class MultiTargetMeasurementSimulator:
    """
    Cluttered multi-target measurement generator.

    Measurement metadata records the origin: ``{'target': i}`` for target
    returns and ``{'clutter': True}`` for false alarms.
    """

    def __init__(self, measurement_model: LinearGaussianMeasurementModel,
                 clutter_model: PoissonUniformClutterModel,
                 detection_model: DetectionModel):
        """
        Initialize measurement simulator.

        Args:
            measurement_model: Maps states to noisy measurements
            clutter_model: Clutter rate and surveillance region
            detection_model: Detection probability of each target
        """
        self.measurement_model = measurement_model
        self.clutter_model = clutter_model
        self.detection_model = detection_model

    def scan(self, states: np.ndarray, timestamp: float,
             rng: np.random.Generator) -> MeasurementBatch:
        """
        Simulate one sensor scan.

        Args:
            states: True states at this time (n_targets x state_dim)
            timestamp: Scan time
            rng: Random generator

        Returns:
            MeasurementBatch with target returns and clutter in random order
        """
        measurements: List[Measurement] = []
        p_d = self.detection_model.probability()
        for i, state in enumerate(states):
            if rng.random() < p_d:
                z = self.measurement_model.measure(state, rng)
                measurements.append(Measurement(z, timestamp, metadata={'target': i}))

        for z in self.clutter_model.sample(rng):
            measurements.append(Measurement(z, timestamp, metadata={'clutter': True}))

        order = rng.permutation(len(measurements))
        return MeasurementBatch(timestamp, tuple(measurements[i] for i in order))

    def simulate(self, truth: np.ndarray, timestamps: Sequence[float],
                 rng: Optional[np.random.Generator] = None) -> List[MeasurementBatch]:
        """
        Simulate a measurement batch for every ground-truth time step.

        Args:
            truth: Ground truth of shape (num_steps, n_targets, state_dim)
            timestamps: Time of each step
            rng: Random generator (a fresh default generator when None)

        Returns:
            One MeasurementBatch per time step
        """
        if len(truth) != len(timestamps):
            raise ValueError(f"Got {len(truth)} ground-truth steps but {len(timestamps)} timestamps")
        rng = np.random.default_rng() if rng is None else rng

        batches = [self.scan(states, float(t), rng) for states, t in zip(truth, timestamps)]
        logger.info(f"Simulated {len(batches)} scans with "
                    f"{sum(len(b) for b in batches)} measurements")
        return batches
