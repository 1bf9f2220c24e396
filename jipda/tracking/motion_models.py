"""
Motion and measurement models for JIPDA tracking.

Provides the linear-Gaussian models consumed by the Kalman filter
collaborator:

- Constant Velocity (CV) transition model with discrete white noise
  acceleration, in any number of Cartesian dimensions
- Linear Gaussian measurement model observing a subset of state indices

State vectors interleave position and velocity per dimension, e.g. in 2D
[x, vx, y, vy], so that a position-only measurement maps indices [0, 2].
"""

import numpy as np
from typing import Optional, Sequence


class ConstantVelocityModel:
    """
    Constant Velocity (CV) motion model

    Assumes the target moves with constant velocity perturbed by white
    acceleration noise with variance ``velocity_error_variance``.
    """

    def __init__(self, num_dims: int = 2, velocity_error_variance: float = 1.0,
                 timestep_duration: float = 1.0):
        """
        Initialize constant velocity model

        Args:
            num_dims: Number of spatial dimensions
            velocity_error_variance: Variance of the velocity random walk
            timestep_duration: Default time step used when dt is not given
        """
        if num_dims < 1:
            raise ValueError(f"num_dims must be positive, got {num_dims}")
        if velocity_error_variance < 0:
            raise ValueError("velocity_error_variance must be non-negative")
        self.num_dims = num_dims
        self.velocity_error_variance = velocity_error_variance
        self.timestep_duration = timestep_duration

    @property
    def state_dim(self) -> int:
        """State dimension: position and velocity per spatial dimension."""
        return 2 * self.num_dims

    def transition_matrix(self, dt: Optional[float] = None) -> np.ndarray:
        """
        Get state transition matrix F for a time step

        Args:
            dt: Time step (defaults to timestep_duration)

        Returns:
            State transition matrix F
        """
        dt = self.timestep_duration if dt is None else dt
        block = np.array([[1.0, dt],
                          [0.0, 1.0]])
        return np.kron(np.eye(self.num_dims), block)

    def process_covariance(self, dt: Optional[float] = None) -> np.ndarray:
        """
        Get process noise covariance matrix Q for a time step

        Args:
            dt: Time step (defaults to timestep_duration)

        Returns:
            Process noise covariance matrix Q
        """
        dt = self.timestep_duration if dt is None else dt
        # Discrete white noise acceleration model
        block = np.array([[dt**3 / 3, dt**2 / 2],
                          [dt**2 / 2, dt]]) * self.velocity_error_variance
        return np.kron(np.eye(self.num_dims), block)

    def position_indices(self) -> np.ndarray:
        """Indices of the position components in the state vector."""
        return np.arange(0, self.state_dim, 2)

    def propagate(self, state: np.ndarray, dt: Optional[float] = None,
                  rng: Optional[np.random.Generator] = None) -> np.ndarray:
        """
        Propagate a state vector, optionally sampling process noise.

        Args:
            state: Current state vector
            dt: Time step
            rng: Random generator; if given, process noise is added

        Returns:
            Propagated state vector
        """
        new_state = self.transition_matrix(dt) @ np.asarray(state, dtype=np.float64)
        if rng is not None and self.velocity_error_variance > 0:
            new_state = new_state + rng.multivariate_normal(
                np.zeros(self.state_dim), self.process_covariance(dt))
        return new_state


class LinearGaussianMeasurementModel:
    """
    Linear Gaussian measurement model

    Observes the state components listed in ``mapping`` with independent
    Gaussian noise of variance ``measurement_error_variance``.
    """

    def __init__(self, state_dim: int, mapping: Sequence[int],
                 measurement_error_variance: float = 1.0):
        """
        Initialize measurement model

        Args:
            state_dim: Dimension of the state vector
            mapping: State indices observed by the sensor
            measurement_error_variance: Noise variance of each measured component
        """
        self.state_dim = state_dim
        self.mapping = np.asarray(mapping, dtype=int)
        if np.any(self.mapping < 0) or np.any(self.mapping >= state_dim):
            raise ValueError(f"Mapping {list(self.mapping)} out of range for state dimension {state_dim}")
        if measurement_error_variance <= 0:
            raise ValueError("measurement_error_variance must be positive")
        self.measurement_error_variance = measurement_error_variance

    @property
    def measurement_dim(self) -> int:
        return len(self.mapping)

    def matrix(self) -> np.ndarray:
        """Measurement matrix H."""
        H = np.zeros((self.measurement_dim, self.state_dim))
        H[np.arange(self.measurement_dim), self.mapping] = 1.0
        return H

    def covar(self) -> np.ndarray:
        """Measurement noise covariance R."""
        return np.eye(self.measurement_dim) * self.measurement_error_variance

    def measure(self, state: np.ndarray,
                rng: Optional[np.random.Generator] = None) -> np.ndarray:
        """Map a state into measurement space, optionally adding noise."""
        z = self.matrix() @ np.asarray(state, dtype=np.float64)
        if rng is not None:
            z = z + rng.multivariate_normal(np.zeros(self.measurement_dim), self.covar())
        return z

    def finv(self, measurements: np.ndarray) -> np.ndarray:
        """
        Back-project measurements into state space.

        Unobserved state components are zero.

        Args:
            measurements: Measurement vectors as rows (n x measurement_dim)

        Returns:
            State-space vectors as rows (n x state_dim)
        """
        measurements = np.atleast_2d(np.asarray(measurements, dtype=np.float64))
        states = np.zeros((measurements.shape[0], self.state_dim))
        states[:, self.mapping] = measurements
        return states
