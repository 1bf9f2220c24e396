"""
Kalman filter collaborator for JIPDA tracking.

This module provides the per-track filter used by the tracker:
- Linear Kalman Filter (KF) with prediction/posterior bookkeeping
- Innovation statistics (predicted measurement, innovation covariance,
  Gaussian log-likelihood) consumed by gating and association
- Filter construction helper for the constant velocity model

The filter keeps its predicted state separate from its posterior so the
association stage can evaluate several measurement updates from the same
prediction before the mixture-reduced posterior is written back.

Author: JIPDA Tracker Project
"""

import copy
from typing import Optional

import numpy as np
import scipy.linalg

from .motion_models import ConstantVelocityModel, LinearGaussianMeasurementModel
from .tracker_base import GaussianState, Measurement
from ..validators import SingularCovarianceError, validate_covariance, validate_dimension


class KalmanFilter:
    """
    Standard Kalman Filter for linear systems.

    Assumes linear dynamics: x(k+1) = F(dt) @ x(k) + w(k)
    And linear measurements: z(k) = H @ x(k) + v(k)
    """

    def __init__(self, transition_model: ConstantVelocityModel,
                 measurement_model: LinearGaussianMeasurementModel,
                 state_prior: Optional[GaussianState] = None):
        """
        Initialize Kalman Filter.

        Args:
            transition_model: Motion model providing F and Q
            measurement_model: Measurement model providing H and R
            state_prior: Initial state estimate (optional)
        """
        if transition_model.state_dim != measurement_model.state_dim:
            raise ValueError(
                f"Transition model state dimension {transition_model.state_dim} does not match "
                f"measurement model state dimension {measurement_model.state_dim}"
            )
        self.transition_model = transition_model
        self.measurement_model = measurement_model
        self.dim_x = transition_model.state_dim
        self.dim_z = measurement_model.measurement_dim

        self.state_posterior: Optional[GaussianState] = None
        self.state_prediction: Optional[GaussianState] = None

        if state_prior is not None:
            self.initialise(state_prior)

    def initialise(self, state_prior: GaussianState) -> None:
        """
        Reset the filter to a prior state.

        Args:
            state_prior: Initial state estimate

        Raises:
            DimensionMismatchError: If the prior does not match the state dimension
            ValueError: If the prior covariance is not finite and symmetric
        """
        validate_dimension(state_prior.mean, self.dim_x, name="state prior mean")
        validate_covariance(state_prior.covar, self.dim_x, name="state prior covariance")
        self.state_posterior = state_prior.copy()
        self.state_prediction = None

    def clone(self) -> 'KalmanFilter':
        """Return an independent deep copy of the filter."""
        return copy.deepcopy(self)

    def predict(self, dt: Optional[float] = None) -> GaussianState:
        """
        Predict the next state using linear dynamics.

        Args:
            dt: Time step (defaults to the transition model's duration)

        Returns:
            Predicted state
        """
        if self.state_posterior is None:
            raise ValueError("Filter must be initialised before predict()")

        F = self.transition_model.transition_matrix(dt)
        Q = self.transition_model.process_covariance(dt)
        prior = self.state_posterior

        mean = F @ prior.mean
        covar = F @ prior.covar @ F.T + Q
        timestamp = None
        if prior.timestamp is not None:
            timestamp = prior.timestamp + (self.transition_model.timestep_duration if dt is None else dt)

        self.state_prediction = GaussianState(mean, 0.5 * (covar + covar.T), timestamp)
        return self.state_prediction

    def _require_prediction(self) -> GaussianState:
        if self.state_prediction is None:
            raise ValueError("predict() must be called before measurement operations")
        return self.state_prediction

    def predicted_measurement(self) -> np.ndarray:
        """Predicted measurement mean H @ x(k|k-1)."""
        return self.measurement_model.matrix() @ self._require_prediction().mean

    def innovation_covariance(self, R: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Innovation covariance S = H P H^T + R.

        Args:
            R: Measurement noise covariance (defaults to the model's R)

        Returns:
            Innovation covariance matrix
        """
        H = self.measurement_model.matrix()
        R = self.measurement_model.covar() if R is None else R
        S = H @ self._require_prediction().covar @ H.T + R
        return 0.5 * (S + S.T)

    def _noise_for(self, measurement: Measurement) -> np.ndarray:
        if measurement.covariance is not None:
            return measurement.covariance
        return self.measurement_model.covar()

    def update(self, measurement: Measurement) -> GaussianState:
        """
        Update the predicted state with a measurement.

        The update always starts from the current prediction, so it can be
        evaluated for several candidate measurements in turn.

        Args:
            measurement: Measurement to incorporate

        Returns:
            Posterior state (also stored as state_posterior)

        Raises:
            SingularCovarianceError: If the innovation covariance is singular
        """
        prediction = self._require_prediction()
        z = validate_dimension(measurement.vector, self.dim_z)
        H = self.measurement_model.matrix()
        R = self._noise_for(measurement)

        # Innovation
        y = z - H @ prediction.mean
        S = self.innovation_covariance(R)

        # Kalman gain
        try:
            K = scipy.linalg.solve(S, H @ prediction.covar, assume_a='pos').T
        except np.linalg.LinAlgError as exc:
            raise SingularCovarianceError("Singular innovation covariance matrix") from exc

        # State update
        mean = prediction.mean + K @ y

        # Covariance update (Joseph form for numerical stability)
        I_KH = np.eye(self.dim_x) - K @ H
        covar = I_KH @ prediction.covar @ I_KH.T + K @ R @ K.T

        self.state_posterior = GaussianState(mean, 0.5 * (covar + covar.T), measurement.timestamp)
        return self.state_posterior

    def skip_update(self) -> GaussianState:
        """Accept the prediction as posterior (no measurement update)."""
        self.state_posterior = self._require_prediction().copy()
        return self.state_posterior


# Utility functions for filter initialization

def initialize_constant_velocity_filter(num_dims: int = 2,
                                        velocity_error_variance: float = 1.0,
                                        measurement_error_variance: float = 1.0,
                                        timestep_duration: float = 1.0) -> KalmanFilter:
    """
    Initialize a Kalman filter for the constant velocity motion model
    observing positions only.

    Args:
        num_dims: Spatial dimensions (2 for 2D, 3 for 3D)
        velocity_error_variance: Process noise variance
        measurement_error_variance: Measurement noise variance
        timestep_duration: Default time step

    Returns:
        Configured (uninitialised) Kalman filter
    """
    transition_model = ConstantVelocityModel(num_dims, velocity_error_variance, timestep_duration)
    measurement_model = LinearGaussianMeasurementModel(
        transition_model.state_dim,
        transition_model.position_indices(),
        measurement_error_variance
    )
    return KalmanFilter(transition_model, measurement_model)

