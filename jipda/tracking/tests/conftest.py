"""
Pytest configuration and shared fixtures for tracking tests.

This module provides common fixtures and configuration used across
all tracking system tests.
"""

import pytest
import numpy as np
from typing import Callable, Optional, Sequence

from ..clustering import ClusterBuilder
from ..clutter_models import ConstantDetectionModel, as_clutter_model
from ..gating import GateEvaluator, ValidationMatrix
from ..jipda_tracker import JIPDATracker
from ..kalman_filters import KalmanFilter, initialize_constant_velocity_filter
from ..tracker_base import GaussianState, Track


@pytest.fixture
def rng():
    """Seeded random generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def cv_filter() -> KalmanFilter:
    """Uninitialised 2D constant velocity filter observing [x, y]."""
    return initialize_constant_velocity_filter(
        num_dims=2,
        velocity_error_variance=0.01 ** 2,
        measurement_error_variance=0.1 ** 2,
        timestep_duration=1.0
    )


@pytest.fixture
def make_track(cv_filter) -> Callable[..., Track]:
    """Factory for tracks at a position with zero velocity."""
    def _make_track(track_id, position: Sequence[float], existence: float = 0.5,
                    covar: Optional[np.ndarray] = None, timestamp: float = 0.0,
                    velocity: Sequence[float] = (0.0, 0.0)) -> Track:
        mean = np.array([position[0], velocity[0], position[1], velocity[1]], dtype=float)
        covar = np.eye(4) * 0.01 if covar is None else covar
        return Track.from_prior(track_id, cv_filter, GaussianState(mean, covar, timestamp), existence)

    return _make_track


@pytest.fixture
def make_validation() -> Callable[[np.ndarray], ValidationMatrix]:
    """Build a validation matrix from log-likelihoods; -inf means not gated."""
    def _make_validation(log_likelihoods) -> ValidationMatrix:
        log_likelihoods = np.asarray(log_likelihoods, dtype=float)
        gated = np.isfinite(log_likelihoods)
        distances = np.where(gated, 1.0, np.inf)
        return ValidationMatrix(gated=gated, distances=distances,
                                log_likelihoods=log_likelihoods, threshold=9.21)

    return _make_validation


@pytest.fixture
def make_tracker() -> Callable[..., JIPDATracker]:
    """Factory for trackers with constant detection probability and clutter density."""
    def _make_tracker(detection_probability: float = 0.8, clutter_density: float = 0.05,
                      gate_level: float = 0.99, **kwargs) -> JIPDATracker:
        return JIPDATracker(
            gater=GateEvaluator(measurement_dim=2, gate_level=gate_level),
            clusterer=ClusterBuilder(),
            clutter_model=as_clutter_model(lambda z: clutter_density, expected_count=5.0),
            detection_model=ConstantDetectionModel(detection_probability),
            **kwargs
        )

    return _make_tracker


@pytest.fixture
def assert_symmetric():
    """Utility to assert matrix is symmetric."""
    def _check_symmetric(matrix: np.ndarray, tolerance: float = 1e-12):
        assert np.allclose(matrix, matrix.T, atol=tolerance), "Matrix is not symmetric"
        return True

    return _check_symmetric


@pytest.fixture
def assert_positive_semidefinite():
    """Utility to assert matrix is positive semi-definite."""
    def _check_psd(matrix: np.ndarray, tolerance: float = 1e-12):
        eigenvals = np.linalg.eigvalsh(matrix)
        assert np.all(eigenvals >= -tolerance), f"Matrix is not PSD. Min eigenvalue: {np.min(eigenvals)}"
        return True

    return _check_psd


@pytest.fixture
def assert_rows_are_distributions():
    """Utility to assert every row is a probability distribution."""
    def _check_rows(matrix: np.ndarray, tolerance: float = 1e-9):
        matrix = np.atleast_2d(matrix)
        assert np.all(matrix >= -tolerance), f"Negative probabilities found: {matrix}"
        assert np.all(matrix <= 1.0 + tolerance), f"Probabilities above one: {matrix}"
        np.testing.assert_allclose(matrix.sum(axis=1), 1.0, atol=tolerance)
        return True

    return _check_rows


# Pytest configuration
def pytest_collection_modifyitems(config, items):
    """Modify test collection."""
    for item in items:
        if "integration" in item.nodeid or "simulated" in item.nodeid:
            item.add_marker(pytest.mark.integration)
