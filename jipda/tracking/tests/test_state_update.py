"""
Test suite for the mixture-reduction state update.
"""

import pytest
import numpy as np
import numpy.testing as npt

from ..state_update import TrackStateUpdater
from ..tracker_base import GaussianState, Measurement
from ...validators import InvalidProbabilityError, SingularCovarianceError


@pytest.fixture
def predicted_filter(cv_filter):
    """Filter initialised at the origin and predicted one step ahead."""
    cv_filter.initialise(GaussianState(np.array([0.0, 1.0, 0.0, 0.5]), np.eye(4) * 0.5, 0.0))
    cv_filter.predict(1.0)
    return cv_filter


class TestMomentMatching:

    def test_two_component_mixture(self):
        components = [(0.5, GaussianState(np.array([0.0]), np.array([[1.0]]))),
                      (0.5, GaussianState(np.array([2.0]), np.array([[1.0]])))]
        merged = TrackStateUpdater.moment_match(components)
        npt.assert_allclose(merged.mean, [1.0])
        npt.assert_allclose(merged.covar, [[2.0]])

    def test_weighted_mean(self):
        components = [(0.25, GaussianState(np.array([0.0, 0.0]), np.eye(2))),
                      (0.75, GaussianState(np.array([4.0, -4.0]), np.eye(2)))]
        merged = TrackStateUpdater.moment_match(components)
        npt.assert_allclose(merged.mean, [3.0, -3.0])
        spread = 0.25 * 0.75 * np.outer([4.0, -4.0], [4.0, -4.0])
        npt.assert_allclose(merged.covar, np.eye(2) + spread)

    def test_non_finite_covariance(self):
        components = [(1.0, GaussianState(np.array([0.0]), np.array([[np.nan]])))]
        with pytest.raises(SingularCovarianceError):
            TrackStateUpdater.moment_match(components)

    def test_negative_covariance(self):
        components = [(1.0, GaussianState(np.array([0.0]), np.array([[-1.0]])))]
        with pytest.raises(SingularCovarianceError):
            TrackStateUpdater.moment_match(components)


class TestTrackStateUpdate:

    def test_single_measurement_matches_kalman_update(self, predicted_filter):
        measurement = Measurement(np.array([1.2, 0.4]), 1.0)
        predicted = predicted_filter.state_prediction
        expected = predicted_filter.clone().update(measurement)

        posterior = TrackStateUpdater().update(predicted_filter, predicted, [measurement], [0.0, 1.0])

        npt.assert_array_equal(posterior.mean, expected.mean)
        npt.assert_array_equal(posterior.covar, expected.covar)
        assert predicted_filter.state_posterior is posterior

    def test_no_detection_keeps_prediction(self, predicted_filter):
        measurement = Measurement(np.array([1.2, 0.4]), 1.0)
        predicted = predicted_filter.state_prediction

        posterior = TrackStateUpdater().update(predicted_filter, predicted, [measurement], [1.0, 0.0])

        npt.assert_array_equal(posterior.mean, predicted.mean)
        npt.assert_array_equal(posterior.covar, predicted.covar)

    def test_mixture_posterior(self, predicted_filter, assert_symmetric, assert_positive_semidefinite):
        measurements = [Measurement(np.array([1.2, 0.4]), 1.0),
                        Measurement(np.array([0.8, 0.7]), 1.0)]
        predicted = predicted_filter.state_prediction
        weights = np.array([0.2, 0.5, 0.3])

        updates = [predicted_filter.clone().update(m) for m in measurements]
        expected_mean = weights[0] * predicted.mean + weights[1] * updates[0].mean + weights[2] * updates[1].mean

        posterior = TrackStateUpdater().update(predicted_filter, predicted, measurements, weights)

        npt.assert_allclose(posterior.mean, expected_mean)
        assert_symmetric(posterior.covar)
        assert_positive_semidefinite(posterior.covar)
        # Spread of the hypotheses inflates the covariance beyond the best single update
        assert np.trace(posterior.covar) > np.trace(updates[0].covar)
        assert posterior.timestamp == predicted.timestamp

    def test_weights_must_sum_to_one(self, predicted_filter):
        measurement = Measurement(np.array([1.0, 0.5]), 1.0)
        with pytest.raises(InvalidProbabilityError):
            TrackStateUpdater().update(predicted_filter, predicted_filter.state_prediction,
                                       [measurement], [0.5, 0.4])

    def test_weights_must_match_measurements(self, predicted_filter):
        with pytest.raises(ValueError):
            TrackStateUpdater().update(predicted_filter, predicted_filter.state_prediction,
                                       [], [0.5, 0.5])
