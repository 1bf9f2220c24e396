"""
Test suite for the existence probability recursion.
"""

import pytest
import numpy as np
import numpy.testing as npt

from ..existence import ExistenceUpdater
from ...validators import InvalidProbabilityError


class TestExistencePrediction:

    def test_default_survival_keeps_existence(self):
        assert ExistenceUpdater().predict(0.5) == 0.5

    def test_survival_probability(self):
        assert ExistenceUpdater(survival_probability=0.9).predict(0.5) == pytest.approx(0.45)

    def test_invalid_inputs(self):
        with pytest.raises(InvalidProbabilityError):
            ExistenceUpdater(survival_probability=1.2)
        with pytest.raises(InvalidProbabilityError):
            ExistenceUpdater().predict(-0.1)


class TestExistenceUpdate:

    def test_missed_detection_decreases_existence(self):
        updater = ExistenceUpdater()
        r_post = updater.update(0.5, 0.8, [1.0])
        assert r_post == pytest.approx(0.1 / 0.6)
        assert r_post < 0.5

    @pytest.mark.parametrize("existence", [0.1, 0.5, 0.9])
    @pytest.mark.parametrize("detection", [0.3, 0.8, 0.99])
    def test_no_measurements_strictly_decreasing(self, existence, detection):
        r_post = ExistenceUpdater().update(existence, detection, [1.0])
        assert 0.0 <= r_post < existence

    def test_zero_detection_probability_keeps_existence(self):
        assert ExistenceUpdater().update(0.7, 0.0, [1.0]) == pytest.approx(0.7)

    def test_certain_track_stays_certain(self):
        assert ExistenceUpdater().update(1.0, 0.8, [0.2, 0.5, 0.3]) == pytest.approx(1.0)

    def test_certain_detection_without_measurement(self):
        assert ExistenceUpdater().update(1.0, 1.0, [1.0]) == 0.0

    def test_detection_increases_existence(self):
        # beta from a single-track cluster with r = 0.5, P_D = 0.8, L = 0.3, lambda = 0.1
        h_miss, h_hit = 0.6 * 0.1, 0.4 * 0.3
        beta = np.array([h_miss, h_hit]) / (h_miss + h_hit)
        r_post = ExistenceUpdater().update(0.5, 0.8, beta)
        assert r_post > 0.5
        assert r_post == pytest.approx(beta[1] + beta[0] / 6.0)

    def test_rounding_drift_is_clamped(self):
        assert ExistenceUpdater().update(0.5, 0.8, [0.0, 1.0 + 5e-10]) == 1.0

    def test_large_excursion_raises(self):
        with pytest.raises(InvalidProbabilityError):
            ExistenceUpdater().update(0.5, 0.8, [0.0, 1.1])


class TestConditionalWeights:

    def test_certain_existence_returns_beta(self):
        updater = ExistenceUpdater()
        beta = np.array([0.2, 0.5, 0.3])
        r_post = updater.update(1.0, 0.8, beta)
        npt.assert_allclose(updater.conditional_weights(1.0, 0.8, beta, r_post), beta)

    def test_weights_conditioned_on_existence(self):
        updater = ExistenceUpdater()
        beta = np.array([0.6, 0.4])
        r_post = updater.update(0.5, 0.8, beta)
        assert r_post == pytest.approx(0.5)

        weights = updater.conditional_weights(0.5, 0.8, beta, r_post)
        npt.assert_allclose(weights, [0.2, 0.8])
        assert weights.sum() == pytest.approx(1.0)

    def test_absent_track_keeps_prediction(self):
        weights = ExistenceUpdater().conditional_weights(1.0, 1.0, np.array([1.0]), 0.0)
        npt.assert_array_equal(weights, [1.0])
