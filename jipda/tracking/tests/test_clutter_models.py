"""
Test suite for clutter and detection models.
"""

import pytest
import numpy as np

from ..clutter_models import (
    ClutterModel, ConstantDetectionModel, DetectionModel, PoissonUniformClutterModel,
    as_clutter_model, as_detection_model
)


class TestPoissonUniformClutterModel:

    @pytest.fixture
    def model(self):
        return PoissonUniformClutterModel(clutter_rate=10.0, limits=[[0.0, 10.0], [0.0, 10.0]])

    def test_density_inside_region(self, model):
        assert model.volume == 100.0
        assert model.density(np.array([5.0, 5.0])) == pytest.approx(0.1)
        assert model.expected_count == 10.0

    def test_density_outside_region(self, model):
        assert model.density(np.array([-1.0, 5.0])) == 0.0
        assert model.density(np.array([5.0, 10.5])) == 0.0

    def test_sample(self, model, rng):
        counts = []
        for _ in range(200):
            clutter = model.sample(rng)
            assert clutter.ndim == 2 and clutter.shape[1] == 2
            assert np.all(clutter >= 0.0) and np.all(clutter <= 10.0)
            counts.append(len(clutter))
        assert np.mean(counts) == pytest.approx(10.0, abs=1.0)

    def test_satisfies_protocol(self, model):
        assert isinstance(model, ClutterModel)

    @pytest.mark.parametrize("rate,limits", [
        (-1.0, [[0.0, 1.0]]),
        (1.0, [[1.0, 0.0]]),
        (1.0, [0.0, 1.0]),
    ])
    def test_invalid_parameters(self, rate, limits):
        with pytest.raises(ValueError):
            PoissonUniformClutterModel(rate, limits)


class TestDetectionModels:

    def test_constant_detection(self):
        model = ConstantDetectionModel(0.8)
        assert model.probability() == 0.8
        assert isinstance(model, DetectionModel)


class TestFunctionWrappers:

    def test_clutter_function(self):
        model = as_clutter_model(lambda z: 0.05 if z[0] > 0 else 0.0, expected_count=3.0)
        assert isinstance(model, ClutterModel)
        assert model.density(np.array([1.0, 0.0])) == 0.05
        assert model.density(np.array([-1.0, 0.0])) == 0.0
        assert model.expected_count == 3.0

    def test_detection_function(self):
        model = as_detection_model(lambda: 0.9)
        assert isinstance(model, DetectionModel)
        assert model.probability() == 0.9
