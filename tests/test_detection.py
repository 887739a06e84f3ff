"""
Unit tests for detection functions used to simulate observations.
"""

import math

import numpy as np
import pytest

from dssim_tools.detection import DetectionModel, hazard_rate
from dssim_tools.errors import ConfigurationError

MODELS = [
    DetectionModel("hn", scale=500, truncation=1000),
    DetectionModel("hn", scale=50, truncation=1000),
    DetectionModel("hr", scale=300, truncation=1000, shape=2.5),
    DetectionModel("hr", scale=800, truncation=500, shape=1.0),
    DetectionModel("uf", scale=0, truncation=200),
]


@pytest.mark.parametrize("model", MODELS, ids=lambda m: f"{m.key}-{m.scale}")
class TestDetectionInvariants:
    def test_one_at_zero(self, model):
        assert float(model.probability(0.0)) == pytest.approx(1.0)

    def test_non_increasing(self, model):
        x = np.linspace(0, model.truncation * 1.5, 2001)
        g = model.probability(x)
        assert np.all(np.diff(g) <= 1e-12)

    def test_zero_beyond_truncation(self, model):
        x = model.truncation + np.array([1e-9, 1.0, 1e6])
        assert np.all(model.probability(x) == 0.0)

    def test_bounded(self, model):
        g = model.probability(np.linspace(0, model.truncation, 101))
        assert np.all((g >= 0) & (g <= 1))


class TestDetectionValues:
    def test_half_normal_at_scale(self):
        model = DetectionModel("hn", scale=500, truncation=1000)
        assert float(model.probability(500)) == pytest.approx(math.exp(-0.5))

    def test_hazard_rate_at_scale(self):
        model = DetectionModel("hr", scale=300, truncation=1000, shape=2.0)
        assert float(model(300)) == pytest.approx(1 - math.exp(-1))

    def test_negative_distances_are_symmetric(self):
        model = DetectionModel("hn", scale=500, truncation=1000)
        assert float(model(-250)) == pytest.approx(float(model(250)))

    def test_hazard_rate_zero_distance(self):
        assert hazard_rate(np.array([0.0, 10.0]), 5.0, 3.0)[0] == 1.0


class TestDetectionValidation:
    def test_zero_truncation_raises(self):
        with pytest.raises(ConfigurationError, match="truncation must be > 0"):
            DetectionModel("hn", scale=500, truncation=0)

    def test_negative_scale_raises(self):
        with pytest.raises(ConfigurationError, match="scale must be > 0"):
            DetectionModel("hn", scale=-1, truncation=1000)

    def test_hazard_rate_needs_shape(self):
        with pytest.raises(ConfigurationError, match="shape > 0"):
            DetectionModel("hr", scale=500, truncation=1000)

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="Invalid detection key"):
            DetectionModel("gamma", scale=500, truncation=1000)
