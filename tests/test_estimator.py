"""
Unit tests for abundance estimation.
"""

import math
from unittest.mock import patch

import numpy as np
import pytest

from dssim_tools.density import DensityField
from dssim_tools.design import Transect, TransectSet
from dssim_tools.detection import DetectionModel
from dssim_tools.errors import ConfigurationError, ReplicateFailure
from dssim_tools.estimator import (
    encounter_rate_variance,
    estimate_abundance,
    lognormal_ci,
)
from dssim_tools.fitting import FittedModel, select_model
from dssim_tools.population import generate_population
from dssim_tools.region import Region
from dssim_tools.survey import SurveyResult, simulate_survey


def _fit(pa=0.5, pa_var=0.0, converged=True, truncation=100.0):
    return FittedModel(
        form="hn",
        params={"scale": 50.0},
        theta=np.array([0.0]),
        log_likelihood=-10.0,
        n=10,
        n_params=1,
        truncation=truncation,
        strip_width=pa * truncation,
        pa=pa if converged else math.nan,
        pa_var=pa_var,
        converged=converged,
    )


def _survey(counts=(5, 5), lengths=(500.0, 500.0)):
    ids = np.concatenate([np.full(c, i) for i, c in enumerate(counts)]).astype(int)
    n = len(ids)
    return SurveyResult(
        individuals=np.arange(n),
        transect_ids=ids,
        distances=np.linspace(1, 90, n),
        detected=np.ones(n, dtype=bool),
        effort_ids=np.arange(len(counts)),
        effort_lengths=np.array(lengths),
        truncation=100.0,
        n_population=100,
    )


class TestEncounterRateVariance:
    def test_equal_rates_zero_variance(self):
        assert encounter_rate_variance([2, 2], [1.0, 1.0]) == pytest.approx(0.0)

    def test_known_value(self):
        # n=4, L=2, er=2; var(er) = 2 / (4 * 1) * ((1 - 2)^2 + (3 - 2)^2) = 1
        assert encounter_rate_variance([1, 3], [1.0, 1.0]) == pytest.approx(4.0)

    def test_single_transect_is_poisson(self):
        assert encounter_rate_variance([7], [10.0]) == 7.0


class TestLognormalCI:
    def test_interval_brackets_estimate(self):
        lcl, ucl = lognormal_ci(100.0, 0.2)
        assert lcl < 100 < ucl
        assert lcl * ucl == pytest.approx(100.0**2)

    def test_zero_cv(self):
        assert lognormal_ci(50.0, 0.0) == (50.0, 50.0)


class TestEstimateAbundance:
    def test_point_estimate(self):
        est = estimate_abundance(_fit(), _survey(), area=1e6, replicate_id=3)
        # D = 10 / (2 * 100 * 1000 * 0.5) = 1e-4; N = D * 1e6
        assert est.density == pytest.approx(1e-4)
        assert est.abundance == pytest.approx(100.0)
        assert est.replicate_id == 3
        assert est.n_detected == 10
        assert est.effort == pytest.approx(1000.0)
        assert est.true_n == 100

    def test_analytic_se_detection_component(self):
        est = estimate_abundance(_fit(pa_var=0.01), _survey(), area=1e6)
        # cv^2 = 0 (equal encounter rates) + 0.01 / 0.25
        assert est.cv == pytest.approx(0.2)
        assert est.se == pytest.approx(20.0)
        assert est.lcl < est.abundance < est.ucl

    def test_analytic_se_encounter_component(self):
        est = estimate_abundance(_fit(), _survey(counts=(2, 6)), area=1e6)
        var_n = encounter_rate_variance([2, 6], [500.0, 500.0])
        assert est.cv == pytest.approx(math.sqrt(var_n) / 8)

    def test_covered(self):
        est = estimate_abundance(_fit(pa_var=0.01), _survey(), area=1e6)
        assert est.covered

    def test_zero_detections_fail(self):
        survey = _survey()
        empty = SurveyResult(
            individuals=survey.individuals,
            transect_ids=survey.transect_ids,
            distances=survey.distances,
            detected=np.zeros(len(survey.detected), dtype=bool),
            effort_ids=survey.effort_ids,
            effort_lengths=survey.effort_lengths,
            truncation=100.0,
            n_population=100,
        )
        with pytest.raises(ReplicateFailure) as exc_info:
            estimate_abundance(_fit(), empty, area=1e6, replicate_id=4)
        assert exc_info.value.stage == "survey"
        assert exc_info.value.replicate_id == 4

    def test_unconverged_fit_fails(self):
        with pytest.raises(ReplicateFailure) as exc_info:
            estimate_abundance(_fit(converged=False), _survey(), area=1e6)
        assert exc_info.value.stage == "fitting"

    def test_unknown_variance_method(self):
        with pytest.raises(ConfigurationError, match="variance method"):
            estimate_abundance(_fit(), _survey(), area=1e6, variance_method="jackknife")

    def test_bootstrap_needs_rng(self):
        with pytest.raises(ConfigurationError, match="random generator"):
            estimate_abundance(_fit(), _survey(), area=1e6, variance_method="bootstrap")

    def test_bootstrap_single_transect_fails(self):
        survey = _survey(counts=(10,), lengths=(1000.0,))
        with pytest.raises(ReplicateFailure, match="at least 2 transects") as exc_info:
            estimate_abundance(
                _fit(), survey, area=1e6, replicate_id=2,
                variance_method="bootstrap", rng=np.random.default_rng(0),
            )
        assert exc_info.value.stage == "variance"
        assert exc_info.value.replicate_id == 2

    def test_bootstrap_without_usable_resamples_fails(self):
        with patch("dssim_tools.estimator.bootstrap_se", return_value=math.nan):
            with pytest.raises(ReplicateFailure) as exc_info:
                estimate_abundance(
                    _fit(), _survey(), area=1e6,
                    variance_method="bootstrap", rng=np.random.default_rng(0),
                )
        assert exc_info.value.stage == "variance"


class TestBootstrap:
    def test_bootstrap_se(self):
        region = Region.rectangle(10000, 10000)
        density = DensityField.constant(region, spacing=500)
        rng = np.random.default_rng(5)
        population = generate_population(region, density, 1500, True, rng)
        transects = TransectSet(
            tuple(
                Transect.from_vertices(i, [(x, 0), (x, 10000)])
                for i, x in enumerate([1000, 3000, 5000, 7000, 9000])
            )
        )
        detection = DetectionModel("hn", scale=500, truncation=1000)
        survey = simulate_survey(population, transects, detection, rng)
        fit = select_model(survey.detected_distances, 1000, forms=["hn"])

        est = estimate_abundance(
            fit,
            survey,
            region.area,
            variance_method="bootstrap",
            n_bootstrap=20,
            rng=np.random.default_rng(6),
        )
        assert est.abundance == pytest.approx(1500, rel=0.2)
        assert est.se > 0
        assert np.isfinite(est.cv)
