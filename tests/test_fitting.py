"""
Unit tests for detection-function fitting and AIC model selection.
"""

import dataclasses
import math

import numpy as np
import pytest

from dssim_tools.errors import ConfigurationError, ReplicateFailure
from dssim_tools.fitting import (
    FORMS,
    HalfNormalForm,
    fit_detection_function,
    get_form,
    register_form,
    select_model,
)

TRUE_PA = 500 * math.sqrt(math.pi / 2) * math.erf(1000 / (500 * math.sqrt(2))) / 1000


@pytest.fixture
def hn_distances():
    """Half-normal (scale 500) distances truncated at 1000."""
    rng = np.random.default_rng(2024)
    x = np.abs(rng.normal(0, 500, size=2000))
    return x[x <= 1000][:600]


class TestHalfNormalFit:
    def test_recovers_scale(self, hn_distances):
        fit = fit_detection_function(hn_distances, 1000, "hn")
        assert fit.converged
        assert fit.params["scale"] == pytest.approx(500, rel=0.15)

    def test_pa_close_to_truth(self, hn_distances):
        fit = fit_detection_function(hn_distances, 1000, "hn")
        assert fit.pa == pytest.approx(TRUE_PA, abs=0.06)
        assert fit.strip_width == pytest.approx(fit.pa * 1000)
        assert 0 < fit.pa_var < 0.01

    def test_closed_form_strip_width_matches_quadrature(self):
        form = HalfNormalForm()
        theta = np.array([math.log(0.4)])
        generic = super(HalfNormalForm, form).strip_width(theta, 1000)
        assert form.strip_width(theta, 1000) == pytest.approx(generic, rel=1e-6)

    def test_fitted_model_is_immutable(self, hn_distances):
        fit = fit_detection_function(hn_distances, 1000, "hn")
        with pytest.raises(dataclasses.FrozenInstanceError):
            fit.pa = 0.9
        with pytest.raises(ValueError):
            fit.theta[0] = 0.0
        with pytest.raises(ValueError):
            fit.covariance[0, 0] = 1.0

    def test_distances_beyond_truncation_dropped(self, hn_distances):
        fit = fit_detection_function(np.append(hn_distances, [5000, 8000]), 1000, "hn")
        assert fit.n == len(hn_distances)


class TestHazardRateFit:
    def test_fits_hn_data(self, hn_distances):
        fit = fit_detection_function(hn_distances, 1000, "hr")
        if fit.converged:
            assert set(fit.params) == {"scale", "shape"}
            assert 0 < fit.pa <= 1
        else:
            assert math.isnan(fit.pa)

    def test_hazard_rate_data(self):
        rng = np.random.default_rng(7)
        # Rejection sample from a hazard-rate shape (scale 300, shape 3)
        x = rng.uniform(0, 1000, size=20000)
        keep = rng.random(20000) < -np.expm1(-((x / 300) ** -3.0))
        distances = x[keep][:500]

        fit = fit_detection_function(distances, 1000, "hr")
        assert fit.converged
        assert fit.params["scale"] == pytest.approx(300, rel=0.25)


class TestCriteria:
    def test_aic_aicc_bic(self, hn_distances):
        fit = fit_detection_function(hn_distances, 1000, "hn")
        assert fit.aic == pytest.approx(-2 * fit.log_likelihood + 2)
        assert fit.aicc > fit.aic
        assert fit.bic == pytest.approx(-2 * fit.log_likelihood + math.log(fit.n))
        assert fit.criterion("AIC") == fit.aic

    def test_unknown_criterion(self, hn_distances):
        fit = fit_detection_function(hn_distances, 1000, "hn")
        with pytest.raises(ConfigurationError, match="Unknown criterion"):
            fit.criterion("DIC")


class TestSelectModel:
    def test_selects_minimum_aic(self, hn_distances):
        best = select_model(hn_distances, 1000, forms=("hn", "hr"))
        fits = [fit_detection_function(hn_distances, 1000, f) for f in ("hn", "hr")]
        converged = [f for f in fits if f.converged]
        assert best.aic == pytest.approx(min(f.aic for f in converged))

    def test_single_candidate(self, hn_distances):
        best = select_model(hn_distances, 1000, forms=["hn"], criterion="BIC")
        assert best.form == "hn"

    def test_too_few_distances_fail(self):
        fit = fit_detection_function([12.0], 1000, "hn")
        assert not fit.converged

        with pytest.raises(ReplicateFailure) as exc_info:
            select_model([12.0], 1000)
        assert exc_info.value.stage == "fitting"

    def test_unknown_form(self, hn_distances):
        with pytest.raises(ConfigurationError, match="Unknown detection form"):
            select_model(hn_distances, 1000, forms=["gamma"])

    def test_no_forms(self, hn_distances):
        with pytest.raises(ConfigurationError, match="At least one"):
            select_model(hn_distances, 1000, forms=[])

    def test_bad_truncation(self, hn_distances):
        with pytest.raises(ConfigurationError, match="truncation"):
            fit_detection_function(hn_distances, 0, "hn")


class TestFormRegistry:
    def test_builtin_forms_registered(self):
        assert {"hn", "hr"} <= set(FORMS)
        assert get_form("hn").n_params == 1
        assert get_form("hr").n_params == 2

    def test_register_custom_form(self, hn_distances):
        class WideHalfNormal(HalfNormalForm):
            name = "hn_wide"

            def initial_params(self, distances, w):
                return np.array([0.0])

        try:
            register_form(WideHalfNormal())
            best = select_model(hn_distances, 1000, forms=["hn_wide"])
            assert best.form == "hn_wide"
            assert best.params["scale"] == pytest.approx(500, rel=0.15)
        finally:
            FORMS.pop("hn_wide", None)

    def test_form_instances_accepted(self, hn_distances):
        best = select_model(hn_distances, 1000, forms=[HalfNormalForm()])
        assert best.form == "hn"
