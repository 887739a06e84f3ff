"""
Detection-function fitting and model selection.

Candidate forms implement the DetectionForm interface and are fitted by
maximum likelihood to perpendicular distances truncated at w:

    L(theta) = prod_i g(x_i; theta) / mu(theta),   mu = integral_0^w g(x) dx

Parameters are estimated on the log scale relative to w, so the optimiser
works on unconstrained, unit-free values. The parameter covariance is the
inverse of a finite-difference Hessian of the negative log-likelihood and is
propagated to Pa = mu / w with the delta method.

New forms are added with register_form(); the simulation executor only
refers to forms by name.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import numpy as np
from scipy import integrate, optimize, special

from .config import VALID_CRITERIA
from .detection import half_normal, hazard_rate
from .errors import ConfigurationError, ReplicateFailure

# Minimum detections needed to attempt a fit
MIN_DETECTIONS = 2


class DetectionForm(ABC):
    """Interface for a candidate detection-function form."""

    name: str = ""
    param_names: tuple = ()

    @property
    def n_params(self) -> int:
        return len(self.param_names)

    @abstractmethod
    def initial_params(self, distances: np.ndarray, w: float) -> np.ndarray:
        """Starting values (log scale, relative to w)."""

    @abstractmethod
    def g(self, x: np.ndarray, theta: np.ndarray, w: float) -> np.ndarray:
        """Detection probability at distances x."""

    @abstractmethod
    def natural_params(self, theta: np.ndarray, w: float) -> dict:
        """Parameters on their natural scale, keyed by name."""

    def strip_width(self, theta: np.ndarray, w: float) -> float:
        """Effective strip half-width mu = integral of g over [0, w]."""
        value, _ = integrate.quad(lambda x: float(self.g(np.array([x]), theta, w)[0]), 0, w)
        return value


class HalfNormalForm(DetectionForm):
    name = "hn"
    param_names = ("scale",)

    def initial_params(self, distances, w):
        rms = math.sqrt(float(np.mean(distances**2))) if len(distances) else w / 2
        return np.array([math.log(max(rms, 1e-3 * w) / w)])

    def g(self, x, theta, w):
        return half_normal(x, w * math.exp(theta[0]))

    def natural_params(self, theta, w):
        return {"scale": w * math.exp(theta[0])}

    def strip_width(self, theta, w):
        sigma = w * math.exp(theta[0])
        return sigma * math.sqrt(math.pi / 2) * special.erf(w / (sigma * math.sqrt(2)))


class HazardRateForm(DetectionForm):
    name = "hr"
    param_names = ("scale", "shape")

    def initial_params(self, distances, w):
        med = float(np.median(distances)) if len(distances) else w / 2
        return np.array([math.log(max(med, 1e-3 * w) / w), math.log(2.5)])

    def g(self, x, theta, w):
        return hazard_rate(x, w * math.exp(theta[0]), math.exp(theta[1]))

    def natural_params(self, theta, w):
        return {"scale": w * math.exp(theta[0]), "shape": math.exp(theta[1])}


FORMS: dict[str, DetectionForm] = {}


def register_form(form: DetectionForm) -> DetectionForm:
    """Make a detection form available to select_model by name."""
    if not form.name:
        raise ConfigurationError("Detection form must have a name")
    FORMS[form.name] = form
    return form


def get_form(form: "str | DetectionForm") -> DetectionForm:
    """Look up a registered form by name (forms are passed through)."""
    if isinstance(form, DetectionForm):
        return form
    if form not in FORMS:
        raise ConfigurationError(
            f"Unknown detection form '{form}'. Registered forms: {sorted(FORMS)}"
        )
    return FORMS[form]


register_form(HalfNormalForm())
register_form(HazardRateForm())


@dataclass(frozen=True, eq=False)
class FittedModel:
    """
    Result of fitting one detection form.

    Attributes:
        form: Form name ("hn", "hr", ...)
        params: Fitted parameters on the natural scale
        theta: Fitted parameters on the optimisation scale
        log_likelihood: Maximised log-likelihood
        n: Number of distances fitted
        n_params: Number of estimated parameters
        truncation: Truncation distance w
        strip_width: Effective strip half-width mu
        pa: Average detection probability within w (mu / w)
        pa_var: Delta-method variance of pa
        converged: Whether the optimisation converged to a usable optimum
        message: Optimiser message
    """

    form: str
    params: dict
    theta: np.ndarray
    log_likelihood: float
    n: int
    n_params: int
    truncation: float
    strip_width: float
    pa: float
    pa_var: float
    converged: bool
    message: str = ""
    covariance: np.ndarray | None = field(default=None, repr=False)

    def __post_init__(self):
        theta = np.array(self.theta, dtype=float)
        theta.setflags(write=False)
        object.__setattr__(self, "theta", theta)
        if self.covariance is not None:
            covariance = np.array(self.covariance, dtype=float)
            covariance.setflags(write=False)
            object.__setattr__(self, "covariance", covariance)

    @property
    def aic(self) -> float:
        return -2.0 * self.log_likelihood + 2.0 * self.n_params

    @property
    def aicc(self) -> float:
        k = self.n_params
        if self.n - k - 1 <= 0:
            return math.inf
        return self.aic + 2.0 * k * (k + 1) / (self.n - k - 1)

    @property
    def bic(self) -> float:
        return -2.0 * self.log_likelihood + self.n_params * math.log(max(self.n, 1))

    def criterion(self, name: str) -> float:
        """Information criterion value by name ("AIC", "AICc", "BIC")."""
        if name == "AIC":
            return self.aic
        elif name == "AICc":
            return self.aicc
        elif name == "BIC":
            return self.bic
        raise ConfigurationError(
            f"Unknown criterion '{name}'. Valid criteria: {sorted(VALID_CRITERIA)}"
        )


def _negative_log_likelihood(
    theta: np.ndarray, form: DetectionForm, x: np.ndarray, w: float
) -> float:
    mu = form.strip_width(theta, w)
    g = form.g(x, theta, w)
    if not np.isfinite(mu) or mu <= 0 or np.any(g <= 0):
        return math.inf
    value = -(np.sum(np.log(g)) - len(x) * math.log(mu))
    return float(value) if np.isfinite(value) else math.inf


def _numerical_hessian(f, theta: np.ndarray) -> np.ndarray:
    """Central finite-difference Hessian of a scalar function."""
    k = len(theta)
    h = 1e-4 * (1.0 + np.abs(theta))
    hess = np.empty((k, k))
    for i in range(k):
        for j in range(i, k):
            ei = np.zeros(k)
            ej = np.zeros(k)
            ei[i] = h[i]
            ej[j] = h[j]
            value = (
                f(theta + ei + ej)
                - f(theta + ei - ej)
                - f(theta - ei + ej)
                + f(theta - ei - ej)
            ) / (4 * h[i] * h[j])
            hess[i, j] = hess[j, i] = value
    return hess


def _gradient(f, theta: np.ndarray) -> np.ndarray:
    h = 1e-5 * (1.0 + np.abs(theta))
    grad = np.empty(len(theta))
    for i in range(len(theta)):
        e = np.zeros(len(theta))
        e[i] = h[i]
        grad[i] = (f(theta + e) - f(theta - e)) / (2 * h[i])
    return grad


def fit_detection_function(
    distances, truncation: float, form: "str | DetectionForm"
) -> FittedModel:
    """
    Fit one detection form by maximum likelihood.

    Distances beyond the truncation distance are dropped before fitting.
    A fit that fails to converge is returned with converged=False rather
    than raising, so select_model can fall back to other candidates.

    Args:
        distances: Observed perpendicular distances
        truncation: Truncation distance w
        form: Form name or DetectionForm instance

    Returns:
        FittedModel
    """
    if truncation <= 0:
        raise ConfigurationError(f"truncation must be > 0, got {truncation}")
    form = get_form(form)
    w = float(truncation)
    x = np.abs(np.asarray(distances, dtype=float))
    x = x[x <= w]

    def failed(message: str, theta=None) -> FittedModel:
        theta = form.initial_params(x, w) if theta is None else theta
        return FittedModel(
            form=form.name,
            params=form.natural_params(theta, w),
            theta=theta,
            log_likelihood=-math.inf,
            n=len(x),
            n_params=form.n_params,
            truncation=w,
            strip_width=math.nan,
            pa=math.nan,
            pa_var=math.nan,
            converged=False,
            message=message,
        )

    if len(x) < MIN_DETECTIONS:
        return failed(f"only {len(x)} distances within truncation")

    def nll(theta):
        return _negative_log_likelihood(theta, form, x, w)

    start = form.initial_params(x, w)
    res = optimize.minimize(
        nll,
        start,
        method="Nelder-Mead",
        options={"xatol": 1e-6, "fatol": 1e-8, "maxiter": 2000 * form.n_params},
    )
    theta = np.asarray(res.x, dtype=float)
    if not res.success or not np.isfinite(res.fun):
        return failed(str(res.message), theta)

    hess = _numerical_hessian(nll, theta)
    try:
        covariance = np.linalg.inv(hess)
    except np.linalg.LinAlgError:
        return failed("singular Hessian", theta)
    if not np.all(np.isfinite(covariance)) or np.any(np.diag(covariance) <= 0):
        return failed("Hessian not positive definite", theta)

    def pa_of(t):
        return form.strip_width(t, w) / w

    mu = form.strip_width(theta, w)
    grad = _gradient(pa_of, theta)
    pa_var = float(grad @ covariance @ grad)

    return FittedModel(
        form=form.name,
        params=form.natural_params(theta, w),
        theta=theta,
        log_likelihood=-float(res.fun),
        n=len(x),
        n_params=form.n_params,
        truncation=w,
        strip_width=float(mu),
        pa=float(mu / w),
        pa_var=max(pa_var, 0.0),
        converged=True,
        message=str(res.message),
        covariance=covariance,
    )


def select_model(
    distances,
    truncation: float,
    forms=("hn", "hr"),
    criterion: str = "AIC",
) -> FittedModel:
    """
    Fit every candidate form and return the one with the lowest criterion.

    Args:
        distances: Observed perpendicular distances
        truncation: Truncation distance w
        forms: Candidate form names or DetectionForm instances
        criterion: "AIC", "AICc" or "BIC"

    Returns:
        Selected FittedModel (ties go to the earlier candidate)

    Raises:
        ReplicateFailure: If no candidate converged (stage "fitting")
    """
    if criterion not in VALID_CRITERIA:
        raise ConfigurationError(
            f"Unknown criterion '{criterion}'. Valid criteria: {sorted(VALID_CRITERIA)}"
        )
    if len(forms) == 0:
        raise ConfigurationError("At least one candidate form is required")

    fits = [fit_detection_function(distances, truncation, f) for f in forms]
    converged = [f for f in fits if f.converged]
    if not converged:
        reasons = "; ".join(f"{f.form}: {f.message}" for f in fits)
        raise ReplicateFailure(f"No detection function converged ({reasons})", stage="fitting")

    return min(converged, key=lambda f: f.criterion(criterion))
