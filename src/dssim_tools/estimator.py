"""
Abundance estimation from a fitted detection function.

    D = n / (2 w L Pa)        N = D * A

The analytic standard error combines encounter-rate variance between
transects (Fewster et al. 2009, estimator R2) with the delta-method variance
of Pa. The bootstrap alternative resamples transects with replacement and
refits the selected detection form.
"""

import math
from dataclasses import dataclass

import numpy as np

from .config import CI_Z, VALID_VARIANCE_METHODS
from .errors import ConfigurationError, ReplicateFailure
from .fitting import FittedModel, fit_detection_function
from .survey import SurveyResult


@dataclass(frozen=True)
class ReplicateEstimate:
    """
    Abundance estimate for one replicate.

    Attributes:
        replicate_id: Replicate index
        abundance: Estimated abundance N
        se: Standard error of N
        cv: Coefficient of variation of N
        lcl: Lower 95% log-normal confidence limit
        ucl: Upper 95% log-normal confidence limit
        density: Estimated density (animals per squared region unit)
        pa: Estimated average detection probability within truncation
        n_detected: Detections used in the estimate
        effort: Total transect length
        form: Selected detection form
        true_n: Population size of the replicate
    """

    replicate_id: int
    abundance: float
    se: float
    cv: float
    lcl: float
    ucl: float
    density: float
    pa: float
    n_detected: int
    effort: float
    form: str
    true_n: int

    @property
    def covered(self) -> bool:
        """Whether the confidence interval contains the true population size."""
        return self.lcl <= self.true_n <= self.ucl

    def to_dict(self) -> dict:
        return {
            "replicate_id": self.replicate_id,
            "abundance": self.abundance,
            "se": self.se,
            "cv": self.cv,
            "lcl": self.lcl,
            "ucl": self.ucl,
            "density": self.density,
            "pa": self.pa,
            "n_detected": self.n_detected,
            "effort": self.effort,
            "form": self.form,
            "true_n": self.true_n,
        }


def encounter_rate_variance(counts: np.ndarray, lengths: np.ndarray) -> float:
    """
    Variance of the detection count n from between-transect variation.

    Uses the R2 estimator of Fewster et al. (2009). With fewer than two
    transects a Poisson variance (var(n) = n) is returned.

    Args:
        counts: Detections per transect
        lengths: Length of each transect
    """
    counts = np.asarray(counts, dtype=float)
    lengths = np.asarray(lengths, dtype=float)
    n = counts.sum()
    k = len(counts)
    if k < 2:
        return float(n)
    total = lengths.sum()
    er = n / total
    var_er = k / (total**2 * (k - 1)) * np.sum(lengths**2 * (counts / lengths - er) ** 2)
    return float(var_er * total**2)


def lognormal_ci(estimate: float, cv: float) -> tuple[float, float]:
    """95% log-normal confidence interval for a positive estimate."""
    if not np.isfinite(cv) or cv <= 0:
        return estimate, estimate
    c = math.exp(CI_Z * math.sqrt(math.log(1.0 + cv**2)))
    return estimate / c, estimate * c


def _point_estimate(n: int, effort: float, truncation: float, pa: float, area: float):
    density = n / (2.0 * truncation * effort * pa)
    return density, density * area


def bootstrap_se(
    fit: FittedModel,
    survey: SurveyResult,
    area: float,
    rng: np.random.Generator,
    n_bootstrap: int = 100,
) -> float:
    """
    Non-parametric bootstrap SE of abundance, resampling transects.

    Resamples whose refit does not converge (or that have no detections) are
    skipped; the SE is the standard deviation of the remaining estimates.
    """
    estimates = []
    ids = survey.effort_ids
    for _ in range(n_bootstrap):
        sample = survey.subset(rng.choice(ids, size=len(ids), replace=True))
        if sample.n_detected == 0:
            continue
        refit = fit_detection_function(sample.detected_distances, fit.truncation, fit.form)
        if not refit.converged:
            continue
        _, n_hat = _point_estimate(
            sample.n_detected, sample.effort, fit.truncation, refit.pa, area
        )
        estimates.append(n_hat)
    if len(estimates) < 2:
        return math.nan
    return float(np.std(estimates, ddof=1))


def estimate_abundance(
    fit: FittedModel,
    survey: SurveyResult,
    area: float,
    replicate_id: int = 0,
    variance_method: str = "analytic",
    n_bootstrap: int = 100,
    rng: np.random.Generator | None = None,
) -> ReplicateEstimate:
    """
    Convert a fitted detection function and survey effort into abundance.

    Args:
        fit: Selected detection-function fit
        survey: Survey result the fit was made from
        area: Region area (squared region units)
        replicate_id: Replicate index recorded in the estimate
        variance_method: "analytic" or "bootstrap"
        n_bootstrap: Bootstrap resamples (bootstrap method only)
        rng: Random generator (required for the bootstrap)

    Returns:
        ReplicateEstimate

    Raises:
        ReplicateFailure: If there are no detections (stage "survey"), the
            fit did not converge (stage "fitting") or the bootstrap cannot
            give a standard error (stage "variance")
    """
    if variance_method not in VALID_VARIANCE_METHODS:
        raise ConfigurationError(
            f"Unknown variance method '{variance_method}'. "
            f"Valid methods: {sorted(VALID_VARIANCE_METHODS)}"
        )
    n = survey.n_detected
    if n == 0:
        raise ReplicateFailure("No animals detected", stage="survey", replicate_id=replicate_id)
    if not fit.converged or not fit.pa > 0:
        raise ReplicateFailure(
            f"Detection function '{fit.form}' did not converge",
            stage="fitting",
            replicate_id=replicate_id,
        )

    effort = survey.effort
    density, abundance = _point_estimate(n, effort, fit.truncation, fit.pa, area)

    if variance_method == "analytic":
        var_n = encounter_rate_variance(survey.counts_by_transect(), survey.effort_lengths)
        cv2 = var_n / n**2 + fit.pa_var / fit.pa**2
        se = abundance * math.sqrt(cv2)
    else:
        if rng is None:
            raise ConfigurationError("bootstrap variance needs a random generator")
        if len(survey.effort_ids) < 2:
            raise ReplicateFailure(
                "Bootstrap needs at least 2 transects to resample",
                stage="variance",
                replicate_id=replicate_id,
            )
        se = bootstrap_se(fit, survey, area, rng, n_bootstrap)
        if not np.isfinite(se):
            raise ReplicateFailure(
                "Fewer than 2 bootstrap resamples produced an estimate",
                stage="variance",
                replicate_id=replicate_id,
            )

    cv = se / abundance if abundance > 0 else math.nan
    lcl, ucl = lognormal_ci(abundance, cv)

    return ReplicateEstimate(
        replicate_id=replicate_id,
        abundance=float(abundance),
        se=float(se),
        cv=float(cv),
        lcl=float(lcl),
        ucl=float(ucl),
        density=float(density),
        pa=float(fit.pa),
        n_detected=int(n),
        effort=float(effort),
        form=fit.form,
        true_n=int(survey.n_population),
    )
