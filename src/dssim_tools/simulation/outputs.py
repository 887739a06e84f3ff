"""
Aggregation of replicate estimates into simulation summaries.

Only successful replicates enter the abundance statistics. Failed
replicates are kept as failure records and always counted, so a summary
never hides a partial result.
"""

import math
from collections import Counter
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from ..estimator import ReplicateEstimate


@dataclass
class SimulationSummary:
    """
    Results of a replicated simulation for one design.

    Attributes:
        sim_id: Simulation identifier
        design: Design name
        true_n: True (or expected) population size used for bias
        n_requested: Replicates requested
        n_completed: Replicates that finished (successfully or not)
        estimates: Estimates of successful replicates, by replicate id
        failures: One dict per failed replicate (replicate_id, stage, error)
        transect_sets: TransectSet used by each replicate, by replicate id
    """

    sim_id: str
    design: str
    true_n: float
    n_requested: int
    n_completed: int
    estimates: list[ReplicateEstimate] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)
    transect_sets: dict = field(default_factory=dict, repr=False)

    @property
    def n_successful(self) -> int:
        return len(self.estimates)

    @property
    def n_failed(self) -> int:
        return len(self.failures)

    def _values(self, name: str) -> np.ndarray:
        return np.array([getattr(e, name) for e in self.estimates], dtype=float)

    def _mean(self, name: str) -> float:
        values = self._values(name)
        return float(values.mean()) if len(values) else math.nan

    @property
    def mean_abundance(self) -> float:
        return self._mean("abundance")

    @property
    def sd_abundance(self) -> float:
        """Empirical standard deviation of the abundance estimates."""
        values = self._values("abundance")
        return float(values.std(ddof=1)) if len(values) > 1 else math.nan

    @property
    def mean_se(self) -> float:
        return self._mean("se")

    @property
    def percent_bias(self) -> float:
        """(mean estimate - true N) / true N * 100."""
        if not self.estimates or not self.true_n:
            return math.nan
        return (self.mean_abundance - self.true_n) / self.true_n * 100.0

    @property
    def rmse(self) -> float:
        values = self._values("abundance")
        if not len(values):
            return math.nan
        return float(np.sqrt(np.mean((values - self.true_n) ** 2)))

    @property
    def ci_coverage(self) -> float:
        """Proportion of confidence intervals containing each replicate's true N."""
        if not self.estimates:
            return math.nan
        return float(np.mean([e.covered for e in self.estimates]))

    @property
    def mean_density(self) -> float:
        return self._mean("density")

    @property
    def mean_pa(self) -> float:
        return self._mean("pa")

    @property
    def mean_n_detected(self) -> float:
        return self._mean("n_detected")

    @property
    def mean_effort(self) -> float:
        return self._mean("effort")

    @property
    def model_selection(self) -> dict[str, int]:
        """How often each detection form was selected."""
        return dict(Counter(e.form for e in self.estimates))

    def failure_counts(self) -> dict[str, int]:
        """Failures by pipeline stage."""
        return dict(Counter(f["stage"] for f in self.failures))

    def to_dict(self) -> dict:
        """
        Flat mapping for reporting layers.

        Scalars for the aggregate statistics, numpy vectors for the
        per-replicate values.
        """
        return {
            "sim_id": self.sim_id,
            "design": self.design,
            "true_n": self.true_n,
            "n_requested": self.n_requested,
            "n_completed": self.n_completed,
            "n_successful": self.n_successful,
            "n_failed": self.n_failed,
            "mean_abundance": self.mean_abundance,
            "sd_abundance": self.sd_abundance,
            "mean_se": self.mean_se,
            "percent_bias": self.percent_bias,
            "rmse": self.rmse,
            "ci_coverage": self.ci_coverage,
            "mean_density": self.mean_density,
            "mean_pa": self.mean_pa,
            "mean_n_detected": self.mean_n_detected,
            "mean_effort": self.mean_effort,
            "replicate_id": np.array([e.replicate_id for e in self.estimates]),
            "abundance": self._values("abundance"),
            "se": self._values("se"),
            "density": self._values("density"),
            "pa": self._values("pa"),
            "n_detected": self._values("n_detected"),
            "failed_replicate_id": np.array([f["replicate_id"] for f in self.failures]),
        }

    def estimates_frame(self) -> pd.DataFrame:
        """One row per successful replicate."""
        columns = list(ReplicateEstimate.__dataclass_fields__)
        return pd.DataFrame([e.to_dict() for e in self.estimates], columns=columns)

    def failures_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.failures, columns=["replicate_id", "stage", "error"])


def summarise_replicates(
    sim_id: str,
    design: str,
    true_n: float,
    n_requested: int,
    results: list[dict],
) -> SimulationSummary:
    """
    Build a SimulationSummary from replicate result dicts.

    Args:
        sim_id: Simulation identifier
        design: Design name
        true_n: True (or expected) population size
        n_requested: Replicates requested (results may cover fewer if stopped early)
        results: Dicts returned by execute_single_replicate()

    Returns:
        SimulationSummary ordered by replicate id
    """
    estimates = []
    failures = []
    transect_sets = {}
    for result in sorted(results, key=lambda r: r["replicate_id"]):
        if result.get("transects") is not None:
            transect_sets[result["replicate_id"]] = result["transects"]
        if result["success"]:
            estimates.append(result["estimate"])
        else:
            failures.append(
                {
                    "replicate_id": result["replicate_id"],
                    "stage": result["stage"],
                    "error": result["error"],
                }
            )

    return SimulationSummary(
        sim_id=sim_id,
        design=design,
        true_n=true_n,
        n_requested=n_requested,
        n_completed=len(results),
        estimates=estimates,
        failures=failures,
        transect_sets=transect_sets,
    )


def compare_designs(summaries: list[SimulationSummary]) -> pd.DataFrame:
    """
    Side-by-side comparison table, one row per design.

    Example:
        >>> table = compare_designs([subjective, parallel, zigzag])
        >>> table[["design", "mean_abundance", "percent_bias", "sd_abundance"]]
    """
    rows = []
    for s in summaries:
        rows.append(
            {
                "design": s.design,
                "true_n": s.true_n,
                "n_successful": s.n_successful,
                "n_failed": s.n_failed,
                "mean_abundance": s.mean_abundance,
                "percent_bias": s.percent_bias,
                "sd_abundance": s.sd_abundance,
                "mean_se": s.mean_se,
                "rmse": s.rmse,
                "ci_coverage": s.ci_coverage,
                "mean_n_detected": s.mean_n_detected,
                "mean_effort": s.mean_effort,
                "mean_pa": s.mean_pa,
            }
        )
    return pd.DataFrame(rows)
