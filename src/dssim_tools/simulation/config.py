"""
Configuration dataclass for replicated survey simulations.

One SimulationConfig describes how a design is replicated: how many
replicates, the master seed, the true population size, which detection
forms compete for selection, and how precision is estimated.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from ..config import (
    DEFAULT_CANDIDATE_FORMS,
    DEFAULT_OUTPUT_DIR,
    VALID_CRITERIA,
    VALID_VARIANCE_METHODS,
)
from ..errors import ConfigurationError


@dataclass
class SimulationConfig:
    """
    Configuration for a replicated simulation of one design.

    Attributes:
        seed: Master seed; replicate seeds are derived from it
        n_replicates: Number of replicates (10 to explore, 999+ for inference)
        true_n: Population size when fixed_count is True
        fixed_count: Exact population size per replicate (else Poisson)
        candidate_forms: Detection forms fitted in each replicate
        criterion: Model selection criterion ("AIC", "AICc", "BIC")
        variance_method: "analytic" or "bootstrap"
        n_bootstrap: Bootstrap resamples per replicate
        n_workers: Parallel worker processes (1 = run inline)
        sim_id: Unique simulation identifier (auto-generated if None)
        output_base: Base directory for outputs (auto-generated if None)
    """

    seed: int
    n_replicates: int
    true_n: int | None = None
    fixed_count: bool = True
    candidate_forms: list[str] = field(
        default_factory=lambda: list(DEFAULT_CANDIDATE_FORMS)
    )
    criterion: str = "AIC"
    variance_method: str = "analytic"
    n_bootstrap: int = 100
    n_workers: int = 4
    sim_id: str | None = None
    output_base: Path | None = None

    def __post_init__(self):
        """Validate configuration and set defaults."""
        if self.n_replicates <= 0:
            raise ConfigurationError(
                f"n_replicates must be > 0, got {self.n_replicates}"
            )
        if self.n_workers <= 0:
            raise ConfigurationError(f"n_workers must be > 0, got {self.n_workers}")
        if self.fixed_count and (self.true_n is None or self.true_n <= 0):
            raise ConfigurationError(
                f"true_n must be > 0 for a fixed-count population, got {self.true_n}"
            )
        if len(self.candidate_forms) == 0:
            raise ConfigurationError("candidate_forms cannot be empty")
        if len(self.candidate_forms) != len(set(self.candidate_forms)):
            raise ConfigurationError(
                f"Duplicate candidate forms: {self.candidate_forms}"
            )
        if self.criterion not in VALID_CRITERIA:
            raise ConfigurationError(
                f"Invalid criterion '{self.criterion}'. "
                f"Valid criteria: {sorted(VALID_CRITERIA)}"
            )
        if self.variance_method not in VALID_VARIANCE_METHODS:
            raise ConfigurationError(
                f"Invalid variance_method '{self.variance_method}'. "
                f"Valid methods: {sorted(VALID_VARIANCE_METHODS)}"
            )
        if self.variance_method == "bootstrap" and self.n_bootstrap < 2:
            raise ConfigurationError(
                f"n_bootstrap must be >= 2, got {self.n_bootstrap}"
            )

        # Auto-generate sim_id if not provided
        if self.sim_id is None:
            self.sim_id = f"sim_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

        # Auto-generate output_base if not provided
        if self.output_base is None:
            self.output_base = DEFAULT_OUTPUT_DIR / f"ds_sim_{self.sim_id}"
        else:
            self.output_base = Path(self.output_base)
