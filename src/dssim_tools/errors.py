"""
Error types for distance-sampling simulations.

Setup problems (InputError, ConfigurationError) are fatal and surface before
any replicate runs. ReplicateFailure is raised inside a single replicate and
is caught and recorded by the simulation executor.
"""


class DSSimError(Exception):
    """Base class for all dssim_tools errors."""


class InputError(DSSimError, ValueError):
    """Malformed region, density surface, transects or design."""


class ConfigurationError(DSSimError, ValueError):
    """Inconsistent simulation parameters (e.g. truncation <= 0)."""


class ReplicateFailure(DSSimError, RuntimeError):
    """
    A single replicate could not produce an abundance estimate.

    Attributes:
        stage: Pipeline stage where the replicate failed
            ("survey" for zero detections, "fitting" for non-convergence,
            "variance" for an unusable bootstrap SE, "error" for unexpected
            exceptions)
        replicate_id: Replicate index, if known
    """

    def __init__(self, message: str, stage: str, replicate_id: int | None = None):
        super().__init__(message)
        self.stage = stage
        self.replicate_id = replicate_id
