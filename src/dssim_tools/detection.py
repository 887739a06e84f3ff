"""
Detection functions used to simulate observations.

g(x) is the probability of detecting an animal at perpendicular distance x
from the line. All keys satisfy g(0) = 1, are non-increasing in x, and are
set to 0 beyond the truncation distance.
"""

from dataclasses import dataclass

import numpy as np

from .config import VALID_DETECTION_KEYS
from .errors import ConfigurationError


def half_normal(x: np.ndarray, scale: float) -> np.ndarray:
    """Half-normal key: exp(-x^2 / (2 scale^2))."""
    return np.exp(-(x**2) / (2.0 * scale**2))


def hazard_rate(x: np.ndarray, scale: float, shape: float) -> np.ndarray:
    """Hazard-rate key: 1 - exp(-(x / scale)^-shape), with g(0) = 1."""
    x = np.asarray(x, dtype=float)
    out = np.ones_like(x)
    pos = x > 0
    out[pos] = -np.expm1(-((x[pos] / scale) ** -shape))
    return out


@dataclass(frozen=True)
class DetectionModel:
    """
    Detection function for simulating surveys.

    Attributes:
        key: "hn" (half-normal), "hr" (hazard-rate) or "uf" (uniform)
        scale: Scale parameter in region units (ignored for "uf")
        truncation: Distance beyond which nothing is detected
        shape: Hazard-rate shape parameter (required for "hr")
    """

    key: str
    scale: float
    truncation: float
    shape: float | None = None

    def __post_init__(self):
        """Validate detection parameters."""
        if self.key not in VALID_DETECTION_KEYS:
            raise ConfigurationError(
                f"Invalid detection key '{self.key}'. "
                f"Valid keys: {sorted(VALID_DETECTION_KEYS)}"
            )
        if self.truncation <= 0:
            raise ConfigurationError(
                f"truncation must be > 0, got {self.truncation}"
            )
        if self.key != "uf" and self.scale <= 0:
            raise ConfigurationError(f"scale must be > 0, got {self.scale}")
        if self.key == "hr" and (self.shape is None or self.shape <= 0):
            raise ConfigurationError(
                f"hazard-rate detection needs shape > 0, got {self.shape}"
            )

    def probability(self, distances) -> np.ndarray:
        """Detection probability at each perpendicular distance."""
        x = np.abs(np.asarray(distances, dtype=float))
        if self.key == "hn":
            g = half_normal(x, self.scale)
        elif self.key == "hr":
            g = hazard_rate(x, self.scale, self.shape)
        else:
            g = np.ones_like(x)
        return np.where(x <= self.truncation, g, 0.0)

    def __call__(self, distances) -> np.ndarray:
        return self.probability(distances)
