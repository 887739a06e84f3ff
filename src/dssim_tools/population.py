"""
Population generation from a density surface.

Locations are drawn by choosing grid cells with probability proportional to
intensity, placing the animal uniformly within the chosen cell, and
rejecting draws that land outside the region (cells on the boundary are
only partly inside).
"""

from dataclasses import dataclass

import numpy as np

from .density import DensityField
from .errors import ConfigurationError, InputError
from .region import Region

# Rejection rounds before giving up on placing the remaining animals
MAX_REJECTION_ROUNDS = 1000


@dataclass(frozen=True, eq=False)
class Population:
    """
    Animal locations for one replicate.

    Attributes:
        locations: (N, 2) array of x, y coordinates
        fixed_count: Whether N was fixed or drawn from a Poisson distribution
    """

    locations: np.ndarray
    fixed_count: bool = True

    @property
    def size(self) -> int:
        return len(self.locations)

    def __len__(self) -> int:
        return self.size


def _sample_locations(
    region: Region, density: DensityField, n: int, rng: np.random.Generator
) -> np.ndarray:
    """Draw n locations inside the region with probability proportional to density."""
    probs = density.probabilities()
    half = density.spacing / 2

    out = np.empty((n, 2))
    filled = 0
    for _ in range(MAX_REJECTION_ROUNDS):
        if filled == n:
            break
        need = n - filled
        cells = rng.choice(density.n_cells, size=need, p=probs)
        pts = np.column_stack(
            [
                density.x[cells] + rng.uniform(-half, half, size=need),
                density.y[cells] + rng.uniform(-half, half, size=need),
            ]
        )
        pts = pts[region.contains(pts)]
        out[filled : filled + len(pts)] = pts
        filled += len(pts)

    if filled < n:
        raise InputError(
            f"Could only place {filled} of {n} animals inside region '{region.name}'"
        )
    return out


def generate_population(
    region: Region,
    density: DensityField,
    n: int | None,
    fixed_count: bool,
    rng: np.random.Generator,
) -> Population:
    """
    Generate one population.

    Args:
        region: Survey region
        density: Density surface (relative when fixed_count, absolute otherwise)
        n: Exact population size when fixed_count is True (ignored otherwise)
        fixed_count: If True produce exactly n animals; if False draw the size
            from Poisson(density.total())
        rng: Random generator for this replicate

    Returns:
        Population with locations inside the region

    Raises:
        InputError: If the density surface integrates to zero
        ConfigurationError: If n is missing or negative for a fixed-count population
    """
    if density.n_cells == 0 or density.total() <= 0:
        raise InputError(f"Density surface over '{region.name}' integrates to zero")

    if fixed_count:
        if n is None or n < 0:
            raise ConfigurationError(
                f"Fixed-count population needs n >= 0, got {n}"
            )
        size = int(n)
    else:
        size = int(rng.poisson(density.total()))

    if size == 0:
        return Population(locations=np.empty((0, 2)), fixed_count=fixed_count)

    locations = _sample_locations(region, density, size, rng)
    locations.setflags(write=False)
    return Population(locations=locations, fixed_count=fixed_count)
