"""
Density surfaces over a survey region.

A DensityField is a regular grid of cell centres with an intensity (animals
per squared unit) per cell. Only cells whose centres lie inside the region
are kept, so the integral of the field is the expected abundance.
"""

from dataclasses import dataclass

import numpy as np

from .errors import InputError
from .region import Region


def _readonly(values) -> np.ndarray:
    arr = np.array(values, dtype=float).ravel()
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class DensityField:
    """
    Gridded intensity surface.

    Attributes:
        region: Region the surface is defined over
        x: Cell-centre x coordinates
        y: Cell-centre y coordinates
        density: Intensity per cell (>= 0)
        spacing: Grid spacing (cells are spacing x spacing squares)
    """

    region: Region
    x: np.ndarray
    y: np.ndarray
    density: np.ndarray
    spacing: float

    def __post_init__(self):
        """Validate the grid and drop cells outside the region."""
        if self.spacing <= 0:
            raise InputError(f"spacing must be positive, got {self.spacing}")

        x = np.array(self.x, dtype=float).ravel()
        y = np.array(self.y, dtype=float).ravel()
        density = np.array(self.density, dtype=float).ravel()
        if not (len(x) == len(y) == len(density)):
            raise InputError(
                f"x, y and density must have equal length, "
                f"got {len(x)}, {len(y)}, {len(density)}"
            )
        if not np.all(np.isfinite(density)):
            raise InputError("density values must be finite")
        if np.any(density < 0):
            raise InputError("density values must be >= 0")

        if len(x) > 0:
            keep = self.region.contains(np.column_stack([x, y]))
            x, y, density = x[keep], y[keep], density[keep]

        object.__setattr__(self, "x", _readonly(x))
        object.__setattr__(self, "y", _readonly(y))
        object.__setattr__(self, "density", _readonly(density))

    @classmethod
    def constant(
        cls, region: Region, spacing: float, value: float = 1.0
    ) -> "DensityField":
        """Create a flat surface covering the region's bounding box."""
        if spacing <= 0:
            raise InputError(f"spacing must be positive, got {spacing}")
        xmin, ymin, xmax, ymax = region.bounds
        xs = np.arange(xmin + spacing / 2, xmax, spacing)
        ys = np.arange(ymin + spacing / 2, ymax, spacing)
        gx, gy = np.meshgrid(xs, ys)
        return cls(
            region=region,
            x=gx.ravel(),
            y=gy.ravel(),
            density=np.full(gx.size, float(value)),
            spacing=spacing,
        )

    @property
    def cell_area(self) -> float:
        return self.spacing**2

    @property
    def n_cells(self) -> int:
        return len(self.density)

    def total(self) -> float:
        """Integral of the surface over the region (expected abundance)."""
        return float(self.density.sum() * self.cell_area)

    def add_hotspot(
        self, centre: tuple[float, float], sigma: float, amplitude: float
    ) -> "DensityField":
        """
        Return a new surface with a Gaussian bump added.

        A negative amplitude creates a low spot; the result is clipped at 0.

        Args:
            centre: (x, y) of the bump
            sigma: Spread of the bump in region units
            amplitude: Intensity added at the centre
        """
        if sigma <= 0:
            raise InputError(f"sigma must be positive, got {sigma}")
        cx, cy = centre
        d2 = (self.x - cx) ** 2 + (self.y - cy) ** 2
        bump = amplitude * np.exp(-d2 / (2 * sigma**2))
        return DensityField(
            region=self.region,
            x=self.x,
            y=self.y,
            density=np.clip(self.density + bump, 0.0, None),
            spacing=self.spacing,
        )

    def scaled_to(self, n: float) -> "DensityField":
        """Return a surface with the same shape whose integral equals n."""
        total = self.total()
        if total <= 0:
            raise InputError("Cannot rescale a density surface with zero integral")
        return DensityField(
            region=self.region,
            x=self.x,
            y=self.y,
            density=self.density * (n / total),
            spacing=self.spacing,
        )

    def probabilities(self) -> np.ndarray:
        """Per-cell selection probabilities proportional to intensity."""
        total = self.density.sum()
        if total <= 0:
            raise InputError("Density surface integrates to zero")
        return self.density / total
