"""
Survey region geometry.

A Region is one or more boundary polygons (with optional holes) in a single
length unit. It provides the area used to scale density to abundance, a
vectorised point-in-region test used by population generation, and segment
clipping used to lay transects inside the region.
"""

from dataclasses import dataclass

import numpy as np

from .config import LENGTH_UNITS
from .errors import InputError


def _as_vertices(vertices) -> np.ndarray:
    """Convert vertices to a read-only (k, 2) float array, dropping a closing vertex."""
    arr = np.array(vertices, dtype=float)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise InputError(f"Polygon vertices must have shape (k, 2), got {arr.shape}")
    if len(arr) > 1 and np.allclose(arr[0], arr[-1]):
        arr = arr[:-1]
    if len(arr) < 3:
        raise InputError(f"Polygon needs at least 3 vertices, got {len(arr)}")
    if not np.all(np.isfinite(arr)):
        raise InputError("Polygon vertices must be finite")
    arr.setflags(write=False)
    return arr


def polygon_area(vertices: np.ndarray) -> float:
    """Area of a simple polygon (shoelace formula)."""
    x = vertices[:, 0]
    y = vertices[:, 1]
    return 0.5 * abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1)))


def points_in_polygon(points: np.ndarray, vertices: np.ndarray) -> np.ndarray:
    """
    Even-odd ray casting test for many points against one polygon.

    Args:
        points: (n, 2) array of locations
        vertices: (k, 2) polygon vertices

    Returns:
        Boolean array of length n
    """
    points = np.atleast_2d(np.asarray(points, dtype=float))
    px = points[:, 0][:, None]
    py = points[:, 1][:, None]

    x0 = vertices[:, 0][None, :]
    y0 = vertices[:, 1][None, :]
    x1 = np.roll(vertices[:, 0], -1)[None, :]
    y1 = np.roll(vertices[:, 1], -1)[None, :]

    straddles = (y0 > py) != (y1 > py)
    with np.errstate(divide="ignore", invalid="ignore"):
        x_cross = x0 + (py - y0) * (x1 - x0) / (y1 - y0)
    crossings = straddles & (px < x_cross)
    return (crossings.sum(axis=1) % 2) == 1


@dataclass(frozen=True, eq=False)
class Region:
    """
    Survey region made of boundary polygons and optional holes.

    Attributes:
        name: Region name (e.g. "Tentsmuir")
        polygons: Boundary polygons, each a (k, 2) vertex array
        holes: Polygons excluded from the region
        units: Length unit of the coordinates ("m" or "km")
    """

    name: str
    polygons: tuple
    holes: tuple = ()
    units: str = "m"

    def __post_init__(self):
        """Validate geometry and freeze vertex arrays."""
        if self.units not in LENGTH_UNITS:
            raise InputError(
                f"Unknown units '{self.units}'. Valid units: {sorted(LENGTH_UNITS)}"
            )
        if len(self.polygons) == 0:
            raise InputError(f"Region '{self.name}' has no polygons")

        object.__setattr__(
            self, "polygons", tuple(_as_vertices(p) for p in self.polygons)
        )
        object.__setattr__(self, "holes", tuple(_as_vertices(h) for h in self.holes))

        if self.area <= 0:
            raise InputError(f"Region '{self.name}' has zero area")

    @classmethod
    def rectangle(
        cls,
        width: float,
        height: float,
        origin: tuple[float, float] = (0.0, 0.0),
        units: str = "m",
        name: str = "rectangle",
    ) -> "Region":
        """Create a rectangular region with its lower-left corner at origin."""
        x0, y0 = origin
        vertices = [
            (x0, y0),
            (x0 + width, y0),
            (x0 + width, y0 + height),
            (x0, y0 + height),
        ]
        return cls(name=name, polygons=(vertices,), units=units)

    @property
    def area(self) -> float:
        """Region area in squared units (polygons minus holes)."""
        outer = sum(polygon_area(p) for p in self.polygons)
        inner = sum(polygon_area(h) for h in self.holes)
        return float(outer - inner)

    def area_in(self, units: str) -> float:
        """Region area converted to squared `units`."""
        if units not in LENGTH_UNITS:
            raise InputError(f"Unknown units '{units}'")
        factor = LENGTH_UNITS[self.units] / LENGTH_UNITS[units]
        return self.area * factor**2

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Bounding box as (xmin, ymin, xmax, ymax)."""
        allv = np.vstack(self.polygons)
        return (
            float(allv[:, 0].min()),
            float(allv[:, 1].min()),
            float(allv[:, 0].max()),
            float(allv[:, 1].max()),
        )

    def contains(self, points) -> np.ndarray:
        """Boolean mask of points inside a polygon and outside every hole."""
        points = np.atleast_2d(np.asarray(points, dtype=float))
        inside = np.zeros(len(points), dtype=bool)
        for poly in self.polygons:
            inside |= points_in_polygon(points, poly)
        for hole in self.holes:
            inside &= ~points_in_polygon(points, hole)
        return inside

    def edges(self) -> np.ndarray:
        """All boundary edges (polygons and holes) as an (E, 2, 2) array."""
        rings = self.polygons + self.holes
        starts = np.vstack(rings)
        ends = np.vstack([np.roll(r, -1, axis=0) for r in rings])
        return np.stack([starts, ends], axis=1)

    def clip_segment(self, start, end) -> list[np.ndarray]:
        """
        Clip a straight segment to the region.

        Args:
            start: Segment start (x, y)
            end: Segment end (x, y)

        Returns:
            List of (2, 2) arrays, the pieces of the segment lying inside
            the region, ordered from start to end
        """
        p0 = np.asarray(start, dtype=float)
        p1 = np.asarray(end, dtype=float)
        d = p1 - p0
        if not np.any(d):
            return []

        edges = self.edges()
        a = edges[:, 0, :]
        e = edges[:, 1, :] - a
        ap = a - p0

        denom = d[0] * e[:, 1] - d[1] * e[:, 0]
        with np.errstate(divide="ignore", invalid="ignore"):
            t = (ap[:, 0] * e[:, 1] - ap[:, 1] * e[:, 0]) / denom
            u = (ap[:, 0] * d[1] - ap[:, 1] * d[0]) / denom
        hits = (denom != 0) & (t >= 0) & (t <= 1) & (u >= 0) & (u <= 1)

        ts = np.unique(np.concatenate([[0.0, 1.0], t[hits]]))
        mids = p0 + ((ts[:-1] + ts[1:]) / 2)[:, None] * d
        inside = self.contains(mids)

        pieces = []
        current = None
        for i, flag in enumerate(inside):
            if flag and current is None:
                current = ts[i]
            elif not flag and current is not None:
                pieces.append((current, ts[i]))
                current = None
        if current is not None:
            pieces.append((current, ts[-1]))

        return [
            np.array([p0 + t0 * d, p0 + t1 * d])
            for t0, t1 in pieces
            if t1 - t0 > 1e-12
        ]
