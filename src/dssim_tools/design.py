"""
Survey designs and transect layouts.

A Design describes how transects are laid out: a fixed (subjective) set used
unchanged in every replicate, systematic parallel lines, or an equal-spaced
zigzag. Randomised designs draw a new random start (and so a new
TransectSet) each replicate.
"""

import math
from dataclasses import dataclass

import numpy as np

from .config import VALID_DESIGN_KINDS
from .errors import InputError
from .region import Region


@dataclass(frozen=True, eq=False)
class Transect:
    """
    A line transect made of one or more straight segments.

    Attributes:
        transect_id: Identifier within its TransectSet
        segments: (m, 2, 2) array of segment start/end points
    """

    transect_id: int
    segments: np.ndarray

    def __post_init__(self):
        segments = np.array(self.segments, dtype=float).reshape(-1, 2, 2)
        if len(segments) == 0:
            raise InputError(f"Transect {self.transect_id} has no segments")
        segments.setflags(write=False)
        object.__setattr__(self, "segments", segments)

    @classmethod
    def from_vertices(cls, transect_id: int, vertices) -> "Transect":
        """Build a polyline transect from its vertices in order."""
        v = np.asarray(vertices, dtype=float)
        if v.ndim != 2 or v.shape[1] != 2 or len(v) < 2:
            raise InputError(
                f"Transect {transect_id} needs at least 2 (x, y) vertices"
            )
        return cls(transect_id, np.stack([v[:-1], v[1:]], axis=1))

    @property
    def length(self) -> float:
        diff = self.segments[:, 1, :] - self.segments[:, 0, :]
        return float(np.hypot(diff[:, 0], diff[:, 1]).sum())


@dataclass(frozen=True, eq=False)
class TransectSet:
    """
    Ordered collection of transects surveyed in one replicate.

    Attributes:
        transects: Transects in survey order
        label: Free-text label (design name, file name, ...)
    """

    transects: tuple
    label: str = ""

    def __post_init__(self):
        object.__setattr__(self, "transects", tuple(self.transects))
        if len(self.transects) == 0:
            raise InputError(f"TransectSet '{self.label}' contains no transects")
        ids = [t.transect_id for t in self.transects]
        if len(ids) != len(set(ids)):
            raise InputError(f"TransectSet '{self.label}' has duplicate transect ids")

    def __len__(self) -> int:
        return len(self.transects)

    @property
    def effort(self) -> float:
        """Total line length surveyed."""
        return sum(t.length for t in self.transects)

    @property
    def transect_ids(self) -> list[int]:
        return [t.transect_id for t in self.transects]

    def lengths(self) -> np.ndarray:
        return np.array([t.length for t in self.transects])

    def all_segments(self) -> tuple[np.ndarray, np.ndarray]:
        """
        Stack every segment of every transect.

        Returns:
            (segments, owners): an (S, 2, 2) array and the transect id of
            each segment
        """
        segments = np.concatenate([t.segments for t in self.transects])
        owners = np.concatenate(
            [np.full(len(t.segments), t.transect_id) for t in self.transects]
        )
        return segments, owners


@dataclass(frozen=True, eq=False)
class Design:
    """
    Survey design.

    Attributes:
        name: Design name used to key results ("subjective", "parallel", ...)
        kind: "fixed", "parallel" or "zigzag"
        spacing: Distance between parallel lines, or between successive
            zigzag apexes along the design axis
        angle: Design axis angle in degrees (0 = lines run north-south)
        transects: TransectSet for fixed designs
        randomize: Draw a new random start every replicate. Always False
            for fixed designs.
    """

    name: str
    kind: str
    spacing: float | None = None
    angle: float = 0.0
    transects: TransectSet | None = None
    randomize: bool = True

    def __post_init__(self):
        """Validate design settings."""
        if self.kind not in VALID_DESIGN_KINDS:
            raise InputError(
                f"Invalid design kind '{self.kind}'. "
                f"Valid kinds: {sorted(VALID_DESIGN_KINDS)}"
            )
        if self.kind == "fixed":
            if self.transects is None:
                raise InputError(f"Fixed design '{self.name}' needs transects")
            object.__setattr__(self, "randomize", False)
        elif self.spacing is None or self.spacing <= 0:
            raise InputError(
                f"Design '{self.name}' needs spacing > 0, got {self.spacing}"
            )

    @classmethod
    def subjective(cls, transects: TransectSet, name: str = "subjective") -> "Design":
        """Fixed design, e.g. transects placed along existing tracks."""
        return cls(name=name, kind="fixed", transects=transects)

    @classmethod
    def parallel(
        cls,
        spacing: float,
        angle: float = 0.0,
        randomize: bool = True,
        name: str = "parallel",
    ) -> "Design":
        """Systematic parallel lines with a random start."""
        return cls(
            name=name, kind="parallel", spacing=spacing, angle=angle, randomize=randomize
        )

    @classmethod
    def zigzag(
        cls,
        spacing: float,
        angle: float = 0.0,
        randomize: bool = True,
        name: str = "zigzag",
    ) -> "Design":
        """Equal-spaced zigzag across the region with a random start."""
        return cls(
            name=name, kind="zigzag", spacing=spacing, angle=angle, randomize=randomize
        )

    @property
    def is_fixed(self) -> bool:
        """True when one TransectSet is shared by all replicates."""
        return not self.randomize


def _rotation(angle_deg: float) -> np.ndarray:
    theta = math.radians(angle_deg)
    return np.array(
        [[math.cos(theta), -math.sin(theta)], [math.sin(theta), math.cos(theta)]]
    )


def _design_frame(region: Region, angle: float):
    """
    Region bounds in the design frame plus a function mapping design-frame
    points back to region coordinates.
    """
    xmin, ymin, xmax, ymax = region.bounds
    centre = np.array([(xmin + xmax) / 2, (ymin + ymax) / 2])
    rot = _rotation(angle)

    verts = np.vstack(region.polygons) - centre
    local = verts @ rot  # inverse rotation (rot is orthonormal)

    def to_region(points: np.ndarray) -> np.ndarray:
        return points @ rot.T + centre

    lo = local.min(axis=0)
    hi = local.max(axis=0)
    return lo, hi, to_region


def _clip_lines(region: Region, lines: list[np.ndarray], label: str) -> TransectSet:
    """Clip candidate lines to the region, one transect per line with effort."""
    transects = []
    for line in lines:
        pieces = region.clip_segment(line[0], line[1])
        if pieces:
            transects.append(Transect(len(transects), np.stack(pieces)))
    if not transects:
        raise InputError(f"Design '{label}' placed no transects inside the region")
    return TransectSet(tuple(transects), label=label)


def _parallel_lines(region: Region, design: Design, start: float) -> list[np.ndarray]:
    lo, hi, to_region = _design_frame(region, design.angle)
    xs = np.arange(lo[0] + start, hi[0], design.spacing)
    # pad beyond the bounding box so clipping, not the line ends, sets the extent
    pad = design.spacing
    return [
        to_region(np.array([[x, lo[1] - pad], [x, hi[1] + pad]])) for x in xs
    ]


def _zigzag_lines(region: Region, design: Design, start: float) -> list[np.ndarray]:
    lo, hi, to_region = _design_frame(region, design.angle)
    xs = np.arange(lo[0] + start - design.spacing, hi[0] + design.spacing, design.spacing)
    ys = np.where(np.arange(len(xs)) % 2 == 0, lo[1], hi[1])
    apexes = to_region(np.column_stack([xs, ys]))
    return [apexes[i : i + 2] for i in range(len(apexes) - 1)]


def generate_transects(
    design: Design, region: Region, rng: np.random.Generator | None = None
) -> TransectSet:
    """
    Lay out transects for one replicate.

    Fixed designs return their own TransectSet unchanged. Parallel and
    zigzag designs use a uniform random start in [0, spacing) drawn from
    rng (or start at spacing / 2 when rng is None).

    Args:
        design: Survey design
        region: Survey region
        rng: Random generator for the random start

    Returns:
        TransectSet clipped to the region
    """
    if design.kind == "fixed":
        return design.transects

    start = rng.uniform(0, design.spacing) if rng is not None else design.spacing / 2
    if design.kind == "parallel":
        lines = _parallel_lines(region, design, start)
    else:
        lines = _zigzag_lines(region, design, start)
    return _clip_lines(region, lines, label=design.name)
