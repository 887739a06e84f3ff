"""
Survey simulation: which animals are exposed to detection, and which of
those are detected.
"""

from dataclasses import dataclass

import numpy as np

from .design import TransectSet
from .detection import DetectionModel
from .population import Population

# Rows of the animal x segment distance matrix processed at once
CHUNK_SIZE = 5000


@dataclass(frozen=True, eq=False)
class SurveyResult:
    """
    Outcome of surveying one population with one transect set.

    Arrays have one row per exposure: an animal within truncation of a
    transect. An animal may be exposed to several transects.

    Attributes:
        individuals: Index of the exposed animal in the population
        transect_ids: Transect the animal is exposed to
        distances: Perpendicular distance to that transect
        detected: Whether the animal was detected from that transect
        effort_ids: Transect ids, in TransectSet order
        effort_lengths: Length of each transect
        truncation: Truncation distance used
        n_population: Size of the surveyed population
    """

    individuals: np.ndarray
    transect_ids: np.ndarray
    distances: np.ndarray
    detected: np.ndarray
    effort_ids: np.ndarray
    effort_lengths: np.ndarray
    truncation: float
    n_population: int

    @property
    def effort(self) -> float:
        return float(self.effort_lengths.sum())

    @property
    def n_exposed(self) -> int:
        return len(self.individuals)

    @property
    def n_detected(self) -> int:
        return int(self.detected.sum())

    @property
    def detected_distances(self) -> np.ndarray:
        return self.distances[self.detected]

    def counts_by_transect(self) -> np.ndarray:
        """Number of detections on each transect, aligned with effort_ids."""
        det_ids = self.transect_ids[self.detected]
        return np.array([(det_ids == tid).sum() for tid in self.effort_ids])

    def subset(self, transect_ids) -> "SurveyResult":
        """Restrict the result to the given transects (used by the bootstrap)."""
        transect_ids = np.asarray(transect_ids)
        parts = []
        lengths = []
        for tid in transect_ids:
            parts.append(np.flatnonzero(self.transect_ids == tid))
            lengths.append(self.effort_lengths[self.effort_ids == tid][0])
        idx = np.concatenate(parts) if parts else np.array([], dtype=int)
        return SurveyResult(
            individuals=self.individuals[idx],
            transect_ids=self.transect_ids[idx],
            distances=self.distances[idx],
            detected=self.detected[idx],
            effort_ids=transect_ids,
            effort_lengths=np.array(lengths, dtype=float),
            truncation=self.truncation,
            n_population=self.n_population,
        )


def transect_distances(points: np.ndarray, transects: TransectSet) -> np.ndarray:
    """
    Distance from each point to each transect.

    The distance to a transect is the smallest perpendicular distance to one
    of its segments, counting only segments whose perpendicular foot falls on
    the segment, so a point beyond the end of a line is not covered by it.

    Args:
        points: (n, 2) animal locations
        transects: Transect set

    Returns:
        (n, T) distances, columns in TransectSet order; inf where a point is
        covered by no segment of that transect
    """
    segments, _ = transects.all_segments()
    a = segments[:, 0, :]
    v = segments[:, 1, :] - a
    seg_len2 = (v**2).sum(axis=1)
    seg_len = np.sqrt(seg_len2)

    # segments are stored transect by transect
    n_segments = np.array([len(t.segments) for t in transects.transects])
    starts = np.concatenate([[0], np.cumsum(n_segments)[:-1]])

    out = np.full((len(points), len(transects)), np.inf)
    for lo in range(0, len(points), CHUNK_SIZE):
        p = points[lo : lo + CHUNK_SIZE]
        rel_x = p[:, 0][:, None] - a[:, 0][None, :]
        rel_y = p[:, 1][:, None] - a[:, 1][None, :]
        with np.errstate(divide="ignore", invalid="ignore"):
            t = (rel_x * v[:, 0] + rel_y * v[:, 1]) / seg_len2
            perp = np.abs(v[:, 0] * rel_y - v[:, 1] * rel_x) / seg_len
        perp = np.where((t >= 0) & (t <= 1), perp, np.inf)
        out[lo : lo + len(p)] = np.minimum.reduceat(perp, starts, axis=1)

    return out


def perpendicular_distances(
    points: np.ndarray, transects: TransectSet
) -> tuple[np.ndarray, np.ndarray]:
    """
    Distance from each point to its nearest transect.

    Returns:
        (distances, transect_ids): inf / -1 for points covered by no transect
    """
    if len(points) == 0:
        return np.empty(0), np.empty(0, dtype=int)
    by_transect = transect_distances(points, transects)
    ids = np.array(transects.transect_ids)
    best = by_transect.argmin(axis=1)
    distances = by_transect[np.arange(len(points)), best]
    nearest = np.where(np.isfinite(distances), ids[best], -1)
    return distances, nearest


def simulate_survey(
    population: Population,
    transects: TransectSet,
    detection: DetectionModel,
    rng: np.random.Generator,
) -> SurveyResult:
    """
    Survey a population along a set of transects.

    Every transect is surveyed independently: an animal within the truncation
    distance of several transects (e.g. near a zigzag apex) is exposed once
    per transect, with its own detection draw each time. Animals farther
    than the truncation distance from every transect are not exposed.

    Args:
        population: Animal locations
        transects: Transects surveyed
        detection: Detection function (with truncation)
        rng: Random generator for the detection draws

    Returns:
        SurveyResult with one row per (animal, transect) exposure
    """
    ids = np.array(transects.transect_ids)
    if population.size > 0:
        by_transect = transect_distances(population.locations, transects)
        individuals, columns = np.nonzero(by_transect <= detection.truncation)
        d = by_transect[individuals, columns]
        transect_ids = ids[columns]
    else:
        individuals = np.empty(0, dtype=int)
        d = np.empty(0)
        transect_ids = np.empty(0, dtype=int)

    detected = rng.random(len(d)) < detection.probability(d)

    return SurveyResult(
        individuals=individuals,
        transect_ids=transect_ids,
        distances=d,
        detected=detected,
        effort_ids=ids,
        effort_lengths=transects.lengths(),
        truncation=detection.truncation,
        n_population=population.size,
    )
