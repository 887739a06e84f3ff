"""
Unit tests for survey designs and transect layouts.
"""

import numpy as np
import pytest

from dssim_tools.design import Design, Transect, TransectSet, generate_transects
from dssim_tools.errors import InputError
from dssim_tools.region import Region


@pytest.fixture
def region():
    return Region.rectangle(10000, 10000, name="study")


@pytest.fixture
def track_transects():
    """Two subjective transects, one with a bend."""
    return TransectSet(
        (
            Transect.from_vertices(0, [(1000, 0), (1000, 10000)]),
            Transect.from_vertices(1, [(3000, 0), (3000, 4000), (6000, 8000)]),
        ),
        label="tracks",
    )


def _segments_inside(region, transects):
    segments, _ = transects.all_segments()
    mids = segments.mean(axis=1)
    return region.contains(mids).all()


class TestTransects:
    def test_length(self):
        t = Transect.from_vertices(0, [(0, 0), (3, 4), (3, 10)])
        assert t.length == pytest.approx(11.0)

    def test_effort(self, track_transects):
        assert track_transects.effort == pytest.approx(10000 + 4000 + 5000)
        np.testing.assert_allclose(track_transects.lengths(), [10000, 9000])

    def test_all_segments_owners(self, track_transects):
        segments, owners = track_transects.all_segments()
        assert segments.shape == (3, 2, 2)
        assert owners.tolist() == [0, 1, 1]

    def test_single_vertex_raises(self):
        with pytest.raises(InputError, match="at least 2"):
            Transect.from_vertices(0, [(0, 0)])

    def test_empty_set_raises(self):
        with pytest.raises(InputError, match="no transects"):
            TransectSet((), label="none")

    def test_duplicate_ids_raise(self):
        t = Transect.from_vertices(0, [(0, 0), (1, 1)])
        with pytest.raises(InputError, match="duplicate"):
            TransectSet((t, t))


class TestDesignValidation:
    def test_fixed_needs_transects(self):
        with pytest.raises(InputError, match="needs transects"):
            Design(name="subjective", kind="fixed")

    def test_fixed_never_randomized(self, track_transects):
        design = Design(name="s", kind="fixed", transects=track_transects, randomize=True)
        assert design.is_fixed

    def test_invalid_kind(self):
        with pytest.raises(InputError, match="Invalid design kind"):
            Design(name="x", kind="random_points", spacing=100)

    def test_spacing_required(self):
        with pytest.raises(InputError, match="spacing > 0"):
            Design.parallel(spacing=0)

    def test_classmethods(self, track_transects):
        assert Design.subjective(track_transects).kind == "fixed"
        assert Design.parallel(2000).name == "parallel"
        assert Design.zigzag(2000).kind == "zigzag"
        assert not Design.zigzag(2000).is_fixed
        assert Design.parallel(2000, randomize=False).is_fixed


class TestGenerateTransects:
    def test_fixed_returns_same_object(self, region, track_transects):
        design = Design.subjective(track_transects)
        assert generate_transects(design, region, np.random.default_rng(0)) is track_transects

    def test_parallel_centred_without_rng(self, region):
        transects = generate_transects(Design.parallel(2000), region)
        xs = [t.segments[0, 0, 0] for t in transects.transects]
        np.testing.assert_allclose(xs, [1000, 3000, 5000, 7000, 9000])
        assert transects.effort == pytest.approx(50000)

    def test_parallel_random_start(self, region):
        transects = generate_transects(
            Design.parallel(2000), region, np.random.default_rng(5)
        )
        assert len(transects) == 5
        assert transects.effort == pytest.approx(50000)
        assert _segments_inside(region, transects)

    def test_parallel_rotated(self, region):
        transects = generate_transects(Design.parallel(2000, angle=90), region)
        segments, _ = transects.all_segments()
        # Lines run east-west
        np.testing.assert_allclose(segments[:, 0, 1], segments[:, 1, 1])
        assert transects.effort == pytest.approx(50000)

    def test_parallel_in_concave_region(self):
        u = Region(
            name="u",
            polygons=([(0, 0), (30, 0), (30, 30), (20, 30), (20, 10), (10, 10), (10, 30), (0, 30)],),
        )
        transects = generate_transects(Design.parallel(4, angle=90), u)
        # Lines crossing the gap of the U are split into two segments
        assert max(len(t.segments) for t in transects.transects) == 2
        assert _segments_inside(u, transects)

    def test_zigzag_inside_region(self, region):
        transects = generate_transects(Design.zigzag(2000), region, np.random.default_rng(2))
        assert _segments_inside(region, transects)
        # Zigzag legs are diagonal, so longer than parallel lines at equal spacing
        assert transects.effort > 50000

    def test_zigzag_reproducible(self, region):
        a = generate_transects(Design.zigzag(2500), region, np.random.default_rng(8))
        b = generate_transects(Design.zigzag(2500), region, np.random.default_rng(8))
        np.testing.assert_allclose(a.all_segments()[0], b.all_segments()[0])

    def test_random_starts_differ(self, region):
        a = generate_transects(Design.parallel(2000), region, np.random.default_rng(1))
        b = generate_transects(Design.parallel(2000), region, np.random.default_rng(2))
        assert not np.allclose(a.all_segments()[0], b.all_segments()[0])

    def test_spacing_wider_than_region_raises(self):
        tiny = Region.rectangle(10, 10)
        # Start at spacing / 2 = 50 lies beyond the region
        with pytest.raises(InputError, match="placed no transects"):
            generate_transects(Design.parallel(100), tiny)
