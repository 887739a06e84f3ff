"""
Unit tests for survey regions and density surfaces.

Tests geometry (area, containment, clipping) and density validation.
"""

import numpy as np
import pytest

from dssim_tools.density import DensityField
from dssim_tools.errors import InputError
from dssim_tools.region import Region


@pytest.fixture
def square():
    """10 km x 10 km region in metres (100 km^2)."""
    return Region.rectangle(10000, 10000, name="square")


@pytest.fixture
def u_shape():
    """Concave region: a U opening upwards."""
    vertices = [
        (0, 0),
        (30, 0),
        (30, 30),
        (20, 30),
        (20, 10),
        (10, 10),
        (10, 30),
        (0, 30),
    ]
    return Region(name="u", polygons=(vertices,))


class TestRegion:
    def test_rectangle_area(self, square):
        assert square.area == pytest.approx(1e8)
        assert square.area_in("km") == pytest.approx(100.0)

    def test_bounds(self, square):
        assert square.bounds == (0.0, 0.0, 10000.0, 10000.0)

    def test_contains(self, square):
        inside = square.contains([(5000, 5000), (-1, 5000), (5000, 10001)])
        assert inside.tolist() == [True, False, False]

    def test_hole_excluded(self):
        hole = [(4000, 4000), (6000, 4000), (6000, 6000), (4000, 6000)]
        outer = [(0, 0), (10000, 0), (10000, 10000), (0, 10000)]
        region = Region(name="holed", polygons=(outer,), holes=(hole,))

        assert region.area == pytest.approx(1e8 - 4e6)
        assert region.contains([(5000, 5000), (1000, 1000)]).tolist() == [False, True]

    def test_closing_vertex_dropped(self):
        region = Region(name="tri", polygons=([(0, 0), (1, 0), (0, 1), (0, 0)],))
        assert len(region.polygons[0]) == 3
        assert region.area == pytest.approx(0.5)

    def test_vertices_read_only(self, square):
        with pytest.raises(ValueError):
            square.polygons[0][0, 0] = 99.0

    def test_no_polygons_raises(self):
        with pytest.raises(InputError, match="no polygons"):
            Region(name="empty", polygons=())

    def test_too_few_vertices_raises(self):
        with pytest.raises(InputError, match="at least 3 vertices"):
            Region(name="line", polygons=([(0, 0), (1, 1)],))

    def test_zero_area_raises(self):
        with pytest.raises(InputError, match="zero area"):
            Region(name="flat", polygons=([(0, 0), (1, 0), (2, 0)],))

    def test_unknown_units_raises(self):
        with pytest.raises(InputError, match="Unknown units"):
            Region.rectangle(10, 10, units="miles")


class TestClipSegment:
    def test_crossing_segment(self, square):
        pieces = square.clip_segment((-100, 5000), (10100, 5000))
        assert len(pieces) == 1
        np.testing.assert_allclose(pieces[0], [[0, 5000], [10000, 5000]])

    def test_segment_inside_unchanged(self, square):
        pieces = square.clip_segment((100, 100), (200, 300))
        assert len(pieces) == 1
        np.testing.assert_allclose(pieces[0], [[100, 100], [200, 300]])

    def test_segment_outside(self, square):
        assert square.clip_segment((-100, -100), (-50, 20000)) == []

    def test_concave_region_gives_two_pieces(self, u_shape):
        pieces = u_shape.clip_segment((-5, 20), (35, 20))
        assert len(pieces) == 2
        np.testing.assert_allclose(pieces[0], [[0, 20], [10, 20]])
        np.testing.assert_allclose(pieces[1], [[20, 20], [30, 20]])


class TestDensityField:
    def test_constant_total(self, square):
        density = DensityField.constant(square, spacing=500, value=1.5e-5)
        assert density.n_cells == 400
        assert density.total() == pytest.approx(1500.0)

    def test_negative_density_raises(self, square):
        with pytest.raises(InputError, match=">= 0"):
            DensityField(square, x=[100], y=[100], density=[-1.0], spacing=200)

    def test_non_finite_density_raises(self, square):
        with pytest.raises(InputError, match="finite"):
            DensityField(square, x=[100], y=[100], density=[np.nan], spacing=200)

    def test_length_mismatch_raises(self, square):
        with pytest.raises(InputError, match="equal length"):
            DensityField(square, x=[100, 200], y=[100], density=[1.0], spacing=200)

    def test_bad_spacing_raises(self, square):
        with pytest.raises(InputError, match="spacing"):
            DensityField.constant(square, spacing=0)

    def test_cells_outside_region_dropped(self, square):
        density = DensityField(
            square, x=[100, -100, 20000], y=[100, 100, 100], density=[1, 1, 1], spacing=200
        )
        assert density.n_cells == 1

    def test_hotspot_adds_mass(self, square):
        flat = DensityField.constant(square, spacing=500, value=1e-5)
        hot = flat.add_hotspot((5000, 5000), sigma=1000, amplitude=1e-4)

        assert hot.total() > flat.total()
        centre = np.argmin((hot.x - 5000) ** 2 + (hot.y - 5000) ** 2)
        assert hot.density[centre] == hot.density.max()
        # Original is untouched
        assert np.all(flat.density == 1e-5)

    def test_negative_hotspot_clipped(self, square):
        flat = DensityField.constant(square, spacing=500, value=1e-5)
        low = flat.add_hotspot((5000, 5000), sigma=1000, amplitude=-1.0)
        assert np.all(low.density >= 0)

    def test_scaled_to(self, square):
        density = DensityField.constant(square, spacing=500).add_hotspot(
            (2000, 2000), sigma=800, amplitude=3.0
        )
        assert density.scaled_to(1500).total() == pytest.approx(1500.0)

    def test_scaled_to_zero_surface_raises(self, square):
        density = DensityField.constant(square, spacing=500, value=0.0)
        with pytest.raises(InputError, match="zero integral"):
            density.scaled_to(100)

    def test_probabilities_sum_to_one(self, square):
        density = DensityField.constant(square, spacing=1000).add_hotspot(
            (0, 0), sigma=2000, amplitude=5.0
        )
        assert density.probabilities().sum() == pytest.approx(1.0)
