"""
Shared fixtures: a 10 km x 10 km region surveyed for a population of 1500.
"""

import pytest

from dssim_tools.density import DensityField
from dssim_tools.design import Design, Transect, TransectSet
from dssim_tools.detection import DetectionModel
from dssim_tools.region import Region


@pytest.fixture
def square_region():
    return Region.rectangle(10000, 10000, name="square")


@pytest.fixture
def flat_density(square_region):
    return DensityField.constant(square_region, spacing=500)


@pytest.fixture
def hn_detection():
    return DetectionModel("hn", scale=500, truncation=1000)


@pytest.fixture
def fixed_lines():
    """Five north-south lines, 2 km apart."""
    return TransectSet(
        tuple(
            Transect.from_vertices(i, [(x, 0), (x, 10000)])
            for i, x in enumerate([1000, 3000, 5000, 7000, 9000])
        ),
        label="fixed_lines",
    )


@pytest.fixture
def fixed_design(fixed_lines):
    return Design.subjective(fixed_lines, name="fixed")
