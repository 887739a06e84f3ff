"""
Data loading utilities for region, transect and density tables.

Geometry arrives as plain CSV tables exported from a GIS:
- region:    polygon_id, x, y [, hole]   (vertices in boundary order)
- transects: transect_id, x, y           (vertices in survey order)
- density:   x, y, density               (grid cell centres)
"""

from pathlib import Path

import pandas as pd

from .config import DEFAULT_DATA_DIR
from .density import DensityField
from .design import Transect, TransectSet
from .errors import InputError
from .region import Region


def _read_table(filepath: Path | str, required_cols: list[str], kind: str) -> pd.DataFrame:
    filepath = Path(filepath)
    if not filepath.is_absolute() and not filepath.exists():
        filepath = DEFAULT_DATA_DIR / filepath
    if not filepath.exists():
        raise FileNotFoundError(f"{kind} file not found: {filepath}")

    df = pd.read_csv(filepath)

    # Ensure key columns exist
    missing = [col for col in required_cols if col not in df.columns]
    if missing:
        raise InputError(f"{kind} data missing required columns: {missing}")
    if len(df) == 0:
        raise InputError(f"{kind} file is empty: {filepath}")

    return df


def load_region(
    filepath: Path | str, name: str | None = None, units: str = "m"
) -> Region:
    """
    Load a survey region from a vertex table.

    Args:
        filepath: CSV with polygon_id, x, y and an optional 0/1 hole column
        name: Region name (defaults to the file stem)
        units: Length unit of the coordinates

    Returns:
        Region
    """
    df = _read_table(filepath, ["polygon_id", "x", "y"], "Region")
    if "hole" not in df.columns:
        df["hole"] = 0

    polygons = []
    holes = []
    for _, rows in df.groupby("polygon_id", sort=False):
        vertices = rows[["x", "y"]].to_numpy()
        if rows["hole"].astype(bool).any():
            holes.append(vertices)
        else:
            polygons.append(vertices)

    return Region(
        name=name or Path(filepath).stem,
        polygons=tuple(polygons),
        holes=tuple(holes),
        units=units,
    )


def load_transects(filepath: Path | str, label: str | None = None) -> TransectSet:
    """
    Load fixed transects (e.g. a subjective design along tracks).

    Args:
        filepath: CSV with transect_id, x, y, vertices in survey order
        label: TransectSet label (defaults to the file stem)

    Returns:
        TransectSet
    """
    df = _read_table(filepath, ["transect_id", "x", "y"], "Transect")

    transects = [
        Transect.from_vertices(int(tid), rows[["x", "y"]].to_numpy())
        for tid, rows in df.groupby("transect_id", sort=False)
    ]
    return TransectSet(tuple(transects), label=label or Path(filepath).stem)


def load_density(filepath: Path | str, region: Region, spacing: float) -> DensityField:
    """
    Load a density surface from x, y, density triples.

    Args:
        filepath: CSV with x, y, density columns (cell centres)
        region: Region the surface covers (cells outside are dropped)
        spacing: Grid spacing of the surface

    Returns:
        DensityField
    """
    df = _read_table(filepath, ["x", "y", "density"], "Density")
    return DensityField(
        region=region,
        x=df["x"].to_numpy(),
        y=df["y"].to_numpy(),
        density=df["density"].to_numpy(),
        spacing=spacing,
    )
