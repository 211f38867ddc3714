"""
Residential building selection and blackout matching.

A building counts as a home when its OSM ``type`` is in the residential
allowlist, or when it has neither a type nor a name (untagged footprints
are overwhelmingly houses in suburban Houston). A home is impacted when its
footprint shares interior area with a blackout polygon: touching only along
an edge or at a corner does not count. Membership is binary, each
footprint is counted at most once.
"""

import os

import geopandas as gpd
import numpy as np
import pandas as pd

from blackout import config
from blackout.crs import require_crs
from blackout.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)


def _is_absent(value):
    """None, NaN, or a blank string."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return bool(pd.isna(value))


def is_residential(building_type, name, allowed=None):
    """Residential predicate for one building.

    ``(type absent AND name absent) OR type in allowed``. Every building
    gets exactly one answer.
    """
    if allowed is None:
        allowed = config.RESIDENTIAL_BUILDING_TYPES
    type_absent = _is_absent(building_type)
    if type_absent and _is_absent(name):
        return True
    if type_absent:
        return False
    return str(building_type).strip() in allowed


def filter_residential(buildings, allowed=None, type_column=None, name_column=None):
    """Keep only buildings that satisfy is_residential()."""
    type_column = type_column or config.BUILDING_TYPE_COLUMN
    name_column = name_column or config.BUILDING_NAME_COLUMN
    for col in (type_column, name_column):
        if col not in buildings.columns:
            raise KeyError(
                f"Building column '{col}' not found. Columns: {list(buildings.columns)}"
            )

    keep = np.array(
        [
            is_residential(t, n, allowed)
            for t, n in zip(buildings[type_column], buildings[name_column])
        ],
        dtype=bool,
    )
    homes = buildings[keep]
    log.info("Residential filter: %d of %d buildings kept", len(homes), len(buildings))
    return homes


def load_buildings(path, layer=None, bbox=None):
    """Read building footprints, optionally restricted to *bbox*."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Buildings file not found: {path}")
    buildings = gpd.read_file(path, layer=layer, bbox=bbox)
    log.info("Loaded %d building footprints from %s", len(buildings), path)
    return require_crs(buildings, "buildings")


def match_impacted_homes(homes, blackout):
    """Homes whose footprint overlaps the blackout polygons' interior.

    Parameters
    ----------
    homes : gpd.GeoDataFrame
        Residential footprints (any CRS; reprojected to the blackout CRS).
    blackout : gpd.GeoDataFrame
        Filtered blackout polygons.

    Returns
    -------
    gpd.GeoDataFrame
        Subset of *homes* in the blackout CRS, original index preserved.
    """
    require_crs(homes, "homes")
    require_crs(blackout, "blackout polygons")
    homes = homes.to_crs(blackout.crs)

    if len(homes) == 0 or len(blackout) == 0:
        log.info("No homes or no blackout polygons; nothing to match")
        return homes.iloc[0:0]

    footprint = blackout.geometry.union_all()
    positions = np.unique(homes.sindex.query(footprint, predicate="intersects"))
    candidates = homes.iloc[positions]

    # intersects() also holds for shared edges; require shared interior.
    overlaps = (candidates.geometry.intersects(footprint)
                & ~candidates.geometry.touches(footprint))
    impacted = candidates[overlaps]
    log.info("Impacted homes: %d of %d residential buildings",
             len(impacted), len(homes))
    return impacted


def count_impacted_homes(impacted):
    return int(len(impacted))
