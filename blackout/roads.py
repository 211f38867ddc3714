"""
Highway corridor exclusion.

Night-light loss along motorways during the outage mostly reflects fewer
vehicles, not homes losing power. Every motorway is buffered by a fixed
distance (config.HIGHWAY_BUFFER_M), the buffers are dissolved into one
exclusion zone, and that zone is subtracted from the blackout polygons.
This is a bias correction heuristic, not a proof of cause.
"""

import os

import geopandas as gpd
import pandas as pd
from shapely.geometry import Polygon

from blackout import config
from blackout.crs import ensure_crs, require_crs, require_projected
from blackout.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)


def is_road_class(value, road_class=None):
    """True when an OSM ``fclass`` value equals the requested class."""
    if road_class is None:
        road_class = config.HIGHWAY_CLASS
    if value is None or pd.isna(value):
        return False
    return str(value).strip() == road_class


def select_road_class(roads, road_class=None, column=None):
    """Rows of *roads* whose class column equals *road_class*."""
    if column is None:
        column = config.ROAD_CLASS_COLUMN
    if column not in roads.columns:
        raise KeyError(
            f"Road class column '{column}' not found. Columns: {list(roads.columns)}"
        )
    keep = roads[column].map(lambda v: is_road_class(v, road_class)).astype(bool)
    selected = roads[keep].reset_index(drop=True)
    log.info("Selected %d of %d road segments with %s == %r",
             len(selected), len(roads), column, road_class or config.HIGHWAY_CLASS)
    return selected


def load_roads(path, layer=None, bbox=None):
    """Read the road line layer, optionally restricted to *bbox*."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Roads file not found: {path}")
    roads = gpd.read_file(path, layer=layer, bbox=bbox)
    log.info("Loaded %d road segments from %s", len(roads), path)
    return require_crs(roads, "roads")


def highway_exclusion_zone(roads, buffer_m=None, target_epsg=None):
    """Dissolved buffer around every road line, in the planar CRS.

    Returns
    -------
    shapely geometry
        A (Multi)Polygon; an empty Polygon when *roads* is empty.
    """
    if buffer_m is None:
        buffer_m = config.HIGHWAY_BUFFER_M
    if target_epsg is None:
        target_epsg = config.PLANAR_CRS_EPSG

    if len(roads) == 0:
        log.info("No roads supplied; exclusion zone is empty")
        return Polygon()

    roads = ensure_crs(roads, target_epsg, "roads")
    require_projected(roads, "roads")

    zone = roads.geometry.buffer(buffer_m).union_all()
    log.info("Highway exclusion zone: %d segments, %.0f m buffer, %.1f km²",
             len(roads), buffer_m, zone.area / 1e6)
    return zone


def exclude_road_corridors(blackout, zone):
    """Subtract the exclusion zone from each blackout polygon.

    Polygons wholly inside the zone are dropped. Total area never increases.
    """
    require_crs(blackout, "blackout polygons")
    if zone is None or zone.is_empty or len(blackout) == 0:
        return blackout.copy()

    remaining = blackout.geometry.difference(zone)
    out = blackout.set_geometry(remaining)
    out = out[~out.geometry.is_empty].reset_index(drop=True)

    before = blackout.geometry.area.sum()
    after = out.geometry.area.sum()
    log.info("Road exclusion: %d → %d polygons, area %.1f → %.1f km²",
             len(blackout), len(out), before / 1e6, after / 1e6)
    return out
