"""
Metropolitan boundary definition and blackout clipping.

The study area is a fixed polygon authored in config rather than loaded
from a file. Clipping drops blackout polygons wholly outside it and trims
partial overlaps to its edge.
"""

import geopandas as gpd
from shapely.geometry import Polygon

from blackout import config
from blackout.crs import ensure_crs, require_crs
from blackout.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)


def boundary_polygon(coords=None):
    """Build the boundary polygon from (x, y) vertex pairs."""
    if coords is None:
        coords = config.HOUSTON_BOUNDARY_LONLAT
    poly = Polygon(coords)
    if not poly.is_valid or poly.is_empty:
        raise ValueError(f"Boundary vertices do not form a valid polygon: {coords}")
    return poly


def metro_boundary(coords=None, epsg=None):
    """One-row GeoDataFrame holding the metropolitan boundary.

    Parameters
    ----------
    coords : sequence of (x, y), optional
        Defaults to config.HOUSTON_BOUNDARY_LONLAT.
    epsg : int, optional
        CRS of *coords*. Defaults to config.BOUNDARY_CRS_EPSG.
    """
    if epsg is None:
        epsg = config.BOUNDARY_CRS_EPSG
    return gpd.GeoDataFrame(
        {"name": ["metro_boundary"]},
        geometry=[boundary_polygon(coords)],
        crs=f"EPSG:{epsg}",
    )


def clip_to_boundary(blackout, boundary, target_epsg=None):
    """Clip blackout polygons to the metropolitan boundary.

    Both inputs must carry a CRS; the boundary is reprojected to the
    blackout CRS. The output is re-asserted to the planar CRS.

    Returns
    -------
    gpd.GeoDataFrame
        Same columns as *blackout*; outside polygons dropped, partial ones
        trimmed.
    """
    if target_epsg is None:
        target_epsg = config.PLANAR_CRS_EPSG

    require_crs(blackout, "blackout polygons")
    require_crs(boundary, "metro boundary")
    boundary = boundary.to_crs(blackout.crs)

    clipped = gpd.clip(blackout, boundary, keep_geom_type=True)
    clipped = clipped[~clipped.geometry.is_empty].reset_index(drop=True)
    log.info("Clipped %d → %d blackout polygons inside boundary",
             len(blackout), len(clipped))
    return ensure_crs(clipped, target_epsg, "clipped blackout polygons")
