"""
Coordinate reference system checks shared by every vector stage.

Each stage boundary calls one of these instead of reprojecting ad hoc, so a
layer without a CRS fails loudly at the first stage that receives it.
"""

from pyproj import CRS

from blackout.errors import DataAlignmentError
from blackout.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)


def require_crs(gdf, name):
    """Raise DataAlignmentError if *gdf* has no CRS."""
    if gdf.crs is None:
        raise DataAlignmentError(f"{name} has no coordinate reference system")
    return gdf


def ensure_crs(gdf, epsg, name):
    """Return *gdf* in EPSG:*epsg*, reprojecting only when needed."""
    require_crs(gdf, name)
    target = CRS.from_epsg(epsg)
    if CRS(gdf.crs) == target:
        return gdf
    log.debug("Reprojecting %s from %s to EPSG:%d", name, gdf.crs.to_string(), epsg)
    return gdf.to_crs(target)


def require_projected(gdf, name):
    """Raise DataAlignmentError unless *gdf* is in a projected (metric) CRS."""
    require_crs(gdf, name)
    if not CRS(gdf.crs).is_projected:
        raise DataAlignmentError(
            f"{name} must be in a projected CRS for distance operations, "
            f"got {gdf.crs.to_string()}"
        )
    return gdf
