"""
Raster blackout mask → polygon conversion.

VECTORIZATION methodology:
Contiguous mask cells (4-connected) are traced into one polygon per
region with rasterio.features.shapes, so adjacent blacked-out cells merge
instead of producing per-pixel squares. Pixel-edge tracing can emit
self-touching rings, which are repaired with make_valid before any
geometric operation. Polygons are then reprojected to the planar study
CRS (config.PLANAR_CRS_EPSG, Texas Centric Albers) so that downstream
buffers and areas are in metres.
"""

import geopandas as gpd
import numpy as np
from rasterio.features import shapes
from shapely.geometry import MultiPolygon, Polygon, shape

from blackout import config
from blackout.change_detection import mask_membership
from blackout.crs import ensure_crs
from blackout.errors import DataAlignmentError, GeometryValidityError
from blackout.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)

BLACKOUT_LABEL = "blackout"
POLYGON_TYPES = ("Polygon", "MultiPolygon")


def _polygonal_part(geom):
    """Keep only the areal part of a (possibly mixed) geometry."""
    if geom is None or geom.is_empty:
        return Polygon()
    if geom.geom_type in POLYGON_TYPES:
        return geom
    if hasattr(geom, "geoms"):
        polys = []
        for part in geom.geoms:
            part = _polygonal_part(part)
            if part.is_empty:
                continue
            if part.geom_type == "MultiPolygon":
                polys.extend(part.geoms)
            else:
                polys.append(part)
        if not polys:
            return Polygon()
        return polys[0] if len(polys) == 1 else MultiPolygon(polys)
    # Points and lines carry no area.
    return Polygon()


def repair_geometries(gdf):
    """Repair invalid geometries and drop empty ones.

    Raises
    ------
    GeometryValidityError
        If any geometry is still invalid or non-areal after repair.
    """
    geoms = gdf.geometry
    invalid = ~geoms.is_valid
    n_invalid = int(invalid.sum())
    if n_invalid:
        log.info("Repairing %d invalid geometries", n_invalid)
        repaired = geoms.copy()
        repaired[invalid] = geoms[invalid].make_valid()
        repaired = repaired.apply(_polygonal_part)
        gdf = gdf.set_geometry(repaired)

    keep = ~gdf.geometry.isna() & ~gdf.geometry.is_empty
    gdf = gdf[keep].reset_index(drop=True)

    bad = ~gdf.geometry.is_valid | ~gdf.geom_type.isin(POLYGON_TYPES)
    if bad.any():
        raise GeometryValidityError(
            f"{int(bad.sum())} geometries remain invalid after repair"
        )
    return gdf


def vectorize_mask(mask, target_epsg=None):
    """Convert a blackout mask raster to repaired polygons in the planar CRS.

    Parameters
    ----------
    mask : Raster
        Output of change_detection.threshold_mask().
    target_epsg : int, optional
        Output CRS. Defaults to config.PLANAR_CRS_EPSG.

    Returns
    -------
    gpd.GeoDataFrame
        Columns ``label`` ("blackout") and ``geometry``; one row per
        contiguous masked region. Empty (but CRS-tagged) if the mask is empty.
    """
    if target_epsg is None:
        target_epsg = config.PLANAR_CRS_EPSG
    if mask.crs is None:
        raise DataAlignmentError("Blackout mask has no CRS; cannot vectorize")

    member = mask_membership(mask)
    geoms = [
        shape(geom)
        for geom, _ in shapes(
            member.astype(np.uint8),
            mask=member,
            transform=mask.transform,
            connectivity=4,
        )
    ]
    log.info("Traced %d blackout regions from %d mask cells",
             len(geoms), int(member.sum()))

    gdf = gpd.GeoDataFrame(
        {"label": [BLACKOUT_LABEL] * len(geoms)},
        geometry=gpd.GeoSeries(geoms, crs=mask.crs),
    )
    gdf = repair_geometries(gdf)
    gdf = ensure_crs(gdf, target_epsg, "blackout polygons")
    # Reprojection can bend edges enough to self-intersect; re-check.
    return repair_geometries(gdf)
