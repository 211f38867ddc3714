"""
Night-light raster loading and same-date tile mosaicking.

VNP46A1 granules are delivered per sinusoidal-grid tile, and Houston falls
across two of them (h08v05 / h08v06). Each acquisition date is therefore
read as a set of adjacent tiles and merged into one raster covering their
union extent. Tiles must share CRS and resolution; nothing here resamples
or reprojects.
"""

import os
from contextlib import ExitStack
from dataclasses import dataclass
from glob import glob

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.io import MemoryFile
from rasterio.merge import merge
from rasterio.transform import Affine, array_bounds

from blackout import config
from blackout.errors import DataAlignmentError
from blackout.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)

# Relative tolerance when comparing pixel sizes of different tiles.
_RES_RTOL = 1e-9


@dataclass(frozen=True, eq=False)
class Raster:
    """A single-band georeferenced grid. NaN marks no-data.

    The array is copied and frozen on construction, so a Raster never
    changes after it is created; every transformation returns a new one.
    Floating input keeps its precision; anything else becomes float32.
    """

    data: np.ndarray
    transform: Affine
    crs: CRS | None

    def __post_init__(self):
        arr = np.array(self.data)
        if not np.issubdtype(arr.dtype, np.floating):
            arr = arr.astype("float32")
        if arr.ndim != 2:
            raise ValueError(f"Raster data must be 2-D, got shape {arr.shape}")
        arr.setflags(write=False)
        object.__setattr__(self, "data", arr)

    @property
    def shape(self):
        return self.data.shape

    @property
    def resolution(self):
        """(x, y) cell size in CRS units, both positive."""
        return abs(self.transform.a), abs(self.transform.e)

    @property
    def bounds(self):
        """(west, south, east, north)."""
        height, width = self.shape
        return array_bounds(height, width, self.transform)

    @property
    def cell_area(self):
        xres, yres = self.resolution
        return xres * yres


def read_raster(path):
    """Read band 1 of a raster file. Source nodata values become NaN."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Raster not found: {path}")

    with rasterio.open(path) as src:
        data = src.read(1).astype("float32")
        nodata = src.nodata
        transform = src.transform
        crs = src.crs

    if nodata is not None and not np.isnan(nodata):
        data[data == nodata] = np.nan

    log.debug("Read %s: %dx%d, crs=%s", os.path.basename(path),
              data.shape[0], data.shape[1], crs)
    return Raster(data=data, transform=transform, crs=crs)


def find_date_tiles(raster_dir, date_code):
    """Return the sorted tile paths of one acquisition date.

    Matches NASA LAADS naming, e.g.
      VNP46A1.A2021038.h08v05.001.2021039064328.tif
    """
    pattern = os.path.join(raster_dir, config.VNP46A1_GLOB.format(date_code=date_code))
    paths = sorted(set(glob(pattern)))
    if not paths:
        raise FileNotFoundError(f"No tiles for date {date_code} matching {pattern}")
    log.info("Date %s: %d tile(s) found", date_code, len(paths))
    if len(paths) != len(config.VNP46A1_TILES):
        log.warning("Date %s: expected %d tiles (%s), found %d", date_code,
                    len(config.VNP46A1_TILES), ", ".join(config.VNP46A1_TILES),
                    len(paths))
    return paths


def check_tile_alignment(rasters):
    """Raise DataAlignmentError unless all tiles share CRS and resolution."""
    first = rasters[0]
    if first.crs is None:
        raise DataAlignmentError("Raster tile 0 has no CRS; cannot mosaic")

    for i, r in enumerate(rasters[1:], start=1):
        if r.crs is None:
            raise DataAlignmentError(f"Raster tile {i} has no CRS; cannot mosaic")
        if r.crs != first.crs:
            raise DataAlignmentError(
                f"Raster tile {i} CRS {r.crs} differs from tile 0 CRS {first.crs}"
            )
        if not np.allclose(r.resolution, first.resolution, rtol=_RES_RTOL, atol=0):
            raise DataAlignmentError(
                f"Raster tile {i} resolution {r.resolution} differs from "
                f"tile 0 resolution {first.resolution}"
            )


def _open_in_memory(raster, stack):
    """Expose a Raster as an open rasterio dataset for rasterio.merge."""
    memfile = stack.enter_context(MemoryFile())
    height, width = raster.shape
    with memfile.open(
        driver="GTiff",
        height=height,
        width=width,
        count=1,
        dtype=str(raster.data.dtype),
        crs=raster.crs,
        transform=raster.transform,
        nodata=np.nan,
    ) as dst:
        dst.write(raster.data, 1)
    return stack.enter_context(memfile.open())


def mosaic_tiles(rasters):
    """Merge same-date tiles into one raster covering their union extent.

    Where tiles overlap, the first tile's valid value wins; elsewhere each
    tile's values are carried over unchanged. Cells covered by no tile are NaN.

    Raises
    ------
    DataAlignmentError
        No tiles, a tile without CRS, or differing CRS / resolution.
    """
    rasters = list(rasters)
    if not rasters:
        raise DataAlignmentError("No raster tiles to mosaic")

    check_tile_alignment(rasters)
    if len(rasters) == 1:
        return rasters[0]

    with ExitStack() as stack:
        datasets = [_open_in_memory(r, stack) for r in rasters]
        merged, transform = merge(datasets, nodata=np.nan)

    mosaic = Raster(data=merged[0], transform=transform, crs=rasters[0].crs)
    log.info("Mosaicked %d tiles → %dx%d grid", len(rasters), *mosaic.shape)
    return mosaic


def load_date_mosaic(paths):
    """Read every tile of one date and mosaic them."""
    return mosaic_tiles(read_raster(p) for p in paths)
