"""
Shared fixtures for blackout pipeline tests.

Provides synthetic rasters, GeoDataFrames, and temporary directories so
each test module can verify pipeline logic against inputs whose answer is
known in advance.
"""

import os
import tempfile

import geopandas as gpd
import numpy as np
import pytest
import rasterio
from rasterio.crs import CRS
from rasterio.transform import from_origin
from shapely.geometry import LineString, box

from blackout.raster_loader import Raster


# ---------------------------------------------------------------------------
# Constants for synthetic test geometry
# ---------------------------------------------------------------------------
# Planar grid: 100 m cells in Texas Centric Albers, origin is arbitrary.
PLANAR_CRS = CRS.from_epsg(3083)
CELL = 100.0

# Geographic 2x2 grid of 0.1° cells inside the Houston boundary:
# lon -95.5 .. -95.3, lat 29.8 .. 30.0. Top row is lat 29.9 .. 30.0.
GEO_CRS = CRS.from_epsg(4326)
GEO_WEST, GEO_NORTH, GEO_RES = -95.5, 30.0, 0.1
GEO_TRANSFORM = from_origin(GEO_WEST, GEO_NORTH, GEO_RES, GEO_RES)

TOP_TRACT = "48201100000"
BOTTOM_TRACT = "48201100100"


def make_raster(data, west=0.0, north=None, res=CELL, crs=PLANAR_CRS):
    """Helper: build a Raster with its top-left corner at (west, north)."""
    data = np.asarray(data, dtype="float32")
    if north is None:
        north = data.shape[0] * res
    return Raster(data=data, transform=from_origin(west, north, res, res), crs=crs)


def _write_raster(path, data, transform=GEO_TRANSFORM, crs="EPSG:4326", nodata=np.nan):
    """Helper: write a 2D float32 array as a single-band GeoTIFF."""
    meta = {
        "driver": "GTiff",
        "height": data.shape[0],
        "width": data.shape[1],
        "count": 1,
        "dtype": "float32",
        "crs": crs,
        "transform": transform,
        "nodata": nodata,
    }
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with rasterio.open(path, "w", **meta) as dst:
        dst.write(np.asarray(data, dtype="float32"), 1)
    return path


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after test."""
    with tempfile.TemporaryDirectory(prefix="blackout_test_") as d:
        yield d


@pytest.fixture
def pre_post_rasters():
    """2x2 geographic pre/post pair: the top row loses 250, the bottom row nothing."""
    pre = Raster(data=np.full((2, 2), 300.0), transform=GEO_TRANSFORM, crs=GEO_CRS)
    post = Raster(
        data=np.array([[50.0, 50.0], [300.0, 300.0]]),
        transform=GEO_TRANSFORM,
        crs=GEO_CRS,
    )
    return pre, post


@pytest.fixture
def two_tracts_gdf():
    """Two tracts splitting the geographic grid into top and bottom halves."""
    return gpd.GeoDataFrame(
        {
            "GEOID": [TOP_TRACT, BOTTOM_TRACT],
            "geometry": [
                box(-95.5, 29.9, -95.3, 30.0),
                box(-95.5, 29.8, -95.3, 29.9),
            ],
        },
        crs="EPSG:4326",
    )


@pytest.fixture
def income_table():
    """ACS-style income table with summary-level prefixed identifiers."""
    import pandas as pd

    return pd.DataFrame({
        "GEOID": [f"14000US{TOP_TRACT}", f"14000US{BOTTOM_TRACT}"],
        "B19013e1": [42000.0, 88000.0],
    })


@pytest.fixture
def buildings_gdf():
    """Three footprints: a house in each row and a shop in the top row."""
    return gpd.GeoDataFrame(
        {
            "type": ["house", "house", "commercial"],
            "name": [None, None, "Corner Shop"],
            "geometry": [
                box(-95.47, 29.93, -95.43, 29.97),
                box(-95.47, 29.83, -95.43, 29.87),
                box(-95.37, 29.93, -95.33, 29.97),
            ],
        },
        crs="EPSG:4326",
    )


@pytest.fixture
def roads_gdf():
    """A motorway well away from the grid and a primary road across it."""
    return gpd.GeoDataFrame(
        {
            "fclass": ["motorway", "primary"],
            "geometry": [
                LineString([(-95.0, 29.5), (-94.9, 29.6)]),
                LineString([(-95.5, 29.95), (-95.3, 29.95)]),
            ],
        },
        crs="EPSG:4326",
    )
