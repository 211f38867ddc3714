"""
Centralized configuration for the Houston February 2021 blackout analysis.

All analysis parameters, thresholds, the study-area boundary, and input
paths are defined here with inline notes justifying each choice. Runtime
overrides go through ``PipelineConfig`` (see pipeline_types.py); nothing in
this module is mutated at run time.
"""

import os

# ─── NIGHT-LIGHT INPUTS ──────────────────────────────────────────────────
# VIIRS DNB daily at-sensor radiance (VNP46A1), Black Marble collection.
# Two acquisition dates bracket the 2021-02-15 grid failure:
#   2021-02-07 (day 038) pre-event, 2021-02-16 (day 047) post-event.
# Both dates were chosen for low cloud cover over Houston.
# Citation: Román, M.O. et al. (2018). NASA's Black Marble nighttime lights
#           product suite. Remote Sensing of Environment, 210, 113-143.
PRE_EVENT_DATE_CODE = "A2021038"
POST_EVENT_DATE_CODE = "A2021047"

# Houston straddles two sinusoidal-grid tiles (h08v05 north, h08v06 south).
VNP46A1_TILES = ("h08v05", "h08v06")

# Filename pattern for one date: VNP46A1.A2021038.h08v05.001.2021039064328.tif
VNP46A1_GLOB = "VNP46A1.{date_code}.*.tif"

DEFAULT_RASTER_DIR = "data/VNP46A1"

# ─── CHANGE DETECTION ────────────────────────────────────────────────────
# Radiance drop (pre - post) above which a cell is considered blacked out.
# 200 nW/cm²/sr separates residential outages from ordinary night-to-night
# variability in the VNP46A1 product over Harris County.
# This is the single sensitivity knob of the whole pipeline.
BLACKOUT_THRESHOLD_NW = 200.0

# Thresholds swept by the sensitivity analysis.
SENSITIVITY_THRESHOLDS = [50.0, 100.0, 150.0, 200.0, 250.0, 300.0]

# ─── COORDINATE REFERENCE SYSTEMS ────────────────────────────────────────
# NAD83 / Texas Centric Albers Equal Area. Metric units, so buffer
# distances below are in metres and areas in m².
PLANAR_CRS_EPSG = 3083

# Raw rasters and the boundary literal are geographic WGS84.
GEOGRAPHIC_CRS_EPSG = 4326

# ─── STUDY AREA ──────────────────────────────────────────────────────────
# Houston metropolitan area, authored as a lon/lat rectangle.
HOUSTON_BOUNDARY_LONLAT = [
    (-96.5, 29.0),
    (-96.5, 30.5),
    (-94.5, 30.5),
    (-94.5, 29.0),
]
BOUNDARY_CRS_EPSG = GEOGRAPHIC_CRS_EPSG

# ─── ROAD EXCLUSION ──────────────────────────────────────────────────────
# Light loss along highways during the outage largely reflects reduced
# traffic, not residential power loss, so a corridor around every motorway
# is removed from the blackout polygons.
HIGHWAY_BUFFER_M = 200.0
HIGHWAY_CLASS = "motorway"
ROAD_CLASS_COLUMN = "fclass"

DEFAULT_ROADS_PATH = "data/gis_osm_roads_free_1.gpkg"
DEFAULT_ROADS_LAYER = None

# ─── BUILDINGS ───────────────────────────────────────────────────────────
# OpenStreetMap building types counted as homes. Buildings with neither a
# type nor a name are also assumed residential (untagged houses dominate
# suburban OSM coverage in Texas).
RESIDENTIAL_BUILDING_TYPES = frozenset({
    "residential",
    "apartments",
    "house",
    "static_caravan",
    "detached",
})
BUILDING_TYPE_COLUMN = "type"
BUILDING_NAME_COLUMN = "name"

DEFAULT_BUILDINGS_PATH = "data/gis_osm_buildings_a_free_1.gpkg"
DEFAULT_BUILDINGS_LAYER = None

# ─── CENSUS ──────────────────────────────────────────────────────────────
# ACS 2019 5-year tract geodatabase for Texas (TIGER/Line + ACS tables).
# The geometry layer carries an 11-character GEOID (state 2 + county 3 +
# tract 6); the X19 income table prefixes it with the summary-level code,
# e.g. "14000US48201100000".
DEFAULT_CENSUS_GDB = "data/ACS_2019_5YR_TRACT_48_TEXAS.gdb"
TRACT_LAYER = "ACS_2019_5YR_TRACT_48_TEXAS"
INCOME_LAYER = "X19_INCOME"
GEOID_COLUMN = "GEOID"
TRACT_GEOID_LENGTH = 11

# B19013e1: median household income in the past 12 months (2019 dollars).
MEDIAN_INCOME_COLUMN = "B19013e1"
INCOME_COLUMN = "median_income"

IMPACTED_LABEL = "Impacted"
UNIMPACTED_LABEL = "Unimpacted"
IMPACT_LABELS = (IMPACTED_LABEL, UNIMPACTED_LABEL)
IMPACT_COLUMN = "impact"

# ─── STATISTICS ──────────────────────────────────────────────────────────
# Income is rescaled to $10k units before the logit fit so the coefficient
# reads as change in log-odds per $10k.
INCOME_SCALE_USD = 10_000
SIGNIFICANCE_ALPHA = 0.05

# ─── VISUALIZATION PARAMETERS ────────────────────────────────────────────
MAP_DPI = 300
INCOME_CMAP = "viridis"
IMPACT_COLORS = {IMPACTED_LABEL: "#d7301f", UNIMPACTED_LABEL: "#2b8cbe"}

# ─── OUTPUT PATHS ─────────────────────────────────────────────────────────
DEFAULT_OUTPUT_DIR = "outputs"
OUTPUT_DIRS = {
    "csv": "csv",
    "maps": "maps",
    "diagnostics": "diagnostics",
}


def get_output_dirs(base_dir):
    """Return the output subdirectory paths under *base_dir*.

    Parameters
    ----------
    base_dir : str
        Run output root.

    Returns
    -------
    dict
        Mapping of OUTPUT_DIRS key → directory path.
    """
    return {key: os.path.join(base_dir, sub) for key, sub in OUTPUT_DIRS.items()}
