"""
Tests for blackout/buildings.py.

The residential predicate must give exactly one answer for every
building, and a home is impacted only when it shares interior area with a
blackout polygon.
"""

import geopandas as gpd
import numpy as np
import pytest
from hypothesis import given
from hypothesis import strategies as st
from shapely.geometry import box

from blackout import config
from blackout.buildings import (
    count_impacted_homes,
    filter_residential,
    is_residential,
    match_impacted_homes,
)
from blackout.errors import DataAlignmentError
from tests.conftest import PLANAR_CRS

_OTHER_TYPES = ["commercial", "industrial", "church", "garage"]
_ABSENT = [None, "", "   ", np.nan]


class TestIsResidential:

    @pytest.mark.parametrize("building_type,name,expected", [
        ("house", None, True),
        ("apartments", "Riverside Tower", True),
        ("static_caravan", "", True),
        (None, None, True),
        ("", "  ", True),
        (np.nan, np.nan, True),
        (None, "Walmart Supercenter", False),
        ("commercial", None, False),
        ("commercial", "Strip Mall", False),
    ])
    def test_cases(self, building_type, name, expected):
        assert is_residential(building_type, name) is expected

    @given(
        building_type=st.sampled_from(
            sorted(config.RESIDENTIAL_BUILDING_TYPES) + _OTHER_TYPES + _ABSENT
        ),
        name=st.sampled_from(["Main St Deli", "Oak Villas"] + _ABSENT),
    )
    def test_rule_is_total_and_exact(self, building_type, name):
        """(type absent and name absent) or type in the allowlist."""
        type_absent = building_type in _ABSENT[:3] or building_type is np.nan
        name_absent = name in _ABSENT[:3] or name is np.nan
        expected = (type_absent and name_absent) or (
            not type_absent and building_type in config.RESIDENTIAL_BUILDING_TYPES
        )
        assert is_residential(building_type, name) is expected

    def test_custom_allowlist(self):
        assert is_residential("dormitory", None, allowed={"dormitory"})
        assert not is_residential("house", None, allowed={"dormitory"})


class TestFilterResidential:

    def test_keeps_homes(self, buildings_gdf):
        homes = filter_residential(buildings_gdf)
        assert list(homes.index) == [0, 1]

    def test_missing_column(self, buildings_gdf):
        with pytest.raises(KeyError, match="name"):
            filter_residential(buildings_gdf.drop(columns="name"))


class TestMatchImpactedHomes:

    @pytest.fixture
    def blackout(self):
        return gpd.GeoDataFrame(
            {"label": ["blackout"]}, geometry=[box(0, 0, 100, 100)], crs=PLANAR_CRS,
        )

    @pytest.fixture
    def homes(self):
        return gpd.GeoDataFrame(
            {
                "type": ["house"] * 5,
                "geometry": [
                    box(10, 10, 20, 20),  # inside
                    box(100, 0, 110, 10),  # shares an edge only
                    box(100, 100, 110, 110),  # shares a corner only
                    box(200, 200, 210, 210),  # far away
                    box(90, 40, 110, 60),  # straddles the edge
                ],
            },
            index=[10, 11, 12, 13, 14],
            crs=PLANAR_CRS,
        )

    def test_interior_overlap_only(self, homes, blackout):
        impacted = match_impacted_homes(homes, blackout)
        assert sorted(impacted.index) == [10, 14]
        assert count_impacted_homes(impacted) == 2

    def test_each_home_counted_once(self, homes, blackout):
        two_polygons = gpd.GeoDataFrame(
            {"label": ["a", "b"]},
            geometry=[box(0, 0, 100, 50), box(0, 50, 100, 100)],
            crs=PLANAR_CRS,
        )
        impacted = match_impacted_homes(homes, two_polygons)
        assert impacted.index.is_unique
        assert sorted(impacted.index) == [10, 14]

    def test_homes_reprojected_to_blackout_crs(self, buildings_gdf):
        blackout = gpd.GeoDataFrame(
            {"label": ["blackout"]},
            geometry=[box(-95.5, 29.9, -95.3, 30.0)],
            crs="EPSG:4326",
        ).to_crs(3083)
        impacted = match_impacted_homes(buildings_gdf, blackout)
        assert impacted.crs.to_epsg() == 3083
        assert sorted(impacted.index) == [0, 2]

    def test_no_blackout_gives_no_homes(self, homes):
        empty = gpd.GeoDataFrame({"label": []}, geometry=[], crs=PLANAR_CRS)
        impacted = match_impacted_homes(homes, empty)
        assert len(impacted) == 0
        assert count_impacted_homes(impacted) == 0

    def test_missing_crs_raises(self, homes, blackout):
        no_crs = gpd.GeoDataFrame(homes.drop(columns="geometry"),
                                  geometry=list(homes.geometry))
        with pytest.raises(DataAlignmentError):
            match_impacted_homes(no_crs, blackout)
