"""
Integration tests for blackout/pipeline_runner.py.

Runs the full stage sequence on a 2x2 synthetic night-light grid inside
the Houston boundary: pre-event radiance 300 everywhere, post-event 50 in
the top row and 300 in the bottom row. With the default threshold of 200
only the top row is blacked out, so the house in the top row is the one
impacted home and the top tract is the one impacted tract.
"""

import json
import os

import numpy as np
import pandas as pd
import pytest

from blackout import census, config
from blackout.logging_config import reset_logging
from blackout.pipeline_runner import (
    main,
    parse_args,
    run_blackout_pipeline,
    save_pipeline_result,
)
from blackout.pipeline_types import PipelineConfig, PipelineRunResult
from tests.conftest import BOTTOM_TRACT, TOP_TRACT, _write_raster

EXPECTED_STEPS = [
    "build_boundary",
    "load_rasters",
    "detect_change",
    "threshold_sensitivity",
    "vectorize",
    "clip_to_boundary",
    "load_highways",
    "exclude_highways",
    "load_homes",
    "match_homes",
    "load_tracts",
    "label_tracts",
    "income_statistics",
    "reports",
]


@pytest.fixture
def scenario(tmp_dir, roads_gdf, buildings_gdf, two_tracts_gdf, income_table, monkeypatch):
    """Write rasters and OSM layers to disk; serve census tables from memory."""
    raster_dir = os.path.join(tmp_dir, "VNP46A1")
    _write_raster(
        os.path.join(raster_dir, "VNP46A1.A2021038.h08v05.001.2021039064328.tif"),
        np.full((2, 2), 300.0),
    )
    _write_raster(
        os.path.join(raster_dir, "VNP46A1.A2021047.h08v05.001.2021048051032.tif"),
        np.array([[50.0, 50.0], [300.0, 300.0]]),
    )

    roads_path = os.path.join(tmp_dir, "roads.gpkg")
    roads_gdf.to_file(roads_path, driver="GPKG")
    buildings_path = os.path.join(tmp_dir, "buildings.gpkg")
    buildings_gdf.to_file(buildings_path, driver="GPKG")

    monkeypatch.setattr(census, "load_tracts", lambda gdb_path, layer=None: two_tracts_gdf)
    monkeypatch.setattr(
        census, "load_income",
        lambda gdb_path, layer=None: census.prepare_income(income_table),
    )

    return PipelineConfig(
        raster_dir=raster_dir,
        roads_path=roads_path,
        buildings_path=buildings_path,
        census_gdb=os.path.join(tmp_dir, "census.gdb"),
        output_dir=os.path.join(tmp_dir, "outputs"),
        sensitivity_thresholds=(100.0, 200.0, 300.0),
    )


class TestEndToEnd:

    def test_all_steps_run(self, scenario):
        result = run_blackout_pipeline(scenario)
        assert result.all_ok, [s.error for s in result.failed_steps]
        assert [s.step_name for s in result.step_results] == EXPECTED_STEPS

    def test_one_impacted_home(self, scenario):
        result = run_blackout_pipeline(scenario)
        assert result.impacted_homes == 1

    def test_top_tract_impacted(self, scenario):
        run_blackout_pipeline(scenario)
        table = pd.read_csv(
            os.path.join(scenario.output_dir, "csv", "tracts_labeled.csv"),
            dtype={config.GEOID_COLUMN: str},
        ).set_index(config.GEOID_COLUMN)
        assert table.loc[TOP_TRACT, config.IMPACT_COLUMN] == config.IMPACTED_LABEL
        assert table.loc[BOTTOM_TRACT, config.IMPACT_COLUMN] == config.UNIMPACTED_LABEL
        assert table.loc[TOP_TRACT, "max_radiance_drop"] == pytest.approx(250.0)

    def test_outputs_written(self, scenario):
        result = run_blackout_pipeline(scenario)
        for path in result.output_files:
            assert os.path.exists(path), path

        with open(os.path.join(scenario.output_dir, "summary.json")) as f:
            summary = json.load(f)
        assert summary["impacted_homes"] == 1
        assert summary["impacted_tracts"] == 1
        assert summary["headline"].startswith("1 homes")

        sweep = pd.read_csv(
            os.path.join(scenario.output_dir, "diagnostics", "threshold_sensitivity.csv")
        )
        assert sweep["mask_cells"].tolist() == [2, 2, 0]

    def test_higher_threshold_gives_empty_mask(self, scenario):
        import dataclasses

        cfg = dataclasses.replace(scenario, threshold=300.0, sensitivity_thresholds=())
        result = run_blackout_pipeline(cfg)
        assert result.all_ok
        statuses = {s.step_name: s.status for s in result.step_results}
        assert statuses["detect_change"] == "empty"
        assert statuses["vectorize"] == "empty"
        assert result.impacted_homes == 0

    def test_tracts_outside_boundary_give_empty_labels(self, scenario, two_tracts_gdf, monkeypatch):
        far_away = two_tracts_gdf.assign(geometry=two_tracts_gdf.geometry.translate(xoff=-10.0))
        monkeypatch.setattr(census, "load_tracts", lambda gdb_path, layer=None: far_away)

        result = run_blackout_pipeline(scenario)
        assert result.all_ok, [s.error for s in result.failed_steps]
        statuses = {s.step_name: s.status for s in result.step_results}
        assert statuses["load_tracts"] == "empty"
        assert statuses["label_tracts"] == "empty"
        assert statuses["reports"] == "success"
        assert result.impacted_homes == 1

        with open(os.path.join(scenario.output_dir, "summary.json")) as f:
            summary = json.load(f)
        assert summary["total_tracts"] == 0
        assert summary["impacted_tracts"] == 0


class TestAbort:

    def test_missing_rasters_stop_the_run(self, tmp_dir):
        cfg = PipelineConfig(
            raster_dir=os.path.join(tmp_dir, "nowhere"),
            output_dir=os.path.join(tmp_dir, "outputs"),
        )
        result = run_blackout_pipeline(cfg)
        assert not result.all_ok
        assert [s.step_name for s in result.step_results] == ["build_boundary", "load_rasters"]
        assert "FileNotFoundError" in result.failed_steps[0].error
        assert result.impacted_homes is None

    def test_result_saved_for_provenance(self, tmp_dir):
        cfg = PipelineConfig(
            raster_dir=os.path.join(tmp_dir, "nowhere"),
            output_dir=os.path.join(tmp_dir, "outputs"),
        )
        result = run_blackout_pipeline(cfg)
        path = save_pipeline_result(result, cfg.output_dir)
        with open(path) as f:
            restored = PipelineRunResult.from_dict(json.load(f))
        assert not restored.all_ok
        assert restored.config["raster_dir"] == cfg.raster_dir

    def test_main_exit_code(self, tmp_dir):
        out = os.path.join(tmp_dir, "outputs")
        try:
            code = main(["--raster-dir", os.path.join(tmp_dir, "nowhere"),
                         "--output-dir", out])
        finally:
            reset_logging()
        assert code == 1
        assert os.path.exists(os.path.join(out, "pipeline_run.json"))


class TestParseArgs:

    def test_unset_flags_are_none(self):
        args = parse_args([])
        assert args.threshold is None
        assert args.strict_validation is None
        assert PipelineConfig.from_args(args) == PipelineConfig()

    def test_overrides(self):
        args = parse_args([
            "--threshold", "150", "--buffer-m", "500",
            "--sensitivity", "100,200", "--strict-validation",
        ])
        cfg = PipelineConfig.from_args(args)
        assert cfg.threshold == 150.0
        assert cfg.highway_buffer_m == 500.0
        assert cfg.sensitivity_thresholds == (100.0, 200.0)
        assert cfg.strict_validation is True

    def test_bad_threshold_list(self):
        with pytest.raises(SystemExit):
            parse_args(["--sensitivity", "100,abc"])
