"""
Tests for blackout/pipeline_types.py: the immutable run configuration and
the provenance records written to pipeline_run.json.
"""

import argparse
import dataclasses
import json

import pytest

from blackout import config
from blackout.pipeline_types import (
    PipelineConfig,
    PipelineRunResult,
    StepResult,
    StepStatus,
)


class TestPipelineConfig:

    def test_defaults_from_config(self):
        cfg = PipelineConfig()
        assert cfg.threshold == config.BLACKOUT_THRESHOLD_NW
        assert cfg.highway_buffer_m == config.HIGHWAY_BUFFER_M
        assert cfg.planar_epsg == config.PLANAR_CRS_EPSG
        assert cfg.pre_event_date == config.PRE_EVENT_DATE_CODE
        assert cfg.residential_types == config.RESIDENTIAL_BUILDING_TYPES
        assert cfg.sensitivity_thresholds == ()

    def test_frozen(self):
        cfg = PipelineConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.threshold = 10.0

    def test_replace_derives_variant(self):
        cfg = PipelineConfig()
        other = dataclasses.replace(cfg, threshold=150.0)
        assert other.threshold == 150.0
        assert cfg.threshold == config.BLACKOUT_THRESHOLD_NW

    @pytest.mark.parametrize("kwargs", [
        {"threshold": -1.0},
        {"highway_buffer_m": -5.0},
        {"boundary_lonlat": ((0.0, 0.0), (1.0, 1.0))},
    ])
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            PipelineConfig(**kwargs)

    def test_from_args_skips_unset(self):
        args = argparse.Namespace(
            threshold=150.0, output_dir=None, highway_buffer_m=None,
            sensitivity_thresholds=[100.0, 200.0], unrelated="x",
        )
        cfg = PipelineConfig.from_args(args)
        assert cfg.threshold == 150.0
        assert cfg.output_dir == config.DEFAULT_OUTPUT_DIR
        assert cfg.highway_buffer_m == config.HIGHWAY_BUFFER_M
        assert cfg.sensitivity_thresholds == (100.0, 200.0)

    def test_to_dict_is_json_serializable(self):
        d = PipelineConfig(sensitivity_thresholds=(100.0,)).to_dict()
        restored = json.loads(json.dumps(d))
        assert restored["residential_types"] == sorted(config.RESIDENTIAL_BUILDING_TYPES)
        assert restored["boundary_lonlat"][0] == list(config.HOUSTON_BOUNDARY_LONLAT[0])
        assert restored["sensitivity_thresholds"] == [100.0]


class TestStepResult:

    def test_status_flags(self):
        assert StepResult("a", StepStatus.SUCCESS.value).ok
        empty = StepResult("a", StepStatus.EMPTY.value)
        assert empty.ok and empty.empty
        assert not StepResult("a", StepStatus.ERROR.value).ok

    def test_round_trip(self):
        original = StepResult(
            step_name="vectorize", status="empty",
            input_summary={"mask_cells": 0}, output_summary={"polygons": 0},
            timing_seconds=0.5, warnings=["vectorize produced zero features"],
            completed_at="2021-02-16T00:00:00+00:00",
        )
        restored = StepResult.from_dict(original.to_dict())
        assert restored == original


class TestPipelineRunResult:

    def test_failed_and_empty_steps(self):
        result = PipelineRunResult(step_results=[
            StepResult("build_boundary", "success"),
            StepResult("vectorize", "empty"),
            StepResult("clip_to_boundary", "error", error="Traceback ..."),
        ])
        assert not result.all_ok
        assert [s.step_name for s in result.failed_steps] == ["clip_to_boundary"]
        assert [s.step_name for s in result.empty_steps] == ["vectorize"]

    def test_empty_steps_do_not_fail_run(self):
        result = PipelineRunResult(step_results=[StepResult("match_homes", "empty")])
        assert result.all_ok

    def test_round_trip_through_json(self):
        result = PipelineRunResult(
            run_dir="outputs",
            config=PipelineConfig().to_dict(),
            step_results=[StepResult("load_rasters", "success")],
            impacted_homes=157_410,
            total_time_seconds=12.5,
            output_files=["outputs/summary.json"],
        )
        restored = PipelineRunResult.from_dict(json.loads(json.dumps(result.to_dict())))
        assert restored.impacted_homes == 157_410
        assert restored.config == result.config
        assert [s.step_name for s in restored.step_results] == ["load_rasters"]
        assert restored.output_files == ["outputs/summary.json"]
