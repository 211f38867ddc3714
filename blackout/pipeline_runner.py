#!/usr/bin/env python3
"""
Pipeline runner for the Houston blackout analysis.

Runs the stages in order:
  load rasters → detect change → vectorize → clip to boundary →
  exclude highways → match homes → label tracts → statistics → reports

- Stops at the first failed step; every failure is fatal, none is retried
- Steps with zero features are logged as "empty" and the run continues
- Pandera validation gates after the census join and tract labeling
- ``--strict-validation`` turns schema violations into failures
- Full PipelineRunResult provenance saved as ``pipeline_run.json``

Usage:
    python3 -m blackout.pipeline_runner --raster-dir ./data/VNP46A1 \
        --roads-path ./data/gis_osm_roads_free_1.gpkg \
        --buildings-path ./data/gis_osm_buildings_a_free_1.gpkg \
        --census-gdb ./data/ACS_2019_5YR_TRACT_48_TEXAS.gdb

    # Different sensitivity threshold, plus a threshold sweep
    python3 -m blackout.pipeline_runner --threshold 150 --sensitivity 100,150,200,250
"""

import argparse
import json
import os
import sys
import time

from blackout import config
from blackout.buildings import count_impacted_homes
from blackout.logging_config import get_pipeline_logger, set_run_id, setup_logging
from blackout.pipeline_steps import (
    step_build_boundary,
    step_clip_to_boundary,
    step_detect_change,
    step_exclude_highways,
    step_income_statistics,
    step_label_tracts,
    step_load_highways,
    step_load_homes,
    step_load_rasters,
    step_load_tracts,
    step_match_homes,
    step_reports,
    step_threshold_sensitivity,
    step_vectorize,
)
from blackout.pipeline_types import PipelineConfig, PipelineRunResult

log = get_pipeline_logger(__name__)


class PipelineAborted(Exception):
    """Internal signal: a step failed and the run must stop."""


def _record(pipeline_result, step_result):
    """Append a step result; raise PipelineAborted if it failed."""
    pipeline_result.step_results.append(step_result)
    if not step_result.ok:
        log.error("Pipeline aborted at %s", step_result.step_name)
        raise PipelineAborted(step_result.step_name)


def run_blackout_pipeline(cfg):
    """Run every stage for one configuration.

    Parameters
    ----------
    cfg : PipelineConfig

    Returns
    -------
    PipelineRunResult
        ``all_ok`` is False if a step failed; later steps were not run.
    """
    pipeline_result = PipelineRunResult(run_dir=cfg.output_dir, config=cfg.to_dict())
    start_time = time.time()

    dirs = config.get_output_dirs(cfg.output_dir)
    for d in dirs.values():
        os.makedirs(d, exist_ok=True)

    try:
        result, boundary = step_build_boundary(cfg)
        _record(pipeline_result, result)

        result, rasters = step_load_rasters(cfg)
        _record(pipeline_result, result)

        result, change = step_detect_change(rasters["pre"], rasters["post"], cfg)
        _record(pipeline_result, result)

        if cfg.sensitivity_thresholds:
            result, _ = step_threshold_sensitivity(change["diff"], cfg, dirs)
            _record(pipeline_result, result)

        result, blackout = step_vectorize(change["mask"], cfg)
        _record(pipeline_result, result)

        result, blackout = step_clip_to_boundary(blackout, boundary, cfg)
        _record(pipeline_result, result)

        result, highways = step_load_highways(cfg, boundary)
        _record(pipeline_result, result)

        result, blackout = step_exclude_highways(blackout, highways, cfg)
        _record(pipeline_result, result)

        result, homes = step_load_homes(cfg, boundary)
        _record(pipeline_result, result)

        result, impacted = step_match_homes(homes, blackout)
        _record(pipeline_result, result)
        pipeline_result.impacted_homes = count_impacted_homes(impacted)

        result, tracts = step_load_tracts(cfg, boundary)
        _record(pipeline_result, result)

        result, labeled = step_label_tracts(impacted, tracts, change["diff"], cfg)
        _record(pipeline_result, result)

        result, stats = step_income_statistics(labeled, dirs["csv"])
        _record(pipeline_result, result)
        pipeline_result.output_files.extend(stats["paths"])

        result, paths = step_reports(
            labeled, boundary, pipeline_result.impacted_homes, stats["tests"], cfg, dirs,
        )
        _record(pipeline_result, result)
        pipeline_result.output_files.extend(paths)
    except PipelineAborted:
        pass

    pipeline_result.total_time_seconds = time.time() - start_time
    return pipeline_result


def save_pipeline_result(pipeline_result, output_dir):
    """Save PipelineRunResult as JSON for provenance."""
    os.makedirs(output_dir, exist_ok=True)
    result_path = os.path.join(output_dir, "pipeline_run.json")
    with open(result_path, "w") as f:
        json.dump(pipeline_result.to_dict(), f, indent=2, default=str)
    log.info("Pipeline result saved: %s", result_path)
    return result_path


def _parse_thresholds(value):
    try:
        return [float(v) for v in value.split(",") if v.strip()]
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid threshold list: {value}") from exc


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Estimate homes affected by the February 2021 Houston blackout"
    )
    parser.add_argument(
        "--raster-dir",
        dest="raster_dir",
        default=None,
        help=f"Directory with VNP46A1 tiles (default: {config.DEFAULT_RASTER_DIR})",
    )
    parser.add_argument("--pre-date", dest="pre_event_date", default=None,
                        help=f"Pre-event date code (default: {config.PRE_EVENT_DATE_CODE})")
    parser.add_argument("--post-date", dest="post_event_date", default=None,
                        help=f"Post-event date code (default: {config.POST_EVENT_DATE_CODE})")
    parser.add_argument("--roads-path", dest="roads_path", default=None,
                        help=f"OSM roads layer (default: {config.DEFAULT_ROADS_PATH})")
    parser.add_argument("--roads-layer", dest="roads_layer", default=None)
    parser.add_argument("--buildings-path", dest="buildings_path", default=None,
                        help=f"OSM buildings layer (default: {config.DEFAULT_BUILDINGS_PATH})")
    parser.add_argument("--buildings-layer", dest="buildings_layer", default=None)
    parser.add_argument("--census-gdb", dest="census_gdb", default=None,
                        help=f"ACS tract geodatabase (default: {config.DEFAULT_CENSUS_GDB})")
    parser.add_argument(
        "--output-dir",
        dest="output_dir",
        default=None,
        help=f"Output directory (default: {config.DEFAULT_OUTPUT_DIR})",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help=f"Radiance drop threshold (default: {config.BLACKOUT_THRESHOLD_NW})",
    )
    parser.add_argument(
        "--buffer-m",
        dest="highway_buffer_m",
        type=float,
        default=None,
        help=f"Highway buffer distance in metres (default: {config.HIGHWAY_BUFFER_M})",
    )
    parser.add_argument(
        "--sensitivity",
        dest="sensitivity_thresholds",
        type=_parse_thresholds,
        default=None,
        help="Comma-separated thresholds to sweep (default: no sweep)",
    )
    parser.add_argument(
        "--strict-validation",
        action="store_true",
        default=None,
        dest="strict_validation",
        help="Abort pipeline on schema validation failures (default: warn only)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    cfg = PipelineConfig.from_args(args)

    run_id = set_run_id()
    setup_logging(run_dir=cfg.output_dir)
    log.info("Blackout pipeline (run_id=%s), threshold=%.1f, buffer=%.0f m",
             run_id, cfg.threshold, cfg.highway_buffer_m)

    result = run_blackout_pipeline(cfg)
    save_pipeline_result(result, cfg.output_dir)

    log.info("Pipeline complete in %.1fs", result.total_time_seconds)
    if result.empty_steps:
        log.warning("Steps with zero features: %s",
                    [s.step_name for s in result.empty_steps])
    if result.failed_steps:
        log.error("Failed steps: %s", [s.step_name for s in result.failed_steps])
        return 1

    log.info("All steps succeeded. Impacted homes: %s", result.impacted_homes)
    return 0


if __name__ == "__main__":
    sys.exit(main())
