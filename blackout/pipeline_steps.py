"""
Blackout pipeline step functions.

Each function is a discrete, testable pipeline step with explicit
inputs/outputs and StepResult tracking. Boilerplate (timing, error
handling, logging) is handled by ``run_step()``. Every step takes the
immutable PipelineConfig it needs rather than reading global state.
"""

import os

import pandas as pd

from blackout import buildings, census, config, income_stats, reporting, roads
from blackout.change_detection import (
    difference,
    mask_area,
    mask_cell_count,
    threshold_mask,
)
from blackout.logging_config import get_pipeline_logger
from blackout.raster_loader import find_date_tiles, load_date_mosaic
from blackout.region import clip_to_boundary, metro_boundary
from blackout.schemas import (
    LabeledTractSchema,
    SensitivitySchema,
    TractIncomeSchema,
    validate_schema,
)
from blackout.sensitivity import plot_threshold_sensitivity, run_threshold_sensitivity
from blackout.step_runner import run_step
from blackout.vectorize import vectorize_mask

log = get_pipeline_logger(__name__)


def _area_km2(gdf):
    return round(float(gdf.geometry.area.sum()) / 1e6, 3) if len(gdf) else 0.0


def step_build_boundary(cfg) -> tuple:
    """Build the metropolitan boundary GeoDataFrame from config."""
    return run_step(
        "build_boundary", metro_boundary, cfg.boundary_lonlat,
        input_summary={"vertices": len(cfg.boundary_lonlat)},
        output_summary_fn=lambda gdf: {"bounds": [round(v, 4) for v in gdf.total_bounds]},
    )


def step_load_rasters(cfg) -> tuple:
    """Find and mosaic the pre- and post-event tiles."""

    def _work():
        pre_paths = find_date_tiles(cfg.raster_dir, cfg.pre_event_date)
        post_paths = find_date_tiles(cfg.raster_dir, cfg.post_event_date)
        return {
            "pre": load_date_mosaic(pre_paths),
            "post": load_date_mosaic(post_paths),
        }

    return run_step(
        "load_rasters", _work,
        input_summary={
            "raster_dir": cfg.raster_dir,
            "pre_event_date": cfg.pre_event_date,
            "post_event_date": cfg.post_event_date,
        },
        output_summary_fn=lambda r: {
            "pre_shape": list(r["pre"].shape),
            "post_shape": list(r["post"].shape),
        },
    )


def step_detect_change(pre, post, cfg) -> tuple:
    """Difference the two dates and threshold the drop into a mask."""

    def _work():
        diff = difference(pre, post)
        return {"diff": diff, "mask": threshold_mask(diff, cfg.threshold)}

    return run_step(
        "detect_change", _work,
        input_summary={"threshold": cfg.threshold},
        output_summary_fn=lambda r: {
            "mask_cells": mask_cell_count(r["mask"]),
            "mask_area": mask_area(r["mask"]),
        },
        empty_fn=lambda r: mask_cell_count(r["mask"]) == 0,
    )


def step_vectorize(mask, cfg) -> tuple:
    """Trace mask regions into repaired planar polygons."""
    return run_step(
        "vectorize", vectorize_mask, mask, cfg.planar_epsg,
        input_summary={"mask_cells": mask_cell_count(mask), "epsg": cfg.planar_epsg},
        output_summary_fn=lambda gdf: {"polygons": len(gdf), "area_km2": _area_km2(gdf)},
        empty_fn=lambda gdf: len(gdf) == 0,
    )


def step_clip_to_boundary(blackout, boundary, cfg) -> tuple:
    """Keep only the blackout area inside the metropolitan boundary."""
    return run_step(
        "clip_to_boundary", clip_to_boundary, blackout, boundary, cfg.planar_epsg,
        input_summary={"polygons": len(blackout)},
        output_summary_fn=lambda gdf: {"polygons": len(gdf), "area_km2": _area_km2(gdf)},
        empty_fn=lambda gdf: len(gdf) == 0,
    )


def step_load_highways(cfg, boundary) -> tuple:
    """Read roads inside the study area and keep the highway class."""

    def _work():
        all_roads = roads.load_roads(cfg.roads_path, cfg.roads_layer, bbox=boundary)
        return roads.select_road_class(all_roads, cfg.highway_class)

    return run_step(
        "load_highways", _work,
        input_summary={"roads_path": cfg.roads_path, "class": cfg.highway_class},
        output_summary_fn=lambda gdf: {"segments": len(gdf)},
        empty_fn=lambda gdf: len(gdf) == 0,
    )


def step_exclude_highways(blackout, highways, cfg) -> tuple:
    """Remove the buffered highway corridors from the blackout polygons."""

    def _work():
        zone = roads.highway_exclusion_zone(highways, cfg.highway_buffer_m, cfg.planar_epsg)
        return roads.exclude_road_corridors(blackout, zone)

    return run_step(
        "exclude_highways", _work,
        input_summary={
            "polygons": len(blackout),
            "area_km2": _area_km2(blackout),
            "highway_segments": len(highways),
            "buffer_m": cfg.highway_buffer_m,
        },
        output_summary_fn=lambda gdf: {"polygons": len(gdf), "area_km2": _area_km2(gdf)},
        empty_fn=lambda gdf: len(gdf) == 0,
    )


def step_load_homes(cfg, boundary) -> tuple:
    """Read building footprints in the study area and keep residential ones."""

    def _work():
        footprints = buildings.load_buildings(
            cfg.buildings_path, cfg.buildings_layer, bbox=boundary,
        )
        return buildings.filter_residential(footprints, cfg.residential_types)

    return run_step(
        "load_homes", _work,
        input_summary={"buildings_path": cfg.buildings_path},
        output_summary_fn=lambda gdf: {"homes": len(gdf)},
        empty_fn=lambda gdf: len(gdf) == 0,
    )


def step_match_homes(homes, blackout) -> tuple:
    """Find homes overlapping the filtered blackout polygons."""
    return run_step(
        "match_homes", buildings.match_impacted_homes, homes, blackout,
        input_summary={"homes": len(homes), "blackout_polygons": len(blackout)},
        output_summary_fn=lambda gdf: {"impacted_homes": buildings.count_impacted_homes(gdf)},
        empty_fn=lambda gdf: len(gdf) == 0,
    )


def step_load_tracts(cfg, boundary) -> tuple:
    """Load tracts in the study area and inner-join their income."""

    def _work():
        tracts = census.load_tracts(cfg.census_gdb, cfg.tract_layer)
        tracts = census.tracts_within(tracts, boundary)
        income = census.load_income(cfg.census_gdb, cfg.income_layer)
        merged = census.merge_tract_income(tracts, income)
        for w in validate_schema(
            pd.DataFrame(merged.drop(columns="geometry")),
            TractIncomeSchema, "load_tracts", strict=cfg.strict_validation,
        ):
            log.warning(w)
        return merged

    return run_step(
        "load_tracts", _work,
        input_summary={"census_gdb": cfg.census_gdb},
        output_summary_fn=lambda gdf: {"tracts": len(gdf)},
        empty_fn=lambda gdf: len(gdf) == 0,
    )


def step_label_tracts(impacted, tracts, diff, cfg) -> tuple:
    """Join impacted homes to tracts and label every tract."""

    def _work():
        joined = census.assign_homes_to_tracts(impacted, tracts)
        ids = census.impacted_tract_ids(joined)
        labeled = census.label_tracts(tracts, ids, joined=joined)
        labeled = census.attach_radiance_drop(labeled, diff)
        for w in validate_schema(
            pd.DataFrame(labeled.drop(columns="geometry")),
            LabeledTractSchema, "label_tracts", strict=cfg.strict_validation,
        ):
            log.warning(w)
        return labeled

    return run_step(
        "label_tracts", _work,
        input_summary={"impacted_homes": len(impacted), "tracts": len(tracts)},
        output_summary_fn=lambda gdf: gdf[config.IMPACT_COLUMN].value_counts().to_dict(),
        empty_fn=lambda gdf: len(gdf) == 0,
    )


def step_income_statistics(labeled, csv_dir) -> tuple:
    """Summarise and test tract income by impact label."""

    def _work():
        os.makedirs(csv_dir, exist_ok=True)
        summary = income_stats.income_summary_by_label(labeled)
        summary_path = os.path.join(csv_dir, "income_by_impact.csv")
        summary.to_csv(summary_path, index=False)

        tests = income_stats.correlation_summary(labeled)
        tests_path = os.path.join(csv_dir, "income_impact_tests.csv")
        tests.to_csv(tests_path, index=False)
        log.info("Saved income statistics: %s, %s", summary_path, tests_path)
        return {
            "summary": summary,
            "tests": tests.iloc[0].to_dict(),
            "paths": [summary_path, tests_path],
        }

    return run_step(
        "income_statistics", _work,
        input_summary={"tracts": len(labeled)},
        output_summary_fn=lambda r: {
            "mw_p_value": r["tests"].get("mw_p_value"),
            "logit_odds_ratio": r["tests"].get("logit_odds_ratio"),
        },
    )


def step_reports(labeled, boundary, impacted_count, stats_tests, cfg, dirs) -> tuple:
    """Write the tract table, headline summary, choropleth and box plot."""

    def _work():
        paths = [
            reporting.export_tract_table(
                labeled, os.path.join(dirs["csv"], "tracts_labeled.csv"),
            ),
            reporting.plot_income_choropleth(
                labeled, os.path.join(dirs["maps"], "income_choropleth.png"),
                boundary=boundary,
            ),
            reporting.plot_income_boxplot(
                labeled, os.path.join(dirs["maps"], "income_boxplot.png"),
            ),
        ]
        headline = reporting.describe_impacted_homes(impacted_count)
        log.info(headline)
        paths.append(reporting.write_summary(
            {
                "impacted_homes": impacted_count,
                "headline": headline,
                "impacted_tracts": int((labeled[config.IMPACT_COLUMN] == config.IMPACTED_LABEL).sum()),
                "total_tracts": len(labeled),
                "threshold": cfg.threshold,
                "highway_buffer_m": cfg.highway_buffer_m,
                "income_tests": stats_tests,
            },
            os.path.join(cfg.output_dir, "summary.json"),
        ))
        return paths

    return run_step(
        "reports", _work,
        input_summary={"tracts": len(labeled), "impacted_homes": impacted_count},
        output_summary_fn=lambda p: {"files": len(p)},
    )


def step_threshold_sensitivity(diff, cfg, dirs) -> tuple:
    """Sweep the blackout threshold and plot mask size."""

    def _work():
        df = run_threshold_sensitivity(
            diff, cfg.sensitivity_thresholds,
            output_csv=os.path.join(dirs["diagnostics"], "threshold_sensitivity.csv"),
        )
        for w in validate_schema(
            df, SensitivitySchema, "threshold_sensitivity", strict=cfg.strict_validation,
        ):
            log.warning(w)
        plot_threshold_sensitivity(
            df, os.path.join(dirs["diagnostics"], "threshold_sensitivity.png"),
            chosen=cfg.threshold,
        )
        return df

    return run_step(
        "threshold_sensitivity", _work,
        input_summary={"thresholds": list(cfg.sensitivity_thresholds)},
        output_summary_fn=lambda df: {"rows": len(df)},
    )
