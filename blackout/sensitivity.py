"""
Sensitivity of the blackout mask to the radiance-drop threshold.

The threshold is the pipeline's only tunable sensitivity parameter, so the
sweep reports how much of the study grid each candidate value flags.
Raising the threshold can only shrink (or keep) the mask.
"""

import os

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd

from blackout import config
from blackout.change_detection import mask_area, mask_cell_count, threshold_mask
from blackout.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)


def run_threshold_sensitivity(diff, thresholds=None, output_csv=None):
    """Mask size for each candidate threshold.

    Args:
        diff: Difference Raster (pre - post).
        thresholds: Values to test (default: config.SENSITIVITY_THRESHOLDS).
        output_csv: Path to save results (optional).

    Returns:
        DataFrame with columns [threshold, mask_cells, mask_area,
        pct_of_valid], sorted by threshold.
    """
    if thresholds is None:
        thresholds = config.SENSITIVITY_THRESHOLDS

    valid_cells = int(pd.notna(diff.data).sum())
    rows = []
    for t in sorted(float(v) for v in thresholds):
        mask = threshold_mask(diff, t)
        cells = mask_cell_count(mask)
        rows.append({
            "threshold": t,
            "mask_cells": cells,
            "mask_area": mask_area(mask),
            "pct_of_valid": (cells / valid_cells * 100) if valid_cells else 0.0,
        })

    df = pd.DataFrame(rows, columns=["threshold", "mask_cells", "mask_area", "pct_of_valid"])
    if output_csv:
        os.makedirs(os.path.dirname(output_csv) or ".", exist_ok=True)
        df.to_csv(output_csv, index=False)
        log.info("Saved threshold sensitivity: %s", output_csv)
    return df


def plot_threshold_sensitivity(sensitivity_df, output_path, chosen=None):
    """Line plot of flagged cells against threshold, chosen value marked."""
    if chosen is None:
        chosen = config.BLACKOUT_THRESHOLD_NW

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(sensitivity_df["threshold"], sensitivity_df["mask_cells"],
            "o-", color="steelblue", linewidth=2)
    ax.axvline(chosen, color="firebrick", linestyle="--",
               label=f"threshold = {chosen:g}")
    ax.set_xlabel("Radiance drop threshold (nW/cm²/sr)", fontsize=12)
    ax.set_ylabel("Blackout cells", fontsize=12)
    ax.set_title("Blackout mask size vs. threshold", fontsize=13)
    ax.grid(True, alpha=0.3)
    ax.legend()
    plt.tight_layout()

    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    fig.savefig(output_path, dpi=config.MAP_DPI, bbox_inches="tight")
    plt.close(fig)
    log.info("Saved: %s", output_path)
    return output_path
