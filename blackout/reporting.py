"""
Summary outputs: tract table export, income choropleth, income box plot.

All plotting uses the Agg backend and writes PNGs at config.MAP_DPI.
"""

import json
import os

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from blackout import config
from blackout.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)

INCOME = config.INCOME_COLUMN
IMPACT = config.IMPACT_COLUMN


def _ensure_parent(path):
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)


def export_tract_table(labeled, output_csv):
    """Write the labeled tract table without its geometry column."""
    table = pd.DataFrame(labeled.drop(columns="geometry", errors="ignore"))
    _ensure_parent(output_csv)
    table.to_csv(output_csv, index=False)
    log.info("Saved tract table: %s (%d rows)", output_csv, len(table))
    return output_csv


def write_summary(summary, output_json):
    """Write the run's headline numbers as JSON."""
    _ensure_parent(output_json)
    with open(output_json, "w") as f:
        json.dump(summary, f, indent=2, default=str)
    log.info("Saved summary: %s", output_json)
    return output_json


def describe_impacted_homes(count):
    """Human-readable headline for the impacted-homes count."""
    if count == 0:
        return "No impacted homes: no residential building overlaps the blackout area"
    return f"{count:,} homes in the Houston metropolitan area lost power"


def plot_income_choropleth(labeled, output_path, boundary=None):
    """Median household income by tract, impacted tracts outlined."""
    fig, ax = plt.subplots(figsize=(12, 10))

    labeled.plot(
        column=INCOME, ax=ax, cmap=config.INCOME_CMAP, legend=True,
        legend_kwds={"label": "Median household income (USD)", "shrink": 0.6},
        missing_kwds={"color": "lightgrey", "label": "No data"},
        edgecolor="white", linewidth=0.1,
    )
    impacted = labeled[labeled[IMPACT] == config.IMPACTED_LABEL]
    if len(impacted):
        impacted.boundary.plot(
            ax=ax, color=config.IMPACT_COLORS[config.IMPACTED_LABEL], linewidth=0.6,
        )
    if boundary is not None:
        boundary.to_crs(labeled.crs).boundary.plot(ax=ax, color="black", linewidth=1.0)

    ax.set_title(
        f"Median household income by census tract\n"
        f"({len(impacted)} of {len(labeled)} tracts with impacted homes outlined)",
        fontsize=13,
    )
    ax.set_axis_off()

    _ensure_parent(output_path)
    fig.savefig(output_path, dpi=config.MAP_DPI, bbox_inches="tight")
    plt.close(fig)
    log.info("Saved: %s", output_path)
    return output_path


def plot_income_boxplot(labeled, output_path):
    """Side-by-side income distributions of Impacted vs Unimpacted tracts."""
    groups = [
        labeled.loc[labeled[IMPACT] == label, INCOME].dropna().to_numpy(float)
        for label in config.IMPACT_LABELS
    ]

    fig, ax = plt.subplots(figsize=(8, 6))
    positions = np.arange(1, len(groups) + 1)
    non_empty = [(p, g) for p, g in zip(positions, groups) if len(g)]
    if non_empty:
        bp = ax.boxplot([g for _, g in non_empty],
                        positions=[p for p, _ in non_empty],
                        patch_artist=True, widths=0.5)
        for patch, (p, _) in zip(bp["boxes"], non_empty):
            label = config.IMPACT_LABELS[p - 1]
            patch.set_facecolor(config.IMPACT_COLORS[label])
            patch.set_alpha(0.6)

    ax.set_xticks(positions)
    ax.set_xticklabels(
        [f"{label}\n(n={len(g)})" for label, g in zip(config.IMPACT_LABELS, groups)]
    )
    ax.set_ylabel("Median household income (USD)", fontsize=12)
    ax.set_title("Tract income by blackout impact", fontsize=13)
    ax.grid(axis="y", alpha=0.3)
    plt.tight_layout()

    _ensure_parent(output_path)
    fig.savefig(output_path, dpi=config.MAP_DPI, bbox_inches="tight")
    plt.close(fig)
    log.info("Saved: %s", output_path)
    return output_path
