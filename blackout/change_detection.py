"""
Pre/post-event radiance differencing and blackout thresholding.

CHANGE DETECTION methodology:
The per-cell drop in night-light radiance (pre - post) is the outage
signal. A cell joins the blackout mask when its drop strictly exceeds the
configured threshold (config.BLACKOUT_THRESHOLD_NW by default); every other
cell, including cells with no valid radiance on either date, is no-data.
The two dates must already share one grid: misaligned rasters are a
precondition violation, never silently resampled.

All functions are pure (no I/O, no side effects).
"""

import numpy as np

from blackout import config
from blackout.errors import GridMismatchError
from blackout.logging_config import get_pipeline_logger
from blackout.raster_loader import Raster

log = get_pipeline_logger(__name__)

MASK_VALUE = 1.0


def check_grid_alignment(a, b, names=("pre", "post")):
    """Raise GridMismatchError unless *a* and *b* are cell-aligned."""
    name_a, name_b = names
    if a.shape != b.shape:
        raise GridMismatchError(
            f"{name_a} grid {a.shape} and {name_b} grid {b.shape} differ in shape"
        )
    if a.crs != b.crs:
        raise GridMismatchError(
            f"{name_a} CRS {a.crs} and {name_b} CRS {b.crs} differ"
        )
    if not a.transform.almost_equals(b.transform):
        raise GridMismatchError(
            f"{name_a} and {name_b} grids differ in origin or resolution: "
            f"{tuple(a.transform)[:6]} vs {tuple(b.transform)[:6]}"
        )


def difference(pre, post):
    """Return the per-cell radiance drop ``pre - post`` on the shared grid.

    NaN in either input propagates to the result.

    Raises
    ------
    GridMismatchError
        If the two rasters are not cell-aligned.
    """
    check_grid_alignment(pre, post)
    diff = pre.data.astype("float64") - post.data.astype("float64")
    log.info(
        "Radiance drop: %d valid cells, max %.1f",
        int(np.isfinite(diff).sum()),
        float(np.nanmax(diff)) if np.isfinite(diff).any() else float("nan"),
    )
    return Raster(data=diff, transform=pre.transform, crs=pre.crs)


def threshold_mask(diff, threshold=None):
    """Binary blackout mask from a difference raster.

    Cells with drop > threshold carry MASK_VALUE; all others are NaN.

    Parameters
    ----------
    diff : Raster
        Output of difference().
    threshold : float, optional
        Defaults to config.BLACKOUT_THRESHOLD_NW.

    Returns
    -------
    Raster
    """
    if threshold is None:
        threshold = config.BLACKOUT_THRESHOLD_NW

    with np.errstate(invalid="ignore"):
        member = np.isfinite(diff.data) & (diff.data > threshold)
    data = np.where(member, MASK_VALUE, np.nan)

    n_cells = int(member.sum())
    if n_cells == 0:
        log.warning("No cells exceed a radiance drop of %.1f", threshold)
    else:
        log.info("Blackout mask: %d cells exceed a drop of %.1f", n_cells, threshold)
    return Raster(data=data, transform=diff.transform, crs=diff.crs)


def mask_membership(mask):
    """Boolean array of mask cells."""
    return np.isfinite(mask.data)


def mask_cell_count(mask):
    return int(mask_membership(mask).sum())


def mask_area(mask):
    """Total mask area in squared CRS units."""
    return mask_cell_count(mask) * mask.cell_area
