"""
Census tract loading, income join, and tract impact labeling.

SOCIO-ECONOMIC JOIN methodology:
Tract geometries and the ACS income table come from separate layers of the
same geodatabase and use different identifier formats: the geometry layer
stores the 11-character tract GEOID, the income table prefixes it with the
summary-level code ("14000US48201100000"). Both are normalised to the
trailing config.TRACT_GEOID_LENGTH characters before an inner join. Impacted
homes are then spatially joined to tracts, and every tract is labeled
"Impacted" if at least one impacted home intersects it, else "Unimpacted".
"""

import os

import geopandas as gpd
import numpy as np
import pandas as pd
from rasterstats import zonal_stats

from blackout import config
from blackout.crs import require_crs
from blackout.errors import IdentifierMismatchError
from blackout.logging_config import get_pipeline_logger

log = get_pipeline_logger(__name__)

GEOID = config.GEOID_COLUMN
INCOME = config.INCOME_COLUMN
IMPACT = config.IMPACT_COLUMN


def normalize_geoid(ids, length=None):
    """Trim identifiers to their trailing *length* characters.

    Raises
    ------
    IdentifierMismatchError
        If any identifier is missing or shorter than *length*.
    """
    if length is None:
        length = config.TRACT_GEOID_LENGTH
    ids = pd.Series(ids)
    if ids.isna().any():
        raise IdentifierMismatchError(
            f"{int(ids.isna().sum())} missing tract identifiers"
        )
    ids = ids.astype(str).str.strip()
    short = ids.str.len() < length
    if short.any():
        examples = ids[short].head(3).tolist()
        raise IdentifierMismatchError(
            f"{int(short.sum())} identifiers shorter than {length} characters, "
            f"e.g. {examples}"
        )
    return ids.str[-length:]


def load_tracts(gdb_path, layer=None):
    """Read tract polygons with a normalised GEOID column."""
    if layer is None:
        layer = config.TRACT_LAYER
    if not os.path.exists(gdb_path):
        raise FileNotFoundError(f"Census geodatabase not found: {gdb_path}")

    tracts = gpd.read_file(gdb_path, layer=layer)
    require_crs(tracts, "census tracts")
    if GEOID not in tracts.columns:
        raise KeyError(
            f"Expected '{GEOID}' column not found. Columns: {list(tracts.columns)}"
        )
    tracts = tracts[[GEOID, "geometry"]].copy()
    tracts[GEOID] = normalize_geoid(tracts[GEOID]).values
    log.info("Loaded %d census tracts from %s:%s", len(tracts), gdb_path, layer)
    return tracts


def load_income(gdb_path, layer=None, income_column=None):
    """Read the income table as a plain DataFrame: GEOID, median_income."""
    if layer is None:
        layer = config.INCOME_LAYER
    if income_column is None:
        income_column = config.MEDIAN_INCOME_COLUMN
    if not os.path.exists(gdb_path):
        raise FileNotFoundError(f"Census geodatabase not found: {gdb_path}")

    table = gpd.read_file(gdb_path, layer=layer, ignore_geometry=True)
    return prepare_income(table, income_column)


def prepare_income(table, income_column=None):
    """Select and normalise the identifier and income columns of a table."""
    if income_column is None:
        income_column = config.MEDIAN_INCOME_COLUMN
    missing = [c for c in (GEOID, income_column) if c not in table.columns]
    if missing:
        raise KeyError(f"Income table missing columns {missing}")

    income = pd.DataFrame({
        GEOID: normalize_geoid(table[GEOID]).values,
        INCOME: pd.to_numeric(table[income_column], errors="coerce").values,
    })
    n_null = int(income[INCOME].isna().sum())
    if n_null:
        log.warning("%d tracts have no median income value", n_null)
    log.info("Prepared income for %d tracts", len(income))
    return income


def merge_tract_income(tracts, income):
    """Inner-join tract geometry and income on normalised GEOID.

    Tracts without an income row are dropped (and counted in the log).

    Raises
    ------
    IdentifierMismatchError
        If both inputs are non-empty but no identifier matches.
    pandas.errors.MergeError
        If either side repeats a GEOID.
    """
    tracts = tracts.assign(**{GEOID: normalize_geoid(tracts[GEOID]).values})
    income = income.assign(**{GEOID: normalize_geoid(income[GEOID]).values})

    merged = tracts.merge(income, on=GEOID, how="inner", validate="one_to_one")
    if len(merged) == 0 and len(tracts) > 0 and len(income) > 0:
        raise IdentifierMismatchError(
            f"No GEOID matches between {len(tracts)} tracts and "
            f"{len(income)} income rows (e.g. {tracts[GEOID].iloc[0]!r} vs "
            f"{income[GEOID].iloc[0]!r})"
        )

    dropped = len(tracts) - len(merged)
    if dropped:
        log.warning("%d tracts dropped for lack of income data", dropped)
    log.info("Merged income onto %d tracts", len(merged))
    return merged


def tracts_within(tracts, boundary):
    """Tracts that intersect the study-area boundary."""
    require_crs(tracts, "census tracts")
    require_crs(boundary, "metro boundary")
    area = boundary.to_crs(tracts.crs).geometry.union_all()
    selected = tracts[tracts.geometry.intersects(area)].reset_index(drop=True)
    log.info("%d of %d tracts intersect the study area", len(selected), len(tracts))
    return selected


def assign_homes_to_tracts(homes, tracts):
    """Spatially join impacted homes to the tracts they intersect.

    A home straddling a tract boundary appears once per tract it touches.
    """
    require_crs(homes, "impacted homes")
    require_crs(tracts, "census tracts")
    homes = homes.to_crs(tracts.crs)
    cols = [c for c in (GEOID, INCOME) if c in tracts.columns] + ["geometry"]
    if len(homes) == 0 or len(tracts) == 0:
        log.info("No impacted homes or no tracts; nothing to join")
        return homes.iloc[0:0].assign(**{GEOID: pd.Series(dtype=object)})
    joined = gpd.sjoin(homes, tracts[cols], how="inner", predicate="intersects")
    log.info("Joined %d impacted homes to %d tracts",
             len(homes), joined[GEOID].nunique() if len(joined) else 0)
    return joined


def impacted_tract_ids(joined):
    """Distinct set of tract GEOIDs touched by at least one impacted home."""
    if len(joined) == 0:
        return set()
    return set(joined[GEOID].dropna().unique())


def label_tracts(tracts, impacted_ids, joined=None):
    """Label every tract Impacted / Unimpacted.

    Parameters
    ----------
    tracts : gpd.GeoDataFrame
        Tract-income table.
    impacted_ids : set[str]
        Output of impacted_tract_ids().
    joined : gpd.GeoDataFrame, optional
        Output of assign_homes_to_tracts(); when given, an
        ``impacted_homes`` count column is added as well.
    """
    impacted = tracts[GEOID].isin(impacted_ids)
    labeled = tracts.assign(**{
        IMPACT: np.where(impacted, config.IMPACTED_LABEL, config.UNIMPACTED_LABEL),
    })

    if joined is not None:
        counts = joined.groupby(GEOID).size()
        labeled["impacted_homes"] = (
            labeled[GEOID].map(counts).fillna(0).astype(int).values
        )

    n_imp = int(impacted.sum())
    log.info("Tract labels: %d %s, %d %s", n_imp, config.IMPACTED_LABEL,
             len(labeled) - n_imp, config.UNIMPACTED_LABEL)
    return labeled


def attach_radiance_drop(tracts, diff):
    """Add the mean and max radiance drop inside each tract.

    Uses zonal statistics over the difference raster with all_touched=True
    so small tracts still receive boundary cells.
    """
    require_crs(tracts, "census tracts")
    if diff.crs is None:
        raise ValueError("Difference raster has no CRS")
    if len(tracts) == 0:
        return tracts.assign(
            mean_radiance_drop=pd.Series(dtype=float),
            max_radiance_drop=pd.Series(dtype=float),
        )
    in_raster_crs = tracts.to_crs(diff.crs)
    stats = zonal_stats(
        in_raster_crs,
        np.array(diff.data, dtype="float64"),
        affine=diff.transform,
        stats=["mean", "max"],
        nodata=np.nan,
        all_touched=True,
    )

    def _column(key):
        return np.array(
            [np.nan if s.get(key) is None else s[key] for s in stats], dtype=float,
        )

    return tracts.assign(
        mean_radiance_drop=_column("mean"),
        max_radiance_drop=_column("max"),
    )
