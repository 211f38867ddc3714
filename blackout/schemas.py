"""
Pandera DataFrame schemas for pipeline validation gates.

Each schema checks structure and physical sanity of a table handed from
one step to the next. validate_schema() runs a schema in lenient mode
(warnings) or strict mode (raise), controlled by --strict-validation.

Usage:
    from blackout.schemas import LabeledTractSchema
    LabeledTractSchema.validate(df)  # raises pa.errors.SchemaError on failure
"""

import pandera as pa
from pandera import Check, Column, DataFrameSchema

from blackout import config

_GEOID_LEN = config.TRACT_GEOID_LENGTH

# US median household income is top-coded at $250,001 in ACS tables.
_MAX_INCOME = 250_001.0


# ── Tract + income ──────────────────────────────────────────────────────

TractIncomeSchema = DataFrameSchema(
    columns={
        config.GEOID_COLUMN: Column(
            str, Check.str_length(_GEOID_LEN, _GEOID_LEN), nullable=False, unique=True,
        ),
        config.INCOME_COLUMN: Column(
            float, Check.in_range(0.0, _MAX_INCOME), nullable=True, coerce=True,
        ),
    },
    strict=False,
    coerce=False,
    name="TractIncomeSchema",
)


# ── Labeled tracts ──────────────────────────────────────────────────────

LabeledTractSchema = DataFrameSchema(
    columns={
        config.GEOID_COLUMN: Column(
            str, Check.str_length(_GEOID_LEN, _GEOID_LEN), nullable=False, unique=True,
        ),
        config.INCOME_COLUMN: Column(
            float, Check.in_range(0.0, _MAX_INCOME), nullable=True, coerce=True,
        ),
        config.IMPACT_COLUMN: Column(
            str, Check.isin(list(config.IMPACT_LABELS)), nullable=False,
        ),
        "impacted_homes": Column(
            int, Check.greater_than_or_equal_to(0), nullable=False,
            required=False, coerce=True,
        ),
    },
    strict=False,
    coerce=False,
    name="LabeledTractSchema",
)


# ── Threshold sensitivity ───────────────────────────────────────────────

SensitivitySchema = DataFrameSchema(
    columns={
        "threshold": Column(float, nullable=False, coerce=True),
        "mask_cells": Column(int, Check.greater_than_or_equal_to(0), coerce=True),
        "mask_area": Column(float, Check.greater_than_or_equal_to(0.0), coerce=True),
    },
    strict=False,
    coerce=False,
    name="SensitivitySchema",
)


# ── Convenience validation function ─────────────────────────────────────

def validate_schema(df, schema, step_name, strict=False):
    """Validate a DataFrame against a Pandera schema.

    Parameters
    ----------
    df : pd.DataFrame
        DataFrame to validate.
    schema : pa.DataFrameSchema
        Schema to validate against.
    step_name : str
        Pipeline step name for messages.
    strict : bool
        If True, raise on failure. If False, return warnings.

    Returns
    -------
    list[str]
        Validation warning messages (empty if all pass).

    Raises
    ------
    ValueError
        Only if strict=True and validation fails.
    """
    warnings_list = []

    if df is None:
        msg = f"[{step_name}] DataFrame is None"
        if strict:
            raise ValueError(msg)
        return [msg]

    if len(df) == 0:
        # Empty tables are a valid outcome (e.g. no impacted homes).
        return [f"[{step_name}] DataFrame is empty (0 rows)"]

    try:
        schema.validate(df, lazy=True)
    except pa.errors.SchemaErrors as exc:
        for failure in exc.failure_cases.itertuples():
            warnings_list.append(
                f"[{step_name}] Schema violation: "
                f"column='{failure.column}' check='{failure.check}' "
                f"failure_case={failure.failure_case}"
            )

        if strict:
            raise ValueError(
                f"[{step_name}] Schema validation failed with "
                f"{len(warnings_list)} errors"
            ) from exc

    return warnings_list
