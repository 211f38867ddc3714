"""
Income comparison between impacted and unimpacted tracts.

Pure functions, no I/O. Used by the pipeline's statistics step and by the
reporter.

METHODOLOGY:
Tract median household income is right-skewed, so the two groups are
compared with a two-sided Mann-Whitney U test rather than a t-test. A
univariate logit of impact on income (in $10k units, see
config.INCOME_SCALE_USD) gives the direction and size of the association
as an odds ratio. Both are descriptive: tracts are not independent
samples and the blackout labels inherit every upstream heuristic.
"""

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats
from statsmodels.tools.sm_exceptions import PerfectSeparationError

from blackout import config

INCOME = config.INCOME_COLUMN
IMPACT = config.IMPACT_COLUMN


def _income_by_group(labeled):
    clean = labeled[[IMPACT, INCOME]].dropna()
    impacted = clean.loc[clean[IMPACT] == config.IMPACTED_LABEL, INCOME].to_numpy(float)
    unimpacted = clean.loc[clean[IMPACT] == config.UNIMPACTED_LABEL, INCOME].to_numpy(float)
    return impacted, unimpacted


def income_summary_by_label(labeled):
    """Count / mean / median / std of tract income per impact label.

    Both labels always appear as rows, with NaN statistics when a group is
    empty.
    """
    summary = (
        labeled.groupby(IMPACT)[INCOME]
        .agg(["count", "mean", "median", "std"])
        .reindex(list(config.IMPACT_LABELS))
    )
    summary["count"] = summary["count"].fillna(0).astype(int)
    summary.index.name = IMPACT
    return summary.reset_index()


def compare_income_distributions(labeled):
    """Two-sided Mann-Whitney U test of income, Impacted vs Unimpacted.

    Returns
    -------
    dict
        Keys: u_statistic, p_value, n_impacted, n_unimpacted,
        median_impacted, median_unimpacted, significant.
    """
    impacted, unimpacted = _income_by_group(labeled)
    result = {
        "u_statistic": np.nan,
        "p_value": np.nan,
        "n_impacted": len(impacted),
        "n_unimpacted": len(unimpacted),
        "median_impacted": float(np.median(impacted)) if len(impacted) else np.nan,
        "median_unimpacted": float(np.median(unimpacted)) if len(unimpacted) else np.nan,
        "significant": False,
    }
    if len(impacted) == 0 or len(unimpacted) == 0:
        return result

    u, p = stats.mannwhitneyu(impacted, unimpacted, alternative="two-sided")
    result["u_statistic"] = float(u)
    result["p_value"] = float(p)
    result["significant"] = bool(p < config.SIGNIFICANCE_ALPHA)
    return result


def fit_impact_logit(labeled, income_scale=None):
    """Logit of P(Impacted) on tract income.

    Returns
    -------
    dict
        Keys: coef, odds_ratio, ci_low, ci_high (odds-ratio scale),
        p_value, n. All NaN except n when the model is not estimable
        (one class only, fewer than 3 tracts, or perfect separation).
    """
    if income_scale is None:
        income_scale = config.INCOME_SCALE_USD

    clean = labeled[[IMPACT, INCOME]].dropna()
    y = (clean[IMPACT] == config.IMPACTED_LABEL).astype(float).to_numpy()
    x = clean[INCOME].to_numpy(float) / income_scale
    nan_result = {
        "coef": np.nan, "odds_ratio": np.nan, "ci_low": np.nan,
        "ci_high": np.nan, "p_value": np.nan, "n": len(y),
    }
    if len(y) < 3 or y.min() == y.max() or np.ptp(x) == 0:
        return nan_result

    try:
        model = sm.Logit(y, sm.add_constant(x)).fit(disp=0)
    except (PerfectSeparationError, np.linalg.LinAlgError) as exc:
        nan_result["error"] = str(exc)
        return nan_result
    # Newer statsmodels only warns on separation; the fit then fails to converge.
    if not model.mle_retvals.get("converged", True):
        nan_result["error"] = "logit did not converge (likely perfect separation)"
        return nan_result

    coef = float(model.params[1])
    ci = np.asarray(model.conf_int())[1]
    return {
        "coef": coef,
        "odds_ratio": float(np.exp(coef)),
        "ci_low": float(np.exp(ci[0])),
        "ci_high": float(np.exp(ci[1])),
        "p_value": float(model.pvalues[1]),
        "n": len(y),
    }


def correlation_summary(labeled):
    """Flat one-row DataFrame combining the test and the logit fit."""
    mw = compare_income_distributions(labeled)
    logit = fit_impact_logit(labeled)
    row = {f"mw_{k}": v for k, v in mw.items()}
    row.update({f"logit_{k}": v for k, v in logit.items()})
    return pd.DataFrame([row])
