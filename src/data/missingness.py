"""Missing data diagnostics run before imputation.

Predictive mean matching assumes values are missing at random, i.e. the
chance that a cell is missing depends only on observed variables. These
checks do not prove the assumption; they flag observed covariates whose
distribution differs between rows with and without a missing value, and
correlated missingness indicators, so the report can discuss them.
"""

import logging
from typing import Dict, List

import numpy as np
import pandas as pd
from scipy import stats

logger = logging.getLogger(__name__)


def summarize_zeros(df: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    """Count zero-coded cells per column.

    Args:
        df: Raw observation table (before zeros are replaced)
        columns: Columns where zero means "not measured"

    Returns:
        DataFrame indexed by column with ``zero_count`` and ``zero_pct``
    """
    counts = (df[columns] == 0).sum()
    return pd.DataFrame(
        {
            "zero_count": counts.astype(int),
            "zero_pct": counts / len(df) * 100 if len(df) else 0.0,
        }
    )


def assess_missingness(df: pd.DataFrame, columns: List[str], alpha: float = 0.05) -> Dict:
    """Check whether missingness in ``columns`` depends on other covariates.

    For every column with missing values, each other numeric column is
    compared between rows where the value is missing and rows where it is
    observed using Welch's t-test. A p-value below ``alpha`` marks the pair
    as dependent.

    Args:
        df: Table with NaN marking missing cells
        columns: Columns to assess
        alpha: Significance level

    Returns:
        Dictionary with per-column test results, the missingness indicator
        correlation matrix and an overall ``mcar_plausible`` flag
    """
    numeric = df.select_dtypes(include=[np.number])
    indicators = numeric[columns].isnull().astype(int)
    cols_with_missing = [col for col in columns if indicators[col].sum() > 0]

    tests = {}
    dependent_pairs = []
    for col in cols_with_missing:
        missing_mask = indicators[col] == 1
        col_tests = {}
        for other in numeric.columns:
            if other == col:
                continue
            missing_values = numeric.loc[missing_mask, other].dropna()
            observed_values = numeric.loc[~missing_mask, other].dropna()
            if len(missing_values) < 2 or len(observed_values) < 2:
                continue
            statistic, p_value = stats.ttest_ind(
                missing_values, observed_values, equal_var=False
            )
            if np.isnan(p_value):
                continue
            col_tests[other] = {
                "statistic": float(statistic),
                "p_value": float(p_value),
                "mean_when_missing": float(missing_values.mean()),
                "mean_when_observed": float(observed_values.mean()),
            }
            if p_value < alpha:
                dependent_pairs.append((col, other))
        tests[col] = col_tests

    if len(cols_with_missing) >= 2:
        indicator_corr = indicators[cols_with_missing].corr()
        upper = indicator_corr.values[np.triu_indices_from(indicator_corr.values, k=1)]
        max_indicator_corr = float(np.nanmax(np.abs(upper))) if upper.size else 0.0
    else:
        indicator_corr = pd.DataFrame()
        max_indicator_corr = 0.0

    report = {
        "columns_with_missing": cols_with_missing,
        "missing_counts": {col: int(indicators[col].sum()) for col in cols_with_missing},
        "tests": tests,
        "dependent_pairs": dependent_pairs,
        "indicator_correlation": indicator_corr,
        "max_indicator_correlation": round(max_indicator_corr, 4),
        "mcar_plausible": len(dependent_pairs) == 0,
    }

    if dependent_pairs:
        logger.warning(
            f"Missingness is related to observed covariates for {len(dependent_pairs)} "
            f"pair(s), e.g. {dependent_pairs[:3]}; values are not missing completely "
            "at random, imputation conditions on these covariates"
        )
    else:
        logger.info("No relation between missingness and observed covariates detected")

    return report
