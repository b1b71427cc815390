"""Preprocessing for diabetes classification: missing values, scaling, splitting."""

import logging
from typing import List, Tuple

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.model_selection import train_test_split
from sklearn.pipeline import Pipeline

from src.config.constants import ZERO_AS_MISSING_COLUMNS
from src.errors import ConfigurationError, StandardizationError
from src.features.impute import PredictiveMeanMatchingImputer

logger = logging.getLogger(__name__)


class ZeroToMissing(BaseEstimator, TransformerMixin):
    """Replace zero values with NaN (for biological measurements that cannot be zero)."""

    def __init__(self, columns=None):
        """Initialize transformer.

        Args:
            columns: List of column names where zero means "not measured"
        """
        self.columns = columns

    def fit(self, X, y=None):
        """Stateless; returns self."""
        return self

    def transform(self, X):
        """Transform by replacing zeros with NaN.

        Args:
            X: Input features

        Returns:
            DataFrame copy; other columns are untouched
        """
        X_df = pd.DataFrame(X).copy()

        for col in self.columns or []:
            if col in X_df.columns:
                zero_mask = X_df[col] == 0
                X_df[col] = X_df[col].astype(float)
                X_df.loc[zero_mask, col] = np.nan

        return X_df


class SampleStandardScaler(BaseEstimator, TransformerMixin):
    """Center each column and divide by its sample standard deviation (ddof=1)."""

    def fit(self, X, y=None):
        """Fit scaler by calculating column means and sample standard deviations.

        Args:
            X: Numeric features
            y: Target (unused)

        Returns:
            self

        Raises:
            StandardizationError: A column has zero or undefined variance
        """
        X_df = pd.DataFrame(X).astype(float)

        means = X_df.mean()
        scales = X_df.std(ddof=1)

        bad = [col for col in X_df.columns if not np.isfinite(scales[col]) or scales[col] == 0]
        if bad:
            raise StandardizationError(
                f"Cannot standardize column(s) with zero or undefined variance: {bad}"
            )

        self.mean_ = means
        self.scale_ = scales
        return self

    def transform(self, X):
        X_df = pd.DataFrame(X).astype(float)
        return (X_df - self.mean_[X_df.columns]) / self.scale_[X_df.columns]


def create_preprocessing_pipeline(zero_as_missing=None, imputer_params=None, seed=None):
    """Create preprocessing pipeline.

    Args:
        zero_as_missing: Columns where zeros should be treated as missing
        imputer_params: Keyword arguments for PredictiveMeanMatchingImputer
        seed: Imputation seed

    Returns:
        sklearn Pipeline producing a completed, standardized DataFrame
    """
    if zero_as_missing is None:
        zero_as_missing = list(ZERO_AS_MISSING_COLUMNS)

    pipeline = Pipeline(
        [
            ("zero_to_missing", ZeroToMissing(columns=zero_as_missing)),
            ("imputer", PredictiveMeanMatchingImputer(seed=seed, **(imputer_params or {}))),
            ("scaler", SampleStandardScaler()),
        ]
    )

    return pipeline


def find_correlated_pairs(
    df: pd.DataFrame, columns: List[str] = None, threshold: float = 0.7
) -> List[Tuple[str, str, float]]:
    """Find predictor pairs whose absolute Pearson correlation exceeds ``threshold``.

    Args:
        df: Completed numeric table
        columns: Columns to screen (default: all numeric columns)
        threshold: Absolute correlation cut-off

    Returns:
        List of ``(column_a, column_b, r)`` in column order, strongest first
    """
    if columns is None:
        columns = df.select_dtypes(include=[np.number]).columns.tolist()
    if len(columns) < 2:
        return []

    corr = df[columns].corr(method="pearson")

    pairs = []
    for i, col_a in enumerate(columns):
        for col_b in columns[i + 1:]:
            r = corr.loc[col_a, col_b]
            if abs(r) > threshold:
                pairs.append((col_a, col_b, float(r)))

    pairs.sort(key=lambda pair: -abs(pair[2]))
    return pairs


def drop_correlated_features(df: pd.DataFrame, pairs) -> Tuple[pd.DataFrame, List[str]]:
    """Drop the second column of each flagged pair.

    A pair is skipped when one of its columns has already been dropped.

    Returns:
        Tuple of (reduced dataframe, dropped column names)
    """
    dropped = []
    for col_a, col_b, _ in pairs:
        if col_a in dropped or col_b in dropped:
            continue
        dropped.append(col_b)

    if dropped:
        logger.info(f"Dropping correlated feature(s): {dropped}")
    return df.drop(columns=dropped), dropped


def split_indices(n_rows: int, train_fraction: float = 0.7, seed: int = None) -> Tuple[np.ndarray, np.ndarray]:
    """Partition row positions into train and test sets.

    The train set holds ``floor(train_fraction * n_rows)`` positions sampled
    without replacement; the test set holds the rest.

    Args:
        n_rows: Number of rows
        train_fraction: Fraction of rows used for training, in (0, 1)
        seed: Random seed

    Returns:
        Tuple of (train_positions, test_positions), each sorted
    """
    if not 0 < train_fraction < 1:
        raise ConfigurationError(f"train_fraction must be in (0, 1), got {train_fraction}")

    n_train = int(np.floor(train_fraction * n_rows))
    if n_train < 1 or n_train >= n_rows:
        raise ConfigurationError(
            f"Split of {n_rows} rows at {train_fraction} leaves an empty partition"
        )

    train_idx, test_idx = train_test_split(
        np.arange(n_rows), train_size=n_train, shuffle=True, random_state=seed
    )
    return np.sort(train_idx), np.sort(test_idx)
