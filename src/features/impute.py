"""Multiple imputation by predictive mean matching."""

import logging

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from statsmodels.imputation.mice import MICEData

from src.errors import ImputationError

logger = logging.getLogger(__name__)

AGGREGATIONS = ("mean", "first")


class PredictiveMeanMatchingImputer(BaseEstimator, TransformerMixin):
    """Fill NaN cells with donor values chosen by predictive mean matching.

    Each incomplete column is regressed on all other columns; a missing
    cell receives the observed value of one of the ``k_pmm`` rows whose
    predicted value is closest to its own. Chained equations are cycled
    ``n_burnin`` times, then ``n_imputations`` completed tables are drawn
    ``n_skip`` cycles apart and aggregated into one.

    The imputation is transductive: ``transform`` imputes the table it is
    given, ``fit`` only checks that it can be modelled.
    """

    def __init__(self, n_imputations=5, n_burnin=5, n_skip=1, k_pmm=5, aggregate="mean", seed=None):
        """Initialize imputer.

        Args:
            n_imputations: Number of completed tables to draw (>= 1)
            n_burnin: Chained-equation cycles before the first draw (>= 1)
            n_skip: Cycles between consecutive draws
            k_pmm: Number of nearest donors to sample from
            aggregate: ``"mean"`` averages the draws, ``"first"`` keeps draw one
            seed: Random seed; identical seed and input give identical output
        """
        self.n_imputations = n_imputations
        self.n_burnin = n_burnin
        self.n_skip = n_skip
        self.k_pmm = k_pmm
        self.aggregate = aggregate
        self.seed = seed

    def _check_params(self):
        if self.n_imputations < 1:
            raise ImputationError(f"n_imputations must be >= 1, got {self.n_imputations}")
        if self.n_burnin < 1:
            raise ImputationError(f"n_burnin must be >= 1, got {self.n_burnin}")
        if self.k_pmm < 1:
            raise ImputationError(f"k_pmm must be >= 1, got {self.k_pmm}")
        if self.aggregate not in AGGREGATIONS:
            raise ImputationError(
                f"Unknown aggregation '{self.aggregate}', expected one of {AGGREGATIONS}"
            )

    def fit(self, X, y=None):
        """Check that every incomplete column has enough data to be modelled.

        Args:
            X: Numeric DataFrame with NaN marking missing cells
            y: Target (unused)

        Returns:
            self
        """
        self._check_params()
        X_df = pd.DataFrame(X)

        empty_rows = X_df.isnull().all(axis=1)
        if empty_rows.any():
            raise ImputationError(
                f"{int(empty_rows.sum())} row(s) have no observed values, "
                f"first at index {X_df.index[empty_rows][0]}"
            )

        n_covariates = X_df.shape[1] - 1
        self.missing_counts_ = X_df.isnull().sum().astype(int).to_dict()
        for col, n_missing in self.missing_counts_.items():
            if n_missing == 0:
                continue
            n_observed = len(X_df) - n_missing
            if n_observed <= n_covariates + 1:
                raise ImputationError(
                    f"Column '{col}' has {n_observed} observed value(s); at least "
                    f"{n_covariates + 2} are needed to regress it on {n_covariates} covariates"
                )

        self.columns_ = list(X_df.columns)
        return self

    def transform(self, X):
        """Impute missing cells.

        Args:
            X: Numeric DataFrame with NaN marking missing cells

        Returns:
            Completed DataFrame with the same index and columns as ``X``
        """
        X_df = pd.DataFrame(X).astype(float)
        if not X_df.isnull().values.any():
            return X_df.copy()

        self.fit(X_df)

        try:
            draws = self._draw_imputations(X_df, np.random.default_rng(self.seed))
        except (np.linalg.LinAlgError, ValueError) as e:
            raise ImputationError(f"Predictive mean matching failed: {e}") from e

        if self.aggregate == "first":
            values = draws[0]
        else:
            values = np.mean(draws, axis=0)

        completed = pd.DataFrame(values, index=X_df.index, columns=X_df.columns)

        unfilled = completed.isnull().sum()
        if unfilled.any():
            raise ImputationError(
                f"Imputation left missing values: {unfilled[unfilled > 0].to_dict()}"
            )

        logger.info(
            f"Imputed {int(X_df.isnull().values.sum())} cells "
            f"({self.n_imputations} imputation(s), k_pmm={self.k_pmm}, aggregate={self.aggregate})"
        )
        return completed

    def _draw_imputations(self, X_df, rng):
        mice_data = MICEData(X_df.reset_index(drop=True), k_pmm=self.k_pmm, rng=rng)
        mice_data.update_all(self.n_burnin)

        draws = [mice_data.data[self.columns_].to_numpy(copy=True)]
        for _ in range(1, self.n_imputations):
            mice_data.update_all(self.n_skip)
            draws.append(mice_data.data[self.columns_].to_numpy(copy=True))
        return draws
