"""
Custom scikit-learn transformers for the credit preprocessing recipe

These transformers are used inside the tuned workflow and need to be
importable when loading pickled pipelines.

RECIPE ORDER:
- Median imputation of numeric predictors
- log(x + 1) of the skewed monetary predictors
- Centering and scaling of numeric predictors
- Reference (treatment) dummy coding of nominal predictors
- Downsampling of the majority class (fit time only)

All transformers take and return pandas DataFrames so later steps can
select columns by name.
"""

from __future__ import annotations

import logging
import re
import numbers
from collections import Counter
from typing import Any, Sequence

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray
from imblearn.under_sampling import RandomUnderSampler
from pandas.api.types import is_numeric_dtype, is_bool_dtype
from sklearn.base import BaseEstimator, TransformerMixin, clone
from sklearn.impute import SimpleImputer
from sklearn.preprocessing import StandardScaler
from sklearn.utils.validation import check_is_fitted

from ..config import RANDOM_STATE, LOG_COLUMNS, LOG_OFFSET, DEFAULT_UNDER_RATIO, LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


def _validate_dataframe(X: Any, transformer_name: str) -> None:
    """Validate input is a pandas DataFrame."""
    if not isinstance(X, pd.DataFrame):
        raise TypeError(
            f"{transformer_name} requires pandas DataFrame, "
            f"got {type(X).__name__}"
        )


def numeric_columns(X: pd.DataFrame) -> list[str]:
    """Numeric (non-boolean) column names, in frame order."""
    return [c for c in X.columns if is_numeric_dtype(X[c]) and not is_bool_dtype(X[c])]


def nominal_columns(X: pd.DataFrame) -> list[str]:
    """Non-numeric column names, in frame order."""
    numeric = set(numeric_columns(X))
    return [c for c in X.columns if c not in numeric]


class NumericColumnWrapper(BaseEstimator, TransformerMixin):
    """
    Apply an sklearn transformer to the numeric predictors only.

    The numeric columns are fixed at fit time. Output keeps every input
    column, in the original order and with the original index.

    Args:
        transformer: Unfitted sklearn transformer (e.g. SimpleImputer, StandardScaler)
    """

    def __init__(self, transformer: BaseEstimator):
        self.transformer = transformer

    def fit(self, X: pd.DataFrame, y: ArrayLike | None = None) -> "NumericColumnWrapper":
        _validate_dataframe(X, "NumericColumnWrapper")
        self.columns_ = numeric_columns(X)
        self.feature_names_in_ = np.array(X.columns, dtype=object)
        if self.columns_:
            self.transformer_ = clone(self.transformer).fit(X[self.columns_], y)
        else:
            self.transformer_ = None
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        check_is_fitted(self, 'columns_')
        _validate_dataframe(X, "NumericColumnWrapper")
        X_out = X.copy()
        if self.transformer_ is not None:
            values = self.transformer_.transform(X[self.columns_])
            X_out[self.columns_] = pd.DataFrame(
                np.asarray(values, dtype=float), columns=self.columns_, index=X.index
            )
        return X_out

    def get_feature_names_out(self, input_features: ArrayLike | None = None) -> NDArray:
        check_is_fitted(self, 'columns_')
        return np.array(self.feature_names_in_, dtype=object)


class LogTransformer(BaseEstimator, TransformerMixin):
    """
    Natural log of selected columns with an additive offset.

    Args:
        columns: Column names to transform
        offset: Added before taking the log (default 1, so zero stays finite)

    Raises:
        KeyError: At fit, if a named column is absent
    """

    def __init__(self, columns: Sequence[str] = LOG_COLUMNS, offset: float = LOG_OFFSET):
        self.columns = columns
        self.offset = offset

    def fit(self, X: pd.DataFrame, y: ArrayLike | None = None) -> "LogTransformer":
        _validate_dataframe(X, "LogTransformer")
        missing = [c for c in self.columns if c not in X.columns]
        if missing:
            raise KeyError(f"LogTransformer columns not found: {missing}")
        self.columns_ = list(self.columns)
        self.feature_names_in_ = np.array(X.columns, dtype=object)
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        check_is_fitted(self, 'columns_')
        _validate_dataframe(X, "LogTransformer")
        X_out = X.copy()
        for col in self.columns_:
            shifted = X_out[col].astype(float) + self.offset
            n_invalid = int((shifted <= 0).sum())
            if n_invalid:
                logger.warning(f"  [log] {col}: {n_invalid} values <= {-self.offset} become NaN")
            X_out[col] = np.log(shifted.where(shifted > 0))
        return X_out

    def get_feature_names_out(self, input_features: ArrayLike | None = None) -> NDArray:
        check_is_fitted(self, 'columns_')
        return np.array(self.feature_names_in_, dtype=object)


def _sanitize_level(level: str) -> str:
    cleaned = re.sub(r'[^0-9A-Za-z_]+', '_', str(level)).strip('_')
    return cleaned or 'blank'


class DummyEncoder(BaseEstimator, TransformerMixin):
    """
    Reference (treatment) coding of nominal predictors.

    Each nominal column becomes one 0/1 indicator per level except the
    first level learned at fit (categorical order, else sorted). Indicators
    are appended after the remaining columns and named '<column>_<level>'.

    Unseen levels at transform give all-zero indicators. Missing values give
    NaN in every indicator of that column.
    """

    def fit(self, X: pd.DataFrame, y: ArrayLike | None = None) -> "DummyEncoder":
        _validate_dataframe(X, "DummyEncoder")
        self.columns_ = nominal_columns(X)
        self.levels_: dict[str, list[str]] = {}

        for col in self.columns_:
            if isinstance(X[col].dtype, pd.CategoricalDtype):
                levels = [str(v) for v in X[col].cat.categories]
            else:
                levels = sorted(X[col].dropna().astype(str).unique())
            if len(levels) < 2:
                logger.warning(f"  [dummy] {col}: only {len(levels)} level(s), no indicators created")
            self.levels_[col] = levels

        kept = [c for c in X.columns if c not in self.columns_]

        # Levels that sanitize to the same name get '_2', '_3', ... suffixes
        seen: dict[str, int] = {str(name): 1 for name in kept}
        self.dummy_names_: dict[str, list[str]] = {}
        for col in self.columns_:
            names = []
            for level in self.levels_[col][1:]:
                base = f"{col}_{_sanitize_level(level)}"
                seen[base] = seen.get(base, 0) + 1
                names.append(base if seen[base] == 1 else f"{base}_{seen[base]}")
            self.dummy_names_[col] = names

        dummies = [name for col in self.columns_ for name in self.dummy_names_[col]]
        self.feature_names_out_ = kept + dummies
        self.feature_names_in_ = np.array(X.columns, dtype=object)
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        check_is_fitted(self, 'columns_')
        _validate_dataframe(X, "DummyEncoder")

        kept = X.drop(columns=self.columns_)
        indicators: dict[str, pd.Series] = {}
        for col in self.columns_:
            values = X[col]
            is_missing = values.isna()
            as_text = values.astype(str)
            for level, name in zip(self.levels_[col][1:], self.dummy_names_[col]):
                indicator = (as_text == level).astype(float)
                indicator[is_missing] = np.nan
                indicators[name] = indicator

        X_out = pd.concat([kept, pd.DataFrame(indicators, index=X.index)], axis=1)
        return X_out[self.feature_names_out_]

    def get_feature_names_out(self, input_features: ArrayLike | None = None) -> NDArray:
        check_is_fitted(self, 'feature_names_out_')
        return np.array(self.feature_names_out_, dtype=object)


def downsample_targets(y: ArrayLike, under_ratio: float) -> dict[Any, int]:
    """
    Target row count per class when downsampling.

    Every class is capped at round(minority_count * under_ratio), never
    below one row and never above its current count.
    """
    counts = Counter(np.asarray(y).tolist())
    minority = min(counts.values())
    cap = max(1, int(round(minority * under_ratio)))
    return {label: min(count, cap) for label, count in counts.items()}


class Downsampler(BaseEstimator):
    """
    Random majority-class downsampling for imbalanced-learn pipelines.

    Exposes fit_resample only, so imblearn's Pipeline applies it while
    fitting and skips it at prediction time.

    Args:
        under_ratio: Allowed majority-to-minority frequency ratio (1.0 = balanced)
        random_state: Seed for row selection

    Raises:
        ValueError: If under_ratio is not positive
    """

    def __init__(self, under_ratio: float = DEFAULT_UNDER_RATIO, random_state: int | None = RANDOM_STATE):
        self.under_ratio = under_ratio
        self.random_state = random_state

    def fit_resample(self, X: Any, y: ArrayLike) -> tuple[Any, Any]:
        if not isinstance(self.under_ratio, numbers.Real) or isinstance(self.under_ratio, (bool, np.bool_)):
            raise TypeError(f"under_ratio must be numeric, got {type(self.under_ratio).__name__}")
        if self.under_ratio <= 0:
            raise ValueError(f"under_ratio must be positive, got {self.under_ratio}")

        targets = downsample_targets(y, float(self.under_ratio))
        sampler = RandomUnderSampler(sampling_strategy=targets, random_state=self.random_state)
        X_res, y_res = sampler.fit_resample(X, y)
        self.sample_indices_ = sampler.sample_indices_
        self.targets_ = targets

        logger.debug(f"  [downsample] ratio={self.under_ratio:.2f}: {dict(Counter(np.asarray(y).tolist()))} -> {targets}")
        return X_res, y_res


def build_credit_recipe(
    log_columns: Sequence[str] = LOG_COLUMNS,
    under_ratio: float = DEFAULT_UNDER_RATIO,
    log_offset: float = LOG_OFFSET,
) -> list[tuple[str, Any]]:
    """
    Ordered preprocessing steps for the credit workflow.

    Returns:
        List of (name, step) tuples for an imblearn Pipeline
    """
    return [
        ('impute_median', NumericColumnWrapper(
            SimpleImputer(strategy='median', keep_empty_features=True)
        )),
        ('log', LogTransformer(columns=tuple(log_columns), offset=log_offset)),
        ('normalize', NumericColumnWrapper(StandardScaler())),
        ('dummy', DummyEncoder()),
        ('downsample', Downsampler(under_ratio=under_ratio, random_state=RANDOM_STATE)),
    ]


def prep_and_juice(
    X: pd.DataFrame,
    y: pd.Series,
    under_ratio: float = DEFAULT_UNDER_RATIO
) -> tuple[pd.DataFrame, pd.Series]:
    """
    Fit the recipe on training data and return the processed training rows.

    Downsampling is applied, so class counts of the returned labels show
    what the model actually trains on.
    """
    steps = build_credit_recipe(under_ratio=under_ratio)
    X_out = X
    for name, step in steps[:-1]:
        X_out = step.fit_transform(X_out, y)
    X_res, y_res = steps[-1][1].fit_resample(X_out, y)
    logger.info(f"Recipe output: {X_res.shape[0]} rows, {X_res.shape[1]} columns")
    return X_res, y_res
