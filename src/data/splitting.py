"""
Train/test splitting and resampling schemes for the credit workflow.
"""

from __future__ import annotations

import logging

import pandas as pd
from numpy.typing import ArrayLike
from sklearn.model_selection import StratifiedKFold, train_test_split

from ..config import (
    RANDOM_STATE, TRAIN_PROP, CV_FOLDS, POSITIVE_CLASS, NEGATIVE_CLASS,
    LOGGER_NAME, compute_class_counts,
)

logger = logging.getLogger(LOGGER_NAME)

CLASS_LABELS = {1: POSITIVE_CLASS, 0: NEGATIVE_CLASS}


def initial_split(
    X: pd.DataFrame,
    y: pd.Series,
    prop: float = TRAIN_PROP,
    random_state: int = RANDOM_STATE
) -> tuple[pd.DataFrame, pd.DataFrame, pd.Series, pd.Series]:
    """
    Stratified train/test split.

    Args:
        X: Predictors
        y: Encoded outcome
        prop: Share of rows kept for training
        random_state: Seed

    Returns:
        (X_train, X_test, y_train, y_test)

    Raises:
        ValueError: If prop is not strictly between 0 and 1
    """
    if not 0.0 < prop < 1.0:
        raise ValueError(f"prop must be in (0, 1), got {prop}")

    X_train, X_test, y_train, y_test = train_test_split(
        X, y, train_size=prop, random_state=random_state, stratify=y
    )

    logger.info(f"Split: train={len(X_train)} test={len(X_test)} "
                f"(event_rate={y_train.mean():.1%})")
    return X_train, X_test, y_train, y_test


def vfold_cv(n_splits: int = CV_FOLDS, random_state: int = RANDOM_STATE) -> StratifiedKFold:
    """Seeded, shuffled stratified V-fold splitter."""
    if n_splits < 2:
        raise ValueError(f"n_splits must be >= 2, got {n_splits}")
    return StratifiedKFold(n_splits=n_splits, shuffle=True, random_state=random_state)


def class_counts(y: ArrayLike) -> pd.DataFrame:
    """
    Count rows per outcome class, with the original class names.

    Returns:
        DataFrame with columns 'status' and 'n'
    """
    counts = compute_class_counts(y)
    return pd.DataFrame({
        'status': [CLASS_LABELS.get(label, label) for label in counts],
        'n': list(counts.values()),
    })
