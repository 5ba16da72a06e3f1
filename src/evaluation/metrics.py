"""
Classification metrics for the credit workflow.

The event class is encoded as 1 ('bad'); probabilities passed in are
for that class.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike
from sklearn.metrics import accuracy_score, brier_score_loss, confusion_matrix, roc_auc_score

from ..config import CLASSIFICATION_METRICS, LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

# sklearn scorer names for cross_validate; brier is reported negated by sklearn
SCORERS = {
    'roc_auc': 'roc_auc',
    'accuracy': 'accuracy',
    'brier_class': 'neg_brier_score',
}

_NEGATED_SCORERS = frozenset({'brier_class'})


def unpack_confusion_matrix(y_true: ArrayLike, y_pred: ArrayLike) -> tuple[int, int, int, int]:
    """
    Unpack confusion matrix into (tn, fp, fn, tp).

    Args:
        y_true: True labels
        y_pred: Predicted labels

    Returns:
        Tuple of (tn, fp, fn, tp)
    """
    cm = confusion_matrix(y_true, y_pred, labels=[0, 1])
    tn, fp, fn, tp = (int(v) for v in cm.ravel())
    return tn, fp, fn, tp


def compute_metrics(
    y_true: ArrayLike,
    y_proba: ArrayLike,
    threshold: float = 0.5
) -> dict[str, float]:
    """
    Hard- and soft-prediction metrics for one set of predictions.

    Args:
        y_true: True binary labels (1 = event)
        y_proba: Predicted event probabilities
        threshold: Cutoff for hard class predictions

    Returns:
        Dict with roc_auc, accuracy and brier_class. roc_auc is NaN when
        y_true holds a single class.
    """
    y_true = np.asarray(y_true)
    y_proba = np.asarray(y_proba, dtype=float)

    if len(y_true) == 0:
        raise ValueError("Cannot compute metrics on empty input")

    if np.any(y_proba < 0) or np.any(y_proba > 1):
        logger.warning(
            f"y_proba contains values outside [0, 1] "
            f"(min={y_proba.min():.3f}, max={y_proba.max():.3f})"
        )

    y_pred = (y_proba >= threshold).astype(int)

    if len(np.unique(y_true)) < 2:
        logger.warning("Only one class present in y_true; roc_auc is undefined")
        roc_auc = float('nan')
    else:
        roc_auc = float(roc_auc_score(y_true, y_proba))

    return {
        'roc_auc': roc_auc,
        'accuracy': float(accuracy_score(y_true, y_pred)),
        'brier_class': float(brier_score_loss(y_true, y_proba, pos_label=1)),
    }


def cv_results_to_frame(cv_results: dict[str, Any]) -> pd.DataFrame:
    """
    Convert sklearn cross_validate output to a long per-fold table.

    Returns:
        DataFrame with columns id ('Fold01', ...), .metric, .estimate
    """
    rows = []
    for metric in CLASSIFICATION_METRICS:
        key = f'test_{metric}'
        if key not in cv_results:
            continue
        scores = np.asarray(cv_results[key], dtype=float)
        if metric in _NEGATED_SCORERS:
            scores = -scores
        for fold, score in enumerate(scores, start=1):
            rows.append({'id': f'Fold{fold:02d}', '.metric': metric, '.estimate': score})
    return pd.DataFrame(rows, columns=['id', '.metric', '.estimate'])


def collect_metrics(fold_metrics: pd.DataFrame, summarize: bool = True) -> pd.DataFrame:
    """
    Summarize per-fold metrics.

    Args:
        fold_metrics: Long table from cv_results_to_frame()
        summarize: If False, return the per-fold table unchanged

    Returns:
        Per-fold table, or one row per metric with mean, n and std_err
    """
    if not summarize:
        return fold_metrics.reset_index(drop=True)

    grouped = fold_metrics.groupby('.metric', sort=False)['.estimate']
    summary = pd.DataFrame({
        'mean': grouped.mean(),
        'n': grouped.count(),
        'std_err': grouped.std(ddof=1) / np.sqrt(grouped.count()),
    }).reset_index()
    return summary[['.metric', 'mean', 'n', 'std_err']]
