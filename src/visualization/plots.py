"""
Visualization utilities for the credit tree workflow.
"""

from __future__ import annotations

import logging
import warnings
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from numpy.typing import ArrayLike
from sklearn.metrics import RocCurveDisplay, ConfusionMatrixDisplay, roc_auc_score, confusion_matrix

from ..config import VIZ_CONFIG, CLASSIFICATION_METRICS, MINIMIZE_METRICS, LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

# Suppress sklearn FutureWarning about kwargs deprecation in display helpers
warnings.filterwarnings('ignore', category=FutureWarning, module='sklearn.utils._plotting')


def finalize_figure(save_path: str | Path | None = None, close: bool = True) -> None:
    """
    Finalize figure with consistent save settings.

    Args:
        save_path: Optional path to save the figure. If None, figure is not saved.
        close: Whether to close the figure after saving (default: True)
    """
    if save_path is not None:
        plt.savefig(save_path, dpi=VIZ_CONFIG['dpi'], bbox_inches='tight')
    if close:
        plt.close()


def plot_tuning_results(
    summary: pd.DataFrame,
    params: list[str],
    metrics: tuple[str, ...] = CLASSIFICATION_METRICS,
    save_path: str | Path | None = None
) -> None:
    """
    Mean resampled metric against each tuned parameter.

    One row of panels per metric, one column per parameter; every point is
    a grid candidate.

    Args:
        summary: collect_tuning_metrics() output
        params: Tuned parameter columns to put on the x axes
        metrics: Metrics to plot (rows)
        save_path: Optional path to save the figure
    """
    metrics = [m for m in metrics if m in set(summary['.metric'])]
    if not metrics or not params:
        logger.warning("plot_tuning_results: nothing to plot")
        return

    n_rows, n_cols = len(metrics), len(params)
    _, axes = plt.subplots(n_rows, n_cols, figsize=(3.5 * n_cols, 3 * n_rows), squeeze=False)

    for i, metric in enumerate(metrics):
        subset = summary.loc[summary['.metric'] == metric].dropna(subset=['mean'])
        if subset.empty:
            continue
        best = subset['mean'].idxmin() if metric in MINIMIZE_METRICS else subset['mean'].idxmax()
        for j, param in enumerate(params):
            ax = axes[i, j]
            ax.scatter(subset[param], subset['mean'], color=VIZ_CONFIG['primary'], alpha=0.8)
            ax.scatter([subset.loc[best, param]], [subset.loc[best, 'mean']],
                       color=VIZ_CONFIG['highlight'], s=80, zorder=5)
            if param == 'cost_complexity':
                ax.set_xscale('log')
            if i == n_rows - 1:
                ax.set_xlabel(param, fontsize=VIZ_CONFIG['label_fontsize'])
            if j == 0:
                ax.set_ylabel(metric, fontsize=VIZ_CONFIG['label_fontsize'])
            ax.grid(alpha=0.3)

    plt.suptitle('Grid Search Results', fontsize=VIZ_CONFIG['title_fontsize'], fontweight='bold')
    plt.tight_layout()
    finalize_figure(save_path)


def plot_roc_curve(
    y_true: ArrayLike,
    y_pred_proba: ArrayLike,
    model_name: str = "Model",
    save_path: str | Path | None = None
) -> dict[str, Any]:
    """
    Plot ROC curve and calculate AUC-ROC.

    Args:
        y_true: True labels (1 = bad)
        y_pred_proba: Predicted probabilities for the bad class
        model_name: Model name for plot title
        save_path: Optional path to save the figure

    Returns:
        Dict with auc_roc score and fpr/tpr arrays
    """
    fig, ax = plt.subplots(figsize=(8, 6))

    try:
        display = RocCurveDisplay.from_predictions(
            y_true, y_pred_proba,
            ax=ax,
            name=model_name,
            curve_kwargs={'color': VIZ_CONFIG['primary']},
            plot_chance_level=True
        )

        ax.set_title(f'ROC Curve: {model_name}', fontsize=VIZ_CONFIG['title_fontsize'], fontweight='bold')
        ax.set_xlabel('False Positive Rate (1 - Specificity)', fontsize=VIZ_CONFIG['label_fontsize'])
        ax.set_ylabel('True Positive Rate (Sensitivity)', fontsize=VIZ_CONFIG['label_fontsize'])
        ax.grid(alpha=0.3)
        ax.legend(loc='lower right', fontsize=10)

        auc_roc = roc_auc_score(y_true, y_pred_proba)

        plt.tight_layout()
        if save_path is not None:
            fig.savefig(save_path, dpi=VIZ_CONFIG['dpi'], bbox_inches='tight')
    finally:
        plt.close(fig)

    return {
        'auc_roc': float(auc_roc),
        'fpr': display.fpr,
        'tpr': display.tpr
    }


def plot_confusion_matrix(
    y_true: ArrayLike,
    y_pred: ArrayLike,
    model_name: str = "Model",
    save_path: str | Path | None = None
) -> dict[str, int]:
    """
    Plot confusion matrix heatmap with counts and percentages.

    Args:
        y_true: True labels (1 = bad)
        y_pred: Predicted labels
        model_name: Model name for plot title
        save_path: Optional path to save the figure

    Returns:
        Dict with tn, fp, fn, tp counts and total
    """
    fig, ax = plt.subplots(figsize=VIZ_CONFIG['figsize_square'])

    cm = confusion_matrix(y_true, y_pred, labels=[0, 1])
    disp = ConfusionMatrixDisplay(confusion_matrix=cm, display_labels=['Good', 'Bad'])
    disp.plot(ax=ax, cmap=VIZ_CONFIG['heatmap_cmap'], values_format='d', colorbar=False)

    ax.set_title(f'Confusion Matrix: {model_name}',
                 fontsize=VIZ_CONFIG['title_fontsize'], fontweight='bold')
    ax.set_xlabel('Predicted Status', fontsize=VIZ_CONFIG['label_fontsize'])
    ax.set_ylabel('True Status', fontsize=VIZ_CONFIG['label_fontsize'])

    tn, fp, fn, tp = (int(v) for v in cm.ravel())
    total = int(cm.sum())

    if total:
        for (row, col), count in np.ndenumerate(cm):
            ax.text(col, row, f'\n\n{count / total * 100:.1f}%',
                    ha='center', va='center', fontsize=9, color='gray')

    plt.tight_layout()
    finalize_figure(save_path)

    return {'tn': tn, 'fp': fp, 'fn': fn, 'tp': tp, 'total': total}
