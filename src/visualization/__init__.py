"""
Visualization utilities.
"""

from .plots import (
    finalize_figure,
    plot_tuning_results,
    plot_roc_curve,
    plot_confusion_matrix,
)

__all__ = [
    'finalize_figure',
    'plot_tuning_results',
    'plot_roc_curve',
    'plot_confusion_matrix',
]
