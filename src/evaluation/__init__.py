"""
Model evaluation utilities.
"""

from .metrics import (
    SCORERS,
    compute_metrics,
    cv_results_to_frame,
    collect_metrics,
    unpack_confusion_matrix,
)

__all__ = [
    'SCORERS',
    'compute_metrics',
    'cv_results_to_frame',
    'collect_metrics',
    'unpack_confusion_matrix',
]
