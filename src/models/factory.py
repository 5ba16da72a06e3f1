"""
Model and workflow factory for the credit decision tree.

A workflow is the preprocessing recipe followed by the classifier, wrapped
in an imbalanced-learn Pipeline so the downsampling step only runs at fit.
"""

from __future__ import annotations

from typing import Any

import pandas as pd
from imblearn.pipeline import Pipeline as ImbPipeline
from sklearn.tree import DecisionTreeClassifier

from ..config import LOG_COLUMNS
from ..data.transformers import build_credit_recipe
from .registry import (
    DEFAULT_PARAMS,
    FIXED_PARAMS,
    INT_PARAMS,
    MODEL_CLASSES,
    MODEL_PARAM_MAP,
    RECIPE_PARAM_MAP,
    SEARCH_SPACES,
)


def normalize_params(row_or_params: dict[str, Any] | pd.Series | None) -> dict[str, Any]:
    """
    Complete and type-fix a workflow parameter set.

    Accepts a plain dict, a results row (pd.Series) or param_* prefixed
    keys. Missing parameters fall back to DEFAULT_PARAMS; unknown keys are
    ignored.

    Raises:
        ValueError: If a tunable parameter value is missing (NaN)
    """
    params = dict(DEFAULT_PARAMS)
    if row_or_params is None:
        return params

    items = row_or_params.items()
    for key, value in items:
        name = str(key).removeprefix('param_')
        if name not in DEFAULT_PARAMS:
            continue
        if pd.isna(value):
            raise ValueError(f"Parameter '{name}' is missing")
        params[name] = int(value) if name in INT_PARAMS else float(value)
    return params


def build_model(params: dict[str, Any] | pd.Series | None = None) -> DecisionTreeClassifier:
    """
    Build the decision tree from workflow-level parameters.

    Examples:
        model = build_model({'cost_complexity': 1e-4, 'tree_depth': 8, 'min_n': 10})
        model = build_model(best_row)  # row with param_* columns
    """
    params = normalize_params(params)
    model_params = {MODEL_PARAM_MAP[name]: params[name] for name in MODEL_PARAM_MAP}
    model_params.update(FIXED_PARAMS)
    return MODEL_CLASSES['DecisionTree'](**model_params)


def build_workflow(
    params: dict[str, Any] | pd.Series | None = None,
    log_columns: tuple[str, ...] = LOG_COLUMNS
) -> ImbPipeline:
    """
    Build the complete workflow (recipe + decision tree).

    Args:
        params: Workflow-level parameters (defaults for anything not given)
        log_columns: Columns that get the log transform

    Returns:
        Unfitted imblearn Pipeline
    """
    params = normalize_params(params)
    steps = build_credit_recipe(log_columns=log_columns, under_ratio=params['under_ratio'])
    return ImbPipeline(steps + [('classifier', build_model(params))])


def finalize_workflow(workflow: ImbPipeline, params: dict[str, Any] | pd.Series) -> ImbPipeline:
    """
    Set tuned parameters on an (unfitted) workflow.

    Only the parameters present in `params` are changed; everything else
    keeps the value the workflow was built with.

    Returns:
        The same workflow, with its recipe and classifier parameters updated

    Raises:
        ValueError: If a supplied tunable parameter value is missing (NaN)
    """
    supplied = {str(key).removeprefix('param_') for key in params.keys()}
    values = normalize_params(params)

    pipeline_params = {}
    for name in DEFAULT_PARAMS:
        if name not in supplied:
            continue
        if name in MODEL_PARAM_MAP:
            pipeline_params[f'classifier__{MODEL_PARAM_MAP[name]}'] = values[name]
        else:
            pipeline_params[RECIPE_PARAM_MAP[name]] = values[name]
    return workflow.set_params(**pipeline_params)


def tunable_parameters() -> list[str]:
    """Names of the parameters explored during tuning."""
    return list(SEARCH_SPACES)
