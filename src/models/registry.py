"""
Model registry and hyperparameter spaces for the credit decision tree.

Tuning parameters use the workflow-level names below; MODEL_PARAM_MAP and
RECIPE_PARAM_MAP translate them to sklearn/pipeline parameter names.

METHODOLOGY NOTES:
- cost_complexity maps to ccp_alpha (minimal cost-complexity pruning).
  ccp_alpha is an absolute decrease in weighted Gini impurity, while
  rpart's cp is relative to the root node error, so the same number
  prunes differently. Values are passed through unscaled; with balanced
  classes (root Gini 0.5) a ccp_alpha prunes roughly like cp = 2 * ccp_alpha.
- tree_depth maps to max_depth, min_n to min_samples_split
- under_ratio is a preprocessing parameter tuned together with the tree
"""

from __future__ import annotations

from typing import Any

from sklearn.tree import DecisionTreeClassifier

from ..config import RANDOM_STATE, DEFAULT_UNDER_RATIO

# Supported model types
SUPPORTED_MODELS: list[str] = ['DecisionTree']

# Parameters that must be integers (Optuna and CSV round-trips may give floats)
INT_PARAMS: frozenset[str] = frozenset({'tree_depth', 'min_n'})

# Default (untuned) parameters
DEFAULT_PARAMS: dict[str, Any] = {
    'cost_complexity': 0.01,
    'tree_depth': 30,
    'min_n': 2,
    'under_ratio': DEFAULT_UNDER_RATIO,
}

# Search spaces in suggest_param() format
SEARCH_SPACES: dict[str, tuple] = {
    'cost_complexity': ('float_log', 1e-10, 1e-1),
    'tree_depth': ('int', 1, 15),
    'min_n': ('int', 2, 40),
    'under_ratio': ('float', 0.8, 1.2),
}

# Workflow parameter -> DecisionTreeClassifier parameter
MODEL_PARAM_MAP: dict[str, str] = {
    'cost_complexity': 'ccp_alpha',
    'tree_depth': 'max_depth',
    'min_n': 'min_samples_split',
}

# Workflow parameter -> recipe step parameter
RECIPE_PARAM_MAP: dict[str, str] = {
    'under_ratio': 'downsample__under_ratio',
}

# Fixed parameters that are always applied
FIXED_PARAMS: dict[str, Any] = {
    'criterion': 'gini',
    'random_state': RANDOM_STATE,
}

MODEL_CLASSES = {
    'DecisionTree': DecisionTreeClassifier,
}


def suggest_param(trial: Any, param_name: str, space: tuple) -> Any:
    """
    Suggest a hyperparameter value from an Optuna trial using SEARCH_SPACES format.

    Args:
        trial: Optuna trial object
        param_name: Name of the parameter
        space: Tuple from SEARCH_SPACES (type, *args)

    Returns:
        Suggested parameter value

    Raises:
        ValueError: If space type is unknown
    """
    ptype, *args = space

    if ptype == 'int':
        return trial.suggest_int(param_name, args[0], args[1])
    elif ptype == 'int_step':
        return trial.suggest_int(param_name, args[0], args[1], step=args[2])
    elif ptype == 'float':
        return trial.suggest_float(param_name, args[0], args[1])
    elif ptype == 'float_log':
        return trial.suggest_float(param_name, args[0], args[1], log=True)
    elif ptype == 'categorical':
        return trial.suggest_categorical(param_name, args[0])
    else:
        raise ValueError(f"Unknown parameter type: {ptype}")


def suggest_params(trial: Any) -> dict[str, Any]:
    """Suggest one value for every tunable parameter."""
    return {name: suggest_param(trial, name, space) for name, space in SEARCH_SPACES.items()}


def in_search_space(params: dict[str, Any]) -> bool:
    """True if every tuned value lies within its SEARCH_SPACES bounds."""
    for name, space in SEARCH_SPACES.items():
        if name not in params:
            return False
        ptype, *args = space
        value = params[name]
        if ptype == 'categorical':
            if value not in args[0]:
                return False
        elif not args[0] <= value <= args[1]:
            return False
    return True
