"""
Model building utilities.
"""

from .factory import (
    normalize_params,
    build_model,
    build_workflow,
    finalize_workflow,
    tunable_parameters,
)
from .registry import (
    SUPPORTED_MODELS,
    SEARCH_SPACES,
    DEFAULT_PARAMS,
    INT_PARAMS,
    suggest_param,
    suggest_params,
    in_search_space,
)

__all__ = [
    'normalize_params',
    'build_model',
    'build_workflow',
    'finalize_workflow',
    'tunable_parameters',
    'SUPPORTED_MODELS',
    'SEARCH_SPACES',
    'DEFAULT_PARAMS',
    'INT_PARAMS',
    'suggest_param',
    'suggest_params',
    'in_search_space',
]
