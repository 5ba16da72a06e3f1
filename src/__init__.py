"""
Credit risk tuning and retail data cleaning - Source Package
"""

from . import config
from . import mlflow_utils

# Subpackages
from . import data
from . import models
from . import evaluation
from . import visualization

# Standalone modules
from . import tuning_utils

__all__ = [
    # Core
    'config',
    'mlflow_utils',
    # Subpackages
    'data',
    'models',
    'evaluation',
    'visualization',
    # Standalone modules
    'tuning_utils',
]
