"""
Data loading, splitting, cleaning and transformation utilities.
"""

from .loader import (
    read_remote_csv,
    load_credit_data,
    load_dollar_store_data,
    split_features_target,
)
from .splitting import initial_split, vfold_cv, class_counts
from .transformers import (
    NumericColumnWrapper,
    LogTransformer,
    DummyEncoder,
    Downsampler,
    build_credit_recipe,
    prep_and_juice,
)
from .cleaning import (
    clean_names,
    parse_number,
    parse_stock_status,
    split_unit_size,
    separate_wider_delim,
    split_product_info,
    parse_dates,
    clean_dollar_store,
)

__all__ = [
    'read_remote_csv',
    'load_credit_data',
    'load_dollar_store_data',
    'split_features_target',
    'initial_split',
    'vfold_cv',
    'class_counts',
    'NumericColumnWrapper',
    'LogTransformer',
    'DummyEncoder',
    'Downsampler',
    'build_credit_recipe',
    'prep_and_juice',
    'clean_names',
    'parse_number',
    'parse_stock_status',
    'split_unit_size',
    'separate_wider_delim',
    'split_product_info',
    'parse_dates',
    'clean_dollar_store',
]
