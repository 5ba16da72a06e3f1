"""
Data loading utilities for the credit and dollar-store datasets
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from ..config import (
    CREDIT_DATA_URL, DOLLAR_STORE_URL, RAW_FILES,
    TARGET_COLUMN, POSITIVE_CLASS, LOG_COLUMNS, LOGGER_NAME,
)
from .cleaning import clean_names

logger = logging.getLogger(LOGGER_NAME)


def read_remote_csv(
    source: str | Path,
    cache_path: Path | None = None,
    refresh: bool = False
) -> pd.DataFrame:
    """
    Read a CSV from a URL or local path, optionally through a local cache.

    Args:
        source: URL or filesystem path of the CSV
        cache_path: Where to keep a local copy. Reused on later calls unless
                    refresh=True.
        refresh: Ignore an existing cached copy and download again

    Returns:
        Raw DataFrame

    Raises:
        ValueError: If the file is empty or cannot be parsed
        IOError: If the source cannot be fetched
    """
    if cache_path is not None and cache_path.exists() and not refresh:
        logger.debug(f"Using cached copy: {cache_path}")
        source = cache_path

    try:
        df = pd.read_csv(source)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"CSV is empty: {source}") from e
    except pd.errors.ParserError as e:
        raise ValueError(f"CSV has invalid format ({source}): {e}") from e
    except FileNotFoundError:
        raise
    except OSError as e:
        raise IOError(f"Failed to fetch {source}: {e}") from e

    if df.empty:
        raise ValueError(f"CSV has no data rows: {source}")

    if cache_path is not None and Path(source) != cache_path:
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(cache_path, index=False)
        logger.debug(f"Cached {len(df)} rows to {cache_path}")

    return df


def load_credit_data(
    source: str | Path | None = None,
    refresh: bool = False
) -> pd.DataFrame:
    """
    Load the credit applicants table.

    The outcome column is cast to a categorical; rows without an outcome
    are dropped.

    Args:
        source: URL or path (default: CREDIT_DATA_URL, cached under data/raw)
        refresh: Re-download even if a cached copy exists

    Returns:
        Credit DataFrame with categorical 'status'

    Raises:
        ValueError: If required columns are missing
    """
    cache_path = RAW_FILES['credit'] if source is None else None
    df = read_remote_csv(source or CREDIT_DATA_URL, cache_path=cache_path, refresh=refresh)
    df.columns = [str(c).strip().lower() for c in df.columns]

    required = [TARGET_COLUMN, *LOG_COLUMNS]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(
            f"Credit data missing required columns: {missing}. "
            f"Got columns: {list(df.columns)}"
        )

    n_missing_status = int(df[TARGET_COLUMN].isna().sum())
    if n_missing_status:
        logger.warning(f"Dropping {n_missing_status} rows with missing {TARGET_COLUMN}")
        df = df.loc[df[TARGET_COLUMN].notna()].reset_index(drop=True)

    df[TARGET_COLUMN] = df[TARGET_COLUMN].astype(str).str.strip().str.lower().astype('category')

    if POSITIVE_CLASS not in df[TARGET_COLUMN].cat.categories:
        raise ValueError(
            f"Event class '{POSITIVE_CLASS}' not found in {TARGET_COLUMN}: "
            f"{list(df[TARGET_COLUMN].cat.categories)}"
        )

    logger.info(f"Credit data: {df.shape[0]} rows, {df.shape[1] - 1} predictors, "
                f"{df.isna().sum().sum()} missing cells")
    return df


def load_dollar_store_data(
    source: str | Path | None = None,
    refresh: bool = False
) -> pd.DataFrame:
    """Load the raw dollar-store table with snake_case column names."""
    cache_path = RAW_FILES['dollar_store'] if source is None else None
    raw = read_remote_csv(source or DOLLAR_STORE_URL, cache_path=cache_path, refresh=refresh)
    df = clean_names(raw)
    logger.info(f"Dollar store data: {df.shape[0]} rows, {df.shape[1]} columns")
    return df


def split_features_target(df: pd.DataFrame) -> tuple[pd.DataFrame, pd.Series]:
    """
    Separate predictors from the outcome.

    Returns:
        (X, y) where y is 1 for the event class ('bad') and 0 otherwise
    """
    if TARGET_COLUMN not in df.columns:
        raise KeyError(f"Outcome column '{TARGET_COLUMN}' not in DataFrame")

    X = df.drop(columns=[TARGET_COLUMN])
    y = pd.Series(
        np.where(df[TARGET_COLUMN].astype(str) == POSITIVE_CLASS, 1, 0),
        index=df.index,
        name=TARGET_COLUMN,
    )
    return X, y
